from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from repairhub import models  # noqa: F401  register all mappers
from repairhub.config import settings
from repairhub.middleware.exceptions import register_exception_handlers
from repairhub.routers import ads, credit, forfeiture, health, loyalty, webhooks
from repairhub.services.scheduler import lifespan

app = FastAPI(
    title="RepairHub",
    description="Repair network billing: credit ledger, loyalty cards, forfeiture",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware ───────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(webhooks.router, prefix="/api/webhooks", tags=["webhooks"])
app.include_router(credit.router, prefix="/api/credit", tags=["credit"])
app.include_router(loyalty.router, prefix="/api/loyalty", tags=["loyalty"])
app.include_router(ads.router, prefix="/api/ads", tags=["ads"])
app.include_router(forfeiture.router, prefix="/api/forfeiture", tags=["forfeiture"])
