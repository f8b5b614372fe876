"""Liveness and readiness probes."""

from datetime import datetime, timezone

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from repairhub.config import settings
from repairhub.database import ping_database

router = APIRouter(tags=["health"])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/health")
async def health_check():
    return {"status": "ok", "service": "RepairHub", "environment": settings.environment, "timestamp": _now()}


@router.get("/health/ready")
async def readiness_check():
    """503 while the database does not answer."""
    try:
        await ping_database()
        database = "ok"
    except Exception as e:
        database = f"error: {str(e)[:100]}"

    ready = database == "ok"
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if ready else "unavailable",
            "checks": {"database": database},
            "timestamp": _now(),
        },
    )
