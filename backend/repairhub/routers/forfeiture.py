"""Forfeiture sweep trigger.

Endpoints:
    POST /api/forfeiture/sweep    Run the sweep now (platform admin)
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from repairhub.auth.deps import Principal, require_platform_admin
from repairhub.database import get_db
from repairhub.schemas.forfeiture import SweepResultOut
from repairhub.services.forfeiture import run_forfeiture_sweep

router = APIRouter()


@router.post("/sweep", response_model=SweepResultOut)
async def sweep_forfeitures(
    db: AsyncSession = Depends(get_db),
    _admin: Principal = Depends(require_platform_admin),
):
    result = await run_forfeiture_sweep(db)
    return result.to_dict()
