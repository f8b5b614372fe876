"""Background task scheduler — runs the daily forfeiture sweep.

Uses FastAPI's lifespan context to start/stop an asyncio background loop
that fires once per day at `forfeiture_sweep_hour` (UTC).  Only started
when `forfeiture_scheduler_enabled` is true; with several API workers,
enable it on one of them or use the CLI from cron instead:

    python -m repairhub.cli sweep-forfeitures
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI

from repairhub.config import settings
from repairhub.database import async_session
from repairhub.services.forfeiture import SweepResult, run_forfeiture_sweep

logger = logging.getLogger("repairhub.scheduler")


async def run_scheduled_sweep() -> SweepResult:
    """Run one sweep in its own session and commit it."""
    async with async_session() as db:
        try:
            result = await run_forfeiture_sweep(db)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
    return result


def seconds_until(target_hour: int, now: datetime) -> float:
    next_run = now.replace(hour=target_hour, minute=0, second=0, microsecond=0)
    if next_run <= now:
        next_run += timedelta(days=1)
    return (next_run - now).total_seconds()


async def _scheduler_loop() -> None:
    while True:
        wait_seconds = seconds_until(
            settings.forfeiture_sweep_hour, datetime.now(timezone.utc)
        )
        logger.info("Next forfeiture sweep in %.0f seconds", wait_seconds)
        await asyncio.sleep(wait_seconds)

        try:
            await run_scheduled_sweep()
        except Exception:
            logger.exception("Unhandled error in forfeiture sweep")

        # Avoid running twice in the same minute
        await asyncio.sleep(60)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan: start the scheduler on startup, cancel on shutdown."""
    if not settings.forfeiture_scheduler_enabled:
        yield
        return

    task = asyncio.create_task(_scheduler_loop())
    logger.info("Forfeiture scheduler started")
    try:
        yield
    finally:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Forfeiture scheduler stopped")
