"""Forfeiture sweep — uncollected repaired devices become inventory.

Candidates: repairs with status=completed, completed_at set, neither
delivered_at nor forfeited_at set, and a device owned by a known customer.  For each, whole days since completion
(floored) decide the action:

    days >= 30                      → forfeit + add one zero-cost SparePart
    23 <= days < 30, no warning yet → stamp forfeiture_warning_sent_at
    otherwise                       → nothing

Each repair runs inside its own SAVEPOINT.  A failure rolls back that
repair only and is appended to `errors`; the sweep always finishes.
Running the sweep twice is harmless: a warned repair is not warned again
and a forfeited repair is no longer a candidate.

Sending the actual warning message is left to the notification
collaborator; this module only records that the warning is due.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from repairhub.config import settings
from repairhub.models.customer import Customer
from repairhub.models.repair import Device, Repair
from repairhub.models.spare_part import SparePart

logger = logging.getLogger("repairhub.forfeiture")

ACTION_FORFEIT = "forfeit"
ACTION_WARN = "warn"


@dataclass
class SweepResult:
    warnings_sent: int = 0
    forfeited: int = 0
    devices_added_to_inventory: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def days_since(completed_at: datetime, now: datetime) -> int:
    return int((now - completed_at).total_seconds() // 86400)


def classify(repair: Repair, now: datetime) -> str | None:
    """Return the action due for a candidate repair, or None."""
    days = days_since(repair.completed_at, now)
    if days >= settings.forfeiture_days:
        return ACTION_FORFEIT
    if days >= settings.forfeiture_warning_days and repair.forfeiture_warning_sent_at is None:
        return ACTION_WARN
    return None


def build_inventory_item(repair: Repair, device: Device, centro_id: str | None) -> SparePart:
    notes = (
        f"Forfeited device - IMEI: {device.imei or 'N/A'} - "
        f"S/N: {device.serial_number or 'N/A'} - "
        f"Condition: {device.initial_condition or 'Not specified'} - "
        f"From repair #{repair.id[:8]}"
    )
    return SparePart(
        name=f"{device.brand} {device.model} (Forfeited)",
        category="Devices",
        brand=device.brand,
        model_compatibility=device.model,
        stock_quantity=1,
        cost=Decimal("0"),
        selling_price=None,
        source_repair_id=repair.id,
        notes=notes,
        centro_id=centro_id,
    )


async def _candidates(db: AsyncSession) -> list[Repair]:
    result = await db.execute(
        select(Repair)
        .join(Device, Device.id == Repair.device_id)
        .join(Customer, Customer.id == Device.customer_id)
        .where(
            Repair.status == "completed",
            Repair.completed_at.is_not(None),
            Repair.delivered_at.is_(None),
            Repair.forfeited_at.is_(None),
        )
    )
    return list(result.scalars().all())


async def _forfeit(db: AsyncSession, repair: Repair, now: datetime, result: SweepResult) -> None:
    repair_id = repair.id
    device = await db.get(Device, repair.device_id)
    customer = await db.get(Customer, device.customer_id)
    item = build_inventory_item(repair, device, customer.centro_id if customer else None)
    repair.status = "forfeited"
    repair.forfeited_at = now
    await db.flush()
    result.forfeited += 1
    logger.info("Forfeited repair %s", repair_id)

    try:
        async with db.begin_nested():
            db.add(item)
    except Exception:
        logger.exception("Failed to add device from repair %s to inventory", repair_id)
        result.errors.append(f"Failed to add device {repair_id} to inventory")
        return
    result.devices_added_to_inventory += 1


async def run_forfeiture_sweep(db: AsyncSession, now: datetime | None = None) -> SweepResult:
    now = now or datetime.utcnow()
    repairs = await _candidates(db)
    logger.info("Forfeiture sweep: %d completed repairs awaiting pickup", len(repairs))

    result = SweepResult()
    for repair in repairs:
        action = classify(repair, now)
        if action is None:
            continue

        repair_id = repair.id
        try:
            async with db.begin_nested():
                if action == ACTION_FORFEIT:
                    await _forfeit(db, repair, now, result)
                else:
                    repair.forfeiture_warning_sent_at = now
                    await db.flush()
                    result.warnings_sent += 1
                    logger.info("Forfeiture warning due for repair %s", repair_id)
        except Exception:
            logger.exception("Forfeiture sweep failed for repair %s", repair_id)
            verb = "forfeit" if action == ACTION_FORFEIT else "send warning for"
            result.errors.append(f"Failed to {verb} repair {repair_id}")

    logger.info(
        "Forfeiture sweep complete: %d warnings, %d forfeited, %d added to inventory, %d errors",
        result.warnings_sent,
        result.forfeited,
        result.devices_added_to_inventory,
        len(result.errors),
    )
    return result
