"""Credit ledger — balance & status updates for centri and corners.

Every balance change goes through `apply_credit_movement`, which

  1. applies the signed delta and recomputes payment_status in ONE
     UPDATE … RETURNING statement (no read-then-write window), and
  2. appends exactly one CreditTransaction carrying balance_after.

Both happen in the caller's transaction, so a failed insert (e.g. a
duplicate external_ref from a replayed payment event) rolls the balance
change back with it.

Status policies:

    TOPUP       balance >= 100  → good_standing
                balance >= 0    → warning
                otherwise       → suspended

    COMMISSION  balance <= 0                → suspended
                balance < warning_threshold → warning
                otherwise                   → good_standing

The two rule sets come from two different business flows and are kept
separate on purpose; see DESIGN.md.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from repairhub.config import settings
from repairhub.middleware.exceptions import ResourceNotFoundError, ValidationFailed
from repairhub.models.centro import Centro, Corner
from repairhub.models.credit import CreditTransaction
from repairhub.utils.money import to_money

logger = logging.getLogger(__name__)

GOOD_STANDING = "good_standing"
WARNING = "warning"
SUSPENDED = "suspended"

ACCOUNT_MODELS = {
    "centro": Centro,
    "corner": Corner,
}


class StatusPolicy(str, enum.Enum):
    TOPUP = "topup"
    COMMISSION = "commission"


@dataclass
class CreditMovement:
    entity_type: str
    entity_id: str
    amount: Decimal
    balance_after: Decimal
    payment_status: str
    transaction: CreditTransaction


# ── Pure rules ───────────────────────────────────────────────

def compute_status(
    balance: Decimal,
    policy: StatusPolicy,
    warning_threshold: Decimal | None = None,
) -> str:
    balance = to_money(balance)
    if policy is StatusPolicy.TOPUP:
        if balance >= to_money(settings.topup_good_standing_floor):
            return GOOD_STANDING
        if balance >= 0:
            return WARNING
        return SUSPENDED

    threshold = to_money(
        warning_threshold
        if warning_threshold is not None
        else settings.default_warning_threshold
    )
    if balance <= 0:
        return SUSPENDED
    if balance < threshold:
        return WARNING
    return GOOD_STANDING


def apply_delta(
    current_balance: Decimal,
    delta: Decimal,
    policy: StatusPolicy,
    warning_threshold: Decimal | None = None,
) -> tuple[Decimal, str]:
    """(current, delta) → (new_balance, new_status)."""
    new_balance = to_money(current_balance) + to_money(delta)
    return new_balance, compute_status(new_balance, policy, warning_threshold)


def _status_expression(model, new_balance, policy: StatusPolicy):
    """SQL twin of compute_status, evaluated against the pre-update row."""
    if policy is StatusPolicy.TOPUP:
        return case(
            (new_balance >= to_money(settings.topup_good_standing_floor), GOOD_STANDING),
            (new_balance >= 0, WARNING),
            else_=SUSPENDED,
        )
    return case(
        (new_balance <= 0, SUSPENDED),
        (new_balance < model.credit_warning_threshold, WARNING),
        else_=GOOD_STANDING,
    )


def account_model(entity_type: str):
    try:
        return ACCOUNT_MODELS[entity_type]
    except KeyError:
        raise ValidationFailed(
            f"entity_type must be one of: {', '.join(ACCOUNT_MODELS)}"
        ) from None


# ── Store operations ─────────────────────────────────────────

async def get_account(db: AsyncSession, entity_type: str, entity_id: str):
    model = account_model(entity_type)
    account = await db.get(model, entity_id, populate_existing=True)
    if account is None:
        raise ResourceNotFoundError(entity_type.capitalize(), entity_id)
    return account


async def apply_credit_movement(
    db: AsyncSession,
    *,
    entity_type: str,
    entity_id: str,
    amount: Decimal,
    policy: StatusPolicy,
    transaction_type: str,
    description: str | None = None,
    external_ref: str | None = None,
    created_by: str | None = None,
) -> CreditMovement:
    """Apply a signed amount to an account and record it in the ledger."""
    model = account_model(entity_type)
    delta = to_money(amount)
    new_balance = model.credit_balance + delta

    stmt = (
        update(model)
        .where(model.id == entity_id)
        .values(
            credit_balance=new_balance,
            payment_status=_status_expression(model, new_balance, policy),
            last_credit_update=datetime.utcnow(),
        )
        .returning(model.credit_balance, model.payment_status)
        .execution_options(synchronize_session="fetch")
    )
    row = (await db.execute(stmt)).one_or_none()
    if row is None:
        raise ResourceNotFoundError(entity_type.capitalize(), entity_id)

    balance_after = to_money(row.credit_balance)
    txn = CreditTransaction(
        entity_type=entity_type,
        entity_id=entity_id,
        transaction_type=transaction_type,
        amount=delta,
        balance_after=balance_after,
        description=description,
        external_ref=external_ref,
        created_by=created_by,
    )
    db.add(txn)
    await db.flush()

    logger.info(
        "Credit movement %s %s/%s: %+.2f → balance %.2f (%s)",
        transaction_type,
        entity_type,
        entity_id,
        delta,
        balance_after,
        row.payment_status,
    )
    return CreditMovement(
        entity_type=entity_type,
        entity_id=entity_id,
        amount=delta,
        balance_after=balance_after,
        payment_status=row.payment_status,
        transaction=txn,
    )


async def list_transactions(
    db: AsyncSession,
    entity_type: str,
    entity_id: str,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[CreditTransaction], int]:
    base_stmt = select(CreditTransaction).where(
        CreditTransaction.entity_type == entity_type,
        CreditTransaction.entity_id == entity_id,
    )
    total = await db.scalar(select(func.count()).select_from(base_stmt.subquery())) or 0
    result = await db.execute(
        base_stmt.order_by(CreditTransaction.created_at.desc()).limit(limit).offset(offset)
    )
    return list(result.scalars().all()), total
