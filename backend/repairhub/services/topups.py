"""Credit topups — checkout, confirmation and admin approval.

Flow (card payment):
    create_topup_checkout   pending TopupRequest + hosted checkout session
    confirm_topup_session   provider says "paid" → credit the balance once

Flow (bank transfer / manual):
    create_bank_transfer_request → pending, approved later by an admin
    create_manual_topup          → created and approved in one step

Idempotency:  a request already `approved` is never re-applied.  The
TopupRequest row is locked FOR UPDATE while it is checked, and the ledger
row carries the session id as a unique external_ref, so a duplicate that
slips past the status check fails on insert and is reported as already
processed.
"""

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from repairhub.config import settings
from repairhub.middleware.exceptions import (
    ConflictError,
    ResourceNotFoundError,
    ValidationFailed,
)
from repairhub.models.credit import TopupRequest
from repairhub.services.ledger import StatusPolicy, apply_credit_movement, get_account
from repairhub.services.payments import CheckoutSession, StripeGateway
from repairhub.utils.money import format_eur, to_money

logger = logging.getLogger(__name__)


def _validate_amount(amount) -> Decimal:
    amount = to_money(amount)
    minimum = to_money(settings.min_topup_amount)
    if amount < minimum:
        raise ValidationFailed(f"Minimum topup amount is {format_eur(minimum)}", "AMOUNT_TOO_LOW")
    return amount


def _portal_path(entity_type: str) -> str:
    return "centro" if entity_type == "centro" else "corner"


async def _lock_request(db: AsyncSession, topup_id: str) -> TopupRequest:
    result = await db.execute(
        select(TopupRequest).where(TopupRequest.id == topup_id).with_for_update()
    )
    request = result.scalar_one_or_none()
    if request is None:
        raise ResourceNotFoundError("Topup request", topup_id)
    return request


# ── Checkout ─────────────────────────────────────────────────

async def create_topup_checkout(
    db: AsyncSession,
    gateway: StripeGateway,
    *,
    entity_type: str,
    entity_id: str,
    amount,
    origin: str,
    user_email: str | None = None,
) -> dict:
    amount = _validate_amount(amount)
    entity = await get_account(db, entity_type, entity_id)

    request = TopupRequest(
        entity_type=entity_type,
        entity_id=entity_id,
        amount=amount,
        payment_method="stripe",
        status="pending",
        notes="Card payment via Stripe",
    )
    db.add(request)
    await db.flush()
    logger.info("Created pending topup request %s for %s %s", request.id, entity_type, entity_id)

    portal = _portal_path(entity_type)
    session = await gateway.create_checkout_session(
        amount=amount,
        product_name=f"Credit topup - {entity.business_name}",
        description=f"Platform credit topup for {entity_type} {entity.business_name}",
        success_url=f"{origin}/{portal}?topup=success",
        cancel_url=f"{origin}/{portal}?topup=cancelled",
        customer_email=user_email,
        metadata={
            "type": "topup",
            "topup_request_id": request.id,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "amount": str(amount),
        },
    )

    request.payment_reference = session.id
    request.notes = f"Stripe session: {session.id}"
    await db.flush()

    return {
        "url": session.url,
        "session_id": session.id,
        "topup_request_id": request.id,
    }


async def create_bank_transfer_request(
    db: AsyncSession,
    *,
    entity_type: str,
    entity_id: str,
    amount,
    notes: str | None = None,
) -> TopupRequest:
    amount = _validate_amount(amount)
    await get_account(db, entity_type, entity_id)
    request = TopupRequest(
        entity_type=entity_type,
        entity_id=entity_id,
        amount=amount,
        payment_method="bank_transfer",
        status="pending",
        notes=notes,
    )
    db.add(request)
    await db.flush()
    return request


# ── Confirmation ─────────────────────────────────────────────

async def _approve(
    db: AsyncSession,
    request: TopupRequest,
    *,
    transaction_type: str,
    description: str,
    external_ref: str | None,
    processed_by: str | None = None,
) -> dict:
    if request.status == "approved":
        logger.info("Topup request %s already processed", request.id)
        return {"success": True, "message": "Already processed"}
    if request.status != "pending":
        raise ConflictError(f"Topup request {request.id} is {request.status}")

    try:
        async with db.begin_nested():
            movement = await apply_credit_movement(
                db,
                entity_type=request.entity_type,
                entity_id=request.entity_id,
                amount=request.amount,
                policy=StatusPolicy.TOPUP,
                transaction_type=transaction_type,
                description=description,
                external_ref=external_ref,
                created_by=processed_by,
            )
    except IntegrityError:
        logger.warning("Duplicate ledger entry for %s; treating as processed", external_ref)
        return {"success": True, "message": "Already processed"}

    request.status = "approved"
    request.processed_at = datetime.utcnow()
    request.processed_by = processed_by
    await db.flush()

    logger.info(
        "Credited %s to %s %s (request %s)",
        format_eur(request.amount),
        request.entity_type,
        request.entity_id,
        request.id,
    )
    return {
        "success": True,
        "new_balance": movement.balance_after,
        "payment_status": movement.payment_status,
    }


async def apply_paid_topup_session(db: AsyncSession, session: CheckoutSession) -> dict:
    """Credit the balance for a session the provider reports as paid."""
    topup_id = session.metadata.get("topup_request_id")
    entity_type = session.metadata.get("entity_type")
    entity_id = session.metadata.get("entity_id")
    if not topup_id or not entity_type or not entity_id:
        raise ValidationFailed("Missing metadata in session")

    request = await _lock_request(db, topup_id)
    if request.entity_type != entity_type or request.entity_id != entity_id:
        raise ValidationFailed("Session metadata does not match the topup request")

    return await _approve(
        db,
        request,
        transaction_type="topup",
        description=f"Stripe topup - {format_eur(request.amount)}",
        external_ref=session.id,
    )


async def confirm_topup_session(
    db: AsyncSession, gateway: StripeGateway, session_id: str
) -> dict:
    session = await gateway.retrieve_session(session_id)
    logger.info("Session %s payment_status=%s", session_id, session.payment_status)
    if not session.is_paid:
        return {"success": False, "message": "Payment not completed"}
    return await apply_paid_topup_session(db, session)


# ── Admin actions ────────────────────────────────────────────

async def approve_topup_request(
    db: AsyncSession, topup_id: str, approved_by: str
) -> dict:
    request = await _lock_request(db, topup_id)
    return await _approve(
        db,
        request,
        transaction_type="topup",
        description=f"{request.payment_method.replace('_', ' ').capitalize()} topup - {format_eur(request.amount)}",
        external_ref=request.payment_reference or f"topup:{request.id}",
        processed_by=approved_by,
    )


async def reject_topup_request(
    db: AsyncSession, topup_id: str, rejected_by: str
) -> TopupRequest:
    request = await _lock_request(db, topup_id)
    if request.status != "pending":
        raise ConflictError(f"Topup request {request.id} is {request.status}")
    request.status = "rejected"
    request.processed_at = datetime.utcnow()
    request.processed_by = rejected_by
    await db.flush()
    return request


async def create_manual_topup(
    db: AsyncSession,
    *,
    entity_type: str,
    entity_id: str,
    amount,
    created_by: str,
) -> dict:
    """Admin credit: create a manual request and approve it immediately."""
    amount = to_money(amount)
    if amount <= 0:
        raise ValidationFailed("Amount must be positive")
    await get_account(db, entity_type, entity_id)

    request = TopupRequest(
        entity_type=entity_type,
        entity_id=entity_id,
        amount=amount,
        payment_method="manual",
        status="pending",
        notes="Manual topup by platform admin",
    )
    db.add(request)
    await db.flush()
    result = await _approve(
        db,
        request,
        transaction_type="manual_topup",
        description=f"Manual topup - {format_eur(amount)}",
        external_ref=f"topup:{request.id}",
        processed_by=created_by,
    )
    result["topup_request_id"] = request.id
    return result
