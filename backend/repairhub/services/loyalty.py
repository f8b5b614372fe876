"""Loyalty cards — checkout, activation, benefits and usage.

Pricing (defaults from settings):
    annual price           30.00
    platform commission    5% of the centro's share, rounded to cents
    direct sale            commission 1.50, centro revenue 28.50
    corner-referred sale   corner keeps 10.00; commission 1.00 on the
                           remaining 20.00, centro revenue 19.00

Activation (payment confirmed) does, in one transaction:
    card → active, card_number, activated_at, expires_at (+365 days)
    centro balance  −platform_commission   (COMMISSION policy)
    corner balance  +corner_commission     (corner-referred cards only)
    invitation → paid                      (corner-referred cards only)

An already active card is a no-op, so duplicate webhook deliveries and
client polls after the webhook are harmless.  The welcome email is sent
after commit and its failure never undoes the activation.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from repairhub.config import settings
from repairhub.middleware.exceptions import (
    ConflictError,
    ResourceNotFoundError,
    UpstreamError,
    ValidationFailed,
)
from repairhub.models.centro import Centro, Corner
from repairhub.models.customer import Customer
from repairhub.models.loyalty_card import (
    CornerLoyaltyInvitation,
    LoyaltyCard,
    LoyaltyCardUsage,
)
from repairhub.services.ledger import StatusPolicy, apply_credit_movement
from repairhub.services.notifications import EmailSender, render_loyalty_welcome
from repairhub.services.payments import CheckoutSession, StripeGateway
from repairhub.utils.money import to_money
from repairhub.utils.numbering import generate_card_number

logger = logging.getLogger(__name__)

STANDARD_DIAGNOSTIC_FEE = Decimal("15.00")
LOYALTY_DIAGNOSTIC_FEE = Decimal("10.00")
REPAIR_DISCOUNT_PERCENT = 10

CARD_TYPES = ("loyalty_card", "corner_loyalty_card")


@dataclass
class WelcomeEmail:
    to: str
    subject: str
    html: str
    centro_id: str


def compute_commission_split(price, rate) -> tuple[Decimal, Decimal]:
    """price → (platform_commission, centro_revenue)."""
    price = to_money(price)
    commission = to_money(price * Decimal(str(rate)))
    return commission, price - commission


# ── Lookups ──────────────────────────────────────────────────

async def _find_active_card(
    db: AsyncSession, customer_id: str, centro_id: str, now: datetime | None = None
) -> LoyaltyCard | None:
    """Return the active card for the pair, expiring it first if overdue."""
    result = await db.execute(
        select(LoyaltyCard).where(
            LoyaltyCard.customer_id == customer_id,
            LoyaltyCard.centro_id == centro_id,
            LoyaltyCard.status == "active",
        )
    )
    card = result.scalar_one_or_none()
    if card and card.expires_at and card.expires_at < (now or datetime.utcnow()):
        logger.info("Loyalty card %s expired at %s", card.id, card.expires_at)
        card.status = "expired"
        await db.flush()
        return None
    return card


async def _get_card(db: AsyncSession, card_id: str, *, lock: bool = False) -> LoyaltyCard:
    stmt = select(LoyaltyCard).where(LoyaltyCard.id == card_id)
    if lock:
        stmt = stmt.with_for_update()
    card = (await db.execute(stmt)).scalar_one_or_none()
    if card is None:
        raise ResourceNotFoundError("Loyalty card", card_id)
    return card


async def _clear_pending_cards(db: AsyncSession, customer_id: str, centro_id: str) -> None:
    await db.execute(
        delete(LoyaltyCard).where(
            LoyaltyCard.customer_id == customer_id,
            LoyaltyCard.centro_id == centro_id,
            LoyaltyCard.status == "pending_payment",
        )
    )


# ── Checkout ─────────────────────────────────────────────────

async def create_loyalty_checkout(
    db: AsyncSession,
    gateway: StripeGateway,
    *,
    customer_id: str,
    centro_id: str,
    origin: str,
    customer_email: str | None = None,
) -> dict:
    centro = await db.get(Centro, centro_id)
    if centro is None:
        raise ResourceNotFoundError("Centro", centro_id)
    customer = await db.get(Customer, customer_id)
    if customer is None or customer.centro_id != centro_id:
        raise ResourceNotFoundError("Customer", customer_id)

    if await _find_active_card(db, customer_id, centro_id):
        raise ConflictError(
            "Customer already has an active loyalty card for this centro",
            "ACTIVE_CARD_EXISTS",
        )

    await _clear_pending_cards(db, customer_id, centro_id)

    price = to_money(settings.loyalty_annual_price)
    commission, revenue = compute_commission_split(
        price, settings.loyalty_platform_commission_rate
    )
    card = LoyaltyCard(
        customer_id=customer_id,
        centro_id=centro_id,
        status="pending_payment",
        payment_method="stripe",
        amount_paid=price,
        platform_commission=commission,
        centro_revenue=revenue,
        max_devices=settings.loyalty_max_devices,
        devices_used=0,
    )
    db.add(card)
    await db.flush()
    logger.info("Created pending loyalty card %s", card.id)

    session = await gateway.create_checkout_session(
        amount=price,
        product_name=f"Loyalty card - {centro.business_name}",
        description=f"Valid 12 months - up to {card.max_devices} devices",
        success_url=f"{origin}/loyalty-success?card_id={card.id}",
        cancel_url=f"{origin}/loyalty-cancelled",
        customer_email=customer_email or customer.email,
        metadata={
            "type": "loyalty_card",
            "loyalty_card_id": card.id,
            "customer_id": customer_id,
            "centro_id": centro_id,
            "centro_name": centro.business_name,
        },
    )
    card.stripe_session_id = session.id
    await db.flush()

    return {"url": session.url, "loyalty_card_id": card.id, "session_id": session.id}


async def create_corner_loyalty_checkout(
    db: AsyncSession,
    gateway: StripeGateway,
    *,
    invitation_token: str,
    centro_id: str,
    origin: str,
    now: datetime | None = None,
) -> dict:
    now = now or datetime.utcnow()
    result = await db.execute(
        select(CornerLoyaltyInvitation).where(
            CornerLoyaltyInvitation.invitation_token == invitation_token
        )
    )
    invitation = result.scalar_one_or_none()
    if invitation is None:
        raise ResourceNotFoundError("Invitation", invitation_token)
    if invitation.status == "paid":
        raise ConflictError("This loyalty card has already been activated", "INVITATION_USED")
    if invitation.expires_at < now:
        raise ValidationFailed("This invitation has expired", "INVITATION_EXPIRED")

    centro = await db.get(Centro, centro_id)
    if centro is None:
        raise ResourceNotFoundError("Centro", centro_id)

    result = await db.execute(
        select(Customer).where(
            Customer.email == invitation.customer_email,
            Customer.centro_id == centro_id,
        )
    )
    customer = result.scalars().first()
    if customer is None:
        customer = Customer(
            centro_id=centro_id,
            name=invitation.customer_name,
            email=invitation.customer_email,
            phone=invitation.customer_phone or "",
        )
        db.add(customer)
        await db.flush()
        logger.info("Created customer %s from corner invitation %s", customer.id, invitation.id)
    elif await _find_active_card(db, customer.id, centro_id, now):
        raise ConflictError(
            "Customer already has an active loyalty card for this centro",
            "ACTIVE_CARD_EXISTS",
        )

    await _clear_pending_cards(db, customer.id, centro_id)

    price = to_money(settings.loyalty_annual_price)
    corner_commission = to_money(settings.corner_loyalty_commission)
    commission, revenue = compute_commission_split(
        price - corner_commission, settings.loyalty_platform_commission_rate
    )
    card = LoyaltyCard(
        customer_id=customer.id,
        centro_id=centro_id,
        status="pending_payment",
        payment_method="stripe",
        amount_paid=price,
        platform_commission=commission,
        centro_revenue=revenue,
        corner_commission=corner_commission,
        referred_by_corner_id=invitation.corner_id,
        invitation_id=invitation.id,
        max_devices=settings.loyalty_max_devices,
        devices_used=0,
    )
    db.add(card)
    await db.flush()

    corner = await db.get(Corner, invitation.corner_id)
    corner_name = corner.business_name if corner else "Corner"
    session = await gateway.create_checkout_session(
        amount=price,
        product_name=f"Loyalty card - {centro.business_name}",
        description=(
            f"Valid 12 months - up to {card.max_devices} devices - offered by {corner_name}"
        ),
        success_url=f"{origin}/corner-loyalty-success?card_id={card.id}",
        cancel_url=f"{origin}/corner-loyalty-checkout?token={invitation_token}&cancelled=true",
        customer_email=invitation.customer_email,
        metadata={
            "type": "corner_loyalty_card",
            "loyalty_card_id": card.id,
            "customer_id": customer.id,
            "centro_id": centro_id,
            "corner_id": invitation.corner_id,
            "invitation_id": invitation.id,
        },
    )

    invitation.status = "clicked"
    invitation.clicked_at = now
    card.stripe_session_id = session.id
    await db.flush()

    return {"url": session.url, "loyalty_card_id": card.id, "session_id": session.id}


# ── Activation ───────────────────────────────────────────────

async def activate_paid_card(
    db: AsyncSession, session: CheckoutSession, now: datetime | None = None
) -> tuple[dict, WelcomeEmail | None]:
    """Activate the card a paid session belongs to and book the commissions.

    Returns the API result and, when the card was activated by this call,
    the welcome email to send after commit.
    """
    card_id = session.metadata.get("loyalty_card_id")
    if not card_id:
        raise ValidationFailed("Missing metadata in session")

    card = await _get_card(db, card_id, lock=True)
    if card.status == "active":
        logger.info("Loyalty card %s already active", card.id)
        return {"success": True, "message": "Already active", "loyalty_card_id": card.id}, None
    if card.status != "pending_payment":
        raise ConflictError(f"Loyalty card {card.id} is {card.status}")
    if await _find_active_card(db, card.customer_id, card.centro_id, now):
        raise ConflictError(
            "Customer already has an active loyalty card for this centro",
            "ACTIVE_CARD_EXISTS",
        )

    now = now or datetime.utcnow()
    card.status = "active"
    card.activated_at = now
    card.expires_at = now + timedelta(days=settings.loyalty_validity_days)
    card.card_number = await generate_card_number(db, now.date())
    card.stripe_payment_intent_id = session.payment_intent
    await db.flush()

    movement = await apply_credit_movement(
        db,
        entity_type="centro",
        entity_id=card.centro_id,
        amount=-card.platform_commission,
        policy=StatusPolicy.COMMISSION,
        transaction_type="loyalty_commission",
        description=f"Platform commission on loyalty card #{card.id[:8]}",
        external_ref=session.id,
    )

    if card.referred_by_corner_id and card.corner_commission:
        await apply_credit_movement(
            db,
            entity_type="corner",
            entity_id=card.referred_by_corner_id,
            amount=card.corner_commission,
            policy=StatusPolicy.COMMISSION,
            transaction_type="corner_loyalty_commission",
            description=f"Referral commission on loyalty card #{card.id[:8]}",
            external_ref=f"{session.id}:corner",
        )
        if card.invitation_id:
            invitation = await db.get(CornerLoyaltyInvitation, card.invitation_id)
            if invitation:
                invitation.status = "paid"
                invitation.paid_at = now
                await db.flush()

    logger.info("Loyalty card %s activated (%s)", card.id, card.card_number)

    welcome = None
    customer = await db.get(Customer, card.customer_id)
    if customer is not None and customer.email:
        centro = await db.get(Centro, card.centro_id)
        subject, html = render_loyalty_welcome(
            customer_name=customer.name,
            centro_name=centro.business_name if centro else "RepairHub",
            card_number=card.card_number,
            expires_at=card.expires_at,
            max_devices=card.max_devices,
            centro_phone=centro.phone if centro else None,
            centro_email=centro.email if centro else None,
        )
        welcome = WelcomeEmail(to=customer.email, subject=subject, html=html, centro_id=card.centro_id)

    result = {
        "success": True,
        "loyalty_card_id": card.id,
        "card_number": card.card_number,
        "centro_balance": movement.balance_after,
    }
    return result, welcome


async def confirm_loyalty_session(
    db: AsyncSession, gateway: StripeGateway, session_id: str
) -> tuple[dict, WelcomeEmail | None]:
    session = await gateway.retrieve_session(session_id)
    if not session.is_paid:
        return {"success": False, "message": "Payment not completed"}, None
    if session.metadata.get("type") not in CARD_TYPES:
        raise ValidationFailed("Session is not a loyalty card payment")
    return await activate_paid_card(db, session)


async def send_welcome_email(sender: EmailSender, email: WelcomeEmail) -> None:
    """Best effort: activation is already committed when this runs."""
    try:
        await sender.send_email(
            to=email.to, subject=email.subject, html=email.html, centro_id=email.centro_id
        )
    except UpstreamError:
        logger.exception("Welcome email to %s failed", email.to)


# ── Benefits & usage ─────────────────────────────────────────

async def get_benefits(
    db: AsyncSession, customer_id: str, centro_id: str, now: datetime | None = None
) -> dict:
    card = await _find_active_card(db, customer_id, centro_id, now)
    if card is None:
        return {
            "has_active_card": False,
            "diagnostic_fee": STANDARD_DIAGNOSTIC_FEE,
            "repair_discount_percent": 0,
            "can_use_repair_discount": False,
            "devices_used": 0,
            "max_devices": settings.loyalty_max_devices,
            "card": None,
        }
    return {
        "has_active_card": True,
        "diagnostic_fee": LOYALTY_DIAGNOSTIC_FEE,
        "repair_discount_percent": REPAIR_DISCOUNT_PERCENT,
        "can_use_repair_discount": card.devices_used < card.max_devices,
        "devices_used": card.devices_used,
        "max_devices": card.max_devices,
        "card": card,
    }


async def record_usage(
    db: AsyncSession,
    card_id: str,
    *,
    discount_type: str,
    original_amount,
    discounted_amount,
    repair_id: str | None = None,
    device_id: str | None = None,
) -> LoyaltyCardUsage:
    card = await _get_card(db, card_id, lock=True)
    if card.status != "active":
        raise ConflictError(f"Loyalty card {card.id} is {card.status}")
    if card.expires_at and card.expires_at < datetime.utcnow():
        raise ConflictError(f"Loyalty card {card.id} has expired")

    original = to_money(original_amount)
    discounted = to_money(discounted_amount)
    if discounted > original:
        raise ValidationFailed("Discounted amount cannot exceed the original amount")

    if discount_type == "repair_discount":
        if card.devices_used >= card.max_devices:
            raise ConflictError(
                f"Repair discount already used on {card.max_devices} devices",
                "DEVICE_LIMIT_REACHED",
            )
        card.devices_used += 1

    usage = LoyaltyCardUsage(
        loyalty_card_id=card.id,
        repair_id=repair_id,
        device_id=device_id,
        discount_type=discount_type,
        original_amount=original,
        discounted_amount=discounted,
        savings=original - discounted,
    )
    db.add(usage)
    await db.flush()
    return usage


async def cancel_card(db: AsyncSession, card_id: str) -> LoyaltyCard:
    card = await _get_card(db, card_id, lock=True)
    if card.status not in ("active", "pending_payment"):
        raise ConflictError(f"Loyalty card {card.id} is {card.status}")
    card.status = "cancelled"
    await db.flush()
    return card
