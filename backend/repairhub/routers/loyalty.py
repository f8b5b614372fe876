"""Loyalty cards.

Endpoints:
    POST /api/loyalty/checkout               Centro/customer buys a card
    POST /api/loyalty/corner-checkout        Customer pays through a corner invitation
    POST /api/loyalty/confirm                Confirm a paid checkout session
    GET  /api/loyalty/benefits               Active card benefits for a customer
    POST /api/loyalty/cards/{id}/usages      Record a discount usage
    POST /api/loyalty/cards/{id}/cancel      Cancel a card
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from repairhub.auth.deps import Principal, Role, ensure_entity_access, require_role
from repairhub.database import get_db
from repairhub.middleware.exceptions import PermissionDeniedError, ResourceNotFoundError
from repairhub.models.loyalty_card import LoyaltyCard
from repairhub.schemas.common import SessionConfirm
from repairhub.schemas.loyalty import (
    BenefitsOut,
    CornerLoyaltyCheckoutCreate,
    LoyaltyCardOut,
    LoyaltyCheckoutCreate,
    LoyaltyCheckoutOut,
    UsageCreate,
    UsageOut,
)
from repairhub.services import loyalty
from repairhub.services.notifications import EmailSender, get_email_sender
from repairhub.services.payments import StripeGateway, get_payment_gateway
from repairhub.utils.http import request_origin

router = APIRouter()


async def _card_for_centro(db: AsyncSession, card_id: str, principal: Principal) -> LoyaltyCard:
    card = await db.get(LoyaltyCard, card_id)
    if card is None:
        raise ResourceNotFoundError("Loyalty card", card_id)
    ensure_entity_access(principal, "centro", card.centro_id)
    return card


@router.post("/checkout", response_model=LoyaltyCheckoutOut)
async def create_loyalty_checkout(
    body: LoyaltyCheckoutCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
    principal: Principal = Depends(require_role(Role.CENTRO, Role.CUSTOMER)),
):
    if principal.role == Role.CENTRO:
        ensure_entity_access(principal, "centro", body.centro_id)
    elif principal.role == Role.CUSTOMER and principal.user_id != body.customer_id:
        raise PermissionDeniedError("Customers can only buy a card for themselves")
    return await loyalty.create_loyalty_checkout(
        db,
        gateway,
        customer_id=body.customer_id,
        centro_id=body.centro_id,
        origin=request_origin(request),
        customer_email=body.customer_email,
    )


@router.post("/corner-checkout", response_model=LoyaltyCheckoutOut)
async def create_corner_loyalty_checkout(
    body: CornerLoyaltyCheckoutCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
):
    """Public: the invitation token is the credential."""
    return await loyalty.create_corner_loyalty_checkout(
        db,
        gateway,
        invitation_token=body.invitation_token,
        centro_id=body.centro_id,
        origin=request_origin(request),
    )


@router.post("/confirm")
async def confirm_loyalty_payment(
    body: SessionConfirm,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
    sender: EmailSender = Depends(get_email_sender),
):
    result, welcome = await loyalty.confirm_loyalty_session(db, gateway, body.session_id)
    if welcome is not None:
        await db.commit()
        background_tasks.add_task(loyalty.send_welcome_email, sender, welcome)
    return result


@router.get("/benefits", response_model=BenefitsOut)
async def get_loyalty_benefits(
    customer_id: str = Query(...),
    centro_id: str = Query(...),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_role(Role.CENTRO)),
):
    ensure_entity_access(principal, "centro", centro_id)
    return await loyalty.get_benefits(db, customer_id, centro_id)


@router.post(
    "/cards/{card_id}/usages",
    response_model=UsageOut,
    status_code=status.HTTP_201_CREATED,
)
async def record_card_usage(
    card_id: str,
    body: UsageCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_role(Role.CENTRO)),
):
    await _card_for_centro(db, card_id, principal)
    return await loyalty.record_usage(
        db,
        card_id,
        discount_type=body.discount_type,
        original_amount=body.original_amount,
        discounted_amount=body.discounted_amount,
        repair_id=body.repair_id,
        device_id=body.device_id,
    )


@router.post("/cards/{card_id}/cancel", response_model=LoyaltyCardOut)
async def cancel_loyalty_card(
    card_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_role(Role.CENTRO)),
):
    await _card_for_centro(db, card_id, principal)
    return await loyalty.cancel_card(db, card_id)
