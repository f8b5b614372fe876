"""Display ad campaigns sold on corner screens.

Endpoints:
    POST /api/ads/checkout    Price a campaign and open a checkout session
    POST /api/ads/confirm     Confirm a paid checkout session
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from repairhub.database import get_db
from repairhub.schemas.ads import AdCheckoutCreate, AdCheckoutOut
from repairhub.schemas.common import SessionConfirm
from repairhub.services import ads
from repairhub.services.payments import StripeGateway, get_payment_gateway
from repairhub.utils.http import request_origin

router = APIRouter()

ADVERTISER_FIELDS = ("advertiser_name", "advertiser_email", "advertiser_phone", "advertiser_company")
CREATIVE_FIELDS = ("ad_title", "ad_description", "ad_image_url", "ad_type")


@router.post("/checkout", response_model=AdCheckoutOut)
async def create_ad_checkout(
    body: AdCheckoutCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
):
    """Public: advertisers are not platform users."""
    origin = request_origin(request)
    return await ads.create_ad_checkout(
        db,
        gateway,
        advertiser=body.model_dump(include=set(ADVERTISER_FIELDS)),
        creative=body.model_dump(include=set(CREATIVE_FIELDS)),
        start_date=body.start_date,
        end_date=body.end_date,
        corner_ids=body.corner_ids,
        success_url=f"{origin}/advertise/success",
        cancel_url=f"{origin}/advertise",
    )


@router.post("/confirm")
async def confirm_ad_payment(
    body: SessionConfirm,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
):
    return await ads.confirm_ad_session(db, gateway, body.session_id)
