"""Display ad campaigns — pricing, checkout and payment confirmation."""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from repairhub.config import settings
from repairhub.middleware.exceptions import ResourceNotFoundError, ValidationFailed
from repairhub.models.ad_campaign import DisplayAdCampaign, DisplayAdCampaignCorner
from repairhub.models.centro import Corner
from repairhub.services.payments import CheckoutSession, StripeGateway
from repairhub.utils.money import to_money

logger = logging.getLogger(__name__)


@dataclass
class AdQuote:
    weeks: int
    total_price: Decimal
    platform_revenue: Decimal
    corner_revenue_total: Decimal
    corner_revenue_each: Decimal


def quote_campaign(
    start_date: date,
    end_date: date,
    corner_count: int,
    price_per_corner_per_week=None,
    corner_percentage=None,
) -> AdQuote:
    """Price a campaign; partial weeks are billed as full weeks."""
    if corner_count < 1:
        raise ValidationFailed("Select at least one corner")
    if end_date <= start_date:
        raise ValidationFailed("end_date must be after start_date")

    price = to_money(
        price_per_corner_per_week
        if price_per_corner_per_week is not None
        else settings.ad_price_per_corner_per_week
    )
    percentage = Decimal(str(
        corner_percentage if corner_percentage is not None else settings.ad_corner_revenue_percentage
    ))

    weeks = math.ceil((end_date - start_date).days / 7)
    total = to_money(price * corner_count * weeks)
    corner_total = to_money(total * percentage / 100)
    return AdQuote(
        weeks=weeks,
        total_price=total,
        platform_revenue=total - corner_total,
        corner_revenue_total=corner_total,
        corner_revenue_each=to_money(corner_total / corner_count),
    )


async def create_ad_checkout(
    db: AsyncSession,
    gateway: StripeGateway,
    *,
    advertiser: dict,
    creative: dict,
    start_date: date,
    end_date: date,
    corner_ids: list[str],
    success_url: str,
    cancel_url: str,
) -> dict:
    corner_ids = list(dict.fromkeys(corner_ids))
    quote = quote_campaign(start_date, end_date, len(corner_ids))

    result = await db.execute(select(Corner.id).where(Corner.id.in_(corner_ids)))
    found = {row[0] for row in result.all()}
    missing = [c for c in corner_ids if c not in found]
    if missing:
        raise ResourceNotFoundError("Corner", ", ".join(missing))

    campaign = DisplayAdCampaign(
        **advertiser,
        **creative,
        start_date=start_date,
        end_date=end_date,
        total_price=quote.total_price,
        platform_revenue=quote.platform_revenue,
        corner_revenue_total=quote.corner_revenue_total,
        status="pending_payment",
    )
    db.add(campaign)
    await db.flush()

    for corner_id in corner_ids:
        db.add(DisplayAdCampaignCorner(
            campaign_id=campaign.id,
            corner_id=corner_id,
            corner_revenue=quote.corner_revenue_each,
        ))
    await db.flush()

    session = await gateway.create_checkout_session(
        amount=quote.total_price,
        product_name=f"Advertising campaign: {campaign.ad_title}",
        description=f"{len(corner_ids)} corners x {quote.weeks} weeks",
        success_url=f"{success_url}?campaign_id={campaign.id}&session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{cancel_url}?campaign_id={campaign.id}",
        customer_email=campaign.advertiser_email,
        metadata={"type": "display_ad", "campaign_id": campaign.id},
    )
    campaign.stripe_session_id = session.id
    await db.flush()
    logger.info(
        "Ad campaign %s: %d corners x %d weeks = %.2f",
        campaign.id, len(corner_ids), quote.weeks, quote.total_price,
    )

    return {
        "url": session.url,
        "campaign_id": campaign.id,
        "session_id": session.id,
        "total_price": quote.total_price,
        "weeks": quote.weeks,
    }


async def mark_campaign_paid(db: AsyncSession, session: CheckoutSession) -> dict:
    campaign_id = session.metadata.get("campaign_id")
    if not campaign_id:
        raise ValidationFailed("Missing metadata in session")

    result = await db.execute(
        select(DisplayAdCampaign).where(DisplayAdCampaign.id == campaign_id).with_for_update()
    )
    campaign = result.scalar_one_or_none()
    if campaign is None:
        raise ResourceNotFoundError("Campaign", campaign_id)

    if campaign.status != "pending_payment":
        logger.info("Campaign %s already paid (%s)", campaign.id, campaign.status)
        return {"success": True, "message": "Already processed", "campaign_id": campaign.id}

    campaign.status = "pending_approval"
    campaign.stripe_payment_intent_id = session.payment_intent
    campaign.paid_at = datetime.utcnow()
    await db.flush()
    logger.info("Campaign %s paid, awaiting approval", campaign.id)
    return {"success": True, "campaign_id": campaign.id, "status": campaign.status}


async def confirm_ad_session(
    db: AsyncSession, gateway: StripeGateway, session_id: str
) -> dict:
    session = await gateway.retrieve_session(session_id)
    if not session.is_paid:
        return {"success": False, "message": "Payment not completed"}
    return await mark_campaign_paid(db, session)
