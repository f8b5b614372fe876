"""Payment provider webhooks.

Endpoints:
    POST /api/webhooks/stripe    checkout.session.completed → dispatch on metadata.type

Dispatch targets:
    topup                 credit the centro/corner balance
    loyalty_card          activate the card, deduct the platform commission
    corner_loyalty_card   same, plus the corner's referral commission
    display_ad            mark the campaign paid, pending approval

Every handler is idempotent, so provider retries and the client-side
confirm endpoints can race without double-applying anything.
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from repairhub.database import get_db
from repairhub.services import ads, loyalty, topups
from repairhub.services.notifications import EmailSender, get_email_sender
from repairhub.services.payments import CheckoutSession, StripeGateway, get_payment_gateway

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    stripe_signature: str | None = Header(None),
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
    sender: EmailSender = Depends(get_email_sender),
):
    payload = await request.body()
    event = gateway.construct_event(payload, stripe_signature)
    event_type = event.get("type")
    logger.info("Webhook event %s (%s)", event.get("id"), event_type)

    if event_type != "checkout.session.completed":
        return {"received": True}

    session = CheckoutSession.from_stripe(event["data"]["object"])
    if not session.is_paid:
        logger.info("Session %s completed but not paid (%s)", session.id, session.payment_status)
        return {"received": True}

    kind = session.metadata.get("type")
    if kind == "topup":
        result = await topups.apply_paid_topup_session(db, session)
    elif kind in loyalty.CARD_TYPES:
        result, welcome = await loyalty.activate_paid_card(db, session)
        if welcome is not None:
            await db.commit()
            background_tasks.add_task(loyalty.send_welcome_email, sender, welcome)
    elif kind == "display_ad":
        result = await ads.mark_campaign_paid(db, session)
    else:
        logger.warning("Session %s has unknown metadata type %r", session.id, kind)
        return {"received": True}

    return {"received": True, "type": kind, "result": result}
