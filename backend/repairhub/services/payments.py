"""Stripe Checkout gateway.

A thin wrapper so the rest of the code never imports `stripe` directly:

    gateway.create_checkout_session(...)   → CheckoutSession
    gateway.retrieve_session(session_id)   → CheckoutSession
    gateway.construct_event(payload, sig)  → dict

SDK calls are blocking, so they run in Starlette's threadpool.  Any
StripeError is re-raised as UpstreamError (502) with the provider's
message.  Routers obtain the gateway through `get_payment_gateway`, which
tests override with a fake.
"""

import json
import logging
from dataclasses import dataclass, field

import stripe
from starlette.concurrency import run_in_threadpool

from repairhub.config import settings
from repairhub.middleware.exceptions import UpstreamError, ValidationFailed
from repairhub.utils.money import to_minor_units

logger = logging.getLogger(__name__)


@dataclass
class CheckoutSession:
    id: str
    url: str | None
    payment_status: str
    payment_intent: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"

    @classmethod
    def from_stripe(cls, obj) -> "CheckoutSession":
        metadata = obj.get("metadata") or {}
        return cls(
            id=obj["id"],
            url=obj.get("url"),
            payment_status=obj.get("payment_status") or "unpaid",
            payment_intent=obj.get("payment_intent"),
            metadata={k: str(v) for k, v in dict(metadata).items()},
        )


class StripeGateway:
    def __init__(self, api_key: str, webhook_secret: str = "", currency: str = "eur"):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.currency = currency

    async def create_checkout_session(
        self,
        *,
        amount,
        product_name: str,
        description: str | None,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str],
        customer_email: str | None = None,
    ) -> CheckoutSession:
        product_data = {"name": product_name}
        if description:
            product_data["description"] = description

        params = {
            "mode": "payment",
            "line_items": [
                {
                    "price_data": {
                        "currency": self.currency,
                        "product_data": product_data,
                        "unit_amount": to_minor_units(amount),
                    },
                    "quantity": 1,
                }
            ],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
        }
        if customer_email:
            params["customer_email"] = customer_email

        try:
            session = await run_in_threadpool(
                stripe.checkout.Session.create, api_key=self.api_key, **params
            )
        except stripe.StripeError as e:
            logger.error("Stripe checkout creation failed: %s", e.user_message or e)
            raise UpstreamError("stripe", str(e.user_message or e)) from e

        logger.info("Created checkout session %s", session["id"])
        return CheckoutSession.from_stripe(session)

    async def retrieve_session(self, session_id: str) -> CheckoutSession:
        try:
            session = await run_in_threadpool(
                stripe.checkout.Session.retrieve, session_id, api_key=self.api_key
            )
        except stripe.StripeError as e:
            logger.error("Stripe session lookup failed for %s: %s", session_id, e)
            raise UpstreamError("stripe", str(e.user_message or e)) from e
        return CheckoutSession.from_stripe(session)

    def construct_event(self, payload: bytes, signature: str | None) -> dict:
        """Verify (when a secret is configured) and parse a webhook payload."""
        if self.webhook_secret:
            if not signature:
                raise ValidationFailed("Missing Stripe-Signature header", "INVALID_SIGNATURE")
            try:
                stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
            except (stripe.SignatureVerificationError, ValueError) as e:
                logger.warning("Webhook signature verification failed: %s", e)
                raise ValidationFailed("Invalid signature", "INVALID_SIGNATURE") from e

        try:
            return json.loads(payload)
        except ValueError as e:
            raise ValidationFailed("Webhook body is not valid JSON") from e


def get_payment_gateway() -> StripeGateway:
    return StripeGateway(
        api_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        currency=settings.currency,
    )
