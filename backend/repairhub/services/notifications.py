"""Outbound email through the external mail collaborator.

The mail service takes `{centro_id, to, subject, html}` as JSON and sends
it from the centro's configured SMTP identity.  When `email_service_url`
is empty (local development) messages are only logged.
"""

import logging
from datetime import datetime

import httpx

from repairhub.config import settings
from repairhub.middleware.exceptions import UpstreamError

logger = logging.getLogger(__name__)


class EmailSender:
    def __init__(self, base_url: str, token: str = "", timeout: float = 10.0):
        self.base_url = base_url
        self.token = token
        self.timeout = timeout

    async def send_email(
        self,
        *,
        to: str,
        subject: str,
        html: str,
        centro_id: str | None = None,
    ) -> dict:
        if not self.base_url:
            logger.info("Email delivery disabled; would send %r to %s", subject, to)
            return {"skipped": True}

        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                resp = await client.post(
                    self.base_url,
                    headers=headers,
                    json={"centro_id": centro_id, "to": to, "subject": subject, "html": html},
                )
            except httpx.HTTPError as e:
                raise UpstreamError("email", str(e)) from e

        if resp.status_code >= 400:
            raise UpstreamError("email", f"HTTP {resp.status_code}: {resp.text[:200]}")
        logger.info("Email %r sent to %s", subject, to)
        return resp.json() if resp.content else {}


def get_email_sender() -> EmailSender:
    return EmailSender(settings.email_service_url, settings.email_service_token)


def render_loyalty_welcome(
    *,
    customer_name: str,
    centro_name: str,
    card_number: str | None,
    expires_at: datetime | None,
    max_devices: int,
    centro_phone: str | None = None,
    centro_email: str | None = None,
) -> tuple[str, str]:
    """Return (subject, html) for the card activation email."""
    expiry = expires_at.strftime("%d/%m/%Y") if expires_at else "N/A"
    subject = f"Welcome to the {centro_name} loyalty club!"
    html = (
        "<!DOCTYPE html><html><body style=\"font-family: Arial, sans-serif;\">"
        f"<h1>Welcome to the loyalty club!</h1>"
        f"<p>Dear <strong>{customer_name}</strong>,</p>"
        f"<p>Your loyalty card at <strong>{centro_name}</strong> is now active.</p>"
        "<ul>"
        "<li>Diagnosis for €10 instead of €15</li>"
        "<li>10% off every repair</li>"
        f"<li>Up to {max_devices} devices covered for one year</li>"
        "</ul>"
        f"<p><strong>Card number:</strong> {card_number or 'N/A'}<br>"
        f"<strong>Valid until:</strong> {expiry}</p>"
        f"<p>{centro_phone or ''} {centro_email or ''}</p>"
        "</body></html>"
    )
    return subject, html
