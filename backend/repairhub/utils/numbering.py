"""Loyalty card number generation.

Format:  LC-{yyyymmdd}-{seq:4}   e.g. LC-20261018-0007

The sequence resets daily and is derived from the count of card numbers
already issued with today's prefix.
"""

from datetime import date

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from repairhub.models.loyalty_card import LoyaltyCard

CARD_PREFIX = "LC"
SEQ_WIDTH = 4


def _build_prefix(today: date) -> str:
    return f"{CARD_PREFIX}-{today.strftime('%Y%m%d')}-"


async def generate_card_number(db: AsyncSession, today: date | None = None) -> str:
    prefix = _build_prefix(today or date.today())
    result = await db.execute(
        select(func.count(LoyaltyCard.id)).where(
            LoyaltyCard.card_number.like(f"{prefix}%")
        )
    )
    count = result.scalar() or 0
    return f"{prefix}{count + 1:0{SEQ_WIDTH}d}"
