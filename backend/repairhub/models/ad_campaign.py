"""DisplayAdCampaign — paid advertising shown on corner displays.

Lifecycle:  pending_payment → pending_approval → active → ended
                                               ↘ rejected

Pricing (snapshotted at checkout):
    total_price          = price_per_corner_per_week × corners × weeks
    corner_revenue_total = total_price × corner_percentage / 100
    platform_revenue     = total_price − corner_revenue_total
Each DisplayAdCampaignCorner row holds an equal share of the corner total.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from repairhub.database import Base


class DisplayAdCampaign(Base):
    __tablename__ = "display_ad_campaigns"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # ── Advertiser ───────────────────────────────────────────
    advertiser_name: Mapped[str] = mapped_column(String(255), nullable=False)
    advertiser_email: Mapped[str] = mapped_column(String(255), nullable=False)
    advertiser_phone: Mapped[str | None] = mapped_column(String(50))
    advertiser_company: Mapped[str | None] = mapped_column(String(255))

    # ── Creative ─────────────────────────────────────────────
    ad_title: Mapped[str] = mapped_column(String(255), nullable=False)
    ad_description: Mapped[str | None] = mapped_column(Text)
    ad_image_url: Mapped[str | None] = mapped_column(String(500))
    ad_type: Mapped[str] = mapped_column(String(30), default="gradient")

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    # ── Amounts ──────────────────────────────────────────────
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    platform_revenue: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    corner_revenue_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # ── Payment ──────────────────────────────────────────────
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default="pending_payment", index=True
    )
    stripe_session_id: Mapped[str | None] = mapped_column(String(255), index=True)
    stripe_payment_intent_id: Mapped[str | None] = mapped_column(String(255))
    paid_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    corners = relationship(
        "DisplayAdCampaignCorner", back_populates="campaign", lazy="selectin"
    )


class DisplayAdCampaignCorner(Base):
    __tablename__ = "display_ad_campaign_corners"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    campaign_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("display_ad_campaigns.id"), nullable=False, index=True
    )
    corner_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("corners.id"), nullable=False, index=True
    )
    corner_revenue: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    campaign = relationship("DisplayAdCampaign", back_populates="corners")
