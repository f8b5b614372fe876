"""LoyaltyCard — a paid annual subscription of one customer at one centro.

Lifecycle:  pending_payment → active → expired | cancelled
            pending_payment → cancelled

A card is created pending when checkout opens and becomes active when
the payment provider confirms the session.  At most one active card may
exist per (customer_id, centro_id); the partial unique index below
enforces it at the store level.

Money split (direct sale, price 30, rate 5%):
    amount_paid          30.00
    platform_commission   1.50   (deducted from the centro's credit balance)
    centro_revenue       28.50

Corner-referred cards also carry corner_commission, credited to the
referring corner's balance on activation.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from repairhub.database import Base


class LoyaltyCard(Base):
    __tablename__ = "loyalty_cards"
    __table_args__ = (
        Index(
            "uq_loyalty_cards_active_customer_centro",
            "customer_id",
            "centro_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    customer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("customers.id"), nullable=False, index=True
    )
    centro_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("centri_assistenza.id"), nullable=False, index=True
    )
    card_number: Mapped[str | None] = mapped_column(String(30), unique=True)

    # pending_payment | active | expired | cancelled
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default="pending_payment", index=True
    )

    # ── Payment ──────────────────────────────────────────────
    payment_method: Mapped[str] = mapped_column(String(20), default="stripe")
    stripe_session_id: Mapped[str | None] = mapped_column(String(255), index=True)
    stripe_payment_intent_id: Mapped[str | None] = mapped_column(String(255))
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    platform_commission: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    centro_revenue: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # ── Corner referral ──────────────────────────────────────
    corner_commission: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    referred_by_corner_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("corners.id")
    )
    invitation_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("corner_loyalty_invitations.id")
    )

    # ── Benefits ─────────────────────────────────────────────
    max_devices: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    devices_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    activated_at: Mapped[datetime | None] = mapped_column(DateTime)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    customer = relationship("Customer", lazy="selectin")
    centro = relationship("Centro", lazy="selectin")
    usages = relationship("LoyaltyCardUsage", back_populates="card")


class LoyaltyCardUsage(Base):
    __tablename__ = "loyalty_card_usages"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    loyalty_card_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("loyalty_cards.id"), nullable=False, index=True
    )
    repair_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("repairs.id"))
    device_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("devices.id"))
    # diagnostic_fee | repair_discount
    discount_type: Mapped[str] = mapped_column(String(30), nullable=False)
    original_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discounted_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    savings: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    card = relationship("LoyaltyCard", back_populates="usages")


class CornerLoyaltyInvitation(Base):
    """A corner's invitation for a walk-in customer to buy a centro's card.

    Lifecycle:  sent → clicked → paid   (expired by date, not by status)
    """
    __tablename__ = "corner_loyalty_invitations"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    corner_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("corners.id"), nullable=False, index=True
    )
    centro_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("centri_assistenza.id")
    )
    invitation_token: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False, index=True
    )
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_email: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str | None] = mapped_column(String(50))

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="sent")
    clicked_at: Mapped[datetime | None] = mapped_column(DateTime)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    corner = relationship("Corner", lazy="selectin")
