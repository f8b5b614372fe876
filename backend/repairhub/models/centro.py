"""Centro and Corner — the two tenants that hold a platform credit account.

A Centro (repair shop) owns customers, repairs and inventory.  A Corner
is a partner drop-off point that forwards repairs to centri and shows
display ads.

Both carry the same credit account columns (CreditAccountMixin).  The
balance is credited by topups and debited by platform commissions, and
is only ever written by services.ledger.apply_credit_movement.

payment_status:  good_standing | warning | suspended
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from repairhub.database import Base


class CreditAccountMixin:
    credit_balance: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00")
    )
    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="good_standing", index=True
    )
    credit_warning_threshold: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("50.00")
    )
    last_credit_update: Mapped[datetime | None] = mapped_column(DateTime)


class Centro(CreditAccountMixin, Base):
    __tablename__ = "centri_assistenza"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    business_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(50))
    address: Mapped[str | None] = mapped_column(Text)
    logo_url: Mapped[str | None] = mapped_column(String(500))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    customers = relationship("Customer", back_populates="centro")


class Corner(CreditAccountMixin, Base):
    __tablename__ = "corners"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    business_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(50))
    address: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
