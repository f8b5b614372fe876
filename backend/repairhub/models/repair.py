"""Device and Repair — the part of the repair lifecycle forfeiture reads.

Repair lifecycle (tail end):
    completed → delivered
    completed → (warning after 23 days) → forfeited (after 30 days)

`delivered` and `forfeited` are terminal.  A forfeited device becomes a
zero-cost SparePart owned by the customer's centro.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from repairhub.database import Base


class Device(Base):
    __tablename__ = "devices"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    customer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("customers.id"), nullable=False, index=True
    )
    device_type: Mapped[str | None] = mapped_column(String(50))
    brand: Mapped[str] = mapped_column(String(100), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    imei: Mapped[str | None] = mapped_column(String(50))
    serial_number: Mapped[str | None] = mapped_column(String(100))
    initial_condition: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    customer = relationship("Customer", back_populates="devices", lazy="selectin")


class Repair(Base):
    __tablename__ = "repairs"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    device_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("devices.id"), nullable=False, index=True
    )

    # pending | in_progress | completed | delivered | forfeited | cancelled
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default="pending", index=True
    )
    description: Mapped[str | None] = mapped_column(Text)
    final_cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))

    completed_at: Mapped[datetime | None] = mapped_column(DateTime)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime)
    forfeiture_warning_sent_at: Mapped[datetime | None] = mapped_column(DateTime)
    forfeited_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    device = relationship("Device", lazy="selectin")
