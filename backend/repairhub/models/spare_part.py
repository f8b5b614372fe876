import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from repairhub.database import Base


class SparePart(Base):
    """Inventory item: spare parts and resellable (e.g. forfeited) devices."""

    __tablename__ = "spare_parts"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    centro_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("centri_assistenza.id"), index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    brand: Mapped[str | None] = mapped_column(String(100))
    model_compatibility: Mapped[str | None] = mapped_column(String(255))
    stock_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    selling_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    source_repair_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("repairs.id"), unique=True
    )
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
