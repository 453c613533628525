# storefront/models/inventory.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Enum as SqlEnum, ForeignKey, Index, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from storefront.db.session import Base
from storefront.domain.enums import MovementStatus, MovementType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InventoryMovement(Base):
    """Append-only stock ledger.

    System movements (reserve, release, sale, restock) are written already
    approved by the stock operation that produced them. Manual movements
    start pending and only touch the counters once approved.
    """

    __tablename__ = "inventory_movements"
    __table_args__ = (
        Index("ix_inventory_movements_product_created", "product_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    variant_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=True, index=True
    )
    movement_type: Mapped[MovementType] = mapped_column(
        SqlEnum(MovementType, name="inventory_movement_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    # signed only for adjustments
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[MovementStatus] = mapped_column(
        SqlEnum(MovementStatus, name="inventory_movement_status"), default=MovementStatus.pending, nullable=False
    )
    reference: Mapped[str | None] = mapped_column(String(120), nullable=True)
    reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    performed_by: Mapped[str | None] = mapped_column(String(120), nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String(120), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    approved_at = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at = mapped_column(DateTime(timezone=True), onupdate=_utcnow)
