# storefront/models/cart.py
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.db.session import Base
from storefront.domain.enums import CartStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


cart_coupons = Table(
    "cart_coupons",
    Base.metadata,
    Column("cart_id", UUID(as_uuid=True), ForeignKey("carts.id", ondelete="CASCADE"), primary_key=True),
    Column("coupon_id", UUID(as_uuid=True), ForeignKey("coupons.id", ondelete="CASCADE"), primary_key=True),
)


class Cart(Base):
    __tablename__ = "carts"
    __table_args__ = (
        Index("ix_carts_user_id_status", "user_id", "status"),
        Index("ix_carts_session_id_status", "session_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    session_id: Mapped[str | None] = mapped_column(String(120), nullable=True)

    status: Mapped[CartStatus] = mapped_column(
        Enum(CartStatus, name="cart_status"), default=CartStatus.active, nullable=False
    )
    currency: Mapped[str] = mapped_column(String(3), default="SAR", nullable=False)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)
    shipping_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    attributes: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    # last activity, drives expiry
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )
    converted_at = mapped_column(DateTime(timezone=True), nullable=True)

    items: Mapped[list["CartItem"]] = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="CartItem.created_at",
        lazy="selectin",
    )
    coupons = relationship("Coupon", secondary=cart_coupons, lazy="selectin")

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)


class CartItem(Base):
    __tablename__ = "cart_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="quantity_positive"),
        CheckConstraint("reserved_quantity >= 0", name="reserved_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    cart_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("products.id", ondelete="RESTRICT"), nullable=False
    )
    variant_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("product_variants.id", ondelete="RESTRICT"), nullable=True
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    # price snapshot at add time
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    # stock currently held in the catalog for this line
    reserved_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    options: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    cart = relationship("Cart", back_populates="items")

    @property
    def line_total(self) -> Decimal:
        return Decimal(str(self.price)) * self.quantity
