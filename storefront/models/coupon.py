# storefront/models/coupon.py
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.db.session import Base
from storefront.domain.enums import CouponType


class Coupon(Base):
    __tablename__ = "coupons"
    __table_args__ = (
        CheckConstraint("used_count >= 0", name="used_count_non_negative"),
        CheckConstraint(
            "usage_limit IS NULL OR used_count <= usage_limit",
            name="used_count_within_limit",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # stored upper-case
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    type: Mapped[CouponType] = mapped_column(Enum(CouponType, name="coupon_type"), nullable=False)
    value: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)
    min_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    max_discount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    usage_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    used_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    per_user_limit: Mapped[int | None] = mapped_column(Integer, default=1, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    starts_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # lists of stringified UUIDs
    applicable_products: Mapped[list | None] = mapped_column(JSON, nullable=True)
    excluded_products: Mapped[list | None] = mapped_column(JSON, nullable=True)
    applicable_categories: Mapped[list | None] = mapped_column(JSON, nullable=True)
    excluded_categories: Mapped[list | None] = mapped_column(JSON, nullable=True)
    applicable_users: Mapped[list | None] = mapped_column(JSON, nullable=True)
    excluded_users: Mapped[list | None] = mapped_column(JSON, nullable=True)

    first_time_only: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    new_users_only: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    loyalty_level_required: Mapped[int | None] = mapped_column(Integer, nullable=True)
    minimum_order_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    minimum_spent: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    maximum_spent: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    created_at = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = mapped_column(DateTime(timezone=True), onupdate=func.now())

    usages = relationship("CouponUsage", back_populates="coupon")


class CouponUsage(Base):
    """Append-only record of a coupon redeemed by an order."""

    __tablename__ = "coupon_usages"
    __table_args__ = (
        Index("ix_coupon_usages_coupon_user", "coupon_id", "user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    coupon_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    order_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("orders.id", ondelete="SET NULL"), nullable=True
    )
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)
    created_at = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    coupon = relationship(Coupon, back_populates="usages")
