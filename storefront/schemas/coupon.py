# storefront/schemas/coupon.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from storefront.domain.enums import CouponRejection, CouponType


class CouponCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
    name: str | None = None
    description: str | None = None
    type: CouponType
    value: Decimal = Field(default=Decimal("0"), ge=0)
    min_amount: Decimal | None = Field(default=None, ge=0)
    max_discount: Decimal | None = Field(default=None, ge=0)
    usage_limit: int | None = Field(default=None, ge=0)
    per_user_limit: int | None = Field(default=1, ge=0)
    is_active: bool = True
    starts_at: datetime | None = None
    expires_at: datetime | None = None
    applicable_products: list[UUID] | None = None
    excluded_products: list[UUID] | None = None
    applicable_categories: list[UUID] | None = None
    excluded_categories: list[UUID] | None = None
    applicable_users: list[UUID] | None = None
    excluded_users: list[UUID] | None = None
    first_time_only: bool = False
    new_users_only: bool = False
    loyalty_level_required: int | None = Field(default=None, ge=0)
    minimum_order_count: int | None = Field(default=None, ge=0)
    minimum_spent: Decimal | None = Field(default=None, ge=0)
    maximum_spent: Decimal | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def check_window(self) -> "CouponCreate":
        if self.starts_at and self.expires_at and self.expires_at < self.starts_at:
            raise ValueError("expires_at must be after starts_at")
        return self


class CouponRead(BaseModel):
    id: UUID
    code: str
    name: str | None
    type: CouponType
    value: Decimal
    min_amount: Decimal | None
    max_discount: Decimal | None
    usage_limit: int | None
    used_count: int
    per_user_limit: int | None
    is_active: bool
    starts_at: datetime | None
    expires_at: datetime | None

    model_config = ConfigDict(from_attributes=True)


class ApplyCouponRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)


class CouponValidation(BaseModel):
    code: str
    valid: bool
    reason: CouponRejection | None = None
    discount: Decimal = Decimal("0.00")
