# storefront/schemas/cart.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, List
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from storefront.domain.enums import CartStatus, StockIssueCode
from storefront.schemas.coupon import CouponRead


class CartItemCreate(BaseModel):
    product_id: UUID
    variant_id: UUID | None = None
    quantity: int = Field(..., gt=0)
    options: dict[str, Any] | None = None


class CartItemUpdate(BaseModel):
    # 0 removes the line
    quantity: int = Field(..., ge=0)
    options: dict[str, Any] | None = None


class CartItemRead(BaseModel):
    id: UUID
    product_id: UUID
    variant_id: UUID | None
    quantity: int
    price: Decimal
    reserved_quantity: int
    options: dict[str, Any] | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CartRead(BaseModel):
    id: UUID
    user_id: UUID | None
    session_id: str | None
    status: CartStatus
    currency: str

    subtotal: Decimal
    tax_amount: Decimal
    shipping_cost: Decimal
    discount_amount: Decimal
    total_amount: Decimal

    created_at: datetime
    updated_at: datetime | None

    items: List[CartItemRead] = Field(default_factory=list)
    coupons: List[CouponRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class StockIssueRead(BaseModel):
    item_id: UUID
    product_id: UUID
    variant_id: UUID | None
    code: StockIssueCode
    requested: int
    available: int

    model_config = ConfigDict(from_attributes=True)


class CartValidationRead(BaseModel):
    can_be_ordered: bool
    issues: List[StockIssueRead] = Field(default_factory=list)


class CartMergeRequest(BaseModel):
    source_session_id: str = Field(..., min_length=1, max_length=120)
