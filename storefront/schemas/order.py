# storefront/schemas/order.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, List
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from storefront.domain.enums import (
    OrderItemStatus,
    OrderStatus,
    PaymentStatus,
    RefundStatus,
    ShipmentStatus,
)


class PlaceOrderRequest(BaseModel):
    cart_id: UUID
    notes: str | None = Field(default=None, max_length=1000)


class OrderItemRead(BaseModel):
    id: UUID
    product_id: UUID
    variant_id: UUID | None
    quantity: int
    price: Decimal
    total_price: Decimal
    tax_amount: Decimal
    options: dict[str, Any] | None
    status: OrderItemStatus

    model_config = ConfigDict(from_attributes=True)


class PaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0)
    method: str | None = Field(default=None, max_length=60)
    transaction_id: str | None = Field(default=None, max_length=140)


class PaymentRead(BaseModel):
    id: UUID
    amount: Decimal
    currency: str
    status: PaymentStatus
    method: str | None
    transaction_id: str | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RefundCreate(BaseModel):
    amount: Decimal | None = Field(default=None, gt=0)
    reason: str | None = Field(default=None, max_length=1000)


class RefundRead(BaseModel):
    id: UUID
    amount: Decimal
    reason: str | None
    status: RefundStatus
    processed_at: datetime | None

    model_config = ConfigDict(from_attributes=True)


class ShipmentCreate(BaseModel):
    carrier: str | None = Field(default=None, max_length=120)
    tracking_number: str | None = Field(default=None, max_length=140)


class ShipmentRead(BaseModel):
    id: UUID
    status: ShipmentStatus
    carrier: str | None
    tracking_number: str | None
    shipped_at: datetime | None
    delivered_at: datetime | None

    model_config = ConfigDict(from_attributes=True)


class CancelOrderRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)


class ReturnItemRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)


class OrderRead(BaseModel):
    id: UUID
    order_number: str
    user_id: UUID | None
    cart_id: UUID | None
    status: OrderStatus
    payment_status: PaymentStatus
    currency: str

    subtotal: Decimal
    tax_amount: Decimal
    shipping_cost: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    refund_amount: Decimal
    refund_reason: str | None
    cancellation_reason: str | None

    created_at: datetime
    confirmed_at: datetime | None
    shipped_at: datetime | None
    delivered_at: datetime | None
    cancelled_at: datetime | None

    items: List[OrderItemRead] = Field(default_factory=list)
    payments: List[PaymentRead] = Field(default_factory=list)
    refunds: List[RefundRead] = Field(default_factory=list)
    shipments: List[ShipmentRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)
