# storefront/schemas/inventory.py
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict

from storefront.domain.enums import MovementStatus, MovementType


class StockLevelRead(BaseModel):
    product_id: UUID
    variant_id: UUID | None
    stock_quantity: int
    reserved_quantity: int
    available_quantity: int

    model_config = ConfigDict(from_attributes=True)


class StockChange(BaseModel):
    quantity: int = Field(gt=0)
    variant_id: UUID | None = None
    reference: str | None = Field(default=None, max_length=120)


class MovementCreate(BaseModel):
    product_id: UUID
    variant_id: UUID | None = None
    movement_type: MovementType
    # may be negative for adjustments
    quantity: int
    reason: str | None = Field(default=None, max_length=255)
    reference: str | None = Field(default=None, max_length=120)


class MovementDecision(BaseModel):
    reason: str | None = Field(default=None, max_length=255)


class MovementRead(BaseModel):
    id: UUID
    product_id: UUID
    variant_id: UUID | None
    movement_type: MovementType
    quantity: int
    status: MovementStatus
    reference: str | None
    reason: str | None
    performed_by: str | None
    approved_by: str | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
