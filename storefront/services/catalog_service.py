"""Stock counters for products and variants.

Every counter mutation is a single conditional UPDATE whose WHERE clause
carries the guard (``available_quantity >= qty`` and friends). The row count
decides success, so two transactions can never both spend the same unit.
The row is only read back afterwards, or to explain a rejected update.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.logging import get_logger, internal_error
from storefront.core.metrics import record_stock_operation
from storefront.db.operations import conditional_update, flush_async
from storefront.domain import state_machines
from storefront.domain.context import ActorContext
from storefront.domain.enums import MovementStatus, MovementType
from storefront.models.inventory import InventoryMovement
from storefront.models.product import Product, ProductVariant
from storefront.services.exceptions import (
    DomainValidationError,
    InsufficientReservationError,
    InsufficientStockError,
    InvalidQuantityError,
    ResourceNotFoundError,
)

logger = get_logger(__name__)

_INBOUND = frozenset({MovementType.stock_in, MovementType.return_, MovementType.found})
_OUTBOUND = frozenset({MovementType.stock_out, MovementType.damaged, MovementType.expired, MovementType.lost})


@dataclass(frozen=True)
class StockLevel:
    product_id: uuid.UUID
    variant_id: uuid.UUID | None
    stock_quantity: int
    reserved_quantity: int
    available_quantity: int

    @property
    def in_stock(self) -> bool:
        return self.available_quantity > 0


def _ensure_positive(qty: int) -> int:
    if qty is None or int(qty) <= 0:
        raise InvalidQuantityError("Quantity must be greater than 0.", quantity=qty)
    return int(qty)


def _target(product_id: uuid.UUID, variant_id: uuid.UUID | None):
    if variant_id is not None:
        return ProductVariant, variant_id, (ProductVariant.product_id == product_id,)
    return Product, product_id, ()


async def _load(db: AsyncSession, product_id: uuid.UUID, variant_id: uuid.UUID | None):
    model, row_id, _ = _target(product_id, variant_id)
    row = await db.get(model, row_id, populate_existing=True)
    if row is None or (variant_id is not None and row.product_id != product_id):
        what = "Variant" if variant_id is not None else "Product"
        raise ResourceNotFoundError(f"{what} not found", product_id=product_id, variant_id=variant_id)
    return row


async def _record_system_movement(
    db: AsyncSession,
    *,
    product_id: uuid.UUID,
    variant_id: uuid.UUID | None,
    movement_type: MovementType,
    qty: int,
    reference: str | None,
    actor: ActorContext | None,
) -> InventoryMovement:
    performed_by = actor.performed_by if actor else None
    movement = InventoryMovement(
        product_id=product_id,
        variant_id=variant_id,
        movement_type=movement_type,
        quantity=qty,
        status=MovementStatus.approved,
        reference=reference,
        performed_by=performed_by,
        approved_by=performed_by,
        approved_at=datetime.now(timezone.utc),
    )
    db.add(movement)
    await flush_async(db, movement)
    return movement


async def _mutate(
    db: AsyncSession,
    operation: str,
    product_id: uuid.UUID,
    qty: int,
    variant_id: uuid.UUID | None,
    *,
    guard,
    values,
    on_rejected,
    movement_type: MovementType | None,
    reference: str | None = None,
    actor: ActorContext | None = None,
):
    qty = _ensure_positive(qty)
    model, row_id, ownership = _target(product_id, variant_id)
    guards = (*ownership, guard(model, qty)) if guard else ownership

    updated = await conditional_update(db, model, row_id, *guards, **values(model, qty))
    if not updated:
        record_stock_operation(operation, "rejected")
        row = await _load(db, product_id, variant_id)
        raise on_rejected(row, qty)

    if movement_type is not None:
        await _record_system_movement(
            db,
            product_id=product_id,
            variant_id=variant_id,
            movement_type=movement_type,
            qty=qty,
            reference=reference,
            actor=actor,
        )
    record_stock_operation(operation, "ok")
    return await _load(db, product_id, variant_id)


def _insufficient_stock(row, qty: int) -> InsufficientStockError:
    return InsufficientStockError(
        "Not enough available stock",
        requested=qty,
        available=row.available_quantity,
    )


def _insufficient_reservation(row, qty: int) -> InsufficientReservationError:
    error = InsufficientReservationError(
        "Not enough reserved stock",
        requested=qty,
        reserved=row.reserved_quantity,
    )
    internal_error(error.detail, row_id=str(row.id), requested=qty, reserved=row.reserved_quantity)
    return error


async def reserve_stock(
    db: AsyncSession,
    product_id: uuid.UUID,
    qty: int,
    variant_id: uuid.UUID | None = None,
    *,
    reference: str | None = None,
    actor: ActorContext | None = None,
):
    """Hold ``qty`` units for a cart: reserved += qty, available -= qty."""
    return await _mutate(
        db,
        "reserve",
        product_id,
        qty,
        variant_id,
        guard=lambda m, q: m.available_quantity >= q,
        values=lambda m, q: {
            "reserved_quantity": m.reserved_quantity + q,
            "available_quantity": m.available_quantity - q,
        },
        on_rejected=_insufficient_stock,
        movement_type=MovementType.reserve,
        reference=reference,
        actor=actor,
    )


async def deduct_stock(
    db: AsyncSession,
    product_id: uuid.UUID,
    qty: int,
    variant_id: uuid.UUID | None = None,
    *,
    reference: str | None = None,
    actor: ActorContext | None = None,
):
    """Turn a reservation into a sale: stock -= qty, reserved -= qty."""
    return await _mutate(
        db,
        "deduct",
        product_id,
        qty,
        variant_id,
        guard=lambda m, q: m.reserved_quantity >= q,
        values=lambda m, q: {
            "stock_quantity": m.stock_quantity - q,
            "reserved_quantity": m.reserved_quantity - q,
        },
        on_rejected=_insufficient_reservation,
        movement_type=MovementType.sale,
        reference=reference,
        actor=actor,
    )


async def release_stock(
    db: AsyncSession,
    product_id: uuid.UUID,
    qty: int,
    variant_id: uuid.UUID | None = None,
    *,
    reference: str | None = None,
    actor: ActorContext | None = None,
):
    """Give a reservation back: reserved -= qty, available += qty."""
    return await _mutate(
        db,
        "release",
        product_id,
        qty,
        variant_id,
        guard=lambda m, q: m.reserved_quantity >= q,
        values=lambda m, q: {
            "reserved_quantity": m.reserved_quantity - q,
            "available_quantity": m.available_quantity + q,
        },
        on_rejected=_insufficient_reservation,
        movement_type=MovementType.release,
        reference=reference,
        actor=actor,
    )


async def add_stock(
    db: AsyncSession,
    product_id: uuid.UUID,
    qty: int,
    variant_id: uuid.UUID | None = None,
    *,
    reference: str | None = None,
    actor: ActorContext | None = None,
    movement_type: MovementType | None = MovementType.restock,
):
    """Receive or restock units: stock += qty, available += qty."""
    return await _mutate(
        db,
        "add",
        product_id,
        qty,
        variant_id,
        guard=None,
        values=lambda m, q: {
            "stock_quantity": m.stock_quantity + q,
            "available_quantity": m.available_quantity + q,
        },
        on_rejected=lambda row, q: ResourceNotFoundError("Stock row not found"),
        movement_type=movement_type,
        reference=reference,
        actor=actor,
    )


async def remove_stock(
    db: AsyncSession,
    product_id: uuid.UUID,
    qty: int,
    variant_id: uuid.UUID | None = None,
    *,
    reference: str | None = None,
    actor: ActorContext | None = None,
    movement_type: MovementType | None = None,
):
    """Write off free units: stock -= qty, available -= qty."""
    return await _mutate(
        db,
        "remove",
        product_id,
        qty,
        variant_id,
        guard=lambda m, q: m.available_quantity >= q,
        values=lambda m, q: {
            "stock_quantity": m.stock_quantity - q,
            "available_quantity": m.available_quantity - q,
        },
        on_rejected=_insufficient_stock,
        movement_type=movement_type,
        reference=reference,
        actor=actor,
    )


async def get_stock_level(
    db: AsyncSession,
    product_id: uuid.UUID,
    variant_id: uuid.UUID | None = None,
) -> StockLevel:
    row = await _load(db, product_id, variant_id)
    return StockLevel(
        product_id=product_id,
        variant_id=variant_id,
        stock_quantity=row.stock_quantity,
        reserved_quantity=row.reserved_quantity,
        available_quantity=row.available_quantity,
    )


# --- Manual inventory movements ---

async def record_movement(
    db: AsyncSession,
    *,
    product_id: uuid.UUID,
    movement_type: MovementType,
    quantity: int,
    variant_id: uuid.UUID | None = None,
    reason: str | None = None,
    reference: str | None = None,
    actor: ActorContext | None = None,
) -> InventoryMovement:
    movement_type = MovementType(movement_type)
    if movement_type.is_system:
        raise DomainValidationError(
            "System movements are recorded by stock operations", movement_type=movement_type.value
        )
    if movement_type == MovementType.adjustment:
        if not quantity:
            raise InvalidQuantityError("Adjustment quantity cannot be 0.", quantity=quantity)
    else:
        _ensure_positive(quantity)

    await _load(db, product_id, variant_id)

    movement = InventoryMovement(
        product_id=product_id,
        variant_id=variant_id,
        movement_type=movement_type,
        quantity=int(quantity),
        status=MovementStatus.pending,
        reason=reason,
        reference=reference,
        performed_by=actor.performed_by if actor else None,
    )
    db.add(movement)
    await flush_async(db, movement)
    return movement


async def get_movement(db: AsyncSession, movement_id: uuid.UUID) -> InventoryMovement:
    movement = await db.get(InventoryMovement, movement_id)
    if not movement:
        raise ResourceNotFoundError("Inventory movement not found", movement_id=movement_id)
    return movement


async def _apply_movement(db: AsyncSession, movement: InventoryMovement, actor: ActorContext | None) -> None:
    kind = movement.movement_type
    reference = f"movement:{movement.id}"
    args = (db, movement.product_id)
    kwargs = {"variant_id": movement.variant_id, "reference": reference, "actor": actor, "movement_type": None}

    if kind in _INBOUND or (kind == MovementType.adjustment and movement.quantity > 0):
        await add_stock(*args, abs(movement.quantity), **kwargs)
    elif kind in _OUTBOUND or kind == MovementType.adjustment:
        await remove_stock(*args, abs(movement.quantity), **kwargs)
    # transfers are ledger-only


async def approve_movement(
    db: AsyncSession,
    movement_id: uuid.UUID,
    actor: ActorContext | None = None,
) -> InventoryMovement:
    movement = await get_movement(db, movement_id)
    state_machines.MOVEMENT.ensure(movement.status, MovementStatus.approved)

    await _apply_movement(db, movement, actor)

    movement.status = MovementStatus.approved
    movement.approved_by = actor.performed_by if actor else None
    movement.approved_at = datetime.now(timezone.utc)
    await flush_async(db, movement)
    logger.info(
        "Inventory movement approved",
        extra={"movement_id": str(movement.id), "movement_type": movement.movement_type.value},
    )
    return movement


async def reject_movement(
    db: AsyncSession,
    movement_id: uuid.UUID,
    actor: ActorContext | None = None,
    reason: str | None = None,
) -> InventoryMovement:
    movement = await get_movement(db, movement_id)
    movement.status = state_machines.MOVEMENT.ensure(movement.status, MovementStatus.rejected)
    movement.approved_by = actor.performed_by if actor else None
    if reason:
        movement.reason = reason
    await flush_async(db, movement)
    return movement


async def cancel_movement(db: AsyncSession, movement_id: uuid.UUID) -> InventoryMovement:
    movement = await get_movement(db, movement_id)
    movement.status = state_machines.MOVEMENT.ensure(movement.status, MovementStatus.cancelled)
    await flush_async(db, movement)
    return movement


async def list_movements(
    db: AsyncSession,
    *,
    product_id: uuid.UUID | None = None,
    variant_id: uuid.UUID | None = None,
    status: MovementStatus | None = None,
    movement_type: MovementType | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[InventoryMovement]:
    stmt = select(InventoryMovement)
    if product_id is not None:
        stmt = stmt.where(InventoryMovement.product_id == product_id)
    if variant_id is not None:
        stmt = stmt.where(InventoryMovement.variant_id == variant_id)
    if status is not None:
        stmt = stmt.where(InventoryMovement.status == status)
    if movement_type is not None:
        stmt = stmt.where(InventoryMovement.movement_type == movement_type)
    stmt = stmt.order_by(InventoryMovement.created_at.desc()).limit(limit).offset(offset)
    result = await db.execute(stmt)
    return list(result.scalars().all())
