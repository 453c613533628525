from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import get_actor
from storefront.core import cache
from storefront.db.operations import commit_async
from storefront.db.session_async import get_async_db
from storefront.domain.context import ActorContext
from storefront.domain.enums import MovementStatus, MovementType
from storefront.schemas.inventory import (
    MovementCreate,
    MovementDecision,
    MovementRead,
    StockChange,
    StockLevelRead,
)
from storefront.services import catalog_service

router = APIRouter(prefix="/inventory", tags=["inventory"])


@router.get("/products/{product_id}/stock", response_model=StockLevelRead)
async def get_stock_level(
    product_id: uuid.UUID,
    variant_id: uuid.UUID | None = Query(default=None),
    db: AsyncSession = Depends(get_async_db),
):
    cached = cache.get_cache().get(cache.product_key(variant_id or product_id))
    if cached is not None:
        return cached
    level = await catalog_service.get_stock_level(db, product_id, variant_id)
    payload = StockLevelRead.model_validate(level).model_dump(mode="json")
    cache.get_cache().set(cache.product_key(variant_id or product_id), payload)
    return payload


async def _change_stock(
    db: AsyncSession,
    operation: Callable[..., Awaitable[object]],
    product_id: uuid.UUID,
    payload: StockChange,
    actor: ActorContext,
) -> StockLevelRead:
    await operation(
        db,
        product_id,
        payload.quantity,
        payload.variant_id,
        reference=payload.reference,
        actor=actor,
    )
    level = await catalog_service.get_stock_level(db, product_id, payload.variant_id)
    await commit_async(db)
    keys = [cache.product_key(product_id)]
    if payload.variant_id:
        keys.append(cache.product_key(payload.variant_id))
    cache.invalidate(*keys)
    return StockLevelRead.model_validate(level)


@router.post("/products/{product_id}/reserve", response_model=StockLevelRead)
async def reserve_stock(
    product_id: uuid.UUID,
    payload: StockChange,
    db: AsyncSession = Depends(get_async_db),
    actor: ActorContext = Depends(get_actor),
):
    return await _change_stock(db, catalog_service.reserve_stock, product_id, payload, actor)


@router.post("/products/{product_id}/release", response_model=StockLevelRead)
async def release_stock(
    product_id: uuid.UUID,
    payload: StockChange,
    db: AsyncSession = Depends(get_async_db),
    actor: ActorContext = Depends(get_actor),
):
    return await _change_stock(db, catalog_service.release_stock, product_id, payload, actor)


@router.post("/products/{product_id}/deduct", response_model=StockLevelRead)
async def deduct_stock(
    product_id: uuid.UUID,
    payload: StockChange,
    db: AsyncSession = Depends(get_async_db),
    actor: ActorContext = Depends(get_actor),
):
    return await _change_stock(db, catalog_service.deduct_stock, product_id, payload, actor)


@router.post("/products/{product_id}/add", response_model=StockLevelRead)
async def add_stock(
    product_id: uuid.UUID,
    payload: StockChange,
    db: AsyncSession = Depends(get_async_db),
    actor: ActorContext = Depends(get_actor),
):
    return await _change_stock(db, catalog_service.add_stock, product_id, payload, actor)


@router.post("/products/{product_id}/remove", response_model=StockLevelRead)
async def remove_stock(
    product_id: uuid.UUID,
    payload: StockChange,
    db: AsyncSession = Depends(get_async_db),
    actor: ActorContext = Depends(get_actor),
):
    return await _change_stock(db, catalog_service.remove_stock, product_id, payload, actor)


# --- Manual movements ---

@router.post("/movements", response_model=MovementRead, status_code=status.HTTP_201_CREATED)
async def record_movement(
    payload: MovementCreate,
    db: AsyncSession = Depends(get_async_db),
    actor: ActorContext = Depends(get_actor),
):
    movement = await catalog_service.record_movement(
        db,
        product_id=payload.product_id,
        variant_id=payload.variant_id,
        movement_type=payload.movement_type,
        quantity=payload.quantity,
        reason=payload.reason,
        reference=payload.reference,
        actor=actor,
    )
    await commit_async(db)
    return movement


@router.get("/movements", response_model=list[MovementRead])
async def list_movements(
    product_id: uuid.UUID | None = Query(default=None),
    variant_id: uuid.UUID | None = Query(default=None),
    status_filter: MovementStatus | None = Query(default=None, alias="status"),
    movement_type: MovementType | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_async_db),
):
    return await catalog_service.list_movements(
        db,
        product_id=product_id,
        variant_id=variant_id,
        status=status_filter,
        movement_type=movement_type,
        limit=limit,
        offset=offset,
    )


@router.post("/movements/{movement_id}/approve", response_model=MovementRead)
async def approve_movement(
    movement_id: uuid.UUID,
    db: AsyncSession = Depends(get_async_db),
    actor: ActorContext = Depends(get_actor),
):
    movement = await catalog_service.approve_movement(db, movement_id, actor)
    await commit_async(db)
    cache.invalidate(cache.product_key(movement.product_id))
    return movement


@router.post("/movements/{movement_id}/reject", response_model=MovementRead)
async def reject_movement(
    movement_id: uuid.UUID,
    payload: MovementDecision,
    db: AsyncSession = Depends(get_async_db),
    actor: ActorContext = Depends(get_actor),
):
    movement = await catalog_service.reject_movement(db, movement_id, actor, payload.reason)
    await commit_async(db)
    return movement


@router.post("/movements/{movement_id}/cancel", response_model=MovementRead)
async def cancel_movement(movement_id: uuid.UUID, db: AsyncSession = Depends(get_async_db)):
    movement = await catalog_service.cancel_movement(db, movement_id)
    await commit_async(db)
    return movement
