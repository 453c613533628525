from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import require_actor
from storefront.core import cache
from storefront.db.operations import commit_async
from storefront.db.session_async import get_async_db
from storefront.domain.context import ActorContext
from storefront.domain.enums import OrderStatus
from storefront.models.order import Order
from storefront.schemas.order import (
    CancelOrderRequest,
    OrderItemRead,
    OrderRead,
    PaymentCreate,
    PlaceOrderRequest,
    RefundCreate,
    ReturnItemRequest,
    ShipmentCreate,
)
from storefront.services import order_service, payment_service

router = APIRouter(prefix="/orders", tags=["orders"])


async def _commit(db: AsyncSession, order: Order) -> Order:
    await commit_async(db)
    cache.invalidate(*cache.stock_keys(order.items))
    return order


@router.post("", response_model=OrderRead, status_code=status.HTTP_201_CREATED)
async def place_order(
    payload: PlaceOrderRequest,
    actor: ActorContext = Depends(require_actor),
):
    return await order_service.place_order(payload.cart_id, actor, notes=payload.notes)


@router.get("", response_model=list[OrderRead])
async def list_orders(
    status_filter: OrderStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_async_db),
    actor: ActorContext = Depends(require_actor),
):
    return await order_service.list_orders(db, actor, status=status_filter, limit=limit, offset=offset)


@router.get("/{order_id}", response_model=OrderRead)
async def get_order(
    order_id: uuid.UUID,
    db: AsyncSession = Depends(get_async_db),
    actor: ActorContext = Depends(require_actor),
):
    return await order_service.get_order(db, order_id, actor)


# --- Back-office transitions ---

@router.post("/{order_id}/confirm", response_model=OrderRead)
async def confirm_order(order_id: uuid.UUID, db: AsyncSession = Depends(get_async_db)):
    order = await order_service.get_order(db, order_id)
    await order_service.confirm_order(db, order)
    return await _commit(db, order)


@router.post("/{order_id}/process", response_model=OrderRead)
async def start_processing(order_id: uuid.UUID, db: AsyncSession = Depends(get_async_db)):
    order = await order_service.get_order(db, order_id)
    await order_service.start_processing(db, order)
    return await _commit(db, order)


@router.post("/{order_id}/payments", response_model=OrderRead, status_code=status.HTTP_201_CREATED)
async def record_payment(
    order_id: uuid.UUID,
    payload: PaymentCreate,
    db: AsyncSession = Depends(get_async_db),
):
    order = await order_service.get_order(db, order_id)
    await payment_service.record_payment(
        db, order, payload.amount, method=payload.method, transaction_id=payload.transaction_id
    )
    return await _commit(db, order)


@router.post("/{order_id}/payments/failed", response_model=OrderRead)
async def mark_payment_failed(order_id: uuid.UUID, db: AsyncSession = Depends(get_async_db)):
    order = await order_service.get_order(db, order_id)
    await payment_service.mark_payment_failed(db, order)
    return await _commit(db, order)


@router.post("/{order_id}/ship", response_model=OrderRead)
async def ship_order(
    order_id: uuid.UUID,
    payload: ShipmentCreate,
    db: AsyncSession = Depends(get_async_db),
):
    order = await order_service.get_order(db, order_id)
    await order_service.ship_order(db, order, carrier=payload.carrier, tracking_number=payload.tracking_number)
    return await _commit(db, order)


@router.post("/{order_id}/deliver", response_model=OrderRead)
async def deliver_order(order_id: uuid.UUID, db: AsyncSession = Depends(get_async_db)):
    order = await order_service.get_order(db, order_id)
    await order_service.deliver_order(db, order)
    return await _commit(db, order)


@router.post("/{order_id}/cancel", response_model=OrderRead)
async def cancel_order(
    order_id: uuid.UUID,
    payload: CancelOrderRequest,
    db: AsyncSession = Depends(get_async_db),
    actor: ActorContext = Depends(require_actor),
):
    order = await order_service.get_order(db, order_id, actor)
    await order_service.cancel_order(db, order, payload.reason, actor=actor)
    return await _commit(db, order)


@router.post("/{order_id}/refund", response_model=OrderRead)
async def refund_order(
    order_id: uuid.UUID,
    payload: RefundCreate,
    db: AsyncSession = Depends(get_async_db),
):
    order = await order_service.get_order(db, order_id)
    await order_service.refund_order(db, order, payload.amount, payload.reason)
    return await _commit(db, order)


@router.post("/{order_id}/items/{item_id}/return", response_model=OrderItemRead)
async def return_item(
    order_id: uuid.UUID,
    item_id: uuid.UUID,
    payload: ReturnItemRequest,
    db: AsyncSession = Depends(get_async_db),
    actor: ActorContext = Depends(require_actor),
):
    order = await order_service.get_order(db, order_id, actor)
    item = await order_service.return_item(db, order, item_id, payload.reason, actor=actor)
    await _commit(db, order)
    return item
