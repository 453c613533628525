"""Turning carts into orders and moving orders through their lifecycle."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.core import cache
from storefront.core.config import settings
from storefront.core.logging import get_logger
from storefront.core.metrics import record_order_placement
from storefront.db.operations import flush_async
from storefront.db.session_async import run_in_transaction
from storefront.domain import state_machines
from storefront.domain.context import ActorContext
from storefront.domain.enums import (
    CartStatus,
    OrderItemStatus,
    OrderStatus,
    ShipmentStatus,
)
from storefront.domain.money import ZERO, quantize, to_decimal
from storefront.models.cart import Cart
from storefront.models.order import Order, OrderItem, Shipment
from storefront.services import cart_service, catalog_service, coupon_service, payment_service
from storefront.services.exceptions import (
    CartInvalidError,
    DomainValidationError,
    InvalidStateTransitionError,
    ResourceNotFoundError,
    ServiceError,
)

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_order_number(now: datetime | None = None) -> str:
    now = now or _utcnow()
    return f"ORD-{now:%Y%m%d}-{uuid.uuid4().hex[:8].upper()}"


def _order_reference(order: Order) -> str:
    return f"order:{order.id}"


async def _ensure_orderable(db: AsyncSession, cart: Cart) -> None:
    if cart.status != CartStatus.active:
        raise CartInvalidError("Cart is not active", cart_id=cart.id, status=cart.status.value)
    if not cart.items:
        raise CartInvalidError("Cart is empty", cart_id=cart.id)
    issues = await cart_service.validate_stock(db, cart)
    if issues:
        raise CartInvalidError(
            "Cart has stock issues", issues=[issue.to_dict() for issue in issues], cart_id=cart.id
        )


async def create_order_from_cart(
    db: AsyncSession,
    cart: Cart,
    actor: ActorContext,
    *,
    notes: str | None = None,
) -> Order:
    """Materialize ``cart`` into a pending order inside the caller's transaction.

    The cart row is claimed first, so a second checkout of the same cart
    fails instead of spending stock held for other carts. Each line's
    reservation is topped up to its quantity and then deducted. Any failure
    propagates; the caller is expected to roll back.
    """
    await _ensure_orderable(db, cart)
    if not await cart_service.claim_status(db, cart, CartStatus.converted):
        raise CartInvalidError("Cart was checked out or closed concurrently", cart_id=cart.id)
    totals = await cart_service.update_totals(db, cart)

    order = Order(
        id=uuid.uuid4(),
        order_number=generate_order_number(),
        user_id=actor.user_id or cart.user_id,
        session_id=cart.session_id,
        cart_id=cart.id,
        status=OrderStatus.pending,
        currency=cart.currency,
        subtotal=totals.subtotal,
        tax_amount=totals.tax_amount,
        shipping_cost=totals.shipping_cost,
        discount_amount=totals.discount_amount,
        total_amount=totals.total_amount,
        refund_amount=ZERO,
        notes=notes,
        items=[],
        payments=[],
        refunds=[],
        shipments=[],
    )
    db.add(order)

    reference = _order_reference(order)
    for line in cart.items:
        if line.reserved_quantity != line.quantity:
            await cart_service.hold_line(db, cart, line, line.quantity, actor)
        await catalog_service.deduct_stock(
            db, line.product_id, line.quantity, line.variant_id, reference=reference, actor=actor
        )
        line.reserved_quantity = 0

        total_price = quantize(to_decimal(line.price) * line.quantity)
        order.items.append(
            OrderItem(
                product_id=line.product_id,
                variant_id=line.variant_id,
                quantity=line.quantity,
                price=quantize(line.price),
                total_price=total_price,
                tax_amount=quantize(total_price * settings.VAT_RATE),
                options=line.options,
                status=OrderItemStatus.pending,
            )
        )

    await flush_async(db)

    remaining = totals.discount_amount
    for coupon in cart.coupons:
        if not coupon_service.is_currently_valid(coupon):
            continue
        share = min(coupon_service.calculate_discount(coupon, totals.subtotal), remaining)
        remaining -= share
        await coupon_service.redeem_coupon(
            db, coupon, user_id=order.user_id, order_id=order.id, discount_amount=share
        )

    cart.status = state_machines.CART.ensure(cart.status, CartStatus.converted)
    cart.converted_at = _utcnow()
    await flush_async(db)
    return order


async def place_order(
    cart_id: uuid.UUID,
    actor: ActorContext,
    *,
    notes: str | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> Order:
    """All-or-nothing checkout in its own transaction.

    The order, its items, stock deductions, coupon redemptions and the cart
    status commit together. Cache entries are dropped only after commit.
    """
    touched: list[str] = []

    async def _operation(db: AsyncSession) -> Order:
        cart = await cart_service.get_cart(db, cart_id, actor)
        touched.extend(cache.stock_keys(cart.items))
        return await create_order_from_cart(db, cart, actor, notes=notes)

    try:
        order = await run_in_transaction(_operation, session_factory)
    except ServiceError as exc:
        record_order_placement("failed")
        logger.warning("Order placement failed", extra={"cart_id": str(cart_id), "code": exc.code})
        raise

    record_order_placement("placed")
    cache.invalidate(*touched, cache.VALID_COUPONS_KEY)
    logger.info(
        "Order placed",
        extra={"order_id": str(order.id), "order_number": order.order_number, "total": str(order.total_amount)},
    )
    return order


# --- Queries ---

def _visible_to(order: Order, actor: ActorContext) -> bool:
    if actor.user_id is not None:
        return order.user_id == actor.user_id
    return order.user_id is None and order.session_id == actor.session_id


async def get_order(db: AsyncSession, order_id: uuid.UUID, actor: ActorContext | None = None) -> Order:
    order = await db.get(Order, order_id)
    if order is None or (actor is not None and not _visible_to(order, actor)):
        raise ResourceNotFoundError("Order not found", order_id=order_id)
    return order


async def list_orders(
    db: AsyncSession,
    actor: ActorContext,
    *,
    status: OrderStatus | None = None,
    limit: int = 20,
    offset: int = 0,
) -> list[Order]:
    stmt = select(Order)
    if actor.user_id is not None:
        stmt = stmt.where(Order.user_id == actor.user_id)
    else:
        stmt = stmt.where(Order.user_id.is_(None), Order.session_id == actor.session_id)
    if status is not None:
        stmt = stmt.where(Order.status == status)
    stmt = stmt.order_by(Order.created_at.desc()).limit(limit).offset(offset)
    result = await db.execute(stmt)
    return list(result.scalars().all())


# --- Lifecycle ---

def _advance_items(order: Order, target: OrderItemStatus) -> None:
    for item in order.items:
        if state_machines.ORDER_ITEM.can(item.status, target):
            item.status = target


async def confirm_order(db: AsyncSession, order: Order) -> Order:
    order.status = state_machines.ORDER.ensure(order.status, OrderStatus.confirmed)
    order.confirmed_at = _utcnow()
    _advance_items(order, OrderItemStatus.confirmed)
    await flush_async(db)
    return order


async def start_processing(db: AsyncSession, order: Order) -> Order:
    order.status = state_machines.ORDER.ensure(order.status, OrderStatus.processing)
    order.processing_at = _utcnow()
    _advance_items(order, OrderItemStatus.processing)
    await flush_async(db)
    return order


async def ship_order(
    db: AsyncSession,
    order: Order,
    *,
    carrier: str | None = None,
    tracking_number: str | None = None,
) -> Order:
    """Ship a paid order that is confirmed or processing, opening a shipment."""
    if not order.is_paid:
        raise InvalidStateTransitionError(
            "Order must be paid before shipping",
            order_id=order.id,
            payment_status=order.payment_status.value,
        )
    order.status = state_machines.ORDER.ensure(order.status, OrderStatus.shipped)

    now = _utcnow()
    shipment = Shipment(order_id=order.id, status=ShipmentStatus.pending, carrier=carrier, tracking_number=tracking_number)
    shipment.status = state_machines.SHIPMENT.ensure(shipment.status, ShipmentStatus.shipped)
    shipment.shipped_at = now
    order.shipments.append(shipment)

    order.shipped_at = now
    _advance_items(order, OrderItemStatus.shipped)
    await flush_async(db)
    return order


async def deliver_order(db: AsyncSession, order: Order) -> Order:
    order.status = state_machines.ORDER.ensure(order.status, OrderStatus.delivered)
    now = _utcnow()
    for shipment in order.shipments:
        if state_machines.SHIPMENT.can(shipment.status, ShipmentStatus.delivered):
            shipment.status = ShipmentStatus.delivered
            shipment.delivered_at = now
    order.delivered_at = now
    _advance_items(order, OrderItemStatus.delivered)
    await flush_async(db)
    return order


async def cancel_order(
    db: AsyncSession,
    order: Order,
    reason: str | None = None,
    *,
    actor: ActorContext | None = None,
) -> Order:
    """Cancel a pending or confirmed order and put its units back on sale."""
    order.status = state_machines.ORDER.ensure(order.status, OrderStatus.cancelled)

    reference = _order_reference(order)
    for item in order.items:
        if not state_machines.ORDER_ITEM.can(item.status, OrderItemStatus.cancelled):
            continue
        await catalog_service.add_stock(
            db, item.product_id, item.quantity, item.variant_id, reference=reference, actor=actor
        )
        item.status = OrderItemStatus.cancelled

    order.cancellation_reason = reason
    order.cancelled_at = _utcnow()
    await flush_async(db)
    logger.info("Order cancelled", extra={"order_id": str(order.id)})
    return order


async def refund_order(
    db: AsyncSession,
    order: Order,
    amount=None,
    reason: str | None = None,
) -> Order:
    """Refund a paid order.

    Opens a refund and drives it through approval and processing to
    completion. Stock is not returned here; see ``return_item``.
    """
    if not order.is_paid or order.is_refunded:
        raise InvalidStateTransitionError(
            "Only paid orders that are not yet refunded can be refunded",
            order_id=order.id,
            payment_status=order.payment_status.value,
        )
    refundable = quantize(to_decimal(order.total_amount) - to_decimal(order.refund_amount))
    amount = refundable if amount is None else quantize(amount)
    if amount <= 0 or amount > refundable:
        raise DomainValidationError(
            "Refund amount must be positive and within the refundable total",
            amount=str(amount),
            refundable=str(refundable),
        )
    state_machines.ORDER.ensure(order.status, OrderStatus.refunded)

    refund = await payment_service.open_refund(db, order, amount, reason)
    await payment_service.approve_refund(db, refund)
    await payment_service.process_refund(db, refund)
    await payment_service.complete_refund(db, refund)

    order.refund_amount = quantize(to_decimal(order.refund_amount) + amount)
    order.refund_reason = reason
    order.status = OrderStatus.refunded
    order.refunded_at = _utcnow()
    await payment_service.mark_payment_refunded(db, order)
    _advance_items(order, OrderItemStatus.refunded)
    await flush_async(db)
    logger.info("Order refunded", extra={"order_id": str(order.id), "amount": str(amount)})
    return order


async def return_item(
    db: AsyncSession,
    order: Order,
    item_id: uuid.UUID,
    reason: str | None = None,
    *,
    actor: ActorContext | None = None,
) -> OrderItem:
    """Take back a delivered line and restock it."""
    item = next((line for line in order.items if line.id == item_id), None)
    if item is None:
        raise ResourceNotFoundError("Order item not found", item_id=item_id)
    item.status = state_machines.ORDER_ITEM.ensure(item.status, OrderItemStatus.returned)

    await catalog_service.add_stock(
        db, item.product_id, item.quantity, item.variant_id, reference=_order_reference(order), actor=actor
    )
    item.return_reason = reason
    item.returned_at = _utcnow()
    await flush_async(db)
    return item
