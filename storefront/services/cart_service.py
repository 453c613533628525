from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import settings
from storefront.core.logging import get_logger
from storefront.db.operations import conditional_update, flush_async
from storefront.domain import state_machines
from storefront.domain.context import ActorContext
from storefront.domain.enums import CartStatus, StockIssueCode
from storefront.domain.money import ZERO, quantize, to_decimal
from storefront.models.cart import Cart, CartItem
from storefront.models.product import Product, ProductVariant
from storefront.services import catalog_service, coupon_service
from storefront.services.exceptions import (
    ConcurrentModificationError,
    DomainValidationError,
    InvalidQuantityError,
    InvalidStateTransitionError,
    ProductUnavailableError,
    ResourceNotFoundError,
    coupon_error_for,
)
from storefront.services.pricing import current_price, effective_weight

logger = get_logger(__name__)


@dataclass(frozen=True)
class CartTotals:
    subtotal: Decimal
    tax_amount: Decimal
    shipping_cost: Decimal
    discount_amount: Decimal
    total_amount: Decimal


@dataclass(frozen=True)
class StockIssue:
    item_id: uuid.UUID
    product_id: uuid.UUID
    variant_id: uuid.UUID | None
    code: StockIssueCode
    requested: int
    available: int

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["code"] = self.code.value
        return payload


@dataclass(frozen=True)
class TotalsLine:
    price: Decimal
    quantity: int
    weight: Decimal = ZERO


def compute_totals(lines: Iterable[TotalsLine], coupons: Iterable = ()) -> CartTotals:
    """Cart arithmetic.

    subtotal = sum(price * qty); tax = subtotal * VAT; shipping = base +
    weight * qty * per-kg rate unless a free-shipping coupon applies;
    discount = coupon discounts capped at subtotal. An empty cart is all zeros.
    """
    lines = list(lines)
    coupons = list(coupons)
    if not lines:
        return CartTotals(ZERO, ZERO, ZERO, ZERO, ZERO)

    subtotal = quantize(sum((to_decimal(line.price) * line.quantity for line in lines), ZERO))
    tax_amount = quantize(subtotal * settings.VAT_RATE)

    if coupon_service.waives_shipping(coupons):
        shipping_cost = ZERO
    else:
        weight = sum((to_decimal(line.weight) * line.quantity for line in lines), ZERO)
        shipping_cost = quantize(settings.SHIPPING_BASE_COST + weight * settings.SHIPPING_COST_PER_KG)

    discount_amount = coupon_service.combine_discounts(coupons, subtotal)
    total_amount = quantize(subtotal + tax_amount + shipping_cost - discount_amount)
    return CartTotals(subtotal, tax_amount, shipping_cost, discount_amount, total_amount)


# --- Lookup ---

def _owner_filter(stmt, actor: ActorContext):
    if actor.user_id is not None:
        return stmt.where(Cart.user_id == actor.user_id)
    return stmt.where(Cart.session_id == actor.session_id, Cart.user_id.is_(None))


def _owned_by(cart: Cart, actor: ActorContext) -> bool:
    if actor.user_id is not None:
        return cart.user_id == actor.user_id
    return cart.user_id is None and cart.session_id == actor.session_id


async def get_cart(db: AsyncSession, cart_id: uuid.UUID, actor: ActorContext | None = None) -> Cart:
    cart = await db.get(Cart, cart_id)
    if cart is None or (actor is not None and not _owned_by(cart, actor)):
        raise ResourceNotFoundError("Cart not found", cart_id=cart_id)
    return cart


async def get_active_cart(db: AsyncSession, actor: ActorContext) -> Cart | None:
    if actor.is_anonymous:
        return None
    stmt = _owner_filter(select(Cart).where(Cart.status == CartStatus.active), actor)
    stmt = stmt.order_by(Cart.created_at.desc()).limit(1)
    result = await db.execute(stmt)
    return result.scalars().first()


async def get_or_create_cart(db: AsyncSession, actor: ActorContext, currency: str | None = None) -> Cart:
    """One active cart per user, or per session for guests."""
    if actor.is_anonymous:
        raise DomainValidationError("A user or session is required to own a cart")

    cart = await get_active_cart(db, actor)
    if cart:
        return cart

    cart = Cart(
        user_id=actor.user_id,
        session_id=actor.session_id,
        currency=currency or settings.DEFAULT_CURRENCY,
        status=CartStatus.active,
        subtotal=ZERO,
        tax_amount=ZERO,
        shipping_cost=ZERO,
        discount_amount=ZERO,
        total_amount=ZERO,
        items=[],
        coupons=[],
    )
    db.add(cart)
    await flush_async(db)
    return cart


def _ensure_active(cart: Cart) -> None:
    if cart.status != CartStatus.active:
        raise InvalidStateTransitionError(
            "Cart is not active", cart_id=cart.id, status=cart.status.value
        )


def _find_item(cart: Cart, item_id: uuid.UUID) -> CartItem:
    for item in cart.items:
        if item.id == item_id:
            return item
    raise ResourceNotFoundError("Cart item not found", item_id=item_id)


def _find_line(cart: Cart, product_id: uuid.UUID, variant_id: uuid.UUID | None) -> CartItem | None:
    return next(
        (item for item in cart.items if item.product_id == product_id and item.variant_id == variant_id),
        None,
    )


async def _load_purchasable(
    db: AsyncSession, product_id: uuid.UUID, variant_id: uuid.UUID | None
) -> tuple[Product, ProductVariant | None]:
    product = await db.get(Product, product_id)
    if product is None:
        raise ResourceNotFoundError("Product not found", product_id=product_id)
    variant = None
    if variant_id is not None:
        variant = await db.get(ProductVariant, variant_id)
        if variant is None or variant.product_id != product_id:
            raise ResourceNotFoundError("Variant not found", product_id=product_id, variant_id=variant_id)
    if not product.active or (variant is not None and not variant.active):
        raise ProductUnavailableError("Product is not available", product_id=product_id, variant_id=variant_id)
    return product, variant


def _cart_reference(cart: Cart) -> str:
    return f"cart:{cart.id}"


async def _write_line(db: AsyncSession, item: CartItem, **values: int) -> None:
    """Store new line counters if the row still holds the ones ``item`` was read with."""
    await flush_async(db)
    applied = await conditional_update(
        db,
        CartItem,
        item.id,
        CartItem.quantity == item.quantity,
        CartItem.reserved_quantity == item.reserved_quantity,
        **values,
    )
    if not applied:
        raise ConcurrentModificationError("Cart line changed concurrently", item_id=item.id)
    for name, value in values.items():
        setattr(item, name, value)


async def hold_line(
    db: AsyncSession,
    cart: Cart,
    item: CartItem,
    target: int,
    actor: ActorContext | None,
    *,
    quantity: int | None = None,
) -> None:
    """Move the line's catalog reservation to ``target`` units.

    The line is written with a compare-and-swap on its counters: of two
    writers that read the same line, the second fails and its catalog change
    rolls back with its transaction.
    """
    delta = target - item.reserved_quantity
    if delta > 0:
        await catalog_service.reserve_stock(
            db, item.product_id, delta, item.variant_id, reference=_cart_reference(cart), actor=actor
        )
    elif delta < 0:
        await catalog_service.release_stock(
            db, item.product_id, -delta, item.variant_id, reference=_cart_reference(cart), actor=actor
        )
    values = {"reserved_quantity": target}
    if quantity is not None:
        values["quantity"] = quantity
    await _write_line(db, item, **values)


async def _release_all(db: AsyncSession, cart: Cart, actor: ActorContext | None = None) -> None:
    for item in cart.items:
        if item.reserved_quantity > 0:
            await hold_line(db, cart, item, 0, actor)


# --- Totals ---

async def _totals_lines(db: AsyncSession, cart: Cart) -> list[TotalsLine]:
    lines = []
    for item in cart.items:
        product = await db.get(Product, item.product_id)
        variant = await db.get(ProductVariant, item.variant_id) if item.variant_id else None
        weight = effective_weight(product, variant) if product is not None else ZERO
        lines.append(TotalsLine(price=to_decimal(item.price), quantity=item.quantity, weight=weight))
    return lines


async def update_totals(db: AsyncSession, cart: Cart) -> CartTotals:
    """Recompute and store the cart's monetary fields."""
    valid_coupons = [coupon for coupon in cart.coupons if coupon_service.is_currently_valid(coupon)]
    totals = compute_totals(await _totals_lines(db, cart), valid_coupons)
    cart.subtotal = totals.subtotal
    cart.tax_amount = totals.tax_amount
    cart.shipping_cost = totals.shipping_cost
    cart.discount_amount = totals.discount_amount
    cart.total_amount = totals.total_amount
    await flush_async(db)
    return totals


# --- Items ---

async def add_item(
    db: AsyncSession,
    cart: Cart,
    product_id: uuid.UUID,
    qty: int,
    options: dict[str, Any] | None = None,
    variant_id: uuid.UUID | None = None,
    *,
    actor: ActorContext | None = None,
) -> Cart:
    _ensure_active(cart)
    if qty is None or qty <= 0:
        raise InvalidQuantityError("Quantity must be greater than 0.", quantity=qty)
    product, variant = await _load_purchasable(db, product_id, variant_id)

    await catalog_service.reserve_stock(
        db, product_id, qty, variant_id, reference=_cart_reference(cart), actor=actor
    )

    line = _find_line(cart, product_id, variant_id)
    if line is not None:
        await _write_line(db, line, quantity=line.quantity + qty, reserved_quantity=line.reserved_quantity + qty)
        if options:
            line.options = {**(line.options or {}), **options}
    else:
        cart.items.append(
            CartItem(
                product_id=product_id,
                variant_id=variant_id,
                quantity=qty,
                price=current_price(product, variant),
                reserved_quantity=qty,
                options=options or None,
            )
        )
    cart.updated_at = datetime.now(timezone.utc)
    await update_totals(db, cart)
    return cart


async def update_item(
    db: AsyncSession,
    cart: Cart,
    item_id: uuid.UUID,
    qty: int,
    options: dict[str, Any] | None = None,
    *,
    actor: ActorContext | None = None,
) -> Cart:
    _ensure_active(cart)
    if qty is None or qty < 0:
        raise InvalidQuantityError("Quantity cannot be negative.", quantity=qty)
    item = _find_item(cart, item_id)
    if qty == 0:
        return await remove_item(db, cart, item_id, actor=actor)

    await hold_line(db, cart, item, qty, actor, quantity=qty)
    if options is not None:
        item.options = {**(item.options or {}), **options}
    cart.updated_at = datetime.now(timezone.utc)
    await update_totals(db, cart)
    return cart


async def remove_item(
    db: AsyncSession,
    cart: Cart,
    item_id: uuid.UUID,
    *,
    actor: ActorContext | None = None,
) -> Cart:
    _ensure_active(cart)
    item = _find_item(cart, item_id)
    await hold_line(db, cart, item, 0, actor)
    cart.items.remove(item)
    cart.updated_at = datetime.now(timezone.utc)
    await update_totals(db, cart)
    return cart


async def clear_cart(db: AsyncSession, cart: Cart, *, actor: ActorContext | None = None) -> Cart:
    """Drop every line and coupon, giving the reservations back."""
    _ensure_active(cart)
    await _release_all(db, cart, actor)
    cart.items.clear()
    cart.coupons.clear()
    cart.updated_at = datetime.now(timezone.utc)
    await update_totals(db, cart)
    return cart


# --- Coupons ---

async def apply_coupon(db: AsyncSession, cart: Cart, code: str, actor: ActorContext) -> Cart:
    _ensure_active(cart)
    coupon = await coupon_service.get_coupon_by_code(db, code)
    ok, reason = await coupon_service.validate_coupon(db, coupon, actor, cart)
    if not ok:
        raise coupon_error_for(reason, code=coupon.code)
    cart.coupons.append(coupon)
    await update_totals(db, cart)
    return cart


async def remove_coupon(db: AsyncSession, cart: Cart, code: str) -> Cart:
    _ensure_active(cart)
    code = coupon_service.normalize_code(code)
    coupon = next((applied for applied in cart.coupons if applied.code == code), None)
    if coupon is None:
        raise ResourceNotFoundError("Coupon is not applied to this cart", code=code)
    cart.coupons.remove(coupon)
    await update_totals(db, cart)
    return cart


# --- Validation ---

async def validate_stock(db: AsyncSession, cart: Cart) -> list[StockIssue]:
    """Per-line stock problems as language-neutral codes.

    Units already held by a line count towards what it can order.
    """
    issues: list[StockIssue] = []
    for item in cart.items:
        product = await db.get(Product, item.product_id, populate_existing=True)
        variant = None
        if product is not None and item.variant_id is not None:
            variant = await db.get(ProductVariant, item.variant_id, populate_existing=True)

        def issue(code: StockIssueCode, available: int = 0) -> StockIssue:
            return StockIssue(
                item_id=item.id,
                product_id=item.product_id,
                variant_id=item.variant_id,
                code=code,
                requested=item.quantity,
                available=available,
            )

        if product is None or (item.variant_id is not None and variant is None):
            issues.append(issue(StockIssueCode.product_not_found))
            continue
        if not product.active or (variant is not None and not variant.active):
            issues.append(issue(StockIssueCode.product_unavailable))
            continue

        row = variant if variant is not None else product
        obtainable = row.available_quantity + item.reserved_quantity
        if obtainable <= 0:
            issues.append(issue(StockIssueCode.out_of_stock))
        elif obtainable < item.quantity:
            issues.append(issue(StockIssueCode.insufficient_quantity, obtainable))
    return issues


async def can_be_ordered(db: AsyncSession, cart: Cart) -> bool:
    if cart.status != CartStatus.active or not cart.items:
        return False
    return not await validate_stock(db, cart)


# --- Lifecycle ---

async def merge_carts(
    db: AsyncSession,
    target: Cart,
    source: Cart,
    *,
    actor: ActorContext | None = None,
) -> Cart:
    """Fold ``source`` into ``target`` and delete ``source``.

    Reservations move with the lines, so catalog counters do not change.
    """
    _ensure_active(target)
    if source.id == target.id:
        return target

    for line in list(source.items):
        existing = _find_line(target, line.product_id, line.variant_id)
        if existing is not None:
            await _write_line(
                db,
                existing,
                quantity=existing.quantity + line.quantity,
                reserved_quantity=existing.reserved_quantity + line.reserved_quantity,
            )
            if line.options:
                existing.options = {**(existing.options or {}), **line.options}
        else:
            target.items.append(
                CartItem(
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    quantity=line.quantity,
                    price=line.price,
                    reserved_quantity=line.reserved_quantity,
                    options=line.options,
                )
            )

    present = {coupon.id for coupon in target.coupons}
    for coupon in source.coupons:
        if coupon.id not in present:
            target.coupons.append(coupon)

    await db.delete(source)
    target.updated_at = datetime.now(timezone.utc)
    await update_totals(db, target)
    logger.info("Carts merged", extra={"target_cart_id": str(target.id), "source_cart_id": str(source.id)})
    return target


async def claim_status(db: AsyncSession, cart: Cart, target: CartStatus) -> bool:
    """Move the stored cart to ``target`` if its status is still the one read.

    Only the row is written; ``cart`` keeps its old status until the caller
    has finished the work the claim guards.
    """
    state_machines.CART.ensure(cart.status, target)
    return await conditional_update(db, Cart, cart.id, Cart.status == cart.status, status=target)


async def _try_close(db: AsyncSession, cart: Cart, status: CartStatus, actor: ActorContext | None) -> bool:
    if not await claim_status(db, cart, status):
        return False
    await _release_all(db, cart, actor)
    cart.status = status
    await flush_async(db)
    return True


async def _close(db: AsyncSession, cart: Cart, status: CartStatus, actor: ActorContext | None) -> Cart:
    if not await _try_close(db, cart, status, actor):
        raise InvalidStateTransitionError(
            "Cart status changed concurrently", cart_id=cart.id, target=status.value
        )
    return cart


async def abandon_cart(db: AsyncSession, cart: Cart, *, actor: ActorContext | None = None) -> Cart:
    return await _close(db, cart, CartStatus.abandoned, actor)


async def expire_cart(db: AsyncSession, cart: Cart, *, actor: ActorContext | None = None) -> Cart:
    return await _close(db, cart, CartStatus.expired, actor)


async def expire_stale_carts(
    db: AsyncSession,
    hours: int | None = None,
    *,
    now: datetime | None = None,
) -> int:
    """Expire active or abandoned carts idle for longer than ``hours``."""
    hours = hours if hours is not None else settings.CART_EXPIRY_HOURS
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(hours=hours)
    result = await db.execute(
        select(Cart).where(
            Cart.status.in_([CartStatus.active, CartStatus.abandoned]),
            Cart.updated_at < cutoff,
        )
    )
    expired = 0
    for cart in result.scalars().all():
        # a cart checked out or closed since the select is skipped
        if await _try_close(db, cart, CartStatus.expired, None):
            expired += 1
    if expired:
        logger.info("Stale carts expired", extra={"count": expired, "cutoff": cutoff.isoformat()})
    return expired
