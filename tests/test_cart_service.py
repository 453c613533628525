import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from storefront.db.session_async import AsyncSessionLocal
from storefront.domain.context import ActorContext
from storefront.domain.enums import CartStatus, CouponType, StockIssueCode
from storefront.models.cart import Cart, CartItem
from storefront.services import cart_service
from storefront.services.cart_service import TotalsLine, compute_totals
from storefront.services.exceptions import (
    ConcurrentModificationError,
    CouponAlreadyAppliedError,
    InsufficientStockError,
    InvalidQuantityError,
    InvalidStateTransitionError,
    ProductUnavailableError,
)


def _guest(session_id: str | None = None) -> ActorContext:
    return ActorContext(session_id=session_id or f"sess-{uuid.uuid4().hex[:8]}")


# --- Totals ---

def test_empty_cart_totals_are_zero():
    totals = compute_totals([])
    assert totals.subtotal == totals.tax_amount == totals.shipping_cost == Decimal("0.00")
    assert totals.total_amount == Decimal("0.00")


def test_totals_for_a_single_line():
    totals = compute_totals([TotalsLine(price=Decimal("100.00"), quantity=2, weight=Decimal("1.5"))])

    assert totals.subtotal == Decimal("200.00")
    assert totals.tax_amount == Decimal("30.00")
    # 15.00 base + 1.5 kg * 2 units * 2.00 per kg
    assert totals.shipping_cost == Decimal("21.00")
    assert totals.discount_amount == Decimal("0.00")
    assert totals.total_amount == Decimal("251.00")


@pytest.mark.asyncio
async def test_add_item_prices_and_reserves_the_line(async_db_session, make_product, read_stock):
    product = make_product(price="100.00", weight="1.500", stock=10)
    actor = _guest()

    cart = await cart_service.get_or_create_cart(async_db_session, actor)
    cart = await cart_service.add_item(async_db_session, cart, product.id, 2, actor=actor)
    await async_db_session.commit()

    assert len(cart.items) == 1
    assert cart.items[0].reserved_quantity == 2
    assert cart.subtotal == Decimal("200.00")
    assert cart.tax_amount == Decimal("30.00")
    assert cart.shipping_cost == Decimal("21.00")
    assert cart.total_amount == cart.subtotal + cart.tax_amount + cart.shipping_cost
    assert await read_stock(product.id) == (10, 2, 8)


@pytest.mark.asyncio
async def test_update_totals_is_idempotent(async_db_session, make_product):
    product = make_product(price="19.99", weight="0.250")
    actor = _guest()
    cart = await cart_service.get_or_create_cart(async_db_session, actor)
    await cart_service.add_item(async_db_session, cart, product.id, 3, actor=actor)

    first = await cart_service.update_totals(async_db_session, cart)
    second = await cart_service.update_totals(async_db_session, cart)

    assert first == second


@pytest.mark.asyncio
async def test_sale_price_applies_when_lower(async_db_session, make_product):
    product = make_product(price="50.00", sale_price="40.00")
    actor = _guest()
    cart = await cart_service.get_or_create_cart(async_db_session, actor)
    await cart_service.add_item(async_db_session, cart, product.id, 1, actor=actor)

    assert cart.items[0].price == Decimal("40.00")


@pytest.mark.asyncio
async def test_variant_price_and_weight_override_the_product(async_db_session, make_product, make_variant):
    product = make_product(price="50.00", weight="1.000")
    variant = make_variant(product, price="60.00", weight="2.000", stock=3)
    actor = _guest()
    cart = await cart_service.get_or_create_cart(async_db_session, actor)
    await cart_service.add_item(async_db_session, cart, product.id, 1, variant_id=variant.id, actor=actor)

    assert cart.items[0].price == Decimal("60.00")
    assert cart.shipping_cost == Decimal("19.00")


@pytest.mark.asyncio
async def test_same_product_twice_merges_into_one_line(async_db_session, make_product, read_stock):
    product = make_product(stock=10)
    actor = _guest()
    cart = await cart_service.get_or_create_cart(async_db_session, actor)

    await cart_service.add_item(async_db_session, cart, product.id, 2, actor=actor)
    await cart_service.add_item(async_db_session, cart, product.id, 3, actor=actor)
    await async_db_session.commit()

    assert len(cart.items) == 1
    assert cart.items[0].quantity == 5
    assert cart.item_count == 5
    assert await read_stock(product.id) == (10, 5, 5)


@pytest.mark.asyncio
async def test_add_more_than_available_leaves_cart_untouched(async_db_session, make_product):
    product = make_product(stock=2)
    actor = _guest()
    cart = await cart_service.get_or_create_cart(async_db_session, actor)

    with pytest.raises(InsufficientStockError):
        await cart_service.add_item(async_db_session, cart, product.id, 3, actor=actor)
    assert cart.items == []


@pytest.mark.asyncio
async def test_inactive_product_cannot_be_added(async_db_session, make_product):
    product = make_product(active=False)
    actor = _guest()
    cart = await cart_service.get_or_create_cart(async_db_session, actor)

    with pytest.raises(ProductUnavailableError):
        await cart_service.add_item(async_db_session, cart, product.id, 1, actor=actor)


@pytest.mark.asyncio
async def test_add_rejects_non_positive_quantity(async_db_session, make_product):
    product = make_product()
    actor = _guest()
    cart = await cart_service.get_or_create_cart(async_db_session, actor)

    with pytest.raises(InvalidQuantityError):
        await cart_service.add_item(async_db_session, cart, product.id, 0, actor=actor)


@pytest.mark.asyncio
async def test_update_item_moves_the_reservation(async_db_session, make_product, read_stock):
    product = make_product(stock=10)
    actor = _guest()
    cart = await cart_service.get_or_create_cart(async_db_session, actor)
    await cart_service.add_item(async_db_session, cart, product.id, 4, actor=actor)
    item_id = cart.items[0].id

    await cart_service.update_item(async_db_session, cart, item_id, 1, actor=actor)
    await async_db_session.commit()
    assert await read_stock(product.id) == (10, 1, 9)

    await cart_service.update_item(async_db_session, cart, item_id, 0, actor=actor)
    await async_db_session.commit()
    assert cart.items == []
    assert cart.total_amount == Decimal("0.00")
    assert await read_stock(product.id) == (10, 0, 10)


@pytest.mark.asyncio
async def test_stale_line_write_is_rejected(make_product, read_stock):
    product = make_product(stock=20)
    actor = _guest()
    async with AsyncSessionLocal() as db:
        cart = await cart_service.get_or_create_cart(db, actor)
        await cart_service.add_item(db, cart, product.id, 2, actor=actor)
        await db.commit()
        cart_id, item_id = cart.id, cart.items[0].id

    async with AsyncSessionLocal() as stale_db:
        stale_cart = await cart_service.get_cart(stale_db, cart_id, actor)
        async with AsyncSessionLocal() as db:
            cart = await cart_service.get_cart(db, cart_id, actor)
            await cart_service.update_item(db, cart, item_id, 4, actor=actor)
            await db.commit()

        with pytest.raises(ConcurrentModificationError):
            await cart_service.update_item(stale_db, stale_cart, item_id, 6, actor=actor)
        await stale_db.rollback()

    assert await read_stock(product.id) == (20, 4, 16)


@pytest.mark.asyncio
async def test_concurrent_line_updates_keep_reservations_reversible(make_product, read_stock):
    product = make_product(stock=20)
    actor = _guest()
    async with AsyncSessionLocal() as db:
        cart = await cart_service.get_or_create_cart(db, actor)
        await cart_service.add_item(db, cart, product.id, 2, actor=actor)
        await db.commit()
        cart_id, item_id = cart.id, cart.items[0].id

    async def resize(qty: int) -> None:
        async with AsyncSessionLocal() as db:
            cart = await cart_service.get_cart(db, cart_id, actor)
            await cart_service.update_item(db, cart, item_id, qty, actor=actor)
            await db.commit()

    results = await asyncio.gather(resize(5), resize(5), return_exceptions=True)

    assert all(result is None or isinstance(result, ConcurrentModificationError) for result in results)
    async with AsyncSessionLocal() as db:
        item = await db.get(CartItem, item_id)
        assert (item.quantity, item.reserved_quantity) == (5, 5)
    assert await read_stock(product.id) == (20, 5, 15)

    async with AsyncSessionLocal() as db:
        cart = await cart_service.get_cart(db, cart_id, actor)
        await cart_service.clear_cart(db, cart, actor=actor)
        await db.commit()
    assert await read_stock(product.id) == (20, 0, 20)


@pytest.mark.asyncio
async def test_clear_cart_releases_everything(async_db_session, make_product, read_stock):
    first = make_product(stock=5)
    second = make_product(stock=5)
    actor = _guest()
    cart = await cart_service.get_or_create_cart(async_db_session, actor)
    await cart_service.add_item(async_db_session, cart, first.id, 2, actor=actor)
    await cart_service.add_item(async_db_session, cart, second.id, 3, actor=actor)

    await cart_service.clear_cart(async_db_session, cart, actor=actor)
    await async_db_session.commit()

    assert cart.items == []
    assert await read_stock(first.id) == (5, 0, 5)
    assert await read_stock(second.id) == (5, 0, 5)


@pytest.mark.asyncio
async def test_one_active_cart_per_owner(async_db_session):
    actor = ActorContext(user_id=uuid.uuid4())
    first = await cart_service.get_or_create_cart(async_db_session, actor)
    second = await cart_service.get_or_create_cart(async_db_session, actor)
    assert first.id == second.id


# --- Coupons on the cart ---

@pytest.mark.asyncio
async def test_percentage_coupon_discounts_the_total(async_db_session, make_product, make_coupon):
    product = make_product(price="100.00", weight="0")
    coupon = make_coupon("TENOFF", value="10", max_discount=Decimal("15"))
    actor = _guest()
    cart = await cart_service.get_or_create_cart(async_db_session, actor)
    await cart_service.add_item(async_db_session, cart, product.id, 2, actor=actor)

    await cart_service.apply_coupon(async_db_session, cart, "tenoff", actor)

    assert cart.discount_amount == Decimal("15.00")
    assert cart.total_amount == Decimal("230.00")
    assert [applied.code for applied in cart.coupons] == [coupon.code]

    with pytest.raises(CouponAlreadyAppliedError):
        await cart_service.apply_coupon(async_db_session, cart, "TENOFF", actor)


@pytest.mark.asyncio
async def test_free_shipping_coupon_waives_shipping(async_db_session, make_product, make_coupon):
    product = make_product(price="10.00", weight="3.000")
    make_coupon("SHIPFREE", coupon_type=CouponType.free_shipping, value="0")
    actor = _guest()
    cart = await cart_service.get_or_create_cart(async_db_session, actor)
    await cart_service.add_item(async_db_session, cart, product.id, 1, actor=actor)
    assert cart.shipping_cost == Decimal("21.00")

    await cart_service.apply_coupon(async_db_session, cart, "SHIPFREE", actor)
    assert cart.shipping_cost == Decimal("0.00")

    await cart_service.remove_coupon(async_db_session, cart, "shipfree")
    assert cart.shipping_cost == Decimal("21.00")


# --- Validation ---

@pytest.mark.asyncio
async def test_validate_stock_counts_units_held_by_the_line(async_db_session, make_product):
    product = make_product(stock=3)
    actor = _guest()
    cart = await cart_service.get_or_create_cart(async_db_session, actor)
    await cart_service.add_item(async_db_session, cart, product.id, 3, actor=actor)

    assert await cart_service.validate_stock(async_db_session, cart) == []
    assert await cart_service.can_be_ordered(async_db_session, cart) is True


@pytest.mark.asyncio
async def test_validate_stock_reports_issue_codes(async_db_session, db_session, make_product):
    short = make_product(stock=2)
    gone = make_product(stock=0)
    retired = make_product(stock=5)
    actor = _guest()
    cart = await cart_service.get_or_create_cart(async_db_session, actor)
    for product, qty in ((short, 4), (gone, 1), (retired, 1)):
        cart.items.append(
            CartItem(product_id=product.id, quantity=qty, price=Decimal("1.00"), reserved_quantity=0)
        )
    await async_db_session.commit()

    retired.active = False
    db_session.commit()

    issues = {issue.product_id: issue for issue in await cart_service.validate_stock(async_db_session, cart)}

    assert issues[short.id].code == StockIssueCode.insufficient_quantity
    assert issues[short.id].available == 2
    assert issues[gone.id].code == StockIssueCode.out_of_stock
    assert issues[retired.id].code == StockIssueCode.product_unavailable
    assert issues[short.id].to_dict()["code"] == "insufficient_quantity"
    assert await cart_service.can_be_ordered(async_db_session, cart) is False


# --- Lifecycle ---

@pytest.mark.asyncio
async def test_merge_moves_guest_lines_and_reservations(async_db_session, make_product, read_stock):
    product = make_product(stock=10)
    other = make_product(stock=10)
    guest = _guest("guest-merge")
    user = ActorContext(user_id=uuid.uuid4())
    db = async_db_session

    guest_cart = await cart_service.get_or_create_cart(db, guest)
    await cart_service.add_item(db, guest_cart, product.id, 2, actor=guest)
    user_cart = await cart_service.get_or_create_cart(db, user)
    await cart_service.add_item(db, user_cart, product.id, 1, actor=user)
    await cart_service.add_item(db, user_cart, other.id, 1, actor=user)

    merged = await cart_service.merge_carts(db, user_cart, guest_cart, actor=user)
    await db.commit()

    quantities = {item.product_id: (item.quantity, item.reserved_quantity) for item in merged.items}
    assert quantities == {product.id: (3, 3), other.id: (1, 1)}
    assert await cart_service.get_active_cart(db, guest) is None
    assert await read_stock(product.id) == (10, 3, 7)


@pytest.mark.asyncio
async def test_abandoned_cart_gives_stock_back(async_db_session, make_product, read_stock):
    product = make_product(stock=4)
    actor = _guest()
    cart = await cart_service.get_or_create_cart(async_db_session, actor)
    await cart_service.add_item(async_db_session, cart, product.id, 4, actor=actor)

    await cart_service.abandon_cart(async_db_session, cart, actor=actor)
    await async_db_session.commit()

    assert cart.status == CartStatus.abandoned
    assert await read_stock(product.id) == (4, 0, 4)
    with pytest.raises(InvalidStateTransitionError):
        await cart_service.add_item(async_db_session, cart, product.id, 1, actor=actor)


@pytest.mark.asyncio
async def test_expire_stale_carts_only_touches_idle_carts(make_product, read_stock):
    product = make_product(stock=6)
    actor = _guest()
    async with AsyncSessionLocal() as db:
        cart = await cart_service.get_or_create_cart(db, actor)
        await cart_service.add_item(db, cart, product.id, 2, actor=actor)
        await db.commit()
        cart_id = cart.id

    async with AsyncSessionLocal() as db:
        assert await cart_service.expire_stale_carts(db, 24) == 0
        later = datetime.now(timezone.utc) + timedelta(hours=25)
        assert await cart_service.expire_stale_carts(db, 24, now=later) == 1
        await db.commit()

    async with AsyncSessionLocal() as db:
        expired = await db.get(Cart, cart_id)
        assert expired.status == CartStatus.expired
        assert all(item.reserved_quantity == 0 for item in expired.items)
    assert await read_stock(product.id) == (6, 0, 6)
