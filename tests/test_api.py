import uuid

import pytest

from storefront.api.error_handlers import status_for
from storefront.services.exceptions import (
    ConcurrentModificationError,
    CouponExpiredError,
    InsufficientReservationError,
    InsufficientStockError,
    ResourceNotFoundError,
    ServiceError,
)

API = "/api/v1"


def _guest_headers(session_id: str | None = None) -> dict[str, str]:
    return {"X-Session-Id": session_id or f"sess-{uuid.uuid4().hex[:8]}"}


@pytest.mark.asyncio
async def test_create_cart_then_fetch_existing(client):
    headers = _guest_headers()

    created = await client.post(f"{API}/cart", headers=headers)
    again = await client.post(f"{API}/cart", headers=headers)

    assert created.status_code == 201
    assert again.status_code == 200
    assert created.json()["id"] == again.json()["id"]
    assert created.json()["status"] == "active"
    assert created.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_cart_requires_a_caller(client):
    response = await client.get(f"{API}/cart")
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_invalid_user_header_is_rejected(client):
    response = await client.get(f"{API}/cart", headers={"X-User-Id": "not-a-uuid"})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_add_items_and_validate(client, make_product):
    product = make_product(stock=10, price="100.00", weight="1.500")
    headers = _guest_headers()

    response = await client.post(
        f"{API}/cart/items", json={"product_id": str(product.id), "quantity": 2}, headers=headers
    )
    assert response.status_code == 201
    body = response.json()
    assert body["subtotal"] == "200.00"
    assert body["total_amount"] == "251.00"
    assert body["items"][0]["reserved_quantity"] == 2

    validation = await client.get(f"{API}/cart/validation", headers=headers)
    assert validation.json() == {"can_be_ordered": True, "issues": []}


@pytest.mark.asyncio
async def test_over_adding_reports_insufficient_stock(client, make_product):
    product = make_product(stock=1)

    response = await client.post(
        f"{API}/cart/items", json={"product_id": str(product.id), "quantity": 2}, headers=_guest_headers()
    )

    assert response.status_code == 409
    assert response.json()["code"] == "insufficient_stock"
    assert response.json()["context"]["available"] == 1


@pytest.mark.asyncio
async def test_zero_quantity_is_rejected_by_the_schema(client, make_product):
    product = make_product()
    response = await client.post(
        f"{API}/cart/items", json={"product_id": str(product.id), "quantity": 0}, headers=_guest_headers()
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unknown_coupon_is_not_found(client, make_product):
    product = make_product()
    headers = _guest_headers()
    await client.post(f"{API}/cart/items", json={"product_id": str(product.id), "quantity": 1}, headers=headers)

    response = await client.post(f"{API}/cart/coupons", json={"code": "GHOST"}, headers=headers)

    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


@pytest.mark.asyncio
async def test_below_minimum_coupon_is_unprocessable(client, make_product, make_coupon):
    product = make_product(price="10.00")
    make_coupon("BIGSPEND", min_amount=500)
    headers = _guest_headers()
    await client.post(f"{API}/cart/items", json={"product_id": str(product.id), "quantity": 1}, headers=headers)

    response = await client.post(f"{API}/cart/coupons", json={"code": "bigspend"}, headers=headers)

    assert response.status_code == 422
    assert response.json()["code"] == "below_minimum"


@pytest.mark.asyncio
async def test_place_and_fetch_order(client, make_product):
    product = make_product(stock=5, price="20.00", weight="0")
    headers = {"X-User-Id": str(uuid.uuid4())}
    cart = await client.post(
        f"{API}/cart/items", json={"product_id": str(product.id), "quantity": 2}, headers=headers
    )

    placed = await client.post(f"{API}/orders", json={"cart_id": cart.json()["id"]}, headers=headers)
    assert placed.status_code == 201
    order = placed.json()
    assert order["status"] == "pending"
    assert order["subtotal"] == "40.00"

    fetched = await client.get(f"{API}/orders/{order['id']}", headers=headers)
    assert fetched.status_code == 200
    assert fetched.json()["order_number"] == order["order_number"]

    hidden = await client.get(f"{API}/orders/{order['id']}", headers={"X-User-Id": str(uuid.uuid4())})
    assert hidden.status_code == 404

    stock = await client.get(f"{API}/inventory/products/{product.id}/stock")
    assert stock.json()["stock_quantity"] == 3


@pytest.mark.asyncio
async def test_delivering_a_pending_order_conflicts(client, make_product):
    product = make_product()
    headers = _guest_headers()
    cart = await client.post(
        f"{API}/cart/items", json={"product_id": str(product.id), "quantity": 1}, headers=headers
    )
    order = (await client.post(f"{API}/orders", json={"cart_id": cart.json()["id"]}, headers=headers)).json()

    response = await client.post(f"{API}/orders/{order['id']}/deliver", headers=headers)

    assert response.status_code == 409
    assert response.json()["code"] == "invalid_state_transition"


@pytest.mark.asyncio
async def test_stock_endpoints_keep_counters_balanced(client, make_product):
    product = make_product(stock=4)

    reserved = await client.post(f"{API}/inventory/products/{product.id}/reserve", json={"quantity": 3})
    assert reserved.status_code == 200
    assert reserved.json()["available_quantity"] == 1

    cached = await client.get(f"{API}/inventory/products/{product.id}/stock")
    released = await client.post(f"{API}/inventory/products/{product.id}/release", json={"quantity": 3})
    fresh = await client.get(f"{API}/inventory/products/{product.id}/stock")

    assert cached.json()["reserved_quantity"] == 3
    assert released.json()["reserved_quantity"] == 0
    assert fresh.json()["reserved_quantity"] == 0


@pytest.mark.asyncio
async def test_cart_changes_refresh_cached_stock(client, make_product):
    product = make_product(stock=6)
    headers = _guest_headers()
    stock_url = f"{API}/inventory/products/{product.id}/stock"

    assert (await client.get(stock_url)).json()["reserved_quantity"] == 0
    cart = await client.post(
        f"{API}/cart/items", json={"product_id": str(product.id), "quantity": 2}, headers=headers
    )
    assert (await client.get(stock_url)).json()["reserved_quantity"] == 2

    item_id = cart.json()["items"][0]["id"]
    await client.delete(f"{API}/cart/items/{item_id}", headers=headers)
    assert (await client.get(stock_url)).json()["reserved_quantity"] == 0


@pytest.mark.asyncio
async def test_manual_movement_round_trip(client, make_product):
    product = make_product(stock=2)

    created = await client.post(
        f"{API}/inventory/movements",
        json={"product_id": str(product.id), "movement_type": "in", "quantity": 8, "reason": "delivery"},
    )
    assert created.status_code == 201
    assert created.json()["status"] == "pending"

    approved = await client.post(f"{API}/inventory/movements/{created.json()['id']}/approve")
    assert approved.json()["status"] == "approved"

    stock = await client.get(f"{API}/inventory/products/{product.id}/stock")
    assert stock.json()["stock_quantity"] == 10


@pytest.mark.asyncio
async def test_valid_coupons_listing(client, make_coupon):
    make_coupon("LIVE")
    make_coupon("DEAD", is_active=False)

    response = await client.get(f"{API}/coupons/valid")

    assert response.json() == ["LIVE"]


@pytest.mark.asyncio
async def test_metrics_endpoint(client):
    await client.get("/")
    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "text/plain" in response.headers["content-type"]


def test_error_status_table():
    assert status_for(ResourceNotFoundError("missing")) == 404
    assert status_for(CouponExpiredError("expired")) == 422
    assert status_for(InsufficientStockError("short")) == 409
    assert status_for(InsufficientReservationError("short")) == 409
    assert status_for(ConcurrentModificationError("stale")) == 409
    assert status_for(ServiceError("other")) == 400
