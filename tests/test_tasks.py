import json
import logging
from datetime import datetime, timedelta, timezone

from storefront.core.logging import StorefrontJsonFormatter, current_log_context, log_context
from storefront.domain.enums import CartStatus
from storefront.models.cart import Cart
from storefront.tasks.carts import expire_stale_carts


def _cart(db_session, *, idle_hours: int, session_id: str) -> Cart:
    cart = Cart(
        session_id=session_id,
        status=CartStatus.active,
        updated_at=datetime.now(timezone.utc) - timedelta(hours=idle_hours),
        items=[],
        coupons=[],
    )
    db_session.add(cart)
    db_session.commit()
    return cart


def test_expire_task_only_sweeps_idle_carts(db_session):
    idle = _cart(db_session, idle_hours=30, session_id="idle")
    fresh = _cart(db_session, idle_hours=1, session_id="fresh")

    assert expire_stale_carts(hours=24) == 1

    assert db_session.get(Cart, idle.id, populate_existing=True).status == CartStatus.expired
    assert db_session.get(Cart, fresh.id, populate_existing=True).status == CartStatus.active


def test_log_context_is_scoped_and_rendered():
    record = logging.makeLogRecord({"name": "storefront.test", "levelname": "INFO", "msg": "Cart merged"})
    record.cart_id = "abc"

    with log_context(request_id="req-1", user_id=None):
        assert current_log_context() == {"request_id": "req-1"}
        payload = json.loads(StorefrontJsonFormatter().format(record))

    assert current_log_context() == {}
    assert payload["event"] == "Cart merged"
    assert payload["request_id"] == "req-1"
    assert payload["fields"] == {"cart_id": "abc"}
