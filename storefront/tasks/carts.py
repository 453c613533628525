from __future__ import annotations

import asyncio

from storefront.core.celery_app import celery_app
from storefront.core.logging import get_logger, log_context
from storefront.db.session_async import AsyncSessionLocal
from storefront.services import cart_service

logger = get_logger(__name__)


async def _expire(hours: int | None) -> int:
    async with AsyncSessionLocal() as session:
        count = await cart_service.expire_stale_carts(session, hours)
        await session.commit()
        return count


@celery_app.task(name="carts.expire_stale")
def expire_stale_carts(hours: int | None = None) -> int:
    """Expire idle carts and hand their reservations back to the catalog."""
    with log_context(task="carts.expire_stale"):
        count = asyncio.run(_expire(hours))
        logger.info("Cart expiry sweep finished", extra={"expired": count})
    return count
