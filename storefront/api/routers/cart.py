from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import require_actor, require_user
from storefront.core import cache
from storefront.db.operations import commit_async
from storefront.db.session_async import get_async_db
from storefront.domain.context import ActorContext
from storefront.models.cart import Cart
from storefront.schemas.cart import (
    CartItemCreate,
    CartItemUpdate,
    CartMergeRequest,
    CartRead,
    CartValidationRead,
)
from storefront.schemas.coupon import ApplyCouponRequest
from storefront.services import cart_service

router = APIRouter(prefix="/cart", tags=["cart"])


async def _active_cart(db: AsyncSession, actor: ActorContext) -> Cart:
    cart = await cart_service.get_active_cart(db, actor)
    if not cart:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Cart not found")
    return cart


async def _commit(db: AsyncSession, cart: Cart, touched: list[str] | None = None) -> Cart:
    await commit_async(db)
    cache.invalidate(*(touched or []), *cache.stock_keys(cart.items))
    return cart


@router.post("", response_model=CartRead, status_code=status.HTTP_201_CREATED)
async def create_or_get_cart(
    response: Response,
    db: AsyncSession = Depends(get_async_db),
    actor: ActorContext = Depends(require_actor),
):
    existing = await cart_service.get_active_cart(db, actor)
    if existing:
        response.status_code = status.HTTP_200_OK
        return existing
    cart = await cart_service.get_or_create_cart(db, actor)
    return await _commit(db, cart)


@router.get("", response_model=CartRead)
async def get_cart(
    db: AsyncSession = Depends(get_async_db),
    actor: ActorContext = Depends(require_actor),
):
    return await _active_cart(db, actor)


@router.get("/validation", response_model=CartValidationRead)
async def validate_cart(
    db: AsyncSession = Depends(get_async_db),
    actor: ActorContext = Depends(require_actor),
):
    cart = await _active_cart(db, actor)
    issues = await cart_service.validate_stock(db, cart)
    return CartValidationRead(
        can_be_ordered=bool(cart.items) and not issues,
        issues=[issue.to_dict() for issue in issues],
    )


@router.post("/items", response_model=CartRead, status_code=status.HTTP_201_CREATED)
async def add_cart_item(
    item: CartItemCreate,
    db: AsyncSession = Depends(get_async_db),
    actor: ActorContext = Depends(require_actor),
):
    cart = await cart_service.get_or_create_cart(db, actor)
    cart = await cart_service.add_item(
        db, cart, item.product_id, item.quantity, item.options, item.variant_id, actor=actor
    )
    return await _commit(db, cart)


@router.patch("/items/{item_id}", response_model=CartRead)
async def update_cart_item(
    item_id: uuid.UUID,
    payload: CartItemUpdate,
    db: AsyncSession = Depends(get_async_db),
    actor: ActorContext = Depends(require_actor),
):
    cart = await _active_cart(db, actor)
    cart = await cart_service.update_item(db, cart, item_id, payload.quantity, payload.options, actor=actor)
    return await _commit(db, cart)


@router.delete("/items/{item_id}", response_model=CartRead)
async def remove_cart_item(
    item_id: uuid.UUID,
    db: AsyncSession = Depends(get_async_db),
    actor: ActorContext = Depends(require_actor),
):
    cart = await _active_cart(db, actor)
    touched = cache.stock_keys(cart.items)
    cart = await cart_service.remove_item(db, cart, item_id, actor=actor)
    return await _commit(db, cart, touched)


@router.delete("", response_model=CartRead)
async def clear_cart(
    db: AsyncSession = Depends(get_async_db),
    actor: ActorContext = Depends(require_actor),
):
    cart = await _active_cart(db, actor)
    touched = cache.stock_keys(cart.items)
    cart = await cart_service.clear_cart(db, cart, actor=actor)
    return await _commit(db, cart, touched)


@router.post("/coupons", response_model=CartRead)
async def apply_coupon(
    payload: ApplyCouponRequest,
    db: AsyncSession = Depends(get_async_db),
    actor: ActorContext = Depends(require_actor),
):
    cart = await _active_cart(db, actor)
    cart = await cart_service.apply_coupon(db, cart, payload.code, actor)
    return await _commit(db, cart)


@router.delete("/coupons/{code}", response_model=CartRead)
async def remove_coupon(
    code: str,
    db: AsyncSession = Depends(get_async_db),
    actor: ActorContext = Depends(require_actor),
):
    cart = await _active_cart(db, actor)
    cart = await cart_service.remove_coupon(db, cart, code)
    return await _commit(db, cart)


@router.post("/merge", response_model=CartRead)
async def merge_guest_cart(
    payload: CartMergeRequest,
    db: AsyncSession = Depends(get_async_db),
    actor: ActorContext = Depends(require_user),
):
    """Fold the guest cart of ``source_session_id`` into the user's cart."""
    source = await cart_service.get_active_cart(db, ActorContext(session_id=payload.source_session_id))
    target = await cart_service.get_or_create_cart(db, actor)
    if source is None:
        return await _commit(db, target)
    cart = await cart_service.merge_carts(db, target, source, actor=actor)
    return await _commit(db, cart)


@router.post("/abandon", response_model=CartRead)
async def abandon_cart(
    db: AsyncSession = Depends(get_async_db),
    actor: ActorContext = Depends(require_actor),
):
    cart = await _active_cart(db, actor)
    cart = await cart_service.abandon_cart(db, cart, actor=actor)
    return await _commit(db, cart)
