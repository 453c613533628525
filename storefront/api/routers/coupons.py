from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import get_actor
from storefront.core import cache
from storefront.db.operations import commit_async
from storefront.db.session_async import get_async_db
from storefront.domain.context import ActorContext
from storefront.domain.money import ZERO
from storefront.schemas.coupon import CouponCreate, CouponRead, CouponValidation
from storefront.services import cart_service, coupon_service

router = APIRouter(prefix="/coupons", tags=["coupons"])


@router.post("", response_model=CouponRead, status_code=status.HTTP_201_CREATED)
async def create_coupon(payload: CouponCreate, db: AsyncSession = Depends(get_async_db)):
    coupon = await coupon_service.create_coupon(db, payload)
    await commit_async(db)
    cache.invalidate(cache.VALID_COUPONS_KEY)
    return coupon


@router.get("/valid", response_model=list[str])
async def list_valid_codes(db: AsyncSession = Depends(get_async_db)):
    return await coupon_service.valid_coupon_codes(db)


@router.get("/{code}/validate", response_model=CouponValidation)
async def validate_coupon(
    code: str,
    db: AsyncSession = Depends(get_async_db),
    actor: ActorContext = Depends(get_actor),
):
    """Dry-run a coupon against the caller and their active cart."""
    coupon = await coupon_service.get_coupon_by_code(db, code)
    cart = await cart_service.get_active_cart(db, actor)
    ok, reason = await coupon_service.validate_coupon(db, coupon, actor, cart)
    discount = ZERO
    if ok and cart is not None:
        discount = coupon_service.calculate_discount(coupon, cart.subtotal)
    return CouponValidation(code=coupon.code, valid=ok, reason=reason, discount=discount)
