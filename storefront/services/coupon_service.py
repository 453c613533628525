from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core import cache
from storefront.core.logging import get_logger
from storefront.core.metrics import record_coupon_rejection
from storefront.db.operations import conditional_update, flush_async
from storefront.domain.context import ActorContext
from storefront.domain.enums import CouponRejection, CouponType, OrderStatus, PaymentStatus
from storefront.domain.money import ZERO, quantize, to_decimal
from storefront.models.cart import Cart
from storefront.models.coupon import Coupon, CouponUsage
from storefront.models.customer import Customer
from storefront.models.order import Order
from storefront.models.product import Product
from storefront.schemas.coupon import CouponCreate
from storefront.services.exceptions import (
    ConflictError,
    CouponExhaustedError,
    DomainValidationError,
    ResourceNotFoundError,
)

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime | None) -> datetime | None:
    # SQLite hands timestamps back without tzinfo; they are stored in UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def _ids(values: Iterable | None) -> set[str]:
    return {str(value) for value in (values or [])}


# --- Pure rules ---

def _window_open(coupon: Coupon, now: datetime) -> bool:
    starts_at = _aware(coupon.starts_at)
    expires_at = _aware(coupon.expires_at)
    if starts_at is not None and starts_at > now:
        return False
    if expires_at is not None and expires_at < now:
        return False
    return True


def _exhausted(coupon: Coupon) -> bool:
    return coupon.usage_limit is not None and (coupon.used_count or 0) >= coupon.usage_limit


def is_currently_valid(coupon: Coupon, now: datetime | None = None) -> bool:
    """Active, inside its validity window and not used up."""
    now = now or _utcnow()
    return bool(coupon.is_active) and _window_open(coupon, now) and not _exhausted(coupon)


def calculate_discount(coupon: Coupon, subtotal) -> Decimal:
    """Discount granted by one coupon on ``subtotal``.

    Shipping waivers are handled by the cart totals, so free-shipping and
    buy-one-get-one coupons contribute nothing here.
    """
    subtotal = to_decimal(subtotal)
    if subtotal <= 0:
        return ZERO

    value = to_decimal(coupon.value)
    if coupon.type == CouponType.percentage:
        discount = subtotal * value / Decimal(100)
        if coupon.max_discount is not None and to_decimal(coupon.max_discount) > 0:
            discount = min(discount, to_decimal(coupon.max_discount))
    elif coupon.type == CouponType.fixed:
        discount = min(value, subtotal)
    else:
        discount = ZERO

    return quantize(max(min(discount, subtotal), ZERO))


def combine_discounts(coupons: Iterable[Coupon], subtotal) -> Decimal:
    """Sum of every coupon's discount, capped at the subtotal."""
    subtotal = to_decimal(subtotal)
    total = sum((calculate_discount(coupon, subtotal) for coupon in coupons), ZERO)
    return quantize(max(min(total, subtotal), ZERO))


def waives_shipping(coupons: Iterable[Coupon]) -> bool:
    return any(coupon.type == CouponType.free_shipping for coupon in coupons)


def applies_to_product(coupon: Coupon, product: Product) -> bool:
    product_id = str(product.id)
    category_id = str(product.category_id) if product.category_id else None

    if product_id in _ids(coupon.excluded_products):
        return False
    applicable_products = _ids(coupon.applicable_products)
    if applicable_products and product_id not in applicable_products:
        return False
    if category_id and category_id in _ids(coupon.excluded_categories):
        return False
    applicable_categories = _ids(coupon.applicable_categories)
    if applicable_categories and category_id not in applicable_categories:
        return False
    return True


def _has_product_scope(coupon: Coupon) -> bool:
    return any(
        (
            coupon.applicable_products,
            coupon.excluded_products,
            coupon.applicable_categories,
            coupon.excluded_categories,
        )
    )


# --- Customer profile ---

@dataclass(frozen=True)
class CustomerProfile:
    user_id: uuid.UUID | None
    order_count: int = 0
    total_spent: Decimal = ZERO
    loyalty_level: int = 0

    @property
    def is_guest(self) -> bool:
        return self.user_id is None


async def get_customer_profile(db: AsyncSession, user_id: uuid.UUID | None) -> CustomerProfile:
    """Order count (non-cancelled orders), total spent (paid orders) and loyalty level."""
    if user_id is None:
        return CustomerProfile(user_id=None)

    order_count = await db.scalar(
        select(func.count(Order.id)).where(Order.user_id == user_id, Order.status != OrderStatus.cancelled)
    )
    total_spent = await db.scalar(
        select(func.coalesce(func.sum(Order.total_amount), 0)).where(
            Order.user_id == user_id, Order.payment_status == PaymentStatus.paid
        )
    )
    customer = await db.get(Customer, user_id)
    return CustomerProfile(
        user_id=user_id,
        order_count=int(order_count or 0),
        total_spent=quantize(total_spent),
        loyalty_level=customer.loyalty_level if customer else 0,
    )


async def count_user_usages(db: AsyncSession, coupon_id: uuid.UUID, user_id: uuid.UUID) -> int:
    result = await db.scalar(
        select(func.count(CouponUsage.id)).where(
            CouponUsage.coupon_id == coupon_id, CouponUsage.user_id == user_id
        )
    )
    return int(result or 0)


def _user_rejection(coupon: Coupon, profile: CustomerProfile) -> CouponRejection | None:
    user_id = str(profile.user_id) if profile.user_id else None

    applicable_users = _ids(coupon.applicable_users)
    if applicable_users and user_id not in applicable_users:
        return CouponRejection.not_eligible
    if user_id and user_id in _ids(coupon.excluded_users):
        return CouponRejection.not_eligible

    if coupon.new_users_only and profile.order_count > 0:
        return CouponRejection.not_eligible
    if coupon.first_time_only and profile.order_count > 1:
        return CouponRejection.not_eligible

    if coupon.loyalty_level_required and profile.loyalty_level < coupon.loyalty_level_required:
        return CouponRejection.not_eligible
    if coupon.minimum_order_count and profile.order_count < coupon.minimum_order_count:
        return CouponRejection.not_eligible

    minimum_spent = to_decimal(coupon.minimum_spent)
    maximum_spent = to_decimal(coupon.maximum_spent)
    if minimum_spent > 0 and profile.total_spent < minimum_spent:
        return CouponRejection.not_eligible
    if maximum_spent > 0 and profile.total_spent > maximum_spent:
        return CouponRejection.not_eligible
    return None


async def _cart_rejection(db: AsyncSession, coupon: Coupon, cart: Cart) -> CouponRejection | None:
    if any(applied.id == coupon.id for applied in cart.coupons):
        return CouponRejection.already_applied

    min_amount = to_decimal(coupon.min_amount)
    subtotal = sum((item.line_total for item in cart.items), ZERO)
    if min_amount > 0 and subtotal < min_amount:
        return CouponRejection.below_minimum

    if _has_product_scope(coupon):
        for item in cart.items:
            product = await db.get(Product, item.product_id)
            if product is not None and applies_to_product(coupon, product):
                break
        else:
            return CouponRejection.not_eligible
    return None


async def validate_coupon(
    db: AsyncSession,
    coupon: Coupon,
    actor: ActorContext,
    cart: Cart | None = None,
    *,
    now: datetime | None = None,
) -> tuple[bool, CouponRejection | None]:
    """Check a coupon for this actor and cart, returning the first failing reason."""
    now = now or _utcnow()
    reason: CouponRejection | None = None

    if not coupon.is_active or not _window_open(coupon, now):
        reason = CouponRejection.expired
    elif _exhausted(coupon):
        reason = CouponRejection.exhausted
    elif (
        actor.user_id is not None
        and coupon.per_user_limit
        and await count_user_usages(db, coupon.id, actor.user_id) >= coupon.per_user_limit
    ):
        reason = CouponRejection.exhausted
    else:
        profile = await get_customer_profile(db, actor.user_id)
        reason = _user_rejection(coupon, profile)
        if reason is None and cart is not None:
            reason = await _cart_rejection(db, coupon, cart)

    if reason is not None:
        record_coupon_rejection(reason.value)
        logger.info("Coupon rejected", extra={"coupon_code": coupon.code, "reason": reason.value})
        return False, reason
    return True, None


# --- Persistence ---

async def get_coupon_by_code(db: AsyncSession, code: str) -> Coupon:
    result = await db.execute(select(Coupon).where(Coupon.code == normalize_code(code)))
    coupon = result.scalars().first()
    if not coupon:
        raise ResourceNotFoundError("Coupon not found", code=normalize_code(code))
    return coupon


async def create_coupon(db: AsyncSession, payload: CouponCreate) -> Coupon:
    data = payload.model_dump()
    data["code"] = normalize_code(data["code"])
    if payload.type == CouponType.percentage and payload.value > 100:
        raise DomainValidationError("Percentage coupons cannot exceed 100", value=str(payload.value))
    for field in (
        "applicable_products",
        "excluded_products",
        "applicable_categories",
        "excluded_categories",
        "applicable_users",
        "excluded_users",
    ):
        if data.get(field) is not None:
            data[field] = [str(value) for value in data[field]]

    coupon = Coupon(**data)
    db.add(coupon)
    try:
        await flush_async(db, coupon)
    except IntegrityError as exc:
        raise ConflictError("Coupon code already exists", code=data["code"]) from exc
    return coupon


async def valid_coupon_codes(db: AsyncSession) -> list[str]:
    cached = cache.get_cache().get(cache.VALID_COUPONS_KEY)
    if cached is not None:
        return cached["codes"]

    now = _utcnow()
    result = await db.execute(
        select(Coupon)
        .where(
            Coupon.is_active.is_(True),
            or_(Coupon.usage_limit.is_(None), Coupon.used_count < Coupon.usage_limit),
        )
        .order_by(Coupon.code)
    )
    codes = [coupon.code for coupon in result.scalars().all() if _window_open(coupon, now)]
    cache.get_cache().set(cache.VALID_COUPONS_KEY, {"codes": codes})
    return codes


async def redeem_coupon(
    db: AsyncSession,
    coupon: Coupon,
    *,
    user_id: uuid.UUID | None,
    order_id: uuid.UUID | None,
    discount_amount,
) -> CouponUsage:
    """Consume one use of ``coupon``.

    The ``used_count`` increment is conditional on the usage limit, so two
    checkouts cannot both take the last use.
    """
    redeemed = await conditional_update(
        db,
        Coupon,
        coupon.id,
        or_(Coupon.usage_limit.is_(None), Coupon.used_count < Coupon.usage_limit),
        used_count=Coupon.used_count + 1,
    )
    if not redeemed:
        record_coupon_rejection(CouponRejection.exhausted.value)
        raise CouponExhaustedError("Coupon usage limit reached", code=coupon.code)

    usage = CouponUsage(
        coupon_id=coupon.id,
        user_id=user_id,
        order_id=order_id,
        discount_amount=quantize(discount_amount),
    )
    db.add(usage)
    await flush_async(db, usage)
    await db.refresh(coupon, attribute_names=["used_count"])
    return usage
