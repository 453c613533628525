# storefront/services/exceptions.py
from __future__ import annotations

from typing import Any


class ServiceError(Exception):
    """Base class for service-layer errors.

    ``code`` is a language-neutral identifier the caller can localize;
    ``detail`` is a developer-facing message.
    """

    code = "service_error"

    def __init__(self, detail: str, **context: Any):
        self.detail = detail
        self.context = context
        super().__init__(detail)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "detail": self.detail}
        if self.context:
            payload["context"] = {key: _jsonable(value) for key, value in self.context.items()}
        return payload


def _jsonable(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


class DomainValidationError(ServiceError):
    """Invalid domain input."""

    code = "validation_error"


class InvalidQuantityError(DomainValidationError):
    """Raised when a quantity is zero or negative."""

    code = "invalid_quantity"


class ResourceNotFoundError(ServiceError):
    code = "not_found"


class ConflictError(ServiceError):
    """State conflict while executing the operation."""

    code = "conflict"


class InsufficientStockError(ConflictError):
    """Not enough free stock to satisfy the request."""

    code = "insufficient_stock"


class ProductUnavailableError(ConflictError):
    code = "product_unavailable"


class InvalidStateTransitionError(ConflictError):
    """A status guard was violated."""

    code = "invalid_state_transition"


class InsufficientReservationError(InvalidStateTransitionError):
    """Tried to deduct or release more stock than is reserved."""

    code = "insufficient_reservation"


class ConcurrentModificationError(ConflictError):
    """The row changed between being read and being written."""

    code = "concurrent_modification"


class CartInvalidError(ConflictError):
    """The cart cannot be turned into an order."""

    code = "cart_invalid"

    def __init__(self, detail: str, issues: list | None = None, **context: Any):
        self.issues = list(issues or [])
        super().__init__(detail, issues=self.issues, **context)


class CouponError(DomainValidationError):
    """Base class for coupon rejections."""

    code = "coupon_error"


class CouponExpiredError(CouponError):
    code = "expired"


class CouponExhaustedError(CouponError):
    code = "exhausted"


class CouponNotEligibleError(CouponError):
    code = "not_eligible"


class CouponAlreadyAppliedError(CouponError):
    code = "already_applied"


class CouponBelowMinimumError(CouponError):
    code = "below_minimum"


COUPON_ERRORS: dict[str, type[CouponError]] = {
    cls.code: cls
    for cls in (
        CouponExpiredError,
        CouponExhaustedError,
        CouponNotEligibleError,
        CouponAlreadyAppliedError,
        CouponBelowMinimumError,
    )
}


def coupon_error_for(reason: str, detail: str | None = None, **context: Any) -> CouponError:
    """Build the coupon error matching a rejection reason code."""
    reason = getattr(reason, "value", reason)
    error_cls = COUPON_ERRORS.get(reason, CouponError)
    return error_cls(detail or f"Coupon rejected: {reason}", **context)
