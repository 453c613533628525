# storefront/domain/enums.py
import enum


class CartStatus(str, enum.Enum):
    active = "active"
    converted = "converted"
    abandoned = "abandoned"
    expired = "expired"


class OrderStatus(str, enum.Enum):
    pending = "pending"
    confirmed = "confirmed"
    processing = "processing"
    shipped = "shipped"
    delivered = "delivered"
    cancelled = "cancelled"
    refunded = "refunded"


class OrderItemStatus(str, enum.Enum):
    pending = "pending"
    confirmed = "confirmed"
    processing = "processing"
    shipped = "shipped"
    delivered = "delivered"
    cancelled = "cancelled"
    returned = "returned"
    refunded = "refunded"


class PaymentStatus(str, enum.Enum):
    pending = "pending"
    partial = "partial"
    paid = "paid"
    failed = "failed"
    refunded = "refunded"


class RefundStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    processing = "processing"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"


class ShipmentStatus(str, enum.Enum):
    pending = "pending"
    processing = "processing"
    shipped = "shipped"
    in_transit = "in_transit"
    out_for_delivery = "out_for_delivery"
    delivered = "delivered"
    failed = "failed"
    returned = "returned"
    cancelled = "cancelled"


class CouponType(str, enum.Enum):
    percentage = "percentage"
    fixed = "fixed"
    free_shipping = "free_shipping"
    buy_one_get_one = "buy_one_get_one"


class CouponRejection(str, enum.Enum):
    expired = "expired"
    exhausted = "exhausted"
    not_eligible = "not_eligible"
    already_applied = "already_applied"
    below_minimum = "below_minimum"


class StockIssueCode(str, enum.Enum):
    product_not_found = "product_not_found"
    product_unavailable = "product_unavailable"
    out_of_stock = "out_of_stock"
    insufficient_quantity = "insufficient_quantity"


class MovementStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


class MovementType(str, enum.Enum):
    # manual
    stock_in = "in"
    stock_out = "out"
    adjustment = "adjustment"
    transfer = "transfer"
    return_ = "return"
    damaged = "damaged"
    expired = "expired"
    lost = "lost"
    found = "found"
    # system
    reserve = "reserve"
    release = "release"
    sale = "sale"
    restock = "restock"

    @property
    def is_system(self) -> bool:
        return self in SYSTEM_MOVEMENTS


SYSTEM_MOVEMENTS = frozenset(
    {MovementType.reserve, MovementType.release, MovementType.sale, MovementType.restock}
)


class EarningStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    paid = "paid"
    cancelled = "cancelled"
    disputed = "disputed"


class DocumentStatus(str, enum.Enum):
    draft = "draft"
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    published = "published"
    archived = "archived"
    expired = "expired"


class ReportStatus(str, enum.Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"
    expired = "expired"


class ScheduleStatus(str, enum.Enum):
    available = "available"
    booked = "booked"
    busy = "busy"
    off = "off"
    holiday = "holiday"
    sick = "sick"
    maintenance = "maintenance"
