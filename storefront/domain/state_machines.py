# storefront/domain/state_machines.py
"""Table-driven status machines for every entity with a lifecycle.

Each table maps a status to the statuses it may move to. Terminal statuses
have no entry.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable, Mapping
from typing import Generic, TypeVar

from storefront.domain.enums import (
    CartStatus,
    DocumentStatus,
    EarningStatus,
    MovementStatus,
    OrderItemStatus,
    OrderStatus,
    PaymentStatus,
    RefundStatus,
    ReportStatus,
    ScheduleStatus,
    ShipmentStatus,
)
from storefront.services.exceptions import InvalidStateTransitionError

S = TypeVar("S", bound=enum.Enum)


class StateMachine(Generic[S]):
    def __init__(self, name: str, transitions: Mapping[S, Iterable[S]]) -> None:
        self.name = name
        self._transitions: dict[S, frozenset[S]] = {
            source: frozenset(targets) for source, targets in transitions.items()
        }

    def allowed(self, current: S) -> frozenset[S]:
        return self._transitions.get(current, frozenset())

    def can(self, current: S, target: S) -> bool:
        return target in self.allowed(current)

    def is_terminal(self, current: S) -> bool:
        return not self.allowed(current)

    def ensure(self, current: S, target: S) -> S:
        """Return ``target`` if the move is legal, raise otherwise."""
        if not self.can(current, target):
            raise InvalidStateTransitionError(
                f"{self.name} cannot move from {current.value} to {target.value}",
                entity=self.name,
                current=current.value,
                target=target.value,
            )
        return target


CART = StateMachine(
    "cart",
    {
        CartStatus.active: {CartStatus.converted, CartStatus.abandoned, CartStatus.expired},
        CartStatus.abandoned: {CartStatus.active, CartStatus.expired},
        CartStatus.expired: {CartStatus.active},
    },
)

ORDER = StateMachine(
    "order",
    {
        OrderStatus.pending: {OrderStatus.confirmed, OrderStatus.cancelled, OrderStatus.refunded},
        OrderStatus.confirmed: {
            OrderStatus.processing,
            OrderStatus.shipped,
            OrderStatus.cancelled,
            OrderStatus.refunded,
        },
        OrderStatus.processing: {OrderStatus.shipped, OrderStatus.refunded},
        OrderStatus.shipped: {OrderStatus.delivered, OrderStatus.refunded},
        OrderStatus.delivered: {OrderStatus.refunded},
        # a paid order that was cancelled can still be refunded
        OrderStatus.cancelled: {OrderStatus.refunded},
    },
)

ORDER_ITEM = StateMachine(
    "order_item",
    {
        OrderItemStatus.pending: {OrderItemStatus.confirmed, OrderItemStatus.cancelled},
        OrderItemStatus.confirmed: {
            OrderItemStatus.processing,
            OrderItemStatus.shipped,
            OrderItemStatus.cancelled,
        },
        OrderItemStatus.processing: {OrderItemStatus.shipped},
        OrderItemStatus.shipped: {OrderItemStatus.delivered},
        OrderItemStatus.delivered: {OrderItemStatus.returned, OrderItemStatus.refunded},
        OrderItemStatus.returned: {OrderItemStatus.refunded},
    },
)

PAYMENT = StateMachine(
    "payment",
    {
        PaymentStatus.pending: {PaymentStatus.partial, PaymentStatus.paid, PaymentStatus.failed},
        PaymentStatus.partial: {PaymentStatus.paid, PaymentStatus.failed},
        PaymentStatus.paid: {PaymentStatus.refunded},
    },
)

REFUND = StateMachine(
    "refund",
    {
        RefundStatus.pending: {RefundStatus.approved, RefundStatus.rejected, RefundStatus.cancelled},
        RefundStatus.approved: {RefundStatus.processing, RefundStatus.cancelled},
        RefundStatus.processing: {RefundStatus.completed, RefundStatus.failed},
    },
)

SHIPMENT = StateMachine(
    "shipment",
    {
        ShipmentStatus.pending: {
            ShipmentStatus.processing,
            ShipmentStatus.shipped,
            ShipmentStatus.cancelled,
        },
        ShipmentStatus.processing: {ShipmentStatus.shipped, ShipmentStatus.cancelled},
        ShipmentStatus.shipped: {
            ShipmentStatus.in_transit,
            ShipmentStatus.out_for_delivery,
            ShipmentStatus.delivered,
            ShipmentStatus.failed,
        },
        ShipmentStatus.in_transit: {
            ShipmentStatus.out_for_delivery,
            ShipmentStatus.delivered,
            ShipmentStatus.failed,
        },
        ShipmentStatus.out_for_delivery: {ShipmentStatus.delivered, ShipmentStatus.failed},
        ShipmentStatus.delivered: {ShipmentStatus.returned},
        ShipmentStatus.failed: {ShipmentStatus.returned},
    },
)

MOVEMENT = StateMachine(
    "inventory_movement",
    {
        MovementStatus.pending: {
            MovementStatus.approved,
            MovementStatus.rejected,
            MovementStatus.cancelled,
        },
    },
)

EARNING = StateMachine(
    "earning",
    {
        EarningStatus.pending: {EarningStatus.approved, EarningStatus.cancelled},
        EarningStatus.approved: {EarningStatus.paid, EarningStatus.cancelled},
        EarningStatus.paid: {EarningStatus.disputed},
    },
)

DOCUMENT = StateMachine(
    "document",
    {
        DocumentStatus.draft: {DocumentStatus.pending},
        DocumentStatus.pending: {DocumentStatus.approved, DocumentStatus.rejected},
        DocumentStatus.approved: {
            DocumentStatus.published,
            DocumentStatus.archived,
            DocumentStatus.expired,
        },
        DocumentStatus.published: {DocumentStatus.archived, DocumentStatus.expired},
        DocumentStatus.rejected: {DocumentStatus.draft},
    },
)

REPORT = StateMachine(
    "report",
    {
        ReportStatus.pending: {ReportStatus.processing, ReportStatus.cancelled},
        ReportStatus.processing: {
            ReportStatus.completed,
            ReportStatus.failed,
            ReportStatus.cancelled,
        },
        # regenerate
        ReportStatus.completed: {ReportStatus.pending, ReportStatus.expired},
        ReportStatus.failed: {ReportStatus.pending},
        ReportStatus.cancelled: {ReportStatus.pending},
    },
)

_UNAVAILABLE = (
    ScheduleStatus.busy,
    ScheduleStatus.off,
    ScheduleStatus.holiday,
    ScheduleStatus.sick,
    ScheduleStatus.maintenance,
)

SCHEDULE = StateMachine(
    "schedule",
    {
        ScheduleStatus.available: {ScheduleStatus.booked, *_UNAVAILABLE},
        ScheduleStatus.booked: {ScheduleStatus.available, *_UNAVAILABLE},
        **{status: {ScheduleStatus.available, *(s for s in _UNAVAILABLE if s is not status)} for status in _UNAVAILABLE},
    },
)

MACHINES: dict[str, StateMachine] = {
    machine.name: machine
    for machine in (
        CART,
        ORDER,
        ORDER_ITEM,
        PAYMENT,
        REFUND,
        SHIPMENT,
        MOVEMENT,
        EARNING,
        DOCUMENT,
        REPORT,
        SCHEDULE,
    )
}
