import pytest

from storefront.domain import state_machines
from storefront.domain.enums import (
    CartStatus,
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


@pytest.mark.parametrize(
    "current, target",
    [
        (OrderStatus.pending, OrderStatus.confirmed),
        (OrderStatus.confirmed, OrderStatus.shipped),
        (OrderStatus.processing, OrderStatus.shipped),
        (OrderStatus.shipped, OrderStatus.delivered),
        (OrderStatus.delivered, OrderStatus.refunded),
        (OrderStatus.cancelled, OrderStatus.refunded),
    ],
)
def test_order_allows_forward_moves(current, target):
    assert state_machines.ORDER.ensure(current, target) is target


@pytest.mark.parametrize(
    "current, target",
    [
        (OrderStatus.pending, OrderStatus.shipped),
        (OrderStatus.pending, OrderStatus.delivered),
        (OrderStatus.shipped, OrderStatus.cancelled),
        (OrderStatus.delivered, OrderStatus.pending),
        (OrderStatus.refunded, OrderStatus.pending),
    ],
)
def test_order_rejects_illegal_moves(current, target):
    with pytest.raises(InvalidStateTransitionError) as exc_info:
        state_machines.ORDER.ensure(current, target)
    assert exc_info.value.context == {"entity": "order", "current": current.value, "target": target.value}


def test_terminal_statuses_have_no_way_out():
    assert state_machines.ORDER.is_terminal(OrderStatus.refunded)
    assert state_machines.CART.is_terminal(CartStatus.converted)
    assert state_machines.PAYMENT.is_terminal(PaymentStatus.refunded)
    assert state_machines.REFUND.is_terminal(RefundStatus.completed)
    assert state_machines.MOVEMENT.is_terminal(MovementStatus.approved)
    assert not state_machines.CART.is_terminal(CartStatus.expired)


def test_abandoned_cart_can_be_revived():
    assert state_machines.CART.can(CartStatus.abandoned, CartStatus.active)
    assert not state_machines.CART.can(CartStatus.converted, CartStatus.active)


def test_items_only_return_after_delivery():
    assert state_machines.ORDER_ITEM.can(OrderItemStatus.delivered, OrderItemStatus.returned)
    assert not state_machines.ORDER_ITEM.can(OrderItemStatus.shipped, OrderItemStatus.returned)


def test_payment_cannot_skip_back_to_pending():
    assert state_machines.PAYMENT.can(PaymentStatus.partial, PaymentStatus.paid)
    assert not state_machines.PAYMENT.can(PaymentStatus.paid, PaymentStatus.pending)
    assert not state_machines.PAYMENT.can(PaymentStatus.failed, PaymentStatus.paid)


def test_refund_walks_approval_then_processing():
    assert state_machines.REFUND.allowed(RefundStatus.pending) == {
        RefundStatus.approved,
        RefundStatus.rejected,
        RefundStatus.cancelled,
    }
    assert not state_machines.REFUND.can(RefundStatus.pending, RefundStatus.completed)


def test_shipment_delivers_from_transit_states():
    for current in (ShipmentStatus.shipped, ShipmentStatus.in_transit, ShipmentStatus.out_for_delivery):
        assert state_machines.SHIPMENT.can(current, ShipmentStatus.delivered)
    assert not state_machines.SHIPMENT.can(ShipmentStatus.pending, ShipmentStatus.delivered)


def test_completed_report_can_be_regenerated():
    assert state_machines.REPORT.can(ReportStatus.completed, ReportStatus.pending)
    assert state_machines.REPORT.is_terminal(ReportStatus.expired)


def test_schedule_never_moves_to_the_same_unavailable_status():
    for status in (ScheduleStatus.busy, ScheduleStatus.off, ScheduleStatus.sick):
        allowed = state_machines.SCHEDULE.allowed(status)
        assert status not in allowed
        assert ScheduleStatus.available in allowed


def test_every_machine_is_registered_by_name():
    assert set(state_machines.MACHINES) == {
        "cart",
        "order",
        "order_item",
        "payment",
        "refund",
        "shipment",
        "inventory_movement",
        "earning",
        "document",
        "report",
        "schedule",
    }
