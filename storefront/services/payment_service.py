from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.logging import get_logger
from storefront.db.operations import flush_async
from storefront.domain import state_machines
from storefront.domain.enums import OrderStatus, PaymentStatus, RefundStatus
from storefront.domain.money import ZERO, quantize, to_decimal
from storefront.models.order import Order, Payment, Refund
from storefront.services.exceptions import (
    InvalidQuantityError,
    InvalidStateTransitionError,
    ResourceNotFoundError,
)

logger = get_logger(__name__)

_CLOSED_ORDERS = frozenset({OrderStatus.cancelled, OrderStatus.refunded})


def amount_paid(order: Order) -> Decimal:
    return quantize(
        sum((to_decimal(p.amount) for p in order.payments if p.status == PaymentStatus.paid), ZERO)
    )


def _move_payment_status(order: Order, target: PaymentStatus) -> None:
    if order.payment_status == target:
        return
    order.payment_status = state_machines.PAYMENT.ensure(order.payment_status, target)


async def record_payment(
    db: AsyncSession,
    order: Order,
    amount,
    method: str | None = None,
    transaction_id: str | None = None,
) -> Payment:
    """Register a completed capture and move the order to partial or paid."""
    amount = quantize(amount)
    if amount <= 0:
        raise InvalidQuantityError("Payment amount must be greater than 0.", amount=str(amount))
    if order.status in _CLOSED_ORDERS:
        raise InvalidStateTransitionError(
            "Closed orders cannot take payments", order_id=order.id, status=order.status.value
        )

    paid_so_far = amount_paid(order) + amount
    target = PaymentStatus.paid if paid_so_far >= to_decimal(order.total_amount) else PaymentStatus.partial
    _move_payment_status(order, target)

    payment = Payment(
        order_id=order.id,
        amount=amount,
        currency=order.currency,
        status=PaymentStatus.paid,
        method=method,
        transaction_id=transaction_id,
    )
    order.payments.append(payment)
    if target == PaymentStatus.paid:
        order.paid_at = datetime.now(timezone.utc)
    await flush_async(db)
    logger.info(
        "Payment recorded",
        extra={"order_id": str(order.id), "amount": str(amount), "payment_status": order.payment_status.value},
    )
    return payment


async def mark_payment_failed(db: AsyncSession, order: Order) -> Order:
    _move_payment_status(order, PaymentStatus.failed)
    await flush_async(db)
    return order


async def mark_payment_refunded(db: AsyncSession, order: Order) -> Order:
    _move_payment_status(order, PaymentStatus.refunded)
    await flush_async(db)
    return order


# --- Refunds ---

async def get_refund(db: AsyncSession, refund_id: uuid.UUID) -> Refund:
    refund = await db.get(Refund, refund_id)
    if not refund:
        raise ResourceNotFoundError("Refund not found", refund_id=refund_id)
    return refund


async def open_refund(db: AsyncSession, order: Order, amount, reason: str | None = None) -> Refund:
    refund = Refund(order_id=order.id, amount=quantize(amount), reason=reason, status=RefundStatus.pending)
    order.refunds.append(refund)
    await flush_async(db)
    return refund


async def transition_refund(db: AsyncSession, refund: Refund, target: RefundStatus) -> Refund:
    refund.status = state_machines.REFUND.ensure(refund.status, target)
    if target in (RefundStatus.completed, RefundStatus.failed):
        refund.processed_at = datetime.now(timezone.utc)
    await flush_async(db)
    return refund


async def approve_refund(db: AsyncSession, refund: Refund) -> Refund:
    return await transition_refund(db, refund, RefundStatus.approved)


async def reject_refund(db: AsyncSession, refund: Refund) -> Refund:
    return await transition_refund(db, refund, RefundStatus.rejected)


async def cancel_refund(db: AsyncSession, refund: Refund) -> Refund:
    return await transition_refund(db, refund, RefundStatus.cancelled)


async def process_refund(db: AsyncSession, refund: Refund) -> Refund:
    return await transition_refund(db, refund, RefundStatus.processing)


async def complete_refund(db: AsyncSession, refund: Refund) -> Refund:
    return await transition_refund(db, refund, RefundStatus.completed)


async def fail_refund(db: AsyncSession, refund: Refund) -> Refund:
    return await transition_refund(db, refund, RefundStatus.failed)
