"""Persistence helpers for Payment rows.

Writes go through single ``UPDATE ... WHERE`` statements so each transition is
atomic at the row level; callers re-read the row afterwards.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Iterable

from sqlalchemy import case, cast, select, update
from sqlalchemy.orm import Session

from app.models import OPEN_PAYMENT_STATUSES, Order, Payment, PaymentStatus, RefundStatus
from app.services.psp_razorpay import GatewayOrder
from app.utils.audit import log_audit
from app.utils.errors import NotFound

logger = logging.getLogger(__name__)


def get_payment(db: Session, payment_id: int, *, user_id: int | None = None) -> Payment:
    """Return a payment by id, optionally scoped to its owner, or raise ``NotFound``."""

    stmt = select(Payment).where(Payment.id == payment_id)
    if user_id is not None:
        stmt = stmt.where(Payment.user_id == user_id)
    payment = db.scalars(stmt.execution_options(populate_existing=True)).first()
    if payment is None:
        raise NotFound("Payment not found", code="PAYMENT_NOT_FOUND")
    return payment


def find_by_gateway_order(db: Session, gateway_order_id: str, *, user_id: int | None = None) -> Payment | None:
    stmt = select(Payment).where(Payment.gateway_order_id == gateway_order_id)
    if user_id is not None:
        stmt = stmt.where(Payment.user_id == user_id)
    return db.scalars(stmt.execution_options(populate_existing=True)).first()


def find_open_payment(db: Session, order_id: int) -> Payment | None:
    """Return the non-terminal payment attached to an order, if any."""

    stmt = (
        select(Payment)
        .where(Payment.order_id == order_id, Payment.status.in_(OPEN_PAYMENT_STATUSES))
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .limit(1)
    )
    return db.scalars(stmt).first()


def create_payment(
    db: Session, *, order: Order, user_id: int, gateway_order: GatewayOrder, currency: str
) -> Payment:
    """Persist a freshly created gateway order as a ``created`` payment."""

    payment = Payment(
        order_id=order.id,
        user_id=user_id,
        gateway_order_id=gateway_order.gateway_order_id,
        amount=order.total_amount,
        currency=currency,
        status=PaymentStatus.CREATED,
        refund_amount=Decimal("0"),
        refund_status=RefundStatus.NONE,
    )
    db.add(payment)
    db.flush()
    return payment


def _apply(db: Session, where: Iterable[Any], values: dict[str, Any]) -> Payment | None:
    """Run a guarded update; ``where[0]`` must identify the row."""

    conditions = list(where)
    stmt = (
        update(Payment)
        .where(*conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    if result.rowcount == 0:
        return None
    # Re-read by key only; the status guard may no longer hold after the update.
    refreshed = select(Payment).where(conditions[0]).execution_options(populate_existing=True)
    return db.scalars(refreshed).first()


def update_by_gateway_order(
    db: Session,
    gateway_order_id: str,
    values: dict[str, Any],
    *,
    user_id: int | None = None,
    only_from: Iterable[PaymentStatus] | None = None,
) -> Payment | None:
    """Atomically update the payment keyed by ``gateway_order_id``.

    ``only_from`` restricts the update to rows currently in one of the given
    statuses. Returns ``None`` when no row matched.
    """

    where: list[Any] = [Payment.gateway_order_id == gateway_order_id]
    if user_id is not None:
        where.append(Payment.user_id == user_id)
    if only_from is not None:
        where.append(Payment.status.in_(list(only_from)))
    return _apply(db, where, values)


def update_by_gateway_payment(
    db: Session,
    gateway_payment_id: str,
    values: dict[str, Any],
    *,
    refund_from: Iterable[RefundStatus] | None = None,
) -> Payment | None:
    """Atomically update the payment carrying ``gateway_payment_id``.

    ``refund_from`` restricts the update to rows whose ``refund_status`` is one
    of the given values.
    """

    where: list[Any] = [Payment.gateway_payment_id == gateway_payment_id]
    if refund_from is not None:
        where.append(Payment.refund_status.in_(list(refund_from)))
    return _apply(db, where, values)


def update_by_id(
    db: Session,
    payment_id: int,
    values: dict[str, Any],
    *,
    only_from: Iterable[PaymentStatus] | None = None,
) -> Payment | None:
    where: list[Any] = [Payment.id == payment_id]
    if only_from is not None:
        where.append(Payment.status.in_(list(only_from)))
    return _apply(db, where, values)


def refund_status_expression(refunded_total):
    """SQL expression choosing ``refunded`` vs ``partial_refund`` against the captured amount."""

    expression = case(
        (refunded_total >= Payment.amount, PaymentStatus.REFUNDED.value),
        else_=PaymentStatus.PARTIAL_REFUND.value,
    )
    return cast(expression, Payment.__table__.c.status.type)


def record_refund(db: Session, payment_id: int, *, refund_id: str, amount: Decimal) -> Payment:
    """Add ``amount`` to ``refund_amount`` with an in-database increment."""

    new_total = Payment.refund_amount + amount
    payment = _apply(
        db,
        [Payment.id == payment_id],
        {
            "refund_id": refund_id,
            "refund_amount": new_total,
            "refund_status": RefundStatus.PROCESSED,
            "status": refund_status_expression(new_total),
        },
    )
    if payment is None:
        raise NotFound("Payment not found", code="PAYMENT_NOT_FOUND")
    return payment


def record_payment_audit(
    db: Session,
    payment: Payment,
    *,
    actor: str,
    action: str,
    data: dict[str, Any] | None = None,
) -> None:
    """Write an audit entry describing a payment transition."""

    payload = {
        "gateway_order_id": payment.gateway_order_id,
        "order_id": payment.order_id,
        "status": payment.status.value,
    }
    payload.update(data or {})
    log_audit(db, actor=actor, action=action, entity="Payment", entity_id=payment.id, data=payload)


__all__ = [
    "create_payment",
    "find_by_gateway_order",
    "find_open_payment",
    "get_payment",
    "record_payment_audit",
    "record_refund",
    "refund_status_expression",
    "update_by_gateway_order",
    "update_by_gateway_payment",
    "update_by_id",
]
