"""Keeps ``Order.payment_status``/``Order.status`` aligned with Payment transitions.

Payment transitions only ever move ``Order.status`` to ``processing`` (paid) or
``cancelled`` (refunded). A failed payment leaves ``Order.status`` untouched so
the customer can retry.
"""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.models import Order, OrderPaymentStatus, OrderStatus
from app.utils.time import utcnow

logger = logging.getLogger(__name__)


def _apply(db: Session, order_id: int, values: dict[str, Any], *, user_id: int | None = None) -> Order | None:
    where = [Order.id == order_id]
    if user_id is not None:
        where.append(Order.user_id == user_id)
    result = db.execute(
        update(Order).where(*where).values(**values).execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.warning("Order not found for payment cascade", extra={"order_id": order_id})
        return None
    stmt = select(Order).where(*where).execution_options(populate_existing=True)
    return db.scalars(stmt).first()


def get_order_for_user(db: Session, order_id: int, user_id: int) -> Order | None:
    stmt = select(Order).where(Order.id == order_id, Order.user_id == user_id)
    return db.scalars(stmt.execution_options(populate_existing=True)).first()


def mark_pending(db: Session, order_id: int, gateway_order_id: str) -> Order | None:
    """Record a new gateway order on the order and reset it to ``pending`` payment."""

    return _apply(
        db,
        order_id,
        {"payment_status": OrderPaymentStatus.PENDING, "gateway_order_id": gateway_order_id},
    )


def mark_paid(db: Session, order_id: int, *, user_id: int | None = None) -> Order | None:
    """Cascade a captured/confirmed payment; re-applying keeps the first ``paid_at``."""

    order = _apply(
        db,
        order_id,
        {
            "payment_status": OrderPaymentStatus.PAID,
            "status": OrderStatus.PROCESSING,
            "paid_at": func.coalesce(Order.paid_at, utcnow()),
        },
        user_id=user_id,
    )
    if order is not None:
        logger.info("Order marked as paid", extra={"order_id": order_id})
    return order


def mark_payment_failed(db: Session, order_id: int) -> Order | None:
    order = _apply(db, order_id, {"payment_status": OrderPaymentStatus.FAILED})
    if order is not None:
        logger.info("Order payment marked as failed", extra={"order_id": order_id})
    return order


def mark_refunded(db: Session, order_id: int) -> Order | None:
    order = _apply(
        db,
        order_id,
        {"payment_status": OrderPaymentStatus.REFUNDED, "status": OrderStatus.CANCELLED},
    )
    if order is not None:
        logger.info("Order cancelled after refund", extra={"order_id": order_id})
    return order


__all__ = ["get_order_for_user", "mark_paid", "mark_payment_failed", "mark_pending", "mark_refunded"]
