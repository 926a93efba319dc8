"""Refund processing shared by customer requests and admin actions."""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from app.models import Payment, PaymentStatus, RefundStatus
from app.services import order_coupler
from app.services import payment_store as store
from app.services.psp_razorpay import RazorpayGateway
from app.utils.errors import AlreadyRefunded, InvalidAmount, InvalidState

logger = logging.getLogger(__name__)

CUSTOMER_REFUND_REASON = "Customer request"
ADMIN_REFUND_REASON = "Admin initiated refund"


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def refundable_amount(payment: Payment, requested: Decimal | None) -> Decimal:
    """Cap ``requested`` at the remaining refundable balance.

    ``None`` means "everything that is left".
    """

    remaining = _to_decimal(payment.amount) - _to_decimal(payment.refund_amount or 0)
    if requested is None:
        return remaining
    return min(_to_decimal(requested), remaining)


def _execute_refund(
    db: Session,
    gateway: RazorpayGateway,
    payment: Payment,
    *,
    amount: Decimal | None,
    notes: dict[str, str],
    actor: str,
) -> dict[str, Any]:
    if payment.status != PaymentStatus.CAPTURED:
        raise InvalidState("Only captured payments can be refunded", code="PAYMENT_NOT_CAPTURED")

    remaining = refundable_amount(payment, None)
    if payment.refund_status == RefundStatus.PROCESSED and remaining <= 0:
        raise AlreadyRefunded("Payment already refunded")

    refund_amount = refundable_amount(payment, amount)
    if refund_amount <= 0:
        raise InvalidAmount("Invalid refund amount or payment already fully refunded")

    refund = gateway.create_refund(payment.gateway_payment_id, refund_amount, notes)
    logger.info(
        "Gateway refund created",
        extra={"payment_id": payment.id, "refund_id": refund.refund_id, "amount": str(refund_amount)},
    )

    payment_id = payment.id
    try:
        payment = store.record_refund(db, payment_id, refund_id=refund.refund_id, amount=refund_amount)
        order = order_coupler.mark_refunded(db, payment.order_id)
        store.record_payment_audit(
            db,
            payment,
            actor=actor,
            action="PAYMENT_REFUNDED",
            data={
                "refund_id": refund.refund_id,
                "amount": str(refund_amount),
                "reason": notes.get("reason"),
            },
        )
        db.commit()
    except Exception:
        db.rollback()
        # Money already left through the gateway; refund.processed reconciles this row.
        logger.exception(
            "Failed to persist refund locally",
            extra={"payment_id": payment_id, "refund_id": refund.refund_id},
        )
        raise

    return {
        "refund_id": refund.refund_id,
        "amount": refund_amount,
        "status": refund.status,
        "refund_status": payment.refund_status,
        "payment_status": payment.status,
        "order_status": order.status if order is not None else None,
    }


def request_refund(
    db: Session,
    gateway: RazorpayGateway,
    *,
    user_id: int,
    payment_id: int,
    amount: Decimal | None = None,
    reason: str | None = None,
) -> dict[str, Any]:
    """Refund one of the caller's own captured payments."""

    payment = store.get_payment(db, payment_id, user_id=user_id)
    return _execute_refund(
        db,
        gateway,
        payment,
        amount=amount,
        notes={"reason": reason or CUSTOMER_REFUND_REASON, "user_id": str(user_id)},
        actor=f"user:{user_id}",
    )


def process_refund(
    db: Session,
    gateway: RazorpayGateway,
    *,
    admin_id: int | None,
    payment_id: int,
    amount: Decimal | None = None,
    reason: str | None = None,
) -> dict[str, Any]:
    """Refund any captured payment on behalf of an administrator."""

    payment = store.get_payment(db, payment_id)
    return _execute_refund(
        db,
        gateway,
        payment,
        amount=amount,
        notes={"reason": reason or ADMIN_REFUND_REASON, "admin_id": str(admin_id)},
        actor=f"admin:{admin_id}",
    )


__all__ = ["process_refund", "refundable_amount", "request_refund"]
