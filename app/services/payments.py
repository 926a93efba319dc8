"""Customer-facing payment services: intent creation, verification and history."""
from __future__ import annotations

import logging
import math
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from app.config import get_settings
from app.models import OrderPaymentStatus, Payment, PaymentStatus
from app.services import order_coupler
from app.services import payment_store as store
from app.services.psp_razorpay import RazorpayGateway
from app.utils.errors import AlreadyPaid, InvalidState, NotFound, VerificationFailed

logger = logging.getLogger(__name__)

INVALID_SIGNATURE_DESCRIPTION = "Invalid payment signature"
DEFAULT_FAILURE_DESCRIPTION = "Payment failed"

# A verified checkout may only move a payment that has not been refunded.
_VERIFIABLE = (PaymentStatus.CREATED, PaymentStatus.AUTHORIZED, PaymentStatus.CAPTURED, PaymentStatus.FAILED)
_SIGNATURE_FAILABLE = (PaymentStatus.CREATED, PaymentStatus.AUTHORIZED, PaymentStatus.FAILED)


def _intent_payload(payment: Payment, key_id: str) -> dict[str, Any]:
    return {
        "gateway_order_id": payment.gateway_order_id,
        "amount": payment.amount,
        "currency": payment.currency,
        "key_id": key_id,
        "order_id": payment.order_id,
        "payment_id": payment.id,
    }


def _verification_result(payment: Payment) -> dict[str, Any]:
    return {
        "payment_id": payment.id,
        "order_id": payment.order_id,
        "status": payment.status,
        "amount": payment.amount,
    }


def create_payment_intent(
    db: Session,
    gateway: RazorpayGateway,
    *,
    user_id: int,
    order_id: int,
) -> tuple[dict[str, Any], bool]:
    """Create (or reuse) the gateway order backing a checkout.

    Returns the checkout parameters and whether a new payment row was created.
    """

    order = order_coupler.get_order_for_user(db, order_id, user_id)
    if order is None:
        raise NotFound("Order not found", code="ORDER_NOT_FOUND")

    if order.payment_status == OrderPaymentStatus.PAID:
        raise AlreadyPaid("Order is already paid")

    existing = store.find_open_payment(db, order.id)
    if existing is not None:
        logger.info(
            "Reusing existing payment intent",
            extra={"payment_id": existing.id, "order_id": order.id, "gateway_order_id": existing.gateway_order_id},
        )
        return _intent_payload(existing, gateway.key_id), False

    currency = get_settings().PAYMENT_CURRENCY
    # No row is written unless the gateway call succeeds.
    gateway_order = gateway.create_gateway_order(
        order.total_amount,
        currency,
        f"order_{order.id}",
        {"order_id": str(order.id), "user_id": str(user_id)},
    )

    payment = store.create_payment(
        db, order=order, user_id=user_id, gateway_order=gateway_order, currency=currency
    )
    order_coupler.mark_pending(db, order.id, gateway_order.gateway_order_id)
    store.record_payment_audit(
        db,
        payment,
        actor=f"user:{user_id}",
        action="PAYMENT_INTENT_CREATED",
        data={"amount": str(payment.amount), "currency": currency},
    )
    db.commit()
    db.refresh(payment)
    logger.info(
        "Payment intent created",
        extra={"payment_id": payment.id, "order_id": order.id, "gateway_order_id": payment.gateway_order_id},
    )
    return _intent_payload(payment, gateway.key_id), True


def verify_payment(
    db: Session,
    gateway: RazorpayGateway,
    *,
    user_id: int,
    gateway_order_id: str,
    gateway_payment_id: str,
    gateway_signature: str,
    order_id: int | None = None,
) -> dict[str, Any]:
    """Confirm a checkout completion reported by the client."""

    if not gateway.verify_client_signature(gateway_order_id, gateway_payment_id, gateway_signature):
        payment = store.update_by_gateway_order(
            db,
            gateway_order_id,
            {"status": PaymentStatus.FAILED, "error_description": INVALID_SIGNATURE_DESCRIPTION},
            user_id=user_id,
            only_from=_SIGNATURE_FAILABLE,
        )
        if payment is not None:
            store.record_payment_audit(
                db,
                payment,
                actor=f"user:{user_id}",
                action="PAYMENT_SIGNATURE_INVALID",
                data={"gateway_payment_id": gateway_payment_id},
            )
        db.commit()
        logger.warning(
            "Payment signature verification failed",
            extra={"gateway_order_id": gateway_order_id, "user_id": user_id},
        )
        raise VerificationFailed("Payment verification failed")

    details = gateway.fetch_payment_details(gateway_payment_id)
    status = PaymentStatus.CAPTURED if details.status == "captured" else PaymentStatus.AUTHORIZED

    payment = store.update_by_gateway_order(
        db,
        gateway_order_id,
        {
            "gateway_payment_id": gateway_payment_id,
            "gateway_signature": gateway_signature,
            "status": status,
            "payment_method": details.method,
            "payment_email": details.email,
            "payment_contact": details.contact,
            "gateway_metadata": details.metadata(),
        },
        user_id=user_id,
        only_from=_VERIFIABLE,
    )
    if payment is None:
        db.rollback()
        settled = store.find_by_gateway_order(db, gateway_order_id, user_id=user_id)
        if settled is None:
            raise NotFound("Payment record not found", code="PAYMENT_NOT_FOUND")
        logger.info(
            "Verification replayed for settled payment; keeping current state",
            extra={"payment_id": settled.id, "status": settled.status.value},
        )
        return _verification_result(settled)

    if order_id is not None and order_id != payment.order_id:
        logger.warning(
            "Verification order id does not match payment",
            extra={"payment_id": payment.id, "claimed_order_id": order_id, "order_id": payment.order_id},
        )

    store.record_payment_audit(
        db,
        payment,
        actor=f"user:{user_id}",
        action="PAYMENT_VERIFIED",
        data={"gateway_payment_id": gateway_payment_id, "payment_email": details.email},
    )

    order = order_coupler.mark_paid(db, payment.order_id, user_id=user_id)
    # The payment update stays committed; the webhook reconciles the order later.
    db.commit()
    if order is None:
        raise NotFound("Order not found", code="ORDER_NOT_FOUND")

    logger.info(
        "Payment verified",
        extra={"payment_id": payment.id, "order_id": order.id, "status": payment.status.value},
    )
    return _verification_result(payment)


def report_client_failure(
    db: Session,
    *,
    user_id: int,
    gateway_order_id: str,
    error_code: str | None = None,
    error_description: str | None = None,
) -> Payment:
    """Record a checkout failure reported by the client."""

    payment = store.update_by_gateway_order(
        db,
        gateway_order_id,
        {
            "status": PaymentStatus.FAILED,
            "error_code": error_code,
            "error_description": error_description or DEFAULT_FAILURE_DESCRIPTION,
        },
        user_id=user_id,
        only_from=_SIGNATURE_FAILABLE,
    )
    if payment is None:
        db.rollback()
        if store.find_by_gateway_order(db, gateway_order_id, user_id=user_id) is None:
            raise NotFound("Payment record not found", code="PAYMENT_NOT_FOUND")
        raise InvalidState("Payment is already settled", code="PAYMENT_ALREADY_SETTLED")

    order_coupler.mark_payment_failed(db, payment.order_id)
    store.record_payment_audit(
        db,
        payment,
        actor=f"user:{user_id}",
        action="PAYMENT_FAILED_CLIENT",
        data={"error_code": error_code},
    )
    db.commit()
    logger.info(
        "Client payment failure recorded",
        extra={"payment_id": payment.id, "error_code": error_code},
    )
    return payment


def get_own_payment(db: Session, *, user_id: int, payment_id: int) -> Payment:
    return store.get_payment(db, payment_id, user_id=user_id)


def list_own_payments(
    db: Session,
    *,
    user_id: int,
    page: int = 1,
    limit: int = 20,
    status: PaymentStatus | None = None,
) -> dict[str, Any]:
    """Return a page of the caller's payments, newest first."""

    conditions = [Payment.user_id == user_id]
    if status is not None:
        conditions.append(Payment.status == status)

    total = db.scalar(select(func.count(Payment.id)).where(*conditions)) or 0
    stmt = (
        select(Payment)
        .where(*conditions)
        .options(selectinload(Payment.order))
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    payments = list(db.scalars(stmt))
    return {
        "count": len(payments),
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if limit else 0,
        "data": payments,
    }


__all__ = [
    "create_payment_intent",
    "get_own_payment",
    "list_own_payments",
    "report_client_failure",
    "verify_payment",
]
