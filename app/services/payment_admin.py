"""Back-office payment services: listing, inspection, statistics and capture."""
from __future__ import annotations

import logging
import math
from decimal import Decimal
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, selectinload

from app.models import Payment, PaymentStatus, RefundStatus
from app.services import order_coupler
from app.services import payment_store as store
from app.services.psp_razorpay import RazorpayGateway
from app.utils.errors import GatewayError, InvalidState

logger = logging.getLogger(__name__)

REVENUE_STATUSES = (PaymentStatus.CAPTURED, PaymentStatus.AUTHORIZED)


def list_payments(
    db: Session,
    *,
    page: int = 1,
    limit: int = 50,
    status: PaymentStatus | None = None,
    search: str | None = None,
) -> dict[str, Any]:
    """Return a page of all payments, newest first."""

    conditions: list[Any] = []
    if status is not None:
        conditions.append(Payment.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        conditions.append(
            or_(
                Payment.gateway_order_id.ilike(pattern),
                Payment.gateway_payment_id.ilike(pattern),
                Payment.payment_email.ilike(pattern),
            )
        )

    total = db.scalar(select(func.count(Payment.id)).where(*conditions)) or 0
    stmt = (
        select(Payment)
        .where(*conditions)
        .options(selectinload(Payment.user), selectinload(Payment.order))
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


def get_payment_detail(db: Session, gateway: RazorpayGateway, payment_id: int) -> dict[str, Any]:
    """Return a payment with a live gateway snapshot when one is available.

    The snapshot is best-effort: gateway failures yield ``None`` rather than an
    error so the local record stays inspectable during gateway outages.
    """

    payment = store.get_payment(db, payment_id)
    razorpay_details: dict[str, Any] | None = None
    if payment.gateway_payment_id:
        try:
            razorpay_details = gateway.fetch_payment_details(payment.gateway_payment_id).raw
        except GatewayError as exc:
            logger.warning(
                "Could not fetch gateway payment details",
                extra={"payment_id": payment.id, "error_code": exc.code},
            )
    return {"payment": payment, "razorpay_details": razorpay_details}


def payment_stats(db: Session) -> dict[str, Any]:
    """Aggregate payment totals for the back-office dashboard."""

    total_payments = db.scalar(select(func.count(Payment.id))) or 0
    total_revenue = db.scalar(
        select(func.coalesce(func.sum(Payment.amount), 0)).where(Payment.status.in_(REVENUE_STATUSES))
    )
    total_refunds = db.scalar(
        select(func.coalesce(func.sum(Payment.refund_amount), 0)).where(
            Payment.refund_status == RefundStatus.PROCESSED
        )
    )
    rows = db.execute(
        select(Payment.status, func.count(Payment.id), func.coalesce(func.sum(Payment.amount), 0))
        .group_by(Payment.status)
        .order_by(Payment.status)
    ).all()

    return {
        "total_payments": total_payments,
        "total_revenue": Decimal(str(total_revenue or 0)),
        "total_refunds": Decimal(str(total_refunds or 0)),
        "by_status": [
            {"status": status, "count": count, "total_amount": Decimal(str(amount or 0))}
            for status, count, amount in rows
        ],
    }


def capture_payment(
    db: Session,
    gateway: RazorpayGateway,
    *,
    admin_id: int | None,
    payment_id: int,
) -> Payment:
    """Capture an authorized payment at the gateway and cascade to its order."""

    payment = store.get_payment(db, payment_id)
    if payment.status != PaymentStatus.AUTHORIZED or not payment.gateway_payment_id:
        raise InvalidState("Only authorized payments can be captured", code="PAYMENT_NOT_AUTHORIZED")

    details = gateway.capture_payment(payment.gateway_payment_id, payment.amount, payment.currency)

    captured = store.update_by_id(
        db,
        payment.id,
        {"status": PaymentStatus.CAPTURED, "payment_method": details.method or payment.payment_method},
        only_from=(PaymentStatus.AUTHORIZED, PaymentStatus.CAPTURED),
    )
    if captured is None:
        # A refund raced the capture; keep the stored state.
        db.rollback()
        raise InvalidState("Payment changed state during capture", code="PAYMENT_NOT_AUTHORIZED")

    order_coupler.mark_paid(db, captured.order_id)
    store.record_payment_audit(
        db,
        captured,
        actor=f"admin:{admin_id}",
        action="PAYMENT_CAPTURED_ADMIN",
        data={"amount": str(captured.amount)},
    )
    db.commit()
    logger.info("Payment captured by admin", extra={"payment_id": captured.id, "admin_id": admin_id})
    return captured


__all__ = ["capture_payment", "get_payment_detail", "list_payments", "payment_stats"]
