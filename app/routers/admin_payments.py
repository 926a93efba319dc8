"""Back-office payment endpoints."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.api_key import ApiKey
from app.models.payment import Payment, PaymentStatus
from app.schemas.payment import (
    AdminPaymentDetailRead,
    AdminPaymentPage,
    PaymentRead,
    PaymentStatsRead,
    RefundCreate,
    RefundRead,
)
from app.security import require_admin
from app.services import payment_admin
from app.services import refunds as refund_service
from app.services.psp_razorpay import RazorpayGateway, get_gateway

router = APIRouter(prefix="/admin/payments", tags=["admin-payments"])


@router.get("/stats", response_model=PaymentStatsRead)
def payment_stats(
    db: Session = Depends(get_db),
    admin: ApiKey = Depends(require_admin),
) -> dict:
    return payment_admin.payment_stats(db)


@router.get("", response_model=AdminPaymentPage)
def list_payments(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    payment_status: PaymentStatus | None = Query(None, alias="status"),
    search: str | None = Query(None, max_length=255),
    db: Session = Depends(get_db),
    admin: ApiKey = Depends(require_admin),
) -> dict:
    return payment_admin.list_payments(db, page=page, limit=limit, status=payment_status, search=search)


@router.get("/{payment_id}", response_model=AdminPaymentDetailRead)
def get_payment(
    payment_id: int,
    db: Session = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_gateway),
    admin: ApiKey = Depends(require_admin),
) -> AdminPaymentDetailRead:
    detail = payment_admin.get_payment_detail(db, gateway, payment_id)
    result = AdminPaymentDetailRead.model_validate(detail["payment"])
    result.razorpay_details = detail["razorpay_details"]
    return result


@router.post("/{payment_id}/refund", response_model=RefundRead)
def refund_payment(
    payment_id: int,
    payload: RefundCreate | None = None,
    db: Session = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_gateway),
    admin: ApiKey = Depends(require_admin),
) -> dict:
    payload = payload or RefundCreate()
    return refund_service.process_refund(
        db,
        gateway,
        admin_id=admin.user_id,
        payment_id=payment_id,
        amount=payload.amount,
        reason=payload.reason,
    )


@router.post("/{payment_id}/capture", response_model=PaymentRead)
def capture_payment(
    payment_id: int,
    db: Session = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_gateway),
    admin: ApiKey = Depends(require_admin),
) -> Payment:
    return payment_admin.capture_payment(db, gateway, admin_id=admin.user_id, payment_id=payment_id)


__all__ = ["router"]
