"""Customer payment endpoints."""
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.payment import Payment, PaymentStatus
from app.models.user import User
from app.schemas.payment import (
    PaymentFailureReport,
    PaymentIntentCreate,
    PaymentIntentRead,
    PaymentPage,
    PaymentVerify,
    PaymentVerifyRead,
    PaymentWithOrderRead,
    RefundCreate,
    RefundRead,
)
from app.security import require_current_user
from app.services import payments as payment_service
from app.services import refunds as refund_service
from app.services.psp_razorpay import RazorpayGateway, get_gateway

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/create-order", response_model=PaymentIntentRead, status_code=status.HTTP_201_CREATED)
def create_payment_order(
    payload: PaymentIntentCreate,
    response: Response,
    db: Session = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_gateway),
    user: User = Depends(require_current_user),
) -> dict:
    intent, created = payment_service.create_payment_intent(
        db, gateway, user_id=user.id, order_id=payload.order_id
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return intent


@router.post("/verify", response_model=PaymentVerifyRead)
def verify_payment(
    payload: PaymentVerify,
    db: Session = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_gateway),
    user: User = Depends(require_current_user),
) -> dict:
    return payment_service.verify_payment(
        db,
        gateway,
        user_id=user.id,
        gateway_order_id=payload.gateway_order_id,
        gateway_payment_id=payload.gateway_payment_id,
        gateway_signature=payload.gateway_signature,
        order_id=payload.order_id,
    )


@router.post("/failed", response_model=PaymentWithOrderRead)
def report_payment_failure(
    payload: PaymentFailureReport,
    db: Session = Depends(get_db),
    user: User = Depends(require_current_user),
) -> Payment:
    return payment_service.report_client_failure(
        db,
        user_id=user.id,
        gateway_order_id=payload.gateway_order_id,
        error_code=payload.error_code,
        error_description=payload.error_description,
    )


@router.get("/my-payments", response_model=PaymentPage)
def list_my_payments(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    payment_status: PaymentStatus | None = Query(None, alias="status"),
    db: Session = Depends(get_db),
    user: User = Depends(require_current_user),
) -> dict:
    return payment_service.list_own_payments(
        db, user_id=user.id, page=page, limit=limit, status=payment_status
    )


@router.get("/{payment_id}", response_model=PaymentWithOrderRead)
def get_payment(
    payment_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_current_user),
) -> Payment:
    return payment_service.get_own_payment(db, user_id=user.id, payment_id=payment_id)


@router.post("/{payment_id}/refund", response_model=RefundRead)
def request_refund(
    payment_id: int,
    payload: RefundCreate | None = None,
    db: Session = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_gateway),
    user: User = Depends(require_current_user),
) -> dict:
    payload = payload or RefundCreate()
    return refund_service.request_refund(
        db,
        gateway,
        user_id=user.id,
        payment_id=payment_id,
        amount=payload.amount,
        reason=payload.reason,
    )


__all__ = ["router"]
