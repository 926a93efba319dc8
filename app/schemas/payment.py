"""Schemas for payment requests and responses."""
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.models.order import OrderPaymentStatus, OrderStatus
from app.models.payment import PaymentStatus, RefundStatus


class PaymentIntentCreate(BaseModel):
    order_id: int = Field(gt=0)


class PaymentIntentRead(BaseModel):
    gateway_order_id: str
    amount: Decimal
    currency: str
    key_id: str
    order_id: int
    payment_id: int


class PaymentVerify(BaseModel):
    gateway_order_id: str = Field(min_length=1, max_length=64)
    gateway_payment_id: str = Field(min_length=1, max_length=64)
    gateway_signature: str = Field(min_length=1, max_length=256)
    order_id: int | None = None


class PaymentVerifyRead(BaseModel):
    payment_id: int
    order_id: int
    status: PaymentStatus
    amount: Decimal


class PaymentFailureReport(BaseModel):
    gateway_order_id: str = Field(min_length=1, max_length=64)
    error_code: str | None = Field(default=None, max_length=64)
    error_description: str | None = Field(default=None, max_length=512)


class RefundCreate(BaseModel):
    """Refund request; omitting ``amount`` refunds the remaining balance."""

    amount: Decimal | None = Field(default=None, max_digits=18, decimal_places=2)
    reason: str | None = Field(default=None, max_length=255)


class RefundRead(BaseModel):
    refund_id: str
    amount: Decimal
    status: str
    refund_status: RefundStatus
    payment_status: PaymentStatus
    order_status: OrderStatus | None = None


class OrderSummary(BaseModel):
    id: int
    total_amount: Decimal
    status: OrderStatus
    payment_status: OrderPaymentStatus

    model_config = ConfigDict(from_attributes=True)


class UserSummary(BaseModel):
    id: int
    name: str
    email: str

    model_config = ConfigDict(from_attributes=True)


class UserContact(UserSummary):
    phone: str | None = None


class PaymentRead(BaseModel):
    id: int
    order_id: int
    user_id: int
    gateway_order_id: str
    gateway_payment_id: str | None
    amount: Decimal
    currency: str
    status: PaymentStatus
    payment_method: str | None
    payment_email: str | None
    payment_contact: str | None
    refund_id: str | None
    refund_amount: Decimal
    refund_status: RefundStatus
    error_code: str | None
    error_description: str | None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentWithOrderRead(PaymentRead):
    order: OrderSummary | None = None


class AdminPaymentRead(PaymentWithOrderRead):
    user: UserSummary | None = None


class AdminPaymentDetailRead(PaymentRead):
    gateway_metadata: dict[str, Any] | None = None
    order: OrderSummary | None = None
    user: UserContact | None = None
    razorpay_details: dict[str, Any] | None = None


class PaymentPage(BaseModel):
    count: int
    total: int
    page: int
    limit: int
    total_pages: int
    data: list[PaymentWithOrderRead]


class AdminPaymentPage(PaymentPage):
    data: list[AdminPaymentRead]


class StatusBreakdown(BaseModel):
    status: PaymentStatus
    count: int
    total_amount: Decimal


class PaymentStatsRead(BaseModel):
    total_payments: int
    total_revenue: Decimal
    total_refunds: Decimal
    by_status: list[StatusBreakdown]
