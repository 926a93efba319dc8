"""Schema package exports."""
from .payment import (
    AdminPaymentDetailRead,
    AdminPaymentPage,
    AdminPaymentRead,
    OrderSummary,
    PaymentFailureReport,
    PaymentIntentCreate,
    PaymentIntentRead,
    PaymentPage,
    PaymentRead,
    PaymentStatsRead,
    PaymentVerify,
    PaymentVerifyRead,
    PaymentWithOrderRead,
    RefundCreate,
    RefundRead,
    StatusBreakdown,
    UserContact,
    UserSummary,
)

__all__ = [
    "AdminPaymentDetailRead",
    "AdminPaymentPage",
    "AdminPaymentRead",
    "OrderSummary",
    "PaymentFailureReport",
    "PaymentIntentCreate",
    "PaymentIntentRead",
    "PaymentPage",
    "PaymentRead",
    "PaymentStatsRead",
    "PaymentVerify",
    "PaymentVerifyRead",
    "PaymentWithOrderRead",
    "RefundCreate",
    "RefundRead",
    "StatusBreakdown",
    "UserContact",
    "UserSummary",
]
