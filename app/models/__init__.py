"""ORM models package."""
from .api_key import ApiKey, ApiScope
from .audit import AuditLog
from .base import Base
from .gateway_webhook import GatewayWebhookEvent
from .order import Order, OrderPaymentStatus, OrderStatus
from .payment import OPEN_PAYMENT_STATUSES, Payment, PaymentStatus, RefundStatus
from .user import User

__all__ = [
    "ApiKey",
    "ApiScope",
    "AuditLog",
    "Base",
    "GatewayWebhookEvent",
    "OPEN_PAYMENT_STATUSES",
    "Order",
    "OrderPaymentStatus",
    "OrderStatus",
    "Payment",
    "PaymentStatus",
    "RefundStatus",
    "User",
]
