"""Payment model definitions."""
import enum
from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Index, JSON, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, enum_type


class PaymentStatus(str, enum.Enum):
    """Possible statuses for a gateway payment attempt."""

    CREATED = "created"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIAL_REFUND = "partial_refund"


class RefundStatus(str, enum.Enum):
    """Progress of the refund attached to a payment."""

    NONE = "none"
    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"


OPEN_PAYMENT_STATUSES = (PaymentStatus.CREATED, PaymentStatus.AUTHORIZED, PaymentStatus.CAPTURED)


class Payment(Base):
    """Represents one gateway order attempt against a purchase order."""

    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_payment_non_negative_amount"),
        CheckConstraint("refund_amount >= 0", name="ck_payment_non_negative_refund"),
        Index("ix_payments_user_created", "user_id", "created_at"),
        Index("ix_payments_status_created", "status", "created_at"),
        Index("ix_payments_order_status", "order_id", "status"),
    )

    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    gateway_order_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    gateway_payment_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    gateway_signature: Mapped[str | None] = mapped_column(String(256), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    status: Mapped[PaymentStatus] = mapped_column(
        enum_type(PaymentStatus, "paymentstatus"), nullable=False, default=PaymentStatus.CREATED
    )
    payment_method: Mapped[str | None] = mapped_column(String(32), nullable=True)
    payment_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payment_contact: Mapped[str | None] = mapped_column(String(32), nullable=True)
    refund_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    refund_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    refund_status: Mapped[RefundStatus] = mapped_column(
        enum_type(RefundStatus, "refundstatus"), nullable=False, default=RefundStatus.NONE
    )
    error_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    error_description: Mapped[str | None] = mapped_column(String(512), nullable=True)
    # ``metadata`` is reserved on declarative classes.
    gateway_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)

    order = relationship("Order")
    user = relationship("User")
