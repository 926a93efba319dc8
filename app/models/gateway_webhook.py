"""Gateway webhook delivery log."""
from datetime import datetime

from sqlalchemy import DateTime, Index, JSON, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class GatewayWebhookEvent(Base):
    """Represents a signature-verified webhook delivery from the payment gateway."""

    __tablename__ = "gateway_webhook_events"
    __table_args__ = (
        UniqueConstraint("event_id", name="uq_gateway_webhook_events_event_id"),
        Index("ix_gateway_webhook_events_received", "received_at"),
        Index("ix_gateway_webhook_events_event", "event"),
    )

    event_id: Mapped[str] = mapped_column(String(100), nullable=False)
    event: Mapped[str] = mapped_column(String(50), nullable=False)
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    raw_json: Mapped[dict] = mapped_column(JSON, nullable=False)
