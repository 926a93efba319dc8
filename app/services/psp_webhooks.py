"""Services handling Razorpay webhook callbacks.

Webhooks are the authoritative reconciliation path. Every handler is
idempotent: replaying an event converges on the same Payment/Order state, so
the client verification call and the webhook may race without locking.
"""
from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Callable, Mapping

from sqlalchemy import case, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models import GatewayWebhookEvent, Payment, PaymentStatus, RefundStatus
from app.services import order_coupler
from app.services import payment_store as store
from app.services.psp_razorpay import PaymentDetails, RazorpayGateway, from_minor_units
from app.utils.errors import WebhookSignatureInvalid
from app.utils.time import utcnow

logger = logging.getLogger(__name__)

ACTOR = "gateway_webhook"

# Source statuses each payment.* event may move a payment out of.
_AUTHORIZABLE = (PaymentStatus.CREATED, PaymentStatus.AUTHORIZED, PaymentStatus.FAILED)
_CAPTURABLE = (PaymentStatus.CREATED, PaymentStatus.AUTHORIZED, PaymentStatus.CAPTURED, PaymentStatus.FAILED)
_FAILABLE = (PaymentStatus.CREATED, PaymentStatus.AUTHORIZED, PaymentStatus.FAILED)
# Refund states a refund.created or refund.failed event may overwrite.
_REFUND_OPEN = (RefundStatus.NONE, RefundStatus.PENDING, RefundStatus.FAILED)


def _payment_fields(entity: Mapping[str, Any]) -> dict[str, Any]:
    details = PaymentDetails.from_entity(entity)
    return {
        "gateway_payment_id": details.gateway_payment_id,
        "payment_method": details.method,
        "payment_email": details.email,
        "payment_contact": details.contact,
    }


def _log_missing(event: str, **refs: Any) -> None:
    logger.info("Webhook event for unknown payment; ignoring", extra={"event": event, **refs})


def _payment_exists(db: Session, **filters: Any) -> bool:
    stmt = select(Payment.id).filter_by(**filters).limit(1)
    return db.scalar(stmt) is not None


def handle_payment_authorized(db: Session, entity: Mapping[str, Any]) -> None:
    gateway_order_id = entity.get("order_id")
    values = _payment_fields(entity)
    values["status"] = PaymentStatus.AUTHORIZED
    payment = store.update_by_gateway_order(db, gateway_order_id, values, only_from=_AUTHORIZABLE)
    if payment is None:
        if _payment_exists(db, gateway_order_id=gateway_order_id):
            logger.info(
                "Payment already past authorization; keeping current status",
                extra={"gateway_order_id": gateway_order_id},
            )
        else:
            _log_missing("payment.authorized", gateway_order_id=gateway_order_id)
        return
    store.record_payment_audit(db, payment, actor=ACTOR, action="PAYMENT_AUTHORIZED")
    logger.info("Payment authorized", extra={"payment_id": payment.id, "gateway_payment_id": entity.get("id")})


def _apply_capture(db: Session, payment: Payment, *, action: str) -> None:
    order_coupler.mark_paid(db, payment.order_id)
    store.record_payment_audit(db, payment, actor=ACTOR, action=action)
    logger.info("Payment captured", extra={"payment_id": payment.id, "order_id": payment.order_id})


def handle_payment_captured(db: Session, entity: Mapping[str, Any]) -> None:
    gateway_order_id = entity.get("order_id")
    values = _payment_fields(entity)
    values["status"] = PaymentStatus.CAPTURED
    payment = store.update_by_gateway_order(db, gateway_order_id, values, only_from=_CAPTURABLE)
    if payment is None:
        if _payment_exists(db, gateway_order_id=gateway_order_id):
            logger.info(
                "Capture received for refunded payment; ignoring",
                extra={"gateway_order_id": gateway_order_id},
            )
        else:
            _log_missing("payment.captured", gateway_order_id=gateway_order_id)
        return
    _apply_capture(db, payment, action="PAYMENT_CAPTURED")


def handle_payment_failed(db: Session, entity: Mapping[str, Any]) -> None:
    gateway_order_id = entity.get("order_id")
    values = {
        "gateway_payment_id": entity.get("id"),
        "status": PaymentStatus.FAILED,
        "error_code": entity.get("error_code"),
        "error_description": entity.get("error_description"),
    }
    payment = store.update_by_gateway_order(db, gateway_order_id, values, only_from=_FAILABLE)
    if payment is None:
        if _payment_exists(db, gateway_order_id=gateway_order_id):
            logger.info(
                "Failure received for settled payment; ignoring",
                extra={"gateway_order_id": gateway_order_id},
            )
        else:
            _log_missing("payment.failed", gateway_order_id=gateway_order_id)
        return
    order_coupler.mark_payment_failed(db, payment.order_id)
    store.record_payment_audit(
        db, payment, actor=ACTOR, action="PAYMENT_FAILED", data={"error_code": entity.get("error_code")}
    )
    logger.info("Payment failed", extra={"payment_id": payment.id, "error_code": entity.get("error_code")})


def _log_refund_skipped(db: Session, event: str, gateway_payment_id: str | None) -> None:
    if gateway_payment_id and _payment_exists(db, gateway_payment_id=gateway_payment_id):
        logger.info(
            "Refund already settled; ignoring",
            extra={"event": event, "gateway_payment_id": gateway_payment_id},
        )
    else:
        _log_missing(event, gateway_payment_id=gateway_payment_id)


def handle_refund_created(db: Session, entity: Mapping[str, Any]) -> None:
    gateway_payment_id = entity.get("payment_id")
    payment = store.update_by_gateway_payment(
        db,
        gateway_payment_id,
        {"refund_id": entity.get("id"), "refund_status": RefundStatus.PENDING},
        refund_from=_REFUND_OPEN,
    )
    if payment is None:
        _log_refund_skipped(db, "refund.created", gateway_payment_id)
        return
    store.record_payment_audit(
        db, payment, actor=ACTOR, action="REFUND_CREATED", data={"refund_id": entity.get("id")}
    )
    logger.info("Refund created", extra={"payment_id": payment.id, "refund_id": entity.get("id")})


def handle_refund_processed(db: Session, entity: Mapping[str, Any]) -> None:
    gateway_payment_id = entity.get("payment_id")
    refunded = from_minor_units(entity.get("amount"))
    # The event carries one refund's amount; never shrink an accumulated total.
    refunded_total = case((Payment.refund_amount > refunded, Payment.refund_amount), else_=refunded)
    payment = store.update_by_gateway_payment(
        db,
        gateway_payment_id,
        {
            "refund_id": entity.get("id"),
            "refund_amount": refunded_total,
            "refund_status": RefundStatus.PROCESSED,
            "status": store.refund_status_expression(refunded_total),
        },
    )
    if payment is None:
        _log_missing("refund.processed", gateway_payment_id=gateway_payment_id)
        return
    order_coupler.mark_refunded(db, payment.order_id)
    store.record_payment_audit(
        db,
        payment,
        actor=ACTOR,
        action="REFUND_PROCESSED",
        data={"refund_id": entity.get("id"), "amount": str(refunded)},
    )
    logger.info("Refund processed", extra={"payment_id": payment.id, "refund_id": entity.get("id")})


def handle_refund_failed(db: Session, entity: Mapping[str, Any]) -> None:
    gateway_payment_id = entity.get("payment_id")
    payment = store.update_by_gateway_payment(
        db, gateway_payment_id, {"refund_status": RefundStatus.FAILED}, refund_from=_REFUND_OPEN
    )
    if payment is None:
        _log_refund_skipped(db, "refund.failed", gateway_payment_id)
        return
    store.record_payment_audit(
        db, payment, actor=ACTOR, action="REFUND_FAILED", data={"refund_id": entity.get("id")}
    )
    logger.info("Refund failed", extra={"payment_id": payment.id, "refund_id": entity.get("id")})


def handle_order_paid(db: Session, entity: Mapping[str, Any]) -> None:
    """Fallback for order-level confirmations without a payment-level event."""

    gateway_order_id = entity.get("id")
    payment = store.update_by_gateway_order(
        db,
        gateway_order_id,
        {"status": PaymentStatus.CAPTURED},
        only_from=(PaymentStatus.CREATED, PaymentStatus.AUTHORIZED, PaymentStatus.FAILED),
    )
    if payment is None:
        if not _payment_exists(db, gateway_order_id=gateway_order_id):
            _log_missing("order.paid", gateway_order_id=gateway_order_id)
        return
    _apply_capture(db, payment, action="ORDER_PAID")


EventHandler = Callable[[Session, Mapping[str, Any]], None]

# event name -> (payload key holding the entity, handler)
EVENT_HANDLERS: dict[str, tuple[str, EventHandler]] = {
    "payment.authorized": ("payment", handle_payment_authorized),
    "payment.captured": ("payment", handle_payment_captured),
    "payment.failed": ("payment", handle_payment_failed),
    "refund.created": ("refund", handle_refund_created),
    "refund.processed": ("refund", handle_refund_processed),
    "refund.failed": ("refund", handle_refund_failed),
    "order.paid": ("order", handle_order_paid),
}


def _extract_entity(body: Mapping[str, Any], key: str) -> Mapping[str, Any] | None:
    payload = body.get("payload") or {}
    container = payload.get(key) or {}
    entity = container.get("entity")
    return entity if isinstance(entity, Mapping) else None


def _event_id(raw_body: bytes, header_value: str | None) -> str:
    if header_value:
        return header_value
    return "sha256:" + hashlib.sha256(raw_body).hexdigest()


def _register_delivery(
    db: Session, *, event_id: str, event: str, body: dict[str, Any]
) -> GatewayWebhookEvent | None:
    """Record a delivery; return ``None`` when it was already processed."""

    existing = db.scalars(
        select(GatewayWebhookEvent)
        .where(GatewayWebhookEvent.event_id == event_id)
        .execution_options(populate_existing=True)
    ).first()
    if existing is not None:
        if existing.processed_at is not None:
            return None
        return existing

    delivery = GatewayWebhookEvent(event_id=event_id, event=event, raw_json=body, received_at=utcnow())
    try:
        db.add(delivery)
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info("Concurrent webhook delivery detected", extra={"event_id": event_id})
        return None
    return delivery


def dispatch_event(db: Session, event: str, body: Mapping[str, Any]) -> bool:
    """Run the handler for ``event``; failures are logged and contained.

    Returns ``True`` when the handler ran to completion.
    """

    registered = EVENT_HANDLERS.get(event)
    if registered is None:
        logger.info("Unhandled webhook event", extra={"event": event})
        return True

    key, handler = registered
    entity = _extract_entity(body, key)
    if entity is None:
        logger.warning("Webhook event missing entity", extra={"event": event, "payload_key": key})
        return True

    try:
        handler(db, entity)
        db.commit()
    except Exception:  # noqa: BLE001
        db.rollback()
        logger.exception("Webhook handler failed", extra={"event": event})
        return False
    return True


def handle_gateway_webhook(
    db: Session,
    gateway: RazorpayGateway,
    *,
    raw_body: bytes,
    signature: str | None,
    event_id_header: str | None = None,
) -> dict[str, bool]:
    """Verify, record and dispatch a Razorpay webhook delivery."""

    if not gateway.verify_webhook_signature(raw_body, signature):
        logger.warning("Invalid webhook signature")
        raise WebhookSignatureInvalid("Invalid signature")

    try:
        body = json.loads(raw_body)
    except ValueError:
        logger.warning("Webhook body is not valid JSON; acknowledging")
        return {"success": True}
    if not isinstance(body, dict):
        logger.warning("Webhook body is not an object; acknowledging")
        return {"success": True}

    event = str(body.get("event") or "unknown")
    event_id = _event_id(raw_body, event_id_header)
    logger.info("Webhook received", extra={"event": event, "event_id": event_id})

    delivery = _register_delivery(db, event_id=event_id, event=event, body=body)
    if delivery is None:
        logger.info("Webhook delivery already processed", extra={"event": event, "event_id": event_id})
        return {"success": True}

    if dispatch_event(db, event, body):
        delivery.processed_at = utcnow()
        db.add(delivery)
        db.commit()
    return {"success": True}


__all__ = [
    "EVENT_HANDLERS",
    "dispatch_event",
    "handle_gateway_webhook",
    "handle_order_paid",
    "handle_payment_authorized",
    "handle_payment_captured",
    "handle_payment_failed",
    "handle_refund_created",
    "handle_refund_failed",
    "handle_refund_processed",
]
