"""End-to-end checkout, confirmation and refund flow."""
from __future__ import annotations

import hashlib
import hmac
import json
import os
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.models import AuditLog, Order, OrderPaymentStatus, OrderStatus, Payment, PaymentStatus


def _client_signature(gateway_order_id: str, gateway_payment_id: str) -> str:
    message = f"{gateway_order_id}|{gateway_payment_id}".encode()
    return hmac.new(os.environ["RAZORPAY_KEY_SECRET"].encode(), message, hashlib.sha256).hexdigest()


def _webhook_headers(body: bytes) -> dict[str, str]:
    signature = hmac.new(os.environ["RAZORPAY_WEBHOOK_SECRET"].encode(), body, hashlib.sha256).hexdigest()
    return {"Content-Type": "application/json", "X-Razorpay-Signature": signature}


def _state(db_session, payment_id: int) -> tuple[Payment, Order]:
    db_session.expire_all()
    payment = db_session.get(Payment, payment_id)
    return payment, db_session.get(Order, payment.order_id)


@pytest.mark.anyio
async def test_checkout_verify_refund_scenario(client, db_session, gateway, customer, customer_headers, make_order):
    order = make_order(customer, total="500.00")

    intent = await client.post("/payments/create-order", json={"order_id": order.id}, headers=customer_headers)
    assert intent.status_code == 201
    payment_id = intent.json()["payment_id"]
    gateway_order_id = intent.json()["gateway_order_id"]
    payment, order = _state(db_session, payment_id)
    assert payment.status == PaymentStatus.CREATED
    assert order.payment_status == OrderPaymentStatus.PENDING

    verify = await client.post(
        "/payments/verify",
        json={
            "gateway_order_id": gateway_order_id,
            "gateway_payment_id": "pay_e2e",
            "gateway_signature": _client_signature(gateway_order_id, "pay_e2e"),
        },
        headers=customer_headers,
    )
    assert verify.status_code == 200
    payment, order = _state(db_session, payment_id)
    assert payment.status == PaymentStatus.CAPTURED
    assert order.payment_status == OrderPaymentStatus.PAID
    assert order.status == OrderStatus.PROCESSING

    refund = await client.post(f"/payments/{payment_id}/refund", headers=customer_headers)
    assert refund.status_code == 200, refund.text
    assert Decimal(refund.json()["amount"]) == Decimal("500.00")
    payment, order = _state(db_session, payment_id)
    assert payment.status == PaymentStatus.REFUNDED
    assert payment.refund_amount == Decimal("500.00")
    assert order.status == OrderStatus.CANCELLED
    assert order.payment_status == OrderPaymentStatus.REFUNDED

    actions = db_session.scalars(
        select(AuditLog.action).where(AuditLog.entity == "Payment", AuditLog.entity_id == payment_id).order_by(AuditLog.id)
    ).all()
    assert actions == ["PAYMENT_INTENT_CREATED", "PAYMENT_VERIFIED", "PAYMENT_REFUNDED"]


@pytest.mark.anyio
async def test_verification_and_webhook_race_converges(client, db_session, gateway, customer, customer_headers, make_order):
    order = make_order(customer, total="750.00")
    intent = (await client.post("/payments/create-order", json={"order_id": order.id}, headers=customer_headers)).json()
    gateway_order_id = intent["gateway_order_id"]

    # The webhook lands before the client confirmation.
    body = json.dumps(
        {
            "event": "payment.captured",
            "payload": {"payment": {"entity": {"id": "pay_race", "order_id": gateway_order_id, "method": "card"}}},
        }
    ).encode()
    webhook = await client.post("/webhooks/razorpay", content=body, headers=_webhook_headers(body))
    assert webhook.status_code == 200
    _, order = _state(db_session, intent["payment_id"])
    first_paid_at = order.paid_at

    verify = await client.post(
        "/payments/verify",
        json={
            "gateway_order_id": gateway_order_id,
            "gateway_payment_id": "pay_race",
            "gateway_signature": _client_signature(gateway_order_id, "pay_race"),
        },
        headers=customer_headers,
    )

    assert verify.status_code == 200
    payment, order = _state(db_session, intent["payment_id"])
    assert payment.status == PaymentStatus.CAPTURED
    assert order.payment_status == OrderPaymentStatus.PAID
    assert order.paid_at == first_paid_at
