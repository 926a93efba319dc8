"""Tests for client-side verification and failure reports."""
from __future__ import annotations

import hashlib
import hmac
import os

import pytest
from sqlalchemy import select

from app.models import AuditLog, OrderPaymentStatus, OrderStatus, Payment, PaymentStatus


def _sign(gateway_order_id: str, gateway_payment_id: str) -> str:
    message = f"{gateway_order_id}|{gateway_payment_id}".encode()
    return hmac.new(os.environ["RAZORPAY_KEY_SECRET"].encode(), message, hashlib.sha256).hexdigest()


async def _start_checkout(client, headers, order) -> dict:
    response = await client.post("/payments/create-order", json={"order_id": order.id}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.anyio
async def test_verify_marks_payment_captured_and_order_paid(client, db_session, gateway, customer, customer_headers, make_order):
    order = make_order(customer, total="1000.00")
    intent = await _start_checkout(client, customer_headers, order)

    response = await client.post(
        "/payments/verify",
        json={
            "gateway_order_id": intent["gateway_order_id"],
            "gateway_payment_id": "pay_verify_1",
            "gateway_signature": _sign(intent["gateway_order_id"], "pay_verify_1"),
            "order_id": order.id,
        },
        headers=customer_headers,
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["status"] == "captured"
    assert body["order_id"] == order.id

    payment = db_session.get(Payment, intent["payment_id"])
    assert payment.status == PaymentStatus.CAPTURED
    assert payment.gateway_payment_id == "pay_verify_1"
    assert payment.payment_method == "card"
    assert payment.payment_email == "buyer@example.com"
    assert payment.gateway_metadata["bank"] == "HDFC"

    db_session.refresh(order)
    assert order.payment_status == OrderPaymentStatus.PAID
    assert order.status == OrderStatus.PROCESSING
    assert order.paid_at is not None

    audit = db_session.scalars(select(AuditLog).where(AuditLog.action == "PAYMENT_VERIFIED")).one()
    assert audit.data_json["payment_email"] == "***@example.com"


@pytest.mark.anyio
async def test_verify_with_authorized_status_still_marks_order_paid(client, db_session, gateway, customer, customer_headers, make_order):
    gateway.payment_status = "authorized"
    order = make_order(customer)
    intent = await _start_checkout(client, customer_headers, order)

    response = await client.post(
        "/payments/verify",
        json={
            "gateway_order_id": intent["gateway_order_id"],
            "gateway_payment_id": "pay_auth_1",
            "gateway_signature": _sign(intent["gateway_order_id"], "pay_auth_1"),
        },
        headers=customer_headers,
    )

    assert response.status_code == 200
    assert response.json()["status"] == "authorized"
    db_session.refresh(order)
    assert order.payment_status == OrderPaymentStatus.PAID


@pytest.mark.anyio
async def test_verify_bad_signature_marks_payment_failed(client, db_session, gateway, customer, customer_headers, make_order):
    order = make_order(customer)
    intent = await _start_checkout(client, customer_headers, order)

    response = await client.post(
        "/payments/verify",
        json={
            "gateway_order_id": intent["gateway_order_id"],
            "gateway_payment_id": "pay_forged",
            "gateway_signature": "0" * 64,
        },
        headers=customer_headers,
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "PAYMENT_VERIFICATION_FAILED"
    assert gateway.calls_to("fetch_payment_details") == []

    payment = db_session.get(Payment, intent["payment_id"])
    db_session.refresh(payment)
    assert payment.status == PaymentStatus.FAILED
    assert payment.error_description == "Invalid payment signature"

    db_session.refresh(order)
    assert order.payment_status == OrderPaymentStatus.PENDING


@pytest.mark.anyio
async def test_verify_for_other_users_payment_is_not_found(client, db_session, gateway, customer, customer_headers, make_order, make_user, make_customer_headers):
    order = make_order(customer)
    intent = await _start_checkout(client, customer_headers, order)
    intruder_headers = make_customer_headers(make_user("intruder"))

    response = await client.post(
        "/payments/verify",
        json={
            "gateway_order_id": intent["gateway_order_id"],
            "gateway_payment_id": "pay_x",
            "gateway_signature": _sign(intent["gateway_order_id"], "pay_x"),
        },
        headers=intruder_headers,
    )

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "PAYMENT_NOT_FOUND"
    payment = db_session.get(Payment, intent["payment_id"])
    db_session.refresh(payment)
    assert payment.status == PaymentStatus.CREATED


@pytest.mark.anyio
async def test_client_failure_report(client, db_session, customer, customer_headers, make_order):
    order = make_order(customer)
    intent = await _start_checkout(client, customer_headers, order)

    response = await client.post(
        "/payments/failed",
        json={
            "gateway_order_id": intent["gateway_order_id"],
            "error_code": "BAD_REQUEST_ERROR",
            "error_description": "Card declined by bank",
        },
        headers=customer_headers,
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["status"] == "failed"
    assert body["error_code"] == "BAD_REQUEST_ERROR"

    db_session.refresh(order)
    assert order.payment_status == OrderPaymentStatus.FAILED
    assert order.status == OrderStatus.PENDING


@pytest.mark.anyio
async def test_client_failure_default_description(client, db_session, customer, customer_headers, make_order):
    order = make_order(customer)
    intent = await _start_checkout(client, customer_headers, order)

    response = await client.post(
        "/payments/failed",
        json={"gateway_order_id": intent["gateway_order_id"]},
        headers=customer_headers,
    )

    assert response.status_code == 200
    assert response.json()["error_description"] == "Payment failed"


@pytest.mark.anyio
async def test_client_failure_unknown_order(client, customer_headers):
    response = await client.post(
        "/payments/failed",
        json={"gateway_order_id": "order_missing"},
        headers=customer_headers,
    )

    assert response.status_code == 404


@pytest.mark.anyio
async def test_verify_requires_customer_key(client):
    response = await client.post(
        "/payments/verify",
        json={"gateway_order_id": "o", "gateway_payment_id": "p", "gateway_signature": "s"},
    )

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "NO_API_KEY"


@pytest.mark.anyio
async def test_order_not_found_after_verification_keeps_payment(client, db_session, gateway, customer, customer_headers, make_order, make_user):
    order = make_order(customer)
    intent = await _start_checkout(client, customer_headers, order)
    # Move the order to another owner so the owner-scoped cascade cannot find it.
    new_owner = make_user("new-owner")
    order.user_id = new_owner.id
    db_session.commit()

    response = await client.post(
        "/payments/verify",
        json={
            "gateway_order_id": intent["gateway_order_id"],
            "gateway_payment_id": "pay_orphan",
            "gateway_signature": _sign(intent["gateway_order_id"], "pay_orphan"),
        },
        headers=customer_headers,
    )

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "ORDER_NOT_FOUND"
    payment = db_session.get(Payment, intent["payment_id"])
    db_session.refresh(payment)
    assert payment.status == PaymentStatus.CAPTURED


async def _verify_and_refund(client, gateway, headers, order) -> tuple[dict, dict]:
    intent = await _start_checkout(client, headers, order)
    verify_body = {
        "gateway_order_id": intent["gateway_order_id"],
        "gateway_payment_id": "pay_replay",
        "gateway_signature": _sign(intent["gateway_order_id"], "pay_replay"),
    }
    assert (await client.post("/payments/verify", json=verify_body, headers=headers)).status_code == 200
    refund = await client.post(f"/payments/{intent['payment_id']}/refund", json={}, headers=headers)
    assert refund.status_code == 200, refund.text
    gateway.payment_status = "refunded"
    return intent, verify_body


@pytest.mark.anyio
async def test_replayed_verification_keeps_refunded_state(client, db_session, gateway, customer, customer_headers, make_order):
    order = make_order(customer, total="500.00")
    intent, verify_body = await _verify_and_refund(client, gateway, customer_headers, order)

    response = await client.post("/payments/verify", json=verify_body, headers=customer_headers)

    assert response.status_code == 200, response.text
    assert response.json()["status"] == "refunded"
    db_session.expire_all()
    payment = db_session.get(Payment, intent["payment_id"])
    assert payment.status == PaymentStatus.REFUNDED
    db_session.refresh(order)
    assert order.status == OrderStatus.CANCELLED
    assert order.payment_status == OrderPaymentStatus.REFUNDED


@pytest.mark.anyio
async def test_bad_signature_does_not_fail_settled_payment(client, db_session, gateway, customer, customer_headers, make_order):
    order = make_order(customer)
    intent = await _start_checkout(client, customer_headers, order)
    good = await client.post(
        "/payments/verify",
        json={
            "gateway_order_id": intent["gateway_order_id"],
            "gateway_payment_id": "pay_settled",
            "gateway_signature": _sign(intent["gateway_order_id"], "pay_settled"),
        },
        headers=customer_headers,
    )
    assert good.status_code == 200

    forged = await client.post(
        "/payments/verify",
        json={
            "gateway_order_id": intent["gateway_order_id"],
            "gateway_payment_id": "pay_settled",
            "gateway_signature": "0" * 64,
        },
        headers=customer_headers,
    )

    assert forged.status_code == 400
    db_session.expire_all()
    payment = db_session.get(Payment, intent["payment_id"])
    assert payment.status == PaymentStatus.CAPTURED
    db_session.refresh(order)
    assert order.payment_status == OrderPaymentStatus.PAID


@pytest.mark.anyio
async def test_client_failure_report_on_refunded_payment_is_rejected(client, db_session, gateway, customer, customer_headers, make_order):
    order = make_order(customer, total="500.00")
    intent, _ = await _verify_and_refund(client, gateway, customer_headers, order)

    response = await client.post(
        "/payments/failed",
        json={"gateway_order_id": intent["gateway_order_id"]},
        headers=customer_headers,
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "PAYMENT_ALREADY_SETTLED"
    db_session.expire_all()
    assert db_session.get(Payment, intent["payment_id"]).status == PaymentStatus.REFUNDED
    db_session.refresh(order)
    assert order.status == OrderStatus.CANCELLED
