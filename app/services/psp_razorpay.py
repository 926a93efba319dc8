"""Razorpay SDK wrapper isolating gateway calls and signature cryptography."""
from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping

import razorpay
from razorpay.errors import BadRequestError, GatewayError as RazorpayGatewayError, ServerError
import requests
from fastapi import Request

from app.config import GatewaySettings
from app.utils.errors import GatewayError

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")


def to_minor_units(amount: Decimal | int | float | str) -> int:
    """Convert a major-unit amount to the smallest currency unit (paise)."""

    normalized = Decimal(str(amount)).quantize(_CENT, rounding=ROUND_HALF_UP)
    return int((normalized * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_minor_units(value: int | str | None) -> Decimal:
    """Convert a gateway minor-unit integer back to a major-unit decimal."""

    if value is None:
        return Decimal("0.00")
    return (Decimal(str(value)) / Decimal("100")).quantize(_CENT)


@dataclass(frozen=True)
class GatewayOrder:
    gateway_order_id: str
    amount_minor_units: int
    currency: str
    status: str


@dataclass(frozen=True)
class PaymentDetails:
    """Authoritative snapshot of a payment as reported by the gateway."""

    gateway_payment_id: str
    gateway_order_id: str | None
    status: str
    method: str | None = None
    email: str | None = None
    contact: str | None = None
    card_id: str | None = None
    bank: str | None = None
    wallet: str | None = None
    vpa: str | None = None
    amount_minor_units: int | None = None
    error_code: str | None = None
    error_description: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_entity(cls, entity: Mapping[str, Any]) -> "PaymentDetails":
        return cls(
            gateway_payment_id=entity.get("id"),
            gateway_order_id=entity.get("order_id"),
            status=entity.get("status") or "",
            method=entity.get("method"),
            email=entity.get("email"),
            contact=entity.get("contact"),
            card_id=entity.get("card_id"),
            bank=entity.get("bank"),
            wallet=entity.get("wallet"),
            vpa=entity.get("vpa"),
            amount_minor_units=entity.get("amount"),
            error_code=entity.get("error_code"),
            error_description=entity.get("error_description"),
            raw=dict(entity),
        )

    def metadata(self) -> dict[str, str | None]:
        return {
            "card_id": self.card_id,
            "bank": self.bank,
            "wallet": self.wallet,
            "vpa": self.vpa,
        }


@dataclass(frozen=True)
class GatewayRefund:
    refund_id: str
    status: str
    amount_minor_units: int | None = None


class RazorpayGateway:
    """Wrapper around the Razorpay Python SDK to isolate gateway concerns."""

    def __init__(self, settings: GatewaySettings, client: razorpay.Client | None = None) -> None:
        if not settings.key_id or not settings.key_secret:
            raise RuntimeError("Razorpay key id/secret are missing; configure RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET.")
        self.settings = settings
        self._timeout = settings.timeout_seconds
        self._client = client or razorpay.Client(auth=(settings.key_id, settings.key_secret))

    @property
    def key_id(self) -> str:
        return self.settings.key_id

    # --- signatures ------------------------------------------------------

    def verify_client_signature(
        self, gateway_order_id: str, gateway_payment_id: str, signature: str | None
    ) -> bool:
        """Check the checkout callback signature over ``order_id|payment_id``."""

        if not signature:
            return False
        message = f"{gateway_order_id}|{gateway_payment_id}".encode("utf-8")
        expected = hmac.new(self.settings.key_secret.encode("utf-8"), message, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature)

    def verify_webhook_signature(self, raw_body: bytes, signature_header: str | None) -> bool:
        """Check a webhook signature computed over the exact raw request body."""

        if not self.settings.webhook_secret:
            raise RuntimeError(
                "Razorpay webhook secret is missing; configure RAZORPAY_WEBHOOK_SECRET for verification."
            )
        if not signature_header:
            return False
        expected = hmac.new(
            self.settings.webhook_secret.encode("utf-8"), raw_body, hashlib.sha256
        ).hexdigest()
        return hmac.compare_digest(expected, signature_header)

    # --- gateway calls ---------------------------------------------------

    def _call(self, operation: str, func, *args, **kwargs) -> dict[str, Any]:
        try:
            return func(*args, timeout=self._timeout, **kwargs)
        except BadRequestError as exc:
            logger.warning("Razorpay rejected request", extra={"operation": operation, "reason": str(exc)})
            raise GatewayError(str(exc) or "Payment gateway rejected the request.", code="GATEWAY_BAD_REQUEST")
        except (ServerError, RazorpayGatewayError) as exc:
            logger.error("Razorpay server error", extra={"operation": operation, "reason": str(exc)})
            raise GatewayError("Payment gateway returned an error.", code="GATEWAY_SERVER_ERROR")
        except requests.RequestException as exc:
            logger.error(
                "Razorpay unreachable",
                extra={"operation": operation, "error_type": type(exc).__name__},
            )
            raise GatewayError("Payment gateway is unreachable.", code="GATEWAY_UNAVAILABLE")

    def create_gateway_order(
        self,
        amount: Decimal,
        currency: str,
        receipt: str,
        notes: Mapping[str, str] | None = None,
    ) -> GatewayOrder:
        """Create a gateway order for ``amount`` expressed in major units."""

        payload = {
            "amount": to_minor_units(amount),
            "currency": currency,
            "receipt": receipt,
            "notes": dict(notes or {}),
        }
        order = self._call("order.create", self._client.order.create, data=payload)
        return GatewayOrder(
            gateway_order_id=order["id"],
            amount_minor_units=int(order.get("amount", payload["amount"])),
            currency=order.get("currency", currency),
            status=order.get("status", "created"),
        )

    def fetch_payment_details(self, gateway_payment_id: str) -> PaymentDetails:
        entity = self._call("payment.fetch", self._client.payment.fetch, gateway_payment_id)
        return PaymentDetails.from_entity(entity)

    def capture_payment(self, gateway_payment_id: str, amount: Decimal, currency: str) -> PaymentDetails:
        """Capture an authorized payment for ``amount`` in major units."""

        entity = self._call(
            "payment.capture",
            self._client.payment.capture,
            gateway_payment_id,
            to_minor_units(amount),
            data={"currency": currency},
        )
        return PaymentDetails.from_entity(entity)

    def create_refund(
        self,
        gateway_payment_id: str,
        amount: Decimal | None,
        notes: Mapping[str, str] | None = None,
    ) -> GatewayRefund:
        """Refund ``amount`` (major units) or, when ``None``, the remaining balance."""

        payload: dict[str, Any] = {"notes": dict(notes or {})}
        if amount is not None:
            payload["amount"] = to_minor_units(amount)
        refund = self._call("payment.refund", self._client.payment.refund, gateway_payment_id, data=payload)
        return GatewayRefund(
            refund_id=refund["id"],
            status=refund.get("status", "processed"),
            amount_minor_units=refund.get("amount"),
        )


def get_gateway(request: Request) -> RazorpayGateway:
    """FastAPI dependency returning the gateway built at startup."""

    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise RuntimeError("Payment gateway is not initialised; application startup did not complete.")
    return gateway


__all__ = [
    "GatewayOrder",
    "GatewayRefund",
    "PaymentDetails",
    "RazorpayGateway",
    "from_minor_units",
    "get_gateway",
    "to_minor_units",
]
