"""Payment error taxonomy and standardized error payloads."""
from typing import Any


def error_response(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    """Return a standardized error payload."""

    payload: dict[str, Any] = {
        "success": False,
        "message": message,
        "error": {"code": code, "message": message},
    }
    if details:
        payload["error"]["details"] = details
    return payload


class PaymentError(Exception):
    """Base class for every error raised by the payment flows.

    Subclasses form a closed set; routers never inspect error attributes beyond
    ``status_code``, ``code`` and ``message``.
    """

    status_code: int = 400
    code: str = "PAYMENT_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details

    def to_response(self) -> dict[str, Any]:
        return error_response(self.code, self.message, self.details)


class NotFound(PaymentError):
    status_code = 404
    code = "NOT_FOUND"


class InvalidState(PaymentError):
    status_code = 400
    code = "INVALID_STATE"


class AlreadyPaid(InvalidState):
    code = "ORDER_ALREADY_PAID"


class AlreadyRefunded(InvalidState):
    code = "PAYMENT_ALREADY_REFUNDED"


class InvalidAmount(PaymentError):
    status_code = 400
    code = "INVALID_REFUND_AMOUNT"


class VerificationFailed(PaymentError):
    status_code = 400
    code = "PAYMENT_VERIFICATION_FAILED"


class GatewayError(PaymentError):
    """Any failure talking to the payment gateway.

    Only a normalised ``code``/``description`` pair is exposed to callers.
    """

    status_code = 502
    code = "GATEWAY_ERROR"

    def __init__(self, description: str, *, code: str | None = None) -> None:
        super().__init__(description, code=code)
        self.description = description


class WebhookSignatureInvalid(PaymentError):
    status_code = 400
    code = "WEBHOOK_SIGNATURE_INVALID"


__all__ = [
    "error_response",
    "PaymentError",
    "NotFound",
    "InvalidState",
    "AlreadyPaid",
    "AlreadyRefunded",
    "InvalidAmount",
    "VerificationFailed",
    "GatewayError",
    "WebhookSignatureInvalid",
]
