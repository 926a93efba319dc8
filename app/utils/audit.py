"""Audit logging helper utilities."""
from __future__ import annotations

from typing import Any, Callable, Mapping

from sqlalchemy.orm import Session

from app.models.audit import AuditLog
from app.utils.time import utcnow


def _keep_domain(value: Any) -> str:
    text = str(value)
    if "@" not in text:
        return "***"
    return "***@" + text.split("@", 1)[1]


def _keep_last_four(min_length: int) -> Callable[[Any], str]:
    def _mask(value: Any) -> str:
        text = "".join(ch for ch in str(value) if ch.isalnum())
        if len(text) <= min_length:
            return "***"
        return "***" + text[-4:]

    return _mask


def _redact(value: Any) -> str:
    return "***"


# Field name -> masker. Emails and UPI handles keep their domain, phone and
# card references keep the last four characters.
MASKERS: dict[str, Callable[[Any], str]] = {
    "email": _keep_domain,
    "payment_email": _keep_domain,
    "vpa": _keep_domain,
    "contact": _keep_last_four(4),
    "payment_contact": _keep_last_four(4),
    "card_id": _keep_last_four(6),
    "gateway_signature": _redact,
}
SENSITIVE_KEYS = frozenset(MASKERS)


def sanitize_payload_for_audit(data: Any) -> Any:
    """Return a copy of ``data`` with customer identifiers masked."""

    if isinstance(data, Mapping):
        return {
            key: (MASKERS[key](value) if key in MASKERS and value is not None else sanitize_payload_for_audit(value))
            for key, value in data.items()
        }
    if isinstance(data, (list, tuple)):
        return [sanitize_payload_for_audit(item) for item in data]
    return data


def log_audit(
    db: Session,
    *,
    actor: str,
    action: str,
    entity: str,
    entity_id: int | None,
    data: dict | None = None,
) -> None:
    """Queue an audit row on ``db``; the caller's commit persists it."""

    db.add(
        AuditLog(
            actor=actor,
            action=action,
            entity=entity,
            entity_id=entity_id if entity_id is not None else 0,
            data_json=sanitize_payload_for_audit(data or {}),
            at=utcnow(),
        )
    )
