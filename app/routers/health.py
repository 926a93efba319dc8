"""Health check endpoint."""
from __future__ import annotations

import hashlib
import logging
from functools import lru_cache
from pathlib import Path

from alembic.config import Config
from alembic.script import ScriptDirectory
from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.config import Settings, get_settings
from app.db import get_engine

router = APIRouter(prefix="/health", tags=["health"])
logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[2]


@lru_cache
def _migration_head() -> str | None:
    """Head revision shipped with this build, read once per process."""

    try:
        config = Config(str(PROJECT_ROOT / "alembic.ini"))
        config.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
        return ScriptDirectory.from_config(config).get_current_head()
    except Exception:  # noqa: BLE001
        logger.exception("Failed to load Alembic head revision")
        return None


def _database_report() -> tuple[str, str]:
    """Return ``(db_status, migrations_status)`` from a single connection."""

    try:
        conn = get_engine().connect()
    except Exception:  # noqa: BLE001
        logger.exception("DB health check failed")
        return "error", "unknown"

    with conn:
        try:
            conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.exception("DB health check failed")
            return "error", "unknown"
        try:
            current = conn.execute(text("SELECT version_num FROM alembic_version")).scalar()
        except SQLAlchemyError:
            logger.warning("alembic_version table is not readable")
            return "ok", "unknown"

    head = _migration_head()
    if head is None:
        return "ok", "unknown"
    return "ok", "up_to_date" if current == head else "out_of_date"


def _fingerprint(value: str | None) -> str | None:
    if not value:
        return None
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:8]


def _gateway_status(settings: Settings) -> dict[str, object]:
    return {
        "key_configured": bool(settings.RAZORPAY_KEY_ID and settings.RAZORPAY_KEY_SECRET),
        "webhook_configured": bool(settings.RAZORPAY_WEBHOOK_SECRET),
        "missing": settings.missing_gateway_settings(),
        "fingerprints": {
            "key_secret": _fingerprint(settings.RAZORPAY_KEY_SECRET),
            "webhook_secret": _fingerprint(settings.RAZORPAY_WEBHOOK_SECRET),
        },
    }


@router.get("", summary="Health check")
def healthcheck() -> dict[str, object]:
    """Return database, migration and gateway configuration status."""

    settings = get_settings()
    db_status, migrations_status = _database_report()
    gateway = _gateway_status(settings)
    db_ok = db_status == "ok"
    migrations_ok = migrations_status == "up_to_date"
    healthy = db_ok and migrations_ok and not gateway["missing"]
    return {
        "status": "ok" if healthy else "degraded",
        "db_ok": db_ok,
        "db_status": db_status,
        "migrations_ok": migrations_ok,
        "migrations_status": migrations_status,
        "gateway": gateway,
        "currency": settings.PAYMENT_CURRENCY,
    }
