"""Application configuration settings."""
from __future__ import annotations

import os
from functools import lru_cache

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Runtime toggles -----------------------------------------------------
# Execution environment: "dev" | "test" | "staging" | "prod"
ENV = os.getenv("APP_ENV", "dev").lower()


class GatewaySettings(BaseModel):
    """Immutable credentials handed to the payment gateway adapter."""

    model_config = ConfigDict(frozen=True)

    key_id: str
    key_secret: str
    webhook_secret: str
    timeout_seconds: int = 15


class Settings(BaseSettings):
    """Environment configuration for the storefront payments backend."""

    app_env: str = ENV
    database_url: str = "sqlite:///storefront_payments.db"
    SECRET_KEY: str = "change-me"
    ALLOW_DB_CREATE_ALL: bool = False
    CORS_ALLOW_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]
    SENTRY_DSN: str | None = None
    PROMETHEUS_ENABLED: bool = False
    LOG_LEVEL: str = "INFO"

    # --- Payment gateway -------------------------------------------------
    RAZORPAY_KEY_ID: str | None = None
    RAZORPAY_KEY_SECRET: str | None = None
    RAZORPAY_WEBHOOK_SECRET: str | None = None
    RAZORPAY_TIMEOUT_SECONDS: int = 15
    PAYMENT_CURRENCY: str = "INR"

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("RAZORPAY_KEY_ID", "RAZORPAY_KEY_SECRET", "RAZORPAY_WEBHOOK_SECRET")
    @classmethod
    def _strip_empty_secret(cls, value: str | None) -> str | None:
        """Normalise empty gateway credentials to ``None`` for easier validation."""

        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    def missing_gateway_settings(self) -> list[str]:
        """Return the names of gateway settings that are not configured."""

        names = ("RAZORPAY_KEY_ID", "RAZORPAY_KEY_SECRET", "RAZORPAY_WEBHOOK_SECRET")
        return [name for name in names if not getattr(self, name)]

    def gateway_settings(self) -> GatewaySettings:
        """Build the gateway credential bundle, raising when incomplete."""

        missing = self.missing_gateway_settings()
        if missing:
            raise RuntimeError(f"Missing payment gateway configuration: {', '.join(missing)}")
        return GatewaySettings(
            key_id=self.RAZORPAY_KEY_ID,
            key_secret=self.RAZORPAY_KEY_SECRET,
            webhook_secret=self.RAZORPAY_WEBHOOK_SECRET,
            timeout_seconds=self.RAZORPAY_TIMEOUT_SECONDS,
        )


class AppInfo(BaseModel):
    name: str = "storefront-payments"
    version: str = "0.1.0"


settings = Settings()


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return settings


__all__ = [
    "ENV",
    "GatewaySettings",
    "Settings",
    "AppInfo",
    "settings",
    "get_settings",
]
