"""Centralized logging helpers for the storefront payments backend."""
from __future__ import annotations

import logging
from typing import Optional

from pythonjsonlogger import jsonlogger

# Third-party loggers that log every gateway HTTP call at INFO/DEBUG.
NOISY_LOGGERS = ("urllib3", "requests", "razorpay")


class ServiceContextFilter(logging.Filter):
    """Stamp every record with the service name and deployment environment."""

    def __init__(self, service: str, env: str) -> None:
        super().__init__()
        self.service = service
        self.env = env

    def filter(self, record: logging.LogRecord) -> bool:
        record.service = self.service
        if not hasattr(record, "env"):
            record.env = self.env
        return True


def setup_logging(level: str = "INFO", *, service: str = "storefront-payments", env: str = "dev") -> None:
    """Configure root logging with a JSON formatter.

    Fields passed through ``extra=`` (payment ids, gateway ids, event names)
    become top-level JSON keys.
    """

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
    root_logger.setLevel(level.upper())

    handler = logging.StreamHandler()
    formatter = jsonlogger.JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        rename_fields={"asctime": "timestamp", "levelname": "level", "name": "logger"},
    )
    handler.setFormatter(formatter)
    handler.addFilter(ServiceContextFilter(service, env))
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Return a logger configured with the shared root settings."""

    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(level.upper())
    return logger


__all__ = ["NOISY_LOGGERS", "ServiceContextFilter", "get_logger", "setup_logging"]
