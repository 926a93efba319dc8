"""API routers for the storefront payments backend."""
from fastapi import APIRouter

from . import admin_payments, health, payments, webhooks


def get_api_router() -> APIRouter:
    """Return the root API router."""

    api_router = APIRouter()
    api_router.include_router(health.router)
    api_router.include_router(payments.router)
    api_router.include_router(admin_payments.router)
    api_router.include_router(webhooks.router)
    return api_router
