"""Routes for Razorpay webhook handling."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from app.db import get_db
from app.services import psp_webhooks
from app.services.psp_razorpay import RazorpayGateway, get_gateway

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

SIGNATURE_HEADER = "X-Razorpay-Signature"
EVENT_ID_HEADER = "X-Razorpay-Event-Id"


@router.post("/razorpay", status_code=status.HTTP_200_OK)
async def razorpay_webhook(
    request: Request,
    db: Session = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_gateway),
) -> dict[str, bool]:
    # The signature covers the exact bytes received; never re-serialise.
    raw_body = await request.body()
    return psp_webhooks.handle_gateway_webhook(
        db,
        gateway,
        raw_body=raw_body,
        signature=request.headers.get(SIGNATURE_HEADER),
        event_id_header=request.headers.get(EVENT_ID_HEADER),
    )


__all__ = ["router"]
