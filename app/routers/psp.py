"""Gateway-facing callback routes."""
from __future__ import annotations

import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.config import get_settings
from app.db import get_db
from app.services import psp_webhooks

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/psp", tags=["psp"])


@router.post("/stripe/webhook", status_code=status.HTTP_200_OK)
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
) -> dict[str, object]:
    payload = await request.body()
    sig_header = request.headers.get("Stripe-Signature")
    return await run_in_threadpool(psp_webhooks.handle_stripe_webhook, db, payload, sig_header)


@router.get("/wipay/callback")
def wipay_callback(
    order_id: str | None = Query(default=None),
    transaction_id: str | None = Query(default=None),
    status_param: str | None = Query(default=None, alias="status"),
    wipay_status: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    """Handle the browser redirect WiPay issues after checkout."""

    callback = psp_webhooks.handle_wipay_callback(
        db,
        order_id=order_id,
        transaction_id=transaction_id,
        reported_status=status_param or wipay_status,
    )
    result = callback.result
    body = {
        "received": True,
        "outcome": result.outcome.value,
        "payment_id": result.payment_id,
        "status": result.payment_status.value if result.payment_status else None,
    }
    logger.info("WiPay callback handled", extra={"order_id": order_id, "outcome": result.outcome.value})

    redirect_base = get_settings().PAYMENT_STATUS_REDIRECT_URL
    if redirect_base and result.payment_id is not None:
        query = urlencode({"payment_id": result.payment_id, "status": body["status"]})
        separator = "&" if "?" in redirect_base else "?"
        return RedirectResponse(f"{redirect_base}{separator}{query}", status_code=status.HTTP_303_SEE_OTHER)
    return JSONResponse(body)


__all__ = ["router"]
