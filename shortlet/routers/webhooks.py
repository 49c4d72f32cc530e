"""
Payment gateway webhooks

Both endpoints hand the exact raw bytes to the handler; signatures are
computed over the body as received, never over re-serialized JSON.
Gateway deliveries are not rate limited; the only replies are 200, 401 and 503.
"""
from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from typing import Optional

from ..config import Settings, get_settings
from ..database import get_db
from ..services.webhook_reconciler import PaystackWebhookHandler, StripeWebhookHandler

router = APIRouter(prefix="/api/webhooks", tags=["Payment Webhooks"])


@router.post("/paystack")
async def paystack_webhook(
    request: Request,
    x_paystack_signature: Optional[str] = Header(None, alias="x-paystack-signature"),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    body = await request.body()
    handler = PaystackWebhookHandler(db, settings)
    outcome = await run_in_threadpool(handler.handle, body, x_paystack_signature)
    return JSONResponse(outcome.body, status_code=outcome.status_code)


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    body = await request.body()
    handler = StripeWebhookHandler(db, settings)
    outcome = await run_in_threadpool(handler.handle, body, stripe_signature)
    return JSONResponse(outcome.body, status_code=outcome.status_code)
