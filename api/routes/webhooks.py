"""
Reference webhook receiver.

Merchants can mirror this endpoint in their own systems: read the raw body,
verify the signature header against it, and only then parse the JSON.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from api.schemas import WebhookReceipt
from core.dependencies import get_settings
from core.settings import Settings
from webhooks.signature import (
    EVENT_HEADER,
    SIGNATURE_HEADER,
    parse_webhook_payload,
    verify_signature,
)

log = structlog.get_logger(__name__)

router = APIRouter()


def handle_payment_confirmed(payload: dict):
    # Fulfil the order, email the customer, etc.
    log.info("webhook.example.confirmed", data=payload.get("data"))


def handle_payment_failed(payload: dict):
    log.info("webhook.example.failed", data=payload.get("data"))


@router.post("/example", response_model=WebhookReceipt)
async def example_webhook(request: Request, settings: Settings = Depends(get_settings)):
    signature = request.headers.get(SIGNATURE_HEADER)
    if not signature:
        raise HTTPException(status_code=400, detail="Missing signature header")

    if not settings.WEBHOOK_SECRET:
        raise HTTPException(status_code=503, detail="Webhook secret not configured")

    # Raw body, not a re-serialized form
    body = await request.body()
    if not verify_signature(body, signature, settings.WEBHOOK_SECRET):
        raise HTTPException(status_code=401, detail="Invalid signature")

    payload = parse_webhook_payload(body)
    if payload is None:
        raise HTTPException(status_code=400, detail="Invalid payload")

    event = request.headers.get(EVENT_HEADER) or payload.get("event")
    log.info(
        "webhook.example.received",
        webhook_event=event,
        payment_intent_id=(payload.get("data") or {}).get("paymentIntentId"),
    )

    if event == "payment.confirmed":
        handle_payment_confirmed(payload)
    elif event == "payment.failed":
        handle_payment_failed(payload)
    else:
        log.warning("webhook.example.unknown_event", webhook_event=event)

    return WebhookReceipt(received=True)
