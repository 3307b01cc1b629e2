"""
Webhook Dispatcher

Builds, signs and delivers the merchant notification for a payment intent
that reached a terminal state. Each call makes exactly one HTTP attempt;
failures are logged and returned as False, never raised.
"""

import json
import uuid
from typing import Any, Literal

import requests
import structlog

from core.errors import WebhookConfigurationError
from core.logging import BusinessEvents
from core.metrics import webhook_deliveries
from core.settings import Settings
from db.models import Merchant, PaymentIntent
from db.store import PaymentIntentStore
from webhooks.signature import EVENT_HEADER, SIGNATURE_HEADER, sign_payload

log = structlog.get_logger(__name__)

WebhookEventKind = Literal["payment.confirmed", "payment.failed"]

USER_AGENT = "CryptoPay-Webhook/1.0"


def _isoformat(value) -> str | None:
    return value.isoformat() if value is not None else None


def build_event(payment_intent: PaymentIntent, event: WebhookEventKind) -> dict[str, Any]:
    """Event envelope mirroring the intent's public fields."""
    return {
        "id": str(uuid.uuid4()),
        "event": event,
        "data": {
            "paymentIntentId": payment_intent.id,
            "buttonId": payment_intent.button_id,
            "amount": payment_intent.amount,
            "tokenAddress": payment_intent.token_address,
            "chainId": payment_intent.chain_id,
            "merchantAddress": payment_intent.merchant_address,
            "customerAddress": payment_intent.customer_address,
            "transactionHash": payment_intent.transaction_hash,
            "status": payment_intent.status.value,
            "createdAt": _isoformat(payment_intent.created_at),
            "confirmedAt": _isoformat(payment_intent.confirmed_at),
        },
    }


def serialize_event(envelope: dict[str, Any]) -> bytes:
    """Canonical wire form; the signature covers exactly these bytes."""
    return json.dumps(envelope, separators=(",", ":"), sort_keys=True).encode("utf-8")


class WebhookDispatcher:
    def __init__(self, store: PaymentIntentStore, settings: Settings):
        self.store = store
        self.default_secret = settings.WEBHOOK_SECRET
        self.timeout = settings.WEBHOOK_TIMEOUT_SECONDS

    def resolve_secret(self, merchant: Merchant) -> str:
        secret = merchant.webhook_secret or self.default_secret
        if not secret:
            raise WebhookConfigurationError(
                f"No webhook secret configured for merchant {merchant.id}"
            )
        return secret

    def send_webhook(self, payment_intent_id: str, event: WebhookEventKind) -> bool:
        """
        Deliver one signed event for the intent.

        Returns:
            True when delivered or when the merchant has no webhook URL,
            False on any lookup, configuration or delivery failure.
        """
        try:
            return self._send(payment_intent_id, event)
        except Exception as e:
            log.error(
                BusinessEvents.WEBHOOK_DELIVERY_FAILED,
                payment_intent_id=payment_intent_id,
                webhook_event=event,
                error=str(e),
            )
            webhook_deliveries.labels(outcome="failed").inc()
            return False

    def _send(self, payment_intent_id: str, event: WebhookEventKind) -> bool:
        payment_intent = self.store.get_payment_intent(payment_intent_id)
        if payment_intent is None:
            log.error("webhook.intent_missing", payment_intent_id=payment_intent_id)
            return False

        button = self.store.get_button(payment_intent.button_id)
        if button is None:
            log.error(
                "webhook.button_missing",
                payment_intent_id=payment_intent_id,
                button_id=payment_intent.button_id,
            )
            return False

        merchant = self.store.get_merchant(button.merchant_id)
        if merchant is None or not merchant.webhook_url:
            # No subscriber is not a failure
            log.info(
                BusinessEvents.WEBHOOK_SKIPPED,
                payment_intent_id=payment_intent_id,
                merchant_id=button.merchant_id,
            )
            webhook_deliveries.labels(outcome="skipped").inc()
            return True

        secret = self.resolve_secret(merchant)
        body = serialize_event(build_event(payment_intent, event))

        try:
            response = requests.post(
                merchant.webhook_url,
                data=body,
                headers={
                    "Content-Type": "application/json",
                    SIGNATURE_HEADER: sign_payload(body, secret),
                    EVENT_HEADER: event,
                    "User-Agent": USER_AGENT,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            log.error(
                BusinessEvents.WEBHOOK_DELIVERY_FAILED,
                payment_intent_id=payment_intent_id,
                webhook_event=event,
                url=merchant.webhook_url,
                error=str(e),
            )
            webhook_deliveries.labels(outcome="failed").inc()
            return False

        if not 200 <= response.status_code < 300:
            log.error(
                BusinessEvents.WEBHOOK_DELIVERY_FAILED,
                payment_intent_id=payment_intent_id,
                webhook_event=event,
                url=merchant.webhook_url,
                status_code=response.status_code,
                reason=response.reason,
            )
            webhook_deliveries.labels(outcome="failed").inc()
            return False

        log.info(
            BusinessEvents.WEBHOOK_DELIVERED,
            payment_intent_id=payment_intent_id,
            webhook_event=event,
            status_code=response.status_code,
        )
        webhook_deliveries.labels(outcome="delivered").inc()
        return True
