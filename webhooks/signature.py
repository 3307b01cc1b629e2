"""
Webhook signatures.

Signatures are the lowercase hex HMAC-SHA256 of the exact request body, sent
as ``X-CryptoPay-Signature: sha256=<hex>``. Receivers must verify against the
raw body bytes before parsing them.
"""

import hashlib
import hmac
import json
from typing import Any

import structlog

log = structlog.get_logger(__name__)

SIGNATURE_HEADER = "X-CryptoPay-Signature"
EVENT_HEADER = "X-CryptoPay-Event"
SIGNATURE_PREFIX = "sha256="

LOWER_HEX = frozenset("0123456789abcdef")


def _as_bytes(value: str | bytes) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def compute_signature(body: str | bytes, secret: str | bytes) -> str:
    return hmac.new(_as_bytes(secret), _as_bytes(body), hashlib.sha256).hexdigest()


def sign_payload(body: str | bytes, secret: str | bytes) -> str:
    """Header value for the given body."""
    return SIGNATURE_PREFIX + compute_signature(body, secret)


def verify_signature(
    body: str | bytes, signature: str | None, secret: str | bytes
) -> bool:
    """Constant-time check of a signature header; never raises."""
    if not signature:
        return False
    provided = signature
    if provided.startswith(SIGNATURE_PREFIX):
        provided = provided[len(SIGNATURE_PREFIX):]

    expected = compute_signature(body, secret)
    # Lowercase hex only; any other spelling is a different signature
    if len(provided) != len(expected) or not set(provided) <= LOWER_HEX:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


def parse_webhook_payload(body: str | bytes) -> dict[str, Any] | None:
    """Decode a verified body. Returns None for anything but a JSON object."""
    try:
        payload = json.loads(body)
    except (TypeError, ValueError) as e:
        log.warning("webhook.payload_invalid", error=str(e))
        return None
    if not isinstance(payload, dict):
        return None
    return payload
