"""Revolut Merchant webhook signature verification."""

from __future__ import annotations

import hashlib
import hmac
import logging
import os
import time

from app.config import settings

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "Revolut-Signature"
TIMESTAMP_HEADER = "Revolut-Request-Timestamp"


def _get_webhook_secret() -> str:
    return os.getenv("REVOLUT_WEBHOOK_SECRET", "")


def webhook_secret_configured() -> bool:
    return bool(_get_webhook_secret())


def _timestamp_within_tolerance(timestamp: str, now: float | None = None) -> bool:
    try:
        value = int(timestamp)
    except (TypeError, ValueError):
        return False
    # Revolut sends milliseconds since epoch
    if value > 10**11:
        value = value // 1000
    current = now if now is not None else time.time()
    return abs(current - value) <= settings.revolut_signature_tolerance_seconds


def verify_webhook_signature(
    body: bytes,
    signature: str | None,
    timestamp: str | None,
    now: float | None = None,
) -> bool:
    """Verify a Revolut webhook signature.

    The signed payload is ``v1.{timestamp}.{raw body}``; the header carries one
    or more comma-separated ``v1=<hex>`` values (several during secret rotation).

    Returns:
        True if any provided signature matches and the timestamp is fresh.
    """
    secret = _get_webhook_secret()
    if not secret or not signature or not timestamp:
        return False
    if not _timestamp_within_tolerance(timestamp, now):
        logger.warning("Revolut webhook timestamp %s outside tolerance", timestamp)
        return False
    signed_payload = b"v1." + timestamp.encode() + b"." + body
    expected = "v1=" + hmac.new(secret.encode(), signed_payload, hashlib.sha256).hexdigest()
    candidates = [item.strip() for item in signature.split(",") if item.strip()]
    return any(hmac.compare_digest(expected, candidate) for candidate in candidates)
