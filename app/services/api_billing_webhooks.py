"""Payment provider webhook orchestration.

Received -> Verified -> Parsed -> Classified -> Recorded -> Synchronized ->
Responded. Every request runs on its own session and always answers with a
JSON ``{success, message|error}`` body.
"""

from __future__ import annotations

import json
import logging

from fastapi.responses import JSONResponse
from pydantic import TypeAdapter, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.metrics import observe_webhook
from app.models.billing import PaymentProviderType
from app.schemas.billing import WebhookPayload
from app.services import mobilepay, revolut
from app.services import payment_events
from app.services.payment_events import CanonicalOutcome, LedgerEntry

logger = logging.getLogger(__name__)

_LABELS = {
    PaymentProviderType.mobilepay: "MobilePay",
    PaymentProviderType.revolut: "Revolut",
}
_PAYLOAD_ADAPTER = TypeAdapter(WebhookPayload)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts)


def _process_notification(
    db: Session,
    *,
    provider: PaymentProviderType,
    body: bytes,
    signature_verified: bool,
) -> JSONResponse:
    label = _LABELS[provider]
    try:
        raw = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.error("%s webhook body is not valid JSON", label)
        observe_webhook(provider.value, "invalid", "error")
        return _error(500, "Invalid JSON payload")
    if not isinstance(raw, dict):
        observe_webhook(provider.value, "invalid", "error")
        return _error(500, "Invalid JSON payload")

    try:
        payload = _PAYLOAD_ADAPTER.validate_python({**raw, "provider": provider.value})
    except ValidationError as exc:
        message = _validation_message(exc)
        logger.error("Invalid %s webhook payload: %s", label, message)
        observe_webhook(provider.value, "invalid", "error")
        return _error(500, f"Invalid {label} payload: {message}")

    notification = payload.normalize(raw)
    logger.info(
        "%s webhook: %s %s",
        label,
        notification.event_type,
        notification.transaction_id or notification.agreement_id,
    )
    outcome = payment_events.event_classifier.classify(provider, notification.event_type)

    try:
        correlation = payment_events.correlation_resolver.resolve(db, notification)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("%s webhook correlation lookup failed", label)
        observe_webhook(provider.value, outcome.value, "error")
        return _error(500, "Failed to look up payment references")

    result = payment_events.ledger_writer.record(
        db,
        LedgerEntry(
            notification=notification,
            outcome=outcome,
            correlation=correlation,
            signature_verified=signature_verified,
        ),
    )
    if result.duplicate:
        observe_webhook(provider.value, outcome.value, "duplicate")
        return JSONResponse(
            {"success": True, "message": "Duplicate notification ignored"}, status_code=200
        )

    if outcome != CanonicalOutcome.ignored:
        payment_events.state_synchronizer.apply_outcome(
            db,
            outcome,
            correlation,
            transaction=result.transaction,
            agreement_id=notification.agreement_id,
            payment_method=notification.payment_method,
        )

    observe_webhook(provider.value, outcome.value, "processed")
    return JSONResponse(
        {"success": True, "message": f"{label} webhook processed"}, status_code=200
    )


def process_mobilepay_webhook(
    *, db: Session, body: bytes, signature: str | None
) -> JSONResponse:
    signature_verified = False
    if mobilepay.webhook_secret_configured():
        if not mobilepay.verify_webhook_signature(body, signature):
            logger.warning("Invalid MobilePay webhook signature")
            observe_webhook(PaymentProviderType.mobilepay.value, "unverified", "rejected")
            return _error(400, "Invalid signature")
        signature_verified = True
    else:
        logger.warning(
            "MOBILEPAY_WEBHOOK_SECRET not configured, skipping signature verification"
        )
    return _process_notification(
        db,
        provider=PaymentProviderType.mobilepay,
        body=body,
        signature_verified=signature_verified,
    )


def process_revolut_webhook(
    *,
    db: Session,
    body: bytes,
    signature: str | None,
    timestamp: str | None,
) -> JSONResponse:
    signature_verified = False
    if revolut.webhook_secret_configured():
        if not revolut.verify_webhook_signature(body, signature, timestamp):
            logger.warning("Invalid Revolut webhook signature")
            observe_webhook(PaymentProviderType.revolut.value, "unverified", "rejected")
            return _error(400, "Invalid signature")
        signature_verified = True
    else:
        logger.warning("REVOLUT_WEBHOOK_SECRET not configured, skipping signature verification")
    return _process_notification(
        db,
        provider=PaymentProviderType.revolut,
        body=body,
        signature_verified=signature_verified,
    )
