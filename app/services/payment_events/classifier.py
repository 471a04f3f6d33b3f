"""Provider event vocabulary to canonical payment outcome."""

from __future__ import annotations

import enum
import logging

from app.models.billing import InvoiceStatus, PaymentProviderType, TransactionStatus

logger = logging.getLogger(__name__)


class CanonicalOutcome(enum.Enum):
    pending = "pending"
    paid = "paid"
    failed = "failed"
    refunded = "refunded"
    agreement_created = "agreement_created"
    agreement_cancelled = "agreement_cancelled"
    ignored = "ignored"


_MOBILEPAY_EVENTS = {
    "Payment.Reserved": CanonicalOutcome.pending,
    "Payment.Captured": CanonicalOutcome.paid,
    "Agreement.PaymentCaptured": CanonicalOutcome.paid,
    "Payment.Cancelled": CanonicalOutcome.failed,
    "Payment.Rejected": CanonicalOutcome.failed,
    "Payment.Refunded": CanonicalOutcome.refunded,
    "Agreement.Created": CanonicalOutcome.agreement_created,
    "Agreement.Cancelled": CanonicalOutcome.agreement_cancelled,
}

_REVOLUT_EVENTS = {
    "ORDER_AUTHORISED": CanonicalOutcome.pending,
    "ORDER_COMPLETED": CanonicalOutcome.paid,
    "ORDER_FAILED": CanonicalOutcome.failed,
    "ORDER_CANCELLED": CanonicalOutcome.failed,
    "ORDER_PAYMENT_DECLINED": CanonicalOutcome.failed,
    "ORDER_PAYMENT_FAILED": CanonicalOutcome.failed,
}


class EventClassifier:
    _event_maps = {
        PaymentProviderType.mobilepay: _MOBILEPAY_EVENTS,
        PaymentProviderType.revolut: _REVOLUT_EVENTS,
    }
    _transaction_status_map = {
        CanonicalOutcome.paid: TransactionStatus.paid,
        CanonicalOutcome.failed: TransactionStatus.failed,
        CanonicalOutcome.refunded: TransactionStatus.refunded,
    }
    _invoice_status_map = {
        CanonicalOutcome.paid: InvoiceStatus.paid,
        CanonicalOutcome.failed: InvoiceStatus.cancelled,
        CanonicalOutcome.refunded: InvoiceStatus.refunded,
    }

    @staticmethod
    def classify(provider: PaymentProviderType, event_type: str) -> CanonicalOutcome:
        outcome = EventClassifier._event_maps.get(provider, {}).get(event_type)
        if outcome is None:
            logger.warning(
                "Unknown %s event type %s, ignoring", provider.value, event_type
            )
            return CanonicalOutcome.ignored
        return outcome

    @staticmethod
    def transaction_status(outcome: CanonicalOutcome) -> TransactionStatus:
        return EventClassifier._transaction_status_map.get(
            outcome, TransactionStatus.pending
        )

    @staticmethod
    def invoice_status(outcome: CanonicalOutcome) -> InvoiceStatus | None:
        """Target invoice status, or None when the outcome leaves invoices alone."""
        return EventClassifier._invoice_status_map.get(outcome)
