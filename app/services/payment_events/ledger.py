"""Append-only payment transaction ledger."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.billing import (
    PaymentProviderType,
    PaymentSyncStep,
    PaymentTransaction,
    SyncStepStatus,
)
from app.schemas.billing import NormalizedNotification
from app.services.payment_events.classifier import CanonicalOutcome, EventClassifier
from app.services.payment_events.correlation import Correlation

logger = logging.getLogger(__name__)


@dataclass
class LedgerEntry:
    notification: NormalizedNotification
    outcome: CanonicalOutcome
    correlation: Correlation
    signature_verified: bool = False


@dataclass
class LedgerResult:
    transaction: PaymentTransaction | None
    created: bool
    duplicate: bool = False


class LedgerWriter:
    @staticmethod
    def get_existing(
        db: Session, provider: PaymentProviderType, idempotency_key: str
    ) -> PaymentTransaction | None:
        return (
            db.query(PaymentTransaction)
            .filter(PaymentTransaction.provider == provider)
            .filter(PaymentTransaction.idempotency_key == idempotency_key)
            .first()
        )

    @staticmethod
    def record(db: Session, entry: LedgerEntry) -> LedgerResult:
        """Insert one ledger row for the notification unless it was seen before.

        A ``pending`` sync step per matched entity is committed with the row,
        so an interrupted synchronization is left behind for the Sync Replay
        job. Insert failures other than a duplicate are logged and reported
        with ``transaction=None`` so the caller can still synchronize state.
        """
        notification = entry.notification
        key = notification.idempotency_key
        existing = LedgerWriter.get_existing(db, notification.provider, key)
        if existing:
            logger.info("Duplicate %s notification %s", notification.provider.value, key)
            return LedgerResult(transaction=existing, created=False, duplicate=True)

        correlation = entry.correlation
        transaction = PaymentTransaction(
            provider=notification.provider,
            transaction_id=notification.transaction_id,
            event_type=notification.event_type,
            outcome=entry.outcome.value,
            idempotency_key=key,
            status=EventClassifier.transaction_status(entry.outcome),
            amount=notification.amount,
            currency=notification.currency,
            payment_method=notification.payment_method,
            invoice_id=correlation.invoice.id if correlation.invoice else None,
            customer_id=correlation.customer_id,
            subscription_id=correlation.subscription.id if correlation.subscription else None,
            sale_id=correlation.sale.id if correlation.sale else None,
            agreement_id=notification.agreement_id,
            signature_verified=entry.signature_verified,
            provider_response=notification.raw,
        )
        if entry.outcome != CanonicalOutcome.ignored:
            transaction.sync_steps = [
                PaymentSyncStep(
                    entity=entity,
                    entity_id=record.id,
                    status=SyncStepStatus.pending,
                    attempts=0,
                )
                for entity, record in correlation.targets()
            ]
        db.add(transaction)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            # A concurrent delivery of the same notification won the insert
            existing = LedgerWriter.get_existing(db, notification.provider, key)
            if existing:
                logger.info(
                    "Duplicate %s notification %s (concurrent)",
                    notification.provider.value,
                    key,
                )
                return LedgerResult(transaction=existing, created=False, duplicate=True)
            logger.exception("Error creating payment transaction %s", key)
            return LedgerResult(transaction=None, created=False)
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Error creating payment transaction %s", key)
            return LedgerResult(transaction=None, created=False)
        db.refresh(transaction)
        logger.info(
            "Recorded %s transaction %s status=%s",
            notification.provider.value,
            key,
            transaction.status.value,
        )
        return LedgerResult(transaction=transaction, created=True)
