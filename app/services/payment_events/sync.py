"""Apply canonical payment outcomes to invoices, subscriptions and sales.

Each entity is updated and committed on its own. A failure on one entity is
rolled back and written to the ``payment_sync_steps`` compensation log as a
``failed`` step; the remaining entities are still attempted. The Sync Replay
job (``app.services.payment_events.replay``) picks failed steps up later,
together with ``pending`` steps the ledger wrote that were never settled.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.orm import Session

from app.metrics import observe_sync_step
from app.models.billing import (
    Invoice,
    PaymentSyncStep,
    PaymentTransaction,
    SyncEntity,
    SyncStepStatus,
)
from app.models.catalog import Subscription, SubscriptionStatus
from app.models.sales import Sale, SalePaymentStatus, SaleStatus
from app.services.payment_events.classifier import CanonicalOutcome, EventClassifier
from app.services.payment_events.correlation import Correlation

logger = logging.getLogger(__name__)

ENTITY_MODELS = {
    SyncEntity.invoice: Invoice,
    SyncEntity.subscription: Subscription,
    SyncEntity.sale: Sale,
}

_SUBSCRIPTION_TARGETS = {
    CanonicalOutcome.paid: SubscriptionStatus.active,
    CanonicalOutcome.failed: SubscriptionStatus.cancelled,
    CanonicalOutcome.agreement_cancelled: SubscriptionStatus.cancelled,
}


@dataclass
class SyncStepResult:
    entity: SyncEntity
    entity_id: uuid.UUID
    status: SyncStepStatus
    error: str | None = None


def _apply_invoice(
    invoice: Invoice,
    outcome: CanonicalOutcome,
    *,
    agreement_id: str | None,
    payment_method: str | None,
    now: datetime,
) -> SyncStepStatus | None:
    target = EventClassifier.invoice_status(outcome)
    if target is None:
        return None
    if invoice.status == target:
        return SyncStepStatus.skipped
    invoice.status = target
    if outcome == CanonicalOutcome.paid:
        invoice.paid_at = now
    return SyncStepStatus.applied


def _apply_subscription(
    subscription: Subscription,
    outcome: CanonicalOutcome,
    *,
    agreement_id: str | None,
    payment_method: str | None,
    now: datetime,
) -> SyncStepStatus | None:
    if outcome == CanonicalOutcome.agreement_created:
        if not agreement_id:
            return SyncStepStatus.skipped
        if (
            subscription.provider_agreement_id == agreement_id
            and subscription.payment_method == payment_method
        ):
            return SyncStepStatus.skipped
        subscription.provider_agreement_id = agreement_id
        subscription.payment_method = payment_method
        return SyncStepStatus.applied
    target = _SUBSCRIPTION_TARGETS.get(outcome)
    if target is None:
        return None
    if subscription.status == target:
        return SyncStepStatus.skipped
    subscription.status = target
    return SyncStepStatus.applied


def _apply_sale(
    sale: Sale,
    outcome: CanonicalOutcome,
    *,
    agreement_id: str | None,
    payment_method: str | None,
    now: datetime,
) -> SyncStepStatus | None:
    if outcome != CanonicalOutcome.paid:
        return None
    if (
        sale.status == SaleStatus.completed
        and sale.payment_status == SalePaymentStatus.received
    ):
        return SyncStepStatus.skipped
    sale.status = SaleStatus.completed
    sale.payment_status = SalePaymentStatus.received
    return SyncStepStatus.applied


def _rule_for(entity: SyncEntity):
    if entity == SyncEntity.invoice:
        return _apply_invoice
    if entity == SyncEntity.subscription:
        return _apply_subscription
    return _apply_sale


class StateSynchronizer:
    @staticmethod
    def apply_entity(
        db: Session,
        entity: SyncEntity,
        record,
        outcome: CanonicalOutcome,
        *,
        agreement_id: str | None = None,
        payment_method: str | None = None,
    ) -> SyncStepStatus | None:
        """Apply the rule for one entity and commit it.

        Returns None when the outcome does not concern this entity type.
        """
        status = _rule_for(entity)(
            record,
            outcome,
            agreement_id=agreement_id,
            payment_method=payment_method,
            now=datetime.now(UTC),
        )
        if status == SyncStepStatus.applied:
            db.commit()
        return status

    @staticmethod
    def record_step(
        db: Session,
        transaction_id: uuid.UUID,
        entity: SyncEntity,
        entity_id: uuid.UUID,
        status: SyncStepStatus,
        error: str | None = None,
    ) -> PaymentSyncStep | None:
        step = (
            db.query(PaymentSyncStep)
            .filter(PaymentSyncStep.transaction_id == transaction_id)
            .filter(PaymentSyncStep.entity == entity)
            .first()
        )
        now = datetime.now(UTC)
        if step:
            step.status = status
            step.error = error
            step.attempts = (step.attempts or 0) + 1
            step.last_attempt_at = now
        else:
            step = PaymentSyncStep(
                transaction_id=transaction_id,
                entity=entity,
                entity_id=entity_id,
                status=status,
                error=error,
                attempts=1,
                last_attempt_at=now,
            )
            db.add(step)
        try:
            db.commit()
        except Exception:
            db.rollback()
            logger.exception(
                "Error recording %s sync step for transaction %s", entity.value, transaction_id
            )
            return None
        return step

    @staticmethod
    def apply_outcome(
        db: Session,
        outcome: CanonicalOutcome,
        correlation: Correlation,
        *,
        transaction: PaymentTransaction | None = None,
        agreement_id: str | None = None,
        payment_method: str | None = None,
    ) -> list[SyncStepResult]:
        transaction_id = transaction.id if transaction is not None else None
        results: list[SyncStepResult] = []
        for entity, record in correlation.targets():
            entity_id = record.id
            error = None
            try:
                status = StateSynchronizer.apply_entity(
                    db,
                    entity,
                    record,
                    outcome,
                    agreement_id=agreement_id,
                    payment_method=payment_method,
                )
            except Exception as exc:
                db.rollback()
                logger.exception("Error updating %s %s", entity.value, entity_id)
                status = SyncStepStatus.failed
                error = str(exc) or exc.__class__.__name__
            if status is None:
                # Settle the intent step; the outcome does not concern this entity
                if transaction_id is not None:
                    StateSynchronizer.record_step(
                        db, transaction_id, entity, entity_id, SyncStepStatus.skipped
                    )
                continue
            if status == SyncStepStatus.applied:
                logger.info(
                    "Updated %s %s for outcome %s", entity.value, entity_id, outcome.value
                )
            observe_sync_step(entity.value, status.value)
            results.append(SyncStepResult(entity, entity_id, status, error))
            if transaction_id is not None:
                StateSynchronizer.record_step(
                    db, transaction_id, entity, entity_id, status, error
                )
        return results
