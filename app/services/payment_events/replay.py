"""Re-apply failed or unsettled per-entity sync steps from the compensation log."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from app.config import settings
from app.metrics import observe_sync_step
from app.models.billing import PaymentSyncStep, PaymentTransaction, SyncStepStatus
from app.services.payment_events.classifier import CanonicalOutcome
from app.services.payment_events.sync import ENTITY_MODELS, StateSynchronizer

logger = logging.getLogger(__name__)

_SETTLED = (SyncStepStatus.applied, SyncStepStatus.skipped)


def _has_newer_settled_step(db: Session, step: PaymentSyncStep) -> bool:
    received_at = step.transaction.received_at
    newer = (
        db.query(PaymentSyncStep)
        .join(PaymentTransaction, PaymentSyncStep.transaction_id == PaymentTransaction.id)
        .filter(PaymentSyncStep.entity == step.entity)
        .filter(PaymentSyncStep.entity_id == step.entity_id)
        .filter(PaymentSyncStep.status.in_(_SETTLED))
        .filter(PaymentSyncStep.id != step.id)
        .filter(PaymentTransaction.received_at > received_at)
        .first()
    )
    return newer is not None


def _replay_step(db: Session, step: PaymentSyncStep) -> SyncStepStatus:
    transaction = step.transaction
    if _has_newer_settled_step(db, step):
        step.status = SyncStepStatus.superseded
        step.last_attempt_at = datetime.now(UTC)
        db.commit()
        return SyncStepStatus.superseded

    model = ENTITY_MODELS[step.entity]
    record = db.get(model, step.entity_id)
    if record is None:
        raise ValueError(f"{step.entity.value} {step.entity_id} not found")
    status = StateSynchronizer.apply_entity(
        db,
        step.entity,
        record,
        CanonicalOutcome(transaction.outcome),
        agreement_id=transaction.agreement_id,
        payment_method=transaction.payment_method,
    )
    status = status or SyncStepStatus.skipped
    StateSynchronizer.record_step(
        db, transaction.id, step.entity, step.entity_id, status
    )
    return status


def replay_failed_steps(
    db: Session,
    *,
    limit: int = 100,
    grace_seconds: int | None = None,
    now: datetime | None = None,
) -> dict:
    """Retry failed sync steps and stale pending ones, oldest first.

    ``pending`` steps are written with the ledger row and settled by the
    synchronizer right after; one still pending ``grace_seconds`` later was
    interrupted. A step whose entity already has an ``applied`` or
    ``skipped`` step from a newer transaction is marked ``superseded``
    instead of being re-applied.
    """
    if grace_seconds is None:
        grace_seconds = settings.sync_replay_grace_seconds
    cutoff = (now or datetime.now(UTC)) - timedelta(seconds=grace_seconds)
    steps = (
        db.query(PaymentSyncStep)
        .filter(
            or_(
                PaymentSyncStep.status == SyncStepStatus.failed,
                and_(
                    PaymentSyncStep.status == SyncStepStatus.pending,
                    PaymentSyncStep.last_attempt_at <= cutoff,
                ),
            )
        )
        .order_by(PaymentSyncStep.created_at.asc())
        .limit(limit)
        .all()
    )
    processed = []
    for step in steps:
        step_id = step.id
        transaction_id = step.transaction_id
        entity = step.entity
        entity_id = step.entity_id
        try:
            status = _replay_step(db, step)
        except Exception as exc:
            db.rollback()
            logger.exception("Replay of %s step %s failed", entity.value, step_id)
            error = str(exc) or exc.__class__.__name__
            StateSynchronizer.record_step(
                db, transaction_id, entity, entity_id, SyncStepStatus.failed, error
            )
            observe_sync_step(entity.value, SyncStepStatus.failed.value)
            processed.append(
                {"id": str(step_id), "entity": entity.value, "status": "error", "error": error}
            )
            continue
        observe_sync_step(entity.value, status.value)
        processed.append({"id": str(step_id), "entity": entity.value, "status": status.value})
    if processed:
        logger.info("Replayed %d sync steps", len(processed))
    return {"success": True, "processed": processed}
