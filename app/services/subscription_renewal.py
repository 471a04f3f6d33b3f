"""Initiate MobilePay renewal charges for subscriptions about to expire."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Protocol

from sqlalchemy.orm import Session

from app.config import settings
from app.models.catalog import Subscription, SubscriptionStatus
from app.schemas.billing import ChargeRequest, ChargeResult
from app.services import audit as audit_service
from app.services.common import as_utc, to_minor_units
from app.services.mobilepay import MobilePayChargeClient

logger = logging.getLogger(__name__)

RENEWAL_ACTION = "subscription_renewal_initiated"
FUNCTION_NAME = "subscription-renewal"


class ChargeClient(Protocol):
    """Charge-initiation capability."""

    def create_charge(self, request: ChargeRequest) -> ChargeResult: ...


def _renewal_candidates(db: Session, cutoff: datetime) -> list[Subscription]:
    return (
        db.query(Subscription)
        .filter(Subscription.status == SubscriptionStatus.active)
        .filter(Subscription.payment_method == "mobilepay")
        .filter(Subscription.provider_agreement_id.isnot(None))
        .filter(Subscription.end_date <= cutoff)
        .order_by(Subscription.end_date.asc())
        .all()
    )


def _external_id(subscription: Subscription, run_at: datetime) -> str:
    return f"renewal-{subscription.id}-{int(run_at.timestamp() * 1000)}"


def _renew_subscription(
    db: Session,
    subscription: Subscription,
    charge_client: ChargeClient,
    run_at: datetime,
) -> dict:
    end_date = as_utc(subscription.end_date).isoformat()
    if audit_service.activity_exists(
        db, action=RENEWAL_ACTION, entity_id=subscription.id, end_date=end_date
    ):
        logger.info(
            "Renewal already initiated for subscription %s (end_date %s)",
            subscription.id,
            end_date,
        )
        return {"id": str(subscription.id), "status": "skipped"}

    request = ChargeRequest(
        agreement_id=subscription.provider_agreement_id,
        amount=to_minor_units(subscription.price or 0),
        currency=subscription.currency or settings.renewal_currency,
        description=f"Renewal for {subscription.product_name}",
        external_id=_external_id(subscription, run_at),
    )
    result = charge_client.create_charge(request)
    if not result.success:
        raise ValueError(result.error or "Failed to create MobilePay charge")

    charge_id = result.charge_id
    audit_service.log_activity(
        db,
        action=RENEWAL_ACTION,
        entity_type="subscription",
        entity_id=subscription.id,
        details={
            "chargeId": charge_id,
            "amount": subscription.price,
            "end_date": end_date,
            "externalId": request.external_id,
        },
    )
    logger.info("Renewal charge %s created for subscription %s", charge_id, subscription.id)
    return {"id": str(subscription.id), "status": "success", "chargeId": charge_id}


def run_renewals(
    db: Session,
    *,
    run_at: datetime | None = None,
    lead_days: int | None = None,
    charge_client: ChargeClient | None = None,
) -> dict:
    """Create renewal charges for active MobilePay subscriptions near expiry.

    Each subscription is processed on its own; a failure is written to the
    error log and reported in ``processed`` without stopping the batch.
    """
    run_at = as_utc(run_at) or datetime.now(UTC)
    lead = settings.renewal_lead_days if lead_days is None else lead_days
    client = charge_client or MobilePayChargeClient()
    cutoff = run_at + timedelta(days=lead)

    subscriptions = _renewal_candidates(db, cutoff)
    if not subscriptions:
        logger.info("No subscriptions due for renewal before %s", cutoff.isoformat())
        return {"success": True, "message": "No subscriptions due for renewal.", "processed": []}

    logger.info("Found %d subscriptions to renew", len(subscriptions))
    processed = []
    for subscription in subscriptions:
        subscription_id = subscription.id
        try:
            processed.append(_renew_subscription(db, subscription, client, run_at))
        except Exception as exc:
            db.rollback()
            error = str(exc) or exc.__class__.__name__
            logger.error("Error renewing subscription %s: %s", subscription_id, error)
            audit_service.log_error(
                db,
                message=f"Subscription renewal failed for {subscription_id}",
                function_name=FUNCTION_NAME,
                context={"subscription_id": subscription_id, "error": error},
            )
            processed.append({"id": str(subscription_id), "status": "error", "error": error})
    return {"success": True, "processed": processed}
