import time

from app.celery_app import celery_app
from app.db import SessionLocal
from app.logging import get_logger
from app.metrics import observe_job
from app.services import payment_events
from app.services import subscription_reminders as subscription_reminders_service
from app.services import subscription_renewal as subscription_renewal_service

logger = get_logger(__name__)


def _run_job(job_name: str, service, **kwargs) -> dict:
    start = time.monotonic()
    status = "success"
    session = SessionLocal()
    logger.info("JOB_START job=%s", job_name)
    try:
        result = service(session, **kwargs)
        errors = [item for item in result.get("processed", []) if item.get("status") == "error"]
        if errors:
            status = "partial"
        logger.info(
            "JOB_DONE job=%s processed=%d errors=%d",
            job_name,
            len(result.get("processed", [])),
            len(errors),
        )
        return result
    except Exception:
        status = "error"
        session.rollback()
        raise
    finally:
        session.close()
        observe_job(job_name, status, time.monotonic() - start)


@celery_app.task(name="app.tasks.billing.run_subscription_renewals")
def run_subscription_renewals():
    return _run_job("subscription_renewals", subscription_renewal_service.run_renewals)


@celery_app.task(name="app.tasks.billing.run_subscription_reminders")
def run_subscription_reminders():
    return _run_job("subscription_reminders", subscription_reminders_service.run_reminders)


@celery_app.task(name="app.tasks.billing.replay_payment_sync_steps")
def replay_payment_sync_steps(limit: int = 100):
    return _run_job(
        "payment_sync_replay", payment_events.replay_failed_steps, limit=limit
    )
