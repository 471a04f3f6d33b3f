import logging
import os
from datetime import timedelta

logger = logging.getLogger(__name__)


def _env_value(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or value == "":
        return None
    return value


def _env_bool(name: str) -> bool | None:
    raw = _env_value(name)
    if raw is None:
        return None
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str) -> int | None:
    raw = _env_value(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer value for %s: %s", name, raw)
        return None


def _effective_bool(env_key: str, default: bool) -> bool:
    value = _env_bool(env_key)
    return default if value is None else value


def _effective_int(env_key: str, default: int) -> int:
    value = _env_int(env_key)
    return default if value is None else value


def get_celery_config() -> dict:
    broker = (
        _env_value("CELERY_BROKER_URL")
        or _env_value("REDIS_URL")
        or "redis://localhost:6379/0"
    )
    backend = (
        _env_value("CELERY_RESULT_BACKEND")
        or _env_value("REDIS_URL")
        or "redis://localhost:6379/1"
    )
    timezone = _env_value("CELERY_TIMEZONE") or "UTC"
    config: dict[str, object] = {
        "broker_url": broker,
        "result_backend": backend,
        "timezone": timezone,
    }
    config["beat_max_loop_interval"] = _effective_int("CELERY_BEAT_MAX_LOOP_INTERVAL", 5)
    return config


def build_beat_schedule() -> dict:
    schedule: dict[str, dict] = {}

    renewal_enabled = _effective_bool("SUBSCRIPTION_RENEWAL_ENABLED", True)
    renewal_interval_minutes = _effective_int("SUBSCRIPTION_RENEWAL_INTERVAL_MINUTES", 1440)
    if renewal_enabled:
        schedule["subscription_renewals"] = {
            "task": "app.tasks.billing.run_subscription_renewals",
            "schedule": timedelta(minutes=max(renewal_interval_minutes, 5)),
        }

    reminders_enabled = _effective_bool("SUBSCRIPTION_REMINDERS_ENABLED", True)
    reminders_interval_minutes = _effective_int(
        "SUBSCRIPTION_REMINDERS_INTERVAL_MINUTES", 1440
    )
    if reminders_enabled:
        schedule["subscription_reminders"] = {
            "task": "app.tasks.billing.run_subscription_reminders",
            "schedule": timedelta(minutes=max(reminders_interval_minutes, 5)),
        }

    replay_enabled = _effective_bool("PAYMENT_SYNC_REPLAY_ENABLED", True)
    replay_interval_minutes = _effective_int("PAYMENT_SYNC_REPLAY_INTERVAL_MINUTES", 15)
    if replay_enabled:
        schedule["payment_sync_replay"] = {
            "task": "app.tasks.billing.replay_payment_sync_steps",
            "schedule": timedelta(minutes=max(replay_interval_minutes, 1)),
        }

    return schedule
