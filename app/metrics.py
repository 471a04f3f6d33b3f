from prometheus_client import Counter, Histogram

WEBHOOK_NOTIFICATIONS = Counter(
    "payment_webhook_notifications_total",
    "Payment provider notifications received",
    ["provider", "outcome", "result"],
)
SYNC_STEP_RESULTS = Counter(
    "payment_sync_steps_total",
    "Per-entity state synchronization results",
    ["entity", "status"],
)

JOB_DURATION = Histogram(
    "job_duration_seconds",
    "Background job duration",
    ["task", "status"],
)


def observe_webhook(provider: str, outcome: str, result: str) -> None:
    WEBHOOK_NOTIFICATIONS.labels(provider=provider, outcome=outcome, result=result).inc()


def observe_sync_step(entity: str, status: str) -> None:
    SYNC_STEP_RESULTS.labels(entity=entity, status=status).inc()


def observe_job(task_name: str, status: str, duration: float) -> None:
    JOB_DURATION.labels(task=task_name, status=status).observe(duration)
