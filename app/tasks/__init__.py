from app.tasks.billing import (
    replay_payment_sync_steps,
    run_subscription_reminders,
    run_subscription_renewals,
)

__all__ = [
    "run_subscription_renewals",
    "run_subscription_reminders",
    "replay_payment_sync_steps",
]
