"""Subscription expiry reminders and expiry transitions."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from datetime import UTC, datetime

from sqlalchemy.orm import Session

from app.config import settings
from app.models.catalog import Subscription, SubscriptionStatus
from app.models.notification import EmailTemplate
from app.services import audit as audit_service
from app.services import email as email_service
from app.services.common import as_utc
from app.services.notification_template_renderer import (
    render_email_template,
    reminder_variables,
)

logger = logging.getLogger(__name__)

FUNCTION_NAME = "subscription-reminders"
TRIGGER_10_DAY = "subscription_10_day_reminder"
TRIGGER_5_DAY = "subscription_5_day_reminder"
REQUIRED_TRIGGERS = [TRIGGER_10_DAY, TRIGGER_5_DAY]

Notifier = Callable[..., str | None]

DEFAULT_REMINDER_TEMPLATES = [
    {
        "name": "10-Day Subscription Reminder",
        "subject": "Your subscription expires in 10 days - {{name}}",
        "trigger": TRIGGER_10_DAY,
        "content": """Dear {{name}},

This is a friendly reminder that your subscription will expire in 10 days.

Subscription Details:
- Service: {{product_name}}
- Expiry Date: {{end_date}}

To continue enjoying our services without interruption, please renew your subscription before the expiry date.

You can renew by:
1. Contacting us directly
2. Visiting our website
3. Calling our support team

If you have any questions or need assistance, please don't hesitate to contact us.

Best regards,
{{company}} Team""",
    },
    {
        "name": "5-Day Subscription Reminder",
        "subject": "URGENT: Your subscription expires in 5 days - {{name}}",
        "trigger": TRIGGER_5_DAY,
        "content": """Dear {{name}},

This is an urgent reminder that your subscription will expire in just 5 days.

Subscription Details:
- Service: {{product_name}}
- Expiry Date: {{end_date}}

To avoid service interruption, please renew your subscription immediately.

You can renew by:
1. Contacting us directly
2. Visiting our website
3. Calling our support team

Don't wait - renew today to continue enjoying uninterrupted service!

Best regards,
{{company}} Team""",
    },
]

# (label, template trigger, subscription flag)
_REMINDER_10 = ("10-day", TRIGGER_10_DAY, "reminder_10_sent")
_REMINDER_5 = ("5-day", TRIGGER_5_DAY, "reminder_5_sent")


def days_until(end_date: datetime, now: datetime) -> int:
    return math.ceil((as_utc(end_date) - now).total_seconds() / 86400)


def reminder_due(subscription: Subscription, days_left: int):
    """Return the reminder due for ``days_left``, or None."""
    if 5 < days_left <= 10 and not subscription.reminder_10_sent:
        return _REMINDER_10
    if 0 < days_left <= 5 and not subscription.reminder_5_sent:
        return _REMINDER_5
    return None


def _active_templates(db: Session) -> dict[str, EmailTemplate]:
    templates = (
        db.query(EmailTemplate)
        .filter(EmailTemplate.trigger.in_(REQUIRED_TRIGGERS))
        .filter(EmailTemplate.is_active.is_(True))
        .all()
    )
    return {template.trigger: template for template in templates}


def validate_reminder_templates(db: Session) -> dict:
    templates = _active_templates(db)
    existing = [trigger for trigger in REQUIRED_TRIGGERS if trigger in templates]
    missing = [trigger for trigger in REQUIRED_TRIGGERS if trigger not in templates]
    return {"is_valid": not missing, "missing": missing, "existing": existing}


def seed_reminder_templates(db: Session) -> list[str]:
    """Insert any missing default reminder template. Returns the created triggers."""
    created = []
    for template_data in DEFAULT_REMINDER_TEMPLATES:
        existing = (
            db.query(EmailTemplate)
            .filter(EmailTemplate.trigger == template_data["trigger"])
            .first()
        )
        if existing:
            continue
        db.add(EmailTemplate(is_active=True, **template_data))
        created.append(template_data["trigger"])
    db.commit()
    return created


def _send_reminder(
    db: Session,
    subscription: Subscription,
    reminder,
    days_left: int,
    templates: dict[str, EmailTemplate],
    notifier: Notifier,
) -> dict:
    label, trigger, flag = reminder
    item = {"id": str(subscription.id), "type": label, "product": subscription.product_name}

    template = templates.get(trigger)
    if not template:
        logger.warning(
            "Reminder template %s not found, skipping subscription %s", trigger, subscription.id
        )
        return {**item, "status": "skipped", "reason": "template_missing"}

    customer = subscription.customer
    if not customer or not customer.email:
        logger.warning("No customer e-mail for subscription %s, skipping reminder", subscription.id)
        return {**item, "status": "skipped", "reason": "customer_missing"}

    variables = reminder_variables(
        name=customer.name,
        product_name=subscription.product_name,
        end_date=as_utc(subscription.end_date),
        days_left=days_left,
        company=settings.company_name,
    )
    subject, content = render_email_template(template, variables)
    message_id = notifier(db, customer.email, subject, content, variables)
    if not message_id:
        audit_service.log_error(
            db,
            message=f"Failed to send {label} reminder for subscription {subscription.id}",
            function_name=FUNCTION_NAME,
            context={"subscription_id": subscription.id, "trigger": trigger},
        )
        return {**item, "status": "error", "error": "Failed to send reminder"}

    setattr(subscription, flag, True)
    db.commit()
    logger.info("Sent %s reminder for subscription %s", label, subscription.id)
    return {**item, "status": "sent", "customer": customer.name, "messageId": message_id}


def run_reminders(
    db: Session,
    *,
    run_at: datetime | None = None,
    notifier: Notifier | None = None,
) -> dict:
    """Send 10-day and 5-day reminders and expire ended subscriptions.

    A reminder flag is only set after the notifier reports a message id, so a
    failed send is retried on the next run.
    """
    now = as_utc(run_at) or datetime.now(UTC)
    send = notifier or email_service.send_email
    templates = _active_templates(db)
    subscriptions = (
        db.query(Subscription)
        .filter(Subscription.status == SubscriptionStatus.active)
        .order_by(Subscription.end_date.asc())
        .all()
    )

    processed = []
    for subscription in subscriptions:
        subscription_id = subscription.id
        try:
            days_left = days_until(subscription.end_date, now)
            if days_left <= 0:
                subscription.status = SubscriptionStatus.expired
                db.commit()
                logger.info("Subscription %s expired", subscription_id)
                processed.append({"id": str(subscription_id), "type": "expired", "status": "expired"})
                continue
            reminder = reminder_due(subscription, days_left)
            if reminder is None:
                continue
            processed.append(
                _send_reminder(db, subscription, reminder, days_left, templates, send)
            )
        except Exception as exc:
            db.rollback()
            error = str(exc) or exc.__class__.__name__
            logger.error("Error processing reminders for subscription %s: %s", subscription_id, error)
            audit_service.log_error(
                db,
                message=f"Reminder processing failed for subscription {subscription_id}",
                function_name=FUNCTION_NAME,
                context={"subscription_id": subscription_id, "error": error},
            )
            processed.append({"id": str(subscription_id), "status": "error", "error": error})

    sent = sum(1 for item in processed if item.get("status") == "sent")
    return {"success": True, "message": f"Processed {sent} reminders", "processed": processed}
