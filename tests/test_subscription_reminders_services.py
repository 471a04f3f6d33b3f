"""Tests for subscription reminder service."""

from datetime import UTC, datetime, timedelta

import pytest

from app.models.audit import ErrorLog
from app.models.catalog import SubscriptionStatus
from app.models.notification import EmailTemplate
from app.services import subscription_reminders
from tests.mocks import FakeNotifier

RUN_AT = datetime(2026, 3, 1, 8, 0, tzinfo=UTC)


def _ending_in(make_subscription, days: float, **overrides):
    return make_subscription(end_date=RUN_AT + timedelta(days=days), **overrides)


# =============================================================================
# Reminder Window Tests
# =============================================================================


class TestReminderWindows:
    """Tests for days_until and reminder_due."""

    def test_days_until_rounds_up(self):
        assert subscription_reminders.days_until(RUN_AT + timedelta(days=6, hours=1), RUN_AT) == 7
        assert subscription_reminders.days_until(RUN_AT + timedelta(days=5), RUN_AT) == 5
        assert subscription_reminders.days_until(RUN_AT - timedelta(hours=1), RUN_AT) == 0

    def test_naive_end_date_treated_as_utc(self):
        naive = (RUN_AT + timedelta(days=3)).replace(tzinfo=None)
        assert subscription_reminders.days_until(naive, RUN_AT) == 3

    @pytest.mark.parametrize(
        "days_left,flags,expected",
        [
            (10, (False, False), "10-day"),
            (6, (False, False), "10-day"),
            (5, (False, False), "5-day"),
            (1, (False, False), "5-day"),
            (11, (False, False), None),
            (7, (True, False), None),
            (3, (True, True), None),
            (3, (False, False), "5-day"),
        ],
    )
    def test_reminder_due(self, make_subscription, days_left, flags, expected):
        subscription = make_subscription(reminder_10_sent=flags[0], reminder_5_sent=flags[1])
        reminder = subscription_reminders.reminder_due(subscription, days_left)
        assert (reminder[0] if reminder else None) == expected


# =============================================================================
# run_reminders Tests
# =============================================================================


class TestRunReminders:
    """Tests for run_reminders."""

    def test_seven_days_sends_only_ten_day_reminder(
        self, db_session, make_subscription, reminder_templates, customer
    ):
        subscription = _ending_in(make_subscription, 7)
        notifier = FakeNotifier()

        result = subscription_reminders.run_reminders(db_session, run_at=RUN_AT, notifier=notifier)

        assert result["success"] is True
        assert result["message"] == "Processed 1 reminders"
        item = result["processed"][0]
        assert item["type"] == "10-day"
        assert item["status"] == "sent"
        assert item["messageId"] == "<msg-1@test.local>"
        assert len(notifier.sent) == 1
        sent = notifier.sent[0]
        assert sent["to"] == customer.email
        assert sent["subject"] == "Your subscription expires in 10 days - Test Customer"
        assert "Premium Streaming" in sent["content"]
        assert "08-03-2026" in sent["content"]
        assert "{{" not in sent["content"]

        db_session.refresh(subscription)
        assert subscription.reminder_10_sent is True
        assert subscription.reminder_5_sent is False

    def test_three_days_after_ten_day_sends_five_day(
        self, db_session, make_subscription, reminder_templates
    ):
        subscription = _ending_in(make_subscription, 3, reminder_10_sent=True)
        notifier = FakeNotifier()

        result = subscription_reminders.run_reminders(db_session, run_at=RUN_AT, notifier=notifier)

        assert [item["type"] for item in result["processed"]] == ["5-day"]
        assert notifier.sent[0]["subject"].startswith("URGENT")
        db_session.refresh(subscription)
        assert subscription.reminder_5_sent is True

    def test_reminder_not_repeated(self, db_session, make_subscription, reminder_templates):
        _ending_in(make_subscription, 7)
        notifier = FakeNotifier()

        subscription_reminders.run_reminders(db_session, run_at=RUN_AT, notifier=notifier)
        second = subscription_reminders.run_reminders(
            db_session, run_at=RUN_AT + timedelta(hours=6), notifier=notifier
        )

        assert second["processed"] == []
        assert len(notifier.sent) == 1

    def test_ended_subscription_expires(self, db_session, make_subscription, reminder_templates):
        subscription = _ending_in(make_subscription, -1)
        notifier = FakeNotifier()

        result = subscription_reminders.run_reminders(db_session, run_at=RUN_AT, notifier=notifier)

        assert result["processed"] == [
            {"id": str(subscription.id), "type": "expired", "status": "expired"}
        ]
        assert notifier.sent == []
        db_session.refresh(subscription)
        assert subscription.status == SubscriptionStatus.expired

    def test_far_future_subscription_untouched(
        self, db_session, make_subscription, reminder_templates
    ):
        _ending_in(make_subscription, 30)
        result = subscription_reminders.run_reminders(
            db_session, run_at=RUN_AT, notifier=FakeNotifier()
        )
        assert result["processed"] == []
        assert result["message"] == "Processed 0 reminders"

    def test_inactive_subscriptions_ignored(
        self, db_session, make_subscription, reminder_templates
    ):
        _ending_in(make_subscription, 7, status=SubscriptionStatus.cancelled)
        _ending_in(make_subscription, -2, status=SubscriptionStatus.cancelled)
        result = subscription_reminders.run_reminders(
            db_session, run_at=RUN_AT, notifier=FakeNotifier()
        )
        assert result["processed"] == []

    def test_missing_template_is_skipped(self, db_session, make_subscription):
        subscription = _ending_in(make_subscription, 7)
        notifier = FakeNotifier()

        result = subscription_reminders.run_reminders(db_session, run_at=RUN_AT, notifier=notifier)

        item = result["processed"][0]
        assert item["status"] == "skipped"
        assert item["reason"] == "template_missing"
        assert notifier.sent == []
        db_session.refresh(subscription)
        assert subscription.reminder_10_sent is False

    def test_inactive_template_counts_as_missing(
        self, db_session, make_subscription, reminder_templates
    ):
        for template in reminder_templates:
            template.is_active = False
        db_session.commit()
        _ending_in(make_subscription, 7)

        result = subscription_reminders.run_reminders(
            db_session, run_at=RUN_AT, notifier=FakeNotifier()
        )

        assert result["processed"][0]["reason"] == "template_missing"

    def test_customer_without_email_is_skipped(
        self, db_session, make_subscription, reminder_templates, customer
    ):
        customer.email = None
        db_session.commit()
        _ending_in(make_subscription, 7)

        result = subscription_reminders.run_reminders(
            db_session, run_at=RUN_AT, notifier=FakeNotifier()
        )

        assert result["processed"][0]["reason"] == "customer_missing"

    def test_send_failure_leaves_flag_unset(
        self, db_session, make_subscription, reminder_templates, customer
    ):
        subscription = _ending_in(make_subscription, 7)
        notifier = FakeNotifier(fail_for={customer.email})

        result = subscription_reminders.run_reminders(db_session, run_at=RUN_AT, notifier=notifier)

        item = result["processed"][0]
        assert item["status"] == "error"
        db_session.refresh(subscription)
        assert subscription.reminder_10_sent is False
        error = db_session.query(ErrorLog).one()
        assert error.function_name == "subscription-reminders"
        assert error.context["trigger"] == subscription_reminders.TRIGGER_10_DAY

    def test_failed_send_is_retried_next_run(
        self, db_session, make_subscription, reminder_templates, customer
    ):
        subscription = _ending_in(make_subscription, 7)
        subscription_reminders.run_reminders(
            db_session, run_at=RUN_AT, notifier=FakeNotifier(fail_for={customer.email})
        )

        notifier = FakeNotifier()
        result = subscription_reminders.run_reminders(db_session, run_at=RUN_AT, notifier=notifier)

        assert result["processed"][0]["status"] == "sent"
        db_session.refresh(subscription)
        assert subscription.reminder_10_sent is True

    def test_notifier_exception_does_not_stop_batch(
        self, db_session, make_subscription, reminder_templates
    ):
        first = _ending_in(make_subscription, 2)
        second = _ending_in(make_subscription, 8)
        calls = []

        def _flaky(db, to_email, subject, content, template_data=None):
            calls.append(subject)
            if len(calls) == 1:
                raise RuntimeError("smtp down")
            return "<ok@test.local>"

        result = subscription_reminders.run_reminders(db_session, run_at=RUN_AT, notifier=_flaky)

        by_id = {item["id"]: item for item in result["processed"]}
        assert by_id[str(first.id)]["status"] == "error"
        assert "smtp down" in by_id[str(first.id)]["error"]
        assert by_id[str(second.id)]["status"] == "sent"


# =============================================================================
# Template Management Tests
# =============================================================================


class TestReminderTemplates:
    """Tests for validate_reminder_templates and seed_reminder_templates."""

    def test_validate_reports_missing(self, db_session):
        result = subscription_reminders.validate_reminder_templates(db_session)
        assert result == {
            "is_valid": False,
            "missing": subscription_reminders.REQUIRED_TRIGGERS,
            "existing": [],
        }

    def test_validate_with_templates(self, db_session, reminder_templates):
        result = subscription_reminders.validate_reminder_templates(db_session)
        assert result["is_valid"] is True
        assert result["missing"] == []

    def test_seed_creates_missing_only(self, db_session):
        db_session.add(
            EmailTemplate(
                name="Custom 10-day",
                subject="Custom",
                content="Custom {{name}}",
                trigger=subscription_reminders.TRIGGER_10_DAY,
                is_active=True,
            )
        )
        db_session.commit()

        created = subscription_reminders.seed_reminder_templates(db_session)

        assert created == [subscription_reminders.TRIGGER_5_DAY]
        assert db_session.query(EmailTemplate).count() == 2
        custom = (
            db_session.query(EmailTemplate)
            .filter(EmailTemplate.trigger == subscription_reminders.TRIGGER_10_DAY)
            .one()
        )
        assert custom.subject == "Custom"

    def test_seed_is_idempotent(self, db_session):
        subscription_reminders.seed_reminder_templates(db_session)
        assert subscription_reminders.seed_reminder_templates(db_session) == []
        assert subscription_reminders.validate_reminder_templates(db_session)["is_valid"] is True
