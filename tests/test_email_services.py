"""Tests for email service."""

import smtplib

import pytest

from app.models.audit import ActivityLog
from app.services import email as email_service
from tests.mocks import FakeSMTP


@pytest.fixture()
def fake_smtp(monkeypatch):
    fake_smtp = FakeSMTP()

    def mock_smtp(*args, **kwargs):
        fake_smtp.host = args[0] if args else ""
        fake_smtp.timeout = kwargs.get("timeout")
        return fake_smtp

    monkeypatch.setattr("smtplib.SMTP", mock_smtp)
    monkeypatch.setattr("smtplib.SMTP_SSL", mock_smtp)
    monkeypatch.setenv("SMTP_HOST", "smtp.test.local")
    monkeypatch.setenv("SMTP_PORT", "587")
    monkeypatch.setenv("SMTP_FROM", "noreply@test.local")
    monkeypatch.delenv("SMTP_USE_SSL", raising=False)
    monkeypatch.delenv("SMTP_USE_TLS", raising=False)
    return fake_smtp


def test_send_email_success(db_session, fake_smtp, monkeypatch):
    """Test sending email successfully."""
    monkeypatch.setenv("SMTP_USER", "testuser")
    monkeypatch.setenv("SMTP_PASSWORD", "testpass")

    result = email_service.send_email(
        db=db_session,
        to_email="recipient@example.com",
        subject="Test Subject",
        content="Hello World",
    )

    assert result is not None
    assert result.endswith("@test.local>")
    assert len(fake_smtp.messages) == 1
    from_addr, to_addrs, msg = fake_smtp.messages[0]
    assert from_addr == "noreply@test.local"
    assert "recipient@example.com" in to_addrs
    assert fake_smtp.logged_in is True
    assert fake_smtp.tls is True
    assert fake_smtp.timeout == email_service.DEFAULT_SMTP_TIMEOUT


def test_send_email_renders_placeholders(db_session, fake_smtp):
    """Placeholders in subject and body are filled from template data and defaults."""
    email_service.send_email(
        db=db_session,
        to_email="user@example.com",
        subject="Expires soon - {{name}}",
        content="Dear {{name}}, regards {{company}} on {{date}}",
        template_data={"name": "Ada", "company": "Jysk Streaming"},
    )

    _, _, msg = fake_smtp.messages[0]
    assert "Expires soon - Ada" in msg
    assert "Dear Ada, regards Jysk Streaming on" in msg
    assert "{{date}}" not in msg


def test_send_email_records_activity(db_session, fake_smtp):
    message_id = email_service.send_email(
        db=db_session,
        to_email="user@example.com",
        subject="Hello",
        content="Body",
    )

    activity = db_session.query(ActivityLog).one()
    assert activity.action == "email_sent"
    assert activity.entity_id == message_id
    assert activity.details == {"to": "user@example.com", "subject": "Hello"}


def test_send_email_without_session(fake_smtp):
    assert email_service.send_email(None, "user@example.com", "Hi", "Body") is not None


def test_send_email_failure_returns_none(db_session, monkeypatch):
    """Test email failure is reported as None and nothing is recorded."""

    def mock_smtp_fail(*args, **kwargs):
        raise smtplib.SMTPException("Connection failed")

    monkeypatch.setattr("smtplib.SMTP", mock_smtp_fail)
    monkeypatch.setenv("SMTP_HOST", "smtp.test.local")
    monkeypatch.delenv("SMTP_USE_SSL", raising=False)

    result = email_service.send_email(
        db=db_session,
        to_email="user@example.com",
        subject="Failing Email",
        content="Test",
    )

    assert result is None
    assert db_session.query(ActivityLog).count() == 0


def test_send_email_ssl_skips_starttls(db_session, fake_smtp, monkeypatch):
    monkeypatch.setenv("SMTP_USE_SSL", "true")
    monkeypatch.setenv("SMTP_PORT", "465")

    email_service.send_email(
        db=db_session,
        to_email="user@example.com",
        subject="SSL",
        content="Body",
    )

    assert fake_smtp.tls is False
    assert len(fake_smtp.messages) == 1


def test_get_smtp_config_defaults(monkeypatch):
    for name in (
        "SMTP_HOST",
        "SMTP_PORT",
        "SMTP_USERNAME",
        "SMTP_USER",
        "SMTP_PASSWORD",
        "SMTP_FROM_EMAIL",
        "SMTP_FROM",
        "SMTP_FROM_NAME",
        "SMTP_TIMEOUT",
        "SMTP_USE_TLS",
        "SMTP_USE_SSL",
    ):
        monkeypatch.delenv(name, raising=False)

    config = email_service.get_smtp_config()

    assert config["host"] == "localhost"
    assert config["port"] == 587
    assert config["use_tls"] is True
    assert config["use_ssl"] is False
    assert config["from_email"] == "noreply@example.com"
    assert config["timeout"] == email_service.DEFAULT_SMTP_TIMEOUT
