import html
import logging
import os
import smtplib
from datetime import date
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from typing import Any

from sqlalchemy.orm import Session

from app.config import settings
from app.services import audit as audit_service
from app.services.notification_template_renderer import render_template_text

logger = logging.getLogger(__name__)

DEFAULT_SMTP_TIMEOUT = 30


def _env_value(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or value == "":
        return None
    return value


def _env_int(name: str, default: int) -> int:
    raw = _env_value(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = _env_value(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


def get_smtp_config() -> dict[str, Any]:
    username = _env_value("SMTP_USERNAME") or _env_value("SMTP_USER")
    from_email = _env_value("SMTP_FROM_EMAIL") or _env_value("SMTP_FROM") or "noreply@example.com"
    return {
        "host": _env_value("SMTP_HOST") or "localhost",
        "port": _env_int("SMTP_PORT", 587),
        "username": username,
        "password": _env_value("SMTP_PASSWORD"),
        "use_tls": _env_bool("SMTP_USE_TLS", True),
        "use_ssl": _env_bool("SMTP_USE_SSL", False),
        "timeout": _env_int("SMTP_TIMEOUT", DEFAULT_SMTP_TIMEOUT),
        "from_email": from_email,
        "from_name": _env_value("SMTP_FROM_NAME") or settings.company_name,
    }


def _create_smtp_client(host: str, port: int, use_ssl: bool, timeout: int):
    if use_ssl:
        return smtplib.SMTP_SSL(host, port, timeout=timeout)
    return smtplib.SMTP(host, port, timeout=timeout)


def _html_body(content: str, sender_name: str, sender_email: str) -> str:
    paragraphs = html.escape(content).replace("\n", "<br>")
    return (
        '<html><body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">'
        '<div style="max-width: 600px; margin: 0 auto; padding: 20px;">'
        f'<h2 style="color: #2563eb;">{html.escape(sender_name)}</h2>'
        f"<div>{paragraphs}</div>"
        f'<p style="color: #6b7280; font-size: 14px;">{html.escape(sender_name)}<br>'
        f'<a href="mailto:{html.escape(sender_email)}">{html.escape(sender_email)}</a></p>'
        "</div></body></html>"
    )


def send_email(
    db: Session | None,
    to_email: str,
    subject: str,
    content: str,
    template_data: dict[str, Any] | None = None,
) -> str | None:
    """
    Send an email via SMTP.

    Placeholders in ``content`` are substituted from ``template_data`` plus the
    ``{{date}}`` and ``{{company}}`` defaults. Substitution leaves already
    rendered text unchanged.

    Args:
        db: Database session for the activity trail (optional)
        to_email: Recipient email address
        subject: Email subject
        content: Plain text body, may contain ``{{placeholder}}`` tokens
        template_data: Placeholder values

    Returns:
        The Message-ID of the sent message, or None if sending failed
    """
    config = get_smtp_config()
    variables: dict[str, Any] = {
        "date": date.today().strftime("%d-%m-%Y"),
        "company": config["from_name"],
    }
    variables.update(template_data or {})
    body_text = render_template_text(content, variables)
    subject = render_template_text(subject, variables)

    message_id = make_msgid(domain=config["from_email"].split("@")[-1])
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{config['from_name']} <{config['from_email']}>"
    msg["To"] = to_email
    msg["Message-ID"] = message_id
    msg.attach(MIMEText(body_text, "plain"))
    msg.attach(MIMEText(_html_body(body_text, config["from_name"], config["from_email"]), "html"))

    try:
        server = _create_smtp_client(
            config["host"],
            config["port"],
            bool(config["use_ssl"]),
            config["timeout"],
        )

        if config["use_tls"] and not config["use_ssl"]:
            server.starttls()

        if config["username"] and config["password"]:
            server.login(config["username"], config["password"])

        server.sendmail(config["from_email"], to_email, msg.as_string())
        server.quit()
    except smtplib.SMTPAuthenticationError as exc:
        logger.error("SMTP authentication failed for %s: %s", to_email, exc)
        return None
    except Exception as e:
        logger.error("Failed to send email to %s: %s", to_email, e)
        return None

    logger.info("Email sent successfully to %s (%s)", to_email, message_id)
    if db is not None:
        try:
            audit_service.log_activity(
                db,
                action="email_sent",
                entity_type="email",
                entity_id=message_id,
                details={"to": to_email, "subject": subject},
            )
        except Exception:
            db.rollback()
            logger.exception("Failed to record email activity for %s", to_email)
    return message_id
