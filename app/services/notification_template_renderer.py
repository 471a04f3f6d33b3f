"""Template rendering helpers for e-mail templates."""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import datetime

from app.models.notification import EmailTemplate

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([a-zA-Z0-9_]+)\s*\}\}")

END_DATE_FORMAT = "%d-%m-%Y"


def render_template_text(text: str | None, variables: Mapping[str, object] | None = None) -> str:
    """Render ``{{variable}}`` placeholders in text.

    Unknown placeholders are left unchanged, so rendering already-rendered
    text again is a no-op.
    """
    if not text:
        return ""
    values = {str(key): "" if value is None else str(value) for key, value in (variables or {}).items()}

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        if key in values:
            return values[key]
        return match.group(0)

    return _PLACEHOLDER_RE.sub(_replace, text)


def render_email_template(
    template: EmailTemplate, variables: Mapping[str, object] | None = None
) -> tuple[str, str]:
    """Return the rendered (subject, content) pair of a stored template."""
    return (
        render_template_text(template.subject, variables),
        render_template_text(template.content, variables),
    )


def reminder_variables(
    *,
    name: str | None,
    product_name: str | None,
    end_date: datetime,
    days_left: int,
    company: str,
) -> dict[str, str]:
    return {
        "name": name or "",
        "product_name": product_name or "",
        "end_date": end_date.strftime(END_DATE_FORMAT),
        "days_left": str(days_left),
        "company": company,
    }

