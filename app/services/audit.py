"""Append-only activity and error trail."""

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.audit import ActivityLog, ErrorLevel, ErrorLog

logger = logging.getLogger(__name__)


def _normalize_value(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, dict):
        return {key: _normalize_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize_value(item) for item in value]
    return value


def log_activity(
    db: Session,
    *,
    action: str,
    entity_type: str,
    entity_id,
    details: dict | None = None,
) -> ActivityLog:
    entry = ActivityLog(
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        details=_normalize_value(details) if details else None,
    )
    db.add(entry)
    db.commit()
    return entry


def log_error(
    db: Session,
    *,
    message: str,
    function_name: str,
    context: dict | None = None,
    level: ErrorLevel = ErrorLevel.error,
) -> ErrorLog | None:
    """Persist an ErrorLog row. Failures here are logged, never raised."""
    entry = ErrorLog(
        level=level,
        message=message,
        function_name=function_name,
        context=_normalize_value(context) if context else None,
    )
    db.add(entry)
    try:
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Failed to write error log: %s", message)
        return None
    return entry


def activity_exists(
    db: Session, *, action: str, entity_id, **details
) -> bool:
    """True if an ActivityLog with ``action`` for ``entity_id`` carries all ``details``."""
    entries = (
        db.query(ActivityLog)
        .filter(ActivityLog.action == action)
        .filter(ActivityLog.entity_id == str(entity_id))
        .all()
    )
    expected = _normalize_value(details)
    for entry in entries:
        stored = entry.details or {}
        if all(stored.get(key) == value for key, value in expected.items()):
            return True
    return False
