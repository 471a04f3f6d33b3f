"""Common helper functions for service layer.

This module provides reusable utilities for:
- Timezone normalisation of stored datetimes
- Monetary conversion to provider minor units
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal


def as_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` as an aware UTC datetime.

    SQLite drops tzinfo on round trip, so naive values are taken to be UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_minor_units(value: Decimal | int | float | str) -> int:
    """Convert a major-unit amount (DKK) to minor units (øre), rounding half-up."""
    return int((Decimal(str(value)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
