"""Service package exports."""

from __future__ import annotations

import importlib
from typing import Any

__all__ = ["payment_events"]


def __getattr__(name: str) -> Any:
    if name == "payment_events":
        return importlib.import_module("app.services.payment_events")
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
