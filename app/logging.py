"""Process-wide logging configuration for the API and the Celery workers."""

from __future__ import annotations

import logging
import logging.config

from app.config import settings

_FORMATS = {
    "plain": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
    "kv": "ts=%(asctime)s level=%(levelname)s logger=%(name)s msg=%(message)s",
}


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Install a console handler on the root logger.

    ``fmt`` is ``plain`` (default) or ``kv`` for key=value lines that log
    shippers can parse without a JSON formatter.
    """
    level_name = (level or settings.log_level or "INFO").upper()
    format_name = fmt or settings.log_format
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {"format": _FORMATS.get(format_name, _FORMATS["plain"])},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "stream": "ext://sys.stdout",
                }
            },
            "root": {"handlers": ["console"], "level": level_name},
            "loggers": {
                "httpx": {"level": "WARNING"},
                "sqlalchemy.engine": {"level": "WARNING"},
            },
        }
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
