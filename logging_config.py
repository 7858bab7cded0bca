from __future__ import annotations

import logging
import time
from enum import Enum
from logging.config import dictConfig
from typing import Any, Dict, Iterable, Sequence

from settings import get_settings

_DEFAULT_EXTRA_KEYS = (
    "sensor_id",
    "zone",
    "score",
    "status",
    "severity",
    "root_cause",
    "ticket_id",
    "reason",
    "attempt",
    "batch_size",
)

# Loggers whose level follows LOG_LEVEL even when the root is raised elsewhere.
_SERVICE_LOGGERS = (
    "services.trust_engine",
    "services.escalation",
    "services.ingestion",
    "services.maintenance",
    "services.events",
)

_configured = False


def _render_value(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, float):
        return f"{value:.3f}"
    if isinstance(value, (list, tuple, set, frozenset)):
        return ",".join(_render_value(item) for item in value)
    return str(value)


class ContextualFormatter(logging.Formatter):
    """Render records in UTC and append known ``extra`` fields as ``key=value``."""

    converter = time.gmtime

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        extra_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self._extra_keys: Sequence[str] = tuple(extra_keys or _DEFAULT_EXTRA_KEYS)

    def context_of(self, record: logging.LogRecord) -> str:
        pairs = (
            (key, getattr(record, key, None)) for key in self._extra_keys
        )
        return " ".join(f"{key}={_render_value(value)}" for key, value in pairs if value is not None)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = self.context_of(record)
        return f"{message} | {context}" if context else message


def build_logging_config(level: str | int) -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "contextual": {
                "()": "logging_config.ContextualFormatter",
                "fmt": "%(asctime)sZ | %(levelname)s | %(name)s | %(message)s",
                "datefmt": "%Y-%m-%dT%H:%M:%S",
                "style": "%",
                "extra_keys": list(_DEFAULT_EXTRA_KEYS),
            }
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "contextual",
            }
        },
        "root": {"handlers": ["default"], "level": level},
        "loggers": {name: {"level": level} for name in _SERVICE_LOGGERS},
    }


def configure_logging(level: str | int | None = None) -> None:
    """Install the contextual handler once per process."""
    global _configured
    if _configured:
        return

    dictConfig(build_logging_config(level if level is not None else get_settings().log_level))
    _configured = True
