"""structlog setup shared by the API process and the migration entrypoint."""

from __future__ import annotations

import logging
import logging.config
import math
import os
import re
import sys
from typing import Any

import structlog

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "console")

SENSITIVE_KEYS = ("password", "hash", "token", "secret")
PARTIAL_KEYS = ("email",)
MASK = "***"

EMAIL_PATTERN = re.compile(r"\b([A-Za-z0-9._%+-]+)@([A-Za-z0-9.-]+\.[A-Za-z]{2,})\b")


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(part in lowered for part in SENSITIVE_KEYS)


def _mask_partially(value: Any) -> str:
    text = str(value)
    return MASK + text[math.ceil(len(text) / 2) :]


def mask_sensitive(value: Any, key: str | None = None) -> Any:
    """Return ``value`` with secrets hidden and email addresses reduced to their domain.

    Keys naming a password, hash, token or secret are replaced outright, email
    keys keep their second half, and any address inside free text loses its
    local part. Dicts, lists and tuples are walked recursively.
    """
    if key is not None and _is_sensitive(key):
        return MASK
    if isinstance(value, dict):
        return {k: mask_sensitive(v, str(k)) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [mask_sensitive(item) for item in value]
    if key is not None and key.lower() in PARTIAL_KEYS and value is not None:
        return _mask_partially(value)
    if isinstance(value, str):
        return EMAIL_PATTERN.sub(lambda m: f"{MASK}@{m.group(2)}", value)
    return value


class SensitiveDataProcessor:
    """structlog processor applying ``mask_sensitive`` to every event field."""

    def __call__(self, logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        return {key: mask_sensitive(value, key) for key, value in event_dict.items()}


def configure_logging(level: str | None = None, log_format: str | None = None) -> None:
    level_name = (level or LOG_LEVEL).upper()
    fmt = (log_format or LOG_FORMAT).lower()

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"plain": {"format": "%(message)s"}},
            "handlers": {
                "stdout": {
                    "class": "logging.StreamHandler",
                    "formatter": "plain",
                    "stream": sys.stdout,
                },
            },
            "root": {"level": level_name, "handlers": ["stdout"]},
            "loggers": {
                "uvicorn.access": {"level": "WARNING", "handlers": ["stdout"], "propagate": False},
                "sqlalchemy.engine": {"level": "WARNING", "handlers": ["stdout"], "propagate": False},
                "alembic": {"level": "INFO", "handlers": ["stdout"], "propagate": False},
            },
        }
    )

    renderer: Any = (
        structlog.processors.JSONRenderer() if fmt == "json" else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            SensitiveDataProcessor(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    return structlog.get_logger(name)
