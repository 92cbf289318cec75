"""Shared logging configuration and credential redaction."""

from __future__ import annotations

import logging
import os
from typing import Iterable, Optional

from pythonjsonlogger import jsonlogger
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

REDACTED = "REDACTED"

_CONFIGURED = False
_SECRETS: set[str] = set()


def register_secrets(values: Iterable[Optional[str]]) -> None:
    """Remember credential values that must never reach a log line or error."""
    for value in values:
        if value and len(value.strip()) >= 4:
            _SECRETS.add(value.strip())


def register_settings_secrets(settings) -> None:
    secrets = [settings.api_key]
    if settings.database_url:
        try:
            secrets.append(make_url(settings.database_url).password)
        except ArgumentError:
            pass
    register_secrets(secrets)


def redact(text: str, extra: Iterable[Optional[str]] = ()) -> str:
    """Replace every registered credential (plus ``extra``) in ``text``."""
    if not text:
        return text
    for secret in sorted({*_SECRETS, *(v for v in extra if v)}, key=len, reverse=True):
        text = text.replace(secret, REDACTED)
    return text


def safe_database_url(url: str) -> str:
    try:
        return make_url(url).render_as_string(hide_password=True)
    except ArgumentError:
        return redact(url)


class _ServiceNameFilter(logging.Filter):
    def __init__(self, service_name: str) -> None:
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - trivial
        record.service = self.service_name
        return True


class SecretRedactionFilter(logging.Filter):
    """Mask registered credentials in messages and formatted tracebacks."""

    _formatter = logging.Formatter()

    def filter(self, record: logging.LogRecord) -> bool:
        if not _SECRETS:
            return True
        message = record.getMessage()
        record.msg = redact(message)
        record.args = None
        if record.exc_info:
            record.exc_text = redact(self._formatter.formatException(record.exc_info))
            record.exc_info = None
        elif record.exc_text:
            record.exc_text = redact(record.exc_text)
        return True


def setup_logging(service_name: Optional[str] = None) -> None:
    """Configure root logging with a JSON formatter and consistent metadata."""

    global _CONFIGURED
    if _CONFIGURED:
        return

    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    service = service_name or os.getenv("SERVICE_NAME", "weather-collector")

    handler = logging.StreamHandler()
    handler.setFormatter(
        jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(service)s")
    )
    handler.addFilter(_ServiceNameFilter(service))
    handler.addFilter(SecretRedactionFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)
    # httpx logs full request URLs (including the provider key) at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.captureWarnings(True)
    _CONFIGURED = True


__all__ = [
    "REDACTED",
    "SecretRedactionFilter",
    "redact",
    "register_secrets",
    "register_settings_secrets",
    "safe_database_url",
    "setup_logging",
]
