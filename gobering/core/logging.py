"""Logging setup and per-request log context."""

import logging
import sys
from contextvars import ContextVar

from gobering.core.config import settings

# Set by the request middleware in main.py; "-" outside a request
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

CONTEXT_FIELDS = ("professional_id", "appointment_id", "waitlist_entry_id")

NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "asyncio")


class RequestContextFilter(logging.Filter):
    """Stamp the current request id onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get()
        return True


class KeyValueFormatter(logging.Formatter):
    """Render records as ``key=value`` pairs, one line per record.

    Booking ids passed through ``extra=`` are appended after the message.
    Values containing spaces are quoted.
    """

    def format(self, record: logging.LogRecord) -> str:
        pairs: list[tuple[str, object]] = [
            ("ts", self.formatTime(record, self.datefmt)),
            ("level", record.levelname),
            ("logger", record.name),
            ("request_id", getattr(record, "request_id", "-")),
            ("msg", record.getMessage()),
        ]
        pairs.extend(
            (key, getattr(record, key)) for key in CONTEXT_FIELDS if hasattr(record, key)
        )
        if record.exc_info:
            pairs.append(("exc", self.formatException(record.exc_info)))

        return " ".join(f"{key}={_quote(value)}" for key, value in pairs)


def _quote(value: object) -> str:
    text = str(value)
    if " " in text or "\n" in text:
        return '"' + text.replace('"', '\\"') + '"'
    return text


def setup_logging() -> None:
    """Configure the root logger for the current environment."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(RequestContextFilter())
    if settings.is_dev:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(request_id)s] %(name)s %(levelname)s: %(message)s"
            )
        )
    else:
        handler.setFormatter(KeyValueFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers[:] = [handler]

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
