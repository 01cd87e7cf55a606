import contextvars
import json
import logging
import os
import re
import sys
from datetime import datetime, timezone
from typing import Any

# Per-request fields stamped on every line: who, which streak day, which call.
_log_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar("streak_log_context", default={})

CONTEXT_FIELDS = ("request_id", "user_id", "streak_day", "route", "status", "latency_ms")

# Supabase service keys, Upstash tokens and end-user bearer tokens.
_SECRET_FIELDS = re.compile(r"(?i)token|secret|authorization|api_?key|service_role")
_BEARER = re.compile(r"(?i)\bbearer\s+[\w.\-~+/]+=*")

_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def scrub(value: Any, field: str | None = None) -> Any:
    if field is not None and _SECRET_FIELDS.search(field):
        return "[REDACTED]"
    if isinstance(value, str):
        return _BEARER.sub("Bearer [REDACTED]", value)
    if isinstance(value, dict):
        return {key: scrub(item, key) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [scrub(item) for item in value]
    return value


class StreakJsonFormatter(logging.Formatter):
    """One JSON object per line: event name, request context, then ``extra=`` fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": scrub(record.getMessage()),
        }
        entry.update(_log_context.get())
        entry.update(
            (key, scrub(value, key))
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and value is not None
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging() -> None:
    root_logger = logging.getLogger()
    if any(isinstance(h.formatter, StreakJsonFormatter) for h in root_logger.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StreakJsonFormatter())
    root_logger.addHandler(handler)
    root_logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())


def bind_log_context(**fields: Any) -> None:
    unknown = set(fields) - set(CONTEXT_FIELDS)
    if unknown:
        raise ValueError(f"unknown log context fields: {', '.join(sorted(unknown))}")
    _log_context.set({**_log_context.get(), **fields})


def reset_log_context() -> None:
    _log_context.set({})
