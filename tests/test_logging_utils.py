import json
import logging

import pytest

from app.logging_utils import StreakJsonFormatter, bind_log_context, reset_log_context, scrub


def _record(message, **extra):
    record = logging.LogRecord("app.services.streak_engine", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_scrub_masks_secret_fields_and_bearer_tokens():
    assert scrub("secret", field="service_role_key") == "[REDACTED]"
    assert scrub("Authorization: Bearer abc.def") == "Authorization: Bearer [REDACTED]"
    assert scrub({"apikey": "x", "user_id": "u1"}) == {"apikey": "[REDACTED]", "user_id": "u1"}
    assert scrub(["Bearer abc", 3]) == ["Bearer [REDACTED]", 3]


def test_formatter_stamps_streak_context_and_extras():
    bind_log_context(request_id="req-1", route="/api/streak", user_id="u1")
    bind_log_context(streak_day="2024-01-10")
    try:
        payload = json.loads(StreakJsonFormatter().format(_record("streak.continued", current_streak=4)))
    finally:
        reset_log_context()

    assert payload["event"] == "streak.continued"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "app.services.streak_engine"
    assert payload["request_id"] == "req-1"
    assert payload["route"] == "/api/streak"
    assert payload["user_id"] == "u1"
    assert payload["streak_day"] == "2024-01-10"
    assert payload["current_streak"] == 4
    assert "lineno" not in payload


def test_formatter_redacts_sensitive_extras_and_drops_empty_ones():
    payload = json.loads(StreakJsonFormatter().format(_record("auth.check", authorization="Bearer abc", error=None)))

    assert payload["authorization"] == "[REDACTED]"
    assert "error" not in payload
    assert "request_id" not in payload


def test_bind_log_context_rejects_unknown_fields():
    with pytest.raises(ValueError, match="password"):
        bind_log_context(password="hunter2")
