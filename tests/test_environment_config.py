import pytest

from app.config import environment


def test_resolve_environment_defaults_to_dev(monkeypatch):
    monkeypatch.delenv("ENV", raising=False)
    assert environment.resolve_environment() == "dev"


def test_invalid_environment_fails_fast(monkeypatch):
    monkeypatch.setenv("ENV", "qa")
    with pytest.raises(RuntimeError, match="Invalid ENV"):
        environment.resolve_environment()


def test_validate_environment_requires_upstash_outside_dev(monkeypatch):
    monkeypatch.setenv("ENV", "prod")
    monkeypatch.setenv("SUPABASE_URL", "http://example.com")
    monkeypatch.setenv("SUPABASE_KEY", "anon")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service")
    monkeypatch.delenv("UPSTASH_REDIS_REST_URL", raising=False)
    monkeypatch.setenv("UPSTASH_REDIS_REST_TOKEN", "token")

    with pytest.raises(RuntimeError, match="UPSTASH_REDIS_REST_URL"):
        environment.validate_environment()


def test_streak_settings_defaults(monkeypatch):
    for name in ("STREAK_HISTORY_LIMIT", "STREAK_TIMEZONE", "STREAK_ANALYTICS_TABLE", "STREAK_CACHE_PREFIX"):
        monkeypatch.delenv(name, raising=False)

    settings = environment.load_streak_settings()

    assert settings == environment.StreakSettings()
    assert settings.history_limit == 90


def test_streak_settings_reject_bad_values(monkeypatch):
    monkeypatch.setenv("STREAK_HISTORY_LIMIT", "ninety")
    with pytest.raises(RuntimeError, match="STREAK_HISTORY_LIMIT"):
        environment.load_streak_settings()

    monkeypatch.setenv("STREAK_HISTORY_LIMIT", "30")
    monkeypatch.setenv("STREAK_TIMEZONE", "Mars/Olympus")
    with pytest.raises(RuntimeError, match="STREAK_TIMEZONE"):
        environment.load_streak_settings()


def test_today_in_respects_timezone():
    assert environment.today_in("Africa/Kampala").isoformat() >= environment.today_in("Pacific/Pago_Pago").isoformat()
