import os
from dataclasses import dataclass
from datetime import date, datetime

import pytz

ALLOWED_ENVS = {"dev", "staging", "prod"}


@dataclass(frozen=True)
class EnvironmentRequirements:
    required_vars: tuple[str, ...]


ENV_REQUIREMENTS: dict[str, EnvironmentRequirements] = {
    "dev": EnvironmentRequirements(
        required_vars=(
            "SUPABASE_URL",
            "SUPABASE_SERVICE_ROLE_KEY",
        )
    ),
    "staging": EnvironmentRequirements(
        required_vars=(
            "SUPABASE_URL",
            "SUPABASE_KEY",
            "SUPABASE_SERVICE_ROLE_KEY",
            "UPSTASH_REDIS_REST_URL",
            "UPSTASH_REDIS_REST_TOKEN",
        )
    ),
    "prod": EnvironmentRequirements(
        required_vars=(
            "SUPABASE_URL",
            "SUPABASE_KEY",
            "SUPABASE_SERVICE_ROLE_KEY",
            "UPSTASH_REDIS_REST_URL",
            "UPSTASH_REDIS_REST_TOKEN",
        )
    ),
}


@dataclass(frozen=True)
class StreakSettings:
    history_limit: int = 90
    timezone: str = "UTC"
    analytics_table: str = "user_analytics"
    cache_key_prefix: str = "streak_"


def resolve_environment() -> str:
    env = (os.getenv("ENV") or "dev").strip().lower()
    if env not in ALLOWED_ENVS:
        allowed_values = ", ".join(sorted(ALLOWED_ENVS))
        raise RuntimeError(
            f"❌ Invalid ENV '{env}'. Expected one of: {allowed_values}."
        )
    return env


def validate_environment() -> str:
    env = resolve_environment()
    required = ENV_REQUIREMENTS[env].required_vars
    missing = [name for name in required if not (os.getenv(name) or "").strip()]
    if missing:
        missing_list = ", ".join(missing)
        raise RuntimeError(
            f"❌ Missing required environment variables for ENV='{env}': {missing_list}"
        )
    return env


def load_streak_settings() -> StreakSettings:
    raw_limit = (os.getenv("STREAK_HISTORY_LIMIT") or "90").strip()
    try:
        history_limit = int(raw_limit)
    except ValueError as exc:
        raise RuntimeError(f"❌ STREAK_HISTORY_LIMIT must be an integer, got '{raw_limit}'.") from exc
    if history_limit < 1:
        raise RuntimeError("❌ STREAK_HISTORY_LIMIT must be at least 1.")

    timezone = (os.getenv("STREAK_TIMEZONE") or "UTC").strip()
    try:
        pytz.timezone(timezone)
    except pytz.UnknownTimeZoneError as exc:
        raise RuntimeError(f"❌ Unknown STREAK_TIMEZONE '{timezone}'.") from exc

    return StreakSettings(
        history_limit=history_limit,
        timezone=timezone,
        analytics_table=(os.getenv("STREAK_ANALYTICS_TABLE") or "user_analytics").strip(),
        cache_key_prefix=os.getenv("STREAK_CACHE_PREFIX") or "streak_",
    )


def today_in(timezone: str) -> date:
    return datetime.now(pytz.timezone(timezone)).date()
