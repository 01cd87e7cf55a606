from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any

HISTORY_LIMIT = 90


@dataclass
class DayRecord:
    date: date
    duration: float = 0
    lessons_completed: int = 0


@dataclass
class StreakRecord:
    current_streak: int = 0
    longest_streak: int = 0
    last_activity_date: date | None = None
    streak_start_date: date | None = None
    history: list[DayRecord] = field(default_factory=list)
    total_learning_days: int = 0

    def day(self, day: date) -> DayRecord | None:
        for entry in self.history:
            if entry.date == day:
                return entry
        return None

    def ensure_day(self, day: date, *, limit: int = HISTORY_LIMIT) -> DayRecord:
        """Return the history entry for ``day``, appending an empty one if absent.

        Appending prunes the oldest entries so that at most ``limit`` remain and
        refreshes ``total_learning_days``.
        """
        existing = self.day(day)
        if existing is not None:
            return existing

        entry = DayRecord(date=day)
        self.history.append(entry)
        if len(self.history) > limit:
            self.history = self.history[-limit:]
        self.total_learning_days = len(self.history)
        return entry


def _parse_date(value: Any) -> date | None:
    if not value:
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _format_date(value: date | None) -> str | None:
    return value.isoformat() if value else None


def serialize_record(record: StreakRecord) -> dict[str, Any]:
    return {
        "currentStreak": record.current_streak,
        "longestStreak": record.longest_streak,
        "lastLearningDate": _format_date(record.last_activity_date),
        "learningHistory": [
            {
                "date": entry.date.isoformat(),
                "duration": entry.duration,
                "lessonsCompleted": entry.lessons_completed,
            }
            for entry in record.history
        ],
        "totalLearningDays": record.total_learning_days,
        "streakStartDate": _format_date(record.streak_start_date),
    }


def deserialize_record(payload: Any) -> StreakRecord:
    """Rebuild a record from its cached shape; any malformed part raises ``ValueError``."""
    if not isinstance(payload, dict):
        raise ValueError(f"streak payload must be an object, got {type(payload).__name__}")

    raw_history = payload.get("learningHistory") or []
    if not isinstance(raw_history, list):
        raise ValueError("learningHistory must be a list")

    history = []
    for item in raw_history:
        if not isinstance(item, dict):
            raise ValueError(f"learningHistory entry must be an object, got {type(item).__name__}")
        if not item.get("date"):
            continue
        history.append(
            DayRecord(
                date=_parse_date(item["date"]),
                duration=item.get("duration") or 0,
                lessons_completed=int(item.get("lessonsCompleted") or 0),
            )
        )

    return StreakRecord(
        current_streak=int(payload.get("currentStreak") or 0),
        longest_streak=int(payload.get("longestStreak") or 0),
        last_activity_date=_parse_date(payload.get("lastLearningDate")),
        streak_start_date=_parse_date(payload.get("streakStartDate")),
        history=history,
        total_learning_days=int(payload.get("totalLearningDays") or 0),
    )
