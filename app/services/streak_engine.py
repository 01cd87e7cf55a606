from __future__ import annotations

import logging
import random
from datetime import date, timedelta
from typing import Protocol

from app.services import momentum
from app.services.metrics import metrics
from app.services.streak_record import HISTORY_LIMIT, StreakRecord
from app.services.streak_store import PersistenceError, StreakStore

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    def notify(self, message: str, level: str = "success") -> None: ...


class StreakEngine:
    """Daily streak state machine for one user session.

    Day boundaries are calendar dates supplied by the caller, so the engine
    never reads the clock. Until ``init`` receives a user id every operation is
    a no-op. Persistence failures are logged and the in-memory record stays
    authoritative for the rest of the session.
    """

    def __init__(
        self,
        store: StreakStore,
        *,
        notifier: NotificationSink | None = None,
        rng: random.Random | None = None,
        history_limit: int = HISTORY_LIMIT,
    ):
        self.store = store
        self.notifier = notifier
        self.rng = rng or random.Random()
        self.history_limit = history_limit
        self.user_id: str | None = None
        self.record = StreakRecord()

    @property
    def current_streak(self) -> int:
        return self.record.current_streak

    @property
    def longest_streak(self) -> int:
        return self.record.longest_streak

    @property
    def last_activity_date(self) -> date | None:
        return self.record.last_activity_date

    async def init(self, user_id: str | None, today: date) -> None:
        if not user_id:
            logger.info("streak.no_session")
            return
        self.user_id = user_id
        await self._load()
        await self.evaluate(today)

    async def evaluate(self, today: date) -> bool:
        """Credit ``today`` against the record. Returns False when nothing changed."""
        if self.user_id is None:
            return False

        record = self.record
        last = record.last_activity_date
        if last == today:
            return False

        if last == today - timedelta(days=1):
            transition = "continued"
            record.current_streak += 1
            if record.streak_start_date is None:
                record.streak_start_date = today - timedelta(days=record.current_streak - 1)
        elif last is not None:
            transition = "reset"
            record.longest_streak = max(record.longest_streak, record.current_streak)
            record.current_streak = 1
            record.streak_start_date = today
        else:
            transition = "started"
            record.current_streak = max(record.current_streak, 1)
            if record.streak_start_date is None:
                record.streak_start_date = today

        record.last_activity_date = today
        record.longest_streak = max(record.longest_streak, record.current_streak)
        record.ensure_day(today, limit=self.history_limit)

        metrics.inc("streak_transitions_total", transition=transition)
        logger.info(
            f"streak.{transition}",
            extra={
                "user_id": self.user_id,
                "current_streak": record.current_streak,
                "longest_streak": record.longest_streak,
                "previous_date": last.isoformat() if last else None,
            },
        )

        await self._save()

        if record.current_streak > 1:
            self._show_motivation()
        return True

    async def record_activity(self, today: date, duration: float = 0, lessons_completed: int = 1) -> None:
        if self.user_id is None:
            return
        if duration < 0 or lessons_completed < 0:
            raise ValueError("duration and lessons_completed must be non-negative")

        await self.evaluate(today)

        entry = self.record.ensure_day(today, limit=self.history_limit)
        entry.duration += duration
        entry.lessons_completed += lessons_completed
        metrics.inc("streak_activity_recorded_total")

        await self._save()

    def stats(self) -> dict:
        record = self.record
        return {
            "current_streak": record.current_streak,
            "longest_streak": record.longest_streak,
            "total_learning_days": record.total_learning_days,
            "streak_start_date": record.streak_start_date.isoformat() if record.streak_start_date else None,
            "last_learning_date": record.last_activity_date.isoformat() if record.last_activity_date else None,
            "learning_history": [
                {
                    "date": entry.date.isoformat(),
                    "duration": entry.duration,
                    "lessons_completed": entry.lessons_completed,
                }
                for entry in record.history
            ],
        }

    def motivational_message(self) -> str:
        return momentum.motivational_message(self.current_streak, self.rng)

    def weekly_pattern(self, today: date) -> list[dict]:
        return momentum.weekly_pattern(self.record.history, today)

    async def reset(self) -> None:
        if self.user_id is None:
            return
        self.record = StreakRecord()
        logger.info("streak.cleared", extra={"user_id": self.user_id})
        await self._save()

    async def _load(self) -> None:
        try:
            record = await self.store.load(self.user_id)
        except PersistenceError as exc:
            logger.warning("streak.load_failed", extra={"user_id": self.user_id, "error": str(exc)})
            record = None
        self.record = record or StreakRecord()

    async def _save(self) -> None:
        try:
            await self.store.save(self.user_id, self.record)
        except PersistenceError as exc:
            metrics.inc("streak_save_failures_total")
            logger.warning("streak.save_failed", extra={"user_id": self.user_id, "error": str(exc)})

    def _show_motivation(self) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.notify(self.motivational_message(), "success")
        except Exception:
            logger.warning("streak.notify_failed", extra={"user_id": self.user_id}, exc_info=True)
