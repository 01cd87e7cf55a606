from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date
from typing import AsyncIterator

from app.services.streak_engine import StreakEngine
from app.services.streak_record import HISTORY_LIMIT
from app.services.streak_store import StreakStore
from app.services.ui_messages import ToastQueue

logger = logging.getLogger(__name__)


@dataclass
class StreakSession:
    engine: StreakEngine
    toasts: ToastQueue
    started_on: date
    lock: asyncio.Lock
    ready: bool = False


class StreakSessionRegistry:
    """Owns one engine per signed-in user.

    A session starts (load + evaluate) the first time a user is seen on a given
    calendar day. Calls for the same user are serialized on the session lock.
    Sessions from earlier days are dropped once nobody holds their lock; the
    store still has their record.
    """

    def __init__(self, store: StreakStore, *, history_limit: int = HISTORY_LIMIT):
        self.store = store
        self.history_limit = history_limit
        self._sessions: dict[str, StreakSession] = {}
        self._guard = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def _evict_stale(self, today: date, keep: str) -> None:
        stale = [
            user_id
            for user_id, session in self._sessions.items()
            if user_id != keep and session.started_on < today and not session.lock.locked()
        ]
        for user_id in stale:
            del self._sessions[user_id]
        if stale:
            logger.info("streak_session.evicted", extra={"count": len(stale), "today": today.isoformat()})

    async def _get_or_create(self, user_id: str, today: date) -> StreakSession:
        async with self._guard:
            self._evict_stale(today, keep=user_id)

            previous = self._sessions.get(user_id)
            if previous is not None and previous.started_on == today:
                return previous

            toasts = previous.toasts if previous is not None else ToastQueue()
            session = StreakSession(
                engine=StreakEngine(self.store, notifier=toasts, history_limit=self.history_limit),
                toasts=toasts,
                started_on=today,
                lock=previous.lock if previous is not None else asyncio.Lock(),
            )
            self._sessions[user_id] = session
            return session

    @asynccontextmanager
    async def session(self, user_id: str, today: date) -> AsyncIterator[StreakSession]:
        session = await self._get_or_create(user_id, today)
        async with session.lock:
            if not session.ready:
                logger.info("streak_session.started", extra={"user_id": user_id, "today": today.isoformat()})
                await session.engine.init(user_id, today)
                session.ready = True
            yield session
