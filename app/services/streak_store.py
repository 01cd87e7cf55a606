from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Protocol

import httpx

from app.routes.upstash_redis import UpstashError, UpstashRedis
from app.services.metrics import metrics
from app.services.streak_record import StreakRecord, deserialize_record, serialize_record
from app.services.supabase_rest import SupabaseConfigError, SupabaseRestRepository

logger = logging.getLogger(__name__)


class PersistenceError(RuntimeError):
    pass


class StreakBackend(Protocol):
    name: str

    async def load(self, user_id: str) -> dict[str, Any] | None: ...

    async def save(self, user_id: str, payload: dict[str, Any]) -> None: ...


class SupabaseStreakBackend:
    """Cross-device mirror: one ``streak_data`` JSON column per analytics row."""

    name = "supabase"

    def __init__(self, repo: SupabaseRestRepository, *, table: str = "user_analytics"):
        self.repo = repo
        self.table = table

    async def load(self, user_id: str) -> dict[str, Any] | None:
        try:
            res = await self.repo.select_for_user(self.table, user_id, columns="streak_data")
        except (httpx.HTTPError, SupabaseConfigError) as exc:
            raise PersistenceError(f"supabase load failed: {exc}") from exc

        if res.status_code != 200:
            raise PersistenceError(f"supabase load returned {res.status_code}")

        rows = res.json() or []
        if not isinstance(rows, list) or (rows and not isinstance(rows[0], dict)):
            raise PersistenceError("supabase returned an unexpected row shape")
        if not rows:
            return None
        return rows[0].get("streak_data") or None

    async def save(self, user_id: str, payload: dict[str, Any]) -> None:
        row = {
            "user_id": user_id,
            "streak_data": payload,
            "last_updated": datetime.now(timezone.utc).isoformat(),
        }
        try:
            res = await self.repo.upsert(self.table, row, on_conflict="user_id")
        except (httpx.HTTPError, SupabaseConfigError) as exc:
            raise PersistenceError(f"supabase save failed: {exc}") from exc

        if res.status_code not in (200, 201, 204):
            raise PersistenceError(f"supabase save returned {res.status_code}")


class RedisStreakCache:
    """Device-local source of truth, keyed ``streak_<user_id>``."""

    name = "upstash"

    def __init__(self, redis: UpstashRedis, *, key_prefix: str = "streak_"):
        self.redis = redis
        self.key_prefix = key_prefix

    def key(self, user_id: str) -> str:
        return f"{self.key_prefix}{user_id}"

    async def load(self, user_id: str) -> dict[str, Any] | None:
        try:
            value = await self.redis.get(self.key(user_id))
        except (httpx.HTTPError, UpstashError) as exc:
            raise PersistenceError(f"cache load failed: {exc}") from exc

        if value is None:
            return None
        if not isinstance(value, dict):
            raise PersistenceError(f"cache entry for {self.key(user_id)} is not a streak payload")
        return value

    async def save(self, user_id: str, payload: dict[str, Any]) -> None:
        try:
            await self.redis.set(self.key(user_id), payload)
        except (httpx.HTTPError, UpstashError) as exc:
            raise PersistenceError(f"cache save failed: {exc}") from exc


class InMemoryStreakBackend:
    name = "memory"

    def __init__(self):
        self.entries: dict[str, dict[str, Any]] = {}

    async def load(self, user_id: str) -> dict[str, Any] | None:
        entry = self.entries.get(user_id)
        return copy.deepcopy(entry) if entry is not None else None

    async def save(self, user_id: str, payload: dict[str, Any]) -> None:
        self.entries[user_id] = copy.deepcopy(payload)


class StreakStore:
    """Remote-then-local reads, local-then-remote writes.

    ``load`` returns ``None`` when neither backend has a record. ``save`` only
    raises when the local cache write fails; the primary is best-effort.
    """

    def __init__(self, *, cache: StreakBackend, primary: StreakBackend | None = None):
        self.cache = cache
        self.primary = primary

    async def load(self, user_id: str) -> StreakRecord | None:
        if self.primary is not None:
            try:
                payload = await self.primary.load(user_id)
                if payload is not None:
                    return deserialize_record(payload)
            except (PersistenceError, ValueError, KeyError, TypeError) as exc:
                metrics.inc("store_primary_failures_total", operation="load")
                logger.warning(
                    "streak_store.primary_load_failed",
                    extra={"user_id": user_id, "backend": self.primary.name, "error": str(exc)},
                )

        try:
            payload = await self.cache.load(user_id)
            if payload is None:
                return None
            return deserialize_record(payload)
        except (ValueError, KeyError, TypeError) as exc:
            raise PersistenceError(f"cached streak record is corrupt: {exc}") from exc

    async def save(self, user_id: str, record: StreakRecord) -> None:
        payload = serialize_record(record)
        await self.cache.save(user_id, payload)

        if self.primary is None:
            return
        try:
            await self.primary.save(user_id, payload)
        except PersistenceError as exc:
            metrics.inc("store_primary_failures_total", operation="save")
            logger.warning(
                "streak_store.primary_save_failed",
                extra={"user_id": user_id, "backend": self.primary.name, "error": str(exc)},
            )
