from __future__ import annotations

from typing import Any

import httpx

from app.routes.http import DEFAULT_TIMEOUT, http_client
from app.services.metrics import record_dependency_call_async


class SupabaseConfigError(RuntimeError):
    pass


class SupabaseRestRepository:
    """PostgREST access for single-row-per-user tables such as ``user_analytics``."""

    def __init__(
        self,
        *,
        base_url: str | None,
        service_role_key: str | None,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.service_role_key = service_role_key
        self._client = client

    def headers(self, *, prefer: str | None = None) -> dict[str, str]:
        if not self.service_role_key:
            raise SupabaseConfigError("Supabase service role key missing.")
        headers = {
            "apikey": self.service_role_key,
            "Authorization": f"Bearer {self.service_role_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def table_url(self, table: str) -> str:
        if not self.base_url:
            raise SupabaseConfigError("SUPABASE_URL is not configured.")
        return f"{self.base_url}/rest/v1/{table}"

    async def select_for_user(self, table: str, user_id: str, *, columns: str):
        """Fetch at most one row owned by ``user_id``."""
        client = self._client or http_client
        url = self.table_url(table)
        params = {"user_id": f"eq.{user_id}", "select": columns, "limit": 1}
        headers = self.headers()
        return await record_dependency_call_async(
            "supabase",
            lambda: client.get(url, params=params, headers=headers, timeout=DEFAULT_TIMEOUT),
        )

    async def upsert(self, table: str, row: dict[str, Any], *, on_conflict: str):
        client = self._client or http_client
        url = self.table_url(table)
        headers = self.headers(prefer="resolution=merge-duplicates,return=minimal")
        return await record_dependency_call_async(
            "supabase",
            lambda: client.post(
                url,
                params={"on_conflict": on_conflict},
                json=row,
                headers=headers,
                timeout=DEFAULT_TIMEOUT,
            ),
        )
