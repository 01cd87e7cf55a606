#app.routes.http
from __future__ import annotations

import httpx

# Persistence calls are single-shot; a failed save is logged by the store, never retried.
DEFAULT_TIMEOUT = httpx.Timeout(connect=3.0, read=6.0, write=3.0, pool=6.0)


def build_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=DEFAULT_TIMEOUT,
        limits=httpx.Limits(
            max_connections=20,
            max_keepalive_connections=10
        ),
        http2=True
    )


http_client = build_http_client()
