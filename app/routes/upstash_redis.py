# upstash_redis.py
import base64
import json
import logging
import zlib

import httpx

from app.services.metrics import record_dependency_call_async

logger = logging.getLogger(__name__)

COMPRESSION_MARKER = "__COMPRESSED__:"
# A full 90-day learning history lands just above this
COMPRESSION_THRESHOLD = 5000


class UpstashError(RuntimeError):
    pass


def compress_for_storage(data: str) -> str:
    """Compress string and encode as base64 for safe storage."""
    return base64.b64encode(zlib.compress(data.encode())).decode()


def decompress_from_storage(data: str) -> str:
    """Decode base64 and decompress back into string."""
    try:
        return zlib.decompress(base64.b64decode(data.encode())).decode()
    except (zlib.error, ValueError):
        # Not compressed, hand back as-is
        return data


class UpstashRedis:
    """Minimal Upstash REST client: one JSON command array per POST."""

    def __init__(self, *, url: str | None, token: str | None, client: httpx.AsyncClient):
        self.url = url
        self.token = token
        self.client = client

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
        }

    async def _command(self, command: list[str]):
        if not self.url:
            raise UpstashError("UPSTASH_REDIS_REST_URL is not configured.")

        async def _invoke():
            return await self.client.post(self.url, headers=self.headers, json=command)

        response = await record_dependency_call_async("upstash", _invoke)
        if response.status_code != 200:
            raise UpstashError(f"Upstash {command[0]} failed with status {response.status_code}")
        try:
            return response.json()
        except ValueError as exc:
            logger.error(
                "upstash.decode_failed",
                extra={"command": command[0], "status_code": response.status_code},
            )
            raise UpstashError(f"Upstash {command[0]} returned invalid JSON") from exc

    async def set(self, key: str, value: dict | str):
        """Set key to value, JSON-encoding dicts and compressing large payloads."""
        if not isinstance(value, str):
            value = json.dumps(value)

        if len(value) > COMPRESSION_THRESHOLD:
            value = COMPRESSION_MARKER + compress_for_storage(value)

        return await self._command(["SET", key, value])

    async def get(self, key: str):
        """Get key and auto-decode JSON or decompress if needed."""
        data = await self._command(["GET", key])
        if not isinstance(data, dict):
            raise UpstashError("Upstash GET returned an unexpected body")
        raw = data.get("result")
        if raw is None:
            return None

        if isinstance(raw, str) and raw.startswith(COMPRESSION_MARKER):
            raw = decompress_from_storage(raw[len(COMPRESSION_MARKER):])

        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return raw
