"""
fincache — Redis Store

Durable store backed by Redis, for sharing persisted entries across processes
of the same user session (e.g. a CLI and a sync worker).

- Values are the serialized cache entries, stored as UTF-8 strings.
- Keys arrive already namespaced by the cache manager.
- Entries get a Redis expiry of ttl + grace so expired data stays around as a
  fetch-failure fallback, then disappears on its own.

Requires: redis>=5.0

Example:
    store = RedisStore(redis_url="redis://localhost:6379/0")
    store.persist("fincache:fetchWallets:ab12...", serialized, ttl=3600)
"""

from __future__ import annotations

import logging
import math

from .interface import DurableStore

logger = logging.getLogger(__name__)

try:
    from redis import Redis
except ImportError as e:  # pragma: no cover
    raise ImportError(
        "Redis client is required but not installed. "
        "Install with: pip install 'redis>=5.0.0' or add 'redis' to your dependencies."
    ) from e


def _escape_glob(prefix: str) -> str:
    """Escape Redis MATCH metacharacters so the prefix is taken literally."""
    for ch in ("\\", "*", "?", "[", "]"):
        prefix = prefix.replace(ch, "\\" + ch)
    return prefix


class RedisStore(DurableStore):
    """
    Redis durable store.

    Notes:
    - SCAN is used for prefix listing so large keyspaces do not block the server.
    - Deletes are batched to keep single DEL calls reasonable.
    """

    def __init__(
        self,
        redis_url: str,
        socket_timeout: float = 5.0,
        expiry_grace_seconds: int = 86400,
        client: Redis | None = None,
    ) -> None:
        """
        Initialize Redis store.

        Args:
            redis_url: Connection URL, e.g. redis://localhost:6379/0 or rediss:// for TLS
            socket_timeout: Socket timeout in seconds
            expiry_grace_seconds: Lifetime past the entry TTL before Redis drops it
            client: Pre-built client (tests); redis_url is ignored when given
        """
        if not redis_url and client is None:
            raise ValueError("redis_url is required")

        self.expiry_grace_seconds = max(0, int(expiry_grace_seconds))
        # Lazy connection; connects on first command
        self._client: Redis = client or Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
        )

    def _expiry(self, ttl: float | None) -> int | None:
        if ttl is None:
            return None
        return max(1, math.ceil(ttl) + self.expiry_grace_seconds)

    def persist(self, key: str, serialized: str, ttl: float | None = None) -> None:
        self._client.set(name=key, value=serialized, ex=self._expiry(ttl))

    def load(self, key: str) -> str | None:
        data = self._client.get(key)
        if isinstance(data, bytes):
            return data.decode("utf-8")
        return data

    def remove(self, key: str) -> bool:
        return bool(self._client.delete(key))

    def keys(self, prefix: str = "") -> list[str]:
        found = []
        for key in self._client.scan_iter(match=f"{_escape_glob(prefix)}*", count=1000):
            found.append(key.decode("utf-8") if isinstance(key, bytes) else key)
        return found

    def clear(self, prefix: str = "") -> int:
        """Delete every key under the prefix using SCAN + batched DEL."""
        keys = self.keys(prefix)
        deleted_total = 0
        chunk_size = 1000

        for i in range(0, len(keys), chunk_size):
            chunk = keys[i : i + chunk_size]
            deleted_total += int(self._client.delete(*chunk))

        logger.info("Cleared %d keys from Redis store (prefix=%r)", deleted_total, prefix)
        return deleted_total

    def ping(self) -> bool:
        return bool(self._client.ping())

    def close(self) -> None:
        """Close the Redis client and release resources."""
        try:
            self._client.close()
        except Exception as e:
            logger.warning("Error closing Redis client: %s", e, extra={"error": str(e)})
