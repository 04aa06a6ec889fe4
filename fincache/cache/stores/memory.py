"""
fincache — Memory Store

Dict-backed durable store. Survives cache manager instances within one process,
which makes it the store of choice for tests and for rebuilding a manager after sign-out.
"""

import logging
import threading

from .interface import DurableStore

logger = logging.getLogger(__name__)


class MemoryStore(DurableStore):
    """In-process key-value store with thread-safe access."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def persist(self, key: str, serialized: str, ttl: float | None = None) -> None:
        with self._lock:
            self._data[key] = serialized

    def load(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def remove(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            return [k for k in self._data if k.startswith(prefix)]

    def clear(self, prefix: str = "") -> int:
        with self._lock:
            doomed = [k for k in self._data if k.startswith(prefix)]
            for key in doomed:
                del self._data[key]
        logger.debug("Cleared %d entries from memory store (prefix=%r)", len(doomed), prefix)
        return len(doomed)

    def __len__(self) -> int:
        return len(self._data)
