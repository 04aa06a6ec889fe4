"""
fincache — Cache Manager

Sole owner of the key -> CacheEntry mapping.

Key points:
- get/set/invalidate are synchronous and in-memory; they complete atomically with
  respect to other cache operations on the same event loop, and a reentrant lock
  keeps them atomic on thread pools too
- get never evicts: callers decide what "present but expired" means to them
- persistence to a DurableStore is best-effort: failures are logged, counted and
  reported to on_persist_error, never raised
- persisted keys are prefixed with the namespace, which scopes them per user
"""

import logging
import re
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any, TypeVar

from ..errors import PersistenceError
from ..observability.monitoring import ObservabilityAdapter, get_observability
from .entry import CacheEntry, validate_durations
from .keys import KEY_SEPARATOR, matches_operation
from .stores.interface import DurableStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

PersistErrorCallback = Callable[[PersistenceError], None]


class CacheManager:
    """
    In-memory cache of CacheEntry objects with optional durable persistence.

    Features:
    - Exact, per-operation and regex invalidation
    - Eviction of the least recently stored entry beyond max_size
    - Lazy hydration from the durable store on a memory miss
    - Warm loading of a whole namespace with load_from_store()
    """

    def __init__(
        self,
        store: DurableStore | None = None,
        namespace: str = "fincache",
        max_size: int = 1000,
        clock: Callable[[], float] = time.time,
        on_persist_error: PersistErrorCallback | None = None,
        observability: ObservabilityAdapter | None = None,
    ):
        """
        Initialize the cache manager.

        Args:
            store: Durable store for cross-session persistence (None = memory only)
            namespace: Prefix for persisted keys, e.g. "user_42" (no ":")
            max_size: Maximum in-memory entries
            clock: Source of epoch seconds, injectable for tests
            on_persist_error: Called with a PersistenceError whenever the store fails
            observability: Metrics adapter (defaults to the global one)
        """
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        if not namespace:
            raise ValueError("namespace must be a non-empty string")
        if KEY_SEPARATOR in namespace:
            # The store prefix "<namespace>:" must not cover another namespace
            raise ValueError(f"namespace must not contain '{KEY_SEPARATOR}': {namespace!r}")

        self.namespace = namespace
        self.max_size = max_size
        self._store = store
        self._clock = clock
        self._on_persist_error = on_persist_error
        self._obs = observability or get_observability()

        self._entries: OrderedDict[str, CacheEntry[Any]] = OrderedDict()
        self._lock = threading.RLock()

        # Stats
        self._sets = 0
        self._invalidations = 0
        self._evictions = 0
        self._hydrations = 0
        self._persist_failures = 0

    @property
    def store(self) -> DurableStore | None:
        return self._store

    def now(self) -> float:
        """Current time according to the manager's clock."""
        return self._clock()

    # ------------ Store helpers ------------

    @property
    def _store_prefix(self) -> str:
        return f"{self.namespace}:"

    def _store_key(self, key: str) -> str:
        return f"{self._store_prefix}{key}"

    def _report_persist_failure(self, key: str, operation: str, error: Exception) -> None:
        self._persist_failures += 1
        self._obs.increment("cache.persist.failures", tags={"operation": operation})
        logger.warning(
            "Durable store %s failed for key '%s': %s",
            operation,
            key,
            error,
            extra={"key": key, "namespace": self.namespace, "store_operation": operation, "error": str(error)},
        )

        if self._on_persist_error is None:
            return
        try:
            self._on_persist_error(PersistenceError(key, operation, error))
        except Exception as callback_error:
            logger.error(
                "Persist error callback raised: %s",
                callback_error,
                extra={"key": key, "error": str(callback_error)},
                exc_info=True,
            )

    def _store_call(self, operation: str, key: str, func: Callable[[], T], default: T) -> T:
        """Run one store operation, converting any failure into a reported no-op."""
        try:
            return func()
        except Exception as e:
            self._report_persist_failure(key, operation, e)
            return default

    def _persist(self, key: str, entry: CacheEntry[Any]) -> None:
        store = self._store
        if store is None:
            return

        def write() -> bool:
            store.persist(self._store_key(key), entry.to_json(), ttl=entry.ttl)
            return True

        self._store_call("persist", key, write, False)

    def _unpersist(self, keys: list[str]) -> None:
        store = self._store
        if store is None:
            return
        for key in keys:
            self._store_call("remove", key, lambda k=key: store.remove(self._store_key(k)), False)

    def _decode(self, key: str, raw: str) -> CacheEntry[Any] | None:
        try:
            return CacheEntry.from_json(raw)
        except ValueError as e:
            logger.warning(
                "Dropping undecodable persisted entry '%s': %s",
                key,
                e,
                extra={"key": key, "namespace": self.namespace, "error": str(e)},
            )
            self._unpersist([key])
            return None

    def _evict_overflow(self) -> list[str]:
        """Drop the least recently stored entries beyond max_size. Caller holds the lock."""
        evicted = []
        while len(self._entries) > self.max_size:
            evicted_key, _ = self._entries.popitem(last=False)
            evicted.append(evicted_key)
        if evicted:
            self._evictions += len(evicted)
            self._obs.increment("cache.evictions", len(evicted))
            logger.debug("Evicted %d entries from memory: %s", len(evicted), evicted)
        return evicted

    # ------------ Core operations ------------

    def get(self, key: str) -> CacheEntry[Any] | None:
        """
        Look up an entry without evicting it, expired or not.

        On a memory miss the durable store is consulted and a persisted entry is
        hydrated into memory with its original stored_at.

        Returns:
            The entry, or None when absent everywhere
        """
        with self._lock:
            entry = self._entries.get(key)
        if entry is not None or self._store is None:
            return entry

        store = self._store
        raw = self._store_call("load", key, lambda: store.load(self._store_key(key)), None)
        if raw is None:
            return None

        entry = self._decode(key, raw)
        if entry is None:
            return None

        with self._lock:
            # A concurrent set() wins over the persisted copy
            current = self._entries.get(key)
            if current is not None:
                return current
            self._entries[key] = entry
            self._hydrations += 1
            self._evict_overflow()

        logger.debug("Hydrated cache entry '%s' from durable store", key, extra={"key": key})
        return entry

    def set(self, key: str, value: T, ttl: float, stale_after: float) -> CacheEntry[T]:
        """
        Store a value, replacing any existing entry and resetting stored_at to now.

        Args:
            key: Cache key
            value: Payload to cache
            ttl: Seconds until the entry is expired
            stale_after: Seconds until the entry should be refreshed (<= ttl)

        Returns:
            The stored entry

        Raises:
            ValueError: If key is empty or unless 0 < stale_after <= ttl
        """
        if not key:
            raise ValueError("key must be a non-empty string")
        validate_durations(ttl, stale_after)

        entry = CacheEntry(value=value, stored_at=self._clock(), ttl=float(ttl), stale_after=float(stale_after))
        with self._lock:
            self._entries[key] = entry
            self._entries.move_to_end(key)
            self._sets += 1
            self._evict_overflow()

        self._persist(key, entry)
        return entry

    def invalidate(self, key: str) -> None:
        """Remove one exact entry. Removing an absent key is a no-op."""
        with self._lock:
            removed = self._entries.pop(key, None) is not None
            if removed:
                self._invalidations += 1
        self._unpersist([key])
        logger.debug("Invalidated cache key '%s' (present=%s)", key, removed, extra={"key": key})

    def invalidate_by_operation(self, operation: str) -> int:
        """
        Remove every entry belonging to an operation, whatever its parameters.

        Persisted-only entries (not yet hydrated) are removed from the store too.

        Returns:
            Number of distinct keys removed
        """
        return self._invalidate_where(lambda key: matches_operation(key, operation), scan_prefix=operation)

    def invalidate_matching(self, pattern: str | re.Pattern[str]) -> int:
        """
        Remove every entry whose key matches a regular expression (re.search).

        Returns:
            Number of distinct keys removed
        """
        compiled = re.compile(pattern) if isinstance(pattern, str) else pattern
        return self._invalidate_where(lambda key: compiled.search(key) is not None, scan_prefix="")

    def _invalidate_where(self, predicate: Callable[[str], bool], scan_prefix: str) -> int:
        with self._lock:
            doomed = [key for key in self._entries if predicate(key)]
            for key in doomed:
                del self._entries[key]

        removed = set(doomed)
        store = self._store
        if store is not None:
            prefix_len = len(self._store_prefix)
            stored = self._store_call(
                "keys",
                scan_prefix or "*",
                lambda: store.keys(self._store_key(scan_prefix)),
                [],
            )
            persisted = {k[prefix_len:] for k in stored if predicate(k[prefix_len:])}
            self._unpersist(sorted(persisted | removed))
            removed |= persisted

        with self._lock:
            self._invalidations += len(removed)
        logger.debug("Invalidated %d cache keys", len(removed), extra={"count": len(removed)})
        return len(removed)

    def clear(self) -> None:
        """Remove every entry from memory and from this namespace in the store."""
        with self._lock:
            size = len(self._entries)
            self._entries.clear()

        store = self._store
        if store is not None:
            self._store_call("clear", self._store_prefix, lambda: store.clear(self._store_prefix), 0)

        logger.info(
            "Cleared %d entries from cache namespace '%s'",
            size,
            self.namespace,
            extra={"namespace": self.namespace, "size": size},
        )

    def load_from_store(self) -> int:
        """
        Warm memory from every persisted entry in this namespace.

        Entries keep their original stored_at, so they may already be stale or
        expired. Entries already in memory are newer and are kept.

        Returns:
            Number of entries loaded
        """
        store = self._store
        if store is None:
            return 0

        prefix_len = len(self._store_prefix)
        stored = self._store_call("keys", self._store_prefix, lambda: store.keys(self._store_prefix), [])
        loaded = 0

        for store_key in stored:
            key = store_key[prefix_len:]
            raw = self._store_call("load", key, lambda sk=store_key: store.load(sk), None)
            if raw is None:
                continue
            entry = self._decode(key, raw)
            if entry is None:
                continue
            with self._lock:
                if key in self._entries:
                    continue
                self._entries[key] = entry
                loaded += 1

        with self._lock:
            self._hydrations += loaded
            self._evict_overflow()

        logger.info(
            "Loaded %d persisted entries into namespace '%s'",
            loaded,
            self.namespace,
            extra={"namespace": self.namespace, "loaded": loaded},
        )
        return loaded

    def purge_expired(self) -> int:
        """
        Evict every expired entry from memory and the store.

        Returns:
            Number of entries purged
        """
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
            self._evictions += len(expired)

        self._unpersist(expired)
        if expired:
            logger.debug("Purged %d expired entries", len(expired), extra={"count": len(expired)})
        return len(expired)

    def keys(self) -> list[str]:
        """Keys currently held in memory, least recently stored first."""
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        now = self._clock()
        with self._lock:
            stale = sum(1 for e in self._entries.values() if e.is_stale(now) and not e.is_expired(now))
            expired = sum(1 for e in self._entries.values() if e.is_expired(now))
            return {
                "namespace": self.namespace,
                "size": len(self._entries),
                "max_size": self.max_size,
                "stale_entries": stale,
                "expired_entries": expired,
                "sets": self._sets,
                "invalidations": self._invalidations,
                "evictions": self._evictions,
                "hydrations": self._hydrations,
                "persist_failures": self._persist_failures,
                "store": type(self._store).__name__ if self._store is not None else None,
            }

    def close(self) -> None:
        """Close the durable store. In-memory entries are kept."""
        store = self._store
        if store is None:
            return
        self._store_call("close", self._store_prefix, lambda: store.close(), None)
        logger.debug("Cache manager closed for namespace '%s'", self.namespace)
