"""
fincache — Cache Manager Tests

Round trip, invalidation, eviction, persistence, hydration and failure swallowing.
"""

import re
from typing import Any

import pytest

from fincache.cache.manager import CacheManager
from fincache.cache.stores import MemoryStore
from fincache.errors import PersistenceError
from fincache.observability.monitoring import ObservabilityAdapter


class FailingStore(MemoryStore):
    """Memory store whose selected operations raise."""

    def __init__(self, *failing: str) -> None:
        super().__init__()
        self.failing = set(failing)

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.failing:
            raise OSError(f"{operation} unavailable")

    def persist(self, key: str, serialized: str, ttl: float | None = None) -> None:
        self._maybe_fail("persist")
        super().persist(key, serialized, ttl)

    def load(self, key: str) -> str | None:
        self._maybe_fail("load")
        return super().load(key)

    def remove(self, key: str) -> bool:
        self._maybe_fail("remove")
        return super().remove(key)

    def keys(self, prefix: str = "") -> list[str]:
        self._maybe_fail("keys")
        return super().keys(prefix)

    def clear(self, prefix: str = "") -> int:
        self._maybe_fail("clear")
        return super().clear(prefix)


class TestCacheManagerBasics:
    """Test suite for in-memory behavior."""

    def test_set_and_get(self, manager: CacheManager, clock: Any) -> None:
        entry = manager.set("wallets:{}", [{"id": "w1"}], ttl=3600, stale_after=1800)

        got = manager.get("wallets:{}")
        assert got is entry
        assert got.value == [{"id": "w1"}]
        assert got.stored_at == clock.now
        assert not got.is_expired(manager.now())

    def test_get_absent(self, manager: CacheManager) -> None:
        assert manager.get("missing") is None

    def test_get_does_not_evict_expired(self, manager: CacheManager, clock: Any) -> None:
        manager.set("k", "v", ttl=10, stale_after=5)
        clock.advance(60)

        entry = manager.get("k")
        assert entry is not None
        assert entry.is_expired(manager.now())
        assert "k" in manager

    def test_set_overwrites_and_resets_stored_at(self, manager: CacheManager, clock: Any) -> None:
        manager.set("k", "old", ttl=10, stale_after=5)
        clock.advance(8)
        manager.set("k", "new", ttl=10, stale_after=5)

        entry = manager.get("k")
        assert entry.value == "new"
        assert entry.stored_at == clock.now
        assert len(manager) == 1

    @pytest.mark.parametrize(("ttl", "stale_after"), [(10, 20), (0, 0), (10, 0), (-1, -2)])
    def test_set_rejects_bad_durations(self, manager: CacheManager, ttl: float, stale_after: float) -> None:
        with pytest.raises(ValueError):
            manager.set("k", "v", ttl=ttl, stale_after=stale_after)
        assert manager.get("k") is None

    def test_set_rejects_empty_key(self, manager: CacheManager) -> None:
        with pytest.raises(ValueError):
            manager.set("", "v", ttl=10, stale_after=5)

    def test_invalidate_is_idempotent(self, manager: CacheManager) -> None:
        manager.set("k", "v", ttl=10, stale_after=5)

        manager.invalidate("k")
        manager.invalidate("k")
        manager.invalidate("never-set")

        assert manager.get("k") is None

    def test_invalidate_by_operation(self, manager: CacheManager) -> None:
        manager.set("op:a", "v1", ttl=10, stale_after=5)
        manager.set("op:b", "v2", ttl=10, stale_after=5)
        manager.set("other:a", "v3", ttl=10, stale_after=5)
        manager.set("opposite:a", "v4", ttl=10, stale_after=5)

        removed = manager.invalidate_by_operation("op")

        assert removed == 2
        assert manager.get("op:a") is None
        assert manager.get("op:b") is None
        assert manager.get("other:a").value == "v3"
        assert manager.get("opposite:a").value == "v4"

    def test_invalidate_matching_regex(self, manager: CacheManager) -> None:
        manager.set("fetchWallets:1", 1, ttl=10, stale_after=5)
        manager.set("fetchWalletStats:2", 2, ttl=10, stale_after=5)
        manager.set("fetchCategories:3", 3, ttl=10, stale_after=5)

        removed = manager.invalidate_matching(re.compile(r"^fetchWallet"))

        assert removed == 2
        assert manager.keys() == ["fetchCategories:3"]

    def test_invalidate_matching_accepts_string(self, manager: CacheManager) -> None:
        manager.set("a:1", 1, ttl=10, stale_after=5)
        manager.set("b:1", 1, ttl=10, stale_after=5)

        assert manager.invalidate_matching("^a:") == 1
        assert manager.keys() == ["b:1"]

    def test_clear(self, manager: CacheManager) -> None:
        for i in range(5):
            manager.set(f"k{i}", i, ttl=10, stale_after=5)

        manager.clear()

        assert len(manager) == 0
        assert manager.get_stats()["size"] == 0

    def test_eviction_of_least_recently_stored(self, clock: Any, obs: ObservabilityAdapter) -> None:
        manager = CacheManager(max_size=3, clock=clock, observability=obs)
        for key in ("a", "b", "c"):
            manager.set(key, key, ttl=10, stale_after=5)

        # Re-setting "a" makes "b" the oldest write
        manager.set("a", "a2", ttl=10, stale_after=5)
        manager.set("d", "d", ttl=10, stale_after=5)

        assert manager.keys() == ["c", "a", "d"]
        assert manager.get_stats()["evictions"] == 1
        assert obs.get_counter("cache.evictions") == 1

    def test_purge_expired(self, manager: CacheManager, clock: Any) -> None:
        manager.set("short", 1, ttl=10, stale_after=5)
        manager.set("long", 2, ttl=100, stale_after=50)
        clock.advance(20)

        assert manager.purge_expired() == 1
        assert manager.keys() == ["long"]

    def test_stats(self, manager: CacheManager, clock: Any) -> None:
        manager.set("fresh", 1, ttl=100, stale_after=50)
        manager.set("stale", 2, ttl=100, stale_after=5)
        manager.set("expired", 3, ttl=8, stale_after=4)
        clock.advance(10)

        stats = manager.get_stats()

        assert stats["size"] == 3
        assert stats["stale_entries"] == 1
        assert stats["expired_entries"] == 1
        assert stats["sets"] == 3
        assert stats["store"] is None

    def test_constructor_validation(self) -> None:
        with pytest.raises(ValueError):
            CacheManager(max_size=0, observability=ObservabilityAdapter())
        with pytest.raises(ValueError):
            CacheManager(namespace="", observability=ObservabilityAdapter())
        with pytest.raises(ValueError):
            CacheManager(namespace="user:42", observability=ObservabilityAdapter())


class TestCacheManagerPersistence:
    """Test suite for durable store integration."""

    def test_set_persists_under_namespace(self, persistent_manager: CacheManager, store: MemoryStore) -> None:
        persistent_manager.set("wallets:{}", [1, 2], ttl=60, stale_after=30)

        assert store.keys() == ["test:wallets:{}"]
        assert '"value":[1,2]' in store.load("test:wallets:{}")

    def test_get_hydrates_from_store(self, store: MemoryStore, clock: Any, obs: ObservabilityAdapter) -> None:
        first = CacheManager(store=store, namespace="user_1", clock=clock, observability=obs)
        first.set("wallets:{}", ["w1"], ttl=60, stale_after=30)
        stored_at = clock.now
        clock.advance(40)

        second = CacheManager(store=store, namespace="user_1", clock=clock, observability=obs)
        entry = second.get("wallets:{}")

        assert entry is not None
        assert entry.value == ["w1"]
        assert entry.stored_at == stored_at
        assert entry.is_stale(second.now())
        assert "wallets:{}" in second
        assert second.get_stats()["hydrations"] == 1

    def test_namespaces_are_isolated(self, store: MemoryStore, clock: Any, obs: ObservabilityAdapter) -> None:
        alice = CacheManager(store=store, namespace="user_alice", clock=clock, observability=obs)
        bob = CacheManager(store=store, namespace="user_bob", clock=clock, observability=obs)

        alice.set("wallets:{}", ["alice"], ttl=60, stale_after=30)

        assert bob.get("wallets:{}") is None
        bob.clear()
        assert store.keys("user_alice:") == ["user_alice:wallets:{}"]

    def test_load_from_store_keeps_expired_entries(
        self, store: MemoryStore, clock: Any, obs: ObservabilityAdapter
    ) -> None:
        writer = CacheManager(store=store, namespace="ns", clock=clock, observability=obs)
        writer.set("a:1", "fresh", ttl=1000, stale_after=500)
        writer.set("b:1", "old", ttl=10, stale_after=5)
        clock.advance(100)

        reader = CacheManager(store=store, namespace="ns", clock=clock, observability=obs)
        loaded = reader.load_from_store()

        assert loaded == 2
        assert reader.get("b:1").is_expired(reader.now())
        assert reader.get("a:1").value == "fresh"

    def test_load_from_store_prefers_memory(self, store: MemoryStore, clock: Any, obs: ObservabilityAdapter) -> None:
        writer = CacheManager(store=store, namespace="ns", clock=clock, observability=obs)
        writer.set("a:1", "persisted", ttl=1000, stale_after=500)
        writer.set("b:1", "persisted", ttl=1000, stale_after=500)

        reader = CacheManager(store=store, namespace="ns", clock=clock, observability=obs)
        reader.set("a:1", "in-memory", ttl=1000, stale_after=500)

        assert reader.load_from_store() == 1
        assert reader.get("a:1").value == "in-memory"
        assert reader.get("b:1").value == "persisted"

    def test_undecodable_entry_is_dropped(self, persistent_manager: CacheManager, store: MemoryStore) -> None:
        store.persist("test:broken:1", "{not json")

        assert persistent_manager.get("broken:1") is None
        assert store.load("test:broken:1") is None

    def test_invalidate_removes_persisted_copy(self, persistent_manager: CacheManager, store: MemoryStore) -> None:
        persistent_manager.set("k:1", "v", ttl=10, stale_after=5)

        persistent_manager.invalidate("k:1")

        assert store.keys() == []

    def test_invalidate_by_operation_reaches_persisted_only_entries(
        self, persistent_manager: CacheManager, store: MemoryStore, clock: Any
    ) -> None:
        # Written by a previous session, never hydrated into this manager
        other = CacheManager(store=store, namespace="test", clock=clock, observability=ObservabilityAdapter())
        other.set("fetchWallets:aaa", 1, ttl=10, stale_after=5)
        other.set("fetchWalletsArchive:bbb", 2, ttl=10, stale_after=5)
        persistent_manager.set("fetchWallets:ccc", 3, ttl=10, stale_after=5)

        removed = persistent_manager.invalidate_by_operation("fetchWallets")

        assert removed == 2
        assert store.keys() == ["test:fetchWalletsArchive:bbb"]
        assert persistent_manager.get("fetchWallets:aaa") is None

    def test_clear_only_touches_own_namespace(self, persistent_manager: CacheManager, store: MemoryStore) -> None:
        store.persist("someone_else:k:1", "{}")
        persistent_manager.set("k:1", "v", ttl=10, stale_after=5)

        persistent_manager.clear()

        assert store.keys() == ["someone_else:k:1"]


class TestCacheManagerPersistenceFailures:
    """Store failures must never escape the manager."""

    @pytest.fixture
    def reported(self) -> list[PersistenceError]:
        return []

    def _manager(self, store: MemoryStore, clock: Any, obs: ObservabilityAdapter, reported: list) -> CacheManager:
        return CacheManager(store=store, namespace="t", clock=clock, on_persist_error=reported.append, observability=obs)

    def test_persist_failure_is_swallowed_and_reported(
        self, clock: Any, obs: ObservabilityAdapter, reported: list[PersistenceError]
    ) -> None:
        manager = self._manager(FailingStore("persist"), clock, obs, reported)

        entry = manager.set("k:1", "v", ttl=10, stale_after=5)

        assert manager.get("k:1") is entry
        assert len(reported) == 1
        assert reported[0].key == "k:1"
        assert reported[0].operation == "persist"
        assert isinstance(reported[0].cause, OSError)
        assert manager.get_stats()["persist_failures"] == 1
        assert obs.get_counter("cache.persist.failures", tags={"operation": "persist"}) == 1

    def test_unserializable_value_is_a_persist_failure(
        self, store: MemoryStore, clock: Any, obs: ObservabilityAdapter, reported: list[PersistenceError]
    ) -> None:
        manager = self._manager(store, clock, obs, reported)

        manager.set("k:1", object(), ttl=10, stale_after=5)

        assert "k:1" in manager
        assert store.keys() == []
        assert [r.operation for r in reported] == ["persist"]

    @pytest.mark.parametrize("failing", ["load", "remove", "keys", "clear"])
    def test_other_store_failures_are_swallowed(
        self, failing: str, clock: Any, obs: ObservabilityAdapter, reported: list[PersistenceError]
    ) -> None:
        manager = self._manager(FailingStore(failing), clock, obs, reported)
        manager.set("k:1", "v", ttl=10, stale_after=5)

        assert manager.get("absent:1") is None
        manager.invalidate("k:1")
        manager.set("k:2", "v", ttl=10, stale_after=5)
        manager.invalidate_by_operation("k")
        manager.clear()
        manager.load_from_store()

        assert len(manager) == 0
        assert reported
        assert all(r.operation == failing for r in reported)

    def test_failing_callback_is_swallowed(self, clock: Any, obs: ObservabilityAdapter) -> None:
        def explode(error: PersistenceError) -> None:
            raise RuntimeError("callback bug")

        manager = CacheManager(
            store=FailingStore("persist"), namespace="t", clock=clock, on_persist_error=explode, observability=obs
        )

        manager.set("k:1", "v", ttl=10, stale_after=5)

        assert manager.get("k:1").value == "v"
