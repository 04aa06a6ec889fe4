"""
fincache — Cache Module

Read-through caching with TTL expiry, stale-while-refresh and invalidation.

- keys.py: key derivation from an operation name plus parameters
- manager.py: CacheManager, the sole owner of cache entries
- coordinator.py: ReadThroughCoordinator, the cache-first-with-refresh protocol
- keyspace.py: typed per-operation views over the coordinator
- stores/: durable stores for cross-session persistence
- factory.py: construction from configuration

Usage:
    from fincache.cache import CacheManager, ReadThroughCoordinator, derive_key

    coordinator = ReadThroughCoordinator(CacheManager())
    key = derive_key("fetchWallets", {"include_inactive": False})
    wallets = await coordinator.resolve(key, fetch_wallets, ttl=3600, stale_after=1800)
    coordinator.invalidate_by_operation("fetchWallets")
"""

from .coordinator import ReadThroughCoordinator
from .entry import CacheEntry
from .factory import (
    close_all_caches,
    create_cache_manager,
    create_coordinator,
    create_store,
    get_coordinator,
    list_cache_instances,
    reset_cache_factory,
)
from .keys import derive_key, matches_operation, operation_of
from .keyspace import KeySpace
from .manager import CacheManager
from .stores import DurableStore, JsonFileStore, MemoryStore

__all__ = [
    # Core components
    "CacheEntry",
    "CacheManager",
    "ReadThroughCoordinator",
    "KeySpace",
    # Key derivation
    "derive_key",
    "operation_of",
    "matches_operation",
    # Stores
    "DurableStore",
    "MemoryStore",
    "JsonFileStore",
    # Factory functions
    "create_store",
    "create_cache_manager",
    "create_coordinator",
    "get_coordinator",
    "close_all_caches",
    "list_cache_instances",
    "reset_cache_factory",
]
