"""
fincache — Cache Factory

Builds stores, cache managers and coordinators from configuration.

Key points:
- Components can always be constructed directly and injected; the named registry
  here is a convenience for applications that want one coordinator per user/session
- Durable store selected with CACHE_STORE=none|memory|json|redis
  - Defaults to redis when REDIS_URL is set, otherwise none (memory only)
  - When redis is selected, the redis client must be installed
- All configuration is typed and validated via Pydantic models

Examples:
    from fincache.cache.factory import create_coordinator

    coordinator = create_coordinator()

    from fincache.config import CacheConfig, StoreBackend
    cfg = CacheConfig(store=StoreBackend.JSON, store_path="/tmp/cache", namespace="user_42")
    user_cache = create_coordinator(cfg, name="user_42")
"""

from __future__ import annotations

import logging

from ..config import CacheConfig, StoreBackend, get_config
from ..errors import ConfigurationError
from ..observability.monitoring import ObservabilityAdapter
from .coordinator import ReadThroughCoordinator
from .manager import CacheManager, PersistErrorCallback
from .stores import DurableStore, JsonFileStore, MemoryStore

logger = logging.getLogger(__name__)

# Named coordinator registry
_cache_instances: dict[str, ReadThroughCoordinator] = {}


def _create_redis_store(config: CacheConfig) -> DurableStore:
    """Internal helper to construct a redis store with lazy import."""
    if not config.redis_url:
        raise ConfigurationError(
            "REDIS_URL must be set when CACHE_STORE=redis",
            details={"env": "REDIS_URL", "store": "redis"},
        )

    # Lazy import to avoid hard dependency when no redis store is used
    try:
        from .stores.redis import RedisStore
    except ImportError as e:
        logger.error(
            "Redis store selected but redis client is not installed",
            extra={"package": "redis>=5.0.0", "error": str(e)},
        )
        raise ConfigurationError(
            "Redis store selected but redis client is unavailable. Install with: pip install 'redis>=5.0.0'.",
            details={"package": "redis>=5.0.0", "error": str(e), "store": "redis"},
        ) from e

    return RedisStore(
        redis_url=config.redis_url,
        socket_timeout=config.redis_socket_timeout,
        expiry_grace_seconds=config.redis_expiry_grace_seconds,
    )


def create_store(config: CacheConfig) -> DurableStore | None:
    """
    Create the durable store described by the configuration.

    Returns:
        A store, or None for memory-only caching

    Raises:
        ConfigurationError: If the store is unknown or cannot be created
    """
    store = StoreBackend(config.store)

    if store == StoreBackend.NONE:
        return None
    if store == StoreBackend.MEMORY:
        return MemoryStore()
    if store == StoreBackend.JSON:
        if not config.store_path:
            raise ConfigurationError("CACHE_STORE_PATH must be set when CACHE_STORE=json", details={"store": "json"})
        try:
            return JsonFileStore(config.store_path)
        except OSError as e:
            raise ConfigurationError(
                f"Cannot use cache directory {config.store_path}: {e}",
                details={"store": "json", "path": config.store_path, "error": str(e)},
            ) from e
    if store == StoreBackend.REDIS:
        return _create_redis_store(config)

    raise ConfigurationError(  # pragma: no cover - StoreBackend() rejects unknown values
        f"Unknown cache store: {config.store}",
        details={"store": str(config.store), "supported": [s.value for s in StoreBackend]},
    )


def create_cache_manager(
    config: CacheConfig | None = None,
    on_persist_error: PersistErrorCallback | None = None,
    observability: ObservabilityAdapter | None = None,
) -> CacheManager:
    """Create a standalone CacheManager (not registered)."""
    if config is None:
        config = get_config().cache

    return CacheManager(
        store=create_store(config),
        namespace=config.namespace,
        max_size=config.max_size,
        on_persist_error=on_persist_error,
        observability=observability,
    )


def create_coordinator(
    config: CacheConfig | None = None,
    name: str = "default",
    on_persist_error: PersistErrorCallback | None = None,
    observability: ObservabilityAdapter | None = None,
    warm: bool = True,
) -> ReadThroughCoordinator:
    """
    Create (or return the registered) coordinator for ``name``.

    Args:
        config: Cache configuration (uses global config if not provided)
        name: Registry name, e.g. one per signed-in user
        on_persist_error: Callback for durable store failures
        observability: Metrics adapter
        warm: Load persisted entries into memory on creation

    Returns:
        Configured ReadThroughCoordinator

    Raises:
        ConfigurationError: If cache configuration is invalid or the store unavailable
    """
    if name in _cache_instances:
        logger.debug("Returning existing cache instance: %s", name)
        return _cache_instances[name]

    if config is None:
        config = get_config().cache

    logger.info(
        "Creating cache instance '%s' with store: %s",
        name,
        config.store,
        extra={"cache_name": name, "store": str(config.store), "namespace": config.namespace},
    )

    try:
        manager = create_cache_manager(config, on_persist_error=on_persist_error, observability=observability)
        coordinator = ReadThroughCoordinator(
            manager,
            default_ttl=config.default_ttl_seconds,
            stale_ratio=config.stale_ratio,
            observability=observability,
        )
    except ConfigurationError:
        raise
    except Exception as e:
        logger.error(
            "Unexpected error creating cache instance '%s': %s",
            name,
            e,
            extra={"cache_name": name, "store": str(config.store), "error": str(e)},
            exc_info=True,
        )
        raise ConfigurationError(
            f"Failed to create cache instance '{name}': {e}",
            details={"cache_name": name, "store": str(config.store), "error": str(e)},
        ) from e

    if warm:
        manager.load_from_store()

    _cache_instances[name] = coordinator
    return coordinator


def get_coordinator(name: str = "default") -> ReadThroughCoordinator:
    """
    Get a registered coordinator, creating it from the global configuration if needed.
    """
    if name not in _cache_instances:
        logger.debug("Cache instance '%s' not found, creating new instance", name)
        return create_coordinator(name=name)

    return _cache_instances[name]


async def close_all_caches() -> None:
    """
    Close every registered coordinator and release resources.

    Call during graceful shutdown so background refreshes settle and stores close.
    """
    if not _cache_instances:
        logger.debug("No cache instances to close")
        return

    logger.info("Closing %d cache instance(s)...", len(_cache_instances))

    for name, coordinator in list(_cache_instances.items()):
        try:
            await coordinator.close()
            logger.info("Closed cache instance: %s", name)
        except Exception as e:
            logger.error(
                "Error closing cache instance '%s': %s",
                name,
                e,
                extra={"cache_name": name, "error": str(e)},
                exc_info=True,
            )

    _cache_instances.clear()


def reset_cache_factory() -> None:
    """
    Drop all registry references without closing them.

    Warning: Only use this in testing contexts; use close_all_caches() for cleanup.
    """
    count = len(_cache_instances)
    _cache_instances.clear()
    logger.debug("Reset cache factory, cleared %d instance reference(s)", count)


def list_cache_instances() -> list[str]:
    """List all registered cache instance names."""
    return list(_cache_instances.keys())
