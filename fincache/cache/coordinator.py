"""
fincache — Read-Through Coordinator

Implements "cache-first with refresh", the protocol every read goes through:

    entry state                 action                                   returns
    absent                      await fetch(), store it                  fresh value
    fresh                       nothing                                  cached value
    stale (not expired)         start one background refresh             cached value
    expired                     await fetch(); on failure fall back      fresh or expired value

Single-flight:
- at most one background refresh per key; its marker is recorded before the
  first suspension point and cleared only once the refresh has settled
- concurrent foreground loads of one key share a single fetch
- a fetch already in flight when its key is invalidated does not cache its result

Usage:
    coordinator = ReadThroughCoordinator(CacheManager())
    key = derive_key("fetchWallets", {"include_inactive": False})
    wallets = await coordinator.resolve(key, lambda: api.fetch_wallets(False), ttl=86400, stale_after=43200)
"""

import asyncio
import functools
import inspect
import logging
import re
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

from ..errors import FetchFailedError
from ..observability.monitoring import ObservabilityAdapter, get_observability
from .entry import validate_durations
from .keys import derive_key, matches_operation, operation_of
from .manager import CacheManager

logger = logging.getLogger(__name__)

T = TypeVar("T")

Fetch = Callable[[], Awaitable[T]]


class ReadThroughCoordinator:
    """
    Decides, per read, whether to serve cached data, fetch, or refresh in background.

    The coordinator holds no cached data itself; every entry lives in the
    CacheManager it was given.
    """

    def __init__(
        self,
        manager: CacheManager,
        default_ttl: float = 300.0,
        stale_ratio: float = 0.5,
        observability: ObservabilityAdapter | None = None,
    ):
        """
        Initialize the coordinator.

        Args:
            manager: Cache manager owning the entries
            default_ttl: TTL in seconds when resolve() gets none
            stale_ratio: Default stale_after as a fraction of the TTL
            observability: Metrics adapter (defaults to the global one)
        """
        if not 0 < stale_ratio <= 1:
            raise ValueError("stale_ratio must be in (0, 1]")
        validate_durations(default_ttl, default_ttl * stale_ratio)

        self.manager = manager
        self.default_ttl = default_ttl
        self.stale_ratio = stale_ratio
        self._obs = observability or get_observability()

        # RefreshState: key -> in-flight background refresh
        self._refreshing: dict[str, asyncio.Task[None]] = {}
        # key -> in-flight foreground load shared by concurrent callers
        self._loading: dict[str, asyncio.Task[Any]] = {}
        # key -> invalidation generation, tracked while any fetch for the key is in flight
        self._generations: dict[str, int] = {}
        self._in_flight: dict[str, int] = {}

    def _durations(self, ttl: float | None, stale_after: float | None) -> tuple[float, float]:
        ttl = self.default_ttl if ttl is None else ttl
        if stale_after is None:
            stale_after = ttl * self.stale_ratio
        validate_durations(ttl, stale_after)
        return ttl, stale_after

    async def resolve(
        self,
        key: str,
        fetch: Fetch[T],
        ttl: float | None = None,
        stale_after: float | None = None,
    ) -> T:
        """
        Return data for ``key``, fetching or refreshing as the entry's age requires.

        Args:
            key: Cache key (usually from derive_key)
            fetch: Zero-argument coroutine function performing the real backend call
            ttl: TTL for the entry written after a fetch
            stale_after: Staleness threshold for that entry (defaults to ttl * stale_ratio)

        Returns:
            Fresh, cached, or (after a failed fetch) expired data

        Raises:
            FetchFailedError: If fetch failed and nothing cached could be served
            ValueError: Unless 0 < stale_after <= ttl
        """
        ttl, stale_after = self._durations(ttl, stale_after)
        tags = {"operation": operation_of(key)}

        entry = self.manager.get(key)
        if entry is None:
            self._obs.increment("cache.misses", tags=tags)
            logger.debug("Cache miss for '%s', fetching", key, extra={"key": key})
            return await self._load(key, fetch, ttl, stale_after)

        now = self.manager.now()
        if entry.is_expired(now):
            self._obs.increment("cache.expired_hits", tags=tags)
            logger.debug(
                "Cache entry '%s' expired %.1fs ago, fetching",
                key,
                entry.age(now) - entry.ttl,
                extra={"key": key},
            )
            return await self._load(key, fetch, ttl, stale_after)

        if entry.is_stale(now):
            self._obs.increment("cache.stale_hits", tags=tags)
            self._schedule_refresh(key, fetch, ttl, stale_after)
        else:
            self._obs.increment("cache.hits", tags=tags)

        return entry.value

    # ------------ Foreground loads ------------

    async def _fetch_and_store(self, key: str, fetch: Fetch[T], ttl: float, stale_after: float, generation: int) -> T:
        tags = {"operation": operation_of(key)}
        with self._obs.trace("cache.fetch", tags=tags):
            value = await fetch()

        # An invalidation while the fetch was in flight makes its result outdated
        if self._generations.get(key, 0) != generation:
            self._obs.increment("cache.fetch.superseded", tags=tags)
            logger.debug("Not caching '%s': invalidated during fetch", key, extra={"key": key})
            return value

        self.manager.set(key, value, ttl, stale_after)
        return value

    async def _load(self, key: str, fetch: Fetch[T], ttl: float, stale_after: float) -> T:
        task = self._loading.get(key)
        if task is None:
            generation = self._track(key)
            task = asyncio.create_task(self._fetch_and_store(key, fetch, ttl, stale_after, generation))
            self._loading[key] = task
            task.add_done_callback(functools.partial(self._forget, self._loading, key))
        else:
            logger.debug("Joining in-flight fetch for '%s'", key, extra={"key": key})

        try:
            # shield: one caller being cancelled must not cancel the fetch for the others
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return self._fallback(key, e)

    def _fallback(self, key: str, error: Exception) -> Any:
        """Serve whatever is still cached (typically an expired entry) or raise FetchFailedError."""
        entry = self.manager.get(key)
        if entry is None:
            logger.warning(
                "Fetch failed for '%s' and nothing is cached: %s",
                key,
                error,
                extra={"key": key, "error": str(error)},
            )
            raise FetchFailedError(key, error) from error

        self._obs.increment("cache.fetch.fallback", tags={"operation": operation_of(key)})
        logger.warning(
            "Fetch failed for '%s', serving cached value aged %.1fs: %s",
            key,
            entry.age(self.manager.now()),
            error,
            extra={"key": key, "error": str(error)},
        )
        return entry.value

    # ------------ Background refresh ------------

    def _schedule_refresh(self, key: str, fetch: Fetch[Any], ttl: float, stale_after: float) -> None:
        if key in self._refreshing or key in self._loading:
            self._obs.increment("cache.refresh.skipped", tags={"operation": operation_of(key)})
            return

        # No await between the check above and recording the marker
        generation = self._track(key)
        task = asyncio.create_task(self._refresh(key, fetch, ttl, stale_after, generation))
        self._refreshing[key] = task
        task.add_done_callback(functools.partial(self._forget, self._refreshing, key))
        self._obs.increment("cache.refresh.started", tags={"operation": operation_of(key)})
        logger.debug("Started background refresh for '%s'", key, extra={"key": key})

    async def _refresh(self, key: str, fetch: Fetch[Any], ttl: float, stale_after: float, generation: int) -> None:
        tags = {"operation": operation_of(key)}
        try:
            await self._fetch_and_store(key, fetch, ttl, stale_after, generation)
        except Exception as e:
            # The stale entry stays; the next stale read tries again
            self._obs.increment("cache.refresh.failed", tags=tags)
            logger.warning(
                "Background refresh failed for '%s': %s",
                key,
                e,
                extra={"key": key, "error": str(e)},
            )
            return
        self._obs.increment("cache.refresh.succeeded", tags=tags)

    def _track(self, key: str) -> int:
        """Count a new fetch for key and return the generation it starts in."""
        self._in_flight[key] = self._in_flight.get(key, 0) + 1
        return self._generations.get(key, 0)

    def _forget(self, registry: dict[str, asyncio.Task[Any]], key: str, task: asyncio.Task[Any]) -> None:
        if registry.get(key) is task:
            del registry[key]
        remaining = self._in_flight.pop(key, 1) - 1
        if remaining:
            self._in_flight[key] = remaining
        else:
            self._generations.pop(key, None)
        # Mark the outcome as retrieved when every waiter was cancelled
        if not task.cancelled():
            task.exception()

    def refreshing(self, key: str) -> bool:
        """True while a background refresh for ``key`` is in flight."""
        return key in self._refreshing

    def pending_refreshes(self) -> list[str]:
        return list(self._refreshing)

    async def wait_for_refreshes(self) -> None:
        """Wait until every background refresh scheduled so far has settled."""
        while self._refreshing:
            await asyncio.gather(*list(self._refreshing.values()), return_exceptions=True)

    # ------------ Invalidation ------------

    def _supersede_in_flight(self, predicate: Callable[[str], bool]) -> None:
        """
        Keep fetches already in flight for matching keys from caching their results.

        Foreground loads are also detached, so the next read starts a new fetch
        instead of joining one that began before the invalidation.
        """
        for key in list(self._in_flight):
            if predicate(key):
                self._generations[key] = self._generations.get(key, 0) + 1
                self._loading.pop(key, None)

    def invalidate(self, key: str) -> None:
        self._supersede_in_flight(lambda k: k == key)
        self.manager.invalidate(key)

    def invalidate_by_operation(self, operation: str) -> int:
        self._supersede_in_flight(lambda k: matches_operation(k, operation))
        return self.manager.invalidate_by_operation(operation)

    def invalidate_matching(self, pattern: str | re.Pattern[str]) -> int:
        compiled = re.compile(pattern) if isinstance(pattern, str) else pattern
        self._supersede_in_flight(lambda k: compiled.search(k) is not None)
        return self.manager.invalidate_matching(compiled)

    def clear(self) -> None:
        """Clear every entry. In-flight refreshes still complete and may recreate their entry."""
        self.manager.clear()

    async def close(self) -> None:
        """Let background refreshes settle, then close the manager's store."""
        await self.wait_for_refreshes()
        self.manager.close()

    # ------------ Decorator ------------

    def cached(
        self,
        operation: str | None = None,
        *,
        ttl: float | None = None,
        stale_after: float | None = None,
        key_params: Callable[..., Mapping[str, Any]] | None = None,
    ) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
        """
        Decorator routing an async function through resolve().

        Bound arguments (except ``self``/``cls`` and arguments that are None) become
        the key parameters. ``key_params``, when given, is called with the same arguments
        and returns the key parameters instead, e.g. to scope a method by an attribute
        of ``self``. The wrapper gets ``invalidate_all()`` and ``cache_key(...)``.

        Example:
            @coordinator.cached("fetchWallets", ttl=86400, stale_after=43200)
            async def fetch_wallets(include_inactive: bool = False) -> list[dict]:
                ...
        """

        def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
            op = operation or func.__name__
            signature = inspect.signature(func)

            def cache_key(*args: Any, **kwargs: Any) -> str:
                if key_params is not None:
                    return derive_key(op, key_params(*args, **kwargs))
                bound = signature.bind(*args, **kwargs)
                bound.apply_defaults()
                params = {
                    name: value
                    for name, value in bound.arguments.items()
                    if name not in ("self", "cls") and value is not None
                }
                return derive_key(op, params)

            @functools.wraps(func)
            async def wrapper(*args: Any, **kwargs: Any) -> T:
                return await self.resolve(
                    cache_key(*args, **kwargs),
                    lambda: func(*args, **kwargs),
                    ttl=ttl,
                    stale_after=stale_after,
                )

            wrapper.cache_key = cache_key  # type: ignore[attr-defined]
            wrapper.invalidate_all = lambda: self.invalidate_by_operation(op)  # type: ignore[attr-defined]
            return wrapper

        return decorator
