"""
fincache — Typed Key-Spaces

A KeySpace binds one operation name to a value type and a freshness policy, so
each query family is statically typed while the cache itself stays type-erased.

Values hydrated from a durable store come back as plain JSON data; the key-space
validates them into the declared type with a pydantic TypeAdapter.

Example:
    wallets = KeySpace(coordinator, "fetchWallets", list[Wallet], ttl=86400, stale_after=43200)
    items = await wallets.resolve(lambda: api.fetch_wallets(), include_inactive=False)
    ...
    wallets.invalidate_all()  # after any wallet mutation
"""

from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

from pydantic import TypeAdapter

from .coordinator import ReadThroughCoordinator
from .keys import derive_key

T = TypeVar("T")


class KeySpace(Generic[T]):
    """Typed view of every cache entry belonging to one operation."""

    def __init__(
        self,
        coordinator: ReadThroughCoordinator,
        operation: str,
        value_type: Any,
        ttl: float | None = None,
        stale_after: float | None = None,
    ):
        # Fail fast on a bad operation name
        derive_key(operation)

        self.coordinator = coordinator
        self.operation = operation
        self.ttl = ttl
        self.stale_after = stale_after
        self._adapter: TypeAdapter[T] = TypeAdapter(value_type)

    def key(self, **params: Any) -> str:
        return derive_key(self.operation, params)

    async def resolve(self, fetch: Callable[[], Awaitable[T]], **params: Any) -> T:
        """Resolve through the cache and return the value as the declared type."""
        value = await self.coordinator.resolve(
            self.key(**params),
            fetch,
            ttl=self.ttl,
            stale_after=self.stale_after,
        )
        return self._adapter.validate_python(value)

    def peek(self, **params: Any) -> T | None:
        """Cached value for these parameters, whatever its age, without fetching."""
        entry = self.coordinator.manager.get(self.key(**params))
        if entry is None:
            return None
        return self._adapter.validate_python(entry.value)

    def invalidate(self, **params: Any) -> None:
        self.coordinator.invalidate(self.key(**params))

    def invalidate_all(self) -> int:
        return self.coordinator.invalidate_by_operation(self.operation)

    def __repr__(self) -> str:
        return f"KeySpace(operation={self.operation!r}, ttl={self.ttl}, stale_after={self.stale_after})"
