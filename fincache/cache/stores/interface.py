"""
fincache — Durable Store Interface

Defines the abstract interface for stores that persist cache entries across sessions.

Stores hold serialized entries only; they know nothing about TTLs or staleness.
Every method may raise: the cache manager treats persistence as best-effort and
swallows (and reports) store failures.
"""

from abc import ABC, abstractmethod


class DurableStore(ABC):
    """
    Abstract base class for durable key-value stores.

    All store implementations must implement this interface so the cache manager
    can persist to memory, local files or Redis interchangeably.
    """

    @abstractmethod
    def persist(self, key: str, serialized: str, ttl: float | None = None) -> None:
        """
        Write a serialized entry.

        Args:
            key: Fully namespaced store key
            serialized: Serialized cache entry
            ttl: Entry TTL in seconds, for stores that can expire data themselves
        """

    @abstractmethod
    def load(self, key: str) -> str | None:
        """
        Read a serialized entry.

        Returns:
            The serialized entry, or None if absent
        """

    @abstractmethod
    def remove(self, key: str) -> bool:
        """
        Delete an entry.

        Returns:
            True if the key existed
        """

    @abstractmethod
    def keys(self, prefix: str = "") -> list[str]:
        """
        List stored keys.

        Args:
            prefix: Only return keys starting with this prefix
        """

    def clear(self, prefix: str = "") -> int:
        """
        Delete every key with the given prefix.

        Default implementation removes keys one by one.
        Stores can override for better performance.

        Returns:
            Number of keys removed
        """
        count = 0
        for key in self.keys(prefix):
            if self.remove(key):
                count += 1
        return count

    def close(self) -> None:
        """Release resources held by the store."""
