"""
fincache — Cache Entry

The stored unit of the cache: a payload plus the timestamps that decide
whether it is fresh, stale (serve and refresh in background) or expired.
"""

import json
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic_core import to_jsonable_python

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """
    Cached value with its freshness metadata.

    Attributes:
        value: Cached payload, opaque to the cache
        stored_at: Epoch seconds when the value was written
        ttl: Seconds after which the entry is expired and unusable
        stale_after: Seconds (<= ttl) after which the entry should be refreshed
    """

    value: T
    stored_at: float
    ttl: float
    stale_after: float

    def age(self, now: float) -> float:
        return now - self.stored_at

    def is_expired(self, now: float) -> bool:
        return self.age(now) > self.ttl

    def is_stale(self, now: float) -> bool:
        return self.age(now) > self.stale_after

    def is_fresh(self, now: float) -> bool:
        return not self.is_stale(now)

    def to_json(self) -> str:
        """Serialize for a durable store. Pydantic models, dataclasses and datetimes are encoded as JSON data."""
        return json.dumps(
            {
                "value": to_jsonable_python(self.value),
                "stored_at": self.stored_at,
                "ttl": self.ttl,
                "stale_after": self.stale_after,
            },
            ensure_ascii=False,
            separators=(",", ":"),
        )

    @classmethod
    def from_json(cls, data: str | bytes) -> "CacheEntry[Any]":
        """
        Rebuild an entry from its persisted form.

        Raises:
            ValueError: If the data is not a well-formed persisted entry
        """
        try:
            parsed = json.loads(data)
            return cls(
                value=parsed["value"],
                stored_at=float(parsed["stored_at"]),
                ttl=float(parsed["ttl"]),
                stale_after=float(parsed["stale_after"]),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed persisted cache entry: {e}") from e


def validate_durations(ttl: float, stale_after: float) -> None:
    """
    Check the freshness window of an entry.

    Raises:
        ValueError: Unless 0 < stale_after <= ttl
    """
    if ttl <= 0:
        raise ValueError(f"ttl must be positive, got {ttl}")
    if stale_after <= 0:
        raise ValueError(f"stale_after must be positive, got {stale_after}")
    if stale_after > ttl:
        raise ValueError(f"stale_after ({stale_after}) must not exceed ttl ({ttl})")
