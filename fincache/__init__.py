"""
fincache — client-side read-through cache for personal-finance data.

Wallets, categories, preferences and transaction stats are read through a
cache that serves stale data while refreshing it in the background, and is
invalidated by the mutations that change it.
"""

from .cache import (
    CacheEntry,
    CacheManager,
    KeySpace,
    ReadThroughCoordinator,
    derive_key,
)
from .errors import (
    FetchFailedError,
    FinCacheError,
    UnserializableParameterError,
)

__version__ = "0.1.0"

__all__ = [
    "CacheEntry",
    "CacheManager",
    "KeySpace",
    "ReadThroughCoordinator",
    "derive_key",
    "FinCacheError",
    "FetchFailedError",
    "UnserializableParameterError",
    "__version__",
]
