"""
fincache — Durable Stores

Exports available durable store implementations.

The Redis store is lazy-loaded via the cache factory to avoid import overhead.
"""

from .interface import DurableStore
from .json_file import JsonFileStore
from .memory import MemoryStore

__all__ = [
    "DurableStore",
    "JsonFileStore",
    "MemoryStore",
]
