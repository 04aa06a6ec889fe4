"""
fincache — JSON File Store

Stores each persisted cache entry as its own file under a root directory.
File names are the URL-quoted store key, so keys round-trip exactly through
directory listings.
"""

import logging
import os
import tempfile
from pathlib import Path
from urllib.parse import quote, unquote

from .interface import DurableStore

logger = logging.getLogger(__name__)

_SUFFIX = ".json"


class JsonFileStore(DurableStore):
    """File-based durable store using one JSON file per entry."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).expanduser()
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def persist(self, key: str, serialized: str, ttl: float | None = None) -> None:
        path = self._entry_path(key)
        # One temp file per write, so concurrent writers of a key never share one
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=self._root, prefix=".", suffix=".tmp", delete=False
        ) as tmp:
            tmp.write(serialized)
        try:
            # Readers never observe a half-written entry
            os.replace(tmp.name, path)
        except OSError:
            Path(tmp.name).unlink(missing_ok=True)
            raise

    def load(self, key: str) -> str | None:
        path = self._entry_path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def remove(self, key: str) -> bool:
        path = self._entry_path(key)
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False

    def keys(self, prefix: str = "") -> list[str]:
        if not self._root.is_dir():
            return []

        found: list[str] = []
        for path in self._root.glob(f"*{_SUFFIX}"):
            key = unquote(path.name[: -len(_SUFFIX)])
            if key.startswith(prefix):
                found.append(key)
        return sorted(found)

    def _entry_path(self, key: str) -> Path:
        """Return file path for a store key."""
        return self._root / f"{quote(key, safe='')}{_SUFFIX}"
