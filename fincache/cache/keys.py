"""
fincache — Cache Key Derivation

Maps an operation name plus a parameter mapping to a stable cache key.

Keys look like ``fetchWallets:3f0c...``. The operation name stays a literal
prefix so every variant of one query can be invalidated without a reverse index,
while the parameters are canonicalized (sorted keys at every level) and hashed
to a fixed length.
"""

import hashlib
import json
import math
from collections.abc import Mapping
from datetime import date
from enum import Enum
from typing import Any

from ..errors import UnserializableParameterError

KEY_SEPARATOR = ":"
DIGEST_SIZE = 16  # bytes -> 32 hex chars


def _canonicalize(operation: str, value: Any, path: str) -> Any:
    """Return a JSON-ready copy of ``value`` or raise for anything not canonical."""
    # bool is checked with the other primitives; json keeps true and 1 distinct
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise UnserializableParameterError(operation, path, value)
        # 1.0 == 1, so both must render as 1
        if value.is_integer():
            return int(value)
        return value
    if isinstance(value, Enum):
        return _canonicalize(operation, value.value, path)
    if isinstance(value, date):
        # datetime is a date subclass; both render as ISO-8601
        return value.isoformat()
    if isinstance(value, Mapping):
        result = {}
        for k, v in value.items():
            if not isinstance(k, str):
                raise UnserializableParameterError(operation, f"{path}.<key {k!r}>", k)
            result[k] = _canonicalize(operation, v, f"{path}.{k}")
        return result
    if isinstance(value, (list, tuple)):
        return [_canonicalize(operation, v, f"{path}[{i}]") for i, v in enumerate(value)]
    raise UnserializableParameterError(operation, path, value)


def canonical_params(operation: str, params: Mapping[str, Any] | None) -> str:
    """
    Serialize parameters to their canonical JSON form.

    Raises:
        UnserializableParameterError: If any value cannot be canonicalized
    """
    normalized = _canonicalize(operation, dict(params or {}), "params")
    return json.dumps(normalized, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def derive_key(operation: str, params: Mapping[str, Any] | None = None) -> str:
    """
    Derive the cache key for one logical query.

    Args:
        operation: Logical query name, e.g. "fetchWallets"
        params: Query parameters (primitives, dates, enums, nested mappings/sequences)

    Returns:
        ``"<operation>:<32 hex chars>"``

    Raises:
        ValueError: If operation is empty or contains the key separator
        UnserializableParameterError: If a parameter cannot be canonicalized

    Example:
        >>> derive_key("fetchWallets", {"a": 1, "b": 2}) == derive_key("fetchWallets", {"b": 2, "a": 1})
        True
    """
    if not operation:
        raise ValueError("operation must be a non-empty string")
    if KEY_SEPARATOR in operation:
        raise ValueError(f"operation must not contain '{KEY_SEPARATOR}': {operation!r}")

    canonical = canonical_params(operation, params)
    digest = hashlib.blake2b(
        f"{operation}{KEY_SEPARATOR}{canonical}".encode(),
        digest_size=DIGEST_SIZE,
    ).hexdigest()
    return f"{operation}{KEY_SEPARATOR}{digest}"


def operation_of(key: str) -> str:
    """Return the invalidation tag (operation name) of a key."""
    return key.split(KEY_SEPARATOR, 1)[0]


def matches_operation(key: str, operation: str) -> bool:
    """True when ``key`` belongs to ``operation`` (exact or ``operation:`` prefix)."""
    return key == operation or key.startswith(operation + KEY_SEPARATOR)
