"""
fincache — Observability Module

Metrics, span timing and structured logging for the cache runtime.

Usage:
    from fincache.observability import get_observability

    obs = get_observability()
    obs.increment("cache.hits")

    with obs.trace("cache.fetch"):
        # timed code here
        pass
"""

from .monitoring import (
    JSONFormatter,
    ObservabilityAdapter,
    configure_logging,
    get_observability,
    initialize_observability,
)

__all__ = [
    "ObservabilityAdapter",
    "JSONFormatter",
    "configure_logging",
    "get_observability",
    "initialize_observability",
]
