"""
fincache — Observability Monitoring

In-process metrics collection and structured logging for the cache runtime.
Counters, gauges and histogram summaries live in memory for the process lifetime
and can be read back with get_metrics().
"""

import contextvars
import json
import logging
import threading
import time
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

# Trace ID context variable, carried across awaits within one task
_trace_id_ctx: contextvars.ContextVar[str | None] = contextvars.ContextVar("trace_id", default=None)


def _metric_key(name: str, tags: dict[str, str] | None) -> str:
    if not tags:
        return name
    rendered = ",".join(f"{k}={v}" for k, v in sorted(tags.items()))
    return f"{name}{{{rendered}}}"


@dataclass
class HistogramSummary:
    """Running summary of observed values."""

    count: int = 0
    total: float = 0.0
    min: float = float("inf")
    max: float = float("-inf")

    def observe(self, value: float) -> None:
        self.count += 1
        self.total += value
        self.min = min(self.min, value)
        self.max = max(self.max, value)

    def to_dict(self) -> dict[str, float]:
        return {
            "count": self.count,
            "total": round(self.total, 3),
            "avg": round(self.total / self.count, 3) if self.count else 0.0,
            "min": round(self.min, 3) if self.count else 0.0,
            "max": round(self.max, 3) if self.count else 0.0,
        }


class ObservabilityAdapter:
    """
    Observability adapter for the cache runtime.

    Provides:
    - Metrics (counters, gauges, histograms) kept in memory
    - Trace IDs via context variables
    - Structured events through the standard logging module
    """

    def __init__(self, enable_metrics: bool = True, enable_tracing: bool = True):
        """
        Initialize observability adapter.

        Args:
            enable_metrics: Enable metrics collection
            enable_tracing: Enable span timing in trace()
        """
        self.enable_metrics = enable_metrics
        self.enable_tracing = enable_tracing
        self.logger = logging.getLogger("fincache.observability")

        self._counters: dict[str, float] = {}
        self._gauges: dict[str, float] = {}
        self._histograms: dict[str, HistogramSummary] = {}
        # Refresh tasks and worker threads may record concurrently
        self._lock = threading.Lock()

    def increment(
        self,
        metric: str,
        value: float = 1.0,
        tags: dict[str, str] | None = None,
    ) -> None:
        """
        Increment a counter metric.

        Args:
            metric: Metric name (e.g., "cache.hits")
            value: Value to increment by
            tags: Optional metric tags/labels
        """
        if not self.enable_metrics:
            return

        key = _metric_key(metric, tags)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0.0) + value

    def gauge(
        self,
        metric: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Set a gauge metric."""
        if not self.enable_metrics:
            return

        key = _metric_key(metric, tags)
        with self._lock:
            self._gauges[key] = value

    def histogram(
        self,
        metric: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Record a histogram observation (latencies, sizes, etc.)."""
        if not self.enable_metrics:
            return

        key = _metric_key(metric, tags)
        with self._lock:
            self._histograms.setdefault(key, HistogramSummary()).observe(value)

    def event(self, name: str, payload: dict[str, Any]) -> None:
        """
        Record an event.

        Args:
            name: Event name
            payload: Event data
        """
        self.logger.info(
            "Event: %s",
            name,
            extra={
                "event_name": name,
                "event_payload": payload,
                "trace_id": self.get_trace_id(),
            },
        )

    @contextmanager
    def trace(self, span_name: str, tags: dict[str, str] | None = None) -> Generator[None, None, None]:
        """
        Context manager for timing a span.

        Example:
            with observability.trace("cache.fetch", {"operation": "fetchWallets"}):
                value = await fetch()
        """
        if not self.enable_tracing:
            yield
            return

        start_time = time.perf_counter()
        tags = tags or {}
        outcome = "ok"

        try:
            yield
        except Exception:
            outcome = "error"
            raise
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            self.histogram(f"{span_name}.duration_ms", duration_ms, tags={**tags, "outcome": outcome})
            self.logger.debug(
                "Span completed: %s",
                span_name,
                extra={
                    "span_name": span_name,
                    "trace_id": self.get_trace_id(),
                    "duration_ms": round(duration_ms, 2),
                    "outcome": outcome,
                    "tags": tags,
                },
            )

    def get_trace_id(self) -> str | None:
        """Get current trace ID from context."""
        return _trace_id_ctx.get()

    def set_trace_id(self, trace_id: str) -> None:
        """Set trace ID in context."""
        _trace_id_ctx.set(trace_id)

    def generate_trace_id(self) -> str:
        """Generate a new trace ID and set it in context."""
        trace_id = str(uuid4())
        self.set_trace_id(trace_id)
        return trace_id

    def get_counter(self, metric: str, tags: dict[str, str] | None = None) -> float:
        """Current value of one counter (0 when never incremented)."""
        with self._lock:
            return self._counters.get(_metric_key(metric, tags), 0.0)

    def get_metrics(self) -> dict[str, Any]:
        """Snapshot of every recorded metric."""
        with self._lock:
            return {
                "counters": dict(self._counters),
                "gauges": dict(self._gauges),
                "histograms": {k: v.to_dict() for k, v in self._histograms.items()},
            }

    def reset(self) -> None:
        """Drop all recorded metrics (testing/reset)."""
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._histograms.clear()


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    _RESERVED = frozenset(
        (
            "args",
            "msg",
            "levelname",
            "levelno",
            "pathname",
            "filename",
            "module",
            "exc_info",
            "exc_text",
            "stack_info",
            "lineno",
            "funcName",
            "created",
            "msecs",
            "relativeCreated",
            "thread",
            "threadName",
            "processName",
            "process",
            "taskName",
            "name",
            "message",
        )
    )

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        trace_id = _trace_id_ctx.get()
        if trace_id:
            log_data["trace_id"] = trace_id

        # Structured fields passed through extra=
        for key, value in record.__dict__.items():
            if key not in log_data and not key.startswith("_") and key not in self._RESERVED:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def configure_logging(level: str = "INFO", json_logs: bool = False) -> logging.Logger:
    """
    Configure the "fincache" logger hierarchy.

    Args:
        level: Log level name
        json_logs: Use JSONFormatter instead of a plain text format

    Returns:
        The configured package logger
    """
    logger = logging.getLogger("fincache")
    logger.handlers.clear()

    handler = logging.StreamHandler()
    if json_logs:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level)

    return logger


# Global observability adapter instance
_observability_adapter: ObservabilityAdapter | None = None


def get_observability() -> ObservabilityAdapter:
    """
    Get the global observability adapter instance.

    Components accept an explicit adapter; this is the fallback they use when none is given.

    Returns:
        Global ObservabilityAdapter instance
    """
    global _observability_adapter

    if _observability_adapter is None:
        from ..config import get_config

        config = get_config().observability
        _observability_adapter = ObservabilityAdapter(enable_metrics=config.enable_metrics)

    return _observability_adapter


def initialize_observability(
    enable_metrics: bool = True,
    enable_tracing: bool = True,
) -> ObservabilityAdapter:
    """
    Initialize the global observability adapter.

    Args:
        enable_metrics: Enable metrics collection
        enable_tracing: Enable span timing

    Returns:
        Initialized ObservabilityAdapter instance
    """
    global _observability_adapter

    _observability_adapter = ObservabilityAdapter(
        enable_metrics=enable_metrics,
        enable_tracing=enable_tracing,
    )

    return _observability_adapter
