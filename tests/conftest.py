"""
fincache — Test Configuration and Shared Fixtures

Provides pytest configuration and shared fixtures for unit and integration tests:
a controllable clock, recording fetch functions and isolated cache components.
"""

import asyncio
import os
from collections.abc import Generator
from typing import Any

import pytest

from fincache.cache.coordinator import ReadThroughCoordinator
from fincache.cache.manager import CacheManager
from fincache.cache.stores import MemoryStore
from fincache.observability.monitoring import ObservabilityAdapter

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "DEBUG"


class FakeClock:
    """Simulated epoch clock; advance() moves time forward."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingFetcher:
    """
    Async fetch function returning scripted results.

    Results are consumed in order (the last one repeats). An exception instance
    in the script is raised instead of returned. When a gate is set, every call
    blocks until the gate opens.
    """

    def __init__(self, *results: Any) -> None:
        self.results = list(results) or [None]
        self.calls = 0
        self.gate: asyncio.Event | None = None

    async def __call__(self) -> Any:
        self.calls += 1
        result = self.results[min(self.calls, len(self.results)) - 1]
        if self.gate is not None:
            await self.gate.wait()
        if isinstance(result, BaseException):
            raise result
        return result

    def hold(self) -> asyncio.Event:
        """Make subsequent calls wait until the returned event is set."""
        self.gate = asyncio.Event()
        return self.gate


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_fetcher() -> type[RecordingFetcher]:
    return RecordingFetcher


@pytest.fixture
def obs() -> ObservabilityAdapter:
    """Isolated metrics adapter per test."""
    return ObservabilityAdapter(enable_metrics=True, enable_tracing=True)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def manager(clock: FakeClock, obs: ObservabilityAdapter) -> CacheManager:
    """Memory-only cache manager on the fake clock."""
    return CacheManager(namespace="test", max_size=100, clock=clock, observability=obs)


@pytest.fixture
def persistent_manager(clock: FakeClock, obs: ObservabilityAdapter, store: MemoryStore) -> CacheManager:
    """Cache manager persisting to an in-process store."""
    return CacheManager(store=store, namespace="test", max_size=100, clock=clock, observability=obs)


@pytest.fixture
def coordinator(manager: CacheManager, obs: ObservabilityAdapter) -> ReadThroughCoordinator:
    return ReadThroughCoordinator(manager, default_ttl=3600, stale_ratio=0.5, observability=obs)


@pytest.fixture
def test_redis_url() -> str:
    """Get Redis URL for testing (database 15 for isolation)."""
    return os.environ.get("TEST_REDIS_URL", "redis://localhost:6379/15")


@pytest.fixture(autouse=True)
def reset_cache_factory() -> Generator[None, None, None]:
    """Reset cache factory after each test to prevent state leakage."""
    yield
    from fincache.cache.factory import reset_cache_factory

    reset_cache_factory()


CONFIG_ENV_VARS = (
    "CACHE_NAMESPACE",
    "CACHE_DEFAULT_TTL_SECONDS",
    "CACHE_STALE_RATIO",
    "CACHE_MAX_SIZE",
    "CACHE_STORE",
    "CACHE_STORE_PATH",
    "REDIS_URL",
    "REDIS_SOCKET_TIMEOUT",
    "REDIS_EXPIRY_GRACE_SECONDS",
    "ENABLE_METRICS",
    "JSON_LOGS",
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Any) -> None:
    """Unset cache configuration variables and run from a directory without a .env file."""
    for name in CONFIG_ENV_VARS:
        # setenv first so monkeypatch also undoes values a test loads from a .env file
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def mock_env_memory(clean_env: None, monkeypatch: pytest.MonkeyPatch) -> None:
    """Set environment variables for the in-process store."""
    monkeypatch.setenv("CACHE_STORE", "memory")
    monkeypatch.setenv("CACHE_MAX_SIZE", "100")
    monkeypatch.setenv("CACHE_DEFAULT_TTL_SECONDS", "3600")
    monkeypatch.setenv("CACHE_NAMESPACE", "test")


@pytest.fixture(autouse=True)
def reset_config() -> Generator[None, None, None]:
    """Drop the loaded configuration after each test."""
    yield
    from fincache.config import loader

    loader._config_instance = None
