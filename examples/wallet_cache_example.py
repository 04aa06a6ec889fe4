"""
Wallet Cache Usage Example

Demonstrates how a personal-finance client reads through fincache.

This example shows:
- Creating a per-user coordinator from configuration
- Typed key-spaces for wallets
- The cached() decorator for category lookups
- Invalidating after a mutation
- Persisting across sessions with the JSON file store
"""

import asyncio
import logging
import tempfile
from decimal import Decimal

from pydantic import BaseModel

from fincache.cache import KeySpace, close_all_caches, create_coordinator
from fincache.config import CacheConfig, StoreBackend

# Configure logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


class Wallet(BaseModel):
    id: str
    name: str
    balance: Decimal


class FakeFinanceApi:
    """Stand-in for the remote finance backend."""

    def __init__(self) -> None:
        self.wallets = [Wallet(id="w1", name="Cash", balance=Decimal("120.00"))]
        self.calls = 0

    async def fetch_wallets(self, include_inactive: bool = False) -> list[Wallet]:
        self.calls += 1
        await asyncio.sleep(0.2)  # network latency
        return list(self.wallets)

    async def create_wallet(self, name: str) -> Wallet:
        wallet = Wallet(id=f"w{len(self.wallets) + 1}", name=name, balance=Decimal("0"))
        self.wallets.append(wallet)
        return wallet

    async def fetch_categories(self, kind: str) -> list[str]:
        self.calls += 1
        return ["Food", "Rent"] if kind == "expense" else ["Salary"]


async def example_read_through(cache_dir: str) -> None:
    """Example: wallets served from cache, then invalidated by a mutation."""
    logger.info("=" * 60)
    logger.info("Example 1: Read-through wallets")
    logger.info("=" * 60)

    api = FakeFinanceApi()
    config = CacheConfig(store=StoreBackend.JSON, store_path=cache_dir, namespace="user_42")
    coordinator = create_coordinator(config, name="user_42")
    wallets = KeySpace(coordinator, "fetchWallets", list[Wallet], ttl=86400, stale_after=43200)

    first = await wallets.resolve(lambda: api.fetch_wallets(False), include_inactive=False)
    second = await wallets.resolve(lambda: api.fetch_wallets(False), include_inactive=False)
    logger.info("Wallets: %s (backend calls: %d)", [w.name for w in second], api.calls)
    assert first == second

    await api.create_wallet("Savings")
    removed = wallets.invalidate_all()
    logger.info("Created a wallet, invalidated %d cached wallet queries", removed)

    fresh = await wallets.resolve(lambda: api.fetch_wallets(False), include_inactive=False)
    logger.info("Wallets: %s (backend calls: %d)", [w.name for w in fresh], api.calls)

    @coordinator.cached("fetchCategories", ttl=3600)
    async def categories(kind: str) -> list[str]:
        return await api.fetch_categories(kind)

    await categories("expense")
    await categories("expense")
    logger.info("Categories cached under %s", categories.cache_key("expense"))


async def example_next_session(cache_dir: str) -> None:
    """Example: a restarted app serves persisted data without a backend call."""
    logger.info("=" * 60)
    logger.info("Example 2: Next session")
    logger.info("=" * 60)

    await close_all_caches()

    api = FakeFinanceApi()
    config = CacheConfig(store=StoreBackend.JSON, store_path=cache_dir, namespace="user_42")
    coordinator = create_coordinator(config, name="user_42")
    wallets = KeySpace(coordinator, "fetchWallets", list[Wallet], ttl=86400, stale_after=43200)

    cached = await wallets.resolve(lambda: api.fetch_wallets(False), include_inactive=False)
    logger.info("Wallets from previous session: %s (backend calls: %d)", [w.name for w in cached], api.calls)
    logger.info("Cache stats: %s", coordinator.manager.get_stats())


async def main() -> None:
    """Run all examples."""
    with tempfile.TemporaryDirectory() as cache_dir:
        try:
            await example_read_through(cache_dir)
            await example_next_session(cache_dir)
        finally:
            logger.info("Closing caches...")
            await close_all_caches()
            logger.info("Done!")


if __name__ == "__main__":
    asyncio.run(main())
