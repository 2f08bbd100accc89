"""
Price Cache Layer

Two tiers sit in front of the rate-limited price sources:
- a durable table of item prices (24h TTL), shared across processes
- an in-memory snapshot of the bulk price feed (30 min TTL), owned by the
  service instance and shared across requests

Store failures are logged and treated as misses; they never reach the
caller. Concurrent snapshot refreshes are tolerated (last write wins).
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError

from tribunal.core.config import CacheConfig
from tribunal.infra.database import DatabaseManager

logger = logging.getLogger(__name__)


class BulkSnapshotCache:
    """TTL-aware holder for the bulk feed snapshot."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._prices: dict[str, int] | None = None
        self._fetched_at: float | None = None

    def get(self) -> dict[str, int] | None:
        """The snapshot if it is still fresh, else None."""
        if self._prices is None or self._fetched_at is None:
            return None
        if self._clock() - self._fetched_at >= self.ttl_seconds:
            return None
        return self._prices

    def set(self, prices: dict[str, int]) -> None:
        self._prices = prices
        self._fetched_at = self._clock()

    def clear(self) -> None:
        self._prices = None
        self._fetched_at = None


class PriceCache:
    """
    Durable + in-memory price cache.

    Args:
        db: Durable store
        snapshot: Bulk snapshot holder (inject a fresh one per test)
        feed_loader: Coroutine returning the bulk feed as {name: cents}
        config: TTLs and write chunk size
    """

    def __init__(
        self,
        db: DatabaseManager,
        snapshot: BulkSnapshotCache,
        feed_loader: Callable[[], Awaitable[dict[str, int]]] | None = None,
        config: CacheConfig | None = None,
    ):
        self.db = db
        self.snapshot = snapshot
        self.feed_loader = feed_loader
        self.config = config or CacheConfig()
        self._pending: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Durable tier
    # ------------------------------------------------------------------

    async def batch_lookup(self, names: Iterable[str]) -> dict[str, int]:
        """Fresh durable prices for ``names``. Store errors count as a miss."""
        names = list(names)
        if not names:
            return {}
        fresh_after = datetime.now(UTC) - timedelta(hours=self.config.price_ttl_hours)
        try:
            return await asyncio.to_thread(
                self.db.get_prices, names, fresh_after, self.config.upsert_chunk_size
            )
        except SQLAlchemyError as e:
            logger.warning(f"Price cache lookup failed: {e}")
            return {}

    async def batch_upsert(self, prices: dict[str, int]) -> None:
        """Write prices back in chunks. Store errors are logged, not raised."""
        if not prices:
            return
        try:
            await asyncio.to_thread(
                self.db.upsert_prices, prices, self.config.upsert_chunk_size
            )
        except SQLAlchemyError as e:
            logger.warning(f"Price cache write-back failed: {e}")

    def schedule_upsert(self, prices: dict[str, int]) -> asyncio.Task | None:
        """Fire-and-forget write-back on the running loop."""
        if not prices:
            return None
        task = asyncio.get_running_loop().create_task(self.batch_upsert(dict(prices)))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for outstanding write-backs (used at shutdown and in tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------
    # Bulk snapshot tier
    # ------------------------------------------------------------------

    async def bulk_snapshot(self) -> dict[str, int]:
        """
        The bulk feed snapshot, refreshed when older than its TTL.

        A failed refresh yields an empty map for this call; the next call
        tries again.
        """
        cached = self.snapshot.get()
        if cached is not None:
            return cached
        if self.feed_loader is None:
            return {}
        try:
            prices = await self.feed_loader()
        except Exception as e:
            logger.warning(f"Bulk price feed refresh failed: {e}")
            return {}
        self.snapshot.set(prices)
        return prices
