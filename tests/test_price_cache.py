"""Tests for the durable price cache and the bulk snapshot holder."""

import asyncio
from datetime import UTC, datetime, timedelta

from sqlalchemy.exc import OperationalError

from tribunal.core.config import CacheConfig
from tribunal.infra.database import PriceCacheEntry
from tribunal.infra.price_cache import BulkSnapshotCache, PriceCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestBulkSnapshotCache:
    def test_empty(self):
        assert BulkSnapshotCache(60).get() is None

    def test_expires_after_ttl(self):
        clock = FakeClock()
        cache = BulkSnapshotCache(60, clock=clock)
        cache.set({"Case Key": 250})
        clock.now += 59
        assert cache.get() == {"Case Key": 250}
        clock.now += 1
        assert cache.get() is None

    def test_clear(self):
        cache = BulkSnapshotCache(60)
        cache.set({"Case Key": 250})
        cache.clear()
        assert cache.get() is None


class TestDurableTier:
    def test_upsert_then_lookup(self, db):
        cache = PriceCache(db, BulkSnapshotCache(60))

        async def run():
            await cache.batch_upsert({"Case Key": 250, "Sticker": 30})
            return await cache.batch_lookup(["Case Key", "Sticker", "Missing"])

        assert asyncio.run(run()) == {"Case Key": 250, "Sticker": 30}

    def test_stale_entries_are_misses(self, db):
        old = datetime.now(UTC) - timedelta(hours=25)
        with db.session_scope() as session:
            session.add(PriceCacheEntry(market_hash_name="Old Skin", price_cents=999, updated_at=old))
        db.upsert_prices({"New Skin": 100})

        cache = PriceCache(db, BulkSnapshotCache(60))
        assert asyncio.run(cache.batch_lookup(["Old Skin", "New Skin"])) == {"New Skin": 100}

    def test_upsert_refreshes_existing(self, db):
        cache = PriceCache(db, BulkSnapshotCache(60), config=CacheConfig(upsert_chunk_size=1))

        async def run():
            await cache.batch_upsert({"Case Key": 250, "Sticker": 30, "Pin": 900})
            await cache.batch_upsert({"Case Key": 260})
            return await cache.batch_lookup(["Case Key", "Sticker", "Pin"])

        assert asyncio.run(run()) == {"Case Key": 260, "Sticker": 30, "Pin": 900}

    def test_store_errors_are_misses(self, db, monkeypatch):
        def broken(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        monkeypatch.setattr(db, "get_prices", broken)
        monkeypatch.setattr(db, "upsert_prices", broken)
        cache = PriceCache(db, BulkSnapshotCache(60))

        async def run():
            await cache.batch_upsert({"Case Key": 250})
            return await cache.batch_lookup(["Case Key"])

        assert asyncio.run(run()) == {}

    def test_schedule_upsert_and_drain(self, db):
        cache = PriceCache(db, BulkSnapshotCache(60))

        async def run():
            task = cache.schedule_upsert({"Case Key": 250})
            assert task is not None
            assert cache.schedule_upsert({}) is None
            await cache.drain()
            return await cache.batch_lookup(["Case Key"])

        assert asyncio.run(run()) == {"Case Key": 250}


class TestBulkTier:
    def test_loader_called_once_within_ttl(self, db):
        calls = []

        async def loader():
            calls.append(1)
            return {"Case Key": 250}

        cache = PriceCache(db, BulkSnapshotCache(1800), feed_loader=loader)

        async def run():
            first = await cache.bulk_snapshot()
            second = await cache.bulk_snapshot()
            return first, second

        first, second = asyncio.run(run())
        assert first == second == {"Case Key": 250}
        assert len(calls) == 1

    def test_failed_refresh_returns_empty_and_retries(self, db):
        calls = []

        async def loader():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("feed down")
            return {"Case Key": 250}

        cache = PriceCache(db, BulkSnapshotCache(1800), feed_loader=loader)

        async def run():
            return await cache.bulk_snapshot(), await cache.bulk_snapshot()

        assert asyncio.run(run()) == ({}, {"Case Key": 250})

    def test_no_loader(self, db):
        cache = PriceCache(db, BulkSnapshotCache(1800))
        assert asyncio.run(cache.bulk_snapshot()) == {}
