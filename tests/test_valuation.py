"""Tests for the inventory pricing engine."""

import asyncio
from datetime import UTC, datetime, timedelta

import httpx
import pytest
from conftest import FakeSteam, make_page

from tribunal.core.constants import ERROR_PRIVATE, ERROR_RATE_LIMITED, ERROR_TIMEOUT, STEAM_ICON_BASE
from tribunal.core.schemas import InventoryItem, InventoryValuation, PricedItem
from tribunal.pricing.valuation import (
    InventoryValuator,
    refresh_submission_inventory,
    select_top_items,
    validate_steam_id,
)

STEAM_ID = "76561198000000001"


def valuate(fake, config, db, steam_id=STEAM_ID, **kwargs):
    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(fake.handler)) as client:
            valuator = InventoryValuator.from_config(config, client, db=db)
            try:
                return await valuator.valuate(steam_id, **kwargs)
            finally:
                await valuator.price_cache.drain()

    return asyncio.run(run())


class TestHelpers:
    def test_validate_steam_id(self):
        assert validate_steam_id(STEAM_ID) == STEAM_ID
        for bad in ("", "123", "7656119800000000x", "765611980000000011"):
            with pytest.raises(ValueError):
                validate_steam_id(bad)

    def test_top_items_by_unit_price(self):
        priced = [
            PricedItem(InventoryItem("Cheap", "a", count=50), 10),
            PricedItem(InventoryItem("Knife", "b", count=1), 30000),
            PricedItem(InventoryItem("Gloves", "", count=1), 20000),
            PricedItem(InventoryItem("Skin", "d", count=2), 500),
        ]
        top = select_top_items(priced, 3)
        assert [t.name for t in top] == ["Knife", "Gloves", "Skin"]
        assert top[0].icon_url == STEAM_ICON_BASE + "b"
        assert top[1].icon_url == ""


class TestScenarios:
    def test_private_inventory(self, fast_config, db):
        fake = FakeSteam(inventory_status=403)
        valuation = valuate(fake, fast_config, db)

        assert valuation.value_cents is None
        assert valuation.error == ERROR_PRIVATE
        assert valuation.top_items == []
        assert fake.calls["market"] == 0
        assert db.get_valuation(STEAM_ID).error == ERROR_PRIVATE

    def test_two_items_owned_twice(self, fast_config, db):
        fake = FakeSteam(
            pages=[make_page([("1", "P250 | Sand Dune", 2), ("2", "AK-47 | Redline", 2)])],
            prices={"P250 | Sand Dune": 500, "AK-47 | Redline": 1500},
        )
        valuation = valuate(fake, fast_config, db)

        assert valuation.value_cents == 4000
        assert valuation.currency == "USD"
        assert valuation.error is None
        assert [t.name for t in valuation.top_items] == ["AK-47 | Redline", "P250 | Sand Dune"]
        assert [t.price_cents for t in valuation.top_items] == [1500, 500]
        assert valuation.top_items[0].icon_url == STEAM_ICON_BASE + "icon-2"
        assert valuation.item_count == 4
        assert valuation.priced_count == 2
        assert valuation.updated_at is not None

    def test_zero_marketable_items(self, fast_config, db):
        fake = FakeSteam(pages=[make_page([("1", "Service Medal", 1)], marketable=0)])
        valuation = valuate(fake, fast_config, db)

        assert valuation.value_cents == 0
        assert valuation.currency == "USD"
        assert valuation.error is None
        assert valuation.top_items == []
        assert fake.calls["market"] == 0

    def test_partial_inventory_keeps_error(self, fast_config, db):
        class PartialSteam(FakeSteam):
            def handler(self, request):
                if request.url.path.startswith("/inventory/") and self.calls["inventory"] == 1:
                    self.calls["inventory"] += 1
                    return httpx.Response(429)
                return super().handler(request)

        fake = PartialSteam(
            pages=[make_page([("1", "Case Key", 3)], more_items=True, last_assetid="9")],
            prices={"Case Key": 250},
        )
        valuation = valuate(fake, fast_config, db)
        assert valuation.value_cents == 750
        assert valuation.error == ERROR_RATE_LIMITED


class TestCaching:
    def test_second_call_is_served_from_cache(self, fast_config, db):
        fake = FakeSteam(
            pages=[make_page([("1", "P250 | Sand Dune", 2), ("2", "AK-47 | Redline", 2)])],
            prices={"P250 | Sand Dune": 500, "AK-47 | Redline": 1500},
        )
        first = valuate(fake, fast_config, db)
        calls_after_first = fake.total_calls
        second = valuate(fake, fast_config, db)

        assert fake.total_calls == calls_after_first
        assert second.to_dict() == first.to_dict()

    def test_force_refresh_recomputes(self, fast_config, db):
        fake = FakeSteam(pages=[make_page([("1", "Case Key", 1)])] * 2, prices={"Case Key": 250})
        valuate(fake, fast_config, db)
        valuate(fake, fast_config, db, force_refresh=True)
        assert fake.calls["inventory"] == 2

    def test_stale_valuation_recomputed(self, fast_config, db):
        stale = InventoryValuation(
            value_cents=1, currency="USD", updated_at=datetime.now(UTC) - timedelta(hours=25)
        )
        db.save_valuation(STEAM_ID, stale)
        fake = FakeSteam(pages=[make_page([("1", "Case Key", 1)])], prices={"Case Key": 250})

        valuation = valuate(fake, fast_config, db)
        assert valuation.value_cents == 250
        assert fake.calls["inventory"] == 1

    def test_prices_written_back(self, fast_config, db):
        fake = FakeSteam(
            pages=[make_page([("1", "Case Key", 1), ("2", "Sticker", 1)])],
            prices={"Case Key": 250},
            bulk=[{"market_hash_name": "Sticker", "suggested_price": 0.3}],
        )
        valuate(fake, fast_config, db)
        fresh_after = datetime.now(UTC) - timedelta(hours=1)
        assert db.get_prices(["Case Key", "Sticker"], fresh_after) == {"Case Key": 250, "Sticker": 30}

    def test_invalid_steam_id_raises(self, fast_config, db):
        with pytest.raises(ValueError):
            valuate(FakeSteam(), fast_config, db, steam_id="not-a-steam-id")


class TestLayeredPricing:
    def test_durable_cache_then_bulk_then_market(self, fast_config, db):
        db.upsert_prices({"Cached Skin": 700})
        fake = FakeSteam(
            pages=[make_page([("1", "Cached Skin", 1), ("2", "Bulk Skin", 1), ("3", "Rare Skin", 1)])],
            prices={"Rare Skin": 9000, "Cached Skin": 1, "Bulk Skin": 1},
            bulk=[{"market_hash_name": "Bulk Skin", "suggested_price": 12.0}],
        )
        valuation = valuate(fake, fast_config, db)

        assert fake.market_names == ["Rare Skin"]
        assert fake.calls["bulk"] == 1
        assert valuation.value_cents == 700 + 1200 + 9000

    def test_all_cached_makes_no_market_calls(self, fast_config, db):
        db.upsert_prices({"Case Key": 250})
        fake = FakeSteam(pages=[make_page([("1", "Case Key", 4)])])
        valuation = valuate(fake, fast_config, db)

        assert valuation.value_cents == 1000
        assert fake.calls["bulk"] == 0
        assert fake.calls["market"] == 0

    def test_fallback_is_capped(self, fast_config, db):
        items = [(str(i), f"Skin {i:02d}", 1) for i in range(20)]
        fake = FakeSteam(pages=[make_page(items)], prices={f"Skin {i:02d}": 100 for i in range(20)})
        valuation = valuate(fake, fast_config, db)

        assert fake.calls["market"] == 15
        assert valuation.priced_count == 15
        assert valuation.value_cents == 1500
        assert valuation.item_count == 20

    def test_rate_limit_stops_fallback(self, fast_config, db):
        items = [("1", "A", 1), ("2", "B", 1), ("3", "C", 1), ("4", "D", 1)]
        fake = FakeSteam(pages=[make_page(items)], prices={"A": 100, "B": 200, "C": "429", "D": 400})
        valuation = valuate(fake, fast_config, db)

        assert fake.market_names == ["A", "B", "C"]
        assert valuation.value_cents == 300
        assert valuation.priced_count == 2
        assert valuation.error is None

    def test_unpriceable_items_excluded(self, fast_config, db):
        fake = FakeSteam(pages=[make_page([("1", "A", 1), ("2", "Mystery", 3)])], prices={"A": 100})
        valuation = valuate(fake, fast_config, db)
        assert valuation.value_cents == 100
        assert [t.name for t in valuation.top_items] == ["A"]


class TestTimeout:
    def test_timeout_returns_unpersisted_failure(self, fast_config, db):
        async def slow_handler(request):
            await asyncio.sleep(1)
            return httpx.Response(403)

        async def run():
            async with httpx.AsyncClient(transport=httpx.MockTransport(slow_handler)) as client:
                valuator = InventoryValuator.from_config(fast_config, client, db=db)
                return await valuator.valuate(STEAM_ID, timeout=0.05)

        valuation = asyncio.run(run())
        assert valuation.value_cents is None
        assert valuation.error == ERROR_TIMEOUT
        assert db.get_valuation(STEAM_ID) is None


class TestSubmissionRefresh:
    def test_writes_valuation_onto_submission(self, fast_config, db):
        db.create_submission("sub-1", suspected_steamid64=STEAM_ID, map_name="de_dust2")
        fake = FakeSteam(pages=[make_page([("1", "Case Key", 2)])], prices={"Case Key": 250})

        async def run():
            async with httpx.AsyncClient(transport=httpx.MockTransport(fake.handler)) as client:
                valuator = InventoryValuator.from_config(fast_config, client, db=db)
                result = await refresh_submission_inventory(db, valuator, "sub-1")
                await valuator.price_cache.drain()
                return result

        valuation = asyncio.run(run())
        assert valuation.value_cents == 500

        data = db.get_submission("sub-1").to_dict()
        assert data["inventory_value_cents"] == 500
        assert data["inventory_value_currency"] == "USD"
        assert data["inventory_top_items"][0]["name"] == "Case Key"
        assert data["inventory_value_updated_at"] is not None

    def test_missing_submission(self, fast_config, db):
        async def run():
            async with httpx.AsyncClient(transport=httpx.MockTransport(FakeSteam().handler)) as client:
                valuator = InventoryValuator.from_config(fast_config, client, db=db)
                await refresh_submission_inventory(db, valuator, "nope")

        with pytest.raises(LookupError):
            asyncio.run(run())

    def test_submission_without_suspect(self, fast_config, db):
        db.create_submission("sub-2")

        async def run():
            async with httpx.AsyncClient(transport=httpx.MockTransport(FakeSteam().handler)) as client:
                valuator = InventoryValuator.from_config(fast_config, client, db=db)
                await refresh_submission_inventory(db, valuator, "sub-2")

        with pytest.raises(LookupError):
            asyncio.run(run())
