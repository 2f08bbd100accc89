"""Shared fixtures: an in-memory demo reader, a temp SQLite store, zero-delay config."""

from __future__ import annotations

from typing import Any

import httpx
import pytest

from tribunal.core.config import TribunalConfig
from tribunal.infra.database import DatabaseManager

STEAM_A = "76561198000000001"
STEAM_B = "76561198000000002"
STEAM_C = "76561198000000003"
STEAM_D = "76561198000000004"


class FakeDemoReader:
    """
    DemoReader backed by plain Python data.

    ``events`` maps an event name to a list of records, or to an exception
    instance that the query raises. ``ticks`` works the same way.
    """

    def __init__(
        self,
        header: dict[str, Any] | Exception | None = None,
        players: list[dict[str, Any]] | Exception | None = None,
        events: dict[str, list[dict[str, Any]] | Exception] | None = None,
        ticks: list[dict[str, Any]] | Exception | None = None,
    ):
        self.header = header if header is not None else {}
        self.players = players if players is not None else []
        self.events = events or {}
        self.ticks = ticks if ticks is not None else []
        self.queries: list[str] = []

    @staticmethod
    def _answer(value):
        if isinstance(value, Exception):
            raise value
        return value

    def read_header(self):
        self.queries.append("header")
        return self._answer(self.header)

    def read_player_snapshot(self):
        self.queries.append("players")
        return self._answer(self.players)

    def read_events(self, event_name, fields=None):
        self.queries.append(event_name)
        return self._answer(self.events.get(event_name, []))

    def read_tick_series(self, fields):
        self.queries.append("ticks")
        return self._answer(self.ticks)


@pytest.fixture
def roster():
    return [
        {"name": "alpha", "steamid": STEAM_A, "team_number": 3},
        {"name": "bravo", "steamid": STEAM_B, "team_number": 3},
        {"name": "charlie", "steamid": STEAM_C, "team_number": 2},
        {"name": "delta", "steamid": STEAM_D, "team_number": 2},
        {"name": "BOT Kevin", "steamid": 0, "team_number": 2},
    ]


@pytest.fixture
def db(tmp_path):
    return DatabaseManager(f"sqlite:///{tmp_path / 'tribunal.db'}")


@pytest.fixture
def fast_config(tmp_path):
    """Default config with every backoff delay disabled."""
    config = TribunalConfig()
    config.inventory.inter_page_delay_ms = 0
    config.inventory.bad_request_retry_delay_ms = 0
    config.pricing.inter_price_request_delay_ms = 0
    config.pricing.bulk_feed_url = "https://feed.test/items"
    config.cache.database_url = f"sqlite:///{tmp_path / 'tribunal.db'}"
    config.cache.results_dir = str(tmp_path / "results")
    return config


def make_page(items, more_items=False, last_assetid=None, marketable=1):
    """Build an inventory page; ``items`` is a list of (classid, name, copies)."""
    assets = []
    descriptions = []
    asset_id = 1000
    for classid, name, copies in items:
        for _ in range(copies):
            asset_id += 1
            assets.append({"assetid": str(asset_id), "classid": classid, "instanceid": "0", "amount": "1"})
        descriptions.append(
            {
                "classid": classid,
                "instanceid": "0",
                "market_hash_name": name,
                "marketable": marketable,
                "icon_url": f"icon-{classid}",
            }
        )
    page = {
        "assets": assets,
        "descriptions": descriptions,
        "more_items": 1 if more_items else 0,
        "total_inventory_count": len(assets),
        "success": 1,
    }
    if last_assetid:
        page["last_assetid"] = last_assetid
    return page


class FakeSteam:
    """
    httpx handler standing in for the inventory, priceoverview and bulk feed.

    ``prices`` maps an item name to cents, or to an HTTP status string to
    return instead (e.g. "429").
    """

    def __init__(self, pages=None, inventory_status=200, prices=None, bulk=None):
        self.pages = pages or []
        self.inventory_status = inventory_status
        self.prices = prices or {}
        self.bulk = bulk or []
        self.calls: dict[str, int] = {"inventory": 0, "market": 0, "bulk": 0}
        self.market_names: list[str] = []

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "feed.test":
            self.calls["bulk"] += 1
            return httpx.Response(200, json=self.bulk)

        if request.url.path.startswith("/inventory/"):
            page_index = self.calls["inventory"]
            self.calls["inventory"] += 1
            if self.inventory_status != 200:
                return httpx.Response(self.inventory_status)
            return httpx.Response(200, json=self.pages[page_index])

        if request.url.path == "/market/priceoverview/":
            self.calls["market"] += 1
            name = request.url.params["market_hash_name"]
            self.market_names.append(name)
            price = self.prices.get(name)
            if price is None:
                return httpx.Response(200, json={"success": False})
            if isinstance(price, str):
                return httpx.Response(int(price))
            return httpx.Response(
                200, json={"success": True, "lowest_price": f"${price // 100}.{price % 100:02d}"}
            )

        return httpx.Response(404)
