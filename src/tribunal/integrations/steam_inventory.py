"""
Steam inventory fetch for CS2 (app 730, context 2).

The community inventory endpoint is paginated with a server-side cursor:
each page returns ``last_assetid``, which must be passed back as
``start_assetid`` to get the next page. Pages are therefore fetched
strictly in order, with a short pause between requests to stay under
Steam's unpublished rate limit.

Status handling:
    400 -> transient, retried once after a backoff
    403 -> private inventory
    429 -> rate limited
    other non-200 -> generic Steam API error
Errors stop the fetch, but items collected from earlier pages are kept.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from tribunal.core.config import InventoryConfig
from tribunal.core.constants import (
    BROWSER_USER_AGENT,
    ERROR_PRIVATE,
    ERROR_RATE_LIMITED,
    STEAM_INVENTORY_URL,
)
from tribunal.core.reader import safe_int, safe_str
from tribunal.core.schemas import InventoryItem

logger = logging.getLogger(__name__)


async def sleep_ms(delay_ms: float) -> None:
    """Pause for ``delay_ms`` milliseconds; zero disables the pause."""
    if delay_ms > 0:
        await asyncio.sleep(delay_ms / 1000)


@dataclass
class InventoryFetchResult:
    """Everything collected by one paginated fetch."""

    items: dict[str, InventoryItem] = field(default_factory=dict)
    error: str | None = None
    pages_fetched: int = 0
    total_assets: int = 0

    @property
    def marketable_items(self) -> list[InventoryItem]:
        return [item for item in self.items.values() if item.marketable]


def classification_key(entry: dict[str, Any]) -> str:
    """Assets and descriptions join on classid + instanceid."""
    return f"{safe_str(entry.get('classid'))}_{safe_str(entry.get('instanceid'), '0')}"


class InventoryClient:
    """Paginated CS2 inventory reader."""

    def __init__(self, client: httpx.AsyncClient, config: InventoryConfig | None = None):
        self._client = client
        self.config = config or InventoryConfig()

    async def _get_page(self, url: str, params: dict[str, Any]) -> httpx.Response:
        headers = {"User-Agent": BROWSER_USER_AGENT, "Accept": "application/json"}
        resp = await self._client.get(
            url, params=params, headers=headers, timeout=self.config.request_timeout_s
        )
        if resp.status_code == 400:
            logger.info("Inventory page returned 400, retrying once")
            await sleep_ms(self.config.bad_request_retry_delay_ms)
            resp = await self._client.get(
                url, params=params, headers=headers, timeout=self.config.request_timeout_s
            )
        return resp

    async def fetch_inventory(self, steam_id: str) -> InventoryFetchResult:
        """Fetch every page of a player's inventory, grouping items by market name."""
        result = InventoryFetchResult()
        descriptions: dict[str, dict[str, Any]] = {}
        url = STEAM_INVENTORY_URL.format(steam_id=steam_id)
        cursor: str | None = None

        logger.info(f"Fetching inventory for {steam_id}")
        while result.pages_fetched < self.config.max_pages:
            if result.pages_fetched > 0:
                await sleep_ms(self.config.inter_page_delay_ms)

            params: dict[str, Any] = {"l": "english", "count": self.config.page_size}
            if cursor:
                params["start_assetid"] = cursor

            try:
                resp = await self._get_page(url, params)
            except httpx.HTTPError as e:
                logger.warning(f"Inventory request failed: {e}")
                result.error = f"Error: {e}"
                break

            result.pages_fetched += 1
            if resp.status_code == 403:
                result.error = ERROR_PRIVATE
                break
            if resp.status_code == 429:
                result.error = ERROR_RATE_LIMITED
                break
            if resp.status_code != 200:
                logger.error(
                    f"Inventory fetch failed: {resp.status_code} {resp.text[:200]}"
                )
                result.error = f"Steam API error: {resp.status_code}"
                break

            try:
                data = resp.json()
            except ValueError as e:
                result.error = f"Error: invalid inventory response ({e})"
                break
            if not isinstance(data, dict):
                # Steam answers "null" for some empty or hidden inventories
                break

            assets = data.get("assets") or []
            result.total_assets += len(assets)
            logger.info(
                f"Page {result.pages_fetched}: assets={len(assets)}, "
                f"total_so_far={result.total_assets}, "
                f"total_inventory={data.get('total_inventory_count', 0)}"
            )
            if not assets:
                break

            for desc in data.get("descriptions") or []:
                descriptions.setdefault(classification_key(desc), desc)
            self._collect_page(assets, descriptions, result.items)

            if not data.get("more_items") or not data.get("last_assetid"):
                break
            cursor = str(data["last_assetid"])
        else:
            logger.warning(f"Stopped after {self.config.max_pages} inventory pages")

        logger.info(
            f"Fetched {result.total_assets} total assets across {result.pages_fetched} pages"
        )
        return result

    @staticmethod
    def _collect_page(
        assets: list[dict[str, Any]],
        descriptions: dict[str, dict[str, Any]],
        items: dict[str, InventoryItem],
    ) -> None:
        page_counts: dict[str, int] = {}
        for asset in assets:
            key = classification_key(asset)
            page_counts[key] = page_counts.get(key, 0) + 1

        for key, count in page_counts.items():
            desc = descriptions.get(key)
            if not desc:
                continue
            name = safe_str(desc.get("market_hash_name")) or safe_str(desc.get("name"))
            if not name:
                continue
            existing = items.get(name)
            if existing:
                existing.count += count
            else:
                items[name] = InventoryItem(
                    market_name=name,
                    icon_url=safe_str(desc.get("icon_url")),
                    count=count,
                    marketable=safe_int(desc.get("marketable")) == 1,
                )
