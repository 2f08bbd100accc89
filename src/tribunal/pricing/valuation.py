"""
Inventory Pricing Engine

Computes the tradable net worth of a suspect's CS2 inventory:

1. Return the cached valuation if it is younger than its TTL (unless forced)
2. Fetch every inventory page
3. Price each distinct marketable item through three layers:
       durable price cache -> bulk feed snapshot -> Steam market (capped)
4. Sum unit price x owned count, pick the top items by unit price
5. Persist the valuation keyed by SteamID64

Valuations are a cache, not a ledger: a forced refresh recomputes from
scratch. Source and store failures end up in the ``error`` field, never
as exceptions.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta

import httpx
from sqlalchemy.exc import SQLAlchemyError

from tribunal.core.config import TribunalConfig
from tribunal.core.constants import ERROR_TIMEOUT, STEAM_ICON_BASE, STEAM_ID_LENGTH
from tribunal.core.schemas import InventoryItem, InventoryValuation, PricedItem, TopItem
from tribunal.infra.database import DatabaseManager
from tribunal.infra.price_cache import BulkSnapshotCache, PriceCache
from tribunal.integrations.market import BulkPriceFeed, PriceLookupStatus, SteamMarketClient
from tribunal.integrations.steam_inventory import InventoryClient, sleep_ms

logger = logging.getLogger(__name__)


def validate_steam_id(steam_id: str) -> str:
    """Raise ValueError unless ``steam_id`` is a 17-digit SteamID64."""
    if not steam_id or len(steam_id) != STEAM_ID_LENGTH or not steam_id.isdigit():
        raise ValueError(f"Invalid SteamID64: {steam_id!r}")
    return steam_id


def icon_url(icon: str) -> str:
    return f"{STEAM_ICON_BASE}{icon}" if icon else ""


def select_top_items(priced: list[PricedItem], limit: int) -> list[TopItem]:
    """Highest unit prices first."""
    ranked = sorted(priced, key=lambda p: p.price_cents, reverse=True)
    return [
        TopItem(name=p.item.market_name, price_cents=p.price_cents, icon_url=icon_url(p.item.icon_url))
        for p in ranked[:limit]
    ]


class InventoryValuator:
    """Valuates inventories using injected sources and caches."""

    def __init__(
        self,
        db: DatabaseManager,
        price_cache: PriceCache,
        inventory_client: InventoryClient,
        market_client: SteamMarketClient,
        config: TribunalConfig | None = None,
    ):
        self.db = db
        self.price_cache = price_cache
        self.inventory_client = inventory_client
        self.market_client = market_client
        self.config = config or TribunalConfig()

    @classmethod
    def from_config(
        cls,
        config: TribunalConfig,
        client: httpx.AsyncClient,
        db: DatabaseManager | None = None,
        snapshot: BulkSnapshotCache | None = None,
    ) -> InventoryValuator:
        """Wire up the default sources around one shared HTTP client."""
        db = db or DatabaseManager(config.resolved_database_url())
        snapshot = snapshot or BulkSnapshotCache(config.cache.bulk_snapshot_ttl_minutes * 60)
        pricing = config.pricing
        feed = BulkPriceFeed(client, pricing.bulk_feed_url, pricing.request_timeout_s)
        return cls(
            db=db,
            price_cache=PriceCache(db, snapshot, feed.fetch, config.cache),
            inventory_client=InventoryClient(client, config.inventory),
            market_client=SteamMarketClient(
                client, pricing.steam_currency_code, pricing.request_timeout_s
            ),
            config=config,
        )

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def valuate(
        self, steam_id: str, force_refresh: bool = False, timeout: float | None = None
    ) -> InventoryValuation:
        """
        Value a player's inventory.

        Args:
            steam_id: SteamID64 of the player
            force_refresh: Skip the cached valuation and recompute
            timeout: Overall bound in seconds (defaults to pricing.valuation_timeout_s).
                Cancellation takes effect at the next page request or delay.

        Returns:
            InventoryValuation; on timeout a null-valued result that is not persisted
        """
        validate_steam_id(steam_id)
        if timeout is None:
            timeout = self.config.pricing.valuation_timeout_s
        try:
            return await asyncio.wait_for(self._valuate(steam_id, force_refresh), timeout)
        except TimeoutError:
            logger.warning(f"Valuation of {steam_id} timed out after {timeout}s")
            return InventoryValuation.failed(ERROR_TIMEOUT)

    async def _valuate(self, steam_id: str, force_refresh: bool) -> InventoryValuation:
        if not force_refresh:
            cached = await self.cached_valuation(steam_id)
            if cached is not None:
                logger.info(f"Using cached valuation for {steam_id}")
                return cached

        fetch = await self.inventory_client.fetch_inventory(steam_id)
        marketable = fetch.marketable_items

        if fetch.error and not fetch.items:
            valuation = InventoryValuation.failed(fetch.error, item_count=fetch.total_assets)
        elif not marketable:
            valuation = InventoryValuation(
                value_cents=0,
                currency=self.config.pricing.currency,
                error=fetch.error,
                item_count=fetch.total_assets,
            )
        else:
            prices = await self.price_items(marketable)
            priced = [
                PricedItem(item=item, price_cents=prices[item.market_name])
                for item in marketable
                if item.market_name in prices
            ]
            top_items = select_top_items(priced, self.config.pricing.top_items)
            valuation = InventoryValuation(
                value_cents=sum(p.total_cents for p in priced),
                currency=self.config.pricing.currency,
                error=fetch.error,
                top_items=top_items,
                item_count=fetch.total_assets,
                priced_count=len(priced),
            )
            logger.info(
                f"Priced {len(priced)}/{len(marketable)} items, "
                f"total: {valuation.value_cents / 100:.2f} {valuation.currency}, "
                f"top: {[t.name for t in top_items]}"
            )

        valuation.updated_at = datetime.now(UTC)
        await self._persist(steam_id, valuation)
        return valuation

    # ------------------------------------------------------------------
    # Valuation cache
    # ------------------------------------------------------------------

    async def cached_valuation(self, steam_id: str) -> InventoryValuation | None:
        """Stored valuation if younger than the TTL. Store errors count as a miss."""
        try:
            cached = await asyncio.to_thread(self.db.get_valuation, steam_id)
        except SQLAlchemyError as e:
            logger.warning(f"Valuation cache read failed: {e}")
            return None
        if cached is None or cached.updated_at is None:
            return None
        max_age = timedelta(hours=self.config.cache.valuation_ttl_hours)
        if datetime.now(UTC) - cached.updated_at >= max_age:
            return None
        return cached

    async def _persist(self, steam_id: str, valuation: InventoryValuation) -> None:
        try:
            await asyncio.to_thread(self.db.save_valuation, steam_id, valuation)
        except SQLAlchemyError as e:
            logger.warning(f"Failed to persist valuation for {steam_id}: {e}")

    # ------------------------------------------------------------------
    # Layered pricing
    # ------------------------------------------------------------------

    async def price_items(self, items: list[InventoryItem]) -> dict[str, int]:
        """Resolve a unit price per distinct item name; unpriceable items are absent."""
        names = list(dict.fromkeys(item.market_name for item in items))
        prices = await self.price_cache.batch_lookup(names)
        logger.debug(f"Durable cache priced {len(prices)}/{len(names)} items")

        new_prices: dict[str, int] = {}
        remaining = [n for n in names if n not in prices]

        if remaining:
            snapshot = await self.price_cache.bulk_snapshot()
            for name in remaining:
                if name in snapshot:
                    new_prices[name] = snapshot[name]
            remaining = [n for n in remaining if n not in new_prices]
            logger.debug(f"Bulk snapshot priced {len(new_prices)} items")

        if remaining:
            new_prices.update(await self._price_individually(remaining))

        self.price_cache.schedule_upsert(new_prices)
        prices.update(new_prices)
        return prices

    async def _price_individually(self, names: list[str]) -> dict[str, int]:
        """Steam market fallback, capped and paced; stops at the first 429."""
        pricing = self.config.pricing
        budget = names[: max(pricing.steam_fallback_max_requests, 0)]
        if len(names) > len(budget):
            logger.info(f"Steam fallback capped at {len(budget)} of {len(names)} unpriced items")

        prices: dict[str, int] = {}
        for idx, name in enumerate(budget):
            if idx > 0:
                await sleep_ms(pricing.inter_price_request_delay_ms)
            lookup = await self.market_client.fetch_price(name)
            if lookup.status is PriceLookupStatus.RATE_LIMITED:
                logger.warning(
                    f"Steam market rate limited; skipping {len(budget) - idx} remaining lookups"
                )
                break
            if lookup.status is PriceLookupStatus.OK and lookup.price_cents is not None:
                prices[name] = lookup.price_cents
        return prices


async def refresh_submission_inventory(
    db: DatabaseManager, valuator: InventoryValuator, submission_id: str
) -> InventoryValuation:
    """
    Recompute the suspect's valuation for a submission and store it on the record.

    Raises:
        LookupError: submission missing or has no suspect SteamID64
    """
    submission = await asyncio.to_thread(db.get_submission, submission_id)
    if submission is None or not submission.suspected_steamid64:
        raise LookupError("Submission not found or no suspect SteamID")

    valuation = await valuator.valuate(submission.suspected_steamid64, force_refresh=True)
    try:
        await asyncio.to_thread(db.record_submission_valuation, submission_id, valuation)
    except SQLAlchemyError as e:
        logger.error(f"Failed to update inventory value on submission {submission_id}: {e}")
    return valuation
