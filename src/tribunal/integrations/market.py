"""
Market price sources for CS2 items.

Two sources, both consumed over HTTP:
- Steam Community Market priceoverview: one item per request, localized
  price strings, aggressively rate limited
- A bulk third-party price feed: every item in one response, refreshed
  by the caller no more than every 30 minutes

Prices are always returned in minor currency units (cents).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import StrEnum
from typing import Any

import httpx

from tribunal.core.constants import (
    BROWSER_USER_AGENT,
    CS2_APP_ID,
    STEAM_PRICE_OVERVIEW_URL,
)

logger = logging.getLogger(__name__)

PRICE_NUMBER_PATTERN = re.compile(r"[\d,.]+")


def parse_price_to_cents(price: str | None) -> int | None:
    """
    Parse a localized market price string into cents.

    Handles "$1,234.56" (comma thousands) and "1.234,56€" (period thousands,
    comma decimal). A comma appearing after the last period marks the
    European form. Returns None when no number can be read.

    >>> parse_price_to_cents("$1,234.56")
    123456
    >>> parse_price_to_cents("1.234,56€")
    123456
    """
    if not price:
        return None
    match = PRICE_NUMBER_PATTERN.search(price)
    if not match:
        return None

    number = match.group(0)
    if "," in number and number.index(",") > number.rfind("."):
        number = number.replace(".", "").replace(",", ".")
    else:
        number = number.replace(",", "")

    try:
        value = Decimal(number)
    except InvalidOperation:
        return None
    cents = (value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return max(int(cents), 0)


def amount_to_cents(amount: Any) -> int | None:
    """Convert a numeric major-unit amount (e.g. 12.34) to cents."""
    if amount is None or isinstance(amount, bool):
        return None
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        return None
    if not value.is_finite() or value < 0:
        return None
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# =============================================================================
# Steam Community Market (per item)
# =============================================================================


class PriceLookupStatus(StrEnum):
    OK = "ok"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    ERROR = "error"


@dataclass(frozen=True)
class PriceLookup:
    status: PriceLookupStatus
    price_cents: int | None = None


class SteamMarketClient:
    """
    Per-item price lookups against the Steam Community Market.

    Steam throttles priceoverview hard (roughly one request every few
    seconds); pacing is the caller's job. A 429 is reported as
    RATE_LIMITED so the caller can stop issuing requests.
    """

    def __init__(self, client: httpx.AsyncClient, currency_code: int = 1, timeout: float = 15.0):
        self._client = client
        self.currency_code = currency_code
        self.timeout = timeout

    async def fetch_price(self, market_hash_name: str) -> PriceLookup:
        params = {
            "appid": CS2_APP_ID,
            "currency": self.currency_code,
            "market_hash_name": market_hash_name,
        }
        try:
            resp = await self._client.get(
                STEAM_PRICE_OVERVIEW_URL,
                params=params,
                headers={"User-Agent": BROWSER_USER_AGENT},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            logger.info(f"Price fetch error for {market_hash_name!r}: {e}")
            return PriceLookup(PriceLookupStatus.ERROR)

        if resp.status_code == 429:
            logger.warning(f"Steam market rate limit hit while pricing {market_hash_name!r}")
            return PriceLookup(PriceLookupStatus.RATE_LIMITED)
        if resp.status_code != 200:
            logger.info(f"Price fetch failed for {market_hash_name!r}: {resp.status_code}")
            return PriceLookup(PriceLookupStatus.ERROR)

        try:
            data = resp.json()
        except ValueError:
            return PriceLookup(PriceLookupStatus.ERROR)
        if not isinstance(data, dict) or not data.get("success"):
            return PriceLookup(PriceLookupStatus.NOT_FOUND)

        # lowest_price first, then median_price
        cents = parse_price_to_cents(data.get("lowest_price") or data.get("median_price"))
        if cents is None:
            return PriceLookup(PriceLookupStatus.NOT_FOUND)
        return PriceLookup(PriceLookupStatus.OK, cents)


# =============================================================================
# Bulk price feed
# =============================================================================


def parse_bulk_feed(payload: Any) -> dict[str, int]:
    """
    Normalize a bulk feed payload into ``{market_hash_name: cents}``.

    Accepts a mapping of name -> {"price": number} (or a bare number), and
    the list form used by Skinport (market_hash_name + suggested/min price).
    Entries without a usable price are skipped.
    """
    prices: dict[str, int] = {}

    if isinstance(payload, dict):
        for name, entry in payload.items():
            amount = entry.get("price") if isinstance(entry, dict) else entry
            cents = amount_to_cents(amount)
            if cents is not None:
                prices[name] = cents
    elif isinstance(payload, list):
        for entry in payload:
            if not isinstance(entry, dict):
                continue
            name = entry.get("market_hash_name")
            amount = entry.get("price")
            if amount is None:
                amount = entry.get("suggested_price")
            if amount is None:
                amount = entry.get("min_price")
            cents = amount_to_cents(amount)
            if name and cents is not None:
                prices[name] = cents

    return prices


class BulkPriceFeed:
    """Fetches the whole bulk price feed in one request."""

    def __init__(self, client: httpx.AsyncClient, url: str, timeout: float = 15.0):
        self._client = client
        self.url = url
        self.timeout = timeout

    async def fetch(self) -> dict[str, int]:
        """Download and normalize the feed. HTTP failures raise httpx errors."""
        resp = await self._client.get(
            self.url, headers={"Accept": "application/json"}, timeout=self.timeout
        )
        resp.raise_for_status()
        prices = parse_bulk_feed(resp.json())
        logger.info(f"Bulk price feed returned {len(prices)} priced items")
        return prices
