"""
Tribunal Data Contracts

Every record that crosses the pipeline boundary is defined here. Views are
handed to callers as plain dictionaries via ``to_dict()``.

Producers: core/extraction.py, pricing/valuation.py
Consumers: api/, cli.py, infra/database.py
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from tribunal.core.constants import RoundEndLabel, Side


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


# ============================================================
# DEMO VIEWS
# ============================================================


@dataclass(frozen=True)
class DemoHeader:
    """Header fields read once per extraction call."""

    map_name: str | None = None
    server_name: str | None = None
    playback_seconds: int | None = None  # never negative, never fractional


@dataclass
class PlayerIdentity:
    """A roster entry with a stable SteamID64."""

    name: str
    steam_id: str
    team: Side | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "steam_id64": self.steam_id,
            "team": self.team.value if self.team else None,
        }


@dataclass
class PlayerMatchStats(PlayerIdentity):
    """Per-player combat tallies. Ratios are derived, never stored."""

    kills: int = 0
    deaths: int = 0
    assists: int = 0
    headshots: int = 0
    damage: int = 0
    rounds_played: int = 0

    @property
    def hs_percent(self) -> int:
        if self.kills <= 0:
            return 0
        return min(100, round_half_up(100 * self.headshots / self.kills))

    @property
    def kd(self) -> float:
        if self.deaths > 0:
            ratio = Decimal(self.kills) / Decimal(self.deaths)
            return float(ratio.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
        return float(self.kills)

    @property
    def adr(self) -> int:
        if self.rounds_played <= 0:
            return 0
        return round_half_up(self.damage / self.rounds_played)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            {
                "kills": self.kills,
                "deaths": self.deaths,
                "assists": self.assists,
                "headshots": self.headshots,
                "damage": self.damage,
                "rounds_played": self.rounds_played,
                "hs_percent": self.hs_percent,
                "kd": self.kd,
                "adr": self.adr,
            }
        )
        return data


@dataclass(frozen=True)
class RoundOutcome:
    """One round, in chronological order."""

    round_number: int
    winner: Side | None
    reason: RoundEndLabel

    def to_dict(self) -> dict[str, Any]:
        return {
            "round_number": self.round_number,
            "winner": self.winner.value if self.winner else None,
            "reason": self.reason.value,
        }


@dataclass
class IdentityView:
    """Map and roster, used to pick a suspect."""

    header: DemoHeader
    players: list[PlayerIdentity] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "map": self.header.map_name,
            "server_name": self.header.server_name,
            "players": [p.to_dict() for p in self.players],
        }


@dataclass
class MatchStatisticsView:
    """Full match statistics for moderator review."""

    header: DemoHeader
    score_ct: int = 0
    score_t: int = 0
    rounds: list[RoundOutcome] = field(default_factory=list)
    players: list[PlayerMatchStats] = field(default_factory=list)
    score_source: str = "none"
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "map": self.header.map_name,
            "server_name": self.header.server_name,
            "duration": self.header.playback_seconds,
            "score_ct": self.score_ct,
            "score_t": self.score_t,
            "rounds": [r.to_dict() for r in self.rounds],
            "players": [p.to_dict() for p in self.players],
            "score_source": self.score_source,
            "warnings": list(self.warnings),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MatchStatisticsView:
        """Rebuild a view from its ``to_dict()`` form (used by the result cache)."""
        header = DemoHeader(
            map_name=data.get("map"),
            server_name=data.get("server_name"),
            playback_seconds=data.get("duration"),
        )
        rounds = [
            RoundOutcome(
                round_number=r["round_number"],
                winner=Side(r["winner"]) if r.get("winner") else None,
                reason=RoundEndLabel(r.get("reason", "unknown")),
            )
            for r in data.get("rounds", [])
        ]
        players = [
            PlayerMatchStats(
                name=p["name"],
                steam_id=p["steam_id64"],
                team=Side(p["team"]) if p.get("team") else None,
                kills=p.get("kills", 0),
                deaths=p.get("deaths", 0),
                assists=p.get("assists", 0),
                headshots=p.get("headshots", 0),
                damage=p.get("damage", 0),
                rounds_played=p.get("rounds_played", 0),
            )
            for p in data.get("players", [])
        ]
        return cls(
            header=header,
            score_ct=data.get("score_ct", 0),
            score_t=data.get("score_t", 0),
            rounds=rounds,
            players=players,
            score_source=data.get("score_source", "none"),
            warnings=list(data.get("warnings", [])),
        )


# ============================================================
# INVENTORY VALUATION
# ============================================================


@dataclass
class InventoryItem:
    """Distinct item, grouped by market name across pages. Only marketable items are priced."""

    market_name: str
    icon_url: str = ""
    count: int = 1
    marketable: bool = True


@dataclass
class PricedItem:
    item: InventoryItem
    price_cents: int

    @property
    def total_cents(self) -> int:
        return self.price_cents * self.item.count


@dataclass(frozen=True)
class TopItem:
    name: str
    price_cents: int
    icon_url: str

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "price_cents": self.price_cents, "icon_url": self.icon_url}


@dataclass
class InventoryValuation:
    """Net worth of a player's tradable items. ``value_cents`` None means unknown."""

    value_cents: int | None
    currency: str | None
    error: str | None = None
    top_items: list[TopItem] = field(default_factory=list)
    item_count: int = 0
    priced_count: int = 0
    updated_at: datetime | None = None

    @classmethod
    def failed(cls, error: str, item_count: int = 0) -> InventoryValuation:
        return cls(value_cents=None, currency=None, error=error, item_count=item_count)

    def to_dict(self) -> dict[str, Any]:
        return {
            "value_cents": self.value_cents,
            "currency": self.currency,
            "error": self.error,
            "top_items": [t.to_dict() for t in self.top_items],
            "item_count": self.item_count,
            "priced_count": self.priced_count,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
