"""
Tribunal Core - demo reading, extraction and shared contracts.

This module contains:
- constants: side codes, round end reasons, Steam endpoints
- config: application configuration management
- schemas: result records handed to callers
- reader: demoparser2 adapter
- extraction: identity and statistics extraction
"""

from tribunal.core.constants import RoundEndLabel, RoundEndReason, Side, Team
from tribunal.core.schemas import (
    DemoHeader,
    IdentityView,
    InventoryValuation,
    MatchStatisticsView,
    PlayerIdentity,
    PlayerMatchStats,
    RoundOutcome,
    TopItem,
)

__all__ = [
    "DemoHeader",
    "IdentityView",
    "InventoryValuation",
    "MatchStatisticsView",
    "PlayerIdentity",
    "PlayerMatchStats",
    "RoundEndLabel",
    "RoundEndReason",
    "RoundOutcome",
    "Side",
    "Team",
    "TopItem",
]
