"""
Tribunal - Constants

Side codes, round end reasons, and external source constants shared by the
demo extraction and inventory valuation pipelines.
"""

from enum import Enum, StrEnum


class Team(int, Enum):
    """CS2 team numbers as they appear in demo snapshots and events."""

    UNASSIGNED = 0
    SPECTATOR = 1
    TERRORIST = 2
    CT = 3


class Side(StrEnum):
    """Side label used in extracted views."""

    T = "T"
    CT = "CT"
    SPEC = "SPEC"


class RoundEndReason(int, Enum):
    """
    Round end reasons from CS2.

    These are the official game event values.
    """

    TARGET_BOMBED = 1  # Terrorists bombed the target
    BOMB_DEFUSED = 7  # CTs defused the bomb
    CT_WIN = 8  # CTs eliminated terrorists
    TERRORIST_WIN = 9  # Terrorists eliminated CTs
    ROUND_DRAW = 10
    ALL_HOSTAGES_RESCUED = 11
    TARGET_SAVED = 12  # Time ran out, bomb not planted
    HOSTAGES_NOT_RESCUED = 13


class RoundEndLabel(StrEnum):
    """Round end reason label used in extracted views."""

    ELIMINATION = "elimination"
    BOMB_EXPLODED = "bomb_exploded"
    BOMB_DEFUSED = "bomb_defused"
    TIME = "time"
    UNKNOWN = "unknown"


# Numeric reason code -> label. Anything unmapped on a round_end event is
# reported as elimination; round_start-only rounds use UNKNOWN.
ROUND_END_LABELS = {
    RoundEndReason.TARGET_BOMBED: RoundEndLabel.BOMB_EXPLODED,
    RoundEndReason.BOMB_DEFUSED: RoundEndLabel.BOMB_DEFUSED,
    RoundEndReason.CT_WIN: RoundEndLabel.ELIMINATION,
    RoundEndReason.TERRORIST_WIN: RoundEndLabel.ELIMINATION,
    RoundEndReason.TARGET_SAVED: RoundEndLabel.TIME,
}

# String reasons emitted by newer demoparser2 builds
ROUND_END_STRING_LABELS = {
    "target_bombed": RoundEndLabel.BOMB_EXPLODED,
    "bomb_exploded": RoundEndLabel.BOMB_EXPLODED,
    "bomb_defused": RoundEndLabel.BOMB_DEFUSED,
    "ct_win": RoundEndLabel.ELIMINATION,
    "t_win": RoundEndLabel.ELIMINATION,
    "terrorist_win": RoundEndLabel.ELIMINATION,
    "ct_killed": RoundEndLabel.ELIMINATION,
    "t_killed": RoundEndLabel.ELIMINATION,
    "target_saved": RoundEndLabel.TIME,
    "time_ran_out": RoundEndLabel.TIME,
}

# Demo event names
EVENT_PLAYER_DEATH = "player_death"
EVENT_PLAYER_HURT = "player_hurt"
EVENT_ROUND_END = "round_end"
EVENT_ROUND_START = "round_start"
EVENT_MATCH_END = "cs_win_panel_match"

# Tick fields carrying the running per-team round total
TICK_SCORE_FIELDS = ["team_rounds_total", "team_num"]

# SteamID64 values are always 17 digits
STEAM_ID_LENGTH = 17

# =============================================================================
# Steam inventory / market
# =============================================================================

CS2_APP_ID = 730
CS2_CONTEXT_ID = 2

STEAM_COMMUNITY_BASE = "https://steamcommunity.com"
STEAM_INVENTORY_URL = STEAM_COMMUNITY_BASE + "/inventory/{steam_id}/730/2"
STEAM_PRICE_OVERVIEW_URL = STEAM_COMMUNITY_BASE + "/market/priceoverview/"
STEAM_ICON_BASE = "https://community.cloudflare.steamstatic.com/economy/image/"

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Inventory pagination
INVENTORY_PAGE_SIZE = 75
INVENTORY_MAX_PAGES = 100

# Error strings surfaced on valuations
ERROR_PRIVATE = "Inventory is private"
ERROR_RATE_LIMITED = "Rate limited by Steam"
ERROR_TIMEOUT = "Valuation timed out"

DEFAULT_CURRENCY = "USD"

# Cache lifetimes
PRICE_CACHE_TTL_HOURS = 24
BULK_SNAPSHOT_TTL_MINUTES = 30
VALUATION_TTL_HOURS = 24
