"""
Binary Demo Reader for CS2 Replay Files

Thin adapter over demoparser2 exposing the four query modes the extraction
engine needs:
- header fields (map, server, playback time)
- player snapshot (name, SteamID64, team number)
- named event streams (player_death, round_end, ...)
- tick series for arbitrary player fields

demoparser2 returns pandas DataFrames; this module hands back plain lists of
records so the extraction engine never depends on DataFrame semantics.
Any query may raise: callers are expected to catch and degrade.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import pandas as pd

from tribunal.core.constants import STEAM_ID_LENGTH

if TYPE_CHECKING:
    from demoparser2 import DemoParser as Demoparser2

logger = logging.getLogger(__name__)

Record = dict[str, Any]


# Safe type conversion helpers
def safe_int(value: Any, default: int = 0) -> int:
    """Safely convert a value to int."""
    if value is None:
        return default
    try:
        if pd.isna(value):
            return default
        return int(value)
    except (ValueError, TypeError):
        return default


def safe_str(value: Any, default: str = "") -> str:
    """Safely convert a value to string."""
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return default
    return str(value)


def safe_bool(value: Any, default: bool = False) -> bool:
    """Safely convert a value to bool, accepting 1/0 and "true"/"false"."""
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    try:
        if pd.isna(value):
            return default
        return bool(value)
    except (ValueError, TypeError):
        return default


def normalize_steam_id(value: Any) -> str | None:
    """
    Normalize a SteamID64 from any demoparser2 representation.

    Bots and unconnected slots come through as 0, NaN, None or short numbers;
    all of those map to None.
    """
    if value is None:
        return None
    if isinstance(value, float):
        # NaN, or a uint64 that already lost precision as a float
        return None
    text = str(value).strip()
    if text.endswith(".0"):
        text = text[:-2]
    if len(text) != STEAM_ID_LENGTH or not text.isdigit():
        return None
    return text


def frame_to_records(df: pd.DataFrame | None) -> list[Record]:
    """Convert a DataFrame to records, replacing NaN with None."""
    if df is None or df.empty:
        return []
    return df.astype(object).where(pd.notna(df), None).to_dict("records")


@runtime_checkable
class DemoReader(Protocol):
    """The three query modes (plus tick series) consumed by the extraction engine."""

    def read_header(self) -> Record: ...

    def read_player_snapshot(self) -> list[Record]: ...

    def read_events(self, event_name: str, fields: list[str] | None = None) -> list[Record]: ...

    def read_tick_series(self, fields: list[str]) -> list[Record]: ...


class DemoFileReader:
    """
    DemoReader backed by demoparser2.

    The underlying parser is created lazily so constructing a reader for a
    missing or corrupt file never raises until the first query.
    """

    def __init__(self, demo_path: str | Path):
        self.demo_path = Path(demo_path)
        self._parser: Demoparser2 | None = None

    def _get_parser(self) -> Demoparser2:
        if self._parser is None:
            from demoparser2 import DemoParser as Demoparser2

            if not self.demo_path.exists():
                raise FileNotFoundError(f"Demo file not found: {self.demo_path}")
            self._parser = Demoparser2(str(self.demo_path))
        return self._parser

    def read_header(self) -> Record:
        header = self._get_parser().parse_header()
        if not isinstance(header, dict):
            return {}
        logger.debug(f"Header keys: {sorted(header)}")
        return dict(header)

    def read_player_snapshot(self) -> list[Record]:
        return frame_to_records(self._get_parser().parse_player_info())

    def read_events(self, event_name: str, fields: list[str] | None = None) -> list[Record]:
        parser = self._get_parser()
        if fields:
            df = parser.parse_event(event_name, other=fields)
        else:
            df = parser.parse_event(event_name)
        records = frame_to_records(df)
        logger.debug(f"Parsed {len(records)} {event_name} events")
        return records

    def read_tick_series(self, fields: list[str]) -> list[Record]:
        records = frame_to_records(self._get_parser().parse_ticks(fields))
        logger.debug(f"Parsed {len(records)} tick rows for {fields}")
        return records


def open_reader(demo: str | Path | DemoReader) -> DemoReader:
    """Accept either a path to a .dem file or an existing reader."""
    if isinstance(demo, (str, Path)):
        return DemoFileReader(demo)
    return demo
