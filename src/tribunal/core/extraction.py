"""
Match Extraction Engine

Turns a demo into the two views moderators work with:
- IdentityView: map + roster, used to pick the suspect at submission time
- MatchStatisticsView: per-player combat stats, round outcomes and score

Demo parsing is best-effort. Event schemas vary across recording versions,
so every query runs as an independent pass returning a PassResult; a failing
pass contributes nothing and is reported in ``warnings`` while the others
still land in the view.

Score resolution tries sources in order until one yields a non-zero score:
    round_end events -> tick round totals -> match-end panel -> round_start count
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any, Generic, TypeVar

from tribunal.core.constants import (
    EVENT_MATCH_END,
    EVENT_PLAYER_DEATH,
    EVENT_PLAYER_HURT,
    EVENT_ROUND_END,
    EVENT_ROUND_START,
    ROUND_END_LABELS,
    ROUND_END_STRING_LABELS,
    TICK_SCORE_FIELDS,
    RoundEndLabel,
    RoundEndReason,
    Side,
    Team,
)
from tribunal.core.reader import (
    DemoReader,
    Record,
    normalize_steam_id,
    open_reader,
    safe_bool,
    safe_int,
    safe_str,
)
from tribunal.core.schemas import (
    DemoHeader,
    IdentityView,
    MatchStatisticsView,
    PlayerIdentity,
    PlayerMatchStats,
    RoundOutcome,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class PassResult(Generic[T]):
    """Outcome of one best-effort pass: a partial value or an error message."""

    value: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def run_pass(name: str, func: Callable[..., T], *args: Any) -> PassResult[T]:
    """Run a pass, converting any exception into an error result."""
    try:
        return PassResult(value=func(*args))
    except Exception as e:
        logger.warning(f"{name} pass failed: {e}")
        return PassResult(error=f"{name}: {e}")


class ScoreSource(StrEnum):
    """Score resolution states, in trial order."""

    ROUND_END_EVENTS = "round_end_events"
    TICK_FALLBACK = "tick_fallback"
    MATCH_END_EVENT = "match_end_event"
    ROUND_START_COUNT = "round_start_count"
    ZERO = "none"


# ============================================================================
# Field mapping helpers
# ============================================================================

ATTACKER_ID_FIELDS = ("attacker_steamid", "attacker_SteamID")
VICTIM_ID_FIELDS = ("user_steamid", "userid_steamid", "player_steamid", "victim_steamid")
ASSISTER_ID_FIELDS = ("assister_steamid", "assister_SteamID")
DAMAGE_FIELDS = ("dmg_health", "damage")


def _first_steam_id(record: Record, fields: tuple[str, ...]) -> str | None:
    for name in fields:
        steam_id = normalize_steam_id(record.get(name))
        if steam_id:
            return steam_id
    return None


def side_from_code(value: Any, default: Side | None = None) -> Side | None:
    """
    Map a team number (2=T, 3=CT) or side string to a Side.

    The numeric convention is taken on trust; it is not cross-checked against
    the demo's own team metadata.
    """
    if isinstance(value, str):
        upper = value.strip().upper()
        if upper in ("CT", "COUNTERTERRORIST", "COUNTER-TERRORIST"):
            return Side.CT
        if upper in ("T", "TERRORIST"):
            return Side.T
        if not upper.isdigit():
            return default
    code = safe_int(value, default=-1)
    if code == Team.TERRORIST:
        return Side.T
    if code == Team.CT:
        return Side.CT
    return default


def reason_label(value: Any) -> RoundEndLabel:
    """Map a round_end reason (numeric code or string) to a label."""
    if isinstance(value, str) and not value.strip().lstrip("-").isdigit():
        return ROUND_END_STRING_LABELS.get(value.strip().lower(), RoundEndLabel.ELIMINATION)
    code = safe_int(value, default=-1)
    try:
        return ROUND_END_LABELS.get(RoundEndReason(code), RoundEndLabel.ELIMINATION)
    except ValueError:
        return RoundEndLabel.ELIMINATION


def _playback_seconds(value: Any) -> int | None:
    if value is None:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(seconds) or seconds < 0:
        return None
    return int(round(seconds))


# ============================================================================
# Header and roster
# ============================================================================


def read_header(reader: DemoReader) -> PassResult[DemoHeader]:
    def _read() -> DemoHeader:
        header = reader.read_header()
        return DemoHeader(
            map_name=safe_str(header.get("map_name")) or None,
            server_name=safe_str(header.get("server_name")) or None,
            playback_seconds=_playback_seconds(header.get("playback_time")),
        )

    return run_pass("header", _read)


def read_roster(reader: DemoReader, unknown_side: Side | None) -> PassResult[list[PlayerIdentity]]:
    """Build the roster from the player snapshot, dropping bots and duplicates."""

    def _read() -> list[PlayerIdentity]:
        players: dict[str, PlayerIdentity] = {}
        for row in reader.read_player_snapshot():
            steam_id = normalize_steam_id(row.get("steamid"))
            if not steam_id or steam_id in players:
                continue
            players[steam_id] = PlayerIdentity(
                name=safe_str(row.get("name")) or "Unknown",
                steam_id=steam_id,
                team=side_from_code(row.get("team_number"), default=unknown_side),
            )
        return list(players.values())

    return run_pass("player snapshot", _read)


def extract_identity(demo: str | Path | DemoReader) -> IdentityView:
    """
    Read the map and roster of a demo for suspect selection.

    Never raises: an unreadable header yields empty header fields and an
    unreadable snapshot yields an empty roster, in which case the caller
    falls back to manual suspect entry.
    """
    reader = open_reader(demo)
    header = read_header(reader)
    roster = read_roster(reader, unknown_side=None)

    view = IdentityView(
        header=header.value or DemoHeader(),
        players=roster.value or [],
    )
    logger.info(f"Identity extracted: map={view.header.map_name}, players={len(view.players)}")
    return view


# ============================================================================
# Statistics passes
# ============================================================================


@dataclass
class CombatTally:
    kills: int = 0
    deaths: int = 0
    assists: int = 0
    headshots: int = 0
    damage: int = 0


@dataclass
class RoundTally:
    rounds: list[RoundOutcome] = field(default_factory=list)
    score_ct: int = 0
    score_t: int = 0


def kill_pass(reader: DemoReader, known_ids: set[str]) -> dict[str, CombatTally]:
    """
    Tally kills, headshots, deaths and assists. Unknown ids are ignored.

    A suicide (attacker == victim) counts as a death but earns no kill or
    headshot, so totals can differ from scoreboards that credited self-kills.
    """
    tallies: dict[str, CombatTally] = {}

    def tally(steam_id: str) -> CombatTally:
        return tallies.setdefault(steam_id, CombatTally())

    for kill in reader.read_events(EVENT_PLAYER_DEATH):
        attacker = _first_steam_id(kill, ATTACKER_ID_FIELDS)
        victim = _first_steam_id(kill, VICTIM_ID_FIELDS)
        assister = _first_steam_id(kill, ASSISTER_ID_FIELDS)

        if attacker in known_ids and attacker != victim:
            entry = tally(attacker)
            entry.kills += 1
            if safe_bool(kill.get("headshot")):
                entry.headshots += 1
        if victim in known_ids:
            tally(victim).deaths += 1
        if assister in known_ids:
            tally(assister).assists += 1

    return tallies


def damage_pass(reader: DemoReader, known_ids: set[str]) -> dict[str, int]:
    """Sum health damage dealt to other players per attacker."""
    damage: dict[str, int] = {}
    for hurt in reader.read_events(EVENT_PLAYER_HURT):
        attacker = _first_steam_id(hurt, ATTACKER_ID_FIELDS)
        victim = _first_steam_id(hurt, VICTIM_ID_FIELDS)
        if attacker not in known_ids or attacker == victim:
            continue
        amount = 0
        for name in DAMAGE_FIELDS:
            amount = safe_int(hurt.get(name))
            if amount:
                break
        damage[attacker] = damage.get(attacker, 0) + max(amount, 0)
    return damage


def round_end_pass(reader: DemoReader) -> RoundTally:
    """One RoundOutcome per round_end event, with running side tallies."""
    result = RoundTally()
    for idx, event in enumerate(reader.read_events(EVENT_ROUND_END)):
        winner = side_from_code(event.get("winner"))
        if winner is Side.CT:
            result.score_ct += 1
        elif winner is Side.T:
            result.score_t += 1
        result.rounds.append(
            RoundOutcome(round_number=idx + 1, winner=winner, reason=reason_label(event.get("reason")))
        )
    return result


def tick_score_pass(reader: DemoReader) -> tuple[int, int]:
    """Highest running round total observed per side in the tick stream."""
    max_ct = 0
    max_t = 0
    for row in reader.read_tick_series(TICK_SCORE_FIELDS):
        score = safe_int(row.get("team_rounds_total"))
        side = side_from_code(row.get("team_num"))
        if side is Side.CT:
            max_ct = max(max_ct, score)
        elif side is Side.T:
            max_t = max(max_t, score)
    return max_ct, max_t


def match_end_pass(reader: DemoReader) -> tuple[int, int] | None:
    """Final score from the last match-end panel event, if the demo has one."""
    events = reader.read_events(EVENT_MATCH_END)
    if not events:
        return None
    last = events[-1]
    score_ct = safe_int(last.get("ct_score")) or safe_int(last.get("t2_score"))
    score_t = safe_int(last.get("t_score")) or safe_int(last.get("t1_score"))
    return score_ct, score_t


def round_start_pass(reader: DemoReader) -> list[RoundOutcome]:
    """Placeholder outcomes so the round count is visible without round_end data."""
    starts = reader.read_events(EVENT_ROUND_START)
    return [
        RoundOutcome(round_number=i + 1, winner=None, reason=RoundEndLabel.UNKNOWN)
        for i in range(len(starts))
    ]


@dataclass
class ScoreResolution:
    score_ct: int = 0
    score_t: int = 0
    rounds: list[RoundOutcome] = field(default_factory=list)
    source: ScoreSource = ScoreSource.ZERO
    errors: list[str] = field(default_factory=list)

    @property
    def is_zero(self) -> bool:
        return self.score_ct == 0 and self.score_t == 0


def resolve_score(reader: DemoReader) -> ScoreResolution:
    """
    Walk the score states in order. Each state runs at most once and only
    when everything before it left the score at 0-0; the last state only
    when no round outcomes exist either.
    """
    resolution = ScoreResolution()

    round_end = run_pass("round_end", round_end_pass, reader)
    if round_end.ok:
        resolution.rounds = round_end.value.rounds
        resolution.score_ct = round_end.value.score_ct
        resolution.score_t = round_end.value.score_t
        if not resolution.is_zero:
            resolution.source = ScoreSource.ROUND_END_EVENTS
    else:
        resolution.errors.append(round_end.error)

    if resolution.is_zero:
        ticks = run_pass("tick score", tick_score_pass, reader)
        if ticks.ok:
            resolution.score_ct, resolution.score_t = ticks.value
            if not resolution.is_zero:
                resolution.source = ScoreSource.TICK_FALLBACK
        else:
            resolution.errors.append(ticks.error)

    if resolution.is_zero:
        match_end = run_pass("match end", match_end_pass, reader)
        if not match_end.ok:
            resolution.errors.append(match_end.error)
        elif match_end.value is not None:
            resolution.score_ct, resolution.score_t = match_end.value
            if not resolution.is_zero:
                resolution.source = ScoreSource.MATCH_END_EVENT

    if resolution.is_zero and not resolution.rounds:
        starts = run_pass("round_start", round_start_pass, reader)
        if starts.ok:
            resolution.rounds = starts.value
            if resolution.rounds:
                resolution.source = ScoreSource.ROUND_START_COUNT
        else:
            resolution.errors.append(starts.error)

    logger.debug(
        f"Score resolved via {resolution.source}: CT {resolution.score_ct} - T {resolution.score_t}"
    )
    return resolution


def extract_statistics(demo: str | Path | DemoReader) -> MatchStatisticsView:
    """
    Extract full match statistics for moderator review.

    The roster comes from the player snapshot exactly as in extract_identity.
    Kill, damage and score passes then run independently; a failure in one
    never blocks the others. Derived ratios are computed from the final
    tallies when the view is serialized.
    """
    reader = open_reader(demo)
    warnings: list[str] = []

    header = read_header(reader)
    if not header.ok:
        warnings.append(header.error)

    roster = read_roster(reader, unknown_side=Side.SPEC)
    if not roster.ok:
        warnings.append(roster.error)
    identities = roster.value or []
    known_ids = {p.steam_id for p in identities}

    kills = run_pass("player_death", kill_pass, reader, known_ids)
    if not kills.ok:
        warnings.append(kills.error)
    damage = run_pass("player_hurt", damage_pass, reader, known_ids)
    if not damage.ok:
        warnings.append(damage.error)

    score = resolve_score(reader)
    warnings.extend(score.errors)

    rounds_played = max(len(score.rounds), 1)
    kill_tallies = kills.value or {}
    damage_totals = damage.value or {}

    players: list[PlayerMatchStats] = []
    for identity in identities:
        tally = kill_tallies.get(identity.steam_id, CombatTally())
        players.append(
            PlayerMatchStats(
                name=identity.name,
                steam_id=identity.steam_id,
                team=identity.team,
                kills=tally.kills,
                deaths=tally.deaths,
                assists=tally.assists,
                headshots=tally.headshots,
                damage=damage_totals.get(identity.steam_id, 0),
                rounds_played=rounds_played,
            )
        )
    players.sort(key=lambda p: p.kills, reverse=True)

    view = MatchStatisticsView(
        header=header.value or DemoHeader(),
        score_ct=score.score_ct,
        score_t=score.score_t,
        rounds=score.rounds,
        players=players,
        score_source=score.source.value,
        warnings=warnings,
    )
    logger.info(
        f"Statistics extracted: {len(players)} players, {len(view.rounds)} rounds, "
        f"score CT {view.score_ct} - T {view.score_t} ({view.score_source})"
    )
    return view


# ============================================================================
# Async entry points
# ============================================================================


async def extract_identity_async(
    demo: str | Path | DemoReader, timeout: float | None = None
) -> IdentityView:
    """Run extract_identity off the event loop, bounded by ``timeout`` seconds."""
    return await asyncio.wait_for(asyncio.to_thread(extract_identity, demo), timeout)


async def extract_statistics_async(
    demo: str | Path | DemoReader, timeout: float | None = None
) -> MatchStatisticsView:
    """Run extract_statistics off the event loop, bounded by ``timeout`` seconds."""
    return await asyncio.wait_for(asyncio.to_thread(extract_statistics, demo), timeout)
