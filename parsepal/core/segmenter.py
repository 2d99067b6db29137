"""
Combat log segmentation: groups raw log lines into fights.

Raid encounters are bounded by ENCOUNTER_START / ENCOUNTER_END. Mythic+
runs are bounded by CHALLENGE_MODE_START / CHALLENGE_MODE_END and absorb
every boss encounter they contain, so a nested encounter is never emitted
on its own.

The state machine is a pure function over an immutable ParserState:

    state, fight = advance(state, line)

LogParser wraps it for callers that want a push-style line sink.
"""

import csv
import logging
import math
import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Iterable, Optional

from parsepal.core.constants import (
    TIMESTAMP_DELIMITER, LOG_VERSION_MARKER,
    ENCOUNTER_START, ENCOUNTER_END, CHALLENGE_MODE_START, CHALLENGE_MODE_END,
    PLAYER_GUID_PATTERN, LOG_TIMESTAMP_YEAR, UNKNOWN_DUNGEON, UNKNOWN_ENCOUNTER,
    FightKind,
)
from parsepal.core.models import Fight

logger = logging.getLogger(__name__)

_PLAYER_RE = re.compile(PLAYER_GUID_PATTERN)
_TIMESTAMP_RE = re.compile(
    r'^\s*(\d{1,2})/(\d{1,2})\s+(\d{1,2}):(\d{1,2}):(\d{1,2})(?:\.(\d+))?\s*$'
)


# ── Field helpers ─────────────────────────────────────────────────────

def split_line(line: str) -> tuple[str, str] | None:
    """Split a raw line into (timestamp, payload). None if there is no delimiter."""
    idx = line.find(TIMESTAMP_DELIMITER)
    if idx == -1:
        return None
    return line[:idx], line[idx + len(TIMESTAMP_DELIMITER):]


def split_fields(payload: str) -> list[str]:
    """Comma-split an event payload, keeping quoted names with commas intact."""
    try:
        return next(csv.reader([payload]))
    except (csv.Error, StopIteration):
        return payload.split(',')


def _field(fields: list[str], idx: int) -> str:
    return fields[idx].strip() if idx < len(fields) else ""


def _int_field(fields: list[str], idx: int) -> int:
    try:
        return int(_field(fields, idx))
    except ValueError:
        return 0


def _name_field(fields: list[str], idx: int, default: str) -> str:
    return _field(fields, idx).replace('"', '') or default


def count_players(lines: Iterable[str]) -> int:
    """Number of distinct Player-<hex>-<hex> GUIDs across the lines."""
    guids = set()
    for line in lines:
        guids.update(_PLAYER_RE.findall(line))
    return len(guids)


def payload_size(lines: Iterable[str]) -> int:
    """Bytes the lines occupy when written out one per line."""
    return sum(len(line.encode('utf-8')) + 1 for line in lines)


# ── Timestamps ────────────────────────────────────────────────────────

def parse_log_timestamp(ts: str, year: int = LOG_TIMESTAMP_YEAR) -> datetime | None:
    """Parse 'M/D HH:MM:SS.mmm' in a fixed year. None if malformed."""
    m = _TIMESTAMP_RE.match(ts)
    if not m:
        return None
    month, day, hour, minute, second = (int(g) for g in m.groups()[:5])
    frac = m.group(6) or "0"
    micros = int(round(float(f"0.{frac}") * 1_000_000))
    try:
        return datetime(year, month, day, hour, minute, second, min(micros, 999_999))
    except ValueError:
        return None


def duration_seconds(start: str, end: str) -> int:
    """
    Whole seconds between two log timestamps, rounded half up.
    A negative span means the segment crossed New Year; the end is then
    taken to be in the following year. Malformed timestamps give 0.
    """
    t0 = parse_log_timestamp(start)
    t1 = parse_log_timestamp(end)
    if t0 is None or t1 is None:
        logger.debug("Unparseable timestamps %r / %r", start, end)
        return 0
    if t1 < t0:
        t1 = parse_log_timestamp(end, LOG_TIMESTAMP_YEAR + 1)
        if t1 is None:
            return 0
    return max(0, math.floor((t1 - t0).total_seconds() + 0.5))


# ── State ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Segment:
    """An open fight: its header fields plus the lines seen so far."""
    start_time: str
    name: str
    encounter_id: int = 0
    keystone_level: int = 0
    # Newest-first chain of (line, rest) pairs; appending never touches older states.
    chain: tuple | None = field(default=None, repr=False, compare=False)

    @classmethod
    def open(cls, line: str, start_time: str, name: str, **kw) -> "Segment":
        return cls(start_time=start_time, name=name, chain=(line, None), **kw)

    def append(self, line: str) -> "Segment":
        return replace(self, chain=(line, self.chain))

    def lines(self) -> tuple[str, ...]:
        out = []
        node = self.chain
        while node is not None:
            out.append(node[0])
            node = node[1]
        out.reverse()
        return tuple(out)


@dataclass(frozen=True)
class ParserState:
    encounter: Optional[Segment] = None
    run: Optional[Segment] = None

    @property
    def in_encounter(self) -> bool:
        return self.encounter is not None

    @property
    def in_mythic_plus(self) -> bool:
        return self.run is not None


IDLE = ParserState()


def _close(segment: Segment, kind: str, end_time: str, success: bool) -> Fight:
    lines = segment.lines()
    return Fight(
        kind=kind,
        encounter_name=segment.name,
        encounter_id=segment.encounter_id if kind == FightKind.RAID else 0,
        start_time=segment.start_time,
        end_time=end_time,
        duration=duration_seconds(segment.start_time, end_time),
        success=success,
        lines=lines,
        player_count=count_players(lines),
        file_size=payload_size(lines),
        keystone_level=segment.keystone_level if kind == FightKind.MYTHIC_PLUS else None,
    )


# ── Transition function ───────────────────────────────────────────────

def advance(state: ParserState, line: str) -> tuple[ParserState, Fight | None]:
    """Consume one raw log line. Returns the next state and a completed fight, if any."""
    if not line.strip():
        return state, None

    parts = split_line(line)
    if parts is None:
        return state, None
    timestamp, payload = parts

    if payload.startswith(LOG_VERSION_MARKER):
        return IDLE, None

    if payload.startswith(CHALLENGE_MODE_START):
        fields = split_fields(payload)
        run = Segment.open(
            line, timestamp,
            name=_name_field(fields, 1, UNKNOWN_DUNGEON),
            keystone_level=_int_field(fields, 4),
        )
        return replace(state, run=run), None

    if payload.startswith(CHALLENGE_MODE_END) and state.run is not None:
        fields = split_fields(payload)
        fight = _close(state.run.append(line), FightKind.MYTHIC_PLUS,
                       timestamp, _field(fields, 2) == "1")
        return IDLE, fight

    if state.run is not None:
        state = replace(state, run=state.run.append(line))

    if payload.startswith(ENCOUNTER_START):
        fields = split_fields(payload)
        encounter = Segment.open(
            line, timestamp,
            name=_name_field(fields, 2, UNKNOWN_ENCOUNTER),
            encounter_id=_int_field(fields, 1),
        )
        return replace(state, encounter=encounter), None

    if payload.startswith(ENCOUNTER_END) and state.encounter is not None:
        fields = split_fields(payload)
        closed = state.encounter.append(line)
        next_state = replace(state, encounter=None)
        if state.run is not None:
            # the run's own end summarizes it
            return next_state, None
        return next_state, _close(closed, FightKind.RAID, timestamp, _field(fields, 5) == "1")

    if state.encounter is not None:
        state = replace(state, encounter=state.encounter.append(line))

    return state, None


def segment_lines(lines: Iterable[str], state: ParserState = IDLE) -> tuple[ParserState, list[Fight]]:
    """Run a batch of lines through the state machine."""
    fights = []
    for line in lines:
        state, fight = advance(state, line)
        if fight is not None:
            fights.append(fight)
    return state, fights


class LogParser:
    """Push-style adapter: feeds lines through advance() and reports fights."""

    def __init__(self, on_fight: Callable[[Fight], None]):
        self.on_fight = on_fight
        self.state = IDLE

    def process_line(self, line: str):
        self.state, fight = advance(self.state, line)
        if fight is not None:
            logger.info("Fight detected: %s %r (%ds, success=%s, %d lines)",
                        fight.kind, fight.encounter_name, fight.duration,
                        fight.success, len(fight.lines))
            self.on_fight(fight)

    def reset(self):
        self.state = IDLE
