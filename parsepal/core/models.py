"""
Data models (plain dataclasses) for ParsePal Relay.
"""

from dataclasses import dataclass, field
from typing import Optional

from parsepal.core.constants import (
    FightKind, UploadStatus, TERMINAL_UPLOAD_STATUSES, PROGRESS_QUEUED,
)


@dataclass(frozen=True)
class FightSummary:
    """Public subset of a Fight; never carries raw log lines."""
    kind: str
    encounter_name: str
    duration: int
    success: bool
    keystone_level: Optional[int] = None


@dataclass(frozen=True)
class Fight:
    kind: str                        # FightKind
    encounter_name: str
    encounter_id: int                # 0 for Mythic+ runs
    start_time: str                  # log-native, e.g. "3/14 20:01:02.345"
    end_time: str
    duration: int                    # whole seconds
    success: bool
    lines: tuple[str, ...] = field(repr=False)
    player_count: int = 0
    file_size: int = 0
    keystone_level: Optional[int] = None

    @property
    def is_mythic_plus(self) -> bool:
        return self.kind == FightKind.MYTHIC_PLUS

    def summary(self) -> FightSummary:
        return FightSummary(
            kind=self.kind,
            encounter_name=self.encounter_name,
            duration=self.duration,
            success=self.success,
            keystone_level=self.keystone_level,
        )


@dataclass
class UploadEntry:
    id: str                          # UUID
    fight: FightSummary
    timestamp: str                   # ISO-8601 UTC
    status: str = UploadStatus.QUEUED
    progress: int = PROGRESS_QUEUED
    analysis_url: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_UPLOAD_STATUSES


@dataclass
class HistoryEntry:
    id: str
    encounter_name: str
    kind: str
    success: bool
    duration: int
    timestamp: str
    status: str                      # done / error
    keystone_level: Optional[int] = None
    analysis_url: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_upload(cls, entry: UploadEntry) -> "HistoryEntry":
        return cls(
            id=entry.id,
            encounter_name=entry.fight.encounter_name,
            kind=entry.fight.kind,
            success=entry.fight.success,
            duration=entry.fight.duration,
            timestamp=entry.timestamp,
            status=entry.status,
            keystone_level=entry.fight.keystone_level,
            analysis_url=entry.analysis_url,
            error=entry.error,
        )
