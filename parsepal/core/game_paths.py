"""
World of Warcraft install detection and combat log path resolution.
"""

import logging
from pathlib import Path

from parsepal.core.constants import (
    COMBAT_LOG_NAME, GAME_VERSIONS, GameVersion, DEFAULT_WOW_CANDIDATES,
)

logger = logging.getLogger(__name__)


def version_dir(game_version: str) -> str:
    """'retail' -> '_retail_'"""
    return f"_{game_version}_"


def combat_log_path(wow_path: str | Path, game_version: str) -> Path:
    """<wow>/_<version>_/Logs/WoWCombatLog.txt"""
    return Path(wow_path) / version_dir(game_version) / "Logs" / COMBAT_LOG_NAME


def installed_versions(wow_path: str | Path) -> list[str]:
    """Game versions that have a Logs folder under wow_path."""
    root = Path(wow_path)
    return [v for v in GAME_VERSIONS if (root / version_dir(v) / "Logs").is_dir()]


def is_wow_install(wow_path: str | Path) -> bool:
    """Quick check that a folder looks like a WoW installation."""
    return bool(installed_versions(wow_path))


def detect_wow_dir(candidates: list[str] | None = None) -> str | None:
    """
    Return the first candidate folder with retail or classic logs.
    Returns None if nothing matches.
    """
    for candidate in candidates if candidates is not None else DEFAULT_WOW_CANDIDATES:
        if not Path(candidate).is_dir():
            continue
        versions = installed_versions(candidate)
        if GameVersion.RETAIL in versions or GameVersion.CLASSIC in versions:
            logger.info("Detected WoW install at %s", candidate)
            return candidate
    return None
