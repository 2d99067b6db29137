"""
Diagnostics: library versions and combat log checks.
"""

import logging
from datetime import datetime, timezone
from importlib.metadata import version, PackageNotFoundError
from pathlib import Path

from parsepal.core.config import AppConfig
from parsepal.core.game_paths import installed_versions

logger = logging.getLogger(__name__)


def get_library_version(name: str) -> str:
    """Return an installed distribution's version, or 'Not installed'."""
    try:
        return version(name)
    except PackageNotFoundError:
        return "Not installed"


def check_log_file(log_path: Path | None) -> dict:
    """Check if the combat log exists and return info."""
    info = {"path": str(log_path) if log_path else None, "detected": False,
            "size": None, "last_modified": None}
    if log_path is None or not log_path.exists():
        return info
    try:
        stat = log_path.stat()
    except OSError as e:
        logger.warning("Could not stat %s: %s", log_path, e)
        return info
    info["detected"] = True
    info["size"] = stat.st_size
    info["last_modified"] = datetime.fromtimestamp(
        stat.st_mtime, tz=timezone.utc
    ).isoformat()
    return info


def get_diagnostics(config: AppConfig) -> dict:
    """Gather all diagnostic information. Never includes the token itself."""
    return {
        "requests_version": get_library_version("requests"),
        "watchdog_version": get_library_version("watchdog"),
        "wow_path": config.wow_path,
        "installed_versions": installed_versions(config.wow_path) if config.wow_path else [],
        "game_version": config.game_version,
        "token_configured": bool(config.auth_token),
        "log_file": check_log_file(config.log_path),
    }
