"""
Shared constants for ParsePal Relay.
Single source of truth — imported by every other module.
"""

import os
import sys
import pathlib

# ── Application identity ──────────────────────────────────────────────
APP_NAME = "ParsePal"
APP_DISPLAY_NAME = "ParsePal Relay"
APP_VERSION = "1.0.0"

# ── Filesystem paths ─────────────────────────────────────────────────
HOME = pathlib.Path.home()

if sys.platform == "darwin":
    APP_SUPPORT_DIR = HOME / "Library" / "Application Support" / APP_NAME
    LOG_DIR = HOME / "Library" / "Logs" / APP_NAME
elif sys.platform == "win32":
    APP_SUPPORT_DIR = pathlib.Path(os.environ.get("APPDATA", HOME)) / APP_NAME
    LOG_DIR = APP_SUPPORT_DIR / "logs"
else:
    APP_SUPPORT_DIR = HOME / ".config" / "parsepal"
    LOG_DIR = HOME / ".cache" / "parsepal" / "logs"

CONFIG_PATH = APP_SUPPORT_DIR / "config.json"
HISTORY_DB_PATH = APP_SUPPORT_DIR / "history.db"

# ── Game install layout ───────────────────────────────────────────────
class GameVersion:
    RETAIL = "retail"
    CLASSIC = "classic"
    CLASSIC_ERA = "classic_era"

GAME_VERSIONS = (GameVersion.RETAIL, GameVersion.CLASSIC, GameVersion.CLASSIC_ERA)

COMBAT_LOG_NAME = "WoWCombatLog.txt"

DEFAULT_WOW_CANDIDATES = [
    "C:/Program Files (x86)/World of Warcraft",
    "C:/Program Files/World of Warcraft",
    "D:/World of Warcraft",
    "D:/Games/World of Warcraft",
    "/Applications/World of Warcraft",
]

# ── Combat log grammar ────────────────────────────────────────────────
TIMESTAMP_DELIMITER = "  "
LOG_VERSION_MARKER = "COMBAT_LOG_VERSION"
ENCOUNTER_START = "ENCOUNTER_START"
ENCOUNTER_END = "ENCOUNTER_END"
CHALLENGE_MODE_START = "CHALLENGE_MODE_START"
CHALLENGE_MODE_END = "CHALLENGE_MODE_END"

PLAYER_GUID_PATTERN = r"Player-[0-9A-F]+-[0-9A-F]+"

# The log carries no year; 2000 is a leap year so 2/29 still parses.
LOG_TIMESTAMP_YEAR = 2000

UNKNOWN_DUNGEON = "Unknown Dungeon"
UNKNOWN_ENCOUNTER = "Unknown"

# ── Status values ─────────────────────────────────────────────────────
class FightKind:
    RAID = "raid"
    MYTHIC_PLUS = "mythicplus"

class WatcherStatus:
    IDLE = "idle"
    WATCHING = "watching"
    ERROR = "error"

class UploadStatus:
    QUEUED = "queued"
    UPLOADING = "uploading"
    DONE = "done"
    ERROR = "error"

TERMINAL_UPLOAD_STATUSES = {UploadStatus.DONE, UploadStatus.ERROR}

# ── Error codes ───────────────────────────────────────────────────────
class ErrorCode:
    # Non-retryable
    FILE_ACCESS = "ERR_FILE_ACCESS"
    WATCH_SUBSCRIPTION = "ERR_WATCH_SUBSCRIPTION"
    PARSE_ANOMALY = "ERR_PARSE_ANOMALY"
    UPLOAD_FAILED = "ERR_UPLOAD_FAILED"

    # Retryable
    NETWORK_TRANSIENT = "ERR_NETWORK_TRANSIENT"
    HTTP_ERROR = "ERR_HTTP_ERROR"
    BAD_RESPONSE = "ERR_BAD_RESPONSE"

RETRYABLE_ERRORS = {
    ErrorCode.NETWORK_TRANSIENT,
    ErrorCode.HTTP_ERROR,
    ErrorCode.BAD_RESPONSE,
}

# ── Tailer ────────────────────────────────────────────────────────────
STABILITY_WINDOW_SEC = 0.2
POLL_INTERVAL_SEC = 1.0
WATCH_HEALTH_INTERVAL_SEC = 1.0

# ── Upload ────────────────────────────────────────────────────────────
API_BASE = "https://parsepal-production.up.railway.app"
UPLOAD_PATH = "/api/upload/desktop"
MAX_UNCOMPRESSED_BYTES = 1024 * 1024     # 1 MiB
UPLOAD_FILENAME = "fight.txt"
UPLOAD_FILENAME_GZ = "fight.txt.gz"

MAX_UPLOAD_ATTEMPTS = 3
RETRY_DELAYS_SEC = (1.0, 2.0, 4.0)      # the last one is never slept
MIN_UPLOAD_TIMEOUT_SEC = 60

# ── Progress mapping ─────────────────────────────────────────────────
PROGRESS_QUEUED = 0
PROGRESS_UPLOAD_START = 10
PROGRESS_ATTEMPT_BASE = 30
PROGRESS_ATTEMPT_STEP = 20
PROGRESS_DONE = 100
PROGRESS_FAILED = 0

# ── History ───────────────────────────────────────────────────────────
DEFAULT_HISTORY_LIMIT = 50
