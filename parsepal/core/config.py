"""
Application configuration manager.
Stores settings in a JSON file under the application support directory.
"""

import json
import logging
import os
from pathlib import Path
from typing import Callable

from parsepal.core.constants import (
    CONFIG_PATH, API_BASE, GAME_VERSIONS, GameVersion, DEFAULT_HISTORY_LIMIT,
)
from parsepal.core.game_paths import combat_log_path

# Validation bounds
_HISTORY_LIMIT_MIN = 1
_HISTORY_LIMIT_MAX = 1000

TOKEN_ENV_VAR = "PARSEPAL_AUTH_TOKEN"

# Settings whose change requires the tailer/pipeline to be rebuilt
RESTART_KEYS = {'wow_path', 'game_version', 'auth_token', 'api_base', 'use_polling'}

logger = logging.getLogger(__name__)

_DEFAULTS = {
    'wow_path': '',
    'game_version': GameVersion.RETAIL,
    'auth_token': '',
    'api_base': API_BASE,
    'auto_upload': True,
    'history_limit': DEFAULT_HISTORY_LIMIT,
    'use_polling': False,
}


class AppConfig:
    """Manages application configuration stored as JSON."""

    def __init__(self, config_path: Path | None = None):
        self.path = config_path or CONFIG_PATH
        self._data: dict = {}
        self._listeners: list[Callable[[str, object], None]] = []
        self.load()

    def load(self):
        """Load config from disk, merging with defaults."""
        self._data = dict(_DEFAULTS)
        if self.path.exists():
            try:
                with open(self.path, 'r') as f:
                    saved = json.load(f)
                for key, value in saved.items():
                    self._data[key] = self._validate(key, value)
            except Exception as e:
                logger.warning("Failed to load config: %s", e)

    def save(self):
        """Persist config to disk."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w') as f:
            json.dump(self._data, f, indent=2)

    def get(self, key: str, default=None):
        return self._data.get(key, default)

    def set(self, key: str, value):
        value = self._validate(key, value)
        changed = self._data.get(key) != value
        self._data[key] = value
        self.save()
        if changed and key in RESTART_KEYS:
            self._notify(key, value)

    def update(self, values: dict):
        for key, value in values.items():
            self.set(key, value)

    def _validate(self, key: str, value):
        """Validate and coerce config values to safe ranges."""
        if key == 'game_version':
            if value not in GAME_VERSIONS:
                logger.warning("Invalid game_version %r — using %s", value, GameVersion.RETAIL)
                return GameVersion.RETAIL

        if key == 'history_limit':
            try:
                value = int(value)
            except (TypeError, ValueError):
                logger.warning("Invalid history_limit %r — using default", value)
                return DEFAULT_HISTORY_LIMIT
            return max(_HISTORY_LIMIT_MIN, min(_HISTORY_LIMIT_MAX, value))

        if key == 'api_base':
            value = str(value or API_BASE).rstrip('/')
            if not value.startswith('https://'):
                logger.warning("api_base %r is not HTTPS", value)

        if key in ('wow_path', 'auth_token'):
            return str(value or '')

        if key in ('auto_upload', 'use_polling'):
            return bool(value)

        return value

    def as_dict(self) -> dict:
        return dict(self._data)

    # ── Change notification ───────────────────────────────────────────

    def add_listener(self, callback: Callable[[str, object], None]) -> Callable[[], None]:
        """Call callback(key, value) whenever a restart-relevant setting changes."""
        self._listeners.append(callback)
        return lambda: self._listeners.remove(callback) if callback in self._listeners else None

    def _notify(self, key: str, value):
        for callback in list(self._listeners):
            try:
                callback(key, value)
            except Exception as e:
                logger.error("Config listener failed: %s", e, exc_info=True)

    # ── Accessors ─────────────────────────────────────────────────────

    @property
    def wow_path(self) -> str:
        return self._data.get('wow_path', '')

    @property
    def game_version(self) -> str:
        return self._data.get('game_version', GameVersion.RETAIL)

    @property
    def auth_token(self) -> str:
        """Current token; the environment overrides the stored value."""
        return os.environ.get(TOKEN_ENV_VAR) or self._data.get('auth_token', '')

    @property
    def api_base(self) -> str:
        return self._data.get('api_base', API_BASE)

    @property
    def auto_upload(self) -> bool:
        return self._data.get('auto_upload', True)

    @property
    def history_limit(self) -> int:
        return self._data.get('history_limit', DEFAULT_HISTORY_LIMIT)

    @property
    def use_polling(self) -> bool:
        return self._data.get('use_polling', False)

    @property
    def log_path(self) -> Path | None:
        if not self.wow_path:
            return None
        return combat_log_path(self.wow_path, self.game_version)
