"""Configuration management for Tagged Notes."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

_CONFIG_VERSION = 2

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _default_config_path() -> Path:
    """Get default config file path following XDG spec."""
    config_home = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return config_home / "tagged-notes" / "config.json"


def _default_db_path() -> str:
    data_home = Path(
        os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share")
    )
    return str(data_home / "tagged-notes" / "notes.db")


class Config:
    """Application configuration with persistence."""

    def __init__(self, config_path: Path | None = None) -> None:
        self._path = config_path or _default_config_path()
        self._data: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        """Load config from disk or return defaults."""
        if not self._path.exists():
            return self._defaults()
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
                data = self._migrate(data)
                if data.get("version") != _CONFIG_VERSION:
                    return self._defaults()
                return data
        except (OSError, json.JSONDecodeError):
            return self._defaults()

    def _migrate(self, data: dict[str, Any]) -> dict[str, Any]:
        if data.get("version") == 1:
            data["db_path"] = data.pop("database", _default_db_path())
            data.setdefault("log_level", "INFO")
            data["version"] = 2
        return data

    def _defaults(self) -> dict[str, Any]:
        """Return default configuration."""
        return {
            "version": _CONFIG_VERSION,
            "db_path": _default_db_path(),
            "log_level": os.getenv("TAGGED_NOTES_LOG_LEVEL", "INFO").upper(),
        }

    def save(self) -> None:
        """Persist config to disk."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "w", encoding="utf-8") as f:
            json.dump(self._data, f, indent=2)

    # -- Getters with env var fallback --

    @property
    def db_path(self) -> str:
        override = os.getenv("TAGGED_NOTES_DB")
        if override:
            return override
        return str(self._data.get("db_path") or _default_db_path())

    @property
    def log_level(self) -> int:
        name = str(self._data.get("log_level", "INFO")).upper()
        if name not in _LOG_LEVELS:
            name = "INFO"
        return logging.getLevelName(name)

    # -- Setters --

    def set_db_path(self, value: str) -> None:
        self._data["db_path"] = value.strip()

    def set_log_level(self, value: str) -> None:
        value = value.strip().upper()
        if value not in _LOG_LEVELS:
            raise ValueError(f"Unknown log level '{value}'")
        self._data["log_level"] = value
