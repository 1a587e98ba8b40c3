"""Application configuration defaults and fresh-read config sources."""

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, List, Mapping, Protocol

from driftlint.errors import ConfigurationError

LOGGER = logging.getLogger(__name__)

DEFAULT_ANALYSIS_DELAY_MS = 3000
DEFAULT_EXCLUDED_EXTENSIONS = (".txt", ".md", ".json", ".xml", ".yaml", ".yml", ".log")
DEFAULT_API_BASE = "http://127.0.0.1:11434/v1"
API_KEY_ENV = "DRIFTLINT_API_KEY"
CONFIG_ENV = "DRIFTLINT_CONFIG"

# Keys used by editor settings files.
_HOST_KEY_ALIASES = {
    "analysisInterval": "analysis_delay_ms",
    "excludedFileExtensions": "excluded_extensions",
    "apiBase": "api_base",
    "apiKey": "api_key",
    "requestTimeout": "request_timeout",
    "dbPath": "db_path",
}


def _get_default_db_path() -> Path:
    """Get the default ledger path based on platform and execution context."""
    local_db = Path("data/driftlint.db")
    if local_db.exists():
        return local_db

    if sys.platform == "win32":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home()))
        return base / "DriftLint" / "driftlint.db"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "DriftLint" / "driftlint.db"
    return Path.home() / ".local" / "share" / "driftlint" / "driftlint.db"


@dataclass(slots=True)
class AppConfig:
    enabled: bool = True
    model: str = ""
    analysis_delay_ms: int = DEFAULT_ANALYSIS_DELAY_MS
    languages: List[str] = field(default_factory=list)
    excluded_extensions: List[str] = field(
        default_factory=lambda: list(DEFAULT_EXCLUDED_EXTENSIONS)
    )
    api_base: str = DEFAULT_API_BASE
    api_key: str | None = None
    request_timeout: float = 120.0
    db_path: Path | None = None

    def __post_init__(self) -> None:
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        if self.analysis_delay_ms < 0:
            raise ConfigurationError(
                f"analysis_delay_ms must be >= 0, got {self.analysis_delay_ms}"
            )

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        if Path(self.db_path).is_absolute() or base_dir is None:
            return Path(self.db_path)
        return base_dir / self.db_path

    def resolve_api_key(self) -> str | None:
        return self.api_key or os.environ.get(API_KEY_ENV)

    @classmethod
    def from_mapping(
        cls, data: Mapping[str, Any], *, base: AppConfig | None = None
    ) -> AppConfig:
        """Build a config from a settings mapping, validating value types.

        Keys missing from ``data`` keep the value from ``base`` (or the default).
        """
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in data.items():
            name = _HOST_KEY_ALIASES.get(key, key)
            if name not in known:
                LOGGER.warning("Ignoring unknown setting '%s'", key)
                continue
            values[name] = _coerce(name, value)
        if base is None:
            return cls(**values)
        return replace(base, **values)


def _coerce(name: str, value: Any) -> Any:
    if name == "enabled":
        if not isinstance(value, bool):
            raise ConfigurationError(f"'{name}' must be a boolean, got {value!r}")
        return value
    if name == "analysis_delay_ms":
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigurationError(f"'{name}' must be an integer, got {value!r}")
        return value
    if name == "request_timeout":
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            raise ConfigurationError(f"'{name}' must be a positive number, got {value!r}")
        return float(value)
    if name in ("languages", "excluded_extensions"):
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise ConfigurationError(f"'{name}' must be a list of strings, got {value!r}")
        return list(value)
    if name == "db_path":
        if value is None:
            return None
        if not isinstance(value, str):
            raise ConfigurationError(f"'{name}' must be a string path, got {value!r}")
        return Path(value).expanduser()
    if name == "api_key":
        if value is not None and not isinstance(value, str):
            raise ConfigurationError(f"'{name}' must be a string, got {value!r}")
        return value
    if not isinstance(value, str):
        raise ConfigurationError(f"'{name}' must be a string, got {value!r}")
    return value


class ConfigSource(Protocol):
    """Anything that can hand out the current settings."""

    def current(self) -> AppConfig: ...


class StaticConfigSource:
    """In-memory settings; `update` takes effect on the next decision."""

    def __init__(self, config: AppConfig | None = None) -> None:
        self._config = config or AppConfig()

    def current(self) -> AppConfig:
        return self._config

    def update(self, **changes: Any) -> AppConfig:
        self._config = replace(self._config, **changes)
        return self._config


class FileConfigSource:
    """Settings backed by a JSON file that is re-read on every call.

    A missing file yields the defaults; an unreadable or invalid one raises
    :class:`ConfigurationError`.
    """

    def __init__(self, path: Path, *, defaults: AppConfig | None = None) -> None:
        self.path = Path(path)
        self._defaults = defaults or AppConfig()

    def current(self) -> AppConfig:
        if not self.path.exists():
            return self._defaults
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"Cannot read settings file {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigurationError(f"Settings file {self.path} must contain a JSON object")
        section = data.get("driftlint", data)
        if not isinstance(section, dict):
            raise ConfigurationError(f"'driftlint' section in {self.path} must be an object")
        return AppConfig.from_mapping(section, base=self._defaults)


def load_config_source(path: Path | None = None) -> ConfigSource:
    """File-backed settings when a path is given (or set in the environment)."""
    if path is None and os.environ.get(CONFIG_ENV):
        path = Path(os.environ[CONFIG_ENV])
    if path is None:
        return StaticConfigSource()
    return FileConfigSource(Path(path).expanduser())
