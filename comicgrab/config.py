"""Configuration objects and loading for the comic grabber."""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv

from .errors import ConfigError

logger = logging.getLogger("comicgrab.config")

DEFAULT_CONFIG_FILE = Path("config.toml")
ENV_PREFIX = "COMICGRAB_"


def _default_worker_count() -> int:
    return os.cpu_count() or 4


@dataclass
class Settings:
    """Top-level settings that control browsing, fetching and encoding."""

    output_root: Path = Path(".")
    driver_path: Optional[Path] = None
    browser_binary_path: Optional[Path] = None
    http_proxy: Optional[str] = None
    headless: bool = True
    driver_host: str = "localhost"
    driver_port: int = 4444
    navigation_timeout: float = 30.0
    warm_up_delay: float = 2.0
    key_press_delay: float = 0.1
    max_page_turns: int = 2000
    max_concurrent_fetches: int = 16
    request_timeout: float = 30.0
    handoff_capacity: int = 30
    worker_count: int = field(default_factory=_default_worker_count)


_PATH_FIELDS = {"output_root", "driver_path", "browser_binary_path"}
_KNOWN_FIELDS = {f.name: f for f in fields(Settings)}
_TABLE_ALIASES = {"firefox_binary_path": "browser_binary_path"}


def _coerce(name: str, value: Any) -> Any:
    if value is None:
        return None
    default = getattr(Settings(), name)
    try:
        if name in _PATH_FIELDS:
            return Path(value).expanduser()
        if isinstance(default, bool):
            if isinstance(value, str):
                return value.strip().lower() in {"1", "true", "yes", "on"}
            return bool(value)
        if isinstance(default, int):
            return int(value)
        if isinstance(default, float):
            return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid value for {name}: {value!r}") from exc
    return str(value)


def _flatten_file_values(data: Mapping[str, Any], source: Path) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, Mapping):
            # Tables such as [driver] only group keys; they add no namespace.
            values.update(_flatten_file_values(value, source))
            continue
        name = _TABLE_ALIASES.get(key, key)
        if name not in _KNOWN_FIELDS:
            raise ConfigError(f"unknown setting {key!r} in {source}")
        values[name] = value
    return values


def read_config_file(path: Optional[Path]) -> Dict[str, Any]:
    """Read a TOML config file into a flat mapping of setting names."""
    explicit = path is not None
    path = path or DEFAULT_CONFIG_FILE
    if not path.exists():
        if explicit:
            raise ConfigError(f"config file not found: {path}")
        return {}
    try:
        with path.open("rb") as fh:
            data = tomllib.load(fh)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"cannot read config file {path}: {exc}") from exc
    logger.debug("Loaded settings from %s", path)
    return _flatten_file_values(data, path)


def read_environment(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Collect ``COMICGRAB_*`` variables that name a known setting."""
    environ = os.environ if environ is None else environ
    values: Dict[str, Any] = {}
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        name = key[len(ENV_PREFIX):].lower()
        if name in _KNOWN_FIELDS and value != "":
            values[name] = value
    return values


def load_settings(
    config_path: Optional[Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build settings from defaults, config file, environment and overrides."""
    if environ is None:
        load_dotenv()
    merged: Dict[str, Any] = {}
    merged.update(read_config_file(config_path))
    merged.update(read_environment(environ))
    merged.update({k: v for k, v in (overrides or {}).items() if v is not None})

    unknown = set(merged) - set(_KNOWN_FIELDS)
    if unknown:
        raise ConfigError(f"unknown settings: {', '.join(sorted(unknown))}")

    settings = replace(
        Settings(), **{name: _coerce(name, value) for name, value in merged.items()}
    )
    if settings.worker_count < 1 or settings.handoff_capacity < 1:
        raise ConfigError("worker_count and handoff_capacity must be positive")
    if settings.max_concurrent_fetches < 1:
        raise ConfigError("max_concurrent_fetches must be positive")
    return settings
