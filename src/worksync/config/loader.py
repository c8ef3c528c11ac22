"""Load and merge configuration from .worksync.toml and env vars."""

from __future__ import annotations

import dataclasses
import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Optional

from worksync.config.schema import (
    BackendConfig,
    CommitConfig,
    LoggingConfig,
    PollingConfig,
    RepositoriesConfig,
    WorkSyncConfig,
)

CONFIG_FILENAME = ".worksync.toml"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class ConfigError(Exception):
    """Raised when config is malformed or unreadable."""


def find_config_file(base_dir: Path, override: Optional[str] = None) -> Optional[Path]:
    """Locate the config file. *override* takes precedence."""
    if override:
        p = Path(override)
        if not p.is_file():
            raise ConfigError(f"Config file not found: {override}")
        return p
    candidate = base_dir / CONFIG_FILENAME
    return candidate if candidate.is_file() else None


def _parse_toml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"Failed to parse {path}: {exc}") from exc


def _env_float(name: str) -> Optional[float]:
    val = os.environ.get(name)
    if not val:
        return None
    try:
        return float(val)
    except ValueError:
        return None


def _merge_env_overrides(cfg: WorkSyncConfig) -> None:
    """Apply WORKSYNC_* environment variable overrides."""
    if val := os.environ.get("WORKSYNC_BACKEND_URL"):
        cfg.backend.url = val
    if (timeout := _env_float("WORKSYNC_BACKEND_TIMEOUT")) is not None and timeout > 0:
        cfg.backend.timeout = timeout
    if (interval := _env_float("WORKSYNC_POLL_INTERVAL")) is not None and interval > 0:
        cfg.polling.interval = interval
    if val := os.environ.get("WORKSYNC_LOG_LEVEL"):
        if val.upper() in _LOG_LEVELS:
            cfg.logging.level = val.upper()  # type: ignore[assignment]
    if val := os.environ.get("WORKSYNC_LOG_FILE"):
        cfg.logging.file = val


def _build_section(data: Dict[str, Any], cls: type, section: str):
    """Build a dataclass from a TOML section dict, ignoring unknown keys."""
    raw = data.get(section, {})
    if not isinstance(raw, dict):
        raise ConfigError(f"[{section}] must be a table")
    valid_fields = {f.name for f in dataclasses.fields(cls)}
    filtered = {k: v for k, v in raw.items() if k in valid_fields}
    return cls(**filtered)


def _validate(cfg: WorkSyncConfig) -> None:
    if cfg.polling.interval <= 0:
        raise ConfigError("polling.interval must be positive")
    if cfg.backend.timeout <= 0:
        raise ConfigError("backend.timeout must be positive")
    if str(cfg.logging.level).upper() not in _LOG_LEVELS:
        raise ConfigError(f"Invalid logging.level: {cfg.logging.level}")
    cfg.logging.level = str(cfg.logging.level).upper()  # type: ignore[assignment]


def load_config(
    base_dir: Optional[Path] = None,
    config_override: Optional[str] = None,
) -> WorkSyncConfig:
    """Load, validate, and return a WorkSyncConfig."""
    config_path = find_config_file(base_dir or Path.cwd(), config_override)

    if config_path is None:
        cfg = WorkSyncConfig()
    else:
        raw = _parse_toml(config_path)
        cfg = WorkSyncConfig(
            version=raw.get("version", "1.0"),
            backend=_build_section(raw, BackendConfig, "backend"),
            polling=_build_section(raw, PollingConfig, "polling"),
            commit=_build_section(raw, CommitConfig, "commit"),
            logging=_build_section(raw, LoggingConfig, "logging"),
            repositories=_build_section(raw, RepositoriesConfig, "repositories"),
        )

    _merge_env_overrides(cfg)
    _validate(cfg)
    return cfg
