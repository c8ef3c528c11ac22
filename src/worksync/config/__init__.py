"""Configuration loading, schema, and defaults."""

from worksync.config.loader import ConfigError, load_config
from worksync.config.schema import WorkSyncConfig

__all__ = [
    "ConfigError",
    "WorkSyncConfig",
    "load_config",
]
