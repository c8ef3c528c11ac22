"""Configuration schema — dataclasses for every config section."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]

DEFAULT_POLL_INTERVAL = 5.0


@dataclass
class BackendConfig:
    url: str = "http://localhost:8080"
    timeout: float = 30.0  # seconds, applies to every request


@dataclass
class PollingConfig:
    interval: float = DEFAULT_POLL_INTERVAL  # seconds between diff/status ticks
    diff: bool = True
    status: bool = True


@dataclass
class CommitConfig:
    message_prefix: str = "claude-"  # followed by an ISO-8601 UTC timestamp


@dataclass
class LoggingConfig:
    level: LogLevel = "INFO"
    file: Optional[str] = None  # no file logging unless set
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5


@dataclass
class RepositoriesConfig:
    file: str = ".worksync-repos.yaml"


@dataclass
class WorkSyncConfig:
    version: str = "1.0"
    backend: BackendConfig = field(default_factory=BackendConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    commit: CommitConfig = field(default_factory=CommitConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    repositories: RepositoriesConfig = field(default_factory=RepositoriesConfig)
