"""Data models for working-copy state."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple


class FileStatus(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


@dataclass(frozen=True)
class RepositoryHandle:
    """Identity of a working copy. Replaced wholesale on repository switch."""

    provider: str
    owner: str
    name: str
    path: str = ""  # empty until the backend has cloned / opened it
    clone_url: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}" if self.owner else self.name

    def with_path(self, path: str) -> "RepositoryHandle":
        return RepositoryHandle(
            provider=self.provider,
            owner=self.owner,
            name=self.name,
            path=path,
            clone_url=self.clone_url,
        )


@dataclass(frozen=True, slots=True)
class FileChange:
    """A single file section of a unified diff."""

    path: str
    status: FileStatus = FileStatus.MODIFIED


@dataclass(frozen=True)
class DiffSnapshot:
    """Raw diff text as fetched at one point in time."""

    raw_text: str
    fetched_at: datetime

    @property
    def is_empty(self) -> bool:
        return not self.raw_text.strip()


@dataclass(frozen=True)
class BranchState:
    current: str = ""
    all: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PullStatus:
    up_to_date: Optional[bool] = None  # unknown until the first status fetch
    behind_count: int = 0
    last_checked_at: Optional[datetime] = None


@dataclass(frozen=True)
class CommitLogEntry:
    hash: str
    message: str = ""
    web_url: Optional[str] = None

    @property
    def short_hash(self) -> str:
        return self.hash[:7]
