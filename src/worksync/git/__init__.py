"""Git data layer — diff parsing and working-copy models."""

from worksync.git.diff_parser import DiffParser, extract_file_diff, parse_changes
from worksync.git.models import (
    BranchState,
    CommitLogEntry,
    DiffSnapshot,
    FileChange,
    FileStatus,
    PullStatus,
    RepositoryHandle,
)

__all__ = [
    "BranchState",
    "CommitLogEntry",
    "DiffParser",
    "DiffSnapshot",
    "FileChange",
    "FileStatus",
    "PullStatus",
    "RepositoryHandle",
    "extract_file_diff",
    "parse_changes",
]
