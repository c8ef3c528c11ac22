"""Unified diff parser — file sections, status classification, per-file slices.

The parser only looks at the per-file headers git writes between a
``diff --git`` line and the first hunk; hunk content is never interpreted.
Malformed or truncated input yields an empty or partial result, never an
exception.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from worksync.git.models import FileChange, FileStatus

# --- Regex patterns for diff parsing ---

_DIFF_HEADER_PREFIX = "diff --git "
# Either side may be C-quoted by git (core.quotepath) when the path has
# non-ASCII bytes or special characters
_DIFF_HEADER_RE = re.compile(
    r'^diff --git (?:"a/((?:[^"\\]|\\.)*)"|a/(.+?)) (?:"b/((?:[^"\\]|\\.)*)"|b/(.+))$'
)
_NEW_FILE_RE = re.compile(r"^new file mode ")
_DELETED_FILE_RE = re.compile(r"^deleted file mode ")
_RENAME_FROM_RE = re.compile(r"^rename from (.+)$")
_RENAME_TO_RE = re.compile(r"^rename to (.+)$")

_OCTAL_DIGITS = "01234567"
_C_ESCAPES = {
    "a": 0x07, "b": 0x08, "t": 0x09, "n": 0x0A,
    "v": 0x0B, "f": 0x0C, "r": 0x0D, '"': 0x22, "\\": 0x5C,
}


def _c_unescape(text: str) -> str:
    """Decode git's C-style escapes (``\\303\\251``, ``\\t``, ``\\"``) as UTF-8."""
    out = bytearray()
    idx = 0
    while idx < len(text):
        ch = text[idx]
        if ch == "\\" and idx + 1 < len(text):
            nxt = text[idx + 1]
            if nxt in _OCTAL_DIGITS:
                end = idx + 1
                while end < len(text) and end < idx + 4 and text[end] in _OCTAL_DIGITS:
                    end += 1
                out.append(int(text[idx + 1:end], 8) & 0xFF)
                idx = end
                continue
            if nxt in _C_ESCAPES:
                out.append(_C_ESCAPES[nxt])
                idx += 2
                continue
        out.extend(ch.encode("utf-8"))
        idx += 1
    return out.decode("utf-8", errors="replace")


def _unquote_path(path: str) -> str:
    """Strip git's quoting from a path, if present."""
    if len(path) >= 2 and path.startswith('"') and path.endswith('"'):
        return _c_unescape(path[1:-1])
    return path


def _header_paths(line: str) -> Tuple[str, str]:
    m = _DIFF_HEADER_RE.match(line)
    if not m:
        return "", ""
    quoted_old, plain_old, quoted_new, plain_new = m.groups()
    old_path = _c_unescape(quoted_old) if quoted_old is not None else plain_old
    new_path = _c_unescape(quoted_new) if quoted_new is not None else plain_new
    return old_path, new_path


@dataclass(frozen=True)
class _Section:
    """Line range [start, end) of one file block, plus header paths."""

    start: int
    end: int
    old_path: str
    new_path: str


class DiffParser:
    """Split unified diff text into per-file sections.

    Usage::

        parser = DiffParser(diff_text)
        for change in parser.parse():
            print(change.path, change.status)

        only_one = parser.extract_file_diff("src/app.py")
    """

    def __init__(self, diff_text: Optional[str]) -> None:
        self._lines = (diff_text or "").split("\n")

    def _sections(self) -> Iterator[_Section]:
        """Yield every ``diff --git`` section in order of appearance."""
        idx = 0
        total = len(self._lines)
        while idx < total:
            line = self._lines[idx]
            if not line.startswith(_DIFF_HEADER_PREFIX):
                idx += 1
                continue
            old_path, new_path = _header_paths(line.rstrip("\r"))
            end = idx + 1
            while end < total and not self._lines[end].startswith(_DIFF_HEADER_PREFIX):
                end += 1
            yield _Section(start=idx, end=end, old_path=old_path, new_path=new_path)
            idx = end

    def parse(self) -> List[FileChange]:
        """Return one FileChange per file section, in diff order."""
        changes: List[FileChange] = []
        for section in self._sections():
            changes.append(self._classify(section))
        return changes

    def _classify(self, section: _Section) -> FileChange:
        old_path = section.old_path
        new_path = section.new_path
        status = FileStatus.MODIFIED

        for raw in self._lines[section.start + 1:section.end]:
            line = raw.rstrip("\r")
            if _NEW_FILE_RE.match(line):
                status = FileStatus.ADDED
            elif _DELETED_FILE_RE.match(line):
                status = FileStatus.DELETED
            elif (rt := _RENAME_TO_RE.match(line)):
                status = FileStatus.RENAMED
                new_path = _unquote_path(rt.group(1))
            elif _RENAME_FROM_RE.match(line):
                status = FileStatus.RENAMED

        # Deleted files no longer have a post-image
        path = old_path if status == FileStatus.DELETED else new_path
        return FileChange(path=path, status=status)

    def extract_file_diff(self, path: str) -> str:
        """Return the section whose pre- or post-image path is *path*, or ''."""
        if not path:
            return ""
        for section in self._sections():
            if path in (section.old_path, section.new_path):
                text = "\n".join(self._lines[section.start:section.end])
                # Keep the separator before the next header so the slice is
                # an exact substring of the input
                if section.end < len(self._lines):
                    text += "\n"
                return text
        return ""


def parse_changes(diff_text: Optional[str]) -> List[FileChange]:
    """Shorthand for ``DiffParser(diff_text).parse()``."""
    return DiffParser(diff_text).parse()


def extract_file_diff(diff_text: Optional[str], path: str) -> str:
    """Shorthand for ``DiffParser(diff_text).extract_file_diff(path)``."""
    return DiffParser(diff_text).extract_file_diff(path)
