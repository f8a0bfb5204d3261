"""Worktree status parsing and filtering.

Parses ``git status --porcelain`` output into entries and decides which of
them make a worktree dirty once ``ignore_dirty_paths`` patterns are applied.

Ignore pattern rules:
    - contains ``*``, ``?`` or ``[``: matched with fnmatch
    - ends with ``/``: matches everything under that directory
    - otherwise: the exact path, or anything under it as a directory
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from fnmatch import fnmatch

UNTRACKED_CODE = "??"
IGNORED_CODE = "!!"
MAX_REPORTED_ENTRIES = 5
RENAME_SEPARATOR = " -> "
C_ESCAPES = {"a": 7, "b": 8, "t": 9, "n": 10, "v": 11, "f": 12, "r": 13, "\"": 34, "\\": 92}


@dataclass(frozen=True)
class StatusEntry:
    """One line of porcelain status output.

    Attributes:
        code: Two-character XY status code
        path: Path relative to the repository root (the new path for renames)
        original_path: Source path of a rename or copy
    """

    code: str
    path: str
    original_path: str | None = None

    @property
    def untracked(self) -> bool:
        return self.code == UNTRACKED_CODE

    @property
    def ignored(self) -> bool:
        return self.code == IGNORED_CODE

    def __str__(self) -> str:
        return f"{self.code} {self.path}"

    @classmethod
    def parse(cls, line: str) -> "StatusEntry | None":
        """Parse a porcelain v1 line; returns None for blank or short lines.

        Paths git quoted as C strings are decoded. Surrounding whitespace in
        a path is kept.
        """
        if len(line) < 4 or not line[3:].strip():
            return None
        code = line[:2]
        path = line[3:]
        original_path = None
        if _is_copy_or_rename(code):
            original_path, path = _split_rename(path)
        return cls(code=code, path=_unquote(path), original_path=_unquote(original_path) if original_path else None)


def parse_porcelain(output: str) -> list[StatusEntry]:
    """Parse full ``git status --porcelain`` output."""
    entries = []
    for line in output.splitlines():
        entry = StatusEntry.parse(line)
        if entry is not None:
            entries.append(entry)
    return entries


def parse_porcelain_z(output: str) -> list[StatusEntry]:
    """Parse ``git status --porcelain -z`` output.

    Records are NUL-terminated and paths are never quoted. A rename or copy
    record is followed by a second field holding the source path.
    """
    fields = output.split("\0")
    entries = []
    index = 0
    while index < len(fields):
        record = fields[index]
        index += 1
        if len(record) < 4:
            continue
        code = record[:2]
        original_path = None
        if _is_copy_or_rename(code) and index < len(fields):
            original_path = fields[index] or None
            index += 1
        entries.append(StatusEntry(code=code, path=record[3:], original_path=original_path))
    return entries


def matches_ignore_pattern(path: str, pattern: str) -> bool:
    """Check a repository-relative path against one ignore pattern."""
    pattern = pattern.strip()
    if not pattern:
        return False
    normalized = path.strip()
    if normalized.startswith("./"):
        normalized = normalized[2:]

    if any(char in pattern for char in "*?["):
        return fnmatch(normalized, pattern)
    if pattern.endswith("/"):
        return normalized.startswith(pattern) or normalized == pattern.rstrip("/")
    return normalized == pattern or normalized.startswith(pattern + "/")


def filter_status_entries(entries: Iterable[StatusEntry], ignore_patterns: Sequence[str] = ()) -> list[StatusEntry]:
    """Entries that make the worktree dirty.

    Ignored (``!!``) entries never count. An entry is dropped when its path,
    and for renames its original path too, matches an ignore pattern.
    """
    remaining = []
    for entry in entries:
        if entry.ignored:
            continue
        paths = [entry.path] + ([entry.original_path] if entry.original_path else [])
        if ignore_patterns and all(_ignored(p, ignore_patterns) for p in paths):
            continue
        remaining.append(entry)
    return remaining


def split_status_entries(entries: Iterable[StatusEntry]) -> tuple[list[StatusEntry], list[StatusEntry]]:
    """Split entries into (tracked changes, untracked files)."""
    tracked: list[StatusEntry] = []
    untracked: list[StatusEntry] = []
    for entry in entries:
        (untracked if entry.untracked else tracked).append(entry)
    return tracked, untracked


def describe_dirty_entries(entries: Sequence[StatusEntry]) -> str:
    """Human-readable reason for a dirty worktree.

    Lists at most five entries, then names every untracked file so operators
    can see what is blocking without inspecting the repository.
    """
    shown = ", ".join(str(entry) for entry in entries[:MAX_REPORTED_ENTRIES])
    reason = f"repository not clean: {shown}"
    if len(entries) > MAX_REPORTED_ENTRIES:
        reason += f" (+{len(entries) - MAX_REPORTED_ENTRIES} more)"
    _, untracked = split_status_entries(entries)
    if untracked:
        reason += "; untracked: " + ", ".join(entry.path for entry in untracked)
    return reason


def _ignored(path: str, patterns: Sequence[str]) -> bool:
    return any(matches_ignore_pattern(path, pattern) for pattern in patterns)


def _is_copy_or_rename(code: str) -> bool:
    return any(char in "RC" for char in code)


def _closing_quote(text: str) -> int | None:
    """Index of the quote ending the C string that starts ``text``."""
    index = 1
    while index < len(text):
        if text[index] == "\\":
            index += 2
            continue
        if text[index] == '"':
            return index
        index += 1
    return None


def _split_rename(text: str) -> tuple[str | None, str]:
    """Split ``source -> target``, honouring quoted source paths."""
    if text.startswith('"'):
        end = _closing_quote(text)
        if end is not None and text[end + 1 :].startswith(RENAME_SEPARATOR):
            return text[: end + 1], text[end + 1 + len(RENAME_SEPARATOR) :]
        return None, text
    if RENAME_SEPARATOR in text:
        source, target = text.split(RENAME_SEPARATOR, 1)
        return source, target
    return None, text


def _unquote(path: str) -> str:
    """Decode a path git quoted as a C string (``core.quotePath``).

    Octal escapes are bytes of the UTF-8 encoded name, so the decoded
    bytes are collected before decoding.
    """
    if not (len(path) >= 2 and path.startswith('"') and path.endswith('"')):
        return path
    body = path[1:-1]
    decoded = bytearray()
    index = 0
    while index < len(body):
        char = body[index]
        if char != "\\" or index + 1 == len(body):
            decoded.extend(char.encode("utf-8"))
            index += 1
            continue
        escape = body[index + 1]
        octal = body[index + 1 : index + 4]
        if len(octal) == 3 and all(digit in "01234567" for digit in octal):
            decoded.append(int(octal, 8) & 0xFF)
            index += 4
        elif escape in C_ESCAPES:
            decoded.append(C_ESCAPES[escape])
            index += 2
        else:
            decoded.extend(escape.encode("utf-8"))
            index += 2
    return decoded.decode("utf-8", errors="surrogateescape")
