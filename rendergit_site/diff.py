"""
Per-commit diffs against the first parent.

A root commit is compared with the empty tree, a merge only with its first
parent. Paths, modes and ids come from `git diff-tree --raw`; hunks and line
counts come from git's own patch for the same pair of trees, so every number
on a page agrees with `git diff --numstat`.
"""

from __future__ import annotations

import dataclasses
import enum
import re
from typing import List, Optional, Protocol, Tuple

from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers.diff import DiffLexer

from .errors import CommitError, ObjectError
from .git import Commit, TreeChange
from .tree import is_text

DEFAULT_CONTEXT = 3
BAR_WIDTH = 40
SUBMODULE_MODE = "160000"

_FILE_HEADER = re.compile(rb"^diff --git ", re.MULTILINE)
_HUNK_HEADER = re.compile(rb"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")


class ChangeKind(enum.Enum):
    ADDED = "A"
    MODIFIED = "M"
    DELETED = "D"
    RENAMED = "R"
    TYPE_CHANGED = "T"

    @property
    def title(self) -> str:
        return {
            "A": "Added",
            "M": "Modified",
            "D": "Deleted",
            "R": "Renamed",
            "T": "Type change",
        }[self.value]


@dataclasses.dataclass
class Hunk:
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: List[Tuple[str, str]]   # (" " | "-" | "+", line text including its newline)

    @property
    def header(self) -> str:
        return f"@@ -{_range(self.old_start, self.old_count)} +{_range(self.new_start, self.new_count)} @@"


def _range(start: int, count: int) -> str:
    return str(start) if count == 1 else f"{start},{count}"


@dataclasses.dataclass
class DiffEntry:
    path: str
    old_path: Optional[str]
    kind: ChangeKind
    old_id: Optional[str]
    new_id: Optional[str]
    old_mode: Optional[str]
    new_mode: Optional[str]
    binary: bool = False
    hunks: List[Hunk] = dataclasses.field(default_factory=list)
    added: int = 0
    removed: int = 0
    old_size: int = 0              # blob sizes, 0 for a missing side or a submodule
    new_size: int = 0
    similarity: Optional[int] = None
    patch: str = ""                # git's patch text for this path

    @property
    def size_delta(self) -> int:
        return self.new_size - self.old_size


@dataclasses.dataclass(frozen=True)
class FileStat:
    path: str
    kind: ChangeKind
    added: int
    removed: int
    binary: bool
    size_delta: int

    @property
    def magnitude(self) -> int:
        return self.added + self.removed


@dataclasses.dataclass(frozen=True)
class DiffStat:
    files: Tuple[FileStat, ...]
    added: int
    removed: int
    max_magnitude: int

    @property
    def files_changed(self) -> int:
        return len(self.files)

    @classmethod
    def from_entries(cls, entries: List[DiffEntry]) -> "DiffStat":
        files = tuple(
            FileStat(e.path, e.kind, e.added, e.removed, e.binary, e.size_delta) for e in entries
        )
        return cls(
            files=files,
            added=sum(f.added for f in files),
            removed=sum(f.removed for f in files),
            max_magnitude=max((f.magnitude for f in files), default=0),
        )

    @property
    def summary(self) -> str:
        return (
            f"{self.files_changed} file{'' if self.files_changed == 1 else 's'} changed, "
            f"{self.added} insertion{'' if self.added == 1 else 's'}(+), "
            f"{self.removed} deletion{'' if self.removed == 1 else 's'}(-)"
        )


@dataclasses.dataclass
class CommitDiff:
    commit: Commit
    parent: Optional[str]
    entries: List[DiffEntry]
    stat: DiffStat


class DiffReader(Protocol):
    def read_commit(self, oid: str) -> Commit: ...
    def read_blob(self, oid: str) -> bytes: ...
    def diff_trees(self, old_tree: Optional[str], new_tree: str, detect_renames: bool = True) -> List[TreeChange]: ...
    def diff_patch(self, old_tree: Optional[str], new_tree: str, context: int = DEFAULT_CONTEXT, detect_renames: bool = True) -> bytes: ...


# ---- git patch parsing -------------------------------------------------------

def split_patch(out: bytes) -> List[bytes]:
    """Cut `git diff-tree -p` output into one section per `diff --git` header."""
    starts = [m.start() for m in _FILE_HEADER.finditer(out)]
    return [out[s:e] for s, e in zip(starts, starts[1:] + [len(out)])]


def parse_file_patch(section: bytes) -> Tuple[bool, List[Hunk]]:
    """Binary flag and hunks of one file section of a git patch."""
    binary = False
    hunks: List[Hunk] = []
    old_left = new_left = 0
    for line in section.split(b"\n"):
        if hunks and line.startswith(b"\\"):
            # "\ No newline at end of file" belongs to the line before it
            op, text = hunks[-1].lines[-1]
            hunks[-1].lines[-1] = (op, text[:-1] if text.endswith("\n") else text)
            continue
        if old_left > 0 or new_left > 0:
            op = line[:1].decode("ascii", errors="replace") or " "
            if op in ("+", "-", " "):
                hunks[-1].lines.append((op, line[1:].decode("utf-8", errors="replace") + "\n"))
                if op != "+":
                    old_left -= 1
                if op != "-":
                    new_left -= 1
            continue
        m = _HUNK_HEADER.match(line)
        if m:
            old_start, old_count, new_start, new_count = m.groups()
            old_left = int(old_count) if old_count is not None else 1
            new_left = int(new_count) if new_count is not None else 1
            hunks.append(Hunk(int(old_start), old_left, int(new_start), new_left, []))
        elif not hunks and (line.startswith(b"Binary files ") or line.startswith(b"GIT binary patch")):
            binary = True
    return binary, hunks


def _sections_for(change: TreeChange) -> int:
    # git prints a type change (file <-> symlink <-> submodule) as a deletion plus a creation
    return 2 if change.status == "T" else 1


def _side(repo: DiffReader, oid: Optional[str], mode: Optional[str]) -> bytes:
    if oid is None or mode == SUBMODULE_MODE:
        return b""
    return repo.read_blob(oid)


def _binary_patch(change: TreeChange, section: bytes) -> str:
    """git's header lines for `section` followed by a binary notice in place of its hunks."""
    head = []
    for line in section.split(b"\n"):
        if line.startswith(b"--- ") or line.startswith(b"@@"):
            break
        if line:
            head.append(line)
    old = b"a/" + change.old_path.encode("utf-8", errors="surrogateescape") if change.old_id else b"/dev/null"
    new = b"b/" + change.new_path.encode("utf-8", errors="surrogateescape") if change.new_id else b"/dev/null"
    head.append(b"Binary files " + old + b" and " + new + b" differ")
    return b"\n".join(head).decode("utf-8", errors="replace") + "\n"


def diff_change(repo: DiffReader, change: TreeChange, sections: List[bytes]) -> DiffEntry:
    kind = ChangeKind(change.status) if change.status in "AMDRT" else ChangeKind.MODIFIED
    entry = DiffEntry(
        path=change.path,
        old_path=change.old_path,
        kind=kind,
        old_id=change.old_id,
        new_id=change.new_id,
        old_mode=change.old_mode,
        new_mode=change.new_mode,
        similarity=change.similarity,
        patch="".join(s.decode("utf-8", errors="replace") for s in sections),
    )
    old = _side(repo, change.old_id, change.old_mode)
    new = _side(repo, change.new_id, change.new_mode)
    entry.old_size, entry.new_size = len(old), len(new)
    for section in sections:
        binary, hunks = parse_file_patch(section)
        entry.binary = entry.binary or binary
        entry.hunks.extend(hunks)
    if not entry.binary and not (is_text(old) and is_text(new)):
        # git diffs anything without NUL bytes as text; pages only show UTF-8
        entry.binary = True
        entry.hunks = []
        entry.patch = _binary_patch(change, sections[0])
    if entry.binary:
        return entry
    for h in entry.hunks:
        for op, _ in h.lines:
            if op == "+":
                entry.added += 1
            elif op == "-":
                entry.removed += 1
    return entry


def diff(repo: DiffReader, commit: Commit, context: int = DEFAULT_CONTEXT, detect_renames: bool = True) -> CommitDiff:
    parent = commit.first_parent
    try:
        old_tree = repo.read_commit(parent).tree if parent else None
        changes = repo.diff_trees(old_tree, commit.tree, detect_renames)
        sections = split_patch(repo.diff_patch(old_tree, commit.tree, context, detect_renames)) if changes else []
        entries = []
        pos = 0
        for change in changes:
            n = _sections_for(change)
            if pos + n > len(sections):
                raise ObjectError(commit.tree, "patch is missing paths of the tree diff")
            entries.append(diff_change(repo, change, sections[pos:pos + n]))
            pos += n
        if pos != len(sections):
            raise ObjectError(commit.tree, "patch has paths the tree diff does not")
    except ObjectError as exc:
        raise CommitError(commit.id, str(exc)) from exc
    return CommitDiff(commit=commit, parent=parent, entries=entries, stat=DiffStat.from_entries(entries))


def bar(added: int, removed: int, max_magnitude: int, width: int = BAR_WIDTH) -> Tuple[int, int]:
    """Number of "+" and "-" marks for one diffstat row, scaled to `width`."""
    total = added + removed
    if total == 0:
        return 0, 0
    if max_magnitude <= width:
        return added, removed
    scaled = max(1, total * width // max_magnitude)
    plus = added * scaled // total
    if added and not plus:
        plus = 1
    minus = scaled - plus
    if removed and not minus:
        minus = 1
        plus = max(plus - 1, 1 if added else 0)
    return plus, minus


# ---- HTML --------------------------------------------------------------------

def render_patch(entries: List[DiffEntry], max_bytes: int = 0) -> Tuple[List[str], bool]:
    """
    Highlight each entry's patch. Returns one HTML fragment per rendered entry
    and whether the output was cut short by `max_bytes` (0 disables the cap).
    """
    fragments: List[str] = []
    used = 0
    truncated = False
    for entry in entries:
        raw = entry.patch
        b = raw.encode("utf-8")
        if max_bytes > 0 and used + len(b) > max_bytes:
            truncated = True
            raw = b[: max(max_bytes - used, 0)].decode("utf-8", errors="ignore") + "\n... [diff truncated]\n"
        used += len(b)
        formatter = HtmlFormatter(nowrap=False)
        fragments.append(highlight(raw, DiffLexer(), formatter))
        if truncated:
            break
    return fragments, truncated
