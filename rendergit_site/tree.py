"""
Tree projection: flatten a commit's root tree into a depth-first listing.

Each directory is listed before its children and the entries of one
directory are sorted by name, directories and files interleaved. Symlinks and
submodules are leaves.
"""

from __future__ import annotations

import dataclasses
import threading
from collections import deque
from typing import Deque, Dict, List, Optional, Protocol

from .git import EntryKind, TreeEntry

MODE_STRINGS = {
    EntryKind.FILE: "-rw-r--r--",
    EntryKind.EXECUTABLE: "-rwxr-xr-x",
    EntryKind.SYMLINK: "lrwxrwxrwx",
    EntryKind.SUBMODULE: "m---------",
    EntryKind.DIRECTORY: "d---------",
}


class TreeReader(Protocol):
    def read_tree(self, oid: str, parent: str = "") -> List[TreeEntry]: ...


def _name_key(entry: TreeEntry) -> bytes:
    return entry.name.encode("utf-8", errors="surrogateescape")


def project_tree(repo: TreeReader, tree_id: str) -> List[TreeEntry]:
    def expand(oid: str, path: str) -> Deque[TreeEntry]:
        return deque(sorted(repo.read_tree(oid, path), key=_name_key))

    out: List[TreeEntry] = []
    # one list of not-yet-emitted siblings per open directory
    pending = [expand(tree_id, "")]
    while pending:
        level = pending[-1]
        if not level:
            pending.pop()
            continue
        entry = level.popleft()
        out.append(entry)
        if entry.kind is EntryKind.DIRECTORY:
            pending.append(expand(entry.id, entry.path))
    return out


def children_by_dir(entries: List[TreeEntry]) -> Dict[str, List[TreeEntry]]:
    """Group a projected listing by containing directory ("" is the root)."""
    out: Dict[str, List[TreeEntry]] = {"": []}
    for e in entries:
        out.setdefault(e.parent, []).append(e)
        if e.kind is EntryKind.DIRECTORY:
            out.setdefault(e.path, [])
    return out


@dataclasses.dataclass(frozen=True)
class BlobInfo:
    size: int
    is_text: bool
    lines: int


def is_text(data: bytes) -> bool:
    if b"\0" in data[:8000]:
        return False
    try:
        data.decode("utf-8")
    except UnicodeDecodeError:
        return False
    return True


def count_lines(text: str) -> int:
    if not text:
        return 0
    return text.count("\n") + (0 if text.endswith("\n") else 1)


class BlobInfoCache:
    """Size / line count per blob id, shared by every page that lists the blob."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._info: Dict[str, BlobInfo] = {}

    def get(self, oid: str) -> Optional[BlobInfo]:
        with self._lock:
            return self._info.get(oid)

    def describe(self, oid: str, data: bytes) -> BlobInfo:
        info = self.get(oid)
        if info is None:
            text = is_text(data)
            info = BlobInfo(size=len(data), is_text=text, lines=count_lines(data.decode("utf-8")) if text else 0)
            with self._lock:
                self._info[oid] = info
        return info
