"""
Read-only access to a git repository through the `git` executable.

Objects are read through one long-lived `git cat-file --batch` process whose
pipe is guarded by a lock, so any number of worker threads can share a
`GitRepository`. Refs, tree diffs and repository discovery go through
one-shot `git` invocations.
"""

from __future__ import annotations

import dataclasses
import enum
import os
import pathlib
import re
import subprocess
import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from .errors import ObjectError, RepositoryError

# ---- constants & utilities ---------------------------------------------------

EMPTY_TREE_SHA = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"
EMPTY_TREE_SHA256 = "6ef19b41225c5369f1c104d45d8d85efa9b057b53b14b4b9b939dd74decc5321"

# git peels annotated tags in chains; bound the chain so corrupt data cannot loop
MAX_TAG_DEPTH = 32

# git accepts any four digits; datetime needs less than a day
MAX_OFFSET_MINUTES = 24 * 60 - 1
EPOCH = datetime.fromtimestamp(0, timezone.utc)

_IDENT_RE = re.compile(rb"^(.*?) ?<([^>]*)> (-?\d+) ([+-]\d{4})$")


def run(cmd: List[str], cwd: str | None = None, check: bool = True) -> subprocess.CompletedProcess:
    return subprocess.run(cmd, cwd=cwd, check=check, capture_output=True)


def _decode(b: bytes) -> str:
    return b.decode("utf-8", errors="replace")


def _decode_path(b: bytes) -> str:
    # names are arbitrary bytes; keep them distinct and reversible
    return b.decode("utf-8", errors="surrogateescape")


class EntryKind(enum.Enum):
    FILE = "file"
    EXECUTABLE = "executable"
    DIRECTORY = "directory"
    SYMLINK = "symlink"
    SUBMODULE = "submodule"

    @classmethod
    def from_mode(cls, mode: str) -> "EntryKind":
        if mode in ("40000", "040000"):
            return cls.DIRECTORY
        if mode == "100755":
            return cls.EXECUTABLE
        if mode == "120000":
            return cls.SYMLINK
        if mode == "160000":
            return cls.SUBMODULE
        # 100644 and the legacy 100664 / 100640 modes
        return cls.FILE

    @property
    def is_blob(self) -> bool:
        return self in (EntryKind.FILE, EntryKind.EXECUTABLE, EntryKind.SYMLINK)


@dataclasses.dataclass(frozen=True)
class Identity:
    name: str
    email: str
    time: int          # seconds since the epoch
    offset: int        # minutes east of UTC

    @property
    def date(self) -> datetime:
        try:
            return datetime.fromtimestamp(self.time, timezone(timedelta(minutes=self.offset)))
        except (OverflowError, ValueError, OSError):
            # outside what datetime can represent
            return EPOCH

    @property
    def date_iso(self) -> str:
        return self.date.isoformat()


@dataclasses.dataclass(frozen=True)
class Commit:
    id: str
    tree: str
    parents: Tuple[str, ...]
    author: Identity
    committer: Identity
    message: str

    @property
    def time(self) -> int:
        return self.committer.time

    @property
    def is_merge(self) -> bool:
        return len(self.parents) > 1

    @property
    def first_parent(self) -> Optional[str]:
        return self.parents[0] if self.parents else None

    @property
    def subject(self) -> str:
        return self.message.strip().split("\n", 1)[0].strip()

    @property
    def body(self) -> str:
        parts = self.message.strip().split("\n", 1)
        return parts[1].strip("\n") if len(parts) > 1 else ""


@dataclasses.dataclass(frozen=True)
class TreeEntry:
    name: str
    kind: EntryKind
    id: str
    mode: str
    parent: str = ""   # directory path containing the entry, "" for the root

    @property
    def path(self) -> str:
        return f"{self.parent}/{self.name}" if self.parent else self.name


@dataclasses.dataclass(frozen=True)
class Ref:
    name: str          # full name, e.g. refs/heads/main
    target: str        # object the ref points at (may be an annotated tag)

    @property
    def short_name(self) -> str:
        for prefix in ("refs/heads/", "refs/tags/", "refs/"):
            if self.name.startswith(prefix):
                return self.name[len(prefix):]
        return self.name

    @property
    def is_tag(self) -> bool:
        return self.name.startswith("refs/tags/")

    @property
    def is_branch(self) -> bool:
        return self.name.startswith("refs/heads/")


@dataclasses.dataclass(frozen=True)
class TreeChange:
    """One path of a raw `git diff-tree` between two trees."""
    status: str                 # A, M, D, R, T
    old_path: Optional[str]
    new_path: Optional[str]
    old_mode: Optional[str]
    new_mode: Optional[str]
    old_id: Optional[str]
    new_id: Optional[str]
    similarity: Optional[int] = None

    @property
    def path(self) -> str:
        return self.new_path if self.new_path is not None else (self.old_path or "")


# ---- parsing -----------------------------------------------------------------

def parse_identity(raw: bytes) -> Identity:
    m = _IDENT_RE.match(raw.strip())
    if not m:
        return Identity(name=_decode(raw.strip()), email="", time=0, offset=0)
    name, email, ts, tz = m.groups()
    sign = -1 if tz.startswith(b"-") else 1
    offset = sign * (int(tz[1:3]) * 60 + int(tz[3:5]))
    if abs(offset) > MAX_OFFSET_MINUTES:
        offset = 0
    return Identity(name=_decode(name), email=_decode(email), time=int(ts), offset=offset)


def parse_commit(oid: str, data: bytes) -> Commit:
    headers: Dict[bytes, List[bytes]] = {}
    head, sep, message = data.partition(b"\n\n")
    last_key: Optional[bytes] = None
    for line in head.split(b"\n"):
        if line.startswith(b" ") and last_key is not None:
            # continuation of a multi-line header (gpgsig, mergetag)
            headers[last_key][-1] += b"\n" + line[1:]
            continue
        key, _, value = line.partition(b" ")
        headers.setdefault(key, []).append(value)
        last_key = key
    if b"tree" not in headers or b"committer" not in headers:
        raise ObjectError(oid, "malformed commit object")
    committer = parse_identity(headers[b"committer"][0])
    author = parse_identity(headers[b"author"][0]) if b"author" in headers else committer
    return Commit(
        id=oid,
        tree=_decode(headers[b"tree"][0]),
        parents=tuple(_decode(p) for p in headers.get(b"parent", [])),
        author=author,
        committer=committer,
        message=_decode(message),
    )


def parse_tree(oid: str, data: bytes, oid_len: int, parent: str = "") -> List[TreeEntry]:
    entries: List[TreeEntry] = []
    pos = 0
    while pos < len(data):
        sp = data.find(b" ", pos)
        nul = data.find(b"\0", sp + 1)
        if sp < 0 or nul < 0 or nul + 1 + oid_len > len(data):
            raise ObjectError(oid, "malformed tree object")
        mode = data[pos:sp].decode("ascii")
        name = _decode_path(data[sp + 1:nul])
        entry_id = data[nul + 1:nul + 1 + oid_len].hex()
        entries.append(TreeEntry(name=name, kind=EntryKind.from_mode(mode), id=entry_id, mode=mode, parent=parent))
        pos = nul + 1 + oid_len
    return entries


def parse_tag_target(oid: str, data: bytes) -> Tuple[str, str]:
    obj = typ = None
    for line in data.split(b"\n"):
        if not line:
            break
        if line.startswith(b"object "):
            obj = _decode(line[7:])
        elif line.startswith(b"type "):
            typ = _decode(line[5:])
    if obj is None:
        raise ObjectError(oid, "malformed tag object")
    return obj, typ or ""


def parse_raw_diff(out: bytes) -> List[TreeChange]:
    """Parse `git diff-tree -r -z --raw` output."""
    changes: List[TreeChange] = []
    fields = out.split(b"\0")
    i = 0
    while i < len(fields):
        meta = fields[i]
        if not meta.startswith(b":"):
            i += 1
            continue
        old_mode, new_mode, old_id, new_id, status = _decode(meta[1:]).split(" ")
        letter = status[0]
        similarity = int(status[1:]) if status[1:].isdigit() else None
        if letter in ("R", "C"):
            old_path, new_path = _decode_path(fields[i + 1]), _decode_path(fields[i + 2])
            i += 3
        else:
            old_path = new_path = _decode_path(fields[i + 1])
            i += 2
        zero = set(old_id) == {"0"}
        new_zero = set(new_id) == {"0"}
        changes.append(
            TreeChange(
                status=letter,
                old_path=None if letter == "A" else old_path,
                new_path=None if letter == "D" else new_path,
                old_mode=None if zero else old_mode,
                new_mode=None if new_zero else new_mode,
                old_id=None if zero else old_id,
                new_id=None if new_zero else new_id,
                similarity=similarity,
            )
        )
    return changes


# ---- repository --------------------------------------------------------------

class GitRepository:
    """A local git repository opened for reading."""

    def __init__(self, path: str, git_dir: str, bare: bool) -> None:
        self.path = path
        self.git_dir = git_dir
        self.bare = bare
        self._lock = threading.Lock()
        self._proc: Optional[subprocess.Popen] = None
        self._commits: Dict[str, Commit] = {}
        self._oid_len: Optional[int] = None

    @classmethod
    def open(cls, path: str) -> "GitRepository":
        p = pathlib.Path(path)
        if not p.is_dir():
            raise RepositoryError(f"{path}: no such directory")
        try:
            cp = run(["git", "-C", str(p), "rev-parse", "--absolute-git-dir", "--is-bare-repository"], check=False)
        except OSError as exc:
            raise RepositoryError(f"cannot run git: {exc}") from exc
        if cp.returncode != 0:
            raise RepositoryError(f"{path}: not a git repository ({_decode(cp.stderr).strip()})")
        git_dir, bare = _decode(cp.stdout).splitlines()[:2]
        return cls(str(p.resolve()), git_dir, bare == "true")

    def __enter__(self) -> "GitRepository":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        with self._lock:
            if self._proc is not None:
                self._proc.stdin.close()
                self._proc.wait()
                self._proc.stdout.close()
                self._proc = None

    def git(self, *args: str) -> bytes:
        cp = run(["git", "-C", self.path, *args], check=False)
        if cp.returncode != 0:
            raise RepositoryError(f"git {args[0]} failed: {_decode(cp.stderr).strip()}")
        return cp.stdout

    # -- object access --

    def read_object(self, oid: str) -> Tuple[str, bytes]:
        """Return (type, data) of one object."""
        with self._lock:
            if self._proc is None:
                self._proc = subprocess.Popen(
                    ["git", "-C", self.path, "cat-file", "--batch"],
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                )
            self._proc.stdin.write(oid.encode("ascii", errors="replace") + b"\n")
            self._proc.stdin.flush()
            header = self._proc.stdout.readline()
            if not header:
                self._proc.wait()
                self._proc = None
                raise ObjectError(oid, "object reader exited unexpectedly")
            parts = header.split()
            if len(parts) != 3:
                raise ObjectError(oid, _decode(header).strip())
            full_id, typ, size = parts
            data = self._proc.stdout.read(int(size))
            self._proc.stdout.read(1)
        if self._oid_len is None:
            self._oid_len = len(full_id) // 2
        return _decode(typ), data

    @property
    def oid_len(self) -> int:
        if self._oid_len is None:
            fmt = _decode(self.git("rev-parse", "--show-object-format")).strip()
            self._oid_len = 32 if fmt == "sha256" else 20
        return self._oid_len

    @property
    def empty_tree(self) -> str:
        return EMPTY_TREE_SHA256 if self.oid_len == 32 else EMPTY_TREE_SHA

    def read_commit(self, oid: str) -> Commit:
        commit = self._commits.get(oid)
        if commit is not None:
            return commit
        typ, data = self.read_object(oid)
        if typ != "commit":
            raise ObjectError(oid, f"expected commit, found {typ}")
        commit = parse_commit(oid, data)
        self._commits[oid] = commit
        return commit

    def read_tree(self, oid: str, parent: str = "") -> List[TreeEntry]:
        typ, data = self.read_object(oid)
        if typ != "tree":
            raise ObjectError(oid, f"expected tree, found {typ}")
        return parse_tree(oid, data, self.oid_len, parent)

    def read_blob(self, oid: str) -> bytes:
        typ, data = self.read_object(oid)
        if typ != "blob":
            raise ObjectError(oid, f"expected blob, found {typ}")
        return data

    def peel(self, oid: str) -> str:
        """Dereference annotated tags until a commit is reached."""
        for _ in range(MAX_TAG_DEPTH):
            typ, data = self.read_object(oid)
            if typ == "commit":
                return oid
            if typ != "tag":
                raise ObjectError(oid, f"ref points at a {typ}, not a commit")
            oid, _ = parse_tag_target(oid, data)
        raise ObjectError(oid, "tag chain too deep")

    # -- refs --

    def resolve_refs(self) -> List[Ref]:
        out = self.git("for-each-ref", "--format=%(objectname) %(refname)", "refs/heads", "refs/tags")
        refs = []
        for line in _decode(out).splitlines():
            oid, _, name = line.partition(" ")
            if name:
                refs.append(Ref(name=name, target=oid))
        return sorted(refs, key=lambda r: r.name)

    def head_ref(self) -> Optional[str]:
        cp = run(["git", "-C", self.path, "symbolic-ref", "-q", "HEAD"], check=False)
        name = _decode(cp.stdout).strip()
        return name or None

    # -- diffs --

    def diff_trees(self, old_tree: Optional[str], new_tree: str, detect_renames: bool = True) -> List[TreeChange]:
        args = ["diff-tree", "-r", "-z", "--raw", "--no-abbrev"]
        args.append("-M" if detect_renames else "--no-renames")
        args += [old_tree or self.empty_tree, new_tree]
        cp = run(["git", "-C", self.path, *args], check=False)
        if cp.returncode != 0:
            raise ObjectError(new_tree, f"tree diff failed: {_decode(cp.stderr).strip()}")
        return parse_raw_diff(cp.stdout)

    def diff_patch(self, old_tree: Optional[str], new_tree: str, context: int = 3, detect_renames: bool = True) -> bytes:
        """Unified patch between two trees, files in the same order as `diff_trees`."""
        args = [
            "diff-tree", "-r", "-p", "--no-color", "--no-ext-diff", "--no-textconv",
            "--submodule=short", "--full-index", f"-U{context}",
        ]
        args.append("-M" if detect_renames else "--no-renames")
        args += [old_tree or self.empty_tree, new_tree]
        cp = run(["git", "-C", self.path, *args], check=False)
        if cp.returncode != 0:
            raise ObjectError(new_tree, f"patch failed: {_decode(cp.stderr).strip()}")
        return cp.stdout

    # -- metadata files --

    def read_meta_file(self, name: str) -> str:
        try:
            with open(os.path.join(self.git_dir, name), "r", encoding="utf-8", errors="replace") as f:
                return f.read().strip()
        except OSError:
            return ""
