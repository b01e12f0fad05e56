"""
Commit history traversal.

`walk` yields every commit reachable from a head exactly once, newest first,
in reverse topological order: a commit is emitted only after all of its
children. Among the commits that are ready, the one with the latest
committer timestamp goes first and ties fall back to the commit id.
"""

from __future__ import annotations

import heapq
from typing import Dict, Iterable, Iterator, List, Protocol, Sequence

from .errors import ObjectError
from .git import Commit


class CommitReader(Protocol):
    def read_commit(self, oid: str) -> Commit: ...


def _unique(ids: Sequence[str]) -> List[str]:
    return list(dict.fromkeys(ids))


def walk(repo: CommitReader, head: str) -> Iterator[Commit]:
    commits: Dict[str, Commit] = {}
    pending: Dict[str, int] = {}  # unemitted children per commit
    stack = [head]
    while stack:
        oid = stack.pop()
        if oid in commits:
            continue
        commit = repo.read_commit(oid)
        commits[oid] = commit
        for parent in _unique(commit.parents):
            pending[parent] = pending.get(parent, 0) + 1
            if parent not in commits:
                stack.append(parent)

    ready = []
    if pending.get(head, 0) == 0:
        ready.append((-commits[head].time, head))
    emitted = 0
    while ready:
        _, oid = heapq.heappop(ready)
        commit = commits[oid]
        yield commit
        emitted += 1
        for parent in _unique(commit.parents):
            pending[parent] -= 1
            if pending[parent] == 0:
                heapq.heappush(ready, (-commits[parent].time, parent))

    if emitted != len(commits):
        stuck = sorted(oid for oid, n in pending.items() if n > 0 and oid in commits)
        raise ObjectError(stuck[0] if stuck else head, "commit graph contains a cycle")


def merge_logs(sequences: Iterable[Iterable[Commit]]) -> List[Commit]:
    """Union of several histories, deduplicated by id, newest first."""
    seen: Dict[str, Commit] = {}
    for seq in sequences:
        for commit in seq:
            seen.setdefault(commit.id, commit)
    return sorted(seen.values(), key=lambda c: (-c.time, c.id))
