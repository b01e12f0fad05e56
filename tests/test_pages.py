"""Tests for the site plan: page identifiers, output paths and collisions."""

from __future__ import annotations

from typing import List

from rendergit_site.config import RenderConfig, RepoMeta
from rendergit_site.git import Commit, EntryKind, Identity, Ref, TreeEntry
from rendergit_site.pages import (
    PageKind,
    RefLog,
    SitePlan,
    TreeRoot,
    commit_page,
    file_page,
    log_page,
    tree_page,
)


def make_commit(oid: str, when: int) -> Commit:
    who = Identity(name="Ada", email="ada@example.com", time=when, offset=0)
    return Commit(id=oid, tree="t", parents=(), author=who, committer=who, message="msg\n")


def files(*names: str) -> List[TreeEntry]:
    return [TreeEntry(name=n, kind=EntryKind.FILE, id=n * 2, mode="100644", parent="") for n in names]


def make_plan(roots: List[TreeRoot]) -> SitePlan:
    log = RefLog(ref=Ref("refs/heads/main", "c1"), commits=[make_commit("c1", 200)])
    return SitePlan(RepoMeta(name="demo"), RenderConfig(), [log], roots, default_root=roots[0].tree_id if roots else None)


class TestSitePlan:
    def test_paths(self) -> None:
        plan = make_plan([TreeRoot("t1", "heads-main", ["refs/heads/main"], files("a.txt", "b.txt"))])
        assert plan.path(log_page(1)) == "log.html"
        assert plan.path(commit_page("c1")) == "commit/c1.html"
        assert plan.path(tree_page("t1", "")) == "tree/heads-main/index.html"
        assert plan.path(file_page("t1", "b.txt")) == "file/heads-main/b.txt.html"
        assert plan.collisions == []

    def test_undecodable_names_get_their_own_paths(self) -> None:
        plan = make_plan([TreeRoot("t1", "heads-main", ["refs/heads/main"], files("\udcff.txt", "\udcfe.txt"))])
        assert plan.path(file_page("t1", "\udcff.txt")) == "file/heads-main/~xff.txt.html"
        assert plan.path(file_page("t1", "\udcfe.txt")) == "file/heads-main/~xfe.txt.html"

    def test_colliding_pages_are_left_out(self) -> None:
        first = TreeRoot("t1", "same", ["refs/heads/main"], files("a.txt"))
        second = TreeRoot("t2", "same", ["refs/heads/main"], files("a.txt"))
        plan = make_plan([first, second])
        assert plan.has(file_page("t1", "a.txt"))
        assert not plan.has(file_page("t2", "a.txt"))
        assert not plan.has(tree_page("t2", ""))
        left_out = sorted((pid.kind.value, path) for pid, _, path in plan.collisions)
        assert left_out == [("file", "file/same/a.txt.html"), ("tree", "tree/same/index.html")]
        assert all(pid.kind in (PageKind.TREE, PageKind.FILE) for pid, _, _ in plan.collisions)

    def test_empty_history_has_only_summary_pages(self) -> None:
        plan = SitePlan(RepoMeta(name="demo"), RenderConfig(), [], [])
        assert sorted(plan.paths.values()) == ["index.html", "refs.html", "repo.json"]
