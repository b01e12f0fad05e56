"""End-to-end rendering of real git repositories."""

from __future__ import annotations

import html
import json
import os
import pathlib
import posixpath
import re
import subprocess
from typing import Dict
from urllib.parse import unquote

import pytest

from rendergit_site import RenderConfig, render_repository
from rendergit_site.diff import diff
from rendergit_site.errors import ErrorLog, RepositoryError
from rendergit_site.git import GitRepository
from rendergit_site.pages import Assembler, commit_page, feed_page, log_page
from rendergit_site.render import plan_site

HREF = re.compile(r'href="([^"]*)"')


def site_files(out: pathlib.Path) -> Dict[str, bytes]:
    return {p.relative_to(out).as_posix(): p.read_bytes() for p in sorted(out.rglob("*")) if p.is_file()}


def read(out: pathlib.Path, relpath: str) -> str:
    return (out / relpath).read_text(encoding="utf-8")


def broken_links(out: pathlib.Path):
    broken = []
    for relpath in site_files(out):
        if not relpath.endswith(".html"):
            continue
        for href in HREF.findall(read(out, relpath)):
            target = unquote(html.unescape(href).split("#", 1)[0])
            if not target:
                continue
            resolved = posixpath.normpath(posixpath.join(posixpath.dirname(relpath), target))
            if not (out / resolved).is_file():
                broken.append((relpath, href))
    return broken


@pytest.fixture
def three_line_repo(make_repo):
    b = make_repo("hello")
    b.write("hello.txt", "one\ntwo\nthree\n")
    sha = b.commit("Add hello")
    return b, sha


class TestSingleCommit:
    def test_pages(self, three_line_repo, tmp_path: pathlib.Path) -> None:
        b, sha = three_line_repo
        out = tmp_path / "site"
        result = render_repository(str(b.path), str(out))

        assert result.failures == []
        assert result.commits == 1
        assert result.refs == 1

        index = read(out, "index.html")
        assert index.count('class="num plus"') == 1
        assert "Add hello" in index
        assert f"commit/{sha}.html" in read(out, "log.html")

        commit = read(out, f"commit/{sha}.html")
        assert "+3 -0" in commit
        assert "1 file changed, 3 insertions(+), 0 deletions(-)" in commit

        blob = read(out, "file/heads-main/hello.txt.html")
        assert blob.count('class="line"') == 3
        assert 'id="l3"' in blob

        for relpath in ["refs.html", "atom.xml", "repo.json", "style.css", "tree/heads-main/index.html",
                        "ref/heads-main/log.html"]:
            assert (out / relpath).is_file(), relpath

    def test_metadata_record(self, three_line_repo, tmp_path: pathlib.Path) -> None:
        b, _ = three_line_repo
        out = tmp_path / "site"
        render_repository(str(b.path), str(out), RenderConfig(owner="Ada", clone_urls=("https://example.com/hello.git",)))
        record = json.loads(read(out, "repo.json"))
        assert record["name"] == "hello"
        assert record["description"] == ""
        assert record["owner"] == "Ada"
        assert record["clone_urls"] == ["https://example.com/hello.git"]
        assert record["index"] == "index.html"
        assert record["last_commit"].startswith("2023-11-14")
        assert "git clone https://example.com/hello.git" in read(out, "index.html")

    def test_root_commit_counts_every_line(self, make_repo) -> None:
        b = make_repo()
        b.write("a.txt", "1\n2\n3\n")
        b.write("dir/b.txt", "x\ny")
        sha = b.commit("root")
        with GitRepository.open(str(b.path)) as repo:
            result = diff(repo, repo.read_commit(sha))
        assert sorted(e.path for e in result.entries) == ["a.txt", "dir/b.txt"]
        assert result.stat.added == 5
        assert result.stat.removed == 0


class TestDiffCounts:
    def test_counts_match_git_numstat(self, make_repo, tmp_path: pathlib.Path) -> None:
        b = make_repo()
        b.write("seq.txt", "\n".join("a d b d d b c c a".split()) + "\n")
        b.commit("before")
        b.write("seq.txt", "\n".join("a b d c d a d a c d".split()) + "\n")
        sha = b.commit("after")
        added, removed, _ = b.git("diff", "--numstat", "HEAD~1", "HEAD").split("\t")

        with GitRepository.open(str(b.path)) as repo:
            (entry,) = diff(repo, repo.read_commit(sha)).entries
        assert (entry.added, entry.removed) == (int(added), int(removed))

        out = tmp_path / "site"
        render_repository(str(b.path), str(out))
        assert f"+{added} -{removed}" in read(out, f"commit/{sha}.html")
        assert f'<td class="num plus">+{added}</td>' in read(out, "log.html")

    def test_type_change(self, make_repo) -> None:
        b = make_repo()
        b.write("target.txt", "target\n")
        b.write("link", "a plain file\n")
        b.commit("file")
        b.remove("link")
        os.symlink("target.txt", b.path / "link")
        sha = b.commit("now a symlink")
        with GitRepository.open(str(b.path)) as repo:
            (entry,) = diff(repo, repo.read_commit(sha)).entries
        assert entry.kind.value == "T"
        assert (entry.added, entry.removed) == (1, 1)


class TestRenderOrder:
    def test_log_and_feed_before_commit_pages(self, three_line_repo) -> None:
        b, sha = three_line_repo
        errors = ErrorLog()
        with GitRepository.open(str(b.path)) as repo:
            plan = plan_site(repo, RenderConfig(), errors)
            assembler = Assembler(plan, repo, errors)
            log = assembler.render(log_page(1)).body
            feed = assembler.render(feed_page()).body
            commit = assembler.render(commit_page(sha)).body
        assert 'class="degraded"' not in log
        assert '<td class="num plus">+3</td>' in log
        assert "1 file changed, 3 insertions(+), 0 deletions(-)" in feed
        assert "1 file changed, 3 insertions(+), 0 deletions(-)" in commit
        assert errors.failures == []


class TestUnusualObjects:
    def test_undecodable_file_names(self, make_repo, tmp_path: pathlib.Path) -> None:
        b = make_repo()
        b.write(os.fsdecode(b"\xff.txt"), "ff\n")
        b.write(os.fsdecode(b"\xfe.txt"), "fe\n")
        sha = b.commit("odd names")
        out = tmp_path / "site"
        result = render_repository(str(b.path), str(out))

        assert result.failures == []
        assert read(out, "file/heads-main/~xff.txt.html").count('class="line"') == 1
        assert read(out, "file/heads-main/~xfe.txt.html").count('class="line"') == 1
        assert "�.txt" in read(out, "tree/heads-main/index.html")
        assert "2 files changed, 2 insertions(+)" in read(out, f"commit/{sha}.html")
        assert broken_links(out) == []

    def test_out_of_range_dates(self, three_line_repo, tmp_path: pathlib.Path) -> None:
        b, sha = three_line_repo
        tree = b.git("rev-parse", "HEAD^{tree}")
        raw = (
            f"tree {tree}\nparent {sha}\n"
            "author Odd <odd@example.com> 99999999999999999999 +9999\n"
            "committer Odd <odd@example.com> 1700000500 +9999\n"
            "\nodd dates\n"
        )
        cp = subprocess.run(
            ["git", "hash-object", "-t", "commit", "-w", "--literally", "--stdin"],
            cwd=b.path, env=b.env, input=raw, capture_output=True, text=True, check=True,
        )
        odd = cp.stdout.strip()
        b.git("update-ref", "refs/heads/odd", odd)

        out = tmp_path / "site"
        result = render_repository(str(b.path), str(out))
        assert result.failures == []
        page = read(out, f"commit/{odd}.html")
        assert "1970-01-01T00:00:00+00:00" in page
        assert "odd dates" in read(out, "ref/heads-odd/log.html")


class TestBranches:
    @pytest.fixture
    def diverged(self, make_repo):
        b = make_repo()
        b.write("a", "1\n")
        first = b.commit("first")
        b.write("a", "2\n")
        second = b.commit("second")
        b.checkout("feature", new=True)
        b.write("f", "feature\n")
        feature = b.commit("feature work")
        b.checkout("main")
        b.write("a", "3\n")
        main = b.commit("main work")
        return b, {"first": first, "second": second, "feature": feature, "main": main}

    def test_one_page_per_distinct_commit(self, diverged, tmp_path: pathlib.Path) -> None:
        b, shas = diverged
        out = tmp_path / "site"
        result = render_repository(str(b.path), str(out))
        pages = sorted(p.stem for p in (out / "commit").glob("*.html"))
        assert pages == sorted(shas.values())
        assert result.commits == 4

    def test_per_ref_logs(self, diverged, tmp_path: pathlib.Path) -> None:
        b, shas = diverged
        out = tmp_path / "site"
        render_repository(str(b.path), str(out))
        main_log = read(out, "ref/heads-main/log.html")
        feature_log = read(out, "ref/heads-feature/log.html")
        assert main_log.count('class="num plus"') == 3
        assert feature_log.count('class="num plus"') == 3
        assert shas["feature"] not in main_log
        assert shas["main"] not in feature_log
        for shared in (shas["first"], shas["second"]):
            assert f"commit/{shared}.html" in main_log
            assert f"commit/{shared}.html" in feature_log

    def test_combined_log_newest_first(self, diverged, tmp_path: pathlib.Path) -> None:
        b, shas = diverged
        out = tmp_path / "site"
        render_repository(str(b.path), str(out))
        log = read(out, "log.html")
        positions = [log.index(f"commit/{shas[k]}.html") for k in ("main", "feature", "second", "first")]
        assert positions == sorted(positions)

    def test_each_branch_gets_a_file_listing(self, diverged, tmp_path: pathlib.Path) -> None:
        b, _ = diverged
        out = tmp_path / "site"
        render_repository(str(b.path), str(out))
        assert (out / "file/heads-feature/f.html").is_file()
        assert not (out / "file/heads-main/f.html").exists()
        assert "Tree of" in read(out, "tree/heads-main/index.html")

    def test_every_link_resolves(self, diverged, tmp_path: pathlib.Path) -> None:
        b, _ = diverged
        b.write("docs/guide.md", "# guide\n")
        b.write("README.md", "hello\n")
        b.commit("docs")
        b.git("tag", "-a", "v1.0", "-m", "release")
        out = tmp_path / "site"
        render_repository(str(b.path), str(out))
        assert broken_links(out) == []

    def test_annotated_tag(self, diverged, tmp_path: pathlib.Path) -> None:
        b, shas = diverged
        b.git("tag", "-a", "v1.0", "-m", "release")
        out = tmp_path / "site"
        result = render_repository(str(b.path), str(out))
        assert result.refs == 3
        assert "v1.0" in read(out, "refs.html")
        assert f"commit/{shas['main']}.html" in read(out, "ref/tags-v1-0/log.html")


class TestMerges:
    def test_merge_diffs_against_first_parent(self, make_repo, tmp_path: pathlib.Path) -> None:
        b = make_repo()
        b.write("f.txt", "base\n")
        b.commit("base")
        b.checkout("side", new=True)
        b.write("g.txt", "side\n")
        b.commit("side change")
        b.checkout("main")
        b.write("f.txt", "main\n")
        b.commit("main change")
        merge = b.merge("side", "merge side")

        with GitRepository.open(str(b.path)) as repo:
            result = diff(repo, repo.read_commit(merge))
        assert [e.path for e in result.entries] == ["g.txt"]

        out = tmp_path / "site"
        render_repository(str(b.path), str(out))
        page = read(out, f"commit/{merge}.html")
        assert "Merge commit" in page
        assert "1 file changed, 1 insertion(+), 0 deletions(-)" in page


class TestEmptyRepository:
    def test_only_summary_pages(self, make_repo, tmp_path: pathlib.Path) -> None:
        b = make_repo()
        out = tmp_path / "site"
        result = render_repository(str(b.path), str(out))
        assert sorted(site_files(out)) == ["index.html", "refs.html", "repo.json", "style.css"]
        assert result.commits == 0
        assert "No commits" in read(out, "index.html")
        assert json.loads(read(out, "repo.json"))["last_commit"] is None


class TestPaging:
    @pytest.fixture
    def five_commits(self, make_repo):
        b = make_repo()
        shas = []
        for i in range(5):
            b.write("n.txt", f"{i}\n")
            shas.append(b.commit(f"commit {i}"))
        return b, shas

    def test_log_pages(self, five_commits, tmp_path: pathlib.Path) -> None:
        b, _ = five_commits
        out = tmp_path / "site"
        render_repository(str(b.path), str(out), RenderConfig(log_page_size=2))
        assert (out / "log/2.html").is_file()
        assert (out / "log/3.html").is_file()
        assert not (out / "log/4.html").exists()
        assert read(out, "index.html").count('class="num plus"') == 2
        second = read(out, "log/2.html")
        assert 'href="../log.html"' in second
        assert 'href="3.html"' in second
        assert (out / "ref/heads-main/log-3.html").is_file()

    def test_max_commits(self, five_commits, tmp_path: pathlib.Path) -> None:
        b, shas = five_commits
        out = tmp_path / "site"
        result = render_repository(str(b.path), str(out), RenderConfig(max_commits=2))
        assert result.commits == 2
        assert sorted(p.stem for p in (out / "commit").glob("*.html")) == sorted(shas[-2:])
        assert "3 more commits remaining" in read(out, "log.html")
        assert broken_links(out) == []

    def test_feed_window(self, five_commits, tmp_path: pathlib.Path) -> None:
        b, shas = five_commits
        out = tmp_path / "site"
        render_repository(str(b.path), str(out), RenderConfig(feed_size=2))
        feed = read(out, "atom.xml")
        assert feed.count("<entry>") == 2
        assert feed.index(shas[4]) < feed.index(shas[3])
        assert shas[2] not in feed

    def test_feed_ids_are_iris(self, five_commits, tmp_path: pathlib.Path) -> None:
        b, shas = five_commits
        out = tmp_path / "site"
        render_repository(str(b.path), str(out), RenderConfig(name="my repo"))
        ids = re.findall(r"<id>([^<]*)</id>", read(out, "atom.xml"))
        assert ids[0] == "urn:rendergit-site:my%20repo"
        assert ids[1:] == [f"urn:git:commit:{sha}" for sha in reversed(shas)]

        render_repository(str(b.path), str(out), RenderConfig(clone_urls=("https://example.com/r.git",)))
        assert "<id>https://example.com/r.git</id>" in read(out, "atom.xml")


class TestDeterminism:
    def test_same_bytes_regardless_of_workers(self, make_repo, tmp_path: pathlib.Path) -> None:
        b = make_repo()
        b.write("src/app.py", "print('hi')\n")
        b.write("logo.bin", b"\x89PNG\0\0")
        b.commit("start")
        b.checkout("topic", new=True)
        b.write("src/app.py", "print('hello')\n")
        b.commit("topic")
        b.checkout("main")
        b.write("notes.txt", "a\nb\n")
        b.commit("notes")
        b.git("tag", "v1")

        first = tmp_path / "one"
        second = tmp_path / "two"
        render_repository(str(b.path), str(first), RenderConfig(jobs=1))
        render_repository(str(b.path), str(second), RenderConfig(jobs=4))
        assert site_files(first) == site_files(second)

        render_repository(str(b.path), str(first), RenderConfig(jobs=4))
        assert site_files(first) == site_files(second)


class TestFailures:
    def test_ref_to_tree_is_skipped(self, three_line_repo, tmp_path: pathlib.Path) -> None:
        b, sha = three_line_repo
        tree = b.git("rev-parse", "HEAD^{tree}")
        b.git("tag", "treetag", tree)
        out = tmp_path / "site"
        result = render_repository(str(b.path), str(out))
        assert [(f.scope, f.identifier) for f in result.failures] == [("ref", "refs/tags/treetag")]
        assert result.refs == 1
        assert (out / f"commit/{sha}.html").is_file()
        assert "treetag" not in read(out, "refs.html")

    def test_large_and_binary_files_get_placeholders(self, make_repo, tmp_path: pathlib.Path) -> None:
        b = make_repo()
        b.write("small.txt", "hi\n")
        b.write("big.txt", "x" * 99 + "\n")
        b.write("img.bin", b"\x00\x01\x02")
        sha = b.commit("files")
        out = tmp_path / "site"
        result = render_repository(str(b.path), str(out), RenderConfig(max_file_bytes=10))

        assert [(f.scope, f.identifier) for f in result.failures] == [("file", "big.txt"), ("file", "img.bin")]
        assert "too large to display" in read(out, "file/heads-main/big.txt.html")
        assert 'class="line"' not in read(out, "file/heads-main/img.bin.html")
        assert read(out, "file/heads-main/small.txt.html").count('class="line"') == 1
        assert "Bin 0 → 3 bytes" in read(out, f"commit/{sha}.html")

    def test_missing_blob_degrades_its_commit(self, make_repo, tmp_path: pathlib.Path) -> None:
        b = make_repo()
        b.write("a.txt", "kept\n")
        b.commit("first")
        b.write("lost.txt", "this blob goes missing\n")
        sha = b.commit("second")
        blob = b.git("rev-parse", "HEAD:lost.txt")
        (b.path / ".git" / "objects" / blob[:2] / blob[2:]).unlink()

        out = tmp_path / "site"
        result = render_repository(str(b.path), str(out))
        failures = [(f.scope, f.identifier) for f in result.failures]
        assert failures == [("commit", sha), ("file", "lost.txt")]
        assert "Diff unavailable" in read(out, f"commit/{sha}.html")
        log = read(out, "log.html")
        assert log.count('class="degraded"') == 1
        assert log.count('class="num plus"') == 1
        assert "diff unavailable" in log
        assert "unreadable object" in read(out, "file/heads-main/lost.txt.html")
        assert broken_links(out) == []

    def test_missing_path(self, tmp_path: pathlib.Path) -> None:
        out = tmp_path / "site"
        with pytest.raises(RepositoryError):
            render_repository(str(tmp_path / "nope"), str(out))
        assert not out.exists()

    def test_not_a_repository(self, tmp_path: pathlib.Path, monkeypatch) -> None:
        monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path))
        plain = tmp_path / "plain"
        plain.mkdir()
        with pytest.raises(RepositoryError, match="not a git repository"):
            render_repository(str(plain), str(tmp_path / "site"))

    def test_bare_repository(self, three_line_repo, tmp_path: pathlib.Path) -> None:
        b, sha = three_line_repo
        bare = tmp_path / "hello.git"
        b.git("clone", "-q", "--bare", str(b.path), str(bare))
        out = tmp_path / "site"
        result = render_repository(str(bare), str(out))
        assert result.failures == []
        assert (out / f"commit/{sha}.html").is_file()
        assert json.loads(read(out, "repo.json"))["name"] == "hello"
