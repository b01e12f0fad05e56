"""
Page taxonomy, site plan and page assembly.

Rendering happens in two phases. `SitePlan` first fixes the identifier and
output path of every page from the walked history and projected trees. The
`Assembler` then renders page bodies one at a time, resolving every link
through the plan, so any page can be rendered in any order or in parallel.
"""

from __future__ import annotations

import dataclasses
import enum
import json
import math
import threading
from typing import Callable, Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

from . import feed as feed_mod
from .config import LICENSE_FILES, README_FILES, RenderConfig, RepoMeta
from .diff import CommitDiff, DiffStat, bar, diff, render_patch
from .errors import SCOPE_COMMIT, SCOPE_FILE, CommitError, ErrorLog, FileError, ObjectError
from .git import Commit, EntryKind, GitRepository, Ref, TreeEntry
from .history import merge_logs
from .naming import escape_path, relative_href, to_root, unique_slugs
from .templates import esc, link, render_page, table
from .tree import MODE_STRINGS, BlobInfo, BlobInfoCache, children_by_dir

SHORT_ID = 8


class PageKind(enum.Enum):
    INDEX = "index"
    LOG = "log"
    REF_LOG = "ref-log"
    COMMIT = "commit"
    TREE = "tree"
    FILE = "file"
    REFS = "refs"
    FEED = "feed"
    META = "meta"


class PageId(NamedTuple):
    kind: PageKind
    key: Tuple = ()


def index_page() -> PageId:
    return PageId(PageKind.INDEX)


def refs_page() -> PageId:
    return PageId(PageKind.REFS)


def feed_page() -> PageId:
    return PageId(PageKind.FEED)


def meta_page() -> PageId:
    return PageId(PageKind.META)


def log_page(k: int) -> PageId:
    return PageId(PageKind.LOG, (k,))


def ref_log_page(ref_name: str, k: int) -> PageId:
    return PageId(PageKind.REF_LOG, (ref_name, k))


def commit_page(oid: str) -> PageId:
    return PageId(PageKind.COMMIT, (oid,))


def tree_page(root: str, path: str) -> PageId:
    return PageId(PageKind.TREE, (root, path))


def file_page(root: str, path: str) -> PageId:
    return PageId(PageKind.FILE, (root, path))


@dataclasses.dataclass
class Page:
    id: PageId
    path: str
    title: str
    body: str
    links: List[PageId] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class RefLog:
    ref: Ref
    commits: List[Commit]       # full history, newest first

    @property
    def head(self) -> Commit:
        return self.commits[0]


@dataclasses.dataclass
class TreeRoot:
    tree_id: str
    slug: str
    refs: List[str]
    entries: List[TreeEntry]

    def __post_init__(self) -> None:
        self.dirs: Dict[str, List[TreeEntry]] = children_by_dir(self.entries)


def page_count(n: int, size: int) -> int:
    return max(1, math.ceil(n / size))


def chunk(seq: Sequence, k: int, size: int) -> Sequence:
    return seq[(k - 1) * size:k * size]


# ---- phase one: identifiers and paths ---------------------------------------

class SitePlan:
    def __init__(
        self,
        meta: RepoMeta,
        config: RenderConfig,
        ref_logs: List[RefLog],
        roots: List[TreeRoot],
        default_root: Optional[str] = None,
        head_ref: Optional[str] = None,
    ) -> None:
        self.meta = meta
        self.config = config
        self.ref_logs = sorted(ref_logs, key=lambda r: r.ref.name)
        self.roots = {r.tree_id: r for r in roots}
        self.default_root = default_root
        self.head_ref = head_ref
        self.ref_slugs = unique_slugs(r.ref.name[len("refs/"):] for r in self.ref_logs)

        full = merge_logs(r.commits for r in self.ref_logs)
        self.log = self.cap(full)
        self.log_remaining = len(full) - len(self.log)

        decorations: Dict[str, List[Ref]] = {}
        for r in self.ref_logs:
            decorations.setdefault(r.head.id, []).append(r.ref)
        self.decorations = decorations
        self.commits = self._page_commits()
        self.by_id: Dict[str, Commit] = {c.id: c for c in self.commits}

        self.paths: Dict[PageId, str] = {}
        self._taken: Dict[str, PageId] = {}
        # (page left out, page holding the path, path)
        self.collisions: List[Tuple[PageId, PageId, str]] = []
        self._allocate()

    def cap(self, commits: List[Commit]) -> List[Commit]:
        if self.config.max_commits is None:
            return commits
        return commits[:self.config.max_commits]

    def shown(self, ref_log: RefLog) -> List[Commit]:
        return self.cap(ref_log.commits)

    def _page_commits(self) -> List[Commit]:
        """Every commit that gets a page, newest first."""
        seen: Dict[str, Commit] = {c.id: c for c in self.log}
        for r in self.ref_logs:
            for c in self.shown(r):
                seen.setdefault(c.id, c)
        return sorted(seen.values(), key=lambda c: (-c.time, c.id))

    @property
    def empty(self) -> bool:
        return not self.log

    def log_pages(self) -> int:
        return page_count(len(self.log), self.config.log_page_size)

    def ref_log_pages(self, ref_log: RefLog) -> int:
        return page_count(len(self.shown(ref_log)), self.config.log_page_size)

    def ref_log(self, name: str) -> RefLog:
        for r in self.ref_logs:
            if r.ref.name == name:
                return r
        raise KeyError(name)

    def _add(self, pid: PageId, path: str) -> None:
        if path in self._taken:
            if pid.kind not in (PageKind.TREE, PageKind.FILE):
                raise ValueError(f"output path {path} claimed by {self._taken[path]} and {pid}")
            # the page is left out and its links degrade to plain text
            self.collisions.append((pid, self._taken[path], path))
            return
        self._taken[path] = pid
        self.paths[pid] = path

    def _allocate(self) -> None:
        self._add(index_page(), "index.html")
        self._add(refs_page(), "refs.html")
        self._add(meta_page(), "repo.json")
        if self.empty:
            return
        self._add(feed_page(), "atom.xml")
        for k in range(1, self.log_pages() + 1):
            self._add(log_page(k), "log.html" if k == 1 else f"log/{k}.html")
        for r in self.ref_logs:
            base = f"ref/{self.ref_slugs[r.ref.name[len('refs/'):]]}"
            for k in range(1, self.ref_log_pages(r) + 1):
                self._add(ref_log_page(r.ref.name, k), f"{base}/log.html" if k == 1 else f"{base}/log-{k}.html")
        for c in self.commits:
            self._add(commit_page(c.id), f"commit/{c.id}.html")
        for root in sorted(self.roots.values(), key=lambda r: r.slug):
            for d in sorted(root.dirs):
                sub = f"{escape_path(d)}/" if d else ""
                self._add(tree_page(root.tree_id, d), f"tree/{root.slug}/{sub}index.html")
            for e in root.entries:
                if e.kind.is_blob:
                    self._add(file_page(root.tree_id, e.path), f"file/{root.slug}/{escape_path(e.path)}.html")

    def has(self, pid: PageId) -> bool:
        return pid in self.paths

    def path(self, pid: PageId) -> str:
        return self.paths[pid]

    def ids(self, kind: Optional[PageKind] = None) -> List[PageId]:
        return [pid for pid in self.paths if kind is None or pid.kind is kind]

    def doc_file(self, candidates: Iterable[str]) -> Optional[PageId]:
        if self.default_root is None:
            return None
        for name in candidates:
            pid = file_page(self.default_root, name)
            if self.has(pid):
                return pid
        return None


class _Links:
    """Link resolver for one page; remembers every page it linked to."""

    def __init__(self, plan: SitePlan, source: PageId) -> None:
        self.plan = plan
        self.source = source
        self.path = plan.path(source)
        self.targets: List[PageId] = []

    @property
    def root(self) -> str:
        return to_root(self.path)

    def href(self, target: PageId, fragment: str = "") -> str:
        if target not in self.targets:
            self.targets.append(target)
        return relative_href(self.path, self.plan.path(target), fragment)

    def link(self, target: PageId, text: str, fragment: str = "", cls: str = "") -> str:
        return link(self.href(target, fragment), text, cls)

    def maybe(self, target: PageId, text: str) -> str:
        """A link when `target` is in the plan, else the bare text."""
        if self.plan.has(target):
            return self.link(target, text)
        return esc(text)


# ---- phase two: bodies -------------------------------------------------------

class Assembler:
    def __init__(
        self,
        plan: SitePlan,
        repo: GitRepository,
        errors: ErrorLog,
        blob_cache: Optional[BlobInfoCache] = None,
    ) -> None:
        self.plan = plan
        self.repo = repo
        self.config = plan.config
        self.meta = plan.meta
        self.errors = errors
        self.blobs = blob_cache or BlobInfoCache()
        self._stats_lock = threading.Lock()
        self.stats: Dict[str, Optional[DiffStat]] = {}

    # -- commit diffs --

    def outcome(self, c: Commit) -> Tuple[Optional[CommitDiff], str]:
        """
        Diff of `c` against its first parent, or None and the reason it could
        not be computed. Only the diffstat is kept, so log, feed and commit
        pages agree whichever of them is rendered first.
        """
        try:
            result = diff(self.repo, c, context=self.config.context, detect_renames=self.config.detect_renames)
        except CommitError as exc:
            self._settle(c.id, None, str(exc))
            return None, str(exc)
        self._settle(c.id, result.stat, "")
        return result, ""

    def _settle(self, commit_id: str, stat: Optional[DiffStat], error: str) -> None:
        with self._stats_lock:
            if commit_id in self.stats:
                return
            self.stats[commit_id] = stat
        if stat is None:
            self.errors.record(SCOPE_COMMIT, commit_id, error)

    def stat(self, c: Commit) -> Optional[DiffStat]:
        with self._stats_lock:
            if c.id in self.stats:
                return self.stats[c.id]
        result, _ = self.outcome(c)
        return result.stat if result is not None else None

    # -- shared pieces --

    def _shell(self, ln: _Links, title: str, body: str) -> Page:
        plan = self.plan
        nav: List[Tuple[str, str]] = []
        if plan.has(log_page(1)):
            nav.append((ln.href(log_page(1)), "Log"))
        if plan.default_root is not None and plan.has(tree_page(plan.default_root, "")):
            nav.append((ln.href(tree_page(plan.default_root, "")), "Files"))
        nav.append((ln.href(refs_page()), "Refs"))
        readme = plan.doc_file([self.meta.readme] if self.meta.readme else README_FILES)
        if readme is not None:
            nav.append((ln.href(readme), "README"))
        license_ = plan.doc_file([self.meta.license] if self.meta.license else LICENSE_FILES)
        if license_ is not None:
            nav.append((ln.href(license_), "LICENSE"))
        html_out = render_page(
            title=title,
            repo_name=self.meta.name,
            description=self.meta.description,
            clone_urls=self.meta.clone_urls,
            root=ln.root,
            body=body,
            nav=nav,
            feed=plan.has(feed_page()),
            logo=self.config.logo is not None,
            favicon=self.config.favicon is not None,
        )
        return Page(id=ln.source, path=ln.path, title=title, body=html_out, links=list(ln.targets))

    def _commit_ref(self, ln: _Links, oid: str, text: Optional[str] = None) -> str:
        text = text or oid
        return ln.maybe(commit_page(oid), text)

    def _log_rows(self, ln: _Links, commits: Sequence[Commit]) -> List[str]:
        rows = []
        for c in commits:
            subject = self._commit_ref(ln, c.id, c.subject or "(no subject)")
            author = esc(c.author.name)
            date = esc(c.author.date_iso)
            short = f"<code>{esc(c.id[:SHORT_ID])}</code>"
            st = self.stat(c)
            if st is None:
                rows.append(
                    f'<tr class="degraded"><td>{date}</td><td>{subject}</td><td>{author}</td>'
                    f'<td class="num">?</td><td class="num">?</td><td class="num">?</td><td>{short} diff unavailable</td></tr>'
                )
                continue
            rows.append(
                f"<tr><td>{date}</td><td>{subject}</td><td>{author}</td>"
                f'<td class="num">{st.files_changed}</td>'
                f'<td class="num plus">+{st.added}</td>'
                f'<td class="num minus">-{st.removed}</td>'
                f"<td>{short}</td></tr>"
            )
        return rows

    def _log_table(self, ln: _Links, commits: Sequence[Commit], remaining: int = 0) -> str:
        rows = self._log_rows(ln, commits)
        if remaining:
            rows.append(
                f"<tr><td>...</td><td>{remaining} more commits remaining, fetch the repository</td>"
                "<td>...</td><td>...</td><td>...</td><td>...</td><td>...</td></tr>"
            )
        return table(["Time", "Commit message", "Author", "Files", "+", "-", "ID"], rows, "log")

    def _pager(self, ln: _Links, make: Callable[[int], PageId], k: int, n: int) -> str:
        parts = []
        if k > 1:
            parts.append(ln.link(make(k - 1), "← Newer"))
        parts.append(f"page {k} of {n}")
        if k < n:
            parts.append(ln.link(make(k + 1), "Older →"))
        return '<div class="pager">' + " | ".join(parts) + "</div>"

    def _ref_link(self, ln: _Links, ref: Ref) -> str:
        return ln.maybe(ref_log_page(ref.name, 1), ref.short_name)

    def _refs_table(self, ln: _Links, ref_logs: List[RefLog], table_id: str) -> str:
        rows = []
        for r in sorted(ref_logs, key=lambda r: (-r.head.time, r.ref.name)):
            rows.append(
                f"<tr><td>{self._ref_link(ln, r.ref)}</td>"
                f"<td>{esc(r.head.committer.date_iso)}</td>"
                f"<td>{esc(r.head.author.name)}</td>"
                f"<td>{self._commit_ref(ln, r.head.id, r.head.id[:SHORT_ID])}</td></tr>"
            )
        return table(["Name", "Last commit time", "Author", "Commit"], rows, table_id)

    # -- page kinds --

    def render(self, pid: PageId) -> Page:
        kind = pid.kind
        if kind is PageKind.INDEX:
            return self.index()
        if kind is PageKind.LOG:
            return self.log(pid.key[0])
        if kind is PageKind.REF_LOG:
            return self.ref_log(*pid.key)
        if kind is PageKind.TREE:
            return self.tree(*pid.key)
        if kind is PageKind.FILE:
            return self.file(*pid.key)
        if kind is PageKind.REFS:
            return self.refs()
        if kind is PageKind.FEED:
            return self.feed()
        if kind is PageKind.META:
            return self.meta_record()
        if kind is PageKind.COMMIT:
            return self.commit(self.plan.by_id[pid.key[0]])
        raise ValueError(f"unknown page kind {kind}")

    def index(self) -> Page:
        plan = self.plan
        ln = _Links(plan, index_page())
        last = esc(plan.log[0].committer.date_iso) if plan.log else "never"
        summary = table(
            ["", ""],
            [
                f"<tr><td>Name</td><td>{esc(self.meta.name)}</td></tr>",
                f"<tr><td>Description</td><td>{esc(self.meta.description)}</td></tr>",
                f"<tr><td>Owner</td><td>{esc(self.meta.owner)}</td></tr>",
                f"<tr><td>Last activity</td><td>{last}</td></tr>",
            ],
            "summary",
        )
        parts = [summary, "<h2>Log</h2>"]
        if plan.log:
            size = self.config.log_page_size
            parts.append(self._log_table(ln, plan.log[:size]))
            if plan.has(log_page(2)):
                parts.append(f'<div class="pager">{ln.link(log_page(2), "Older →")}</div>')
        else:
            parts.append("<p><em>No commits</em></p>")
        parts.append("<h2>Refs</h2>")
        parts.append(self._refs_body(ln))
        return self._shell(ln, "Index", "\n".join(parts))

    def log(self, k: int) -> Page:
        plan = self.plan
        ln = _Links(plan, log_page(k))
        n = plan.log_pages()
        commits = chunk(plan.log, k, self.config.log_page_size)
        remaining = plan.log_remaining if k == n else 0
        body = "\n".join([
            self._log_table(ln, commits, remaining),
            self._pager(ln, log_page, k, n),
        ])
        return self._shell(ln, "Log" if k == 1 else f"Log (page {k})", body)

    def ref_log(self, ref_name: str, k: int) -> Page:
        plan = self.plan
        r = plan.ref_log(ref_name)
        ln = _Links(plan, ref_log_page(ref_name, k))
        shown = plan.shown(r)
        n = plan.ref_log_pages(r)
        remaining = len(r.commits) - len(shown) if k == n else 0
        kind = "tag" if r.ref.is_tag else "branch"
        body = "\n".join([
            f"<h2>Log of {kind} {esc(r.ref.short_name)}</h2>",
            self._log_table(ln, chunk(shown, k, self.config.log_page_size), remaining),
            self._pager(ln, lambda i: ref_log_page(ref_name, i), k, n),
        ])
        title = f"Log {r.ref.short_name}" + ("" if k == 1 else f" (page {k})")
        return self._shell(ln, title, body)

    def commit(self, c: Commit) -> Page:
        result, error = self.outcome(c)
        ln = _Links(self.plan, commit_page(c.id))
        meta = [f"<b>commit</b> {ln.link(commit_page(c.id), c.id)}"]
        for p in c.parents:
            meta.append(f"<b>parent</b> {self._commit_ref(ln, p)}")
        meta.append(f"<b>author</b> {esc(c.author.name)} &lt;{esc(c.author.email)}&gt;")
        meta.append(f"<b>date</b>   {esc(c.author.date_iso)}")
        if (c.committer.name, c.committer.email) != (c.author.name, c.author.email):
            meta.append(f"<b>committer</b> {esc(c.committer.name)} &lt;{esc(c.committer.email)}&gt;")
        refs = self.plan.decorations.get(c.id, [])
        if refs:
            meta.append("<b>refs</b> " + ", ".join(self._ref_link(ln, r) for r in refs))
        parts = [
            '<pre class="commit-meta">' + "\n".join(meta) + "</pre>",
            f"<p><b>{esc(c.subject)}</b></p>",
        ]
        if c.body:
            parts.append(f'<pre class="message">{esc(c.body)}</pre>')
        if result is None:
            parts.append(f'<p class="warn">Diff unavailable: {esc(error)}</p>')
            return self._shell(ln, c.subject or c.id, "\n".join(parts))

        stat = result.stat
        parts.append(f"<p>{esc(stat.summary)}</p>")
        if c.is_merge:
            parts.append('<p class="meta">Merge commit: changes shown against the first parent.</p>')
        parts.append("<b>Diffstat:</b>")
        rows = []
        for i, (entry, fs) in enumerate(zip(result.entries, stat.files)):
            name = entry.path if entry.old_path in (None, entry.path) else f"{entry.old_path} → {entry.path}"
            if fs.binary:
                counts = f"Bin {entry.old_size} → {entry.new_size} bytes"
                marks = ""
            else:
                counts = f"+{fs.added} -{fs.removed}"
                plus, minus = bar(fs.added, fs.removed, stat.max_magnitude)
                marks = f'<span class="plus">{"+" * plus}</span><span class="minus">{"-" * minus}</span>'
            rows.append(
                f'<tr><td><span class="badge badge-{fs.kind.value}" title="{esc(fs.kind.title)}">{fs.kind.value}</span></td>'
                f'<td><a href="#file-{i}">{esc(name)}</a></td><td>|</td>'
                f'<td class="num">{esc(counts)}</td><td>{marks}</td></tr>'
            )
        parts.append(table(["", "Path", "", "Lines", ""], rows, "diffstat"))
        parts.append("<hr />")
        fragments, truncated = render_patch(result.entries, self.config.max_diff_bytes)
        for i, frag in enumerate(fragments):
            parts.append(f'<div class="file-diff" id="file-{i}">{frag}</div>')
        if truncated:
            parts.append('<p class="warn">Diff truncated, fetch the repository for the full patch.</p>')
        return self._shell(ln, c.subject or c.id, "\n".join(parts))

    def _blob_info(self, entry: TreeEntry) -> Optional[BlobInfo]:
        info = self.blobs.get(entry.id)
        if info is not None:
            return info
        try:
            return self.blobs.describe(entry.id, self.repo.read_blob(entry.id))
        except ObjectError:
            # recorded once, by the file page for this entry
            return None

    def _breadcrumb(self, ln: _Links, root: TreeRoot, path: str, leaf_is_file: bool) -> str:
        crumbs = [ln.maybe(tree_page(root.tree_id, ""), root.slug)]
        parts = path.split("/") if path else []
        for i, part in enumerate(parts):
            sub = "/".join(parts[:i + 1])
            if leaf_is_file and i == len(parts) - 1:
                crumbs.append(esc(part))
            else:
                crumbs.append(ln.maybe(tree_page(root.tree_id, sub), part))
        return '<p class="path">' + " / ".join(crumbs) + "</p>"

    def tree(self, root_id: str, path: str) -> Page:
        root = self.plan.roots[root_id]
        ln = _Links(self.plan, tree_page(root_id, path))
        rows = []
        if path:
            parent = path.rsplit("/", 1)[0] if "/" in path else ""
            rows.append(f"<tr><td>{MODE_STRINGS[EntryKind.DIRECTORY]}</td><td>{ln.maybe(tree_page(root_id, parent), '..')}</td><td></td></tr>")
        for e in root.dirs.get(path, []):
            mode = MODE_STRINGS[e.kind]
            if e.kind is EntryKind.DIRECTORY:
                name, size = ln.maybe(tree_page(root_id, e.path), e.name + "/"), ""
            elif e.kind is EntryKind.SUBMODULE:
                name, size = f"{esc(e.name)} @ <code>{esc(e.id[:SHORT_ID])}</code>", ""
            else:
                name = ln.maybe(file_page(root_id, e.path), e.name)
                info = self._blob_info(e)
                if info is None:
                    size = "?"
                else:
                    size = f"{info.lines}L" if info.is_text else f"{info.size}B"
            rows.append(f'<tr><td>{mode}</td><td>{name}</td><td class="num">{size}</td></tr>')
        refs = ", ".join(self._ref_link(ln, self.plan.ref_log(n).ref) for n in root.refs)
        body = "\n".join([
            self._breadcrumb(ln, root, path, False),
            f'<p class="meta">Tree of {refs}</p>' if refs else "",
            table(["Mode", "Name", "Size"], rows, "files"),
        ])
        return self._shell(ln, "Files" if not path else path, body)

    def file(self, root_id: str, path: str) -> Page:
        ln = _Links(self.plan, file_page(root_id, path))
        root = self.plan.roots[root_id]
        entry = next(e for e in root.dirs.get(path.rsplit("/", 1)[0] if "/" in path else "", []) if e.path == path)
        parts = [self._breadcrumb(ln, root, path, True)]
        try:
            info, text = self._file_text(entry)
        except FileError as exc:
            self.errors.record(SCOPE_FILE, exc.path, str(exc))
            parts.append(f'<p class="warn">{esc(exc.reason)}.</p>')
            return self._shell(ln, entry.name, "\n".join(parts))
        parts.append(f'<p class="meta">{esc(path)} ({info.size}B)</p><hr />')
        parts.append(render_blob(text))
        return self._shell(ln, entry.name, "\n".join(parts))

    def _file_text(self, entry: TreeEntry) -> Tuple[BlobInfo, str]:
        try:
            data = self.repo.read_blob(entry.id)
        except ObjectError as exc:
            raise FileError(entry.path, f"unreadable object {entry.id}") from exc
        info = self.blobs.describe(entry.id, data)
        if info.size > self.config.max_file_bytes:
            raise FileError(entry.path, f"file too large to display ({info.size} bytes)")
        if not info.is_text:
            raise FileError(entry.path, f"binary file ({info.size} bytes)")
        return info, data.decode("utf-8")

    def _refs_body(self, ln: _Links) -> str:
        branches = [r for r in self.plan.ref_logs if not r.ref.is_tag]
        tags = [r for r in self.plan.ref_logs if r.ref.is_tag]
        parts = ["<h3>Branches</h3>"]
        parts.append(self._refs_table(ln, branches, "branches") if branches else "<p><em>No branches</em></p>")
        if tags:
            parts.append("<h3>Tags</h3>")
            parts.append(self._refs_table(ln, tags, "tags"))
        return "\n".join(parts)

    def refs(self) -> Page:
        ln = _Links(self.plan, refs_page())
        return self._shell(ln, "Refs", self._refs_body(ln))

    def feed(self) -> Page:
        ln = _Links(self.plan, feed_page())
        window = self.plan.log[:self.config.feed_size]
        entries = [(c, ln.href(commit_page(c.id))) for c in window]
        stats = {c.id: self.stat(c) for c in window}
        body = feed_mod.render_atom(self.meta, entries, stats, ln.href(index_page()))
        return Page(id=ln.source, path=ln.path, title="Atom feed", body=body, links=list(ln.targets))

    def meta_record(self) -> Page:
        ln = _Links(self.plan, meta_page())
        last = self.plan.log[0].committer.date_iso if self.plan.log else None
        record = {
            "name": self.meta.name,
            "description": self.meta.description,
            "owner": self.meta.owner,
            "last_commit": last,
            "clone_urls": list(self.meta.clone_urls),
            "index": ln.href(index_page()),
        }
        body = json.dumps(record, indent=2, sort_keys=True) + "\n"
        return Page(id=ln.source, path=ln.path, title="metadata", body=body, links=list(ln.targets))


def render_blob(text: str) -> str:
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    out = []
    for i, line in enumerate(lines, 1):
        out.append(f'<a id="l{i}" href="#l{i}" class="line">{i:>7}</a> {esc(line)}')
    return '<pre id="blob">' + "\n".join(out) + "</pre>"
