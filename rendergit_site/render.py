"""
Render one git repository into a directory of static pages.

Refs are walked independently, then the site plan fixes every page's
identifier and path, then commit, tree, file and log pages are rendered by a
worker pool. A failing ref, commit or file is recorded and skipped; only an
unreadable repository or an unwritable output directory stops the run.
"""

from __future__ import annotations

import dataclasses
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Tuple

from .config import LICENSE_FILES, README_FILES, TREE_REFS_ALL, TREE_REFS_HEAD, RenderConfig, RepoMeta
from .errors import SCOPE_FILE, SCOPE_REF, ErrorLog, Failure, ObjectError, RefError
from .git import GitRepository, Ref, TreeEntry
from .history import walk
from .naming import unique_slugs
from .pages import Assembler, PageId, PageKind, RefLog, SitePlan, TreeRoot
from .templates import STYLESHEET_PATH, assets, stylesheet
from .tree import project_tree
from .writer import OutputWriter


@dataclasses.dataclass
class RenderResult:
    out_dir: str
    pages: int
    commits: int
    refs: int
    failures: List[Failure]


def _noop(msg: str) -> None:
    pass


def ref_history(repo: GitRepository, ref: Ref) -> RefLog:
    try:
        head = repo.peel(ref.target)
        commits = list(walk(repo, head))
    except ObjectError as exc:
        raise RefError(ref.name, str(exc)) from exc
    return RefLog(ref=ref, commits=commits)


def walk_ref(repo: GitRepository, ref: Ref, errors: ErrorLog) -> Optional[RefLog]:
    try:
        return ref_history(repo, ref)
    except RefError as exc:
        errors.record(SCOPE_REF, exc.ref, str(exc))
        return None


def select_tree_refs(ref_logs: List[RefLog], head_ref: Optional[str], mode: str) -> List[RefLog]:
    if not ref_logs:
        return []
    if mode == TREE_REFS_ALL:
        return list(ref_logs)
    branches = [r for r in ref_logs if r.ref.is_branch]
    head = [r for r in ref_logs if r.ref.name == head_ref]
    if mode == TREE_REFS_HEAD or not branches:
        return head or branches[:1] or ref_logs[:1]
    return branches


def project_roots(
    repo: GitRepository,
    ref_logs: List[RefLog],
    head_ref: Optional[str],
    slugs: Dict[str, str],
    errors: ErrorLog,
) -> Tuple[List[TreeRoot], Optional[str]]:
    """
    One tree listing per distinct root tree among `ref_logs`. A root is named
    after the HEAD ref when HEAD points at it, else after its first branch.
    """
    groups: Dict[str, List[Ref]] = {}
    for r in ref_logs:
        groups.setdefault(r.head.tree, []).append(r.ref)
    roots: List[TreeRoot] = []
    default_root = None
    for tree_id, refs in groups.items():
        refs.sort(key=lambda ref: (ref.name != head_ref, ref.is_tag, ref.name))
        try:
            entries = project_tree(repo, tree_id)
        except ObjectError as exc:
            for ref in refs:
                errors.record(SCOPE_REF, ref.name, f"tree unreadable: {exc}")
            continue
        slug = slugs[refs[0].name[len("refs/"):]]
        roots.append(TreeRoot(tree_id=tree_id, slug=slug, refs=[ref.name for ref in refs], entries=entries))
        if refs[0].name == head_ref:
            default_root = tree_id
    roots.sort(key=lambda r: r.slug)
    if default_root is None and roots:
        default_root = roots[0].tree_id
    return roots, default_root


def _find_doc(entries: List[TreeEntry], names) -> Optional[str]:
    top = {e.name for e in entries if not e.parent and e.kind.is_blob}
    for name in names:
        if name in top:
            return name
    return None


def plan_site(
    repo: GitRepository,
    config: RenderConfig,
    errors: ErrorLog,
    pool: Optional[ThreadPoolExecutor] = None,
    progress: Callable[[str], None] = _noop,
) -> SitePlan:
    """Walk refs and project trees, then fix every page's identifier and path."""
    meta = RepoMeta.load(repo, config)
    refs = repo.resolve_refs()
    head_ref = repo.head_ref()
    progress(f"Walking history of {len(refs)} refs")
    mapper = pool.map if pool is not None else map
    ref_logs = [r for r in mapper(lambda ref: walk_ref(repo, ref, errors), refs) if r is not None]

    progress("Projecting trees")
    slugs = unique_slugs(r.ref.name[len("refs/"):] for r in ref_logs)
    tree_refs = select_tree_refs(ref_logs, head_ref, config.tree_refs)
    roots, default_root = project_roots(repo, tree_refs, head_ref, slugs, errors)
    for root in roots:
        if root.tree_id == default_root:
            meta.readme = _find_doc(root.entries, README_FILES)
            meta.license = _find_doc(root.entries, LICENSE_FILES)

    plan = SitePlan(meta, config, ref_logs, roots, default_root, head_ref)
    for pid, holder, path in plan.collisions:
        errors.record(SCOPE_FILE, pid.key[1], f"output path {path} already taken by {holder.key[1] or '/'}")
    return plan


def render_repository(
    repo_path: str,
    out_dir: str,
    config: Optional[RenderConfig] = None,
    progress: Optional[Callable[[str], None]] = None,
) -> RenderResult:
    config = config or RenderConfig()
    progress = progress or _noop
    errors = ErrorLog()
    repo = GitRepository.open(repo_path)
    writer = OutputWriter(out_dir)

    with repo, ThreadPoolExecutor(max_workers=config.jobs) as pool:
        plan = plan_site(repo, config, errors, pool, progress)
        assembler = Assembler(plan, repo, errors)
        progress(f"Planned {len(plan.paths)} pages for {len(plan.commits)} commits")

        def write(pid: PageId) -> None:
            writer.write_page(assembler.render(pid))

        # commit pages first so the diffstats the logs and feed show are already cached
        progress(f"Rendering {len(plan.commits)} commits (-U {config.context})")
        list(pool.map(write, plan.ids(PageKind.COMMIT)))

        progress("Rendering trees and files")
        list(pool.map(write, plan.ids(PageKind.TREE) + plan.ids(PageKind.FILE)))

        progress("Rendering logs, refs, index and feed")
        rest = [pid for pid in plan.ids() if pid.kind not in (PageKind.COMMIT, PageKind.TREE, PageKind.FILE)]
        list(pool.map(write, rest))

        writer.write(STYLESHEET_PATH, stylesheet())
        for name, source in assets(config.logo, config.favicon):
            writer.copy(name, source)

    return RenderResult(
        out_dir=str(writer.root),
        pages=writer.written,
        commits=len(plan.commits),
        refs=len(plan.ref_logs),
        failures=errors.failures,
    )
