"""
Command line entry points.

    rendergit-site REPO [-o OUT_DIR] [options]
    rendergit-site-index OUT_DIR/REPO... -o OUT_DIR
"""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from .aggregate import build_index_page
from .config import (
    DEFAULT_CONTEXT,
    DEFAULT_FEED_SIZE,
    DEFAULT_JOBS,
    DEFAULT_LOG_PAGE_SIZE,
    DEFAULT_MAX_DIFF_BYTES,
    DEFAULT_MAX_FILE_BYTES,
    TREE_REFS_BRANCHES,
    TREE_REFS_CHOICES,
    RenderConfig,
)
from .errors import RenderError
from .render import RenderResult, render_repository

EXIT_FATAL = 1
EXIT_FAILURES = 3


def bytes_human(n: int) -> str:
    units = ["B", "KiB", "MiB", "GiB", "TiB"]
    f = float(n)
    i = 0
    while f >= 1024.0 and i < len(units) - 1:
        f /= 1024.0
        i += 1
    return f"{int(f)} {units[i]}" if i == 0 else f"{f:.1f} {units[i]}"


def print_summary(result: RenderResult, verbose: bool) -> None:
    print(
        f"✓ {result.pages} pages for {result.commits} commits on {result.refs} refs → {result.out_dir}",
        file=sys.stderr,
    )
    if not result.failures:
        return
    counts = {}
    for f in result.failures:
        counts[f.scope] = counts.get(f.scope, 0) + 1
    print(
        "⚠️  Skipped: " + ", ".join(f"{n} {scope}(s)" for scope, n in sorted(counts.items())),
        file=sys.stderr,
    )
    for f in result.failures:
        if verbose or f.scope != "file":
            print(f"   {f.scope} {f.identifier}: {f.message}", file=sys.stderr)


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Render a git repository as a static HTML site")
    ap.add_argument("repo", help="Path to a git repository (bare or with a working tree)")
    ap.add_argument("--out", "-o", default=".", help="Output directory (default: current directory)")
    ap.add_argument("--name", help="Display name (default: repository directory name)")
    ap.add_argument("--description", help="Description (default: the repository's description file)")
    ap.add_argument("--owner", help="Owner (default: the repository's owner file)")
    ap.add_argument("--clone-url", action="append", default=[], help="Clone URL to show; may be repeated (default: the repository's url file)")
    ap.add_argument("-l", "--max-commits", type=int, default=None, help="Maximum number of commits per log (default: all)")
    ap.add_argument("--page-size", type=int, default=DEFAULT_LOG_PAGE_SIZE, help="Commits per log page")
    ap.add_argument("--feed-size", type=int, default=DEFAULT_FEED_SIZE, help="Commits in the Atom feed")
    ap.add_argument("-U", "--context", type=int, default=DEFAULT_CONTEXT, help="Diff context lines")
    ap.add_argument("--max-diff-bytes", type=int, default=DEFAULT_MAX_DIFF_BYTES, help="Truncate per-commit diff after this many bytes (0 to disable)")
    ap.add_argument("--max-file-bytes", type=int, default=DEFAULT_MAX_FILE_BYTES, help="Show a placeholder for files larger than this")
    ap.add_argument("--no-renames", action="store_true", help="Report renames as delete + add")
    ap.add_argument("--tree-refs", choices=TREE_REFS_CHOICES, default=TREE_REFS_BRANCHES, help="Which refs get file listings")
    ap.add_argument("-j", "--jobs", type=int, default=DEFAULT_JOBS, help="Worker threads")
    ap.add_argument("--logo", help="PNG copied to logo.png and shown in every page header")
    ap.add_argument("--favicon", help="PNG copied to favicon.png and linked as the page icon")
    ap.add_argument("-q", "--quiet", action="store_true", help="Don't print progress")
    ap.add_argument("-v", "--verbose", action="store_true", help="List every skipped file in the summary")
    ap.add_argument("--strict", action="store_true", help=f"Exit with status {EXIT_FAILURES} if anything was skipped")
    args = ap.parse_args(argv)

    try:
        config = RenderConfig(
            log_page_size=args.page_size,
            feed_size=args.feed_size,
            max_commits=args.max_commits,
            context=args.context,
            max_diff_bytes=args.max_diff_bytes,
            max_file_bytes=args.max_file_bytes,
            detect_renames=not args.no_renames,
            tree_refs=args.tree_refs,
            jobs=args.jobs,
            name=args.name,
            description=args.description,
            owner=args.owner,
            clone_urls=tuple(args.clone_url),
            logo=args.logo,
            favicon=args.favicon,
        )
    except ValueError as exc:
        ap.error(str(exc))

    def progress(msg: str) -> None:
        if not args.quiet:
            print(f"• {msg}", file=sys.stderr)

    progress(
        f"Rendering {args.repo} → {args.out} "
        f"(per-commit diff cap: {bytes_human(args.max_diff_bytes) if args.max_diff_bytes else 'unlimited'})"
    )
    try:
        result = render_repository(args.repo, args.out, config, progress)
    except RenderError as exc:
        print(f"✗ {exc}", file=sys.stderr)
        return EXIT_FATAL

    print_summary(result, args.verbose)
    if args.strict and result.failures:
        return EXIT_FAILURES
    return 0


def index_main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Build a landing page for several rendered repositories")
    ap.add_argument("repos", nargs="*", help="Output directories of rendered repositories")
    ap.add_argument("--out", "-o", default=".", help="Directory to write index.html to")
    ap.add_argument("--name", default="Repositories", help="Page title")
    ap.add_argument("--stylesheet", help="CSS file to copy next to index.html")
    ap.add_argument("--logo", help="PNG to copy next to index.html as logo.png")
    ap.add_argument("--favicon", help="PNG to copy next to index.html as favicon.png")
    args = ap.parse_args(argv)

    try:
        path = build_index_page(
            args.repos, args.out, title=args.name, stylesheet=args.stylesheet, logo=args.logo, favicon=args.favicon,
        )
    except RenderError as exc:
        print(f"✗ {exc}", file=sys.stderr)
        return EXIT_FATAL
    print(f"✓ Wrote {path}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
