"""Render settings and repository display metadata."""

from __future__ import annotations

import dataclasses
import pathlib
from typing import List, Optional, Tuple

from .git import GitRepository

DEFAULT_LOG_PAGE_SIZE = 100
DEFAULT_FEED_SIZE = 20
DEFAULT_CONTEXT = 3
DEFAULT_MAX_DIFF_BYTES = 512 * 1024  # 512 KiB per-commit
DEFAULT_MAX_FILE_BYTES = 1024 * 1024
DEFAULT_JOBS = 1

TREE_REFS_HEAD = "head"
TREE_REFS_BRANCHES = "branches"
TREE_REFS_ALL = "all"
TREE_REFS_CHOICES = (TREE_REFS_HEAD, TREE_REFS_BRANCHES, TREE_REFS_ALL)

README_FILES = ("README", "README.md", "README.rst", "README.txt")
LICENSE_FILES = ("LICENSE", "LICENSE.md", "LICENSE.txt", "COPYING")

# what `git init` writes into .git/description
STOCK_DESCRIPTION = "Unnamed repository; edit this file 'description' to name the repository."


@dataclasses.dataclass
class RenderConfig:
    log_page_size: int = DEFAULT_LOG_PAGE_SIZE
    feed_size: int = DEFAULT_FEED_SIZE
    max_commits: Optional[int] = None
    context: int = DEFAULT_CONTEXT
    max_diff_bytes: int = DEFAULT_MAX_DIFF_BYTES
    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES
    detect_renames: bool = True
    tree_refs: str = TREE_REFS_BRANCHES
    jobs: int = DEFAULT_JOBS
    name: Optional[str] = None
    description: Optional[str] = None
    owner: Optional[str] = None
    clone_urls: Tuple[str, ...] = ()
    logo: Optional[str] = None       # PNG copied to logo.png
    favicon: Optional[str] = None    # PNG copied to favicon.png

    def __post_init__(self) -> None:
        if self.log_page_size < 1:
            raise ValueError("log_page_size must be at least 1")
        if self.feed_size < 0:
            raise ValueError("feed_size must not be negative")
        if self.max_commits is not None and self.max_commits < 1:
            raise ValueError("max_commits must be at least 1")
        for field in ("context", "max_diff_bytes", "max_file_bytes"):
            if getattr(self, field) < 0:
                raise ValueError(f"{field} must not be negative")
        if self.tree_refs not in TREE_REFS_CHOICES:
            raise ValueError(f"tree_refs must be one of {', '.join(TREE_REFS_CHOICES)}")
        if self.jobs < 1:
            raise ValueError("jobs must be at least 1")
        for field in ("logo", "favicon"):
            source = getattr(self, field)
            if source is not None and not pathlib.Path(source).is_file():
                raise ValueError(f"{field} {source}: no such file")


@dataclasses.dataclass
class RepoMeta:
    name: str
    description: str = ""
    owner: str = ""
    clone_urls: List[str] = dataclasses.field(default_factory=list)
    readme: Optional[str] = None
    license: Optional[str] = None

    @classmethod
    def load(cls, repo: GitRepository, config: RenderConfig) -> "RepoMeta":
        name = config.name or repo_display_name(repo.path)
        description = config.description
        if description is None:
            description = repo.read_meta_file("description")
            if description == STOCK_DESCRIPTION:
                description = ""
        owner = config.owner if config.owner is not None else repo.read_meta_file("owner")
        urls = list(config.clone_urls)
        if not urls:
            urls = [u for u in repo.read_meta_file("url").splitlines() if u.strip()]
        return cls(name=name, description=description, owner=owner, clone_urls=urls)


def repo_display_name(path: str) -> str:
    name = pathlib.Path(path).resolve().name
    if name.endswith(".git") and len(name) > 4:
        name = name[:-4]
    return name or "repo"
