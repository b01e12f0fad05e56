"""Shared fixtures: throwaway git repositories with fixed identities and dates."""

from __future__ import annotations

import os
import pathlib
import subprocess
from typing import Dict, Optional, Union

import pytest

BASE_TIME = 1700000000


class RepoBuilder:
    def __init__(self, path: pathlib.Path, env: Dict[str, str]) -> None:
        self.path = path
        self.env = env
        self.clock = BASE_TIME
        self.git("init", "-q")
        self.git("symbolic-ref", "HEAD", "refs/heads/main")
        self.git("config", "commit.gpgsign", "false")
        self.git("config", "tag.gpgsign", "false")

    def git(self, *args: str, when: Optional[int] = None) -> str:
        env = dict(self.env)
        if when is not None:
            env["GIT_AUTHOR_DATE"] = f"{when} +0000"
            env["GIT_COMMITTER_DATE"] = f"{when} +0000"
        cp = subprocess.run(["git", *args], cwd=self.path, env=env, capture_output=True, text=True, check=True)
        return cp.stdout.strip()

    def write(self, relpath: str, content: Union[str, bytes]) -> None:
        p = self.path / relpath
        p.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            p.write_bytes(content)
        else:
            p.write_text(content, encoding="utf-8")

    def remove(self, relpath: str) -> None:
        (self.path / relpath).unlink()

    def tick(self, when: Optional[int] = None) -> int:
        if when is None:
            self.clock += 60
            when = self.clock
        return when

    def commit(self, message: str, when: Optional[int] = None) -> str:
        when = self.tick(when)
        self.git("add", "-A")
        self.git("commit", "-q", "--allow-empty", "-m", message, when=when)
        return self.git("rev-parse", "HEAD")

    def checkout(self, branch: str, new: bool = False) -> None:
        if new:
            self.git("checkout", "-q", "-b", branch)
        else:
            self.git("checkout", "-q", branch)

    def merge(self, branch: str, message: str, when: Optional[int] = None) -> str:
        when = self.tick(when)
        self.git("merge", "-q", "--no-ff", "--no-edit", "-m", message, branch, when=when)
        return self.git("rev-parse", "HEAD")


@pytest.fixture
def git_env(tmp_path: pathlib.Path) -> Dict[str, str]:
    home = tmp_path / "home"
    home.mkdir()
    env = dict(os.environ)
    env.update({
        "HOME": str(home),
        "GIT_CONFIG_NOSYSTEM": "1",
        "GIT_AUTHOR_NAME": "Ada Lovelace",
        "GIT_AUTHOR_EMAIL": "ada@example.com",
        "GIT_COMMITTER_NAME": "Ada Lovelace",
        "GIT_COMMITTER_EMAIL": "ada@example.com",
    })
    env.pop("GIT_DIR", None)
    env.pop("GIT_WORK_TREE", None)
    return env


@pytest.fixture
def make_repo(tmp_path: pathlib.Path, git_env: Dict[str, str]):
    counter = {"n": 0}

    def factory(name: Optional[str] = None) -> RepoBuilder:
        counter["n"] += 1
        path = tmp_path / (name or f"repo{counter['n']}")
        path.mkdir()
        return RepoBuilder(path, git_env)

    return factory
