"""Filesystem sink for rendered pages."""

from __future__ import annotations

import os
import pathlib
import shutil
import threading

from .errors import OutputError


class OutputWriter:
    def __init__(self, out_dir: str) -> None:
        self.root = pathlib.Path(out_dir)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OutputError(f"{out_dir}: cannot create output directory ({exc})") from exc
        if not os.access(self.root, os.W_OK | os.X_OK):
            raise OutputError(f"{out_dir}: output directory is not writable")
        self._lock = threading.Lock()
        self.written = 0

    def write(self, relpath: str, content: str) -> pathlib.Path:
        path = self.root / relpath
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8", errors="replace", newline="\n") as f:
                f.write(content)
        except OSError as exc:
            raise OutputError(f"{path}: {exc}") from exc
        with self._lock:
            self.written += 1
        return path

    def copy(self, relpath: str, source: str) -> pathlib.Path:
        path = self.root / relpath
        try:
            shutil.copyfile(source, path)
        except OSError as exc:
            raise OutputError(f"{source}: cannot copy to {path} ({exc})") from exc
        with self._lock:
            self.written += 1
        return path

    def write_page(self, page) -> pathlib.Path:
        return self.write(page.path, page.body)
