"""
Error types and the failure ledger of a render run.

Fatal errors (`RepositoryError`, `OutputError`) propagate and stop the run.
Everything else is caught at the ref / commit / file boundary, recorded in an
`ErrorLog`, and reported once the run is over.
"""

from __future__ import annotations

import dataclasses
import threading
from typing import List


class RenderError(Exception):
    """Base class for all renderer errors."""


class RepositoryError(RenderError):
    """The input path is not a readable git repository."""


class OutputError(RenderError):
    """The output destination cannot be written."""


class ObjectError(RenderError):
    """A git object is missing, unreadable or of the wrong type."""

    def __init__(self, oid: str, message: str) -> None:
        super().__init__(f"{oid}: {message}")
        self.oid = oid


class RefError(RenderError):
    def __init__(self, ref: str, message: str) -> None:
        super().__init__(f"{ref}: {message}")
        self.ref = ref


class CommitError(RenderError):
    def __init__(self, commit_id: str, message: str) -> None:
        super().__init__(f"{commit_id}: {message}")
        self.commit_id = commit_id


class FileError(RenderError):
    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path
        self.reason = message


SCOPE_REF = "ref"
SCOPE_COMMIT = "commit"
SCOPE_FILE = "file"


@dataclasses.dataclass(frozen=True)
class Failure:
    scope: str        # one of SCOPE_*
    identifier: str   # ref name, commit id or file path
    message: str


class ErrorLog:
    """Thread-safe collector of non-fatal failures."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._failures: List[Failure] = []

    def record(self, scope: str, identifier: str, message: str) -> None:
        with self._lock:
            self._failures.append(Failure(scope, identifier, message))

    @property
    def failures(self) -> List[Failure]:
        with self._lock:
            return sorted(self._failures, key=lambda f: (f.scope, f.identifier, f.message))
