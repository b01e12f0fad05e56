"""Output file names and relative links."""

from __future__ import annotations

import hashlib
import posixpath
from typing import Dict, Iterable
from urllib.parse import quote


def slug(s: str) -> str:
    out = []
    for ch in s:
        if ch.isalnum() or ch in "-_":
            out.append(ch)
        else:
            out.append("-")
    return "".join(out) or "-"


def short_hash(s: str, n: int = 8) -> str:
    return hashlib.sha1(s.encode("utf-8", errors="surrogateescape")).hexdigest()[:n]


def unique_slugs(names: Iterable[str]) -> Dict[str, str]:
    """
    Map every name to a slug no other name in the set shares.

    Names whose slug clashes (case-insensitively) with another name all get a
    hash of the full name appended, so the result depends only on the set of
    names, never on their order.
    """
    names = sorted(set(names))
    groups: Dict[str, list] = {}
    for name in names:
        groups.setdefault(slug(name).lower(), []).append(name)
    out: Dict[str, str] = {}
    for name in names:
        s = slug(name)
        if len(groups[s.lower()]) > 1:
            s = f"{s}-{short_hash(name)}"
        out[name] = s
    return out


def escape_component(name: str) -> str:
    """
    Make a tree entry name safe as an output path component.

    "~" is doubled and names ending in ".html" get "~d" appended, so no
    directory component can ever equal a page file name. Bytes that are not
    UTF-8 (kept as surrogates when the name was decoded) become "~x" and two
    hex digits.
    """
    out = []
    for ch in name.replace("~", "~~"):
        if "\udc80" <= ch <= "\udcff":
            out.append(f"~x{ord(ch) - 0xdc00:02x}")
        else:
            out.append(ch)
    name = "".join(out)
    if name.endswith(".html"):
        name += "~d"
    if name in (".", ".."):
        name = "~" + name
    return name


def escape_path(path: str) -> str:
    return "/".join(escape_component(c) for c in path.split("/"))


def relative_href(from_path: str, to_path: str, fragment: str = "") -> str:
    """Relative URL from the page at `from_path` to `to_path` (both output-root relative)."""
    rel = posixpath.relpath(to_path, posixpath.dirname(from_path) or ".")
    href = quote(rel, safe="/")
    if fragment:
        href += "#" + quote(fragment, safe="")
    return href


def to_root(from_path: str) -> str:
    depth = from_path.count("/")
    return "../" * depth
