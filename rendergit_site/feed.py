"""Atom feed of the most recent commits."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote
from xml.sax.saxutils import escape, quoteattr

from .config import RepoMeta
from .diff import DiffStat
from .git import Commit

EPOCH = datetime.fromtimestamp(0, timezone.utc).isoformat()


def feed_id(meta: RepoMeta) -> str:
    """Atom ids must be IRIs: the first clone URL, else a urn built from the name."""
    if meta.clone_urls:
        return meta.clone_urls[0]
    return "urn:rendergit-site:" + quote(meta.name.encode("utf-8", errors="surrogateescape"), safe="")


def entry_id(commit_id: str) -> str:
    return f"urn:git:commit:{commit_id}"


def render_atom(
    meta: RepoMeta,
    entries: List[Tuple[Commit, str]],
    stats: Dict[str, Optional[DiffStat]],
    home_href: str,
) -> str:
    """
    `entries` are (commit, link to its commit page) pairs, newest first. The
    feed's updated stamp is the newest commit's, so reruns give the same bytes.
    """
    updated = entries[0][0].committer.date_iso if entries else EPOCH
    out = [
        '<?xml version="1.0" encoding="utf-8"?>',
        '<feed xmlns="http://www.w3.org/2005/Atom">',
        f"<title>{escape(meta.name)}, branch and tag commits</title>",
        f"<subtitle>{escape(meta.description)}</subtitle>",
        f"<id>{escape(feed_id(meta))}</id>",
        f"<link rel=\"alternate\" type=\"text/html\" href={quoteattr(home_href)} />",
        f"<updated>{updated}</updated>",
    ]
    for c, href in entries:
        content = [c.message.strip()]
        st = stats.get(c.id)
        if st is not None:
            content.append("")
            content.append(st.summary)
        out.append("<entry>")
        out.append(f"<id>{entry_id(c.id)}</id>")
        out.append(f"<published>{c.author.date_iso}</published>")
        out.append(f"<updated>{c.committer.date_iso}</updated>")
        out.append(f"<title type=\"text\">{escape(c.subject or '(no subject)')}</title>")
        out.append(f"<link rel=\"alternate\" type=\"text/html\" href={quoteattr(href)} />")
        out.append(f"<author><name>{escape(c.author.name)}</name><email>{escape(c.author.email)}</email></author>")
        out.append(f"<content type=\"text\">{escape(chr(10).join(content))}</content>")
        out.append("</entry>")
    out.append("</feed>")
    return "\n".join(out) + "\n"
