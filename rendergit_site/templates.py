"""HTML page shell and the shared stylesheet."""

from __future__ import annotations

import html
from typing import List, Optional, Tuple

from pygments.formatters import HtmlFormatter

STYLESHEET_PATH = "style.css"
LOGO_PATH = "logo.png"
FAVICON_PATH = "favicon.png"

BASE_CSS = """\
:root {
  --bg:#fff; --muted:#666; --line:#eee;
  --brand:#0366d6; --pill:#f2f4f7; --plus:#0a7b34; --minus:#a01515; --warn:#8a6d3b;
}
* { box-sizing: border-box; }
body { margin:0 auto; max-width: 1200px; padding: 1rem; font-family: -apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,Helvetica,Arial; line-height:1.45; }
code, pre { font-family: ui-monospace,SFMono-Regular,Menlo,Monaco,Consolas,'Liberation Mono','Courier New', monospace; }
a { color: var(--brand); text-decoration: none; }
a:hover { text-decoration: underline; }
header h1 { margin: 0; font-size: 1.4rem; }
header .desc { color: var(--muted); }
header .clone { color: var(--muted); font-size: .9rem; }
#logo { float: left; height: 48px; margin-right: 1rem; }
nav { margin: .4rem 0; }
hr { border: 0; border-top: 1px solid var(--line); }
table { border-collapse: collapse; }
td, th { padding: .1rem .6rem .1rem 0; text-align: left; vertical-align: top; }
td.num { text-align: right; white-space: nowrap; }
tr.degraded td { color: var(--warn); }
.meta { color: var(--muted); font-size: .9rem; }
.plus { color: var(--plus); }
.minus { color: var(--minus); }
.warn { color: var(--warn); }
.pager { margin: .75rem 0; }
.badge { display:inline-block; font-size:.75rem; padding:.05rem .4rem; border-radius:999px; border:1px solid #d1d9e0; background:#fff; }
.badge-A { background:#eefbf2; border-color:#dbeee0; }
.badge-M { background:#eef2fb; border-color:#dfe3f6; }
.badge-D { background:#fdf0f0; border-color:#f3dcdc; }
.badge-R { background:#fff6ea; border-color:#f1e3c9; }
pre { background:#f6f8fa; padding:.75rem; overflow:auto; border-radius:6px; }
pre#blob a.line { color: var(--muted); }
.highlight { overflow-x: auto; }
"""


def stylesheet() -> str:
    formatter = HtmlFormatter(nowrap=False)
    return BASE_CSS + "\n/* Pygments */\n" + formatter.get_style_defs(".highlight") + "\n"


def esc(s: str) -> str:
    # undecodable bytes in git names show as U+FFFD
    s = s.encode("utf-8", errors="surrogateescape").decode("utf-8", errors="replace")
    return html.escape(s, quote=True)


def link(href: str, text: str, cls: str = "") -> str:
    c = f' class="{cls}"' if cls else ""
    return f'<a href="{esc(href)}"{c}>{esc(text)}</a>'


def table(headers: List[str], rows: List[str], table_id: str = "") -> str:
    """`rows` are pre-rendered `<tr>` elements."""
    tid = f' id="{table_id}"' if table_id else ""
    head = "".join(f"<th>{esc(h)}</th>" for h in headers)
    return f"<table{tid}>\n<thead><tr>{head}</tr></thead>\n<tbody>\n" + "\n".join(rows) + "\n</tbody>\n</table>"


def assets(logo: Optional[str], favicon: Optional[str]) -> List[Tuple[str, str]]:
    """(output name, source file) of the images to copy to the output root."""
    out = []
    if logo:
        out.append((LOGO_PATH, logo))
    if favicon:
        out.append((FAVICON_PATH, favicon))
    return out


def render_page(
    title: str,
    repo_name: str,
    description: str,
    clone_urls: List[str],
    root: str,
    body: str,
    nav: Optional[List[Tuple[str, str]]] = None,
    feed: bool = True,
    logo: bool = False,
    favicon: bool = False,
) -> str:
    """
    Wrap `body` in the common page shell. `root` is the relative prefix from
    the page back to the output root, `nav` a list of (href, label). `logo` and
    `favicon` say whether logo.png / favicon.png sit at the output root.
    """
    clone = "".join(f'<div class="clone"><code>git clone {esc(u)}</code></div>' for u in clone_urls)
    nav_html = ""
    if nav:
        nav_html = "<nav>" + " | ".join(link(href, label) for href, label in nav) + "</nav>"
    feed_link = ""
    if feed:
        feed_link = f'<link rel="alternate" type="application/atom+xml" title="{esc(repo_name)} Atom feed" href="{esc(root)}atom.xml" />\n'
    icon = f'<link rel="icon" type="image/png" href="{esc(root)}{FAVICON_PATH}" />\n' if favicon else ""
    logo_html = ""
    if logo:
        logo_html = f'<a href="{esc(root)}index.html"><img id="logo" src="{esc(root)}{LOGO_PATH}" alt="logo" /></a>\n'
    full_title = f"{title} - {repo_name}" + (f" - {description}" if description else "")
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8" />
<meta name="viewport" content="width=device-width, initial-scale=1" />
<title>{esc(full_title)}</title>
<link rel="stylesheet" href="{esc(root)}{STYLESHEET_PATH}" />
{feed_link}{icon}</head>
<body>
<header>
{logo_html}<h1>{link(root + "index.html", repo_name)}</h1>
<span class="desc">{esc(description)}</span>
{clone}
{nav_html}
</header>
<hr />
<main>
{body}
</main>
</body>
</html>
"""
