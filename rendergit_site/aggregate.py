"""Landing page for several rendered repositories, built from their repo.json records."""

from __future__ import annotations

import json
import os
import pathlib
from typing import Dict, List, Optional

from .errors import RepositoryError
from .templates import STYLESHEET_PATH, assets, esc, render_page, table
from .templates import stylesheet as default_stylesheet
from .writer import OutputWriter

META_FILE = "repo.json"


def load_record(site_dir: str) -> Dict:
    path = pathlib.Path(site_dir) / META_FILE
    try:
        with open(path, "r", encoding="utf-8") as f:
            record = json.load(f)
    except (OSError, ValueError) as exc:
        raise RepositoryError(f"{site_dir}: no rendered repository here ({exc})") from exc
    record.setdefault("index", "index.html")
    return record


def build_index_page(
    site_dirs: List[str],
    out_dir: str,
    title: str = "Repositories",
    stylesheet: Optional[str] = None,
    logo: Optional[str] = None,
    favicon: Optional[str] = None,
) -> pathlib.Path:
    """
    Write index.html to `out_dir`. `stylesheet` is a CSS file to copy, else
    the default one is written; `logo` and `favicon` are PNG files to copy.
    """
    writer = OutputWriter(out_dir)
    rows = []
    for site_dir in site_dirs:
        record = load_record(site_dir)
        target = os.path.relpath(os.path.join(site_dir, record["index"]), writer.root)
        rows.append(
            f'<tr><td><a href="{esc(pathlib.PurePath(target).as_posix())}">{esc(record.get("name", ""))}</a></td>'
            f'<td>{esc(record.get("description") or "")}</td>'
            f'<td>{esc(record.get("owner") or "")}</td>'
            f'<td>{esc(record.get("last_commit") or "")}</td></tr>'
        )
    body = table(["Name", "Description", "Owner", "Last commit"], rows, "index")
    page = render_page(
        title="Index", repo_name=title, description="", clone_urls=[], root="", body=body,
        feed=False, logo=logo is not None, favicon=favicon is not None,
    )
    path = writer.write("index.html", page)
    if stylesheet is None:
        writer.write(STYLESHEET_PATH, default_stylesheet())
    else:
        writer.copy(STYLESHEET_PATH, stylesheet)
    for name, source in assets(logo, favicon):
        writer.copy(name, source)
    return path
