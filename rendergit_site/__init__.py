"""
Render a git repository's history, trees and refs as a browsable static
HTML site: paginated logs, one page per commit with its diff against the
first parent, per-directory file listings, a refs page and an Atom feed.
"""

from .config import RenderConfig
from .render import RenderResult, render_repository

__version__ = "0.1.0"

__all__ = ["RenderConfig", "RenderResult", "render_repository", "__version__"]
