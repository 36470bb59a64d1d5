from __future__ import annotations

"""
Share page rendering.

`render_share_page` is a pure function of (partition key, filename) plus the
public base URL: it checks the asset exists and renders an HTML document with
Open Graph / Twitter player metadata and a playable <video> element. The page
is public so that social crawlers can fetch it without credentials.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from nitroshare.storage.catalog import resolve_asset
from nitroshare.storage.media import media_type_for

__all__ = ["AssetLinks", "asset_links", "render_share_page"]

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"

_jinja_env: Optional[Environment] = None


def _jinja() -> Environment:
    global _jinja_env
    if _jinja_env is None:
        _jinja_env = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=select_autoescape(enabled_extensions=("html", "xml")),
        )
    return _jinja_env


@dataclass(frozen=True)
class AssetLinks:
    video_url: str
    share_url: str


def asset_links(base_url: str, key: str, filename: str) -> AssetLinks:
    """Direct (`/uploads/...`) and share (`/share/...`) URLs of an asset."""
    base = base_url.rstrip("/")
    return AssetLinks(
        video_url=f"{base}/uploads/{key}/{filename}",
        share_url=f"{base}/share/{key}/{filename}",
    )


def render_share_page(
    root: Path,
    base_url: str,
    key: str,
    filename: str,
    *,
    width: int = 1280,
    height: int = 720,
    theme_color: str = "#7289DA",
) -> str:
    """HTML share page for an existing asset; raises `NotFound` otherwise."""
    resolve_asset(root, key, filename)
    links = asset_links(base_url, key, filename)
    return _jinja().get_template("share.html").render(
        title=f"Shared Video - {filename}",
        description="Watch this shared video",
        filename=filename,
        video_url=links.video_url,
        share_url=links.share_url,
        media_type=media_type_for(filename),
        width=width,
        height=height,
        theme_color=theme_color,
    )
