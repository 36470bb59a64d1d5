# nitroshare/api/routers/public.py
# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ 🌐 NitroShare · Public share surface (no auth)                            ║
# ║                                                                            ║
# ║ Endpoints                                                                  ║
# ║  - GET /share/{key}/{filename}    → HTML page with OG/Twitter player tags  ║
# ║  - GET /uploads/{key}/{filename}  → raw video bytes (Range-capable)        ║
# ╠────────────────────────────────────────────────────────────────────────────╣
# ║ Notes                                                                      ║
# ║  - Possession of the link is the only credential (unguessable timestamp    ║
# ║    name inside the owner's partition).                                     ║
# ║  - Keys and names are validated before touching the filesystem, so no      ║
# ║    path can leave the upload root.                                         ║
# ╚════════════════════════════════════════════════════════════════════════════╝

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import FileResponse, HTMLResponse
from starlette.concurrency import run_in_threadpool

from nitroshare.api.deps import get_settings
from nitroshare.api.http_utils import public_base_url
from nitroshare.core.config import Settings
from nitroshare.services.share_page import render_share_page
from nitroshare.storage.catalog import resolve_asset
from nitroshare.storage.media import media_type_for

router = APIRouter(tags=["Share"])


@router.get("/share/{key}/{filename}", response_class=HTMLResponse, summary="Public share page")
async def share_page(
    key: str,
    filename: str,
    request: Request,
    cfg: Settings = Depends(get_settings),
) -> HTMLResponse:
    """
    🔗 Embeddable share page.

    Returns an HTML document whose `og:video` / `twitter:player` tags point at
    the direct `/uploads/...` URL so chat and social crawlers render an inline
    player. 404 JSON when the asset does not exist.
    """
    html = await run_in_threadpool(
        render_share_page,
        cfg.UPLOAD_ROOT,
        public_base_url(request, cfg),
        key,
        filename,
        width=cfg.SHARE_PREVIEW_WIDTH,
        height=cfg.SHARE_PREVIEW_HEIGHT,
        theme_color=cfg.SHARE_THEME_COLOR,
    )
    return HTMLResponse(html, headers={"Cache-Control": "no-cache"})


@router.get("/uploads/{key}/{filename}", summary="Raw video")
async def raw_video(
    key: str,
    filename: str,
    cfg: Settings = Depends(get_settings),
) -> FileResponse:
    """Stream the stored bytes with the media type derived from the extension."""
    path = await run_in_threadpool(resolve_asset, cfg.UPLOAD_ROOT, key, filename)
    return FileResponse(path, media_type=media_type_for(filename))
