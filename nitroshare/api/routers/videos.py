# nitroshare/api/routers/videos.py
# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ 🎬 NitroShare · Videos (authenticated)                                    ║
# ║                                                                            ║
# ║ Endpoints                                                                  ║
# ║  - POST   /api/upload               → store one video in caller partition  ║
# ║  - GET    /api/videos               → caller's catalog, newest first       ║
# ║  - DELETE /api/videos/{filename}    → remove one of caller's videos        ║
# ╠────────────────────────────────────────────────────────────────────────────╣
# ║ Security                                                                   ║
# ║  - Bearer token → identity verifier → allow-list (get_current_principal).  ║
# ║  - Every path is resolved inside the caller's own partition only.          ║
# ║  - Cache-Control: no-store on every response.                              ║
# ╚════════════════════════════════════════════════════════════════════════════╝

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from nitroshare.api.deps import get_current_principal, get_ingestor, get_settings
from nitroshare.api.http_utils import json_no_store, public_base_url
from nitroshare.core.access import Principal
from nitroshare.core.config import Settings
from nitroshare.schemas.videos import MessageOut, UploadOut, VideoOut
from nitroshare.services.share_page import asset_links
from nitroshare.storage.catalog import delete_asset, list_assets
from nitroshare.storage.ingest import VIDEO_FIELD, UploadIngestor
from nitroshare.storage.partitions import partition_path

logger = logging.getLogger("nitroshare.api.videos")

router = APIRouter(prefix="/api", tags=["Videos"])

# The body is read by the ingestor, not by FastAPI, so document it by hand.
_UPLOAD_BODY = {
    "requestBody": {
        "required": True,
        "content": {
            "multipart/form-data": {
                "schema": {
                    "type": "object",
                    "required": [VIDEO_FIELD],
                    "properties": {VIDEO_FIELD: {"type": "string", "format": "binary"}},
                }
            }
        },
    }
}


# ─────────────────────────────────────────────────────────────────────────────
# ⬆️ Upload
# ─────────────────────────────────────────────────────────────────────────────
@router.post("/upload", response_model=UploadOut, summary="Upload a video", openapi_extra=_UPLOAD_BODY)
async def upload_video(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    ingestor: UploadIngestor = Depends(get_ingestor),
    cfg: Settings = Depends(get_settings),
) -> JSONResponse:
    """
    Store one video in the caller's partition.

    Steps
    -----
    1) Reject early when the declared `Content-Length` is already over the ceiling
       (nothing has been read from the body yet)
    2) Stream the multipart body: validate the `video` part's type (extension OR
       video/* content type) from its headers, then write it to disk under the
       size ceiling and timeout as it arrives
    3) Return the stored name plus direct and share URLs
    """
    ingestor.check_declared_length(request.headers.get("content-length"))
    stored = await ingestor.ingest(principal.email, request.headers.get("content-type"), request.stream())

    links = asset_links(public_base_url(request, cfg), principal.partition_key, stored.filename)
    body = UploadOut(
        filename=stored.filename,
        size=stored.size,
        video_url=links.video_url,
        share_url=links.share_url,
        upload_time=stored.uploaded_at,
    )
    return json_no_store(body)


# ─────────────────────────────────────────────────────────────────────────────
# 📚 Catalog
# ─────────────────────────────────────────────────────────────────────────────
@router.get("/videos", response_model=List[VideoOut], summary="List my videos")
async def list_videos(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    cfg: Settings = Depends(get_settings),
) -> JSONResponse:
    """Caller's assets ordered by upload time, most recent first."""
    partition = partition_path(cfg.UPLOAD_ROOT, principal.partition_key)
    assets = await run_in_threadpool(list_assets, partition)

    base = public_base_url(request, cfg)
    items = []
    for asset in assets:
        links = asset_links(base, principal.partition_key, asset.filename)
        items.append(
            VideoOut(
                filename=asset.filename,
                upload_time=asset.created_at,
                size=asset.size,
                media_type=asset.media_type,
                video_url=links.video_url,
                share_url=links.share_url,
            )
        )
    return json_no_store(items)


# ─────────────────────────────────────────────────────────────────────────────
# 🗑️ Delete
# ─────────────────────────────────────────────────────────────────────────────
@router.delete("/videos/{filename}", response_model=MessageOut, summary="Delete one of my videos")
async def delete_video(
    filename: str,
    principal: Principal = Depends(get_current_principal),
    cfg: Settings = Depends(get_settings),
) -> JSONResponse:
    """Remove `filename` from the caller's partition; 404 when it does not exist."""
    partition = partition_path(cfg.UPLOAD_ROOT, principal.partition_key)
    await run_in_threadpool(delete_asset, partition, filename)
    logger.info("File deleted: %s/%s", principal.partition_key, filename)
    return json_no_store(MessageOut(message="Video deleted successfully"))
