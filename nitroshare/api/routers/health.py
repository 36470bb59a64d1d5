from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from nitroshare.api.http_utils import json_no_store
from nitroshare.schemas.videos import HealthOut

router = APIRouter(prefix="/api", tags=["Observability"])


@router.get("/health", response_model=HealthOut)
async def health() -> JSONResponse:
    """
    🧪 Liveness probe (no auth, no I/O).

    Returns
    -------
    {"status": "OK", "timestamp": <ISO-8601 UTC>}
    """
    return json_no_store(HealthOut(status="OK", timestamp=datetime.now(timezone.utc)))
