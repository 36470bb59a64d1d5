from __future__ import annotations

"""
NitroShare · HTTP Utilities
===========================

Shared helpers for API routers:

- Externally-visible base URL (reverse-proxy aware)
- No-store JSON helper

Notes
-----
The service normally sits behind a TLS-terminating proxy, so the scheme and
host seen by the app are those of the last hop. `X-Forwarded-Proto` and
`X-Forwarded-Host` are honoured, and production always advertises https.
"""

from typing import Any, Optional

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from nitroshare.core.config import Settings

__all__ = ["public_base_url", "json_no_store"]


def _first_forwarded(value: Optional[str]) -> Optional[str]:
    """First hop of a comma-separated forwarding header, or None."""
    if not value:
        return None
    first = value.split(",")[0].strip()
    return first or None


def public_base_url(request: Request, cfg: Settings) -> str:
    """Base URL under which clients reach this service, mount prefix included.

    Steps
    -----
    1) scheme = `X-Forwarded-Proto` (first value) or the request's own scheme
    2) `http` is upgraded to `https` in production
    3) host = `X-Forwarded-Host` (first value) or the `Host` header
    """
    scheme = (_first_forwarded(request.headers.get("x-forwarded-proto")) or request.url.scheme).lower()
    if cfg.is_production and scheme == "http":
        scheme = "https"

    host = _first_forwarded(request.headers.get("x-forwarded-host")) or request.headers.get("host") or request.url.netloc
    return f"{scheme}://{host}{cfg.MOUNT_PREFIX}"


def json_no_store(payload: Any, status_code: int = 200) -> JSONResponse:
    """Return a JSON response with strict `no-store` caching."""
    resp = JSONResponse(content=jsonable_encoder(payload, by_alias=True), status_code=status_code)
    resp.headers["Cache-Control"] = "no-store"
    resp.headers["Pragma"] = "no-cache"
    resp.headers["Expires"] = "0"
    return resp
