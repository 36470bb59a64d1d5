from __future__ import annotations

"""
JSON exception handlers.

Installed by `nitroshare.main.create_app`. Every error leaves the service in
the same shape:

    {"error": true, "message": "...", "code": 404, "request_id": "...", ...}

`AppException` subclasses contribute their own `details`/`extra` fields (for
example `userEmail` on 403 responses).
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from nitroshare.core.exceptions import AppException

logger = logging.getLogger("nitroshare.errors")


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_problem(fallback_request_id=_request_id(request)),
        headers=exc.headers,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": True,
            "message": detail,
            "code": exc.status_code,
            "request_id": _request_id(request) or "N/A",
        },
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": True,
            "message": "Validation error",
            "code": status.HTTP_422_UNPROCESSABLE_ENTITY,
            "request_id": _request_id(request) or "N/A",
            "details": jsonable_encoder(exc.errors()),
        },
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Hide internals from the client; the traceback goes to the log.
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": True,
            "message": "An unexpected error occurred.",
            "code": status.HTTP_500_INTERNAL_SERVER_ERROR,
            "request_id": _request_id(request) or "N/A",
        },
    )


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, global_exception_handler)


__all__ = [
    "app_exception_handler",
    "http_exception_handler",
    "validation_exception_handler",
    "global_exception_handler",
    "install_exception_handlers",
]
