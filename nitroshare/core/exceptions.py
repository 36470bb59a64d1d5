# nitroshare/core/exceptions.py
from __future__ import annotations

"""
NitroShare · Application Exceptions
===================================
A small, consistent layer on top of FastAPI/Starlette's `HTTPException` that
lets us attach structured metadata and render it through
`nitroshare.core.exception_handlers`.

Key ideas
---------
- One base `AppException` that carries `code`, `request_id`, `details`, `extra`.
- Domain exceptions inherit from it and fix their HTTP status.
- `to_problem()` renders the canonical JSON body.

Taxonomy
--------
    Unauthenticated / AuthInvalid   401
    Forbidden                       403  (offending email surfaced as `userEmail`)
    ConfigError                     500
    InvalidFileType, NoFileProvided 400
    NotFound                        404
    UploadTimeout                   408
    PayloadTooLarge                 413
    StorageError                    500
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

__all__ = [
    "AppException",
    "Unauthenticated",
    "AuthInvalid",
    "Forbidden",
    "ConfigError",
    "InvalidFileType",
    "NoFileProvided",
    "PayloadTooLarge",
    "UploadTimeout",
    "NotFound",
    "StorageError",
]


# ──────────────────────────────────────────────────────────────
# 📦 Core: AppException
# ──────────────────────────────────────────────────────────────
class AppException(HTTPException):
    """Base application-level exception with optional metadata.

    Attributes
    -----------
    status_code : int
        HTTP status code.
    message : str
        Human-readable error message (serialized as `detail` as well).
    code : int
        Internal/typed error code. Defaults to `status_code`.
    request_id : str | None
        Request correlation id (filled from the middleware when absent).
    details : Any
        Machine-readable details (e.g. detected content type).
    extra : dict | None
        Additional non-sensitive fields merged into the response body.
    headers : dict | None
        Optional response headers (e.g. `{"WWW-Authenticate": "Bearer"}`).
    """

    default_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
        code: Optional[int] = None,
        request_id: Optional[str] = None,
        details: Optional[Any] = None,
        extra: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        status_code = int(status_code or self.default_status)
        message = message or self.default_message
        super().__init__(status_code=status_code, detail=message, headers=headers)
        self.code: int = int(code or status_code)
        self.message: str = message
        self.request_id: Optional[str] = request_id
        self.details: Optional[Any] = details
        self.extra: Dict[str, Any] = extra or {}

    def __str__(self) -> str:
        return self.message

    # ── [Helper] Canonical body used by handlers ───────────────────────────
    def to_problem(self, *, fallback_request_id: Optional[str] = None) -> Dict[str, Any]:
        """Return a dict matching our JSON error shape."""
        body: Dict[str, Any] = {
            "error": True,
            "message": self.message,
            "code": self.code,
            "request_id": self.request_id or fallback_request_id or "N/A",
        }
        if self.details is not None:
            body["details"] = self.details
        extra_sanitized = dict(self.extra) if self.extra else {}
        for k in ("token", "authorization", "password", "secret"):
            extra_sanitized.pop(k, None)
        body.update(extra_sanitized)
        return body


# ──────────────────────────────────────────────────────────────
# 🔑 Identity / access
# ──────────────────────────────────────────────────────────────
class Unauthenticated(AppException):
    """No usable credential on the request."""

    default_status = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"

    def __init__(self, message: Optional[str] = None, **kwargs: Any) -> None:
        kwargs.setdefault("headers", {"WWW-Authenticate": "Bearer"})
        super().__init__(message, **kwargs)


class AuthInvalid(Unauthenticated):
    """A credential was presented but no verification strategy accepted it."""

    default_message = "Invalid or expired token"


class Forbidden(AppException):
    """Verified identity that is not on the allow-list."""

    default_status = status.HTTP_403_FORBIDDEN
    default_message = "Access denied - your email is not authorized"

    def __init__(self, email: str, message: Optional[str] = None, **kwargs: Any) -> None:
        extra = dict(kwargs.pop("extra", None) or {})
        extra["userEmail"] = email
        super().__init__(message, extra=extra, **kwargs)
        self.email = email


class ConfigError(AppException):
    """Server misconfiguration (e.g. an empty allow-list)."""

    default_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Server configuration error - no allowed emails configured"


# ──────────────────────────────────────────────────────────────
# 📼 Uploads / assets
# ──────────────────────────────────────────────────────────────
class InvalidFileType(AppException):
    default_status = status.HTTP_400_BAD_REQUEST
    default_message = "Only video files are allowed"


class NoFileProvided(AppException):
    default_status = status.HTTP_400_BAD_REQUEST
    default_message = "No video file uploaded"


class PayloadTooLarge(AppException):
    default_status = 413
    default_message = "File too large"


class UploadTimeout(AppException):
    """Ingestion exceeded its wall-clock budget; the connection is closed."""

    default_status = status.HTTP_408_REQUEST_TIMEOUT
    default_message = "Upload timed out"

    def __init__(self, message: Optional[str] = None, **kwargs: Any) -> None:
        kwargs.setdefault("headers", {"Connection": "close"})
        super().__init__(message, **kwargs)


class NotFound(AppException):
    default_status = status.HTTP_404_NOT_FOUND
    default_message = "Video not found"


class StorageError(AppException):
    """Filesystem failure (disk full, permission denied, ...)."""

    default_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Storage error"
