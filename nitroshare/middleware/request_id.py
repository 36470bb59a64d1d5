# nitroshare/middleware/request_id.py
from __future__ import annotations

"""
# NitroShare · Request ID Middleware (pure ASGI)

- Reuses a client-supplied `X-Request-ID` / `X-Correlation-ID` when it is a
  well-formed UUIDv4 and `REQUEST_ID_TRUST_CLIENT_IDS` is on (default).
- Otherwise generates a fresh UUIDv4.
- Exposes it as `request.state.request_id` (error bodies echo it) and on the
  response header.
- Binds `request_id` into the loguru context for the whole request, so upload,
  delete and access log lines can be correlated.
"""

import os
import re
import uuid
from typing import Optional

from loguru import logger
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

HEADER_NAME = os.getenv("REQUEST_ID_HEADER_NAME", "X-Request-ID")
TRUST_CLIENT_IDS = os.getenv("REQUEST_ID_TRUST_CLIENT_IDS", "true").lower() == "true"

_UUID_V4_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-4[0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}$")


class RequestIDMiddleware:
    """Assign one correlation id per HTTP request."""

    def __init__(self, app: ASGIApp, header_name: str = HEADER_NAME, trust_client_ids: bool = TRUST_CLIENT_IDS) -> None:
        self.app = app
        self.header_name = header_name
        self.trust_client_ids = trust_client_ids

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            return await self.app(scope, receive, send)

        req_id = self._choose_request_id(Headers(scope=scope))
        scope.setdefault("state", {})["request_id"] = req_id

        name_bytes = self.header_name.lower().encode("latin-1")

        async def _send_wrapper(message: Message) -> None:
            if message.get("type") == "http.response.start":
                raw = [(k, v) for (k, v) in message.get("headers", []) if k.lower() != name_bytes]
                raw.append((self.header_name.encode("latin-1"), req_id.encode("latin-1")))
                message["headers"] = raw
            await send(message)

        with logger.contextualize(request_id=req_id):
            await self.app(scope, receive, _send_wrapper)

    def _choose_request_id(self, headers: Headers) -> str:
        if self.trust_client_ids:
            incoming = headers.get(self.header_name) or headers.get("X-Correlation-ID")
            candidate = _valid_uuid4(incoming)
            if candidate:
                return candidate
        return str(uuid.uuid4())


def _valid_uuid4(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    candidate = value.strip()
    if not _UUID_V4_RE.fullmatch(candidate):
        return None
    return str(uuid.UUID(candidate))


def get_request_id(request) -> str:
    """Current request id from `request.state`, or "" outside a request."""
    return getattr(getattr(request, "state", object()), "request_id", "") or ""


__all__ = ["RequestIDMiddleware", "get_request_id"]
