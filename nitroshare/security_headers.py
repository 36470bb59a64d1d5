from __future__ import annotations

"""
# NitroShare · Security Headers & CORS

- **Headers**: X-Content-Type-Options, Referrer-Policy,
  X-Permitted-Cross-Domain-Policies, and HSTS in production.
- **Framing**: share pages are embedded by chat and social platforms, so no
  X-Frame-Options / frame-ancestors restriction is sent.
- **CORS**: allow-list from `FRONTEND_ORIGINS`; when empty any origin may call
  the API (bearer tokens, no cookies, so credentials stay off).

## Usage
    from nitroshare.security_headers import install_security, configure_cors
    install_security(app, settings)
    configure_cors(app, settings)

## Env
- HSTS_MAX_AGE (31536000), HSTS_INCLUDE_SUBDOMAINS ("true")
- REFERRER_POLICY ("strict-origin-when-cross-origin")
"""

import os
from dataclasses import dataclass
from typing import List, Tuple

from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from nitroshare.core.config import Settings


# ─────────────────────────────────────────────────────────────
# ⚙️ Config
# ─────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class SecurityHeadersConfig:
    hsts_enabled: bool = False
    hsts_max_age: int = int(os.getenv("HSTS_MAX_AGE", "31536000"))
    hsts_include_subdomains: bool = os.getenv("HSTS_INCLUDE_SUBDOMAINS", "true").lower() == "true"
    referrer_policy: str = os.getenv("REFERRER_POLICY", "strict-origin-when-cross-origin")

    @classmethod
    def from_settings(cls, cfg: Settings) -> "SecurityHeadersConfig":
        return cls(hsts_enabled=cfg.is_production)


# ─────────────────────────────────────────────────────────────
# 🛡️ Middleware
# ─────────────────────────────────────────────────────────────
class SecurityHeadersMiddleware:
    """Applies the header set idempotently on every HTTP response."""

    def __init__(self, app: ASGIApp, cfg: SecurityHeadersConfig = SecurityHeadersConfig()) -> None:
        self.app = app
        self.cfg = cfg

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            return await self.app(scope, receive, send)

        async def send_wrapper(message: Message) -> None:
            if message.get("type") == "http.response.start":
                raw_headers: List[Tuple[bytes, bytes]] = list(message.get("headers", []))
                _apply_headers_to_raw(raw_headers, self.cfg)
                message["headers"] = raw_headers
            await send(message)

        await self.app(scope, receive, send_wrapper)


def _has_header(raw_headers: List[Tuple[bytes, bytes]], name: str) -> bool:
    lname = name.lower().encode("latin-1")
    return any(h[0].lower() == lname for h in raw_headers)


def _set_default(raw_headers: List[Tuple[bytes, bytes]], name: str, value: str) -> None:
    if not _has_header(raw_headers, name):
        raw_headers.append((name.encode("latin-1"), value.encode("latin-1")))


def _apply_headers_to_raw(raw_headers: List[Tuple[bytes, bytes]], cfg: SecurityHeadersConfig) -> None:
    if cfg.hsts_enabled:
        hsts = f"max-age={cfg.hsts_max_age}"
        if cfg.hsts_include_subdomains:
            hsts += "; includeSubDomains"
        _set_default(raw_headers, "Strict-Transport-Security", hsts)
    _set_default(raw_headers, "X-Content-Type-Options", "nosniff")
    _set_default(raw_headers, "Referrer-Policy", cfg.referrer_policy)
    _set_default(raw_headers, "X-Permitted-Cross-Domain-Policies", "none")


# ─────────────────────────────────────────────────────────────
# 🌐 CORS installer
# ─────────────────────────────────────────────────────────────
def configure_cors(app, cfg: Settings) -> None:
    """Install CORS from `FRONTEND_ORIGINS` (empty → any origin, no credentials)."""
    origins = cfg.frontend_origins_list
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=bool(origins),
        allow_methods=["GET", "HEAD", "OPTIONS", "POST", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
        max_age=3600,
    )


def install_security(app, cfg: Settings) -> None:
    app.add_middleware(SecurityHeadersMiddleware, cfg=SecurityHeadersConfig.from_settings(cfg))


__all__ = [
    "SecurityHeadersConfig",
    "SecurityHeadersMiddleware",
    "install_security",
    "configure_cors",
]
