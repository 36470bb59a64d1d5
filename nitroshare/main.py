# nitroshare/main.py
from __future__ import annotations

"""
# NitroShare · Application Entrypoint (FastAPI)

ASGI application factory and lifecycle for the NitroShare video sharing
service.

## Design Goals
- Deterministic, testable **app factory** (`create_app`) taking an explicit
  `Settings` instance; collaborators live on `app.state`.
- Explicit **middleware order**: request id → security headers → CORS.
- Centralized exception handling with a uniform JSON error body.
- Retention sweeper started and stopped with the application lifespan.

## Mounting
Every route is rooted under `MOUNT_PREFIX` (default `/nitroshare`), so the
service can share a host with other apps behind one reverse proxy.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from nitroshare.api.routers import build_router
from nitroshare.core.access import AccessPolicy
from nitroshare.core.config import Settings, settings as default_settings
from nitroshare.core.exception_handlers import install_exception_handlers
from nitroshare.core.identity import IdentityVerifier
from nitroshare.core.logger import setup_logging
from nitroshare.middleware.request_id import RequestIDMiddleware
from nitroshare.security_headers import configure_cors, install_security
from nitroshare.services.retention import RetentionSweeper, start_retention_scheduler
from nitroshare.storage.ingest import UploadIngestor

logger = logging.getLogger("nitroshare")


# ─────────────────────────────────────────────────────────────────────────────
# 🔄 Lifespan: startup & shutdown
# ─────────────────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifecycle manager.

    Startup:
        - Ensure the upload root exists.
        - Start the hourly retention scheduler (when `SWEEPER_ENABLED`).

    Shutdown:
        - Stop the scheduler without waiting for a running sweep.
    """
    cfg: Settings = app.state.settings
    logger.info("✅ %s starting up (env=%s, prefix=%s)", cfg.PROJECT_NAME, cfg.ENV, cfg.MOUNT_PREFIX or "/")
    cfg.UPLOAD_ROOT.mkdir(parents=True, exist_ok=True)

    scheduler = None
    if cfg.SWEEPER_ENABLED:
        scheduler = start_retention_scheduler(cfg, app.state.sweeper)
    else:
        logger.info("Retention scheduler disabled (SWEEPER_ENABLED=false)")
    app.state.scheduler = scheduler

    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=False)
            logger.info("🛑 Retention scheduler stopped")
        logger.info("🛑 %s shutting down", cfg.PROJECT_NAME)


# ─────────────────────────────────────────────────────────────────────────────
# 🏗️ App factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app(
    cfg: Optional[Settings] = None,
    *,
    identity_verifier: Optional[IdentityVerifier] = None,
) -> FastAPI:
    """
    Build and configure the FastAPI app instance.

    Args:
        cfg: settings to use; defaults to the process-wide singleton.
        identity_verifier: replaces the Google-backed verifier (tests).

    Returns:
        FastAPI: application with middleware, exception handlers and routers.
    """
    cfg = cfg or default_settings
    setup_logging()
    cfg.log_environment_check()

    docs_url = "/docs" if cfg.ENABLE_DOCS else None
    redoc_url = "/redoc" if cfg.ENABLE_DOCS else None
    openapi_url = "/openapi.json" if cfg.ENABLE_DOCS else None

    app = FastAPI(
        title=cfg.PROJECT_NAME,
        version=cfg.VERSION,
        docs_url=docs_url,
        redoc_url=redoc_url,
        openapi_url=openapi_url,
        lifespan=lifespan,
    )

    # ── Collaborators (built once, immutable afterwards) ────────────────────
    app.state.settings = cfg
    app.state.identity_verifier = identity_verifier or IdentityVerifier.from_settings(cfg)
    app.state.access_policy = AccessPolicy(cfg.allowed_emails)
    app.state.ingestor = UploadIngestor.from_settings(cfg)
    app.state.sweeper = RetentionSweeper.from_settings(cfg)

    # ── Middlewares (last added runs first) ─────────────────────────────────
    configure_cors(app, cfg)
    install_security(app, cfg)
    app.add_middleware(RequestIDMiddleware)

    install_exception_handlers(app)

    # ── Routers ─────────────────────────────────────────────────────────────
    app.include_router(build_router(), prefix=cfg.MOUNT_PREFIX)

    return app


# ─────────────────────────────────────────────────────────────────────────────
# 🚀 Module-level ASGI app for Uvicorn
# ─────────────────────────────────────────────────────────────────────────────
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("nitroshare.main:app", host="0.0.0.0", port=default_settings.PORT)
