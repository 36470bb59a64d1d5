"""
🧭 NitroShare · Router Aggregator
=================================

Composes the authenticated video API, the public share surface and the health
probe into a single router. `create_app` mounts it under `MOUNT_PREFIX`:

    app.include_router(build_router(), prefix=settings.MOUNT_PREFIX)
"""

from fastapi import APIRouter

from .health import router as health_router
from .public import router as public_router
from .videos import router as videos_router


def build_router() -> APIRouter:
    r = APIRouter()
    r.include_router(videos_router)
    r.include_router(health_router)
    r.include_router(public_router)
    return r


__all__ = ["build_router", "health_router", "public_router", "videos_router"]
