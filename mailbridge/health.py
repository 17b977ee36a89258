"""Liveness and readiness probes for an :class:`~mailbridge.adapter.ExchangeAdapter`.

Bot hosts usually run their own web server, so the routes are exposed as
an ``APIRouter`` to mount there.  :func:`create_health_app` wraps the
router in a standalone app for hosts that do not.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, FastAPI
from fastapi.responses import JSONResponse

from .models import AdapterStatus, HealthStatus

if TYPE_CHECKING:
    from .adapter import ExchangeAdapter

# Still worth keeping alive: either on its way up or fully running.
_LIVE = frozenset({AdapterStatus.STARTING, AdapterStatus.RUNNING})


def _probe(content: dict[str, Any], ok: bool) -> JSONResponse:
    return JSONResponse(content=content, status_code=200 if ok else 503)


def create_health_router(adapter: ExchangeAdapter, *, prefix: str = "") -> APIRouter:
    """Routes ``{prefix}/health`` and ``{prefix}/ready`` for *adapter*."""
    router = APIRouter(prefix=prefix)

    @router.get("/health")
    async def health() -> JSONResponse:
        snapshot = HealthStatus(
            adapter_id=adapter.adapter_id,
            status=adapter.status,
            uptime_seconds=time.monotonic() - adapter.start_time,
            details=await adapter.health_check(),
        )
        return _probe(snapshot.model_dump(mode="json"), adapter.status in _LIVE)

    @router.get("/ready")
    async def ready() -> JSONResponse:
        # Only a running adapter has a live mail source and can send replies.
        is_ready = adapter.status is AdapterStatus.RUNNING
        return _probe({"ready": is_ready, "status": adapter.status.value}, is_ready)

    return router


def create_health_app(adapter: ExchangeAdapter) -> FastAPI:
    """Standalone app serving :func:`create_health_router` at the root."""
    app = FastAPI(title=f"{adapter.adapter_id} health", docs_url=None, redoc_url=None)
    app.include_router(create_health_router(adapter))
    return app
