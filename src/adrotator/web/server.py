"""
Web server for the AdSource service.

Provides the FastAPI application consumed by the rotation runtime.
"""

from __future__ import annotations

import uvicorn
from fastapi import FastAPI

from adrotator.infra.logging import get_logger
from adrotator.infra.settings import Settings, settings as default_settings

from .api.ads import router as ads_router
from .catalog import AdCatalog
from .events import AdEventStore
from .ratelimit import SlidingWindowLimiter

FETCH_LIMIT = (10, 10.0)  # requests per 10s per client
EVENT_LIMIT = (120, 60.0)  # events per minute per client


def create_app(
    *,
    catalog: AdCatalog | None = None,
    events: AdEventStore | None = None,
    fetch_limiter: SlidingWindowLimiter | None = None,
    event_limiter: SlidingWindowLimiter | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Build the AdSource application; unspecified collaborators come from settings."""
    settings = settings or default_settings

    if catalog is None:
        catalog = AdCatalog.from_file(settings.catalog_path) if settings.catalog_path else AdCatalog()
    if events is None:
        log_path = None if settings.disable_event_log else settings.event_log_path
        events = AdEventStore(log_path)

    app = FastAPI(title="adrotator AdSource")
    app.state.catalog = catalog
    app.state.events = events
    app.state.fetch_limiter = fetch_limiter or SlidingWindowLimiter(*FETCH_LIMIT)
    app.state.event_limiter = event_limiter or SlidingWindowLimiter(*EVENT_LIMIT)
    app.include_router(ads_router)

    @app.get("/health")
    def health():
        return {"ok": True, "ads": len(app.state.catalog)}

    return app


def run(host: str | None = None, port: int | None = None, *, settings: Settings | None = None) -> None:
    """Serve the AdSource API with uvicorn (blocking)."""
    settings = settings or default_settings
    app = create_app(settings=settings)
    host = host or settings.server_host
    port = port or settings.server_port
    log = get_logger(__name__)
    log.info("adsource_serving", ads=len(app.state.catalog), host=host, port=port)
    uvicorn.run(app, host=host, port=port, log_level=settings.log_level.lower())
