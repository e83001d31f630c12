"""
REST API endpoints of the AdSource service.

GET  /api/v1/ad?count=n   weighted random ads for the rotation runtime
POST /api/v1/ad/event     impression/click events
GET  /api/v1/ad/stats     event counters
"""

from __future__ import annotations

import logging
import time
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from ..catalog import AdCatalog
from ..events import EVENT_TYPES, AdEventStore
from ..ratelimit import SlidingWindowLimiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/ad", tags=["ads"])

MAX_COUNT = 10


def get_catalog(request: Request) -> AdCatalog:
    return request.app.state.catalog


def get_event_store(request: Request) -> AdEventStore:
    return request.app.state.events


def _client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "message": message})


def _limited(request: Request, limiter: SlidingWindowLimiter) -> bool:
    return not limiter.allow(_client_key(request))


def clamp_count(raw: str | None) -> int:
    """Parse the ``count`` query parameter into ``[1, MAX_COUNT]``; junk means 1."""
    try:
        value = int(raw) if raw is not None else 1
    except (TypeError, ValueError):
        value = 1
    return min(max(value, 1), MAX_COUNT)


@router.get("")
def get_ads(
    request: Request,
    count: str | None = Query(None, description="Number of ads to return (1-10)"),
    catalog: AdCatalog = Depends(get_catalog),
) -> Any:
    """Return weighted random ads in the AdSource envelope."""
    if _limited(request, request.app.state.fetch_limiter):
        return _error(429, "Too many requests")

    requested = clamp_count(count)
    try:
        ads = catalog.get_random_ads(requested)
    except Exception:
        logger.exception("AdSource: ad fetch failed")
        return _error(500, "Ad fetch failed")

    return {
        "ok": True,
        "meta": {
            "returned": len(ads),
            "requested": requested,
            "serverTime": int(time.time() * 1000),
        },
        "ads": ads,
    }


@router.post("/event")
async def post_event(
    request: Request,
    events: AdEventStore = Depends(get_event_store),
) -> Any:
    """Record an impression or click sent by the rotation runtime."""
    if _limited(request, request.app.state.event_limiter):
        return _error(429, "Too many requests")

    try:
        body = await request.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        body = {}

    event_type = body.get("type")
    ad_id = body.get("adId")
    extra = body.get("extra")
    if event_type not in EVENT_TYPES:
        return _error(400, "Invalid type")
    if not ad_id or not isinstance(ad_id, str):
        return _error(400, "Invalid adId")

    try:
        events.record(
            event_type,
            ad_id,
            ip=_client_key(request),
            ua=request.headers.get("user-agent", ""),
            extra=extra if isinstance(extra, dict) else {},
        )
    except OSError:
        logger.exception("AdSource: event recording failed")
        return _error(500, "Event recording failed")
    return {"ok": True}


@router.get("/stats")
def get_stats(events: AdEventStore = Depends(get_event_store)) -> dict[str, Any]:
    return events.stats()
