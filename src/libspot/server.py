"""LibrarySpot HTTP server.

Routes:
- GET  /                          → HTML document with a week of snapshots embedded
- GET  /api/libraries             → Snapshot for ``?date=`` (``&nocache=1`` forces a refresh)
- GET  /api/libraries/{facility}  → One facility from that snapshot
- POST /api/refresh               → Drop and rebuild the snapshot for ``?date=``
- GET  /api/time                  → Server-authoritative local time
- GET  /api/health                → Uptime and cache metadata

Run locally::

    uv run libspot-server

Or with uvicorn::

    uv run uvicorn libspot.server:app --host 0.0.0.0 --port 3001
"""

import logging
import os
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date

import httpx
from dotenv import load_dotenv
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, Response
from starlette.routing import Route

from libspot.aggregation.bootstrap import to_epoch_ms
from libspot.core.config import FacilityConfig, Settings, get_settings, local_now
from libspot.core.dates import parse_date_key
from libspot.services import Services, open_services
from libspot.sources.browser import PageRenderer

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Logging is configured on import since uvicorn imports the app by path
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

load_dotenv()


def _services(request: Request) -> Services:
    return request.app.state.services


def _now_ms() -> int:
    return int(time.time() * 1000)


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


def _requested_date(request: Request) -> date | None:
    """The ``date`` query parameter, or None when absent.

    Raises:
        ValueError: If the parameter is present but not ``YYYY-MM-DD``
    """
    value = request.query_params.get("date")
    return parse_date_key(value) if value else None


async def index(request: Request) -> Response:
    """Serve the bootstrapped HTML document."""
    try:
        html = await _services(request).bootstrap.get_rendered_document()
    except Exception as e:
        logger.exception("Failed to render document")
        return _error(str(e), 500)
    return HTMLResponse(html)


async def list_libraries(request: Request) -> Response:
    """Serve the snapshot for one date with cache diagnostics."""
    try:
        requested = _requested_date(request)
    except ValueError:
        return _error("Invalid date, expected YYYY-MM-DD", 400)

    services = _services(request)
    orchestrator = services.orchestrator
    day = orchestrator.resolve_day(requested)
    force = request.query_params.get("nocache") == "1"

    try:
        lookup = await orchestrator.lookup(day, force=force)
    except Exception as e:
        logger.exception(f"Failed to build snapshot for {day}")
        return _error(str(e), 500)

    snapshot = lookup.value
    body = snapshot.to_json()
    age = orchestrator.cache.age(day)
    return JSONResponse(
        {
            "success": True,
            "data": body["facilities"],
            "date": day.isoformat(),
            "fetchedAt": body["completed_at"],
            "fetchedAtMs": to_epoch_ms(snapshot),
            "serverNowMs": _now_ms(),
            "cacheAgeMs": round(age * 1000) if age is not None else None,
            "cacheHit": lookup.served_from_cache,
            "deduped": lookup.deduped,
            "fetchDurationMs": snapshot.duration_ms,
        }
    )


async def get_library(request: Request) -> Response:
    """Serve one facility from the snapshot for ``?date=``."""
    try:
        requested = _requested_date(request)
    except ValueError:
        return _error("Invalid date, expected YYYY-MM-DD", 400)

    facility_id = request.path_params["facility_id"]
    try:
        snapshot = await _services(request).orchestrator.get_snapshot(requested)
    except Exception as e:
        logger.exception(f"Failed to build snapshot for {facility_id}")
        return _error(str(e), 500)

    facility = snapshot.find(facility_id)
    if facility is None:
        return _error("Library not found", 404)
    return JSONResponse({"success": True, "data": facility.model_dump(mode="json")})


async def refresh(request: Request) -> Response:
    """Rebuild the snapshot for ``?date=`` and drop the cached document."""
    try:
        requested = _requested_date(request)
    except ValueError:
        return _error("Invalid date, expected YYYY-MM-DD", 400)

    services = _services(request)
    try:
        snapshot = await services.orchestrator.refresh(requested)
    except Exception as e:
        logger.exception("Refresh failed")
        return _error(str(e), 500)
    services.bootstrap.invalidate()

    return JSONResponse(
        {
            "success": True,
            "message": "Cache refreshed",
            "date": snapshot.date.isoformat(),
            "data": snapshot.to_json()["facilities"],
        }
    )


async def server_time(request: Request) -> Response:
    """Local wall-clock time so clients can correct for their own clock skew."""
    now = local_now(_services(request).settings)
    return JSONResponse(
        {
            "hour": now.hour,
            "minute": now.minute,
            "second": now.second,
            "dateStr": f"{now:%a}, {now:%b} {now.day}",
            "timestamp": _now_ms(),
        }
    )


async def health(request: Request) -> Response:
    """Uptime and cache metadata (no cached data)."""
    services = _services(request)
    return JSONResponse(
        {
            "status": "ok",
            "uptime": round(time.monotonic() - request.app.state.started_at, 1),
            "snapshots": services.orchestrator.status(),
            "hours": services.hours.cache.stats(),
            "document": services.bootstrap.cache.stats(),
        }
    )


routes = [
    Route("/", index),
    Route("/api/libraries", list_libraries),
    Route("/api/libraries/{facility_id}", get_library),
    Route("/api/refresh", refresh, methods=["POST"]),
    Route("/api/time", server_time),
    Route("/api/health", health),
]


# ---------------------------------------------------------------------------
# ASGI App assembly
# ---------------------------------------------------------------------------


def create_app(
    settings: Settings | None = None,
    *,
    facilities: list[FacilityConfig] | None = None,
    renderer: PageRenderer | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Starlette:
    """Build the ASGI app.  Services are created on startup and closed on shutdown."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        async with open_services(
            settings,
            facilities=facilities,
            renderer=renderer,
            transport=transport,
        ) as services:
            app.state.services = services
            app.state.started_at = time.monotonic()
            yield

    return Starlette(
        routes=routes,
        lifespan=lifespan,
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=[settings.allowed_origin],
                allow_methods=["GET", "POST", "OPTIONS"],
                allow_headers=["Content-Type"],
            )
        ],
    )


app = create_app()


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Run the server with uvicorn."""
    import uvicorn

    port = int(os.getenv("PORT", "3001"))
    host = os.getenv("HOST", "0.0.0.0")

    logger.info("Starting LibrarySpot server on %s:%d", host, port)
    uvicorn.run(
        "libspot.server:app",
        host=host,
        port=port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
