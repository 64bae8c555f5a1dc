"""
main.py – FastAPI entry point
=============================

HTTP face of the nearby-places core for the UI layer:

* ``POST /permission``       – ask for location consent (prompts once).
* ``POST /permission/reset`` – forget the answer so the next request prompts.
* ``GET  /nearby_places.json`` – load (or join the running load) and return
  ``{userLat, userLng, places}`` or ``{"error": CODE}``.
* ``POST /load``             – fire-and-forget reload.
* ``GET  /state.json``       – current session snapshot.
* ``GET  /state/stream``     – server-sent events, one per state change.
* ``GET  /debug.json``       – one-off resolve with its step trace.
"""

from __future__ import annotations

# ─── Std-lib / third-party ────────────────────────────────────────────
import json
import os
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv
from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

# ─── Project modules ──────────────────────────────────────────────────
from .constants import (
    LOCATION_DISABLED,
    LOCATION_UNAVAILABLE,
    PERMISSION_DENIED,
    UNKNOWN_ERROR,
)
from .location_platform import LocationPlatform, build_device_platform
from .location_resolver import LocationResolver
from .models import Failure, PermissionDenied, ServiceDisabled, SessionState, Success
from .place_ranker import PlaceRanker
from .places_session import PlacesSession

# ─── Logging ──────────────────────────────────────────────────────────
import logging
import sys

LOG = logging.getLogger("api")

# Configure package loggers to output to stdout
_handler = logging.StreamHandler(sys.stdout)
_handler.setFormatter(logging.Formatter("%(levelname)s:     %(name)s - %(message)s"))
for _name in (
    "api",
    "location_resolver",
    "location_platform",
    "places_session",
    "gpsd_source",
    "ip_source",
):
    _logger = logging.getLogger(_name)
    _logger.addHandler(_handler)
    _logger.setLevel(logging.INFO)

# ---------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------
load_dotenv()
NEARBY_RATE_LIMIT = os.getenv("NEARBY_RATE_LIMIT", "30/minute")

limiter = Limiter(key_func=get_remote_address)

# Error code → HTTP status for /nearby_places.json
ERROR_STATUS: dict[str, int] = {
    PERMISSION_DENIED: 403,
    LOCATION_DISABLED: 503,
    LOCATION_UNAVAILABLE: 503,
}


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def build_platform() -> LocationPlatform:
    """Platform used by the app; tests swap this for an offline fake."""
    return build_device_platform()


def _state_payload(state: SessionState) -> dict[str, Any]:
    return {
        "isLoading": state.is_loading,
        "error": state.error,
        **state.to_payload(),
    }


def _result_response(state: SessionState) -> JSONResponse:
    if state.error is not None:
        return JSONResponse(
            status_code=ERROR_STATUS.get(state.error, 500),
            content={"error": state.error},
        )
    return JSONResponse(state.to_payload())


# ---------------------------------------------------------------------
# Lifespan – one platform + session per process
# ---------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):  # noqa: N802 – FastAPI naming style
    platform = build_platform()
    app.state.platform = platform
    app.state.session = PlacesSession(LocationResolver(platform), PlaceRanker())
    LOG.info("[init] session ready")

    yield  # ⇢ application runs here

    # Shutdown: cancel any in-flight load so no platform listener outlives us
    await app.state.session.close()
    LOG.info("[shutdown] session closed")


# ---------------------------------------------------------------------
# FastAPI instance & middleware
# ---------------------------------------------------------------------
app = FastAPI(title="Nearby Places", lifespan=lifespan)

app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Return 429 when rate limit is exceeded."""
    return JSONResponse(
        status_code=429,
        content={"detail": "Rate limit exceeded. Try again later."},
    )


ALLOWED_ORIGINS = [
    o.strip()
    for o in os.getenv(
        "ALLOWED_ORIGINS", "http://localhost:8081,http://127.0.0.1:8081"
    ).split(",")
    if o.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


# Health probe --------------------------------------------------------
@app.get("/healthz", response_class=PlainTextResponse)
async def healthz() -> PlainTextResponse:
    """Return HTTP 200 with body “ok” if the app is up."""
    return PlainTextResponse("ok", status_code=200)


# ---------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------
@app.post("/permission")
async def request_permission(
    request: Request,
    decision: str | None = Query(None, pattern="^(grant|deny)$"),
) -> JSONResponse:
    """
    Request location permission.

    Already granted → ``granted`` without prompting.  Otherwise the UI's
    answer (``decision``) is recorded – only the first answer counts until
    ``POST /permission/reset``.
    """
    platform: LocationPlatform = request.app.state.platform

    async def _prompt() -> bool:
        return decision == "grant"

    granted = await platform.request_permission(_prompt if decision else None)
    if not granted:
        return JSONResponse(status_code=403, content={"error": PERMISSION_DENIED})
    return JSONResponse({"permission": "granted"})


@app.post("/permission/reset")
async def reset_permission(request: Request) -> dict[str, str]:
    """Forget the recorded answer so the next ``POST /permission`` prompts again."""
    platform: LocationPlatform = request.app.state.platform
    platform.reset_permission()
    return {"permission": "prompt"}


@app.get("/nearby_places.json")
@limiter.limit(NEARBY_RATE_LIMIT)
async def nearby_places(request: Request) -> JSONResponse:
    """Resolve the user's location and return places ranked by distance."""
    session: PlacesSession = request.app.state.session
    state = await session.load()
    if state.is_loading:  # load cancelled by shutdown
        return JSONResponse(
            status_code=503,
            content={"error": UNKNOWN_ERROR, "detail": "load cancelled"},
        )
    return _result_response(state)


@app.post("/load", status_code=202)
async def load(request: Request) -> dict[str, bool]:
    """Fire-and-forget reload; observe progress via /state.json or /state/stream."""
    session: PlacesSession = request.app.state.session
    session.start_load()
    return {"accepted": True}


@app.get("/state.json")
async def state_json(request: Request) -> JSONResponse:
    session: PlacesSession = request.app.state.session
    return JSONResponse(_state_payload(session.state))


@app.get("/state/stream")
async def state_stream(request: Request) -> StreamingResponse:
    """Server-sent events: the current snapshot, then one event per transition."""
    session: PlacesSession = request.app.state.session

    async def _events():
        async for snapshot in session.watch():
            yield f"data: {json.dumps(_state_payload(snapshot))}\n\n"

    return StreamingResponse(_events(), media_type="text/event-stream")


@app.get("/debug.json")
async def debug_json(request: Request) -> JSONResponse:
    """Run the resolver once (outside the session) and return its trace."""
    platform: LocationPlatform = request.app.state.platform
    trace: list[dict[str, Any]] = []
    outcome = await LocationResolver(platform).resolve(trace=trace)

    if isinstance(outcome, Success):
        summary: dict[str, Any] = {
            "outcome": "success",
            "lat": outcome.coordinate.latitude,
            "lon": outcome.coordinate.longitude,
        }
    elif isinstance(outcome, PermissionDenied):
        summary = {"outcome": "permission_denied"}
    elif isinstance(outcome, ServiceDisabled):
        summary = {"outcome": "service_disabled"}
    elif isinstance(outcome, Failure):
        summary = {"outcome": "failure", "reason": outcome.reason}
    else:
        summary = {"outcome": repr(outcome)}

    return JSONResponse({**summary, "trace": trace})
