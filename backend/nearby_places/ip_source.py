"""
ip_source.py
~~~~~~~~~~~~
Low-power location source: network (IP) geolocation over HTTP.

Every registered listener triggers one lookup; removing the listener before
the response arrives cancels the request.  One concise log line is emitted
per outbound call (verb, URL, status, latency).

Accepted response shapes
------------------------
* ip-api.com  – ``{"status": "success", "lat": …, "lon": …}``
* ipapi.co    – ``{"latitude": …, "longitude": …}``

Configuration (env)
-------------------
    IP_LOOKUP_URL:      endpoint (default http://ip-api.com/json/)
    IP_LOOKUP_ENABLED:  "0" disables the low-power tier
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from typing import Any

import httpx

from .constants import USER_AGENT
from .errors import TransientUnavailableError, UnknownLocationError
from .location_platform import UpdateCallback
from .models import Coordinate

LOG = logging.getLogger("ip_source")

IP_LOOKUP_URL = os.getenv("IP_LOOKUP_URL", "http://ip-api.com/json/")
IP_LOOKUP_ENABLED = os.getenv("IP_LOOKUP_ENABLED", "1") != "0"


def parse_lookup(data: Any) -> Coordinate | None:
    """Extract a coordinate from an IP-lookup JSON body (or *None*)."""
    if not isinstance(data, dict):
        return None
    if data.get("status") == "fail":
        return None
    lat = data.get("lat", data.get("latitude"))
    lon = data.get("lon", data.get("longitude"))
    try:
        return Coordinate(float(lat), float(lon))
    except (TypeError, ValueError):
        return None


class IpGeolocationSource:
    """Push-style ``LocationSource`` that answers each listener with one lookup."""

    def __init__(self, url: str = IP_LOOKUP_URL, *, enabled: bool = IP_LOOKUP_ENABLED) -> None:
        self.url = url
        self.enabled = enabled
        self._pending: dict[UpdateCallback, asyncio.Task] = {}

    def request_updates(self, callback: UpdateCallback) -> None:
        task = asyncio.get_running_loop().create_task(self._lookup(callback))
        self._pending[callback] = task

    def remove_updates(self, callback: UpdateCallback) -> None:
        task = self._pending.pop(callback, None)
        if task is not None and not task.done():
            task.cancel()

    async def fetch(self) -> Coordinate:
        """Perform one lookup; raise a ``LocationError`` subclass on failure."""
        t0 = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                timeout=10.0, headers={"User-Agent": USER_AGENT}
            ) as cli:
                resp = await cli.get(self.url)
        except httpx.HTTPError as exc:
            latency_ms = (time.perf_counter() - t0) * 1000.0
            LOG.warning("FAIL GET %s %.0f ms %s", self.url, latency_ms, exc)
            raise TransientUnavailableError(f"IP lookup unavailable: {exc}") from exc

        latency_ms = (time.perf_counter() - t0) * 1000.0
        code = resp.status_code
        if code >= 400:
            LOG.warning("GET %s → %s (%.0f ms)", self.url, code, latency_ms)
            if code >= 500 or code == 429:
                raise TransientUnavailableError(f"IP lookup returned {code}")
            raise UnknownLocationError(f"IP lookup returned {code}")
        LOG.info("GET %s → %s (%.0f ms)", self.url, code, latency_ms)

        try:
            data = resp.json()
        except ValueError as exc:
            raise UnknownLocationError(f"IP lookup returned malformed JSON: {exc}") from exc

        coord = parse_lookup(data)
        if coord is None:
            detail = data.get("message") if isinstance(data, dict) else None
            raise TransientUnavailableError(f"IP lookup unavailable: {detail or 'no coordinates'}")
        return coord

    async def _lookup(self, callback: UpdateCallback) -> None:
        try:
            coord = await self.fetch()
        except Exception as exc:  # noqa: BLE001 – delivered to the listener
            callback(None, exc)
        else:
            callback(coord, None)
        finally:
            self._pending.pop(callback, None)


__all__ = ["IpGeolocationSource", "parse_lookup"]
