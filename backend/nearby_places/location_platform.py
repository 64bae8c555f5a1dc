"""location_platform.py
~~~~~~~~~~~~~~~~~~~~~~
The platform location service consumed by :pyfile:`location_resolver.py`.

Pieces
------
* ``AccuracyTier`` – high-accuracy (GPS) vs low-power (network) request mode.
* ``LocationPlatform`` – the protocol the resolver talks to.
* ``LocationSource`` – push-style provider: listeners are registered with
  ``request_updates()`` and must be removed with ``remove_updates()``.
* ``one_shot_update()`` – turns one push registration into an awaitable that
  settles on the first delivery and *always* removes its listener, whether
  it settles, times out or is cancelled.
* ``PermissionStore`` – stand-in for the OS consent dialog.
* ``DevicePlatform`` – composes the above with an in-memory last-fix cache.

Configuration (env)
-------------------
    LOCATION_PERMISSION:   granted | denied | prompt   (default: prompt)
    CACHED_FIX_MAX_AGE_S:  max age of the last fix handed out as "cached"
    GPSD_ENABLED / IP_LOOKUP_ENABLED:  "0" disables a tier
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
import os
from enum import Enum
from typing import Awaitable, Callable, Final, Optional, Protocol

from dateutil import tz

from .errors import LocationPermissionError, ServiceDisabledError, TransientUnavailableError
from .models import Coordinate

UTC: Final = tz.UTC
LOG = logging.getLogger("location_platform")

LOCATION_PERMISSION = os.getenv("LOCATION_PERMISSION", "prompt").strip().lower()
CACHED_FIX_MAX_AGE_S = float(os.getenv("CACHED_FIX_MAX_AGE_S", "600"))


class AccuracyTier(str, Enum):
    HIGH_ACCURACY = "high_accuracy"
    LOW_POWER = "low_power"


UpdateCallback = Callable[[Optional[Coordinate], Optional[BaseException]], None]
PermissionPrompt = Callable[[], Awaitable[bool]]


class LocationSource(Protocol):
    enabled: bool

    def request_updates(self, callback: UpdateCallback) -> None: ...

    def remove_updates(self, callback: UpdateCallback) -> None: ...


class LocationPlatform(Protocol):
    def has_permission(self) -> bool: ...

    def is_location_service_enabled(self) -> bool: ...

    async def get_cached_location(self) -> Coordinate | None: ...

    async def request_one_location_update(self, tier: AccuracyTier) -> Coordinate: ...

    async def request_permission(self, prompt: PermissionPrompt | None = None) -> bool: ...

    def reset_permission(self) -> None: ...


# ── Push → awaitable bridge ──────────────────────────────────────────────
async def one_shot_update(source: LocationSource) -> Coordinate:
    """
    Register a single listener on *source* and wait for its first delivery.

    The listener is removed on every exit path, so a timeout or cancellation
    of the awaiting task never leaves a live registration behind.

    Raises:
        TransientUnavailableError: the source delivered an empty fix.
        Whatever exception the source delivers (e.g. a permission error).
    """
    loop = asyncio.get_running_loop()
    fut: asyncio.Future[Coordinate] = loop.create_future()

    def _on_update(coord: Coordinate | None, error: BaseException | None) -> None:
        if fut.done():
            return  # late delivery after settle/cancel
        if error is not None:
            fut.set_exception(error)
        elif coord is None:
            fut.set_exception(TransientUnavailableError("Location result was null"))
        else:
            fut.set_result(coord)

    source.request_updates(_on_update)
    try:
        return await fut
    finally:
        source.remove_updates(_on_update)


# ── Permission ───────────────────────────────────────────────────────────
class PermissionStore:
    """
    Location consent for this process.

    ``request()`` prompts at most once; after a denial the user has to grant
    explicitly (``grant()``) or ``reset()`` the store so the next request
    prompts again.
    """

    def __init__(self, initial: str = "prompt") -> None:
        self._granted = initial == "granted"
        self._prompted = initial in ("granted", "denied")

    @property
    def granted(self) -> bool:
        return self._granted

    async def request(self, prompt: PermissionPrompt | None = None) -> bool:
        if self._granted:
            return True
        if self._prompted or prompt is None:
            return False
        self._prompted = True
        self._granted = bool(await prompt())
        LOG.info("[permission] user answered: %s", "granted" if self._granted else "denied")
        return self._granted

    def grant(self) -> None:
        self._granted = self._prompted = True

    def revoke(self) -> None:
        self._granted = False
        self._prompted = True

    def reset(self) -> None:
        """Forget any answer; the next ``request()`` prompts again."""
        self._granted = self._prompted = False


# ── Device platform ──────────────────────────────────────────────────────
class DevicePlatform:
    """``LocationPlatform`` over one ``LocationSource`` per accuracy tier."""

    def __init__(
        self,
        sources: dict[AccuracyTier, LocationSource],
        permissions: PermissionStore | None = None,
        *,
        cached_fix_max_age_s: float = CACHED_FIX_MAX_AGE_S,
    ) -> None:
        self.sources = sources
        self.permissions = permissions or PermissionStore(LOCATION_PERMISSION)
        self.cached_fix_max_age_s = cached_fix_max_age_s
        self._last_fix: tuple[dt.datetime, Coordinate] | None = None

    def has_permission(self) -> bool:
        return self.permissions.granted

    def is_location_service_enabled(self) -> bool:
        return any(src.enabled for src in self.sources.values())

    async def request_permission(self, prompt: PermissionPrompt | None = None) -> bool:
        return await self.permissions.request(prompt)

    def reset_permission(self) -> None:
        LOG.info("[permission] reset, next request prompts again")
        self.permissions.reset()

    def remember(self, coord: Coordinate, ts: dt.datetime | None = None) -> None:
        """Store *coord* as the platform's last known fix."""
        self._last_fix = (ts or dt.datetime.now(UTC), coord)

    async def get_cached_location(self) -> Coordinate | None:
        if self._last_fix is None:
            return None
        ts, coord = self._last_fix
        age_s = (dt.datetime.now(UTC) - ts).total_seconds()
        if age_s > self.cached_fix_max_age_s:
            LOG.debug("[cache] last fix too old (%.0f s)", age_s)
            return None
        return coord

    async def request_one_location_update(self, tier: AccuracyTier) -> Coordinate:
        if not self.permissions.granted:
            raise LocationPermissionError("Location permission not granted")
        source = self.sources.get(tier)
        if source is None or not source.enabled:
            raise ServiceDisabledError(f"{tier.value} provider disabled")

        coord = await one_shot_update(source)
        self.remember(coord)
        return coord


def build_device_platform() -> DevicePlatform:
    """Default platform: gpsd for high accuracy, IP lookup for low power."""
    from .gpsd_source import GpsdSource
    from .ip_source import IpGeolocationSource

    return DevicePlatform(
        {
            AccuracyTier.HIGH_ACCURACY: GpsdSource(),
            AccuracyTier.LOW_POWER: IpGeolocationSource(),
        }
    )


__all__ = [
    "AccuracyTier",
    "DevicePlatform",
    "LocationPlatform",
    "LocationSource",
    "PermissionStore",
    "UpdateCallback",
    "build_device_platform",
    "one_shot_update",
]
