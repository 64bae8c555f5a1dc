"""location_resolver.py
~~~~~~~~~~~~~~~~~~~~~~
Produce the best available user coordinate within a bounded time budget.

Cascade
-------
0. Preconditions, checked synchronously before any timer starts:
   no permission → ``PermissionDenied``; no provider enabled →
   ``ServiceDisabled``.
1. **Cached fix** – the platform's last known location.  Errors here are
   logged and treated as "no cached fix".
2. **Fresh high-accuracy fix** – one update, 15 s budget.
3. **Fresh low-power fix** – one update, 8 s budget; if this fails too the
   outcome is ``Failure("LOCATION_UNAVAILABLE")``.

A permission error raised during 2 or 3 (e.g. consent revoked mid-flight)
ends the cascade with ``PermissionDenied``.  Each fresh-fix step runs under
``asyncio.wait_for``: expiry cancels the platform request, which removes its
update listener.  Worst case: cache lookup + 15 s + 8 s.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
from typing import Any, Dict, List, Optional

from dateutil import tz

from .constants import HIGH_ACCURACY_TIMEOUT_S, LOCATION_UNAVAILABLE, LOW_POWER_TIMEOUT_S
from .errors import LocationPermissionError
from .location_platform import AccuracyTier, LocationPlatform
from .models import (
    Coordinate,
    Failure,
    LocationOutcome,
    PermissionDenied,
    ServiceDisabled,
    Success,
)

UTC = tz.UTC
LOG = logging.getLogger("location_resolver")


class LocationResolver:
    """Single-shot location acquisition over a ``LocationPlatform``."""

    def __init__(
        self,
        platform: LocationPlatform,
        *,
        high_accuracy_timeout_s: float = HIGH_ACCURACY_TIMEOUT_S,
        low_power_timeout_s: float = LOW_POWER_TIMEOUT_S,
    ) -> None:
        self.platform = platform
        self.tiers: list[tuple[AccuracyTier, float]] = [
            (AccuracyTier.HIGH_ACCURACY, high_accuracy_timeout_s),
            (AccuracyTier.LOW_POWER, low_power_timeout_s),
        ]

    async def resolve(self, *, trace: Optional[List[Dict[str, Any]]] = None) -> LocationOutcome:
        """Run the cascade once and return its terminal outcome."""

        trace_log = trace if trace is not None else []

        def _step(step: str, **extra: Any) -> None:
            trace_log.append(
                {"ts": dt.datetime.now(UTC).isoformat(), "phase": "loc", "step": step, **extra}
            )

        _step("start")

        # ── 0️⃣  Preconditions ----------------------------------------------
        if not self.platform.has_permission():
            LOG.info("[resolve] permission not granted")
            _step("permission_denied")
            return PermissionDenied()
        if not self.platform.is_location_service_enabled():
            LOG.info("[resolve] location services disabled")
            _step("service_disabled")
            return ServiceDisabled()

        # ── 1️⃣  Cached fix --------------------------------------------------
        try:
            cached = await self.platform.get_cached_location()
        except Exception as exc:  # noqa: BLE001 – never surfaced
            LOG.info("[resolve] cached fix failed: %s", exc)
            _step("cached", error=str(exc))
        else:
            if cached is not None:
                LOG.info("[resolve] cached fix %.5f, %.5f", cached.latitude, cached.longitude)
                _step("cached", coords=_as_dict(cached))
                return Success(cached)
            LOG.info("[resolve] no cached fix, requesting a fresh one")
            _step("cached", coords=None)

        # ── 2️⃣ / 3️⃣  Fresh fixes, best accuracy first ------------------------
        for tier, timeout_s in self.tiers:
            try:
                coord = await asyncio.wait_for(
                    self.platform.request_one_location_update(tier), timeout_s
                )
            except LocationPermissionError as exc:
                LOG.info("[resolve] %s: permission revoked (%s)", tier.value, exc)
                _step(tier.value, error="permission_denied")
                return PermissionDenied()
            except asyncio.TimeoutError:
                LOG.info("[resolve] %s timed out after %.1f s", tier.value, timeout_s)
                _step(tier.value, error="timeout", timeout_s=timeout_s)
                continue
            except asyncio.CancelledError:
                LOG.info("[resolve] cancelled during %s", tier.value)
                raise
            except Exception as exc:  # noqa: BLE001 – fall through to next tier
                LOG.info("[resolve] %s failed: %s", tier.value, exc)
                _step(tier.value, error=str(exc))
                continue

            LOG.info(
                "[resolve] %s fix %.5f, %.5f", tier.value, coord.latitude, coord.longitude
            )
            _step(tier.value, coords=_as_dict(coord))
            return Success(coord)

        LOG.warning("[resolve] all location methods failed")
        _step("unavailable")
        return Failure(LOCATION_UNAVAILABLE)


def _as_dict(coord: Coordinate) -> dict[str, float]:
    return {"lat": coord.latitude, "lon": coord.longitude}


__all__ = ["LocationResolver"]
