"""
tests/conftest.py
~~~~~~~~~~~~~~~~~
Global pytest fixtures.

``FakeSource`` stands in for gpsd / IP lookup: it records every listener
registration and removal, and delivers its fix (or error) after ``delay``
seconds – or never, when ``delay`` is *None*.  ``make_platform`` wires two
of them into a real :class:`DevicePlatform`, so the push → awaitable bridge
under test is the production one.
"""

from __future__ import annotations

import asyncio
from typing import Callable

import pytest

from nearby_places.location_platform import AccuracyTier, DevicePlatform, PermissionStore
from nearby_places.models import Coordinate

pytest_plugins = ["pytest_asyncio"]

# Scaled-down budgets: same cascade, 100× faster than 15 s / 8 s
HIGH_TIMEOUT_S = 0.15
LOW_TIMEOUT_S = 0.08

ORIGIN = Coordinate(48.8566, 2.3522)


class FakeSource:
    def __init__(
        self,
        fix: Coordinate | None = None,
        *,
        delay: float | None = None,
        error: BaseException | None = None,
        enabled: bool = True,
    ) -> None:
        self.fix = fix
        self.delay = delay
        self.error = error
        self.enabled = enabled
        self.listeners: list = []
        self.requests = 0
        self.removals = 0
        self._timers: dict = {}

    def request_updates(self, callback) -> None:
        self.requests += 1
        self.listeners.append(callback)
        if self.delay is not None:
            loop = asyncio.get_running_loop()
            self._timers[callback] = loop.call_later(
                self.delay, callback, self.fix, self.error
            )

    def remove_updates(self, callback) -> None:
        self.removals += 1
        if callback in self.listeners:
            self.listeners.remove(callback)
        timer = self._timers.pop(callback, None)
        if timer is not None:
            timer.cancel()

    def deliver(self, coord: Coordinate | None = None, error: BaseException | None = None) -> None:
        for cb in list(self.listeners):
            cb(coord, error)


@pytest.fixture
def make_platform() -> Callable[..., DevicePlatform]:
    """Build a DevicePlatform over two FakeSources (hang forever by default)."""

    def _make(
        high: FakeSource | None = None,
        low: FakeSource | None = None,
        permission: str = "granted",
    ) -> DevicePlatform:
        return DevicePlatform(
            {
                AccuracyTier.HIGH_ACCURACY: high or FakeSource(),
                AccuracyTier.LOW_POWER: low or FakeSource(),
            },
            PermissionStore(permission),
        )

    return _make
