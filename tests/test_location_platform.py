"""
tests/test_location_platform.py
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
The push → awaitable bridge, the permission store and the device platform.

The key property: whatever way a one-shot request ends – fix, error,
timeout or cancellation – its listener is removed exactly once.
"""

from __future__ import annotations

import asyncio
import datetime as dt

import pytest
from conftest import FakeSource

from nearby_places.errors import (
    LocationPermissionError,
    ServiceDisabledError,
    TransientUnavailableError,
)
from nearby_places.location_platform import (
    AccuracyTier,
    DevicePlatform,
    PermissionStore,
    one_shot_update,
)
from nearby_places.models import Coordinate

FIX = Coordinate(51.5074, -0.1278)


# ── one_shot_update ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_one_shot_returns_first_fix_and_deregisters() -> None:
    src = FakeSource(FIX, delay=0)

    assert await one_shot_update(src) == FIX
    assert (src.requests, src.removals) == (1, 1)
    assert src.listeners == []


@pytest.mark.asyncio
async def test_one_shot_ignores_late_deliveries() -> None:
    src = FakeSource()
    task = asyncio.create_task(one_shot_update(src))
    await asyncio.sleep(0)

    src.deliver(FIX)
    src.deliver(Coordinate(0, 0))  # second report before the awaiter resumes

    assert await task == FIX
    assert src.removals == 1


@pytest.mark.asyncio
async def test_one_shot_null_fix_is_unavailable() -> None:
    src = FakeSource(None, delay=0)

    with pytest.raises(TransientUnavailableError, match="null"):
        await one_shot_update(src)
    assert src.removals == 1


@pytest.mark.asyncio
async def test_one_shot_propagates_source_error() -> None:
    src = FakeSource(error=LocationPermissionError("revoked"), delay=0)

    with pytest.raises(LocationPermissionError):
        await one_shot_update(src)
    assert src.listeners == []


@pytest.mark.asyncio
async def test_one_shot_timeout_deregisters() -> None:
    src = FakeSource()  # never delivers

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(one_shot_update(src), 0.05)
    assert (src.requests, src.removals) == (1, 1)
    assert src.listeners == []


@pytest.mark.asyncio
async def test_one_shot_cancel_deregisters() -> None:
    src = FakeSource()
    task = asyncio.create_task(one_shot_update(src))
    await asyncio.sleep(0.01)
    assert len(src.listeners) == 1

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert src.listeners == []


# ── PermissionStore ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_permission_prompts_only_once() -> None:
    store = PermissionStore("prompt")
    asked: list[bool] = []

    async def _deny() -> bool:
        asked.append(True)
        return False

    async def _grant() -> bool:
        asked.append(True)
        return True

    assert await store.request(_deny) is False
    assert await store.request(_grant) is False  # no second prompt
    assert asked == [True]
    assert store.granted is False


@pytest.mark.asyncio
async def test_permission_already_granted_skips_prompt() -> None:
    store = PermissionStore("granted")

    async def _boom() -> bool:
        raise AssertionError("should not prompt")

    assert await store.request(_boom) is True


@pytest.mark.asyncio
async def test_permission_without_prompt_is_denied() -> None:
    store = PermissionStore("prompt")
    assert await store.request() is False
    # not prompted yet → a later UI answer is still accepted

    async def _grant() -> bool:
        return True

    assert await store.request(_grant) is True


def test_permission_grant_and_revoke() -> None:
    store = PermissionStore("denied")
    assert store.granted is False
    store.grant()
    assert store.granted is True
    store.revoke()
    assert store.granted is False


@pytest.mark.asyncio
async def test_permission_reset_prompts_again() -> None:
    store = PermissionStore("prompt")

    async def _deny() -> bool:
        return False

    async def _grant() -> bool:
        return True

    assert await store.request(_deny) is False
    store.reset()
    assert store.granted is False
    assert await store.request(_grant) is True


# ── DevicePlatform ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_fresh_fix_becomes_cached(make_platform) -> None:
    platform = make_platform(high=FakeSource(FIX, delay=0))

    assert await platform.get_cached_location() is None
    assert await platform.request_one_location_update(AccuracyTier.HIGH_ACCURACY) == FIX
    assert await platform.get_cached_location() == FIX


@pytest.mark.asyncio
async def test_cached_fix_expires(make_platform) -> None:
    platform: DevicePlatform = make_platform()
    platform.cached_fix_max_age_s = 60
    old = dt.datetime.now(dt.timezone.utc) - dt.timedelta(minutes=5)

    platform.remember(FIX, ts=old)

    assert await platform.get_cached_location() is None


@pytest.mark.asyncio
async def test_fresh_fix_without_permission_raises(make_platform) -> None:
    high = FakeSource(FIX, delay=0)
    platform = make_platform(high=high, permission="denied")

    with pytest.raises(LocationPermissionError):
        await platform.request_one_location_update(AccuracyTier.HIGH_ACCURACY)
    assert high.requests == 0


@pytest.mark.asyncio
async def test_disabled_tier_raises(make_platform) -> None:
    platform = make_platform(low=FakeSource(FIX, delay=0, enabled=False))

    with pytest.raises(ServiceDisabledError):
        await platform.request_one_location_update(AccuracyTier.LOW_POWER)


def test_service_enabled_when_any_tier_enabled(make_platform) -> None:
    assert make_platform(high=FakeSource(enabled=False)).is_location_service_enabled()
    assert not make_platform(
        high=FakeSource(enabled=False), low=FakeSource(enabled=False)
    ).is_location_service_enabled()
