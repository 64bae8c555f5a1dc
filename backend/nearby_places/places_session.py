"""places_session.py
~~~~~~~~~~~~~~~~~~~
Observable state machine that turns "find places near me" into UI state.

States
------
``Idle → Loading → {Resolved, Failed}`` and back to ``Loading`` on the next
``load()``.  Every transition publishes exactly one immutable
:class:`~nearby_places.models.SessionState` to every observer.

Error codes
-----------
* ``PermissionDenied``  → ``PERMISSION_DENIED``
* ``ServiceDisabled``   → ``LOCATION_DISABLED``
* ``Failure(reason)``   → ``normalize_error_code(reason)``
* anything unexpected   → ``UNKNOWN_ERROR`` (logged with traceback)

A location with no places around it settles as ``LOCATION_UNAVAILABLE``.

Failures are state, never exceptions: ``load()`` does not raise them.

Concurrent loads
----------------
A ``load()`` issued while another one is in flight *joins* it: no second
resolution is started and both callers receive the same final state.

Cancellation
------------
``cancel()`` / ``close()`` cancel the resolver, which removes any pending
platform listener; waiting callers get the last published snapshot back.
Cancelling one caller only cancels the resolution once no other caller is
waiting on it.  Nothing is published after a cancellation.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import AsyncIterator, Callable

from .constants import (
    LOCATION_DISABLED,
    LOCATION_UNAVAILABLE,
    PERMISSION_DENIED,
    UNKNOWN_ERROR,
)
from .errors import normalize_error_code
from .location_resolver import LocationResolver
from .models import (
    Failure,
    LocationOutcome,
    PermissionDenied,
    ServiceDisabled,
    SessionState,
    Success,
)
from .place_ranker import PlaceRanker

LOG = logging.getLogger("places_session")

Observer = Callable[[SessionState], None]


def _failed(code: str) -> SessionState:
    return SessionState(is_loading=False, user_location=None, places=(), error=code)


class PlacesSession:
    def __init__(self, resolver: LocationResolver, ranker: PlaceRanker | None = None) -> None:
        self.resolver = resolver
        self.ranker = ranker or PlaceRanker()
        self._state = SessionState()
        self._observers: list[Observer] = []
        self._watchers: set[asyncio.Queue] = set()
        self._task: asyncio.Task | None = None
        self._waiters: dict[asyncio.Task, int] = {}
        self._closed = False

    # ── Observation ------------------------------------------------------
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def loading(self) -> bool:
        return self._task is not None and not self._task.done()

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register *observer*; returns a callable that unsubscribes it."""
        self._observers.append(observer)

        def _unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _unsubscribe

    async def watch(self) -> AsyncIterator[SessionState]:
        """Yield the current snapshot, then every published one until ``close()``."""
        queue: asyncio.Queue = asyncio.Queue()
        self._watchers.add(queue)
        unsubscribe = self.subscribe(queue.put_nowait)
        try:
            yield self._state
            while True:
                snapshot = await queue.get()
                if snapshot is None:  # session closed
                    return
                yield snapshot
        finally:
            unsubscribe()
            self._watchers.discard(queue)

    def _publish(self, state: SessionState) -> None:
        if self._closed:
            return
        self._state = state
        for observer in list(self._observers):
            try:
                observer(state)
            except Exception as exc:  # noqa: BLE001 – observers can't break the session
                LOG.warning("[publish] observer %r failed: %s", observer, exc)

    # ── Loading ----------------------------------------------------------
    async def load(self) -> SessionState:
        """Resolve the location, rank places and return the settled state."""
        if self._closed:
            return self._state

        task = self._task
        if task is not None and not task.done():
            LOG.info("[load] already loading – joining the in-flight load")
        else:
            task = self._task = asyncio.create_task(self._run())

        # every caller waits through a shield; the resolution itself is only
        # cancelled by cancel()/close() or when its last waiter goes away
        self._waiters[task] = self._waiters.get(task, 0) + 1
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():  # session cancel(): report the frozen snapshot
                return self._state
            if self._waiters[task] == 1 and not task.done():
                LOG.info("[load] last waiter cancelled – cancelling the load")
                task.cancel()
            raise
        finally:
            self._waiters[task] -= 1
            if not self._waiters[task]:
                del self._waiters[task]

    def start_load(self) -> asyncio.Task:
        """Fire-and-forget ``load()``."""
        return asyncio.get_running_loop().create_task(self.load())

    async def wait_until_settled(self) -> SessionState:
        """Return once no load is in flight (immediately if idle)."""
        task = self._task
        if task is None or task.done():
            return self._state
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                return self._state
            raise

    def cancel(self) -> None:
        task = self._task
        if task is not None and not task.done():
            LOG.info("[load] cancelling in-flight load")
            task.cancel()

    async def close(self) -> None:
        """Cancel any in-flight load and stop publishing."""
        task = self._task
        self.cancel()
        self._closed = True
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._observers.clear()
        for queue in list(self._watchers):
            queue.put_nowait(None)

    async def _run(self) -> SessionState:
        self._publish(replace(self._state, is_loading=True, error=None))
        try:
            outcome = await self.resolver.resolve()
            settled = self._settle(outcome)
        except asyncio.CancelledError:
            LOG.info("[load] cancelled")
            raise
        except Exception as exc:  # noqa: BLE001 – surfaced as UNKNOWN_ERROR
            LOG.error("[load] unexpected failure: %s", exc, exc_info=True)
            settled = _failed(UNKNOWN_ERROR)

        self._publish(settled)
        return settled

    def _settle(self, outcome: LocationOutcome) -> SessionState:
        if isinstance(outcome, Success):
            places = self.ranker.nearby(outcome.coordinate)
            if not places:
                LOG.warning("[load] no places around %s", outcome.coordinate)
                return _failed(LOCATION_UNAVAILABLE)
            LOG.info("[load] %d places around %s", len(places), outcome.coordinate)
            return SessionState(
                is_loading=False,
                user_location=outcome.coordinate,
                places=tuple(places),
                error=None,
            )
        if isinstance(outcome, PermissionDenied):
            return _failed(PERMISSION_DENIED)
        if isinstance(outcome, ServiceDisabled):
            return _failed(LOCATION_DISABLED)
        if isinstance(outcome, Failure):
            code = normalize_error_code(outcome.reason)
            LOG.info("[load] failed: %s → %s", outcome.reason, code)
            return _failed(code)
        raise TypeError(f"unexpected outcome {outcome!r}")


__all__ = ["Observer", "PlacesSession"]
