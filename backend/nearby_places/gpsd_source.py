"""
gpsd_source.py
~~~~~~~~~~~~~~
High-accuracy location source backed by a local **gpsd** daemon.

gpsd speaks newline-delimited JSON over TCP (default ``127.0.0.1:2947``).
After ``?WATCH={"enable":true,"json":true}`` it streams reports; we only
care about ``TPV`` reports carrying a 2D/3D fix (``mode >= 2``).

The watch connection is opened when the first listener registers and torn
down as soon as the last listener is removed.

Configuration (env)
-------------------
    GPSD_HOST, GPSD_PORT:  daemon address
    GPSD_ENABLED:          "0" disables the high-accuracy tier
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os

from .errors import TransientUnavailableError
from .location_platform import UpdateCallback
from .models import Coordinate

LOG = logging.getLogger("gpsd_source")

GPSD_HOST = os.getenv("GPSD_HOST", "127.0.0.1")
GPSD_PORT = int(os.getenv("GPSD_PORT", "2947"))
GPSD_ENABLED = os.getenv("GPSD_ENABLED", "1") != "0"

WATCH_COMMAND = b'?WATCH={"enable":true,"json":true};\n'


def parse_tpv(line: bytes | str) -> Coordinate | None:
    """
    Return the fix carried by one gpsd report line, if any.

    Non-TPV classes, ``mode < 2`` (no fix) and malformed JSON yield *None*.
    """
    try:
        report = json.loads(line)
    except (ValueError, TypeError):
        return None
    if not isinstance(report, dict) or report.get("class") != "TPV":
        return None
    if int(report.get("mode", 0) or 0) < 2:
        return None
    try:
        return Coordinate(float(report["lat"]), float(report["lon"]))
    except (KeyError, TypeError, ValueError):
        return None


class GpsdSource:
    """Push-style ``LocationSource`` fed by a gpsd watch session."""

    def __init__(
        self,
        host: str = GPSD_HOST,
        port: int = GPSD_PORT,
        *,
        enabled: bool = GPSD_ENABLED,
    ) -> None:
        self.host = host
        self.port = port
        self.enabled = enabled
        self._listeners: list[UpdateCallback] = []
        self._watch_task: asyncio.Task | None = None

    def request_updates(self, callback: UpdateCallback) -> None:
        self._listeners.append(callback)
        if self._watch_task is None or self._watch_task.done():
            self._watch_task = asyncio.get_running_loop().create_task(self._watch())

    def remove_updates(self, callback: UpdateCallback) -> None:
        with contextlib.suppress(ValueError):
            self._listeners.remove(callback)
        if not self._listeners and self._watch_task is not None:
            self._watch_task.cancel()
            self._watch_task = None

    def _dispatch(self, coord: Coordinate | None, error: BaseException | None) -> None:
        for cb in list(self._listeners):
            try:
                cb(coord, error)
            except Exception as exc:  # noqa: BLE001 – one bad listener mustn't starve the rest
                LOG.warning("[gpsd] listener failed: %s", exc)

    async def _watch(self) -> None:
        try:
            reader, writer = await asyncio.open_connection(self.host, self.port)
        except OSError as exc:
            LOG.warning("[gpsd] connect %s:%s failed: %s", self.host, self.port, exc)
            self._dispatch(None, TransientUnavailableError(f"gpsd unavailable: {exc}"))
            return

        LOG.info("[gpsd] watching %s:%s", self.host, self.port)
        try:
            writer.write(WATCH_COMMAND)
            await writer.drain()
            while self._listeners:
                line = await reader.readline()
                if not line:
                    self._dispatch(None, TransientUnavailableError("gpsd closed the connection"))
                    return
                coord = parse_tpv(line)
                if coord is not None:
                    LOG.debug("[gpsd] fix %.5f, %.5f", coord.latitude, coord.longitude)
                    self._dispatch(coord, None)
        except OSError as exc:
            LOG.warning("[gpsd] stream error: %s", exc)
            self._dispatch(None, TransientUnavailableError(f"gpsd stream error: {exc}"))
        finally:
            writer.close()
            with contextlib.suppress(Exception):
                await writer.wait_closed()
            LOG.info("[gpsd] watch closed")


__all__ = ["GpsdSource", "parse_tpv"]
