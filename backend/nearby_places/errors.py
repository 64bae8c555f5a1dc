"""
errors.py
~~~~~~~~~
Location error taxonomy and error-code normalisation.

=============================  ========================  =========
Exception                      UI code                   Retriable
=============================  ========================  =========
``LocationPermissionError``    ``PERMISSION_DENIED``     no
``ServiceDisabledError``       ``LOCATION_DISABLED``     no
``TransientUnavailableError``  ``LOCATION_UNAVAILABLE``  yes
``UnknownLocationError``       ``UNKNOWN_ERROR``         yes
=============================  ========================  =========
"""

from __future__ import annotations

from .constants import (
    ERROR_CODES,
    LOCATION_DISABLED,
    LOCATION_UNAVAILABLE,
    PERMISSION_DENIED,
    UNKNOWN_ERROR,
)


class LocationError(Exception):
    """Base class for every failure raised by the platform layer."""

    code: str = UNKNOWN_ERROR
    retriable: bool = True


class LocationPermissionError(LocationError):
    code = PERMISSION_DENIED
    retriable = False


class ServiceDisabledError(LocationError):
    code = LOCATION_DISABLED
    retriable = False


class TransientUnavailableError(LocationError):
    code = LOCATION_UNAVAILABLE


class UnknownLocationError(LocationError):
    code = UNKNOWN_ERROR


# Substrings that mark a failure reason as "no fix could be obtained"
_UNAVAILABLE_MARKERS = (LOCATION_UNAVAILABLE, "null", "unavailable", "timed out")


def normalize_error_code(reason: str | None) -> str:
    """
    Map a free-form failure *reason* onto a UI error code.

    Known codes pass through, "no fix" style messages collapse to
    ``LOCATION_UNAVAILABLE`` and anything unrecognised is returned verbatim.
    """
    if not reason or not reason.strip():
        return UNKNOWN_ERROR
    if reason in ERROR_CODES:
        return reason
    if any(marker in reason for marker in _UNAVAILABLE_MARKERS):
        return LOCATION_UNAVAILABLE
    return reason


__all__ = [
    "LocationError",
    "LocationPermissionError",
    "ServiceDisabledError",
    "TransientUnavailableError",
    "UnknownLocationError",
    "normalize_error_code",
]
