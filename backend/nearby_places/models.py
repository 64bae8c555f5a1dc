"""
models.py
~~~~~~~~~
Value types shared by the resolver, the ranker and the session.

* ``Coordinate`` / ``Place`` / ``Candidate`` – immutable geo records.
* ``LocationOutcome`` – closed union produced once per ``resolve()``:
  ``Success | PermissionDenied | ServiceDisabled | Failure``.
* ``SessionState`` – immutable snapshot published by ``PlacesSession``.

``to_payload()`` helpers emit the wire shape the UI expects
(``userLat``/``userLng``/``distanceMeters`` – field names are fixed).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, NamedTuple, Union


@dataclass(frozen=True)
class Coordinate:
    """A latitude/longitude pair in decimal degrees."""

    latitude: float
    longitude: float


class Category(str, Enum):
    PARK = "park"
    RESTAURANT = "restaurant"


class Candidate(NamedTuple):
    """Unranked point of interest as handed to ``rank()``."""

    name: str
    coordinate: Coordinate
    category: Category


@dataclass(frozen=True)
class Place:
    id: str
    name: str
    coordinate: Coordinate
    category: Category
    distance_meters: float

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "latitude": self.coordinate.latitude,
            "longitude": self.coordinate.longitude,
            "category": self.category.value,
            "distanceMeters": self.distance_meters,
        }


# ── Location outcome (closed union) ──────────────────────────────────────
@dataclass(frozen=True)
class Success:
    coordinate: Coordinate


@dataclass(frozen=True)
class PermissionDenied:
    pass


@dataclass(frozen=True)
class ServiceDisabled:
    pass


@dataclass(frozen=True)
class Failure:
    reason: str


LocationOutcome = Union[Success, PermissionDenied, ServiceDisabled, Failure]


# ── Session snapshot ─────────────────────────────────────────────────────
@dataclass(frozen=True)
class SessionState:
    """
    Observable session state.

    ``is_loading`` implies ``error is None``.  A settled state carries either
    ranked ``places`` or an ``error`` code, never both.
    """

    is_loading: bool = False
    user_location: Coordinate | None = None
    places: tuple[Place, ...] = field(default_factory=tuple)
    error: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Result payload: ``{userLat, userLng, places: [...]}``."""
        loc = self.user_location
        return {
            "userLat": loc.latitude if loc else 0.0,
            "userLng": loc.longitude if loc else 0.0,
            "places": [p.to_payload() for p in self.places],
        }


__all__ = [
    "Candidate",
    "Category",
    "Coordinate",
    "Failure",
    "LocationOutcome",
    "PermissionDenied",
    "Place",
    "ServiceDisabled",
    "SessionState",
    "Success",
]
