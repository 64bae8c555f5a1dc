"""
place_ranker.py
~~~~~~~~~~~~~~~
Rank candidate places by great-circle distance from an origin.

There is no real points-of-interest feed: ``synthetic_candidates`` lays a
fixed six-point pattern around the origin.  Any ``origin -> candidates``
callable can replace it without touching the ranking rules:

* ids are ``"place_<index>"`` in *input* order (assigned before sorting);
* output is ascending by distance, ties keep input order.
"""

from __future__ import annotations

from typing import Callable, Iterable, Sequence

from .geo import distance_meters
from .models import Candidate, Category, Coordinate, Place

CandidateSource = Callable[[Coordinate], Sequence[Candidate]]

# (name, Δlat, Δlon) in degrees
SYNTHETIC_OFFSETS: tuple[tuple[str, float, float], ...] = (
    ("Central Park", 0.003, 0.002),
    ("Sunrise Cafe", -0.002, 0.005),
    ("City Library", 0.005, -0.003),
    ("Metro Station", -0.004, -0.001),
    ("Sports Complex", 0.007, 0.004),
    ("Night Market", -0.006, 0.007),
)


def synthetic_candidates(origin: Coordinate) -> list[Candidate]:
    """Six placeholder places around *origin*; park on even index, restaurant on odd."""
    return [
        Candidate(
            name,
            Coordinate(origin.latitude + d_lat, origin.longitude + d_lon),
            Category.PARK if i % 2 == 0 else Category.RESTAURANT,
        )
        for i, (name, d_lat, d_lon) in enumerate(SYNTHETIC_OFFSETS)
    ]


def rank(origin: Coordinate, candidates: Iterable[Candidate]) -> list[Place]:
    places = [
        Place(
            id=f"place_{i}",
            name=c.name,
            coordinate=c.coordinate,
            category=c.category,
            distance_meters=distance_meters(origin, c.coordinate),
        )
        for i, c in enumerate(candidates)
    ]
    # list.sort is stable → equal distances keep input order
    places.sort(key=lambda p: p.distance_meters)
    return places


class PlaceRanker:
    def __init__(self, candidate_source: CandidateSource = synthetic_candidates) -> None:
        self.candidate_source = candidate_source

    def nearby(self, origin: Coordinate) -> list[Place]:
        """Candidates from the configured source, ranked around *origin*."""
        return rank(origin, self.candidate_source(origin))


__all__ = ["PlaceRanker", "SYNTHETIC_OFFSETS", "rank", "synthetic_candidates"]
