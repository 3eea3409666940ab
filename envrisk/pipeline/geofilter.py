"""Great-circle distance and radius filtering."""

from __future__ import annotations

from math import asin, cos, radians, sin, sqrt
from typing import Any, Iterable, TypeVar

from envrisk.common.constants import EARTH_RADIUS_MILES

T = TypeVar("T")


def _lat_lon(point: Any) -> tuple[float, float]:
    if isinstance(point, (tuple, list)):
        lat, lon = point[0], point[1]
    elif isinstance(point, dict):
        lat = point.get("latitude", point.get("lat"))
        lon = point.get("longitude", point.get("lng", point.get("lon")))
    else:
        lat, lon = point.latitude, point.longitude
    return float(lat), float(lon)


def distance_miles(a: Any, b: Any) -> float:
    """Haversine distance in miles between two points.

    Points may be ``(lat, lon)`` sequences, mappings with ``lat``/``lng`` or
    ``latitude``/``longitude`` keys, or objects with ``latitude`` and
    ``longitude`` attributes.
    """
    lat1, lon1 = _lat_lon(a)
    lat2, lon2 = _lat_lon(b)
    if lat1 == lat2 and lon1 == lon2:
        return 0.0

    phi1, phi2 = radians(lat1), radians(lat2)
    dphi = radians(lat2 - lat1)
    dlambda = radians(lon2 - lon1)
    h = sin(dphi / 2) ** 2 + cos(phi1) * cos(phi2) * sin(dlambda / 2) ** 2
    # Rounding can push h fractionally past 1 for antipodal points.
    return 2 * EARTH_RADIUS_MILES * asin(sqrt(min(1.0, h)))


def filter_within_radius(records: Iterable[T], origin: Any, radius_miles: float) -> list[T]:
    """Keep records within ``radius_miles`` of ``origin``, nearest first."""
    scored: list[tuple[float, T]] = []
    for record in records:
        distance = distance_miles(origin, record)
        if distance <= radius_miles:
            scored.append((distance, record))
    # sorted() is stable, so equal distances keep their input order.
    return [record for _distance, record in sorted(scored, key=lambda pair: pair[0])]
