"""
Station lookup by name or by coordinate.

Distances are squared Euclidean in degree space (lat/lng treated as planar
coordinates). This is only an approximation, valid because every search
radius here is city-block scale around a fixed campus; it is not a geodesic
distance and distorts away from the equator. A max_distance of 0.01 degrees
is roughly 1 km in Taipei.
"""

from __future__ import annotations

from typing import Callable, Iterable, Sequence, TypeVar

T = TypeVar("T")

DEFAULT_MAX_DISTANCE = 0.01


def _station_name(item) -> str:
    return item.sna


def _station_position(item) -> tuple[float, float]:
    return item.lat, item.lng


def squared_distance(lat_a: float, lng_a: float, lat_b: float, lng_b: float) -> float:
    return (lat_a - lat_b) ** 2 + (lng_a - lng_b) ** 2


def find_by_name(
    items: Iterable[T],
    query: str,
    name_of: Callable[[T], str] = _station_name,
) -> T | None:
    """
    Return the first item whose name contains the query or is contained in it.

    Case-sensitive, both directions. No ranking: first match in list order wins.
    """
    for item in items:
        name = name_of(item)
        if query in name or name in query:
            return item
    return None


def find_by_location(
    items: Iterable[T],
    lat: float,
    lng: float,
    max_distance: float = DEFAULT_MAX_DISTANCE,
    position_of: Callable[[T], tuple[float, float]] = _station_position,
) -> T | None:
    """Return the nearest item within max_distance degrees, or None."""
    limit = max_distance ** 2
    nearest: T | None = None
    best = float("inf")

    for item in items:
        item_lat, item_lng = position_of(item)
        d2 = squared_distance(item_lat, item_lng, lat, lng)
        # strict < keeps the earlier item on ties
        if d2 < best and d2 <= limit:
            best = d2
            nearest = item

    return nearest


def filter_by_location(
    items: Sequence[T],
    lat: float,
    lng: float,
    max_distance: float = DEFAULT_MAX_DISTANCE,
    position_of: Callable[[T], tuple[float, float]] = _station_position,
) -> list[T]:
    """All items within max_distance degrees, in their original order."""
    limit = max_distance ** 2
    return [
        item for item in items
        if squared_distance(*position_of(item), lat, lng) <= limit
    ]
