"""
BusService: cached TDX bus stops around campus and per-stop arrival estimates.

Two independent TimedCaches:
  - stops near NTU (single snapshot, 60s): Bus/Stop with a spatial filter
    centred on the main campus
  - arrivals by StopUID (keyed, 30s, least recently used stops evicted past
    arrivals_max_entries): Bus/EstimatedTimeOfArrival

Neither cache is kept consistent with the other. Upstream failures (429,
missing credentials, network errors) degrade to the last snapshot or an
empty list; the raw /api/tdx routes are the place where those errors are
surfaced to callers.

StopStatus values on arrival records:
  0 normal, 1 not yet departed, 2 not stopping (traffic control),
  3 last bus has passed, 4 not operating today
"""

from __future__ import annotations

import logging
import math
import time
from typing import Any, Callable

from services.api.cache import TimedCache
from services.api.tdx.client import TDXClient
from services.api.transit.lookup import DEFAULT_MAX_DISTANCE, filter_by_location

logger = logging.getLogger(__name__)

STOP_STATUS_LABELS = {
    0: "normal",
    1: "not_departed",
    2: "not_stopping",
    3: "last_bus_passed",
    4: "not_operating",
}

# TDX StopUID: city or operator prefix, then the numeric StopID (TPE15580, NWT10123)
STOP_UID_PATTERN = r"^[A-Z]{3}\d+$"


def _coordinate(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if number and not math.isnan(number) else None


def stop_position(stop: dict[str, Any]) -> tuple[float, float] | None:
    """(lat, lon) of a stop, or None when TDX sent no usable coordinates."""
    pos = stop.get("StopPosition")
    if not isinstance(pos, dict):
        return None
    lat, lon = _coordinate(pos.get("PositionLat")), _coordinate(pos.get("PositionLon"))
    if lat is None or lon is None:
        return None
    return lat, lon


def route_key(record: dict[str, Any]) -> str:
    return f"{record.get('RouteUID') or record.get('RouteID')}-{record.get('Direction') or 0}"


def has_estimate(record: dict[str, Any]) -> bool:
    value = record.get("EstimateTime")
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0


def summarize_arrivals(records: list[dict[str, Any]]) -> dict[str, int]:
    """Route counts for diagnostics: distinct routes, and how many carry an ETA."""
    routes = {route_key(r) for r in records}
    timed = {route_key(r) for r in records if has_estimate(r)}
    return {"records": len(records), "routes": len(routes), "routes_with_eta": len(timed)}


class BusService:
    def __init__(
        self,
        client: TDXClient,
        city: str,
        center_lat: float,
        center_lon: float,
        radius_m: int = 1000,
        stops_ttl_s: float = 60.0,
        arrivals_ttl_s: float = 30.0,
        arrivals_max_entries: int = 500,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._city = city
        self._center = (center_lat, center_lon)
        self._radius_m = radius_m

        self._stops: TimedCache[list[dict[str, Any]]] = TimedCache(
            fetch=self._fetch_stops,
            ttl_seconds=stops_ttl_s,
            empty=list,
            clock=clock,
            name="bus_stops",
        )
        self._arrivals: TimedCache[list[dict[str, Any]]] = TimedCache(
            fetch=self._fetch_arrivals,
            ttl_seconds=arrivals_ttl_s,
            empty=list,
            clock=clock,
            name="bus_arrivals",
            max_entries=arrivals_max_entries,
        )

    async def _fetch_stops(self) -> list[dict[str, Any]]:
        lat, lon = self._center
        stops = await self._client.bus_stops_nearby(lat, lon, self._radius_m, self._city)
        logger.info("Loaded %d bus stops within %dm of campus", len(stops), self._radius_m)
        return stops

    async def _fetch_arrivals(self, stop_uid: str) -> list[dict[str, Any]]:
        records = await self._client.bus_estimated_arrivals(stop_uid, self._city)
        logger.debug("Arrivals for stop=%s: %s", stop_uid, summarize_arrivals(records))
        return records

    async def get_stops_near_ntu(self) -> list[dict[str, Any]]:
        return await self._stops.get_or_fetch()

    async def get_arrivals(self, stop_uid: str) -> list[dict[str, Any]]:
        return await self._arrivals.get_or_fetch(stop_uid)

    @staticmethod
    def find_stops_near(
        stops: list[dict[str, Any]],
        lat: float,
        lon: float,
        max_distance: float = DEFAULT_MAX_DISTANCE,
    ) -> list[dict[str, Any]]:
        located = [stop for stop in stops if stop_position(stop) is not None]
        return filter_by_location(located, lat, lon, max_distance, position_of=stop_position)

    def clear_cache(self) -> None:
        self._stops.clear()
        self._arrivals.clear()
