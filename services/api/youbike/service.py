"""
YouBikeService: Taipei YouBike 2.0 open-data feed with an in-memory cache.

Feed (no auth): youbike_immediate.json, a JSON array of stations. The v2 feed
renamed several fields; both spellings are accepted:

  v2 field                 legacy field
  latitude / longitude     lat / lng
  Quantity                 tot
  available_rent_bikes     sbi
  available_return_bikes   bemp
  updateTime               mday

Stations with zero or unparseable coordinates are dropped. The whole station
list is replaced on every successful fetch and cached for 60 seconds; a failed
refresh serves the previous list, or an empty one if nothing was cached yet.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable

import httpx

from services.api.cache import TimedCache
from services.api.transit.lookup import DEFAULT_MAX_DISTANCE, find_by_location, find_by_name

logger = logging.getLogger(__name__)


class YouBikeFeedError(Exception):
    """The open-data feed returned an error status or a body that is not a list."""


@dataclass
class YouBikeStation:
    sno: str        # station number
    sna: str        # station name
    tot: int        # total docks
    sbi: int        # bikes available to rent
    bemp: int       # empty docks available for return
    lat: float
    lng: float
    act: str        # "1" in service, "0" suspended
    ar: str = ""    # address
    sarea: str = ""  # district
    mday: str = ""  # last update time reported by the feed

    @property
    def active(self) -> bool:
        return self.act == "1"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _first(raw: dict[str, Any], *names: str) -> Any:
    """First truthy value among the given field names."""
    for name in names:
        value = raw.get(name)
        if value:
            return value
    return None


def _to_float(value: Any) -> float | None:
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return None


def _to_int(value: Any) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return 0


def parse_station(raw: dict[str, Any]) -> YouBikeStation | None:
    """Normalise one feed record. Returns None when coordinates are unusable."""
    lat = _to_float(_first(raw, "latitude", "lat") or "0")
    lng = _to_float(_first(raw, "longitude", "lng") or "0")
    if not lat or not lng or math.isnan(lat) or math.isnan(lng):
        return None

    return YouBikeStation(
        sno=str(raw.get("sno") or ""),
        sna=str(raw.get("sna") or ""),
        tot=_to_int(_first(raw, "Quantity", "tot")),
        sbi=_to_int(_first(raw, "available_rent_bikes", "sbi")),
        bemp=_to_int(_first(raw, "available_return_bikes", "bemp")),
        lat=lat,
        lng=lng,
        act=str(raw.get("act") or "0"),
        ar=str(raw.get("ar") or ""),
        sarea=str(raw.get("sarea") or ""),
        mday=str(_first(raw, "mday", "updateTime") or ""),
    )


def parse_stations(payload: Any) -> list[YouBikeStation]:
    if not isinstance(payload, list):
        raise YouBikeFeedError(f"Expected a JSON array, got {type(payload).__name__}")

    stations = []
    for raw in payload:
        if not isinstance(raw, dict):
            continue
        station = parse_station(raw)
        if station is not None:
            stations.append(station)
    return stations


class YouBikeService:
    """
    Usage:
        service = YouBikeService(feed_url=settings.youbike_feed_url)
        stations = await service.get_stations()
        gate = service.find_station_by_name(stations, "臺大正門")
    """

    def __init__(
        self,
        feed_url: str,
        timeout_s: float = 10.0,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._feed_url = feed_url
        self._timeout_s = timeout_s
        self._cache: TimedCache[list[YouBikeStation]] = TimedCache(
            fetch=self.fetch_stations,
            ttl_seconds=ttl_seconds,
            empty=list,
            clock=clock,
            name="youbike",
        )

    async def fetch_stations(self) -> list[YouBikeStation]:
        """Uncached fetch. Raises on HTTP or parse failure."""
        async with httpx.AsyncClient(timeout=self._timeout_s) as client:
            resp = await client.get(self._feed_url, headers={"Accept": "application/json"})

        if resp.status_code != 200:
            raise YouBikeFeedError(f"YouBike feed request failed: {resp.status_code}")

        stations = parse_stations(resp.json())
        logger.info("Loaded %d YouBike stations", len(stations))
        return stations

    async def get_stations(self) -> list[YouBikeStation]:
        return await self._cache.get_or_fetch()

    def clear_cache(self) -> None:
        self._cache.clear()

    @staticmethod
    def find_station_by_name(stations: list[YouBikeStation], name: str) -> YouBikeStation | None:
        return find_by_name(stations, name)

    @staticmethod
    def find_nearest_station(
        stations: list[YouBikeStation],
        lat: float,
        lng: float,
        max_distance: float = DEFAULT_MAX_DISTANCE,
    ) -> YouBikeStation | None:
        return find_by_location(stations, lat, lng, max_distance)
