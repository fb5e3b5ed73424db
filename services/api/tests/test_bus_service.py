"""Tests for BusService caching and the arrival helpers."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from services.api.tdx import TDXRateLimited
from services.api.tests.conftest import ManualClock, make_arrival, make_stop
from services.api.transit import BusService
from services.api.transit.bus_service import has_estimate, route_key, stop_position, summarize_arrivals


def _service(tdx, clock):
    return BusService(
        client=tdx,
        city="Taipei",
        center_lat=25.0173405,
        center_lon=121.5397518,
        radius_m=1000,
        stops_ttl_s=60,
        arrivals_ttl_s=30,
        clock=clock,
    )


@pytest.fixture
def tdx():
    client = MagicMock()
    client.bus_stops_nearby = AsyncMock(return_value=[make_stop()])
    client.bus_estimated_arrivals = AsyncMock(return_value=[make_arrival()])
    return client


# ---------------------------------------------------------------------------
# Stops
# ---------------------------------------------------------------------------

class TestStopsNearNTU:

    async def test_queries_campus_centre(self, tdx):
        await _service(tdx, ManualClock()).get_stops_near_ntu()
        tdx.bus_stops_nearby.assert_awaited_once_with(25.0173405, 121.5397518, 1000, "Taipei")

    async def test_cached_for_60s(self, tdx):
        clock = ManualClock()
        service = _service(tdx, clock)

        await service.get_stops_near_ntu()
        clock.advance(59)
        await service.get_stops_near_ntu()
        assert tdx.bus_stops_nearby.await_count == 1

        clock.advance(1)
        await service.get_stops_near_ntu()
        assert tdx.bus_stops_nearby.await_count == 2

    async def test_rate_limit_serves_stale(self, tdx):
        clock = ManualClock()
        service = _service(tdx, clock)
        first = await service.get_stops_near_ntu()

        tdx.bus_stops_nearby.side_effect = TDXRateLimited("429")
        clock.advance(120)
        assert await service.get_stops_near_ntu() is first

    async def test_failure_with_empty_cache(self, tdx):
        tdx.bus_stops_nearby.side_effect = TDXRateLimited("429")
        assert await _service(tdx, ManualClock()).get_stops_near_ntu() == []

    def test_find_stops_near(self):
        near = make_stop("TPE1", 25.0175, 121.5398)
        far = make_stop("TPE2", 25.0500, 121.5700)
        assert BusService.find_stops_near([near, far], 25.0173, 121.5397, 0.01) == [near]


# ---------------------------------------------------------------------------
# Arrivals
# ---------------------------------------------------------------------------

class TestArrivals:

    async def test_cached_per_stop_for_30s(self, tdx):
        clock = ManualClock()
        service = _service(tdx, clock)

        await service.get_arrivals("TPE15580")
        await service.get_arrivals("TPE15581")
        clock.advance(29)
        await service.get_arrivals("TPE15580")
        assert tdx.bus_estimated_arrivals.await_count == 2

        clock.advance(1)
        await service.get_arrivals("TPE15580")
        assert tdx.bus_estimated_arrivals.await_count == 3
        tdx.bus_estimated_arrivals.assert_awaited_with("TPE15580", "Taipei")

    async def test_arrivals_cache_is_bounded(self, tdx):
        tdx.bus_estimated_arrivals.return_value = []
        service = BusService(
            client=tdx,
            city="Taipei",
            center_lat=25.0173405,
            center_lon=121.5397518,
            arrivals_max_entries=100,
            clock=ManualClock(),
        )

        for i in range(5000):
            await service.get_arrivals(f"TPE{i}")

        assert len(service._arrivals) == 100

    async def test_recent_stop_survives_eviction(self, tdx):
        clock = ManualClock()
        service = BusService(
            client=tdx,
            city="Taipei",
            center_lat=25.0173405,
            center_lon=121.5397518,
            arrivals_max_entries=2,
            clock=clock,
        )

        await service.get_arrivals("TPE1")
        await service.get_arrivals("TPE2")
        await service.get_arrivals("TPE1")
        await service.get_arrivals("TPE3")
        await service.get_arrivals("TPE1")

        assert tdx.bus_estimated_arrivals.await_count == 3

    async def test_clear_cache(self, tdx):
        service = _service(tdx, ManualClock())
        await service.get_arrivals("TPE15580")
        await service.get_stops_near_ntu()

        service.clear_cache()
        await service.get_arrivals("TPE15580")
        await service.get_stops_near_ntu()

        assert tdx.bus_estimated_arrivals.await_count == 2
        assert tdx.bus_stops_nearby.await_count == 2


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestArrivalHelpers:

    def test_stop_position(self):
        assert stop_position(make_stop(lat=25.01, lon=121.53)) == (25.01, 121.53)

    @pytest.mark.parametrize(
        "position",
        [
            None,
            {},
            {"PositionLat": None, "PositionLon": None},
            {"PositionLat": 25.01, "PositionLon": "n/a"},
            {"PositionLat": 0, "PositionLon": 0},
        ],
    )
    def test_stop_position_unusable(self, position):
        assert stop_position({"StopUID": "X", "StopPosition": position}) is None

    def test_stop_position_missing(self):
        assert stop_position({"StopUID": "X"}) is None

    def test_find_stops_near_skips_unplaced_stops(self):
        near = make_stop("TPE1", 25.0175, 121.5398)
        unplaced = make_stop("TPE2", StopPosition={"PositionLat": None, "PositionLon": 121.5398})
        assert BusService.find_stops_near([unplaced, near], 25.0173, 121.5397) == [near]

    def test_route_key_falls_back_to_route_id(self):
        assert route_key({"RouteID": "10132", "Direction": 1}) == "10132-1"
        assert route_key({"RouteUID": "TPE10132"}) == "TPE10132-0"

    @pytest.mark.parametrize("value,expected", [(0, True), (180, True), (-1, False), (None, False), (True, False)])
    def test_has_estimate(self, value, expected):
        assert has_estimate({"EstimateTime": value}) is expected

    def test_summarize(self):
        records = [
            make_arrival("R1", 0, 60),
            make_arrival("R1", 1, None, status=3),
            make_arrival("R2", 0, None, status=4),
        ]
        assert summarize_arrivals(records) == {"records": 3, "routes": 3, "routes_with_eta": 1}
