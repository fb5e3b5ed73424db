"""Tests for station lookup by name and by coordinate."""

from types import SimpleNamespace

import pytest

from services.api.transit.lookup import (
    DEFAULT_MAX_DISTANCE,
    filter_by_location,
    find_by_location,
    find_by_name,
    squared_distance,
)


def station(sna="NTU Main Gate", lat=25.02, lng=121.54):
    return SimpleNamespace(sna=sna, lat=lat, lng=lng)


# ---------------------------------------------------------------------------
# find_by_name
# ---------------------------------------------------------------------------

class TestFindByName:

    def test_query_contained_in_name(self):
        gate = station("NTU Main Gate")
        assert find_by_name([gate], "Main Gate") is gate

    def test_name_contained_in_query(self):
        gate = station("臺大正門")
        assert find_by_name([gate], "YouBike2.0_臺大正門口") is gate

    def test_first_match_wins(self):
        a = station("臺大小福樓")
        b = station("臺大小福樓(東)")
        assert find_by_name([a, b], "小福") is a

    def test_case_sensitive(self):
        assert find_by_name([station("NTU Main Gate")], "main gate") is None

    def test_no_match(self):
        assert find_by_name([station("公館")], "信義") is None

    def test_empty_list(self):
        assert find_by_name([], "anything") is None

    def test_custom_name_accessor(self):
        stop = {"StopName": {"Zh_tw": "臺灣大學"}}
        found = find_by_name([stop], "臺灣大學", name_of=lambda s: s["StopName"]["Zh_tw"])
        assert found is stop


# ---------------------------------------------------------------------------
# find_by_location
# ---------------------------------------------------------------------------

class TestFindByLocation:

    def test_within_default_radius(self):
        s = station(lat=25.02, lng=121.54)
        assert find_by_location([s], 25.02, 121.5401, 0.01) is s

    def test_outside_tight_radius(self):
        s = station(lat=25.02, lng=121.54)
        assert find_by_location([s], 25.02, 121.5401, 0.00005) is None
        assert find_by_location([s], 25.02, 121.5402, 0.0001) is None

    def test_default_max_distance(self):
        assert DEFAULT_MAX_DISTANCE == 0.01
        s = station(lat=25.02, lng=121.54)
        assert find_by_location([s], 25.025, 121.545) is s

    def test_returns_nearest(self):
        far = station("far", 25.028, 121.54)
        near = station("near", 25.0201, 121.54)
        assert find_by_location([far, near], 25.02, 121.54) is near

    def test_tie_keeps_earlier_item(self):
        north = station("north", 0.5, 0.0)
        south = station("south", -0.5, 0.0)
        assert find_by_location([north, south], 0.0, 0.0, 1.0) is north
        assert find_by_location([south, north], 0.0, 0.0, 1.0) is south

    def test_radius_boundary_is_inclusive(self):
        s = station(lat=0.0, lng=0.5)
        assert find_by_location([s], 0.0, 0.0, 0.5) is s

    def test_empty_list(self):
        assert find_by_location([], 25.0, 121.5) is None

    def test_result_is_always_within_radius(self):
        items = [station(str(i), 25.0 + i * 0.004, 121.5) for i in range(10)]
        for max_d in (0.001, 0.005, 0.01, 0.02):
            found = find_by_location(items, 25.013, 121.5, max_d)
            if found is not None:
                assert squared_distance(found.lat, found.lng, 25.013, 121.5) <= max_d ** 2


# ---------------------------------------------------------------------------
# filter_by_location
# ---------------------------------------------------------------------------

class TestFilterByLocation:

    def test_keeps_items_in_radius_in_order(self):
        a = station("a", 25.0175, 121.5398)
        b = station("b", 25.05, 121.60)
        c = station("c", 25.0170, 121.5390)
        assert filter_by_location([a, b, c], 25.0173, 121.5397, 0.01) == [a, c]

    def test_nothing_in_range(self):
        assert filter_by_location([station(lat=24.0, lng=120.0)], 25.0, 121.5, 0.01) == []

    @pytest.mark.parametrize("max_distance", [0.001, 0.01, 0.1])
    def test_nearest_is_member_of_filtered(self, max_distance):
        items = [station(str(i), 25.0 + i * 0.003, 121.5 + i * 0.002) for i in range(8)]
        nearest = find_by_location(items, 25.01, 121.507, max_distance)
        within = filter_by_location(items, 25.01, 121.507, max_distance)
        if nearest is None:
            assert within == []
        else:
            assert nearest in within
