"""
Transit package.

Cached bus stop and arrival data for the campus area, plus the name and
coordinate lookups shared with the YouBike service.
"""

from services.api.transit.bus_service import BusService
from services.api.transit.lookup import filter_by_location, find_by_location, find_by_name

__all__ = ["BusService", "filter_by_location", "find_by_location", "find_by_name"]
