"""
/api/youbike: cached YouBike 2.0 station snapshot.

Served from YouBikeService's 60s cache. A feed outage returns the last good
snapshot (or an empty list before the first one), never an error.
"""

from fastapi import APIRouter, Query, Request

from services.api.transit.lookup import DEFAULT_MAX_DISTANCE
from services.api.youbike import YouBikeService

router = APIRouter(prefix="/api/youbike", tags=["youbike"])


def _service(request: Request) -> YouBikeService:
    return request.app.state.youbike_service


@router.get("/stations")
async def list_stations(request: Request) -> dict:
    stations = await _service(request).get_stations()
    return {
        "success": True,
        "data": [s.to_dict() for s in stations],
        "count": len(stations),
        "requestId": request.state.request_id,
    }


@router.get("/stations/search")
async def search_station(
    request: Request,
    name: str = Query(..., min_length=1, max_length=100),
) -> dict:
    """First station whose name contains ``name`` or is contained in it."""
    service = _service(request)
    station = service.find_station_by_name(await service.get_stations(), name)
    return {
        "success": True,
        "data": station.to_dict() if station else None,
        "requestId": request.state.request_id,
    }


@router.get("/stations/nearest")
async def nearest_station(
    request: Request,
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    maxDistance: float = Query(default=DEFAULT_MAX_DISTANCE, gt=0, le=1),
) -> dict:
    """Closest station within ``maxDistance`` degrees, or null."""
    service = _service(request)
    station = service.find_nearest_station(await service.get_stations(), lat, lng, maxDistance)
    return {
        "success": True,
        "data": station.to_dict() if station else None,
        "requestId": request.state.request_id,
    }
