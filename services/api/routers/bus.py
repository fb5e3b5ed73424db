"""
/api/bus: cached bus stops around campus and per-stop arrivals.

Backed by BusService (stops 60s, arrivals 30s). Unlike /api/tdx these routes
never surface upstream errors: an outage serves the last snapshot or [].
Stop UIDs must look like TDX ones (TPE15580); anything else is a 400.
"""

from fastapi import APIRouter, Path, Query, Request

from services.api.transit import BusService
from services.api.transit.bus_service import STOP_STATUS_LABELS, STOP_UID_PATTERN, summarize_arrivals
from services.api.transit.lookup import DEFAULT_MAX_DISTANCE

router = APIRouter(prefix="/api/bus", tags=["bus"])


def _service(request: Request) -> BusService:
    return request.app.state.bus_service


@router.get("/stops")
async def list_stops(
    request: Request,
    lat: float | None = Query(default=None, ge=-90, le=90),
    lng: float | None = Query(default=None, ge=-180, le=180),
    maxDistance: float = Query(default=DEFAULT_MAX_DISTANCE, gt=0, le=1),
) -> dict:
    """
    Stops near NTU. With ``lat`` and ``lng`` the list is narrowed to stops
    within ``maxDistance`` degrees of that point, in upstream order.
    """
    service = _service(request)
    stops = await service.get_stops_near_ntu()
    if lat is not None and lng is not None:
        stops = service.find_stops_near(stops, lat, lng, maxDistance)
    return {
        "success": True,
        "data": stops,
        "count": len(stops),
        "requestId": request.state.request_id,
    }


@router.get("/stops/{stopUID}/arrivals")
async def stop_arrivals(
    request: Request,
    stopUID: str = Path(..., max_length=64, pattern=STOP_UID_PATTERN),
) -> dict:
    records = await _service(request).get_arrivals(stopUID)
    return {
        "success": True,
        "data": records,
        "summary": summarize_arrivals(records),
        "statusLabels": STOP_STATUS_LABELS,
        "requestId": request.state.request_id,
    }
