"""
/api/tdx: proxies for the TDX Bus and Taipei Metro endpoints.

The token exchange is cached by TDXTokenProvider, so these routes only pay
for the data call. Responses keep the envelope keys the map UI reads
(BusRealTimeInfos, Stops, Exits, Timetable, News).

Errors are ``{error, message}``:
  500  credentials not configured, or any upstream failure
  400  required query parameter missing
  429  TDX rate limit (metro routes also carry an empty list)
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Query, Request

from services.api.config import settings
from services.api.tdx import TDXClient, TDXCredentialsMissing, TDXError, TDXRateLimited
from services.api.transit.bus_service import summarize_arrivals

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tdx", tags=["tdx"])

MSG_KEY_MISSING = "TDX API Key 未設定"


def get_tdx_client(request: Request) -> TDXClient:
    client = getattr(request.app.state, "tdx_client", None)
    if client is None or not client.configured:
        raise HTTPException(
            status_code=500,
            detail={"error": MSG_KEY_MISSING, "message": "TDX_CLIENT_ID / TDX_CLIENT_SECRET not set"},
        )
    return client


def _missing_param(names: str) -> HTTPException:
    return HTTPException(
        status_code=400,
        detail={"error": f"缺少必要參數: {names}", "message": f"Missing query parameter: {names}"},
    )


def _upstream_error(exc: TDXError, failure: str, empty_key: str | None = None) -> HTTPException:
    if isinstance(exc, TDXCredentialsMissing):
        return HTTPException(status_code=500, detail={"error": MSG_KEY_MISSING, "message": str(exc)})

    if isinstance(exc, TDXRateLimited):
        detail = {"error": "請求過於頻繁，請稍後再試", "message": "TDX API 429"}
        if empty_key:
            detail[empty_key] = []
        return HTTPException(status_code=429, detail=detail)

    logger.error("%s: %s", failure, exc)
    return HTTPException(status_code=500, detail={"error": failure, "message": str(exc)})


# ---------------------------------------------------------------------------
# Bus
# ---------------------------------------------------------------------------

@router.get("/bus-realtime")
async def bus_realtime(
    request: Request,
    stopUID: str | None = Query(default=None),
    city: str = Query(default=settings.tdx_default_city),
) -> dict:
    """Every route passing the stop, with its next estimated arrival."""
    client = get_tdx_client(request)
    if not stopUID:
        raise _missing_param("stopUID")

    try:
        records = await client.bus_estimated_arrivals(stopUID, city)
    except TDXError as exc:
        raise _upstream_error(exc, "獲取公車即時資訊失敗") from exc

    logger.info("Bus arrivals for %s: %s", stopUID, summarize_arrivals(records))
    return {"BusRealTimeInfos": records}


@router.get("/bus-stops")
async def bus_stops(
    request: Request,
    lat: float = Query(default=settings.ntu_center_lat, ge=-90, le=90),
    lon: float = Query(default=settings.ntu_center_lon, ge=-180, le=180),
    radius: int = Query(default=settings.bus_stop_radius_m, ge=1, le=5000),
    city: str = Query(default=settings.tdx_default_city),
) -> dict:
    """Stops within ``radius`` metres of a point (NTU centre by default)."""
    client = get_tdx_client(request)
    try:
        stops = await client.bus_stops_nearby(lat, lon, radius, city)
    except TDXError as exc:
        raise _upstream_error(exc, "獲取公車站牌失敗") from exc
    return {"Stops": stops}


@router.get("/bus-news")
async def bus_news(
    request: Request,
    city: str = Query(default=settings.tdx_default_city),
    top: int = Query(default=10, ge=1, le=100),
) -> dict:
    client = get_tdx_client(request)
    try:
        news = await client.bus_news(city, top)
    except TDXError as exc:
        raise _upstream_error(exc, "獲取公車新聞失敗") from exc
    return {"News": news}


# ---------------------------------------------------------------------------
# Metro (TRTC)
# ---------------------------------------------------------------------------

@router.get("/metro-exits")
async def metro_exits(
    request: Request,
    stationId: str | None = Query(default=None),
    stationName: str | None = Query(default=None),
) -> dict:
    client = get_tdx_client(request)
    if not stationId and not stationName:
        raise _missing_param("stationId 或 stationName")

    try:
        exits = await client.metro_station_exits(stationId, stationName)
    except TDXError as exc:
        raise _upstream_error(exc, "獲取捷運站出口資訊失敗", empty_key="Exits") from exc
    return {"Exits": exits}


@router.get("/metro-timetable")
async def metro_timetable(
    request: Request,
    stationId: str | None = Query(default=None),
    stationName: str | None = Query(default=None),
) -> dict:
    client = get_tdx_client(request)
    if not stationId and not stationName:
        raise _missing_param("stationId 或 stationName")

    try:
        timetable = await client.metro_first_last_timetable(stationId, stationName)
    except TDXError as exc:
        raise _upstream_error(exc, "獲取捷運時刻表失敗", empty_key="Timetable") from exc
    return {"Timetable": timetable}
