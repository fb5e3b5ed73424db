"""
TDX data API client: Bus and Taipei Metro (TRTC) endpoints.

All calls go to {tdx_api_base} with an ``Authorization: Bearer`` header from
TDXTokenProvider and ``$format=JSON``. Filters use OData syntax; httpx takes
care of URL-encoding the ``$filter`` value.

Endpoints used:
  Bus/EstimatedTimeOfArrival/City/{city}   ?$filter=StopUID eq '...'
  Bus/Stop/City/{city}                     ?$spatialFilter=nearby(lat, lon, radius)
  Bus/News/City/{city}                     ?$top=N
  Rail/Metro/StationExit/TRTC              ?$filter=StationID eq '...'
  Rail/Metro/FirstLastTimetable/TRTC       ?$filter=StationName/Zh_tw eq '...'

Failure mapping:
  429            -> TDXRateLimited (surfaced as-is, never retried)
  other non-2xx  -> TDXUpstreamError(status_code)
  non-JSON body  -> TDXUpstreamError
No retries or backoff: a failed call is reported once.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from services.api.tdx.auth import TDXError, TDXTokenProvider

logger = logging.getLogger(__name__)

METRO_OPERATOR = "TRTC"  # Taipei Rapid Transit Corporation


class TDXRateLimited(TDXError):
    """TDX answered 429 Too Many Requests."""


class TDXUpstreamError(TDXError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _odata_literal(value: str) -> str:
    """Quote a string for an OData filter; single quotes are doubled."""
    return "'" + value.replace("'", "''") + "'"


def station_filter(station_id: str | None, station_name: str | None) -> str | None:
    """
    Build the metro station $filter expression.

    stationId wins when both are given. Station names are matched exactly
    against StationName/Zh_tw, which TDX stores without the trailing 站.
    """
    if station_id:
        return f"StationID eq {_odata_literal(station_id)}"
    if station_name:
        clean = station_name.replace("站", "", 1).strip()
        return f"StationName/Zh_tw eq {_odata_literal(clean)}"
    return None


class TDXClient:
    def __init__(
        self,
        token_provider: TDXTokenProvider,
        api_base: str,
        timeout_s: float = 15.0,
    ) -> None:
        self._tokens = token_provider
        self._api_base = api_base.rstrip("/")
        self._timeout_s = timeout_s

    @property
    def configured(self) -> bool:
        return self._tokens.configured

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        token = await self._tokens.get_access_token()

        query: dict[str, Any] = {"$format": "JSON"}
        if params:
            query.update(params)
        url = f"{self._api_base}/{path.lstrip('/')}"

        try:
            async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                resp = await client.get(
                    url,
                    params=query,
                    headers={
                        "Authorization": f"Bearer {token}",
                        "Accept": "application/json",
                    },
                )
        except httpx.HTTPError as exc:
            logger.warning("TDX request failed: path=%s error=%s", path, exc)
            raise TDXUpstreamError(f"TDX request failed: {exc}") from exc

        if resp.status_code == 429:
            logger.warning("TDX rate limited: path=%s", path)
            raise TDXRateLimited("TDX API rate limit exceeded")

        if resp.status_code == 401:
            # Token revoked or expired early; next call re-authenticates
            self._tokens.invalidate()

        if resp.status_code >= 400:
            logger.error(
                "TDX API error: path=%s status=%d body=%s",
                path,
                resp.status_code,
                resp.text[:500],
            )
            raise TDXUpstreamError(
                f"TDX API request failed: {resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            return resp.json()
        except ValueError as exc:
            logger.error("TDX returned non-JSON: path=%s body=%s", path, resp.text[:200])
            raise TDXUpstreamError("TDX API returned malformed JSON") from exc

    async def _get_list(self, path: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        data = await self.get_json(path, params)
        return data if isinstance(data, list) else []

    # ------------------------------------------------------------------
    # Bus
    # ------------------------------------------------------------------

    async def bus_estimated_arrivals(self, stop_uid: str, city: str) -> list[dict[str, Any]]:
        """Every route passing the stop that currently has real-time data."""
        return await self._get_list(
            f"Bus/EstimatedTimeOfArrival/City/{city}",
            {"$filter": f"StopUID eq {_odata_literal(stop_uid)}"},
        )

    async def bus_stops_nearby(
        self,
        lat: float,
        lon: float,
        radius_m: int,
        city: str,
    ) -> list[dict[str, Any]]:
        return await self._get_list(
            f"Bus/Stop/City/{city}",
            {"$spatialFilter": f"nearby({lat}, {lon}, {radius_m})"},
        )

    async def bus_news(self, city: str, top: int) -> Any:
        # Passed through untouched; TDX returns a list of announcements
        return await self.get_json(f"Bus/News/City/{city}", {"$top": top})

    # ------------------------------------------------------------------
    # Metro
    # ------------------------------------------------------------------

    async def metro_station_exits(
        self,
        station_id: str | None = None,
        station_name: str | None = None,
    ) -> list[dict[str, Any]]:
        params = {}
        expr = station_filter(station_id, station_name)
        if expr:
            params["$filter"] = expr
        return await self._get_list(f"Rail/Metro/StationExit/{METRO_OPERATOR}", params)

    async def metro_first_last_timetable(
        self,
        station_id: str | None = None,
        station_name: str | None = None,
    ) -> list[dict[str, Any]]:
        """
        First/last train times for every direction serving the station.

        No $top: interchange stations (e.g. Da'an) have up to four directions.
        """
        params = {}
        expr = station_filter(station_id, station_name)
        if expr:
            params["$filter"] = expr
        return await self._get_list(f"Rail/Metro/FirstLastTimetable/{METRO_OPERATOR}", params)
