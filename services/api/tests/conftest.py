"""
Shared test fixtures for the NTUGo API test suite.

Provides:
- async FastAPI test client (no external services needed)
- in-memory stand-ins for MongoDB collections, Redis, TDX and the cache services
- bearer-token helpers and factory functions for users, stations and stops
- a manual clock for TTL-driven code
"""

import os
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from bson import ObjectId
from httpx import ASGITransport, AsyncClient

# Ensure test env vars before any app imports
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("MONGODB_URI", "")
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("SENTRY_DSN", "")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-0123456789abcdef0123")
os.environ.setdefault("TDX_CLIENT_ID", "test-tdx-id")
os.environ.setdefault("TDX_CLIENT_SECRET", "test-tdx-secret")
os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key")
os.environ.setdefault("RESEND_API_KEY", "re_test_key")


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

class ManualClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ManualDateTimeClock:
    """Same as ManualClock, for code that works in aware datetimes."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 11, 3, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def dt_clock():
    return ManualDateTimeClock()


# ---------------------------------------------------------------------------
# MongoDB stand-in
# ---------------------------------------------------------------------------

def make_collection() -> MagicMock:
    """A collection whose async methods are AsyncMocks; find() yields an empty cursor."""
    col = MagicMock()
    for name in (
        "find_one",
        "find_one_and_update",
        "insert_one",
        "update_one",
        "delete_one",
        "delete_many",
        "count_documents",
    ):
        setattr(col, name, AsyncMock(return_value=None))
    col.find = MagicMock(return_value=make_cursor([]))
    col.insert_one.return_value = MagicMock(inserted_id=ObjectId())
    col.update_one.return_value = MagicMock(matched_count=1, modified_count=1)
    col.delete_many.return_value = MagicMock(deleted_count=0)
    col.count_documents.return_value = 0
    return col


def make_cursor(docs: list[dict[str, Any]]) -> MagicMock:
    cursor = MagicMock()
    cursor.to_list = AsyncMock(return_value=docs)
    return cursor


class MockDatabase:
    """db["name"] returns the same mock collection for the life of the test."""

    def __init__(self) -> None:
        self.collections: dict[str, MagicMock] = defaultdict(make_collection)
        self.name = "ntugo_test"

    def __getitem__(self, name: str) -> MagicMock:
        return self.collections[name]


@pytest.fixture
def mock_mongo_db():
    return MockDatabase()


@pytest.fixture
def mock_mongo_client():
    client = MagicMock()
    client.admin.command = AsyncMock(return_value={"ok": 1})
    return client


# ---------------------------------------------------------------------------
# Redis, TDX and cache services
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_redis():
    """In-memory mock Redis client for rate limiter and send-limit tests."""
    redis = AsyncMock()
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[None, 0, None, None])
    redis.pipeline = MagicMock(return_value=pipe)
    redis.ping = AsyncMock()
    redis.incr = AsyncMock(return_value=1)
    redis.expire = AsyncMock(return_value=True)
    return redis


@pytest.fixture
def mock_tdx_client():
    tdx = MagicMock()
    tdx.configured = True
    tdx.bus_estimated_arrivals = AsyncMock(return_value=[])
    tdx.bus_stops_nearby = AsyncMock(return_value=[])
    tdx.bus_news = AsyncMock(return_value=[])
    tdx.metro_station_exits = AsyncMock(return_value=[])
    tdx.metro_first_last_timetable = AsyncMock(return_value=[])
    return tdx


@pytest.fixture
def mock_youbike_service():
    from services.api.youbike import YouBikeService

    service = MagicMock()
    service.get_stations = AsyncMock(return_value=[])
    service.find_station_by_name = YouBikeService.find_station_by_name
    service.find_nearest_station = YouBikeService.find_nearest_station
    return service


@pytest.fixture
def mock_bus_service():
    from services.api.transit import BusService

    service = MagicMock()
    service.get_stops_near_ntu = AsyncMock(return_value=[])
    service.get_arrivals = AsyncMock(return_value=[])
    service.find_stops_near = BusService.find_stops_near
    return service


# ---------------------------------------------------------------------------
# App + client
# ---------------------------------------------------------------------------

@pytest.fixture
async def app(
    mock_redis,
    mock_mongo_db,
    mock_mongo_client,
    mock_tdx_client,
    mock_youbike_service,
    mock_bus_service,
):
    """The FastAPI app with every lifespan collaborator replaced by a mock."""
    from services.api.config import settings
    from services.api.main import app as _app

    _app.state.settings = settings
    _app.state.redis = mock_redis
    _app.state.mongo_client = mock_mongo_client
    _app.state.mongo_db = mock_mongo_db
    _app.state.tdx_client = mock_tdx_client
    _app.state.youbike_service = mock_youbike_service
    _app.state.bus_service = mock_bus_service
    return _app


@pytest.fixture
async def client(app):
    """Async HTTP client bound to the test app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Auth helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def user_id() -> str:
    return str(ObjectId())


@pytest.fixture
def auth_headers(user_id) -> dict[str, str]:
    from services.api.auth.tokens import issue_token

    return {"Authorization": f"Bearer {issue_token(user_id, 'student@ntu.edu.tw')}"}


# ---------------------------------------------------------------------------
# httpx helpers
# ---------------------------------------------------------------------------

def mock_async_client(get=None, post=None) -> MagicMock:
    """
    Build the object to patch httpx.AsyncClient with. ``get``/``post`` are
    return values (httpx.Response) or side_effect callables/exceptions.
    """
    inner = AsyncMock()
    for name, value in (("get", get), ("post", post)):
        if value is None:
            continue
        if isinstance(value, httpx.Response):
            setattr(inner, name, AsyncMock(return_value=value))
        else:
            setattr(inner, name, AsyncMock(side_effect=value))

    cls = MagicMock()
    cls.return_value.__aenter__ = AsyncMock(return_value=inner)
    cls.return_value.__aexit__ = AsyncMock(return_value=False)
    cls.inner = inner
    return cls


# ---------------------------------------------------------------------------
# Factory functions
# ---------------------------------------------------------------------------

def make_user(**overrides: Any) -> dict:
    from services.api.auth.passwords import hash_password

    base = {
        "_id": ObjectId(),
        "email": "student@ntu.edu.tw",
        "name": "Test Student",
        "password": hash_password("old-password", iterations=1000),
        "provider": "local",
        "createdAt": datetime(2025, 9, 1, tzinfo=timezone.utc),
        "updatedAt": datetime(2025, 9, 1, tzinfo=timezone.utc),
    }
    base.update(overrides)
    return base


def make_feed_station(**overrides: Any) -> dict:
    """One record as served by the YouBike 2.0 immediate feed."""
    base = {
        "sno": "500101001",
        "sna": "YouBike2.0_捷運公館站(2號出口)",
        "sarea": "大安區",
        "ar": "羅斯福路四段74號(前)",
        "Quantity": 28,
        "available_rent_bikes": 12,
        "available_return_bikes": 16,
        "latitude": 25.01476,
        "longitude": 121.53438,
        "act": "1",
        "updateTime": "2025-11-03 09:00:15",
    }
    base.update(overrides)
    return base


def make_stop(uid: str = "TPE15580", lat: float = 25.0173, lon: float = 121.5398, **overrides: Any) -> dict:
    base = {
        "StopUID": uid,
        "StopID": uid[3:],
        "StopName": {"Zh_tw": "臺灣大學", "En": "National Taiwan University"},
        "StopPosition": {"PositionLat": lat, "PositionLon": lon},
        "StopAddress": "羅斯福路四段1號",
        "City": "Taipei",
    }
    base.update(overrides)
    return base


def make_arrival(route_uid: str = "TPE10132", direction: int = 0, estimate: int | None = 180, status: int = 0) -> dict:
    record = {
        "StopUID": "TPE15580",
        "RouteUID": route_uid,
        "RouteName": {"Zh_tw": "0南", "En": "0 South"},
        "Direction": direction,
        "StopStatus": status,
    }
    if estimate is not None:
        record["EstimateTime"] = estimate
    return record
