"""Health check endpoint."""

import logging

from fastapi import APIRouter, Request

logger = logging.getLogger(__name__)

router = APIRouter()


async def _database_status(request: Request) -> str:
    client = getattr(request.app.state, "mongo_client", None)
    if client is None:
        return "unconfigured"
    try:
        await client.admin.command("ping")
    except Exception as exc:
        logger.warning("MongoDB ping failed: %s", exc)
        return "unavailable"
    return "ok"


@router.get("/health")
async def health_check(request: Request) -> dict:
    return {
        "success": True,
        "data": {
            "status": "healthy",
            "version": request.app.state.settings.app_version,
            "database": await _database_status(request),
        },
        "requestId": request.state.request_id,
    }
