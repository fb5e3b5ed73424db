"""
CORS for the NTUGo web app.

Origins come from CORS_ORIGINS; localhost entries are dropped in production.
Only the verbs the API serves are allowed, and the request id and Retry-After
headers are exposed to the browser.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from services.api.config import settings

_LOCAL_PREFIXES = ("http://localhost", "http://127.0.0.1")


def allowed_origins(origins: list[str], environment: str) -> list[str]:
    if environment != "production":
        return list(origins)
    return [o for o in origins if not o.startswith(_LOCAL_PREFIXES)]


def setup_cors(app: FastAPI) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins(settings.cors_origins, settings.environment),
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID", "Retry-After"],
        max_age=600,
    )
