"""
TDX (Transport Data eXchange) integration.

Token exchange with expiry-derived caching, plus a thin client for the Bus and
Taipei Metro endpoints used by the transit proxy routes.
"""

from services.api.tdx.auth import (
    TDXAuthError,
    TDXCredentialsMissing,
    TDXError,
    TDXTokenProvider,
)
from services.api.tdx.client import TDXClient, TDXRateLimited, TDXUpstreamError

__all__ = [
    "TDXAuthError",
    "TDXClient",
    "TDXCredentialsMissing",
    "TDXError",
    "TDXRateLimited",
    "TDXTokenProvider",
    "TDXUpstreamError",
]
