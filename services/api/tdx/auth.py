"""
TDX access-token provider: OAuth2 client-credentials with token caching.

TDX issues bearer tokens from its Keycloak realm:

  POST {tdx_auth_url}
    grant_type=client_credentials&client_id=...&client_secret=...
  -> {"access_token": "...", "expires_in": 86400, "token_type": "Bearer"}

The token is reused until ``expires_in - margin`` seconds have elapsed, so a
burst of proxy requests performs a single exchange instead of one per call.
The margin keeps a token from expiring mid-request.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

import httpx

logger = logging.getLogger(__name__)

# Used when the provider omits expires_in
_DEFAULT_EXPIRES_IN_S = 3600


class TDXError(Exception):
    """Base class for TDX failures."""


class TDXCredentialsMissing(TDXError):
    """TDX_CLIENT_ID / TDX_CLIENT_SECRET are not configured."""


class TDXAuthError(TDXError):
    """The token endpoint rejected the exchange or returned no token."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TDXTokenProvider:
    """
    Args:
        client_id / client_secret: TDX application credentials.
        auth_url:       Token endpoint.
        timeout_s:      HTTP timeout for the exchange.
        expiry_margin_s: Seconds subtracted from expires_in.
        clock:          Monotonic clock; injectable for tests.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        auth_url: str,
        timeout_s: float = 15.0,
        expiry_margin_s: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._auth_url = auth_url
        self._timeout_s = timeout_s
        self._margin = expiry_margin_s
        self._clock = clock

        self._token: str | None = None
        self._expires_at: float = 0.0

    @property
    def configured(self) -> bool:
        return bool(self._client_id and self._client_secret)

    async def get_access_token(self) -> str:
        """Return a valid bearer token, exchanging credentials when needed."""
        if not self.configured:
            raise TDXCredentialsMissing("TDX API credentials are not configured")

        if self._token is not None and self._clock() < self._expires_at:
            return self._token

        token, expires_in = await self._exchange()
        ttl = max(0, expires_in - self._margin)
        self._token = token
        self._expires_at = self._clock() + ttl
        logger.info("TDX token refreshed: ttl=%ds", ttl)
        return token

    def invalidate(self) -> None:
        """Drop the cached token (e.g. after a 401 from the data API)."""
        self._token = None
        self._expires_at = 0.0

    async def _exchange(self) -> tuple[str, int]:
        try:
            async with httpx.AsyncClient(timeout=self._timeout_s) as client:
                resp = await client.post(
                    self._auth_url,
                    data={
                        "grant_type": "client_credentials",
                        "client_id": self._client_id,
                        "client_secret": self._client_secret,
                    },
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.HTTPError as exc:
            logger.warning("TDX token request failed: %s", exc)
            raise TDXAuthError(f"TDX authentication request failed: {exc}") from exc

        if resp.status_code != 200:
            logger.warning(
                "TDX token endpoint returned %d: %s",
                resp.status_code,
                resp.text[:200],
            )
            raise TDXAuthError(
                f"TDX authentication failed: {resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            raise TDXAuthError("TDX token endpoint returned non-JSON") from exc

        token = payload.get("access_token")
        if not token:
            raise TDXAuthError("TDX token response had no access_token")

        expires_in = payload.get("expires_in", _DEFAULT_EXPIRES_IN_S)
        if not isinstance(expires_in, (int, float)):
            expires_in = _DEFAULT_EXPIRES_IN_S
        return token, int(expires_in)
