from __future__ import annotations
"""
Blendoracle — Publish Token Service
====================================
Bearer tokens for the authoring store and admin API.

Priority:
  1. Cached service-account token, while younger than TOKEN_MAX_AGE_HOURS
  2. Fresh service-account token (client id + secret + service token
     exchanged at the IMS token endpoint), then cached
  3. Legacy static DA_TOKEN

Refresh is not locked. Two callers that both see a stale token will both
exchange credentials; the last one to finish wins the cache, and either
token is valid.
"""

import logging
import time
from typing import Callable

import httpx

from blendoracle.config import (
    DA_CLIENT_ID, DA_CLIENT_SECRET, DA_SERVICE_TOKEN, DA_TOKEN,
    HTTP_TIMEOUT_SECONDS, IMS_TOKEN_ENDPOINT, TOKEN_MAX_AGE_HOURS,
)

logger = logging.getLogger(__name__)


class PublishError(RuntimeError):
    """A publish step failed in a way the pipeline cannot continue past."""


class AuthenticationNotConfigured(PublishError):
    def __init__(self):
        super().__init__(
            "Document authoring authentication not configured. Set DA_CLIENT_ID, "
            "DA_CLIENT_SECRET and DA_SERVICE_TOKEN, or provide DA_TOKEN."
        )


class TokenService:
    def __init__(
        self,
        client_id: str = DA_CLIENT_ID,
        client_secret: str = DA_CLIENT_SECRET,
        service_token: str = DA_SERVICE_TOKEN,
        legacy_token: str = DA_TOKEN,
        token_endpoint: str = IMS_TOKEN_ENDPOINT,
        max_age_hours: float = TOKEN_MAX_AGE_HOURS,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.service_token = service_token
        self.legacy_token = legacy_token
        self.token_endpoint = token_endpoint
        self.max_age_seconds = max_age_hours * 3600
        self._http = http_client
        self._clock = clock
        self._token: str | None = None
        self._obtained_at: float = 0.0
        self.exchanges = 0

    @property
    def has_service_account(self) -> bool:
        return bool(self.client_id and self.client_secret and self.service_token)

    @property
    def cached_token(self) -> str | None:
        if self._token and self._clock() - self._obtained_at < self.max_age_seconds:
            return self._token
        return None

    def invalidate(self):
        if self._token:
            logger.info("[token] clearing cached token")
        self._token = None
        self._obtained_at = 0.0

    async def get_token(self) -> str:
        cached = self.cached_token
        if cached:
            return cached
        if self._token:
            logger.info("[token] cached token expired, refreshing")
            self.invalidate()

        if self.has_service_account:
            token = await self._exchange()
            self._token = token
            self._obtained_at = self._clock()
            return token

        if self.legacy_token:
            logger.info("[token] using legacy DA_TOKEN")
            return self.legacy_token

        raise AuthenticationNotConfigured()

    async def _exchange(self) -> str:
        logger.info("[token] exchanging service credentials for an access token")
        form = {
            "grant_type": "authorization_code",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": self.service_token,
        }
        try:
            if self._http is not None:
                response = await self._http.post(self.token_endpoint, data=form)
            else:
                async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS) as client:
                    response = await client.post(self.token_endpoint, data=form)
        except httpx.HTTPError as e:
            raise PublishError(f"Token exchange failed: {e}") from e

        if response.status_code >= 400:
            raise PublishError(f"Token exchange failed: {response.status_code} - {response.text[:200]}")
        try:
            token = response.json().get("access_token")
        except ValueError:
            token = None
        if not token:
            raise PublishError("No access token received from token endpoint")

        self.exchanges += 1
        logger.info(f"[token] obtained access token (exchange #{self.exchanges})")
        return token


async def authorized_request(tokens: TokenService, client: httpx.AsyncClient, method: str,
                             url: str, **kwargs) -> httpx.Response:
    """Send an authenticated request; on 401, invalidate the token and retry exactly once.

    A second 401 raises PublishError. Other statuses are returned to the caller.
    """
    base_headers = dict(kwargs.pop("headers", None) or {})
    for attempt in (1, 2):
        token = await tokens.get_token()
        headers = {**base_headers, "Authorization": f"Bearer {token}"}
        response = await client.request(method, url, headers=headers, **kwargs)
        if response.status_code != 401:
            return response
        if attempt == 1:
            logger.info(f"[token] 401 from {method} {url}, refreshing token and retrying")
            tokens.invalidate()
    raise PublishError(f"Unauthorized after token refresh: {method} {url}")


_default_service: TokenService | None = None


def get_token_service() -> TokenService:
    """Process-wide token service."""
    global _default_service
    if _default_service is None:
        _default_service = TokenService()
    return _default_service
