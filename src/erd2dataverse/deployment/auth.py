"""Credential providers with a shared, lazily refreshed token cache."""

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol

import httpx

from erd2dataverse.config.logging import get_logger
from erd2dataverse.config.settings import Settings, get_settings
from erd2dataverse.errors import AuthError

logger = get_logger(__name__)


class CredentialProvider(Protocol):
    """Anything that can hand out a bearer token for the metadata API."""

    async def get_token(self, force_refresh: bool = False) -> str: ...


@dataclass
class AccessToken:
    token: str
    expires_at: float  # epoch seconds


class TokenCache:
    """
    Caches one access token and refreshes it before it expires.

    Only one refresh runs at a time; callers arriving while a refresh is in
    flight wait for it and reuse its token.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[AccessToken]],
        refresh_margin: float = 60.0,
        clock: Callable[[], float] = time.time,
    ):
        self._fetch = fetch
        self.refresh_margin = refresh_margin
        self._clock = clock
        self._token: Optional[AccessToken] = None
        self._lock = asyncio.Lock()
        self.refresh_count = 0

    def _is_fresh(self, token: Optional[AccessToken]) -> bool:
        return token is not None and self._clock() < token.expires_at - self.refresh_margin

    async def get_token(self, force_refresh: bool = False) -> str:
        current = self._token
        if not force_refresh and self._is_fresh(current):
            return current.token
        async with self._lock:
            # Another caller may have refreshed while we waited for the lock
            if self._token is not current and self._is_fresh(self._token):
                return self._token.token
            if not force_refresh and self._is_fresh(self._token):
                return self._token.token
            try:
                self._token = await self._fetch()
            except AuthError:
                raise
            except Exception as e:
                raise AuthError(f"Token acquisition failed: {e}") from e
            self.refresh_count += 1
            logger.info(f"Acquired access token (refresh #{self.refresh_count})")
            return self._token.token


class StaticTokenProvider:
    """Serves a pre-issued bearer token."""

    def __init__(self, token: str, expires_at: Optional[float] = None):
        if not token:
            raise AuthError("No access token supplied")
        self._token = token
        self.expires_at = expires_at

    async def get_token(self, force_refresh: bool = False) -> str:
        if self.expires_at is not None and time.time() >= self.expires_at:
            raise AuthError("Supplied access token has expired and cannot be refreshed")
        return self._token


class ClientCredentialsProvider:
    """
    OAuth2 client-credentials grant against the identity platform.

    Usage:
        provider = ClientCredentialsProvider.from_settings()
        token = await provider.get_token()
    """

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        resource: str,
        authority_host: str = "https://login.microsoftonline.com",
        refresh_margin: float = 60.0,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ):
        required = {
            "tenant_id": tenant_id,
            "client_id": client_id,
            "client_secret": client_secret,
            "resource": resource,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise AuthError(f"Client credentials are incomplete: missing {', '.join(missing)}")
        self.token_url = f"{authority_host.rstrip('/')}/{tenant_id}/oauth2/v2.0/token"
        self.client_id = client_id
        self.client_secret = client_secret
        self.scope = f"{resource.rstrip('/')}/.default"
        self.timeout = timeout
        self._transport = transport
        self._clock = clock
        self._cache = TokenCache(self._request_token, refresh_margin, clock)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ClientCredentialsProvider":
        settings = settings or get_settings()
        return cls(
            tenant_id=settings.tenant_id or "",
            client_id=settings.client_id or "",
            client_secret=settings.client_secret or "",
            resource=settings.dataverse_url or "",
            authority_host=settings.authority_host,
            refresh_margin=settings.token_refresh_margin,
        )

    async def get_token(self, force_refresh: bool = False) -> str:
        return await self._cache.get_token(force_refresh)

    async def _request_token(self) -> AccessToken:
        data = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "scope": self.scope,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.token_url, data=data)
        except httpx.HTTPError as e:
            raise AuthError(f"Token endpoint unreachable: {e}") from e
        if response.status_code != 200:
            try:
                detail = response.json().get("error_description") or response.text
            except ValueError:
                detail = response.text
            raise AuthError(f"Token request rejected ({response.status_code}): {detail}")
        body = response.json()
        token = body.get("access_token")
        if not token:
            raise AuthError("Token response did not contain an access token")
        expires_in = float(body.get("expires_in", 3600))
        return AccessToken(token=token, expires_at=self._clock() + expires_in)
