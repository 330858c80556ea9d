"""Retrying HTTP caller for the metadata Web API."""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from erd2dataverse.config.logging import get_logger
from erd2dataverse.config.settings import Settings, get_settings
from erd2dataverse.errors import PermanentRemoteError, RemoteError, TransientRemoteError

from .auth import CredentialProvider
from .retry import RetryPolicy, classify_response

logger = get_logger(__name__)

ODATA_HEADERS = {
    "OData-MaxVersion": "4.0",
    "OData-Version": "4.0",
    "Accept": "application/json",
    "Content-Type": "application/json; charset=utf-8",
}


class CallStats:
    """Attempt and transient-failure counters shared by the calls made for one plan object."""

    def __init__(self):
        self.attempts = 0
        self.transient_errors = 0


def decode_json(response: httpx.Response, url: str = "") -> Dict[str, Any]:
    """
    Body of a successful response as JSON.

    Raises:
        PermanentRemoteError: The body is not a JSON document (e.g. a proxy error page)
    """
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError as e:
        snippet = response.text[:80].strip()
        raise PermanentRemoteError(
            response.status_code, f"response is not valid JSON ({e}): {snippet!r}", url
        ) from e


class DataverseHttp:
    """
    Sends requests with bearer auth, retrying transient failures.

    Every call fetches the token from the credential provider, so a stale
    token is refreshed transparently. A 401 forces one refresh and a repeat of
    the call; a second 401 is treated as a permanent failure.

    Usage:
        http = DataverseHttp(base_url, credentials)
        body = await http.get_json("EntityDefinitions(LogicalName='mmd_customer')")
        await http.close()
    """

    def __init__(
        self,
        base_url: str,
        credentials: CredentialProvider,
        retry: Optional[RetryPolicy] = None,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize the caller.

        Args:
            base_url: Web API root, e.g. https://org.crm.dynamics.com/api/data/v9.2
            credentials: Shared credential provider
            retry: Backoff policy (defaults from settings)
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
            sleep: Coroutine used to wait between attempts
        """
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self.retry = retry or RetryPolicy()
        self.timeout = timeout
        self._transport = transport
        self._sleep = sleep
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(
        cls,
        credentials: CredentialProvider,
        settings: Optional[Settings] = None,
        **kwargs,
    ) -> "DataverseHttp":
        settings = settings or get_settings()
        if not settings.api_base_url:
            raise ValueError("DATAVERSE_URL is not configured")
        return cls(
            settings.api_base_url,
            credentials,
            retry=RetryPolicy.from_settings(settings),
            timeout=settings.request_timeout,
            **kwargs,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
        stats: Optional[CallStats] = None,
    ) -> httpx.Response:
        """
        Send one logical request, retrying transient failures.

        Args:
            method: HTTP method
            path: Path relative to the Web API root
            json: JSON body
            params: Query parameters
            headers: Extra headers
            stats: Attempt counter to update

        Returns:
            The successful response

        Raises:
            TransientRemoteError: Retries exhausted
            PermanentRemoteError: Non-retryable failure
            AuthError: No token could be obtained
        """
        client = await self._get_client()
        url = self.url(path)
        refreshed = False
        force_refresh = False
        attempt = 0

        while True:
            attempt += 1
            if stats is not None:
                stats.attempts += 1
            token = await self.credentials.get_token(force_refresh=force_refresh)
            force_refresh = False
            request_headers = dict(ODATA_HEADERS)
            request_headers["Authorization"] = f"Bearer {token}"
            if headers:
                request_headers.update(headers)

            try:
                response = await client.request(method, url, json=json, params=params, headers=request_headers)
            except httpx.TransportError as e:
                error: RemoteError = TransientRemoteError(0, f"{type(e).__name__}: {e}", url)
            else:
                if response.status_code < 400:
                    if attempt > 1:
                        logger.info(f"{method} {path} succeeded after {attempt} attempts")
                    return response
                if response.status_code == 401 and not refreshed:
                    refreshed = True
                    force_refresh = True
                    logger.warning(f"{method} {path} was unauthorized; refreshing token and retrying")
                    continue
                error = classify_response(response, url)

            if isinstance(error, TransientRemoteError) and stats is not None:
                stats.transient_errors += 1
            if isinstance(error, PermanentRemoteError):
                raise error
            if attempt >= self.retry.max_attempts:
                logger.error(f"{method} {path} failed after {attempt} attempts: {error}")
                raise error

            delay = self.retry.delay(attempt, error.retry_after)
            logger.warning(
                f"Transient error on attempt {attempt}/{self.retry.max_attempts} for {method} {path}: "
                f"{error}. Retrying in {delay:.1f} seconds..."
            )
            await self._sleep(delay)

    async def get_json(
        self,
        path: str,
        params: Optional[Dict[str, str]] = None,
        not_found_ok: bool = False,
        stats: Optional[CallStats] = None,
    ) -> Optional[Dict[str, Any]]:
        """GET a JSON document; a 404 yields None when ``not_found_ok``."""
        try:
            response = await self.request("GET", path, params=params, stats=stats)
        except PermanentRemoteError as e:
            if not_found_ok and e.status_code == 404:
                return None
            raise
        return decode_json(response, self.url(path))

    async def post(
        self,
        path: str,
        body: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
        stats: Optional[CallStats] = None,
    ) -> httpx.Response:
        return await self.request("POST", path, json=body, headers=headers, stats=stats)
