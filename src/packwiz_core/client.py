"""Shared async HTTP plumbing for the source clients."""

import logging
from typing import Any

import httpx

from .config import SourceSettings
from .exceptions import ExternalSourceError
from .exceptions import PackNotFoundError

logger = logging.getLogger(__name__)


class SourceClient:
    """Base for registry clients: owns (or borrows) an httpx.AsyncClient.

    Pass `http` to share one AsyncClient between sources, or to inject a mock
    transport in tests. A client created here is closed by close().
    """

    def __init__(
        self,
        base_url: str,
        settings: SourceSettings | None = None,
        http: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.settings = settings or SourceSettings()
        self._client = http
        self._owns_client = http is None

    def _headers(self) -> dict[str, str]:
        return {"User-Agent": self.settings.user_agent, "Accept": "application/json"}

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.timeout),
                transport=httpx.AsyncHTTPTransport(retries=self.settings.retries),
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request; transport failures and error statuses become ExternalSourceError.

        Raises:
            PackNotFoundError: On 404
            ExternalSourceError: On any other failure
        """
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        headers = {**self._headers(), **kwargs.pop("headers", {})}
        client = await self._get_client()
        try:
            response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise ExternalSourceError(f"Request to {url} failed: {e}", context={"url": url}) from e

        if response.status_code == 404:
            raise PackNotFoundError(f"Not found: {url}", context={"url": url})
        if response.status_code >= 400:
            raise ExternalSourceError(
                f"Request to {url} failed with status {response.status_code}",
                context={"url": url, "status": response.status_code},
            )
        logger.debug(f"{method} {url} -> {response.status_code}")
        return response

    async def _request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._request(method, path, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise ExternalSourceError(f"Invalid JSON from {response.url}", context={"url": str(response.url)}) from e


class HttpFetcher(SourceClient):
    """Downloads artifacts by absolute URL (implements FileFetcherProtocol)."""

    def __init__(self, settings: SourceSettings | None = None, http: httpx.AsyncClient | None = None):
        super().__init__("", settings, http)

    def _headers(self) -> dict[str, str]:
        return {"User-Agent": self.settings.user_agent, "Accept": "application/octet-stream"}

    async def fetch(self, url: str) -> bytes:
        response = await self._request("GET", url)
        return response.content
