# ABOUTME: HTTP fetcher returning raw response bytes and headers for a prepared request.
# ABOUTME: Wraps httpx.AsyncClient; every transport or status failure becomes FetchFailed.

from dataclasses import dataclass, field

import httpx
import structlog

from feedwell.config import Settings, get_settings
from feedwell.errors import FetchFailed

log = structlog.get_logger()


@dataclass(frozen=True)
class FetchResponse:
    """Raw result of a successful fetch."""

    url: str
    status: int
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: bytes = b""

    @property
    def content_type(self) -> str | None:
        """Declared media type without parameters, lowercased."""
        value = self.headers.get("content-type")
        if not value:
            return None
        return value.split(";", 1)[0].strip().lower() or None


class HttpFetcher:
    """Fetches documents over HTTP. No retries, no caching."""

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-initialized HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.settings.feed_timeout,
                headers={"User-Agent": self.settings.feed_user_agent},
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpFetcher":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def fetch(self, request: httpx.Request) -> FetchResponse:
        """Send a prepared request and return the response body.

        Args:
            request: Request built by a scraper's prepare stage.

        Returns:
            FetchResponse with final URL (after redirects), status, headers and body.

        Raises:
            FetchFailed: On network errors, timeouts, or a 4xx/5xx status.
        """
        url = str(request.url)
        # Requests built outside the client miss its defaults
        request.headers.setdefault("User-Agent", self.settings.feed_user_agent)
        request.extensions.setdefault(
            "timeout", httpx.Timeout(self.settings.feed_timeout).as_dict()
        )

        log.debug("fetching_url", url=url)
        try:
            response = await self.client.send(request)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            log.warning("fetch_bad_status", url=url, status=status)
            raise FetchFailed(url, f"HTTP {status}", status=status) from e
        except httpx.HTTPError as e:
            log.warning("fetch_error", url=url, error=str(e) or type(e).__name__)
            raise FetchFailed(url, str(e) or type(e).__name__) from e

        return FetchResponse(
            url=str(response.url),
            status=response.status_code,
            headers=response.headers,
            body=response.content,
        )

    async def fetch_url(self, url: str) -> FetchResponse:
        """Fetch a URL with a plain GET."""
        return await self.fetch(httpx.Request("GET", url))
