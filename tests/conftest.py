# ABOUTME: Pytest fixtures and configuration for feedwell tests.
# ABOUTME: Provides settings, sample feed documents, a mock HTTP server, and a SQLite-backed session scope.

from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncEngine

from feedwell.config import Settings
from feedwell.db.session import build_engine, build_session_factory, init_db, session_scope
from feedwell.feeds.fetcher import FetchResponse, HttpFetcher
from feedwell.feeds.registry import ScraperRegistry
from feedwell.services.feed_service import FeedService

RSS_FEED = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:dc="http://purl.org/dc/elements/1.1/">
  <channel>
    <title>Feed A</title>
    <link>https://a/</link>
    <description>Sample feed</description>
    <item>
      <title>A</title>
      <link>https://a/1</link>
      <pubDate>Wed, 01 Jan 2020 00:00:00 GMT</pubDate>
      <description>First entry</description>
      <dc:creator>Alice</dc:creator>
    </item>
  </channel>
</rss>
"""

ATOM_FEED = b"""<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Feed B</title>
  <link rel="alternate" href="https://b/"/>
  <link rel="self" href="https://b/atom.xml"/>
  <entry>
    <title>B</title>
    <link rel="alternate" href="https://b/1"/>
    <published>2021-06-01T12:00:00Z</published>
    <summary>Atom entry</summary>
    <author><name>Bob</name></author>
  </entry>
</feed>
"""

HTML_PAGE = b"""<!DOCTYPE html>
<html>
  <head>
    <title>Blog</title>
    <link rel="alternate" type="application/rss+xml" title="Blog RSS" href="/feed.xml">
    <link rel="alternate" type="application/atom+xml" href="https://blog.example.com/atom.xml">
    <link rel="stylesheet" href="/style.css">
  </head>
  <body><p>Hello</p></body>
</html>
"""

OPML_DOCUMENT = b"""<?xml version="1.0" encoding="UTF-8"?>
<opml version="2.0">
  <head><title>Subscriptions</title></head>
  <body>
    <outline text="News">
      <outline text="Feed A" type="rss" xmlUrl="https://feeds.example.com/a.xml"/>
      <outline text="Broken" type="rss" xmlUrl="https://feeds.example.com/broken.xml"/>
    </outline>
    <outline text="Feed B" type="rss" xmlUrl="https://feeds.example.com/b.xml"
             htmlUrl="https://b/"/>
  </body>
</opml>
"""


def rss_document(count: int, base: str = "https://a") -> bytes:
    """Build an RSS document with ``count`` entries."""
    items = "".join(
        f"<item><title>Entry {i}</title><link>{base}/{i}</link>"
        f"<pubDate>Wed, {i + 1:02d} Jan 2020 00:00:00 GMT</pubDate></item>"
        for i in range(count)
    )
    return (
        f'<?xml version="1.0"?><rss version="2.0"><channel><title>Feed</title>'
        f"<link>{base}/</link>{items}</channel></rss>"
    ).encode()


def make_response(
    body: bytes, content_type: str | None = "application/rss+xml", url: str = "https://a/feed"
) -> FetchResponse:
    """Build a FetchResponse as the fetcher would return it."""
    headers = httpx.Headers({"content-type": content_type} if content_type else {})
    return FetchResponse(url=url, status=200, headers=headers, body=body)


class FeedServer:
    """In-memory HTTP server for httpx.MockTransport."""

    def __init__(self) -> None:
        self.routes: dict[str, tuple[int, str | None, bytes]] = {}
        self.requests: list[httpx.Request] = []

    def add(
        self,
        url: str,
        body: bytes,
        content_type: str | None = "application/rss+xml",
        status: int = 200,
    ) -> None:
        self.routes[url] = (status, content_type, body)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(str(request.url))
        if route is None:
            return httpx.Response(404, content=b"not found")
        status, content_type, body = route
        headers = {"content-type": content_type} if content_type else {}
        return httpx.Response(status, headers=headers, content=body)


@pytest.fixture
def mock_settings() -> Settings:
    """Create mock settings for testing."""
    return Settings(
        db_url="sqlite+aiosqlite:///:memory:",
        feed_timeout=5,
        feed_user_agent="feedwell-test/1.0",
        log_level="DEBUG",
    )


@pytest.fixture
def feed_server() -> FeedServer:
    """Mock HTTP server; tests register documents on it by URL."""
    return FeedServer()


@pytest.fixture
async def fetcher(
    mock_settings: Settings, feed_server: FeedServer
) -> AsyncGenerator[HttpFetcher]:
    """HttpFetcher wired to the mock server."""
    async with HttpFetcher(
        mock_settings, transport=httpx.MockTransport(feed_server.handler)
    ) as fetcher:
        yield fetcher


@pytest.fixture
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine]:
    """File-backed SQLite engine with all tables created."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'feedwell.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def db_scope(engine: AsyncEngine) -> Callable:
    """Commit/rollback session context manager over the test engine."""
    return session_scope(build_session_factory(engine))


@pytest.fixture
def feed_service(
    db_scope: Callable, fetcher: HttpFetcher, mock_settings: Settings
) -> FeedService:
    """FeedService over the test database and mock server, with a private registry."""
    return FeedService(
        session_scope=db_scope,
        fetcher=fetcher,
        registry=ScraperRegistry(),
        settings=mock_settings,
    )


@pytest.fixture
def rss_feed() -> bytes:
    """RSS 2.0 document with a single entry."""
    return RSS_FEED


@pytest.fixture
def atom_feed() -> bytes:
    """Atom 1.0 document with a single entry."""
    return ATOM_FEED


@pytest.fixture
def html_page() -> bytes:
    """HTML page advertising an RSS and an Atom feed."""
    return HTML_PAGE


@pytest.fixture
def opml_document() -> bytes:
    """OPML with three feeds, one nested in a folder."""
    return OPML_DOCUMENT


@pytest.fixture
def build_rss() -> Callable[..., bytes]:
    """Factory for RSS documents with N entries."""
    return rss_document


@pytest.fixture
def build_response() -> Callable[..., FetchResponse]:
    """Factory for FetchResponse objects."""
    return make_response
