# ABOUTME: Bookmark service: fetch a web page and scrape its title, image, date and author.
# ABOUTME: Runs the bookmark scraper stages for a URL; nothing is persisted.

import asyncio

import structlog

from feedwell.config import Settings, get_settings
from feedwell.errors import ScrapeError
from feedwell.feeds.document import DocumentParser
from feedwell.feeds.fetcher import HttpFetcher
from feedwell.feeds.registry import BookmarkScraperRegistry, get_bookmark_registry
from feedwell.models import ProcessedBookmark

logger = structlog.get_logger()


class BookmarkService:
    """Service for scraping bookmark metadata from web pages."""

    def __init__(
        self,
        fetcher: HttpFetcher | None = None,
        parser: DocumentParser | None = None,
        registry: BookmarkScraperRegistry | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._fetcher = fetcher
        self.parser = parser or DocumentParser()
        self.registry = registry or get_bookmark_registry()

    @property
    def fetcher(self) -> HttpFetcher:
        """Lazy-initialized HTTP fetcher."""
        if self._fetcher is None:
            self._fetcher = HttpFetcher(self.settings)
        return self._fetcher

    async def scrape(self, url: str) -> ProcessedBookmark:
        """Fetch a page and return its bookmark metadata.

        Raises:
            ScrapeError: If the page could not be fetched or parsed, or has no title.
        """
        scraper = self.registry.resolve_url(url)
        try:
            request = scraper.prepare(url)
            await asyncio.sleep(0)
            response = await self.fetcher.fetch(request)
            await asyncio.sleep(0)
            document = self.parser.parse(response)
            await asyncio.sleep(0)
            bookmark = scraper.postprocess(url, scraper.extract(url, document))
        except ScrapeError as e:
            logger.warning("bookmark_scrape_failed", url=url, error=str(e))
            raise

        logger.info(
            "bookmark_scraped",
            url=url,
            scraper=type(scraper).__name__,
            has_thumbnail=bookmark.thumbnail is not None,
        )
        return bookmark
