# ABOUTME: Process-wide registries mapping source hostnames to specialized scrapers.
# ABOUTME: Unknown hosts resolve to DefaultScraper (feeds) or DefaultBookmarkScraper (pages).

from threading import Lock
from typing import Generic, TypeVar
from urllib.parse import urlsplit

import structlog

from feedwell.feeds.bookmark import BookmarkScraper, DefaultBookmarkScraper
from feedwell.feeds.scraper import DefaultScraper, Scraper

logger = structlog.get_logger()

S = TypeVar("S")

# Module-level singleton state
_registry_instance: "ScraperRegistry | None" = None
_bookmark_registry_instance: "BookmarkScraperRegistry | None" = None
_registry_lock: Lock = Lock()


def _normalize_host(host: str) -> str:
    host = host.strip().lower().rstrip(".")
    return host.removeprefix("www.")


class HostRegistry(Generic[S]):
    """Host to scraper lookup table with a guaranteed default.

    Populated at startup; lookups take no lock. Registration swaps in a new
    mapping under a lock so readers always see a complete table.
    """

    def __init__(self, default: S) -> None:
        self.default = default
        self._scrapers: dict[str, S] = {}
        self._lock = Lock()
        self._log = logger.bind(registry=type(self).__name__)

    def register(self, host: str, scraper: S) -> None:
        """Register a scraper for a hostname (``www.`` and case are ignored)."""
        key = _normalize_host(host)
        with self._lock:
            self._scrapers = {**self._scrapers, key: scraper}
        self._log.debug("scraper_registered", host=key, scraper=type(scraper).__name__)

    def unregister(self, host: str) -> bool:
        """Remove a host-specific scraper.

        Returns:
            True if a scraper was removed, False if the host had none.
        """
        key = _normalize_host(host)
        with self._lock:
            if key not in self._scrapers:
                return False
            self._scrapers = {k: v for k, v in self._scrapers.items() if k != key}
        self._log.debug("scraper_unregistered", host=key)
        return True

    def resolve(self, host: str | None) -> S:
        """Return the scraper for a hostname, or the default scraper."""
        if not host:
            return self.default
        return self._scrapers.get(_normalize_host(host), self.default)

    def resolve_url(self, url: str) -> S:
        """Return the scraper for a URL's hostname."""
        return self.resolve(urlsplit(url).hostname)

    def hosts(self) -> list[str]:
        """Hostnames with a registered scraper."""
        return sorted(self._scrapers)


class ScraperRegistry(HostRegistry[Scraper]):
    """Feed scrapers by host."""

    def __init__(self, default: Scraper | None = None) -> None:
        super().__init__(default or DefaultScraper())


class BookmarkScraperRegistry(HostRegistry[BookmarkScraper]):
    """Bookmark scrapers by host."""

    def __init__(self, default: BookmarkScraper | None = None) -> None:
        super().__init__(default or DefaultBookmarkScraper())


def get_registry() -> ScraperRegistry:
    """Get the process-wide feed scraper registry."""
    global _registry_instance  # noqa: PLW0603
    if _registry_instance is None:
        with _registry_lock:
            if _registry_instance is None:
                _registry_instance = ScraperRegistry()
    return _registry_instance


def get_bookmark_registry() -> BookmarkScraperRegistry:
    """Get the process-wide bookmark scraper registry."""
    global _bookmark_registry_instance  # noqa: PLW0603
    if _bookmark_registry_instance is None:
        with _registry_lock:
            if _bookmark_registry_instance is None:
                _bookmark_registry_instance = BookmarkScraperRegistry()
    return _bookmark_registry_instance


def reset_registry() -> None:
    """Drop both process-wide registries (for testing)."""
    global _registry_instance, _bookmark_registry_instance  # noqa: PLW0603
    with _registry_lock:
        _registry_instance = None
        _bookmark_registry_instance = None
