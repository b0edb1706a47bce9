# ABOUTME: Feed processing module for fetching, sniffing, and scraping feeds and web pages.
# ABOUTME: Exports the fetcher, document parser, feed and bookmark scrapers, and scraper registries.

from feedwell.feeds.bookmark import BookmarkScraper, DefaultBookmarkScraper
from feedwell.feeds.document import Document, DocumentKind, DocumentParser
from feedwell.feeds.fetcher import FetchResponse, HttpFetcher
from feedwell.feeds.registry import (
    BookmarkScraperRegistry,
    ScraperRegistry,
    get_bookmark_registry,
    get_registry,
)
from feedwell.feeds.rules import ATOM_RULES, RSS_RULES, FeedRules
from feedwell.feeds.scraper import (
    AtomScraper,
    DefaultScraper,
    RssScraper,
    RuleScraper,
    Scraper,
)

__all__ = [
    "ATOM_RULES",
    "RSS_RULES",
    "AtomScraper",
    "BookmarkScraper",
    "BookmarkScraperRegistry",
    "DefaultBookmarkScraper",
    "DefaultScraper",
    "Document",
    "DocumentKind",
    "DocumentParser",
    "FeedRules",
    "FetchResponse",
    "HttpFetcher",
    "RssScraper",
    "RuleScraper",
    "Scraper",
    "ScraperRegistry",
    "get_bookmark_registry",
    "get_registry",
]
