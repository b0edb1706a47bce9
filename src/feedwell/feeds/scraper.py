# ABOUTME: Three-stage scrapers (prepare, extract, postprocess) turning documents into typed feeds.
# ABOUTME: RuleScraper runs a FeedRules table; DefaultScraper sniffs the root for RSS vs Atom first.

import contextlib
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime, parsedate_tz
from enum import Enum
from urllib.parse import urljoin, urlsplit

import httpx
import structlog
from dateutil import parser as date_parser
from pydantic import HttpUrl, TypeAdapter, ValidationError

from feedwell.errors import InvalidField, UnsupportedFeedType
from feedwell.feeds.document import Document, DocumentKind
from feedwell.feeds.rules import ATOM_RULES, RSS_RULES, FeedRules
from feedwell.models import (
    ExtractedEntry,
    ExtractedFeed,
    ProcessedEntry,
    ProcessedFeed,
)

log = structlog.get_logger()

ACCEPT = (
    "application/rss+xml, application/atom+xml, application/xml;q=0.9, "
    "text/xml;q=0.9, text/html;q=0.8, */*;q=0.5"
)

_http_url = TypeAdapter(HttpUrl)


class Scraper(ABC):
    """Turns a URL into a validated feed in three ordered stages.

    ``prepare`` builds the outbound request, ``extract`` pulls raw strings out of
    the parsed document, ``postprocess`` validates and types them. Callers run
    the stages in that order and only hand a fully extracted record to
    ``postprocess``.
    """

    def prepare(self, url: str) -> httpx.Request:
        """Build the request used to fetch ``url``."""
        return httpx.Request("GET", url, headers={"Accept": ACCEPT})

    @abstractmethod
    def extract(self, url: str, document: Document) -> ExtractedFeed:
        """Pull string fields out of a parsed document."""

    def postprocess(self, url: str, extracted: ExtractedFeed) -> ProcessedFeed:
        """Validate and type an extracted feed."""
        return postprocess_feed(url, extracted)


class RuleScraper(Scraper):
    """Scraper driven by a single FeedRules table."""

    def __init__(self, rules: FeedRules) -> None:
        self.rules = rules

    def extract(self, url: str, document: Document) -> ExtractedFeed:
        return extract_with_rules(self.rules, url, document)


class RssScraper(RuleScraper):
    """Scraper for RSS 2.0 (and RSS 1.0/RDF) documents."""

    def __init__(self) -> None:
        super().__init__(RSS_RULES)


class AtomScraper(RuleScraper):
    """Scraper for Atom 1.0 documents."""

    def __init__(self) -> None:
        super().__init__(ATOM_RULES)


class FeedFormat(str, Enum):
    """Feed dialects recognized by root sniffing."""

    RSS = "rss"
    ATOM = "atom"


def detect_format(document: Document) -> FeedFormat:
    """Identify the feed dialect from the document root.

    Raises:
        UnsupportedFeedType: If the root is neither ``<rss>``/``<rdf:RDF>`` nor ``<feed>``.
    """
    if document.kind is DocumentKind.XML:
        name = document.root_name.lower()
        if name in ("rss", "rdf"):
            return FeedFormat.RSS
        if name == "feed":
            return FeedFormat.ATOM
    raise UnsupportedFeedType(document.url, document.root_name)


class DefaultScraper(Scraper):
    """Sniffs the document root, then extracts with the matching rule table."""

    def __init__(
        self, rss_rules: FeedRules = RSS_RULES, atom_rules: FeedRules = ATOM_RULES
    ) -> None:
        self.rules = {FeedFormat.RSS: rss_rules, FeedFormat.ATOM: atom_rules}

    def extract(self, url: str, document: Document) -> ExtractedFeed:
        feed_format = detect_format(document)
        log.debug("feed_format_detected", url=url, format=feed_format.value)
        return extract_with_rules(self.rules[feed_format], url, document)


def extract_with_rules(rules: FeedRules, url: str, document: Document) -> ExtractedFeed:
    """Run a rule table against a document.

    Feed fields are queried from the root and entry fields from each entry node.
    The requested URL stands in for a missing feed link.
    """
    entries = [
        ExtractedEntry(
            link=document.query_text(rules.entry_link, node),
            title=document.query_text(rules.entry_title, node),
            published=document.query_text(rules.entry_published, node),
            description=document.query_text(rules.entry_description, node),
            author=document.query_text(rules.entry_author, node),
            thumbnail=document.query_text(rules.entry_thumbnail, node),
        )
        for node in document.query_nodes(rules.entries)
    ]

    link = document.query_text(rules.feed_link) if rules.feed_link else None

    return ExtractedFeed(
        link=link.strip() if link and link.strip() else url,
        title=document.query_text(rules.feed_title),
        entries=entries,
    )


def postprocess_feed(url: str, extracted: ExtractedFeed) -> ProcessedFeed:
    """Convert an extracted feed into typed values.

    Raises:
        InvalidField: If the feed link or any entry link is not a valid http(s) URL.
    """
    link = parse_url("feed link", extracted.link or url, base=url)
    base = str(link)

    entries: list[ProcessedEntry] = []
    seen: set[str] = set()
    for entry in extracted.entries:
        processed = postprocess_entry(entry, base=base)
        key = str(processed.link)
        if key in seen:
            continue
        seen.add(key)
        entries.append(processed)

    return ProcessedFeed(
        link=link,
        title=clean_text(extracted.title) or link.host or base,
        entries=entries,
    )


def postprocess_entry(entry: ExtractedEntry, base: str | None = None) -> ProcessedEntry:
    """Convert an extracted entry into typed values.

    Raises:
        InvalidField: If the entry link is missing or invalid.
    """
    thumbnail = None
    if entry.thumbnail:
        with contextlib.suppress(InvalidField):
            thumbnail = parse_url("entry thumbnail", entry.thumbnail, base=base)

    return ProcessedEntry(
        link=parse_url("entry link", entry.link, base=base),
        title=clean_text(entry.title) or "",
        published=parse_published(entry.published),
        description=clean_text(entry.description),
        author=clean_text(entry.author),
        thumbnail=thumbnail,
    )


def parse_url(field: str, value: str | None, base: str | None = None) -> HttpUrl:
    """Validate an http(s) URL, resolving it against ``base`` when relative.

    Raises:
        InvalidField: If the value is missing or not a valid http(s) URL.
    """
    if value is None or not value.strip():
        raise InvalidField(field, value)
    candidate = value.strip()
    if base and not urlsplit(candidate).scheme:
        candidate = urljoin(base, candidate)
    try:
        return _http_url.validate_python(candidate)
    except ValidationError as e:
        raise InvalidField(field, value) from e


def parse_published(value: str | None) -> datetime | None:
    """Parse a feed date into an aware UTC datetime.

    Tries RFC 3339, then RFC 2822 (with or without the weekday comma), then a
    lenient parser. Unparsable dates return None.
    """
    if value is None or not value.strip():
        return None
    text = value.strip()

    parsed: datetime | None = None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        parsed = _parse_rfc2822(text)
    if parsed is None:
        try:
            parsed = date_parser.parse(text)
        except (ValueError, OverflowError):
            log.debug("published_unparsable", value=text)
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _parse_rfc2822(text: str) -> datetime | None:
    # The email parser reads any unknown trailing token (e.g. "PM") as a missing
    # zone; only accept dates whose zone it actually recognized.
    try:
        parts = parsedate_tz(text)
        if parts is None or parts[9] is None:
            return None
        return parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError, OverflowError):
        return None


def clean_text(value: str | None) -> str | None:
    """Trim a text field; blank becomes None."""
    if value is None:
        return None
    return value.strip() or None
