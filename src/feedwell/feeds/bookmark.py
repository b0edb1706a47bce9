# ABOUTME: Bookmark scrapers: the prepare, extract, postprocess stages applied to any web page.
# ABOUTME: Open Graph wins over basic meta tags; schema.org objects fill whatever is still missing.

import contextlib
from abc import ABC, abstractmethod

import httpx

from feedwell.errors import InvalidField
from feedwell.feeds.document import Document
from feedwell.feeds.metadata import PageMetadata, parse_metadata
from feedwell.feeds.scraper import clean_text, parse_published, parse_url
from feedwell.models import ExtractedBookmark, ProcessedBookmark

PAGE_ACCEPT = "text/html, application/xhtml+xml;q=0.9, */*;q=0.5"


class BookmarkScraper(ABC):
    """Turns a page URL into validated bookmark metadata in three ordered stages.

    Same contract as the feed ``Scraper``: ``prepare`` builds the request,
    ``extract`` gathers raw strings from the parsed page, ``postprocess``
    validates and types them.
    """

    def prepare(self, url: str) -> httpx.Request:
        """Build the request used to fetch ``url``."""
        return httpx.Request("GET", url, headers={"Accept": PAGE_ACCEPT})

    @abstractmethod
    def extract(self, url: str, document: Document) -> ExtractedBookmark:
        """Pull string fields out of a parsed page."""

    def postprocess(self, url: str, extracted: ExtractedBookmark) -> ProcessedBookmark:
        """Validate and type an extracted bookmark."""
        return postprocess_bookmark(url, extracted)


class DefaultBookmarkScraper(BookmarkScraper):
    """Reads bookmark fields from a page's Open Graph, meta and schema.org data."""

    def extract(self, url: str, document: Document) -> ExtractedBookmark:
        return extract_bookmark(parse_metadata(document))


def extract_bookmark(metadata: PageMetadata) -> ExtractedBookmark:
    """Merge page metadata into bookmark fields.

    Basic tags give the title and author, Open Graph overrides the title and
    supplies the image (and the publish time for articles), then each
    schema.org object in order fills fields that are still empty.
    """
    bookmark = ExtractedBookmark(title=metadata.title, author=metadata.author)

    og = metadata.open_graph
    if og is not None:
        if og.title:
            bookmark.title = og.title
        bookmark.thumbnail = og.image
        if (og.type or "").lower() == "article":
            bookmark.published = og.published_time

    for schema in metadata.schema_org:
        if schema.type == "ImageObject":
            bookmark.thumbnail = bookmark.thumbnail or schema.url
        elif schema.type == "Person":
            bookmark.author = bookmark.author or schema.name
        else:
            bookmark.title = bookmark.title or schema.name
            bookmark.thumbnail = bookmark.thumbnail or schema.thumbnail
            bookmark.published = bookmark.published or schema.date_published
            bookmark.author = bookmark.author or schema.author

    return bookmark


def postprocess_bookmark(url: str, extracted: ExtractedBookmark) -> ProcessedBookmark:
    """Convert extracted bookmark fields into typed values.

    Protocol-relative thumbnails are taken as https. Invalid thumbnails and
    unparsable dates are dropped.

    Raises:
        InvalidField: If the page URL is invalid or the page has no title.
    """
    link = parse_url("bookmark link", url)
    title = clean_text(extracted.title)
    if title is None:
        raise InvalidField("bookmark title", extracted.title)

    thumbnail = None
    candidate = clean_text(extracted.thumbnail)
    if candidate:
        if candidate.startswith("//"):
            candidate = f"https:{candidate}"
        with contextlib.suppress(InvalidField):
            thumbnail = parse_url("bookmark thumbnail", candidate, base=str(link))

    return ProcessedBookmark(
        link=link,
        title=title,
        thumbnail=thumbnail,
        published=parse_published(extracted.published),
        author=clean_text(extracted.author),
    )
