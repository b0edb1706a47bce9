# ABOUTME: Pydantic models for scraped feed data and service-level views.
# ABOUTME: Defines extracted (string) and processed (typed) feeds and bookmarks, plus service views.

from datetime import datetime

from pydantic import BaseModel, HttpUrl


class ExtractedEntry(BaseModel):
    """Entry fields as raw strings, straight out of the document."""

    link: str | None = None
    title: str | None = None
    published: str | None = None
    description: str | None = None
    author: str | None = None
    thumbnail: str | None = None


class ExtractedFeed(BaseModel):
    """Feed fields as raw strings, straight out of the document."""

    link: str | None = None
    title: str | None = None
    entries: list[ExtractedEntry] = []


class ProcessedEntry(BaseModel):
    """Validated, typed entry ready for persistence."""

    link: HttpUrl
    title: str
    published: datetime | None = None
    description: str | None = None
    author: str | None = None
    thumbnail: HttpUrl | None = None


class ProcessedFeed(BaseModel):
    """Validated, typed feed ready for persistence."""

    link: HttpUrl
    title: str
    entries: list[ProcessedEntry] = []


class ExtractedBookmark(BaseModel):
    """Bookmark fields as raw strings, gathered from a page's metadata."""

    title: str | None = None
    thumbnail: str | None = None
    published: str | None = None
    author: str | None = None


class ProcessedBookmark(BaseModel):
    """Validated, typed metadata for a bookmarked page."""

    link: HttpUrl
    title: str
    thumbnail: HttpUrl | None = None
    published: datetime | None = None
    author: str | None = None


class FeedView(BaseModel):
    """A profile's subscription joined with the canonical feed."""

    id: int
    feed_id: int
    link: str
    title: str
    original_title: str
    url: str | None = None
    custom_title: str | None = None
    created_at: datetime
    updated_at: datetime
    unread_count: int = 0


class EntryView(BaseModel):
    """A canonical entry as seen through one profile's subscription."""

    id: int
    entry_id: int
    profile_feed_id: int
    link: str
    title: str
    published_at: datetime | None = None
    description: str | None = None
    author: str | None = None
    thumbnail_url: str | None = None
    has_read: bool = False


class DetectedFeed(BaseModel):
    """A feed advertised by an HTML page through <link rel="alternate">."""

    url: str
    title: str | None = None


class DetectResult(BaseModel):
    """Outcome of feed detection on a URL: either a feed itself, or the feeds a page links to."""

    feed: ProcessedFeed | None = None
    detected: list[DetectedFeed] = []


class ImportFailure(BaseModel):
    """One URL that could not be ingested during a batch, with the reason."""

    url: str
    error: str


class ImportResult(BaseModel):
    """Outcome of a batch OPML import."""

    subscribed: list[FeedView] = []
    failed: list[ImportFailure] = []


class RefreshResult(BaseModel):
    """Outcome of refreshing every known feed."""

    refreshed: int = 0
    failed: list[ImportFailure] = []
