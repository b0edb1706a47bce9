# ABOUTME: Exception hierarchy for ingestion, lookup, and storage failures.
# ABOUTME: Separates "this feed is broken" (ScrapeError) from "storage is down" (StorageError).


class FeedwellError(Exception):
    """Base exception for all feedwell errors."""


class ScrapeError(FeedwellError):
    """A feed or page could not be fetched or turned into a valid record.

    Local to one feed: batch operations record it and move on.
    """

    retryable = False


class FetchFailed(ScrapeError):
    """Network, timeout, or HTTP status failure while fetching a URL."""

    retryable = True

    def __init__(self, url: str, reason: str, status: int | None = None) -> None:
        self.url = url
        self.reason = reason
        self.status = status
        super().__init__(f"Failed to fetch {url}: {reason}")


class UnsupportedDocument(ScrapeError):
    """The response is neither HTML nor a recognizable XML document."""

    def __init__(self, url: str, content_type: str | None = None) -> None:
        self.url = url
        self.content_type = content_type
        super().__init__(f"Unsupported document at {url} (content type: {content_type or 'none'})")


class UnsupportedFeedType(ScrapeError):
    """The document parsed but its root is neither RSS nor Atom."""

    def __init__(self, url: str, root: str | None = None) -> None:
        self.url = url
        self.root = root
        super().__init__(f"No feed format matches document root <{root}> at {url}")


class InvalidField(ScrapeError):
    """A required field failed validation during postprocessing."""

    def __init__(self, field: str, value: str | None = None) -> None:
        self.field = field
        self.value = value
        super().__init__(f"Invalid {field}: {value!r}")


class NotFound(FeedwellError):
    """A referenced subscription or entry does not exist for the profile."""

    def __init__(self, kind: str, id: int) -> None:
        self.kind = kind
        self.id = id
        super().__init__(f"{kind} not found with id: {id}")


class StorageError(FeedwellError):
    """The persistence layer failed."""

    retryable = False


class Conflict(StorageError):
    """A uniqueness violation that no upsert absorbed."""


class StorageUnavailable(StorageError):
    """Transient database failure (connection, timeout, lock)."""

    retryable = True


class InvalidOpml(FeedwellError):
    """An OPML import document could not be read."""
