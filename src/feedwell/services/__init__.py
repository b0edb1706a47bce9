# ABOUTME: Services module initialization.
# ABOUTME: Exports the feed ingestion, entry read-state, and bookmark scraping services.

from feedwell.services.bookmark_service import BookmarkService
from feedwell.services.entry_service import EntryService
from feedwell.services.feed_service import FeedService

__all__ = [
    "BookmarkService",
    "EntryService",
    "FeedService",
]
