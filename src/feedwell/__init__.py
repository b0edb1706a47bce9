# ABOUTME: Main package for the feedwell feed aggregator.
# ABOUTME: Exports settings and the core scraped-feed models.

from feedwell.config import get_settings
from feedwell.models import (
    EntryView,
    ExtractedEntry,
    ExtractedFeed,
    FeedView,
    ProcessedEntry,
    ProcessedFeed,
)

__all__ = [
    "get_settings",
    "EntryView",
    "ExtractedEntry",
    "ExtractedFeed",
    "FeedView",
    "ProcessedEntry",
    "ProcessedFeed",
]
