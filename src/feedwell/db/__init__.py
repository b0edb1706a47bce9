# ABOUTME: Database module initialization.
# ABOUTME: Exports ORM models, session helpers, and repositories for the persistence layer.

from feedwell.db.models import Base, Entry, Feed, FeedEntry, ProfileFeed, ProfileFeedEntry
from feedwell.db.repository import EntryRepository, FeedRepository, storage_errors
from feedwell.db.session import get_session, init_db, session_scope

__all__ = [
    "Base",
    "Entry",
    "EntryRepository",
    "Feed",
    "FeedEntry",
    "FeedRepository",
    "ProfileFeed",
    "ProfileFeedEntry",
    "get_session",
    "init_db",
    "session_scope",
    "storage_errors",
]
