# ABOUTME: Service for reading a profile's entries and toggling their read state.
# ABOUTME: Every query is scoped to the requesting profile's subscriptions.

import structlog

from feedwell.db.repository import EntryRepository, FeedRepository, storage_errors
from feedwell.db.session import get_session
from feedwell.errors import NotFound
from feedwell.models import EntryView
from feedwell.services.feed_service import SessionScope

logger = structlog.get_logger()


class EntryService:
    """Service for per-profile entry listing and read state."""

    def __init__(self, session_scope: SessionScope = get_session) -> None:
        self._session_scope = session_scope

    async def list(
        self,
        profile_feed_id: int,
        profile_id: str,
        has_read: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[EntryView]:
        """List a subscription's entries, newest first.

        Args:
            profile_feed_id: Subscription to list.
            profile_id: Requesting profile.
            has_read: Only read (True) or unread (False) entries; None for all.
            limit: Page size.
            offset: Entries to skip.

        Raises:
            NotFound: If the subscription does not exist for this profile.
        """
        with storage_errors("list_entries"):
            async with self._session_scope() as session:
                subscription = await FeedRepository(session).get_profile_feed(
                    profile_feed_id, profile_id
                )
                if subscription is None:
                    raise NotFound("profile feed", profile_feed_id)
                return await EntryRepository(session).list_entries(
                    profile_feed_id, profile_id, has_read=has_read, limit=limit, offset=offset
                )

    async def mark(self, profile_feed_entry_id: int, profile_id: str, has_read: bool) -> EntryView:
        """Mark an entry read or unread.

        Raises:
            NotFound: If the entry is not in one of this profile's subscriptions.
        """
        with storage_errors("mark_entry"):
            async with self._session_scope() as session:
                repo = EntryRepository(session)
                if not await repo.set_read(profile_feed_entry_id, profile_id, has_read):
                    raise NotFound("entry", profile_feed_entry_id)
                view = await repo.get_entry(profile_feed_entry_id, profile_id)

        if view is None:
            raise NotFound("entry", profile_feed_entry_id)
        logger.debug("entry_marked", id=profile_feed_entry_id, has_read=has_read)
        return view
