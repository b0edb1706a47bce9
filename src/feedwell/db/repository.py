# ABOUTME: Repository classes for database access patterns.
# ABOUTME: Upsert-based deduplication of feeds and entries, plus per-profile subscription and read-state queries.

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime

import structlog
from sqlalchemy import delete, exists, false, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import (
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from feedwell.db.models import Entry, Feed, FeedEntry, ProfileFeed, ProfileFeedEntry
from feedwell.errors import Conflict, StorageError, StorageUnavailable
from feedwell.models import EntryView, FeedView, ProcessedEntry, ProcessedFeed

log = structlog.get_logger()

# Feed entry ids per INSERT ... SELECT when creating read state
LINK_BATCH_SIZE = 500


@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """Translate database exceptions raised inside the block into StorageError kinds."""
    try:
        yield
    except IntegrityError as e:
        log.error("storage_conflict", operation=operation, error=str(e.orig))
        raise Conflict(f"{operation}: unique constraint violated") from e
    except (OperationalError, InterfaceError, PoolTimeoutError, OSError) as e:
        log.warning("storage_unavailable", operation=operation, error=str(e))
        raise StorageUnavailable(f"{operation}: database unavailable") from e
    except SQLAlchemyError as e:
        log.error("storage_error", operation=operation, error=str(e))
        raise StorageError(f"{operation}: {e}") from e


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _unread_counts():
    return (
        select(
            ProfileFeedEntry.profile_feed_id,
            func.count(ProfileFeedEntry.id).label("unread_count"),
        )
        .where(ProfileFeedEntry.has_read == False)  # noqa: E712
        .group_by(ProfileFeedEntry.profile_feed_id)
        .subquery()
    )


def _feed_view(profile_feed: ProfileFeed, feed: Feed, unread_count: int | None) -> FeedView:
    return FeedView(
        id=profile_feed.id,
        feed_id=feed.id,
        link=feed.link,
        title=profile_feed.custom_title or feed.title,
        original_title=feed.title,
        url=feed.url,
        custom_title=profile_feed.custom_title,
        created_at=_as_utc(profile_feed.created_at),
        updated_at=_as_utc(profile_feed.updated_at),
        unread_count=unread_count or 0,
    )


def _entry_view(profile_feed_entry: ProfileFeedEntry, entry: Entry) -> EntryView:
    return EntryView(
        id=profile_feed_entry.id,
        entry_id=entry.id,
        profile_feed_id=profile_feed_entry.profile_feed_id,
        link=entry.link,
        title=entry.title,
        published_at=_as_utc(entry.published_at),
        description=entry.description,
        author=entry.author,
        thumbnail_url=entry.thumbnail_url,
        has_read=profile_feed_entry.has_read,
    )


class _UpsertMixin:
    session: AsyncSession

    def _insert(self, model: type):
        """Dialect-specific INSERT supporting ON CONFLICT clauses."""
        if self.session.get_bind().dialect.name == "sqlite":
            return sqlite.insert(model)
        return postgresql.insert(model)


class FeedRepository(_UpsertMixin):
    """Repository for canonical feeds/entries and profile subscriptions."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # Canonical content

    async def upsert_feed(self, link: str, title: str, url: str | None = None) -> int:
        """Insert a feed, or refresh its title if the link exists. Returns the feed id."""
        stmt = self._insert(Feed).values(link=link, title=title, url=url)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Feed.link],
            set_={"title": stmt.excluded.title},
        ).returning(Feed.id)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def upsert_entry(self, entry: ProcessedEntry) -> int:
        """Insert an entry, or refresh its title if the link exists. Returns the entry id."""
        stmt = self._insert(Entry).values(
            link=str(entry.link),
            title=entry.title,
            published_at=entry.published,
            description=entry.description,
            author=entry.author,
            thumbnail_url=str(entry.thumbnail) if entry.thumbnail else None,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Entry.link],
            set_={"title": stmt.excluded.title},
        ).returning(Entry.id)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def link_feed_entry(self, feed_id: int, entry_id: int) -> int:
        """Associate an entry with a feed; existing associations are left alone.

        Returns:
            The id of the (new or existing) feed entry row.
        """
        stmt = (
            self._insert(FeedEntry)
            .values(feed_id=feed_id, entry_id=entry_id)
            .on_conflict_do_nothing(index_elements=[FeedEntry.feed_id, FeedEntry.entry_id])
            .returning(FeedEntry.id)
        )
        inserted = (await self.session.execute(stmt)).scalar_one_or_none()
        if inserted is not None:
            return inserted

        result = await self.session.execute(
            select(FeedEntry.id).where(
                FeedEntry.feed_id == feed_id, FeedEntry.entry_id == entry_id
            )
        )
        return result.scalar_one()

    async def save_feed(
        self, processed: ProcessedFeed, requested_url: str
    ) -> tuple[int, list[int]]:
        """Persist a processed feed and all its entries.

        Args:
            processed: The validated feed.
            requested_url: The URL that was fetched; stored only when it differs from the link.

        Returns:
            Tuple of (feed id, feed entry ids for this ingestion).
        """
        link = str(processed.link)
        feed_id = await self.upsert_feed(
            link=link,
            title=processed.title,
            url=requested_url if requested_url != link else None,
        )

        feed_entry_ids: list[int] = []
        for entry in processed.entries:
            entry_id = await self.upsert_entry(entry)
            feed_entry_ids.append(await self.link_feed_entry(feed_id, entry_id))

        return feed_id, feed_entry_ids

    async def get_feed(self, feed_id: int) -> Feed | None:
        """Get canonical feed by ID."""
        return await self.session.get(Feed, feed_id)

    async def list_feed_sources(self) -> Sequence[tuple[int, str]]:
        """List (feed id, URL to fetch) for every canonical feed."""
        result = await self.session.execute(
            select(Feed.id, func.coalesce(Feed.url, Feed.link)).order_by(Feed.id)
        )
        return [(row[0], row[1]) for row in result.all()]

    async def cleanup(self) -> tuple[int, int]:
        """Delete feeds nobody subscribes to, then entries no feed references.

        Returns:
            Tuple of (feeds deleted, entries deleted).
        """
        feeds = await self.session.execute(
            delete(Feed).where(~exists().where(ProfileFeed.feed_id == Feed.id))
        )
        entries = await self.session.execute(
            delete(Entry).where(~exists().where(FeedEntry.entry_id == Entry.id))
        )
        return feeds.rowcount, entries.rowcount

    # Profile overlay

    async def upsert_profile_feed(self, profile_id: str, feed_id: int) -> int:
        """Subscribe a profile to a feed; re-subscribing is a no-op. Returns the subscription id."""
        stmt = (
            self._insert(ProfileFeed)
            .values(profile_id=profile_id, feed_id=feed_id)
            .on_conflict_do_nothing(index_elements=[ProfileFeed.profile_id, ProfileFeed.feed_id])
            .returning(ProfileFeed.id)
        )
        inserted = (await self.session.execute(stmt)).scalar_one_or_none()
        if inserted is not None:
            return inserted

        result = await self.session.execute(
            select(ProfileFeed.id).where(
                ProfileFeed.profile_id == profile_id, ProfileFeed.feed_id == feed_id
            )
        )
        return result.scalar_one()

    async def link_profile_feed_entries(
        self,
        feed_id: int,
        feed_entry_ids: Sequence[int],
        profile_feed_id: int | None = None,
    ) -> None:
        """Create unread state rows for feed entries a subscription does not track yet.

        Subscription and entry pairs are joined inside the database, so only the
        feed entry ids are sent as parameters, in batches of ``LINK_BATCH_SIZE``.

        Args:
            feed_id: Feed the entries belong to.
            feed_entry_ids: Feed entry rows written by this ingestion.
            profile_feed_id: Only link this subscription. Defaults to every subscriber of the feed.
        """
        for start in range(0, len(feed_entry_ids), LINK_BATCH_SIZE):
            batch = list(feed_entry_ids[start : start + LINK_BATCH_SIZE])
            pairs = select(ProfileFeed.id, FeedEntry.id, false()).where(
                ProfileFeed.feed_id == FeedEntry.feed_id,
                FeedEntry.feed_id == feed_id,
                FeedEntry.id.in_(batch),
            )
            if profile_feed_id is not None:
                pairs = pairs.where(ProfileFeed.id == profile_feed_id)

            stmt = (
                self._insert(ProfileFeedEntry)
                .from_select(["profile_feed_id", "feed_entry_id", "has_read"], pairs)
                .on_conflict_do_nothing(
                    index_elements=[
                        ProfileFeedEntry.profile_feed_id,
                        ProfileFeedEntry.feed_entry_id,
                    ]
                )
            )
            await self.session.execute(stmt)

    async def list_profile_feed_ids(self, feed_id: int) -> list[int]:
        """List subscription ids of every profile subscribed to a feed."""
        result = await self.session.execute(
            select(ProfileFeed.id).where(ProfileFeed.feed_id == feed_id).order_by(ProfileFeed.id)
        )
        return list(result.scalars().all())

    async def list_profile_feeds(self, profile_id: str) -> list[FeedView]:
        """List a profile's subscriptions with unread counts, ordered by display title."""
        unread = _unread_counts()
        result = await self.session.execute(
            select(ProfileFeed, Feed, unread.c.unread_count)
            .join(Feed, Feed.id == ProfileFeed.feed_id)
            .outerjoin(unread, unread.c.profile_feed_id == ProfileFeed.id)
            .where(ProfileFeed.profile_id == profile_id)
            .order_by(func.coalesce(ProfileFeed.custom_title, Feed.title), ProfileFeed.id)
        )
        return [_feed_view(pf, feed, count) for pf, feed, count in result.all()]

    async def get_profile_feed(self, profile_feed_id: int, profile_id: str) -> FeedView | None:
        """Get one of a profile's subscriptions with its unread count."""
        unread = _unread_counts()
        result = await self.session.execute(
            select(ProfileFeed, Feed, unread.c.unread_count)
            .join(Feed, Feed.id == ProfileFeed.feed_id)
            .outerjoin(unread, unread.c.profile_feed_id == ProfileFeed.id)
            .where(ProfileFeed.id == profile_feed_id, ProfileFeed.profile_id == profile_id)
        )
        row = result.one_or_none()
        if row is None:
            return None
        return _feed_view(*row)

    async def update_profile_feed(
        self, profile_feed_id: int, profile_id: str, custom_title: str | None
    ) -> bool:
        """Set or clear a subscription's custom title. Returns True if the row exists."""
        result = await self.session.execute(
            update(ProfileFeed)
            .where(ProfileFeed.id == profile_feed_id, ProfileFeed.profile_id == profile_id)
            .values(custom_title=custom_title)
        )
        return result.rowcount > 0

    async def delete_profile_feed(self, profile_feed_id: int, profile_id: str) -> bool:
        """Delete one of a profile's subscriptions and its read state. Returns True if deleted."""
        result = await self.session.execute(
            delete(ProfileFeed).where(
                ProfileFeed.id == profile_feed_id, ProfileFeed.profile_id == profile_id
            )
        )
        return result.rowcount > 0


class EntryRepository:
    """Repository for entries as seen through a profile's subscriptions."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _profile_entries(self, profile_id: str):
        return (
            select(ProfileFeedEntry, Entry)
            .join(FeedEntry, FeedEntry.id == ProfileFeedEntry.feed_entry_id)
            .join(Entry, Entry.id == FeedEntry.entry_id)
            .join(ProfileFeed, ProfileFeed.id == ProfileFeedEntry.profile_feed_id)
            .where(ProfileFeed.profile_id == profile_id)
        )

    async def list_entries(
        self,
        profile_feed_id: int,
        profile_id: str,
        has_read: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[EntryView]:
        """List a subscription's entries, newest first, optionally filtered by read state."""
        query = self._profile_entries(profile_id).where(
            ProfileFeedEntry.profile_feed_id == profile_feed_id
        )
        if has_read is not None:
            query = query.where(ProfileFeedEntry.has_read == has_read)
        query = (
            query.order_by(Entry.published_at.desc().nulls_last(), Entry.id.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(query)
        return [_entry_view(pfe, entry) for pfe, entry in result.all()]

    async def get_entry(self, profile_feed_entry_id: int, profile_id: str) -> EntryView | None:
        """Get one entry of a profile's subscriptions."""
        result = await self.session.execute(
            self._profile_entries(profile_id).where(ProfileFeedEntry.id == profile_feed_entry_id)
        )
        row = result.one_or_none()
        if row is None:
            return None
        return _entry_view(*row)

    async def set_read(self, profile_feed_entry_id: int, profile_id: str, has_read: bool) -> bool:
        """Mark an entry read or unread. Returns True if the row belongs to the profile."""
        owned = select(ProfileFeed.id).where(ProfileFeed.profile_id == profile_id)
        result = await self.session.execute(
            update(ProfileFeedEntry)
            .where(
                ProfileFeedEntry.id == profile_feed_entry_id,
                ProfileFeedEntry.profile_feed_id.in_(owned),
            )
            .values(has_read=has_read)
        )
        return result.rowcount > 0
