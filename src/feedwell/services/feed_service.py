# ABOUTME: Feed ingestion service: scrape a URL, persist it, and manage profile subscriptions.
# ABOUTME: Also handles feed detection, OPML import, refresh of known feeds and orphan cleanup.

import asyncio
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from feedwell.config import Settings, get_settings
from feedwell.db.repository import FeedRepository, storage_errors
from feedwell.db.session import get_session
from feedwell.errors import Conflict, NotFound, ScrapeError, StorageError
from feedwell.feeds.discovery import find_feed_links
from feedwell.feeds.document import Document, DocumentKind, DocumentParser
from feedwell.feeds.fetcher import FetchResponse, HttpFetcher
from feedwell.feeds.opml import parse_opml
from feedwell.feeds.registry import ScraperRegistry, get_registry
from feedwell.feeds.scraper import Scraper
from feedwell.models import (
    DetectResult,
    FeedView,
    ImportFailure,
    ImportResult,
    ProcessedFeed,
    RefreshResult,
)

logger = structlog.get_logger()

SessionScope = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class FeedService:
    """Service for feed ingestion and per-profile subscriptions."""

    def __init__(
        self,
        session_scope: SessionScope = get_session,
        fetcher: HttpFetcher | None = None,
        parser: DocumentParser | None = None,
        registry: ScraperRegistry | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._session_scope = session_scope
        self._fetcher = fetcher
        self.parser = parser or DocumentParser()
        self.registry = registry or get_registry()

    @property
    def fetcher(self) -> HttpFetcher:
        """Lazy-initialized HTTP fetcher."""
        if self._fetcher is None:
            self._fetcher = HttpFetcher(self.settings)
        return self._fetcher

    async def _load(self, scraper: Scraper, url: str) -> tuple[FetchResponse, Document]:
        request = scraper.prepare(url)
        await asyncio.sleep(0)
        response = await self.fetcher.fetch(request)
        await asyncio.sleep(0)
        return response, self.parser.parse(response)

    async def _scrape(self, url: str) -> ProcessedFeed:
        """Run every scraper stage for a URL without touching storage.

        Raises:
            ScrapeError: If fetching, parsing, extraction or validation fails.
        """
        scraper = self.registry.resolve_url(url)
        _, document = await self._load(scraper, url)
        await asyncio.sleep(0)

        extracted = scraper.extract(url, document)
        processed = scraper.postprocess(url, extracted)

        limit = self.settings.feed_max_entries
        if limit and len(processed.entries) > limit:
            processed = processed.model_copy(update={"entries": processed.entries[:limit]})

        logger.debug(
            "feed_scraped",
            url=url,
            scraper=type(scraper).__name__,
            entries=len(processed.entries),
        )
        return processed

    async def subscribe(self, url: str, profile_id: str) -> FeedView:
        """Ingest a feed and subscribe a profile to it.

        Re-subscribing to a feed refreshes its canonical rows and leaves the
        subscription itself untouched.

        Args:
            url: Feed URL to fetch.
            profile_id: Subscribing profile.

        Returns:
            The profile's view of the subscription, with unread count.

        Raises:
            ScrapeError: If the feed could not be fetched or processed. Nothing is written.
            StorageError: If persisting the feed failed.
        """
        try:
            processed = await self._scrape(url)
        except ScrapeError as e:
            logger.warning("scrape_failed", url=url, profile_id=profile_id, error=str(e))
            raise

        await asyncio.sleep(0)
        with storage_errors("subscribe"):
            async with self._session_scope() as session:
                repo = FeedRepository(session)
                feed_id, feed_entry_ids = await repo.save_feed(processed, url)
                profile_feed_id = await repo.upsert_profile_feed(profile_id, feed_id)
                await repo.link_profile_feed_entries(feed_id, feed_entry_ids, profile_feed_id)
                view = await repo.get_profile_feed(profile_feed_id, profile_id)

        if view is None:
            # The subscription was upserted in the same transaction
            logger.error(
                "subscription_vanished",
                url=url,
                profile_id=profile_id,
                profile_feed_id=profile_feed_id,
            )
            raise Conflict(f"subscribe: subscription {profile_feed_id} missing after upsert")

        logger.info(
            "feed_subscribed",
            url=url,
            profile_id=profile_id,
            feed_id=feed_id,
            profile_feed_id=profile_feed_id,
            entries=len(feed_entry_ids),
        )
        return view

    async def list(self, profile_id: str) -> list[FeedView]:
        """List a profile's subscriptions ordered by display title."""
        with storage_errors("list_feeds"):
            async with self._session_scope() as session:
                return await FeedRepository(session).list_profile_feeds(profile_id)

    async def get(self, profile_feed_id: int, profile_id: str) -> FeedView:
        """Get one subscription.

        Raises:
            NotFound: If the subscription does not exist for this profile.
        """
        with storage_errors("get_feed"):
            async with self._session_scope() as session:
                view = await FeedRepository(session).get_profile_feed(profile_feed_id, profile_id)
        if view is None:
            raise NotFound("profile feed", profile_feed_id)
        return view

    async def update(self, profile_feed_id: int, profile_id: str, title: str | None) -> FeedView:
        """Set a subscription's custom title; a blank title restores the feed's own.

        Raises:
            NotFound: If the subscription does not exist for this profile.
        """
        custom_title = title.strip() if title and title.strip() else None
        with storage_errors("update_feed"):
            async with self._session_scope() as session:
                repo = FeedRepository(session)
                if not await repo.update_profile_feed(profile_feed_id, profile_id, custom_title):
                    raise NotFound("profile feed", profile_feed_id)
                view = await repo.get_profile_feed(profile_feed_id, profile_id)

        if view is None:
            raise NotFound("profile feed", profile_feed_id)
        logger.info("feed_renamed", profile_feed_id=profile_feed_id, custom_title=custom_title)
        return view

    async def delete(self, profile_feed_id: int, profile_id: str) -> bool:
        """Unsubscribe; only this profile's subscription and read state go away.

        Returns:
            True if a subscription was removed, False if none matched.
        """
        with storage_errors("delete_feed"):
            async with self._session_scope() as session:
                deleted = await FeedRepository(session).delete_profile_feed(
                    profile_feed_id, profile_id
                )

        if deleted:
            logger.info("feed_unsubscribed", profile_feed_id=profile_feed_id, profile_id=profile_id)
        return deleted

    async def detect(self, url: str) -> DetectResult:
        """Detect a URL: return the feed it serves, or the feeds its HTML page links to.

        Raises:
            ScrapeError: If the URL could not be fetched or processed.
        """
        scraper = self.registry.resolve_url(url)
        response, document = await self._load(scraper, url)

        if document.kind is DocumentKind.HTML:
            detected = find_feed_links(response)
            logger.info("feeds_detected", url=url, count=len(detected))
            return DetectResult(detected=detected)

        processed = scraper.postprocess(url, scraper.extract(url, document))
        logger.info("feed_detected", url=url, link=str(processed.link))
        return DetectResult(feed=processed)

    async def import_opml(self, data: bytes | str, profile_id: str) -> ImportResult:
        """Subscribe a profile to every feed in an OPML document.

        Each URL is subscribed on its own; a failing URL is recorded and the
        import moves on.

        Raises:
            InvalidOpml: If the document itself cannot be read.
        """
        outlines = parse_opml(data)
        logger.info("opml_import_started", profile_id=profile_id, feeds=len(outlines))

        result = ImportResult()
        for outline in outlines:
            try:
                result.subscribed.append(await self.subscribe(outline.xml_url, profile_id))
            except (ScrapeError, StorageError) as e:
                logger.warning("import_url_failed", url=outline.xml_url, error=str(e))
                result.failed.append(ImportFailure(url=outline.xml_url, error=str(e)))

        logger.info(
            "opml_import_finished",
            profile_id=profile_id,
            subscribed=len(result.subscribed),
            failed=len(result.failed),
        )
        return result

    async def refresh(self, feed_id: int) -> int:
        """Re-ingest a known feed and surface new entries to all its subscribers.

        Returns:
            Number of entries in the refreshed document.

        Raises:
            NotFound: If the feed does not exist.
            ScrapeError: If the feed could not be fetched or processed.
        """
        with storage_errors("refresh_lookup"):
            async with self._session_scope() as session:
                feed = await FeedRepository(session).get_feed(feed_id)
                source = (feed.url or feed.link) if feed is not None else None
        if source is None:
            raise NotFound("feed", feed_id)

        return await self._refresh_source(feed_id, source)

    async def _refresh_source(self, feed_id: int, source: str) -> int:
        processed = await self._scrape(source)

        await asyncio.sleep(0)
        with storage_errors("refresh"):
            async with self._session_scope() as session:
                repo = FeedRepository(session)
                saved_id, feed_entry_ids = await repo.save_feed(processed, source)
                profile_feed_ids = await repo.list_profile_feed_ids(saved_id)
                await repo.link_profile_feed_entries(saved_id, feed_entry_ids)

        if saved_id != feed_id:
            logger.warning("feed_link_changed", feed_id=feed_id, new_feed_id=saved_id, url=source)
        logger.info(
            "feed_refreshed",
            feed_id=saved_id,
            entries=len(feed_entry_ids),
            subscribers=len(profile_feed_ids),
        )
        return len(feed_entry_ids)

    async def refresh_all(self) -> RefreshResult:
        """Refresh every known feed; one broken feed never stops the others."""
        with storage_errors("refresh_all_lookup"):
            async with self._session_scope() as session:
                sources = await FeedRepository(session).list_feed_sources()

        result = RefreshResult()
        for feed_id, source in sources:
            try:
                await self._refresh_source(feed_id, source)
                result.refreshed += 1
            except (ScrapeError, StorageError) as e:
                logger.warning("refresh_failed", feed_id=feed_id, url=source, error=str(e))
                result.failed.append(ImportFailure(url=source, error=str(e)))

        logger.info("refresh_all_finished", refreshed=result.refreshed, failed=len(result.failed))
        return result

    async def cleanup(self) -> tuple[int, int]:
        """Delete feeds without subscribers and entries no feed references.

        Returns:
            Tuple of (feeds deleted, entries deleted).
        """
        with storage_errors("cleanup"):
            async with self._session_scope() as session:
                feeds_deleted, entries_deleted = await FeedRepository(session).cleanup()

        logger.info("cleanup_finished", feeds=feeds_deleted, entries=entries_deleted)
        return feeds_deleted, entries_deleted
