# ABOUTME: Tests for FeedService ingestion, subscriptions, detection, import, and refresh.
# ABOUTME: Runs the full pipeline against a mock HTTP server and a SQLite database.

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from feedwell.config import Settings
from feedwell.db.models import Entry, Feed, FeedEntry, ProfileFeed, ProfileFeedEntry
from feedwell.errors import (
    Conflict,
    FetchFailed,
    InvalidField,
    InvalidOpml,
    NotFound,
    StorageUnavailable,
    UnsupportedDocument,
    UnsupportedFeedType,
)
from feedwell.feeds.fetcher import HttpFetcher
from feedwell.feeds.registry import ScraperRegistry
from feedwell.feeds.scraper import AtomScraper
from feedwell.services.entry_service import EntryService
from feedwell.services.feed_service import FeedService


async def _count(scope: Callable, model: type) -> int:
    async with scope() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


class TestSubscribe:
    """Tests for FeedService.subscribe."""

    async def test_subscribe_rss(
        self, feed_service: FeedService, feed_server, rss_feed: bytes, db_scope: Callable
    ) -> None:
        """Subscribing should persist the feed and return the view with unread count."""
        feed_server.add("https://a/feed", rss_feed)

        view = await feed_service.subscribe("https://a/feed", "p1")

        assert view.title == "Feed A"
        assert view.link == "https://a/"
        assert view.url == "https://a/feed"
        assert view.unread_count == 1
        assert await _count(db_scope, Feed) == 1
        assert await _count(db_scope, Entry) == 1
        assert await _count(db_scope, ProfileFeedEntry) == 1

    async def test_subscribe_atom(
        self, feed_service: FeedService, feed_server, atom_feed: bytes
    ) -> None:
        """Atom feeds should be detected and ingested the same way."""
        feed_server.add("https://b/atom.xml", atom_feed, content_type="application/atom+xml")

        view = await feed_service.subscribe("https://b/atom.xml", "p1")

        assert view.title == "Feed B"
        assert view.unread_count == 1

    async def test_subscribe_sends_accept_header(
        self, feed_service: FeedService, feed_server, rss_feed: bytes
    ) -> None:
        """The scraper's prepared request should be what goes over the wire."""
        feed_server.add("https://a/feed", rss_feed)

        await feed_service.subscribe("https://a/feed", "p1")

        assert "application/rss+xml" in feed_server.requests[0].headers["Accept"]

    async def test_idempotent_reingestion(
        self, feed_service: FeedService, feed_server, build_rss: Callable, db_scope: Callable
    ) -> None:
        """Subscribing N times should leave one Feed and one Entry per link."""
        feed_server.add("https://a/feed", build_rss(3))

        views = [await feed_service.subscribe("https://a/feed", "p1") for _ in range(4)]

        assert len({v.id for v in views}) == 1
        assert await _count(db_scope, Feed) == 1
        assert await _count(db_scope, Entry) == 3
        assert await _count(db_scope, FeedEntry) == 3
        assert await _count(db_scope, ProfileFeed) == 1
        assert await _count(db_scope, ProfileFeedEntry) == 3

    async def test_reingestion_refreshes_title(
        self, feed_service: FeedService, feed_server, build_rss: Callable, db_scope: Callable
    ) -> None:
        """A changed feed title should replace the stored one."""
        feed_server.add("https://a/feed", build_rss(1))
        await feed_service.subscribe("https://a/feed", "p1")

        renamed = build_rss(1).replace(b"<title>Feed</title>", b"<title>Renamed</title>")
        feed_server.add("https://a/feed", renamed)
        view = await feed_service.subscribe("https://a/feed", "p1")

        assert view.title == "Renamed"
        assert await _count(db_scope, Feed) == 1

    async def test_concurrent_subscribe_same_url(
        self, feed_service: FeedService, feed_server, build_rss: Callable, db_scope: Callable
    ) -> None:
        """Two profiles subscribing at once should share one Feed without errors."""
        feed_server.add("https://a/feed", build_rss(2))

        first, second = await asyncio.gather(
            feed_service.subscribe("https://a/feed", "p1"),
            feed_service.subscribe("https://a/feed", "p2"),
        )

        assert first.feed_id == second.feed_id
        assert first.id != second.id
        assert await _count(db_scope, Feed) == 1
        assert await _count(db_scope, Entry) == 2
        assert await _count(db_scope, ProfileFeed) == 2

    async def test_max_entries_cap(
        self,
        db_scope: Callable,
        fetcher: HttpFetcher,
        feed_server,
        build_rss: Callable,
        mock_settings: Settings,
    ) -> None:
        """feed_max_entries should cap the entries kept from one document."""
        feed_server.add("https://a/feed", build_rss(5))
        settings = mock_settings.model_copy(update={"feed_max_entries": 2})
        service = FeedService(
            session_scope=db_scope, fetcher=fetcher, registry=ScraperRegistry(), settings=settings
        )

        view = await service.subscribe("https://a/feed", "p1")

        assert view.unread_count == 2

    async def test_registry_scraper_is_used(
        self,
        db_scope: Callable,
        fetcher: HttpFetcher,
        feed_server,
        rss_feed: bytes,
        mock_settings: Settings,
    ) -> None:
        """A host-specific scraper should replace the default for its host."""
        feed_server.add("https://a/feed", rss_feed)
        registry = ScraperRegistry()
        registry.register("a", AtomScraper())
        service = FeedService(
            session_scope=db_scope, fetcher=fetcher, registry=registry, settings=mock_settings
        )

        # AtomScraper finds no Atom nodes in an RSS document, so no entries
        view = await service.subscribe("https://a/feed", "p1")

        assert view.unread_count == 0


class TestSubscribeFailures:
    """Failures before persistence must write nothing."""

    async def test_malformed_document_writes_nothing(
        self, feed_service: FeedService, feed_server, db_scope: Callable
    ) -> None:
        """An unclassifiable body should raise UnsupportedDocument and write no rows."""
        feed_server.add(
            "https://a/feed", b"just some text", content_type="application/octet-stream"
        )

        with pytest.raises(UnsupportedDocument):
            await feed_service.subscribe("https://a/feed", "p1")

        assert await _count(db_scope, Feed) == 0
        assert await _count(db_scope, ProfileFeed) == 0

    async def test_sniffing_fallback(
        self, feed_service: FeedService, feed_server, rss_feed: bytes
    ) -> None:
        """An RSS body with a wrong content type should still be ingested."""
        feed_server.add("https://a/feed", rss_feed, content_type="text/plain")

        view = await feed_service.subscribe("https://a/feed", "p1")

        assert view.unread_count == 1

    async def test_fetch_failure(self, feed_service: FeedService, db_scope: Callable) -> None:
        """HTTP errors should raise FetchFailed and write nothing."""
        with pytest.raises(FetchFailed):
            await feed_service.subscribe("https://a/missing", "p1")

        assert await _count(db_scope, Feed) == 0

    async def test_html_page_is_not_a_feed(
        self, feed_service: FeedService, feed_server, html_page: bytes
    ) -> None:
        """Subscribing to an HTML page should raise UnsupportedFeedType."""
        feed_server.add("https://blog/", html_page, content_type="text/html")

        with pytest.raises(UnsupportedFeedType):
            await feed_service.subscribe("https://blog/", "p1")

    async def test_invalid_entry_link_writes_nothing(
        self, feed_service: FeedService, feed_server, db_scope: Callable
    ) -> None:
        """One invalid entry link should fail the whole feed."""
        body = (
            b"<rss><channel><title>T</title><link>https://a/</link>"
            b"<item><link>https://a/1</link></item>"
            b"<item><link>mailto:someone@a</link></item></channel></rss>"
        )
        feed_server.add("https://a/feed", body)

        with pytest.raises(InvalidField):
            await feed_service.subscribe("https://a/feed", "p1")

        assert await _count(db_scope, Entry) == 0

    async def test_cancelled_before_persist_writes_nothing(
        self, feed_service: FeedService, feed_server, rss_feed: bytes, db_scope: Callable
    ) -> None:
        """Cancelling during the fetch should leave the database untouched."""
        feed_server.add("https://a/feed", rss_feed)
        started = asyncio.Event()

        async def slow_fetch(request):
            started.set()
            await asyncio.sleep(10)

        with patch.object(feed_service.fetcher, "fetch", side_effect=slow_fetch):
            task = asyncio.create_task(feed_service.subscribe("https://a/feed", "p1"))
            await started.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        assert await _count(db_scope, Feed) == 0

    async def test_storage_failure_is_distinct(
        self, feed_service: FeedService, feed_server, rss_feed: bytes
    ) -> None:
        """Database outages should raise StorageUnavailable, not a scrape error."""
        feed_server.add("https://a/feed", rss_feed)

        with (
            patch(
                "feedwell.services.feed_service.FeedRepository.save_feed",
                new=AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("down"))),
            ),
            pytest.raises(StorageUnavailable),
        ):
            await feed_service.subscribe("https://a/feed", "p1")

    async def test_subscription_missing_after_upsert_is_conflict(
        self, feed_service: FeedService, feed_server, rss_feed: bytes
    ) -> None:
        """A subscription that cannot be read back is a storage invariant breach, not a 404."""
        feed_server.add("https://a/feed", rss_feed)

        with (
            patch(
                "feedwell.services.feed_service.FeedRepository.get_profile_feed",
                new=AsyncMock(return_value=None),
            ),
            pytest.raises(Conflict),
        ):
            await feed_service.subscribe("https://a/feed", "p1")


class TestSubscriptionManagement:
    """Tests for list, get, update and delete."""

    async def test_unread_count_after_marking(
        self, feed_service: FeedService, feed_server, build_rss: Callable, db_scope: Callable
    ) -> None:
        """5 entries with 2 marked read should report 3 unread."""
        feed_server.add("https://a/feed", build_rss(5))
        view = await feed_service.subscribe("https://a/feed", "p1")
        entries_service = EntryService(session_scope=db_scope)

        entries = await entries_service.list(view.id, "p1")
        for entry in entries[:2]:
            await entries_service.mark(entry.id, "p1", True)

        feeds = await feed_service.list("p1")
        assert len(feeds) == 1
        assert feeds[0].unread_count == 3

    async def test_unsubscribe_scoping(
        self, feed_service: FeedService, feed_server, build_rss: Callable, db_scope: Callable
    ) -> None:
        """Profile X unsubscribing should not touch profile Y or canonical rows."""
        feed_server.add("https://a/feed", build_rss(2))
        x = await feed_service.subscribe("https://a/feed", "x")
        y = await feed_service.subscribe("https://a/feed", "y")

        assert await feed_service.delete(x.id, "x") is True

        assert await feed_service.list("x") == []
        remaining = await feed_service.list("y")
        assert [v.id for v in remaining] == [y.id]
        assert remaining[0].unread_count == 2
        assert await _count(db_scope, Feed) == 1
        assert await _count(db_scope, Entry) == 2
        assert await _count(db_scope, FeedEntry) == 2

    async def test_delete_missing_returns_false(self, feed_service: FeedService) -> None:
        """Deleting an unknown subscription should return False, not raise."""
        assert await feed_service.delete(999, "p1") is False

    async def test_delete_other_profiles_subscription(
        self, feed_service: FeedService, feed_server, rss_feed: bytes
    ) -> None:
        """A profile cannot delete someone else's subscription."""
        feed_server.add("https://a/feed", rss_feed)
        view = await feed_service.subscribe("https://a/feed", "owner")

        assert await feed_service.delete(view.id, "intruder") is False
        assert len(await feed_service.list("owner")) == 1

    async def test_get_and_update(
        self, feed_service: FeedService, feed_server, rss_feed: bytes
    ) -> None:
        """update should set and clear the custom title."""
        feed_server.add("https://a/feed", rss_feed)
        view = await feed_service.subscribe("https://a/feed", "p1")

        renamed = await feed_service.update(view.id, "p1", "  My Feed ")
        assert renamed.title == "My Feed"
        assert (await feed_service.get(view.id, "p1")).custom_title == "My Feed"

        restored = await feed_service.update(view.id, "p1", "")
        assert restored.title == "Feed A"
        assert restored.custom_title is None

    async def test_get_missing_raises(self, feed_service: FeedService) -> None:
        """get should raise NotFound for unknown subscriptions."""
        with pytest.raises(NotFound):
            await feed_service.get(42, "p1")

    async def test_update_missing_raises(self, feed_service: FeedService) -> None:
        """update should raise NotFound for unknown subscriptions."""
        with pytest.raises(NotFound):
            await feed_service.update(42, "p1", "x")


class TestDetect:
    """Tests for FeedService.detect."""

    async def test_detect_feed(
        self, feed_service: FeedService, feed_server, rss_feed: bytes, db_scope: Callable
    ) -> None:
        """A feed URL should be returned as a processed feed without persisting it."""
        feed_server.add("https://a/feed", rss_feed)

        result = await feed_service.detect("https://a/feed")

        assert result.feed is not None
        assert result.feed.title == "Feed A"
        assert result.detected == []
        assert await _count(db_scope, Feed) == 0

    async def test_detect_html_page(
        self, feed_service: FeedService, feed_server, html_page: bytes
    ) -> None:
        """An HTML page should return the feeds it links to."""
        feed_server.add("https://blog.example.com/", html_page, content_type="text/html")

        result = await feed_service.detect("https://blog.example.com/")

        assert result.feed is None
        assert [d.url for d in result.detected] == [
            "https://blog.example.com/feed.xml",
            "https://blog.example.com/atom.xml",
        ]


class TestImportOpml:
    """Tests for FeedService.import_opml."""

    async def test_partial_failure_continues(
        self,
        feed_service: FeedService,
        feed_server,
        opml_document: bytes,
        rss_feed: bytes,
        atom_feed: bytes,
    ) -> None:
        """One broken URL should be recorded while the others are subscribed."""
        feed_server.add("https://feeds.example.com/a.xml", rss_feed)
        feed_server.add("https://feeds.example.com/b.xml", atom_feed)
        feed_server.add(
            "https://feeds.example.com/broken.xml", b"???", content_type="application/octet-stream"
        )

        result = await feed_service.import_opml(opml_document, "p1")

        assert sorted(v.title for v in result.subscribed) == ["Feed A", "Feed B"]
        assert [f.url for f in result.failed] == ["https://feeds.example.com/broken.xml"]
        assert len(await feed_service.list("p1")) == 2

    async def test_invalid_opml_raises(self, feed_service: FeedService) -> None:
        """An unreadable OPML document should raise InvalidOpml."""
        with pytest.raises(InvalidOpml):
            await feed_service.import_opml(b"<html></html>", "p1")


class TestRefresh:
    """Tests for refresh, refresh_all and cleanup."""

    async def test_refresh_surfaces_new_entries_to_subscribers(
        self, feed_service: FeedService, feed_server, build_rss: Callable
    ) -> None:
        """New entries should appear unread for every subscriber after a refresh."""
        feed_server.add("https://a/feed", build_rss(1))
        first = await feed_service.subscribe("https://a/feed", "p1")
        await feed_service.subscribe("https://a/feed", "p2")

        feed_server.add("https://a/feed", build_rss(3))
        count = await feed_service.refresh(first.feed_id)

        assert count == 3
        for profile in ("p1", "p2"):
            feeds = await feed_service.list(profile)
            assert feeds[0].unread_count == 3

    async def test_refresh_missing_feed(self, feed_service: FeedService) -> None:
        """Refreshing an unknown feed should raise NotFound."""
        with pytest.raises(NotFound):
            await feed_service.refresh(404)

    async def test_refresh_all_isolates_failures(
        self, feed_service: FeedService, feed_server, rss_feed: bytes, atom_feed: bytes
    ) -> None:
        """A feed that stopped working should not stop the others refreshing."""
        feed_server.add("https://a/feed", rss_feed)
        feed_server.add("https://b/atom.xml", atom_feed, content_type="application/atom+xml")
        await feed_service.subscribe("https://a/feed", "p1")
        await feed_service.subscribe("https://b/atom.xml", "p1")

        feed_server.add("https://b/atom.xml", b"gone", status=500)
        result = await feed_service.refresh_all()

        assert result.refreshed == 1
        assert [f.url for f in result.failed] == ["https://b/atom.xml"]

    async def test_cleanup(
        self, feed_service: FeedService, feed_server, rss_feed: bytes, db_scope: Callable
    ) -> None:
        """Feeds left without subscribers should be removed with their entries."""
        feed_server.add("https://a/feed", rss_feed)
        view = await feed_service.subscribe("https://a/feed", "p1")
        await feed_service.delete(view.id, "p1")

        assert await feed_service.cleanup() == (1, 1)
        assert await _count(db_scope, Feed) == 0
        assert await _count(db_scope, Entry) == 0

    async def test_published_dates_round_trip(
        self, feed_service: FeedService, feed_server, rss_feed: bytes, db_scope: Callable
    ) -> None:
        """Stored published dates should come back as UTC instants."""
        feed_server.add("https://a/feed", rss_feed)
        view = await feed_service.subscribe("https://a/feed", "p1")

        entries = await EntryService(session_scope=db_scope).list(view.id, "p1")

        assert entries[0].published_at == datetime(2020, 1, 1, tzinfo=UTC)
        assert entries[0].link == "https://a/1"
