# ABOUTME: CLI entry point for the feedwell feed aggregator.
# ABOUTME: Subcommands: init-db, subscribe, list, unsubscribe, import, refresh, cleanup, bookmark.

import argparse
import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import structlog

from feedwell.config import get_settings
from feedwell.db.repository import storage_errors
from feedwell.db.session import close_db, init_db
from feedwell.errors import FeedwellError
from feedwell.feeds.fetcher import HttpFetcher
from feedwell.models import ProcessedBookmark
from feedwell.services.bookmark_service import BookmarkService
from feedwell.services.feed_service import FeedService

T = TypeVar("T")


def configure_logging() -> None:
    """Configure structlog for console or JSON output."""
    settings = get_settings()

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        structlog.configure(
            processors=[
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.add_log_level,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(log_level),
        )
    else:
        structlog.configure(
            processors=[
                structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
                structlog.processors.add_log_level,
                structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(log_level),
            logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        )


def _run_with_service(action: Callable[[FeedService], Awaitable[T]]) -> T:
    """Run an async action against a FeedService, releasing the client and engine after."""

    async def runner() -> T:
        try:
            async with HttpFetcher() as fetcher:
                return await action(FeedService(fetcher=fetcher))
        finally:
            await close_db()

    return asyncio.run(runner())


def cmd_init_db(_args: argparse.Namespace) -> int:
    """Create database tables."""
    log = structlog.get_logger()

    async def runner() -> None:
        try:
            with storage_errors("init_db"):
                await init_db()
        finally:
            await close_db()

    try:
        asyncio.run(runner())
    except FeedwellError as e:
        log.error("cmd_init_db_failed", error=str(e))
        return 1

    log.info("cmd_init_db_complete")
    return 0


def cmd_subscribe(args: argparse.Namespace) -> int:
    """Subscribe a profile to a feed URL."""
    log = structlog.get_logger()
    try:
        view = _run_with_service(lambda service: service.subscribe(args.url, args.profile))
    except FeedwellError as e:
        log.error("cmd_subscribe_failed", url=args.url, error=str(e))
        return 1

    print(f"{view.id}\t{view.title}\t{view.link}\t{view.unread_count} unread")
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    """List a profile's subscriptions."""
    log = structlog.get_logger()
    try:
        feeds = _run_with_service(lambda service: service.list(args.profile))
    except FeedwellError as e:
        log.error("cmd_list_failed", error=str(e))
        return 1

    if not feeds:
        print("No subscriptions.")
    for view in feeds:
        print(f"{view.id}\t{view.title}\t{view.link}\t{view.unread_count} unread")
    return 0


def cmd_unsubscribe(args: argparse.Namespace) -> int:
    """Remove one of a profile's subscriptions."""
    log = structlog.get_logger()
    try:
        deleted = _run_with_service(lambda service: service.delete(args.id, args.profile))
    except FeedwellError as e:
        log.error("cmd_unsubscribe_failed", id=args.id, error=str(e))
        return 1

    if not deleted:
        print(f"Subscription {args.id} not found.")
        return 1
    print(f"Unsubscribed {args.id}.")
    return 0


def cmd_import(args: argparse.Namespace) -> int:
    """Subscribe a profile to every feed in an OPML file."""
    log = structlog.get_logger()
    path = Path(args.file)
    if not path.is_file():
        log.error("cmd_import_missing_file", path=str(path))
        return 1

    data = path.read_bytes()
    try:
        result = _run_with_service(lambda service: service.import_opml(data, args.profile))
    except FeedwellError as e:
        log.error("cmd_import_failed", path=str(path), error=str(e))
        return 1

    print(f"Subscribed: {len(result.subscribed)}  Failed: {len(result.failed)}")
    for failure in result.failed:
        print(f"  - {failure.url}: {failure.error}")
    return 0 if not result.failed else 2


def cmd_refresh(args: argparse.Namespace) -> int:
    """Refresh one feed, or every known feed."""
    log = structlog.get_logger()
    try:
        if args.feed is not None:
            count = _run_with_service(lambda service: service.refresh(args.feed))
            print(f"Refreshed feed {args.feed}: {count} entries")
            return 0
        result = _run_with_service(lambda service: service.refresh_all())
    except FeedwellError as e:
        log.error("cmd_refresh_failed", feed=args.feed, error=str(e))
        return 1

    print(f"Refreshed: {result.refreshed}  Failed: {len(result.failed)}")
    for failure in result.failed:
        print(f"  - {failure.url}: {failure.error}")
    return 0 if not result.failed else 2


def cmd_cleanup(_args: argparse.Namespace) -> int:
    """Delete unsubscribed feeds and orphaned entries."""
    log = structlog.get_logger()
    try:
        feeds, entries = _run_with_service(lambda service: service.cleanup())
    except FeedwellError as e:
        log.error("cmd_cleanup_failed", error=str(e))
        return 1

    print(f"Deleted {feeds} feeds and {entries} entries.")
    return 0


def cmd_bookmark(args: argparse.Namespace) -> int:
    """Scrape a page's bookmark metadata and print it as JSON."""
    log = structlog.get_logger()

    async def runner() -> ProcessedBookmark:
        async with HttpFetcher() as fetcher:
            return await BookmarkService(fetcher=fetcher).scrape(args.url)

    try:
        bookmark = asyncio.run(runner())
    except FeedwellError as e:
        log.error("cmd_bookmark_failed", url=args.url, error=str(e))
        return 1

    print(bookmark.model_dump_json(indent=2))
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="feedwell",
        description="feedwell - RSS/Atom feed aggregator",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("init-db", help="Create database tables")

    subscribe_parser = subparsers.add_parser("subscribe", help="Subscribe to a feed URL")
    subscribe_parser.add_argument("url", help="Feed URL")
    subscribe_parser.add_argument("--profile", required=True, help="Profile ID")

    list_parser = subparsers.add_parser("list", help="List subscriptions")
    list_parser.add_argument("--profile", required=True, help="Profile ID")

    unsubscribe_parser = subparsers.add_parser("unsubscribe", help="Remove a subscription")
    unsubscribe_parser.add_argument("id", type=int, help="Subscription ID (from 'list')")
    unsubscribe_parser.add_argument("--profile", required=True, help="Profile ID")

    import_parser = subparsers.add_parser("import", help="Import subscriptions from OPML")
    import_parser.add_argument("file", help="Path to an OPML file")
    import_parser.add_argument("--profile", required=True, help="Profile ID")

    refresh_parser = subparsers.add_parser("refresh", help="Re-fetch subscribed feeds")
    refresh_parser.add_argument(
        "--feed",
        type=int,
        help="Refresh only this feed ID. Defaults to all feeds.",
    )

    subparsers.add_parser("cleanup", help="Delete feeds nobody subscribes to")

    bookmark_parser = subparsers.add_parser("bookmark", help="Scrape bookmark metadata for a page")
    bookmark_parser.add_argument("url", help="Page URL")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    configure_logging()

    parser = create_parser()
    args = parser.parse_args(argv)

    commands = {
        "init-db": cmd_init_db,
        "subscribe": cmd_subscribe,
        "list": cmd_list,
        "unsubscribe": cmd_unsubscribe,
        "import": cmd_import,
        "refresh": cmd_refresh,
        "cleanup": cmd_cleanup,
        "bookmark": cmd_bookmark,
    }

    handler = commands.get(args.command)
    if handler:
        return handler(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
