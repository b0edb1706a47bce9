# ABOUTME: FastAPI dependency injection for the requesting profile and services.
# ABOUTME: Provides reusable dependencies for route handlers.

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request

from feedwell.db.models import PROFILE_ID_LENGTH
from feedwell.services.bookmark_service import BookmarkService
from feedwell.services.entry_service import EntryService
from feedwell.services.feed_service import FeedService


def get_profile_id(
    x_profile_id: Annotated[str | None, Header(alias="X-Profile-Id")] = None,
) -> str:
    """Resolve the requesting profile from the X-Profile-Id header.

    Raises:
        HTTPException: If the header is missing, blank or longer than a profile id.
    """
    if x_profile_id is None or not x_profile_id.strip():
        raise HTTPException(status_code=401, detail="X-Profile-Id header required")
    profile_id = x_profile_id.strip()
    if len(profile_id) > PROFILE_ID_LENGTH:
        raise HTTPException(status_code=401, detail="X-Profile-Id header is not a profile id")
    return profile_id


ProfileId = Annotated[str, Depends(get_profile_id)]


def get_feed_service(request: Request) -> FeedService:
    """Get feed service sharing the app's HTTP fetcher."""
    return FeedService(fetcher=getattr(request.app.state, "fetcher", None))


FeedSvc = Annotated[FeedService, Depends(get_feed_service)]


def get_entry_service() -> EntryService:
    """Get entry service instance."""
    return EntryService()


EntrySvc = Annotated[EntryService, Depends(get_entry_service)]


def get_bookmark_service(request: Request) -> BookmarkService:
    """Get bookmark service sharing the app's HTTP fetcher."""
    return BookmarkService(fetcher=getattr(request.app.state, "fetcher", None))


BookmarkSvc = Annotated[BookmarkService, Depends(get_bookmark_service)]
