# ABOUTME: JSON API routes for subscriptions, feed detection, OPML import, entries and bookmarks.
# ABOUTME: Every route except the health check acts on behalf of the X-Profile-Id profile.

import structlog
from fastapi import APIRouter, HTTPException, Query, Request, Response
from pydantic import BaseModel

from feedwell.models import DetectResult, EntryView, FeedView, ImportResult, ProcessedBookmark
from feedwell.web.dependencies import BookmarkSvc, EntrySvc, FeedSvc, ProfileId

router = APIRouter(prefix="/api", tags=["api"])
log = structlog.get_logger()


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str
    version: str = "0.1.0"


class FeedRequest(BaseModel):
    """Request body carrying a feed, site or page URL."""

    url: str


class FeedUpdate(BaseModel):
    """Request body for renaming a subscription; null restores the feed title."""

    title: str | None = None


class EntryUpdate(BaseModel):
    """Request body for changing an entry's read state."""

    has_read: bool


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint for load balancer."""
    return HealthResponse(status="healthy")


@router.get("/feeds", response_model=list[FeedView])
async def list_feeds(profile_id: ProfileId, service: FeedSvc):
    """List the profile's subscriptions with unread counts."""
    return await service.list(profile_id)


@router.post("/feeds", response_model=FeedView, status_code=201)
async def subscribe(body: FeedRequest, profile_id: ProfileId, service: FeedSvc):
    """Subscribe the profile to a feed URL."""
    log.info("api_subscribe", url=body.url, profile_id=profile_id)
    return await service.subscribe(body.url, profile_id)


@router.post("/feeds/detect", response_model=DetectResult)
async def detect_feed(body: FeedRequest, profile_id: ProfileId, service: FeedSvc):
    """Look up a URL as a feed, or for the feeds its page links to."""
    return await service.detect(body.url)


@router.post("/feeds/import", response_model=ImportResult)
async def import_opml(request: Request, profile_id: ProfileId, service: FeedSvc):
    """Subscribe the profile to every feed in an OPML request body."""
    data = await request.body()
    if not data.strip():
        raise HTTPException(status_code=400, detail="OPML body required")
    return await service.import_opml(data, profile_id)


@router.get("/feeds/{profile_feed_id}", response_model=FeedView)
async def get_feed(profile_feed_id: int, profile_id: ProfileId, service: FeedSvc):
    """Get one subscription."""
    return await service.get(profile_feed_id, profile_id)


@router.patch("/feeds/{profile_feed_id}", response_model=FeedView)
async def update_feed(
    profile_feed_id: int, body: FeedUpdate, profile_id: ProfileId, service: FeedSvc
):
    """Set or clear a subscription's custom title."""
    return await service.update(profile_feed_id, profile_id, body.title)


@router.delete("/feeds/{profile_feed_id}", status_code=204)
async def unsubscribe(profile_feed_id: int, profile_id: ProfileId, service: FeedSvc):
    """Unsubscribe the profile from a feed."""
    if not await service.delete(profile_feed_id, profile_id):
        raise HTTPException(status_code=404, detail="Feed not found")
    return Response(status_code=204)


@router.get("/feeds/{profile_feed_id}/entries", response_model=list[EntryView])
async def list_entries(
    profile_feed_id: int,
    profile_id: ProfileId,
    service: EntrySvc,
    has_read: bool | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """List a subscription's entries, newest first."""
    return await service.list(
        profile_feed_id, profile_id, has_read=has_read, limit=limit, offset=offset
    )


@router.patch("/entries/{entry_id}", response_model=EntryView)
async def mark_entry(entry_id: int, body: EntryUpdate, profile_id: ProfileId, service: EntrySvc):
    """Mark an entry read or unread."""
    return await service.mark(entry_id, profile_id, body.has_read)


@router.post("/bookmarks/scrape", response_model=ProcessedBookmark)
async def scrape_bookmark(body: FeedRequest, profile_id: ProfileId, service: BookmarkSvc):
    """Scrape a web page's title, image, publish date and author for a bookmark."""
    log.info("api_scrape_bookmark", url=body.url, profile_id=profile_id)
    return await service.scrape(body.url)
