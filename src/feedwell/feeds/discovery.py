# ABOUTME: Feed auto-discovery from HTML pages via <link rel="alternate"> tags.
# ABOUTME: Uses BeautifulSoup to find RSS/Atom links and resolve them to absolute URLs.

from urllib.parse import urljoin

import structlog
from bs4 import BeautifulSoup

from feedwell.feeds.fetcher import FetchResponse
from feedwell.models import DetectedFeed

log = structlog.get_logger()

FEED_LINK_TYPES = frozenset(
    {
        "application/atom+xml",
        "application/rdf+xml",
        "application/rss+xml",
        "application/xml",
        "text/xml",
    }
)


def find_feed_links(response: FetchResponse) -> list[DetectedFeed]:
    """Collect the feeds an HTML page advertises.

    Args:
        response: A fetched HTML page.

    Returns:
        Detected feeds in document order, deduplicated by absolute URL.
    """
    soup = BeautifulSoup(response.body, "html.parser")

    base_url = response.url
    base = soup.find("base", href=True)
    if base is not None:
        base_url = urljoin(base_url, base["href"])

    detected: list[DetectedFeed] = []
    seen: set[str] = set()
    for link in soup.find_all("link", href=True):
        rel = link.get("rel") or []
        if isinstance(rel, str):
            rel = rel.split()
        if "alternate" not in {r.lower() for r in rel}:
            continue
        link_type = (link.get("type") or "").split(";", 1)[0].strip().lower()
        if link_type not in FEED_LINK_TYPES:
            continue

        url = urljoin(base_url, link["href"].strip())
        if url in seen:
            continue
        seen.add(url)
        title = (link.get("title") or "").strip() or None
        detected.append(DetectedFeed(url=url, title=title))

    log.debug("feed_links_found", url=response.url, count=len(detected))
    return detected
