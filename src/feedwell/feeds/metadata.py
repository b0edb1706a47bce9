# ABOUTME: Page metadata for bookmarks: basic <meta> tags, Open Graph, and schema.org objects.
# ABOUTME: schema.org objects are read from JSON-LD scripts and from microdata itemscope elements.

import json
from dataclasses import dataclass, field
from typing import Any

import structlog

from feedwell.feeds.document import Document

log = structlog.get_logger()

# schema.org types a bookmark draws fields from; subtypes fold into their parent
SCHEMA_TYPES = {
    "Article": "Article",
    "NewsArticle": "Article",
    "BlogPosting": "Article",
    "WebPage": "WebPage",
    "VideoObject": "VideoObject",
    "WebSite": "WebSite",
    "ImageObject": "ImageObject",
    "Person": "Person",
}


@dataclass
class SchemaObject:
    """The bookmark-relevant fields of one schema.org object."""

    type: str
    name: str | None = None
    url: str | None = None
    author: str | None = None
    date_published: str | None = None
    thumbnail: str | None = None


@dataclass
class OpenGraph:
    """Open Graph properties of a page."""

    title: str | None = None
    type: str | None = None
    image: str | None = None
    published_time: str | None = None


@dataclass
class PageMetadata:
    """Everything a bookmark scraper can use from one HTML page."""

    title: str | None = None
    author: str | None = None
    open_graph: OpenGraph | None = None
    schema_org: list[SchemaObject] = field(default_factory=list)


def parse_metadata(document: Document) -> PageMetadata:
    """Collect basic, Open Graph and schema.org metadata from a parsed page.

    JSON-LD objects come before microdata objects, each in document order.
    """
    return PageMetadata(
        title=document.query_text(("/html/head/title", "//meta[@name='title']/@content")),
        author=document.query_text("//meta[@name='author']/@content"),
        open_graph=_open_graph(document),
        schema_org=[*_json_ld(document), *_microdata(document)],
    )


def _open_graph(document: Document) -> OpenGraph | None:
    if not document.query_nodes("//meta[starts-with(@property, 'og:')]"):
        return None
    return OpenGraph(
        title=document.query_text("//meta[@property='og:title']/@content"),
        type=document.query_text("//meta[@property='og:type']/@content"),
        image=document.query_text(
            (
                "//meta[@property='og:image']/@content",
                "//meta[@property='og:image:url']/@content",
                "//meta[@property='og:image:secure_url']/@content",
            )
        ),
        published_time=document.query_text("//meta[@property='article:published_time']/@content"),
    )


def _json_ld(document: Document) -> list[SchemaObject]:
    objects: list[SchemaObject] = []
    for script in document.query_nodes("//script[@type='application/ld+json']"):
        try:
            data = json.loads(script.text or "")
        except ValueError as e:
            log.debug("json_ld_invalid", url=document.url, error=str(e))
            continue
        for item in _json_ld_items(data):
            schema = schema_object(item)
            if schema is not None:
                objects.append(schema)
    return objects


def _json_ld_items(data: Any) -> list[dict[str, Any]]:
    if isinstance(data, list):
        return [item for value in data for item in _json_ld_items(value)]
    if isinstance(data, dict):
        if "@graph" in data:
            return _json_ld_items(data["@graph"])
        return [data]
    return []


def _microdata(document: Document) -> list[SchemaObject]:
    objects: list[SchemaObject] = []
    # Top-level items only; nested items are properties of their parent
    for scope in document.query_nodes("//*[@itemscope][@itemtype][not(@itemprop)]"):
        schema = schema_object(_microdata_item(scope))
        if schema is not None:
            objects.append(schema)
    return objects


def _microdata_item(scope: Any) -> dict[str, Any]:
    item: dict[str, Any] = {"@type": scope.get("itemtype", "")}
    for node in scope.iterdescendants():
        prop = node.get("itemprop") if isinstance(node.tag, str) else None
        if not prop:
            continue
        owners = node.xpath("ancestor::*[@itemscope][1]")
        if not owners or owners[0] is not scope:
            continue
        if "itemscope" in node.attrib:
            value: Any = _microdata_item(node)
        else:
            value = _microdata_value(node)
        for name in prop.split():
            item.setdefault(name, value)
    return item


def _microdata_value(node: Any) -> str | None:
    for attr in ("content", "href", "src", "datetime"):
        value = node.get(attr)
        if value and value.strip():
            return value.strip()
    return "".join(node.itertext()).strip() or None


def schema_object(data: dict[str, Any]) -> SchemaObject | None:
    """Map a JSON-LD or microdata object onto a SchemaObject.

    Returns:
        None when the object's type is not one bookmarks use.
    """
    kind = _schema_type(data.get("@type"))
    if kind is None:
        return None
    return SchemaObject(
        type=kind,
        name=_text(data.get("name")) or _text(data.get("headline")),
        url=_text(data.get("url")),
        author=_name(data.get("author")),
        date_published=_text(data.get("datePublished")),
        thumbnail=_text(data.get("thumbnailUrl")) or _image_url(data.get("thumbnail")),
    )


def _schema_type(value: Any) -> str | None:
    candidates = value if isinstance(value, list) else [value]
    for candidate in candidates:
        if isinstance(candidate, str):
            kind = SCHEMA_TYPES.get(candidate.rstrip("/").rsplit("/", 1)[-1])
            if kind is not None:
                return kind
    return None


def _text(value: Any) -> str | None:
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, list):
        return next((t for t in map(_text, value) if t), None)
    return None


def _name(value: Any) -> str | None:
    if isinstance(value, dict):
        return _text(value.get("name"))
    if isinstance(value, list):
        return next((n for n in map(_name, value) if n), None)
    return _text(value)


def _image_url(value: Any) -> str | None:
    if isinstance(value, dict):
        return _text(value.get("url")) or _text(value.get("contentUrl"))
    if isinstance(value, list):
        return next((u for u in map(_image_url, value) if u), None)
    return _text(value)
