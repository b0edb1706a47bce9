# ABOUTME: Content sniffing and parsing of fetched responses into queryable lxml trees.
# ABOUTME: Decides HTML vs XML from the body's root marker first, declared content type second.

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog
from lxml import etree, html

from feedwell.errors import UnsupportedDocument
from feedwell.feeds.fetcher import FetchResponse

log = structlog.get_logger()

NAMESPACES = {
    "atom": "http://www.w3.org/2005/Atom",
    "content": "http://purl.org/rss/1.0/modules/content/",
    "dc": "http://purl.org/dc/elements/1.1/",
    "itunes": "http://www.itunes.com/dtds/podcast-1.0.dtd",
    "media": "http://search.yahoo.com/mrss/",
    "rdf": "http://www.w3.org/1999/02/22-rdf-syntax-ns#",
    "rss1": "http://purl.org/rss/1.0/",
}

HTML_MEDIA_TYPES = frozenset({"text/html", "application/xhtml+xml"})
XML_MEDIA_TYPES = frozenset(
    {
        "application/atom+xml",
        "application/rdf+xml",
        "application/rss+xml",
        "application/xml",
        "text/xml",
    }
)
FEED_ROOTS = frozenset({"rss", "feed", "rdf"})

SNIFF_LIMIT = 8192
_BOM = b"\xef\xbb\xbf"
_COMMENT = re.compile(rb"<!--.*?-->", re.DOTALL)
_TAG = re.compile(rb"<\s*([!?]?[A-Za-z][\w:.-]*)")

Query = str | tuple[str, ...]


class DocumentKind(str, Enum):
    """How a document was parsed."""

    HTML = "html"
    XML = "xml"


def sniff_root(body: bytes) -> str | None:
    """Return the local name of the first element in the body, lowercased.

    Skips the BOM, XML declaration, processing instructions and comments.
    A ``<!DOCTYPE html>`` counts as an ``html`` root.
    """
    head = _COMMENT.sub(b"", body[:SNIFF_LIMIT].lstrip().removeprefix(_BOM).lstrip())
    for match in _TAG.finditer(head):
        name = match.group(1).decode("ascii", "ignore").lower()
        if name.startswith("?"):
            continue
        if name == "!doctype":
            if head[match.end() : match.end() + 8].strip().lower().startswith(b"html"):
                return "html"
            continue
        if name.startswith("!"):
            continue
        return name.rsplit(":", 1)[-1]
    return None


def _is_xml_media_type(content_type: str) -> bool:
    return content_type in XML_MEDIA_TYPES or content_type.endswith("+xml")


@dataclass
class Document:
    """A parsed response supporting XPath queries."""

    url: str
    kind: DocumentKind
    root: Any

    @property
    def root_name(self) -> str:
        """Local name of the root element (``rss``, ``feed``, ``RDF``, ``html``...)."""
        return etree.QName(self.root).localname

    def _evaluate(self, expr: str, context: Any | None) -> list[Any]:
        node = self.root if context is None else context
        result = node.xpath(expr, namespaces=NAMESPACES)
        if isinstance(result, list):
            return result
        return [result]

    def query_nodes(self, query: Query, context: Any | None = None) -> list[Any]:
        """Return the element set matched by the first expression that matches anything."""
        for expr in _expressions(query):
            nodes = [n for n in self._evaluate(expr, context) if isinstance(n, etree._Element)]
            if nodes:
                return nodes
        return []

    def query_text(self, query: Query, context: Any | None = None) -> str | None:
        """Return the first non-blank string produced by the expressions, in order.

        Text and attribute results are used as-is; element results contribute
        their full text content.
        """
        for expr in _expressions(query):
            for item in self._evaluate(expr, context):
                if isinstance(item, etree._Element):
                    text = "".join(item.itertext())
                elif isinstance(item, (bool, float)):
                    continue
                else:
                    text = str(item)
                if text.strip():
                    return text
        return None


def _expressions(query: Query) -> tuple[str, ...]:
    return (query,) if isinstance(query, str) else query


class DocumentParser:
    """Turns fetched responses into Documents."""

    def __init__(self) -> None:
        self._xml_parser = etree.XMLParser(
            resolve_entities=False,
            no_network=True,
            recover=True,
            remove_blank_text=True,
        )

    def detect_kind(self, response: FetchResponse) -> DocumentKind:
        """Classify a response as HTML or XML.

        The body's root marker decides first because many feed servers mislabel
        their content type; the declared type is used when the body is inconclusive.

        Raises:
            UnsupportedDocument: If neither the body nor the header identifies the document.
        """
        root = sniff_root(response.body)
        if root == "html":
            return DocumentKind.HTML
        if root in FEED_ROOTS:
            return DocumentKind.XML

        content_type = response.content_type
        if content_type in HTML_MEDIA_TYPES:
            return DocumentKind.HTML
        if content_type and _is_xml_media_type(content_type):
            return DocumentKind.XML

        raise UnsupportedDocument(response.url, content_type)

    def parse(self, response: FetchResponse) -> Document:
        """Parse a response into a Document.

        Raises:
            UnsupportedDocument: If the document cannot be classified or parsed.
        """
        kind = self.detect_kind(response)
        try:
            if kind is DocumentKind.HTML:
                root = html.document_fromstring(response.body)
            else:
                root = etree.fromstring(response.body, parser=self._xml_parser)
        except (etree.ParserError, etree.XMLSyntaxError, ValueError) as e:
            log.warning("document_parse_failed", url=response.url, kind=kind.value, error=str(e))
            raise UnsupportedDocument(response.url, response.content_type) from e

        if root is None:
            raise UnsupportedDocument(response.url, response.content_type)

        log.debug("document_parsed", url=response.url, kind=kind.value)
        return Document(url=response.url, kind=kind, root=root)
