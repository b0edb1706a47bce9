# ABOUTME: XPath rule tables locating feed-level and entry-level fields for RSS and Atom.
# ABOUTME: Each field lists expressions tried in order; the first non-blank match wins.

from dataclasses import dataclass

Exprs = tuple[str, ...]


@dataclass(frozen=True)
class FeedRules:
    """Where to find each field in a feed document.

    Feed-level expressions are evaluated against the document root, entry-level
    expressions against each node matched by ``entries``. An empty ``feed_link``
    means the requested URL stands in for the feed link; empty description,
    author or thumbnail tuples mean the field is always empty.
    """

    name: str
    feed_title: Exprs
    entries: Exprs
    entry_link: Exprs
    entry_title: Exprs
    entry_published: Exprs
    feed_link: Exprs = ()
    entry_description: Exprs = ()
    entry_author: Exprs = ()
    entry_thumbnail: Exprs = ()


RSS_RULES = FeedRules(
    name="rss",
    feed_link=(
        "/rss/channel/link/text()",
        "/rss/channel/atom:link[@rel='alternate']/@href",
        "/rdf:RDF/rss1:channel/rss1:link/text()",
    ),
    feed_title=(
        "/rss/channel/title/text()",
        "/rss/channel/dc:title/text()",
        "/rss/channel/itunes:title/text()",
        "/rdf:RDF/rss1:channel/rss1:title/text()",
    ),
    entries=("/rss/channel/item", "/rdf:RDF/rss1:item"),
    entry_link=(
        "./link/text()",
        "./guid[not(@isPermaLink='false')]/text()",
        "./rss1:link/text()",
        "./@rdf:about",
    ),
    entry_title=(
        "./title/text()",
        "./dc:title/text()",
        "./media:group/media:title/text()",
        "./media:title/text()",
        "./itunes:title/text()",
        "./rss1:title/text()",
    ),
    entry_published=("./pubDate/text()", "./dc:date/text()"),
    entry_description=(
        "./description/text()",
        "./content:encoded/text()",
        "./dc:description/text()",
        "./media:group/media:description/text()",
        "./media:description/text()",
        "./rss1:description/text()",
    ),
    entry_author=(
        "./author/text()",
        "./dc:creator/text()",
        "./itunes:author/text()",
        "/rss/channel/itunes:author/text()",
    ),
    entry_thumbnail=(
        "./enclosure[starts-with(@type, 'image/')]/@url",
        "./media:group/media:thumbnail/@url",
        "./media:thumbnail/@url",
        "./media:content[@medium='image']/@url",
        "./itunes:image/@href",
    ),
)

ATOM_RULES = FeedRules(
    name="atom",
    feed_link=(
        "/atom:feed/atom:link[@rel='alternate']/@href",
        "/atom:feed/atom:link[not(@rel)]/@href",
    ),
    feed_title=("/atom:feed/atom:title",),
    entries=("/atom:feed/atom:entry",),
    entry_link=(
        "./atom:link[@rel='alternate']/@href",
        "./atom:link[not(@rel)]/@href",
        "./atom:link/@href",
    ),
    entry_title=(
        "./media:group/media:title/text()",
        "./atom:title",
    ),
    entry_published=("./atom:published/text()", "./atom:updated/text()"),
    entry_description=(
        "./media:group/media:description/text()",
        "./atom:summary",
        "./atom:content",
    ),
    entry_author=("./atom:author/atom:name/text()",),
    entry_thumbnail=(
        "./media:group/media:thumbnail/@url",
        "./media:thumbnail/@url",
    ),
)
