# ABOUTME: OPML subscription list reader.
# ABOUTME: Flattens nested outlines into the feed URLs an import should subscribe to.

from dataclasses import dataclass

from lxml import etree

from feedwell.errors import InvalidOpml


@dataclass(frozen=True)
class Outline:
    """One feed outline from an OPML document."""

    xml_url: str
    text: str | None = None
    title: str | None = None
    html_url: str | None = None


def parse_opml(data: bytes | str) -> list[Outline]:
    """Read the feed outlines from an OPML document.

    Folder outlines (without ``xmlUrl``) are walked but not returned. Duplicate
    feed URLs keep their first occurrence.

    Raises:
        InvalidOpml: If the document is not well-formed OPML.
    """
    if isinstance(data, str):
        data = data.encode("utf-8")

    parser = etree.XMLParser(resolve_entities=False, no_network=True)
    try:
        root = etree.fromstring(data, parser=parser)
    except etree.XMLSyntaxError as e:
        raise InvalidOpml(f"Malformed OPML: {e}") from e

    if etree.QName(root).localname != "opml":
        raise InvalidOpml(f"Expected <opml> root, found <{etree.QName(root).localname}>")

    outlines: list[Outline] = []
    seen: set[str] = set()
    for node in root.iter("outline"):
        xml_url = (node.get("xmlUrl") or "").strip()
        if not xml_url or xml_url in seen:
            continue
        seen.add(xml_url)
        outlines.append(
            Outline(
                xml_url=xml_url,
                text=node.get("text"),
                title=node.get("title"),
                html_url=node.get("htmlUrl"),
            )
        )
    return outlines
