"""
FetchXML query helpers.

Table filters are configured as FetchXML fragments (``<filter>`` and
``<order>`` elements) that get wrapped into a full query for the table.
"""

import xml.etree.ElementTree as ET
from collections.abc import Iterable
from dataclasses import dataclass, field
from xml.sax.saxutils import quoteattr


@dataclass
class FetchQuery:
    """Parsed form of a FetchXML query."""

    entity: str
    attributes: list[str] = field(default_factory=list)
    conditions: list[dict[str, str]] = field(default_factory=list)
    filter_type: str = "and"


def build_fetch_xml(
    entity: str,
    filter: str | None = None,
    attributes: Iterable[str] = (),
) -> str:
    """
    Wrap a filter fragment and attribute list into a FetchXML query.

    Args:
        entity: Logical name of the table to query
        filter: Optional inner FetchXML fragment (e.g. ``<filter>...</filter>``)
        attributes: Attributes to select; empty selects all

    Returns:
        FetchXML query string
    """
    inner = "".join(f"<attribute name={quoteattr(name)} />" for name in attributes)
    if filter:
        inner += filter.strip()
    if not inner:
        inner = "<all-attributes />"
    return f"<fetch><entity name={quoteattr(entity)}>{inner}</entity></fetch>"


def parse_fetch_xml(query: str) -> FetchQuery:
    """
    Parse a FetchXML query into entity, attributes and simple conditions.

    Nested filters are flattened; only the top-level filter type is kept.

    Raises:
        ValueError: If the query is not valid FetchXML
    """
    try:
        root = ET.fromstring(query)
    except ET.ParseError as e:
        raise ValueError(f"Invalid FetchXML query: {e}") from e

    entity_element = root.find("entity") if root.tag == "fetch" else None
    if entity_element is None or not entity_element.get("name"):
        raise ValueError("FetchXML query must contain <fetch><entity name='...'>")

    parsed = FetchQuery(entity=entity_element.get("name"))
    parsed.attributes = [
        element.get("name")
        for element in entity_element.findall("attribute")
        if element.get("name")
    ]

    top_filter = entity_element.find("filter")
    if top_filter is not None:
        parsed.filter_type = top_filter.get("type", "and")
        for condition in top_filter.iter("condition"):
            parsed.conditions.append(dict(condition.attrib))

    return parsed
