"""Metadata extraction from the JATS manuscript XML inside a MECA archive.

Source XML from the preprint servers is frequently not well-formed: stray ampersands
in funder names, HTML named entities that XML does not define, and declarations that
do not sit on the first line. :func:`preprocess_xml` repairs those before parsing.
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import date
from html.entities import html5
from pathlib import Path

from ..errors import MetadataError
from ..utils.xmltree import Element, attr_equals, find_all, find_first, parse_xml, text_content

logger = logging.getLogger(__name__)

DECLARATION_SEARCH_LINES = 5
DEFAULT_VERSION_LABEL = "1.1"

_XML_DECLARATION = re.compile(r"<\?xml\s[^>]*\?>")
_REFERENCE = re.compile(r"&(#[0-9]+;|#[xX][0-9a-fA-F]+;|[A-Za-z][A-Za-z0-9]*;)?")
_XML_SPECIAL = frozenset("&<>\"'")
_NAMED_ENTITIES = {name[:-1]: value for name, value in html5.items() if name.endswith(";")}

# Data-specific patches for attribute runs observed in bioRxiv source files. No
# replacement may re-create its own pattern, so preprocessing stays idempotent.
KNOWN_ATTRIBUTE_FIXES: tuple[tuple[re.Pattern[str], str], ...] = (
    # repeated xlink namespace declaration on the article root
    (
        re.compile(r'( xmlns:xlink="http://www\.w3\.org/1999/xlink")(?:\s+xmlns:xlink="[^"]*")+'),
        r"\1",
    ),
    # missing separator between ext-link attributes
    (re.compile(r'ext-link-type="([^"]*)"xlink:href='), r'ext-link-type="\1" xlink:href='),
)


@dataclass(slots=True)
class ExtractedMetadata:
    """Bibliographic fields needed to register one manuscript version."""

    doi: str
    version_number: int
    version_label: str
    received_date: str
    accepted_date: str | None = None
    title: str | None = None


def _hoist_declaration(content: str) -> str:
    head = "\n".join(content.split("\n", DECLARATION_SEARCH_LINES)[:DECLARATION_SEARCH_LINES])
    match = _XML_DECLARATION.search(head)
    if match is None or match.start() == 0:
        return content
    remainder = (content[: match.start()] + content[match.end() :]).lstrip()
    return f"{match.group(0)}\n{remainder}"


def _numeric(value: str) -> str:
    return "".join(f"&#{ord(char)};" if char in _XML_SPECIAL else char for char in value)


def _replace_reference(match: re.Match[str]) -> str:
    reference = match.group(1)
    if reference is None:
        return "&#38;"
    if reference.startswith("#"):
        return match.group(0)
    value = _NAMED_ENTITIES.get(reference[:-1])
    if value is None:
        return "&#38;" + reference
    return _numeric(value)


def preprocess_xml(content: str) -> str:
    """Make raw manuscript XML parseable. Applying it twice changes nothing."""

    processed = _hoist_declaration(content)
    # One pass covers both bare ampersands and named entities: every "&" ends up
    # starting a numeric character reference.
    processed = _REFERENCE.sub(_replace_reference, processed)
    for pattern, replacement in KNOWN_ATTRIBUTE_FIXES:
        processed = pattern.sub(replacement, processed)
    return processed


def _compose_date(node: Element) -> str | None:
    parts = []
    for field_name in ("year", "month", "day"):
        child = find_first(node, field_name)
        value = text_content(child).strip() if child is not None else ""
        if not value:
            return None
        parts.append(value)
    year, month, day = parts
    if not all(part.isascii() and part.isdigit() for part in parts):
        raise MetadataError(f"Non-numeric date in JATS XML: {year}/{month}/{day}")
    try:
        composed = date(int(year), int(month), int(day))
    except ValueError as exc:
        raise MetadataError(f"Invalid date in JATS XML: {year}/{month}/{day}: {exc}") from exc
    return composed.isoformat()


def extract_doi(root: Element) -> str:
    for node in find_all(root, "article-id", attr_equals("pub-id-type", "doi")):
        value = text_content(node).strip()
        if value:
            return value
    raise MetadataError("DOI not found in JATS XML")


def extract_version(root: Element) -> tuple[str, int]:
    """Return the ``major.minor`` label and the minor part used as the version number."""

    node = find_first(root, "article-version")
    label = text_content(node).strip() if node is not None else ""
    if not label:
        return DEFAULT_VERSION_LABEL, 1
    parts = label.split(".")
    minor = parts[1].strip() if len(parts) > 1 else ""
    return label, int(minor) if minor.isdigit() else 1


def extract_dates(root: Element) -> tuple[str, str | None]:
    """Return ``(received, accepted)`` as ``YYYY-MM-DD`` strings."""

    received: str | None = None
    accepted: str | None = None
    history = find_first(root, "history")
    if history is not None:
        for node in find_all(history, "date"):
            value = _compose_date(node)
            if value is None:
                continue
            date_type = node.get("date-type")
            if date_type == "received" and received is None:
                received = value
            elif date_type == "accepted" and accepted is None:
                accepted = value

    if received is None:
        for node in find_all(root, "pub-date", attr_equals("pub-type", "epub")):
            received = _compose_date(node)
            if received is not None:
                break

    if received is None and accepted is not None:
        logger.warning("No received date in JATS XML; using accepted date %s", accepted)
        received = accepted

    if received is None:
        raise MetadataError("Neither a received nor an accepted date was found in JATS XML")
    return received, accepted


def extract_title(root: Element) -> str | None:
    node = find_first(root, "article-title")
    if node is None:
        return None
    title = text_content(node).strip()
    return title or None


def parse_tree(content: str) -> Element:
    try:
        return parse_xml(content)
    except ET.ParseError as exc:
        raise MetadataError(f"Could not parse JATS XML: {exc}") from exc


def extract_metadata(content: str) -> ExtractedMetadata:
    """Preprocess, parse and search manuscript XML for registration metadata."""

    root = parse_tree(preprocess_xml(content))

    doi = extract_doi(root)
    label, number = extract_version(root)
    received, accepted = extract_dates(root)
    return ExtractedMetadata(
        doi=doi,
        version_number=number,
        version_label=label,
        received_date=received,
        accepted_date=accepted,
        title=extract_title(root),
    )


def parse_jats_file(path: Path) -> ExtractedMetadata:
    try:
        content = path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as exc:
        raise MetadataError(f"Could not read JATS XML {path}: {exc}") from exc
    return extract_metadata(content)


__all__ = [
    "ExtractedMetadata",
    "KNOWN_ATTRIBUTE_FIXES",
    "extract_dates",
    "extract_doi",
    "extract_metadata",
    "extract_title",
    "extract_version",
    "parse_jats_file",
    "parse_tree",
    "preprocess_xml",
]
