"""A small tagged tree for XML documents plus depth-first search helpers.

Manifest and JATS lookups are all phrased as "first/all elements named X whose
attributes satisfy P", so they share :func:`find_first` and :func:`find_all` instead
of hand-walking the tree per field.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field


@dataclass(slots=True)
class Text:
    value: str


@dataclass(slots=True)
class Element:
    name: str
    attributes: dict[str, str] = field(default_factory=dict)
    children: list[Element | Text] = field(default_factory=list)

    def get(self, attribute: str, default: str | None = None) -> str | None:
        return self.attributes.get(attribute, default)

    def elements(self) -> Iterator[Element]:
        """Direct element children, in document order."""
        for child in self.children:
            if isinstance(child, Element):
                yield child


Node = Element | Text
Predicate = Callable[[Element], bool]


def local_name(qualified: str) -> str:
    """Drop a ``{namespace}`` or ``prefix:`` qualifier from a tag or attribute name."""
    if qualified.startswith("{"):
        qualified = qualified.split("}", maxsplit=1)[1]
    return qualified.rsplit(":", maxsplit=1)[-1]


def from_etree(source: ET.Element) -> Element:
    """Convert an ElementTree element (and its subtree) into the tagged tree."""

    node = Element(
        name=local_name(source.tag),
        attributes={local_name(key): value for key, value in source.attrib.items()},
    )
    if source.text:
        node.children.append(Text(source.text))
    for child in source:
        if not isinstance(child.tag, str):
            # comments and processing instructions
            if child.tail:
                node.children.append(Text(child.tail))
            continue
        node.children.append(from_etree(child))
        if child.tail:
            node.children.append(Text(child.tail))
    return node


def parse_xml(content: str | bytes) -> Element:
    """Parse *content* into a tagged tree. Raises ``xml.etree.ElementTree.ParseError``."""
    return from_etree(ET.fromstring(content))


def iter_elements(root: Element) -> Iterator[Element]:
    """Depth-first, pre-order traversal starting with *root* itself."""

    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(list(node.elements())))


def find_all(root: Element, name: str, predicate: Predicate | None = None) -> list[Element]:
    return [
        node
        for node in iter_elements(root)
        if node.name == name and (predicate is None or predicate(node))
    ]


def find_first(root: Element, name: str, predicate: Predicate | None = None) -> Element | None:
    for node in iter_elements(root):
        if node.name == name and (predicate is None or predicate(node)):
            return node
    return None


def attr_equals(attribute: str, value: str) -> Predicate:
    def _matches(node: Element) -> bool:
        return node.get(attribute) == value

    return _matches


def text_content(node: Node) -> str:
    """Concatenate every text node below *node*."""

    if isinstance(node, Text):
        return node.value
    parts: list[str] = []
    stack: list[Node] = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, Text):
            parts.append(current.value)
        else:
            stack.extend(reversed(current.children))
    return "".join(parts)


__all__ = [
    "Element",
    "Node",
    "Predicate",
    "Text",
    "attr_equals",
    "find_all",
    "find_first",
    "from_etree",
    "iter_elements",
    "local_name",
    "parse_xml",
    "text_content",
]
