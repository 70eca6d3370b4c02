"""XML event stream to nested tree conversion.

The enrollment platform answers with loosely structured XML: repeated
sibling tags carry list semantics, some values live in text nodes and some
in attributes, and tag casing is inconsistent. This module flattens a
document into a sequence of tag events and folds those events back into
plain Python containers.

Node shapes produced by ``parse``:

- ``str``: a leaf when attributes are not captured.
- ``dict``: a node with optional ``"value"`` (text), optional ``"attr"``
  (attribute mapping) and one key per child tag.
- ``list``: repeated sibling tags, in document order.

Untrusted input is tokenized with ``defusedxml`` so entity expansion and
external DTD tricks are rejected before any tree is built.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterator
from xml.etree.ElementTree import Element, ParseError

from defusedxml import DefusedXmlException
from defusedxml.ElementTree import fromstring

logger = logging.getLogger(__name__)

OPEN = "open"
CLOSE = "close"
COMPLETE = "complete"


class TreeParseError(Exception):
    """Raised when the XML tokenizer rejects the input.

    Attributes:
        line: 1-based line number where tokenizing failed (0 if unknown).
    """

    def __init__(self, message: str, line: int = 0):
        self.line = line
        super().__init__(f"XML parsing error: {message} at line {line}")


@dataclass(frozen=True)
class TagEvent:
    """A single open/close/complete event in document order."""

    kind: str
    tag: str
    level: int
    value: str | None = None
    attributes: dict[str, str] = field(default_factory=dict)


# ── Tokenizing ──


def _text_value(text: str | None) -> str | None:
    """Return element text, or None when it is absent or whitespace-only."""
    if text is None or not text.strip():
        return None
    return text


def _walk(element: Element, level: int) -> Iterator[TagEvent]:
    children = list(element)
    attributes = dict(element.attrib)
    value = _text_value(element.text)
    if not children:
        yield TagEvent(COMPLETE, element.tag, level, value, attributes)
        return
    yield TagEvent(OPEN, element.tag, level, value, attributes)
    for child in children:
        yield from _walk(child, level + 1)
    yield TagEvent(CLOSE, element.tag, level)


def tokenize(raw_xml: str) -> list[TagEvent]:
    """Tokenize an XML document into a flat list of tag events.

    Args:
        raw_xml: XML document text.

    Returns:
        Events in document order. Levels start at 1 for the root element.

    Raises:
        TreeParseError: If the document is malformed or uses forbidden
            constructs (entities, external references).
    """
    try:
        root = fromstring(raw_xml.strip())
    except ParseError as exc:
        line = exc.position[0] if getattr(exc, "position", None) else 0
        raise TreeParseError(str(exc), line) from exc
    except DefusedXmlException as exc:
        raise TreeParseError(str(exc)) from exc
    return list(_walk(root, 1))


# ── Tree building ──


def _build_result(event: TagEvent, capture_attributes: bool) -> Any:
    if not capture_attributes:
        return event.value if event.value is not None else ""
    result: dict[str, Any] = {}
    if event.value is not None:
        result["value"] = event.value
    if event.attributes:
        result["attr"] = dict(event.attributes)
    return result


def _insert(parent: dict, tag: str, result: Any) -> Any:
    """Insert ``result`` under ``tag``, turning duplicates into a list.

    Returns the inserted object so callers can descend into it.
    """
    if tag not in parent:
        parent[tag] = result
    elif isinstance(parent[tag], list):
        parent[tag].append(result)
    else:
        parent[tag] = [parent[tag], result]
    return result


def build_tree(events: list[TagEvent], capture_attributes: bool = True) -> dict:
    """Fold tag events into a nested document.

    Args:
        events: Flat events as produced by ``tokenize``.
        capture_attributes: When False, leaves collapse to their text value.

    Returns:
        Root mapping from the top-level tag name to its node.
    """
    document: dict = {}
    parents: dict[int, dict] = {}
    current: dict = document

    for event in events:
        if event.kind == OPEN:
            parents[event.level - 1] = current
            node = _build_result(event, capture_attributes)
            if not isinstance(node, dict):
                # Containers must stay mappings so children can attach
                node = {}
            current = _insert(current, event.tag, node)
        elif event.kind == COMPLETE:
            _insert(current, event.tag, _build_result(event, capture_attributes))
        elif event.kind == CLOSE:
            current = parents.get(event.level - 1, document)
        else:
            logger.debug("Ignoring unknown tag event kind %r", event.kind)

    return document


def parse(raw_xml: str, capture_attributes: bool = True) -> dict:
    """Parse an XML response body into a nested document.

    Args:
        raw_xml: Response body. Empty or whitespace-only input yields ``{}``.
        capture_attributes: Keep ``value``/``attr`` nodes (default) or
            collapse leaves to bare strings.

    Raises:
        TreeParseError: If the XML is malformed.
    """
    if not raw_xml or not raw_xml.strip():
        return {}
    return build_tree(tokenize(raw_xml), capture_attributes)


def parse_simple(raw_xml: str) -> dict:
    """Parse without attributes, returning bare string leaves."""
    return parse(raw_xml, capture_attributes=False)


# ── Node accessors ──


def as_list(node: Any) -> list:
    """Return ``node`` as a list: repeated tags as-is, single nodes wrapped."""
    if node is None:
        return []
    if isinstance(node, list):
        return node
    return [node]


def get_value(document: dict, path: str, default: Any = None) -> Any:
    """Look up a dot-separated path such as ``"message.status.value"``."""
    current: Any = document
    for key in path.split("."):
        if not isinstance(current, dict) or key not in current:
            return default
        current = current[key]
    return current


def node_has_value(node: Any) -> bool:
    if isinstance(node, str):
        return True
    return isinstance(node, dict) and "value" in node


def node_value(node: Any, default: str = "") -> str:
    """Return the text of a node regardless of its shape.

    Lists yield the value of their first element.
    """
    if isinstance(node, list):
        return node_value(node[0], default) if node else default
    if isinstance(node, str):
        return node
    if isinstance(node, dict) and node.get("value") is not None:
        return str(node["value"])
    return default


def node_attr(node: Any, name: str, default: Any = None) -> Any:
    if isinstance(node, dict):
        return node.get("attr", {}).get(name, default)
    return default
