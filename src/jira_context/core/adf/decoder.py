"""Flatten ADF document trees to plain text, collecting link URLs."""

from typing import Any

from jira_context.models.document import (
    DocNode,
    HardBreak,
    MediaRef,
    Mention,
    Paragraph,
    SmartLink,
    Text,
    parse_adf,
)
from jira_context.models.refs import EMPTY, ExtractionResult

MEDIA_PLACEHOLDER = "[image attachment]\n"


def decode(node: DocNode | None) -> ExtractionResult:
    """Render a node and its descendants as text.

    Args:
        node: Any DocNode, usually the ``doc`` root. None is treated as empty.

    Returns:
        The text plus, in document order, the href of every link mark and the
        URL of every card node.
    """
    if node is None:
        return EMPTY
    if isinstance(node, Text):
        hrefs = tuple(m.href for m in node.marks if m.kind == "link" and m.href)
        return ExtractionResult(node.text, hrefs)
    if isinstance(node, Paragraph):
        return _decode_children(node.children) + ExtractionResult("\n")
    if isinstance(node, HardBreak):
        return ExtractionResult("\n")
    if isinstance(node, Mention):
        return ExtractionResult(f"@{node.text or 'user'}")
    if isinstance(node, MediaRef):
        # Binary content is fetched separately as an attachment.
        return ExtractionResult(MEDIA_PLACEHOLDER)
    if isinstance(node, SmartLink):
        if not node.url:
            return EMPTY
        return ExtractionResult(node.url + "\n", (node.url,))
    return _decode_children(getattr(node, "children", ()))


def _decode_children(children: tuple[DocNode, ...]) -> ExtractionResult:
    result = EMPTY
    for child in children:
        result = result + decode(child)
    return result


def extract_text(raw: Any) -> ExtractionResult:
    """Decode raw ADF JSON (or a plain string, or None) in one step."""
    return decode(parse_adf(raw))
