"""Rich-text document tree exchanged with Jira (Atlassian Document Format)."""

from dataclasses import dataclass, field
from typing import Any, Union


@dataclass(frozen=True)
class Mark:
    """Inline formatting on a text run. ``href`` is set only for links."""

    kind: str
    href: str | None = None


@dataclass(frozen=True)
class Text:
    text: str
    marks: tuple[Mark, ...] = ()


@dataclass(frozen=True)
class Paragraph:
    children: tuple["DocNode", ...] = ()


@dataclass(frozen=True)
class HardBreak:
    pass


@dataclass(frozen=True)
class Mention:
    """A user reference. ``text`` is the display name without the leading @."""

    id: str
    text: str = ""


@dataclass(frozen=True)
class MediaRef:
    kind: str
    children: tuple["DocNode", ...] = ()


@dataclass(frozen=True)
class SmartLink:
    """Inline, block or embed card pointing at a URL."""

    kind: str
    url: str | None = None


@dataclass(frozen=True)
class BulletList:
    children: tuple["DocNode", ...] = ()


@dataclass(frozen=True)
class ListItem:
    children: tuple["DocNode", ...] = ()


@dataclass(frozen=True)
class Blockquote:
    children: tuple["DocNode", ...] = ()


@dataclass(frozen=True)
class Generic:
    """Any node kind without dedicated handling, including the ``doc`` root."""

    kind: str
    children: tuple["DocNode", ...] = ()
    attrs: dict[str, Any] = field(default_factory=dict)


DocNode = Union[
    Text,
    Paragraph,
    HardBreak,
    Mention,
    MediaRef,
    SmartLink,
    BulletList,
    ListItem,
    Blockquote,
    Generic,
]

MEDIA_TYPES = frozenset({"mediaGroup", "mediaSingle"})
CARD_TYPES = frozenset({"inlineCard", "blockCard", "embedCard"})

# ADF mark type -> Mark.kind
_MARKS_FROM_ADF = {"strong": "bold", "em": "italic", "code": "code", "link": "link"}
_MARKS_TO_ADF = {v: k for k, v in _MARKS_FROM_ADF.items()}

_CONTAINERS: dict[str, type] = {
    "paragraph": Paragraph,
    "bulletList": BulletList,
    "listItem": ListItem,
    "blockquote": Blockquote,
}


def empty_document() -> Generic:
    return Generic(kind="doc")


def parse_adf(raw: Any) -> DocNode:
    """Decode untrusted ADF JSON into a DocNode tree.

    Args:
        raw: An ADF dict, a plain string (older API fields), or None.

    Returns:
        The root node. Unknown node types become Generic nodes that keep
        their type name, attrs and children.
    """
    if raw is None:
        return empty_document()
    if isinstance(raw, str):
        return Generic(kind="doc", children=(Text(raw),) if raw else ())
    if not isinstance(raw, dict):
        msg = f"ADF node must be an object, got {type(raw).__name__}"
        raise ValueError(msg)
    return _parse_node(raw)


def _parse_node(raw: dict[str, Any]) -> DocNode:
    kind = raw.get("type", "")
    attrs = raw.get("attrs") or {}
    children = tuple(_parse_node(c) for c in raw.get("content") or () if isinstance(c, dict))

    if kind == "text":
        return Text(text=raw.get("text") or "", marks=_parse_marks(raw.get("marks") or ()))
    if kind == "hardBreak":
        return HardBreak()
    if kind == "mention":
        return Mention(id=attrs.get("id") or "", text=(attrs.get("text") or "").lstrip("@"))
    if kind in MEDIA_TYPES:
        return MediaRef(kind=kind, children=children)
    if kind in CARD_TYPES:
        return SmartLink(kind=kind, url=attrs.get("url"))
    if kind in _CONTAINERS:
        return _CONTAINERS[kind](children=children)
    return Generic(kind=kind, children=children, attrs=dict(attrs))


def _parse_marks(raw_marks: Any) -> tuple[Mark, ...]:
    marks: list[Mark] = []
    for m in raw_marks:
        if not isinstance(m, dict):
            continue
        kind = _MARKS_FROM_ADF.get(m.get("type", ""), m.get("type", ""))
        href = (m.get("attrs") or {}).get("href") if kind == "link" else None
        marks.append(Mark(kind=kind, href=href))
    return tuple(marks)


def to_adf(node: DocNode) -> dict[str, Any]:
    """Serialize a DocNode tree back to ADF JSON."""
    if isinstance(node, Text):
        out: dict[str, Any] = {"type": "text", "text": node.text}
        if node.marks:
            out["marks"] = [_mark_to_adf(m) for m in node.marks]
        return out
    if isinstance(node, HardBreak):
        return {"type": "hardBreak"}
    if isinstance(node, Mention):
        return {"type": "mention", "attrs": {"id": node.id, "text": f"@{node.text}"}}
    if isinstance(node, SmartLink):
        return {"type": node.kind, "attrs": {"url": node.url}}
    if isinstance(node, MediaRef):
        return {"type": node.kind, "content": [to_adf(c) for c in node.children]}
    if isinstance(node, Generic):
        out = {"type": node.kind}
        if node.kind == "doc":
            out["version"] = 1
        if node.attrs:
            out["attrs"] = dict(node.attrs)
        out["content"] = [to_adf(c) for c in node.children]
        return out

    kind = next(k for k, cls in _CONTAINERS.items() if isinstance(node, cls))
    return {"type": kind, "content": [to_adf(c) for c in node.children]}


def _mark_to_adf(mark: Mark) -> dict[str, Any]:
    out: dict[str, Any] = {"type": _MARKS_TO_ADF.get(mark.kind, mark.kind)}
    if mark.kind == "link":
        out["attrs"] = {"href": mark.href}
    return out
