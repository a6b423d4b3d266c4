"""Build ADF documents from lightweight markdown-like text.

Supported markup, enough for agent-written comments:

- Blank lines separate blocks; single newlines inside a block are hard breaks.
- A block whose every non-empty line starts with ``- `` is a bullet list.
- Inline: ``code`` in backticks, ``**bold**``, ``*italic*`` and ``@Full Name``
  mentions, in that order of precedence.
"""

import re
from collections.abc import Callable

from jira_context.models.document import (
    BulletList,
    DocNode,
    Generic,
    HardBreak,
    ListItem,
    Mark,
    Mention,
    Paragraph,
    Text,
)
from jira_context.models.refs import User

UserLookup = Callable[[str], User | None]

_BLOCK_SEPARATOR = re.compile(r"\n[ \t]*\n")
_BULLET = "- "

# Inner punctuation only: "O'Brien" and "Jean-Luc" match, a trailing "." does not.
_NAME_WORD = r"[A-Z]\w*(?:['.-]\w+)*"

# Alternation order is the precedence when two tokens start at the same offset.
_INLINE_TOKEN = re.compile(
    r"`(?P<code>[^`]+)`"
    r"|\*\*(?P<bold>.+?)\*\*"
    r"|\*(?P<italic>[^*\s][^*]*)\*"
    rf"|(?<![\w@])@(?P<mention>{_NAME_WORD}(?: {_NAME_WORD})*)"
)


def build_document(text: str, resolve_user: UserLookup | None = None) -> Generic:
    """Convert text to a ``doc`` root node.

    Args:
        text: Markdown-like input.
        resolve_user: Looks up a display name. Mentions that do not resolve
            stay as literal ``@Name`` text.
    """
    blocks = [b for b in _BLOCK_SEPARATOR.split(text.strip("\n")) if b.strip()]
    return Generic(kind="doc", children=tuple(_encode_block(b, resolve_user) for b in blocks))


def _encode_block(block: str, resolve_user: UserLookup | None) -> DocNode:
    lines = block.split("\n")
    non_empty = [line for line in lines if line.strip()]
    if non_empty and all(line.startswith(_BULLET) for line in non_empty):
        return BulletList(
            children=tuple(
                ListItem(children=(Paragraph(_encode_inline(line[len(_BULLET) :], resolve_user)),))
                for line in non_empty
            )
        )

    children: list[DocNode] = []
    for lnum, line in enumerate(lines):
        if lnum:
            children.append(HardBreak())
        children.extend(_encode_inline(line, resolve_user))
    return Paragraph(children=tuple(children))


def _encode_inline(line: str, resolve_user: UserLookup | None) -> tuple[DocNode, ...]:
    nodes: list[DocNode] = []
    pos = 0
    for match in _INLINE_TOKEN.finditer(line):
        if match.start() > pos:
            nodes.append(Text(line[pos : match.start()]))
        pos = match.end()

        if match.group("code") is not None:
            nodes.append(Text(match.group("code"), (Mark("code"),)))
        elif match.group("bold") is not None:
            nodes.append(Text(match.group("bold"), (Mark("bold"),)))
        elif match.group("italic") is not None:
            nodes.append(Text(match.group("italic"), (Mark("italic"),)))
        else:
            nodes.extend(_encode_mention(match.group("mention"), resolve_user))

    if pos < len(line):
        nodes.append(Text(line[pos:]))
    return _merge_plain_text(nodes)


def _encode_mention(name: str, resolve_user: UserLookup | None) -> list[DocNode]:
    """Resolve the longest leading run of words that names a user."""
    if resolve_user is not None:
        words = name.split(" ")
        for count in range(len(words), 0, -1):
            user = resolve_user(" ".join(words[:count]))
            if user is None:
                continue
            rest = " ".join(words[count:])
            nodes: list[DocNode] = [Mention(id=user.account_id, text=user.display_name)]
            if rest:
                nodes.append(Text(" " + rest))
            return nodes
    return [Text(f"@{name}")]


def _merge_plain_text(nodes: list[DocNode]) -> tuple[DocNode, ...]:
    """Join adjacent unmarked Text runs (unresolved mentions leave them split)."""
    merged: list[DocNode] = []
    for node in nodes:
        prev = merged[-1] if merged else None
        if (
            isinstance(node, Text)
            and not node.marks
            and isinstance(prev, Text)
            and not prev.marks
        ):
            merged[-1] = Text(prev.text + node.text)
        else:
            merged.append(node)
    return tuple(merged)
