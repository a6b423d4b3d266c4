"""Find ticket keys and Figma links mentioned in free text."""

import re
from urllib.parse import parse_qs, urlparse

from jira_context.models.refs import DesignRef, TicketRef

# .../browse/PROJ-123 on any Jira host.
_BROWSE_URL = re.compile(r"https?://\S+?/browse/(?P<key>[A-Z][A-Z0-9_]*-\d+)", re.IGNORECASE)

# Bare PROJ-123. No project allowlist, so strings like "UTF-8" match too.
_BARE_KEY = re.compile(r"\b(?P<key>[A-Z][A-Z0-9_]*-\d+)\b", re.IGNORECASE)

_FIGMA_URL = re.compile(
    r"https://(?:www\.)?figma\.com/(?:file|design|proto)/[a-zA-Z0-9]+/[^\s)>\]\"']*"
)
_FIGMA_PATH_KEYWORDS = ("file", "design", "proto")


def find_ticket_refs(text: str, exclude_key: str | None = None) -> list[TicketRef]:
    """Collect ticket keys from browse URLs and bare tokens.

    Args:
        text: Text to scan.
        exclude_key: The current ticket, never returned.

    Returns:
        Uppercase keys, deduplicated, in order of first appearance.
    """
    if not text:
        return []
    excluded = exclude_key.upper() if exclude_key else None

    found: list[tuple[int, str]] = []
    for pattern in (_BROWSE_URL, _BARE_KEY):
        found.extend((m.start("key"), m.group("key").upper()) for m in pattern.finditer(text))

    seen: set[str] = set()
    refs: list[TicketRef] = []
    for _pos, key in sorted(found):
        if key == excluded or key in seen:
            continue
        seen.add(key)
        refs.append(TicketRef(key))
    return refs


def find_design_refs(text: str) -> list[str]:
    """Return Figma file/design/prototype URLs in text, deduplicated in order."""
    if not text:
        return []
    return list(dict.fromkeys(m.group(0) for m in _FIGMA_URL.finditer(text)))


def is_design_url(url: str) -> bool:
    host = (urlparse(url).hostname or "").lower()
    return host == "figma.com" or host.endswith(".figma.com")


def parse_design_url(url: str) -> DesignRef | None:
    """Extract the file key and node id from a Figma URL.

    Figma URLs write node ids as ``1-2``; the API expects ``1:2``.
    Returns None when the path has no file/design/proto segment.
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return None

    parts = parsed.path.split("/")
    file_key: str | None = None
    for i, part in enumerate(parts):
        if part in _FIGMA_PATH_KEYWORDS:
            file_key = parts[i + 1] if i + 1 < len(parts) else None
            break
    if not file_key:
        return None

    raw_node_id = parse_qs(parsed.query).get("node-id", [None])[0]
    node_id = raw_node_id.replace("-", ":") if raw_node_id else None
    return DesignRef(file_key=file_key, node_id=node_id)
