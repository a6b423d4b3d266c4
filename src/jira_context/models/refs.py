"""Value types shared by the extraction, export and aggregation code."""

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class ExtractionResult:
    """Plain text of a document plus every URL found along the way.

    Results compose with ``+``; URLs keep document order and duplicates.
    """

    text: str = ""
    urls: tuple[str, ...] = ()

    def __add__(self, other: "ExtractionResult") -> "ExtractionResult":
        return ExtractionResult(text=self.text + other.text, urls=self.urls + other.urls)


EMPTY = ExtractionResult()


@dataclass(frozen=True)
class TicketRef:
    key: str


@dataclass(frozen=True)
class DesignRef:
    """A Figma file, optionally narrowed to one node (``1:2`` notation)."""

    file_key: str
    node_id: str | None = None


@dataclass(frozen=True)
class ExportableRegion:
    id: str
    name: str
    width: float
    height: float


_MIME_TYPES = {".png": "image/png", ".gif": "image/gif", ".webp": "image/webp"}


@dataclass(frozen=True)
class RetrievedAsset:
    """A downloaded image, already persisted at ``local_path``."""

    name: str
    local_path: Path
    data: bytes = field(repr=False)

    @property
    def mime_type(self) -> str:
        return _MIME_TYPES.get(self.local_path.suffix.lower(), "image/jpeg")


@dataclass(frozen=True)
class User:
    account_id: str
    display_name: str


class VisitState:
    """Ticket keys already fetched during one aggregation run."""

    def __init__(self) -> None:
        self._keys: set[str] = set()

    def mark(self, key: str) -> bool:
        """Record a key. Returns False if it was already visited."""
        norm = key.upper()
        if norm in self._keys:
            return False
        self._keys.add(norm)
        return True

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.upper() in self._keys

    def __len__(self) -> int:
        return len(self._keys)
