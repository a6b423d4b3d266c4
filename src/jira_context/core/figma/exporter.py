"""Export Figma nodes as PNG files, splitting large frames into child regions."""

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import requests
from loguru import logger

from jira_context.core.figma.fetcher import RateLimited
from jira_context.core.references.extractor import parse_design_url
from jira_context.errors import RemoteError
from jira_context.models.refs import ExportableRegion, RetrievedAsset
from jira_context.protocols import FigmaApiProtocol

# Frames bigger than this are exported as their children instead.
LARGE_WIDTH = 1500
LARGE_HEIGHT = 2000

EXPORTABLE_TYPES = frozenset({"FRAME", "COMPONENT", "GROUP", "SECTION"})
MIN_REGION_SIZE = 100
MAX_REGIONS = 8

RENDER_PARAMS = {"format": "png", "scale": 2}


class ExportErrorKind(Enum):
    NOT_CONFIGURED = "not_configured"
    INVALID_URL = "invalid_url"
    RATE_LIMITED = "rate_limited"
    ACCESS_DENIED = "access_denied"
    NOT_FOUND = "not_found"
    API_ERROR = "api_error"
    FETCH_FAILED = "fetch_failed"


@dataclass(frozen=True)
class DesignExportError:
    kind: ExportErrorKind
    message: str


@dataclass(frozen=True)
class NodeExport:
    node_name: str | None
    images: tuple[RetrievedAsset, ...] = ()


@dataclass(frozen=True)
class DesignExport:
    """File metadata plus the images exported for the linked node."""

    url: str
    name: str
    last_modified: str | None
    node_id: str | None
    node_name: str | None
    images: tuple[RetrievedAsset, ...] = ()


def asset_path(exports_dir: Path, file_key: str, node_id: str) -> Path:
    sanitized = re.sub(r"[^a-zA-Z0-9-]", "_", node_id)
    return exports_dir / f"{file_key}_{sanitized}.png"


def _checked(
    response: requests.Response | RateLimited,
) -> requests.Response | DesignExportError:
    """Pass a 2xx response through; turn anything else into an error value."""
    if isinstance(response, RateLimited):
        return DesignExportError(
            ExportErrorKind.RATE_LIMITED,
            f"Figma API rate limit exceeded. Try again in {response.estimate}.",
        )
    status = response.status_code
    if 200 <= status < 300:
        return response
    if status == 403:
        return DesignExportError(
            ExportErrorKind.ACCESS_DENIED,
            "Figma access denied. Check your token or file permissions.",
        )
    if status == 404:
        return DesignExportError(ExportErrorKind.NOT_FOUND, "Figma file not found. Check the URL.")
    return DesignExportError(ExportErrorKind.API_ERROR, f"Figma API error: {status}")


def is_large(box: dict[str, Any] | None) -> bool:
    if not box:
        return False
    return box.get("width", 0) > LARGE_WIDTH or box.get("height", 0) > LARGE_HEIGHT


def exportable_regions(document: dict[str, Any]) -> list[ExportableRegion]:
    """Children of a node that are worth rendering on their own."""
    regions: list[ExportableRegion] = []
    for child in document.get("children") or ():
        box = child.get("absoluteBoundingBox") or {}
        width, height = box.get("width", 0), box.get("height", 0)
        if child.get("type") not in EXPORTABLE_TYPES:
            continue
        if width < MIN_REGION_SIZE or height < MIN_REGION_SIZE:
            continue
        regions.append(
            ExportableRegion(
                id=child["id"], name=child.get("name") or child["id"], width=width, height=height
            )
        )
    return regions


def _render_urls(
    figma: FigmaApiProtocol, file_key: str, node_ids: list[str]
) -> dict[str, str | None] | DesignExportError:
    """Ask Figma to render a batch of nodes; returns node id -> image URL."""
    res = _checked(figma.get(f"/images/{file_key}", {"ids": ",".join(node_ids), **RENDER_PARAMS}))
    if isinstance(res, DesignExportError):
        return res
    return res.json().get("images") or {}


def _store(path: Path, name: str, data: bytes) -> RetrievedAsset:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return RetrievedAsset(name=name, local_path=path, data=data)


def _cached(path: Path, name: str) -> RetrievedAsset | None:
    # Check-then-write; concurrent writers to the same file are not guarded.
    if not path.exists():
        return None
    logger.debug("Figma export cached: {}", path)
    return RetrievedAsset(name=name, local_path=path, data=path.read_bytes())


def _export_regions(
    figma: FigmaApiProtocol,
    file_key: str,
    regions: list[ExportableRegion],
    exports_dir: Path,
) -> tuple[RetrievedAsset, ...] | DesignExportError:
    candidates = regions[:MAX_REGIONS]
    assets: dict[str, RetrievedAsset] = {}
    for region in candidates:
        hit = _cached(asset_path(exports_dir, file_key, region.id), region.name)
        if hit:
            assets[region.id] = hit

    to_render = [r for r in candidates if r.id not in assets]
    if to_render:
        urls = _render_urls(figma, file_key, [r.id for r in to_render])
        if isinstance(urls, DesignExportError):
            if not assets:
                return urls
            logger.warning("Figma render failed for {}, using cached images: {}", file_key, urls)
            urls = {}

        for region in to_render:
            image_url = urls.get(region.id)
            if not image_url:
                continue
            try:
                data = figma.download(image_url)
            except (RemoteError, requests.RequestException) as e:
                logger.warning("Skipping Figma region {} ({}): {}", region.name, region.id, e)
                continue
            assets[region.id] = _store(
                asset_path(exports_dir, file_key, region.id), region.name, data
            )

    return tuple(assets[r.id] for r in candidates if r.id in assets)


def _export_whole(
    figma: FigmaApiProtocol, file_key: str, node_id: str, name: str, exports_dir: Path
) -> tuple[RetrievedAsset, ...] | DesignExportError:
    path = asset_path(exports_dir, file_key, node_id)
    hit = _cached(path, name)
    if hit:
        return (hit,)

    urls = _render_urls(figma, file_key, [node_id])
    if isinstance(urls, DesignExportError):
        return urls
    image_url = urls.get(node_id)
    if not image_url:
        return ()
    return (_store(path, name, figma.download(image_url)),)


def export_design_node(
    figma: FigmaApiProtocol, file_key: str, node_id: str, *, exports_dir: Path
) -> NodeExport | DesignExportError:
    """Export one node as images.

    Large frames (over 1500 wide or 2000 tall) with exportable children are
    exported as up to 8 child regions; anything else is rendered whole.
    Files already present in ``exports_dir`` are reused.

    Args:
        figma: Figma client.
        file_key: Figma file key.
        node_id: Node id in ``1:2`` notation.
        exports_dir: Directory for the PNG cache.

    Returns:
        The node name and its images, or a DesignExportError. Never raises.
    """
    try:
        return _export_node(figma, file_key, node_id, exports_dir)
    except RemoteError as e:
        return _status_error_from_remote(e)
    except (requests.RequestException, OSError) as e:
        return DesignExportError(ExportErrorKind.FETCH_FAILED, f"Figma fetch failed: {e}")


def _export_node(
    figma: FigmaApiProtocol, file_key: str, node_id: str, exports_dir: Path
) -> NodeExport | DesignExportError:
    res = _checked(figma.get(f"/files/{file_key}/nodes", {"ids": node_id, "depth": 2}))
    if isinstance(res, DesignExportError):
        return res

    node = (res.json().get("nodes") or {}).get(node_id) or {}
    document = node.get("document")
    if not document:
        return DesignExportError(ExportErrorKind.NOT_FOUND, f"Figma node {node_id} not found.")

    name = document.get("name") or node_id
    regions = exportable_regions(document)
    if is_large(document.get("absoluteBoundingBox")) and regions:
        logger.debug("Figma node {} is large, exporting {} regions", node_id, len(regions))
        images = _export_regions(figma, file_key, regions, exports_dir)
    else:
        images = _export_whole(figma, file_key, node_id, name, exports_dir)

    if isinstance(images, DesignExportError):
        return images
    return NodeExport(node_name=name, images=images)


def export_design(
    figma: FigmaApiProtocol | None, url: str, *, exports_dir: Path
) -> DesignExport | DesignExportError:
    """Fetch file metadata for a Figma URL and export the node it points at.

    Never raises: every failure comes back as a DesignExportError.
    """
    if figma is None:
        return DesignExportError(
            ExportErrorKind.NOT_CONFIGURED,
            "Figma not configured. Add a token to ~/.config/figma-mcp/config.json",
        )
    ref = parse_design_url(url)
    if ref is None:
        return DesignExportError(ExportErrorKind.INVALID_URL, "Invalid Figma URL")

    try:
        res = _checked(figma.get(f"/files/{ref.file_key}", {"depth": 1}))
        if isinstance(res, DesignExportError):
            return res
        file_data = res.json()
    except (requests.RequestException, OSError) as e:
        return DesignExportError(ExportErrorKind.FETCH_FAILED, f"Figma fetch failed: {e}")

    node_name: str | None = None
    images: tuple[RetrievedAsset, ...] = ()
    if ref.node_id:
        node_export = export_design_node(figma, ref.file_key, ref.node_id, exports_dir=exports_dir)
        if isinstance(node_export, DesignExportError):
            return node_export
        node_name, images = node_export.node_name, node_export.images

    return DesignExport(
        url=url,
        name=file_data.get("name") or ref.file_key,
        last_modified=file_data.get("lastModified"),
        node_id=ref.node_id,
        node_name=node_name,
        images=images,
    )


def _status_error_from_remote(e: RemoteError) -> DesignExportError:
    if e.status == 403:
        return DesignExportError(ExportErrorKind.ACCESS_DENIED, f"Figma download denied: {e}")
    if e.status == 404:
        return DesignExportError(ExportErrorKind.NOT_FOUND, f"Figma image not found: {e}")
    return DesignExportError(ExportErrorKind.API_ERROR, f"Figma download failed: {e}")
