"""Assemble everything known about a ticket into one markdown report.

One run walks the ticket, its parent, comments, attachments, subtasks,
linked tickets, tickets mentioned in any of that text, and finally the
Figma designs linked from all of it. Calls are made one at a time, so the
report sections always come out in that order.
"""

import io
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import requests
from loguru import logger

from jira_context import config
from jira_context.config import TraversalLimits
from jira_context.core.adf.decoder import extract_text
from jira_context.core.attachments import download_attachment
from jira_context.core.figma.exporter import DesignExportError, export_design
from jira_context.core.references.extractor import (
    find_design_refs,
    find_ticket_refs,
    is_design_url,
    parse_design_url,
)
from jira_context.errors import RemoteError
from jira_context.models.refs import EMPTY, ExtractionResult, RetrievedAsset, VisitState
from jira_context.protocols import FigmaApiProtocol, JiraApiProtocol

FETCH_ERRORS = (RemoteError, requests.RequestException)


@dataclass(frozen=True)
class AggregateResult:
    """The report plus every image retrieved while building it.

    ``error`` is set only when the ticket itself could not be fetched.
    """

    report: str
    assets: tuple[RetrievedAsset, ...] = ()
    error: str | None = None


@dataclass(frozen=True)
class LinkedIssue:
    key: str
    relation: str
    summary: str


def format_timestamp(value: str | None) -> str:
    """Render Jira's ``2024-01-15T10:30:00.000+0000`` as ``2024-01-15 10:30``."""
    if not value:
        return "Unknown"
    try:
        dt = datetime.strptime(value, "%Y-%m-%dT%H:%M:%S.%f%z")
    except ValueError:
        return value
    return f"{dt:%Y-%m-%d %H:%M}"


def linked_issues(fields: dict[str, Any]) -> list[LinkedIssue]:
    """Flatten issuelinks into (key, relation, summary), outward before inward."""
    result: list[LinkedIssue] = []
    for link in fields.get("issuelinks") or ():
        link_type = link.get("type") or {}
        for side, relation in (("outwardIssue", "outward"), ("inwardIssue", "inward")):
            other = link.get(side)
            if other:
                result.append(
                    LinkedIssue(
                        key=other["key"],
                        relation=link_type.get(relation) or relation,
                        summary=(other.get("fields") or {}).get("summary", ""),
                    )
                )
    return result


def _name(obj: dict[str, Any] | None, default: str, attr: str = "name") -> str:
    return (obj or {}).get(attr) or default


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


class _Run:
    """State for one aggregation: report buffer, text pool, visited keys."""

    def __init__(
        self,
        jira: JiraApiProtocol,
        figma: FigmaApiProtocol | None,
        *,
        issue_key: str,
        download_images: bool,
        fetch_design_refs: bool,
        limits: TraversalLimits,
        attachments_dir: Path,
        exports_dir: Path,
    ) -> None:
        self.jira = jira
        self.figma = figma
        self.issue_key = issue_key
        self.download_images = download_images
        self.fetch_design_refs = fetch_design_refs
        self.limits = limits
        self.attachments_dir = attachments_dir
        self.exports_dir = exports_dir

        self.visited = VisitState()
        # Parent, subtask and linked keys, fetched or not. Text references skip these.
        self.declared: set[str] = set()
        self.pool: ExtractionResult = EMPTY
        self.out = io.StringIO()
        self.assets: list[RetrievedAsset] = []

    def run(self) -> AggregateResult:
        try:
            issue = self.jira.call(f"/issue/{self.issue_key}", params={"expand": "renderedFields"})
        except FETCH_ERRORS as e:
            msg = f"Could not fetch {self.issue_key}: {e}"
            logger.error(msg)
            return AggregateResult(report=f"# {self.issue_key}\n\n**Error:** {msg}\n", error=msg)

        self.issue_key = issue.get("key") or self.issue_key
        self.visited.mark(self.issue_key)
        fields = issue.get("fields") or {}

        self._write_header(fields)
        for label, stage in (
            ("parent", self._parent),
            ("comments", self._comments),
            ("attachments", self._attachments),
            ("subtasks", self._subtasks),
            ("linked issues", self._linked),
            ("referenced issues", self._referenced),
            ("Figma designs", self._designs),
        ):
            try:
                stage(fields)
            except Exception as e:  # noqa: BLE001
                logger.opt(exception=e).warning("{} section failed for {}", label, self.issue_key)
                self.out.write(f"\n_Could not process {label}: {e}_\n")

        logger.info(
            "Aggregated {}: {} tickets fetched, {} images",
            self.issue_key,
            len(self.visited),
            len(self.assets),
        )
        return AggregateResult(report=self.out.getvalue(), assets=tuple(self.assets))

    # --- helpers ---

    def _fetch_fields(self, key: str) -> dict[str, Any]:
        return self.jira.call(f"/issue/{key}").get("fields") or {}

    def _pool_text(self) -> str:
        return self.pool.text + "\n" + "\n".join(self.pool.urls)

    def _write_comments(self, comments: list[dict[str, Any]], heading: str) -> ExtractionResult:
        collected = EMPTY
        for comment in comments:
            author = _name(comment.get("author"), "Unknown", "displayName")
            body = extract_text(comment.get("body"))
            self.out.write(f"{heading} {author} - {format_timestamp(comment.get('created'))}\n")
            self.out.write(body.text + "\n\n")
            collected = collected + body + ExtractionResult(" ")
        return collected

    def _write_full_view(self, fields: dict[str, Any], heading: str) -> ExtractionResult:
        """Status line, full description and all comments of a related ticket."""
        self.out.write(
            f"Status: {_name(fields.get('status'), 'Unknown')} | "
            f"Type: {_name(fields.get('issuetype'), 'Unknown')} | "
            f"Priority: {_name(fields.get('priority'), 'None')}\n"
        )
        self.out.write(
            f"Assignee: {_name(fields.get('assignee'), 'Unassigned', 'displayName')}\n\n"
        )

        desc = extract_text(fields.get("description"))
        if desc.text.strip():
            self.out.write(desc.text + "\n")

        comments = (fields.get("comment") or {}).get("comments") or []
        if comments:
            self.out.write(f"\n{heading} Comments ({len(comments)})\n\n")
            return desc + ExtractionResult(" ") + self._write_comments(comments, heading + "#")
        return desc

    # --- stages ---

    def _write_header(self, fields: dict[str, Any]) -> None:
        out = self.out
        out.write(f"# {self.issue_key}: {fields.get('summary', '')}\n\n")
        out.write(f"**Status:** {_name(fields.get('status'), 'Unknown')}\n")
        out.write(f"**Type:** {_name(fields.get('issuetype'), 'Unknown')}\n")
        out.write(f"**Priority:** {_name(fields.get('priority'), 'None')}\n")
        out.write(f"**Assignee:** {_name(fields.get('assignee'), 'Unassigned', 'displayName')}\n")
        out.write(f"**Reporter:** {_name(fields.get('reporter'), 'Unknown', 'displayName')}\n")
        if isinstance(fields.get("sprint"), dict):
            out.write(f"**Sprint:** {fields['sprint'].get('name', '')}\n")
        parent = fields.get("parent")
        if parent:
            summary = (parent.get("fields") or {}).get("summary", "")
            out.write(f"**Parent:** {parent['key']} - {summary}\n")
        if fields.get("subtasks"):
            out.write(f"**Subtasks:** {len(fields['subtasks'])}\n")

        desc = extract_text(fields.get("description"))
        out.write("\n## Description\n\n")
        out.write(desc.text or "_No description_")
        out.write("\n")
        self.pool = self.pool + desc

    def _parent(self, fields: dict[str, Any]) -> None:
        parent = fields.get("parent")
        if not parent:
            return
        key = parent["key"]
        self.declared.add(key.upper())
        summary = (parent.get("fields") or {}).get("summary", "")
        self.out.write(f"\n## Parent: {key} - {summary}\n\n")

        if not self.visited.mark(key):
            self.out.write("_Already included above_\n")
            return
        try:
            parent_fields = self._fetch_fields(key)
        except FETCH_ERRORS as e:
            self.out.write(f"_Could not fetch parent {key}: {e}_\n")
            return
        # One level only: the parent's own parent is not followed.
        self.pool = self.pool + ExtractionResult(" ") + self._write_full_view(parent_fields, "###")

    def _comments(self, fields: dict[str, Any]) -> None:
        comments = (fields.get("comment") or {}).get("comments") or []
        if not comments:
            return
        self.out.write(f"\n## Comments ({len(comments)})\n\n")
        self.pool = self.pool + ExtractionResult(" ") + self._write_comments(comments, "###")

    def _attachments(self, fields: dict[str, Any]) -> None:
        attachments = fields.get("attachment") or []
        if not attachments:
            return
        self.out.write(f"\n## Attachments ({len(attachments)})\n\n")
        for att in attachments:
            filename = att.get("filename") or "attachment"
            mime_type = att.get("mimeType") or "unknown"
            size_kb = round((att.get("size") or 0) / 1024)
            self.out.write(f"- **{filename}** ({mime_type}, {size_kb}KB)\n")

            if not (self.download_images and mime_type.startswith("image/")):
                self.out.write(f"  URL: {att.get('content')}\n")
                continue
            try:
                local_path = download_attachment(
                    self.jira,
                    att["content"],
                    filename,
                    self.issue_key,
                    attachments_dir=self.attachments_dir,
                )
                data = local_path.read_bytes()
            except (*FETCH_ERRORS, OSError) as e:
                self.out.write(f"  Download failed: {e}\n")
                continue
            self.out.write(f"  Local: {local_path}\n")
            self.assets.append(RetrievedAsset(name=filename, local_path=local_path, data=data))

    def _subtasks(self, fields: dict[str, Any]) -> None:
        subtasks = fields.get("subtasks") or []
        if not subtasks:
            return
        self.out.write(f"\n## Subtasks ({len(subtasks)})\n\n")
        for subtask in subtasks:
            key = subtask["key"]
            self.declared.add(key.upper())
            sf = subtask.get("fields") or {}
            self.out.write(f"### {key}: {sf.get('summary', '')}\n")
            self.out.write(
                f"Status: {_name(sf.get('status'), 'Unknown')} | "
                f"Type: {_name(sf.get('issuetype'), 'Subtask')}\n"
            )

            if not self.visited.mark(key):
                self.out.write("_Already included above_\n\n")
                continue
            try:
                details = self._fetch_fields(key)
            except FETCH_ERRORS as e:
                self.out.write(f"_Could not fetch details: {e}_\n\n")
                continue

            if details.get("assignee"):
                self.out.write(f"Assignee: {_name(details['assignee'], '', 'displayName')}\n")
            # Summary view: subtask text is not scanned for further references.
            desc = extract_text(details.get("description")).text
            if desc.strip():
                self.out.write(f"\n{_truncate(desc, self.limits.subtask_description_chars)}\n")
            self.out.write("\n")

    def _linked(self, fields: dict[str, Any]) -> None:
        links = linked_issues(fields)
        if not links:
            return
        self.out.write(f"\n## Linked Issues ({len(links)})\n\n")
        self.declared.update(link.key.upper() for link in links)

        for link in links[: self.limits.max_linked]:
            self.out.write(f"### {link.relation}: {link.key}\n")
            self.out.write(f"**{link.summary}**\n\n")
            if not self.visited.mark(link.key):
                self.out.write("_Already included above_\n\n")
                continue
            try:
                linked_fields = self._fetch_fields(link.key)
            except FETCH_ERRORS as e:
                self.out.write(f"_Could not fetch details: {e}_\n\n")
                continue
            self.pool = self.pool + ExtractionResult(" ") + self._write_full_view(
                linked_fields, "####"
            )
            self.out.write("\n")

        overflow = len(links) - self.limits.max_linked
        if overflow > 0:
            self.out.write(f"\n_...and {overflow} more linked issues_\n")

    def _referenced(self, _fields: dict[str, Any]) -> None:
        refs = find_ticket_refs(self._pool_text(), exclude_key=self.issue_key)
        pending = [r.key for r in refs if r.key not in self.visited and r.key not in self.declared]
        if not pending:
            return
        self.out.write(f"\n## Referenced Issues ({len(pending)})\n\n")

        for key in pending[: self.limits.max_referenced]:
            self.visited.mark(key)
            try:
                issue = self.jira.call(f"/issue/{key}")
            except RemoteError as e:
                self.out.write(f"### {key}\n")
                if e.status == 404:
                    self.out.write("_Not found (may not be a ticket reference)_\n\n")
                else:
                    self.out.write(f"_Could not fetch details: {e}_\n\n")
                continue
            except requests.RequestException as e:
                self.out.write(f"### {key}\n_Could not fetch details: {e}_\n\n")
                continue

            ref_fields = issue.get("fields") or {}
            self.out.write(f"### {key}: {ref_fields.get('summary', '')}\n")
            self.pool = self.pool + ExtractionResult(" ") + self._write_full_view(
                ref_fields, "####"
            )
            self.out.write("\n")

        overflow = len(pending) - self.limits.max_referenced
        if overflow > 0:
            self.out.write(f"\n_...and {overflow} more referenced issues_\n")

    def _designs(self, _fields: dict[str, Any]) -> None:
        if not self.fetch_design_refs:
            return
        candidates = find_design_refs(self._pool_text())
        candidates += [u for u in self.pool.urls if u and is_design_url(u)]

        # One export per (file, node), however many URL spellings point at it.
        urls: list[str] = []
        seen: set[object] = set()
        for url in candidates:
            ref = parse_design_url(url)
            dedup_key: object = (ref.file_key, ref.node_id) if ref else url
            if dedup_key not in seen:
                seen.add(dedup_key)
                urls.append(url)
        if not urls:
            return

        self.out.write(f"\n## Figma Designs ({len(urls)})\n\n")
        for url in urls:
            design = export_design(self.figma, url, exports_dir=self.exports_dir)
            if isinstance(design, DesignExportError):
                self.out.write(f"- {url}\n  **Error:** {design.message}\n\n")
                continue

            title = design.name + (f" - {design.node_name}" if design.node_name else "")
            self.out.write(f"### {title}\n")
            self.out.write(f"- URL: {url}\n")
            self.out.write(f"- Last Modified: {design.last_modified or 'Unknown'}\n")
            if design.images:
                self.out.write(f"- Exported {len(design.images)} image(s):\n")
                for image in design.images:
                    self.out.write(f"  - {image.name}: {image.local_path}\n")
                self.assets.extend(design.images)
            self.out.write("\n")


def aggregate(
    jira: JiraApiProtocol,
    issue_key: str,
    *,
    figma: FigmaApiProtocol | None = None,
    download_images: bool = True,
    fetch_design_refs: bool = True,
    limits: TraversalLimits | None = None,
    attachments_dir: Path | None = None,
    exports_dir: Path | None = None,
) -> AggregateResult:
    """Build the full context report for one ticket.

    Never raises for remote failures: a failed primary fetch is returned with
    ``error`` set, and every other failure is noted inline in its section.

    Args:
        jira: Jira client.
        issue_key: Ticket key, e.g. ``MODS-12115``.
        figma: Figma client, or None when Figma is not configured.
        download_images: Download image attachments.
        fetch_design_refs: Export linked Figma designs.
        limits: Fetch bounds (defaults to TraversalLimits()).
        attachments_dir: Attachment cache (defaults to config.ATTACHMENTS_DIR).
        exports_dir: Figma export cache (defaults to config.FIGMA_EXPORTS_DIR).
    """
    return _Run(
        jira,
        figma,
        issue_key=issue_key.strip().upper(),
        download_images=download_images,
        fetch_design_refs=fetch_design_refs,
        limits=limits or TraversalLimits(),
        attachments_dir=attachments_dir or config.ATTACHMENTS_DIR,
        exports_dir=exports_dir or config.FIGMA_EXPORTS_DIR,
    ).run()
