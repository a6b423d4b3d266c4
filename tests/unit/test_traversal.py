"""Tests for ticket aggregation."""

from pathlib import Path
from typing import Any

import pytest
import requests

from jira_context.config import TraversalLimits
from jira_context.core.aggregate.traversal import (
    AggregateResult,
    aggregate,
    format_timestamp,
    linked_issues,
)
from jira_context.errors import RemoteError
from tests.unit.fakes import FakeFigmaApi, FakeJiraApi, adf


def _link(key: str, *, outward: bool = True, summary: str = "") -> dict[str, Any]:
    side = "outwardIssue" if outward else "inwardIssue"
    return {
        "type": {"name": "Blocks", "outward": "blocks", "inward": "is blocked by"},
        side: {"key": key, "fields": {"summary": summary or f"Summary of {key}"}},
    }


def _run(jira: FakeJiraApi, key: str = "MODS-1", tmp_path: Path | None = None, **kwargs: Any):
    kwargs.setdefault("fetch_design_refs", False)
    if tmp_path is not None:
        kwargs.setdefault("attachments_dir", tmp_path / "attachments")
        kwargs.setdefault("exports_dir", tmp_path / "exports")
    return aggregate(jira, key, **kwargs)


def test_format_timestamp() -> None:
    assert format_timestamp("2024-01-15T10:30:00.000+0000") == "2024-01-15 10:30"
    assert format_timestamp("yesterday") == "yesterday"
    assert format_timestamp(None) == "Unknown"


def test_linked_issues_lists_outward_then_inward() -> None:
    link = _link("A-1")
    link["inwardIssue"] = {"key": "A-2", "fields": {"summary": "two"}}

    result = linked_issues({"issuelinks": [link]})

    assert [(li.key, li.relation) for li in result] == [("A-1", "blocks"), ("A-2", "is blocked by")]


def test_header_and_description(jira: FakeJiraApi) -> None:
    jira.add_issue(
        "MODS-1",
        summary="Checkout breaks",
        status={"name": "In Progress"},
        issuetype={"name": "Bug"},
        priority={"name": "High"},
        assignee={"displayName": "Jane Doe"},
        reporter={"displayName": "Sam Roe"},
        description=adf("Steps to reproduce"),
    )

    result = _run(jira, "mods-1")

    assert isinstance(result, AggregateResult)
    assert result.error is None
    assert result.report.startswith("# MODS-1: Checkout breaks\n")
    assert "**Status:** In Progress" in result.report
    assert "**Assignee:** Jane Doe" in result.report
    assert "**Reporter:** Sam Roe" in result.report
    assert "## Description\n\nSteps to reproduce" in result.report
    assert jira.calls[0] == ("GET", "/issue/MODS-1", {"expand": "renderedFields"})


def test_missing_fields_use_defaults(jira: FakeJiraApi) -> None:
    jira.add_issue("MODS-1")

    report = _run(jira).report

    assert "**Priority:** None" in report
    assert "**Assignee:** Unassigned" in report
    assert "_No description_" in report


def test_primary_fetch_failure_sets_error(jira: FakeJiraApi) -> None:
    result = _run(jira, "GONE-1")

    assert result.error is not None
    assert "Could not fetch GONE-1" in result.error
    assert result.report.startswith("# GONE-1\n\n**Error:**")
    assert result.assets == ()


def test_network_failure_on_primary_fetch(jira: FakeJiraApi) -> None:
    jira.responses["/issue/MODS-1"] = requests.ConnectionError("timed out")

    result = _run(jira)

    assert result.error is not None
    assert "timed out" in result.error


def test_comments_section(jira: FakeJiraApi) -> None:
    jira.add_issue(
        "MODS-1",
        comment={
            "comments": [
                {
                    "author": {"displayName": "Jane Doe"},
                    "created": "2024-01-15T10:30:00.000+0000",
                    "body": adf("Looks good"),
                },
                {"body": adf("Second")},
            ]
        },
    )

    report = _run(jira).report

    assert "## Comments (2)" in report
    assert "### Jane Doe - 2024-01-15 10:30\nLooks good" in report
    assert "### Unknown - Unknown\nSecond" in report


def test_parent_is_fetched_once_in_full(jira: FakeJiraApi) -> None:
    jira.add_issue(
        "MODS-1",
        parent={"key": "MODS-0", "fields": {"summary": "Epic"}},
        description=adf("child of MODS-0"),
    )
    jira.add_issue(
        "MODS-0",
        status={"name": "Open"},
        description=adf("Epic goals"),
        parent={"key": "ROOT-1", "fields": {"summary": "Initiative"}},
    )

    report = _run(jira).report

    assert "**Parent:** MODS-0 - Epic" in report
    assert "## Parent: MODS-0 - Epic" in report
    assert "Epic goals" in report
    assert jira.fetched("/issue/MODS-0") == 1
    # One level only.
    assert jira.fetched("/issue/ROOT-1") == 0
    assert "## Referenced Issues" not in report


def test_parent_fetch_failure_is_inline(jira: FakeJiraApi) -> None:
    jira.add_issue("MODS-1", parent={"key": "MODS-0", "fields": {"summary": "Epic"}})

    report = _run(jira).report

    assert "_Could not fetch parent MODS-0: 404" in report


def test_subtask_description_is_truncated(jira: FakeJiraApi) -> None:
    jira.add_issue(
        "MODS-1",
        subtasks=[{"key": "MODS-2", "fields": {"summary": "Sub", "status": {"name": "Done"}}}],
    )
    jira.add_issue(
        "MODS-2",
        assignee={"displayName": "Jane Doe"},
        description=adf("x" * 50 + " see OPS-9"),
    )

    report = _run(jira, limits=TraversalLimits(subtask_description_chars=20)).report

    assert "**Subtasks:** 1" in report
    assert "### MODS-2: Sub\nStatus: Done | Type: Subtask" in report
    assert "Assignee: Jane Doe" in report
    assert "\n" + "x" * 20 + "...\n" in report
    # Subtask text is not scanned for references.
    assert jira.fetched("/issue/OPS-9") == 0


def test_linked_overflow_is_counted_not_fetched(jira: FakeJiraApi) -> None:
    links = [_link(f"LNK-{i}") for i in range(1, 12)]
    jira.add_issue("MODS-1", issuelinks=links)
    for i in range(1, 12):
        jira.add_issue(f"LNK-{i}", status={"name": "Open"})

    report = _run(jira).report

    assert "## Linked Issues (11)" in report
    assert "_...and 1 more linked issues_" in report
    fetched = [p for _m, p, _params in jira.calls if p.startswith("/issue/LNK-")]
    assert len(fetched) == 10
    assert "/issue/LNK-11" not in fetched


def test_linked_issue_gets_full_view(jira: FakeJiraApi) -> None:
    jira.add_issue("MODS-1", issuelinks=[_link("LNK-1", summary="Blocker")])
    jira.add_issue(
        "LNK-1",
        status={"name": "Open"},
        issuetype={"name": "Task"},
        description=adf("Full linked description " + "y" * 400),
        comment={"comments": [{"author": {"displayName": "Ann"}, "body": adf("noted")}]},
    )

    report = _run(jira).report

    assert "### blocks: LNK-1\n**Blocker**" in report
    assert "Status: Open | Type: Task | Priority: None" in report
    assert "y" * 400 in report
    assert "#### Comments (1)" in report
    assert "##### Ann - Unknown\nnoted" in report


def test_linked_and_mentioned_ticket_is_fetched_once(jira: FakeJiraApi) -> None:
    jira.add_issue(
        "MODS-1",
        issuelinks=[_link("LNK-1")],
        description=adf("Blocked by LNK-1, see also REF-1"),
    )
    jira.add_issue("LNK-1", description=adf("linked body"))
    jira.add_issue("REF-1", summary="Referenced", description=adf("ref body"))

    report = _run(jira).report

    assert jira.fetched("/issue/LNK-1") == 1
    assert jira.fetched("/issue/REF-1") == 1
    assert "## Referenced Issues (1)" in report
    assert "### REF-1: Referenced" in report


def test_references_found_in_linked_text_are_followed(jira: FakeJiraApi) -> None:
    jira.add_issue("MODS-1", issuelinks=[_link("LNK-1")])
    jira.add_issue("LNK-1", description=adf("root cause is in CORE-5"))
    jira.add_issue("CORE-5", summary="Core bug")

    report = _run(jira).report

    assert "### CORE-5: Core bug" in report


def test_self_reference_is_ignored(jira: FakeJiraApi) -> None:
    jira.add_issue("MODS-1", description=adf("Duplicate of mods-1"))

    report = _run(jira).report

    assert jira.fetched("/issue/MODS-1") == 1
    assert "## Referenced Issues" not in report


def test_referenced_failures_are_isolated(jira: FakeJiraApi) -> None:
    jira.add_issue("MODS-1", description=adf("Uses UTF-8, see BAD-1 and OK-1"))
    jira.responses["/issue/BAD-1"] = RemoteError(500, "Internal error")
    jira.add_issue("OK-1", summary="Fine")

    report = _run(jira).report

    assert "## Referenced Issues (3)" in report
    assert "### UTF-8\n_Not found (may not be a ticket reference)_" in report
    assert "### BAD-1\n_Could not fetch details: 500 Internal error_" in report
    assert "### OK-1: Fine" in report


def test_referenced_overflow(jira: FakeJiraApi) -> None:
    keys = [f"REF-{i}" for i in range(1, 8)]
    jira.add_issue("MODS-1", description=adf(" ".join(keys)))
    for key in keys:
        jira.add_issue(key, summary=key.lower())

    report = _run(jira, limits=TraversalLimits(max_referenced=5)).report

    assert "## Referenced Issues (7)" in report
    assert "_...and 2 more referenced issues_" in report
    assert jira.fetched("/issue/REF-6") == 0


def test_image_attachments_are_downloaded(jira: FakeJiraApi, tmp_path: Path) -> None:
    jira.add_issue(
        "MODS-1",
        attachment=[
            {
                "filename": "shot.png",
                "mimeType": "image/png",
                "size": 2048,
                "content": "https://jira/att/1",
            },
            {
                "filename": "notes.pdf",
                "mimeType": "application/pdf",
                "size": 10240,
                "content": "https://jira/att/2",
            },
            {
                "filename": "broken.jpg",
                "mimeType": "image/jpeg",
                "size": 0,
                "content": "https://jira/att/3",
            },
        ],
    )
    jira.downloads["https://jira/att/1"] = b"\x89PNG"

    result = _run(jira, tmp_path=tmp_path)

    local = tmp_path / "attachments" / "MODS-1" / "shot.png"
    assert "## Attachments (3)" in result.report
    assert "- **shot.png** (image/png, 2KB)" in result.report
    assert f"  Local: {local}" in result.report
    assert "  URL: https://jira/att/2" in result.report
    assert "- **broken.jpg** (image/jpeg, 0KB)\n  Download failed: 404" in result.report
    assert len(result.assets) == 1
    assert result.assets[0].data == b"\x89PNG"
    assert result.assets[0].mime_type == "image/png"
    assert jira.downloaded == ["https://jira/att/1", "https://jira/att/3"]


def test_attachments_not_downloaded_when_disabled(jira: FakeJiraApi, tmp_path: Path) -> None:
    jira.add_issue(
        "MODS-1",
        attachment=[{"filename": "a.png", "mimeType": "image/png", "content": "https://jira/a"}],
    )

    result = _run(jira, tmp_path=tmp_path, download_images=False)

    assert "  URL: https://jira/a" in result.report
    assert result.assets == ()
    assert jira.downloaded == []


def test_failing_section_does_not_sink_report(jira: FakeJiraApi) -> None:
    jira.add_issue(
        "MODS-1",
        subtasks=[{"fields": {"summary": "no key"}}],
        comment={"comments": [{"body": adf("still here")}]},
    )

    report = _run(jira).report

    assert "still here" in report
    assert "_Could not process subtasks:" in report


# --- Figma designs ---

DESIGN_URL = "https://www.figma.com/design/ABC/Shop?node-id=1-2"


def _add_design(figma: FakeFigmaApi) -> None:
    figma.add_json("/files/ABC", {"name": "Shop", "lastModified": "2024-03-01T12:00:00Z"})
    figma.add_json(
        "/files/ABC/nodes",
        {
            "nodes": {
                "1:2": {
                    "document": {
                        "id": "1:2",
                        "name": "Dialog",
                        "type": "FRAME",
                        "absoluteBoundingBox": {"width": 800, "height": 600},
                    }
                }
            }
        },
    )
    figma.add_json("/images/ABC", {"images": {"1:2": "https://cdn/dialog"}})
    figma.downloads["https://cdn/dialog"] = b"dialog"


def test_designs_are_exported_once(
    jira: FakeJiraApi, figma: FakeFigmaApi, tmp_path: Path
) -> None:
    description = {
        "type": "doc",
        "content": [
            {
                "type": "paragraph",
                "content": [
                    {"type": "text", "text": f"Mock: {DESIGN_URL} or "},
                    {"type": "inlineCard", "attrs": {"url": DESIGN_URL + "&t=abc"}},
                ],
            }
        ],
    }
    jira.add_issue("MODS-1", description=description)
    _add_design(figma)

    result = _run(jira, tmp_path=tmp_path, figma=figma, fetch_design_refs=True)

    assert "## Figma Designs (1)" in result.report
    assert "### Shop - Dialog" in result.report
    assert "- Last Modified: 2024-03-01T12:00:00Z" in result.report
    assert "- Exported 1 image(s):" in result.report
    assert figma.paths().count("/files/ABC") == 1
    assert [a.data for a in result.assets] == [b"dialog"]


def test_design_link_marks_are_followed(
    jira: FakeJiraApi, figma: FakeFigmaApi, tmp_path: Path
) -> None:
    description = {
        "type": "paragraph",
        "content": [
            {
                "type": "text",
                "text": "the mockup",
                "marks": [{"type": "link", "attrs": {"href": DESIGN_URL}}],
            }
        ],
    }
    jira.add_issue("MODS-1", description=description)
    _add_design(figma)

    report = _run(jira, tmp_path=tmp_path, figma=figma, fetch_design_refs=True).report

    assert "### Shop - Dialog" in report


def test_designs_without_figma_config(jira: FakeJiraApi, tmp_path: Path) -> None:
    jira.add_issue("MODS-1", description=adf(f"see {DESIGN_URL}"))

    report = _run(jira, tmp_path=tmp_path, figma=None, fetch_design_refs=True).report

    assert f"- {DESIGN_URL}\n  **Error:** Figma not configured" in report


def test_designs_skipped_when_disabled(
    jira: FakeJiraApi, figma: FakeFigmaApi, tmp_path: Path
) -> None:
    jira.add_issue("MODS-1", description=adf(f"see {DESIGN_URL}"))
    _add_design(figma)

    report = _run(jira, tmp_path=tmp_path, figma=figma, fetch_design_refs=False).report

    assert "Figma Designs" not in report
    assert figma.calls == []


@pytest.mark.parametrize("download_images", [True, False])
def test_design_export_ignores_download_images_flag(
    jira: FakeJiraApi, figma: FakeFigmaApi, tmp_path: Path, download_images: bool
) -> None:
    jira.add_issue("MODS-1", description=adf(DESIGN_URL))
    _add_design(figma)

    result = _run(
        jira,
        tmp_path=tmp_path,
        figma=figma,
        fetch_design_refs=True,
        download_images=download_images,
    )

    assert len(result.assets) == 1
