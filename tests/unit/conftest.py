"""Shared test fixtures."""

from pathlib import Path

import pytest

from tests.unit.fakes import FakeFigmaApi, FakeJiraApi


@pytest.fixture
def jira() -> FakeJiraApi:
    return FakeJiraApi()


@pytest.fixture
def figma() -> FakeFigmaApi:
    return FakeFigmaApi()


@pytest.fixture
def attachments_dir(tmp_path: Path) -> Path:
    return tmp_path / "attachments"


@pytest.fixture
def exports_dir(tmp_path: Path) -> Path:
    return tmp_path / "exports"


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Point every config path at tmp_path so tests never touch ~/.config."""
    jira_dir = tmp_path / "jira-config"
    figma_dir = tmp_path / "figma-config"
    monkeypatch.setattr("jira_context.config.CONFIG_DIR", jira_dir)
    monkeypatch.setattr("jira_context.config.JIRA_CONFIG_FILE", jira_dir / "config.json")
    monkeypatch.setattr("jira_context.config.ATTACHMENTS_DIR", jira_dir / "attachments")
    monkeypatch.setattr("jira_context.config.FIGMA_CONFIG_DIR", figma_dir)
    monkeypatch.setattr("jira_context.config.FIGMA_CONFIG_FILE", figma_dir / "config.json")
    monkeypatch.setattr("jira_context.config.FIGMA_EXPORTS_DIR", figma_dir / "exports")
