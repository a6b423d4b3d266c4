"""Configuration constants and credential files for jira-context."""

import json
import os
from dataclasses import dataclass
from pathlib import Path

# Jira credentials and downloaded attachments live here.
CONFIG_DIR: Path = Path(os.environ.get("JIRA_MCP_CONFIG_DIR", "~/.config/jira-mcp")).expanduser()
JIRA_CONFIG_FILE: Path = CONFIG_DIR / "config.json"
ATTACHMENTS_DIR: Path = CONFIG_DIR / "attachments"

# Figma is optional. Without a config file, design links are reported but not fetched.
FIGMA_CONFIG_DIR: Path = Path(
    os.environ.get("FIGMA_MCP_CONFIG_DIR", "~/.config/figma-mcp")
).expanduser()
FIGMA_CONFIG_FILE: Path = FIGMA_CONFIG_DIR / "config.json"
FIGMA_EXPORTS_DIR: Path = FIGMA_CONFIG_DIR / "exports"

FIGMA_API_URL: str = "https://api.figma.com/v1"

# Seconds, passed to every requests call.
REQUEST_TIMEOUT: float = 30.0


@dataclass(frozen=True)
class JiraConfig:
    """Credentials for the Jira Cloud REST API."""

    email: str
    token: str
    base_url: str


@dataclass(frozen=True)
class FigmaConfig:
    """Personal access token for the Figma REST API."""

    token: str


@dataclass(frozen=True)
class TraversalLimits:
    """Bounds on how much one ticket aggregation fetches."""

    subtask_description_chars: int = 300
    max_linked: int = 10
    max_referenced: int = 5


def load_jira_config(path: Path | None = None) -> JiraConfig:
    """Read Jira credentials, raising RuntimeError if the file is missing."""
    config_path = path or JIRA_CONFIG_FILE
    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        msg = f"Cannot find Jira config at {str(config_path)!r}, run 'jira-context setup' first"
        raise RuntimeError(msg) from None

    missing = [k for k in ("email", "token", "baseUrl") if not raw.get(k)]
    if missing:
        msg = f"Jira config {str(config_path)!r} is missing {', '.join(missing)}"
        raise RuntimeError(msg)
    return JiraConfig(email=raw["email"], token=raw["token"], base_url=raw["baseUrl"].rstrip("/"))


def load_figma_config(path: Path | None = None) -> FigmaConfig | None:
    """Read the Figma token, or None when Figma is not configured."""
    config_path = path or FIGMA_CONFIG_FILE
    if not config_path.exists():
        return None
    raw = json.loads(config_path.read_text(encoding="utf-8"))
    token = raw.get("token")
    return FigmaConfig(token=token) if token else None


def save_jira_config(config: JiraConfig, path: Path | None = None) -> Path:
    """Write Jira credentials in the format load_jira_config reads."""
    config_path = path or JIRA_CONFIG_FILE
    config_path.parent.mkdir(parents=True, exist_ok=True)
    data = {"email": config.email, "token": config.token, "baseUrl": config.base_url.rstrip("/")}
    config_path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    return config_path
