"""CLI for jira-context (setup, ticket reports, search, comments, MCP server)."""

from typing import Annotated

import requests
import typer
from loguru import logger

from jira_context import config
from jira_context.api import FigmaApi, JiraApi
from jira_context.config import (
    JiraConfig,
    load_figma_config,
    load_jira_config,
    save_jira_config,
)
from jira_context.core.aggregate.traversal import aggregate
from jira_context.core.search import search_tickets
from jira_context.core.users import UserResolver
from jira_context.core.write.client import add_comment
from jira_context.errors import RemoteError
from jira_context.logging_config import configure_logging

API_TOKEN_URL = "https://id.atlassian.com/manage-profile/security/api-tokens"

app = typer.Typer(help="Jira ticket context for coding agents, with linked Figma designs.")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    configure_logging(verbose=verbose)


def _open_jira() -> JiraApi:
    try:
        return JiraApi(load_jira_config())
    except RuntimeError as e:
        logger.error("{}", e)
        raise typer.Exit(1) from None


@app.command()
def setup(
    email: Annotated[str | None, typer.Argument(help="Jira account email")] = None,
    token: Annotated[str | None, typer.Argument(help="Jira API token")] = None,
    base_url: Annotated[
        str | None, typer.Argument(help="Jira base URL, e.g. https://company.atlassian.net")
    ] = None,
) -> None:
    """Save Jira credentials. Prompts for anything not given as an argument."""
    if token is None:
        typer.echo(f"Create an API token at {API_TOKEN_URL}")
    email = email or typer.prompt("Jira email")
    token = token or typer.prompt("Jira API token", hide_input=True)
    base_url = base_url or typer.prompt("Jira base URL (e.g., https://company.atlassian.net)")

    path = save_jira_config(JiraConfig(email=email, token=token, base_url=base_url))
    typer.echo(f"Config saved to {path}")

    if load_figma_config() is not None:
        typer.echo("[OK] Figma configured - Figma links in tickets will be exported")
    else:
        typer.echo(
            f"[INFO] Figma not configured ({config.FIGMA_CONFIG_FILE}),"
            " Figma links won't be fetched"
        )


@app.command()
def get(
    issue_key: str = typer.Argument(..., help="Ticket key, e.g. MODS-12115"),
    images: bool = typer.Option(True, "--images/--no-images", help="Download image attachments"),
    figma: bool = typer.Option(True, "--figma/--no-figma", help="Export linked Figma designs"),
) -> None:
    """Print the full context report for a ticket."""
    jira = _open_jira()
    figma_config = load_figma_config() if figma else None
    result = aggregate(
        jira,
        issue_key,
        figma=FigmaApi(figma_config) if figma_config else None,
        download_images=images,
        fetch_design_refs=figma,
    )
    typer.echo(result.report)
    for asset in result.assets:
        typer.echo(f"  image: {asset.local_path}")
    if result.error:
        raise typer.Exit(1)


@app.command()
def search(
    jql: str = typer.Argument(..., help="JQL query"),
    limit: int = typer.Option(10, "--limit", "-n", help="Max results"),
) -> None:
    """Search tickets with JQL."""
    jira = _open_jira()
    try:
        typer.echo(search_tickets(jira, jql, limit))
    except (RemoteError, requests.RequestException) as e:
        logger.error("Search failed: {}", e)
        raise typer.Exit(1) from None


@app.command()
def comment(
    issue_key: str = typer.Argument(..., help="Ticket key"),
    text: str = typer.Argument(..., help="Comment text (light markdown, @mentions)"),
) -> None:
    """Add a comment to a ticket."""
    jira = _open_jira()
    result = add_comment(
        jira, issue_key=issue_key, text=text, resolve_user=UserResolver(jira).resolve
    )
    if not result["success"]:
        typer.echo(f"Error: {result['error']}")
        raise typer.Exit(1)
    typer.echo(f"Added comment {result['comment_id']} to {issue_key}")


@app.command()
def serve() -> None:
    """Start the MCP server (stdio transport)."""
    from jira_context.mcp.server import run_mcp_server

    run_mcp_server()
