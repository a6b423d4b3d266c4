"""MCP server exposing Jira ticket context and comment tools."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import requests
from loguru import logger
from mcp.server.fastmcp import Context, FastMCP, Image

from jira_context.api import FigmaApi, JiraApi
from jira_context.config import load_figma_config, load_jira_config
from jira_context.core.aggregate.traversal import AggregateResult, aggregate
from jira_context.core.search import search_tickets
from jira_context.core.users import UserResolver
from jira_context.core.write.client import add_comment, delete_comment, update_comment
from jira_context.errors import RemoteError
from jira_context.protocols import FigmaApiProtocol, JiraApiProtocol

# --- Core functions (testable without MCP context) ---


def jira_get_ticket(
    jira: JiraApiProtocol,
    figma: FigmaApiProtocol | None,
    *,
    issue_key: str,
    download_images: bool = True,
    fetch_figma: bool = True,
) -> list[str | Image]:
    """Fetch a ticket report and attach every retrieved image.

    Returns:
        The markdown report followed by one Image per downloaded attachment
        or exported Figma region.
    """
    result: AggregateResult = aggregate(
        jira,
        issue_key,
        figma=figma,
        download_images=download_images,
        fetch_design_refs=fetch_figma,
    )
    content: list[str | Image] = [result.report]
    for asset in result.assets:
        content.append(Image(data=asset.data, format=asset.mime_type.removeprefix("image/")))
    return content


def jira_search(jira: JiraApiProtocol, *, jql: str, max_results: int = 10) -> str:
    """Search tickets with JQL."""
    try:
        return search_tickets(jira, jql, max_results)
    except (RemoteError, requests.RequestException) as e:
        return f"Error: {e}"


# --- MCP Server Setup ---


@dataclass
class ServerContext:
    """Shared resources for the MCP server lifetime."""

    jira: JiraApi | None
    figma: FigmaApi | None
    users: UserResolver | None
    config_error: str | None = None


def build_server_context() -> ServerContext:
    """Load credentials; a missing Jira config is reported per tool call."""
    figma_config = load_figma_config()
    figma = FigmaApi(figma_config) if figma_config else None
    if figma is None:
        logger.info("Figma not configured, design links will not be exported")

    try:
        jira = JiraApi(load_jira_config())
    except RuntimeError as e:
        logger.error("{}", e)
        return ServerContext(jira=None, figma=figma, users=None, config_error=str(e))
    return ServerContext(jira=jira, figma=figma, users=UserResolver(jira))


@asynccontextmanager
async def server_lifespan(_server: FastMCP) -> AsyncIterator[ServerContext]:
    """Create API clients and the user cache once per process."""
    yield build_server_context()


mcp_server = FastMCP(
    "jira-context",
    instructions="""\
Tools for reading Jira tickets with all their surrounding context.

jira_get_ticket returns one report: description, parent, comments,
attachments, subtasks, linked tickets, tickets mentioned in the text, and
exported images of linked Figma designs. Prefer it over several searches
when you already know the ticket key.

Comments accept light markdown: **bold**, *italic*, `code`, "- " bullet
lists, and @Full Name mentions (resolved to Jira users when possible).
""",
    lifespan=server_lifespan,
)


def _ctx(mcp_ctx: Context) -> ServerContext:
    return mcp_ctx.request_context.lifespan_context  # type: ignore[return-value]


def _not_configured(ctx: ServerContext) -> str:
    return f"Error: {ctx.config_error or 'Jira is not configured'}"


# --- MCP Tool Wrappers ---


# Images are plain content blocks, so no structured output schema.
@mcp_server.tool(structured_output=False)
async def jira_get_ticket_tool(
    ctx: Context,
    issue_key: str,
    download_images: bool = True,
    fetch_figma: bool = True,
) -> list[str | Image]:
    """Fetch a Jira ticket by its key (e.g., MODS-12115).

    Returns full details including description, comments, attachments,
    subtasks, linked and mentioned tickets, and linked Figma designs.

    Args:
        issue_key: The Jira issue key.
        download_images: Download image attachments (default: true).
        fetch_figma: Fetch linked Figma designs and export images (default: true).
    """
    server_ctx = _ctx(ctx)
    if server_ctx.jira is None:
        return [_not_configured(server_ctx)]
    return jira_get_ticket(
        server_ctx.jira,
        server_ctx.figma,
        issue_key=issue_key,
        download_images=download_images,
        fetch_figma=fetch_figma,
    )


@mcp_server.tool()
async def jira_search_tool(ctx: Context, jql: str, max_results: int = 10) -> str:
    """Search Jira tickets using JQL.

    Example: 'project = MODS AND status = Open'

    Args:
        jql: JQL query string.
        max_results: Max results (default 10).
    """
    server_ctx = _ctx(ctx)
    if server_ctx.jira is None:
        return _not_configured(server_ctx)
    return jira_search(server_ctx.jira, jql=jql, max_results=max_results)


@mcp_server.tool()
async def jira_add_comment_tool(ctx: Context, issue_key: str, text: str) -> dict[str, Any]:
    """Add a comment to a ticket.

    Args:
        issue_key: The Jira issue key.
        text: Comment text with optional light markdown and @mentions.
    """
    server_ctx = _ctx(ctx)
    if server_ctx.jira is None or server_ctx.users is None:
        return {"success": False, "error": _not_configured(server_ctx)}
    return add_comment(
        server_ctx.jira,
        issue_key=issue_key,
        text=text,
        resolve_user=server_ctx.users.resolve,
    )


@mcp_server.tool()
async def jira_update_comment_tool(
    ctx: Context, issue_key: str, comment_id: str, text: str
) -> dict[str, Any]:
    """Replace the text of an existing comment.

    Args:
        issue_key: The Jira issue key.
        comment_id: Comment ID.
        text: New comment text.
    """
    server_ctx = _ctx(ctx)
    if server_ctx.jira is None or server_ctx.users is None:
        return {"success": False, "error": _not_configured(server_ctx)}
    return update_comment(
        server_ctx.jira,
        issue_key=issue_key,
        comment_id=comment_id,
        text=text,
        resolve_user=server_ctx.users.resolve,
    )


@mcp_server.tool()
async def jira_delete_comment_tool(ctx: Context, issue_key: str, comment_id: str) -> dict[str, Any]:
    """Delete a comment.

    Args:
        issue_key: The Jira issue key.
        comment_id: Comment ID.
    """
    server_ctx = _ctx(ctx)
    if server_ctx.jira is None:
        return {"success": False, "error": _not_configured(server_ctx)}
    return delete_comment(server_ctx.jira, issue_key=issue_key, comment_id=comment_id)


def run_mcp_server() -> None:
    """Run the MCP server with stdio transport."""
    from jira_context.logging_config import configure_logging

    configure_logging(verbose=False)
    mcp_server.run(transport="stdio")
