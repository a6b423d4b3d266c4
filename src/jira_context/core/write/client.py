"""Comment write operations against the Jira API."""

from typing import Any

import requests
from loguru import logger

from jira_context.core.adf.encoder import UserLookup, build_document
from jira_context.errors import RemoteError
from jira_context.models.document import to_adf
from jira_context.protocols import JiraApiProtocol


def _comment_body(text: str, resolve_user: UserLookup | None) -> dict[str, Any]:
    return {"body": to_adf(build_document(text, resolve_user))}


def add_comment(
    api: JiraApiProtocol,
    *,
    issue_key: str,
    text: str,
    resolve_user: UserLookup | None = None,
) -> dict[str, Any]:
    """Post a comment built from markdown-like text.

    Args:
        api: Jira API client.
        issue_key: Ticket to comment on.
        text: Comment text (bold, italic, code, bullet lists, @mentions).
        resolve_user: Name lookup for @mentions.
    """
    if not text.strip():
        return {"success": False, "error": "Comment text is empty."}

    try:
        result = api.call(
            f"/issue/{issue_key}/comment",
            method="POST",
            body=_comment_body(text, resolve_user),
        )
    except (RemoteError, requests.RequestException) as e:
        return {"success": False, "error": str(e)}

    logger.info("Added comment {} to {}", result.get("id"), issue_key)
    return {"success": True, "issue_key": issue_key, "comment_id": result.get("id")}


def update_comment(
    api: JiraApiProtocol,
    *,
    issue_key: str,
    comment_id: str,
    text: str,
    resolve_user: UserLookup | None = None,
) -> dict[str, Any]:
    """Replace the body of an existing comment."""
    if not text.strip():
        return {"success": False, "error": "Comment text is empty."}

    try:
        api.call(
            f"/issue/{issue_key}/comment/{comment_id}",
            method="PUT",
            body=_comment_body(text, resolve_user),
        )
    except (RemoteError, requests.RequestException) as e:
        return {"success": False, "error": str(e)}

    return {"success": True, "issue_key": issue_key, "comment_id": comment_id}


def delete_comment(api: JiraApiProtocol, *, issue_key: str, comment_id: str) -> dict[str, Any]:
    try:
        api.call(f"/issue/{issue_key}/comment/{comment_id}", method="DELETE")
    except (RemoteError, requests.RequestException) as e:
        return {"success": False, "error": str(e)}

    return {"success": True, "issue_key": issue_key, "comment_id": comment_id}
