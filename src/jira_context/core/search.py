"""JQL search rendered as a markdown list."""

import io

from jira_context.protocols import JiraApiProtocol


def search_tickets(api: JiraApiProtocol, jql: str, max_results: int = 10) -> str:
    """Run a JQL query and list the matching tickets.

    Args:
        api: Jira client.
        jql: Query, e.g. ``project = MODS AND status = Open``.
        max_results: Max tickets to list (1-100).
    """
    max_results = max(1, min(max_results, 100))
    data = api.call(
        "/search/jql",
        params={
            "jql": jql,
            "maxResults": max_results,
            "fields": "summary,status,assignee",
        },
    )
    issues = data.get("issues") or []
    total = data.get("total", len(issues))

    out = io.StringIO()
    out.write(f"# Search Results ({total} total, showing {len(issues)})\n\n")
    for issue in issues:
        f = issue.get("fields") or {}
        status = (f.get("status") or {}).get("name", "Unknown")
        assignee = (f.get("assignee") or {}).get("displayName", "Unassigned")
        out.write(f"- **{issue['key']}**: {f.get('summary', '')}\n")
        out.write(f"  Status: {status} | Assignee: {assignee}\n\n")
    return out.getvalue()
