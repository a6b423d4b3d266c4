"""Download Jira attachments into a per-issue local cache."""

from pathlib import Path

from loguru import logger

from jira_context.protocols import JiraApiProtocol


def attachment_path(attachments_dir: Path, issue_key: str, filename: str) -> Path:
    # Attachment names come from users; keep only the final path component.
    return attachments_dir / issue_key / (Path(filename).name or "attachment")


def download_attachment(
    api: JiraApiProtocol,
    url: str,
    filename: str,
    issue_key: str,
    *,
    attachments_dir: Path,
) -> Path:
    """Save an attachment, reusing a previous download of the same name.

    Raises RemoteError (or a requests exception) when the download fails.
    """
    local_path = attachment_path(attachments_dir, issue_key, filename)
    if local_path.exists():
        logger.debug("Attachment cached: {}", local_path)
        return local_path

    data = api.download(url)
    local_path.parent.mkdir(parents=True, exist_ok=True)
    local_path.write_bytes(data)
    logger.debug("Downloaded attachment {} ({} bytes)", local_path, len(data))
    return local_path
