"""Protocols for dependency injection of the backend clients."""

from typing import Any, Protocol, runtime_checkable

import requests

from jira_context.core.figma.fetcher import RateLimited


@runtime_checkable
class JiraApiProtocol(Protocol):
    """Protocol for Jira API clients."""

    def call(
        self,
        path: str,
        *,
        method: str = "GET",
        body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Invoke an API endpoint and return the JSON response.

        Raises RemoteError on a non-2xx status.
        """
        ...

    def download(self, url: str) -> bytes:
        """Fetch binary content such as an attachment."""
        ...


@runtime_checkable
class FigmaApiProtocol(Protocol):
    """Protocol for Figma API clients."""

    def get(
        self, path: str, params: dict[str, Any] | None = None
    ) -> requests.Response | RateLimited:
        """GET an API path, returning the raw response or a rate-limit verdict."""
        ...

    def download(self, url: str) -> bytes:
        """Fetch a rendered image. Raises RemoteError on a non-2xx status."""
        ...
