"""HTTP clients for the Jira Cloud and Figma REST APIs."""

import time
from collections.abc import Callable
from typing import Any

import requests
from loguru import logger

from jira_context.config import FIGMA_API_URL, REQUEST_TIMEOUT, FigmaConfig, JiraConfig
from jira_context.core.figma.fetcher import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_WAIT_SECONDS,
    RateLimited,
    fetch_with_retry,
)
from jira_context.errors import RemoteError


def _error_message(response: requests.Response) -> str:
    """Pull Jira's errorMessages/errors out of a failed response, if any."""
    try:
        data = response.json()
    except ValueError:
        return response.reason or ""
    if not isinstance(data, dict):
        return response.reason or ""
    parts = list(data.get("errorMessages") or [])
    parts.extend(f"{k}: {v}" for k, v in (data.get("errors") or {}).items())
    return "; ".join(parts) or response.reason or ""


class JiraApi:
    """Jira REST v3 client authenticated with email + API token."""

    def __init__(self, config: JiraConfig) -> None:
        self.base_url = config.base_url.rstrip("/")
        self.sess = requests.Session()
        self.sess.auth = (config.email, config.token)
        self.sess.headers["Accept"] = "application/json"
        logger.debug("Jira API ready: {} as {}", self.base_url, config.email)

    def call(
        self,
        path: str,
        *,
        method: str = "GET",
        body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Invoke a REST endpoint below /rest/api/3 and return the JSON body."""
        logger.debug("Jira request: {} {}", method, path)
        r = self.sess.request(
            method,
            f"{self.base_url}/rest/api/3{path}",
            json=body,
            params=params,
            timeout=REQUEST_TIMEOUT,
        )
        if not 200 <= r.status_code < 300:
            raise RemoteError(r.status_code, _error_message(r))
        if r.status_code == 204 or not r.content:
            return {}
        return r.json()

    def download(self, url: str) -> bytes:
        """Fetch attachment content (same credentials as the API)."""
        r = self.sess.get(url, timeout=REQUEST_TIMEOUT)
        if not 200 <= r.status_code < 300:
            raise RemoteError(r.status_code, r.reason or "download failed")
        return r.content


class FigmaApi:
    """Figma REST v1 client. Rate limits are handled by fetch_with_retry."""

    def __init__(
        self,
        config: FigmaConfig,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        max_wait_seconds: int = DEFAULT_MAX_WAIT_SECONDS,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> None:
        self.sess = requests.Session()
        self.sess.headers["X-Figma-Token"] = config.token
        # Rendered images live on a CDN; do not send the token there.
        self.download_sess = requests.Session()
        self.max_retries = max_retries
        self.max_wait_seconds = max_wait_seconds
        self.sleep = sleep

    def get(
        self, path: str, params: dict[str, Any] | None = None
    ) -> requests.Response | RateLimited:
        logger.debug("Figma request: {} {!r}", path, params)
        return fetch_with_retry(
            self.sess,
            "GET",
            f"{FIGMA_API_URL}{path}",
            max_retries=self.max_retries,
            max_wait_seconds=self.max_wait_seconds,
            sleep=self.sleep,
            params=params,
            timeout=REQUEST_TIMEOUT,
        )

    def download(self, url: str) -> bytes:
        r = self.download_sess.get(url, timeout=REQUEST_TIMEOUT)
        if not 200 <= r.status_code < 300:
            raise RemoteError(r.status_code, r.reason or "download failed")
        return r.content
