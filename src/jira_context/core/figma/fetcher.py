"""Figma HTTP calls with Retry-After aware handling of 429 responses."""

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import requests
from loguru import logger

DEFAULT_RETRY_AFTER = 60
DEFAULT_MAX_RETRIES = 3
DEFAULT_MAX_WAIT_SECONDS = 30


@dataclass(frozen=True)
class RateLimited:
    """Figma refused the request and the wait is too long to sit out."""

    retry_after: int

    @property
    def estimate(self) -> str:
        return format_wait(self.retry_after)


def format_wait(seconds: int) -> str:
    """Human-readable wait. Waits over an hour mean the monthly quota is spent."""
    if seconds > 3600:
        return f"{round(seconds / 3600)} hours (monthly limit reached)"
    return f"{seconds} seconds"


def _retry_after_seconds(header: str | None) -> int:
    try:
        seconds = int(float(header)) if header is not None else 0
    except (ValueError, OverflowError):
        seconds = 0
    return seconds if seconds > 0 else DEFAULT_RETRY_AFTER


def fetch_with_retry(
    session: requests.Session,
    method: str,
    url: str,
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    max_wait_seconds: int = DEFAULT_MAX_WAIT_SECONDS,
    sleep: Callable[[float], Any] = time.sleep,
    **request_kwargs: Any,
) -> requests.Response | RateLimited:
    """Issue a request, waiting out short rate limits.

    Only 429 is retried. Any other status, success or not, is returned as is.

    Args:
        session: Session carrying auth headers.
        method: HTTP method.
        url: Absolute URL.
        max_retries: Retries allowed after the first 429.
        max_wait_seconds: Longest Retry-After worth sleeping through.
        sleep: Wait function (seconds); replaced in tests.
        **request_kwargs: Passed through to ``session.request``.

    Returns:
        The response, or RateLimited when the retry budget or wait cap is exceeded.
    """
    attempts = 0
    while True:
        response = session.request(method, url, **request_kwargs)
        if 200 <= response.status_code < 300:
            return response
        if response.status_code != 429:
            return response

        retry_after = _retry_after_seconds(response.headers.get("retry-after"))
        if retry_after > max_wait_seconds or attempts >= max_retries:
            logger.warning(
                "Figma rate limit on {}, giving up (retry-after {}s, {} retries)",
                url,
                retry_after,
                attempts,
            )
            return RateLimited(retry_after=retry_after)

        attempts += 1
        logger.info(
            "Figma rate limit on {}, retrying in {}s (attempt {}/{})",
            url,
            retry_after,
            attempts,
            max_retries,
        )
        sleep(retry_after)
