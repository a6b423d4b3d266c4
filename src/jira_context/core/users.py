"""Resolve display names to Jira users for @mentions."""

from collections import OrderedDict
from typing import Any

import requests
from loguru import logger

from jira_context.errors import RemoteError
from jira_context.models.refs import User
from jira_context.protocols import JiraApiProtocol

DEFAULT_CACHE_SIZE = 256


def pick_user(query: str, candidates: list[dict[str, Any]]) -> User | None:
    """Choose the best match: exact name, then prefix, then the first result."""
    users = [
        User(account_id=c["accountId"], display_name=c.get("displayName") or "")
        for c in candidates
        if c.get("accountId")
    ]
    if not users:
        return None
    needle = query.casefold()
    for user in users:
        if user.display_name.casefold() == needle:
            return user
    for user in users:
        if user.display_name.casefold().startswith(needle):
            return user
    return users[0]


class UserResolver:
    """Name lookups with a bounded LRU cache.

    Create one per process and reuse it across requests. Misses are cached
    too, so an unknown name costs one API call until evicted. A failed
    search is logged and treated as a miss without being cached.
    """

    def __init__(self, api: JiraApiProtocol, *, max_size: int = DEFAULT_CACHE_SIZE) -> None:
        self.api = api
        self.max_size = max_size
        self._cache: OrderedDict[str, User | None] = OrderedDict()

    def resolve(self, query: str) -> User | None:
        key = query.strip().casefold()
        if not key:
            return None
        if key in self._cache:
            self._cache.move_to_end(key)
            return self._cache[key]

        try:
            candidates = self.api.call("/user/search", params={"query": query.strip()})
        except (RemoteError, requests.RequestException) as e:
            logger.warning("User search for {!r} failed: {}", query, e)
            return None
        # /user/search returns a bare JSON list.
        user = pick_user(query.strip(), candidates if isinstance(candidates, list) else [])
        logger.debug("Resolved {!r} -> {}", query, user.account_id if user else None)

        self._cache[key] = user
        if len(self._cache) > self.max_size:
            self._cache.popitem(last=False)
        return user

    def __len__(self) -> int:
        return len(self._cache)
