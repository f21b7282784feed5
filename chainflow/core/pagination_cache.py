"""
Fetch-once, page-many cache built on the session store.

Lists are fetched through a caller-supplied fetcher, stored as tuples in
``session.cache`` and sliced into pages on demand. The current page is
written in the same store mutation that reads the cached list, so a page
index always refers to the list currently cached.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Sequence, Tuple

from chainflow.core.errors import SessionExpired
from chainflow.core.session_store import SessionStore
from chainflow.core.utils.pagination import PaginatedData, PaginationHelper

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedList:
    items: Tuple[Any, ...]
    owner: Optional[str]
    """Whose list this is (e.g. wallet address); a different owner forces a re-fetch."""

    fetched_at: float


def _page_key(cache_key: str) -> str:
    return f"{cache_key}:page"


class PaginationCache:
    """Generic pagination cache keyed by user and cache key."""

    def __init__(self, store: SessionStore):
        self.store = store
        self.fetch_count = 0

    async def get_or_fetch(
        self,
        user_id: int,
        cache_key: str,
        fetcher: Callable[[], Awaitable[Sequence[Any]]],
        owner: Optional[str] = None
    ) -> Tuple[Any, ...]:
        """
        Return the cached list, fetching it first if absent.

        Args:
            user_id: User whose session holds the cache
            cache_key: Cache slot name (e.g. "assets")
            fetcher: Async callable producing the list; may be slow or raise
            owner: Optional owner tag; a cached list for another owner is replaced

        Returns:
            Cached items as a tuple

        Raises:
            Whatever the fetcher raises (nothing is cached in that case)
        """
        cached = self.get_cached(user_id, cache_key)
        if cached is not None and (owner is None or cached.owner == owner):
            return cached.items

        items = tuple(await fetcher())
        self.fetch_count += 1
        entry = CachedList(items=items, owner=owner, fetched_at=time.time())

        def store_entry(session):
            session.cache[cache_key] = entry
            session.cache[_page_key(cache_key)] = 1

        self.store.mutate(user_id, store_entry)
        logger.debug(f"Cached {len(items)} item(s) under '{cache_key}' for user {user_id}")
        return items

    def get_cached(self, user_id: int, cache_key: str) -> Optional[CachedList]:
        session = self.store.get(user_id)
        if session is None:
            return None
        return session.cache.get(cache_key)

    def invalidate(self, user_id: int, cache_key: str):
        """Force the next get_or_fetch to call the fetcher."""
        session = self.store.get(user_id)
        if session is None or cache_key not in session.cache:
            return

        def drop(session):
            session.cache.pop(cache_key, None)
            session.cache.pop(_page_key(cache_key), None)

        self.store.mutate(user_id, drop)
        logger.debug(f"Invalidated '{cache_key}' for user {user_id}")

    def page(self, user_id: int, cache_key: str, page_number: int, page_size: int) -> PaginatedData:
        """
        Slice the cached list and record the resulting page.

        Args:
            user_id: User whose session holds the cache
            cache_key: Cache slot name
            page_number: Requested page (clamped into range)
            page_size: Items per page

        Returns:
            PaginatedData for the clamped page

        Raises:
            SessionExpired: If nothing is cached under cache_key
        """
        if self.get_cached(user_id, cache_key) is None:
            raise SessionExpired("This list has expired. Please refresh it.")

        pages = []

        def select_page(session):
            entry = session.cache[cache_key]
            paginated = PaginationHelper.paginate(entry.items, page=page_number, page_size=page_size)
            session.cache[_page_key(cache_key)] = paginated.page
            pages.append(paginated)

        self.store.mutate(user_id, select_page)
        return pages[0]

    def current_page(self, user_id: int, cache_key: str) -> int:
        session = self.store.get(user_id)
        if session is None:
            return 1
        return session.cache.get(_page_key(cache_key), 1)
