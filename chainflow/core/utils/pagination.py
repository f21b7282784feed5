"""
Generic pagination utility for list displays.

Provides stateless pagination logic and navigation quick actions for
browsing cached lists one page at a time.
"""

from typing import TypeVar, Generic, List, Optional, Sequence
from dataclasses import dataclass

from chainflow.core import action_tokens
from chainflow.core.results import PageInfo, QuickAction

T = TypeVar('T')


@dataclass(frozen=True)
class PaginatedData(Generic[T]):
    """
    Container for paginated list data.

    Generic type T can be AssetInfo or any list item type.
    """

    items: List[T]
    """Items on current page (max page_size items)."""

    page: int
    """Current page number (1-indexed)."""

    page_size: int
    """Items per page."""

    total_items: int
    """Total items across all pages."""

    total_pages: int
    """Total pages (calculated from total_items and page_size)."""

    has_next: bool
    """True if there are more pages after current."""

    has_prev: bool
    """True if there are pages before current."""

    @property
    def start_index(self) -> int:
        """0-based start index of first item on current page."""
        return (self.page - 1) * self.page_size

    def is_empty(self) -> bool:
        """True if no items in entire dataset."""
        return self.total_items == 0

    def to_page_info(self) -> PageInfo:
        return PageInfo(page=self.page, total_pages=self.total_pages, total_items=self.total_items)


class PaginationHelper:
    """
    Utility class for paginating lists.

    No instance state required - all methods are static.
    """

    @staticmethod
    def paginate(
        items: Sequence[T],
        page: int = 1,
        page_size: int = 10
    ) -> PaginatedData[T]:
        """
        Paginate a list of items.

        Out-of-range pages are clamped: page 0 (or below) returns the first
        page and a page beyond the end returns the last page. The input
        sequence is never modified.

        Args:
            items: Full list of items to paginate.
            page: Page number to retrieve (1-indexed). Default: 1.
            page_size: Number of items per page. Default: 10.

        Returns:
            PaginatedData[T] containing current page items and metadata.

        Raises:
            ValueError: If page_size < 1.

        Example:
            >>> items = ["a", "b", "c", "d", "e"]
            >>> paginated = PaginationHelper.paginate(items, page=9, page_size=2)
            >>> assert paginated.items == ["e"]
            >>> assert paginated.page == 3
        """
        if page_size < 1:
            raise ValueError("page_size must be >= 1")

        total_items = len(items)
        total_pages = (total_items + page_size - 1) // page_size if total_items > 0 else 0

        # Clamp page to valid range
        if total_pages > 0 and page > total_pages:
            page = total_pages
        if page < 1 or total_pages == 0:
            page = 1

        start_index = (page - 1) * page_size
        end_index = start_index + page_size
        page_items = list(items[start_index:end_index])

        return PaginatedData(
            items=page_items,
            page=page,
            page_size=page_size,
            total_items=total_items,
            total_pages=total_pages,
            has_next=(page < total_pages),
            has_prev=(page > 1)
        )

    @staticmethod
    def navigation_actions(
        paginated_data: PaginatedData,
        additional_actions: Optional[List[List[QuickAction]]] = None
    ) -> List[List[QuickAction]]:
        """
        Build Previous / Page X/Y / Next quick actions.

        Navigation is hidden for empty lists or a single page.

        Args:
            paginated_data: PaginatedData with pagination metadata.
            additional_actions: Optional rows appended below the navigation row.

        Returns:
            Rows of quick actions.
        """
        rows = []

        if paginated_data.total_pages > 1:
            nav = []
            if paginated_data.has_prev:
                nav.append(QuickAction("⬅️ Previous", action_tokens.build("page", paginated_data.page - 1)))

            # Page indicator (not clickable)
            nav.append(QuickAction(
                f"Page {paginated_data.page}/{paginated_data.total_pages}",
                action_tokens.build("noop")
            ))

            if paginated_data.has_next:
                nav.append(QuickAction("Next ➡️", action_tokens.build("page", paginated_data.page + 1)))

            rows.append(nav)

        if additional_actions:
            rows.extend(additional_actions)

        return rows
