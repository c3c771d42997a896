"""
Paginated query results.
"""

import logging
import math
from collections.abc import Awaitable, Callable
from typing import Any

from ..exceptions import PageRetrievalError

logger = logging.getLogger(__name__)

PageFetcher = Callable[[int], Awaitable[list[dict[str, Any]]]]


def count_pages(total_count: int, page_size: int) -> int:
    """Number of pages needed for ``total_count`` items."""
    return math.ceil(total_count / page_size)


class QueryResult:
    """
    Result of DataQuery.find().

    Holds the first page and fetches further pages on demand with next().
    Items from every fetched page accumulate in ``items``; ``page_items``
    holds the most recently fetched page.
    """

    def __init__(
        self,
        total_count: int,
        page_size: int,
        items: list[dict[str, Any]],
        fetch_page: PageFetcher,
    ):
        self._total_count = total_count
        self._page_size = page_size
        self._total_pages = count_pages(total_count, page_size)
        self._items = list(items)
        self._page_items = list(items)
        self._current_page = 1
        self._fetch_page = fetch_page

    @property
    def total_count(self) -> int:
        return self._total_count

    @property
    def total_pages(self) -> int:
        return self._total_pages

    @property
    def current_page(self) -> int:
        return self._current_page

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def page_items(self) -> list[dict[str, Any]]:
        return self._page_items

    @property
    def items(self) -> list[dict[str, Any]]:
        return self._items

    @property
    def length(self) -> int:
        """Number of items fetched so far."""
        return len(self._items)

    def has_next(self) -> bool:
        return self._current_page < self._total_pages

    async def next(self) -> list[dict[str, Any]]:
        """
        Fetch the next page.

        Returns an empty list, without touching storage, once every page has
        been fetched. The page counter only advances when the fetched page
        has items.

        Raises:
            PageRetrievalError: The page could not be fetched
        """
        if not self.has_next():
            return []

        try:
            page = await self._fetch_page(self._current_page)
        except Exception as e:
            logger.exception(f"Failed to fetch page {self._current_page + 1} of {self._total_pages}")
            raise PageRetrievalError(f"Unable to retrieve the next page: {e}") from e

        self._page_items = page
        if page:
            self._current_page += 1
            self._items.extend(page)
        return page

    def __len__(self) -> int:
        return self.length

    def __repr__(self) -> str:
        return (
            f"QueryResult(total_count={self._total_count}, "
            f"page={self._current_page}/{self._total_pages}, length={self.length})"
        )
