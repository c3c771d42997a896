"""
Query executor.

A DataQuery collects a filter, sort order, projection and paging window for
one collection, then runs it with find() or count(). Both apply the
collection's ``read`` permission: a denied caller fails before storage is
touched, and a caller limited to owned items only ever sees documents whose
``_owner`` is their id.

Usage:
    f = client.filter().eq("status", "active")
    result = await client.query("Members").filter(f).descending("_createdDate").limit(20).find()
    while result.has_next():
        await result.next()
"""

import asyncio
import logging
from typing import Any

from ..constants import DEFAULT_QUERY_LIMIT, MAX_QUERY_LIMIT, MIN_QUERY_LIMIT
from ..exceptions import ArgumentError, InvalidSyntaxError
from ..observability import timed_operation
from .filter import DataFilter
from .query_result import QueryResult
from .query_validator import QueryValidator
from .scoped import ScopedCollection, build_options

logger = logging.getLogger(__name__)


# ============================================================================
# Shared builder argument checks (also used by DataAggregate)
# ============================================================================


def check_filter(data_filter: Any) -> dict[str, Any]:
    if not isinstance(data_filter, DataFilter):
        raise ArgumentError(
            "The filter method only accepts a DataFilter instance. Use client.filter() to create one",
            argument="filter",
        )
    return data_filter.filter


def check_skip(number: Any) -> int:
    if not isinstance(number, int) or isinstance(number, bool):
        raise ArgumentError(
            f"The skip method only accepts integers, but instead got {type(number).__name__}",
            argument="skip",
        )
    if number < 0:
        raise ArgumentError("The skip method only accepts numbers of zero or more", argument="skip")
    return number


def check_limit(limit: Any) -> int:
    if not isinstance(limit, int) or isinstance(limit, bool):
        raise ArgumentError(
            f"The limit method only accepts integers, but instead got {type(limit).__name__}",
            argument="limit",
        )
    if limit < MIN_QUERY_LIMIT:
        raise ArgumentError("The query limit cannot be less than one item", argument="limit")
    if limit > MAX_QUERY_LIMIT:
        raise ArgumentError(
            f"The query limit cannot exceed {MAX_QUERY_LIMIT} items", argument="limit"
        )
    return limit


def check_sort_property(direction: str, prop: Any) -> str:
    if not isinstance(prop, str) or len(prop) == 0:
        raise ArgumentError(
            f'The "{direction}" sorting method is either missing a valid property or is '
            "missing the property.",
            argument="property",
        )
    return prop


def build_projection(
    include: list[str] | None = None, exclude: list[str] | None = None
) -> dict[str, int]:
    """
    Build a projection from inclusion and exclusion lists.

    Raises:
        InvalidSyntaxError: Neither list is given, or a field is not a string
        ArgumentError: A list is not a list, or a field is empty
    """
    if include is None and exclude is None:
        raise InvalidSyntaxError(
            'The "fields" method cannot be called without either the "include" or the '
            '"exclude" options'
        )

    projection: dict[str, int] = {}
    for option, fields, flag in (("include", include, 1), ("exclude", exclude, 0)):
        if fields is None:
            continue
        if not isinstance(fields, (list, tuple)):
            raise ArgumentError(
                f'The "{option}" option expects a list of field names, got {type(fields).__name__}',
                argument=option,
            )
        for field in fields:
            if not isinstance(field, str):
                raise InvalidSyntaxError(f'Projection fields must be strings, but found "{field}".')
            if len(field) == 0:
                raise ArgumentError("Projection fields cannot be empty strings", argument=option)
            projection[field] = flag
    return projection


class DataQuery:
    """Paginated, sorted, projected read against one collection."""

    def __init__(
        self,
        scoped: ScopedCollection,
        default_limit: int = DEFAULT_QUERY_LIMIT,
        validator: QueryValidator | None = None,
    ):
        self._scoped = scoped
        self._validator = validator or QueryValidator()
        self._filter: dict[str, Any] = {}
        self._sort: dict[str, int] = {}
        self._projection: dict[str, int] = {}
        self._skip = 0
        self._limit = check_limit(default_limit)

    def filter(self, data_filter: DataFilter) -> "DataQuery":
        """Bind a snapshot of ``data_filter``."""
        self._filter = check_filter(data_filter)
        return self

    def skip(self, number: int) -> "DataQuery":
        self._skip = check_skip(number)
        return self

    def limit(self, limit: int) -> "DataQuery":
        """Page size, between 1 and 2000 items."""
        self._limit = check_limit(limit)
        return self

    def ascending(self, prop: str) -> "DataQuery":
        self._sort[check_sort_property("ascending", prop)] = 1
        return self

    def descending(self, prop: str) -> "DataQuery":
        self._sort[check_sort_property("descending", prop)] = -1
        return self

    def fields(
        self, include: list[str] | None = None, exclude: list[str] | None = None
    ) -> "DataQuery":
        self._projection = build_projection(include, exclude)
        return self

    def _cursor_options(self) -> dict[str, Any]:
        return {
            "sort": list(self._sort.items()) or None,
            "projection": dict(self._projection) or None,
        }

    @timed_operation("query.find")
    async def find(self, suppress_auth: bool = False, suppress_hooks: bool = False) -> QueryResult:
        """
        Run the query and return its first page.

        Raises:
            ArgumentError: Invalid options
            OperationFailedError: Any failure after argument checks (missing
                collection, denied access, unsafe filter, storage error)
        """
        options = build_options(suppress_auth, suppress_hooks)
        scoped = self._scoped

        try:
            verdict = await scoped.prepare("read", options)
            query = scoped.scope(self._filter, verdict)
            self._validator.validate_filter(query)

            collection = scoped.collection
            cursor_options = self._cursor_options()
            skip, limit = self._skip, self._limit

            async def fetch_page(page_index: int) -> list[dict[str, Any]]:
                cursor = collection.find(
                    query, skip=skip + page_index * limit, limit=limit, **cursor_options
                )
                return await cursor.to_list(length=limit)

            total_count, items = await asyncio.gather(
                collection.count_documents(query), fetch_page(0), return_exceptions=True
            )
            for outcome in (total_count, items):
                if isinstance(outcome, BaseException):
                    raise outcome
            logger.debug(f"Query on {scoped.name} matched {total_count} items")
            return QueryResult(total_count, limit, items, fetch_page)
        except Exception as e:
            await scoped.fail("query", e, options)

    @timed_operation("query.count")
    async def count(self, suppress_auth: bool = False, suppress_hooks: bool = False) -> int:
        """Number of items the query matches, under the same access rules as find()."""
        options = build_options(suppress_auth, suppress_hooks)
        scoped = self._scoped

        try:
            verdict = await scoped.prepare("read", options)
            query = scoped.scope(self._filter, verdict)
            self._validator.validate_filter(query)
            return await scoped.collection.count_documents(query)
        except Exception as e:
            await scoped.fail("count", e, options)
