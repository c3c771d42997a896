"""
Fluent filter builder.

A DataFilter accumulates one MongoDB filter document through chained
predicate calls::

    f = client.filter().eq("status", "active").between("age", 18, 30)
    items = await client.query("Members").filter(f).find()

Each call validates its own arguments before touching the filter, so a
failed call leaves earlier predicates intact. Predicates are keyed by
property: calling two operators on the same property keeps only the last.

A builder is owned by the code that built it. Executors take a snapshot
copy of the compiled filter when it is bound, so later calls on the
builder do not affect an executor it was already handed to.
"""

import copy
import logging
import re
from collections.abc import Iterable
from datetime import datetime
from typing import Any, Union

from ..constants import BSON_TYPES
from ..exceptions import ArgumentError, InvalidSyntaxError
from .normalizer import as_utc

logger = logging.getLogger(__name__)

FilterInput = Union["DataFilter", list["DataFilter"], tuple["DataFilter", ...]]


def _check_property(prop: Any) -> None:
    if not isinstance(prop, str):
        raise ArgumentError(f"The used property ({prop!r}) is not a valid string", argument="property")
    if len(prop) == 0:
        raise ArgumentError(
            "Missing or invalid property passed to the filter. The property cannot be an empty string",
            argument="property",
        )


def _check_list(operator: str, prop: str, value: Any) -> list[Any]:
    if not isinstance(value, (list, tuple, set, frozenset)):
        raise ArgumentError(
            f'Unable to use the "{operator}" filter on the "{prop}" property. '
            f"Expected a list as a value but instead got {type(value).__name__}.",
            argument="value",
        )
    return list(value)


def _check_text(operator: str, prop: str, value: Any) -> str:
    if not isinstance(value, str):
        raise ArgumentError(
            f'Unable to use the "{operator}" filter on the "{prop}" property. '
            f"Expected a string but instead got {type(value).__name__}.",
            argument="value",
        )
    return value


def _check_case_option(value: Any, case_sensitive: Any) -> None:
    if case_sensitive is None:
        return
    if not isinstance(value, str):
        raise InvalidSyntaxError('The "case_sensitive" option is only valid for string values.')
    if not isinstance(case_sensitive, bool):
        raise ArgumentError(
            'The "case_sensitive" option is invalid. Expected a boolean but instead got '
            f"{type(case_sensitive).__name__}.",
            argument="case_sensitive",
        )


def _regex_flags(case_sensitive: bool) -> int:
    return 0 if case_sensitive else re.IGNORECASE


def _range_kind(value: Any) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return "date"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return None


class DataFilter:
    """Builder for a MongoDB filter document."""

    def __init__(self) -> None:
        self._query: dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Range and set membership
    # ------------------------------------------------------------------

    def between(self, prop: str, start: Any, end: Any) -> "DataFilter":
        """
        Inclusive range match. ``start`` and ``end`` must share a type.

        Naive datetimes are taken to be UTC, so they can be mixed with aware ones.
        """
        _check_property(prop)

        start_kind = _range_kind(start)
        if start_kind is None:
            raise ArgumentError(
                f'Unable to use the "between" filter on the "{prop}" property. The start value '
                "is invalid. Expected a string, number, or a datetime instance but instead got "
                f"{type(start).__name__}.",
                argument="start",
            )
        if _range_kind(end) != start_kind:
            raise ArgumentError(
                f'Unable to use the "between" filter on the "{prop}" property. '
                "The end value is not the same type as the start value",
                argument="end",
            )
        if start_kind == "date":
            start, end = as_utc(start), as_utc(end)
        if start > end:
            raise ArgumentError(
                f'Unable to use the "between" filter on the "{prop}" property. '
                f"The start value ({start}) cannot be greater than the end value ({end})",
                argument="start",
            )

        self._query[prop] = {"$gte": start, "$lte": end}
        return self

    def has_all(self, prop: str, values: Iterable[Any]) -> "DataFilter":
        """Match arrays containing every one of ``values``."""
        _check_property(prop)
        self._query[prop] = {"$all": _check_list("has_all", prop, values)}
        return self

    def has_some(self, prop: str, values: Iterable[Any]) -> "DataFilter":
        """Match when the property (or any of its array elements) is in ``values``."""
        _check_property(prop)
        self._query[prop] = {"$in": _check_list("has_some", prop, values)}
        return self

    def in_(self, prop: str, values: Iterable[Any]) -> "DataFilter":
        _check_property(prop)
        self._query[prop] = {"$in": _check_list("in", prop, values)}
        return self

    def nin(self, prop: str, values: Iterable[Any]) -> "DataFilter":
        """Match when the property is absent or not in ``values``."""
        _check_property(prop)
        self._query[prop] = {"$nin": _check_list("nin", prop, values)}
        return self

    # ------------------------------------------------------------------
    # String matching (case-insensitive unless requested otherwise)
    # ------------------------------------------------------------------

    def starts_with(self, prop: str, value: str, case_sensitive: bool = False) -> "DataFilter":
        _check_property(prop)
        text = _check_text("starts_with", prop, value)
        self._query[prop] = re.compile(f"^{re.escape(text)}", _regex_flags(case_sensitive))
        return self

    def ends_with(self, prop: str, value: str, case_sensitive: bool = False) -> "DataFilter":
        _check_property(prop)
        text = _check_text("ends_with", prop, value)
        self._query[prop] = re.compile(f"{re.escape(text)}$", _regex_flags(case_sensitive))
        return self

    def contains(self, prop: str, value: str, case_sensitive: bool = False) -> "DataFilter":
        """
        Match when any whitespace-separated word of ``value`` appears as a
        whole word in the property.
        """
        _check_property(prop)
        text = _check_text("contains", prop, value)

        words = list(dict.fromkeys(word for word in text.split() if word))
        if not words:
            raise ArgumentError(
                f'Unable to use the "contains" filter on the "{prop}" property. '
                "The value has no words to match.",
                argument="value",
            )

        pattern = "|".join(rf"\b{re.escape(word)}\b" for word in words)
        self._query[prop] = re.compile(pattern, _regex_flags(case_sensitive))
        return self

    # ------------------------------------------------------------------
    # Comparison
    # ------------------------------------------------------------------

    def eq(self, prop: str, value: Any, case_sensitive: bool | None = None) -> "DataFilter":
        """
        Equality match.

        With ``case_sensitive=False`` a string value compiles to an anchored,
        escaped, case-insensitive pattern instead of a literal ``$eq``.
        """
        _check_property(prop)
        _check_case_option(value, case_sensitive)

        if case_sensitive is False:
            self._query[prop] = re.compile(f"^{re.escape(value)}$", re.IGNORECASE)
        else:
            self._query[prop] = {"$eq": value}
        return self

    def ne(self, prop: str, value: Any, case_sensitive: bool | None = None) -> "DataFilter":
        _check_property(prop)
        _check_case_option(value, case_sensitive)

        if case_sensitive is False:
            # $ne rejects patterns
            self._query[prop] = {"$not": re.compile(f"^{re.escape(value)}$", re.IGNORECASE)}
        else:
            self._query[prop] = {"$ne": value}
        return self

    def gt(self, prop: str, value: Any) -> "DataFilter":
        _check_property(prop)
        self._query[prop] = {"$gt": value}
        return self

    def gte(self, prop: str, value: Any) -> "DataFilter":
        _check_property(prop)
        self._query[prop] = {"$gte": value}
        return self

    def lt(self, prop: str, value: Any) -> "DataFilter":
        _check_property(prop)
        self._query[prop] = {"$lt": value}
        return self

    def lte(self, prop: str, value: Any) -> "DataFilter":
        _check_property(prop)
        self._query[prop] = {"$lte": value}
        return self

    # ------------------------------------------------------------------
    # Logical composition
    # ------------------------------------------------------------------

    def _compose(self, operator: str, filters: FilterInput) -> None:
        name = operator.lstrip("$")
        if filters is None:
            raise ArgumentError(
                f'The filter of the "{name}" operator is either missing or invalid',
                argument="filter",
            )

        if isinstance(filters, (list, tuple)):
            if not filters:
                raise ArgumentError(
                    f'The "{name}" operator received an empty list of filters', argument="filter"
                )
            candidates = list(filters)
        else:
            candidates = [filters]

        for candidate in candidates:
            if not isinstance(candidate, DataFilter):
                raise ArgumentError(
                    f'The "{name}" operator only accepts DataFilter instances, '
                    f"got {type(candidate).__name__}",
                    argument="filter",
                )

        expressions = [
            {prop: predicate}
            for candidate in candidates
            for prop, predicate in candidate.filter.items()
        ]
        if expressions:
            self._query[operator] = expressions
        else:
            logger.debug(f"Dropped empty sub-filters for '{operator}'")

    def and_(self, filters: FilterInput) -> "DataFilter":
        self._compose("$and", filters)
        return self

    def or_(self, filters: FilterInput) -> "DataFilter":
        self._compose("$or", filters)
        return self

    def nor(self, filters: FilterInput) -> "DataFilter":
        self._compose("$nor", filters)
        return self

    def not_(self, sub_filter: "DataFilter") -> "DataFilter":
        """
        Match items that do not satisfy ``sub_filter`` as a whole.

        MongoDB has no top-level ``$not``; the negation is added to the
        ``$nor`` list.
        """
        if not isinstance(sub_filter, DataFilter):
            raise ArgumentError(
                'The "not" operator only accepts a single DataFilter', argument="filter"
            )
        negated = sub_filter.filter
        if negated:
            self._query.setdefault("$nor", []).append(negated)
        else:
            logger.debug("Dropped empty sub-filter for '$not'")
        return self

    # ------------------------------------------------------------------
    # Element operators
    # ------------------------------------------------------------------

    def exists(self, prop: str, value: bool) -> "DataFilter":
        _check_property(prop)
        if not isinstance(value, bool):
            raise ArgumentError(
                'The value passed to the "exists" operator is invalid. Expected a boolean '
                f"value but instead got {type(value).__name__}.",
                argument="value",
            )
        self._query[prop] = {"$exists": value}
        return self

    def type(self, prop: str, bson_types: str | list[str] | tuple[str, ...]) -> "DataFilter":
        """Match values of one or more BSON types (repeated types are collapsed)."""
        _check_property(prop)

        if isinstance(bson_types, str):
            if bson_types not in BSON_TYPES:
                raise ArgumentError(
                    f"The passed type value ({bson_types}) is not a supported type.",
                    argument="bson_types",
                )
            self._query[prop] = {"$type": bson_types}
            return self

        if not isinstance(bson_types, (list, tuple)) or len(bson_types) == 0:
            raise ArgumentError(
                'The "type" operator expects a type alias or a non-empty list of aliases '
                f"but got {bson_types!r}.",
                argument="bson_types",
            )

        unique: list[str] = []
        for bson_type in bson_types:
            if bson_type not in BSON_TYPES:
                raise ArgumentError(
                    f'The "type" operator received a list containing an invalid type: {bson_type}.',
                    argument="bson_types",
                )
            if bson_type not in unique:
                unique.append(bson_type)

        self._query[prop] = {"$type": unique}
        return self

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    @property
    def filter(self) -> dict[str, Any]:
        """A snapshot copy of the compiled filter document."""
        return copy.deepcopy(self._query)

    def __len__(self) -> int:
        return len(self._query)

    def __repr__(self) -> str:
        return f"DataFilter({self._query!r})"
