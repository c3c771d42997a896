"""
Aggregate executor.

A DataAggregate appends pipeline stages in call order and runs them with
execute(). Unlike DataQuery it returns the whole result list without
pagination. A caller limited to owned items gets an ``_owner`` match
prepended to the pipeline so ownership is filtered before any other stage.
"""

import copy
import logging
from typing import Any

from ..core.types import AccessVerdict
from ..exceptions import ArgumentError
from ..observability import timed_operation
from .filter import DataFilter
from .query import (
    build_projection,
    check_filter,
    check_limit,
    check_skip,
    check_sort_property,
)
from .query_validator import QueryValidator
from .scoped import ScopedCollection, build_options

logger = logging.getLogger(__name__)


def _check_stage_body(method: str, value: Any) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ArgumentError(
            f"The {method} method expects a dict but got {type(value).__name__}",
            argument=method,
        )
    return value


class DataAggregate:
    """Multi-stage aggregation against one collection."""

    def __init__(self, scoped: ScopedCollection, validator: QueryValidator | None = None):
        self._scoped = scoped
        self._validator = validator or QueryValidator()
        self._stages: list[dict[str, Any]] = []

    @property
    def pipeline(self) -> list[dict[str, Any]]:
        """A copy of the stages added so far (without ownership scoping)."""
        return copy.deepcopy(self._stages)

    def filter(self, data_filter: DataFilter) -> "DataAggregate":
        self._stages.append({"$match": check_filter(data_filter)})
        return self

    def skip(self, number: int) -> "DataAggregate":
        self._stages.append({"$skip": check_skip(number)})
        return self

    def limit(self, limit: int) -> "DataAggregate":
        self._stages.append({"$limit": check_limit(limit)})
        return self

    def ascending(self, prop: str) -> "DataAggregate":
        self._stages.append({"$sort": {check_sort_property("ascending", prop): 1}})
        return self

    def descending(self, prop: str) -> "DataAggregate":
        self._stages.append({"$sort": {check_sort_property("descending", prop): -1}})
        return self

    def fields(
        self, include: list[str] | None = None, exclude: list[str] | None = None
    ) -> "DataAggregate":
        self._stages.append({"$project": build_projection(include, exclude)})
        return self

    def group(self, grouping: dict[str, Any]) -> "DataAggregate":
        """Add a ``$group`` stage. ``grouping`` must contain ``_id``."""
        grouping = _check_stage_body("group", grouping)
        if "_id" not in grouping:
            raise ArgumentError("The group method expects an _id grouping key", argument="group")
        self._stages.append({"$group": copy.deepcopy(grouping)})
        return self

    def facet(self, facets: dict[str, list[dict[str, Any]]]) -> "DataAggregate":
        self._stages.append({"$facet": copy.deepcopy(_check_stage_body("facet", facets))})
        return self

    def custom_stage(self, stage: dict[str, Any]) -> "DataAggregate":
        """Append an arbitrary stage document as-is."""
        self._stages.append(copy.deepcopy(_check_stage_body("custom_stage", stage)))
        return self

    def geo_near(self, options: dict[str, Any]) -> "DataAggregate":
        self._stages.append({"$geoNear": copy.deepcopy(_check_stage_body("geo_near", options))})
        return self

    def geo_within(self, prop: str, geometry: dict[str, Any]) -> "DataAggregate":
        """Match documents whose ``prop`` lies within ``geometry``."""
        prop = check_sort_property("geo_within", prop)
        geometry = copy.deepcopy(_check_stage_body("geo_within", geometry))
        self._stages.append({"$match": {prop: {"$geoWithin": geometry}}})
        return self

    def geo_intersects(self, prop: str, geometry: dict[str, Any]) -> "DataAggregate":
        """Match documents whose ``prop`` intersects ``geometry``."""
        prop = check_sort_property("geo_intersects", prop)
        geometry = copy.deepcopy(_check_stage_body("geo_intersects", geometry))
        self._stages.append({"$match": {prop: {"$geoIntersects": geometry}}})
        return self

    def _scope_pipeline(self, stages: list[dict[str, Any]], verdict: AccessVerdict) -> None:
        # $geoNear must stay the first stage, so ownership goes into its query
        if stages and "$geoNear" in stages[0]:
            geo_near = stages[0]["$geoNear"]
            geo_near["query"] = self._scoped.scope(geo_near.get("query") or {}, verdict)
        else:
            stages.insert(0, {"$match": self._scoped.scope({}, verdict)})

    @timed_operation("aggregate.execute")
    async def execute(
        self, suppress_auth: bool = False, suppress_hooks: bool = False
    ) -> list[dict[str, Any]]:
        """
        Run the pipeline and return every resulting document.

        Raises:
            ArgumentError: Invalid options
            OperationFailedError: Any failure after argument checks
        """
        options = build_options(suppress_auth, suppress_hooks)
        scoped = self._scoped

        try:
            verdict = await scoped.prepare("read", options)
            stages = copy.deepcopy(self._stages)
            if verdict is AccessVerdict.OWNED_ITEMS:
                self._scope_pipeline(stages, verdict)

            self._validator.validate_pipeline(stages)
            cursor = scoped.collection.aggregate(stages)
            results = await cursor.to_list(length=None)
            logger.debug(f"Aggregation on {scoped.name} returned {len(results)} documents")
            return results
        except Exception as e:
            await scoped.fail("aggregate", e, options)
