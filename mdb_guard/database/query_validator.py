"""
Safety checks for compiled filters and aggregation pipelines.

Rejects operators that execute server-side JavaScript and bounds nesting
depth and pipeline length before anything is sent to the store.
"""

import logging
from typing import Any

from ..constants import DANGEROUS_OPERATORS, MAX_PIPELINE_STAGES, MAX_QUERY_DEPTH
from ..exceptions import QueryValidationError

logger = logging.getLogger(__name__)


class QueryValidator:
    """
    Validates filter documents and aggregation pipelines.

    Args:
        max_depth: Maximum nesting depth of a filter or stage
        max_pipeline_stages: Maximum number of pipeline stages
        dangerous_operators: Extra operators to reject, on top of DANGEROUS_OPERATORS
    """

    def __init__(
        self,
        max_depth: int = MAX_QUERY_DEPTH,
        max_pipeline_stages: int = MAX_PIPELINE_STAGES,
        dangerous_operators: set[str] | None = None,
    ):
        self.max_depth = max_depth
        self.max_pipeline_stages = max_pipeline_stages
        self.dangerous_operators = set(DANGEROUS_OPERATORS) | set(dangerous_operators or ())

    def validate_filter(self, query: dict[str, Any] | None) -> None:
        """
        Validate a filter document.

        Raises:
            QueryValidationError: On a dangerous operator or excessive nesting
        """
        if not query:
            return
        if not isinstance(query, dict):
            raise QueryValidationError(
                f"Query filter must be a dictionary, got {type(query).__name__}",
                query_type="filter",
            )
        self._walk(query, "", 0, "filter")

    def validate_pipeline(self, pipeline: list[dict[str, Any]]) -> None:
        """
        Validate an aggregation pipeline.

        Raises:
            QueryValidationError: On too many stages, a non-dict stage, a
                dangerous operator or excessive nesting
        """
        if not isinstance(pipeline, list):
            raise QueryValidationError(
                f"Aggregation pipeline must be a list, got {type(pipeline).__name__}",
                query_type="pipeline",
            )

        if len(pipeline) > self.max_pipeline_stages:
            raise QueryValidationError(
                f"Aggregation pipeline exceeds maximum stages: "
                f"{len(pipeline)} > {self.max_pipeline_stages}",
                query_type="pipeline",
                context={"stages": len(pipeline), "max_stages": self.max_pipeline_stages},
            )

        for idx, stage in enumerate(pipeline):
            stage_path = f"$[{idx}]"
            if not isinstance(stage, dict):
                raise QueryValidationError(
                    f"Pipeline stage {idx} must be a dictionary, got {type(stage).__name__}",
                    query_type="pipeline",
                    path=stage_path,
                )
            self._walk(stage, stage_path, 0, "pipeline")

    def _walk(self, node: dict[str, Any], path: str, depth: int, query_type: str) -> None:
        if depth > self.max_depth:
            raise QueryValidationError(
                f"Query exceeds maximum nesting depth: {depth} > {self.max_depth}",
                query_type=query_type,
                path=path,
                context={"depth": depth, "max_depth": self.max_depth},
            )

        for key, value in node.items():
            current_path = f"{path}.{key}" if path else key

            if key in self.dangerous_operators:
                logger.warning(
                    f"Security: Dangerous operator '{key}' rejected at path '{current_path}'"
                )
                raise QueryValidationError(
                    f"Dangerous operator '{key}' is not allowed. Found at path: {current_path}",
                    query_type=query_type,
                    path=current_path,
                )

            if isinstance(value, dict):
                self._walk(value, current_path, depth + 1, query_type)
            elif isinstance(value, (list, tuple)):
                for idx, element in enumerate(value):
                    if isinstance(element, dict):
                        self._walk(element, f"{current_path}[{idx}]", depth + 1, query_type)
