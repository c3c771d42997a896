"""
Database layer.

Collection scoping, item normalization and schema validation, the hook
pipeline, and the query, filter and aggregate builders.
"""

from .aggregate import DataAggregate
from .filter import DataFilter
from .hooks import CollectionHooks, report_failure, run_hook
from .normalizer import prepare_insert_item, prepare_update_item
from .query import DataQuery
from .query_result import QueryResult
from .query_validator import QueryValidator
from .schema import FieldSchema, validate_item_schema
from .scoped import ScopedCollection, build_options

__all__ = [
    # Scoping
    "ScopedCollection",
    "build_options",
    # Builders
    "DataFilter",
    "DataQuery",
    "QueryResult",
    "DataAggregate",
    # Query security
    "QueryValidator",
    # Items
    "FieldSchema",
    "validate_item_schema",
    "prepare_insert_item",
    "prepare_update_item",
    # Hooks
    "CollectionHooks",
    "run_hook",
    "report_failure",
]
