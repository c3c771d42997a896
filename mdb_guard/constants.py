"""
Constants for MDB_GUARD.

This module contains all shared constants used across the codebase to avoid
magic numbers and improve maintainability.
"""

from typing import Final

# ============================================================================
# AUTHORIZATION CONSTANTS
# ============================================================================

PERMISSIONS: Final[tuple[str, ...]] = ("Anyone", "Member", "MemberAuthor", "Admin")
"""Permission levels a collection can declare per access type."""

ACCESS_TYPES: Final[tuple[str, ...]] = ("read", "write", "modify", "delete")
"""Access types a collection declares permissions for."""

USER_ROLES: Final[tuple[str, ...]] = ("Admin", "Member", "Visitor")
"""Roles a caller identity can hold."""

LOGGED_IN_ROLES: Final[tuple[str, ...]] = ("Admin", "Member")
"""Roles allowed for logged-in callers."""

AUTHORIZATION_MODES: Final[tuple[str, ...]] = ("System", "User")
"""Authorization modes a client can be created with."""

DEFAULT_COLLECTION_PERMISSION: Final[str] = "Admin"
"""Permission applied to every access type when a collection declares none."""

SYSTEM_OWNER: Final[str] = "system"
"""Owner value stamped on items inserted under System authorization."""

# ============================================================================
# SCHEMA CONSTANTS
# ============================================================================

SCHEMA_TYPES: Final[tuple[str, ...]] = ("String", "Number", "Object", "Array", "Date", "Boolean")
"""Primitive field types a collection schema can declare."""

ANY_SCHEMA_TYPE: Final[str] = "Any"
"""Unchecked field type. Requires a validity handler."""

SYSTEM_FIELDS: Final[tuple[str, ...]] = ("_id", "_createdDate", "_updatedDate", "_owner")
"""Fields managed by the item normalizer."""

# ============================================================================
# QUERY CONSTANTS
# ============================================================================

DEFAULT_QUERY_LIMIT: Final[int] = 100
"""Default page size for queries."""

MIN_QUERY_LIMIT: Final[int] = 1
"""Smallest page size a query accepts."""

MAX_QUERY_LIMIT: Final[int] = 2000
"""Largest page size a query accepts."""

BSON_TYPES: Final[tuple[str, ...]] = (
    "number",
    "string",
    "bool",
    "object",
    "array",
    "date",
    "javascript",
    "null",
)
"""BSON type aliases accepted by the `type` filter operator."""

MAX_QUERY_DEPTH: Final[int] = 10
"""Maximum nesting depth of a filter or pipeline stage."""

MAX_PIPELINE_STAGES: Final[int] = 50
"""Maximum number of stages in an aggregation pipeline."""

DANGEROUS_OPERATORS: Final[tuple[str, ...]] = (
    "$where",  # JavaScript execution
    "$eval",  # JavaScript evaluation (deprecated but still dangerous)
    "$function",  # JavaScript functions
    "$accumulator",  # Can be abused
)
"""Operators that run server-side JavaScript and are rejected in filters and pipelines."""

# ============================================================================
# CONNECTION CONSTANTS
# ============================================================================

CONNECTION_URI_SCHEMES: Final[tuple[str, ...]] = ("mongodb://", "mongodb+srv://")
"""Accepted prefixes for MongoDB connection strings."""

DEFAULT_MAX_POOL_SIZE: Final[int] = 50
"""Default maximum MongoDB connection pool size."""

DEFAULT_MIN_POOL_SIZE: Final[int] = 10
"""Default minimum MongoDB connection pool size."""

DEFAULT_SERVER_SELECTION_TIMEOUT_MS: Final[int] = 5000
"""Default server selection timeout in milliseconds."""

DEFAULT_APP_NAME: Final[str] = "mdb-guard"
"""Application name reported to the MongoDB server."""

# ============================================================================
# OBSERVABILITY CONSTANTS
# ============================================================================

MAX_TRACKED_METRICS: Final[int] = 10000
"""Maximum number of metric keys kept before the oldest is evicted."""
