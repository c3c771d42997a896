"""
MDB_GUARD - permissioned MongoDB data access

Schema-validated CRUD, queries and aggregations over Motor, with declared
per-collection permissions, row-level ownership and lifecycle hooks.
"""

from .config import ClientConfig
# Core (imported before the database layer, which depends on core.types)
from .core import (AccessVerdict, AuthorizationMode, CallerIdentity,
                   DataClient, DataEngine, DefinitionRegistry, Permission,
                   Role)
# Database layer
from .database import (CollectionHooks, DataAggregate, DataFilter, DataQuery,
                       QueryResult)
from .exceptions import (AccessDeniedError, ArgumentError,
                         CollectionNotFoundError, ConfigurationError,
                         DefinitionError, InvalidSyntaxError, MDBGuardError,
                         NormalizationError, OperationFailedError,
                         SchemaValidationError, StorageError)

__version__ = "0.1.0"

__all__ = [
    # Core
    "DataEngine",
    "DataClient",
    "DefinitionRegistry",
    "ClientConfig",
    # Types
    "AccessVerdict",
    "AuthorizationMode",
    "CallerIdentity",
    "Permission",
    "Role",
    # Database
    "DataFilter",
    "DataQuery",
    "QueryResult",
    "DataAggregate",
    "CollectionHooks",
    # Exceptions
    "MDBGuardError",
    "ArgumentError",
    "InvalidSyntaxError",
    "NormalizationError",
    "SchemaValidationError",
    "AccessDeniedError",
    "CollectionNotFoundError",
    "StorageError",
    "DefinitionError",
    "ConfigurationError",
    "OperationFailedError",
]
