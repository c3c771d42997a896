"""
Core MDB_GUARD components.

The DataEngine facade, the definition registry, named connections and the
DataClient that runs every data operation.
"""

from .engine import DataEngine
from .client import DataClient
from .connection import ConnectionManager
from .registry import (
    DATABASE_DEFINITION_SCHEMA,
    CollectionDefinition,
    DatabaseDefinition,
    DefinitionRegistry,
    get_registry,
)
from .types import (
    AccessVerdict,
    AuthorizationMode,
    CallerIdentity,
    OperationOptions,
    Permission,
    Role,
)

__all__ = [
    # Engine
    "DataEngine",
    "DataClient",
    "ConnectionManager",
    # Definitions
    "DefinitionRegistry",
    "DatabaseDefinition",
    "CollectionDefinition",
    "DATABASE_DEFINITION_SCHEMA",
    "get_registry",
    # Types
    "AccessVerdict",
    "AuthorizationMode",
    "CallerIdentity",
    "OperationOptions",
    "Permission",
    "Role",
]
