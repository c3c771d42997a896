"""
Type definitions for MDB_GUARD core structures.

Enumerations for the authorization model, the caller identity and per-call
options, plus TypedDict definitions for definitions, hook payloads and
operation results.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Literal, TypedDict, Union

# ============================================================================
# Authorization Types
# ============================================================================


class Permission(str, Enum):
    """Permission a collection declares for one access type."""

    ANYONE = "Anyone"
    MEMBER = "Member"
    MEMBER_AUTHOR = "MemberAuthor"
    ADMIN = "Admin"


class AuthorizationMode(str, Enum):
    """How a client authorizes its operations."""

    SYSTEM = "System"
    USER = "User"


class Role(str, Enum):
    ADMIN = "Admin"
    MEMBER = "Member"
    VISITOR = "Visitor"


class AccessVerdict(str, Enum):
    """Outcome of evaluating a permission for a caller."""

    ALLOWED = "Allowed"
    DENIED = "Denied"
    OWNED_ITEMS = "Owned-Items"


AccessType = Literal["read", "write", "modify", "delete"]

DataOperation = Literal[
    "getItem",
    "insert",
    "bulkInsert",
    "update",
    "bulkUpdate",
    "remove",
    "bulkRemove",
    "save",
    "bulkSave",
    "query",
    "count",
    "aggregate",
]


@dataclass(frozen=True)
class CallerIdentity:
    """
    Identity of the caller a client acts for.

    Constructed once when a client is created and never mutated.
    """

    id: str | None = None
    role: Role = Role.VISITOR
    logged_in: bool = False

    @classmethod
    def anonymous(cls) -> "CallerIdentity":
        return cls()


@dataclass(frozen=True)
class OperationOptions:
    """Per-call switches shared by every data operation."""

    suppress_auth: bool = False
    suppress_hooks: bool = False


# ============================================================================
# Definition Types
# ============================================================================


class ValidityDict(TypedDict):
    """Custom validity rule for a schema field."""

    handler: Callable[[Any], bool]
    message: str


class FieldSchemaDict(TypedDict, total=False):
    """Custom schema field definition."""

    type: Literal["String", "Number", "Object", "Array", "Date", "Boolean", "Any"]
    required: bool
    default: Any
    validity: ValidityDict


SchemaDict = dict[str, Union[str, FieldSchemaDict]]


class PermissionsDict(TypedDict):
    """Declared permission per access type."""

    read: str
    write: str
    modify: str
    delete: str


class CollectionDefinitionDict(TypedDict, total=False):
    """Collection registration as passed to define_database()."""

    name: str
    schema: SchemaDict
    permissions: PermissionsDict
    hooks: dict[str, Callable[..., Any]]


class DatabaseDefinitionDict(TypedDict):
    """Database registration as passed to define_database()."""

    name: str
    collections: list[CollectionDefinitionDict]


class UserDict(TypedDict, total=False):
    """Caller description as passed to create_client()."""

    id: str
    role: str
    loggedIn: bool


# ============================================================================
# Hook / Failure Types
# ============================================================================


class HookContext(TypedDict):
    """Context passed to every hook."""

    collectionName: str
    userId: str | None
    userRole: str


class FailureRecord(TypedDict):
    """Structured failure record built by the failure reporter."""

    type: str
    context: HookContext
    error: BaseException


# ============================================================================
# Item / Result Types
# ============================================================================

Item = dict[str, Any]


class CollectionItem(TypedDict, total=False):
    """A persisted item. System fields are always present."""

    _id: str
    _createdDate: datetime
    _updatedDate: datetime
    _owner: str


class BulkInsertStats(TypedDict):
    inserted: int
    skipped: int
    insertedIds: list[str]
    skippedIds: list[str]


class BulkInsertResult(TypedDict):
    items: list[Item]
    stats: BulkInsertStats


class SaveResult(TypedDict):
    operation: Literal["Insert", "Update"]
    id: str


class BulkSaveResult(TypedDict):
    operation: Literal["Mixed", "Insert", "Update"]
    insertedCount: int
    updatedCount: int
    inserted: list[str]
    updated: list[str]
