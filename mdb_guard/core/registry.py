"""
Database and collection definitions.

Databases are registered once at startup with define_database() and are
read-only afterwards. A definition names its collections and, per
collection, an optional schema, the declared permission for each access
type and the lifecycle hooks.

Structural checks run through a JSON Schema; the rules JSON Schema cannot
express (case-insensitive uniqueness, callables, typed defaults) are
checked in Python afterwards. Every failure raises DefinitionError with the
paths of the offending entries.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from jsonschema import SchemaError, ValidationError, validate

from ..constants import (
    ACCESS_TYPES,
    ANY_SCHEMA_TYPE,
    DEFAULT_COLLECTION_PERMISSION,
    PERMISSIONS,
    SCHEMA_TYPES,
)
from ..database.hooks import CollectionHooks
from ..database.schema import FieldSchema, matches_type
from ..exceptions import DefinitionError
from .types import DatabaseDefinitionDict, Permission

logger = logging.getLogger(__name__)


# ============================================================================
# JSON Schema for database definitions
# ============================================================================

_FIELD_SCHEMA: dict[str, Any] = {
    "oneOf": [
        {"type": "string", "enum": list(SCHEMA_TYPES)},
        {
            "type": "object",
            "required": ["type"],
            "properties": {
                "type": {"type": "string", "enum": [*SCHEMA_TYPES, ANY_SCHEMA_TYPE]},
                "required": {"type": "boolean"},
                "default": {},
                "validity": {
                    "type": "object",
                    "required": ["handler", "message"],
                    "properties": {
                        "handler": {},
                        "message": {"type": "string", "minLength": 1},
                    },
                    "additionalProperties": False,
                },
            },
            "additionalProperties": False,
            "if": {"properties": {"type": {"const": ANY_SCHEMA_TYPE}}},
            "then": {"required": ["type", "validity"]},
        },
    ]
}

DATABASE_DEFINITION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["name", "collections"],
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "collections": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "required": ["name"],
                "properties": {
                    "name": {"type": "string", "minLength": 1},
                    "schema": {"type": "object", "additionalProperties": _FIELD_SCHEMA},
                    "permissions": {
                        "type": "object",
                        "required": list(ACCESS_TYPES),
                        "properties": {
                            access_type: {"type": "string", "enum": list(PERMISSIONS)}
                            for access_type in ACCESS_TYPES
                        },
                        "additionalProperties": False,
                    },
                    "hooks": {"type": "object"},
                },
                "additionalProperties": False,
            },
        },
    },
    "additionalProperties": False,
}


# ============================================================================
# Definitions
# ============================================================================


def _default_permissions() -> dict[str, Permission]:
    return {access_type: Permission(DEFAULT_COLLECTION_PERMISSION) for access_type in ACCESS_TYPES}


@dataclass(frozen=True)
class CollectionDefinition:
    """A registered collection."""

    name: str
    schema: dict[str, FieldSchema] | None = None
    permissions: dict[str, Permission] = field(default_factory=_default_permissions)
    hooks: CollectionHooks = field(default_factory=CollectionHooks)


@dataclass(frozen=True)
class DatabaseDefinition:
    """A registered database and its collections."""

    name: str
    collections: tuple[CollectionDefinition, ...] = ()

    def get_collection(self, name: str) -> CollectionDefinition | None:
        """Exact-name lookup."""
        for collection in self.collections:
            if collection.name == name:
                return collection
        return None

    @property
    def collection_names(self) -> list[str]:
        return [c.name for c in self.collections]


def _path(parts: Any) -> str:
    parts = list(parts)
    return ".".join(str(p) for p in parts) if parts else "root"


def _check_structure(definition: Any) -> None:
    try:
        validate(instance=definition, schema=DATABASE_DEFINITION_SCHEMA)
    except ValidationError as e:
        error_paths = [_path(e.absolute_path)]
        error_messages = [e.message]
        for suberror in e.context or []:
            error_paths.append(_path(suberror.absolute_path))
            error_messages.append(suberror.message)
        name = definition.get("name") if isinstance(definition, Mapping) else None
        raise DefinitionError(
            f"Invalid database definition: {'; '.join(dict.fromkeys(error_messages))}",
            error_paths=list(dict.fromkeys(error_paths)),
            database_name=name if isinstance(name, str) else None,
        ) from e
    except SchemaError as e:
        raise DefinitionError(
            f"Invalid definition schema: {e.message}", error_paths=["schema"]
        ) from e


def _find_duplicate(names: list[str]) -> str | None:
    seen: set[str] = set()
    for name in names:
        key = name.lower()
        if key in seen:
            return name
        seen.add(key)
    return None


def _build_schema(
    raw_schema: Mapping[str, Any] | None, path: str, database_name: str
) -> dict[str, FieldSchema] | None:
    if raw_schema is None:
        return None

    duplicate = _find_duplicate(list(raw_schema))
    if duplicate is not None:
        raise DefinitionError(
            f"The schema property '{duplicate}' is defined more than once",
            error_paths=[f"{path}.{duplicate}"],
            database_name=database_name,
        )

    schema: dict[str, FieldSchema] = {}
    for field_name, raw_field in raw_schema.items():
        parsed = FieldSchema.parse(raw_field)
        field_path = f"{path}.{field_name}"

        if parsed.validity_handler is not None and not callable(parsed.validity_handler):
            raise DefinitionError(
                f"The validity handler of '{field_name}' must be callable",
                error_paths=[f"{field_path}.validity.handler"],
                database_name=database_name,
            )

        if parsed.has_default and not matches_type(parsed.type, parsed.default):
            raise DefinitionError(
                f"The default value of '{field_name}' does not match its type '{parsed.type}'",
                error_paths=[f"{field_path}.default"],
                database_name=database_name,
            )

        schema[field_name] = parsed
    return schema


def _build_collection(
    raw: Mapping[str, Any], index: int, database_name: str
) -> CollectionDefinition:
    path = f"collections.{index}"

    try:
        hooks = CollectionHooks.from_mapping(raw.get("hooks"))
    except DefinitionError as e:
        raise DefinitionError(
            e.message,
            error_paths=[f"{path}.{p}" for p in e.error_paths or []],
            database_name=database_name,
        ) from e

    raw_permissions = raw.get("permissions")
    permissions = (
        {access_type: Permission(raw_permissions[access_type]) for access_type in ACCESS_TYPES}
        if raw_permissions
        else _default_permissions()
    )

    return CollectionDefinition(
        name=raw["name"],
        schema=_build_schema(raw.get("schema"), f"{path}.schema", database_name),
        permissions=permissions,
        hooks=hooks,
    )


class DefinitionRegistry:
    """
    Write-once store of database definitions.

    Database names are unique regardless of case.
    """

    def __init__(self) -> None:
        self._databases: dict[str, DatabaseDefinition] = {}

    def define_database(self, definition: DatabaseDefinitionDict) -> DatabaseDefinition:
        """
        Validate and register a database definition.

        Args:
            definition: ``{"name": ..., "collections": [...]}``

        Returns:
            The registered DatabaseDefinition

        Raises:
            DefinitionError: If the definition is malformed or the database
                (or one of its collections) is already defined
        """
        _check_structure(definition)
        name = definition["name"]

        if name.lower() in self._databases:
            raise DefinitionError(
                f"The database '{name}' is already defined",
                error_paths=["name"],
                database_name=name,
            )

        raw_collections = definition["collections"]
        duplicate = _find_duplicate([c["name"] for c in raw_collections])
        if duplicate is not None:
            raise DefinitionError(
                f"The collection '{duplicate}' is defined more than once in '{name}'",
                error_paths=["collections"],
                database_name=name,
            )

        database = DatabaseDefinition(
            name=name,
            collections=tuple(
                _build_collection(raw, i, name) for i, raw in enumerate(raw_collections)
            ),
        )
        self._databases[name.lower()] = database
        logger.info(
            f"Defined database '{name}' with {len(database.collections)} collection(s): "
            f"{', '.join(database.collection_names)}"
        )
        return database

    def get_database(self, name: str, case_sensitive: bool = True) -> DatabaseDefinition | None:
        database = self._databases.get(name.lower()) if isinstance(name, str) else None
        if database is None:
            return None
        if case_sensitive and database.name != name:
            return None
        return database

    @property
    def databases(self) -> list[DatabaseDefinition]:
        return list(self._databases.values())


_registry: DefinitionRegistry | None = None


def get_registry() -> DefinitionRegistry:
    """Process-wide registry shared by engines that are not given their own."""
    global _registry
    if _registry is None:
        _registry = DefinitionRegistry()
    return _registry
