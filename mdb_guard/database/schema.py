"""
Schema validation for collection items.

A collection schema maps field names to either a primitive type tag
("String", "Number", "Object", "Array", "Date", "Boolean") or a custom field
definition with ``type``, ``required``, ``default`` and ``validity`` keys.
Schemas are open: fields not declared pass through untouched.
"""

import copy
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from ..constants import ANY_SCHEMA_TYPE
from ..exceptions import SchemaValidationError

logger = logging.getLogger(__name__)

SchemaOperation = Literal["Insert", "Update"]

_MISSING = object()


@dataclass(frozen=True)
class FieldSchema:
    """Normalized form of one schema entry."""

    type: str
    required: bool = False
    default: Any = _MISSING
    validity_handler: Callable[[Any], bool] | None = None
    validity_message: str | None = None

    @property
    def has_default(self) -> bool:
        return self.default is not _MISSING

    @classmethod
    def parse(cls, definition: "str | Mapping[str, Any] | FieldSchema") -> "FieldSchema":
        """Build a FieldSchema from a type tag or a custom field mapping."""
        if isinstance(definition, FieldSchema):
            return definition
        if isinstance(definition, str):
            return cls(type=definition)
        validity = definition.get("validity") or {}
        return cls(
            type=definition["type"],
            required=bool(definition.get("required", False)),
            default=definition.get("default", _MISSING),
            validity_handler=validity.get("handler"),
            validity_message=validity.get("message"),
        )


def is_plain_object(value: Any) -> bool:
    """Items and Object fields must be dicts."""
    return isinstance(value, dict)


def matches_type(schema_type: str, value: Any) -> bool:
    """
    Check a value against a primitive schema type.

    Raises:
        SchemaValidationError: If ``schema_type`` is not a known type
    """
    if schema_type == ANY_SCHEMA_TYPE:
        return True
    if schema_type == "String":
        return isinstance(value, str)
    if schema_type == "Number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if schema_type == "Boolean":
        return isinstance(value, bool)
    if schema_type == "Date":
        return isinstance(value, datetime)
    if schema_type == "Array":
        return isinstance(value, (list, tuple))
    if schema_type == "Object":
        return is_plain_object(value)
    raise SchemaValidationError(f"'{schema_type}' is not a valid database schema type")


def _type_name(value: Any) -> str:
    return type(value).__name__


def validate_item_schema(
    item: dict[str, Any],
    schema: Mapping[str, Any] | None,
    operation: SchemaOperation = "Insert",
) -> dict[str, Any]:
    """
    Validate ``item`` against ``schema`` in place and return it.

    On insert, missing fields receive their declared default; a missing
    required field without a default fails. On update, missing fields are
    tolerated. A validity handler, when declared, replaces the type check.

    Args:
        item: The item to validate (mutated when defaults apply)
        schema: Collection schema, or None to skip validation
        operation: "Insert" or "Update"

    Returns:
        The same item

    Raises:
        SchemaValidationError: On type mismatch, missing required field or
            failed validity handler
    """
    if not is_plain_object(item):
        raise SchemaValidationError(
            f"The schema validator expects the item to be an object, instead got {_type_name(item)}"
        )

    if not schema:
        return item

    for field_name, definition in schema.items():
        field = FieldSchema.parse(definition)

        if field_name in item:
            value = item[field_name]
            if field.validity_handler is not None:
                if not field.validity_handler(value):
                    raise SchemaValidationError(field.validity_message or "", field=field_name)
            elif not matches_type(field.type, value):
                raise SchemaValidationError(
                    f"The {field_name} type is defined in the collection's schema as "
                    f"'{field.type}', but instead got {_type_name(value)}",
                    field=field_name,
                )
            continue

        if operation == "Insert":
            if field.has_default:
                item[field_name] = copy.deepcopy(field.default)
                logger.debug(f"Applied schema default for missing field '{field_name}'")
            elif field.required:
                raise SchemaValidationError(
                    f"The {field_name} property is required but is missing on the provided object",
                    field=field_name,
                )

    return item
