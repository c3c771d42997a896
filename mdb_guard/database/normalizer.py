"""
Normalization of system-managed item fields.

Every persisted item carries ``_id``, ``_createdDate``, ``_updatedDate`` and
``_owner``. Inserts fill in or validate all four; updates require ``_id``,
drop the immutable ``_createdDate``/``_owner`` and refresh ``_updatedDate``.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from ..constants import SYSTEM_OWNER
from ..core.types import AuthorizationMode
from ..exceptions import ArgumentError, InvalidSyntaxError, NormalizationError

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_item_id() -> str:
    """Generate a new unique item id."""
    return str(uuid.uuid4())


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def coerce_date(value: Any, field: str) -> datetime:
    """
    Convert a datetime or ISO-8601 string to a timezone-aware UTC datetime.

    Naive datetimes are taken to be UTC.

    Raises:
        ArgumentError: If ``value`` is neither a datetime nor a string
        NormalizationError: If the string is not a valid ISO date
    """
    if isinstance(value, datetime):
        return as_utc(value)

    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            return as_utc(datetime.fromisoformat(text))
        except ValueError as e:
            raise NormalizationError(
                f'The item\'s "{field}" is not a valid date value. '
                "Pass a datetime instance or an ISO date string",
                field=field,
            ) from e

    raise ArgumentError(
        f'The item\'s "{field}" is invalid. Expected a datetime instance or an ISO date '
        f"string but got {type(value).__name__}",
        argument=field,
    )


def _check_item_id(item_id: Any) -> None:
    if not isinstance(item_id, str):
        raise ArgumentError(
            f"The item ID is expected to be a string, instead got {type(item_id).__name__}",
            argument="_id",
        )
    if len(item_id) == 0:
        raise NormalizationError("The provided item _id cannot be an empty string", field="_id")


def prepare_insert_item(
    item: dict[str, Any],
    authorization: AuthorizationMode | str,
    user_id: str | None,
) -> dict[str, Any]:
    """
    Fill in and validate the system fields of an item about to be inserted.

    The item is modified in place and returned.

    Args:
        item: The item to insert
        authorization: Authorization mode of the client
        user_id: Caller id, used as the default owner in User mode

    Returns:
        The normalized item

    Raises:
        ArgumentError: A system field has the wrong type
        NormalizationError: A system field has an invalid value, or
            ``_updatedDate`` is earlier than ``_createdDate``
    """
    if "_id" in item:
        _check_item_id(item["_id"])
    else:
        item["_id"] = generate_item_id()

    if "_createdDate" in item:
        item["_createdDate"] = coerce_date(item["_createdDate"], "_createdDate")
    else:
        item["_createdDate"] = utcnow()

    if "_updatedDate" in item:
        updated = coerce_date(item["_updatedDate"], "_updatedDate")
        if updated < item["_createdDate"]:
            raise NormalizationError(
                'The item\'s "_updatedDate" cannot be before its "_createdDate"',
                field="_updatedDate",
            )
        item["_updatedDate"] = updated
    else:
        item["_updatedDate"] = item["_createdDate"]

    if AuthorizationMode(authorization) is AuthorizationMode.SYSTEM:
        item["_owner"] = SYSTEM_OWNER
    elif "_owner" in item:
        owner = item["_owner"]
        if not isinstance(owner, str):
            raise ArgumentError(
                f'The "_owner" value should be a string, but instead got {type(owner).__name__}',
                argument="_owner",
            )
        if len(owner) == 0:
            raise NormalizationError('The "_owner" value cannot be an empty string', field="_owner")
        if owner.lower() == SYSTEM_OWNER:
            raise NormalizationError(
                'The "_owner" value cannot be set to the value "System"', field="_owner"
            )
    else:
        item["_owner"] = user_id

    return item


def prepare_update_item(item: dict[str, Any]) -> dict[str, Any]:
    """
    Prepare an item for a partial update.

    Requires ``_id``, strips ``_createdDate`` and ``_owner`` (both are
    immutable once inserted) and stamps ``_updatedDate`` with the current
    time. The item is modified in place and returned.

    Raises:
        InvalidSyntaxError: The item has no ``_id``
        ArgumentError: ``_id`` is not a string
        NormalizationError: ``_id`` is empty
    """
    if "_id" not in item:
        raise InvalidSyntaxError(
            'An item in the update list is missing its "_id" field. '
            'All items must include the "_id" property'
        )
    _check_item_id(item["_id"])

    for immutable in ("_createdDate", "_owner"):
        if item.pop(immutable, None) is not None:
            logger.debug(f"Dropped immutable field '{immutable}' from update of {item['_id']}")

    item["_updatedDate"] = utcnow()
    return item
