"""
Access evaluation for collection operations.

Maps a collection's declared permission and the calling client's identity
to an access verdict, and applies the ownership predicate to storage
criteria when the verdict limits the caller to items they own.
"""

import logging
from typing import Any

from ..core.types import AccessVerdict, AuthorizationMode, CallerIdentity, Permission, Role

logger = logging.getLogger(__name__)


def evaluate_access(
    permission: Permission | str | None,
    authorization: AuthorizationMode | str,
    caller: CallerIdentity,
) -> AccessVerdict:
    """
    Evaluate a declared permission for a caller.

    Args:
        permission: Declared permission for the access type, or None if the
            collection declares nothing for it
        authorization: Authorization mode of the client
        caller: Identity of the caller

    Returns:
        ALLOWED, DENIED or OWNED_ITEMS. Unknown combinations are DENIED.
    """
    if permission is None:
        return AccessVerdict.ALLOWED

    if AuthorizationMode(authorization) is AuthorizationMode.SYSTEM:
        return AccessVerdict.ALLOWED

    permission = Permission(permission)
    if permission is Permission.ANYONE:
        return AccessVerdict.ALLOWED

    if not caller.logged_in:
        return AccessVerdict.DENIED

    if permission is Permission.ADMIN:
        return AccessVerdict.ALLOWED if caller.role is Role.ADMIN else AccessVerdict.DENIED

    if permission is Permission.MEMBER_AUTHOR:
        return AccessVerdict.OWNED_ITEMS

    if permission is Permission.MEMBER:
        return AccessVerdict.ALLOWED

    return AccessVerdict.DENIED


def scope_to_owner(
    criteria: dict[str, Any], verdict: AccessVerdict, user_id: str | None
) -> dict[str, Any]:
    """
    Return ``criteria`` restricted to the caller's items when required.

    The ownership predicate is applied last, so it replaces any ``_owner``
    condition the caller put in ``criteria``.
    """
    if verdict is not AccessVerdict.OWNED_ITEMS:
        return criteria

    if "_owner" in criteria and criteria["_owner"] != user_id:
        logger.debug("Replacing caller-supplied _owner predicate with ownership scope")
    return {**criteria, "_owner": user_id}
