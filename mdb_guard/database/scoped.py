"""
Collection handle scoped to one caller.

ScopedCollection binds a registered collection definition to the Motor
database it lives in and to the client's authorization mode and caller
identity. It is the shared preamble of every data operation: it verifies
the collection physically exists, resolves the declared permission into an
access verdict, scopes storage criteria to owned items and routes failures
through the failure reporter.
"""

import logging
from typing import TYPE_CHECKING, Any, NoReturn

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from ..auth.access import evaluate_access, scope_to_owner
from ..core.types import (
    AccessType,
    AccessVerdict,
    AuthorizationMode,
    CallerIdentity,
    HookContext,
    OperationOptions,
)
from ..exceptions import AccessDeniedError, ArgumentError, CollectionNotFoundError, StorageError
from .hooks import CollectionHooks, report_failure

if TYPE_CHECKING:
    from ..core.registry import CollectionDefinition

logger = logging.getLogger(__name__)


def build_options(suppress_auth: Any = False, suppress_hooks: Any = False) -> OperationOptions:
    """
    Validate per-call switches.

    Raises:
        ArgumentError: If either switch is not a bool
    """
    if not isinstance(suppress_auth, bool):
        raise ArgumentError(
            "The 'suppress_auth' option can only accept a boolean value, instead got "
            f"{type(suppress_auth).__name__}",
            argument="suppress_auth",
        )
    if not isinstance(suppress_hooks, bool):
        raise ArgumentError(
            "The 'suppress_hooks' option can only accept a boolean value, instead got "
            f"{type(suppress_hooks).__name__}",
            argument="suppress_hooks",
        )
    return OperationOptions(suppress_auth=suppress_auth, suppress_hooks=suppress_hooks)


class ScopedCollection:
    """A registered collection as seen by one client."""

    def __init__(
        self,
        database: AsyncIOMotorDatabase,
        definition: "CollectionDefinition",
        authorization: AuthorizationMode,
        caller: CallerIdentity,
    ):
        self._database = database
        self._definition = definition
        self._authorization = authorization
        self._caller = caller

    @property
    def name(self) -> str:
        return self._definition.name

    @property
    def database_name(self) -> str:
        return self._database.name

    @property
    def definition(self) -> "CollectionDefinition":
        return self._definition

    @property
    def hooks(self) -> CollectionHooks:
        return self._definition.hooks

    @property
    def caller(self) -> CallerIdentity:
        return self._caller

    @property
    def collection(self) -> AsyncIOMotorCollection:
        """The underlying Motor collection."""
        return self._database[self._definition.name]

    @property
    def context(self) -> HookContext:
        return {
            "collectionName": self._definition.name,
            "userId": self._caller.id,
            "userRole": self._caller.role.value,
        }

    async def ensure_exists(self) -> None:
        """
        Confirm the collection exists in the store.

        Raises:
            CollectionNotFoundError: The collection is missing
            StorageError: The collection list could not be read
        """
        try:
            names = await self._database.list_collection_names()
        except PyMongoError as e:
            logger.exception(f"Unable to check collection validity for {self.name}")
            raise StorageError(
                "Unable to check collection validity",
                context={"collection_name": self.name, "database_name": self.database_name},
            ) from e

        if self.name not in names:
            raise CollectionNotFoundError(
                f"The ({self.name}) collection does not exist on the {self.database_name} database",
                collection_name=self.name,
                database_name=self.database_name,
            )

    def evaluate(self, access_type: AccessType, suppress_auth: bool = False) -> AccessVerdict:
        """Access verdict for ``access_type``; ALLOWED when auth is suppressed."""
        if suppress_auth:
            return AccessVerdict.ALLOWED
        permission = self._definition.permissions.get(access_type)
        return evaluate_access(permission, self._authorization, self._caller)

    def authorize(self, access_type: AccessType, suppress_auth: bool = False) -> AccessVerdict:
        """
        Like evaluate(), but a DENIED verdict raises.

        Raises:
            AccessDeniedError: The caller may not perform ``access_type``
        """
        verdict = self.evaluate(access_type, suppress_auth)
        if verdict is AccessVerdict.DENIED:
            logger.warning(
                f"Access denied: user {self._caller.id!r} lacks {access_type} "
                f"permission on {self.name}"
            )
            raise AccessDeniedError(
                f"Access Denied: The current user ({self._caller.id}) does not have "
                f"{access_type.upper()} permissions on the {self.name} collection",
                access_type=access_type,
                collection_name=self.name,
                user_id=self._caller.id,
            )
        return verdict

    async def prepare(self, access_type: AccessType, options: OperationOptions) -> AccessVerdict:
        """Existence check followed by authorization."""
        await self.ensure_exists()
        return self.authorize(access_type, options.suppress_auth)

    def scope(self, criteria: dict[str, Any], verdict: AccessVerdict) -> dict[str, Any]:
        """Restrict ``criteria`` to the caller's items under an OWNED_ITEMS verdict."""
        return scope_to_owner(criteria, verdict, self._caller.id)

    async def fail(
        self, data_operation: str, error: BaseException, options: OperationOptions
    ) -> NoReturn:
        """
        Route ``error`` through the failure reporter (always raises).

        Driver errors are wrapped in StorageError first.
        """
        if isinstance(error, PyMongoError):
            logger.exception(f"Storage error during {data_operation} on {self.name}")
            storage_error = StorageError(
                f"The document store rejected {data_operation} on {self.name}: {error}",
                context={"collection_name": self.name, "database_name": self.database_name},
            )
            storage_error.__cause__ = error
            error = storage_error

        await report_failure(
            self.hooks.on_failure,
            data_operation,
            self.context,
            error,
            suppress_hooks=options.suppress_hooks,
        )
