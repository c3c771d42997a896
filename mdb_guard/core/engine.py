"""
MDB_GUARD engine.

DataEngine is the entry point: it holds the database definitions and the
named connections, and creates DataClient instances bound to a caller.

Usage:
    engine = DataEngine()
    engine.define_database({"name": "App", "collections": [{"name": "Members"}]})
    engine.define_connection("main", "mongodb://localhost:27017")

    admin = engine.create_client("main", authorization="System", default_database="App")
    member = engine.create_client(
        "main",
        authorization="User",
        user={"id": "u1", "role": "Member", "loggedIn": True},
        default_database="App",
    )
"""

import logging
from collections.abc import Mapping
from typing import Any

from ..config import ClientConfig
from ..constants import AUTHORIZATION_MODES, LOGGED_IN_ROLES
from ..database.query_validator import QueryValidator
from ..exceptions import ConfigurationError
from .client import DataClient
from .connection import ConnectionManager
from .registry import DatabaseDefinition, DefinitionRegistry, get_registry
from .types import AuthorizationMode, CallerIdentity, DatabaseDefinitionDict, Role, UserDict

logger = logging.getLogger(__name__)


def _build_caller(user: Any) -> CallerIdentity:
    """
    Validate a User-mode caller description.

    Raises:
        ConfigurationError: On a missing or malformed field
    """
    if not isinstance(user, Mapping):
        raise ConfigurationError(
            "A user mapping is required when the authorization is 'User', instead got "
            f"{type(user).__name__}",
            config_key="user",
        )

    if "loggedIn" not in user:
        raise ConfigurationError('The user is missing the "loggedIn" property', config_key="user")
    logged_in = user["loggedIn"]
    if not isinstance(logged_in, bool):
        raise ConfigurationError(
            f'"user.loggedIn" must be a boolean, instead got {type(logged_in).__name__}',
            config_key="user.loggedIn",
        )
    if not logged_in:
        return CallerIdentity.anonymous()

    role = user.get("role")
    if role not in LOGGED_IN_ROLES:
        raise ConfigurationError(
            f"The role of a logged-in user must be one of {', '.join(LOGGED_IN_ROLES)}",
            config_key="user.role",
            config_value=role,
        )

    user_id = user.get("id")
    if not isinstance(user_id, str) or len(user_id) == 0:
        raise ConfigurationError(
            '"user.id" must be a non-empty string for logged-in users', config_key="user.id"
        )

    return CallerIdentity(id=user_id, role=Role(role), logged_in=True)


class DataEngine:
    """
    Definitions, connections and client factory.

    Engines share the process-wide definition registry unless given one.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        registry: DefinitionRegistry | None = None,
    ) -> None:
        self.config = config or ClientConfig()
        self.config.validate()
        self._registry = registry or get_registry()
        self._connections = ConnectionManager(self.config)
        self._validator = QueryValidator()

    def define_database(self, definition: DatabaseDefinitionDict) -> DatabaseDefinition:
        return self._registry.define_database(definition)

    def define_connection(self, name: str, uri: str | None = None, **client_options: Any) -> str:
        """Define a named connection. ``uri`` defaults to the configured MONGO_URI."""
        return self._connections.define_connection(
            name, uri or self.config.mongo_uri, **client_options
        )

    def get_database(self, name: str, case_sensitive: bool = True) -> DatabaseDefinition | None:
        return self._registry.get_database(name, case_sensitive=case_sensitive)

    @property
    def databases(self) -> list[DatabaseDefinition]:
        return self._registry.databases

    @property
    def connections(self) -> list[str]:
        return self._connections.connections

    @property
    def connection_manager(self) -> ConnectionManager:
        return self._connections

    def create_client(
        self,
        connection: str,
        authorization: str = "User",
        user: UserDict | None = None,
        default_database: str | None = None,
    ) -> DataClient:
        """
        Create a client for one caller.

        Args:
            connection: Name given to define_connection()
            authorization: "System" (no permission checks) or "User"
            user: Required under "User": ``{"id", "role", "loggedIn"}``
            default_database: Database used until db() selects another.
                Defaults to the configured DB_NAME.

        Raises:
            ConfigurationError: On an unknown connection or invalid options
        """
        if not isinstance(connection, str):
            raise ConfigurationError(
                f"The connection must be a string, instead got {type(connection).__name__}",
                config_key="connection",
            )
        motor_client = self._connections.get(connection)

        if authorization not in AUTHORIZATION_MODES:
            raise ConfigurationError(
                f"The authorization ({authorization}) is not a valid authorization type",
                config_key="authorization",
                config_value=authorization,
            )
        mode = AuthorizationMode(authorization)
        caller = _build_caller(user) if mode is AuthorizationMode.USER else CallerIdentity.anonymous()

        if default_database is None:
            default_database = self.config.db_name or None
        elif not isinstance(default_database, str) or len(default_database) == 0:
            raise ConfigurationError(
                "default_database must be a non-empty string", config_key="default_database"
            )

        logger.debug(
            f"Creating {mode.value} client on '{connection}' for {caller.role.value} {caller.id!r}"
        )
        return DataClient(
            motor_client,
            self._registry,
            mode,
            caller,
            default_database=default_database,
            config=self.config,
            validator=self._validator,
        )

    def close(self) -> None:
        """Close every connection."""
        self._connections.close_all()
