"""
Connection management for MDB_GUARD.

Keeps named Motor clients. Each client is created once with the pool and
timeout settings from ClientConfig and reused by every DataClient created
for that connection name.
"""

import logging
import time
from typing import Any

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import ConnectionFailure, ConfigurationError as PyMongoConfigurationError
from pymongo.errors import ServerSelectionTimeoutError

from ..config import ClientConfig
from ..constants import CONNECTION_URI_SCHEMES
from ..exceptions import ConfigurationError, InitializationError
from ..observability import get_logger as get_contextual_logger
from ..observability import log_operation, record_operation

logger = logging.getLogger(__name__)
contextual_logger = get_contextual_logger(__name__)


class ConnectionManager:
    """
    Named Motor clients.

    Clients are created lazily by Motor: define_connection() does not
    contact the server. Use ping() to verify a connection.
    """

    def __init__(self, config: ClientConfig | None = None) -> None:
        self.config = config or ClientConfig()
        self._clients: dict[str, AsyncIOMotorClient] = {}

    def define_connection(self, name: str, uri: str, **client_options: Any) -> str:
        """
        Create and register a Motor client.

        Args:
            name: Connection name used by create_client()
            uri: MongoDB connection URI
            **client_options: Extra AsyncIOMotorClient options, overriding
                the configured defaults

        Returns:
            The connection name

        Raises:
            ConfigurationError: Invalid name or URI, duplicate name, or the
                driver rejected the options
        """
        if not isinstance(name, str) or len(name) == 0:
            raise ConfigurationError(
                "The connection name must be a non-empty string", config_key="name"
            )
        if name in self._clients:
            raise ConfigurationError(
                f"The connection '{name}' is already defined", config_key="name", config_value=name
            )
        if not isinstance(uri, str) or not uri.startswith(CONNECTION_URI_SCHEMES):
            raise ConfigurationError(
                "The connection URI must start with mongodb:// or mongodb+srv://",
                config_key="uri",
            )

        options: dict[str, Any] = {
            "serverSelectionTimeoutMS": self.config.server_selection_timeout_ms,
            "appname": self.config.app_name,
            "maxPoolSize": self.config.max_pool_size,
            "minPoolSize": self.config.min_pool_size,
            "retryWrites": True,
            "retryReads": True,
        }
        options.update(client_options)

        try:
            self._clients[name] = AsyncIOMotorClient(uri, **options)
        except (PyMongoConfigurationError, TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Unable to create the '{name}' connection: {e}",
                config_key="uri",
                context={"error_type": type(e).__name__},
            ) from e

        contextual_logger.info(
            "Defined MongoDB connection",
            extra={
                "connection_name": name,
                "pool_size": f"{options['minPoolSize']}-{options['maxPoolSize']}",
            },
        )
        return name

    def get(self, name: str) -> AsyncIOMotorClient:
        """
        Raises:
            ConfigurationError: If no connection has that name
        """
        client = self._clients.get(name)
        if client is None:
            raise ConfigurationError(
                f"The connection '{name}' is not defined", config_key="connection", config_value=name
            )
        return client

    @property
    def connections(self) -> list[str]:
        return list(self._clients)

    async def ping(self, name: str) -> None:
        """
        Verify the server behind a connection responds.

        Raises:
            ConfigurationError: If no connection has that name
            InitializationError: If the server cannot be reached
        """
        client = self.get(name)
        start_time = time.time()
        try:
            await client.admin.command("ping")
        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            duration_ms = (time.time() - start_time) * 1000
            record_operation("connection.ping", duration_ms, success=False)
            contextual_logger.critical(
                "MongoDB connection failed",
                extra={
                    "connection_name": name,
                    "error_type": type(e).__name__,
                    "duration_ms": round(duration_ms, 2),
                },
                exc_info=True,
            )
            raise InitializationError(
                f"Failed to connect to MongoDB: {e}", connection_name=name
            ) from e

        duration_ms = (time.time() - start_time) * 1000
        record_operation("connection.ping", duration_ms, success=True)
        log_operation(
            contextual_logger,
            "connection.ping",
            logging.DEBUG,
            duration_ms=duration_ms,
            connection_name=name,
        )

    def close_all(self) -> None:
        """Close every client. Safe to call more than once."""
        for name, client in self._clients.items():
            client.close()
            logger.info(f"Closed MongoDB connection '{name}'")
        self._clients.clear()
