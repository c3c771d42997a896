"""
Configuration management for MDB_GUARD.

Explicit arguments win; anything left unset falls back to environment
variables and then to the package defaults in ``constants``.
"""

import os

from .constants import (
    CONNECTION_URI_SCHEMES,
    DEFAULT_APP_NAME,
    DEFAULT_MAX_POOL_SIZE,
    DEFAULT_MIN_POOL_SIZE,
    DEFAULT_QUERY_LIMIT,
    DEFAULT_SERVER_SELECTION_TIMEOUT_MS,
    MAX_QUERY_LIMIT,
    MIN_QUERY_LIMIT,
)
from .exceptions import ConfigurationError


class ClientConfig:
    """
    Connection and query configuration.

    Example:
        # Using environment variables
        config = ClientConfig()
        engine = DataEngine(config=config)
        engine.define_connection("main", config.mongo_uri)

        # Or using direct parameters
        config = ClientConfig(mongo_uri="mongodb://localhost:27017", db_name="app")
    """

    def __init__(
        self,
        mongo_uri: str | None = None,
        db_name: str | None = None,
        max_pool_size: int | None = None,
        min_pool_size: int | None = None,
        server_selection_timeout_ms: int | None = None,
        app_name: str | None = None,
        default_limit: int | None = None,
    ):
        """
        Initialize configuration.

        Args:
            mongo_uri: MongoDB connection URI (defaults to MONGO_URI env var)
            db_name: Default database name (defaults to DB_NAME env var)
            max_pool_size: Maximum connection pool size (defaults to 50 or MONGO_MAX_POOL_SIZE)
            min_pool_size: Minimum connection pool size (defaults to 10 or MONGO_MIN_POOL_SIZE)
            server_selection_timeout_ms: Server selection timeout in ms (defaults to 5000)
            app_name: Application name reported to the server (defaults to MDB_GUARD_APP_NAME)
            default_limit: Default query page size (defaults to 100 or MDB_GUARD_DEFAULT_LIMIT)
        """
        self.mongo_uri = mongo_uri or os.getenv("MONGO_URI", "")
        self.db_name = db_name or os.getenv("DB_NAME", "")
        self.max_pool_size = max_pool_size or int(
            os.getenv("MONGO_MAX_POOL_SIZE", str(DEFAULT_MAX_POOL_SIZE))
        )
        self.min_pool_size = min_pool_size or int(
            os.getenv("MONGO_MIN_POOL_SIZE", str(DEFAULT_MIN_POOL_SIZE))
        )
        self.server_selection_timeout_ms = server_selection_timeout_ms or int(
            os.getenv("MONGO_SERVER_SELECTION_TIMEOUT_MS", str(DEFAULT_SERVER_SELECTION_TIMEOUT_MS))
        )
        self.app_name = app_name or os.getenv("MDB_GUARD_APP_NAME", DEFAULT_APP_NAME)
        self.default_limit = default_limit or int(
            os.getenv("MDB_GUARD_DEFAULT_LIMIT", str(DEFAULT_QUERY_LIMIT))
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ConfigurationError: If a value is missing or out of range
        """
        if self.mongo_uri and not self.mongo_uri.startswith(CONNECTION_URI_SCHEMES):
            raise ConfigurationError(
                "mongo_uri must start with mongodb:// or mongodb+srv://",
                config_key="mongo_uri",
            )

        if self.max_pool_size < 1:
            raise ConfigurationError(
                f"max_pool_size must be >= 1, got {self.max_pool_size}",
                config_key="max_pool_size",
                config_value=self.max_pool_size,
            )

        if self.min_pool_size < 1:
            raise ConfigurationError(
                f"min_pool_size must be >= 1, got {self.min_pool_size}",
                config_key="min_pool_size",
                config_value=self.min_pool_size,
            )

        if self.min_pool_size > self.max_pool_size:
            raise ConfigurationError(
                f"min_pool_size ({self.min_pool_size}) cannot be greater than "
                f"max_pool_size ({self.max_pool_size})",
                config_key="min_pool_size",
            )

        if self.server_selection_timeout_ms < 1000:
            raise ConfigurationError(
                f"server_selection_timeout_ms must be >= 1000, got "
                f"{self.server_selection_timeout_ms}",
                config_key="server_selection_timeout_ms",
                config_value=self.server_selection_timeout_ms,
            )

        if not MIN_QUERY_LIMIT <= self.default_limit <= MAX_QUERY_LIMIT:
            raise ConfigurationError(
                f"default_limit must be between {MIN_QUERY_LIMIT} and {MAX_QUERY_LIMIT}, "
                f"got {self.default_limit}",
                config_key="default_limit",
                config_value=self.default_limit,
            )
