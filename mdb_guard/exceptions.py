"""
Custom exceptions for MDB_GUARD.

Every error raised by the package derives from MDBGuardError, which keeps
compatibility with RuntimeError. A few subclasses also derive from the
matching builtin (TypeError, ValueError) so callers can catch them either way.
"""

from typing import Any


class MDBGuardError(RuntimeError):
    """
    Base exception for MDB_GUARD errors.

    Attributes:
        message: Error message
        context: Optional dictionary with additional context (collection_name,
                 user_id, etc.)
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        """
        Initialize the exception.

        Args:
            message: Error message
            context: Optional dictionary with additional context information
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        """Return formatted error message with context if available."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} (context: {context_str})"
        return self.message


class ArgumentError(MDBGuardError, TypeError, ValueError):
    """
    Raised when an operation receives a malformed argument.

    Raised before any storage contact: bad collection names, non-dict items,
    non-list item batches, non-boolean options, out-of-range limits and
    similar. Catchable as TypeError or ValueError.

    Attributes:
        argument: Name of the offending argument (if available)
    """

    def __init__(
        self,
        message: str,
        argument: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        context = context or {}
        if argument:
            context["argument"] = argument
        super().__init__(message, context=context)
        self.argument = argument


class InvalidSyntaxError(MDBGuardError):
    """
    Raised when a call is structurally invalid.

    Examples are requesting ``case_sensitive`` for a non-string equality
    value, calling ``fields()`` without include/exclude lists, or updating an
    item that carries no ``_id``.
    """


class NormalizationError(MDBGuardError, ValueError):
    """
    Raised when a system-managed field holds an invalid value.

    Attributes:
        field: The system field (``_id``, ``_createdDate``, ``_updatedDate``, ``_owner``)
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        context = context or {}
        if field:
            context["field"] = field
        super().__init__(message, context=context)
        self.field = field


class SchemaValidationError(MDBGuardError):
    """
    Raised when an item does not satisfy its collection schema.

    Attributes:
        field: The schema property that failed validation
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        context = context or {}
        if field:
            context["field"] = field
        super().__init__(message, context=context)
        self.field = field


class AccessDeniedError(MDBGuardError):
    """
    Raised when the access evaluator denies an operation.

    Attributes:
        access_type: The access type that was requested (read/write/modify/delete)
        collection_name: The collection the operation targeted
        user_id: The caller id (if any)
    """

    def __init__(
        self,
        message: str,
        access_type: str | None = None,
        collection_name: str | None = None,
        user_id: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        context = context or {}
        if access_type:
            context["access_type"] = access_type
        if collection_name:
            context["collection_name"] = collection_name
        if user_id:
            context["user_id"] = user_id
        super().__init__(message, context=context)
        self.access_type = access_type
        self.collection_name = collection_name
        self.user_id = user_id


class CollectionNotFoundError(MDBGuardError):
    """
    Raised when a collection is not registered or does not exist in the store.

    Attributes:
        collection_name: The missing collection
        database_name: The database that was searched
    """

    def __init__(
        self,
        message: str,
        collection_name: str | None = None,
        database_name: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        context = context or {}
        if collection_name:
            context["collection_name"] = collection_name
        if database_name:
            context["database_name"] = database_name
        super().__init__(message, context=context)
        self.collection_name = collection_name
        self.database_name = database_name


class StorageError(MDBGuardError):
    """Raised when the document store rejects or does not acknowledge a write."""


class QueryValidationError(MDBGuardError):
    """
    Raised when a filter or pipeline fails the safety checks.

    Attributes:
        query_type: Type of query that failed (filter, pipeline)
        path: JSON path of the offending element
    """

    def __init__(
        self,
        message: str,
        query_type: str | None = None,
        path: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        context = context or {}
        if query_type:
            context["query_type"] = query_type
        if path:
            context["path"] = path
        super().__init__(message, context=context)
        self.query_type = query_type
        self.path = path


class PageRetrievalError(MDBGuardError):
    """Raised when a query result cannot fetch its next page."""


class DefinitionError(MDBGuardError):
    """
    Raised when a database definition is invalid.

    Attributes:
        error_paths: List of JSON paths with validation errors
        database_name: Name of the database being defined (if available)
    """

    def __init__(
        self,
        message: str,
        error_paths: list[str] | None = None,
        database_name: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        context = context or {}
        if error_paths:
            context["error_paths"] = error_paths
        if database_name:
            context["database_name"] = database_name
        super().__init__(message, context=context)
        self.error_paths = error_paths
        self.database_name = database_name


class ConfigurationError(MDBGuardError):
    """
    Raised when configuration is invalid or missing.

    Attributes:
        config_key: Configuration key that caused the error (if available)
        config_value: Configuration value that caused the error (if available)
    """

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
        config_value: Any | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        context = context or {}
        if config_key:
            context["config_key"] = config_key
        if config_value is not None:
            context["config_value"] = config_value
        super().__init__(message, context=context)
        self.config_key = config_key
        self.config_value = config_value


class InitializationError(MDBGuardError):
    """
    Raised when a connection cannot be established.

    Attributes:
        connection_name: Name of the connection (if available)
    """

    def __init__(
        self,
        message: str,
        connection_name: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        context = context or {}
        if connection_name:
            context["connection_name"] = connection_name
        super().__init__(message, context=context)
        self.connection_name = connection_name


class OperationFailedError(MDBGuardError):
    """
    Raised by the failure reporter when a data operation fails.

    The message is generic per call site. The root cause is chained as
    ``__cause__`` and also available in ``record["error"]``.

    Attributes:
        data_operation: Name of the failed operation (insert, query, ...)
        record: Structured failure record ``{type, context, error}``
    """

    def __init__(
        self,
        message: str,
        data_operation: str,
        record: dict[str, Any],
    ) -> None:
        super().__init__(message, context={"data_operation": data_operation})
        self.data_operation = data_operation
        self.record = record

    @property
    def error(self) -> BaseException | None:
        """The root-cause exception."""
        return self.record.get("error")
