"""
Unit tests for custom exceptions.

Tests exception hierarchy and error messages.
"""

from mdb_guard.exceptions import (AccessDeniedError, ArgumentError,
                                  ConfigurationError, DefinitionError,
                                  InitializationError, MDBGuardError,
                                  NormalizationError, OperationFailedError,
                                  StorageError)


class TestExceptionHierarchy:
    """Test exception inheritance hierarchy."""

    def test_base_error_is_runtime_error(self):
        """Test that MDBGuardError is a RuntimeError."""
        assert isinstance(MDBGuardError("test error"), RuntimeError)

    def test_argument_error_builtin_bases(self):
        """Test that ArgumentError can be caught as TypeError or ValueError."""
        error = ArgumentError("bad", argument="limit")
        assert isinstance(error, MDBGuardError)
        assert isinstance(error, TypeError)
        assert isinstance(error, ValueError)

    def test_normalization_error_is_value_error(self):
        """Test that NormalizationError is a ValueError."""
        assert isinstance(NormalizationError("bad date"), ValueError)

    def test_storage_error_inheritance(self):
        """Test that StorageError inherits from MDBGuardError."""
        assert isinstance(StorageError("down"), MDBGuardError)


class TestExceptionMessages:
    """Test exception message formatting."""

    def test_base_error_message(self):
        """Test MDBGuardError message."""
        error = MDBGuardError("Something went wrong")
        assert str(error) == "Something went wrong"
        assert error.message == "Something went wrong"
        assert error.context == {}

    def test_base_error_with_context(self):
        """Test MDBGuardError message with context."""
        error = MDBGuardError("Something went wrong", context={"collection_name": "Members"})
        assert "context:" in str(error)
        assert "collection_name=Members" in str(error)

    def test_access_denied_context(self):
        """Test AccessDeniedError attributes."""
        error = AccessDeniedError(
            "denied", access_type="write", collection_name="Members", user_id="u1"
        )
        assert error.access_type == "write"
        assert error.context == {
            "access_type": "write",
            "collection_name": "Members",
            "user_id": "u1",
        }

    def test_definition_error_paths(self):
        """Test DefinitionError attributes."""
        error = DefinitionError("invalid", error_paths=["collections.0"], database_name="App")
        assert error.error_paths == ["collections.0"]
        assert error.context["database_name"] == "App"

    def test_configuration_error_value(self):
        """Test that falsy configuration values are still recorded."""
        error = ConfigurationError("bad limit", config_key="default_limit", config_value=0)
        assert error.context == {"config_key": "default_limit", "config_value": 0}

    def test_initialization_error(self):
        """Test InitializationError attributes."""
        error = InitializationError("Connection failed", connection_name="main")
        assert error.connection_name == "main"
        assert "connection_name=main" in str(error)

    def test_operation_failed_record(self):
        """Test that OperationFailedError exposes the root cause."""
        cause = ValueError("root")
        error = OperationFailedError(
            "insert failed on Members",
            data_operation="insert",
            record={"type": "insert_error", "context": {}, "error": cause},
        )
        assert error.error is cause
        assert error.context == {"data_operation": "insert"}
