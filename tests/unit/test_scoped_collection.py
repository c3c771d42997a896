"""
Unit tests for ScopedCollection.

Uses mocked Motor objects to test the existence check, authorization,
ownership scoping and failure routing shared by every operation.
"""

from unittest.mock import AsyncMock

import pytest
from pymongo.errors import OperationFailure

from mdb_guard.core.registry import CollectionDefinition
from mdb_guard.core.types import (AccessVerdict, AuthorizationMode,
                                  CallerIdentity, OperationOptions, Permission,
                                  Role)
from mdb_guard.database.hooks import CollectionHooks
from mdb_guard.database.scoped import ScopedCollection, build_options
from mdb_guard.exceptions import (AccessDeniedError, ArgumentError,
                                  CollectionNotFoundError,
                                  OperationFailedError, StorageError)

MEMBER = CallerIdentity(id="member-1", role=Role.MEMBER, logged_in=True)


@pytest.fixture
def members_definition():
    """Members collection: owners read and modify, members write, admins delete."""
    return CollectionDefinition(
        name="Members",
        permissions={
            "read": Permission.MEMBER_AUTHOR,
            "write": Permission.MEMBER,
            "modify": Permission.MEMBER_AUTHOR,
            "delete": Permission.ADMIN,
        },
    )


@pytest.fixture
def scoped(mock_mongo_database, members_definition):
    """A Members collection scoped to a logged-in member."""
    return ScopedCollection(mock_mongo_database, members_definition, AuthorizationMode.USER, MEMBER)


@pytest.mark.unit
class TestBuildOptions:
    """Test option validation."""

    def test_defaults(self):
        """Test the default switches."""
        assert build_options() == OperationOptions(False, False)

    def test_non_boolean(self):
        """Test that switches must be booleans."""
        with pytest.raises(ArgumentError, match="suppress_auth"):
            build_options("true", False)
        with pytest.raises(ArgumentError, match="suppress_hooks"):
            build_options(False, None)


@pytest.mark.unit
class TestScopedCollection:
    """Test the shared operation preamble."""

    def test_properties(self, scoped, mock_mongo_collection):
        """Test names, context and the underlying collection."""
        assert scoped.name == "Members"
        assert scoped.database_name == "App"
        assert scoped.collection is mock_mongo_collection
        assert scoped.context == {
            "collectionName": "Members",
            "userId": "member-1",
            "userRole": "Member",
        }

    @pytest.mark.asyncio
    async def test_ensure_exists(self, scoped, mock_mongo_database):
        """Test that an existing collection passes and a missing one raises."""
        await scoped.ensure_exists()

        mock_mongo_database.list_collection_names = AsyncMock(return_value=["Other"])
        with pytest.raises(CollectionNotFoundError, match="does not exist on the App database"):
            await scoped.ensure_exists()

    @pytest.mark.asyncio
    async def test_ensure_exists_storage_error(self, scoped, mock_mongo_database):
        """Test that a failed collection listing is a storage error."""
        mock_mongo_database.list_collection_names = AsyncMock(
            side_effect=OperationFailure("not authorized")
        )
        with pytest.raises(StorageError, match="Unable to check collection validity"):
            await scoped.ensure_exists()

    def test_evaluate(self, scoped):
        """Test verdicts per access type."""
        assert scoped.evaluate("read") is AccessVerdict.OWNED_ITEMS
        assert scoped.evaluate("write") is AccessVerdict.ALLOWED
        assert scoped.evaluate("delete") is AccessVerdict.DENIED
        assert scoped.evaluate("delete", suppress_auth=True) is AccessVerdict.ALLOWED

    def test_authorize_denied(self, scoped):
        """Test that a DENIED verdict raises AccessDeniedError."""
        with pytest.raises(AccessDeniedError, match="DELETE permissions on the Members") as exc_info:
            scoped.authorize("delete")
        assert exc_info.value.user_id == "member-1"

    @pytest.mark.asyncio
    async def test_prepare(self, scoped, mock_mongo_database):
        """Test that prepare checks existence before authorizing."""
        mock_mongo_database.list_collection_names = AsyncMock(return_value=[])

        with pytest.raises(CollectionNotFoundError):
            await scoped.prepare("delete", OperationOptions())

    def test_scope(self, scoped):
        """Test ownership scoping through the collection."""
        assert scoped.scope({"_id": "a"}, AccessVerdict.OWNED_ITEMS) == {
            "_id": "a",
            "_owner": "member-1",
        }
        assert scoped.scope({"_id": "a"}, AccessVerdict.ALLOWED) == {"_id": "a"}

    @pytest.mark.asyncio
    async def test_fail_wraps_driver_errors(self, scoped):
        """Test that driver errors are wrapped before reporting."""
        cause = OperationFailure("write conflict")

        with pytest.raises(OperationFailedError, match="update failed on Members") as exc_info:
            await scoped.fail("update", cause, OperationOptions())

        error = exc_info.value.error
        assert isinstance(error, StorageError)
        assert error.__cause__ is cause

    @pytest.mark.asyncio
    async def test_fail_calls_on_failure(self, mock_mongo_database):
        """Test that the collection's on_failure hook is used."""
        on_failure = AsyncMock()
        definition = CollectionDefinition(
            name="Members", hooks=CollectionHooks(on_failure=on_failure)
        )
        scoped = ScopedCollection(mock_mongo_database, definition, AuthorizationMode.SYSTEM, MEMBER)
        cause = KeyError("x")

        with pytest.raises(OperationFailedError):
            await scoped.fail("remove", cause, OperationOptions())

        on_failure.assert_awaited_once_with(cause, scoped.context)
