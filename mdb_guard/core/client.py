"""
Data client.

A DataClient is created by DataEngine.create_client() for one connection,
one authorization mode and one caller. Every data operation follows the
same sequence:

    validate arguments -> resolve the registered collection
    -> confirm it exists -> authorize -> before hook (after normalization)
    -> schema validation -> ownership scoping -> storage -> after hook

Argument errors and unregistered collections raise directly. Anything that
fails after that is routed through the collection's failure reporter,
which calls the ``on_failure`` hook and raises OperationFailedError.
"""

import asyncio
import copy
import logging
from typing import Any, ContextManager

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.operations import InsertOne, UpdateOne

from ..config import ClientConfig
from ..database.aggregate import DataAggregate
from ..database.filter import DataFilter
from ..database.hooks import run_hook
from ..database.normalizer import prepare_insert_item, prepare_update_item
from ..database.query import DataQuery
from ..database.query_validator import QueryValidator
from ..database.schema import is_plain_object, validate_item_schema
from ..database.scoped import ScopedCollection, build_options
from ..exceptions import ArgumentError, CollectionNotFoundError, ConfigurationError, StorageError
from ..observability import operation_context, timed_operation
from .registry import DatabaseDefinition, DefinitionRegistry
from .types import (
    AuthorizationMode,
    BulkInsertResult,
    BulkSaveResult,
    CallerIdentity,
    CollectionItem,
    Item,
    SaveResult,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Argument checks
# ============================================================================


def _check_collection_name(collection_name: Any) -> str:
    if not isinstance(collection_name, str) or len(collection_name) == 0:
        raise ArgumentError(
            "The collection name must be a non-empty string, instead got "
            f"{type(collection_name).__name__}",
            argument="collection_name",
        )
    return collection_name


def _check_item_id(item_id: Any) -> str:
    if not isinstance(item_id, str) or len(item_id) == 0:
        raise ArgumentError(
            f"The item ID must be a non-empty string, instead got {type(item_id).__name__}",
            argument="item_id",
        )
    return item_id


def _check_item(item: Any) -> Item:
    if not is_plain_object(item):
        raise ArgumentError(
            f"The item must be a dict, instead got {type(item).__name__}", argument="item"
        )
    return copy.deepcopy(item)


def _check_items(items: Any, element: type = dict, argument: str = "items") -> list[Any]:
    if not isinstance(items, list):
        raise ArgumentError(
            f"The {argument} must be a list, instead got {type(items).__name__}",
            argument=argument,
        )
    if len(items) == 0:
        raise ArgumentError(f"The {argument} list cannot be empty", argument=argument)
    for value in items:
        if not isinstance(value, element) or (element is str and len(value) == 0):
            raise ArgumentError(
                f"Every entry of {argument} must be a {'non-empty ' if element is str else ''}"
                f"{element.__name__}, but one was {type(value).__name__}",
                argument=argument,
            )
    return copy.deepcopy(items)


def _check_acknowledged(result: Any, action: str) -> None:
    if not result.acknowledged:
        raise StorageError(f"The document store did not acknowledge the {action}")


def _set_fields(item: Item) -> Item:
    """The ``$set`` body for an item: every field except ``_id``."""
    return {key: value for key, value in item.items() if key != "_id"}


class DataClient:
    """
    Permission-aware CRUD client bound to one caller.

    Example:
        client = engine.create_client("main", authorization="User", user={
            "id": "u1", "role": "Member", "loggedIn": True,
        }, default_database="App")
        item = await client.insert("Members", {"name": "A"})
        same = await client.get_item("Members", item["_id"])
    """

    def __init__(
        self,
        motor_client: AsyncIOMotorClient,
        registry: DefinitionRegistry,
        authorization: AuthorizationMode,
        user: CallerIdentity,
        default_database: str | None = None,
        config: ClientConfig | None = None,
        validator: QueryValidator | None = None,
    ):
        self._motor_client = motor_client
        self._registry = registry
        self._authorization = AuthorizationMode(authorization)
        self._user = user
        self._default_database = default_database
        self._selected_database = default_database
        self._config = config or ClientConfig()
        self._validator = validator or QueryValidator()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def authorization(self) -> AuthorizationMode:
        return self._authorization

    @property
    def user(self) -> CallerIdentity:
        return self._user

    @property
    def databases(self) -> list[DatabaseDefinition]:
        return self._registry.databases

    @property
    def motor_client(self) -> AsyncIOMotorClient:
        """The underlying Motor client, for custom operations."""
        return self._motor_client

    @property
    def selected_database(self) -> str | None:
        return self._selected_database

    def db(self, name: str | None = None) -> "DataClient":
        """
        Select the database used by subsequent operations.

        Names match case-insensitively. Pass None to go back to the default
        database.

        Raises:
            ConfigurationError: If the database is not defined
        """
        if name is None:
            self._selected_database = self._default_database
            return self

        database = self._registry.get_database(name, case_sensitive=False)
        if database is None:
            raise ConfigurationError(
                f"The database {name} that you selected is not defined",
                config_key="database",
                config_value=name,
            )
        self._selected_database = database.name
        return self

    # ------------------------------------------------------------------
    # Builders
    # ------------------------------------------------------------------

    def filter(self) -> DataFilter:
        return DataFilter()

    def query(self, collection_name: str) -> DataQuery:
        scoped = self._scope(_check_collection_name(collection_name))
        return DataQuery(scoped, default_limit=self._config.default_limit, validator=self._validator)

    def aggregate(self, collection_name: str) -> DataAggregate:
        scoped = self._scope(_check_collection_name(collection_name))
        return DataAggregate(scoped, validator=self._validator)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _scope(self, collection_name: str) -> ScopedCollection:
        """
        Bind a registered collection of the selected database to this client.

        Raises:
            ConfigurationError: No database is selected, or it is not defined
            CollectionNotFoundError: The collection is not registered
        """
        if not self._selected_database:
            raise ConfigurationError(
                "No database is selected. Pass default_database to create_client() or call db()",
                config_key="database",
            )

        database = self._registry.get_database(self._selected_database, case_sensitive=False)
        if database is None:
            raise ConfigurationError(
                f"The database {self._selected_database} is not defined",
                config_key="database",
                config_value=self._selected_database,
            )

        definition = database.get_collection(collection_name)
        if definition is None:
            raise CollectionNotFoundError(
                f"The ({collection_name}) collection is not defined on the {database.name} database",
                collection_name=collection_name,
                database_name=database.name,
            )

        return ScopedCollection(
            self._motor_client[database.name], definition, self._authorization, self._user
        )

    def _operation(self, data_operation: str, scoped: ScopedCollection) -> ContextManager[None]:
        return operation_context(
            data_operation, scoped.name, self._user.id, database_name=scoped.database_name
        )

    def _normalize_insert(self, item: Item) -> Item:
        return prepare_insert_item(item, self._authorization, self._user.id)

    async def _item_exists(self, scoped: ScopedCollection, item_id: Any) -> bool:
        if not isinstance(item_id, str) or len(item_id) == 0:
            return False
        found = await scoped.collection.find_one({"_id": item_id}, projection={"_id": 1})
        return found is not None

    async def _split_by_existence(
        self, scoped: ScopedCollection, items: list[Item]
    ) -> tuple[list[Item], list[Item]]:
        """
        Partition items into (to_update, to_insert).

        Items with an ``_id`` are probed concurrently. A failed probe is
        logged and its item goes to the insert set, where a duplicate key
        surfaces as a storage error.
        """
        probes = await asyncio.gather(
            *(self._item_exists(scoped, item.get("_id")) for item in items),
            return_exceptions=True,
        )

        to_update: list[Item] = []
        to_insert: list[Item] = []
        failed = 0
        for item, outcome in zip(items, probes):
            if isinstance(outcome, BaseException):
                failed += 1
                to_insert.append(item)
            elif outcome:
                to_update.append(item)
            else:
                to_insert.append(item)

        if failed:
            logger.warning(
                f"Unable to check the existence of {failed} item(s) in {scoped.name}; "
                "they will be inserted"
            )
        return to_update, to_insert

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    @timed_operation("client.get_item", collection_arg="collection_name")
    async def get_item(
        self,
        collection_name: str,
        item_id: str,
        suppress_auth: bool = False,
        suppress_hooks: bool = False,
    ) -> CollectionItem | None:
        """
        Fetch one item by id.

        Returns:
            The item, or None when it does not exist or is not owned by the
            caller under an owned-items permission
        """
        _check_collection_name(collection_name)
        _check_item_id(item_id)
        options = build_options(suppress_auth, suppress_hooks)
        scoped = self._scope(collection_name)

        with self._operation("getItem", scoped):
            try:
                verdict = await scoped.prepare("read", options)
                item_id = await run_hook(
                    scoped.hooks.before_get_item,
                    item_id,
                    scoped.context,
                    expected=str,
                    suppress=options.suppress_hooks,
                )

                criteria = scoped.scope({"_id": item_id}, verdict)
                item = await scoped.collection.find_one(criteria)
                if item is None:
                    return None

                return await run_hook(
                    scoped.hooks.after_get_item,
                    item,
                    scoped.context,
                    expected=dict,
                    suppress=options.suppress_hooks,
                )
            except Exception as e:
                await scoped.fail("getItem", e, options)

    # ------------------------------------------------------------------
    # Insert
    # ------------------------------------------------------------------

    @timed_operation("client.insert", collection_arg="collection_name")
    async def insert(
        self,
        collection_name: str,
        item: Item,
        suppress_auth: bool = False,
        suppress_hooks: bool = False,
    ) -> CollectionItem:
        """
        Insert one item and return it as stored.

        System fields are filled in before the ``before_insert`` hook runs;
        a replacement returned by the hook is normalized again.
        """
        _check_collection_name(collection_name)
        item = _check_item(item)
        options = build_options(suppress_auth, suppress_hooks)
        scoped = self._scope(collection_name)

        with self._operation("insert", scoped):
            try:
                await scoped.prepare("write", options)
                item = await run_hook(
                    scoped.hooks.before_insert,
                    self._normalize_insert(item),
                    scoped.context,
                    expected=dict,
                    suppress=options.suppress_hooks,
                    revalidate=self._normalize_insert,
                )
                item = validate_item_schema(item, scoped.definition.schema, "Insert")

                result = await scoped.collection.insert_one(item)
                _check_acknowledged(result, f"insert of {item['_id']}")
                inserted = await scoped.collection.find_one({"_id": result.inserted_id})
                logger.debug(f"Inserted {result.inserted_id} into {scoped.name}")

                return await run_hook(
                    scoped.hooks.after_insert,
                    inserted,
                    scoped.context,
                    expected=dict,
                    suppress=options.suppress_hooks,
                )
            except Exception as e:
                await scoped.fail("insert", e, options)

    @timed_operation("client.bulk_insert", collection_arg="collection_name")
    async def bulk_insert(
        self,
        collection_name: str,
        items: list[Item],
        suppress_auth: bool = False,
        suppress_hooks: bool = False,
    ) -> BulkInsertResult:
        """Insert several items and report which of them were stored."""
        _check_collection_name(collection_name)
        items = _check_items(items)
        options = build_options(suppress_auth, suppress_hooks)
        scoped = self._scope(collection_name)

        with self._operation("bulkInsert", scoped):
            try:
                await scoped.prepare("write", options)
                items = await run_hook(
                    scoped.hooks.before_bulk_insert,
                    [self._normalize_insert(item) for item in items],
                    scoped.context,
                    expected=list,
                    element=dict,
                    suppress=options.suppress_hooks,
                    revalidate=self._normalize_insert,
                )
                items = [
                    validate_item_schema(item, scoped.definition.schema, "Insert") for item in items
                ]

                result = await scoped.collection.insert_many(items)
                _check_acknowledged(result, f"bulk insert into {scoped.name}")

                inserted_ids = [str(inserted_id) for inserted_id in result.inserted_ids]
                skipped_ids = [item["_id"] for item in items if item["_id"] not in inserted_ids]
                cursor = scoped.collection.find({"_id": {"$in": inserted_ids}})
                inserted = await cursor.to_list(length=None)

                inserted = await run_hook(
                    scoped.hooks.after_bulk_insert,
                    inserted,
                    scoped.context,
                    expected=list,
                    element=dict,
                    suppress=options.suppress_hooks,
                )
                return {
                    "items": inserted,
                    "stats": {
                        "inserted": len(inserted_ids),
                        "skipped": len(skipped_ids),
                        "insertedIds": inserted_ids,
                        "skippedIds": skipped_ids,
                    },
                }
            except Exception as e:
                await scoped.fail("bulkInsert", e, options)

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    @timed_operation("client.update", collection_arg="collection_name")
    async def update(
        self,
        collection_name: str,
        item: Item,
        suppress_auth: bool = False,
        suppress_hooks: bool = False,
    ) -> str:
        """
        Apply ``item``'s fields to the stored item with the same ``_id``.

        ``_createdDate`` and ``_owner`` are never updated. Returns the id.
        """
        _check_collection_name(collection_name)
        item = _check_item(item)
        options = build_options(suppress_auth, suppress_hooks)
        scoped = self._scope(collection_name)

        with self._operation("update", scoped):
            try:
                verdict = await scoped.prepare("modify", options)
                item = await run_hook(
                    scoped.hooks.before_update,
                    prepare_update_item(item),
                    scoped.context,
                    expected=dict,
                    suppress=options.suppress_hooks,
                    revalidate=prepare_update_item,
                )
                item = validate_item_schema(item, scoped.definition.schema, "Update")

                criteria = scoped.scope({"_id": item["_id"]}, verdict)
                result = await scoped.collection.update_one(criteria, {"$set": _set_fields(item)})
                _check_acknowledged(result, f"update of {item['_id']}")

                return await run_hook(
                    scoped.hooks.after_update,
                    item["_id"],
                    scoped.context,
                    expected=str,
                    suppress=options.suppress_hooks,
                )
            except Exception as e:
                await scoped.fail("update", e, options)

    @timed_operation("client.bulk_update", collection_arg="collection_name")
    async def bulk_update(
        self,
        collection_name: str,
        items: list[Item],
        suppress_auth: bool = False,
        suppress_hooks: bool = False,
    ) -> int:
        """
        Update several items in one bulk write.

        Not transactional: a partial failure leaves earlier writes in place.
        Returns the number of modified items.
        """
        _check_collection_name(collection_name)
        items = _check_items(items)
        options = build_options(suppress_auth, suppress_hooks)
        scoped = self._scope(collection_name)

        with self._operation("bulkUpdate", scoped):
            try:
                verdict = await scoped.prepare("modify", options)
                items = await run_hook(
                    scoped.hooks.before_bulk_update,
                    [prepare_update_item(item) for item in items],
                    scoped.context,
                    expected=list,
                    element=dict,
                    suppress=options.suppress_hooks,
                    revalidate=prepare_update_item,
                )
                items = [
                    validate_item_schema(item, scoped.definition.schema, "Update") for item in items
                ]

                operations = [
                    UpdateOne(
                        scoped.scope({"_id": item["_id"]}, verdict),
                        {"$set": _set_fields(item)},
                        upsert=False,
                    )
                    for item in items
                ]
                result = await scoped.collection.bulk_write(operations)
                _check_acknowledged(result, f"bulk update of {len(operations)} item(s)")
                return result.modified_count
            except Exception as e:
                await scoped.fail("bulkUpdate", e, options)

    # ------------------------------------------------------------------
    # Remove
    # ------------------------------------------------------------------

    @timed_operation("client.remove", collection_arg="collection_name")
    async def remove(
        self,
        collection_name: str,
        item_id: str,
        suppress_auth: bool = False,
        suppress_hooks: bool = False,
    ) -> str:
        """Remove one item. Returns the id."""
        _check_collection_name(collection_name)
        _check_item_id(item_id)
        options = build_options(suppress_auth, suppress_hooks)
        scoped = self._scope(collection_name)

        with self._operation("remove", scoped):
            try:
                verdict = await scoped.prepare("delete", options)
                item_id = await run_hook(
                    scoped.hooks.before_remove,
                    item_id,
                    scoped.context,
                    expected=str,
                    suppress=options.suppress_hooks,
                )

                result = await scoped.collection.delete_one(scoped.scope({"_id": item_id}, verdict))
                _check_acknowledged(result, f"removal of {item_id}")

                return await run_hook(
                    scoped.hooks.after_remove,
                    item_id,
                    scoped.context,
                    expected=str,
                    suppress=options.suppress_hooks,
                )
            except Exception as e:
                await scoped.fail("remove", e, options)

    @timed_operation("client.bulk_remove", collection_arg="collection_name")
    async def bulk_remove(
        self,
        collection_name: str,
        item_ids: list[str],
        suppress_auth: bool = False,
        suppress_hooks: bool = False,
    ) -> int:
        """Remove several items by id. Returns the number removed."""
        _check_collection_name(collection_name)
        item_ids = _check_items(item_ids, element=str, argument="item_ids")
        options = build_options(suppress_auth, suppress_hooks)
        scoped = self._scope(collection_name)

        with self._operation("bulkRemove", scoped):
            try:
                verdict = await scoped.prepare("delete", options)
                item_ids = await run_hook(
                    scoped.hooks.before_bulk_remove,
                    item_ids,
                    scoped.context,
                    expected=list,
                    element=str,
                    suppress=options.suppress_hooks,
                )

                criteria = scoped.scope({"_id": {"$in": item_ids}}, verdict)
                result = await scoped.collection.delete_many(criteria)
                _check_acknowledged(result, f"removal of {len(item_ids)} item(s)")
                return result.deleted_count
            except Exception as e:
                await scoped.fail("bulkRemove", e, options)

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    @timed_operation("client.save", collection_arg="collection_name")
    async def save(
        self,
        collection_name: str,
        item: Item,
        suppress_auth: bool = False,
        suppress_hooks: bool = False,
    ) -> SaveResult:
        """
        Update the item if it exists, insert it otherwise.

        Requires ``modify`` permission, plus ``write`` permission when the
        item has to be inserted. No hooks run except ``on_failure``.
        """
        _check_collection_name(collection_name)
        item = _check_item(item)
        options = build_options(suppress_auth, suppress_hooks)
        scoped = self._scope(collection_name)

        with self._operation("save", scoped):
            try:
                verdict = await scoped.prepare("modify", options)
                exists = await self._item_exists(scoped, item.get("_id"))

                if exists:
                    item = prepare_update_item(item)
                else:
                    verdict = scoped.authorize("write", options.suppress_auth)
                    item = self._normalize_insert(item)
                item = validate_item_schema(
                    item, scoped.definition.schema, "Update" if exists else "Insert"
                )

                criteria = scoped.scope({"_id": item["_id"]}, verdict)
                result = await scoped.collection.update_one(
                    criteria, {"$set": _set_fields(item)}, upsert=not exists
                )
                _check_acknowledged(result, f"save of {item['_id']}")
                return {"operation": "Update" if exists else "Insert", "id": item["_id"]}
            except Exception as e:
                await scoped.fail("save", e, options)

    @timed_operation("client.bulk_save", collection_arg="collection_name")
    async def bulk_save(
        self,
        collection_name: str,
        items: list[Item],
        suppress_auth: bool = False,
        suppress_hooks: bool = False,
    ) -> BulkSaveResult:
        """
        Save several items in one bulk write.

        Existing items are updated and the rest inserted. Inserting requires
        ``write`` permission on top of ``modify``. Not transactional.
        """
        _check_collection_name(collection_name)
        items = _check_items(items)
        options = build_options(suppress_auth, suppress_hooks)
        scoped = self._scope(collection_name)

        with self._operation("bulkSave", scoped):
            try:
                verdict = await scoped.prepare("modify", options)
                to_update, to_insert = await self._split_by_existence(scoped, items)
                if to_insert:
                    scoped.authorize("write", options.suppress_auth)

                to_update = [
                    validate_item_schema(prepare_update_item(item), scoped.definition.schema, "Update")
                    for item in to_update
                ]
                to_insert = [
                    validate_item_schema(
                        self._normalize_insert(item), scoped.definition.schema, "Insert"
                    )
                    for item in to_insert
                ]

                operations: list[UpdateOne | InsertOne] = [
                    UpdateOne(
                        scoped.scope({"_id": item["_id"]}, verdict),
                        {"$set": _set_fields(item)},
                        upsert=False,
                    )
                    for item in to_update
                ]
                operations.extend(InsertOne(item) for item in to_insert)

                result = await scoped.collection.bulk_write(operations)
                _check_acknowledged(result, f"bulk save of {len(operations)} item(s)")

                if to_update and not to_insert:
                    operation = "Update"
                elif to_insert and not to_update:
                    operation = "Insert"
                else:
                    operation = "Mixed"

                return {
                    "operation": operation,
                    "insertedCount": result.inserted_count,
                    "updatedCount": result.modified_count,
                    "inserted": [item["_id"] for item in to_insert],
                    "updated": [item["_id"] for item in to_update],
                }
            except Exception as e:
                await scoped.fail("bulkSave", e, options)
