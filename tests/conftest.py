"""
Pytest configuration and shared fixtures for MDB_GUARD tests.

This module provides:
- Marker registration
- Mock Motor fixtures (AsyncMock/MagicMock based)
- A small in-memory Motor double for end-to-end client scenarios
- Definition and client factories
"""

import copy
import re
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import BulkWriteError, DuplicateKeyError
from pymongo.operations import InsertOne, UpdateOne

from mdb_guard.config import ClientConfig
from mdb_guard.core.client import DataClient
from mdb_guard.core.registry import DefinitionRegistry
from mdb_guard.core.types import AuthorizationMode, CallerIdentity, Role


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without a MongoDB server")


# ============================================================================
# IN-MEMORY MOTOR DOUBLE
# ============================================================================

_ABSENT = object()


def _match_value(value: Any, condition: Any) -> bool:
    if isinstance(condition, re.Pattern):
        if isinstance(value, list):
            return any(isinstance(v, str) and condition.search(v) for v in value)
        return isinstance(value, str) and condition.search(value) is not None
    if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
        return all(_apply_operator(op, value, arg) for op, arg in condition.items())
    if isinstance(value, list) and not isinstance(condition, list):
        return condition in value
    return value is not _ABSENT and value == condition


def _compare(value: Any, arg: Any, check: Callable[[Any, Any], bool]) -> bool:
    if value is _ABSENT or value is None:
        return False
    try:
        return check(value, arg)
    except TypeError:
        return False


def _apply_operator(op: str, value: Any, arg: Any) -> bool:
    if op == "$eq":
        return _match_value(value, arg)
    if op == "$ne":
        return not _match_value(value, arg)
    if op == "$in":
        return any(_match_value(value, a) for a in arg)
    if op == "$nin":
        return not any(_match_value(value, a) for a in arg)
    if op == "$gt":
        return _compare(value, arg, lambda v, a: v > a)
    if op == "$gte":
        return _compare(value, arg, lambda v, a: v >= a)
    if op == "$lt":
        return _compare(value, arg, lambda v, a: v < a)
    if op == "$lte":
        return _compare(value, arg, lambda v, a: v <= a)
    if op == "$exists":
        return (value is not _ABSENT) == arg
    if op == "$not":
        return not _match_value(value, arg)
    if op == "$all":
        return isinstance(value, list) and all(a in value for a in arg)
    raise NotImplementedError(f"Operator {op} is not supported by the in-memory collection")


def matches(doc: Dict[str, Any], query: Optional[Dict[str, Any]]) -> bool:
    """Evaluate a (flat) MongoDB filter against a document."""
    for key, condition in (query or {}).items():
        if key == "$and":
            if not all(matches(doc, q) for q in condition):
                return False
        elif key == "$or":
            if not any(matches(doc, q) for q in condition):
                return False
        elif key == "$nor":
            if any(matches(doc, q) for q in condition):
                return False
        elif not _match_value(doc.get(key, _ABSENT), condition):
            return False
    return True


def _project(doc: Dict[str, Any], projection: Optional[Dict[str, int]]) -> Dict[str, Any]:
    if not projection:
        return doc
    included = [k for k, flag in projection.items() if flag]
    if included:
        keep = set(included) | ({"_id"} if projection.get("_id", 1) else set())
        return {k: v for k, v in doc.items() if k in keep}
    return {k: v for k, v in doc.items() if k not in projection}


def _sort(docs: List[Dict[str, Any]], sort: Any) -> List[Dict[str, Any]]:
    keys = list(sort.items()) if isinstance(sort, dict) else list(sort or [])
    for key, direction in reversed(keys):
        docs = sorted(docs, key=lambda d: (d.get(key) is None, d.get(key)), reverse=direction < 0)
    return docs


class FakeCursor:
    def __init__(self, docs: List[Dict[str, Any]]):
        self._docs = docs

    async def to_list(self, length: Optional[int] = None) -> List[Dict[str, Any]]:
        docs = copy.deepcopy(self._docs)
        return docs if length is None else docs[:length]


class FakeCollection:
    """Just enough of AsyncIOMotorCollection for the client operations."""

    def __init__(self, name: str):
        self.name = name
        self.docs: List[Dict[str, Any]] = []
        self.created = False

    def _find_index(self, query: Dict[str, Any]) -> Optional[int]:
        for index, doc in enumerate(self.docs):
            if matches(doc, query):
                return index
        return None

    def _insert(self, doc: Dict[str, Any]) -> Any:
        if any(existing["_id"] == doc["_id"] for existing in self.docs):
            raise DuplicateKeyError(f"E11000 duplicate key error: {doc['_id']}")
        self.docs.append(copy.deepcopy(doc))
        self.created = True
        return doc["_id"]

    def _update(self, query: Dict[str, Any], update: Dict[str, Any], upsert: bool) -> Dict[str, Any]:
        fields = update.get("$set", {})
        index = self._find_index(query)
        if index is None:
            if not upsert:
                return {"matched": 0, "modified": 0, "upserted": None}
            seed = {
                k: v
                for k, v in query.items()
                if not k.startswith("$") and not isinstance(v, (dict, re.Pattern))
            }
            seed.update(copy.deepcopy(fields))
            return {"matched": 0, "modified": 0, "upserted": self._insert(seed)}

        before = copy.deepcopy(self.docs[index])
        self.docs[index].update(copy.deepcopy(fields))
        return {"matched": 1, "modified": int(before != self.docs[index]), "upserted": None}

    async def find_one(self, query: Optional[Dict[str, Any]] = None, projection=None, **kwargs):
        index = self._find_index(query or {})
        if index is None:
            return None
        return _project(copy.deepcopy(self.docs[index]), projection)

    def find(self, query=None, skip: int = 0, limit: int = 0, sort=None, projection=None, **kwargs):
        docs = _sort([d for d in self.docs if matches(d, query)], sort)
        docs = docs[skip:]
        if limit:
            docs = docs[:limit]
        return FakeCursor([_project(d, projection) for d in docs])

    async def count_documents(self, query: Dict[str, Any], **kwargs) -> int:
        return sum(1 for d in self.docs if matches(d, query))

    async def insert_one(self, doc: Dict[str, Any], **kwargs):
        return MagicMock(acknowledged=True, inserted_id=self._insert(doc))

    async def insert_many(self, docs: List[Dict[str, Any]], **kwargs):
        inserted = []
        for doc in docs:
            try:
                inserted.append(self._insert(doc))
            except DuplicateKeyError as e:
                raise BulkWriteError(
                    {"writeErrors": [{"index": len(inserted), "errmsg": str(e)}],
                     "nInserted": len(inserted)}
                ) from e
        return MagicMock(acknowledged=True, inserted_ids=inserted)

    async def update_one(self, query, update, upsert: bool = False, **kwargs):
        outcome = self._update(query, update, upsert)
        return MagicMock(
            acknowledged=True,
            matched_count=outcome["matched"],
            modified_count=outcome["modified"],
            upserted_id=outcome["upserted"],
        )

    async def delete_one(self, query, **kwargs):
        index = self._find_index(query)
        if index is not None:
            del self.docs[index]
        return MagicMock(acknowledged=True, deleted_count=0 if index is None else 1)

    async def delete_many(self, query, **kwargs):
        kept = [d for d in self.docs if not matches(d, query)]
        deleted = len(self.docs) - len(kept)
        self.docs = kept
        return MagicMock(acknowledged=True, deleted_count=deleted)

    async def bulk_write(self, operations, **kwargs):
        counts = {"inserted": 0, "matched": 0, "modified": 0, "upserted": 0}
        for operation in operations:
            if isinstance(operation, InsertOne):
                self._insert(operation._doc)
                counts["inserted"] += 1
            elif isinstance(operation, UpdateOne):
                outcome = self._update(operation._filter, operation._doc, bool(operation._upsert))
                counts["matched"] += outcome["matched"]
                counts["modified"] += outcome["modified"]
                counts["upserted"] += int(outcome["upserted"] is not None)
            else:
                raise NotImplementedError(type(operation).__name__)
        return MagicMock(
            acknowledged=True,
            inserted_count=counts["inserted"],
            matched_count=counts["matched"],
            modified_count=counts["modified"],
            upserted_count=counts["upserted"],
        )

    def aggregate(self, pipeline: List[Dict[str, Any]], **kwargs):
        docs = copy.deepcopy(self.docs)
        for stage in pipeline:
            (name, body), = stage.items()
            if name == "$match":
                docs = [d for d in docs if matches(d, body)]
            elif name == "$skip":
                docs = docs[body:]
            elif name == "$limit":
                docs = docs[:body]
            elif name == "$sort":
                docs = _sort(docs, body)
            elif name == "$project":
                docs = [_project(d, body) for d in docs]
            else:
                raise NotImplementedError(f"Stage {name} is not supported by the in-memory collection")
        return FakeCursor(docs)


class FakeDatabase:
    def __init__(self, name: str):
        self.name = name
        self.collections: Dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        return self.collections.setdefault(name, FakeCollection(name))

    def create_collection(self, name: str) -> FakeCollection:
        collection = self[name]
        collection.created = True
        return collection

    async def list_collection_names(self, **kwargs) -> List[str]:
        return [name for name, c in self.collections.items() if c.created]


class FakeMotorClient:
    def __init__(self):
        self.databases: Dict[str, FakeDatabase] = {}
        self.admin = MagicMock()
        self.admin.command = AsyncMock(return_value={"ok": 1})
        self.close = MagicMock()

    def __getitem__(self, name: str) -> FakeDatabase:
        return self.databases.setdefault(name, FakeDatabase(name))


# ============================================================================
# MOCK MOTOR FIXTURES
# ============================================================================


@pytest.fixture
def mock_mongo_collection() -> MagicMock:
    """Create a mock Motor collection."""
    collection = MagicMock(spec=AsyncIOMotorCollection)
    collection.name = "Members"
    collection.find = MagicMock(return_value=MagicMock(to_list=AsyncMock(return_value=[])))
    collection.find_one = AsyncMock(return_value=None)
    collection.count_documents = AsyncMock(return_value=0)
    collection.insert_one = AsyncMock(return_value=MagicMock(acknowledged=True, inserted_id="id1"))
    collection.update_one = AsyncMock(return_value=MagicMock(acknowledged=True, modified_count=1))
    collection.delete_one = AsyncMock(return_value=MagicMock(acknowledged=True, deleted_count=1))
    collection.aggregate = MagicMock(return_value=MagicMock(to_list=AsyncMock(return_value=[])))
    return collection


@pytest.fixture
def mock_mongo_database(mock_mongo_collection: MagicMock) -> MagicMock:
    """Create a mock Motor database whose only collection is ``Members``."""
    db = MagicMock(spec=AsyncIOMotorDatabase)
    db.name = "App"
    db.list_collection_names = AsyncMock(return_value=["Members"])
    db.__getitem__.return_value = mock_mongo_collection
    return db


# ============================================================================
# DEFINITION FIXTURES
# ============================================================================


@pytest.fixture
def sample_database_definition() -> Dict[str, Any]:
    """Provide a database definition covering each permission style."""
    return {
        "name": "App",
        "collections": [
            {
                "name": "Members",
                "schema": {
                    "name": "String",
                    "age": {"type": "Number", "required": False},
                    "status": {"type": "String", "default": "active"},
                },
                "permissions": {
                    "read": "MemberAuthor",
                    "write": "Member",
                    "modify": "MemberAuthor",
                    "delete": "MemberAuthor",
                },
            },
            {"name": "AdminOnly"},
            {
                "name": "Notes",
                "permissions": {
                    "read": "Anyone",
                    "write": "Member",
                    "modify": "Member",
                    "delete": "Admin",
                },
            },
            {
                "name": "ReadOnlyUpdates",
                "permissions": {
                    "read": "Member",
                    "write": "Admin",
                    "modify": "Member",
                    "delete": "Admin",
                },
            },
            {
                "name": "Ghost",
                "permissions": {
                    "read": "Anyone",
                    "write": "Anyone",
                    "modify": "Anyone",
                    "delete": "Anyone",
                },
            },
        ],
    }


@pytest.fixture
def registry(sample_database_definition: Dict[str, Any]) -> DefinitionRegistry:
    """A fresh registry with the sample database defined."""
    registry = DefinitionRegistry()
    registry.define_database(sample_database_definition)
    return registry


@pytest.fixture
def fake_motor_client() -> FakeMotorClient:
    """An in-memory Motor client; every sample collection except Ghost exists."""
    client = FakeMotorClient()
    for name in ("Members", "AdminOnly", "Notes", "ReadOnlyUpdates"):
        client["App"].create_collection(name)
    return client


@pytest.fixture
def make_client(fake_motor_client: FakeMotorClient, registry: DefinitionRegistry):
    """Factory for DataClient instances over the in-memory store."""

    def factory(
        authorization: str = "User",
        user_id: Optional[str] = "member-1",
        role: Role = Role.MEMBER,
        logged_in: bool = True,
        default_database: Optional[str] = "App",
    ) -> DataClient:
        if AuthorizationMode(authorization) is AuthorizationMode.SYSTEM or not logged_in:
            caller = CallerIdentity.anonymous()
        else:
            caller = CallerIdentity(id=user_id, role=role, logged_in=True)
        return DataClient(
            fake_motor_client,
            registry,
            AuthorizationMode(authorization),
            caller,
            default_database=default_database,
            config=ClientConfig(default_limit=10),
        )

    return factory


@pytest.fixture
def seed_items(fake_motor_client: FakeMotorClient):
    """Insert raw documents into the in-memory store, bypassing the client."""

    def seed(collection: str, *docs: Dict[str, Any]) -> FakeCollection:
        target = fake_motor_client["App"][collection]
        for doc in docs:
            target.docs.append(copy.deepcopy(doc))
        return target

    return seed


# ============================================================================
# ENVIRONMENT VARIABLES
# ============================================================================


@pytest.fixture(autouse=True)
def reset_environment(monkeypatch):
    """Reset environment variables before each test."""
    env_vars_to_clear = [
        "MONGO_URI",
        "DB_NAME",
        "MONGO_MAX_POOL_SIZE",
        "MONGO_MIN_POOL_SIZE",
        "MONGO_SERVER_SELECTION_TIMEOUT_MS",
        "MDB_GUARD_APP_NAME",
        "MDB_GUARD_DEFAULT_LIMIT",
    ]
    for var in env_vars_to_clear:
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture(autouse=True)
def reset_metrics():
    """Start every test with an empty metrics collector."""
    from mdb_guard.observability import get_metrics_collector

    get_metrics_collector().reset()
    yield
