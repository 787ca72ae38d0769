"""Pytest configuration and fixtures for mdb tests."""

import copy
import logging
from types import SimpleNamespace
from typing import Any, Dict, Generator, List, Optional
from unittest.mock import MagicMock

import pytest
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, OperationFailure

from mdb.config import Settings
from mdb.infrastructure.database import Database
from mdb.infrastructure.database.mongodb import client as client_module

_MISSING = object()


def _compare(op: str, actual: Any, operand: Any) -> bool:
    if op == "$ne":
        return actual != operand
    if op == "$in":
        return actual in operand
    if op == "$nin":
        return actual not in operand
    if op == "$exists":
        return (actual is not _MISSING) == bool(operand)
    if actual is _MISSING:
        return False
    if op == "$gt":
        return actual > operand
    if op == "$gte":
        return actual >= operand
    if op == "$lt":
        return actual < operand
    if op == "$lte":
        return actual <= operand
    raise NotImplementedError(op)


def matches(document: Dict[str, Any], query: Dict[str, Any]) -> bool:
    """Top-level equality and comparison operators only."""
    for field, condition in query.items():
        actual = document.get(field, _MISSING)
        if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
            if not all(_compare(op, actual, operand) for op, operand in condition.items()):
                return False
        elif actual != condition:
            return False
    return True


def apply_update(document: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    updated = copy.deepcopy(document)
    for op, fields in update.items():
        for field, value in fields.items():
            if op == "$set":
                updated[field] = value
            elif op == "$inc":
                updated[field] = updated.get(field, 0) + value
            elif op == "$unset":
                updated.pop(field, None)
            else:
                raise NotImplementedError(op)
    return updated


def project(document: Dict[str, Any], projection: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not projection:
        return copy.deepcopy(document)
    include = {k for k, v in projection.items() if v and k != "_id"}
    if include:
        result = {k: v for k, v in document.items() if k in include}
        if projection.get("_id", 1) and "_id" in document:
            result["_id"] = document["_id"]
    else:
        result = {k: v for k, v in document.items() if k not in projection}
    return copy.deepcopy(result)


def apply_sort(documents: List[Dict[str, Any]], sort: Optional[List]) -> List[Dict[str, Any]]:
    for field, direction in reversed(sort or []):
        documents = sorted(documents, key=lambda d: d.get(field), reverse=direction < 0)
    return documents


class FakeCursor:
    """Iterable cursor supporting the context manager protocol."""

    def __init__(self, documents: List[Dict[str, Any]]):
        self._documents = iter(documents)
        self.closed = False

    def __iter__(self):
        return self

    def __next__(self):
        return next(self._documents)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self) -> None:
        self.closed = True


class FakeCollection:
    """In-memory stand-in for a pymongo collection."""

    def __init__(self, name: str):
        self.name = name
        self.documents: List[Dict[str, Any]] = []
        self.unique_keys: List[List[str]] = [["_id"]]
        self.indexes: List[Dict[str, Any]] = []
        self.fail_index: Optional[str] = None
        self.sessions: List[Any] = []

    def _seen(self, session: Any) -> None:
        self.sessions.append(session)

    def _check_unique(self, document: Dict[str, Any], ignore: Optional[Dict[str, Any]] = None) -> None:
        for keys in self.unique_keys:
            value = [document.get(k) for k in keys]
            for existing in self.documents:
                if existing is ignore:
                    continue
                if [existing.get(k) for k in keys] == value:
                    raise DuplicateKeyError(f"E11000 duplicate key error collection: {self.name}", code=11000)

    def _matching(self, query: Dict[str, Any], sort: Optional[List] = None) -> List[Dict[str, Any]]:
        return apply_sort([d for d in self.documents if matches(d, query)], sort)

    def create_indexes(self, models: List[Any], session: Any = None) -> List[str]:
        names = []
        for model in models:
            document = model.document
            name = document["name"]
            if self.fail_index and self.fail_index == name:
                raise OperationFailure(f"Index build failed: {name}", code=85)
            self.indexes.append(document)
            if document.get("unique"):
                self.unique_keys.append(list(document["key"].keys()))
            names.append(name)
        return names

    def insert_one(self, document: Dict[str, Any], session: Any = None) -> SimpleNamespace:
        self._seen(session)
        if "_id" not in document:
            document["_id"] = ObjectId()
        self._check_unique(document)
        self.documents.append(copy.deepcopy(document))
        return SimpleNamespace(inserted_id=document["_id"], acknowledged=True)

    def find(self, query, projection=None, skip=0, limit=0, sort=None, session=None) -> FakeCursor:
        self._seen(session)
        found = self._matching(query, sort)[skip:]
        if limit:
            found = found[:limit]
        return FakeCursor([project(d, projection) for d in found])

    def find_one(self, query, projection=None, skip=0, sort=None, session=None):
        for document in self.find(query, projection=projection, skip=skip, limit=1, sort=sort, session=session):
            return document
        return None

    def count_documents(self, query, session=None, skip=0, limit=0) -> int:
        self._seen(session)
        found = self._matching(query)[skip:]
        return len(found[:limit] if limit else found)

    def aggregate(self, pipeline, session=None) -> FakeCursor:
        self._seen(session)
        documents = list(self.documents)
        for stage in pipeline:
            (op, arg), = stage.items()
            if op == "$match":
                documents = [d for d in documents if matches(d, arg)]
            elif op == "$sort":
                documents = apply_sort(documents, list(arg.items()))
            elif op == "$limit":
                documents = documents[:arg]
            else:
                raise NotImplementedError(op)
        return FakeCursor(copy.deepcopy(documents))

    def _upsert(self, query: Dict[str, Any], update: Dict[str, Any], replacement: bool) -> Any:
        seed = {k: v for k, v in query.items() if not isinstance(v, dict)}
        document = dict(update) if replacement else apply_update(seed, update)
        document.setdefault("_id", seed.get("_id", ObjectId()))
        self._check_unique(document)
        self.documents.append(document)
        return document["_id"]

    def _modify(self, query, update, upsert, many, replacement, session):
        self._seen(session)
        targets = self._matching(query)
        if not many:
            targets = targets[:1]
        if not targets:
            upserted_id = self._upsert(query, update, replacement) if upsert else None
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=upserted_id)

        modified = 0
        for target in targets:
            if replacement:
                new = dict(update)
                new["_id"] = target["_id"]
            else:
                new = apply_update(target, update)
            if new != target:
                self._check_unique(new, ignore=target)
                self.documents[self.documents.index(target)] = new
                modified += 1
        return SimpleNamespace(matched_count=len(targets), modified_count=modified, upserted_id=None)

    def update_one(self, query, update, upsert=False, session=None):
        return self._modify(query, update, upsert, False, False, session)

    def update_many(self, query, update, upsert=False, session=None):
        return self._modify(query, update, upsert, True, False, session)

    def replace_one(self, query, replacement, upsert=False, session=None):
        return self._modify(query, replacement, upsert, False, True, session)

    def _delete(self, query, many, session):
        self._seen(session)
        targets = self._matching(query)
        if not many:
            targets = targets[:1]
        for target in targets:
            self.documents.remove(target)
        return SimpleNamespace(deleted_count=len(targets))

    def delete_one(self, query, session=None):
        return self._delete(query, False, session)

    def delete_many(self, query, session=None):
        return self._delete(query, True, session)

    def _find_and(self, query, update, projection, sort, upsert, return_document, replacement, session):
        targets = self._matching(query, sort)
        before = copy.deepcopy(targets[0]) if targets else None
        if before is not None:
            query = {"_id": before["_id"]}
        result = self._modify(query, update, upsert, False, replacement, session)
        if return_document == ReturnDocument.BEFORE:
            return project(before, projection) if before is not None else None
        target_id = before["_id"] if before is not None else result.upserted_id
        if target_id is None:
            return None
        return self.find_one({"_id": target_id}, projection=projection)

    def find_one_and_update(self, query, update, projection=None, sort=None, upsert=False,
                            return_document=ReturnDocument.BEFORE, session=None):
        return self._find_and(query, update, projection, sort, upsert, return_document, False, session)

    def find_one_and_replace(self, query, replacement, projection=None, sort=None, upsert=False,
                             return_document=ReturnDocument.BEFORE, session=None):
        return self._find_and(query, replacement, projection, sort, upsert, return_document, True, session)


class FakeDatabase:
    def __init__(self, name: str):
        self.name = name
        self.collections: Dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
        return self.collections[name]


class FakeSession:
    def __init__(self):
        self.ended = False

    def end_session(self) -> None:
        self.ended = True


class FakeMongoClient:
    """Stand-in for pymongo.MongoClient recording options and sessions."""

    instances: List["FakeMongoClient"] = []

    def __init__(self, uri: str, **options: Any):
        self.uri = uri
        self.options = options
        self.databases: Dict[str, FakeDatabase] = {}
        self.sessions: List[FakeSession] = []
        self.admin = MagicMock()
        self.closed = False
        FakeMongoClient.instances.append(self)

    def __getitem__(self, name: str) -> FakeDatabase:
        if name not in self.databases:
            self.databases[name] = FakeDatabase(name)
        return self.databases[name]

    def start_session(self) -> FakeSession:
        session = FakeSession()
        self.sessions.append(session)
        return session

    def server_info(self) -> Dict[str, Any]:
        return {"version": "7.0.0"}

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        MONGO_URI="mongodb://localhost/",
        MONGO_DEFAULT_DATABASE="test",
        MONGO_POOL_SIZE=5,
        MONGO_PING_ON_CONNECT=True,
    )


@pytest.fixture
def fake_mongo(monkeypatch) -> Generator[type, None, None]:
    """Replace the driver client with the in-memory fake."""
    FakeMongoClient.instances = []
    monkeypatch.setattr(client_module, "MongoClient", FakeMongoClient)
    yield FakeMongoClient


@pytest.fixture
def test_logger(caplog) -> logging.Logger:
    """A real logger whose records are captured at DEBUG."""
    caplog.set_level(logging.DEBUG, logger="mdb.tests")
    return logging.getLogger("mdb.tests")


@pytest.fixture
def db(fake_mongo, settings, test_logger) -> Generator[Database, None, None]:
    """A Database handle connected to the fake driver, with logging on."""
    database = Database.init("mongodb://localhost/app", logger=test_logger, settings=settings)
    yield database
    database.close()


@pytest.fixture
def quiet_db(fake_mongo, settings) -> Generator[Database, None, None]:
    """A Database handle without a logger."""
    database = Database.init("mongodb://localhost/app", settings=settings)
    yield database
    database.close()


def driver_collection(database: Database, name: str) -> FakeCollection:
    """The fake driver collection behind a registered name."""
    return database.client.get_collection(name)


@pytest.fixture
def raw_collection():
    return driver_collection
