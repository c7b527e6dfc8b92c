"""In-memory stand-in for the parts of the pymongo client docspine uses.

Covers equality and ``$in`` filters, projections, sort/skip/limit cursors,
unique indexes (raising the real ``DuplicateKeyError``), ``replace_one``
upserts, ``count_documents`` and client sessions.  Every call is recorded
in ``calls`` so tests can assert on what reached the driver.
"""

from __future__ import annotations

import copy
from typing import Any

from bson import ObjectId
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError
from pymongo.results import InsertOneResult, UpdateResult


def _get_path(document: dict, path: str) -> Any:
    value: Any = document
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value


def _matches(document: dict, query: dict | None) -> bool:
    for key, condition in (query or {}).items():
        value = _get_path(document, key)
        if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
            for op, operand in condition.items():
                if op == "$in":
                    if isinstance(value, list):
                        if not any(v in operand for v in value):
                            return False
                    elif value not in operand:
                        return False
                elif op == "$eq":
                    if value != operand:
                        return False
                elif op == "$ne":
                    if value == operand:
                        return False
                else:
                    raise NotImplementedError(f"operator {op} not supported by the fake")
        elif isinstance(value, list) and not isinstance(condition, list):
            if condition not in value:
                return False
        elif value != condition:
            return False
    return True


def _project(document: dict, projection: Any) -> dict:
    if not projection:
        return document
    if isinstance(projection, (list, tuple)):
        projection = {key: 1 for key in projection}
    include = {k for k, v in projection.items() if v and k != "_id"}
    if include:
        result = {k: v for k, v in document.items() if k in include}
        if projection.get("_id", 1) and "_id" in document:
            result["_id"] = document["_id"]
        return result
    exclude = {k for k, v in projection.items() if not v}
    return {k: v for k, v in document.items() if k not in exclude}


class FakeCursor:
    def __init__(self, documents: list[dict]):
        self._documents = documents
        self._sort: list[tuple[str, int]] = []
        self._skip = 0
        self._limit = 0
        self._iterator = None
        self.closed = False

    def sort(self, key_or_list: Any, direction: int | None = None) -> FakeCursor:
        if isinstance(key_or_list, str):
            self._sort = [(key_or_list, direction or 1)]
        else:
            self._sort = list(key_or_list)
        return self

    def skip(self, skip: int) -> FakeCursor:
        self._skip = skip
        return self

    def limit(self, limit: int) -> FakeCursor:
        self._limit = limit
        return self

    def _materialize(self) -> list[dict]:
        documents = list(self._documents)
        for key, direction in reversed(self._sort):
            documents.sort(
                key=lambda d: (_get_path(d, key) is not None, _get_path(d, key)),
                reverse=direction < 0,
            )
        documents = documents[self._skip:]
        if self._limit:
            documents = documents[: self._limit]
        return documents

    def __iter__(self) -> FakeCursor:
        return self

    def __next__(self) -> dict:
        if self._iterator is None:
            self._iterator = iter(self._materialize())
        return next(self._iterator)

    def close(self) -> None:
        self.closed = True


class FakeCollection:
    def __init__(self, database: FakeDatabase, name: str):
        self.database = database
        self.name = name
        self.documents: list[dict] = []
        self.unique_indexes: list[list[str]] = []
        self.calls: list[tuple[str, dict]] = []

    # -- helpers --

    def _check_unique(self, candidate: dict, ignore: dict | None = None) -> None:
        for other in self.documents:
            if other is ignore:
                continue
            if other["_id"] == candidate.get("_id"):
                raise DuplicateKeyError(f"E11000 duplicate key error collection: {self.name} index: _id_", 11000)
            for keys in self.unique_indexes:
                if all(_get_path(other, k) == _get_path(candidate, k) for k in keys):
                    raise DuplicateKeyError(
                        f"E11000 duplicate key error collection: {self.name} index: {'_'.join(keys)}_1",
                        11000,
                    )

    # -- driver surface --

    def insert_one(self, document: dict, session: Any = None) -> InsertOneResult:
        self.calls.append(("insert_one", {"document": copy.deepcopy(document), "session": session}))
        if "_id" not in document:
            document["_id"] = ObjectId()
        stored = copy.deepcopy(document)
        self._check_unique(stored)
        self.documents.append(stored)
        return InsertOneResult(stored["_id"], True)

    def replace_one(self, query: dict, replacement: dict, upsert: bool = False, session: Any = None) -> UpdateResult:
        self.calls.append(
            ("replace_one", {"query": query, "document": copy.deepcopy(replacement), "upsert": upsert, "session": session})
        )
        for index, existing in enumerate(self.documents):
            if _matches(existing, query):
                stored = copy.deepcopy(replacement)
                stored["_id"] = existing["_id"]
                self._check_unique(stored, ignore=existing)
                self.documents[index] = stored
                return UpdateResult({"n": 1, "nModified": 1}, True)
        if not upsert:
            return UpdateResult({"n": 0, "nModified": 0}, True)
        stored = copy.deepcopy(replacement)
        if "_id" in query:
            stored["_id"] = query["_id"]
        stored.setdefault("_id", ObjectId())
        self._check_unique(stored)
        self.documents.append(stored)
        return UpdateResult({"n": 1, "nModified": 0, "upserted": stored["_id"]}, True)

    def find(self, filter: dict | None = None, projection: Any = None, session: Any = None) -> FakeCursor:
        self.calls.append(("find", {"filter": filter, "projection": projection}))
        matched = [_project(copy.deepcopy(d), projection) for d in self.documents if _matches(d, filter)]
        return FakeCursor(matched)

    def find_one(self, filter: dict | None = None, projection: Any = None, session: Any = None) -> dict | None:
        return next(self.find(filter, projection), None)

    def count_documents(self, filter: dict, session: Any = None) -> int:
        self.calls.append(("count_documents", {"filter": filter}))
        return sum(1 for d in self.documents if _matches(d, filter))

    def create_index(self, keys: Any, unique: bool = False, **kwargs: Any) -> str:
        if isinstance(keys, str):
            keys = [(keys, 1)]
        names = [k for k, _ in keys]
        if unique and names not in self.unique_indexes:
            self.unique_indexes.append(names)
        return "_".join(f"{k}_{d}" for k, d in keys)

    def raw(self, id: ObjectId) -> dict | None:
        """Stored document exactly as the driver would hold it."""
        for document in self.documents:
            if document["_id"] == id:
                return document
        return None


class FakeDatabase:
    def __init__(self, client: FakeMongoClient, name: str):
        self.client = client
        self.name = name
        self._collections: dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self._collections:
            self._collections[name] = FakeCollection(self, name)
        return self._collections[name]


class FakeClientSession:
    def __init__(self, causal_consistency: bool | None):
        self.causal_consistency = causal_consistency
        self.ended = False

    def __enter__(self) -> FakeClientSession:
        return self

    def __exit__(self, *args) -> None:
        self.end_session()

    def end_session(self) -> None:
        self.ended = True


class FakeAdmin:
    def __init__(self, client: FakeMongoClient):
        self._client = client

    def command(self, name: str) -> dict:
        if self._client.unreachable:
            raise ServerSelectionTimeoutError("fake: no servers reachable")
        return {"ok": 1.0}


class FakeMongoClient:
    def __init__(self, unreachable: bool = False, **kwargs: Any):
        self.kwargs = kwargs
        self.unreachable = unreachable
        self.closed = False
        self.sessions: list[FakeClientSession] = []
        self.admin = FakeAdmin(self)
        self._databases: dict[str, FakeDatabase] = {}

    def __getitem__(self, name: str) -> FakeDatabase:
        if name not in self._databases:
            self._databases[name] = FakeDatabase(self, name)
        return self._databases[name]

    def start_session(self, causal_consistency: bool | None = None) -> FakeClientSession:
        session = FakeClientSession(causal_consistency)
        self.sessions.append(session)
        return session

    def close(self) -> None:
        self.closed = True
