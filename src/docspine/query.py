"""Query: chainable find configuration, execution and relation population.

Every configuration method returns the same query so calls can be chained.
Nothing touches the store until :meth:`Query.exec` or :meth:`Query.count`::

    users = User.find({"lastname": "Mustermann"}).sort("-created_at").skip(10).limit(5).exec()

Population replaces reference fields with the records they point to.  Only
the first relation level is populated; the children's own relations stay
in reference form::

    employee = people.find_by_id(employee_id).populate("manager", "reports").exec()
    employee.manager.name          # a bound Person
    employee.manager.manager       # still an ObjectId

Result modes
------------
``find()`` builds a multi-result query, ``find_one()``/``find_by_id()`` a
single-result query.  ``exec()`` accepts an optional destination that must
match the mode: a ``list`` for multi-result queries, a ``Document`` for
single-result queries.
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Any

from pymongo import ASCENDING, DESCENDING

from docspine.codec import from_storage, normalize_relations, to_object_id
from docspine.document import Document
from docspine.errors import NotFoundError, ResultModeError, UnsupportedRelationValueError
from docspine.logging import get_logger

if TYPE_CHECKING:
    from pymongo.cursor import Cursor

    from docspine.collection import Collection

logger = get_logger(__name__)


class Query:
    """Find configuration bound to one collection."""

    def __init__(self, collection: Collection, query: Any, *, multiple: bool) -> None:
        self._collection = collection
        self._query = query
        self._selector: Any = None
        self._sort: list[str] = []
        self._limit = 0
        self._skip = 0
        self._populate: list[str] = []
        self._multiple = multiple

    def __repr__(self) -> str:
        mode = "multiple" if self._multiple else "single"
        return f"Query({self._collection.name!r}, {self._query!r}, {mode})"

    @property
    def multiple(self) -> bool:
        return self._multiple

    # -- Configuration --

    def select(self, selector: Any) -> Query:
        """Field projection passed to the driver."""
        self._selector = selector
        return self

    def sort(self, *fields: str) -> Query:
        """Sort keys; prefix with ``-`` for descending order."""
        self._sort.extend(fields)
        return self

    def limit(self, limit: int) -> Query:
        self._limit = limit
        return self

    def skip(self, skip: int) -> Query:
        self._skip = skip
        return self

    def populate(self, *fields: str) -> Query:
        """Relation fields to expand after the fetch (first level only)."""
        self._populate.extend(fields)
        return self

    # -- Execution --

    def count(self) -> int:
        """Number of matching documents; projection, sort, paging and populate are ignored."""
        return self._collection.handle.count_documents(self._query)

    def exec(self, result: list | Document | None = None) -> Any:
        """Run the query and return the bound record(s).

        Raises:
            ResultModeError: ``result`` does not match the query mode.
            NotFoundError: single-result query matched nothing; ``result``
                is left untouched.
        """
        if self._multiple:
            if result is None:
                result = []
            elif not isinstance(result, list):
                raise ResultModeError("Execution expected a list destination")
            return self._exec_all(result)

        if isinstance(result, list):
            raise ResultModeError("Execution expected a Document destination")
        if result is not None and not isinstance(result, self._collection.record_type.cls):
            raise ResultModeError(
                f"Execution expected a {self._collection.record_type.cls.__name__} destination, "
                f"got {type(result).__name__}"
            )
        return self._exec_one(result)

    def _exec_all(self, result: list) -> list:
        records = [self._materialize(document) for document in self._cursor()]
        result[:] = records
        logger.debug("query_executed", collection=self._collection.name, mode="multiple", count=len(records))
        return result

    def _exec_one(self, result: Document | None) -> Document:
        cursor = self._cursor()
        try:
            document = next(cursor, None)
        finally:
            cursor.close()

        if document is None:
            logger.debug("query_not_found", collection=self._collection.name, query=repr(self._query))
            raise NotFoundError().with_context(collection=self._collection.name)

        record = self._materialize(document, into=result)
        logger.debug("query_executed", collection=self._collection.name, mode="single", count=1)
        return record

    def _cursor(self) -> Cursor:
        cursor = self._collection.handle.find(self._query, self._selector)
        if self._sort:
            cursor = cursor.sort(self._sort_spec())
        if self._skip:
            cursor = cursor.skip(self._skip)
        if self._limit:
            cursor = cursor.limit(self._limit)
        return cursor

    def _sort_spec(self) -> list[tuple[str, int]]:
        descriptor = self._collection.record_type
        spec = []
        for key in self._sort:
            direction = ASCENDING
            if key.startswith("-"):
                key, direction = key[1:], DESCENDING
            elif key.startswith("+"):
                key = key[1:]
            spec.append((descriptor.storage_key(key), direction))
        return spec

    def _materialize(self, document: dict, into: Document | None = None) -> Document:
        descriptor = self._collection.record_type
        record = from_storage(descriptor, document)
        self._collection.bind_new(record)
        normalize_relations(record, descriptor, skip=set(self._populate))
        if self._populate:
            self.run_population(record)
        if into is None:
            return record

        # The destination is only written once decoding and population succeeded.
        for f in dataclasses.fields(descriptor.cls):
            setattr(into, f.name, getattr(record, f.name))
        return self._collection.bind_new(into)

    # -- Population --

    def run_population(self, record: Document) -> None:
        """Replace every requested relation field of ``record`` with its target record(s)."""
        descriptor = self._collection.record_type
        connection = self._collection.connection

        for field_name in self._populate:
            relation = descriptor.relation_for(field_name)
            target = connection.collection_for(relation.target)
            value = getattr(record, field_name)

            if relation.many:
                if value is None:
                    setattr(record, field_name, [])
                    continue
                if not isinstance(value, (list, tuple)):
                    raise UnsupportedRelationValueError(
                        value,
                        f"Unknown type stored as relation '{field_name}' - list of ObjectId expected",
                    ).with_context(field_name=field_name, type_name=descriptor.name)
                ids = [to_object_id(v) for v in value]
                children = target.find({"_id": {"$in": ids}}).exec() if ids else []
                setattr(record, field_name, children)
            else:
                if value is None:
                    continue
                if isinstance(value, (list, tuple)):
                    raise UnsupportedRelationValueError(
                        value,
                        f"Unknown type stored as relation '{field_name}' - ObjectId expected",
                    ).with_context(field_name=field_name, type_name=descriptor.name)
                child = target.find_by_id(to_object_id(value)).exec()
                setattr(record, field_name, child)

            logger.debug(
                "relation_populated",
                type_name=descriptor.name,
                field=field_name,
                target=relation.target_name,
            )


__all__ = [
    "Query",
]
