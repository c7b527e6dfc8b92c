"""Collection binding: one record type bound to one storage collection.

Obtained from :meth:`Connection.register_type`; it is the entry point for
queries against the type and wires new instances for ``save()``::

    people = connection.register_type(Person, "people")

    everyone = people.find().sort("name").exec()
    alice = people.find_one({"name": "Alice"}).exec()
    bob = people.find_by_id(bob_id).populate("manager").exec()

    carol = people.new(name="Carol")
    carol.save()
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from bson import ObjectId
from pymongo.collection import Collection as MongoCollection

from docspine.document import Document
from docspine.errors import ConfigurationError, InvalidIdError
from docspine.query import Query
from docspine.schema import RecordType
from docspine.timestamps import is_object_id

if TYPE_CHECKING:
    from docspine.connection import Connection


class Collection:
    """Binds a :class:`RecordType` to a driver collection handle."""

    def __init__(self, handle: MongoCollection, connection: Connection, record_type: RecordType) -> None:
        self._handle = handle
        self._connection = connection
        self._record_type = record_type

    def __repr__(self) -> str:
        return f"Collection({self.name!r}, type={self._record_type.name!r})"

    @property
    def name(self) -> str:
        return self._handle.name

    @property
    def handle(self) -> MongoCollection:
        return self._handle

    @property
    def connection(self) -> Connection:
        return self._connection

    @property
    def record_type(self) -> RecordType:
        return self._record_type

    # -- Binding --

    def bind_new(self, document: Document | None) -> Document:
        """Wire ``document`` to this collection so save()/populate() work."""
        if document is None:
            raise ConfigurationError("model can not be None")
        if not isinstance(document, Document):
            raise ConfigurationError(f"Can not bind {type(document).__name__}; expected a Document")
        document.bind(self)
        return document

    def new(self, **values: Any) -> Document:
        """Construct and bind a fresh instance of the registered type."""
        return self.bind_new(self._record_type.cls(**values))

    # -- Queries --

    def find(self, *query: Any) -> Query:
        """Query expecting a list result."""
        return Query(self, _single_filter(query), multiple=True)

    def find_one(self, *query: Any) -> Query:
        """Query expecting a single record."""
        return Query(self, _single_filter(query), multiple=False)

    def find_by_id(self, id: ObjectId | str) -> Query:
        """Query for the record with identifier ``id``."""
        if isinstance(id, str):
            if not is_object_id(id):
                raise InvalidIdError(value=id).with_context(collection=self.name)
            id = ObjectId(id)
        return Query(self, {"_id": id}, multiple=False)

    # -- Indexes --

    def ensure_index(self, keys: Any, *, unique: bool = False, **kwargs: Any) -> str:
        """Create an index (no-op when it exists). Returns the index name."""
        return self._handle.create_index(keys, unique=unique, **kwargs)


def _single_filter(query: tuple[Any, ...]) -> Any:
    if len(query) == 0:
        return {}
    if len(query) == 1:
        return query[0] if query[0] is not None else {}
    raise ConfigurationError("Find method accepts no or maximum one query param.")


__all__ = [
    "Collection",
]
