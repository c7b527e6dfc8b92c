"""Document base class: identity, timestamps and collection binding.

Every stored record type derives from :class:`Document`::

    @dataclass
    class Person(Document):
        name: str = ""
        manager: Person | ObjectId | None = relation("Person")

    people = connection.register_type(Person, "people")
    alice = people.new(name="Alice")
    alice.save()

The binding (collection + connection) is wiring state kept next to the
data fields in a :class:`Binding`, never persisted, compared or printed.
A record only gains a binding through :meth:`Collection.bind_new` (called
automatically for every record the engine builds), after which
:meth:`Document.save` and :meth:`Document.populate` are usable.

Tags:
    document, record-base, binding, docspine
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import TYPE_CHECKING

from bson import ObjectId

from docspine.errors import ConfigurationError, UnboundDocumentError
from docspine.schema import DB_NAME_KEY, type_name_of

if TYPE_CHECKING:
    from docspine.collection import Collection
    from docspine.connection import Connection


@dataclass(frozen=True)
class Binding:
    """Wiring of a record to its collection and owning connection."""

    collection: Collection
    connection: Connection


@dataclass(kw_only=True)
class Document:
    """Base class for record types persisted as documents."""

    id: ObjectId | None = field(default=None, metadata={DB_NAME_KEY: "_id"})
    created_at: datetime | None = field(default=None, metadata={DB_NAME_KEY: "createdAt"})
    updated_at: datetime | None = field(default=None, metadata={DB_NAME_KEY: "updatedAt"})

    # Not a dataclass field; set per instance by bind().
    _binding = None

    @classmethod
    def type_name(cls) -> str:
        return type_name_of(cls)

    # -- Identity and timestamps --

    def get_id(self) -> ObjectId | None:
        return self.id

    def set_id(self, id: ObjectId) -> None:
        """Assign the identifier. An assigned identifier never changes."""
        if self.id is not None and self.id != id:
            raise ConfigurationError(
                f"Document id is immutable (has {self.id}, got {id})"
            ).with_context(type_name=self.type_name(), record_id=str(self.id))
        self.id = id

    def set_created_at(self, created_at: datetime) -> None:
        self.created_at = created_at

    def set_updated_at(self, updated_at: datetime) -> None:
        self.updated_at = updated_at

    # -- Binding --

    @property
    def binding(self) -> Binding | None:
        return self._binding

    @property
    def is_bound(self) -> bool:
        return self._binding is not None

    def bind(self, collection: Collection) -> None:
        """Wire this record to ``collection`` and its connection."""
        self._binding = Binding(collection=collection, connection=collection.connection)

    def set_collection(self, collection: Collection) -> None:
        if self._binding is None:
            self.bind(collection)
        else:
            self._binding = replace(self._binding, collection=collection)

    def set_connection(self, connection: Connection) -> None:
        if self._binding is None:
            raise ConfigurationError("set_collection() must be called before set_connection()")
        self._binding = replace(self._binding, connection=connection)

    def require_binding(self, operation: str) -> Binding:
        if self._binding is None:
            raise UnboundDocumentError(operation, self.type_name())
        return self._binding

    # -- Persistence --

    def save(self) -> None:
        """Create or update this record. See :func:`docspine.persistence.save_record`."""
        from docspine.persistence import save_record

        save_record(self)

    def populate(self, *fields: str) -> None:
        """Replace the named relation fields with the referenced records (one level)."""
        from docspine.query import Query

        binding = self.require_binding("populate")
        query = Query(binding.collection, {}, multiple=False).populate(*fields)
        query.run_population(self)

    # -- Validation hook --

    def validate(self) -> tuple[bool, list[str]]:
        """Validation hook for subclasses. ``save()`` does not call it."""
        return True, []

    def append_error(self, errors: list[str], message: str) -> None:
        errors.append(message)


__all__ = [
    "Binding",
    "Document",
]
