"""docspine -- object-to-document mapping for MongoDB.

Record types are plain dataclasses deriving from :class:`Document`.
Relations between them are declared per field and stored as object id
references; queries can expand them back into records one level deep.

Architecture::

    errors.py        Error taxonomy (recoverable + misuse tiers)
    settings.py      OdmSettings (pydantic-settings)
    logging.py       structlog configuration
    timestamps.py    utc_now(), object id helpers
    schema.py        Relation metadata + RecordType descriptor
    document.py      Document base class + Binding
    codec.py         Storage projection / decoding of records
    connection.py    Connection: session lifetime + type registries
    collection.py    Collection binding: find / find_one / find_by_id
    query.py         Query: chaining, exec, populate
    persistence.py   Save engine

Usage::

    from dataclasses import dataclass

    from bson import ObjectId

    from docspine import Document, OdmSettings, RelationKind, connect, relation

    @dataclass
    class Person(Document):
        name: str = ""
        manager: Person | ObjectId | None = relation("Person")
        reports: list[Person | ObjectId] = relation("Person", RelationKind.ONE_TO_MANY)

    connection = connect(OdmSettings(database_name="app"))
    people = connection.register_type(Person, "people")

    boss = people.new(name="Boss")
    boss.save()
    employee = people.new(name="Employee", manager=boss)
    employee.save()

    loaded = people.find_by_id(employee.id).populate("manager").exec()
"""

from docspine.collection import Collection
from docspine.connection import Connection, connect
from docspine.document import Binding, Document
from docspine.errors import (
    ConfigurationError,
    DatabaseConnectionError,
    DuplicateError,
    InvalidIdError,
    NotFoundError,
    OdmError,
    QueryError,
    SchemaError,
    ValidationError,
)
from docspine.query import Query
from docspine.schema import RecordType, Relation, RelationKind, relation
from docspine.settings import OdmSettings, get_settings

__version__ = "0.1.0"

__all__ = [
    "Binding",
    "Collection",
    "ConfigurationError",
    "Connection",
    "DatabaseConnectionError",
    "Document",
    "DuplicateError",
    "InvalidIdError",
    "NotFoundError",
    "OdmError",
    "OdmSettings",
    "Query",
    "QueryError",
    "RecordType",
    "Relation",
    "RelationKind",
    "SchemaError",
    "ValidationError",
    "connect",
    "get_settings",
    "relation",
]
