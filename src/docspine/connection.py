"""Connection: store session lifetime plus the record-type registries.

A :class:`Connection` is created once at startup, shared by every caller,
and closed explicitly at shutdown::

    from docspine import OdmSettings, connect

    connection = connect(OdmSettings(database_hosts=["localhost:27017"], database_name="app"))
    people = connection.register_type(Person, "people")
    ...
    connection.close()

It owns two lookup tables keyed by logical type name (the lower-cased
class name): type name → :class:`~docspine.collection.Collection` and
type name → :class:`~docspine.schema.RecordType`.  Both tables are
guarded by a re-entrant lock, so registration and lookups may interleave
with query/save traffic.

Design
------
Queries read through the shared client directly.  Every save runs inside
its own causally consistent client session (:meth:`Connection.start_session`),
so a write is observed by later reads from the same caller and does not
hold up unrelated readers.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from pymongo import MongoClient
from pymongo.client_session import ClientSession
from pymongo.database import Database
from pymongo.errors import PyMongoError

from docspine.collection import Collection
from docspine.document import Document
from docspine.errors import (
    ConfigurationError,
    ConnectionClosedError,
    DatabaseConnectionError,
    TypeNotRegisteredError,
)
from docspine.logging import get_logger
from docspine.schema import RecordType, Relation
from docspine.settings import OdmSettings, get_settings

logger = get_logger(__name__)

ClientFactory = Callable[..., Any]


class Connection:
    """Shared store session and record-type registry."""

    def __init__(
        self,
        settings: OdmSettings | None = None,
        *,
        client_factory: ClientFactory = MongoClient,
    ) -> None:
        self.settings = settings or get_settings()
        self._client_factory = client_factory
        self._client: Any = None
        self._lock = threading.RLock()
        self._collections: dict[str, Collection] = {}
        self._types: dict[str, RecordType] = {}

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"Connection(database={self.settings.database_name!r}, {state})"

    # ── Lifetime ─────────────────────────────────────────────────────────

    def open(self) -> Connection:
        """Dial the store and verify it answers. No-op when already open."""
        if self._client is not None:
            return self

        hosts = list(self.settings.database_hosts)
        client = None
        try:
            client = self._client_factory(**self.settings.client_kwargs())
            client.admin.command("ping")
        except PyMongoError as e:
            if client is not None:
                client.close()
            logger.warning("connection_failed", hosts=hosts, error=str(e))
            raise DatabaseConnectionError(
                f"Could not connect to {', '.join(hosts)}: {e}", cause=e
            ).with_context(hosts=hosts) from e

        self._client = client
        logger.info("connection_opened", hosts=hosts, database=self.settings.database_name)
        return self

    def close(self) -> None:
        """Release the session. Safe to call on a closed connection."""
        if self._client is None:
            return
        self._client.close()
        self._client = None
        logger.info("connection_closed", database=self.settings.database_name)

    def __enter__(self) -> Connection:
        return self.open()

    def __exit__(self, *args) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._client is not None

    @property
    def client(self) -> Any:
        if self._client is None:
            raise ConnectionClosedError()
        return self._client

    @property
    def database(self) -> Database:
        return self.client[self.settings.database_name]

    @contextmanager
    def start_session(self) -> Iterator[ClientSession]:
        """Isolated, causally consistent session for one write."""
        with self.client.start_session(causal_consistency=True) as session:
            yield session

    # ── Registry ─────────────────────────────────────────────────────────

    def register_type(
        self,
        document: Document | type[Document] | None,
        collection_name: str,
        relations: Mapping[str, Relation | Mapping[str, Any] | str] | None = None,
    ) -> Collection:
        """Bind a record type to a storage collection.

        ``document`` is a sample instance or the class itself.  A previous
        registration under the same type name is replaced.
        """
        if document is None:
            raise ConfigurationError("document can not be None")

        record_cls = document if isinstance(document, type) else type(document)
        if not issubclass(record_cls, Document):
            raise ConfigurationError(f"'{record_cls.__name__}' must derive from Document")

        descriptor = RecordType.build(record_cls, relations)
        collection = Collection(self.database[collection_name], self, descriptor)

        with self._lock:
            self._collections[descriptor.name] = collection
            self._types[descriptor.name] = descriptor

        logger.info(
            "type_registered",
            type_name=descriptor.name,
            collection=collection_name,
            relations=sorted(descriptor.relations),
        )
        return collection

    def resolve_by_name(self, type_name: str) -> Document:
        """A zero-valued, bound instance of a registered type."""
        collection = self.collection_for(type_name)
        return collection.bind_new(collection.record_type.new_instance())

    def collection_for(self, type_name: str) -> Collection:
        with self._lock:
            collection = self._collections.get(type_name.lower())
        if collection is None:
            raise TypeNotRegisteredError(type_name)
        return collection

    def descriptor_for(self, type_name: str) -> RecordType:
        with self._lock:
            descriptor = self._types.get(type_name.lower())
        if descriptor is None:
            raise TypeNotRegisteredError(type_name)
        return descriptor

    def is_registered(self, type_name: str) -> bool:
        with self._lock:
            return type_name.lower() in self._types

    def registered_types(self) -> list[str]:
        with self._lock:
            return sorted(self._types)


def connect(
    settings: OdmSettings | None = None,
    *,
    client_factory: ClientFactory = MongoClient,
) -> Connection:
    """Create and open a :class:`Connection`."""
    return Connection(settings, client_factory=client_factory).open()


__all__ = [
    "Connection",
    "connect",
]
