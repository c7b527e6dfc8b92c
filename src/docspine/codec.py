"""Conversion between in-memory records and their storage form.

Storage form never embeds related records: a one-to-one relation is
stored as a single object id, a one-to-many relation as an ordered list
of object ids (possibly empty, never absent).

``to_storage()`` is a pure projection.  It builds a new document and
leaves the caller's object graph untouched, so a record that holds live
child objects still holds them after it was saved.

Flow::

    record ──to_storage()──► {"_id": ..., "manager": ObjectId, "reports": [ObjectId, ...]}
                                           │
    record ◄──from_storage()───────────────┘
       │
       └─normalize_relations()─► relation fields coerced to ObjectId / list[ObjectId]

Tags:
    codec, serialization, relations, object-id, docspine
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Any, Mapping

from bson import ObjectId

from docspine.document import Document
from docspine.errors import (
    InvalidIdError,
    RelationKindError,
    UnsavedRelationError,
    UnsupportedRelationValueError,
)
from docspine.logging import get_logger
from docspine.schema import RecordType, Relation, RelationKind, zero_value
from docspine.timestamps import is_object_id, new_object_id

if TYPE_CHECKING:
    from docspine.connection import Connection

logger = get_logger(__name__)


# ── Relation references ──────────────────────────────────────────────────


def persist_relation(
    value: Any,
    autosave: bool = False,
    connection: Connection | None = None,
    in_progress: set[int] | None = None,
) -> ObjectId:
    """Return the reference for a single relation element.

    - ``Document``: saved first when ``autosave`` is set; must carry an id.
      ``in_progress`` holds the ``id()`` of records already being saved by
      the current call, so a cyclic graph saves each record once.
    - ``ObjectId``: returned as is.
    - ``str``: decoded from its 24-hex encoding, ``InvalidIdError`` otherwise.
    """
    if isinstance(value, Document):
        if autosave:
            _autosave_child(value, connection, in_progress)
        if value.id is None:
            raise UnsavedRelationError().with_context(type_name=value.type_name())
        return value.id

    if isinstance(value, ObjectId):
        return value

    if isinstance(value, str):
        if not is_object_id(value):
            raise InvalidIdError(value=value)
        return ObjectId(value)

    raise UnsupportedRelationValueError(value)


def _autosave_child(child: Document, connection: Connection | None, in_progress: set[int] | None) -> None:
    from docspine.persistence import save_record

    if in_progress is not None and id(child) in in_progress:
        # Already being saved further up this call; reserve its id for the reference.
        if child.id is None:
            child.set_id(new_object_id())
        return

    if not child.is_bound and connection is not None and connection.is_registered(child.type_name()):
        connection.collection_for(child.type_name()).bind_new(child)
    logger.debug("relation_autosave", type_name=child.type_name(), id=str(child.id) if child.id else None)
    save_record(child, in_progress)


def to_object_id(value: Any) -> ObjectId:
    """Reference form of a value read back from storage or held in memory."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, Document):
        if value.id is None:
            raise UnsavedRelationError().with_context(type_name=value.type_name())
        return value.id
    if isinstance(value, str):
        if not is_object_id(value):
            raise InvalidIdError(value=value)
        return ObjectId(value)
    raise UnsupportedRelationValueError(
        value,
        f"Unknown type stored as relation - ObjectId or list of ObjectId expected, got {type(value).__name__}",
    )


def flatten_relation(
    field_name: str,
    value: Any,
    rel: Relation,
    connection: Connection | None = None,
    in_progress: set[int] | None = None,
) -> ObjectId | list[ObjectId] | None:
    """Storage form of one relation field."""
    if value is None:
        return [] if rel.many else None

    if isinstance(value, (list, tuple)):
        if not rel.many:
            raise RelationKindError(
                f"Relation must be '{RelationKind.ONE_TO_MANY.value}' when using lists (field '{field_name}')"
            ).with_context(field_name=field_name)
        return [persist_relation(element, rel.autosave, connection, in_progress) for element in value]

    if isinstance(value, (Document, ObjectId, str)):
        if rel.many:
            raise RelationKindError(
                f"Relation must be '{RelationKind.ONE_TO_ONE.value}' when using a document or id (field '{field_name}')"
            ).with_context(field_name=field_name)
        return persist_relation(value, rel.autosave, connection, in_progress)

    raise UnsupportedRelationValueError(
        value,
        f"Following field kinds are supported for saving relations: list, Document, ObjectId, str. "
        f"You used {type(value).__name__} (field '{field_name}')",
    )


# ── Documents ────────────────────────────────────────────────────────────


def to_storage(
    record: Document,
    descriptor: RecordType,
    connection: Connection | None = None,
    in_progress: set[int] | None = None,
) -> dict[str, Any]:
    """Build the document stored for ``record`` without mutating it."""
    document: dict[str, Any] = {}
    for f in dataclasses.fields(record):
        value = getattr(record, f.name)
        rel = descriptor.relations.get(f.name)
        if rel is not None:
            value = flatten_relation(f.name, value, rel, connection, in_progress)
        elif f.name == "id":
            if value is None:
                continue
        else:
            value = _encode_value(value)
        document[descriptor.storage_key(f.name)] = value
    return document


def _encode_value(value: Any) -> Any:
    """Embedded dataclasses become sub-documents; containers are walked."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _encode_value(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, (list, tuple)):
        return [_encode_value(v) for v in value]
    if isinstance(value, dict):
        return {k: _encode_value(v) for k, v in value.items()}
    return value


def from_storage(
    descriptor: RecordType,
    document: Mapping[str, Any],
    into: Document | None = None,
) -> Document:
    """Decode a stored document into a new record (or into ``into``).

    Keys that are absent keep the field's zero value; unknown keys are
    ignored.
    """
    record = into if into is not None else descriptor.new_instance()
    for f in dataclasses.fields(descriptor.cls):
        key = descriptor.storage_key(f.name)
        if key in document:
            value = document[key]
            embedded = descriptor.embedded.get(f.name)
            if embedded is not None and isinstance(value, Mapping):
                value = _decode_embedded(embedded, value)
        else:
            value = zero_value(f)
        setattr(record, f.name, value)
    return record


def _decode_embedded(cls: type, data: Mapping[str, Any]) -> Any:
    instance = cls.__new__(cls)
    for f in dataclasses.fields(cls):
        object.__setattr__(instance, f.name, data[f.name] if f.name in data else zero_value(f))
    return instance


def normalize_relations(
    record: Document,
    descriptor: RecordType,
    skip: frozenset[str] | set[str] = frozenset(),
) -> None:
    """Coerce relation fields to reference form (``ObjectId`` / ``list[ObjectId]``).

    Absent values stay ``None``.
    """
    for name, rel in descriptor.relations.items():
        if name in skip:
            continue
        value = getattr(record, name)
        if value is None:
            continue
        if rel.many:
            if not isinstance(value, (list, tuple)):
                raise UnsupportedRelationValueError(
                    value, f"One-to-many relation '{name}' must hold a list, got {type(value).__name__}"
                )
            setattr(record, name, [to_object_id(v) for v in value])
        else:
            setattr(record, name, to_object_id(value))


__all__ = [
    "persist_relation",
    "to_object_id",
    "flatten_relation",
    "to_storage",
    "from_storage",
    "normalize_relations",
]
