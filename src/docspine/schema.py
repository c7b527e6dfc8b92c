"""Relation schema for record types.

A record type is a dataclass deriving from :class:`~docspine.document.Document`.
Fields that reference other record types are declared with :func:`relation`,
which attaches a :class:`Relation` to the dataclass field metadata::

    @dataclass
    class Person(Document):
        name: str = ""
        manager: Person | ObjectId | None = relation("Person")
        reports: list[Person | ObjectId] = relation("Person", RelationKind.ONE_TO_MANY)

The same information can be supplied explicitly at registration time
(``connection.register_type(Person, "people", relations={...})``); explicit
entries override field metadata.

:class:`RecordType` is the descriptor the save and query engines consult:
logical name, relation map, storage key names and embedded dataclass
types.  Descriptors are built once per class and cached.

Tags:
    schema, relations, dataclasses, descriptor, docspine
"""

from __future__ import annotations

import dataclasses
import threading
import types
import typing
from dataclasses import MISSING, dataclass, field
from enum import Enum
from typing import Any, Mapping

from docspine.errors import ConfigurationError, UnknownFieldError
from docspine.logging import get_logger

logger = get_logger(__name__)

# Field metadata keys
RELATION_KEY = "docspine.relation"
DB_NAME_KEY = "docspine.db_name"


class RelationKind(str, Enum):
    """How many records a relation field references."""

    ONE_TO_ONE = "11"
    ONE_TO_MANY = "1n"

    @classmethod
    def parse(cls, value: RelationKind | str | None) -> RelationKind:
        """Parse a kind; anything unrecognised defaults to one-to-one."""
        if isinstance(value, RelationKind):
            return value
        if value == cls.ONE_TO_MANY.value:
            return cls.ONE_TO_MANY
        return cls.ONE_TO_ONE


@dataclass(frozen=True)
class Relation:
    """Relation metadata for one field."""

    target: str
    kind: RelationKind = RelationKind.ONE_TO_ONE
    autosave: bool = False

    def __post_init__(self) -> None:
        # Accept a class target and a raw kind string ("1n") like relation() does.
        object.__setattr__(self, "target", _target_name(self.target))
        object.__setattr__(self, "kind", RelationKind.parse(self.kind))

    @property
    def target_name(self) -> str:
        """Logical (lower-case) name of the referenced type."""
        return self.target.lower()

    @property
    def many(self) -> bool:
        return self.kind == RelationKind.ONE_TO_MANY

    @classmethod
    def coerce(cls, value: Relation | Mapping[str, Any] | str) -> Relation:
        """Build a Relation from a Relation, a mapping or a bare target name."""
        if isinstance(value, Relation):
            return value
        if isinstance(value, str):
            return cls(target=value)
        if isinstance(value, Mapping):
            return cls(
                target=value["target"],
                kind=value.get("kind"),
                autosave=bool(value.get("autosave", False)),
            )
        raise ConfigurationError(f"Can not build a relation from {value!r}")


def _target_name(target: str | type) -> str:
    if isinstance(target, type):
        return target.__name__
    return target


def relation(
    target: str | type,
    kind: RelationKind | str = RelationKind.ONE_TO_ONE,
    *,
    autosave: bool = False,
) -> Any:
    """Declare a dataclass field as a relation to another record type.

    One-to-one relations default to ``None``; one-to-many relations
    default to an empty list.
    """
    rel = Relation(target=target, kind=kind, autosave=autosave)
    metadata = {RELATION_KEY: rel}
    if rel.many:
        return field(default_factory=list, metadata=metadata)
    return field(default=None, metadata=metadata)


def type_name_of(record: Any) -> str:
    """Logical type name of a record instance or class (lower-cased class name)."""
    cls = record if isinstance(record, type) else type(record)
    return cls.__name__.lower()


@dataclass
class RecordType:
    """Descriptor of a registered record type."""

    name: str
    cls: type
    relations: dict[str, Relation] = field(default_factory=dict)
    storage_names: dict[str, str] = field(default_factory=dict)
    embedded: dict[str, type] = field(default_factory=dict)

    # -- Construction --

    @classmethod
    def build(
        cls,
        record_cls: type,
        relations: Mapping[str, Relation | Mapping[str, Any] | str] | None = None,
    ) -> RecordType:
        """Build a descriptor from dataclass metadata plus explicit relations."""
        if not dataclasses.is_dataclass(record_cls):
            raise ConfigurationError(f"Record type '{record_cls.__name__}' must be a dataclass")

        field_map = {f.name: f for f in dataclasses.fields(record_cls)}
        descriptor = cls(name=type_name_of(record_cls), cls=record_cls)

        for name, f in field_map.items():
            descriptor.storage_names[name] = f.metadata.get(DB_NAME_KEY, name)
            rel = f.metadata.get(RELATION_KEY)
            if rel is not None:
                descriptor.relations[name] = rel

        for name, value in (relations or {}).items():
            if name not in field_map:
                raise UnknownFieldError(
                    name,
                    descriptor.name,
                    f"Relation declared for unknown field '{name}' on type '{descriptor.name}'",
                )
            descriptor.relations[name] = Relation.coerce(value)

        descriptor.embedded = _embedded_types(record_cls, set(descriptor.relations))
        return descriptor

    @classmethod
    def of(cls, record_cls: type) -> RecordType:
        """Cached descriptor for ``record_cls`` (built from field metadata)."""
        with _cache_lock:
            descriptor = _descriptor_cache.get(record_cls)
            if descriptor is None:
                descriptor = cls.build(record_cls)
                _descriptor_cache[record_cls] = descriptor
            return descriptor

    # -- Lookups --

    def relation_for(self, field_name: str) -> Relation:
        """Relation metadata for ``field_name``."""
        if field_name not in self.storage_names:
            raise UnknownFieldError(field_name, self.name)
        rel = self.relations.get(field_name)
        if rel is None:
            raise UnknownFieldError(
                field_name,
                self.name,
                f"Related model was not set for field '{field_name}' in type '{self.name}'",
            )
        return rel

    def storage_key(self, attribute: str) -> str:
        """Document key for an attribute (attribute name when not renamed)."""
        return self.storage_names.get(attribute, attribute)

    def new_instance(self) -> Any:
        """Allocate a zero-valued instance.

        Field defaults are honoured; fields without a default are set to
        ``None``.  ``__init__`` is bypassed so record types with required
        fields can still be materialised from stored documents.
        """
        instance = self.cls.__new__(self.cls)
        for f in dataclasses.fields(self.cls):
            object.__setattr__(instance, f.name, zero_value(f))
        return instance


def zero_value(f: dataclasses.Field) -> Any:
    """Default value of a dataclass field, ``None`` when it has none."""
    if f.default is not MISSING:
        return f.default
    if f.default_factory is not MISSING:
        return f.default_factory()
    return None


def _embedded_types(record_cls: type, skip: set[str]) -> dict[str, type]:
    """Fields holding an embedded dataclass (``Address`` or ``Address | None``)."""
    try:
        hints = typing.get_type_hints(record_cls)
    except (NameError, TypeError) as e:
        logger.debug("type_hints_unresolved", type_name=record_cls.__name__, error=str(e))
        return {}

    embedded: dict[str, type] = {}
    for name, hint in hints.items():
        if name in skip:
            continue
        if typing.get_origin(hint) in (typing.Union, types.UnionType):
            candidates = [arg for arg in typing.get_args(hint) if arg is not type(None)]
        else:
            candidates = [hint]
        if len(candidates) == 1 and isinstance(candidates[0], type) and dataclasses.is_dataclass(candidates[0]):
            embedded[name] = candidates[0]
    return embedded


_descriptor_cache: dict[type, RecordType] = {}
_cache_lock = threading.Lock()


__all__ = [
    "RELATION_KEY",
    "DB_NAME_KEY",
    "RelationKind",
    "Relation",
    "relation",
    "type_name_of",
    "RecordType",
    "zero_value",
]
