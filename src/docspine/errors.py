"""
Structured error types for docspine.

Two tiers of failures flow out of the mapping engine:

- **Recoverable** store-level failures (``QueryError`` and subclasses):
  a lookup matched nothing, a unique key collided, a relation carried a
  malformed id. Callers are expected to catch these.
- **Misuse** failures (``ConfigurationError`` and ``SchemaError`` trees):
  the API was driven incorrectly or a record's relation fields disagree
  with their declared metadata. These are programmer errors; they are
  raised like any other exception instead of aborting the process.

Driver errors that are not classified here propagate unchanged.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                          OdmError                             │
        │               (category, context, cause)                      │
        ├──────────────────────────────────────────────────────────────┤
        │                                                               │
        │  QueryError          ConfigurationError     SchemaError       │
        │  (recoverable)       (API misuse)           (relation shape)  │
        │     │                     │                      │            │
        │  NotFoundError       UnboundDocumentError   RelationKindError │
        │  DuplicateError      TypeNotRegisteredError UnsavedRelation.. │
        │  InvalidIdError      ResultModeError        UnsupportedRel..  │
        │  ValidationError     ConnectionClosedError  UnknownFieldError │
        │                                                               │
        │  DatabaseConnectionError (CONNECTION)                         │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> error = NotFoundError().with_context(collection="people")
    >>> error.context.collection
    'people'
    >>> is_recoverable(error)
    True

Tags:
    error-handling, exception-hierarchy, odm, docspine
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pymongo.errors import DuplicateKeyError


class ErrorCategory(str, Enum):
    """
    Error categories used for classification and logging.

    Attributes:
        NOT_FOUND: No document matched a query
        DUPLICATE: Unique key violation on write
        INVALID_ID: Malformed reference string
        VALIDATION: Record failed validation
        SCHEMA: Relation metadata and in-memory shape disagree
        CONFIG: API misuse, unregistered types, unbound records
        CONNECTION: Store session could not be opened
        INTERNAL: Unexpected state
    """

    NOT_FOUND = "NOT_FOUND"
    DUPLICATE = "DUPLICATE"
    INVALID_ID = "INVALID_ID"
    VALIDATION = "VALIDATION"
    SCHEMA = "SCHEMA"
    CONFIG = "CONFIG"
    CONNECTION = "CONNECTION"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only set fields are emitted by ``to_dict()``, so the context can be
    merged directly into a structured log event.
    """

    collection: str | None = None
    type_name: str | None = None
    field_name: str | None = None
    record_id: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["collection", "type_name", "field_name", "record_id"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class OdmError(Exception):
    """
    Base exception for all docspine errors.

    Subclasses set ``default_category`` and usually ``default_message`` so
    they can be raised without arguments where the original condition is
    self-explanatory (``raise NotFoundError()``).
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_message: str = "docspine error"

    def __init__(
        self,
        message: str | None = None,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        message = message or self.default_message
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> OdmError:
        """
        Add context to this error (fluent API).

        Usage:
            raise NotFoundError().with_context(collection="people", record_id=str(oid))
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# RECOVERABLE QUERY ERRORS
# =============================================================================


class QueryError(OdmError):
    """Store-level failure returned to the caller."""

    default_category = ErrorCategory.INTERNAL
    default_message = "Query failed"


class NotFoundError(QueryError):
    """No document matched the query."""

    default_category = ErrorCategory.NOT_FOUND
    default_message = "No records found"


class DuplicateError(QueryError):
    """Unique key violation on insert or upsert."""

    default_category = ErrorCategory.DUPLICATE
    default_message = "Duplicate key"


class InvalidIdError(QueryError):
    """A relation carried a string that is not a canonical object id."""

    default_category = ErrorCategory.INVALID_ID
    default_message = "Invalid id's given"

    def __init__(self, message: str | None = None, *, value: Any = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.value = value


class ValidationError(QueryError):
    """
    Record failed validation.

    Part of the taxonomy for ``Document.validate()`` implementations; the
    save engine does not run validation.
    """

    default_category = ErrorCategory.VALIDATION
    default_message = "Document could not be validated"

    def __init__(self, message: str | None = None, *, errors: list[str] | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.errors = list(errors or [])

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.errors:
            result["errors"] = list(self.errors)
        return result


# =============================================================================
# CONFIGURATION (API MISUSE) ERRORS
# =============================================================================


class ConfigurationError(OdmError):
    """The API was used in a way it does not support."""

    default_category = ErrorCategory.CONFIG
    default_message = "Invalid docspine usage"


class UnboundDocumentError(ConfigurationError):
    """save()/populate() called on a record that was never bound to a collection."""

    def __init__(self, operation: str, type_name: str | None = None):
        self.operation = operation
        super().__init__(
            f"You have to bind your document with Collection.bind_new() before using {operation}()"
        )
        if type_name:
            self.with_context(type_name=type_name)


class TypeNotRegisteredError(ConfigurationError):
    """A logical type name was resolved that was never registered."""

    def __init__(self, type_name: str):
        self.type_name = type_name
        super().__init__(f"Type '{type_name}' is not registered")
        self.with_context(type_name=type_name)


class ResultModeError(ConfigurationError):
    """exec() destination does not match the query's single/multi mode."""


class ConnectionClosedError(ConfigurationError):
    """The connection has no open session."""

    default_message = "Connection is not open"


# =============================================================================
# SCHEMA (RELATION SHAPE) ERRORS
# =============================================================================


class SchemaError(OdmError):
    """Relation metadata and the in-memory value disagree."""

    default_category = ErrorCategory.SCHEMA
    default_message = "Invalid relation schema"


class RelationKindError(SchemaError):
    """A sequence on a one-to-one field, or a single value on a one-to-many field."""


class UnsavedRelationError(SchemaError):
    """A relation references a child that has no identifier yet."""

    default_message = "Can not persist the relation object because the child was not saved before (invalid id)"


class UnsupportedRelationValueError(SchemaError):
    """A relation field or element has a shape the engine cannot store."""

    def __init__(self, value: Any, message: str | None = None):
        self.value = value
        super().__init__(
            message
            or f"Only ObjectId, id strings and Document instances can be stored in relations. You used {type(value).__name__}"
        )


class UnknownFieldError(SchemaError):
    """A field name is unknown or carries no relation metadata."""

    def __init__(self, field_name: str, type_name: str, message: str | None = None):
        self.field_name = field_name
        self.type_name = type_name
        super().__init__(message or f"Can not populate field '{field_name}' for type '{type_name}'. Field not found.")
        self.with_context(field_name=field_name, type_name=type_name)


# =============================================================================
# CONNECTION ERRORS
# =============================================================================


class DatabaseConnectionError(OdmError):
    """The store session could not be opened."""

    default_category = ErrorCategory.CONNECTION
    default_message = "Could not connect to the document store"


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_recoverable(error: Exception) -> bool:
    """True for failures callers are expected to handle (``QueryError`` tree)."""
    return isinstance(error, QueryError)


def translate_write_error(error: Exception) -> Exception:
    """Map a driver write failure to the docspine taxonomy.

    Duplicate-key failures become :class:`DuplicateError` with the driver
    error chained as cause. Everything else is returned unchanged.
    """
    if isinstance(error, DuplicateKeyError):
        return DuplicateError(cause=error)
    return error


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "OdmError",
    # Recoverable
    "QueryError",
    "NotFoundError",
    "DuplicateError",
    "InvalidIdError",
    "ValidationError",
    # Misuse
    "ConfigurationError",
    "UnboundDocumentError",
    "TypeNotRegisteredError",
    "ResultModeError",
    "ConnectionClosedError",
    "SchemaError",
    "RelationKindError",
    "UnsavedRelationError",
    "UnsupportedRelationValueError",
    "UnknownFieldError",
    # Connection
    "DatabaseConnectionError",
    # Utilities
    "is_recoverable",
    "translate_write_error",
]
