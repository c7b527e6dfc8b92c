"""
Identifier and timestamp helpers.

The store keeps datetimes with millisecond precision, so ``utc_now()``
truncates to milliseconds: a timestamp stamped in memory compares equal
to the value read back from the store.

Tags:
    timestamps, object-id, utc, docspine
"""

from __future__ import annotations

from datetime import UTC, datetime

from bson import ObjectId


def utc_now() -> datetime:
    """Current timezone-aware UTC datetime at store precision."""
    now = datetime.now(UTC)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def new_object_id() -> ObjectId:
    """Generate a fresh, globally unique object id."""
    return ObjectId()


def is_object_id(value: object) -> bool:
    """True for ``ObjectId`` instances and canonical 24-hex id strings."""
    if isinstance(value, ObjectId):
        return True
    return isinstance(value, str) and ObjectId.is_valid(value)


__all__ = [
    "utc_now",
    "new_object_id",
    "is_object_id",
]
