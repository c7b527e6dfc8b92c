"""Save engine: relation-flattening create-or-update.

``save_record()`` backs :meth:`Document.save`:

1. The record must be bound (``UnboundDocumentError`` otherwise).
2. The storage projection is computed first.  Relation fields are reduced
   to references; any relation problem (unsaved child, wrong shape,
   malformed id) raises before anything is written.  Autosaved children
   are saved here; a record met again through a cycle only gets its id
   reserved.
3. Inside an isolated session the document is inserted (no id yet: both
   timestamps stamped, a fresh id assigned) or upserted by id (only
   ``updated_at`` stamped).
4. Duplicate-key failures are raised as :class:`DuplicateError`; other
   driver errors propagate unchanged.  A failed write rolls the record's
   id and timestamps back to what they were before the call.

The caller's relation fields are never modified, so live child objects
stay in place after the save.
"""

from __future__ import annotations

from pymongo.errors import PyMongoError

from docspine.codec import to_storage
from docspine.document import Document
from docspine.errors import OdmError, translate_write_error
from docspine.logging import get_logger
from docspine.timestamps import new_object_id, utc_now

logger = get_logger(__name__)


def save_record(record: Document, in_progress: set[int] | None = None) -> None:
    """Create or update ``record`` in its bound collection.

    ``in_progress`` is shared with autosaved children so a record reached
    again through a relation cycle is referenced by id, not saved twice.
    """
    binding = record.require_binding("save")
    collection = binding.collection
    connection = binding.connection
    descriptor = collection.record_type

    previous = (record.id, record.created_at, record.updated_at)
    inserting = record.id is None
    in_progress = set() if in_progress is None else in_progress
    in_progress.add(id(record))

    try:
        document = to_storage(record, descriptor, connection, in_progress)
    except (OdmError, PyMongoError):
        record.id = previous[0]
        raise

    now = utc_now()

    if inserting:
        record.set_created_at(now)
        record.set_updated_at(now)
        # A cyclic autosave may already have reserved the id.
        if record.id is None:
            record.set_id(new_object_id())
        document[descriptor.storage_key("id")] = record.id
        document[descriptor.storage_key("created_at")] = now
    else:
        record.set_updated_at(now)
    document[descriptor.storage_key("updated_at")] = now

    try:
        with connection.start_session() as session:
            if inserting:
                collection.handle.insert_one(document, session=session)
            else:
                collection.handle.replace_one({"_id": record.id}, document, upsert=True, session=session)
    except PyMongoError as exc:
        record.id, record.created_at, record.updated_at = previous
        error = translate_write_error(exc)
        if error is exc:
            raise
        logger.warning(
            "document_duplicate_key",
            collection=collection.name,
            type_name=descriptor.name,
            error=str(exc),
        )
        raise error.with_context(collection=collection.name, type_name=descriptor.name) from exc

    logger.debug(
        "document_inserted" if inserting else "document_upserted",
        collection=collection.name,
        type_name=descriptor.name,
        id=str(record.id),
    )


__all__ = [
    "save_record",
]
