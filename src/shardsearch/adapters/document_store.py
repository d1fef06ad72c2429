"""Document persistence on top of an object store.

Documents live in bucket ``index_name`` under key ``id``, encoded with the
JSON wire codec. ``store`` reads the existing object first and writes the next
version of it when present (last writer wins at this layer).
"""

from __future__ import annotations

import logging

from shardsearch.adapters.document_codec import from_json, to_json, to_text
from shardsearch.adapters.object_store import AbstractObjectStore, StoredObject
from shardsearch.domain.model import Document
from shardsearch.errors import DecodeError, NotFound, StoreError


logger = logging.getLogger(__name__)


class DocumentStore:
    """Marshals ``Document`` values to and from an object store."""

    def __init__(self, objects: AbstractObjectStore) -> None:
        self.objects = objects

    async def store(self, document: Document) -> StoredObject:
        """Create or update the stored copy of ``document``."""
        bucket, key = to_text(document.index_name), to_text(document.id)
        value = to_json(document)
        try:
            existing = await self.objects.get(bucket, key)
        except NotFound:
            obj = StoredObject.new(bucket, key, value)
        else:
            obj = existing.update_value(value)
        await self.objects.put(obj)
        logger.debug("Stored document %s/%s (version %d)", bucket, key, obj.version)
        return obj

    async def fetch_raw(self, index_name: str, doc_id: str) -> StoredObject:
        return await self.objects.get(to_text(index_name), to_text(doc_id))

    async def fetch(self, index_name: str, doc_id: str) -> Document:
        """Return the stored document or raise ``NotFound``."""
        obj = await self.fetch_raw(index_name, doc_id)
        try:
            return from_json(obj.value)
        except DecodeError as exc:
            raise StoreError(f"Stored value for {obj.bucket}/{obj.key} is not a document: {exc}") from exc

    async def remove(self, index_name: str, doc_id: str) -> bool:
        removed = await self.objects.delete(to_text(index_name), to_text(doc_id))
        if removed:
            logger.debug("Removed document %s/%s", index_name, doc_id)
        return removed
