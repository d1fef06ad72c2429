"""Indexing use cases: analyze, persist and route a document's postings."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass
import hashlib
import logging

from shardsearch.adapters.document_codec import from_json
from shardsearch.adapters.document_store import DocumentStore
from shardsearch.domain.commands import PartitionId, index_commands_for
from shardsearch.domain.model import Document, Posting
from shardsearch.observability.context import bound_context
from shardsearch.partition.registry import PartitionRegistry
from shardsearch.search.analysis import analyze, postings
from shardsearch.search.analyzers import open_analyzer
from shardsearch.search.schema import SchemaRegistry


logger = logging.getLogger(__name__)

PartitionSelector = Callable[[Posting, Sequence[PartitionId]], PartitionId]


def hash_partition(posting: Posting, partitions: Sequence[PartitionId]) -> PartitionId:
    """Place a posting by a stable hash of (index, field, term)."""
    if not partitions:
        raise ValueError("No partitions available")
    digest = hashlib.sha1(f"{posting.index_name}\x00{posting.field_name}\x00{posting.term}".encode()).digest()
    return partitions[int.from_bytes(digest[:8], "big") % len(partitions)]


@dataclass(frozen=True)
class IndexResult:
    document: Document
    postings: int
    partitions: tuple[PartitionId, ...]


class IndexingService:
    """Orchestrates analysis, document persistence and postings writes."""

    def __init__(
        self,
        schemas: SchemaRegistry,
        documents: DocumentStore,
        partitions: PartitionRegistry,
        *,
        selector: PartitionSelector = hash_partition,
    ) -> None:
        self.schemas = schemas
        self.documents = documents
        self.partitions = partitions
        self.selector = selector

    async def index_document(self, document: Document) -> IndexResult:
        """Analyze ``document``, store it and write every posting.

        Analysis runs first and is all-or-nothing: when it fails nothing is
        stored or written.
        """
        with bound_context(index=document.index_name):
            with open_analyzer() as session:
                analyzed = analyze(document, self.schemas, session)
            generated = postings(analyzed)

            await self.documents.store(document)

            targets = self.partitions.partitions
            futures: list[asyncio.Future] = []
            used: set[PartitionId] = set()
            for posting, command in zip(generated, index_commands_for(generated), strict=True):
                partition = self.selector(posting, targets)
                used.add(partition)
                futures.append(await self.partitions.submit(partition, command))
            await asyncio.gather(*futures)

            logger.info(
                "Indexed %s/%s: %d posting(s) across %d partition(s)",
                document.index_name,
                document.id,
                len(generated),
                len(used),
            )
            return IndexResult(analyzed, len(generated), tuple(sorted(used)))

    async def index_json(self, raw: bytes | str) -> IndexResult:
        return await self.index_document(from_json(raw))

    async def fetch_document(self, index_name: str, doc_id: str) -> Document:
        return await self.documents.fetch(index_name, doc_id)

    async def remove_document(self, index_name: str, doc_id: str) -> bool:
        """Remove the stored document. Postings already written stay in the index stores."""
        return await self.documents.remove(index_name, doc_id)
