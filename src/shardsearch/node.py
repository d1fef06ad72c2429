"""Node bootstrap: wires settings, logging, schemas, storage and partitions together."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
import logging

from shardsearch.adapters.document_store import DocumentStore
from shardsearch.adapters.object_store import AbstractObjectStore, FileSystemObjectStore
from shardsearch.config import Settings
from shardsearch.observability.logging import configure_logging
from shardsearch.observability.tracing import configure_trace_exporter, init_tracing
from shardsearch.partition.registry import PartitionRegistry
from shardsearch.partition.streaming import StreamCoordinator
from shardsearch.search.schema import SchemaRegistry
from shardsearch.service_layer.indexing_service import IndexingService


logger = logging.getLogger(__name__)


@dataclass
class Node:
    settings: Settings
    schemas: SchemaRegistry
    partitions: PartitionRegistry
    indexing: IndexingService
    streams: StreamCoordinator

    async def stop(self) -> None:
        await self.partitions.stop_all()
        logger.info("Node %s stopped", self.settings.node_name)


async def start_node(
    settings: Settings,
    partitions: Iterable[int],
    *,
    objects: AbstractObjectStore | None = None,
    schemas: SchemaRegistry | None = None,
    setup_observability: bool = False,
) -> Node:
    """Start every listed partition and return the wired node."""
    if setup_observability:
        configure_logging(settings.log_level, settings.json_logs)
        provider = init_tracing(settings.service_name, {"node": settings.node_name})
        configure_trace_exporter(settings.otlp_endpoint, provider)

    schemas = schemas or SchemaRegistry()
    if settings.schema_dir is not None:
        schemas.load_directory(settings.schema_dir)

    registry = PartitionRegistry(settings)
    await registry.start_partitions(partitions)

    documents = DocumentStore(objects or FileSystemObjectStore(settings.root_path / "documents"))
    node = Node(
        settings=settings,
        schemas=schemas,
        partitions=registry,
        indexing=IndexingService(schemas, documents, registry),
        streams=StreamCoordinator([registry]),
    )
    logger.info("Node %s started with partitions %s", settings.node_name, [p.value for p in registry.partitions])
    return node
