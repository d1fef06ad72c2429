"""Partition command router.

One ``PartitionRouter`` owns the index store of one partition. It is either
active (holding a live store) or stopped; once stopped it stays stopped.

``dispatch`` matches the command type:

- ``IndexCommand``: forwarded to ``store.index`` with the command's fields in order.
- ``InitStreamCommand``: answers ``StreamReady(partition, node, ref)``.
- ``StreamCommand``: streamed from the store when the target partition and node
  are this router's; otherwise ignored. Stream commands are delivered to every
  local partition, so a mismatch is normal and not an error.
- ``InfoCommand`` / ``InfoRangeCommand``: term counts answered as
  ``InfoResponse`` entries tagged with this node.
- anything else: ``UnsupportedOperation``.

Key/value operations of a storage backend are mostly unsupported here because
the store is organized by postings, not by document key.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
import logging
import time
from typing import Any, TypeVar

from shardsearch.adapters.index_store import AbstractIndexStore, SqliteIndexStore, StoredPosting
from shardsearch.config import Settings
from shardsearch.domain.commands import (
    IndexCommand,
    InfoCommand,
    InfoEntry,
    InfoRangeCommand,
    InfoResponse,
    InitStreamCommand,
    NodeId,
    PartitionId,
    StreamCommand,
    StreamReady,
    command_name,
)
from shardsearch.errors import NotFound, NotSupported, RouteError, UnsupportedOperation
from shardsearch.observability.context import bound_context
from shardsearch.observability.metrics import COMMANDS_DISPATCHED, DISPATCH_LATENCY, STREAMS_IGNORED, track_latency
from shardsearch.observability.tracing import create_span


logger = logging.getLogger(__name__)

A = TypeVar("A")

StoreFactory = Callable[[PartitionId, Settings], AbstractIndexStore]


def open_sqlite_store(partition: PartitionId, settings: Settings) -> AbstractIndexStore:
    return SqliteIndexStore.open(settings.partition_path(partition.value), batch_size=settings.stream_batch_size)


class RouterState(str, Enum):
    ACTIVE = "active"
    STOPPED = "stopped"


class PartitionRouter:
    """Routes partition commands to the partition's local index store."""

    def __init__(self, partition: PartitionId, node: NodeId, store: AbstractIndexStore) -> None:
        self.partition = partition
        self.node = node
        self._store: AbstractIndexStore | None = store
        self.state = RouterState.ACTIVE

    @classmethod
    def start(
        cls,
        partition: PartitionId | int,
        settings: Settings,
        *,
        node: NodeId | None = None,
        store_factory: StoreFactory = open_sqlite_store,
    ) -> PartitionRouter:
        """Open the partition's store under ``settings.root_path``.

        Raises:
            StoreOpenError: the store could not be opened or created.
        """
        if not isinstance(partition, PartitionId):
            partition = PartitionId(int(partition))
        node = node or NodeId(settings.node_name)
        store = store_factory(partition, settings)
        logger.info("Partition %s started on %s", partition, node)
        return cls(partition, node, store)

    def stop(self) -> None:
        """Release the store handle. Stopping twice raises ``RouteError``."""
        store = self._require_store()
        self._store = None
        self.state = RouterState.STOPPED
        store.close()
        logger.info("Partition %s stopped", self.partition)

    @property
    def store(self) -> AbstractIndexStore:
        return self._require_store()

    def _require_store(self) -> AbstractIndexStore:
        if self._store is None:
            raise RouteError(f"Partition {self.partition} is stopped")
        return self._store

    def owns(self, command: StreamCommand) -> bool:
        return command.target_partition == self.partition and command.target_node == self.node

    # --- dispatch ---------------------------------------------------------

    async def dispatch(self, command: Any) -> None:
        """Execute one command against the local store."""
        name = command_name(command)
        with (
            bound_context(partition=self.partition.value, node=self.node.name),
            create_span("partition.dispatch", attributes={"command": name, "partition": self.partition.value}),
            track_latency(DISPATCH_LATENCY, command=name),
        ):
            try:
                await self._dispatch(command)
            except Exception:
                COMMANDS_DISPATCHED.labels(command=name, outcome="error").inc()
                raise
        COMMANDS_DISPATCHED.labels(command=name, outcome="ok").inc()

    async def _dispatch(self, command: Any) -> None:
        store = self._require_store()

        if isinstance(command, IndexCommand):
            store.index(*command.store_args())
            return

        if isinstance(command, InitStreamCommand):
            # Handshake so a coordinator streams each partition from one node only
            await command.reply_to.send(StreamReady(self.partition, self.node, command.correlation_id))
            return

        if isinstance(command, StreamCommand):
            await self._stream(store, command)
            return

        if isinstance(command, InfoCommand):
            counts = store.info(command.index, command.field, command.term)
            entries = tuple(InfoEntry(command.term, self.node, count) for _term, count in counts)
            await command.reply_to.send(InfoResponse(entries, command.correlation_id))
            return

        if isinstance(command, InfoRangeCommand):
            counts = store.info_range(
                command.index, command.field, command.start_term, command.end_term, command.max_results
            )
            entries = tuple(InfoEntry(term, self.node, count) for term, count in counts)
            await command.reply_to.send(InfoResponse(entries, command.correlation_id))
            return

        raise UnsupportedOperation(command)

    async def _stream(self, store: AbstractIndexStore, command: StreamCommand) -> None:
        if not self.owns(command):
            STREAMS_IGNORED.inc()
            logger.debug(
                "Ignoring stream %s for %s@%s", command.correlation_id, command.target_partition, command.target_node
            )
            return
        started = time.perf_counter()
        sent = await store.stream(
            command.index,
            command.field,
            command.term,
            command.subtype,
            command.start_subterm,
            command.end_subterm,
            command.reply_to,
            command.correlation_id,
            command.filter,
            partition=self.partition,
        )
        logger.debug(
            "Streamed %d result(s) for %s/%s/%s in %.1fms",
            sent,
            command.index,
            command.field,
            command.term,
            (time.perf_counter() - started) * 1000,
        )

    # --- storage backend surface -----------------------------------------

    async def put(self, bucket: str, key: str, command: Any) -> None:
        """Backend ``put``: the stored value is a command and is dispatched."""
        await self.dispatch(command)

    def get(self, bucket: str, key: str) -> Any:
        """Key lookups are not supported by a postings store."""
        raise NotFound(bucket, key)

    def delete(self, bucket: str, key: str) -> None:
        raise NotSupported("Deleting by key is not supported by the postings backend")

    def list(self) -> list[tuple[str, str]]:
        raise NotSupported("Listing keys is not supported by the postings backend")

    def list_bucket(self, bucket: str) -> list[str]:
        raise NotSupported("Listing bucket keys is not supported by the postings backend")

    def is_empty(self) -> bool:
        return self._require_store().is_empty()

    def fold(self, fn: Callable[[StoredPosting, A], A], acc: A) -> A:
        return self._require_store().fold(fn, acc)

    def drop(self) -> None:
        self._require_store().drop()
