"""Fan-out streaming over partitions with the init_stream handshake.

A term's postings are spread over every partition, and a partition may be
hosted by several nodes. To read each partition exactly once the coordinator:

1. broadcasts ``InitStreamCommand`` and keeps the first ``StreamReady`` per
   partition, which fixes one (partition, node) responder for each partition;
2. broadcasts one ``StreamCommand`` per chosen responder; every other
   partition receiving it ignores it;
3. merges ``StreamBatch`` replies until each chosen partition sent ``StreamEnd``.
   A partition whose stream fails raises that error to the consumer.

Closing the shared reply channel (which happens when the consumer stops
iterating) stops the partition streams.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
import logging

from shardsearch.domain.commands import (
    InfoCommand,
    InfoEntry,
    InfoRangeCommand,
    InfoResponse,
    InitStreamCommand,
    NodeId,
    PartitionId,
    QueueReplyChannel,
    StreamBatch,
    StreamCommand,
    StreamEnd,
    StreamFilter,
    StreamReady,
    StreamResult,
    new_correlation_id,
)
from shardsearch.observability.tracing import create_span
from shardsearch.partition.registry import PartitionRegistry


logger = logging.getLogger(__name__)


class StreamTimeout(asyncio.TimeoutError):
    """Raised when partitions stop answering before the stream completes."""


class StreamCoordinator:
    """Issues handshakes and streams across the registries of one or more nodes."""

    def __init__(self, registries: Sequence[PartitionRegistry], *, timeout: float | None = None) -> None:
        if not registries:
            raise ValueError("StreamCoordinator needs at least one partition registry")
        self.registries = list(registries)
        self.timeout = timeout if timeout is not None else registries[0].settings.stream_timeout_seconds

    def _expected_partitions(self) -> int:
        return sum(len(registry) for registry in self.registries)

    async def _broadcast(self, command: object) -> list[asyncio.Future]:
        futures: list[asyncio.Future] = []
        for registry in self.registries:
            futures.extend(await registry.broadcast(command))
        return futures

    async def handshake(self, channel: QueueReplyChannel | None = None) -> dict[PartitionId, NodeId]:
        """Return one responding node per partition."""
        channel = channel or QueueReplyChannel()
        correlation_id = new_correlation_id()
        futures = await self._broadcast(InitStreamCommand(channel, correlation_id))
        expected = len(futures)

        chosen: dict[PartitionId, NodeId] = {}
        received = 0
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        while received < expected:
            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.warning("Handshake %s timed out after %d/%d replies", correlation_id, received, expected)
                break
            try:
                message = await channel.receive(timeout=remaining)
            except asyncio.TimeoutError:
                continue
            if not isinstance(message, StreamReady) or message.correlation_id != correlation_id:
                continue
            received += 1
            chosen.setdefault(message.partition, message.node)
        await _settle(futures)
        return chosen

    async def stream(
        self,
        index: str,
        field: str,
        term: str,
        *,
        subtype: int = 0,
        start_subterm: int | None = None,
        end_subterm: int | None = None,
        filter: StreamFilter | None = None,
    ) -> AsyncIterator[StreamResult]:
        """Yield every matching posting once per partition."""
        channel = QueueReplyChannel()
        futures: list[asyncio.Future] = []
        receiver: asyncio.Future | None = None
        try:
            with create_span("stream.handshake", attributes={"index": index, "field": field, "term": term}):
                targets = await self.handshake()
            if not targets:
                return

            correlation_id = new_correlation_id()
            for partition, node in sorted(targets.items()):
                command = StreamCommand(
                    index=index,
                    field=field,
                    term=term,
                    reply_to=channel,
                    target_partition=partition,
                    target_node=node,
                    subtype=subtype,
                    start_subterm=start_subterm,
                    end_subterm=end_subterm,
                    correlation_id=correlation_id,
                    filter=filter,
                )
                futures.extend(await self._broadcast(command))

            pending = set(targets)
            watched = set(futures)
            while pending:
                if receiver is None:
                    receiver = asyncio.ensure_future(channel.receive())
                done, _ = await asyncio.wait(
                    {receiver, *watched}, timeout=self.timeout, return_when=asyncio.FIRST_COMPLETED
                )
                if not done:
                    raise StreamTimeout(
                        f"Stream {correlation_id} timed out waiting for partitions {sorted(p.value for p in pending)}"
                    )
                # a partition whose stream failed never sends StreamEnd
                for future in done - {receiver}:
                    watched.discard(future)
                    if not future.cancelled() and future.exception() is not None:
                        raise future.exception()
                if receiver not in done:
                    continue
                message = receiver.result()
                receiver = None
                if getattr(message, "correlation_id", None) != correlation_id:
                    continue
                if isinstance(message, StreamBatch):
                    for result in message.results:
                        yield result
                elif isinstance(message, StreamEnd):
                    pending.discard(message.partition)
        finally:
            channel.close()
            if receiver is not None:
                receiver.cancel()
            await _settle(futures)

    async def collect(self, index: str, field: str, term: str, **kwargs) -> list[StreamResult]:
        return [result async for result in self.stream(index, field, term, **kwargs)]

    async def info(self, index: str, field: str, term: str) -> list[InfoEntry]:
        """Term counts from every hosted partition."""
        return await self._gather_info(lambda channel: InfoCommand(index, field, term, channel))

    async def info_range(
        self, index: str, field: str, start_term: str, end_term: str, max_results: int
    ) -> list[InfoEntry]:
        return await self._gather_info(
            lambda channel: InfoRangeCommand(index, field, start_term, end_term, max_results, channel)
        )

    async def _gather_info(self, build) -> list[InfoEntry]:
        channel = QueueReplyChannel()
        command = build(channel)
        futures = await self._broadcast(command)
        await asyncio.gather(*futures)
        entries: list[InfoEntry] = []
        for message in channel.drain():
            if isinstance(message, InfoResponse) and message.correlation_id == command.correlation_id:
                entries.extend(message.entries)
        return entries


async def _settle(futures: list[asyncio.Future]) -> None:
    """Wait for submitted commands and log, rather than raise, their failures."""
    if not futures:
        return
    results = await asyncio.gather(*futures, return_exceptions=True)
    for result in results:
        if isinstance(result, asyncio.CancelledError):
            continue
        if isinstance(result, Exception):
            logger.warning("Partition command failed during fan-out: %s", result)
