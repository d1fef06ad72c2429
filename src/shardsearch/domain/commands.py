"""Partition commands, replies and reply channels.

Commands form a closed union (``PartitionCommand``). The router matches on the
concrete type and rejects anything else with ``UnsupportedOperation``.
Identity used for stream affinity travels inside the commands as explicit
``PartitionId``/``NodeId`` values rather than being read from the process.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
import time
from typing import Any, Protocol, TypeAlias, runtime_checkable
from uuid import uuid4


@dataclass(frozen=True, slots=True, order=True)
class PartitionId:
    """Integer identity of a partition."""

    value: int

    def __int__(self) -> int:
        return self.value

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True, slots=True, order=True)
class NodeId:
    """Logical node name hosting one or more partitions."""

    name: str

    def __str__(self) -> str:
        return self.name


def new_correlation_id() -> str:
    return uuid4().hex


def _now_micros() -> int:
    return time.time_ns() // 1000


StreamFilter: TypeAlias = Callable[[Any, Mapping[str, Any]], bool]


# --- replies ----------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class StreamReady:
    """Handshake reply: this (partition, node) pair will answer a stream."""

    partition: PartitionId
    node: NodeId
    correlation_id: str


@dataclass(frozen=True, slots=True)
class InfoEntry:
    term: str
    node: NodeId
    count: int


@dataclass(frozen=True, slots=True)
class InfoResponse:
    entries: tuple[InfoEntry, ...]
    correlation_id: str


@dataclass(frozen=True, slots=True)
class StreamResult:
    """One posting streamed back: the stored value (document id) and its properties."""

    value: Any
    props: Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class StreamBatch:
    results: tuple[StreamResult, ...]
    correlation_id: str
    partition: PartitionId | None = None


@dataclass(frozen=True, slots=True)
class StreamEnd:
    """Sent once after the last batch of a stream."""

    correlation_id: str
    partition: PartitionId | None = None


Reply: TypeAlias = StreamReady | InfoResponse | StreamBatch | StreamEnd


@runtime_checkable
class ReplyChannel(Protocol):
    """Destination for replies (``reply_to``).

    A closed channel tells long-running producers to stop.
    """

    @property
    def closed(self) -> bool:  # pragma: no cover - interface definition
        ...

    async def send(self, message: Reply) -> None:  # pragma: no cover - interface definition
        ...


class QueueReplyChannel:
    """Reply channel backed by an ``asyncio.Queue``."""

    def __init__(self, maxsize: int = 0) -> None:
        self.queue: asyncio.Queue[Reply] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True

    async def send(self, message: Reply) -> None:
        if self._closed:
            return
        await self.queue.put(message)

    async def receive(self, timeout: float | None = None) -> Reply:
        if timeout is None:
            return await self.queue.get()
        return await asyncio.wait_for(self.queue.get(), timeout=timeout)

    def drain(self) -> list[Reply]:
        """Return every reply currently queued without waiting."""
        messages: list[Reply] = []
        while not self.queue.empty():
            messages.append(self.queue.get_nowait())
        return messages


# --- commands ---------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class IndexCommand:
    """Write one posting into the partition's index store.

    ``subtype``, ``subterm`` and ``timestamp`` default the way the short form
    of the index command does: zero, zero and the current time in microseconds.
    """

    index: str
    field: str
    term: str
    value: Any
    props: Mapping[str, Any] = field(default_factory=dict)
    subtype: int = 0
    subterm: int = 0
    timestamp: int = field(default_factory=_now_micros)

    def store_args(self) -> tuple[str, str, str, int, int, Any, Mapping[str, Any], int]:
        """Arguments for ``IndexStore.index`` in call order."""
        return (
            self.index,
            self.field,
            self.term,
            self.subtype,
            self.subterm,
            self.value,
            self.props,
            self.timestamp,
        )


@dataclass(frozen=True, slots=True)
class InitStreamCommand:
    reply_to: ReplyChannel
    correlation_id: str = field(default_factory=new_correlation_id)


@dataclass(frozen=True, slots=True)
class StreamCommand:
    """Stream postings for ``(index, field, term)`` within a subterm range.

    Delivered to every local partition; only the one matching
    ``target_partition`` and ``target_node`` answers.
    """

    index: str
    field: str
    term: str
    reply_to: ReplyChannel
    target_partition: PartitionId
    target_node: NodeId
    subtype: int = 0
    start_subterm: int | None = None
    end_subterm: int | None = None
    correlation_id: str = field(default_factory=new_correlation_id)
    filter: StreamFilter | None = None


@dataclass(frozen=True, slots=True)
class InfoCommand:
    index: str
    field: str
    term: str
    reply_to: ReplyChannel
    correlation_id: str = field(default_factory=new_correlation_id)


@dataclass(frozen=True, slots=True)
class InfoRangeCommand:
    index: str
    field: str
    start_term: str
    end_term: str
    max_results: int
    reply_to: ReplyChannel
    correlation_id: str = field(default_factory=new_correlation_id)


PartitionCommand: TypeAlias = IndexCommand | InitStreamCommand | StreamCommand | InfoCommand | InfoRangeCommand

COMMAND_NAMES: Mapping[type, str] = {
    IndexCommand: "index",
    InitStreamCommand: "init_stream",
    StreamCommand: "stream",
    InfoCommand: "info",
    InfoRangeCommand: "info_range",
}


def command_name(command: object) -> str:
    return COMMAND_NAMES.get(type(command), "unknown")


def index_commands_for(postings: Sequence[Any]) -> list[IndexCommand]:
    """Convert postings into index commands (document id as the stored value)."""
    return [
        IndexCommand(
            index=posting.index_name,
            field=posting.field_name,
            term=posting.term,
            value=posting.doc_id,
            props=posting.properties,
        )
        for posting in postings
    ]
