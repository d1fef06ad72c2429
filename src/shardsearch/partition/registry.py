"""Node-level registry of partition workers.

The registry is the only shared state between partitions: a mapping from
partition id to its worker, changed only by ``start_partition`` and
``stop_partition``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
import logging
from typing import Any

from shardsearch.config import Settings
from shardsearch.domain.commands import NodeId, PartitionId
from shardsearch.partition.router import PartitionRouter, StoreFactory, open_sqlite_store
from shardsearch.partition.worker import PartitionWorker


logger = logging.getLogger(__name__)


class PartitionRegistry:
    """Starts, stops and addresses the partitions hosted by one node."""

    def __init__(self, settings: Settings, *, store_factory: StoreFactory = open_sqlite_store) -> None:
        self.settings = settings
        self.node = NodeId(settings.node_name)
        self._store_factory = store_factory
        self._workers: dict[PartitionId, PartitionWorker] = {}
        self._lock = asyncio.Lock()

    @property
    def partitions(self) -> list[PartitionId]:
        return sorted(self._workers)

    def __contains__(self, partition: PartitionId) -> bool:
        return partition in self._workers

    def __len__(self) -> int:
        return len(self._workers)

    def worker(self, partition: PartitionId) -> PartitionWorker:
        try:
            return self._workers[partition]
        except KeyError:
            raise KeyError(f"Partition {partition} is not hosted on {self.node}") from None

    async def start_partition(self, partition: PartitionId | int) -> PartitionWorker:
        """Open the partition's store and start its worker (idempotent)."""
        if not isinstance(partition, PartitionId):
            partition = PartitionId(int(partition))
        async with self._lock:
            existing = self._workers.get(partition)
            if existing is not None:
                return existing
            router = PartitionRouter.start(
                partition, self.settings, node=self.node, store_factory=self._store_factory
            )
            worker = PartitionWorker(router, queue_size=self.settings.partition_queue_size)
            worker.start()
            self._workers[partition] = worker
        return worker

    async def start_partitions(self, partitions: Iterable[PartitionId | int]) -> None:
        for partition in partitions:
            await self.start_partition(partition)

    async def stop_partition(self, partition: PartitionId) -> None:
        async with self._lock:
            worker = self._workers.pop(partition, None)
        if worker is not None:
            await worker.stop()

    async def stop_all(self) -> None:
        for partition in list(self._workers):
            await self.stop_partition(partition)

    async def submit(self, partition: PartitionId, command: Any) -> asyncio.Future:
        return await self.worker(partition).submit(command)

    async def call(self, partition: PartitionId, command: Any) -> None:
        await self.worker(partition).call(command)

    async def broadcast(self, command: Any) -> list[asyncio.Future]:
        """Deliver ``command`` to every hosted partition."""
        return [await worker.submit(command) for worker in list(self._workers.values())]

    def stats(self) -> list[dict[str, Any]]:
        return [worker.stats for worker in self._workers.values()]
