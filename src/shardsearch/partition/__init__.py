"""Partition layer: per-partition command routing, workers and stream fan-out."""

from shardsearch.partition.registry import PartitionRegistry
from shardsearch.partition.router import PartitionRouter, RouterState
from shardsearch.partition.streaming import StreamCoordinator, StreamTimeout
from shardsearch.partition.worker import PartitionWorker


__all__ = [
    "PartitionRegistry",
    "PartitionRouter",
    "PartitionWorker",
    "RouterState",
    "StreamCoordinator",
    "StreamTimeout",
]
