"""Service layer - indexing use cases built on the domain, adapters and partitions."""

from .indexing_service import IndexingService, IndexResult, hash_partition


__all__ = [
    "IndexResult",
    "IndexingService",
    "hash_partition",
]
