"""Exception hierarchy shared by the indexing front-end.

Every error raised by this package derives from ``ShardSearchError`` so callers
can catch the whole family in one place. Errors coming from collaborators
(index store, object store) are wrapped in ``StoreError`` with the original
exception chained as ``__cause__``.
"""

from __future__ import annotations


class ShardSearchError(Exception):
    """Base class for all package errors."""


class SchemaNotFound(ShardSearchError):
    """Raised when no schema is registered for an index."""

    def __init__(self, index_name: str) -> None:
        super().__init__(f"No schema registered for index '{index_name}'")
        self.index_name = index_name


class AnalyzerError(ShardSearchError):
    """Raised when the analyzer fails to tokenize a field value."""


class DecodeError(ShardSearchError):
    """Raised when a wire document cannot be decoded."""


class MissingIdentity(DecodeError):
    """Raised when a wire document lacks ``id`` or ``index``."""


class MalformedWireFormat(DecodeError):
    """Raised when the wire payload is not a JSON object."""


class StoreOpenError(ShardSearchError):
    """Raised when a partition's index store cannot be opened."""


class StoreError(ShardSearchError):
    """Opaque passthrough for index/object store failures."""


class RouteError(ShardSearchError):
    """Raised when a partition command cannot be routed."""


class UnsupportedOperation(RouteError):
    """Raised for commands the partition router does not understand."""

    def __init__(self, command: object) -> None:
        super().__init__(f"Unexpected operation: {command!r}")
        self.command = command


class NotSupported(ShardSearchError):
    """Raised for key listing and deletion on the postings backend."""


class NotFound(ShardSearchError):
    """Raised when a key lookup finds nothing."""

    def __init__(self, bucket: str, key: str) -> None:
        super().__init__(f"{bucket}/{key} not found")
        self.bucket = bucket
        self.key = key
