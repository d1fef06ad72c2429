"""Adapters layer - wire codec and storage collaborators.

Abstracts document persistence (object store) and postings persistence
(index store) behind small interfaces the service and partition layers use.
"""

from .document_store import DocumentStore
from .index_store import AbstractIndexStore, SqliteIndexStore, StoredPosting
from .object_store import AbstractObjectStore, FileSystemObjectStore, InMemoryObjectStore, StoredObject


__all__ = [
    "AbstractIndexStore",
    "AbstractObjectStore",
    "DocumentStore",
    "FileSystemObjectStore",
    "InMemoryObjectStore",
    "SqliteIndexStore",
    "StoredObject",
    "StoredPosting",
]
