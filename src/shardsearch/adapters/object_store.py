"""Object store collaborator: opaque values addressed by ``(bucket, key)``.

The document store adapter persists encoded documents here. Two
implementations ship with the package:

* ``InMemoryObjectStore`` - dictionary backed, for tests and single-process use.
* ``FileSystemObjectStore`` - one value file plus a ``.meta.json`` sidecar per
  key under ``<root>/<bucket>/``, written with anyio's async file API.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
import logging
from pathlib import Path
from urllib.parse import quote

import anyio
import orjson

from shardsearch.errors import NotFound, StoreError


logger = logging.getLogger(__name__)

META_FILE_EXTENSION = ".meta.json"
VALUE_FILE_EXTENSION = ".bin"


@dataclass(frozen=True, slots=True)
class StoredObject:
    """A value plus the bookkeeping the store attaches to it."""

    bucket: str
    key: str
    value: bytes
    version: int = 1
    last_modified: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def new(cls, bucket: str, key: str, value: bytes) -> StoredObject:
        return cls(bucket=bucket, key=key, value=value)

    def update_value(self, value: bytes) -> StoredObject:
        """Return the next version of this object carrying ``value``."""
        return replace(self, value=value, version=self.version + 1, last_modified=datetime.now(timezone.utc))


class AbstractObjectStore(ABC):
    """Abstract key/value store for document blobs."""

    @abstractmethod
    async def get(self, bucket: str, key: str) -> StoredObject:
        """Return the object or raise ``NotFound``."""
        raise NotImplementedError

    @abstractmethod
    async def put(self, obj: StoredObject) -> None:
        raise NotImplementedError

    @abstractmethod
    async def delete(self, bucket: str, key: str) -> bool:
        """Delete the object; returns False when it did not exist."""
        raise NotImplementedError


class InMemoryObjectStore(AbstractObjectStore):
    """In-memory object store."""

    def __init__(self) -> None:
        self._objects: dict[tuple[str, str], StoredObject] = {}

    async def get(self, bucket: str, key: str) -> StoredObject:
        try:
            return self._objects[(bucket, key)]
        except KeyError:
            raise NotFound(bucket, key) from None

    async def put(self, obj: StoredObject) -> None:
        self._objects[(obj.bucket, obj.key)] = obj

    async def delete(self, bucket: str, key: str) -> bool:
        return self._objects.pop((bucket, key), None) is not None

    def __len__(self) -> int:
        return len(self._objects)


class FileSystemObjectStore(AbstractObjectStore):
    """Object store persisting each key as files under ``root/bucket``."""

    def __init__(self, root: Path) -> None:
        self.root = root.expanduser().resolve(strict=False)
        self._lock = asyncio.Lock()

    def _paths(self, bucket: str, key: str) -> tuple[anyio.Path, anyio.Path]:
        directory = anyio.Path(self.root) / quote(bucket, safe="")
        stem = quote(key, safe="")
        return directory / f"{stem}{VALUE_FILE_EXTENSION}", directory / f"{stem}{META_FILE_EXTENSION}"

    async def get(self, bucket: str, key: str) -> StoredObject:
        value_path, meta_path = self._paths(bucket, key)
        try:
            value = await value_path.read_bytes()
            meta = orjson.loads(await meta_path.read_bytes())
        except FileNotFoundError:
            raise NotFound(bucket, key) from None
        except (OSError, orjson.JSONDecodeError) as exc:
            raise StoreError(f"Failed to read {bucket}/{key}: {exc}") from exc
        return StoredObject(
            bucket=bucket,
            key=key,
            value=value,
            version=int(meta.get("version", 1)),
            last_modified=datetime.fromisoformat(meta["last_modified"]),
        )

    async def put(self, obj: StoredObject) -> None:
        value_path, meta_path = self._paths(obj.bucket, obj.key)
        meta = {"bucket": obj.bucket, "key": obj.key, "version": obj.version, "last_modified": obj.last_modified}
        async with self._lock:
            try:
                await value_path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path = value_path.with_suffix(".tmp")
                await tmp_path.write_bytes(obj.value)
                await tmp_path.replace(value_path)
                await meta_path.write_bytes(orjson.dumps(meta))
            except OSError as exc:
                raise StoreError(f"Failed to write {obj.bucket}/{obj.key}: {exc}") from exc
        logger.debug("Stored %s/%s (version %d)", obj.bucket, obj.key, obj.version)

    async def delete(self, bucket: str, key: str) -> bool:
        value_path, meta_path = self._paths(bucket, key)
        async with self._lock:
            if not await value_path.exists():
                return False
            try:
                await value_path.unlink()
                await meta_path.unlink(missing_ok=True)
            except OSError as exc:
                raise StoreError(f"Failed to delete {bucket}/{key}: {exc}") from exc
        return True
