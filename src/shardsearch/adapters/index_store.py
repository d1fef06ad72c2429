"""Index store collaborator: postings keyed by (index, field, term, subterm).

``AbstractIndexStore`` is the contract the partition router drives.
``SqliteIndexStore`` implements it on a single SQLite database per partition:

- WAL journal with NORMAL synchronous for write throughput
- WITHOUT ROWID clustered primary key on (index, field, term, subtype, subterm, value)
- properties stored as orjson blobs
- re-indexing the same posting keeps the entry with the newest timestamp

Streams read in keyset-paginated batches so no cursor stays open while the
stream is suspended, and writes from the same partition may interleave.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
from collections.abc import Callable, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
import logging
from pathlib import Path
import sqlite3
from typing import Any, TypeVar

import orjson

from shardsearch.domain.commands import (
    PartitionId,
    ReplyChannel,
    StreamBatch,
    StreamEnd,
    StreamFilter,
    StreamResult,
)
from shardsearch.errors import StoreError, StoreOpenError
from shardsearch.observability.metrics import STREAM_RESULTS


logger = logging.getLogger(__name__)

A = TypeVar("A")

DATABASE_FILENAME = "postings.db"
DEFAULT_BATCH_SIZE = 500

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS postings (
    index_name TEXT NOT NULL,
    field TEXT NOT NULL,
    term TEXT NOT NULL,
    subtype INTEGER NOT NULL,
    subterm INTEGER NOT NULL,
    value TEXT NOT NULL,
    props BLOB NOT NULL,
    ts INTEGER NOT NULL,
    PRIMARY KEY (index_name, field, term, subtype, subterm, value)
) WITHOUT ROWID
"""

_UPSERT_SQL = """
INSERT INTO postings (index_name, field, term, subtype, subterm, value, props, ts)
VALUES (?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT (index_name, field, term, subtype, subterm, value)
DO UPDATE SET props = excluded.props, ts = excluded.ts
WHERE excluded.ts >= postings.ts
"""


@dataclass(frozen=True, slots=True)
class StoredPosting:
    """A row of the index store, as handed to ``fold`` callbacks."""

    index_name: str
    field: str
    term: str
    subtype: int
    subterm: int
    value: str
    props: dict[str, Any]
    timestamp: int


class AbstractIndexStore(ABC):
    """Contract for a partition-local postings store."""

    @abstractmethod
    def index(
        self,
        index_name: str,
        field: str,
        term: str,
        subtype: int,
        subterm: int,
        value: Any,
        props: Mapping[str, Any],
        timestamp: int,
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    async def stream(
        self,
        index_name: str,
        field: str,
        term: str,
        subtype: int,
        start_subterm: int | None,
        end_subterm: int | None,
        sink: ReplyChannel,
        correlation_id: str,
        filter: StreamFilter | None = None,
        *,
        partition: PartitionId | None = None,
    ) -> int:
        """Send matching postings to ``sink`` in batches, then ``StreamEnd``.

        Returns the number of results sent. Stops early once ``sink`` closes.
        """
        raise NotImplementedError

    @abstractmethod
    def info(self, index_name: str, field: str, term: str) -> list[tuple[str, int]]:
        raise NotImplementedError

    @abstractmethod
    def info_range(
        self, index_name: str, field: str, start_term: str, end_term: str, limit: int
    ) -> list[tuple[str, int]]:
        raise NotImplementedError

    @abstractmethod
    def is_empty(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    def fold(self, fn: Callable[[StoredPosting, A], A], acc: A) -> A:
        raise NotImplementedError

    @abstractmethod
    def drop(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        raise NotImplementedError


def apply_write_pragmas(conn: sqlite3.Connection, *, cache_size_kb: int = -16384, busy_timeout_ms: int = 30000) -> None:
    conn.execute(f"PRAGMA busy_timeout = {busy_timeout_ms}")
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA synchronous = NORMAL")
    conn.execute(f"PRAGMA cache_size = {cache_size_kb}")
    conn.execute("PRAGMA temp_store = MEMORY")


class SqliteIndexStore(AbstractIndexStore):
    """SQLite-backed postings store owned by exactly one partition."""

    def __init__(self, conn: sqlite3.Connection, *, db_path: Path | None = None, batch_size: int = DEFAULT_BATCH_SIZE):
        self._conn: sqlite3.Connection | None = conn
        self.db_path = db_path
        self.batch_size = batch_size

    @classmethod
    def open(cls, directory: Path, *, batch_size: int = DEFAULT_BATCH_SIZE) -> SqliteIndexStore:
        """Open or create the store rooted at ``directory``."""
        db_path = directory / DATABASE_FILENAME
        try:
            directory.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(db_path, check_same_thread=False)
            apply_write_pragmas(conn)
            conn.execute(_SCHEMA_SQL)
            conn.commit()
        except (OSError, sqlite3.Error) as exc:
            raise StoreOpenError(f"Cannot open index store at {db_path}: {exc}") from exc
        logger.info("Opened index store at %s", db_path)
        return cls(conn, db_path=db_path, batch_size=batch_size)

    @classmethod
    def in_memory(cls, *, batch_size: int = DEFAULT_BATCH_SIZE) -> SqliteIndexStore:
        conn = sqlite3.connect(":memory:", check_same_thread=False)
        conn.execute(_SCHEMA_SQL)
        return cls(conn, batch_size=batch_size)

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreError("Index store is closed")
        return self._conn

    @contextmanager
    def _errors(self, operation: str):
        try:
            yield
        except sqlite3.Error as exc:
            raise StoreError(f"Index store {operation} failed: {exc}") from exc

    def index(
        self,
        index_name: str,
        field: str,
        term: str,
        subtype: int,
        subterm: int,
        value: Any,
        props: Mapping[str, Any],
        timestamp: int,
    ) -> None:
        try:
            blob = orjson.dumps(dict(props), option=orjson.OPT_NON_STR_KEYS)
        except TypeError as exc:
            raise StoreError(f"Posting properties are not serializable: {exc}") from exc
        with self._errors("index"), self.conn:
            self.conn.execute(
                _UPSERT_SQL,
                (index_name, field, term, int(subtype), int(subterm), str(value), blob, int(timestamp)),
            )

    def _read_batch(
        self,
        key: tuple[str, str, str, int],
        start_subterm: int | None,
        end_subterm: int | None,
        after: tuple[int, str] | None,
    ) -> list[tuple[int, str, bytes]]:
        clauses = ["index_name = ?", "field = ?", "term = ?", "subtype = ?"]
        params: list[Any] = list(key)
        if start_subterm is not None:
            clauses.append("subterm >= ?")
            params.append(start_subterm)
        if end_subterm is not None:
            clauses.append("subterm <= ?")
            params.append(end_subterm)
        if after is not None:
            clauses.append("(subterm > ? OR (subterm = ? AND value > ?))")
            params.extend((after[0], after[0], after[1]))
        query = (
            f"SELECT subterm, value, props FROM postings WHERE {' AND '.join(clauses)} "
            "ORDER BY subterm, value LIMIT ?"
        )
        params.append(self.batch_size)
        with self._errors("stream"):
            return self.conn.execute(query, params).fetchall()

    async def stream(
        self,
        index_name: str,
        field: str,
        term: str,
        subtype: int,
        start_subterm: int | None,
        end_subterm: int | None,
        sink: ReplyChannel,
        correlation_id: str,
        filter: StreamFilter | None = None,
        *,
        partition: PartitionId | None = None,
    ) -> int:
        key = (index_name, field, term, int(subtype))
        after: tuple[int, str] | None = None
        sent = 0
        while not sink.closed:
            rows = self._read_batch(key, start_subterm, end_subterm, after)
            if not rows:
                break
            after = (rows[-1][0], rows[-1][1])
            results = []
            for _subterm, value, blob in rows:
                props = orjson.loads(blob)
                if filter is None or filter(value, props):
                    results.append(StreamResult(value=value, props=props))
            if results:
                await sink.send(StreamBatch(tuple(results), correlation_id, partition))
                sent += len(results)
                STREAM_RESULTS.inc(len(results))
            if len(rows) < self.batch_size:
                break
            # let the partition worker service other commands between batches
            await asyncio.sleep(0)
        if sink.closed:
            logger.debug("Stream %s stopped early: reply channel closed", correlation_id)
            return sent
        await sink.send(StreamEnd(correlation_id, partition))
        return sent

    def info(self, index_name: str, field: str, term: str) -> list[tuple[str, int]]:
        with self._errors("info"):
            row = self.conn.execute(
                "SELECT COUNT(*) FROM postings WHERE index_name = ? AND field = ? AND term = ?",
                (index_name, field, term),
            ).fetchone()
        return [(term, int(row[0]))]

    def info_range(
        self, index_name: str, field: str, start_term: str, end_term: str, limit: int
    ) -> list[tuple[str, int]]:
        with self._errors("info_range"):
            rows = self.conn.execute(
                "SELECT term, COUNT(*) FROM postings WHERE index_name = ? AND field = ? AND term BETWEEN ? AND ? "
                "GROUP BY term ORDER BY term LIMIT ?",
                (index_name, field, start_term, end_term, max(0, int(limit))),
            ).fetchall()
        return [(term, int(count)) for term, count in rows]

    def is_empty(self) -> bool:
        with self._errors("is_empty"):
            return self.conn.execute("SELECT 1 FROM postings LIMIT 1").fetchone() is None

    def fold(self, fn: Callable[[StoredPosting, A], A], acc: A) -> A:
        with self._errors("fold"):
            rows = self.conn.execute(
                "SELECT index_name, field, term, subtype, subterm, value, props, ts FROM postings "
                "ORDER BY index_name, field, term, subtype, subterm, value"
            ).fetchall()
        for index_name, field, term, subtype, subterm, value, blob, ts in rows:
            acc = fn(StoredPosting(index_name, field, term, subtype, subterm, value, orjson.loads(blob), ts), acc)
        return acc

    def drop(self) -> None:
        with self._errors("drop"), self.conn:
            self.conn.execute("DELETE FROM postings")
        logger.info("Dropped all postings from %s", self.db_path or ":memory:")

    def close(self) -> None:
        if self._conn is not None:
            try:
                self._conn.close()
            finally:
                self._conn = None
