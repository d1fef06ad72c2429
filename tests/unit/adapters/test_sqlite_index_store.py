"""Unit tests for the SQLite postings store."""

from __future__ import annotations

from pathlib import Path

import pytest

from shardsearch.adapters.index_store import DATABASE_FILENAME, SqliteIndexStore
from shardsearch.domain.commands import PartitionId, QueueReplyChannel, StreamBatch, StreamEnd
from shardsearch.errors import StoreError, StoreOpenError


pytestmark = pytest.mark.unit


@pytest.fixture
def store():
    store = SqliteIndexStore.in_memory(batch_size=2)
    yield store
    store.close()


def _index(store: SqliteIndexStore, value: str, *, term: str = "be", subterm: int = 0, ts: int = 1, **props) -> None:
    store.index("idx", "value", term, 0, subterm, value, props, ts)


def _values(messages) -> list[str]:
    return [result.value for message in messages if isinstance(message, StreamBatch) for result in message.results]


def test_open_creates_database_file(tmp_path: Path) -> None:
    store = SqliteIndexStore.open(tmp_path / "3")
    try:
        assert (tmp_path / "3" / DATABASE_FILENAME).exists()
        assert store.is_empty()
    finally:
        store.close()


def test_open_reports_store_open_error(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x")

    with pytest.raises(StoreOpenError):
        SqliteIndexStore.open(blocker)


def test_data_survives_reopen(tmp_path: Path) -> None:
    store = SqliteIndexStore.open(tmp_path)
    _index(store, "doc1")
    store.close()

    reopened = SqliteIndexStore.open(tmp_path)
    try:
        assert reopened.info("idx", "value", "be") == [("be", 1)]
    finally:
        reopened.close()


def test_reindex_keeps_newest_timestamp(store: SqliteIndexStore) -> None:
    _index(store, "doc1", ts=10, freq=1)
    _index(store, "doc1", ts=5, freq=2)
    _index(store, "doc1", ts=20, freq=3)

    rows = store.fold(lambda posting, acc: [*acc, posting], [])

    assert len(rows) == 1
    assert rows[0].props == {"freq": 3}
    assert rows[0].timestamp == 20


@pytest.mark.asyncio
async def test_stream_sends_batches_then_end(store: SqliteIndexStore) -> None:
    for value in ["d3", "d1", "d5", "d2", "d4"]:
        _index(store, value)
    sink = QueueReplyChannel()

    sent = await store.stream("idx", "value", "be", 0, None, None, sink, "cid", partition=PartitionId(3))

    messages = sink.drain()
    assert sent == 5
    assert _values(messages) == ["d1", "d2", "d3", "d4", "d5"]
    assert [len(m.results) for m in messages if isinstance(m, StreamBatch)] == [2, 2, 1]
    assert messages[-1] == StreamEnd("cid", PartitionId(3))
    assert all(m.partition == PartitionId(3) for m in messages)


@pytest.mark.asyncio
async def test_stream_with_no_matches_only_ends(store: SqliteIndexStore) -> None:
    sink = QueueReplyChannel()

    sent = await store.stream("idx", "value", "missing", 0, None, None, sink, "cid")

    assert sent == 0
    assert sink.drain() == [StreamEnd("cid")]


@pytest.mark.asyncio
async def test_stream_respects_subterm_range(store: SqliteIndexStore) -> None:
    for subterm in range(5):
        _index(store, f"doc{subterm}", subterm=subterm)
    sink = QueueReplyChannel()

    await store.stream("idx", "value", "be", 0, 1, 3, sink, "cid")

    assert _values(sink.drain()) == ["doc1", "doc2", "doc3"]


@pytest.mark.asyncio
async def test_stream_applies_filter(store: SqliteIndexStore) -> None:
    _index(store, "a", freq=1)
    _index(store, "b", freq=3)
    _index(store, "c", freq=2)
    sink = QueueReplyChannel()

    sent = await store.stream(
        "idx", "value", "be", 0, None, None, sink, "cid", lambda value, props: props["freq"] > 1
    )

    assert sent == 2
    assert _values(sink.drain()) == ["b", "c"]


@pytest.mark.asyncio
async def test_stream_stops_when_sink_closed(store: SqliteIndexStore) -> None:
    for value in ["d1", "d2", "d3", "d4"]:
        _index(store, value)
    sink = QueueReplyChannel()
    sink.close()

    sent = await store.stream("idx", "value", "be", 0, None, None, sink, "cid")

    assert sent == 0
    assert sink.drain() == []


@pytest.mark.asyncio
async def test_stream_props_round_trip(store: SqliteIndexStore) -> None:
    store.index("idx", "value", "be", 0, 0, "doc1", {"word_pos": [2, 6], "freq": 2}, 1)
    sink = QueueReplyChannel()

    await store.stream("idx", "value", "be", 0, None, None, sink, "cid")

    batch = sink.drain()[0]
    assert batch.results[0].props == {"word_pos": [2, 6], "freq": 2}


def test_info_counts_postings(store: SqliteIndexStore) -> None:
    _index(store, "d1")
    _index(store, "d2")
    _index(store, "d1", term="to")

    assert store.info("idx", "value", "be") == [("be", 2)]
    assert store.info("idx", "value", "nothing") == [("nothing", 0)]


def test_info_range_groups_and_limits(store: SqliteIndexStore) -> None:
    for term in ["apple", "banana", "cherry", "date"]:
        _index(store, "d1", term=term)
    _index(store, "d2", term="banana")

    assert store.info_range("idx", "value", "b", "d", 10) == [("banana", 2), ("cherry", 1)]
    assert store.info_range("idx", "value", "a", "z", 2) == [("apple", 1), ("banana", 2)]


def test_fold_drop_and_is_empty(store: SqliteIndexStore) -> None:
    assert store.is_empty()
    _index(store, "d2", term="to")
    _index(store, "d1")

    keys = store.fold(lambda posting, acc: [*acc, (posting.term, posting.value)], [])

    assert keys == [("be", "d1"), ("to", "d2")]
    assert not store.is_empty()
    store.drop()
    assert store.is_empty()


def test_closed_store_raises_store_error(store: SqliteIndexStore) -> None:
    store.close()

    with pytest.raises(StoreError):
        store.is_empty()


def test_unserializable_props_raise_store_error(store: SqliteIndexStore) -> None:
    with pytest.raises(StoreError):
        store.index("idx", "value", "be", 0, 0, "doc1", {"bad": object()}, 1)
