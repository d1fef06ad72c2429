"""Unit tests for the document store adapter."""

from __future__ import annotations

import pytest

from shardsearch.adapters.document_store import DocumentStore
from shardsearch.adapters.object_store import InMemoryObjectStore, StoredObject
from shardsearch.domain.model import Document
from shardsearch.errors import NotFound, StoreError


pytestmark = pytest.mark.unit


@pytest.fixture
def objects() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def store(objects: InMemoryObjectStore) -> DocumentStore:
    return DocumentStore(objects)


@pytest.mark.asyncio
async def test_store_creates_then_updates(store: DocumentStore, objects: InMemoryObjectStore) -> None:
    first = await store.store(Document.new("d1", "idx", fields=[("t", "one")]))
    second = await store.store(Document.new("d1", "idx", fields=[("t", "two")]))

    assert first.version == 1
    assert second.version == 2
    assert len(objects) == 1
    fetched = await store.fetch("idx", "d1")
    assert fetched.fields == (("t", "two"),)


@pytest.mark.asyncio
async def test_fetch_missing_raises_not_found(store: DocumentStore) -> None:
    with pytest.raises(NotFound):
        await store.fetch("idx", "missing")


@pytest.mark.asyncio
async def test_fetch_round_trips_fields_and_props(store: DocumentStore) -> None:
    doc = Document.new("d1", "idx", fields=[("b", "2"), ("a", "1")], props=[("p", "v")])

    await store.store(doc)
    fetched = await store.fetch("idx", "d1")

    assert set(fetched.fields) == set(doc.fields)
    assert fetched.props == (("p", "v"),)


@pytest.mark.asyncio
async def test_remove(store: DocumentStore) -> None:
    await store.store(Document.new("d1", "idx"))

    assert await store.remove("idx", "d1") is True
    assert await store.remove("idx", "d1") is False
    with pytest.raises(NotFound):
        await store.fetch("idx", "d1")


@pytest.mark.asyncio
async def test_fetch_non_document_value_raises_store_error(
    store: DocumentStore, objects: InMemoryObjectStore
) -> None:
    await objects.put(StoredObject.new("idx", "bad", b"[1, 2]"))

    with pytest.raises(StoreError):
        await store.fetch("idx", "bad")


@pytest.mark.asyncio
async def test_fetch_raw_exposes_stored_object(store: DocumentStore) -> None:
    await store.store(Document.new("d1", "idx"))

    raw = await store.fetch_raw("idx", "d1")

    assert (raw.bucket, raw.key) == ("idx", "d1")
    assert raw.value.startswith(b"{")
