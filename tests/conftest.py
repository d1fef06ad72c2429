"""Shared test fixtures."""

from pathlib import Path

import pytest

from shardsearch.config import Settings
from shardsearch.domain.commands import NodeId, PartitionId
from shardsearch.search.schema import FacetField, KeywordField, Schema, SchemaRegistry, TextField


TEST_NODE = "test@localhost"


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep SHARDSEARCH_* variables from the host out of the tests."""
    import os

    for key in list(os.environ):
        if key.upper().startswith("SHARDSEARCH_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        root_path=tmp_path / "merge_index",
        node_name=TEST_NODE,
        stream_batch_size=2,
        stream_timeout_seconds=2.0,
    )


@pytest.fixture
def node() -> NodeId:
    return NodeId(TEST_NODE)


@pytest.fixture
def partition() -> PartitionId:
    return PartitionId(3)


@pytest.fixture
def books_schema() -> Schema:
    return Schema(
        name="books",
        fields=[
            TextField("title", analyzer_factory="whitespace"),
            TextField("body", analyzer_factory="standard"),
            KeywordField("isbn"),
            FacetField("genre"),
            FacetField("year"),
        ],
        default_field=TextField("value", analyzer_factory="whitespace"),
    )


@pytest.fixture
def schemas(books_schema: Schema) -> SchemaRegistry:
    return SchemaRegistry(
        [
            books_schema,
            Schema(name="idx", fields=[], default_field=TextField("value", analyzer_factory="whitespace")),
        ]
    )
