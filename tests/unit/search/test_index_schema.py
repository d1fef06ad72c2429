"""Unit tests for schemas and the schema registry."""

from __future__ import annotations

from pathlib import Path

import orjson
import pytest

from shardsearch.errors import SchemaNotFound
from shardsearch.search.schema import (
    FacetField,
    FieldType,
    KeywordField,
    Schema,
    SchemaField,
    SchemaRegistry,
    TextField,
)


pytestmark = pytest.mark.unit


def test_find_field_falls_back_to_default(books_schema: Schema) -> None:
    assert books_schema.find_field("title").name == "title"
    assert books_schema.find_field("unknown") is books_schema.default_field


def test_facet_detection(books_schema: Schema) -> None:
    assert books_schema.is_field_facet(books_schema.find_field("genre"))
    assert not books_schema.is_field_facet(books_schema.find_field("title"))
    assert not books_schema.is_field_facet(books_schema.find_field("dynamic"))


def test_analyzer_factory_and_args() -> None:
    schema = Schema(
        name="s",
        fields=[TextField("body", analyzer_factory="standard", analyzer_args=(("stopwords", ("x",)),))],
    )
    body = schema.find_field("body")

    assert schema.analyzer_factory(body) == "standard"
    assert schema.analyzer_args(body) == {"stopwords": ("x",)}
    assert schema.analyzer_factory(schema.find_field("isbn")) == "default"


def test_keyword_and_facet_fields_use_keyword_analyzer() -> None:
    assert KeywordField("isbn").analyzer_factory == "keyword"
    assert FacetField("genre").analyzer_factory == "keyword"


def test_schema_dict_round_trip(books_schema: Schema) -> None:
    restored = Schema.from_dict(books_schema.to_dict())

    assert restored.name == "books"
    assert [f.field_type for f in restored] == [
        FieldType.TEXT,
        FieldType.TEXT,
        FieldType.KEYWORD,
        FieldType.FACET,
        FieldType.FACET,
    ]
    assert restored.find_field("title").analyzer_factory == "whitespace"
    assert restored.default_field.analyzer_factory == "whitespace"


def test_schema_field_from_dict_rejects_unknown_type() -> None:
    with pytest.raises(ValueError):
        SchemaField.from_dict({"name": "x", "type": "bad"})


def test_registry_raises_schema_not_found() -> None:
    registry = SchemaRegistry()

    with pytest.raises(SchemaNotFound) as excinfo:
        registry.get_schema("missing")
    assert excinfo.value.index_name == "missing"


def test_registry_register_and_unregister(books_schema: Schema) -> None:
    registry = SchemaRegistry()
    registry.register(books_schema)

    assert "books" in registry
    assert registry.get_schema("books") is books_schema

    registry.unregister("books")
    assert "books" not in registry


def test_registry_load_directory_skips_invalid_files(tmp_path: Path, books_schema: Schema) -> None:
    (tmp_path / "books.json").write_bytes(orjson.dumps(books_schema.to_dict()))
    (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")
    (tmp_path / "nameless.json").write_bytes(orjson.dumps({"fields": []}))
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")

    registry = SchemaRegistry()
    loaded = registry.load_directory(tmp_path)

    assert loaded == 1
    assert registry.get_schema("books").find_field("genre").is_facet
