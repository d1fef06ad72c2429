"""
Schema definitions and the schema registry.

A schema describes how each field of an index is analyzed:
- TextField: tokenized by a named analyzer factory with optional arguments
- KeywordField: indexed as a single token
- FacetField: never tokenized; its raw value is copied onto every posting

Fields not declared in a schema resolve to the schema's default field, so
documents may carry dynamic fields without a schema change.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
import logging
from pathlib import Path
import threading
from typing import Any

import orjson

from shardsearch.errors import SchemaNotFound


logger = logging.getLogger(__name__)

DEFAULT_ANALYZER_FACTORY = "default"


class FieldType(str, Enum):
    """Types of fields supported in the schema."""

    TEXT = "text"
    KEYWORD = "keyword"
    FACET = "facet"


@dataclass(frozen=True)
class SchemaField(ABC):
    """Base class for all schema fields."""

    name: str
    analyzer_factory: str = DEFAULT_ANALYZER_FACTORY
    analyzer_args: tuple[tuple[str, Any], ...] = ()

    @property
    @abstractmethod
    def field_type(self) -> FieldType:
        """Return the field type."""

    @property
    def is_facet(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        """Serialize field definition to dict."""
        data: dict[str, Any] = {"name": self.name, "type": self.field_type.value}
        if self.field_type == FieldType.TEXT:
            data["analyzer_factory"] = self.analyzer_factory
            if self.analyzer_args:
                data["analyzer_args"] = dict(self.analyzer_args)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SchemaField:
        """Deserialize field definition from dict."""
        field_type = FieldType(data.get("type", FieldType.TEXT.value))
        name = data["name"]

        if field_type == FieldType.TEXT:
            return TextField(
                name,
                analyzer_factory=data.get("analyzer_factory", DEFAULT_ANALYZER_FACTORY),
                analyzer_args=_freeze_args(data.get("analyzer_args")),
            )
        if field_type == FieldType.KEYWORD:
            return KeywordField(name)
        if field_type == FieldType.FACET:
            return FacetField(name)
        msg = f"Unknown field type: {field_type}"
        raise ValueError(msg)


def _freeze_args(args: Mapping[str, Any] | None) -> tuple[tuple[str, Any], ...]:
    if not args:
        return ()
    return tuple((key, tuple(value) if isinstance(value, list) else value) for key, value in args.items())


@dataclass(frozen=True)
class TextField(SchemaField):
    """
    Analyzed text field.

    Args:
        name: Field name (e.g., "body", "title")
        analyzer_factory: Registered analyzer name (see ``shardsearch.search.analyzers``)
        analyzer_args: Keyword arguments passed to the analyzer factory
    """

    @property
    def field_type(self) -> FieldType:
        return FieldType.TEXT


@dataclass(frozen=True)
class KeywordField(SchemaField):
    """Exact-match field; the whole value becomes one term."""

    analyzer_factory: str = field(default="keyword", init=False)
    analyzer_args: tuple[tuple[str, Any], ...] = field(default=(), init=False)

    @property
    def field_type(self) -> FieldType:
        return FieldType.KEYWORD


@dataclass(frozen=True)
class FacetField(SchemaField):
    """Field stored verbatim as a property on every posting of the document."""

    analyzer_factory: str = field(default="keyword", init=False)
    analyzer_args: tuple[tuple[str, Any], ...] = field(default=(), init=False)

    @property
    def field_type(self) -> FieldType:
        return FieldType.FACET

    @property
    def is_facet(self) -> bool:
        return True


@dataclass
class Schema:
    """
    Schema definition for one index.

    Example:
        schema = Schema(
            name="books",
            fields=[
                TextField("title"),
                TextField("body", analyzer_factory="english"),
                KeywordField("isbn"),
                FacetField("genre"),
            ],
        )
    """

    name: str
    fields: list[SchemaField]
    default_field: SchemaField = field(default_factory=lambda: TextField("value"))

    def __post_init__(self) -> None:
        self._field_map: dict[str, SchemaField] = {f.name: f for f in self.fields}

    def __len__(self) -> int:
        return len(self.fields)

    def find_field(self, name: str) -> SchemaField:
        """Return the field definition, falling back to the default field."""
        return self._field_map.get(name, self.default_field)

    def is_field_facet(self, schema_field: SchemaField) -> bool:
        return schema_field.is_facet

    def analyzer_factory(self, schema_field: SchemaField) -> str:
        return schema_field.analyzer_factory

    def analyzer_args(self, schema_field: SchemaField) -> dict[str, Any]:
        return dict(schema_field.analyzer_args)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "fields": [f.to_dict() for f in self.fields],
            "default_field": self.default_field.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Schema:
        fields = [SchemaField.from_dict(f) for f in data.get("fields", [])]
        schema = cls(name=data["name"], fields=fields)
        if default := data.get("default_field"):
            schema.default_field = SchemaField.from_dict(default)
        return schema


class SchemaRegistry:
    """Thread-safe mapping of index name to schema."""

    def __init__(self, schemas: Iterable[Schema] | None = None) -> None:
        self._lock = threading.Lock()
        self._schemas: dict[str, Schema] = {}
        for schema in schemas or ():
            self.register(schema)

    def register(self, schema: Schema) -> None:
        with self._lock:
            self._schemas[schema.name] = schema
        logger.debug("Registered schema for index '%s' (%d fields)", schema.name, len(schema))

    def unregister(self, index_name: str) -> None:
        with self._lock:
            self._schemas.pop(index_name, None)

    def get_schema(self, index_name: str) -> Schema:
        with self._lock:
            schema = self._schemas.get(index_name)
        if schema is None:
            raise SchemaNotFound(index_name)
        return schema

    def __contains__(self, index_name: str) -> bool:
        with self._lock:
            return index_name in self._schemas

    def load_directory(self, directory: Path) -> int:
        """Register every ``*.json`` schema definition found in ``directory``."""
        loaded = 0
        for path in sorted(directory.glob("*.json")):
            try:
                payload = orjson.loads(path.read_bytes())
                schema = Schema.from_dict(payload)
            except (orjson.JSONDecodeError, KeyError, ValueError) as exc:
                logger.warning("Skipping schema file %s: %s", path, exc)
                continue
            self.register(schema)
            loaded += 1
        logger.info("Loaded %d schema(s) from %s", loaded, directory)
        return loaded
