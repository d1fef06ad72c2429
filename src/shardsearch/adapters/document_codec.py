"""JSON wire codec for documents.

Wire shape::

    {"id": "...", "index": "...", "fields": {"name": "value"}, "props": {"name": "value"}}

Encoding sorts fields by name so the output is deterministic; props keep
their order. A name that occurs more than once is encoded as a list of its
values, in order, and decodes back into one pair per value.

Decoding is strict about the envelope (an object carrying ``id`` and
``index``) and lenient about ``fields``/``props``: anything that is not an
object decodes to no entries. Derived analysis data is never encoded.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

import orjson
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from shardsearch.domain.model import Document
from shardsearch.errors import MalformedWireFormat, MissingIdentity


def to_text(value: Any) -> str:
    """Canonical text form used on the wire."""
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


class WireDocument(BaseModel):
    """Validated wire envelope."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    index: str
    fields: list[tuple[str, str]] = []
    props: list[tuple[str, str]] = []

    @field_validator("id", "index", mode="before")
    @classmethod
    def _identity_text(cls, value: Any) -> Any:
        if value is None:
            return value
        return to_text(value)

    @field_validator("fields", "props", mode="before")
    @classmethod
    def _lenient_pairs(cls, value: Any) -> list[tuple[str, str]]:
        if not isinstance(value, Mapping):
            return []
        pairs: list[tuple[str, str]] = []
        for name, item in value.items():
            items = item if isinstance(item, list) else [item]
            pairs.extend((to_text(name), to_text(each)) for each in items)
        return pairs


def _text_pairs(pairs: Iterable[tuple[str, Any]]) -> dict[str, str | list[str]]:
    """Group pairs by name; a repeated name becomes a list of its values in order."""
    grouped: dict[str, str | list[str]] = {}
    for name, value in pairs:
        key, text = to_text(name), to_text(value)
        current = grouped.get(key)
        if current is None:
            grouped[key] = text
        elif isinstance(current, list):
            current.append(text)
        else:
            grouped[key] = [current, text]
    return grouped


def encode(document: Document) -> dict[str, Any]:
    """Encode a document into its wire mapping."""
    return {
        "id": to_text(document.id),
        "index": to_text(document.index_name),
        "fields": _text_pairs(sorted(document.fields, key=lambda pair: to_text(pair[0]))),
        "props": _text_pairs(document.props),
    }


def decode(wire: Any) -> Document:
    """Decode a wire mapping into a document.

    Raises:
        MalformedWireFormat: ``wire`` is not a JSON object.
        MissingIdentity: ``id`` or ``index`` is absent.
    """
    if not isinstance(wire, Mapping):
        raise MalformedWireFormat(f"Expected a JSON object, got {type(wire).__name__}")
    if wire.get("id") is None or wire.get("index") is None:
        raise MissingIdentity("Wire document is missing 'id' or 'index'")
    try:
        envelope = WireDocument.model_validate(dict(wire))
    except ValidationError as exc:
        raise MalformedWireFormat(str(exc)) from exc
    return Document.new(
        envelope.id,
        envelope.index,
        fields=envelope.fields,
        props=envelope.props,
    )


def to_json(document: Document) -> bytes:
    return orjson.dumps(encode(document))


def from_json(raw: bytes | str) -> Document:
    """Parse JSON text and decode it; invalid JSON is a ``MalformedWireFormat``."""
    try:
        payload = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise MalformedWireFormat(f"Invalid JSON: {exc}") from exc
    return decode(payload)
