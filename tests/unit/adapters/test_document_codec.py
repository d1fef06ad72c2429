"""Unit tests for the JSON wire codec."""

from __future__ import annotations

import orjson
import pytest

from shardsearch.adapters.document_codec import decode, encode, from_json, to_json, to_text
from shardsearch.domain.model import Document
from shardsearch.errors import DecodeError, MalformedWireFormat, MissingIdentity


pytestmark = pytest.mark.unit


def test_encode_sorts_fields_and_keeps_prop_order() -> None:
    doc = Document.new("d1", "idx", fields=[("title", "T"), ("body", "B")], props=[("z", "1"), ("a", "2")])

    wire = encode(doc)

    assert wire == {"id": "d1", "index": "idx", "fields": {"body": "B", "title": "T"}, "props": {"z": "1", "a": "2"}}
    assert list(wire["fields"]) == ["body", "title"]
    assert list(wire["props"]) == ["z", "a"]


def test_encode_coerces_values_to_text() -> None:
    doc = Document.new("d1", "idx", fields=[("year", 1969), ("raw", b"bytes")], props=[("score", 1.5)])

    wire = encode(doc)

    assert wire["fields"] == {"raw": "bytes", "year": "1969"}
    assert wire["props"] == {"score": "1.5"}


def test_encode_empty_document_has_empty_mappings() -> None:
    assert encode(Document.new("d", "i")) == {"id": "d", "index": "i", "fields": {}, "props": {}}


def test_round_trip_preserves_identity_and_pair_sets() -> None:
    doc = Document.new("d1", "idx", fields=[("title", "T"), ("body", "B")], props=[("p", "v"), ("q", "w")])

    restored = decode(encode(doc))

    assert (restored.id, restored.index_name) == ("d1", "idx")
    assert set(restored.fields) == set(doc.fields)
    assert set(restored.props) == set(doc.props)


def test_repeated_names_survive_round_trip() -> None:
    doc = Document.new(
        "d1", "idx", fields=[("tag", "a"), ("title", "T"), ("tag", "b")], props=[("p", "1"), ("p", "2")]
    )

    wire = encode(doc)
    restored = decode(wire)

    assert wire["fields"] == {"tag": ["a", "b"], "title": "T"}
    assert wire["props"] == {"p": ["1", "2"]}
    assert restored.fields == (("tag", "a"), ("tag", "b"), ("title", "T"))
    assert restored.props == (("p", "1"), ("p", "2"))


def test_list_values_on_the_wire_decode_to_one_pair_each() -> None:
    doc = from_json(b'{"id": "d", "index": "i", "fields": {"tag": ["x", 2]}}')

    assert doc.fields == (("tag", "x"), ("tag", "2"))


def test_json_round_trip() -> None:
    doc = Document.new("d1", "idx", fields=[("title", "ünïcode")])

    restored = from_json(to_json(doc))

    assert restored.fields == (("title", "ünïcode"),)


def test_encode_drops_derived_analysis_data() -> None:
    doc = Document.new("d", "i", fields=[("t", "x")]).with_analysis([("t", (("x", (1,)),))], [])

    assert set(encode(doc)) == {"id", "index", "fields", "props"}
    assert decode(encode(doc)).field_terms == ()


def test_missing_id_fails_with_missing_identity() -> None:
    with pytest.raises(MissingIdentity):
        decode({"fields": {"a": "1", "b": "2"}})


def test_missing_index_fails_with_missing_identity() -> None:
    with pytest.raises(MissingIdentity):
        decode({"id": "d"})


@pytest.mark.parametrize("payload", [[1, 2], "text", 42, None])
def test_non_object_payload_is_malformed(payload) -> None:
    with pytest.raises(MalformedWireFormat):
        decode(payload)


def test_invalid_json_is_malformed() -> None:
    with pytest.raises(MalformedWireFormat):
        from_json(b"{not json")


def test_decode_errors_share_a_base_class() -> None:
    assert issubclass(MissingIdentity, DecodeError)
    assert issubclass(MalformedWireFormat, DecodeError)


def test_malformed_fields_and_props_decode_to_empty() -> None:
    doc = decode({"id": "d", "index": "i", "fields": ["not", "an", "object"], "props": "nope"})

    assert doc.fields == ()
    assert doc.props == ()


def test_decode_coerces_identity_and_values() -> None:
    doc = from_json(orjson.dumps({"id": 7, "index": "i", "fields": {"n": 3}, "extra": True}))

    assert doc.id == "7"
    assert doc.fields == (("n", "3"),)


def test_to_text() -> None:
    assert to_text("s") == "s"
    assert to_text(b"b") == "b"
    assert to_text(bytearray(b"ba")) == "ba"
    assert to_text(12) == "12"
