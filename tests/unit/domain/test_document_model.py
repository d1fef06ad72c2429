"""Unit tests for the immutable document model."""

from __future__ import annotations

import dataclasses

import pytest

from shardsearch.domain.model import Document, Posting


pytestmark = pytest.mark.unit


def test_new_with_id_and_index_has_no_fields_or_derived_data() -> None:
    doc = Document.new("doc1", "idx")

    assert doc.id == "doc1"
    assert doc.index_name == "idx"
    assert doc.fields == ()
    assert doc.props == ()
    assert doc.field_terms == ()
    assert doc.facets == ()
    assert not doc.is_analyzed


def test_new_accepts_pairs_or_mapping() -> None:
    from_pairs = Document.new("d", "i", fields=[("a", "1"), ("a", "2")], props=[("p", "x")])
    from_mapping = Document.new("d", "i", fields={"a": "1"})

    assert from_pairs.fields == (("a", "1"), ("a", "2"))
    assert from_pairs.props == (("p", "x"),)
    assert from_mapping.fields == (("a", "1"),)


def test_add_field_prepends_and_returns_new_value() -> None:
    original = Document.new("d", "i", fields=[("title", "first")])

    updated = original.add_field("body", "second").add_field("tag", "third")

    assert updated.fields == (("tag", "third"), ("body", "second"), ("title", "first"))
    assert original.fields == (("title", "first"),)


def test_add_prop_prepends() -> None:
    doc = Document.new("d", "i").add_prop("a", 1).add_prop("b", 2)

    assert doc.props == (("b", 2), ("a", 1))


def test_clear_keeps_identity_and_derived_data() -> None:
    analyzed = Document.new("d", "i", fields=[("t", "x")], props=[("p", "v")]).with_analysis(
        [("t", (("x", (1,)),))], [("genre", "sf")]
    )

    cleared = analyzed.clear_fields().clear_props()

    assert cleared.fields == ()
    assert cleared.props == ()
    assert cleared.id == "d"
    assert cleared.index_name == "i"
    assert cleared.field_terms == analyzed.field_terms
    assert cleared.facets == (("genre", "sf"),)


def test_set_fields_and_props_replace_wholesale() -> None:
    doc = Document.new("d", "i", fields=[("a", "1")], props=[("p", "1")])

    doc = doc.set_fields({"b": "2"}).set_props([("q", "2")])

    assert doc.fields == (("b", "2"),)
    assert doc.props == (("q", "2"),)


def test_document_is_frozen() -> None:
    doc = Document.new("d", "i")

    with pytest.raises(dataclasses.FrozenInstanceError):
        doc.id = "other"  # type: ignore[misc]


def test_terms_for_returns_first_matching_field() -> None:
    doc = Document.new("d", "i").with_analysis(
        [("t", (("a", (1,)),)), ("t", (("b", (1,)),))],
        [],
    )

    assert doc.terms_for("t") == (("a", (1,)),)
    assert doc.terms_for("missing") == ()


def test_posting_accessors() -> None:
    posting = Posting("i", "f", "term", "d", {"word_pos": [1, 4], "freq": 2, "genre": "sf"})

    assert posting.word_pos == [1, 4]
    assert posting.freq == 2
    assert posting.as_tuple() == ("i", "f", "term", "d", {"word_pos": [1, 4], "freq": 2, "genre": "sf"})
