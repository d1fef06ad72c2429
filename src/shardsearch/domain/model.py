"""Domain model - the indexed document and the postings derived from it.

The document is an immutable value: ``add_field``, ``set_props`` and friends
return a new ``Document`` instead of mutating the receiver. ``field_terms`` and
``facets`` are derived by analysis (see ``shardsearch.search.analysis``) and
stay empty until then.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any


FieldPair = tuple[str, Any]
TermPositions = tuple[tuple[str, tuple[int, ...]], ...]


def _pairs(items: Iterable[tuple[str, Any]] | Mapping[str, Any] | None) -> tuple[FieldPair, ...]:
    if items is None:
        return ()
    if isinstance(items, Mapping):
        items = items.items()
    return tuple((name, value) for name, value in items)


@dataclass(frozen=True, slots=True)
class Document:
    """A document addressed by ``(index_name, id)``.

    ``fields`` keeps duplicates and insertion order; the facet/regular split
    during analysis depends on that order.
    """

    id: str
    index_name: str
    fields: tuple[FieldPair, ...] = ()
    props: tuple[FieldPair, ...] = ()
    field_terms: tuple[tuple[str, TermPositions], ...] = ()
    facets: tuple[FieldPair, ...] = ()

    @classmethod
    def new(
        cls,
        id: str,
        index_name: str,
        fields: Iterable[tuple[str, Any]] | Mapping[str, Any] | None = None,
        props: Iterable[tuple[str, Any]] | Mapping[str, Any] | None = None,
    ) -> Document:
        """Build a document from primitives."""
        return cls(id=id, index_name=index_name, fields=_pairs(fields), props=_pairs(props))

    # --- fields -----------------------------------------------------------

    def add_field(self, name: str, value: Any) -> Document:
        """Return a copy with ``(name, value)`` placed first in ``fields``."""
        return replace(self, fields=((name, value), *self.fields))

    def set_fields(self, fields: Iterable[tuple[str, Any]] | Mapping[str, Any]) -> Document:
        return replace(self, fields=_pairs(fields))

    def clear_fields(self) -> Document:
        return replace(self, fields=())

    # --- props ------------------------------------------------------------

    def add_prop(self, name: str, value: Any) -> Document:
        """Return a copy with ``(name, value)`` placed first in ``props``."""
        return replace(self, props=((name, value), *self.props))

    def set_props(self, props: Iterable[tuple[str, Any]] | Mapping[str, Any]) -> Document:
        return replace(self, props=_pairs(props))

    def clear_props(self) -> Document:
        return replace(self, props=())

    # --- derived ----------------------------------------------------------

    @property
    def is_analyzed(self) -> bool:
        return bool(self.field_terms or self.facets)

    def with_analysis(
        self,
        field_terms: Iterable[tuple[str, TermPositions]],
        facets: Iterable[FieldPair],
    ) -> Document:
        """Return a copy carrying derived term positions and facets."""
        return replace(self, field_terms=tuple(field_terms), facets=tuple(facets))

    def terms_for(self, field_name: str) -> TermPositions:
        """Term-position table of the first analyzed entry named ``field_name``."""
        for name, table in self.field_terms:
            if name == field_name:
                return table
        return ()


@dataclass(frozen=True, slots=True)
class Posting:
    """One term's occurrence record for a document, consumed by the index store.

    ``properties`` always starts with ``word_pos`` and ``freq`` followed by the
    document's facets.
    """

    index_name: str
    field_name: str
    term: str
    doc_id: str
    properties: dict[str, Any] = field(default_factory=dict)

    @property
    def word_pos(self) -> list[int]:
        return list(self.properties.get("word_pos", []))

    @property
    def freq(self) -> int:
        return int(self.properties.get("freq", 0))

    def as_tuple(self) -> tuple[str, str, str, str, dict[str, Any]]:
        return (self.index_name, self.field_name, self.term, self.doc_id, self.properties)
