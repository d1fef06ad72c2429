"""Document analysis and postings generation.

``analyze`` resolves the document's schema, splits its fields into facet and
regular fields, tokenizes every regular field and records term positions.
``postings`` then flattens the analyzed document into ``Posting`` records for
the index store.

Term-position tables keep terms in order of first occurrence. Positions are
1-based and appended at the tail, so each term's list is ascending. Fields
sharing a name are analyzed as independent entries and their positions are
not merged.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
import logging
from typing import Any, Protocol, TypeVar

from shardsearch.domain.model import Document, FieldPair, Posting, TermPositions
from shardsearch.errors import AnalyzerError, SchemaNotFound
from shardsearch.observability.metrics import DOCUMENTS_ANALYZED, POSTINGS_GENERATED
from shardsearch.observability.tracing import create_span
from shardsearch.search.analyzers import open_analyzer
from shardsearch.search.schema import Schema, SchemaRegistry


logger = logging.getLogger(__name__)

A = TypeVar("A")


class FieldAnalyzer(Protocol):
    def analyze(self, text: Any, factory: str | None, args: Any = None) -> list[str]:  # pragma: no cover
        ...


def analyze(document: Document, registry: SchemaRegistry, analyzer: FieldAnalyzer | None = None) -> Document:
    """Return a copy of ``document`` with ``field_terms`` and ``facets`` populated.

    Raises:
        SchemaNotFound: no schema is registered for the document's index.
        AnalyzerError: tokenizing any regular field failed. Nothing is returned
            for the other fields.
    """
    if analyzer is None:
        with open_analyzer() as session:
            return analyze(document, registry, session)

    with create_span(
        "document.analyze",
        attributes={"index": document.index_name, "doc_id": document.id, "fields": len(document.fields)},
    ):
        try:
            schema = registry.get_schema(document.index_name)
            facet_fields, regular_fields = split_fields(schema, document.fields)
            field_terms = [
                (name, get_term_positions(_analyze_field(schema, analyzer, name, value)))
                for name, value in regular_fields
            ]
        except (SchemaNotFound, AnalyzerError) as exc:
            DOCUMENTS_ANALYZED.labels(outcome="error").inc()
            logger.warning("Analysis failed for %s/%s: %s", document.index_name, document.id, exc)
            raise

    DOCUMENTS_ANALYZED.labels(outcome="ok").inc()
    return document.with_analysis(field_terms, facet_fields)


def split_fields(schema: Schema, fields: Iterable[FieldPair]) -> tuple[list[FieldPair], list[FieldPair]]:
    """Partition ``fields`` into (facet, regular), each keeping its relative order."""
    facets: list[FieldPair] = []
    regular: list[FieldPair] = []
    for name, value in fields:
        target = facets if schema.is_field_facet(schema.find_field(name)) else regular
        target.append((name, value))
    return facets, regular


def _analyze_field(schema: Schema, analyzer: FieldAnalyzer, name: str, value: Any) -> list[str]:
    schema_field = schema.find_field(name)
    factory = schema.analyzer_factory(schema_field)
    args = schema.analyzer_args(schema_field)
    try:
        return analyzer.analyze(value, factory, args)
    except AnalyzerError:
        raise
    except Exception as exc:
        raise AnalyzerError(f"Field '{name}' could not be analyzed: {exc}") from exc


def get_term_positions(tokens: Sequence[str]) -> TermPositions:
    """Map each term to the 1-based positions where it occurs.

    >>> get_term_positions(["a", "b", "a"])
    (('a', (1, 3)), ('b', (2,)))
    """
    table: dict[str, list[int]] = {}
    for position, term in enumerate(tokens, start=1):
        table.setdefault(term, []).append(position)
    return tuple((term, tuple(positions)) for term, positions in table.items())


def build_props(positions: Sequence[int], facets: Iterable[FieldPair]) -> dict[str, Any]:
    """Posting properties: ``word_pos`` and ``freq`` followed by facets.

    A facet named ``word_pos`` or ``freq`` never shadows the positional entries.
    """
    props: dict[str, Any] = {"word_pos": list(positions), "freq": len(positions)}
    for name, value in facets:
        props.setdefault(name, value)
    return props


def fold_terms(fn: Callable[[str, str, tuple[int, ...], A], A], acc: A, document: Document) -> A:
    """Fold ``fn(field_name, term, positions, acc)`` over every analyzed term."""
    for field_name, table in document.field_terms:
        for term, positions in table:
            acc = fn(field_name, term, positions, acc)
    return acc


def postings(document: Document) -> list[Posting]:
    """Flatten an analyzed document into postings, in field then term order."""

    def visit(field_name: str, term: str, positions: tuple[int, ...], acc: list[Posting]) -> list[Posting]:
        acc.append(
            Posting(
                index_name=document.index_name,
                field_name=field_name,
                term=term,
                doc_id=document.id,
                properties=build_props(positions, document.facets),
            )
        )
        return acc

    result = fold_terms(visit, [], document)
    POSTINGS_GENERATED.labels(index=document.index_name).inc(len(result))
    return result
