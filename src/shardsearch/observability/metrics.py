"""Prometheus metrics for indexing and partition routing."""

from __future__ import annotations

from contextlib import contextmanager
import time
from typing import TYPE_CHECKING

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest


if TYPE_CHECKING:
    from collections.abc import Generator


COMMANDS_DISPATCHED = Counter(
    "shardsearch_commands_dispatched_total",
    "Partition commands dispatched, by command kind and outcome",
    ["command", "outcome"],
)

DISPATCH_LATENCY = Histogram(
    "shardsearch_dispatch_latency_seconds",
    "Time spent dispatching a partition command",
    ["command"],
    buckets=(0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
)

STREAMS_IGNORED = Counter(
    "shardsearch_streams_ignored_total",
    "Stream commands addressed to another partition or node",
)

STREAM_RESULTS = Counter(
    "shardsearch_stream_results_total",
    "Results emitted by partition streams",
)

POSTINGS_GENERATED = Counter(
    "shardsearch_postings_generated_total",
    "Postings produced from analyzed documents",
    ["index"],
)

DOCUMENTS_ANALYZED = Counter(
    "shardsearch_documents_analyzed_total",
    "Documents passed through analysis, by outcome",
    ["outcome"],
)


@contextmanager
def track_latency(histogram: Histogram, **labels: str) -> Generator[None, None, None]:
    """Observe elapsed wall time on ``histogram``."""
    start = time.perf_counter()
    try:
        yield
    finally:
        target = histogram.labels(**labels) if labels else histogram
        target.observe(time.perf_counter() - start)


def get_metrics() -> bytes:
    """Render the default registry in Prometheus text format."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
