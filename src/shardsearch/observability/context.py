"""Context propagation for log correlation across async boundaries."""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING
from uuid import uuid4


if TYPE_CHECKING:
    from collections.abc import Generator

# Per-task context carrying trace ids plus partition/node labels
log_context: ContextVar[dict | None] = ContextVar("log_context", default=None)


def generate_trace_id() -> str:
    """Generate a 32-char hex trace ID."""
    return uuid4().hex


def generate_span_id() -> str:
    """Generate a 16-char hex span ID."""
    return uuid4().hex[:16]


def get_log_context() -> dict:
    """Get current context, creating trace/span ids on first use."""
    ctx = log_context.get()
    if ctx is None or not ctx.get("trace_id"):
        ctx = {"trace_id": generate_trace_id(), "span_id": generate_span_id(), **(ctx or {})}
        log_context.set(ctx)
    return ctx


def update_span_id(span_id: str) -> None:
    """Update span_id while preserving everything else."""
    ctx = log_context.get() or {}
    log_context.set({**ctx, "span_id": span_id})


@contextmanager
def bound_context(**labels: object) -> Generator[dict, None, None]:
    """Temporarily add labels (partition, node, index...) to the log context."""
    current = get_log_context()
    token = log_context.set({**current, **labels})
    try:
        yield log_context.get() or {}
    finally:
        log_context.reset(token)
