"""Trace context shared between log records, spans and request handlers."""

from __future__ import annotations

from contextvars import ContextVar
from uuid import uuid4


# Per-task/per-thread trace correlation
trace_context: ContextVar[dict | None] = ContextVar("athlete_search_trace_context", default=None)


def generate_trace_id() -> str:
    """Generate a 32-char hex trace ID."""
    return uuid4().hex


def generate_span_id() -> str:
    """Generate a 16-char hex span ID."""
    return uuid4().hex[:16]


def get_trace_context() -> dict:
    """Return the current trace context, creating one on first use."""
    ctx = trace_context.get()
    if ctx is None or not ctx.get("trace_id"):
        ctx = {"trace_id": generate_trace_id(), "span_id": generate_span_id()}
        trace_context.set(ctx)
    return ctx


def set_trace_context(trace_id: str, span_id: str, **extra: object) -> None:
    """Replace the trace context; ``extra`` keys (e.g. ``search_mode``) are logged too."""
    trace_context.set({"trace_id": trace_id, "span_id": span_id, **extra})


def update_span_id(span_id: str) -> None:
    """Update span_id while preserving trace_id and extra keys."""
    ctx = trace_context.get() or {}
    trace_context.set({**ctx, "span_id": span_id})
