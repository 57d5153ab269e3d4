"""Per-task log context.

Every log record emitted while a search or index build runs carries the
trace ids of the current span plus whatever fields the operation bound
(operation name, index generation). The context lives in a ContextVar, so it
follows asyncio tasks and ``asyncio.to_thread`` calls automatically.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any
from uuid import uuid4


_log_context: ContextVar[dict[str, Any] | None] = ContextVar("entity_search_log_context", default=None)


def new_trace_id() -> str:
    return uuid4().hex


def new_span_id() -> str:
    return uuid4().hex[:16]


def current_context() -> dict[str, Any]:
    """Return the active context, starting a fresh trace if none exists."""
    ctx = _log_context.get()
    if not ctx or not ctx.get("trace_id"):
        ctx = {"trace_id": new_trace_id(), "span_id": new_span_id()}
        _log_context.set(ctx)
    return ctx


def set_trace_ids(trace_id: str, span_id: str) -> None:
    """Adopt ids from an upstream caller, keeping any bound fields."""
    _log_context.set({**(_log_context.get() or {}), "trace_id": trace_id, "span_id": span_id})


@contextmanager
def span_scope(span_id: str) -> Iterator[None]:
    """Point log records at ``span_id`` until the block exits."""
    token = _log_context.set({**current_context(), "span_id": span_id})
    try:
        yield
    finally:
        _log_context.reset(token)


@contextmanager
def bound_fields(**fields: Any) -> Iterator[dict[str, Any]]:
    """Attach ``fields`` to every log record emitted inside the block."""
    token = _log_context.set({**current_context(), **fields})
    try:
        yield _log_context.get() or {}
    finally:
        _log_context.reset(token)
