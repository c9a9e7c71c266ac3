"""Correlation fields carried by every log record of the running task."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, replace
import secrets


@dataclass(frozen=True)
class LogContext:
    trace_id: str
    span_id: str
    snapshot_version: int | None = None

    @classmethod
    def fresh(cls) -> LogContext:
        return cls(trace_id=secrets.token_hex(16), span_id=secrets.token_hex(8))

    def fields(self) -> dict[str, object]:
        data: dict[str, object] = {"trace_id": self.trace_id, "span_id": self.span_id}
        if self.snapshot_version is not None:
            data["snapshot_version"] = self.snapshot_version
        return data


_current: ContextVar[LogContext | None] = ContextVar("folklore_log_context", default=None)


def current_context() -> LogContext:
    """Return the context of the running task, starting a new trace if there is none."""
    ctx = _current.get()
    if ctx is None:
        ctx = LogContext.fresh()
        _current.set(ctx)
    return ctx


@contextmanager
def bound_context(**changes: object) -> Iterator[LogContext]:
    """Override context fields until the block exits.

    Example:
        with bound_context(snapshot_version=snapshot.version):
            logger.info("searching")  # record carries snapshot_version
    """
    ctx = replace(current_context(), **changes)
    token = _current.set(ctx)
    try:
        yield ctx
    finally:
        _current.reset(token)
