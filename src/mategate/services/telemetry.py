"""Request timing: span trees attached to handler results.

``@traced`` opens a root span around a handler method; ``trace_span``
opens children beneath whatever span is current on this thread. When the
handler returns a ServiceResult the finished tree is stored under
``meta["telemetry"]``, which the dispatcher passes through to the response.

Enabling is process-wide (``--verbose`` on the CLI, or ``verbose = true``
for the MCP server) so request threads spawned by a transport see it; the
current span is per-context. Disabled cost is one Event check per call.
"""

from __future__ import annotations

import functools
import threading
import time
from collections.abc import Callable, Generator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, ParamSpec, TypeVar

import structlog

from mategate.services.result import ServiceResult

log = structlog.get_logger("mategate.telemetry")

_enabled = threading.Event()
_current_span: ContextVar[Span | None] = ContextVar("_current_span", default=None)


@dataclass
class Span:
    """One timed step of a request."""

    name: str
    children: list[Span] = field(default_factory=list)
    annotations: dict[str, Any] = field(default_factory=dict)
    failed: bool = False
    _started: int = field(default_factory=time.perf_counter_ns, repr=False)
    _finished: int | None = field(default=None, repr=False)

    @property
    def duration_ms(self) -> float:
        if self._finished is None:
            return 0.0
        return (self._finished - self._started) / 1_000_000

    def end(self) -> None:
        if self._finished is None:
            self._finished = time.perf_counter_ns()

    def annotate(self, key: str, value: Any) -> None:
        self.annotations[key] = value

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "durationMs": round(self.duration_ms, 2)}
        if self.failed:
            data["failed"] = True
        if self.annotations:
            data["annotations"] = dict(self.annotations)
        if self.children:
            data["children"] = [child.to_dict() for child in self.children]
        return data


@contextmanager
def _open(span: Span) -> Generator[Span]:
    token = _current_span.set(span)
    try:
        yield span
    except BaseException:
        span.failed = True
        raise
    finally:
        span.end()
        _current_span.reset(token)


@contextmanager
def trace_span(name: str) -> Generator[Span | None]:
    """Time a step inside a traced handler.

    Yields None when telemetry is off or no handler span is open, so
    callers guard annotations with ``if span is not None``.
    """
    parent = _current_span.get() if _enabled.is_set() else None
    if parent is None:
        yield None
        return
    child = Span(name=name)
    parent.children.append(child)
    with _open(child):
        yield child


_P = ParamSpec("_P")
_R = TypeVar("_R")


def traced(func: Callable[_P, _R]) -> Callable[_P, _R]:  # noqa: UP047
    """Time a handler method and attach the span tree to its result."""

    @functools.wraps(func)
    def wrapper(*args: _P.args, **kwargs: _P.kwargs) -> _R:
        if not _enabled.is_set():
            return func(*args, **kwargs)

        span = Span(name=func.__qualname__)
        try:
            with _open(span):
                result = func(*args, **kwargs)
        finally:
            log.debug(
                "span.complete",
                span_name=span.name,
                duration_ms=round(span.duration_ms, 2),
                ok=not span.failed,
                children=len(span.children),
            )

        if isinstance(result, ServiceResult):
            meta = {**(result.meta or {}), "telemetry": span.to_dict()}
            return result.model_copy(update={"meta": meta})  # type: ignore[return-value]
        return result

    return wrapper


def enable_telemetry() -> None:
    _enabled.set()


def disable_telemetry() -> None:
    _enabled.clear()


def telemetry_enabled() -> bool:
    return _enabled.is_set()
