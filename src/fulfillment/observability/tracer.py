"""
Tracers handed to services instead of a tracing mixin.

Every service takes ``tracer`` and ``enable_tracing`` and keeps whichever
tracer it ends up with:

    >>> class CouponLedger:
    ...     def __init__(self, tracer: Tracer | None = None, enable_tracing: bool = True):
    ...         self._tracer = tracer or create_tracer(__name__, enable_tracing)
    ...
    ...     async def redeem(self, code: str) -> None:
    ...         with self._tracer.span("fulfillment.coupons.redeem", {ATTR_COUPON_CODE: code}):
    ...             ...

OpenTelemetry ships in the ``telemetry`` extra. When it is missing every
tracer degrades to :class:`NullTracer`.
"""

from __future__ import annotations

import contextlib
from collections.abc import Iterator
from contextlib import AbstractContextManager
from typing import Any, NamedTuple, Protocol, runtime_checkable

try:
    from opentelemetry import trace

    OTEL_AVAILABLE = True
except ImportError:
    OTEL_AVAILABLE = False
    trace = None  # type: ignore[assignment]

SpanAttributes = dict[str, Any]


@runtime_checkable
class Tracer(Protocol):
    def span(self, name: str, attributes: SpanAttributes | None = None) -> AbstractContextManager[Any]: ...

    @property
    def enabled(self) -> bool: ...


class NullTracer:
    """Opens nothing. ``enabled`` is False so callers can skip building attributes."""

    @contextlib.contextmanager
    def span(self, name: str, attributes: SpanAttributes | None = None) -> Iterator[None]:
        yield None

    @property
    def enabled(self) -> bool:
        return False


class OpenTelemetryTracer:
    def __init__(self, tracer_name: str) -> None:
        if trace is None:
            raise ImportError("opentelemetry is not installed; install fulfillment[telemetry]")
        self._otel = trace.get_tracer(tracer_name)

    def span(self, name: str, attributes: SpanAttributes | None = None) -> AbstractContextManager[Any]:
        return self._otel.start_as_current_span(name, attributes=attributes or {})

    @property
    def enabled(self) -> bool:
        return True


class RecordedSpan(NamedTuple):
    name: str
    attributes: SpanAttributes


class RecordingTracer:
    """
    Keeps every span it is asked to open, in order. Used by tests to check
    which operations a service traced and with which attributes.
    """

    def __init__(self) -> None:
        self.spans: list[RecordedSpan] = []

    @contextlib.contextmanager
    def span(self, name: str, attributes: SpanAttributes | None = None) -> Iterator[None]:
        self.spans.append(RecordedSpan(name, dict(attributes or {})))
        yield None

    @property
    def enabled(self) -> bool:
        return True

    def find(self, name: str) -> list[RecordedSpan]:
        return [recorded for recorded in self.spans if recorded.name == name]

    def clear(self) -> None:
        self.spans.clear()


def should_trace(enable_tracing: bool) -> bool:
    return enable_tracing and OTEL_AVAILABLE


def create_tracer(name: str, enable_tracing: bool = True) -> Tracer:
    """OpenTelemetry-backed when requested and installed, a NullTracer otherwise."""
    if should_trace(enable_tracing):
        return OpenTelemetryTracer(name)
    return NullTracer()


__all__ = [
    "OTEL_AVAILABLE",
    "NullTracer",
    "OpenTelemetryTracer",
    "RecordedSpan",
    "RecordingTracer",
    "SpanAttributes",
    "Tracer",
    "create_tracer",
    "should_trace",
]
