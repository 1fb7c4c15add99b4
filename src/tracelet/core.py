"""
Tracer and scoped span management for tracelet.

This module provides the core tracing API:
- Tracer: creates spans and hands them to a sink when they close
- start_span(): scoped acquisition, the span is closed on every exit path

There is no ambient "current span". The parent handle is passed
explicitly to every call that opens a child span, and outbound calls
carry it in their envelope (see tracelet.propagation).

Usage:
    from tracelet import Tracer, SpanRecorder

    tracer = Tracer("orderflow", sink=SpanRecorder())

    with tracer.start_span("create-order") as root:
        root.add_annotation("orderId", order_id)
        with tracer.start_span("input-validation", parent=root) as span:
            span.add_annotation("result", "pass")

    # Async code uses the same form:
    async def handler(parent):
        with tracer.start_span("inventory-db-query", parent=parent) as span:
            await asyncio.sleep(0.05)
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from .config import TracingConfig, get_config
from .models import Span, SpanContext, SpanLink
from .sinks import FanOutSink, JsonLinesExporter, SpanRecorder, SpanSink

logger = logging.getLogger("tracelet.core")

__all__ = [
    "Tracer",
    "build_tracer",
]


class Tracer:
    """
    Creates spans for one service and delivers them to a sink.

    Attributes:
        service: Service name stamped on every span
        sink: Receiver of closed spans (None discards them)
        enabled: When False, start_span() yields no-op spans
    """

    __slots__ = ('service', 'sink', 'enabled')

    def __init__(
        self,
        service: str,
        sink: SpanSink | None = None,
        enabled: bool = True,
    ) -> None:
        self.service = service
        self.sink = sink
        self.enabled = enabled

    def __repr__(self) -> str:
        return f"<Tracer {self.service!r} enabled={self.enabled}>"

    @contextmanager
    def start_span(
        self,
        name: str,
        parent: Span | SpanContext | None = None,
        links: list[SpanLink] | None = None,
        annotations: Mapping[str, Any] | None = None,
    ) -> Iterator[Span]:
        """
        Open a span as a context manager.

        The span is closed when the block exits, whether it returns
        normally, returns early or raises. An exception escaping the block
        is recorded as a fault and re-raised.

        Args:
            name: Span name (e.g., "inventory-check")
            parent: Enclosing span, or a remote SpanContext received in a
                call envelope. None starts a new trace.
            links: References to spans in other traces
            annotations: Initial annotations

        Yields:
            The open Span

        !!! example "Continuing a remote trace"
            ```python
            parent = extract_context(envelope)
            with tracer.start_span("check-inventory", parent=parent) as span:
                ...
            ```
        """
        if not self.enabled:
            yield _NoOpSpan(name)
            return

        span = self.open_span(name, parent=parent, links=links)
        if annotations:
            for key, value in annotations.items():
                span.add_annotation(key, value)

        try:
            yield span
        except Exception as e:
            if not span.closed:
                span.record_error(e, fault=True)
            raise
        finally:
            self.close_span(span)

    def open_span(
        self,
        name: str,
        parent: Span | SpanContext | None = None,
        links: list[SpanLink] | None = None,
    ) -> Span:
        """
        Create a span without a context manager.

        The caller must pass the span to close_span() on every exit path.
        Prefer start_span().
        """
        if parent is None:
            trace_id, parent_span_id = None, None
        else:
            trace_id, parent_span_id = parent.trace_id, parent.span_id

        return Span(
            name=name,
            trace_id=trace_id,
            parent_span_id=parent_span_id,
            service=self.service,
            links=links,
        )

    def close_span(self, span: Span) -> None:
        """Close the span and deliver it to the sink, once."""
        if not span.close():
            logger.warning(f"Span {span.name!r} ({span.span_id}) closed more than once")
            return
        if self.sink is None:
            return
        try:
            self.sink.record(span)
        except Exception as e:
            logger.warning(f"Span sink rejected {span.name!r}: {e}")


class _NoOpSpan:
    """
    A span that records nothing, handed out when tracing is disabled.

    Accepts every Span call so instrumented code needs no None checks.
    """

    __slots__ = ('name', 'trace_id', 'span_id', 'parent_span_id', 'annotations', 'metadata')

    def __init__(self, name: str) -> None:
        self.name = name
        self.trace_id = ""
        self.span_id = ""
        self.parent_span_id = None
        self.annotations: dict[str, Any] = {}
        self.metadata: dict[str, Any] = {}

    @property
    def context(self) -> SpanContext:
        return SpanContext(trace_id=self.trace_id, span_id=self.span_id)

    @property
    def closed(self) -> bool:
        return False

    def add_annotation(self, key: str, value: Any) -> _NoOpSpan:
        return self

    def add_metadata(self, key: str, value: Any) -> _NoOpSpan:
        return self

    def record_error(self, error: BaseException | str, fault: bool = False) -> _NoOpSpan:
        return self

    def set_throttle(self) -> _NoOpSpan:
        return self

    def close(self, end_time_ns: int | None = None) -> bool:
        return False


def build_tracer(
    config: TracingConfig | None = None,
    recorder: SpanRecorder | None = None,
) -> Tracer:
    """
    Build a tracer from configuration.

    Spans go to an in-memory recorder and, when export_path is set, to a
    JSON-lines exporter as well.

    Args:
        config: Configuration (defaults to get_config())
        recorder: Recorder to use instead of a fresh one

    Returns:
        Tracer instance
    """
    config = config or get_config()
    config.validate()
    logging.getLogger("tracelet").setLevel(getattr(logging, config.log_level))
    recorder = recorder if recorder is not None else SpanRecorder(config.recorder_capacity)

    sink: SpanSink = recorder
    if config.export_path:
        sink = FanOutSink(recorder, JsonLinesExporter(config.export_path))

    logger.info(f"Tracer built for {config.service_name} (enabled={config.enabled})")
    return Tracer(config.service_name, sink=sink, enabled=config.enabled)
