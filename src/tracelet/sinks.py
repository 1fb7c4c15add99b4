"""
Span sinks: where closed spans go.

A tracer hands every span to its sink exactly once, at close time.

- SpanRecorder keeps the most recent spans in a bounded in-memory buffer.
  Oldest spans are dropped on overflow; recording never blocks or fails.
- JsonLinesExporter appends each span's backend document to a file, one
  JSON object per line.
- FanOutSink forwards to several sinks.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from pathlib import Path
from typing import Protocol, runtime_checkable

import orjson

from .models import Span

logger = logging.getLogger("tracelet.sinks")

__all__ = [
    "SpanSink",
    "SpanRecorder",
    "JsonLinesExporter",
    "FanOutSink",
]


@runtime_checkable
class SpanSink(Protocol):
    """Protocol for receivers of closed spans."""

    def record(self, span: Span) -> None:
        ...


class SpanRecorder:
    """
    Bounded in-memory store of closed spans.

    Attributes:
        capacity: Maximum number of spans retained.

    !!! example
        ```python
        recorder = SpanRecorder(capacity=1024)
        tracer = Tracer("orderflow", sink=recorder)
        ...
        for span in recorder.spans(trace_id):
            print(span.name, span.duration_ms)
        ```
    """

    __slots__ = ('capacity', '_spans', '_dropped', '_lock')

    def __init__(self, capacity: int = 4096) -> None:
        if capacity < 1:
            raise ValueError("Capacity must be at least 1")
        self.capacity = capacity
        self._spans: deque[Span] = deque()
        self._dropped = 0
        self._lock = threading.Lock()

    def record(self, span: Span) -> None:
        with self._lock:
            if len(self._spans) >= self.capacity:
                self._spans.popleft()
                self._dropped += 1
            self._spans.append(span)

    def spans(self, trace_id: str | None = None) -> list[Span]:
        """Recorded spans in close order, optionally for a single trace."""
        with self._lock:
            if trace_id is None:
                return list(self._spans)
            return [span for span in self._spans if span.trace_id == trace_id]

    def find(self, name: str) -> list[Span]:
        """Recorded spans with the given name."""
        with self._lock:
            return [span for span in self._spans if span.name == name]

    def trace_ids(self) -> list[str]:
        """Distinct trace ids, in order of first appearance."""
        with self._lock:
            return list(dict.fromkeys(span.trace_id for span in self._spans))

    def clear(self) -> None:
        with self._lock:
            self._spans.clear()
            self._dropped = 0

    def __len__(self) -> int:
        return len(self._spans)

    @property
    def dropped_count(self) -> int:
        """Number of spans evicted due to overflow."""
        return self._dropped


class JsonLinesExporter:
    """
    Appends span documents to a JSON-lines file.

    Each span is written as a single line as soon as it is recorded.
    Write failures are logged and swallowed: telemetry must never fail
    the traced request.

    Attributes:
        path: Path to the JSONL output file.
    """

    def __init__(self, path: str | Path = "./spans.jsonl") -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._written = 0
        logger.info(f"JsonLinesExporter initialized: {self.path}")

    def record(self, span: Span) -> None:
        line = orjson.dumps(span.to_document(), default=str) + b"\n"
        try:
            with self._lock, self.path.open("ab") as f:
                f.write(line)
                self._written += 1
        except OSError as e:
            logger.warning(f"Failed to export span {span.span_id}: {e}")

    @property
    def written_count(self) -> int:
        return self._written


class FanOutSink:
    """Forwards each span to every wrapped sink."""

    __slots__ = ('_sinks',)

    def __init__(self, *sinks: SpanSink) -> None:
        self._sinks = tuple(sinks)

    def record(self, span: Span) -> None:
        for sink in self._sinks:
            sink.record(span)
