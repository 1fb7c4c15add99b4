"""
Span data structures for tracelet.

A span is one timed unit of work. Spans that share a trace id form a
trace; a span's parent is the enclosing span (or nothing, for a root).

Span Lifecycle:
    1. Created when work begins (start time captured)
    2. Annotations and metadata added during execution
    3. Closed when work ends (end time captured), on every exit path
    4. Handed to a sink, serialized with to_document()

Annotations are indexed by the tracing backend and must be scalars.
Metadata is stored but not indexed, so any JSON-able value is accepted.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from .exceptions import SpanClosedError
from .types import ANNOTATION_TYPES, AnnotationValue

__all__ = [
    "SpanLink",
    "SpanContext",
    "Span",
]


@dataclass(slots=True)
class SpanLink:
    """
    A reference to a span in another trace.

    Links are used when spans are causally related but not parent-child,
    e.g. the work triggered by a fire-and-forget call.
    """
    trace_id: str
    span_id: str
    attributes: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            'trace_id': self.trace_id,
            'span_id': self.span_id,
            'attributes': dict(self.attributes),
        }


class SpanContext:
    """
    Identity of a span, as carried across a call boundary.

    Encodes to and from the W3C traceparent format:
        00-{trace_id}-{span_id}-{trace_flags}
    """

    __slots__ = ('trace_id', 'span_id', 'trace_flags', 'is_remote')

    def __init__(
        self,
        trace_id: str,
        span_id: str,
        trace_flags: int = 1,
        is_remote: bool = False,
    ) -> None:
        self.trace_id = trace_id
        self.span_id = span_id
        self.trace_flags = trace_flags
        self.is_remote = is_remote

    def __repr__(self) -> str:
        return f"<SpanContext trace_id={self.trace_id} span_id={self.span_id} remote={self.is_remote}>"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SpanContext):
            return NotImplemented
        return (self.trace_id, self.span_id, self.trace_flags) == (
            other.trace_id, other.span_id, other.trace_flags
        )

    def __hash__(self) -> int:
        return hash((self.trace_id, self.span_id, self.trace_flags))

    @property
    def is_valid(self) -> bool:
        """Check if context has valid trace and span IDs."""
        return (
            len(self.trace_id) == 32
            and len(self.span_id) == 16
            and _is_hex(self.trace_id)
            and _is_hex(self.span_id)
            and self.trace_id != '0' * 32
            and self.span_id != '0' * 16
        )

    @property
    def is_sampled(self) -> bool:
        return bool(self.trace_flags & 0x01)

    def to_traceparent(self) -> str:
        """
        Convert to W3C traceparent header format.

        Example: 00-0af7651916cd43dd8448eb211c80319c-b7ad6b7169203331-01
        """
        return f"00-{self.trace_id}-{self.span_id}-{self.trace_flags:02x}"

    @classmethod
    def from_traceparent(cls, header: str) -> SpanContext | None:
        """
        Parse a W3C traceparent header.

        Returns:
            A remote SpanContext, or None if the header is malformed
        """
        try:
            parts = header.strip().split('-')
            if len(parts) != 4 or parts[0] != '00' or len(parts[3]) != 2:
                return None
            context = cls(
                trace_id=parts[1].lower(),
                span_id=parts[2].lower(),
                trace_flags=int(parts[3], 16),
                is_remote=True,
            )
        except (AttributeError, ValueError):
            return None
        return context if context.is_valid else None


def _is_hex(value: str) -> bool:
    try:
        int(value, 16)
    except ValueError:
        return False
    return True


class Span:
    """
    A single timed unit of work within a trace.

    Attributes:
        trace_id: 32-char hex string, identifies the entire trace
        span_id: 16-char hex string, identifies this span
        parent_span_id: 16-char hex string, parent span (None for root)
        name: Human-readable span name (e.g., "inventory-check")
        service: Name of the service that produced the span
        start_time_ns: Start time in nanoseconds since epoch
        end_time_ns: End time in nanoseconds since epoch (None while open)
        annotations: Indexed scalar key-value pairs
        metadata: Unindexed structured key-value pairs
        error: Client-caused failure (4xx class)
        fault: Internal failure (5xx class)
        throttle: Request was throttled
        links: References to spans in other traces

    !!! example "Creating a Span"
        ```python
        span = Span(name="catalog-lookup", trace_id=parent.trace_id,
                    parent_span_id=parent.span_id)
        span.add_annotation("productName", "USB-C Hub")
        span.close()
        ```
    """

    __slots__ = (
        'trace_id',
        'span_id',
        'parent_span_id',
        'name',
        'service',
        'start_time_ns',
        'end_time_ns',
        'annotations',
        'metadata',
        'error',
        'fault',
        'throttle',
        'links',
        '_closed',
    )

    def __init__(
        self,
        name: str,
        trace_id: str | None = None,
        span_id: str | None = None,
        parent_span_id: str | None = None,
        service: str = "unknown-service",
        start_time_ns: int | None = None,
        links: list[SpanLink] | None = None,
    ) -> None:
        self.trace_id = trace_id or self._generate_trace_id()
        self.span_id = span_id or self._generate_span_id()
        self.parent_span_id = parent_span_id
        self.name = name
        self.service = service
        self.start_time_ns = start_time_ns or time.time_ns()
        self.end_time_ns: int | None = None
        self.annotations: dict[str, AnnotationValue] = {}
        self.metadata: dict[str, Any] = {}
        self.error = False
        self.fault = False
        self.throttle = False
        self.links: list[SpanLink] = list(links) if links else []
        self._closed = False

    def __repr__(self) -> str:
        return f"<Span {self.name!r} id={self.span_id} trace_id={self.trace_id}>"

    @staticmethod
    def _generate_trace_id() -> str:
        return uuid.uuid4().hex

    @staticmethod
    def _generate_span_id() -> str:
        return uuid.uuid4().hex[:16]

    @property
    def context(self) -> SpanContext:
        """The propagatable identity of this span."""
        return SpanContext(trace_id=self.trace_id, span_id=self.span_id)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_root(self) -> bool:
        return self.parent_span_id is None

    def _check_open(self) -> None:
        if self._closed:
            raise SpanClosedError(self.name, self.span_id)

    def add_annotation(self, key: str, value: Any) -> Span:
        """
        Attach an indexed annotation.

        A duplicate key overwrites the previous value.

        Args:
            key: Non-empty annotation key (e.g., "orderId")
            value: str, int, float or bool

        Raises:
            TypeError: If the value is not a scalar
            ValueError: If the key is empty
            SpanClosedError: If the span has already been closed
        """
        self._check_open()
        if not isinstance(key, str) or not key:
            raise ValueError(f"annotation key must be a non-empty string, got {key!r}")
        if not isinstance(value, ANNOTATION_TYPES):
            raise TypeError(
                f"annotation {key!r} must be str, int, float or bool, got {type(value).__name__}"
            )
        self.annotations[key] = value
        return self

    def add_metadata(self, key: str, value: Any) -> Span:
        """Attach an unindexed metadata entry. A duplicate key overwrites."""
        self._check_open()
        if not isinstance(key, str) or not key:
            raise ValueError(f"metadata key must be a non-empty string, got {key!r}")
        self.metadata[key] = value
        return self

    def record_error(self, error: BaseException | str, fault: bool = False) -> Span:
        """
        Mark the span as failed and keep the error detail as metadata.

        Does not close the span.

        Args:
            error: The exception (or message) to record
            fault: True for an internal fault, False for a client-caused error
        """
        self._check_open()
        if fault:
            self.fault = True
        else:
            self.error = True
        if isinstance(error, BaseException):
            detail = {'type': type(error).__name__, 'message': str(error)}
        else:
            detail = {'type': 'Error', 'message': str(error)}
        self.metadata['error'] = detail
        return self

    def set_throttle(self) -> Span:
        self._check_open()
        self.throttle = True
        return self

    def close(self, end_time_ns: int | None = None) -> bool:
        """
        Close the span and record its end time.

        Returns:
            True if this call closed the span, False if it was already closed
        """
        if self._closed:
            return False
        end = end_time_ns or time.time_ns()
        self.end_time_ns = max(end, self.start_time_ns)
        self._closed = True
        return True

    @property
    def duration_ms(self) -> float | None:
        """Duration in milliseconds (None if not closed)."""
        if self.end_time_ns is None:
            return None
        return (self.end_time_ns - self.start_time_ns) / 1_000_000

    def to_document(self) -> dict[str, Any]:
        """
        Convert the span to the document ingested by the tracing backend.

        Times are float seconds since the epoch.
        """
        return {
            'trace_id': self.trace_id,
            'id': self.span_id,
            'parent_id': self.parent_span_id,
            'name': self.name,
            'service': self.service,
            'start_time': self.start_time_ns / 1_000_000_000,
            'end_time': self.end_time_ns / 1_000_000_000 if self.end_time_ns is not None else None,
            'annotations': dict(self.annotations),
            'metadata': dict(self.metadata),
            'error': self.error,
            'fault': self.fault,
            'throttle': self.throttle,
            'links': [link.to_dict() for link in self.links],
        }
