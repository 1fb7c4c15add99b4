"""
Span lifecycle exceptions for tracelet.
"""

__all__ = [
    "SpanClosedError",
]


class SpanClosedError(Exception):
    """Raised when a closed span is annotated or otherwise mutated."""

    def __init__(self, name: str, span_id: str) -> None:
        self.name = name
        self.span_id = span_id
        super().__init__(f"Span {name!r} ({span_id}) is already closed")
