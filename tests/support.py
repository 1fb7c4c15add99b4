"""
Shared fakes for the test suite.
"""

from __future__ import annotations

from tracelet import Span


class ScriptedRandom:
    """Random source returning a fixed sequence, then `fallback` forever."""

    def __init__(self, values, fallback: float = 0.5) -> None:
        self._values = list(values)
        self.fallback = fallback
        self.calls = 0

    def random(self) -> float:
        self.calls += 1
        if self._values:
            return self._values.pop(0)
        return self.fallback


class RecordingSleep:
    """Sleeper that records requested durations without waiting."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def span_named(spans: list[Span], name: str) -> Span:
    matches = [span for span in spans if span.name == name]
    if len(matches) != 1:
        raise AssertionError(f"expected one {name!r} span, found {len(matches)}")
    return matches[0]


def assert_well_formed_trace(test, spans: list[Span]) -> None:
    """Every span is closed, and every non-root parent is in the trace."""
    test.assertTrue(spans, "no spans recorded")
    ids = {span.span_id for span in spans}
    roots = [span for span in spans if span.parent_span_id is None]
    test.assertEqual(len(roots), 1, f"expected one root, got {[s.name for s in roots]}")
    for span in spans:
        test.assertTrue(span.closed, f"{span.name} left open")
        test.assertGreaterEqual(span.end_time_ns, span.start_time_ns)
        if span.parent_span_id is not None:
            test.assertIn(span.parent_span_id, ids, f"{span.name} has a dangling parent")
