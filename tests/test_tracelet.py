#!/usr/bin/env python
"""
test_tracelet.py
~~~~~~~~~~~~~~~~

Unit tests for the tracelet span model, tracer and propagation.

Tests:
    1. Span annotations, metadata, flags and closing rules
    2. SpanContext traceparent encoding
    3. Scoped spans close on every exit path
    4. Synchronous and asynchronous propagation
    5. Sinks and configuration
"""

from __future__ import annotations

import logging
import os
import tempfile
import unittest
from unittest import mock

import orjson

from tracelet import (
    JsonLinesExporter,
    Span,
    SpanClosedError,
    SpanContext,
    SpanRecorder,
    Tracer,
    TracingConfig,
    build_tracer,
    configure,
    extract_context,
    extract_link,
    get_config,
    get_injection_headers,
    inject_context,
    inject_link,
    reset_config,
)


class TestSpan(unittest.TestCase):
    """Tests for Span."""

    def test_new_span_is_root_with_fresh_ids(self) -> None:
        span = Span(name="create-order")
        self.assertTrue(span.is_root)
        self.assertEqual(len(span.trace_id), 32)
        self.assertEqual(len(span.span_id), 16)
        self.assertFalse(span.closed)

    def test_annotation_overwrites_duplicate_key(self) -> None:
        span = Span(name="save-order")
        span.add_annotation("result", "pending")
        span.add_annotation("result", "saved")
        self.assertEqual(span.annotations, {"result": "saved"})

    def test_annotation_rejects_non_scalar(self) -> None:
        span = Span(name="save-order")
        with self.assertRaises(TypeError):
            span.add_annotation("order", {"orderId": "abc"})
        with self.assertRaises(ValueError):
            span.add_annotation("", "x")

    def test_metadata_accepts_structures(self) -> None:
        span = Span(name="inventory-check")
        span.add_metadata("inventoryDetail", {"available": True, "price": 79.99})
        self.assertEqual(span.metadata["inventoryDetail"]["price"], 79.99)

    def test_record_error_sets_flag_and_detail(self) -> None:
        span = Span(name="send-email")
        span.record_error(TimeoutError("provider timeout"))
        self.assertTrue(span.error)
        self.assertFalse(span.fault)
        self.assertEqual(span.metadata["error"], {"type": "TimeoutError", "message": "provider timeout"})

        span.record_error("boom", fault=True)
        self.assertTrue(span.fault)
        self.assertFalse(span.closed)

    def test_close_is_idempotent(self) -> None:
        span = Span(name="catalog-lookup")
        self.assertTrue(span.close())
        end = span.end_time_ns
        self.assertFalse(span.close())
        self.assertEqual(span.end_time_ns, end)
        self.assertGreaterEqual(span.end_time_ns, span.start_time_ns)

    def test_mutation_after_close_raises(self) -> None:
        span = Span(name="catalog-lookup")
        span.close()
        with self.assertRaises(SpanClosedError):
            span.add_annotation("productName", "USB-C Hub")
        with self.assertRaises(SpanClosedError):
            span.set_throttle()

    def test_end_time_never_precedes_start(self) -> None:
        span = Span(name="x", start_time_ns=2_000)
        span.close(end_time_ns=1_000)
        self.assertEqual(span.end_time_ns, 2_000)

    def test_to_document(self) -> None:
        span = Span(name="create-order", service="orderflow", start_time_ns=1_500_000_000)
        span.add_annotation("orderId", "o-1")
        span.close(end_time_ns=2_500_000_000)
        doc = span.to_document()
        self.assertEqual(doc["id"], span.span_id)
        self.assertIsNone(doc["parent_id"])
        self.assertEqual(doc["service"], "orderflow")
        self.assertEqual(doc["start_time"], 1.5)
        self.assertEqual(doc["end_time"], 2.5)
        self.assertEqual(doc["annotations"], {"orderId": "o-1"})
        self.assertEqual(doc["links"], [])
        for key in ("error", "fault", "throttle"):
            self.assertFalse(doc[key])


class TestSpanContext(unittest.TestCase):
    """Tests for traceparent encoding."""

    TRACE_ID = "0af7651916cd43dd8448eb211c80319c"
    SPAN_ID = "b7ad6b7169203331"

    def test_round_trip(self) -> None:
        header = f"00-{self.TRACE_ID}-{self.SPAN_ID}-01"
        context = SpanContext.from_traceparent(header)
        self.assertIsNotNone(context)
        self.assertTrue(context.is_remote)
        self.assertTrue(context.is_sampled)
        self.assertEqual(context.to_traceparent(), header)

    def test_malformed_headers_are_rejected(self) -> None:
        for header in (
            "",
            "garbage",
            f"01-{self.TRACE_ID}-{self.SPAN_ID}-01",
            f"00-{'0' * 32}-{self.SPAN_ID}-01",
            f"00-{self.TRACE_ID}-{'z' * 16}-01",
            f"00-{self.TRACE_ID[:-1]}-{self.SPAN_ID}-01",
        ):
            with self.subTest(header=header):
                self.assertIsNone(SpanContext.from_traceparent(header))


class TestTracer(unittest.TestCase):
    """Tests for scoped span management."""

    def setUp(self) -> None:
        self.recorder = SpanRecorder()
        self.tracer = Tracer("orderflow", sink=self.recorder)

    def test_children_inherit_trace(self) -> None:
        with self.tracer.start_span("create-order") as root:
            with self.tracer.start_span("input-validation", parent=root) as child:
                pass
        self.assertEqual(child.trace_id, root.trace_id)
        self.assertEqual(child.parent_span_id, root.span_id)
        self.assertEqual([s.name for s in self.recorder.spans()], ["input-validation", "create-order"])

    def test_exception_records_fault_and_closes(self) -> None:
        with self.assertRaises(RuntimeError):
            with self.tracer.start_span("save-order") as span:
                raise RuntimeError("disk full")
        self.assertTrue(span.closed)
        self.assertTrue(span.fault)
        self.assertEqual(span.metadata["error"]["message"], "disk full")
        self.assertEqual(len(self.recorder), 1)

    def test_early_return_closes(self) -> None:
        def step() -> str:
            with self.tracer.start_span("get-order-by-id") as span:
                span.add_annotation("found", False)
                return "missing"

        self.assertEqual(step(), "missing")
        self.assertTrue(self.recorder.spans()[0].closed)

    def test_initial_annotations(self) -> None:
        with self.tracer.start_span("check-inventory", annotations={"productId": "PROD-001"}) as span:
            pass
        self.assertEqual(span.annotations["productId"], "PROD-001")

    def test_double_close_delivers_once(self) -> None:
        span = self.tracer.open_span("manual")
        self.tracer.close_span(span)
        self.tracer.close_span(span)
        self.assertEqual(len(self.recorder), 1)

    def test_sink_failure_does_not_propagate(self) -> None:
        sink = mock.Mock()
        sink.record.side_effect = RuntimeError("sink down")
        tracer = Tracer("orderflow", sink=sink)
        with tracer.start_span("create-order") as span:
            pass
        self.assertTrue(span.closed)

    def test_disabled_tracer_records_nothing(self) -> None:
        tracer = Tracer("orderflow", sink=self.recorder, enabled=False)
        with tracer.start_span("create-order") as root:
            root.add_annotation("orderId", "o-1")
            root.record_error("ignored")
            with tracer.start_span("input-validation", parent=root):
                pass
        self.assertEqual(len(self.recorder), 0)
        self.assertEqual(get_injection_headers(root), {})


class TestPropagation(unittest.TestCase):
    """Tests for synchronous and asynchronous propagation."""

    def setUp(self) -> None:
        self.recorder = SpanRecorder()
        self.tracer = Tracer("orderflow", sink=self.recorder)

    def test_sync_callee_joins_caller_trace(self) -> None:
        with self.tracer.start_span("inventory-check") as caller:
            envelope: dict[str, str] = {}
            inject_context(envelope, caller)
            parent = extract_context(envelope)
            with self.tracer.start_span("check-inventory", parent=parent) as callee:
                pass
        self.assertTrue(parent.is_remote)
        self.assertEqual(callee.trace_id, caller.trace_id)
        self.assertEqual(callee.parent_span_id, caller.span_id)

    def test_extract_is_case_insensitive(self) -> None:
        with self.tracer.start_span("x") as span:
            headers = {"TraceParent": span.context.to_traceparent()}
        self.assertEqual(extract_context(headers), span.context)

    def test_extract_missing_or_invalid(self) -> None:
        self.assertIsNone(extract_context(None))
        self.assertIsNone(extract_context({}))
        self.assertIsNone(extract_context({"traceparent": "not-a-trace"}))

    def test_async_callee_starts_linked_trace(self) -> None:
        with self.tracer.start_span("trigger-notification") as origin:
            payload = {"orderId": "o-1"}
            inject_link(payload, origin)

        link = extract_link(orjson.loads(orjson.dumps(payload)))
        with self.tracer.start_span("send-notification", links=[link]) as callee:
            pass

        self.assertNotEqual(callee.trace_id, origin.trace_id)
        self.assertTrue(callee.is_root)
        self.assertEqual(callee.links[0].trace_id, origin.trace_id)
        self.assertEqual(callee.links[0].span_id, origin.span_id)
        self.assertEqual(
            callee.to_document()["links"][0]["attributes"], {"link.type": "async_invocation"}
        )

    def test_extract_link_without_carrier(self) -> None:
        self.assertIsNone(extract_link({"orderId": "o-1"}))
        self.assertIsNone(extract_link({"_trace": "bogus"}))
        self.assertIsNone(extract_link(None))


class TestSinks(unittest.TestCase):
    """Tests for span sinks."""

    def test_recorder_drops_oldest(self) -> None:
        recorder = SpanRecorder(capacity=2)
        tracer = Tracer("orderflow", sink=recorder)
        for name in ("a", "b", "c"):
            with tracer.start_span(name):
                pass
        self.assertEqual([s.name for s in recorder.spans()], ["b", "c"])
        self.assertEqual(recorder.dropped_count, 1)

    def test_recorder_filters(self) -> None:
        recorder = SpanRecorder()
        tracer = Tracer("orderflow", sink=recorder)
        with tracer.start_span("create-order") as root:
            with tracer.start_span("save-order", parent=root):
                pass
        with tracer.start_span("get-orders"):
            pass
        self.assertEqual(len(recorder.spans(root.trace_id)), 2)
        self.assertEqual(len(recorder.find("get-orders")), 1)
        self.assertEqual(len(recorder.trace_ids()), 2)
        recorder.clear()
        self.assertEqual(len(recorder), 0)

    def test_recorder_rejects_zero_capacity(self) -> None:
        with self.assertRaises(ValueError):
            SpanRecorder(capacity=0)

    def test_json_lines_exporter(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "spans.jsonl")
            exporter = JsonLinesExporter(path)
            tracer = Tracer("orderflow", sink=exporter)
            with tracer.start_span("create-order") as span:
                span.add_annotation("orderId", "o-1")
            with open(path, "rb") as f:
                lines = f.read().splitlines()
        self.assertEqual(exporter.written_count, 1)
        doc = orjson.loads(lines[0])
        self.assertEqual(doc["name"], "create-order")
        self.assertEqual(doc["annotations"]["orderId"], "o-1")


class TestTracingConfig(unittest.TestCase):
    """Tests for TracingConfig."""

    def tearDown(self) -> None:
        reset_config()

    def test_default_values(self) -> None:
        config = TracingConfig()
        self.assertTrue(config.enabled)
        self.assertEqual(config.recorder_capacity, 4096)
        self.assertIsNone(config.export_path)

    @mock.patch.dict(os.environ, {
        "TRACELET_ENABLED": "false",
        "TRACELET_SERVICE_NAME": "orders-test",
        "TRACELET_RECORDER_CAPACITY": "16",
    })
    def test_from_env(self) -> None:
        config = TracingConfig.from_env()
        self.assertFalse(config.enabled)
        self.assertEqual(config.service_name, "orders-test")
        self.assertEqual(config.recorder_capacity, 16)

    def test_validate(self) -> None:
        with self.assertRaises(ValueError):
            TracingConfig(recorder_capacity=0).validate()
        with self.assertRaises(ValueError):
            TracingConfig(log_level="LOUD").validate()

    def test_configure_updates_global(self) -> None:
        configure(service_name="configured", log_level="debug")
        self.assertEqual(get_config().service_name, "configured")
        self.assertEqual(get_config().log_level, "DEBUG")

    def test_build_tracer_uses_recorder(self) -> None:
        recorder = SpanRecorder()
        tracer = build_tracer(TracingConfig(service_name="orderflow"), recorder=recorder)
        with tracer.start_span("create-order") as span:
            pass
        self.assertEqual(span.service, "orderflow")
        self.assertEqual(recorder.spans(), [span])

    @mock.patch.dict(os.environ, {"TRACELET_LOG_LEVEL": "debug"})
    def test_build_tracer_applies_env_log_level(self) -> None:
        tracelet_logger = logging.getLogger("tracelet")
        self.addCleanup(tracelet_logger.setLevel, tracelet_logger.level)

        build_tracer(TracingConfig.from_env())
        self.assertEqual(tracelet_logger.level, logging.DEBUG)


if __name__ == "__main__":
    unittest.main()
