"""
tracelet
~~~~~~~~

Explicit-handle span tracing with annotations, metadata and links.
"""

from .config import TracingConfig, configure, get_config, reset_config
from .core import Tracer, build_tracer
from .exceptions import SpanClosedError
from .faults import FaultBranch, FaultSimulator, OutcomePolicy, RandomSource, Simulation
from .models import Span, SpanContext, SpanLink
from .propagation import (
    extract_context,
    extract_link,
    get_injection_headers,
    inject_context,
    inject_link,
)
from .sinks import FanOutSink, JsonLinesExporter, SpanRecorder, SpanSink

__version__ = "1.0.0"
__all__ = [
    # Configuration
    "TracingConfig", "configure", "get_config", "reset_config",

    # Tracing
    "Tracer", "build_tracer",

    # Models
    "Span", "SpanContext", "SpanLink", "SpanClosedError",

    # Propagation
    "inject_context", "extract_context", "get_injection_headers",
    "inject_link", "extract_link",

    # Sinks
    "SpanSink", "SpanRecorder", "JsonLinesExporter", "FanOutSink",

    # Fault simulation
    "RandomSource", "FaultBranch", "OutcomePolicy", "Simulation", "FaultSimulator",
]
