"""
Trace context propagation across invocation boundaries.

Two call styles are supported:

Synchronous (request/response):
    The caller writes its span's traceparent into the call envelope
    headers. The callee extracts it and passes it as `parent`, so its
    spans join the caller's trace as descendants of the calling span.

    ┌──────────────┐  traceparent   ┌──────────────────┐
    │ create-order │ ─────────────► │ check-inventory  │
    │ trace_id: A  │                │ trace_id: A      │
    │ span_id: 1   │                │ parent_id: 1     │
    └──────────────┘                └──────────────────┘

Asynchronous (fire-and-forget):
    The caller puts its traceparent into the message payload under
    `_trace`. The caller's span usually closes before the callee runs,
    so the callee starts a new trace whose root carries a link to the
    originating span instead of a parent.

    ┌──────────────────────┐   _trace   ┌───────────────────┐
    │ trigger-notification │ ─ ─ ─ ─ ─► │ send-notification │
    │ trace_id: A          │            │ trace_id: B       │
    └──────────────────────┘            │ links: [A]        │
                                        └───────────────────┘

Traceparent format (W3C Trace Context):
    00-{trace_id}-{parent_span_id}-{flags}
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, MutableMapping
from typing import Any

from .models import Span, SpanContext, SpanLink

logger = logging.getLogger("tracelet.propagation")

# Header name (case-insensitive per HTTP spec)
TRACEPARENT_HEADER = "traceparent"

# Payload key carrying the originating context of an asynchronous call
TRACE_PAYLOAD_KEY = "_trace"

__all__ = [
    "inject_context",
    "extract_context",
    "get_injection_headers",
    "inject_link",
    "extract_link",
    "TRACEPARENT_HEADER",
    "TRACE_PAYLOAD_KEY",
]


def _as_context(source: Span | SpanContext) -> SpanContext:
    if isinstance(source, SpanContext):
        return source
    return source.context


# =============================================================================
# SYNCHRONOUS: envelope headers
# =============================================================================

def inject_context(
    headers: MutableMapping[str, str],
    context: Span | SpanContext | None,
) -> None:
    """
    Write the traceparent of `context` into outbound headers.

    Nothing is written for a missing or invalid context (e.g. a no-op
    span when tracing is disabled).

    Args:
        headers: Mutable mapping to inject into (dict, httpx.Headers, ...)
        context: Calling span or its SpanContext
    """
    if context is None:
        return
    ctx = _as_context(context)
    if not ctx.is_valid:
        return
    headers[TRACEPARENT_HEADER] = ctx.to_traceparent()
    logger.debug(f"Injected trace context: {headers[TRACEPARENT_HEADER]}")


def get_injection_headers(context: Span | SpanContext | None) -> dict[str, str]:
    """
    Get trace headers as a new dictionary.

    Usage:
        response = await client.post(url, headers=get_injection_headers(span))
    """
    headers: dict[str, str] = {}
    inject_context(headers, context)
    return headers


def extract_context(headers: Mapping[str, str] | None) -> SpanContext | None:
    """
    Extract the caller's SpanContext from inbound headers.

    Args:
        headers: Header mapping (lookup is case-insensitive)

    Returns:
        A remote SpanContext, or None if absent or malformed
    """
    if not headers:
        return None

    traceparent = _get_header_case_insensitive(headers, TRACEPARENT_HEADER)
    if not traceparent:
        return None

    context = SpanContext.from_traceparent(traceparent)
    if context is None:
        logger.warning(f"Invalid traceparent header: {traceparent!r}")
    return context


def _get_header_case_insensitive(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


# =============================================================================
# ASYNCHRONOUS: payload links
# =============================================================================

def inject_link(
    payload: MutableMapping[str, Any],
    context: Span | SpanContext | None,
) -> None:
    """
    Record the originating context in a fire-and-forget message payload.

    Args:
        payload: The message body (mutated in place)
        context: The dispatching span or its SpanContext
    """
    if context is None:
        return
    ctx = _as_context(context)
    if not ctx.is_valid:
        return
    payload[TRACE_PAYLOAD_KEY] = {TRACEPARENT_HEADER: ctx.to_traceparent()}


def extract_link(payload: Mapping[str, Any] | None) -> SpanLink | None:
    """
    Build a link to the originating span of an asynchronous message.

    Returns:
        SpanLink, or None if the payload carries no valid context
    """
    if not payload:
        return None
    carrier = payload.get(TRACE_PAYLOAD_KEY)
    if not isinstance(carrier, Mapping):
        return None
    context = extract_context(carrier)
    if context is None:
        return None
    return SpanLink(
        trace_id=context.trace_id,
        span_id=context.span_id,
        attributes={'link.type': 'async_invocation'},
    )
