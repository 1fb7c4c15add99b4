"""
Synchronous request/response invocation of downstream functions.

Every invocation crosses a serialization boundary, as a real
cross-process call would:

    caller ──► envelope bytes {"headers": {traceparent}, "payload": {...}}
           ◄── response bytes {...}

Two transports implement the Invoker protocol:
- LocalInvoker: calls an in-process function handler with the encoded
  envelope. Used when all functions run in one process.
- HttpInvoker: POSTs to /internal/{function} with httpx and carries the
  trace context as a traceparent header.

Transport, handler and decoding failures all surface as InvocationError;
the caller decides what that means for its response.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Protocol, runtime_checkable

import httpx
import orjson

from tracelet import Span, SpanContext, extract_context, get_injection_headers, inject_context

logger = logging.getLogger("orderflow.invoke")

__all__ = [
    "InvocationError",
    "Invoker",
    "FunctionHandler",
    "LocalInvoker",
    "HttpInvoker",
    "encode_envelope",
    "decode_envelope",
    "serve_function",
]

FunctionHandler = Callable[[bytes], Awaitable[bytes]]
"""Raw function entry point: envelope bytes in, response bytes out."""

EVENT_INVOCATION_HEADER = "X-Invocation-Type"


class InvocationError(Exception):
    """
    Raised when a synchronous invocation produced no usable response.

    Attributes:
        function: Name of the invoked function.
        reason: Description of the failure.
    """

    def __init__(self, function: str, reason: str) -> None:
        self.function = function
        self.reason = reason
        super().__init__(f"Invocation of {function} failed: {reason}")


@runtime_checkable
class Invoker(Protocol):
    """Protocol for synchronous request/response invocation."""

    async def invoke(
        self,
        function: str,
        payload: dict[str, Any],
        parent: Span | SpanContext | None = None,
    ) -> dict[str, Any]:
        """
        Invoke `function` and wait for its response.

        Args:
            function: Function name (e.g. "check-inventory")
            payload: JSON-able request body
            parent: Calling span; the callee continues its trace

        Raises:
            InvocationError: On transport, handler or decoding failure
        """
        ...


def encode_envelope(payload: dict[str, Any], parent: Span | SpanContext | None = None) -> bytes:
    """Serialize a payload and the caller's trace context into an envelope."""
    headers: dict[str, str] = {}
    inject_context(headers, parent)
    return orjson.dumps({"headers": headers, "payload": payload})


def decode_envelope(raw: bytes) -> tuple[SpanContext | None, dict[str, Any]]:
    """
    Deserialize an envelope.

    Returns:
        (caller context or None, payload)

    Raises:
        ValueError: If the envelope is not a JSON object with an object payload
    """
    document = orjson.loads(raw)
    if not isinstance(document, dict):
        raise ValueError("envelope must be a JSON object")
    payload = document.get("payload") or {}
    if not isinstance(payload, dict):
        raise ValueError("envelope payload must be a JSON object")
    headers = document.get("headers")
    parent = extract_context(headers) if isinstance(headers, dict) else None
    return parent, payload


def _decode_response(function: str, raw: bytes) -> dict[str, Any]:
    try:
        document = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise InvocationError(function, f"undecodable response: {e}") from e
    if not isinstance(document, dict):
        raise InvocationError(function, "response is not a JSON object")
    return document


def serve_function(
    fn: Callable[[dict[str, Any], SpanContext | None], Awaitable[dict[str, Any]]],
) -> FunctionHandler:
    """
    Adapt a service entry point to the raw envelope interface.

    !!! example
        ```python
        invoker = LocalInvoker({"check-inventory": serve_function(inventory.check)})
        ```
    """
    async def handler(raw: bytes) -> bytes:
        parent, payload = decode_envelope(raw)
        result = await fn(payload, parent)
        return orjson.dumps(result)

    handler.__name__ = getattr(fn, "__name__", "handler")
    return handler


class LocalInvoker:
    """
    In-process invoker over registered function handlers.

    Attributes:
        functions: Mapping of function name to FunctionHandler.
    """

    def __init__(self, functions: Mapping[str, FunctionHandler]) -> None:
        self.functions = dict(functions)

    async def invoke(
        self,
        function: str,
        payload: dict[str, Any],
        parent: Span | SpanContext | None = None,
    ) -> dict[str, Any]:
        handler = self.functions.get(function)
        if handler is None:
            raise InvocationError(function, "function not found")

        try:
            request = encode_envelope(payload, parent)
        except TypeError as e:
            raise InvocationError(function, f"unserializable payload: {e}") from e

        try:
            raw = await handler(request)
        except Exception as e:
            logger.error(f"Function {function} raised {type(e).__name__}: {e}")
            raise InvocationError(function, f"function error: {e}") from e

        return _decode_response(function, raw)


class HttpInvoker:
    """
    Invoker that calls functions through their internal HTTP routes.

    Attributes:
        base_url: Base URL of the service exposing /internal/{function}.
        timeout_ms: Per-request timeout.
    """

    def __init__(
        self,
        base_url: str,
        client: httpx.AsyncClient | None = None,
        timeout_ms: int = 10000,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_ms = timeout_ms
        self._client = client or httpx.AsyncClient(timeout=timeout_ms / 1000)
        self._owns_client = client is None

    def _url(self, function: str) -> str:
        return f"{self.base_url}/internal/{function}"

    async def invoke(
        self,
        function: str,
        payload: dict[str, Any],
        parent: Span | SpanContext | None = None,
    ) -> dict[str, Any]:
        headers = get_injection_headers(parent)
        try:
            response = await self._client.post(
                self._url(function),
                content=orjson.dumps(payload),
                headers={"Content-Type": "application/json", **headers},
                timeout=self.timeout_ms / 1000,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise InvocationError(function, f"transport error: {e}") from e
        except TypeError as e:
            raise InvocationError(function, f"unserializable payload: {e}") from e
        return _decode_response(function, response.content)

    async def send_event(self, function: str, body: bytes) -> None:
        """
        Deliver an asynchronous event; the route acknowledges with 202.

        Raises:
            InvocationError: If the event was not accepted
        """
        try:
            response = await self._client.post(
                self._url(function),
                content=body,
                headers={"Content-Type": "application/json", EVENT_INVOCATION_HEADER: "Event"},
                timeout=self.timeout_ms / 1000,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise InvocationError(function, f"event not accepted: {e}") from e

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
