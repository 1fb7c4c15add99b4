"""Fire-and-forget dispatch of asynchronous function invocations.

The caller submits a message and continues immediately. The dispatcher
runs the target in its own asyncio task, so the caller never observes
the outcome: failures of the target are captured and logged here and
never propagate back.

Only a failure to even submit the message (unknown target, payload that
cannot be serialized, dispatcher closed) is reported to the caller, as
DispatchError.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Protocol, runtime_checkable

import orjson

logger = logging.getLogger("orderflow.dispatch")

__all__ = [
    "DispatchError",
    "Dispatcher",
    "EventHandler",
    "TaskDispatcher",
]

EventHandler = Callable[[bytes], Awaitable[Any]]
"""Asynchronous function entry point receiving the encoded message."""


class DispatchError(Exception):
    """Exception raised when a message could not be submitted.

    Attributes:
        function: Target function name.
        reason: Description of the failure.
    """

    def __init__(self, function: str, reason: str) -> None:
        self.function = function
        self.reason = reason
        super().__init__(f"Failed to dispatch to {function}: {reason}")


@runtime_checkable
class Dispatcher(Protocol):
    """Protocol defining the fire-and-forget interface.

    Example:
        ```python
        dispatcher.dispatch("send-notification", {"orderId": "..."})
        ...
        await dispatcher.close()
        ```
    """

    def dispatch(self, function: str, payload: dict[str, Any]) -> None:
        """Submit `payload` to `function` without waiting for it.

        Raises:
            DispatchError: If the message could not be submitted.
        """
        ...

    async def drain(self) -> None:
        """Wait for every submitted message to finish."""
        ...

    async def close(self) -> None:
        """Stop accepting messages and drain pending ones."""
        ...


class TaskDispatcher:
    """Dispatcher running each message as an asyncio task.

    Pending tasks are referenced until they finish so the event loop does
    not garbage-collect them mid-flight.

    Attributes:
        functions: Mapping of function name to EventHandler.
    """

    def __init__(self, functions: Mapping[str, EventHandler]) -> None:
        self.functions = dict(functions)
        self._pending: set[asyncio.Task] = set()
        self._closed = False
        self._submitted = 0
        self._completed = 0
        self._failed = 0

    def dispatch(self, function: str, payload: dict[str, Any]) -> None:
        if self._closed:
            raise DispatchError(function, "dispatcher is closed")

        handler = self.functions.get(function)
        if handler is None:
            raise DispatchError(function, "function not found")

        try:
            body = orjson.dumps(payload)
        except TypeError as e:
            raise DispatchError(function, f"unserializable payload: {e}") from e

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            raise DispatchError(function, "no running event loop") from e

        task = loop.create_task(self._run(function, handler, body))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        self._submitted += 1
        logger.debug(f"Dispatched event to {function}")

    async def _run(self, function: str, handler: EventHandler, body: bytes) -> None:
        try:
            await handler(body)
        except Exception as e:
            self._failed += 1
            logger.error(f"Async invocation of {function} failed: {type(e).__name__}: {e}")
            return
        self._completed += 1

    async def drain(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def close(self) -> None:
        self._closed = True
        await self.drain()
        logger.info("Dispatcher closed.")

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def stats(self) -> dict[str, int]:
        return {
            "submitted": self._submitted,
            "completed": self._completed,
            "failed": self._failed,
            "pending": len(self._pending),
        }
