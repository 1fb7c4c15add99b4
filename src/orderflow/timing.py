"""
Injectable time sources for the simulated services.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

__all__ = [
    "Sleeper",
    "Clock",
    "LatencyInjector",
    "utcnow",
    "isoformat",
]

Sleeper = Callable[[float], Awaitable[Any]]
"""Coroutine function sleeping for the given number of seconds."""

Clock = Callable[[], datetime]
"""Returns the current time as an aware datetime."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(moment: datetime) -> str:
    """ISO-8601 in UTC with microseconds and a Z suffix, sortable as text."""
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class LatencyInjector:
    """
    Applies simulated delays, scaled by `scale`.

    A scale of 0 skips waiting entirely.
    """

    __slots__ = ('_sleep', 'scale')

    def __init__(self, sleep: Sleeper | None = None, scale: float = 1.0) -> None:
        if scale < 0:
            raise ValueError(f"scale must be non-negative, got {scale}")
        self._sleep = sleep or asyncio.sleep
        self.scale = scale

    async def wait_ms(self, delay_ms: float) -> None:
        seconds = delay_ms * self.scale / 1000
        if seconds <= 0:
            return
        await self._sleep(seconds)
