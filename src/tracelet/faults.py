"""
Fault and latency simulation.

A FaultSimulator maps a lookup key (e.g. a product id or a channel name)
to an OutcomePolicy and draws a Simulation from it:

- a delay in milliseconds, uniform over the policy's latency range
- the set of fault branches that fired

Branches are evaluated with one independent draw each. An `exclusive`
policy evaluates its branches in order and stops at the first one that
fires, for precedence rules such as "total failure short-circuits the
channel timeout".

The random source is injected. Any object with a `random()` method
returning floats in [0, 1) works, e.g. `random.Random(seed)`, so tests
can substitute a fixed sequence.
"""

from __future__ import annotations

import logging
import math
import random
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

logger = logging.getLogger("tracelet.faults")

__all__ = [
    "RandomSource",
    "FaultBranch",
    "OutcomePolicy",
    "Simulation",
    "FaultSimulator",
]


@runtime_checkable
class RandomSource(Protocol):
    """Anything that can produce uniform floats in [0, 1)."""

    def random(self) -> float:
        ...


@dataclass(frozen=True, slots=True)
class FaultBranch:
    """A named fault that fires with the given probability."""
    name: str
    probability: float

    def __post_init__(self) -> None:
        if not 0.0 <= self.probability <= 1.0:
            raise ValueError(
                f"probability for {self.name!r} must be between 0.0 and 1.0, got {self.probability}"
            )


@dataclass(frozen=True, slots=True)
class OutcomePolicy:
    """
    Latency range, base stock level and fault branches for one key.

    Attributes:
        latency_ms: Inclusive-exclusive [min, max) delay range in ms
        stock: Nominal availability level
        faults: Fault branches, in evaluation order
        exclusive: Stop at the first fault that fires
    """
    latency_ms: tuple[int, int] = (0, 0)
    stock: int = 0
    faults: tuple[FaultBranch, ...] = field(default_factory=tuple)
    exclusive: bool = False

    def __post_init__(self) -> None:
        low, high = self.latency_ms
        if low < 0 or high < low:
            raise ValueError(f"invalid latency range {self.latency_ms}")


@dataclass(frozen=True, slots=True)
class Simulation:
    """Outcome of one draw against a policy."""
    key: str
    delay_ms: int
    faults: frozenset[str]
    policy: OutcomePolicy

    def fired(self, name: str) -> bool:
        return name in self.faults


class FaultSimulator:
    """
    Draws delays and fault outcomes per key.

    !!! example
        ```python
        simulator = FaultSimulator(
            {"PROD-002": OutcomePolicy((30, 150), stock=50,
                                       faults=(FaultBranch("random_stockout", 0.30),))},
            default=OutcomePolicy((10, 60), stock=100),
            rng=random.Random(7),
        )
        outcome = simulator.simulate("PROD-002")
        if outcome.fired("random_stockout"):
            ...
        ```
    """

    __slots__ = ('_policies', '_default', '_rng')

    def __init__(
        self,
        policies: Mapping[str, OutcomePolicy],
        default: OutcomePolicy | None = None,
        rng: RandomSource | None = None,
    ) -> None:
        self._policies = dict(policies)
        self._default = default or OutcomePolicy()
        self._rng = rng if rng is not None else random.Random()

    def policy_for(self, key: str) -> OutcomePolicy:
        """Policy for `key`, or the default policy for unknown keys."""
        return self._policies.get(key, self._default)

    def draw_delay(self, policy: OutcomePolicy) -> int:
        """Delay in ms: min + floor(u * (max - min))."""
        low, high = policy.latency_ms
        return low + math.floor(self._rng.random() * (high - low))

    def draw_faults(self, policy: OutcomePolicy) -> frozenset[str]:
        fired = []
        for branch in policy.faults:
            if self._rng.random() < branch.probability:
                fired.append(branch.name)
                if policy.exclusive:
                    break
        return frozenset(fired)

    def simulate(self, key: str) -> Simulation:
        """
        Draw the fault outcome, then the delay, for `key`.

        Faults are drawn first so that exclusive precedence checks consume
        the random source in their natural order.
        """
        policy = self.policy_for(key)
        faults = self.draw_faults(policy)
        delay_ms = self.draw_delay(policy)
        if faults:
            logger.debug(f"Simulated faults for {key}: {sorted(faults)}")
        return Simulation(key=key, delay_ms=delay_ms, faults=faults, policy=policy)

    def latency(self, low_ms: float, high_ms: float) -> float:
        """Ad-hoc uniform delay in ms, for steps without a keyed policy."""
        return low_ms + self._rng.random() * (high_ms - low_ms)
