"""
Static product catalog and the simulated behaviour attached to it.

Product-specific behaviour:
    - PROD-002: 30% random stock-out, to generate interesting traces
    - PROD-003: intentionally slow, to generate p99 latency signals
    - PROD-004: no stock at all, always out of stock

Unknown product ids resolve to DEFAULT_PRODUCT instead of failing.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from tracelet import FaultBranch, FaultSimulator, OutcomePolicy, RandomSource

__all__ = [
    "ProductEntry",
    "CATALOG",
    "DEFAULT_PRODUCT",
    "PRODUCT_ID_PATTERN",
    "RANDOM_STOCKOUT",
    "lookup",
    "inventory_simulator",
]

PRODUCT_ID_PATTERN = re.compile(r"PROD-[A-Z0-9]+")

RANDOM_STOCKOUT = "random_stockout"


@dataclass(frozen=True, slots=True)
class ProductEntry:
    name: str
    unit_price: float
    stock: int
    latency_ms: tuple[int, int]


CATALOG: Mapping[str, ProductEntry] = MappingProxyType({
    "PROD-001": ProductEntry("Wireless Headphones", 79.99, 500, (20, 80)),
    "PROD-002": ProductEntry("Mechanical Keyboard", 149.99, 50, (30, 150)),
    "PROD-003": ProductEntry("USB-C Hub", 39.99, 200, (300, 800)),
    "PROD-004": ProductEntry("Monitor Stand", 59.99, 0, (10, 50)),
    "PROD-005": ProductEntry("Webcam HD", 89.99, 25, (50, 200)),
})

DEFAULT_PRODUCT = ProductEntry("Generic Product", 19.99, 100, (10, 60))

# Per-product fault branches layered on top of the catalog entry
_PRODUCT_FAULTS: Mapping[str, tuple[FaultBranch, ...]] = {
    "PROD-002": (FaultBranch(RANDOM_STOCKOUT, 0.30),),
}


def lookup(product_id: str) -> ProductEntry:
    """Catalog entry for `product_id`, falling back to the default entry."""
    return CATALOG.get(product_id, DEFAULT_PRODUCT)


def _policy(product_id: str, entry: ProductEntry) -> OutcomePolicy:
    return OutcomePolicy(
        latency_ms=entry.latency_ms,
        stock=entry.stock,
        faults=_PRODUCT_FAULTS.get(product_id, ()),
    )


def inventory_simulator(rng: RandomSource | None = None) -> FaultSimulator:
    """Fault simulator keyed by product id."""
    policies = {product_id: _policy(product_id, entry) for product_id, entry in CATALOG.items()}
    return FaultSimulator(policies, default=_policy("", DEFAULT_PRODUCT), rng=rng)
