"""
check-inventory function.

Simulates an inventory service with product-specific latency, stock
levels and pricing. The function has no external dependency that can
fail: fault simulation here changes the *data* it returns (a random
stock-out), never whether the call succeeds.

Spans (all descendants of the caller's span):
    check-inventory
    ├── catalog-lookup
    ├── inventory-db-query
    └── stock-availability
"""

from __future__ import annotations

import logging
from typing import Any

from tracelet import FaultSimulator, SpanContext, Tracer

from .catalog import RANDOM_STOCKOUT, inventory_simulator, lookup
from .models import InventoryResult
from .timing import Clock, LatencyInjector, isoformat, utcnow

logger = logging.getLogger("orderflow.inventory")

__all__ = ["InventoryService"]


class InventoryService:
    """
    Availability and price lookup.

    Attributes:
        tracer: Tracer for the check-inventory spans.
        simulator: Fault simulator keyed by product id.
    """

    def __init__(
        self,
        tracer: Tracer,
        simulator: FaultSimulator | None = None,
        latency: LatencyInjector | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.tracer = tracer
        self.simulator = simulator or inventory_simulator()
        self._latency = latency or LatencyInjector()
        self._clock = clock

    async def check(
        self,
        payload: dict[str, Any],
        parent: SpanContext | None = None,
    ) -> dict[str, Any]:
        """
        Check availability of `quantity` units of `productId`.

        Args:
            payload: {"productId": str, "quantity": int (default 1)}
            parent: Caller's span context from the invocation envelope

        Returns:
            InventoryResult as a dict
        """
        product_id = str(payload.get("productId", ""))
        quantity = payload.get("quantity", 1)
        if not isinstance(quantity, int) or isinstance(quantity, bool):
            logger.warning(f"Non-integer quantity {quantity!r} for {product_id}, assuming 1")
            quantity = 1

        logger.info(f"check-inventory productId={product_id} quantity={quantity}")

        with self.tracer.start_span("check-inventory", parent=parent) as segment:
            segment.add_annotation("productId", product_id)
            segment.add_annotation("requestedQty", quantity)

            with self.tracer.start_span("catalog-lookup", parent=segment) as span:
                product = lookup(product_id)
                span.add_annotation("productName", product.name)
                span.add_annotation("catalogPrice", product.unit_price)

            outcome = self.simulator.simulate(product_id)

            with self.tracer.start_span("inventory-db-query", parent=segment) as span:
                span.add_annotation("simulatedLatencyMs", outcome.delay_ms)
                await self._latency.wait_ms(outcome.delay_ms)

            with self.tracer.start_span("stock-availability", parent=segment) as span:
                effective_stock = outcome.policy.stock
                if outcome.fired(RANDOM_STOCKOUT):
                    effective_stock = 0
                    span.add_annotation("scenario", RANDOM_STOCKOUT)

                available = effective_stock >= quantity
                span.add_annotation("available", available)
                span.add_annotation("effectiveStock", effective_stock)

            segment.add_annotation("available", available)

            result = InventoryResult(
                productId=product_id,
                productName=product.name,
                available=available,
                availableQty=effective_stock,
                requestedQty=quantity,
                price=product.unit_price,
                checkedAt=isoformat(self._clock()),
            )

        logger.info(
            f"inventory-result productId={product_id} available={available} "
            f"availableQty={effective_stock}"
        )
        return result.model_dump()
