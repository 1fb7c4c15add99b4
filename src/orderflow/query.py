"""
get-orders function.

Read side of the order store:
    - get_order: point lookup by orderId
    - list_orders: by status through the (status, createdAt) index, or a
      bounded scan sorted in memory when no status is given

Both paths return newest first. Limits default to the configured page
size and are clamped to [1, max_page_size].
"""

from __future__ import annotations

import logging
from typing import Any

from tracelet import Span, SpanContext, Tracer

from .errors import ClientError, OrderFlowError, PersistenceFailure
from .models import HandlerResponse, Order
from .storage import OrderStore, StoreError

logger = logging.getLogger("orderflow.query")

__all__ = ["OrderQueryService", "parse_limit"]


def parse_limit(raw: Any, default: int, maximum: int) -> int:
    """
    Resolve a requested page size.

    Raises:
        ClientError: If `raw` is present but not an integer
    """
    if raw is None or raw == "":
        return default
    if isinstance(raw, bool):
        raise ClientError("limit must be an integer")
    try:
        limit = int(raw)
    except (TypeError, ValueError):
        raise ClientError("limit must be an integer") from None
    return max(1, min(limit, maximum))


class OrderQueryService:
    """Order lookups and listings."""

    def __init__(
        self,
        tracer: Tracer,
        store: OrderStore,
        default_page_size: int = 20,
        max_page_size: int = 50,
    ) -> None:
        self.tracer = tracer
        self.store = store
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    async def get_order(
        self,
        order_id: str,
        parent: SpanContext | None = None,
    ) -> HandlerResponse:
        """200 with the order, 404 if absent, 500 on store failure."""
        with self.tracer.start_span("get-order-by-id", parent=parent) as span:
            span.add_annotation("orderId", order_id)
            try:
                order = await self.store.get(order_id)
            except StoreError as e:
                span.record_error(e, fault=True)
                logger.error(f"get-order {order_id} failed: {e}")
                return HandlerResponse(500, {"error": "Failed to fetch order"})

            span.add_annotation("found", order is not None)
            if order is None:
                span.record_error(f"Order {order_id} not found")
                return HandlerResponse(404, {"error": f"Order {order_id} not found"})

        return HandlerResponse(200, order.model_dump())

    async def list_orders(
        self,
        status: str | None = None,
        limit: Any = None,
        parent: SpanContext | None = None,
    ) -> HandlerResponse:
        """
        List orders, newest first.

        Args:
            status: Status filter; None or empty lists everything
            limit: Requested page size (int or numeric string)
            parent: Inbound trace context

        Returns:
            HandlerResponse with {"count", "orders"}
        """
        with self.tracer.start_span("get-orders", parent=parent) as root:
            try:
                page_size = parse_limit(limit, self.default_page_size, self.max_page_size)
                if status:
                    root.add_annotation("queryType", "status-index")
                    root.add_annotation("statusFilter", status)
                    orders = await self._query_by_status(root, status, page_size)
                else:
                    root.add_annotation("queryType", "scan")
                    root.add_annotation("statusFilter", "none")
                    orders = await self._scan(root, page_size)
            except ClientError as e:
                root.record_error(e)
                return HandlerResponse(e.status_code, e.to_body())
            except OrderFlowError as e:
                root.record_error(e, fault=True)
                return HandlerResponse(e.status_code, e.to_body())

            root.add_annotation("resultCount", len(orders))

        return HandlerResponse(200, {
            "count": len(orders),
            "orders": [order.model_dump() for order in orders],
        })

    async def _query_by_status(self, root: Span, status: str, limit: int) -> list[Order]:
        failure: PersistenceFailure | None = None
        with self.tracer.start_span("query-orders-by-status", parent=root) as span:
            span.add_annotation("status", status)
            try:
                orders = await self.store.query_by_status(status, limit)
            except StoreError as e:
                span.record_error(e, fault=True)
                logger.error(f"query-orders-by-status {status} failed: {e}")
                failure = PersistenceFailure("Query failed")
            else:
                span.add_annotation("itemCount", len(orders))
        if failure is not None:
            raise failure
        return orders

    async def _scan(self, root: Span, limit: int) -> list[Order]:
        failure: PersistenceFailure | None = None
        with self.tracer.start_span("scan-orders", parent=root) as span:
            try:
                page = await self.store.scan(limit)
            except StoreError as e:
                span.record_error(e, fault=True)
                logger.error(f"scan-orders failed: {e}")
                failure = PersistenceFailure("Scan failed")
            else:
                # Scans carry no ordering; sort newest first here
                orders = sorted(page.items, key=lambda order: order.createdAt, reverse=True)
                span.add_annotation("itemCount", len(orders))
                span.add_annotation("scannedCount", page.scanned_count)
        if failure is not None:
            raise failure
        return orders
