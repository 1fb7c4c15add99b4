"""
create-order function.

Orchestrates the create flow:
    1. Validate the request body
    2. Check inventory (synchronous invocation, same trace)
    3. Persist the order (conditional write)
    4. Trigger the notification (fire-and-forget, linked trace)
    5. Respond

Spans:
    create-order
    ├── input-validation
    ├── inventory-check
    │   └── check-inventory (callee)
    ├── save-order
    └── trigger-notification

Root span flags by outcome:
    400 (bad input)            error
    409 (out of stock)         none, orderStatus=OUT_OF_STOCK
    503 (inventory down)       fault, orderStatus=FAILED
    500 (persistence failed)   fault, orderStatus=FAILED
    201                        none, orderStatus=CREATED
"""

from __future__ import annotations

import logging
import random
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import orjson
from pydantic import ValidationError

from tracelet import RandomSource, Span, SpanContext, Tracer, inject_link

from . import metrics
from .catalog import PRODUCT_ID_PATTERN
from .dispatch import Dispatcher, DispatchError
from .errors import (
    BusinessRejection,
    ClientError,
    DownstreamUnavailable,
    NonCriticalDispatchFailure,
    OrderFlowError,
    PersistenceFailure,
)
from .invoke import InvocationError, Invoker
from .models import HandlerResponse, InventoryResult, Order, OrderStatus
from .storage import OrderStore, StoreError
from .timing import Clock, isoformat, utcnow

logger = logging.getLogger("orderflow.orders")

__all__ = ["OrderRequest", "OrderService", "MAX_QUANTITY"]

MAX_QUANTITY = 100

INVENTORY_FUNCTION = "check-inventory"
NOTIFICATION_FUNCTION = "send-notification"


@dataclass(frozen=True)
class OrderRequest:
    """Validated create-order input, defaults applied."""
    customer_id: str
    product_id: str
    quantity: int


class OrderService:
    """
    Root of the create-order workflow.

    Attributes:
        tracer: Tracer for the create-order spans.
        invoker: Synchronous invoker reaching check-inventory.
        store: Order store.
        dispatcher: Fire-and-forget dispatcher reaching send-notification.
    """

    def __init__(
        self,
        tracer: Tracer,
        invoker: Invoker,
        store: OrderStore,
        dispatcher: Dispatcher,
        rng: RandomSource | None = None,
        clock: Clock = utcnow,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self.tracer = tracer
        self.invoker = invoker
        self.store = store
        self.dispatcher = dispatcher
        self._rng = rng if rng is not None else random.Random()
        self._clock = clock
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))

    async def create(
        self,
        body: bytes | None,
        parent: SpanContext | None = None,
    ) -> HandlerResponse:
        """
        Handle one create-order request.

        Args:
            body: Raw request body (empty means all defaults)
            parent: Inbound trace context, if the caller sent one

        Returns:
            HandlerResponse with status 201, 400, 409, 503 or 500
        """
        order_id = self._id_factory()

        with self.tracer.start_span("create-order", parent=parent) as root:
            root.add_annotation("orderId", order_id)
            try:
                order = await self._create(root, order_id, body)
            except ClientError as e:
                root.record_error(e)
                logger.info(f"create-order rejected: {e.message}")
                response = HandlerResponse(e.status_code, e.to_body())
            except BusinessRejection as e:
                root.add_annotation("orderStatus", OrderStatus.OUT_OF_STOCK.value)
                logger.info(f"create-order {order_id} rejected: {e.message}")
                response = HandlerResponse(e.status_code, e.to_body())
            except OrderFlowError as e:
                root.record_error(e, fault=True)
                root.add_annotation("orderStatus", OrderStatus.FAILED.value)
                logger.error(f"create-order {order_id} failed: {e.message}")
                response = HandlerResponse(e.status_code, e.to_body())
            else:
                root.add_annotation("orderStatus", OrderStatus.CREATED.value)
                logger.info(
                    f"order-created orderId={order.orderId} productId={order.productId} "
                    f"quantity={order.quantity} totalAmount={order.totalAmount}"
                )
                response = HandlerResponse(
                    201,
                    {"message": "Order created successfully", "order": order.model_dump()},
                )

        metrics.record_order(response.status_code)
        return response

    async def _create(self, root: Span, order_id: str, body: bytes | None) -> Order:
        request = self._validate(root, body)
        root.add_annotation("customerId", request.customer_id)
        root.add_annotation("productId", request.product_id)

        inventory = await self._check_inventory(root, request)
        if not inventory.available:
            raise BusinessRejection(
                "Product out of stock",
                productId=request.product_id,
                requestedQty=request.quantity,
                availableQty=inventory.availableQty,
            )

        order = Order(
            orderId=order_id,
            customerId=request.customer_id,
            productId=request.product_id,
            quantity=request.quantity,
            unitPrice=inventory.price,
            totalAmount=Order.total_for(inventory.price, request.quantity),
            status=OrderStatus.CREATED,
            createdAt=isoformat(self._clock()),
        )
        await self._save(root, order)
        self._notify(root, order)
        return order

    # --- Steps ---

    def _validate(self, root: Span, body: bytes | None) -> OrderRequest:
        failure: ClientError | None = None
        with self.tracer.start_span("input-validation", parent=root) as span:
            try:
                request = self._parse(body)
            except ClientError as e:
                span.record_error(e)
                span.add_annotation("result", "fail")
                failure = e
            else:
                span.add_annotation("result", "pass")
        if failure is not None:
            raise failure
        return request

    def _parse(self, body: bytes | None) -> OrderRequest:
        if not body or not body.strip():
            data: Any = {}
        else:
            try:
                data = orjson.loads(body)
            except orjson.JSONDecodeError:
                raise ClientError("Invalid JSON body") from None
        if not isinstance(data, dict):
            raise ClientError("Invalid JSON body")

        customer_id = data.get("customerId")
        if customer_id is None:
            customer_id = f"CUST-{int(self._rng.random() * 10000):04d}"
        elif not isinstance(customer_id, str) or not customer_id:
            raise ClientError("customerId must be a non-empty string")

        product_id = data.get("productId")
        if product_id is None:
            product_id = "PROD-001"
        if not isinstance(product_id, str) or not PRODUCT_ID_PATTERN.fullmatch(product_id):
            raise ClientError("productId must match PROD-<alphanumeric>")

        quantity = data.get("quantity")
        if quantity is None:
            quantity = 1
        if (
            not isinstance(quantity, int)
            or isinstance(quantity, bool)
            or not 1 <= quantity <= MAX_QUANTITY
        ):
            raise ClientError(f"quantity must be an integer between 1 and {MAX_QUANTITY}")

        return OrderRequest(customer_id=customer_id, product_id=product_id, quantity=quantity)

    async def _check_inventory(self, root: Span, request: OrderRequest) -> InventoryResult:
        failure: DownstreamUnavailable | None = None
        with self.tracer.start_span("inventory-check", parent=root) as span:
            try:
                response = await self.invoker.invoke(
                    INVENTORY_FUNCTION,
                    {"productId": request.product_id, "quantity": request.quantity},
                    parent=span,
                )
                inventory = InventoryResult.model_validate(response)
            except (InvocationError, ValidationError) as e:
                span.record_error(e)
                logger.error(f"check-inventory call failed for {request.product_id}: {e}")
                failure = DownstreamUnavailable("Inventory service unavailable, please retry")
            else:
                span.add_annotation("available", inventory.available)
                span.add_annotation("price", inventory.price)
                span.add_metadata("inventoryDetail", inventory.model_dump())
        if failure is not None:
            raise failure
        return inventory

    async def _save(self, root: Span, order: Order) -> None:
        failure: PersistenceFailure | None = None
        with self.tracer.start_span("save-order", parent=root) as span:
            try:
                await self.store.put_if_absent(order)
            except StoreError as e:
                span.record_error(e)
                span.add_annotation("result", "failed")
                logger.error(f"save-order {order.orderId} failed: {e}")
                failure = PersistenceFailure("Failed to persist order")
            else:
                span.add_annotation("result", "saved")
        if failure is not None:
            raise failure

    def _notify(self, root: Span, order: Order) -> None:
        with self.tracer.start_span("trigger-notification", parent=root) as span:
            message: dict[str, Any] = {
                "orderId": order.orderId,
                "customerId": order.customerId,
                "order": order.model_dump(),
            }
            inject_link(message, span)
            try:
                self.dispatcher.dispatch(NOTIFICATION_FUNCTION, message)
            except DispatchError as e:
                failure = NonCriticalDispatchFailure(f"Notification not triggered: {e.reason}")
                span.record_error(failure)
                span.add_annotation("notificationTriggered", False)
                logger.warning(f"trigger-notification for {order.orderId} failed: {e}")
            else:
                span.add_annotation("notificationTriggered", True)
