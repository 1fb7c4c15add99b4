"""
send-notification function.

Simulates dispatching an order confirmation through:
    - Email (always attempted)
    - SMS (attempted only for VIP customers, customerId prefix "CUST-VIP-")

Fault injection, in precedence order:
    - 2%: total failure, the invocation itself fails
    - 8%: email provider timeout, partial success (order stands, nothing sent)
    - 5%: SMS gateway unavailable (VIP only), email result unaffected

The function is invoked fire-and-forget. Its root span starts a new
trace linked to the dispatching span, and a total failure surfaces only
to the dispatch layer.

Spans:
    send-notification (linked)
    ├── prepare-payload
    ├── send-email
    └── send-sms (VIP only)
"""

from __future__ import annotations

import logging
import time
from typing import Any

import orjson

from tracelet import FaultBranch, FaultSimulator, OutcomePolicy, RandomSource, Tracer, extract_link

from . import metrics
from .timing import LatencyInjector

logger = logging.getLogger("orderflow.notification")

__all__ = [
    "NotificationFailure",
    "NotificationService",
    "notification_simulator",
    "VIP_PREFIX",
]

VIP_PREFIX = "CUST-VIP-"

EMAIL_CHANNEL = "email"
SMS_CHANNEL = "sms"

TOTAL_FAILURE = "total_failure"
EMAIL_TIMEOUT = "email_timeout"
SMS_FAILURE = "sms_failure"

EMAIL_TIMEOUT_MS = 5000
TEMPLATE_RENDER_MS = (10, 30)


class NotificationFailure(Exception):
    """Raised when the notification service is completely down."""


def notification_simulator(rng: RandomSource | None = None) -> FaultSimulator:
    """Fault simulator keyed by channel."""
    return FaultSimulator(
        {
            EMAIL_CHANNEL: OutcomePolicy(
                latency_ms=(100, 400),
                faults=(FaultBranch(TOTAL_FAILURE, 0.02), FaultBranch(EMAIL_TIMEOUT, 0.08)),
                exclusive=True,
            ),
            SMS_CHANNEL: OutcomePolicy(
                latency_ms=(80, 200),
                faults=(FaultBranch(SMS_FAILURE, 0.05),),
            ),
        },
        rng=rng,
    )


def build_email_body(order: dict[str, Any]) -> str:
    return "\n".join([
        "Thank you for your order!",
        f"Order ID  : {order.get('orderId') or 'N/A'}",
        f"Product   : {order.get('productId') or 'N/A'}  x{order.get('quantity') or 1}",
        f"Total     : ${order.get('totalAmount') or '0.00'}",
        f"Status    : {order.get('status') or 'PENDING'}",
        "",
        "We will notify you once your order ships.",
    ])


class NotificationService:
    """
    Multi-channel order confirmation.

    Attributes:
        tracer: Tracer for the send-notification spans.
        simulator: Fault simulator keyed by channel.
    """

    def __init__(
        self,
        tracer: Tracer,
        simulator: FaultSimulator | None = None,
        latency: LatencyInjector | None = None,
    ) -> None:
        self.tracer = tracer
        self.simulator = simulator or notification_simulator()
        self._latency = latency or LatencyInjector()

    async def handle_event(self, body: bytes) -> dict[str, Any]:
        """Entry point for the dispatcher: decode the message and send."""
        payload = orjson.loads(body)
        if not isinstance(payload, dict):
            raise ValueError("notification message must be a JSON object")
        return await self.send(payload)

    async def send(self, payload: dict[str, Any]) -> dict[str, Any]:
        """
        Send the confirmation for one order.

        Args:
            payload: {"orderId", "customerId", "order", "_trace"}

        Returns:
            {"status": "OK" | "PARTIAL", "orderId", "emailSent", "smsSent"}

        Raises:
            NotificationFailure: On a simulated total failure
        """
        order_id = str(payload.get("orderId") or "")
        customer_id = str(payload.get("customerId") or "CUST-0000")
        order = payload.get("order") or {}
        if not isinstance(order, dict):
            order = {}
        vip = customer_id.startswith(VIP_PREFIX)
        link = extract_link(payload)

        logger.info(f"send-notification orderId={order_id} customerId={customer_id}")

        try:
            result = await self._send(order_id, customer_id, order, vip, link)
        except NotificationFailure:
            metrics.record_notification("FAILED")
            raise
        metrics.record_notification(result["status"])
        return result

    async def _send(self, order_id, customer_id, order, vip, link) -> dict[str, Any]:
        with self.tracer.start_span("send-notification", links=[link] if link else None) as segment:
            segment.add_annotation("orderId", order_id)
            segment.add_annotation("customerId", customer_id)
            segment.add_annotation("channel", "email+sms" if vip else "email")

            with self.tracer.start_span("prepare-payload", parent=segment) as span:
                message = {
                    "to": f"{customer_id.lower()}@example.com",
                    "subject": f"Order Confirmation - {order_id}",
                    "body": build_email_body(order),
                    "orderId": order_id,
                    "totalAmount": order.get("totalAmount"),
                }
                span.add_metadata("emailPayload", {"to": message["to"], "subject": message["subject"]})
                await self._latency.wait_ms(self.simulator.latency(*TEMPLATE_RENDER_MS))

            email_outcome = self.simulator.simulate(EMAIL_CHANNEL)

            with self.tracer.start_span("send-email", parent=segment) as span:
                span.add_annotation("channel", EMAIL_CHANNEL)
                if email_outcome.fired(TOTAL_FAILURE):
                    raise NotificationFailure("Notification service is completely down")

                if email_outcome.fired(EMAIL_TIMEOUT):
                    await self._latency.wait_ms(EMAIL_TIMEOUT_MS)
                    span.record_error(f"Email provider timeout after {EMAIL_TIMEOUT_MS}ms")
                    span.add_annotation("result", "timeout")
                    email_sent = False
                    logger.error(f"send-email timed out for order {order_id}")
                else:
                    await self._latency.wait_ms(email_outcome.delay_ms)
                    span.add_annotation("result", "sent")
                    span.add_metadata("messageId", f"msg-{time.time_ns() // 1_000_000}")
                    email_sent = True

            if not email_sent:
                # Degraded success: the order stands, nothing was sent
                segment.add_annotation("emailSent", False)
                segment.add_annotation("notificationStatus", "PARTIAL")
                return {
                    "status": "PARTIAL",
                    "orderId": order_id,
                    "emailSent": False,
                    "smsSent": False,
                    "reason": EMAIL_TIMEOUT,
                }

            sms_sent = False
            if vip:
                sms_outcome = self.simulator.simulate(SMS_CHANNEL)
                with self.tracer.start_span("send-sms", parent=segment) as span:
                    span.add_annotation("channel", SMS_CHANNEL)
                    if sms_outcome.fired(SMS_FAILURE):
                        span.record_error("SMS gateway unavailable")
                        span.add_annotation("result", "failed")
                        logger.warning(f"send-sms failed for order {order_id}: SMS gateway unavailable")
                    else:
                        await self._latency.wait_ms(sms_outcome.delay_ms)
                        span.add_annotation("result", "sent")
                        sms_sent = True
                segment.add_annotation("smsSent", sms_sent)

            segment.add_annotation("emailSent", True)
            segment.add_annotation("notificationStatus", "OK")

        logger.info(f"notification-sent orderId={order_id}")
        return {"status": "OK", "orderId": order_id, "emailSent": True, "smsSent": sms_sent}
