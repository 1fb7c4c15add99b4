"""
Error taxonomy for the order workflow.

Each class fixes the response status it maps to. Only the orchestrator
and the query service turn these into responses.
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "OrderFlowError",
    "ClientError",
    "BusinessRejection",
    "DownstreamUnavailable",
    "PersistenceFailure",
    "NonCriticalDispatchFailure",
]


class OrderFlowError(Exception):
    """
    Base class for workflow failures.

    Attributes:
        message: Human-readable message returned to the caller.
        status_code: Response status for this failure class.
    """

    status_code = 500

    def __init__(self, message: str, **details: Any) -> None:
        self.message = message
        self.details = details
        super().__init__(message)

    def to_body(self) -> dict[str, Any]:
        """Structured error body. Never includes internal detail."""
        return {"error": self.message, **self.details}


class ClientError(OrderFlowError):
    """Malformed input. Not retried, nothing downstream is called."""
    status_code = 400


class BusinessRejection(OrderFlowError):
    """Valid request rejected by a domain rule, e.g. out of stock."""
    status_code = 409


class DownstreamUnavailable(OrderFlowError):
    """A downstream call failed in transport or decoding. Safe to retry."""
    status_code = 503


class PersistenceFailure(OrderFlowError):
    """The order store rejected or failed a read or write."""
    status_code = 500


class NonCriticalDispatchFailure(OrderFlowError):
    """
    A fire-and-forget call could not be dispatched.

    Logged and annotated only; the create response stays 201.
    """
    status_code = 201
