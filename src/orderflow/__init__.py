"""Orderflow Order Workflow Package.

An order workflow of three cooperating functions (create-order,
check-inventory, send-notification) plus an order query, instrumented
with explicit span handles from tracelet.
"""

__version__ = "1.0.0"
__all__ = [
    "main",
    "config",
    "errors",
    "models",
    "catalog",
    "storage",
    "invoke",
    "dispatch",
    "inventory",
    "orders",
    "notification",
    "query",
    "metrics",
    "timing",
]
