"""
Order workflow data models.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CREATED = "CREATED"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    FAILED = "FAILED"


class Order(BaseModel):
    """
    Persistent order record.

    Written once, conditioned on the orderId not existing yet.
    """
    model_config = ConfigDict(frozen=True, use_enum_values=True)

    orderId: str
    customerId: str
    productId: str
    quantity: int = Field(..., ge=1)
    unitPrice: float
    totalAmount: float
    status: OrderStatus = OrderStatus.PENDING
    createdAt: str

    @staticmethod
    def total_for(unit_price: float, quantity: int) -> float:
        """unitPrice x quantity, rounded to cents."""
        return round(unit_price * quantity, 2)


class InventoryResult(BaseModel):
    """Response of the check-inventory function."""
    productId: str
    productName: str
    available: bool
    availableQty: int
    requestedQty: int
    price: float
    checkedAt: str


@dataclass
class HandlerResponse:
    """Transport-neutral response: status code plus JSON body."""
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)
