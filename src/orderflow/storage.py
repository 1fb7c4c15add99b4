"""
Order store.

The store is the only shared mutable resource of the workflow. Its
contract:
    - put_if_absent: single-item write conditioned on the key not existing
    - get: single-item read by orderId
    - query_by_status: secondary index on (status, createdAt), newest first
    - scan: bounded read with no ordering guarantee
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import aiosqlite
import orjson

from .models import Order, OrderStatus

logger = logging.getLogger("orderflow.storage")

__all__ = [
    "StoreError",
    "ConditionalCheckFailed",
    "ScanPage",
    "OrderStore",
    "SQLiteOrderStore",
]

SCHEMA = """
CREATE TABLE IF NOT EXISTS orders (
    order_id TEXT NOT NULL PRIMARY KEY,
    customer_id TEXT NOT NULL,
    product_id TEXT NOT NULL,
    status TEXT NOT NULL,
    created_at TEXT NOT NULL,
    item_json TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_orders_status_created ON orders(status, created_at DESC);
"""


class StoreError(Exception):
    """Raised when the store cannot complete a read or write."""


class ConditionalCheckFailed(StoreError):
    """Raised when a conditional write finds the key already present."""

    def __init__(self, order_id: str) -> None:
        self.order_id = order_id
        super().__init__(f"Order {order_id} already exists")


@dataclass
class ScanPage:
    items: list[Order] = field(default_factory=list)
    scanned_count: int = 0


class OrderStore(ABC):
    """Abstract base class defining the store interface."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indexes."""
        ...

    @abstractmethod
    async def put_if_absent(self, order: Order) -> None:
        """
        Write `order` unless its orderId already exists.

        Raises:
            ConditionalCheckFailed: If the orderId is taken
            StoreError: On any other storage failure
        """
        ...

    @abstractmethod
    async def get(self, order_id: str) -> Order | None:
        ...

    @abstractmethod
    async def query_by_status(self, status: str, limit: int) -> list[Order]:
        """Orders with `status`, newest first, at most `limit`."""
        ...

    @abstractmethod
    async def scan(self, limit: int) -> ScanPage:
        """At most `limit` orders, in no particular order."""
        ...

    @abstractmethod
    async def close(self) -> None:
        ...


class SQLiteOrderStore(OrderStore):
    """
    aiosqlite-backed order store.

    One connection is kept open for the store's lifetime, so ':memory:'
    databases survive between calls. Writes share that connection's
    transaction and are serialized by a lock: each insert is committed or
    rolled back before the next one starts.
    """

    def __init__(self, db_path: str = "orders.db") -> None:
        self.db_path = db_path
        self._connection: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        if self._connection is not None:
            return
        self._connection = await aiosqlite.connect(self.db_path)
        await self._connection.executescript(SCHEMA)
        await self._connection.commit()
        logger.info(f"Order store initialized at {self.db_path}")

    def _conn(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise StoreError("Order store is not initialized")
        return self._connection

    async def put_if_absent(self, order: Order) -> None:
        conn = self._conn()
        query = """
        INSERT INTO orders (order_id, customer_id, product_id, status, created_at, item_json)
        VALUES (:order_id, :customer_id, :product_id, :status, :created_at, :item_json)
        """
        record = {
            "order_id": order.orderId,
            "customer_id": order.customerId,
            "product_id": order.productId,
            "status": OrderStatus(order.status).value,
            "created_at": order.createdAt,
            "item_json": orjson.dumps(order.model_dump()).decode("utf-8"),
        }
        async with self._write_lock:
            try:
                await conn.execute(query, record)
                await conn.commit()
            except sqlite3.IntegrityError as e:
                await conn.rollback()
                raise ConditionalCheckFailed(order.orderId) from e
            except sqlite3.Error as e:
                await conn.rollback()
                raise StoreError(f"Failed to write order {order.orderId}: {e}") from e
        logger.debug(f"Stored order {order.orderId}")

    async def get(self, order_id: str) -> Order | None:
        conn = self._conn()
        try:
            async with conn.execute(
                "SELECT item_json FROM orders WHERE order_id = ?", (order_id,)
            ) as cursor:
                row = await cursor.fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to read order {order_id}: {e}") from e
        return _to_order(row[0]) if row else None

    async def query_by_status(self, status: str, limit: int) -> list[Order]:
        conn = self._conn()
        try:
            async with conn.execute(
                "SELECT item_json FROM orders INDEXED BY idx_orders_status_created "
                "WHERE status = ? ORDER BY created_at DESC LIMIT ?",
                (status, limit),
            ) as cursor:
                rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to query orders by status {status}: {e}") from e
        return [_to_order(row[0]) for row in rows]

    async def scan(self, limit: int) -> ScanPage:
        conn = self._conn()
        try:
            async with conn.execute("SELECT item_json FROM orders LIMIT ?", (limit,)) as cursor:
                rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to scan orders: {e}") from e
        items = [_to_order(row[0]) for row in rows]
        return ScanPage(items=items, scanned_count=len(items))

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None


def _to_order(item_json: str) -> Order:
    return Order.model_validate(orjson.loads(item_json))
