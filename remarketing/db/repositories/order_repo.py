"""
Repositories for customers, products, and order history.
"""

from __future__ import annotations

import logging
import sqlite3
from collections import defaultdict
from typing import Optional

from remarketing.db.repositories.base import BaseRepository, in_placeholders
from remarketing.models.order import (
    COMPLETED_ORDER_STATUS,
    CustomerInfo,
    OrderLine,
    OrderRecord,
    ProductRecord,
)
from remarketing.utils.time_utils import from_db_timestamp, to_db_timestamp

logger = logging.getLogger(__name__)


class CustomerRepository(BaseRepository):
    """Read/write access to the ``customers`` table."""

    def upsert(self, customer: CustomerInfo) -> None:
        """Insert a customer, or refresh contact details if it already exists."""
        self.execute(
            """
            INSERT INTO customers (customer_id, email, first_name, last_name)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(customer_id) DO UPDATE SET
                email      = excluded.email,
                first_name = excluded.first_name,
                last_name  = excluded.last_name;
            """,
            (
                customer.customer_id,
                customer.email,
                customer.first_name,
                customer.last_name,
            ),
        )

    def get_by_id(self, customer_id: str) -> Optional[CustomerInfo]:
        """Fetch a customer by primary key, or ``None``."""
        row = self.fetchone(
            "SELECT * FROM customers WHERE customer_id = ?;", (customer_id,)
        )
        return _row_to_customer(row) if row else None


class ProductRepository(BaseRepository):
    """Read/write access to the ``products`` table."""

    def upsert(self, product: ProductRecord) -> None:
        """Insert a product, or update its name/category if it already exists."""
        self.execute(
            """
            INSERT INTO products (product_id, name, category_id)
            VALUES (?, ?, ?)
            ON CONFLICT(product_id) DO UPDATE SET
                name        = excluded.name,
                category_id = excluded.category_id;
            """,
            (product.product_id, product.name, product.category_id),
        )

    def get_category(self, product_id: str) -> Optional[str]:
        """Return the category id of a product, or ``None`` if unknown."""
        row = self.fetchone(
            "SELECT category_id FROM products WHERE product_id = ?;", (product_id,)
        )
        return row["category_id"] if row else None

    def get_all(self) -> list[ProductRecord]:
        rows = self.fetchall("SELECT * FROM products ORDER BY product_id;")
        return [
            ProductRecord(
                product_id=r["product_id"], name=r["name"], category_id=r["category_id"]
            )
            for r in rows
        ]


class OrderRepository(BaseRepository):
    """Read/write access to ``orders`` and ``order_items``."""

    def insert(self, order: OrderRecord) -> None:
        """Insert an order with its lines.

        Raises:
            sqlite3.IntegrityError: If ``order.order_id`` already exists.
        """
        self.execute(
            """
            INSERT INTO orders (order_id, customer_id, total, status, created_at)
            VALUES (?, ?, ?, ?, ?);
            """,
            (
                order.order_id,
                order.customer_id,
                order.total,
                order.status,
                to_db_timestamp(order.created_at),
            ),
        )
        if order.items:
            self.executemany(
                """
                INSERT INTO order_items (order_id, product_id, quantity, price)
                VALUES (?, ?, ?, ?);
                """,
                [
                    (order.order_id, line.product_id, line.quantity, line.price)
                    for line in order.items
                ],
            )

    def exists(self, order_id: str) -> bool:
        row = self.fetchone("SELECT 1 FROM orders WHERE order_id = ?;", (order_id,))
        return row is not None

    def get_completed_by_customer(self, customer_id: str) -> list[OrderRecord]:
        """Delivered orders for one customer, newest first.

        Args:
            customer_id: Customer to look up.

        Returns:
            ``OrderRecord`` list with items populated; empty if none.
        """
        order_rows = self.fetchall(
            """
            SELECT * FROM orders
            WHERE customer_id = ? AND status = ?
            ORDER BY created_at DESC, order_id;
            """,
            (customer_id, COMPLETED_ORDER_STATUS),
        )
        if not order_rows:
            return []

        order_ids = [r["order_id"] for r in order_rows]
        item_rows = self.fetchall(
            f"""
            SELECT * FROM order_items
            WHERE order_id IN ({in_placeholders(order_ids)})
            ORDER BY order_item_id;
            """,
            tuple(order_ids),
        )
        lines: dict[str, list[OrderLine]] = defaultdict(list)
        for r in item_rows:
            lines[r["order_id"]].append(
                OrderLine(product_id=r["product_id"], quantity=r["quantity"], price=r["price"])
            )
        return [_row_to_order(r, lines[r["order_id"]]) for r in order_rows]

    def get_customers_with_completed_orders(self) -> list[str]:
        """Distinct customer ids with at least one delivered order.

        Ordered by each customer's first delivered order, so discovery order
        is stable across runs.
        """
        rows = self.fetchall(
            """
            SELECT customer_id, MIN(created_at) AS first_order
            FROM orders
            WHERE status = ?
            GROUP BY customer_id
            ORDER BY first_order, customer_id;
            """,
            (COMPLETED_ORDER_STATUS,),
        )
        return [r["customer_id"] for r in rows]


# ── Row → model converters ────────────────────────────────────────────────────

def _row_to_customer(row: sqlite3.Row) -> CustomerInfo:
    return CustomerInfo(
        customer_id=row["customer_id"],
        email=row["email"],
        first_name=row["first_name"],
        last_name=row["last_name"],
    )


def _row_to_order(row: sqlite3.Row, items: list[OrderLine]) -> OrderRecord:
    return OrderRecord(
        order_id=row["order_id"],
        customer_id=row["customer_id"],
        items=items,
        total=row["total"],
        created_at=from_db_timestamp(row["created_at"]),
        status=row["status"],
    )
