"""
Seed order loader: JSON → SQLite.

Loads a JSON document of customers, products, and orders into the store the
behavior analyzer reads from.  Intended for demos, tests, and back-filling
history exported from the shop database.

Input shape::

    {
      "customers": [{"customer_id": "c1", "email": "a@b.c",
                     "first_name": "Ada", "last_name": "Lovelace"}],
      "products":  [{"product_id": "p1", "name": "Oak Table", "category_id": "tables"}],
      "orders":    [{"order_id": "o1", "customer_id": "c1",
                     "created_at": "2026-01-15T10:00:00Z", "status": "delivered",
                     "total": 450.0,
                     "items": [{"product_id": "p1", "quantity": 1, "price": 450.0}]}]
    }

Validation rules
----------------
- Every record must validate against its pydantic model.
- Duplicate ids within one file are rejected.
- Naive ``created_at`` values are taken as UTC.

Customers and products are upserted; orders whose ``order_id`` already exists
are skipped, so re-importing the same file is harmless.

Usage
-----
    from remarketing.ingestion.order_import import import_order_file

    with get_connection(db_path) as conn:
        result = import_order_file(conn, Path("data/seed/orders.json"))
"""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from remarketing.db.repositories.order_repo import (
    CustomerRepository,
    OrderRepository,
    ProductRepository,
)
from remarketing.models.order import CustomerInfo, OrderRecord, ProductRecord
from remarketing.utils.time_utils import ensure_utc

logger = logging.getLogger(__name__)

_ModelT = TypeVar("_ModelT", bound=BaseModel)


@dataclass
class ImportResult:
    """Row counts from one import."""

    customers:       int = 0
    products:        int = 0
    orders:          int = 0
    orders_skipped:  int = 0


# ── Validation ────────────────────────────────────────────────────────────────

def _parse_section(
    records: list[dict[str, Any]],
    model: type[_ModelT],
    id_field: str,
    section: str,
) -> list[_ModelT]:
    """Validate one section; raise ValueError naming the offending index."""
    if not isinstance(records, list):
        raise ValueError(f"'{section}' must be a list.")
    parsed: list[_ModelT] = []
    seen: set[str] = set()
    for i, rec in enumerate(records):
        try:
            obj = model.model_validate(rec)
        except ValidationError as exc:
            raise ValueError(f"{section}[{i}] is invalid: {exc}") from exc
        key = getattr(obj, id_field)
        if key in seen:
            raise ValueError(f"Duplicate {id_field} '{key}' in {section}[{i}].")
        seen.add(key)
        parsed.append(obj)
    return parsed


def parse_order_document(
    doc: dict[str, Any],
) -> tuple[list[CustomerInfo], list[ProductRecord], list[OrderRecord]]:
    """Validate a decoded seed document.

    Raises:
        ValueError: On any schema violation or duplicate id.
    """
    if not isinstance(doc, dict):
        raise ValueError("Seed document must be a JSON object.")
    customers = _parse_section(doc.get("customers", []), CustomerInfo, "customer_id", "customers")
    products = _parse_section(doc.get("products", []), ProductRecord, "product_id", "products")
    orders = _parse_section(doc.get("orders", []), OrderRecord, "order_id", "orders")
    orders = [
        o.model_copy(update={"created_at": ensure_utc(o.created_at)}) for o in orders
    ]
    return customers, products, orders


# ── Import ────────────────────────────────────────────────────────────────────

def import_order_document(conn: sqlite3.Connection, doc: dict[str, Any]) -> ImportResult:
    """Validate ``doc`` and write it through the repositories.

    The caller owns the transaction (``get_connection`` commits on exit).
    """
    customers, products, orders = parse_order_document(doc)
    result = ImportResult()

    customer_repo = CustomerRepository(conn)
    for customer in customers:
        customer_repo.upsert(customer)
        result.customers += 1

    product_repo = ProductRepository(conn)
    for product in products:
        product_repo.upsert(product)
        result.products += 1

    order_repo = OrderRepository(conn)
    for order in orders:
        if order_repo.exists(order.order_id):
            result.orders_skipped += 1
            continue
        order_repo.insert(order)
        result.orders += 1

    logger.info(
        "Imported %d customers, %d products, %d orders (%d already present).",
        result.customers, result.products, result.orders, result.orders_skipped,
    )
    return result


def import_order_file(conn: sqlite3.Connection, path: Path) -> ImportResult:
    """Load a JSON seed file and import it.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If the file is not valid JSON or fails validation.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Order seed file not found: {path}")
    try:
        doc = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path} is not valid JSON: {exc}") from exc
    return import_order_document(conn, doc)
