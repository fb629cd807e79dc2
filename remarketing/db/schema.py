"""
SQLite schema DDL: all CREATE TABLE and CREATE INDEX statements.

All statements use ``IF NOT EXISTS`` so ``apply_schema()`` is **idempotent**:
safe to call on an already-initialized database (e.g. after restart or in tests).

Table creation order respects foreign key dependencies:
  1. customers                 (no FKs)
  2. products                  (no FKs)
  3. orders                    (no FKs; customer_id may be absent from customers)
  4. order_items               (→ orders)
  5. customer_recommendations  (no FKs; customer snapshot is denormalized)

Timestamps are stored as fixed-width UTC text
(``YYYY-MM-DDTHH:MM:SS.ffffffZ``) so string comparison matches time order.
List and snapshot columns on ``customer_recommendations`` hold JSON.
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

# ── DDL statements ─────────────────────────────────────────────────────────────

_DDL_CUSTOMERS = """
CREATE TABLE IF NOT EXISTS customers (
    customer_id     TEXT    PRIMARY KEY,
    email           TEXT,
    first_name      TEXT,
    last_name       TEXT,
    created_at      TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

_DDL_PRODUCTS = """
CREATE TABLE IF NOT EXISTS products (
    product_id      TEXT    PRIMARY KEY,
    name            TEXT    NOT NULL,
    category_id     TEXT    NOT NULL,
    created_at      TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

_DDL_ORDERS = """
CREATE TABLE IF NOT EXISTS orders (
    order_id        TEXT    PRIMARY KEY,
    customer_id     TEXT    NOT NULL,
    total           REAL    NOT NULL CHECK (total >= 0),
    status          TEXT    NOT NULL DEFAULT 'delivered'
                            CHECK (status IN ('pending', 'processing', 'shipped',
                                              'delivered', 'cancelled')),
    created_at      TEXT    NOT NULL
);
"""

_DDL_ORDERS_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_orders_customer_status
    ON orders (customer_id, status, created_at);
"""

_DDL_ORDER_ITEMS = """
CREATE TABLE IF NOT EXISTS order_items (
    order_item_id   INTEGER PRIMARY KEY AUTOINCREMENT,
    order_id        TEXT    NOT NULL REFERENCES orders(order_id) ON DELETE CASCADE,
    product_id      TEXT    NOT NULL,
    quantity        INTEGER NOT NULL CHECK (quantity >= 1),
    price           REAL    NOT NULL CHECK (price >= 0)
);
"""

_DDL_ORDER_ITEMS_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_order_items_order
    ON order_items (order_id);
"""

_DDL_CUSTOMER_RECOMMENDATIONS = """
CREATE TABLE IF NOT EXISTS customer_recommendations (
    rec_id              INTEGER PRIMARY KEY AUTOINCREMENT,
    customer_id         TEXT    NOT NULL,
    customer_email      TEXT,
    customer_name       TEXT,
    recommendation_type TEXT    NOT NULL
                                CHECK (recommendation_type IN (
                                    'churn_risk', 'win_back', 'upsell', 'cross_sell',
                                    'loyalty_reward', 'first_time_buyer',
                                    'high_value_inactive')),
    priority_score      INTEGER NOT NULL CHECK (priority_score BETWEEN 0 AND 100),
    reasons             TEXT    NOT NULL,
    suggested_actions   TEXT    NOT NULL,
    customer_insights   TEXT    NOT NULL,
    ai_analysis         TEXT    NOT NULL,
    status              TEXT    NOT NULL DEFAULT 'active'
                                CHECK (status IN ('active', 'processed', 'expired',
                                                  'dismissed')),
    generated_at        TEXT    NOT NULL,
    expires_at          TEXT    NOT NULL,
    last_updated        TEXT    NOT NULL,
    CHECK (expires_at >= generated_at)
);
"""

_DDL_CUSTOMER_RECOMMENDATIONS_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_recs_customer_status
    ON customer_recommendations (customer_id, status, expires_at);
CREATE INDEX IF NOT EXISTS idx_recs_status_expires
    ON customer_recommendations (status, expires_at);
CREATE INDEX IF NOT EXISTS idx_recs_status_updated
    ON customer_recommendations (status, last_updated);
CREATE INDEX IF NOT EXISTS idx_recs_priority
    ON customer_recommendations (priority_score DESC);
"""

# ── Ordered list of all DDL to apply ──────────────────────────────────────────

_ALL_DDL: list[str] = [
    _DDL_CUSTOMERS,
    _DDL_PRODUCTS,
    _DDL_ORDERS,
    _DDL_ORDERS_INDEXES,
    _DDL_ORDER_ITEMS,
    _DDL_ORDER_ITEMS_INDEXES,
    _DDL_CUSTOMER_RECOMMENDATIONS,
    _DDL_CUSTOMER_RECOMMENDATIONS_INDEXES,
]

# Table names for introspection / tests
ALL_TABLE_NAMES = [
    "customers",
    "products",
    "orders",
    "order_items",
    "customer_recommendations",
]


def apply_schema(conn: sqlite3.Connection) -> None:
    """Apply all DDL statements to ``conn``.

    Idempotent: safe to call on an already-initialized database.
    Each statement uses ``IF NOT EXISTS`` guards.

    Args:
        conn: An open ``sqlite3.Connection`` (FK enforcement should be ON).
    """
    logger.debug("Applying schema to database...")

    for ddl in _ALL_DDL:
        # Each block may contain multiple semicolon-separated statements
        for statement in _split_ddl(ddl):
            if statement.strip():
                conn.execute(statement)

    conn.commit()
    logger.info("Schema applied: %d tables, indexes created/verified.", len(ALL_TABLE_NAMES))


def _split_ddl(ddl: str) -> list[str]:
    """Split a multi-statement DDL block on semicolons."""
    return [s.strip() for s in ddl.split(";") if s.strip()]


def get_existing_tables(conn: sqlite3.Connection) -> list[str]:
    """Return table names present in the database, sorted alphabetically."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]


def get_existing_indexes(conn: sqlite3.Connection) -> list[str]:
    """Return index names present in the database, sorted alphabetically."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='index' ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]
