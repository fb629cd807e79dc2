"""
Repository base class over a caller-managed ``sqlite3.Connection``.

Repositories never open, commit or close connections; ``get_connection()``
does that.  Each subclass owns one table family (orders, recommendations)
and converts rows to pydantic models at its boundary.

Helpers here cover the three shapes of SQL the repositories repeat:
parameterised statements, ``IN (...)`` lists built from status or id
collections, and optional ``WHERE`` filters from CLI-style keyword arguments.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Sequence
from typing import Any, Optional

logger = logging.getLogger(__name__)

Params = tuple[Any, ...]


class BaseRepository:
    """Shared SQL helpers for the order and recommendation repositories.

    Attributes:
        conn: The active ``sqlite3.Connection`` (``row_factory = sqlite3.Row``).
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def execute(self, sql: str, params: Params = ()) -> sqlite3.Cursor:
        logger.debug("SQL: %s | params: %s", " ".join(sql.split()), params)
        return self.conn.execute(sql, params)

    def executemany(self, sql: str, rows: Sequence[Params]) -> sqlite3.Cursor:
        logger.debug("SQL (many): %s | rows: %d", " ".join(sql.split()), len(rows))
        return self.conn.executemany(sql, rows)

    def fetchone(self, sql: str, params: Params = ()) -> Optional[sqlite3.Row]:
        return self.execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: Params = ()) -> list[sqlite3.Row]:
        return self.execute(sql, params).fetchall()

    def insert_returning_id(self, sql: str, params: Params) -> int:
        """Run an INSERT and return the new row's integer primary key."""
        cursor = self.execute(sql, params)
        if cursor.lastrowid is None:
            raise sqlite3.DatabaseError("INSERT did not produce a rowid.")
        return int(cursor.lastrowid)


# ── SQL fragment builders ─────────────────────────────────────────────────────

def in_placeholders(values: Sequence[Any]) -> str:
    """``"?,?,?"`` for an ``IN (...)`` list; ``values`` must be non-empty."""
    if not values:
        raise ValueError("IN list needs at least one value.")
    return ",".join("?" for _ in values)


def where_clause(filters: Sequence[tuple[str, Any]]) -> tuple[str, Params]:
    """Join ``(condition, value)`` pairs whose value is not ``None``.

    Example::

        where_clause([("status = ?", "active"), ("priority_score >= ?", None)])
        # -> ("WHERE status = ?", ("active",))
    """
    kept = [(cond, value) for cond, value in filters if value is not None]
    if not kept:
        return "", ()
    return (
        "WHERE " + " AND ".join(cond for cond, _ in kept),
        tuple(value for _, value in kept),
    )
