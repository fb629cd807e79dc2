"""
SQLite connection management.

Provides a context manager ``get_connection()`` that:
  - Enables foreign key enforcement (OFF by default in SQLite).
  - Enables WAL journal mode so the scheduler thread and CLI readers can
    share the file.
  - Sets a busy timeout to handle lock contention gracefully.
  - Uses ``sqlite3.Row`` factory so rows behave like dicts.
  - Commits on clean exit, rolls back on exception.

``Database`` bundles the three connection settings so long-lived components
(the store facades, the scheduler) can open a fresh connection per operation.

Usage::

    from remarketing.db.connection import Database, get_connection

    with get_connection("data/db/remarketing.db") as conn:
        conn.execute("INSERT INTO ...")

    db = Database.from_config(config.database)
    with db.connect() as conn:
        ...
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Generator

if TYPE_CHECKING:
    from remarketing.config import DatabaseConfig

logger = logging.getLogger(__name__)


@contextmanager
def get_connection(
    db_path: str,
    wal_mode: bool = True,
    busy_timeout_ms: int = 5000,
) -> Generator[sqlite3.Connection, None, None]:
    """Context manager yielding a configured SQLite connection.

    The connection is committed on clean exit and rolled back on exception.
    The database file (and any parent directories) are created if they do
    not already exist.

    Args:
        db_path: Path to the SQLite database file. Use ``":memory:"`` for
            in-memory databases (useful in tests).
        wal_mode: If ``True``, enable WAL journal mode for better concurrency.
        busy_timeout_ms: Milliseconds to wait when the database is locked
            before raising ``OperationalError``.

    Yields:
        An open, configured ``sqlite3.Connection``.

    Raises:
        sqlite3.OperationalError: If the database cannot be opened or is locked.
    """
    if db_path != ":memory:":
        db_file = Path(db_path)
        db_file.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=busy_timeout_ms / 1000)
    conn.row_factory = sqlite3.Row

    try:
        # These pragmas must be set before any DML/DDL
        conn.execute("PRAGMA foreign_keys = ON;")
        conn.execute(f"PRAGMA busy_timeout = {busy_timeout_ms};")

        if wal_mode:
            conn.execute("PRAGMA journal_mode = WAL;")

        yield conn
        conn.commit()

    except Exception:
        conn.rollback()
        raise

    finally:
        conn.close()


@dataclass(frozen=True)
class Database:
    """Connection settings for one SQLite file.

    Attributes:
        db_path: Path to the database file (not ``":memory:"``: every
            ``connect()`` opens a new connection).
        wal_mode: Enable WAL journal mode.
        busy_timeout_ms: Lock wait in milliseconds.
    """

    db_path: str
    wal_mode: bool = True
    busy_timeout_ms: int = 5000

    @classmethod
    def from_config(cls, config: "DatabaseConfig") -> "Database":
        return cls(
            db_path=config.db_path,
            wal_mode=config.wal_mode,
            busy_timeout_ms=config.busy_timeout_ms,
        )

    def connect(self):
        """Return a ``get_connection`` context manager for this database."""
        return get_connection(self.db_path, self.wal_mode, self.busy_timeout_ms)

    def initialize(self) -> None:
        """Create all tables and indexes (idempotent)."""
        from remarketing.db.schema import apply_schema

        with self.connect() as conn:
            apply_schema(conn)
