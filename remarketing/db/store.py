"""
Connection-per-call SQLite implementations of the collaborator protocols.

The repositories are connection-scoped; the scheduler thread and CLI need
objects that outlive a single connection.  These facades open a fresh
``get_connection()`` for each call, so every operation commits (or rolls
back) independently and the objects are safe to share across threads.

Usage::

    from remarketing.db.connection import Database
    from remarketing.db.store import SQLiteOrderSource, SQLiteRecommendationStore

    db = Database.from_config(config.database)
    orders = SQLiteOrderSource(db)          # OrderSource + CategoryResolver + CustomerDirectory
    store = SQLiteRecommendationStore(db)   # RecommendationStore
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Optional

from remarketing.db.connection import Database
from remarketing.db.repositories.order_repo import (
    CustomerRepository,
    OrderRepository,
    ProductRepository,
)
from remarketing.db.repositories.recommendation_repo import RecommendationRepository
from remarketing.errors import RecommendationNotFoundError
from remarketing.models.order import CustomerInfo, OrderRecord
from remarketing.models.recommendation import RecommendationRecord
from remarketing.taxonomy.recommendation_taxonomy import (
    RecommendationStatus,
    RecommendationType,
)

logger = logging.getLogger(__name__)


class SQLiteOrderSource:
    """Order history, product categories, and customer contacts from SQLite."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def find_completed_orders_by_customer(self, customer_id: str) -> list[OrderRecord]:
        with self.db.connect() as conn:
            return OrderRepository(conn).get_completed_by_customer(customer_id)

    def list_distinct_customers_with_completed_orders(self) -> list[str]:
        with self.db.connect() as conn:
            return OrderRepository(conn).get_customers_with_completed_orders()

    def category_of(self, product_id: str) -> Optional[str]:
        with self.db.connect() as conn:
            return ProductRepository(conn).get_category(product_id)

    def get_basic_info(self, customer_id: str) -> Optional[CustomerInfo]:
        with self.db.connect() as conn:
            return CustomerRepository(conn).get_by_id(customer_id)


class SQLiteRecommendationStore:
    """``RecommendationStore`` over the ``customer_recommendations`` table."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def find_active_unexpired(
        self, customer_id: str, now: datetime
    ) -> list[RecommendationRecord]:
        with self.db.connect() as conn:
            return RecommendationRepository(conn).find_active_unexpired(customer_id, now)

    def insert(self, record: RecommendationRecord) -> int:
        with self.db.connect() as conn:
            return RecommendationRepository(conn).insert(record)

    def bulk_expire_active(
        self, now: datetime, customer_id: Optional[str] = None
    ) -> int:
        with self.db.connect() as conn:
            count = RecommendationRepository(conn).bulk_expire_active(now, customer_id)
        logger.debug("Expired %d active recommendation(s) (customer=%s).", count, customer_id)
        return count

    def bulk_expire_past_due(self, now: datetime) -> int:
        with self.db.connect() as conn:
            return RecommendationRepository(conn).bulk_expire_past_due(now)

    def delete_older_than(
        self, statuses: Iterable[RecommendationStatus], cutoff: datetime
    ) -> int:
        with self.db.connect() as conn:
            return RecommendationRepository(conn).delete_older_than(statuses, cutoff)

    def update_status(
        self,
        rec_id: int,
        status: RecommendationStatus,
        now: datetime,
        notes: Optional[str] = None,
    ) -> RecommendationRecord:
        """Update one record's status.

        Raises:
            RecommendationNotFoundError: If ``rec_id`` does not exist.
            InvalidStatusTransitionError: If ``status`` is ``active``.
        """
        with self.db.connect() as conn:
            updated = RecommendationRepository(conn).update_status(
                rec_id, status, now, notes
            )
        if updated is None:
            raise RecommendationNotFoundError(rec_id)
        logger.info("Recommendation %d → %s", rec_id, updated.status.value)
        return updated

    def get(self, rec_id: int) -> Optional[RecommendationRecord]:
        with self.db.connect() as conn:
            return RecommendationRepository(conn).get_by_id(rec_id)

    def list_recommendations(
        self,
        customer_id: Optional[str] = None,
        status: Optional[RecommendationStatus] = None,
        recommendation_type: Optional[RecommendationType] = None,
        priority_min: Optional[int] = None,
        priority_max: Optional[int] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[RecommendationRecord]:
        with self.db.connect() as conn:
            return RecommendationRepository(conn).list_recommendations(
                customer_id=customer_id,
                status=status,
                recommendation_type=recommendation_type,
                priority_min=priority_min,
                priority_max=priority_max,
                limit=limit,
                offset=offset,
            )

    def count_by_status(self) -> dict[str, int]:
        with self.db.connect() as conn:
            return RecommendationRepository(conn).count_by_status()
