"""
Collaborator contracts consumed by the analyzer, workflow runner, and scheduler.

The core never talks to SQLite or an HTTP API directly; it talks to these
protocols.  ``remarketing.db.store`` provides the SQLite implementations and
the tests provide in-memory fakes.

All timestamps passed in are aware UTC datetimes supplied by the caller's
clock, so the store never reads the system time itself.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Optional, Protocol

from remarketing.models.order import CustomerInfo, OrderRecord
from remarketing.models.recommendation import RecommendationRecord
from remarketing.taxonomy.recommendation_taxonomy import (
    RecommendationStatus,
    RecommendationType,
)


class OrderSource(Protocol):
    """Read access to completed (delivered) order history."""

    def find_completed_orders_by_customer(self, customer_id: str) -> list[OrderRecord]:
        """Completed orders for one customer, newest first."""
        ...

    def list_distinct_customers_with_completed_orders(self) -> list[str]:
        """Distinct customer ids with at least one completed order."""
        ...


class CategoryResolver(Protocol):
    """Maps a product to its category."""

    def category_of(self, product_id: str) -> Optional[str]:
        ...


class CustomerDirectory(Protocol):
    """Basic customer contact details."""

    def get_basic_info(self, customer_id: str) -> Optional[CustomerInfo]:
        ...


class RecommendationStore(Protocol):
    """Durable recommendation repository with status/expiry semantics.

    Every method is an independent write or read; no cross-call transactions.
    """

    def find_active_unexpired(
        self, customer_id: str, now: datetime
    ) -> list[RecommendationRecord]:
        ...

    def insert(self, record: RecommendationRecord) -> int:
        ...

    def bulk_expire_active(
        self, now: datetime, customer_id: Optional[str] = None
    ) -> int:
        ...

    def bulk_expire_past_due(self, now: datetime) -> int:
        ...

    def delete_older_than(
        self, statuses: Iterable[RecommendationStatus], cutoff: datetime
    ) -> int:
        ...

    def update_status(
        self,
        rec_id: int,
        status: RecommendationStatus,
        now: datetime,
        notes: Optional[str] = None,
    ) -> RecommendationRecord:
        """Raises ``RecommendationNotFoundError`` for an unknown id."""
        ...

    def get(self, rec_id: int) -> Optional[RecommendationRecord]:
        ...

    def list_recommendations(
        self,
        customer_id: Optional[str] = None,
        status: Optional[RecommendationStatus] = None,
        recommendation_type: Optional[RecommendationType] = None,
        priority_min: Optional[int] = None,
        priority_max: Optional[int] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Sequence[RecommendationRecord]:
        ...
