"""
Shared pytest fixtures for the remarketing recommender test suite.

Provides:
  - ``in_memory_db``: A fresh in-memory SQLite connection with the full
    schema applied. Created anew for each test that requests it.
  - ``file_db``: A ``Database`` on a temp file (the store facades open a new
    connection per call, so ``:memory:`` cannot be shared between them).
  - ``clock`` / ``NOW``: a fixed, advanceable UTC clock.
  - In-memory fakes for the order source and recommendation store.
  - Sample domain object factories for use in multiple test modules.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Generator, Optional

import pytest

from remarketing.db.connection import Database
from remarketing.db.schema import apply_schema
from remarketing.errors import RecommendationNotFoundError
from remarketing.models.behavior import (
    CategoryAffinity,
    CustomerBehaviorProfile,
    MonthlySpend,
    OrderTrends,
)
from remarketing.models.order import CustomerInfo, OrderLine, OrderRecord
from remarketing.models.recommendation import (
    AIAnalysis,
    CandidateAnalysis,
    CustomerInsights,
    RecommendationCandidate,
    RecommendationRecord,
)
from remarketing.taxonomy.recommendation_taxonomy import (
    EngagementLevel,
    FrequencyTier,
    RecommendationStatus,
    RecommendationType,
)

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


# ── Clock ─────────────────────────────────────────────────────────────────────

class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = NOW) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ── Database fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def in_memory_db() -> Generator[sqlite3.Connection, None, None]:
    """Yield a fresh in-memory SQLite connection with the full schema applied.

    Foreign key enforcement is ON. Schema is applied idempotently.
    Connection is closed after the test.
    """
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    apply_schema(conn)
    yield conn
    conn.close()


@pytest.fixture
def file_db(tmp_path) -> Database:
    """An initialized ``Database`` backed by a temp file."""
    db = Database(db_path=str(tmp_path / "remarketing.db"))
    db.initialize()
    return db


# ── In-memory collaborators ───────────────────────────────────────────────────

class FakeOrderSource:
    """OrderSource + CategoryResolver + CustomerDirectory over plain dicts."""

    def __init__(
        self,
        orders: Optional[dict[str, list[OrderRecord]]] = None,
        categories: Optional[dict[str, str]] = None,
        customers: Optional[dict[str, CustomerInfo]] = None,
    ) -> None:
        self.orders = orders or {}
        self.categories = categories or {}
        self.customers = customers or {}
        self.fail_for: set[str] = set()

    def find_completed_orders_by_customer(self, customer_id: str) -> list[OrderRecord]:
        if customer_id in self.fail_for:
            raise ConnectionError(f"order source unavailable for {customer_id}")
        return [o for o in self.orders.get(customer_id, []) if o.status == "delivered"]

    def list_distinct_customers_with_completed_orders(self) -> list[str]:
        return [c for c, orders in self.orders.items()
                if any(o.status == "delivered" for o in orders)]

    def category_of(self, product_id: str) -> Optional[str]:
        return self.categories.get(product_id)

    def get_basic_info(self, customer_id: str) -> Optional[CustomerInfo]:
        return self.customers.get(customer_id)


class FakeRecommendationStore:
    """List-backed RecommendationStore recording every call for ordering checks."""

    def __init__(self) -> None:
        self.records: list[RecommendationRecord] = []
        self.calls: list[tuple] = []
        self._next_id = 1

    def find_active_unexpired(self, customer_id, now):
        self.calls.append(("find_active_unexpired", customer_id))
        return [r for r in self.records if r.customer_id == customer_id and r.is_live(now)]

    def insert(self, record):
        rec_id = self._next_id
        self._next_id += 1
        self.records.append(record.model_copy(update={"rec_id": rec_id}))
        self.calls.append(("insert", record.customer_id))
        return rec_id

    def bulk_expire_active(self, now, customer_id=None):
        self.calls.append(("bulk_expire_active", customer_id))
        return self._transition(
            lambda r: r.status == RecommendationStatus.ACTIVE
            and (customer_id is None or r.customer_id == customer_id),
            now,
        )

    def bulk_expire_past_due(self, now):
        self.calls.append(("bulk_expire_past_due", None))
        return self._transition(
            lambda r: r.status == RecommendationStatus.ACTIVE and r.expires_at < now, now
        )

    def delete_older_than(self, statuses, cutoff):
        self.calls.append(("delete_older_than", None))
        keep = [r for r in self.records
                if not (r.status in set(statuses) and r.last_updated < cutoff)]
        removed = len(self.records) - len(keep)
        self.records = keep
        return removed

    def update_status(self, rec_id, status, now, notes=None):
        for i, r in enumerate(self.records):
            if r.rec_id == rec_id:
                self.records[i] = r.model_copy(update={"status": status, "last_updated": now})
                return self.records[i]
        raise RecommendationNotFoundError(rec_id)

    def get(self, rec_id):
        return next((r for r in self.records if r.rec_id == rec_id), None)

    def list_recommendations(self, **filters):
        return list(self.records)

    def active_for(self, customer_id: str) -> list[RecommendationRecord]:
        return [r for r in self.records
                if r.customer_id == customer_id and r.status == RecommendationStatus.ACTIVE]

    def _transition(self, predicate, now) -> int:
        count = 0
        for i, r in enumerate(self.records):
            if predicate(r):
                self.records[i] = r.model_copy(
                    update={"status": RecommendationStatus.EXPIRED, "last_updated": now}
                )
                count += 1
        return count


# ── Sample domain object factories ────────────────────────────────────────────

def make_order(
    order_id: str,
    customer_id: str = "c1",
    total: float = 100.0,
    created_at: datetime = NOW - timedelta(days=10),
    status: str = "delivered",
    items: Optional[list[OrderLine]] = None,
) -> OrderRecord:
    return OrderRecord(
        order_id=order_id,
        customer_id=customer_id,
        total=total,
        created_at=created_at,
        status=status,
        items=items if items is not None else [OrderLine(product_id="p1", price=total)],
    )


def make_candidate(
    rec_type: RecommendationType = RecommendationType.LOYALTY_REWARD,
    priority: int = 70,
) -> RecommendationCandidate:
    return RecommendationCandidate(
        recommendation_type=rec_type,
        priority_score=priority,
        reasons=["Recently active"],
        suggested_actions=["Send a thank-you reward"],
        analysis=CandidateAnalysis(behavioral_pattern="Engaged", personalization_notes="-"),
    )


def make_record(
    customer_id: str = "c1",
    rec_type: RecommendationType = RecommendationType.WIN_BACK,
    priority: int = 70,
    status: RecommendationStatus = RecommendationStatus.ACTIVE,
    generated_at: datetime = NOW,
    expires_at: Optional[datetime] = None,
    last_updated: Optional[datetime] = None,
) -> RecommendationRecord:
    return RecommendationRecord(
        customer_id=customer_id,
        customer_email=f"{customer_id}@example.com",
        customer_name="Ada Lovelace",
        recommendation_type=rec_type,
        priority_score=priority,
        reasons=["No orders for 200 days"],
        suggested_actions=["Send a we-miss-you offer"],
        customer_insights=CustomerInsights(
            total_orders=2,
            total_spent=300.0,
            average_order_value=150.0,
            purchase_frequency=0.3,
            purchase_frequency_tier=FrequencyTier.LOW,
            favorite_categories=["sofas"],
            customer_lifetime_value=300.0,
            churn_risk_score=90,
            seasonal_patterns=["winter"],
        ),
        ai_analysis=AIAnalysis(
            behavioral_pattern="Lapsed customer",
            engagement_level=EngagementLevel.DORMANT,
            personalization_notes="Mention the new sofa range.",
        ),
        status=status,
        generated_at=generated_at,
        expires_at=expires_at or generated_at + timedelta(days=2),
        last_updated=last_updated or generated_at,
    )


@pytest.fixture
def sample_profile() -> CustomerBehaviorProfile:
    """A recent repeat buyer: 3 orders, $900, last order 5 days ago."""
    return CustomerBehaviorProfile(
        customer_id="c1",
        total_spent=900.0,
        order_count=3,
        average_order_value=300.0,
        last_order_date=NOW - timedelta(days=5),
        days_since_last_order=5,
        purchase_frequency=1.5,
        favorite_categories=[
            CategoryAffinity(category="sofas", unit_count=1, category_spend=600.0),
            CategoryAffinity(category="lamps", unit_count=3, category_spend=300.0),
        ],
        customer_lifetime_value=6750.0,
        order_trends=OrderTrends(
            monthly_spend=[
                MonthlySpend(month_key="2026-01", amount=200.0),
                MonthlySpend(month_key="2026-02", amount=700.0),
            ],
            seasonal_patterns=["winter"],
        ),
    )


# ── Factory fixtures ──────────────────────────────────────────────────────────

@pytest.fixture
def order_factory():
    return make_order


@pytest.fixture
def candidate_factory():
    return make_candidate


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def order_source() -> FakeOrderSource:
    return FakeOrderSource()


@pytest.fixture
def rec_store() -> FakeRecommendationStore:
    return FakeRecommendationStore()
