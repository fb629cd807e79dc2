"""Tests for repository round-trip operations using in-memory SQLite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from remarketing.db.repositories.base import in_placeholders, where_clause
from remarketing.db.repositories.order_repo import (
    CustomerRepository,
    OrderRepository,
    ProductRepository,
)
from remarketing.db.repositories.recommendation_repo import RecommendationRepository
from remarketing.errors import InvalidStatusTransitionError
from remarketing.models.order import CustomerInfo, OrderLine, ProductRecord
from remarketing.taxonomy.recommendation_taxonomy import (
    TERMINAL_STATUSES,
    RecommendationStatus,
    RecommendationType,
)

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


# ── Orders, customers, products ───────────────────────────────────────────────

class TestOrderRepositories:
    def test_customer_upsert_and_get(self, in_memory_db):
        repo = CustomerRepository(in_memory_db)
        repo.upsert(CustomerInfo(customer_id="c1", email="old@example.com"))
        repo.upsert(CustomerInfo(customer_id="c1", email="ada@example.com",
                                 first_name="Ada", last_name="Lovelace"))

        fetched = repo.get_by_id("c1")
        assert fetched.email == "ada@example.com"
        assert fetched.display_name == "Ada Lovelace"
        assert repo.get_by_id("missing") is None

    def test_product_category(self, in_memory_db):
        repo = ProductRepository(in_memory_db)
        repo.upsert(ProductRecord(product_id="p1", name="Oak Table", category_id="tables"))
        assert repo.get_category("p1") == "tables"
        assert repo.get_category("ghost") is None
        assert [p.product_id for p in repo.get_all()] == ["p1"]

    def test_completed_orders_round_trip(self, in_memory_db, order_factory):
        repo = OrderRepository(in_memory_db)
        repo.insert(order_factory("o1", created_at=NOW - timedelta(days=20), items=[
            OrderLine(product_id="p1", quantity=2, price=40.0),
            OrderLine(product_id="p2", quantity=1, price=20.0),
        ], total=100.0))
        repo.insert(order_factory("o2", created_at=NOW - timedelta(days=2)))
        repo.insert(order_factory("o3", status="cancelled"))

        orders = repo.get_completed_by_customer("c1")
        assert [o.order_id for o in orders] == ["o2", "o1"]
        assert orders[0].created_at == NOW - timedelta(days=2)
        assert [(line.product_id, line.quantity) for line in orders[1].items] == [
            ("p1", 2), ("p2", 1),
        ]
        assert repo.exists("o3")
        assert not repo.exists("o4")

    def test_distinct_customers_ordered_by_first_order(self, in_memory_db, order_factory):
        repo = OrderRepository(in_memory_db)
        repo.insert(order_factory("o1", customer_id="late", created_at=NOW - timedelta(days=1)))
        repo.insert(order_factory("o2", customer_id="early", created_at=NOW - timedelta(days=50)))
        repo.insert(order_factory("o3", customer_id="early", created_at=NOW - timedelta(days=3)))
        repo.insert(order_factory("o4", customer_id="pending", status="pending"))

        assert repo.get_customers_with_completed_orders() == ["early", "late"]


# ── Recommendations ───────────────────────────────────────────────────────────

class TestRecommendationRepository:
    def test_insert_and_get_round_trip(self, in_memory_db, record_factory):
        repo = RecommendationRepository(in_memory_db)
        record = record_factory(generated_at=NOW)
        rec_id = repo.insert(record)

        fetched = repo.get_by_id(rec_id)
        assert fetched.rec_id == rec_id
        assert fetched.reasons == record.reasons
        assert fetched.customer_insights == record.customer_insights
        assert fetched.ai_analysis == record.ai_analysis
        assert fetched.generated_at == NOW
        assert fetched.expires_at == NOW + timedelta(days=2)

    def test_find_active_unexpired(self, in_memory_db, record_factory):
        repo = RecommendationRepository(in_memory_db)
        repo.insert(record_factory(priority=40))
        repo.insert(record_factory(priority=90))
        repo.insert(record_factory(status=RecommendationStatus.DISMISSED))
        repo.insert(record_factory(generated_at=NOW - timedelta(days=5)))  # expired by time
        repo.insert(record_factory(customer_id="c2"))

        live = repo.find_active_unexpired("c1", NOW)
        assert [r.priority_score for r in live] == [90, 40]

    def test_expires_exactly_now_is_not_live(self, in_memory_db, record_factory):
        repo = RecommendationRepository(in_memory_db)
        repo.insert(record_factory(generated_at=NOW - timedelta(days=2)))
        assert repo.find_active_unexpired("c1", NOW) == []

    def test_bulk_expire_active_scoped_to_customer(self, in_memory_db, record_factory):
        repo = RecommendationRepository(in_memory_db)
        repo.insert(record_factory(customer_id="c1"))
        repo.insert(record_factory(customer_id="c1", status=RecommendationStatus.PROCESSED))
        repo.insert(record_factory(customer_id="c2"))

        assert repo.bulk_expire_active(NOW, customer_id="c1") == 1
        assert repo.count_by_status() == {"expired": 1, "processed": 1, "active": 1}

    def test_bulk_expire_past_due(self, in_memory_db, record_factory):
        repo = RecommendationRepository(in_memory_db)
        stale_id = repo.insert(record_factory(generated_at=NOW - timedelta(days=3)))
        fresh_id = repo.insert(record_factory(generated_at=NOW))

        assert repo.bulk_expire_past_due(NOW) == 1
        assert repo.get_by_id(stale_id).status == RecommendationStatus.EXPIRED
        assert repo.get_by_id(stale_id).last_updated == NOW
        assert repo.get_by_id(fresh_id).status == RecommendationStatus.ACTIVE

    def test_delete_older_than(self, in_memory_db, record_factory):
        repo = RecommendationRepository(in_memory_db)
        old = NOW - timedelta(days=31)
        repo.insert(record_factory(status=RecommendationStatus.PROCESSED,
                                   generated_at=old, last_updated=old))
        repo.insert(record_factory(status=RecommendationStatus.DISMISSED,
                                   generated_at=old, last_updated=NOW - timedelta(days=29)))
        repo.insert(record_factory(generated_at=old))  # active, never deleted

        cutoff = NOW - timedelta(days=30)
        assert repo.delete_older_than(TERMINAL_STATUSES, cutoff) == 1
        assert repo.count_by_status() == {"dismissed": 1, "active": 1}

    def test_delete_refuses_active(self, in_memory_db):
        repo = RecommendationRepository(in_memory_db)
        with pytest.raises(ValueError):
            repo.delete_older_than([RecommendationStatus.ACTIVE], NOW)
        assert repo.delete_older_than([], NOW) == 0

    def test_update_status_with_notes(self, in_memory_db, record_factory):
        repo = RecommendationRepository(in_memory_db)
        rec_id = repo.insert(record_factory())
        later = NOW + timedelta(hours=3)

        updated = repo.update_status(rec_id, RecommendationStatus.PROCESSED, later,
                                     notes="Called, booked showroom visit")
        assert updated.status == RecommendationStatus.PROCESSED
        assert updated.last_updated == later
        assert updated.ai_analysis.personalization_notes == "Called, booked showroom visit"
        assert updated.ai_analysis.behavioral_pattern == "Lapsed customer"

    def test_update_status_missing_and_reactivate(self, in_memory_db, record_factory):
        repo = RecommendationRepository(in_memory_db)
        assert repo.update_status(999, RecommendationStatus.DISMISSED, NOW) is None
        rec_id = repo.insert(record_factory(status=RecommendationStatus.EXPIRED))
        with pytest.raises(InvalidStatusTransitionError):
            repo.update_status(rec_id, RecommendationStatus.ACTIVE, NOW)

    def test_list_filters_and_pagination(self, in_memory_db, record_factory):
        repo = RecommendationRepository(in_memory_db)
        for priority in (10, 50, 90):
            repo.insert(record_factory(priority=priority))
        repo.insert(record_factory(customer_id="c2", rec_type=RecommendationType.UPSELL,
                                   priority=70))

        assert [r.priority_score for r in repo.list_recommendations()] == [90, 70, 50, 10]
        assert [r.priority_score for r in repo.list_recommendations(limit=2, offset=1)] == [70, 50]
        upsell = repo.list_recommendations(recommendation_type=RecommendationType.UPSELL)
        assert [r.customer_id for r in upsell] == ["c2"]
        mid = repo.list_recommendations(customer_id="c1", priority_min=20, priority_max=80)
        assert [r.priority_score for r in mid] == [50]


# ── SQL helpers ───────────────────────────────────────────────────────────────

class TestSqlHelpers:
    def test_where_clause_skips_none(self):
        assert where_clause([("status = ?", "active"), ("priority_score >= ?", None)]) == (
            "WHERE status = ?", ("active",),
        )
        assert where_clause([("customer_id = ?", None)]) == ("", ())

    def test_where_clause_keeps_zero(self):
        where, params = where_clause([("priority_score >= ?", 0)])
        assert where == "WHERE priority_score >= ?"
        assert params == (0,)

    def test_in_placeholders(self):
        assert in_placeholders(["a", "b", "c"]) == "?,?,?"
        with pytest.raises(ValueError):
            in_placeholders([])

    def test_insert_returns_sequential_ids(self, in_memory_db, record_factory):
        repo = RecommendationRepository(in_memory_db)
        first = repo.insert(record_factory("c1"))
        second = repo.insert(record_factory("c2"))
        assert second == first + 1
        assert repo.get_by_id(second).customer_id == "c2"
