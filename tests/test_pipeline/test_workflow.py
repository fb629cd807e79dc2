"""
Tests for the recommendation generation pass.

What we test
------------
1. Unconfigured oracle fails the whole pass before any customer is touched.
2. New customers get one active record per candidate, expiring in 2 days,
   with the contact snapshot filled in.
3. A second pass without force_refresh is a no-op for current customers.
4. force_refresh expires the old set before inserting the new one.
5. Per-customer failures are isolated and reported.
6. No behavior data -> failed; empty filtered candidates -> neither.
7. Supplied customer ids are stripped and de-duplicated.
8. A malformed entry in a real oracle reply is dropped; the customer is still
   processed with its surviving candidates.
9. build_record fills insight fields the oracle left blank.
"""

from __future__ import annotations

import json
from datetime import timedelta

import httpx
import pytest

from remarketing.analysis.behavior import BehaviorAnalyzer
from remarketing.config import OracleConfig
from remarketing.errors import OracleError, OracleNotConfiguredError
from remarketing.models.order import CustomerInfo
from remarketing.models.recommendation import InsightOverrides
from remarketing.oracle.base import RecommendationOracle
from remarketing.oracle.llm_oracle import LLMRecommendationOracle
from remarketing.pipeline.workflow import NO_BEHAVIOR_DATA, WorkflowRunner, build_record
from remarketing.taxonomy.recommendation_taxonomy import (
    EngagementLevel,
    FrequencyTier,
    RecommendationStatus,
    RecommendationType,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

class StubOracle(RecommendationOracle):
    """Returns fixed candidates; raises for customers listed in ``failing``."""

    name = "stub"

    def __init__(self, candidates, configured: bool = True) -> None:
        self.candidates = candidates
        self.configured = configured
        self.failing: set[str] = set()
        self.scored: list[str] = []

    def is_configured(self) -> bool:
        return self.configured

    def score(self, profile):
        self.scored.append(profile.customer_id)
        if profile.customer_id in self.failing:
            raise OracleError("upstream timed out")
        return list(self.candidates)


@pytest.fixture
def populated_source(order_source, order_factory):
    for cid in ("c1", "c2", "c3"):
        order_source.orders[cid] = [order_factory(f"{cid}-o1", customer_id=cid)]
    order_source.customers["c1"] = CustomerInfo(
        customer_id="c1", email="ada@example.com", first_name="Ada", last_name="Lovelace"
    )
    return order_source


@pytest.fixture
def oracle(candidate_factory):
    return StubOracle([
        candidate_factory(RecommendationType.LOYALTY_REWARD, 70),
        candidate_factory(RecommendationType.UPSELL, 40),
    ])


def _runner(source, oracle, store, clock, **kwargs) -> WorkflowRunner:
    return WorkflowRunner(
        analyzer=BehaviorAnalyzer(source, source, clock=clock),
        oracle=oracle,
        store=store,
        directory=source,
        clock=clock,
        **kwargs,
    )


# ── Pre-flight ────────────────────────────────────────────────────────────────

class TestPreflight:
    def test_unconfigured_oracle_raises_before_any_work(
        self, populated_source, rec_store, clock, candidate_factory
    ):
        oracle = StubOracle([candidate_factory()], configured=False)
        runner = _runner(populated_source, oracle, rec_store, clock)

        with pytest.raises(OracleNotConfiguredError, match="stub"):
            runner.execute_workflow()
        assert rec_store.calls == []
        assert oracle.scored == []


# ── Generation ────────────────────────────────────────────────────────────────

class TestGeneration:
    def test_new_customers_get_records(self, populated_source, oracle, rec_store, clock):
        result = _runner(populated_source, oracle, rec_store, clock).execute_workflow()

        assert result.processed == ["c1", "c2", "c3"]
        assert result.failed == []
        assert result.total_generated == 6
        first = rec_store.active_for("c1")[0]
        assert first.status == RecommendationStatus.ACTIVE
        assert first.generated_at == clock.now
        assert first.expires_at == clock.now + timedelta(days=2)
        assert first.customer_email == "ada@example.com"
        assert first.customer_name == "Ada Lovelace"
        assert rec_store.active_for("c2")[0].customer_email is None

    def test_second_pass_without_refresh_is_noop(
        self, populated_source, oracle, rec_store, clock
    ):
        runner = _runner(populated_source, oracle, rec_store, clock)
        runner.execute_workflow()
        clock.advance(hours=1)

        second = runner.execute_workflow()
        assert second.total_generated == 0
        assert sorted(second.processed) == ["c1", "c2", "c3"]
        assert sorted(second.skipped) == ["c1", "c2", "c3"]
        assert len(rec_store.records) == 6

    def test_regenerates_after_expiry(self, populated_source, oracle, rec_store, clock):
        runner = _runner(populated_source, oracle, rec_store, clock)
        runner.execute_workflow(customer_ids=["c1"])
        clock.advance(days=3)

        result = runner.execute_workflow(customer_ids=["c1"])
        assert result.total_generated == 2
        assert result.skipped == []

    def test_force_refresh_expires_before_insert(
        self, populated_source, oracle, rec_store, clock
    ):
        runner = _runner(populated_source, oracle, rec_store, clock)
        runner.execute_workflow(customer_ids=["c1"])
        rec_store.calls.clear()
        clock.advance(hours=1)

        result = runner.execute_workflow(customer_ids=["c1"], force_refresh=True)

        assert result.total_generated == 2
        assert rec_store.calls[0] == ("bulk_expire_active", "c1")
        assert all(call == ("insert", "c1") for call in rec_store.calls[1:])
        live = rec_store.active_for("c1")
        assert len(live) == 2
        assert all(r.generated_at == clock.now for r in live)
        expired = [r for r in rec_store.records if r.status == RecommendationStatus.EXPIRED]
        assert len(expired) == 2

    def test_allowed_types_filter(self, populated_source, oracle, rec_store, clock):
        result = _runner(populated_source, oracle, rec_store, clock).execute_workflow(
            customer_ids=["c1"], allowed_types=[RecommendationType.UPSELL]
        )
        assert result.total_generated == 1
        assert rec_store.records[0].recommendation_type == RecommendationType.UPSELL

    def test_empty_filtered_set_is_neither_processed_nor_failed(
        self, populated_source, oracle, rec_store, clock
    ):
        runner = _runner(
            populated_source, oracle, rec_store, clock,
            allowed_types=[RecommendationType.WIN_BACK],
        )
        result = runner.execute_workflow(customer_ids=["c1"])
        assert result.processed == []
        assert result.failed == []
        assert rec_store.records == []


# ── Failure isolation ─────────────────────────────────────────────────────────

class TestFailureIsolation:
    def test_oracle_failure_isolated(self, populated_source, oracle, rec_store, clock):
        oracle.failing.add("c2")
        result = _runner(populated_source, oracle, rec_store, clock).execute_workflow()

        assert result.processed == ["c1", "c3"]
        assert [(f.customer_id, f.error) for f in result.failed] == [
            ("c2", "upstream timed out"),
        ]
        assert result.total_generated == 4

    def test_order_source_failure_isolated(self, populated_source, oracle, rec_store, clock):
        populated_source.fail_for.add("c1")
        result = _runner(populated_source, oracle, rec_store, clock).execute_workflow()
        assert [f.customer_id for f in result.failed] == ["c1"]
        assert result.processed == ["c2", "c3"]

    def test_unknown_customer_has_no_behavior_data(
        self, populated_source, oracle, rec_store, clock
    ):
        result = _runner(populated_source, oracle, rec_store, clock).execute_workflow(
            customer_ids=["ghost"]
        )
        assert [(f.customer_id, f.error) for f in result.failed] == [("ghost", NO_BEHAVIOR_DATA)]
        assert oracle.scored == []

    def test_supplied_ids_are_cleaned(self, populated_source, oracle, rec_store, clock):
        result = _runner(populated_source, oracle, rec_store, clock).execute_workflow(
            customer_ids=[" c1 ", "", "c1", "c2"]
        )
        assert result.processed == ["c1", "c2"]
        assert oracle.scored == ["c1", "c2"]

    def test_summary_counts(self, populated_source, oracle, rec_store, clock):
        oracle.failing.add("c3")
        result = _runner(populated_source, oracle, rec_store, clock).execute_workflow()
        assert result.summary() == {
            "processed": 2, "failed": 1, "skipped": 0, "total_generated": 4,
        }


# ── Malformed oracle replies ──────────────────────────────────────────────────

class TestMalformedOracleReply:
    def test_good_entry_survives_malformed_sibling(self, populated_source, rec_store, clock):
        content = json.dumps({"recommendations": [
            {"recommendation_type": "upsell", "priority_score": 60,
             "reasons": ["Spend rising"], "suggested_actions": ["Show premium sofas"],
             "ai_analysis": "Customer looks ready to trade up."},
            {"recommendation_type": "loyalty_reward", "priority_score": 75,
             "reasons": ["Steady repeat buyer"], "suggested_actions": ["Offer points"],
             "ai_analysis": {"behavioral_pattern": "Regular"}},
        ]})

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={
                "choices": [{"message": {"role": "assistant", "content": content}}],
            })

        base_url = "https://llm.test/v1"
        client = httpx.Client(transport=httpx.MockTransport(handler), base_url=base_url)
        oracle = LLMRecommendationOracle(
            OracleConfig(api_key="sk-test", base_url=base_url), client=client,
        )

        result = _runner(populated_source, oracle, rec_store, clock).execute_workflow(
            customer_ids=["c1"],
        )

        assert result.processed == ["c1"]
        assert result.failed == []
        assert result.total_generated == 1
        [record] = rec_store.active_for("c1")
        assert record.recommendation_type == RecommendationType.LOYALTY_REWARD


# ── build_record ──────────────────────────────────────────────────────────────

class TestBuildRecord:
    def test_fills_blank_insights_from_profile(self, sample_profile, candidate_factory, clock):
        record = build_record(sample_profile, candidate_factory(), now=clock.now, expiry_days=2)

        assert record.customer_insights.total_orders == 3
        assert record.customer_insights.favorite_categories == ["sofas", "lamps"]
        assert record.customer_insights.purchase_frequency_tier == FrequencyTier.MEDIUM
        assert record.customer_insights.churn_risk_score == 3
        assert record.customer_insights.seasonal_patterns == ["winter"]
        assert record.ai_analysis.engagement_level == EngagementLevel.HIGH
        assert record.last_updated == clock.now

    def test_oracle_overrides_win(self, sample_profile, candidate_factory, clock):
        candidate = candidate_factory().model_copy(update={
            "insight_overrides": InsightOverrides(
                purchase_frequency_tier=FrequencyTier.HIGH,
                churn_risk_score=0,
                engagement_level=EngagementLevel.LOW,
            ),
        })
        record = build_record(sample_profile, candidate, now=clock.now, expiry_days=1)

        assert record.customer_insights.purchase_frequency_tier == FrequencyTier.HIGH
        assert record.customer_insights.churn_risk_score == 0
        assert record.ai_analysis.engagement_level == EngagementLevel.LOW
        assert record.expires_at == clock.now + timedelta(days=1)
