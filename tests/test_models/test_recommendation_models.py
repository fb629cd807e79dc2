"""Tests for RecommendationCandidate, RecommendationRecord, and order models."""

from __future__ import annotations

from datetime import timedelta

import pytest
from pydantic import ValidationError

from remarketing.models.order import CustomerInfo, OrderLine
from remarketing.models.recommendation import InsightOverrides, RecommendationCandidate
from remarketing.taxonomy.recommendation_taxonomy import RecommendationStatus


class TestRecommendationCandidate:
    def test_text_lists_are_trimmed(self):
        c = RecommendationCandidate(
            recommendation_type="upsell",
            priority_score=0,
            reasons=["  spend rising ", ""],
            suggested_actions=["Promote premium lines"],
        )
        assert c.reasons == ["spend rising"]

    @pytest.mark.parametrize("score", [-1, 101])
    def test_priority_out_of_range(self, score):
        with pytest.raises(ValidationError, match="priority_score"):
            RecommendationCandidate(
                recommendation_type="upsell", priority_score=score,
                reasons=["r"], suggested_actions=["a"],
            )

    def test_unknown_type(self):
        with pytest.raises(ValidationError):
            RecommendationCandidate(
                recommendation_type="teleport", priority_score=50,
                reasons=["r"], suggested_actions=["a"],
            )

    def test_churn_override_range(self):
        with pytest.raises(ValidationError):
            InsightOverrides(churn_risk_score=101)


class TestRecommendationRecord:
    def test_expires_before_generated_raises(self, record_factory):
        record = record_factory()
        with pytest.raises(ValidationError, match="expires_at"):
            record_factory(expires_at=record.generated_at - timedelta(seconds=1))

    def test_zero_lifetime_allowed(self, record_factory):
        record = record_factory()
        same = record_factory(expires_at=record.generated_at)
        assert same.expires_at == same.generated_at

    def test_is_live(self, record_factory):
        record = record_factory()
        assert record.is_live(record.generated_at)
        assert not record.is_live(record.expires_at)
        dismissed = record_factory(status=RecommendationStatus.DISMISSED)
        assert not dismissed.is_live(dismissed.generated_at)

    def test_frozen(self, record_factory):
        with pytest.raises(ValidationError):
            record_factory().priority_score = 10


class TestOrderModels:
    def test_quantity_must_be_positive(self):
        with pytest.raises(ValidationError):
            OrderLine(product_id="p1", quantity=0, price=10.0)

    def test_negative_total_rejected(self, order_factory):
        with pytest.raises(ValidationError):
            order_factory("o1", total=-5.0)

    def test_display_name(self):
        assert CustomerInfo(customer_id="c1", first_name="Ada").display_name == "Ada"
        assert CustomerInfo(customer_id="c1").display_name is None
