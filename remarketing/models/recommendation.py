"""
Recommendation candidate and record models.

``RecommendationCandidate`` is what an oracle proposes for one customer.
It is validated strictly: anything that does not fit (unknown type,
priority outside 0–100, empty reasons) is rejected and the oracle layer
discards it.

``RecommendationRecord`` is the durable row written by the workflow runner.
Both models are frozen; status changes happen in the store and come back
as fresh records.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from remarketing.taxonomy.recommendation_taxonomy import (
    EngagementLevel,
    FrequencyTier,
    RecommendationStatus,
    RecommendationType,
)


def _clean_text_list(values: list[str], field_name: str) -> list[str]:
    cleaned = [v.strip() for v in values if isinstance(v, str) and v.strip()]
    if not cleaned:
        raise ValueError(f"{field_name} must contain at least one non-empty entry.")
    return cleaned


class InsightOverrides(BaseModel):
    """Oracle-supplied judgements that complement the computed profile."""

    model_config = ConfigDict(frozen=True)

    purchase_frequency_tier: Optional[FrequencyTier] = None
    churn_risk_score: Optional[int] = None
    engagement_level: Optional[EngagementLevel] = None

    @field_validator("churn_risk_score")
    @classmethod
    def validate_churn_risk(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and not 0 <= v <= 100:
            raise ValueError(f"churn_risk_score must be in [0, 100], got {v}.")
        return v


class CandidateAnalysis(BaseModel):
    """Free-text analysis notes attached to a candidate."""

    model_config = ConfigDict(frozen=True)

    behavioral_pattern: str = ""
    predicted_next_purchase_window: Optional[str] = None
    personalization_notes: str = ""
    recommended_products: list[str] = []


class RecommendationCandidate(BaseModel):
    """One scored remarketing suggestion produced by an oracle.

    Attributes:
        recommendation_type: Strategy tag.
        priority_score: Urgency/impact rank, 0–100 inclusive.
        reasons: Why this strategy fits (non-empty).
        suggested_actions: What to do about it (non-empty).
        insight_overrides: Oracle judgements merged into the insight snapshot.
        analysis: Behavioral narrative and personalization notes.
    """

    model_config = ConfigDict(frozen=True)

    recommendation_type: RecommendationType
    priority_score: int
    reasons: list[str]
    suggested_actions: list[str]
    insight_overrides: InsightOverrides = InsightOverrides()
    analysis: CandidateAnalysis = CandidateAnalysis()

    @field_validator("priority_score")
    @classmethod
    def validate_priority_range(cls, v: int) -> int:
        if not 0 <= v <= 100:
            raise ValueError(f"priority_score must be in [0, 100], got {v}.")
        return v

    @field_validator("reasons")
    @classmethod
    def validate_reasons(cls, v: list[str]) -> list[str]:
        return _clean_text_list(v, "reasons")

    @field_validator("suggested_actions")
    @classmethod
    def validate_actions(cls, v: list[str]) -> list[str]:
        return _clean_text_list(v, "suggested_actions")


class CustomerInsights(BaseModel):
    """Snapshot of the behavior profile at generation time.  Never rewritten."""

    model_config = ConfigDict(frozen=True)

    total_orders: int
    total_spent: float
    last_order_date: Optional[datetime] = None
    days_since_last_order: Optional[int] = None
    average_order_value: float
    purchase_frequency: float
    purchase_frequency_tier: FrequencyTier
    favorite_categories: list[str] = []
    customer_lifetime_value: float
    churn_risk_score: int = 0
    seasonal_patterns: list[str] = []


class AIAnalysis(BaseModel):
    """Narrative analysis stored with a recommendation."""

    model_config = ConfigDict(frozen=True)

    behavioral_pattern: str
    engagement_level: EngagementLevel
    predicted_next_purchase_window: Optional[str] = None
    recommended_products: list[str] = []
    personalization_notes: str


class RecommendationRecord(BaseModel):
    """A persisted remarketing recommendation.

    Attributes:
        rec_id: Auto-assigned DB PK; ``None`` before insertion.
        customer_id: Customer this recommendation targets.
        customer_email: Email snapshot at generation time.
        customer_name: ``"first last"`` snapshot at generation time.
        recommendation_type: Strategy tag.
        priority_score: 0–100 inclusive.
        reasons: Ordered reasons; non-empty while active.
        suggested_actions: Ordered actions; non-empty while active.
        customer_insights: Immutable profile snapshot.
        ai_analysis: Narrative analysis; ``personalization_notes`` may be
            replaced by a manual status update.
        status: Lifecycle state.
        generated_at: UTC creation time.
        expires_at: UTC time after which an active record is past due.
        last_updated: UTC time of the last status change.
    """

    model_config = ConfigDict(frozen=True)

    rec_id: Optional[int] = None
    customer_id: str
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    recommendation_type: RecommendationType
    priority_score: int
    reasons: list[str]
    suggested_actions: list[str]
    customer_insights: CustomerInsights
    ai_analysis: AIAnalysis
    status: RecommendationStatus = RecommendationStatus.ACTIVE
    generated_at: datetime
    expires_at: datetime
    last_updated: datetime

    @field_validator("priority_score")
    @classmethod
    def validate_priority_range(cls, v: int) -> int:
        if not 0 <= v <= 100:
            raise ValueError(f"priority_score must be in [0, 100], got {v}.")
        return v

    @model_validator(mode="after")
    def validate_record_consistency(self) -> "RecommendationRecord":
        if self.expires_at < self.generated_at:
            raise ValueError(
                f"expires_at ({self.expires_at}) must be >= "
                f"generated_at ({self.generated_at})."
            )
        if self.status == RecommendationStatus.ACTIVE:
            if not self.reasons:
                raise ValueError("Active recommendations need at least one reason.")
            if not self.suggested_actions:
                raise ValueError("Active recommendations need at least one action.")
        return self

    def is_live(self, now: datetime) -> bool:
        """True if active and not yet past ``expires_at``."""
        return self.status == RecommendationStatus.ACTIVE and self.expires_at > now
