"""
Qualitative segment labels derived from a behavior profile.

Used by the heuristic oracle to reason about customers, and by the workflow
runner to fill insight fields an oracle left blank.
"""

from __future__ import annotations

from typing import Optional

from remarketing.models.behavior import CustomerBehaviorProfile
from remarketing.taxonomy.recommendation_taxonomy import EngagementLevel, FrequencyTier

# Same recency boundaries as the CLV engagement multiplier.
_ENGAGEMENT_BOUNDS: tuple[tuple[int, EngagementLevel], ...] = (
    (30, EngagementLevel.HIGH),
    (90, EngagementLevel.MEDIUM),
    (180, EngagementLevel.LOW),
)

HIGH_FREQUENCY = 2.0     # orders / month
MEDIUM_FREQUENCY = 0.5
CHURN_HORIZON_DAYS = 180


def engagement_level_for(days_since_last_order: Optional[int]) -> EngagementLevel:
    """Bucket recency into high / medium / low / dormant."""
    if days_since_last_order is None:
        return EngagementLevel.DORMANT
    for upper, level in _ENGAGEMENT_BOUNDS:
        if days_since_last_order < upper:
            return level
    return EngagementLevel.DORMANT


def frequency_tier_for(purchase_frequency: float) -> FrequencyTier:
    """Bucket orders-per-month into high / medium / low."""
    if purchase_frequency >= HIGH_FREQUENCY:
        return FrequencyTier.HIGH
    if purchase_frequency >= MEDIUM_FREQUENCY:
        return FrequencyTier.MEDIUM
    return FrequencyTier.LOW


def churn_risk_for(profile: CustomerBehaviorProfile) -> int:
    """0–100 churn risk, linear in recency up to ``CHURN_HORIZON_DAYS``."""
    days = profile.days_since_last_order
    if days is None:
        return 100
    return max(0, min(100, round(days / CHURN_HORIZON_DAYS * 100)))
