"""
Recommendation taxonomy: the fixed categorical vocabularies used by the
recommendation records and the oracle contract.

  - ``RecommendationType``  : which remarketing strategy is suggested.
  - ``RecommendationStatus``: lifecycle state of a persisted record.
  - ``EngagementLevel``     : qualitative recency/activity bucket.
  - ``FrequencyTier``       : coarse purchase-frequency label.
  - ``Season``              : fixed 3-month buckets for seasonal patterns.

Usage example::

    from remarketing.taxonomy.recommendation_taxonomy import RecommendationType

    rec_type = RecommendationType.WIN_BACK

This module has NO imports from any other ``remarketing`` package.
"""

from enum import StrEnum


class RecommendationType(StrEnum):
    """Remarketing strategy suggested for a customer."""

    CHURN_RISK = "churn_risk"
    """Customer likely to stop purchasing."""

    WIN_BACK = "win_back"
    """Inactive customer to re-engage."""

    UPSELL = "upsell"
    """Customer ready for higher-value purchases."""

    CROSS_SELL = "cross_sell"
    """Customer who might buy complementary items."""

    LOYALTY_REWARD = "loyalty_reward"
    """High-value customer to retain."""

    FIRST_TIME_BUYER = "first_time_buyer"
    """New customer needing nurturing."""

    HIGH_VALUE_INACTIVE = "high_value_inactive"
    """Valuable customer who has gone quiet."""


class RecommendationStatus(StrEnum):
    """Lifecycle state of a persisted recommendation record.

    ``ACTIVE`` is the only non-terminal state.  Records only become active
    through a fresh insert.
    """

    ACTIVE = "active"
    PROCESSED = "processed"
    EXPIRED = "expired"
    DISMISSED = "dismissed"


TERMINAL_STATUSES: frozenset[RecommendationStatus] = frozenset({
    RecommendationStatus.PROCESSED,
    RecommendationStatus.EXPIRED,
    RecommendationStatus.DISMISSED,
})


class EngagementLevel(StrEnum):
    """Qualitative recency/activity bucket."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    DORMANT = "dormant"


class FrequencyTier(StrEnum):
    """Coarse purchase-frequency label used in insight snapshots."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Season(StrEnum):
    """Fixed 3-month seasons (northern hemisphere)."""

    SPRING = "spring"   # Mar, Apr, May
    SUMMER = "summer"   # Jun, Jul, Aug
    FALL = "fall"       # Sep, Oct, Nov
    WINTER = "winter"   # Dec, Jan, Feb


YEAR_ROUND = "year-round"
"""Seasonal tag reported when no season stands out."""
