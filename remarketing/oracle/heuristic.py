"""
Deterministic rule-based oracle.

Needs no credentials or network, so it backs the ``heuristic`` backend in
offline deployments and gives the tests a stable scorer.

Rules (evaluated independently, at most ``MAX_CANDIDATES`` kept by priority):

  first_time_buyer     one order, placed < 60 days ago                  → 60
  high_value_inactive  >= 180 days quiet, total_spent >= HIGH_VALUE      → 85
  win_back             >= 180 days quiet, below HIGH_VALUE              → 70
  churn_risk           90–179 days quiet, more than one order           → 75
  loyalty_reward       < 90 days quiet, >= 3 orders, spend >= LOYAL     → 65
  upsell               last month's spend above the month before        → 55
  cross_sell           >= 2 orders concentrated in <= 2 categories      → 50
"""

from __future__ import annotations

from typing import Optional

from remarketing.analysis.segments import (
    churn_risk_for,
    engagement_level_for,
    frequency_tier_for,
)
from remarketing.models.behavior import CustomerBehaviorProfile
from remarketing.models.recommendation import (
    CandidateAnalysis,
    InsightOverrides,
    RecommendationCandidate,
)
from remarketing.oracle.base import RecommendationOracle
from remarketing.taxonomy.recommendation_taxonomy import RecommendationType

MAX_CANDIDATES = 3
HIGH_VALUE_THRESHOLD = 1000.0
LOYALTY_SPEND_THRESHOLD = 500.0
NEW_CUSTOMER_DAYS = 60
DORMANT_DAYS = 180
AT_RISK_DAYS = 90


class HeuristicOracle(RecommendationOracle):
    """Scores profiles with fixed recency / value / breadth rules."""

    name = "heuristic"

    def is_configured(self) -> bool:
        return True

    def score(self, profile: CustomerBehaviorProfile) -> list[RecommendationCandidate]:
        overrides = InsightOverrides(
            purchase_frequency_tier=frequency_tier_for(profile.purchase_frequency),
            churn_risk_score=churn_risk_for(profile),
            engagement_level=engagement_level_for(profile.days_since_last_order),
        )
        rules = (
            _first_time_buyer,
            _inactive,
            _churn_risk,
            _loyalty_reward,
            _upsell,
            _cross_sell,
        )
        candidates = []
        for rule in rules:
            candidate = rule(profile)
            if candidate is not None:
                candidates.append(candidate.model_copy(update={"insight_overrides": overrides}))
        candidates.sort(key=lambda c: c.priority_score, reverse=True)
        return candidates[:MAX_CANDIDATES]


# ── Rules ─────────────────────────────────────────────────────────────────────

def _days(profile: CustomerBehaviorProfile) -> int:
    return profile.days_since_last_order if profile.days_since_last_order is not None else 0


def _favorites(profile: CustomerBehaviorProfile) -> str:
    return ", ".join(profile.top_categories()) or "their usual categories"


def _first_time_buyer(profile: CustomerBehaviorProfile) -> Optional[RecommendationCandidate]:
    if profile.order_count != 1 or _days(profile) >= NEW_CUSTOMER_DAYS:
        return None
    return RecommendationCandidate(
        recommendation_type=RecommendationType.FIRST_TIME_BUYER,
        priority_score=60,
        reasons=[
            f"First order placed {_days(profile)} days ago",
            f"Opening order value ${profile.total_spent:.2f}",
        ],
        suggested_actions=[
            "Send a welcome series with care and styling tips",
            f"Offer a second-purchase discount on {_favorites(profile)}",
        ],
        analysis=CandidateAnalysis(
            behavioral_pattern="New customer with a single purchase",
            predicted_next_purchase_window="30-60 days",
            personalization_notes=f"Reference the first purchase in {_favorites(profile)}.",
        ),
    )


def _inactive(profile: CustomerBehaviorProfile) -> Optional[RecommendationCandidate]:
    days = _days(profile)
    if days < DORMANT_DAYS:
        return None
    if profile.total_spent >= HIGH_VALUE_THRESHOLD:
        return RecommendationCandidate(
            recommendation_type=RecommendationType.HIGH_VALUE_INACTIVE,
            priority_score=85,
            reasons=[
                f"No orders for {days} days",
                f"Lifetime spend ${profile.total_spent:.2f}",
            ],
            suggested_actions=[
                "Personal outreach from a design consultant",
                "Exclusive preview of new collections",
            ],
            analysis=CandidateAnalysis(
                behavioral_pattern="Valuable customer who has gone quiet",
                predicted_next_purchase_window="unknown",
                personalization_notes=f"Lead with new arrivals in {_favorites(profile)}.",
            ),
        )
    return RecommendationCandidate(
        recommendation_type=RecommendationType.WIN_BACK,
        priority_score=70,
        reasons=[f"No orders for {days} days"],
        suggested_actions=[
            "Send a we-miss-you offer",
            f"Highlight what is new in {_favorites(profile)}",
        ],
        analysis=CandidateAnalysis(
            behavioral_pattern="Lapsed customer",
            predicted_next_purchase_window="unknown",
        ),
    )


def _churn_risk(profile: CustomerBehaviorProfile) -> Optional[RecommendationCandidate]:
    days = _days(profile)
    if not AT_RISK_DAYS <= days < DORMANT_DAYS or profile.order_count < 2:
        return None
    return RecommendationCandidate(
        recommendation_type=RecommendationType.CHURN_RISK,
        priority_score=75,
        reasons=[
            f"Repeat customer silent for {days} days",
            f"Previously ordered {profile.purchase_frequency:.2f} times per month",
        ],
        suggested_actions=[
            "Send a time-limited retention offer",
            "Ask for feedback on the last purchase",
        ],
        analysis=CandidateAnalysis(
            behavioral_pattern="Repeat buyer whose cadence has slipped",
            predicted_next_purchase_window="at risk",
        ),
    )


def _loyalty_reward(profile: CustomerBehaviorProfile) -> Optional[RecommendationCandidate]:
    if (
        _days(profile) >= AT_RISK_DAYS
        or profile.order_count < 3
        or profile.total_spent < LOYALTY_SPEND_THRESHOLD
    ):
        return None
    return RecommendationCandidate(
        recommendation_type=RecommendationType.LOYALTY_REWARD,
        priority_score=65,
        reasons=[
            f"{profile.order_count} orders totalling ${profile.total_spent:.2f}",
            "Recently active",
        ],
        suggested_actions=[
            "Enroll in the loyalty programme",
            "Send a thank-you reward",
        ],
        analysis=CandidateAnalysis(
            behavioral_pattern="Engaged repeat customer",
            predicted_next_purchase_window="30-90 days",
        ),
    )


def _upsell(profile: CustomerBehaviorProfile) -> Optional[RecommendationCandidate]:
    series = profile.order_trends.monthly_spend
    if len(series) < 2 or series[-1].amount <= series[-2].amount:
        return None
    return RecommendationCandidate(
        recommendation_type=RecommendationType.UPSELL,
        priority_score=55,
        reasons=[
            f"Spend rose from ${series[-2].amount:.2f} ({series[-2].month_key}) "
            f"to ${series[-1].amount:.2f} ({series[-1].month_key})",
        ],
        suggested_actions=[
            f"Promote premium lines in {_favorites(profile)}",
        ],
        analysis=CandidateAnalysis(
            behavioral_pattern="Increasing spend",
            predicted_next_purchase_window="30-60 days",
        ),
    )


def _cross_sell(profile: CustomerBehaviorProfile) -> Optional[RecommendationCandidate]:
    if profile.order_count < 2 or len(profile.favorite_categories) > 2:
        return None
    return RecommendationCandidate(
        recommendation_type=RecommendationType.CROSS_SELL,
        priority_score=50,
        reasons=[f"Purchases concentrated in {_favorites(profile)}"],
        suggested_actions=["Suggest complementary pieces to complete the room"],
        analysis=CandidateAnalysis(
            behavioral_pattern="Narrow category focus",
            predicted_next_purchase_window="60-90 days",
        ),
    )
