"""
Recommendation generation pass.

The ``WorkflowRunner`` walks a customer set sequentially:

  Step 1. Pre-flight:  Oracle must be configured, else the whole pass fails.
  Step 2. Customers:   Supplied ids (blank ids dropped, duplicates collapsed)
                        or every customer with a delivered order.
  Step 3. Per customer (errors isolated):
      a. Skip check:    Without force_refresh, a customer with any active,
                        unexpired recommendation is counted as processed.
      b. Analyze:       No completed orders → failed ("no behavior data").
      c. Score:         Oracle candidates, filtered to allowed types.  An empty
                        set moves on without recording anything.
      d. Replace:       With force_refresh, expire the customer's active set
                        before any insert.
      e. Persist:       One record per candidate, expiring ``expiry_days``
                        after generation.
      f. Record:        Customer processed; inserted count added to total.

Failure isolation
-----------------
Any exception raised while handling one customer (order source, oracle
transport, store I/O) is captured as a ``CustomerFailure`` and the pass
moves on.  Only ``OracleNotConfiguredError`` escapes ``execute_workflow``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from remarketing.analysis.behavior import BehaviorAnalyzer
from remarketing.analysis.segments import (
    churn_risk_for,
    engagement_level_for,
    frequency_tier_for,
)
from remarketing.errors import OracleNotConfiguredError
from remarketing.interfaces import CustomerDirectory, RecommendationStore
from remarketing.models.behavior import CustomerBehaviorProfile
from remarketing.models.recommendation import (
    AIAnalysis,
    CustomerInsights,
    RecommendationCandidate,
    RecommendationRecord,
)
from remarketing.oracle.base import RecommendationOracle
from remarketing.taxonomy.recommendation_taxonomy import (
    RecommendationStatus,
    RecommendationType,
)
from remarketing.utils.time_utils import Clock, add_days, utcnow

logger = logging.getLogger(__name__)

NO_BEHAVIOR_DATA = "no behavior data"


# ── Result types ──────────────────────────────────────────────────────────────

@dataclass
class CustomerFailure:
    """One customer that could not be processed.

    Attributes:
        customer_id: Customer that failed.
        error:       Human-readable reason.
    """

    customer_id: str
    error:       str


@dataclass
class WorkflowResult:
    """Aggregate outcome of one generation pass.

    Attributes:
        processed:       Customers handled (including skipped-as-current).
        failed:          Customers that failed, with reasons.
        total_generated: Recommendation records inserted.
        skipped:         Subset of ``processed`` skipped because they already
                         had live recommendations.
    """

    processed:       list[str]             = field(default_factory=list)
    failed:          list[CustomerFailure] = field(default_factory=list)
    total_generated: int                   = 0
    skipped:         list[str]             = field(default_factory=list)

    def summary(self) -> dict[str, int]:
        """Counts suitable for logs and notifications."""
        return {
            "processed": len(self.processed),
            "failed": len(self.failed),
            "skipped": len(self.skipped),
            "total_generated": self.total_generated,
        }


# ── Runner ────────────────────────────────────────────────────────────────────

class WorkflowRunner:
    """Runs generation passes over the injected collaborators.

    Args:
        analyzer:      Behavior analyzer (order source + category resolver).
        oracle:        Recommendation oracle.
        store:         Recommendation store.
        directory:     Customer contact lookup for the name/email snapshot.
        clock:         Returns "now" as an aware UTC datetime.
        expiry_days:   Lifetime of a new active recommendation.
        allowed_types: Default type filter when a call passes none.
    """

    def __init__(
        self,
        analyzer: BehaviorAnalyzer,
        oracle: RecommendationOracle,
        store: RecommendationStore,
        directory: CustomerDirectory,
        clock: Clock = utcnow,
        expiry_days: float = 2,
        allowed_types: Optional[Iterable[RecommendationType]] = None,
    ) -> None:
        self.analyzer = analyzer
        self.oracle = oracle
        self.store = store
        self.directory = directory
        self.clock = clock
        self.expiry_days = expiry_days
        self.allowed_types = (
            frozenset(RecommendationType(t) for t in allowed_types)
            if allowed_types else None
        )

    def execute_workflow(
        self,
        customer_ids: Optional[Iterable[str]] = None,
        force_refresh: bool = False,
        allowed_types: Optional[Iterable[RecommendationType]] = None,
    ) -> WorkflowResult:
        """Generate recommendations for a set of customers.

        Args:
            customer_ids:  Customers to process, in order.  ``None`` discovers
                           every customer with a delivered order.
            force_refresh: Regenerate even when live recommendations exist,
                           expiring the old set first.
            allowed_types: Keep only candidates of these types.  Falls back to
                           the runner's default filter.

        Returns:
            ``WorkflowResult`` with processed / failed / total_generated.

        Raises:
            OracleNotConfiguredError: Before any customer is touched, if the
                oracle is not configured.
            BehaviorSourceError: If customer discovery itself fails.
        """
        if not self.oracle.is_configured():
            raise OracleNotConfiguredError(
                self.oracle.name, "Set OPENAI_API_KEY or choose another oracle backend."
            )

        type_filter = (
            frozenset(RecommendationType(t) for t in allowed_types)
            if allowed_types else self.allowed_types
        )
        customers = self._resolve_customers(customer_ids)
        logger.info(
            "Workflow starting | customers=%d | force_refresh=%s | types=%s",
            len(customers),
            force_refresh,
            sorted(type_filter) if type_filter else "all",
        )

        result = WorkflowResult()
        for customer_id in customers:
            try:
                self._process_customer(customer_id, force_refresh, type_filter, result)
            except Exception as exc:
                logger.warning(
                    "Customer %s failed: %s", customer_id, exc,
                    extra={"customer_id": customer_id},
                )
                result.failed.append(CustomerFailure(customer_id, str(exc) or type(exc).__name__))

        logger.info(
            "Workflow complete | processed=%d | skipped=%d | failed=%d | generated=%d",
            len(result.processed),
            len(result.skipped),
            len(result.failed),
            result.total_generated,
        )
        for failure in result.failed:
            logger.info("  failed: %s (%s)", failure.customer_id, failure.error)
        return result

    # ── Internal helpers ──────────────────────────────────────────────────────

    def _resolve_customers(self, customer_ids: Optional[Iterable[str]]) -> list[str]:
        if customer_ids is None:
            return self.analyzer.list_customers()
        seen: set[str] = set()
        ordered: list[str] = []
        for raw in customer_ids:
            cid = (raw or "").strip()
            if cid and cid not in seen:
                seen.add(cid)
                ordered.append(cid)
        return ordered

    def _process_customer(
        self,
        customer_id: str,
        force_refresh: bool,
        type_filter: Optional[frozenset[RecommendationType]],
        result: WorkflowResult,
    ) -> None:
        if not force_refresh:
            live = self.store.find_active_unexpired(customer_id, self.clock())
            if live:
                logger.debug(
                    "Customer %s has %d live recommendation(s); skipped.",
                    customer_id, len(live),
                )
                result.processed.append(customer_id)
                result.skipped.append(customer_id)
                return

        profile = self.analyzer.analyze(customer_id)
        if profile is None:
            result.failed.append(CustomerFailure(customer_id, NO_BEHAVIOR_DATA))
            return

        candidates = self.oracle.score(profile)
        if type_filter is not None:
            candidates = [c for c in candidates if c.recommendation_type in type_filter]
        if not candidates:
            logger.info(
                "No recommendations for customer %s.", customer_id,
                extra={"customer_id": customer_id},
            )
            return

        if force_refresh:
            # Old set must be gone before the new one becomes active.
            self.store.bulk_expire_active(self.clock(), customer_id=customer_id)

        info = self.directory.get_basic_info(customer_id)
        now = self.clock()
        for candidate in candidates:
            record = build_record(
                profile,
                candidate,
                now=now,
                expiry_days=self.expiry_days,
                customer_email=info.email if info else None,
                customer_name=info.display_name if info else None,
            )
            self.store.insert(record)
            result.total_generated += 1

        result.processed.append(customer_id)
        logger.debug("Customer %s: %d recommendation(s) stored.", customer_id, len(candidates))


def build_record(
    profile: CustomerBehaviorProfile,
    candidate: RecommendationCandidate,
    now: datetime,
    expiry_days: float,
    customer_email: Optional[str] = None,
    customer_name: Optional[str] = None,
) -> RecommendationRecord:
    """Combine a profile and an oracle candidate into a new active record.

    Insight fields the oracle left out are derived from the profile.
    """
    overrides = candidate.insight_overrides
    insights = CustomerInsights(
        total_orders=profile.order_count,
        total_spent=profile.total_spent,
        last_order_date=profile.last_order_date,
        days_since_last_order=profile.days_since_last_order,
        average_order_value=profile.average_order_value,
        purchase_frequency=profile.purchase_frequency,
        purchase_frequency_tier=(
            overrides.purchase_frequency_tier
            or frequency_tier_for(profile.purchase_frequency)
        ),
        favorite_categories=profile.top_categories(3),
        customer_lifetime_value=profile.customer_lifetime_value,
        churn_risk_score=(
            overrides.churn_risk_score
            if overrides.churn_risk_score is not None
            else churn_risk_for(profile)
        ),
        seasonal_patterns=list(profile.order_trends.seasonal_patterns),
    )
    analysis = AIAnalysis(
        behavioral_pattern=candidate.analysis.behavioral_pattern,
        engagement_level=(
            overrides.engagement_level
            or engagement_level_for(profile.days_since_last_order)
        ),
        predicted_next_purchase_window=candidate.analysis.predicted_next_purchase_window,
        recommended_products=list(candidate.analysis.recommended_products),
        personalization_notes=candidate.analysis.personalization_notes,
    )
    return RecommendationRecord(
        customer_id=profile.customer_id,
        customer_email=customer_email,
        customer_name=customer_name,
        recommendation_type=candidate.recommendation_type,
        priority_score=candidate.priority_score,
        reasons=list(candidate.reasons),
        suggested_actions=list(candidate.suggested_actions),
        customer_insights=insights,
        ai_analysis=analysis,
        status=RecommendationStatus.ACTIVE,
        generated_at=now,
        expires_at=add_days(now, expiry_days),
        last_updated=now,
    )
