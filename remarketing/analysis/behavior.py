"""
Customer behavior analysis: completed orders → ``CustomerBehaviorProfile``.

Formulas
--------
average_order_value = total_spent / order_count

purchase_frequency (orders per month):
    months_active = max(1, (now - oldest_order) / 30 days)
    purchase_frequency = order_count / months_active

customer_lifetime_value:
    engagement_multiplier = 2.5 if days_since_last < 30
                            1.8 if days_since_last < 90
                            1.2 if days_since_last < 180
                            0.8 otherwise
    estimated_lifespan_months = max(12, freq * 24 * engagement_multiplier)
    monthly_value = (total_spent / max(1, freq)) * (freq / 12)
    clv = monthly_value * estimated_lifespan_months

seasonal_patterns:
    Order totals are bucketed into spring (Mar–May), summer (Jun–Aug),
    fall (Sep–Nov) and winter (Dec–Feb).  A season is flagged when its spend
    exceeds 1.2 x the mean of the four buckets.  No flagged season →
    ``["year-round"]``.

The pure helpers below carry the arithmetic; ``BehaviorAnalyzer`` wires them
to the order source, category resolver, and clock.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime
from typing import Optional

from remarketing.errors import BehaviorSourceError
from remarketing.interfaces import CategoryResolver, OrderSource
from remarketing.models.behavior import (
    CategoryAffinity,
    CustomerBehaviorProfile,
    MonthlySpend,
    OrderTrends,
)
from remarketing.models.order import OrderRecord
from remarketing.taxonomy.recommendation_taxonomy import YEAR_ROUND, Season
from remarketing.utils.time_utils import (
    Clock,
    days_between,
    month_key,
    months_between,
    season_of,
    utcnow,
)

logger = logging.getLogger(__name__)

SEASONAL_THRESHOLD = 1.2

# (upper bound on days since last order, multiplier); first match wins.
_ENGAGEMENT_STEPS: tuple[tuple[int, float], ...] = (
    (30, 2.5),
    (90, 1.8),
    (180, 1.2),
)
_DORMANT_MULTIPLIER = 0.8

_SEASON_ORDER: tuple[Season, ...] = (
    Season.SPRING, Season.SUMMER, Season.FALL, Season.WINTER,
)


# ── Pure helpers ──────────────────────────────────────────────────────────────

def engagement_multiplier(days_since_last_order: int) -> float:
    """Step function of recency used to stretch the CLV lifespan estimate."""
    for upper, multiplier in _ENGAGEMENT_STEPS:
        if days_since_last_order < upper:
            return multiplier
    return _DORMANT_MULTIPLIER


def compute_clv(
    total_spent: float,
    purchase_frequency: float,
    days_since_last_order: int,
) -> float:
    """Engagement-weighted customer lifetime value projection.

    Args:
        total_spent: Sum of completed order totals.
        purchase_frequency: Orders per month.
        days_since_last_order: Whole days since the newest order.

    Returns:
        Projected lifetime value in the same currency as ``total_spent``.
    """
    multiplier = engagement_multiplier(days_since_last_order)
    lifespan_months = max(12.0, purchase_frequency * 24 * multiplier)
    monthly_value = (total_spent / max(1.0, purchase_frequency)) * (
        purchase_frequency / 12
    )
    return monthly_value * lifespan_months


def flag_seasons(season_totals: dict[Season, float]) -> list[str]:
    """Return seasons whose spend exceeds 1.2x the four-season mean.

    Missing seasons count as zero spend.  Result order is spring, summer,
    fall, winter; ``["year-round"]`` when nothing stands out.
    """
    mean_spend = sum(season_totals.get(s, 0.0) for s in _SEASON_ORDER) / len(_SEASON_ORDER)
    flagged = [
        s.value for s in _SEASON_ORDER
        if season_totals.get(s, 0.0) > mean_spend * SEASONAL_THRESHOLD
    ]
    return flagged or [YEAR_ROUND]


def detect_seasonal_patterns(orders: Iterable[OrderRecord]) -> list[str]:
    """Bucket order totals by season and flag the dominant ones."""
    totals: dict[Season, float] = defaultdict(float)
    for order in orders:
        totals[season_of(order.created_at)] += order.total
    return flag_seasons(totals)


def monthly_spending(orders: Iterable[OrderRecord]) -> list[MonthlySpend]:
    """Sum order totals per ``YYYY-MM`` key, ascending by month."""
    buckets: dict[str, float] = defaultdict(float)
    for order in orders:
        buckets[month_key(order.created_at)] += order.total
    return [MonthlySpend(month_key=k, amount=v) for k, v in sorted(buckets.items())]


def category_affinities(
    orders: Iterable[OrderRecord],
    resolver: CategoryResolver,
) -> list[CategoryAffinity]:
    """Accumulate units and spend per category, sorted descending by spend.

    Lines whose product has no known category are skipped.
    """
    units: dict[str, int] = defaultdict(int)
    spend: dict[str, float] = defaultdict(float)
    for order in orders:
        for line in order.items:
            category = resolver.category_of(line.product_id)
            if category is None:
                logger.debug("No category for product_id=%s; skipped.", line.product_id)
                continue
            units[category] += line.quantity
            spend[category] += line.price * line.quantity

    affinities = [
        CategoryAffinity(category=c, unit_count=units[c], category_spend=spend[c])
        for c in units
    ]
    affinities.sort(key=lambda a: a.category_spend, reverse=True)
    return affinities


# ── Analyzer ──────────────────────────────────────────────────────────────────

class BehaviorAnalyzer:
    """Builds behavior profiles from the order history.

    Args:
        orders:   Completed-order source.
        categories: Product → category resolver.
        clock:    Returns "now" as an aware UTC datetime.
    """

    def __init__(
        self,
        orders: OrderSource,
        categories: CategoryResolver,
        clock: Clock = utcnow,
    ) -> None:
        self.orders = orders
        self.categories = categories
        self.clock = clock

    def analyze(self, customer_id: str) -> Optional[CustomerBehaviorProfile]:
        """Compute the behavior profile for one customer.

        Args:
            customer_id: Customer to analyse.

        Returns:
            ``CustomerBehaviorProfile``, or ``None`` when the customer has no
            completed orders (a valid negative outcome, not a failure).

        Raises:
            BehaviorSourceError: If the order source or category resolver fails.
        """
        try:
            orders = self.orders.find_completed_orders_by_customer(customer_id)
            if not orders:
                return None
            affinities = category_affinities(orders, self.categories)
        except BehaviorSourceError:
            raise
        except Exception as exc:
            raise BehaviorSourceError(
                f"Could not read order history for customer {customer_id}: {exc}"
            ) from exc

        return build_profile(customer_id, orders, affinities, self.clock())

    def list_customers(self) -> list[str]:
        """Distinct customers with at least one completed order.

        Raises:
            BehaviorSourceError: If the order source fails.
        """
        try:
            customer_ids = self.orders.list_distinct_customers_with_completed_orders()
        except Exception as exc:
            raise BehaviorSourceError(f"Could not list customers: {exc}") from exc
        return [c for c in customer_ids if c]


def build_profile(
    customer_id: str,
    orders: list[OrderRecord],
    affinities: list[CategoryAffinity],
    now: datetime,
) -> CustomerBehaviorProfile:
    """Assemble a profile from non-empty order history.

    ``orders`` may arrive in any order; newest/oldest are taken by timestamp.
    """
    newest = max(orders, key=lambda o: o.created_at)
    oldest = min(orders, key=lambda o: o.created_at)

    total_spent = sum(o.total for o in orders)
    order_count = len(orders)
    days_since_last = max(0, math.floor(days_between(newest.created_at, now)))
    months_active = max(1.0, months_between(oldest.created_at, now))
    frequency = order_count / months_active

    return CustomerBehaviorProfile(
        customer_id=customer_id,
        total_spent=total_spent,
        order_count=order_count,
        average_order_value=total_spent / order_count,
        last_order_date=newest.created_at,
        days_since_last_order=days_since_last,
        purchase_frequency=frequency,
        favorite_categories=affinities,
        customer_lifetime_value=compute_clv(total_spent, frequency, days_since_last),
        order_trends=OrderTrends(
            monthly_spend=monthly_spending(orders),
            seasonal_patterns=detect_seasonal_patterns(orders),
        ),
    )
