"""
Customer behavior profile: the analyzer's output and the oracle's input.

A ``CustomerBehaviorProfile`` is derived fresh on every analysis call from
the customer's completed orders.  It is never persisted; a subset of its
fields is snapshotted into ``CustomerInsights`` when a recommendation is
written.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, model_validator


class CategoryAffinity(BaseModel):
    """Aggregated purchases in one product category.

    Attributes:
        category: Category identifier.
        unit_count: Total units bought in this category.
        category_spend: Sum of ``price * quantity`` over those units.
    """

    model_config = ConfigDict(frozen=True)

    category: str
    unit_count: int
    category_spend: float


class MonthlySpend(BaseModel):
    """Order totals summed per calendar month (``YYYY-MM``)."""

    model_config = ConfigDict(frozen=True)

    month_key: str
    amount: float


class OrderTrends(BaseModel):
    """Temporal spending shape: monthly series plus seasonal tags."""

    model_config = ConfigDict(frozen=True)

    monthly_spend: list[MonthlySpend] = []
    seasonal_patterns: list[str] = []


class CustomerBehaviorProfile(BaseModel):
    """Purchase-history profile for one customer.

    Attributes:
        customer_id: Opaque customer identifier.
        total_spent: Sum of completed order totals.
        order_count: Number of completed orders (>= 1 for a built profile).
        average_order_value: ``total_spent / order_count``.
        last_order_date: Timestamp of the newest completed order.
        days_since_last_order: Whole days from the newest order to analysis time.
        purchase_frequency: Orders per 30-day month over the active span
            (span floored at one month).
        favorite_categories: Category affinities, descending by spend.
        customer_lifetime_value: Engagement-weighted CLV projection.
        order_trends: Monthly spend series and seasonal tags.
    """

    model_config = ConfigDict(frozen=True)

    customer_id: str
    total_spent: float
    order_count: int
    average_order_value: float
    last_order_date: Optional[datetime] = None
    days_since_last_order: Optional[int] = None
    purchase_frequency: float
    favorite_categories: list[CategoryAffinity] = []
    customer_lifetime_value: float
    order_trends: OrderTrends = OrderTrends()

    @model_validator(mode="after")
    def validate_non_negative(self) -> "CustomerBehaviorProfile":
        for name in ("total_spent", "order_count", "average_order_value",
                     "purchase_frequency"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative.")
        return self

    def top_categories(self, n: int = 3) -> list[str]:
        """Return the ``n`` highest-spend category ids."""
        return [c.category for c in self.favorite_categories[:n]]
