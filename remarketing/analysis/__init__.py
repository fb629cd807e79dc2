"""
Behavior analysis layer.

Modules
-------
behavior : BehaviorAnalyzer + pure helpers (compute_clv, flag_seasons,
           detect_seasonal_patterns, monthly_spending, category_affinities).
segments : engagement_level_for, frequency_tier_for, churn_risk_for.
"""
