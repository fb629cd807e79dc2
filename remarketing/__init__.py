"""
Customer remarketing recommender.

Periodically analyses customer purchase history, asks a pluggable
recommendation oracle for remarketing actions, and persists the results
with expiry and retention semantics.
"""

__version__ = "0.1.0"
