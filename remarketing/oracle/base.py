"""
Abstract base class for recommendation oracles.

Every oracle follows the same contract:
  1. ``is_configured()`` is a cheap, synchronous precondition check.  The
     workflow runner calls it once per pass and refuses to start when it
     returns ``False``.
  2. ``score(profile)`` returns zero or more validated
     ``RecommendationCandidate`` objects.  Malformed output is discarded
     inside the oracle; only transport-level failures raise ``OracleError``.

Usage::

    class MyOracle(RecommendationOracle):
        name = "mine"

        def is_configured(self) -> bool:
            return True

        def score(self, profile):
            return []
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from remarketing.models.behavior import CustomerBehaviorProfile
from remarketing.models.recommendation import RecommendationCandidate


class RecommendationOracle(ABC):
    """Pluggable source of scored recommendation candidates.

    Attributes:
        name: Backend identifier used in logs and configuration errors.
    """

    name: str = "oracle"

    @abstractmethod
    def is_configured(self) -> bool:
        """Return ``True`` if the oracle can be called at all."""
        ...

    @abstractmethod
    def score(self, profile: CustomerBehaviorProfile) -> list[RecommendationCandidate]:
        """Propose recommendations for one customer.

        Args:
            profile: Fresh behavior profile.

        Returns:
            Validated candidates; may be empty.

        Raises:
            OracleError: If the backend could not be reached.
        """
        ...
