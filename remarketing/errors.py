"""
Exception taxonomy for the remarketing pipeline.

Only ``OracleNotConfiguredError`` and ``WorkflowBusyError`` ever escape a
workflow pass.  Per-customer failures (``OracleError``,
``BehaviorSourceError``, store I/O) are captured into the pass result.
"""

from __future__ import annotations


class RemarketingError(Exception):
    """Base class for all package-specific errors."""


class OracleNotConfiguredError(RemarketingError):
    """Raised before any customer is processed when the oracle is unusable.

    Attributes:
        backend: Name of the oracle backend that failed the check.
    """

    def __init__(self, backend: str, detail: str = "") -> None:
        self.backend = backend
        message = f"Recommendation oracle '{backend}' is not configured."
        if detail:
            message = f"{message} {detail}"
        super().__init__(message)


class OracleError(RemarketingError):
    """A single oracle call failed (transport error, non-2xx, timeout)."""


class BehaviorSourceError(RemarketingError):
    """Order history could not be read.  Retryable; distinct from no-data."""


class WorkflowBusyError(RemarketingError):
    """A manual trigger arrived while a workflow pass was already running."""

    def __init__(self) -> None:
        super().__init__("Recommendation generation is already in progress.")


class RecommendationNotFoundError(RemarketingError, LookupError):
    """No recommendation record exists with the given id.

    Attributes:
        rec_id: The id that was looked up.
    """

    def __init__(self, rec_id: int) -> None:
        self.rec_id = rec_id
        super().__init__(f"Recommendation {rec_id} not found.")


class InvalidStatusTransitionError(RemarketingError, ValueError):
    """A status update would move a record into a state it may not enter."""
