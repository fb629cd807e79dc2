"""
Store maintenance: expiry sweep and retention cleanup.

Both jobs run ahead of every scheduled generation pass.  Neither ever raises:
a failure is logged and reported as ``0`` so the pass that follows still runs.

  expiry sweep       active records with ``expires_at < now`` → expired
  retention cleanup  processed / dismissed / expired records whose
                     ``last_updated`` is older than ``retention_days`` → deleted
"""

from __future__ import annotations

import logging
from datetime import timedelta

from remarketing.interfaces import RecommendationStore
from remarketing.taxonomy.recommendation_taxonomy import TERMINAL_STATUSES
from remarketing.utils.time_utils import Clock, utcnow

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 30


def run_expiry_sweep(store: RecommendationStore, clock: Clock = utcnow) -> int:
    """Expire every past-due active recommendation.

    Returns:
        Number of records expired (``0`` on failure).
    """
    try:
        count = store.bulk_expire_past_due(clock())
    except Exception as exc:
        logger.error("Expiry sweep failed: %s", exc, exc_info=True)
        return 0
    if count:
        logger.info("Expiry sweep: %d recommendation(s) expired.", count)
    else:
        logger.debug("Expiry sweep: nothing past due.")
    return count


def run_retention_cleanup(
    store: RecommendationStore,
    retention_days: int = DEFAULT_RETENTION_DAYS,
    clock: Clock = utcnow,
) -> int:
    """Delete terminal recommendations untouched for ``retention_days``.

    Returns:
        Number of records deleted (``0`` on failure).
    """
    cutoff = clock() - timedelta(days=retention_days)
    try:
        count = store.delete_older_than(TERMINAL_STATUSES, cutoff)
    except Exception as exc:
        logger.error("Retention cleanup failed: %s", exc, exc_info=True)
        return 0
    logger.info(
        "Retention cleanup: %d recommendation(s) older than %d days deleted.",
        count, retention_days,
    )
    return count
