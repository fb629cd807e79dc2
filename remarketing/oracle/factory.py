"""
Oracle backend selection.

Usage::

    from remarketing.oracle.factory import build_oracle

    oracle = build_oracle(config.oracle)
    if not oracle.is_configured():
        ...
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from remarketing.config import OracleConfig
from remarketing.oracle.base import RecommendationOracle

logger = logging.getLogger(__name__)


def build_oracle(
    config: OracleConfig,
    client: Optional[httpx.Client] = None,
) -> RecommendationOracle:
    """Construct the oracle named by ``config.backend``.

    Args:
        config: Oracle configuration.
        client: Optional HTTP client handed to the LLM backend.

    Returns:
        A ``RecommendationOracle``.  Configuration problems (e.g. a missing
        API key) are reported later by ``is_configured()``, not here.
    """
    if config.backend == "heuristic":
        from remarketing.oracle.heuristic import HeuristicOracle

        logger.debug("Using heuristic recommendation oracle.")
        return HeuristicOracle()

    from remarketing.oracle.llm_oracle import LLMRecommendationOracle

    logger.debug("Using LLM recommendation oracle (model=%s).", config.model)
    return LLMRecommendationOracle(config, client=client)
