"""
Best-effort decoding of oracle text output into ``RecommendationCandidate``s.

Decode strategy
---------------
1. Strip markdown code fences (```json ... ```) and parse as JSON.
2. On failure, extract the outermost ``{...}`` block with a regex and parse
   that instead.
3. On failure again, give up: the caller gets ``None`` and treats it as
   zero candidates.

Candidate strategy
------------------
The expected payload is::

    {"recommendations": [
        {"recommendation_type": "...", "priority_score": 0-100,
         "reasons": [...], "suggested_actions": [...],
         "customer_insights": {"purchase_frequency": "high|medium|low",
                               "churn_risk_score": 0-100,
                               "engagement_level": "high|medium|low|dormant"},
         "ai_analysis": {"behavioral_pattern": "...",
                         "predicted_next_purchase_window": "...",
                         "personalization_notes": "...",
                         "recommended_products": [...]}}
    ]}

Each entry is validated on its own.  An entry that fails validation, or whose
``ai_analysis`` is not an object, is logged and dropped; the rest survive.
Invalid insight overrides and a non-list ``recommended_products`` are dropped
without discarding the candidate.
"""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any, Optional

from pydantic import ValidationError

from remarketing.models.recommendation import (
    CandidateAnalysis,
    InsightOverrides,
    RecommendationCandidate,
)

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def decode_json_payload(text: str) -> Optional[dict[str, Any]]:
    """Decode a JSON object from possibly-decorated model output.

    Args:
        text: Raw oracle output.

    Returns:
        The decoded object, or ``None`` if no JSON object could be recovered.
    """
    cleaned = _FENCE_RE.sub("", text).strip()
    try:
        decoded = json.loads(cleaned)
    except json.JSONDecodeError:
        match = _OBJECT_RE.search(text)
        if match is None:
            logger.warning("Oracle output contains no JSON object: %.200s", text)
            return None
        try:
            decoded = json.loads(match.group(0))
        except json.JSONDecodeError as exc:
            logger.warning("Could not decode extracted oracle JSON: %s", exc)
            return None

    if not isinstance(decoded, dict):
        logger.warning("Oracle output decoded to %s, expected an object.", type(decoded).__name__)
        return None
    return decoded


def parse_candidates(payload: Optional[dict[str, Any]]) -> list[RecommendationCandidate]:
    """Validate each entry of ``payload["recommendations"]``.

    Args:
        payload: Decoded oracle output (``None`` yields an empty list).

    Returns:
        Candidates that passed validation, in response order.
    """
    if payload is None:
        return []
    entries = payload.get("recommendations")
    if not isinstance(entries, list):
        logger.warning("Oracle payload has no 'recommendations' list; ignoring.")
        return []

    candidates: list[RecommendationCandidate] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            logger.warning("Discarding oracle entry %d: not an object.", index)
            continue
        try:
            candidates.append(_candidate_from_entry(entry))
        except ValidationError as exc:
            logger.warning(
                "Discarding oracle entry %d (%s): %d validation error(s): %s",
                index,
                entry.get("recommendation_type", "?"),
                exc.error_count(),
                exc.errors()[0].get("msg", ""),
            )
        except ValueError as exc:
            logger.warning(
                "Discarding oracle entry %d (%s): %s",
                index, entry.get("recommendation_type", "?"), exc,
            )
    return candidates


def parse_product_list(payload: Optional[dict[str, Any]]) -> list[str]:
    """Extract ``payload["products"]`` as a list of non-empty strings."""
    if payload is None:
        return []
    products = payload.get("products")
    if not isinstance(products, list):
        return []
    return [str(p).strip() for p in products if str(p).strip()]


# ── Private helpers ────────────────────────────────────────────────────────────

def _candidate_from_entry(entry: dict[str, Any]) -> RecommendationCandidate:
    insights = entry.get("customer_insights") or entry.get("insight_overrides") or {}
    analysis = entry.get("ai_analysis") or entry.get("analysis") or {}
    if not isinstance(analysis, dict):
        raise ValueError(f"ai_analysis is a {type(analysis).__name__}, expected an object")
    products = analysis.get("recommended_products")
    if not isinstance(products, list):
        products = []

    return RecommendationCandidate(
        recommendation_type=entry.get("recommendation_type"),
        priority_score=_coerce_score(entry.get("priority_score")),
        reasons=entry.get("reasons") or [],
        suggested_actions=entry.get("suggested_actions") or [],
        insight_overrides=_overrides_from(insights),
        analysis=CandidateAnalysis(
            behavioral_pattern=str(analysis.get("behavioral_pattern") or ""),
            predicted_next_purchase_window=analysis.get("predicted_next_purchase_window"),
            personalization_notes=str(analysis.get("personalization_notes") or ""),
            recommended_products=[str(p) for p in products if p],
        ),
    )


def _overrides_from(raw: Any) -> InsightOverrides:
    if not isinstance(raw, dict):
        return InsightOverrides()
    try:
        return InsightOverrides(
            purchase_frequency_tier=raw.get("purchase_frequency_tier")
            or raw.get("purchase_frequency"),
            churn_risk_score=_coerce_score(raw.get("churn_risk_score")),
            engagement_level=raw.get("engagement_level"),
        )
    except ValidationError as exc:
        logger.debug("Dropping invalid insight overrides: %s", exc)
        return InsightOverrides()


def _coerce_score(value: Any) -> Any:
    """Round finite float scores (``87.6`` → ``88``); leave everything else to validation."""
    if isinstance(value, float) and math.isfinite(value):
        return round(value)
    return value
