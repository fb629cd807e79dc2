"""
LLM-backed recommendation oracle: OpenAI-compatible chat completions via httpx.

Credential setup (.env, gitignored):
  OPENAI_API_KEY=sk-...                 (or REMARKETING_ORACLE_API_KEY)

Request shape::

    POST {base_url}/chat/completions
      Authorization: Bearer <api_key>
      {"model": "gpt-4o-mini", "temperature": 0.3, "max_tokens": 1500,
       "messages": [{"role": "system", ...}, {"role": "user", <prompt>}]}

The assistant message content is decoded with ``parsing.decode_json_payload``
(fence stripping, regex fallback) and validated entry by entry.  Transport
failures raise ``OracleError``; undecodable content yields zero candidates.

When ``suggest_products`` is enabled, a second call per candidate asks for
3–5 product suggestions.  That follow-up is best effort: any failure leaves
``recommended_products`` empty.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from remarketing.config import OracleConfig
from remarketing.errors import OracleError
from remarketing.models.behavior import CustomerBehaviorProfile
from remarketing.models.recommendation import RecommendationCandidate
from remarketing.oracle.base import RecommendationOracle
from remarketing.oracle.parsing import (
    decode_json_payload,
    parse_candidates,
    parse_product_list,
)
from remarketing.taxonomy.recommendation_taxonomy import RecommendationType

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = (
    "You are an expert e-commerce customer analyst for a furniture store. "
    "Answer with a single JSON object and nothing else."
)

_ANALYSIS_TEMPLATE = """\
Analyze the following customer behavior data and provide actionable remarketing recommendations.

Customer Data:
- Customer ID: {customer_id}
- Total Orders: {order_count}
- Total Spent: ${total_spent}
- Average Order Value: ${average_order_value}
- Days Since Last Order: {days_since_last_order}
- Purchase Frequency: {purchase_frequency} orders per month
- Customer Lifetime Value: ${customer_lifetime_value}
- Favorite Categories: {favorite_categories}
- Monthly Spending Trend: {monthly_spending}
- Seasonal Patterns: {seasonal_patterns}

Respond in this JSON format:
{{
  "recommendations": [
    {{
      "recommendation_type": "{type_choices}",
      "priority_score": 0-100,
      "reasons": ["reason1", "reason2", "reason3"],
      "suggested_actions": ["action1", "action2", "action3"],
      "customer_insights": {{
        "purchase_frequency": "high|medium|low",
        "churn_risk_score": 0-100,
        "engagement_level": "high|medium|low|dormant"
      }},
      "ai_analysis": {{
        "behavioral_pattern": "description of customer behavior pattern",
        "predicted_next_purchase_window": "timeframe prediction",
        "personalization_notes": "specific personalization recommendations"
      }}
    }}
  ]
}}

Guidelines:
1. Generate 1-3 recommendations per customer based on their behavior.
2. Priority score should reflect urgency and potential impact.
3. Be specific with reasons and actions.
4. Consider furniture industry specifics (seasonal trends, room completion, lifecycle events).
5. Focus on actionable insights that can drive sales.

Recommendation Types:
- churn_risk: Customers likely to stop purchasing
- win_back: Inactive customers to re-engage
- upsell: Customers ready for higher-value purchases
- cross_sell: Customers who might buy complementary items
- loyalty_reward: High-value customers to retain
- first_time_buyer: New customers needing nurturing
- high_value_inactive: Valuable customers who've gone quiet
"""

_PRODUCT_TEMPLATE = """\
Based on the customer's purchase history and the recommendation type, suggest specific
product categories or types that would be most relevant for remarketing.

Customer Profile:
- Favorite Categories: {favorite_categories}
- Average Order Value: ${average_order_value}
- Seasonal Patterns: {seasonal_patterns}
- Recent Purchase Trend: {recent_trend}

Recommendation Type: {recommendation_type}

Provide 3-5 specific product suggestions in JSON format:
{{"products": ["product_type_1", "product_type_2", "product_type_3"]}}
"""


# ── Prompt builders ───────────────────────────────────────────────────────────

def build_analysis_prompt(profile: CustomerBehaviorProfile) -> str:
    """Render the analysis prompt for one profile.

    Only the top three categories and the last six months of spend are shown.
    """
    favorites = ", ".join(
        f"{c.category} (${c.category_spend:.2f})" for c in profile.favorite_categories[:3]
    )
    monthly = ", ".join(
        f"{m.month_key}: ${m.amount:.2f}" for m in profile.order_trends.monthly_spend[-6:]
    )
    return _ANALYSIS_TEMPLATE.format(
        customer_id=profile.customer_id,
        order_count=profile.order_count,
        total_spent=f"{profile.total_spent:.2f}",
        average_order_value=f"{profile.average_order_value:.2f}",
        days_since_last_order=(
            profile.days_since_last_order
            if profile.days_since_last_order is not None else "N/A"
        ),
        purchase_frequency=f"{profile.purchase_frequency:.2f}",
        customer_lifetime_value=f"{profile.customer_lifetime_value:.2f}",
        favorite_categories=favorites or "none",
        monthly_spending=monthly or "none",
        seasonal_patterns=", ".join(profile.order_trends.seasonal_patterns),
        type_choices="|".join(t.value for t in RecommendationType),
    )


def recent_trend(profile: CustomerBehaviorProfile) -> str:
    """``"increasing"``, ``"decreasing"`` or ``"stable"`` from the last two months."""
    series = profile.order_trends.monthly_spend
    if len(series) < 2:
        return "stable"
    return "increasing" if series[-1].amount > series[-2].amount else "decreasing"


def build_product_prompt(
    profile: CustomerBehaviorProfile,
    recommendation_type: RecommendationType,
) -> str:
    """Render the product-suggestion prompt for one candidate."""
    return _PRODUCT_TEMPLATE.format(
        favorite_categories=", ".join(profile.top_categories()) or "none",
        average_order_value=f"{profile.average_order_value:.2f}",
        seasonal_patterns=", ".join(profile.order_trends.seasonal_patterns),
        recent_trend=recent_trend(profile),
        recommendation_type=recommendation_type.value,
    )


# ── Oracle ────────────────────────────────────────────────────────────────────

class LLMRecommendationOracle(RecommendationOracle):
    """Scores profiles by prompting a chat-completions model.

    Args:
        config: Oracle section of ``AppConfig``.
        client: Optional pre-built ``httpx.Client`` (tests pass one with a
            ``MockTransport``).  Built lazily from ``config`` when omitted.
    """

    name = "llm"

    def __init__(
        self,
        config: OracleConfig,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.config = config
        self._client = client
        self._owns_client = client is None

    def is_configured(self) -> bool:
        return bool(self.config.api_key and self.config.api_key.strip())

    def score(self, profile: CustomerBehaviorProfile) -> list[RecommendationCandidate]:
        content = self._complete(build_analysis_prompt(profile))
        candidates = parse_candidates(decode_json_payload(content))
        logger.debug(
            "LLM oracle: %d candidate(s) for customer=%s",
            len(candidates), profile.customer_id,
        )
        if self.config.suggest_products:
            candidates = [self._with_products(profile, c) for c in candidates]
        return candidates

    def suggest_products(
        self,
        profile: CustomerBehaviorProfile,
        recommendation_type: RecommendationType,
    ) -> list[str]:
        """Ask for product suggestions; any failure yields an empty list."""
        try:
            content = self._complete(build_product_prompt(profile, recommendation_type))
        except OracleError as exc:
            logger.warning(
                "Product suggestions failed for customer=%s: %s",
                profile.customer_id, exc,
            )
            return []
        return parse_product_list(decode_json_payload(content))

    def close(self) -> None:
        """Close the underlying HTTP client if this oracle created it."""
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    # ── Internal helpers ──────────────────────────────────────────────────────

    def _with_products(
        self,
        profile: CustomerBehaviorProfile,
        candidate: RecommendationCandidate,
    ) -> RecommendationCandidate:
        products = self.suggest_products(profile, candidate.recommendation_type)
        if not products:
            return candidate
        analysis = candidate.analysis.model_copy(update={"recommended_products": products})
        return candidate.model_copy(update={"analysis": analysis})

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.config.base_url,
                timeout=self.config.timeout_seconds,
            )
        return self._client

    def _complete(self, prompt: str) -> str:
        """POST one chat completion and return the assistant message text.

        Raises:
            OracleError: On transport failure, non-2xx status, or an envelope
                without message content.
        """
        body: dict[str, Any] = {
            "model": self.config.model,
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
            "messages": [
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        }
        try:
            resp = self._http().post(
                "/chat/completions",
                json=body,
                headers={"Authorization": f"Bearer {self.config.api_key}"},
            )
            resp.raise_for_status()
            envelope = resp.json()
        except httpx.HTTPError as exc:
            raise OracleError(f"Chat completion request failed: {exc}") from exc
        except ValueError as exc:
            raise OracleError(f"Chat completion returned invalid JSON: {exc}") from exc

        try:
            content = envelope["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise OracleError(f"Unexpected chat completion envelope: {exc!r}") from exc
        if not isinstance(content, str):
            raise OracleError("Chat completion message content is not text.")
        return content
