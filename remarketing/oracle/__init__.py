"""
Recommendation oracle layer.

Modules
-------
base       : RecommendationOracle ABC: ``score(profile)`` + ``is_configured()``.
parsing    : Best-effort decode of free-text oracle output into candidates.
llm_oracle : LLMRecommendationOracle: OpenAI-compatible chat completions via httpx.
heuristic  : HeuristicOracle: deterministic rule-based scorer.
factory    : build_oracle(config): picks the backend named in OracleConfig.
"""
