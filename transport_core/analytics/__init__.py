"""Pure recompute-on-change analytics.

- TransportPredictor / predict_transport: readiness ETAs, success probability,
  risk factors and confidence
- OptimizationAdvisor: rule-based, dismissible optimization suggestions
"""

from transport_core.analytics.advisor import (
    RULES,
    AdvisorSummary,
    OptimizationAdvisor,
    Suggestion,
    SuggestionPriority,
    SuggestionRule,
    SuggestionType,
)
from transport_core.analytics.predictor import (
    PredictionMetrics,
    TransportPredictor,
    compute_readiness,
    compute_total_multiplier,
    format_eta,
    predict_transport,
    recommend_transport,
    transport_advisory,
)

__all__ = [
    "RULES",
    "AdvisorSummary",
    "OptimizationAdvisor",
    "PredictionMetrics",
    "Suggestion",
    "SuggestionPriority",
    "SuggestionRule",
    "SuggestionType",
    "TransportPredictor",
    "compute_readiness",
    "compute_total_multiplier",
    "format_eta",
    "predict_transport",
    "recommend_transport",
    "transport_advisory",
]
