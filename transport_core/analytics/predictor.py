"""Transport readiness prediction.

predict_transport() is a pure function of the simulation state and the tick
length: identical inputs give identical PredictionMetrics. The growth scaling
(``0.001`` per sample) is the same constant the safety monitor uses for its
time-to-limit estimate, so both ETAs stay consistent with each other.

Steps:
1. total multiplier from the additive boosts and momentum
2. effective growth per second
3. ETA to the energy target
4. log-scaled readiness from tPTT against the adaptive threshold
5. ETA until readiness reaches 80
6. weighted success probability
7. optimal transport window around the readiness point
8. ordered risk factors
9. confidence with data-quality penalties
10. projected efficiency
"""

from __future__ import annotations

import logging
import math
from typing import Optional

from pydantic import BaseModel, ConfigDict

from transport_core.config import PredictorConfig
from transport_core.state import GROWTH_RATE_SCALE, EnergyTrend, SimulationState

logger = logging.getLogger(__name__)

READY_READINESS = 80.0
RECOMMEND_SUCCESS_PCT = 75.0
WINDOW_LEAD_SECONDS = 30.0
WINDOW_TRAIL_SECONDS = 120.0
MIN_CONFIDENCE = 50.0

RISK_ENERGY_DECREASING = "Energy level decreasing"
RISK_LOW_PHASE_COHERENCE = "Low phase coherence"
RISK_NEURAL_DESYNC = "Neural desynchronization"
RISK_SLOW_GROWTH = "Slow energy growth rate"
RISK_FRACTAL_DISABLED = "Fractal enhancement disabled"
RISK_SATURATION = "Approaching energy saturation"
RISK_LOW_OPTIMIZATION = "Low system optimization"

LOW_SUCCESS_ADVISORY = (
    "Transport success probability is below 75%. Consider increasing energy growth rate, "
    "enabling fractal enhancement, or selecting a higher-energy spectrum before attempting transport."
)


class PredictionMetrics(BaseModel):
    """Derived transport readiness metrics. ETAs are in seconds."""

    model_config = ConfigDict(frozen=True)

    eta_to_ready_sec: float
    eta_to_target_sec: float
    success_probability_pct: float
    optimal_window_start_sec: float
    optimal_window_end_sec: float
    risk_factors: tuple[str, ...]
    confidence_pct: float
    projected_efficiency_pct: float
    readiness_pct: float


def compute_total_multiplier(state: SimulationState) -> float:
    return (
        1.0
        + state.neural_boost
        + state.spectrum_boost
        + state.fractal_bonus
        + 0.1 * state.energy_momentum
    )


def compute_readiness(tptt_value: float, adaptive_threshold: float) -> float:
    """Log-scaled readiness in [0, 100]; 100 once tPTT reaches the threshold."""
    if tptt_value >= adaptive_threshold:
        return 100.0
    return max(0.0, (math.log10(max(tptt_value, 1.0)) - math.log10(adaptive_threshold)) * 20 + 50)


def _eta(remaining: float, rate: float) -> float:
    if remaining <= 0:
        return 0.0
    if rate == 0:
        return math.inf
    # Negative growth clamps to 0
    return max(0.0, remaining / rate)


def predict_transport(
    state: SimulationState,
    update_interval_ms: float = 100.0,
) -> Optional[PredictionMetrics]:
    """Compute PredictionMetrics for one state.

    Returns:
        None when the target energy or adaptive threshold is not positive;
        those ticks carry no meaningful prediction.
    """
    if state.target_e_t <= 0 or state.adaptive_threshold <= 0 or update_interval_ms <= 0:
        logger.debug(
            f"Skipping prediction: target={state.target_e_t}, threshold={state.adaptive_threshold}"
        )
        return None

    total_multiplier = compute_total_multiplier(state)
    growth_per_second = (
        GROWTH_RATE_SCALE * state.energy_growth_rate * total_multiplier * (1000.0 / update_interval_ms)
    )

    eta_to_target = _eta(state.target_e_t - state.e_t, growth_per_second)

    readiness = compute_readiness(state.tptt_value, state.adaptive_threshold)
    if readiness >= READY_READINESS:
        eta_to_ready = 0.0
    else:
        eta_to_ready = _eta(READY_READINESS - readiness, growth_per_second * 10)

    energy_score = min(state.e_t / state.target_e_t, 1.0) * 30
    tptt_score = min(readiness / 100, 1.0) * 25
    phase_score = (state.phase_coherence / 100) * 20
    neural_score = (state.neural_sync / 100) * 15
    optimization_score = (total_multiplier - 1) * 10
    success = min(100.0, energy_score + tptt_score + phase_score + neural_score + optimization_score)
    success = max(0.0, success)

    risk_factors = []
    if state.energy_trend == EnergyTrend.DECREASING:
        risk_factors.append(RISK_ENERGY_DECREASING)
    if state.phase_coherence < 70:
        risk_factors.append(RISK_LOW_PHASE_COHERENCE)
    if state.neural_sync < 70:
        risk_factors.append(RISK_NEURAL_DESYNC)
    if state.energy_growth_rate < 2:
        risk_factors.append(RISK_SLOW_GROWTH)
    if not state.fractal_bonus:
        risk_factors.append(RISK_FRACTAL_DISABLED)
    if state.e_t > state.target_e_t * 0.9:
        risk_factors.append(RISK_SATURATION)
    if total_multiplier < 2:
        risk_factors.append(RISK_LOW_OPTIMIZATION)

    confidence = 95.0
    if len(state.history) < 5:
        confidence -= 20
    if state.energy_trend == EnergyTrend.STABLE and growth_per_second < 1e-4:
        confidence -= 15
    if len(risk_factors) > 3:
        confidence -= 10
    confidence = max(MIN_CONFIDENCE, confidence)

    stability_bonus = 0.1 if state.fractal_bonus > 0 else 0.0
    efficiency = min(1.0, success / 100 + stability_bonus + (total_multiplier - 1) * 0.05) * 100

    return PredictionMetrics(
        eta_to_ready_sec=eta_to_ready,
        eta_to_target_sec=eta_to_target,
        success_probability_pct=success,
        optimal_window_start_sec=max(0.0, eta_to_ready - WINDOW_LEAD_SECONDS),
        optimal_window_end_sec=eta_to_ready + WINDOW_TRAIL_SECONDS,
        risk_factors=tuple(risk_factors),
        confidence_pct=confidence,
        projected_efficiency_pct=max(0.0, efficiency),
        readiness_pct=readiness,
    )


def recommend_transport(metrics: PredictionMetrics) -> bool:
    return metrics.success_probability_pct >= RECOMMEND_SUCCESS_PCT


def transport_advisory(metrics: PredictionMetrics) -> Optional[str]:
    """Advisory surfaced when transport is not recommended."""
    if recommend_transport(metrics):
        return None
    return LOW_SUCCESS_ADVISORY


def format_eta(seconds: float) -> str:
    """Render an ETA as ``Ready``, ``12s``, ``3m`` or ``2h`` (rounded up)."""
    if seconds == 0:
        return "Ready"
    if math.isinf(seconds):
        return "∞"
    if seconds < 60:
        return f"{math.ceil(seconds)}s"
    if seconds < 3600:
        return f"{math.ceil(seconds / 60)}m"
    return f"{math.ceil(seconds / 3600)}h"


class TransportPredictor:
    """Recompute-on-change wrapper around predict_transport().

    Keeps the last state and result; update() with an equal state returns
    the cached metrics without recomputing.
    """

    def __init__(self, config: Optional[PredictorConfig] = None):
        self.config = config or PredictorConfig()
        self._last_state: Optional[SimulationState] = None
        self._last_metrics: Optional[PredictionMetrics] = None
        self.recomputes = 0

    @property
    def metrics(self) -> Optional[PredictionMetrics]:
        return self._last_metrics

    def update(self, state: SimulationState) -> Optional[PredictionMetrics]:
        if self._last_state is not None and state == self._last_state:
            return self._last_metrics

        self._last_state = state
        self._last_metrics = predict_transport(state, self.config.update_interval_ms)
        self.recomputes += 1
        return self._last_metrics

    def recommended(self) -> bool:
        return self._last_metrics is not None and recommend_transport(self._last_metrics)

    def advisory(self) -> Optional[str]:
        if self._last_metrics is None:
            return None
        return transport_advisory(self._last_metrics)
