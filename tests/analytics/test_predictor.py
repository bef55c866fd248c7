"""Tests for the transport predictor."""

import math

import pytest

from transport_core.analytics.predictor import (
    LOW_SUCCESS_ADVISORY,
    RISK_ENERGY_DECREASING,
    RISK_FRACTAL_DISABLED,
    RISK_LOW_OPTIMIZATION,
    RISK_LOW_PHASE_COHERENCE,
    RISK_NEURAL_DESYNC,
    RISK_SATURATION,
    RISK_SLOW_GROWTH,
    TransportPredictor,
    compute_readiness,
    compute_total_multiplier,
    format_eta,
    predict_transport,
    recommend_transport,
    transport_advisory,
)
from transport_core.monitors.safety import time_to_limit


class TestReadiness:
    """Tests for the log-scaled readiness curve."""

    def test_at_threshold_is_100(self):
        assert compute_readiness(1e6, 1e6) == 100.0
        assert compute_readiness(2e6, 1e6) == 100.0

    def test_two_decades_below(self):
        assert compute_readiness(1e4, 1e6) == pytest.approx(10.0)

    def test_never_negative(self):
        assert compute_readiness(0.5, 1e6) == 0.0


class TestPredictTransport:
    """Tests for predict_transport."""

    def test_baseline_metrics(self, state_factory):
        metrics = predict_transport(state_factory())

        assert compute_total_multiplier(state_factory()) == pytest.approx(1.9)
        assert metrics.eta_to_target_sec == pytest.approx(0.5 / 0.057)
        assert metrics.eta_to_ready_sec == 0.0
        assert metrics.readiness_pct == 100.0
        assert metrics.success_probability_pct == pytest.approx(77.0)
        assert metrics.optimal_window_start_sec == 0.0
        assert metrics.optimal_window_end_sec == 120.0
        assert metrics.risk_factors == (RISK_LOW_OPTIMIZATION,)
        assert metrics.confidence_pct == 95.0
        assert metrics.projected_efficiency_pct == pytest.approx(91.5)

    def test_identical_inputs_identical_output(self, state_factory):
        state = state_factory(tptt_value=1e4)

        assert predict_transport(state) == predict_transport(state)

    def test_at_target_eta_is_zero(self, state_factory):
        metrics = predict_transport(state_factory(e_t=1.0, target_e_t=1.0))

        assert metrics.eta_to_target_sec == 0.0

    def test_eta_to_ready_below_80(self, state_factory):
        metrics = predict_transport(state_factory(tptt_value=1e4))

        assert metrics.readiness_pct == pytest.approx(10.0)
        assert metrics.eta_to_ready_sec == pytest.approx(70 / 0.57)
        assert metrics.optimal_window_start_sec == pytest.approx(70 / 0.57 - 30)
        assert metrics.optimal_window_end_sec == pytest.approx(70 / 0.57 + 120)

    def test_zero_growth_is_infinite_eta(self, state_factory):
        metrics = predict_transport(state_factory(energy_growth_rate=0.0, tptt_value=1e4))

        assert math.isinf(metrics.eta_to_target_sec)
        assert math.isinf(metrics.eta_to_ready_sec)

    def test_negative_growth_clamps_eta_to_zero(self, state_factory):
        metrics = predict_transport(state_factory(energy_growth_rate=-1.0, tptt_value=1e4))

        assert metrics.eta_to_target_sec == 0.0
        assert metrics.eta_to_ready_sec == 0.0
        assert metrics.optimal_window_start_sec == 0.0
        assert metrics.optimal_window_end_sec == 120.0

    def test_eta_matches_safety_time_to_limit(self, state_factory):
        state = state_factory(neural_boost=0.0, spectrum_boost=0.0, fractal_bonus=0.0)

        metrics = predict_transport(state, update_interval_ms=1000)

        assert metrics.eta_to_target_sec == pytest.approx(
            time_to_limit(state.e_t, state.energy_growth_rate, state.target_e_t)
        )

    def test_update_interval_scales_growth(self, state_factory):
        fast = predict_transport(state_factory(), update_interval_ms=50)
        slow = predict_transport(state_factory(), update_interval_ms=100)

        assert fast.eta_to_target_sec == pytest.approx(slow.eta_to_target_sec / 2)

    def test_risk_factor_order(self, state_factory):
        state = state_factory(
            e_t=0.95,
            energy_trend="decreasing",
            phase_coherence=50,
            neural_sync=50,
            energy_growth_rate=1.0,
            fractal_bonus=0.0,
            neural_boost=0.0,
            spectrum_boost=0.1,
        )

        metrics = predict_transport(state)

        assert metrics.risk_factors == (
            RISK_ENERGY_DECREASING,
            RISK_LOW_PHASE_COHERENCE,
            RISK_NEURAL_DESYNC,
            RISK_SLOW_GROWTH,
            RISK_FRACTAL_DISABLED,
            RISK_SATURATION,
            RISK_LOW_OPTIMIZATION,
        )
        # 95 - 10 for more than three risks
        assert metrics.confidence_pct == 85.0

    def test_confidence_floor(self, state_factory):
        state = state_factory(
            history=[],
            energy_trend="stable",
            energy_growth_rate=0.0,
            phase_coherence=10,
            neural_sync=10,
            fractal_bonus=0.0,
        )

        # 95 - 20 - 15 - 10 = 50
        assert predict_transport(state).confidence_pct == 50.0

    def test_success_capped_at_100(self, state_factory):
        metrics = predict_transport(state_factory(e_t=1.0, spectrum_boost=5.0))

        assert metrics.success_probability_pct == 100.0
        assert metrics.projected_efficiency_pct == 100.0

    def test_outputs_non_negative(self, state_factory):
        metrics = predict_transport(
            state_factory(e_t=0.0, energy_momentum=-30.0, phase_coherence=0, neural_sync=0, tptt_value=0.0)
        )

        assert metrics.success_probability_pct >= 0
        assert metrics.projected_efficiency_pct >= 0
        assert metrics.eta_to_target_sec >= 0

    @pytest.mark.parametrize("field", ["target_e_t", "adaptive_threshold"])
    def test_non_positive_denominators_skip(self, state_factory, field):
        assert predict_transport(state_factory(**{field: 0.0})) is None

    def test_end_to_end_recommended(self, state_factory):
        state = state_factory(
            target_e_t=1.0,
            e_t=0.9,
            phase_coherence=90,
            neural_sync=90,
            tptt_value=2e6,
            adaptive_threshold=1e6,
        )

        metrics = predict_transport(state)

        assert metrics.success_probability_pct >= 75
        assert recommend_transport(metrics) is True
        assert transport_advisory(metrics) is None

    def test_advisory_below_75(self, state_factory):
        metrics = predict_transport(state_factory(e_t=0.1, tptt_value=1.0, phase_coherence=20, neural_sync=20))

        assert recommend_transport(metrics) is False
        assert transport_advisory(metrics) == LOW_SUCCESS_ADVISORY


class TestFormatEta:
    """Tests for format_eta."""

    @pytest.mark.parametrize(
        "seconds,expected",
        [(0, "Ready"), (11.2, "12s"), (61, "2m"), (3600, "1h"), (3601, "2h"), (math.inf, "∞")],
    )
    def test_format(self, seconds, expected):
        assert format_eta(seconds) == expected


class TestTransportPredictor:
    """Tests for the recompute-on-change wrapper."""

    def test_cached_for_equal_state(self, state_factory):
        predictor = TransportPredictor()

        first = predictor.update(state_factory())
        second = predictor.update(state_factory())

        assert first is second
        assert predictor.recomputes == 1

    def test_recomputes_on_change(self, state_factory):
        predictor = TransportPredictor()
        predictor.update(state_factory())
        predictor.update(state_factory(e_t=0.6))

        assert predictor.recomputes == 2

    def test_anomaly_clears_metrics(self, state_factory):
        predictor = TransportPredictor()
        predictor.update(state_factory())

        assert predictor.update(state_factory(adaptive_threshold=-1.0)) is None
        assert predictor.metrics is None
        assert predictor.advisory() is None
        assert predictor.recommended() is False
