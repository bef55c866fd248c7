"""Tests for the energy safety monitor."""

import math
from unittest.mock import MagicMock

import pytest

from transport_core.config import SafetyConfig
from transport_core.monitors.safety import (
    SafetyEventKind,
    SafetyMonitor,
    SafetyStatus,
    evaluate_safety,
    format_duration,
    safety_progress_pct,
    time_to_limit,
)
from transport_core.persistence import FallbackRecordSink, InMemoryRecordSink, RecordKind


# =============================================================================
# Classification
# =============================================================================


class TestEvaluateSafety:
    """Tests for threshold classification."""

    @pytest.mark.parametrize("e_t", [2.375, 2.4, 2.5, 10.0])
    def test_emergency_at_or_above_95_percent(self, e_t):
        assert evaluate_safety(e_t, 2.5) == SafetyStatus.EMERGENCY

    @pytest.mark.parametrize("e_t", [2.0, 2.1, 2.37])
    def test_warning_between_80_and_95_percent(self, e_t):
        assert evaluate_safety(e_t, 2.5) == SafetyStatus.WARNING

    @pytest.mark.parametrize("e_t", [0.0, 1.0, 1.99])
    def test_safe_below_80_percent(self, e_t):
        assert evaluate_safety(e_t, 2.5) == SafetyStatus.SAFE

    def test_default_max_is_2_5(self):
        assert evaluate_safety(2.0) == SafetyStatus.WARNING


class TestTimeToLimit:
    """Tests for the time-to-limit estimate."""

    def test_non_positive_growth_is_infinite(self):
        assert math.isinf(time_to_limit(1.0, 0.0, 2.5))
        assert math.isinf(time_to_limit(1.0, -1.0, 2.5))

    def test_uses_growth_scale(self):
        # (2.5 - 1.5) / (0.001 * 2) = 500
        assert time_to_limit(1.5, 2.0, 2.5) == pytest.approx(500.0)

    def test_clamped_at_zero_above_limit(self):
        assert time_to_limit(3.0, 2.0, 2.5) == 0.0


class TestFormatting:
    """Tests for progress and duration formatting."""

    def test_progress_capped_at_100(self):
        assert safety_progress_pct(1.25, 2.5) == pytest.approx(50.0)
        assert safety_progress_pct(5.0, 2.5) == 100.0

    def test_format_duration(self):
        assert format_duration(42) == "42s"
        assert format_duration(90) == "1.5m"
        assert format_duration(7200) == "2.0h"
        assert format_duration(math.inf) == "∞"


# =============================================================================
# SafetyMonitor
# =============================================================================


class TestSafetyMonitor:
    """Tests for event emission, rate limiting and the bounded log."""

    @pytest.fixture
    def override(self):
        return MagicMock()

    @pytest.fixture
    def monitor(self, clock, override):
        return SafetyMonitor(on_override=override, clock=clock)

    def test_warning_scenario(self, monitor, override):
        event = monitor.observe(2.0)

        assert monitor.status == SafetyStatus.WARNING
        assert event is not None
        assert event.kind == SafetyEventKind.WARNING
        assert len(monitor.events) == 1
        assert event.e_t_value == 2.0
        assert event.message.startswith("WARNING: E_t approaching safety limit (2.000/2.5)")
        override.assert_called_once_with(SafetyEventKind.WARNING)

    def test_emergency_takes_priority(self, monitor, override):
        event = monitor.observe(2.45)

        assert event.kind == SafetyEventKind.EMERGENCY
        assert "critically high (2.450)" in event.message
        override.assert_called_once_with(SafetyEventKind.EMERGENCY)

    def test_safe_sample_emits_nothing(self, monitor, override):
        assert monitor.observe(1.0) is None
        assert len(monitor.events) == 0
        override.assert_not_called()

    def test_two_samples_inside_window_emit_once(self, monitor, clock):
        monitor.observe(2.0)
        clock.advance(4.999)
        monitor.observe(2.45)

        assert len(monitor.events) == 1

    def test_sample_after_window_emits_again(self, monitor, clock):
        monitor.observe(2.0)
        clock.advance(5.0)
        monitor.observe(2.45)

        assert len(monitor.events) == 2
        assert monitor.events[0].kind == SafetyEventKind.EMERGENCY

    def test_log_keeps_ten_most_recent(self, monitor, clock):
        for i in range(15):
            monitor.observe(2.0 + i * 0.001)
            clock.advance(5.0)

        assert len(monitor.events) == 10
        # Newest first; the first five were evicted
        values = [event.e_t_value for event in monitor.events]
        assert values[0] == pytest.approx(2.014)
        assert values[-1] == pytest.approx(2.005)

    def test_event_ids_unique(self, monitor, clock):
        for _ in range(3):
            monitor.observe(2.0)
            clock.advance(5.0)

        ids = {event.id for event in monitor.events}
        assert len(ids) == 3
        assert all(event_id.startswith("safety-") for event_id in ids)

    @pytest.mark.parametrize("value", [math.nan, math.inf, None])
    def test_non_finite_sample_ignored(self, monitor, override, value):
        monitor.observe(1.0)
        assert monitor.observe(value) is None

        assert monitor.status == SafetyStatus.SAFE
        assert len(monitor.events) == 0
        override.assert_not_called()

    def test_override_failure_does_not_break_monitor(self, clock):
        monitor = SafetyMonitor(on_override=MagicMock(side_effect=RuntimeError("boom")), clock=clock)

        event = monitor.observe(2.0)

        assert event is not None
        assert len(monitor.events) == 1

    def test_events_persisted(self, clock):
        primary = InMemoryRecordSink()
        monitor = SafetyMonitor(sink=FallbackRecordSink(primary), clock=clock)

        monitor.observe(2.0)

        assert len(primary.records) == 1
        assert primary.records[0].kind == RecordKind.SAFETY_EVENT
        assert primary.records[0].payload["kind"] == "warning"

    def test_failing_persistence_keeps_event(self, clock):
        primary = MagicMock()
        primary.append.side_effect = ConnectionError("db down")
        sink = FallbackRecordSink(primary)
        monitor = SafetyMonitor(sink=sink, clock=clock)

        monitor.observe(2.0)

        assert len(monitor.events) == 1
        assert len(sink.fallback_records) == 1
        assert sink.fallback_records[0].fallback_reason == "db down"

    def test_custom_max_energy(self, clock):
        monitor = SafetyMonitor(SafetyConfig(max_energy=10.0), clock=clock)

        assert monitor.evaluate(8.0) == SafetyStatus.WARNING
        assert monitor.evaluate(9.5) == SafetyStatus.EMERGENCY
        assert monitor.time_to_limit(9.0, 1.0) == pytest.approx(1000.0)

    def test_alert_message(self, monitor):
        assert monitor.alert_message() is None
        monitor.observe(2.45)
        assert monitor.alert_message().startswith("CRITICAL: E_t at 2.450")

    def test_progress_tracks_last_sample(self, monitor):
        assert monitor.progress_pct() == 0.0
        monitor.observe(1.25)
        assert monitor.progress_pct() == pytest.approx(50.0)

    def test_clear_events_resets_window(self, monitor, clock):
        monitor.observe(2.0)
        monitor.clear_events()
        monitor.observe(2.0)

        assert len(monitor.events) == 1
