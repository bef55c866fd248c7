"""Tests for FrameRateTracker."""

import pytest

from transport_core.monitors.frame_rate import FrameRateTracker, FrameStability


class TestFrameRateTracker:
    """Tests for rolling fps statistics and the adaptive target."""

    def test_statistics(self):
        tracker = FrameRateTracker()
        for fps in (50, 60, 70):
            stats = tracker.record(fps)

        assert stats.current == 70
        assert stats.average == 60
        assert stats.minimum == 50
        assert stats.maximum == 70
        assert stats.samples == 3

    def test_history_bounded(self):
        tracker = FrameRateTracker(history_size=5)
        for fps in range(10):
            tracker.record(fps)

        assert list(tracker.history) == [5, 6, 7, 8, 9]

    def test_critical_lowers_target(self):
        tracker = FrameRateTracker()
        stats = tracker.record(20)

        assert stats.stability == FrameStability.CRITICAL
        assert stats.target_fps == 60

    def test_degraded(self):
        stats = FrameRateTracker().record(40)

        assert stats.stability == FrameStability.DEGRADED
        assert stats.target_fps == 60

    def test_between_degraded_and_stable_is_good(self):
        stats = FrameRateTracker().record(55)

        assert stats.stability == FrameStability.GOOD

    def test_sustained_stable_readings_raise_target(self):
        tracker = FrameRateTracker()
        tracker.record(20)
        for _ in range(60):
            stats = tracker.record(60)
        assert stats.target_fps == 60

        stats = tracker.record(60)
        assert stats.target_fps == 90

    def test_slow_reading_resets_stable_run(self):
        tracker = FrameRateTracker()
        tracker.record(20)
        for _ in range(40):
            tracker.record(60)
        tracker.record(55)
        for _ in range(30):
            stats = tracker.record(60)

        assert stats.target_fps == 60

    def test_excellent_average(self):
        tracker = FrameRateTracker()
        tracker.record(20)
        for _ in range(59):
            stats = tracker.record(120)

        assert stats.stability == FrameStability.EXCELLENT
        assert stats.target_fps == 120

    def test_record_frames(self):
        tracker = FrameRateTracker()

        stats = tracker.record_frames(10, 200.0)

        assert stats.current == 50
        assert tracker.record_frames(0, 100.0) is None

    def test_invalid_history_size(self):
        with pytest.raises(ValueError):
            FrameRateTracker(history_size=0)
