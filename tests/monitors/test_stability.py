"""Tests for the stability monitor."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from transport_core.config import StabilityConfig
from transport_core.monitors.memory_pressure import MemoryPressureLevel
from transport_core.monitors.stability import CorrectiveActions, StabilityMonitor

MB = 1_000_000


@pytest.fixture
def actions():
    return CorrectiveActions(
        on_memory_cleanup=MagicMock(),
        on_regenerate_cycle=MagicMock(),
        on_reduce_quality=MagicMock(),
    )


@pytest.fixture
def monitor(clock, actions):
    return StabilityMonitor(actions=actions, clock=clock)


class TestLeakCheck:
    """Tests for windowed memory leak detection."""

    def test_growth_above_threshold_triggers_cleanup(self, monitor, actions):
        monitor.sample(memory_bytes=50 * MB)
        monitor.sample(memory_bytes=71 * MB)

        assert monitor.check_memory_leak() is True
        assert monitor.state.memory_leak_detected is True
        actions.on_memory_cleanup.assert_called_once()

    def test_growth_at_threshold_is_not_a_leak(self, monitor, actions):
        monitor.sample(memory_bytes=50 * MB)
        monitor.sample(memory_bytes=70 * MB)

        assert monitor.check_memory_leak() is False
        actions.on_memory_cleanup.assert_not_called()

    def test_baseline_always_updated(self, monitor):
        monitor.sample(memory_bytes=50 * MB)
        monitor.sample(memory_bytes=60 * MB)
        monitor.check_memory_leak()

        assert monitor.state.last_memory_sample_bytes == 60 * MB

        # 60 -> 75 is under the threshold even though 50 -> 75 is not
        monitor.sample(memory_bytes=75 * MB)
        assert monitor.check_memory_leak() is False

    def test_no_samples_is_noop(self, monitor, actions):
        assert monitor.check_memory_leak() is False
        actions.on_memory_cleanup.assert_not_called()

    def test_threshold_configurable(self, clock, actions):
        monitor = StabilityMonitor(StabilityConfig(leak_threshold_mb=5), actions, clock)
        monitor.sample(memory_bytes=10 * MB)
        monitor.sample(memory_bytes=16 * MB)

        assert monitor.check_memory_leak() is True


class TestStuckValueCheck:
    """Tests for characteristic value liveness."""

    def test_unchanged_for_61_seconds_regenerates_once(self, monitor, actions, clock):
        monitor.sample(characteristic_value=1.5e-3)
        clock.advance(61)
        monitor.sample(characteristic_value=1.5e-3)

        assert monitor.check_stuck_value() is True
        assert monitor.state.value_stuck is True
        actions.on_regenerate_cycle.assert_called_once()

    def test_change_before_60_seconds_resets_timer(self, monitor, actions, clock):
        monitor.sample(characteristic_value=1.0)
        clock.advance(50)
        monitor.sample(characteristic_value=2.0)
        clock.advance(11)

        assert monitor.check_stuck_value() is False
        actions.on_regenerate_cycle.assert_not_called()

    def test_exactly_60_seconds_is_not_stuck(self, monitor, actions, clock):
        monitor.sample(characteristic_value=1.0)
        clock.advance(60)

        assert monitor.check_stuck_value() is False

    def test_change_clears_stuck_flag(self, monitor, clock):
        monitor.sample(characteristic_value=1.0)
        clock.advance(61)
        monitor.check_stuck_value()
        assert monitor.state.value_stuck is True

        monitor.sample(characteristic_value=1.1)

        assert monitor.state.value_stuck is False
        assert monitor.state.last_characteristic_change_at == clock.now

    def test_no_samples_is_noop(self, monitor, actions):
        assert monitor.check_stuck_value() is False
        actions.on_regenerate_cycle.assert_not_called()


class TestDegradationCheck:
    """Tests for the per-sample frame rate hysteresis."""

    def test_hysteresis_sequence(self, monitor, actions):
        monitor.sample(fps=25)
        assert monitor.state.performance_degraded is True

        monitor.sample(fps=25)
        monitor.sample(fps=45)
        assert monitor.state.performance_degraded is True

        monitor.sample(fps=55)
        assert monitor.state.performance_degraded is False
        actions.on_reduce_quality.assert_called_once()

    def test_retrips_after_recovery(self, monitor, actions):
        for fps in (25, 55, 20):
            monitor.sample(fps=fps)

        assert monitor.state.performance_degraded is True
        assert actions.on_reduce_quality.call_count == 2

    def test_memory_pressure_cleanup(self, monitor, actions):
        monitor.sample(memory_bytes=90 * MB, fps=55)

        actions.on_memory_cleanup.assert_called_once()
        assert monitor.state.performance_degraded is False

    def test_no_pressure_cleanup_at_high_fps(self, monitor, actions):
        monitor.sample(memory_bytes=90 * MB, fps=60)

        actions.on_memory_cleanup.assert_not_called()

    def test_checks_fire_in_same_sample(self, monitor, actions):
        monitor.sample(memory_bytes=100 * MB, fps=20)

        actions.on_reduce_quality.assert_called_once()
        actions.on_memory_cleanup.assert_called_once()

    def test_non_finite_values_skipped(self, monitor, actions):
        monitor.sample(memory_bytes=float("nan"), characteristic_value=float("inf"), fps=None)

        assert monitor.state.last_memory_sample_bytes is None
        assert monitor.state.last_characteristic_value is None
        actions.on_reduce_quality.assert_not_called()

    def test_frame_rate_recorded(self, monitor):
        monitor.sample(fps=58)

        assert monitor.frame_rate.stats.current == 58

    def test_failing_hook_does_not_propagate(self, clock):
        actions = CorrectiveActions(on_reduce_quality=MagicMock(side_effect=RuntimeError("gpu lost")))
        monitor = StabilityMonitor(actions=actions, clock=clock)

        monitor.sample(fps=10)

        assert monitor.state.performance_degraded is True


class TestMemoryPressure:
    """Tests for memory pressure over the latest memory sample."""

    def test_none_before_memory_sample(self, monitor):
        assert monitor.memory_pressure is None

    def test_uses_latest_sample(self, monitor):
        monitor.sample(memory_bytes=100 * MB)
        monitor.sample(memory_bytes=400 * MB)

        pressure = monitor.memory_pressure

        assert pressure.used_mb == 400
        assert pressure.level == MemoryPressureLevel.MEDIUM

    def test_uses_configured_levels(self, clock):
        config = StabilityConfig(memory_target_mb=100.0, memory_critical_mb=200.0)
        monitor = StabilityMonitor(config=config, clock=clock)

        monitor.sample(memory_bytes=250 * MB)

        assert monitor.memory_pressure.level == MemoryPressureLevel.CRITICAL


class TestScheduledChecks:
    """Tests for the periodic leak and stuck checks."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, clock):
        config = StabilityConfig(check_interval_seconds=0.01)
        actions = CorrectiveActions(on_memory_cleanup=MagicMock())
        monitor = StabilityMonitor(config, actions, clock)
        monitor.sample(memory_bytes=10 * MB)
        monitor.sample(memory_bytes=40 * MB)

        monitor.start()
        assert monitor.is_running
        await asyncio.sleep(0.05)
        await monitor.stop()

        assert not monitor.is_running
        actions.on_memory_cleanup.assert_called_once()

    @pytest.mark.asyncio
    async def test_async_hooks_awaited(self, clock):
        hook = AsyncMock()
        monitor = StabilityMonitor(actions=CorrectiveActions(on_reduce_quality=hook), clock=clock)

        monitor.sample(fps=10)
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        hook.assert_awaited_once()
