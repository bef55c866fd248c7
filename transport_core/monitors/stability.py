"""Long-horizon stability monitor.

Watches three telemetry signals and triggers corrective hooks:

- memory: growth of more than ``leak_threshold_mb`` between two windowed
  checks marks a leak and requests a cleanup;
- characteristic value: a scalar heartbeat from the simulation that has not
  changed for longer than ``stuck_after_seconds`` marks the cycle as stuck
  and requests regeneration;
- frame rate: checked on every sample with a trip/recover hysteresis band,
  plus a memory-pressure cleanup when memory is high and frames are slow.

The leak and stuck checks run as PeriodicTasks on the ``check_interval_seconds``
cadence (60 s); the degradation check runs inline in sample(). The three
checks are independent and may fire on the same tick.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from transport_core.config import StabilityConfig
from transport_core.monitors.frame_rate import FrameRateTracker
from transport_core.monitors.memory_pressure import MemoryPressure, classify_memory_pressure
from transport_core.scheduling import PeriodicTask, fire_hook
from transport_core.state import is_finite

logger = logging.getLogger(__name__)

BYTES_PER_MB = 1_000_000


@dataclass
class StabilityState:
    """Mutable stability record owned by one StabilityMonitor."""

    last_memory_sample_bytes: Optional[float] = None
    last_characteristic_value: Optional[float] = None
    last_characteristic_change_at: Optional[float] = None
    memory_leak_detected: bool = False
    value_stuck: bool = False
    performance_degraded: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "last_memory_sample_bytes": self.last_memory_sample_bytes,
            "last_characteristic_value": self.last_characteristic_value,
            "last_characteristic_change_at": self.last_characteristic_change_at,
            "memory_leak_detected": self.memory_leak_detected,
            "value_stuck": self.value_stuck,
            "performance_degraded": self.performance_degraded,
        }


@dataclass
class CorrectiveActions:
    """Hooks invoked by the stability monitor. Each may be sync or async."""

    on_memory_cleanup: Optional[Callable[[], Any]] = None
    on_regenerate_cycle: Optional[Callable[[], Any]] = None
    on_reduce_quality: Optional[Callable[[], Any]] = None


class StabilityMonitor:
    """Leak, stuck-value and degradation detection over telemetry samples."""

    def __init__(
        self,
        config: Optional[StabilityConfig] = None,
        actions: Optional[CorrectiveActions] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or StabilityConfig()
        self.actions = actions or CorrectiveActions()
        self._clock = clock
        self.state = StabilityState()
        self.frame_rate = FrameRateTracker(history_size=self.config.frame_history_size)

        self._current_memory_bytes: Optional[float] = None
        self._current_characteristic: Optional[float] = None

        self._leak_task = PeriodicTask(
            "stability-leak-check", self.config.check_interval_seconds, self.check_memory_leak
        )
        self._stuck_task = PeriodicTask(
            "stability-stuck-check", self.config.check_interval_seconds, self.check_stuck_value
        )

    @property
    def is_running(self) -> bool:
        return self._leak_task.is_running or self._stuck_task.is_running

    @property
    def memory_pressure(self) -> Optional[MemoryPressure]:
        """Pressure level of the latest memory sample, or None before any sample."""
        if self._current_memory_bytes is None:
            return None
        return classify_memory_pressure(
            self._current_memory_bytes,
            target_mb=self.config.memory_target_mb,
            critical_mb=self.config.memory_critical_mb,
        )

    def start(self) -> None:
        """Schedule the windowed checks on the running loop."""
        self._leak_task.start()
        self._stuck_task.start()
        logger.info(f"Stability monitor started (interval={self.config.check_interval_seconds}s)")

    async def stop(self) -> None:
        await self._leak_task.stop()
        await self._stuck_task.stop()
        logger.info("Stability monitor stopped")

    def sample(
        self,
        memory_bytes: Optional[float] = None,
        characteristic_value: Optional[float] = None,
        fps: Optional[float] = None,
    ) -> None:
        """Feed one telemetry sample.

        Any argument that is None or non-finite is skipped; the remaining
        signals are still processed.
        """
        now = self._clock()

        if is_finite(memory_bytes):
            self._current_memory_bytes = float(memory_bytes)
            if self.state.last_memory_sample_bytes is None:
                self.state.last_memory_sample_bytes = self._current_memory_bytes

        if is_finite(characteristic_value):
            self._track_characteristic(float(characteristic_value), now)

        if is_finite(fps):
            self.frame_rate.record(float(fps))
            self._check_degradation(float(fps))

    def _track_characteristic(self, value: float, now: float) -> None:
        self._current_characteristic = value
        if self.state.last_characteristic_value is None:
            self.state.last_characteristic_value = value
            self.state.last_characteristic_change_at = now
            return

        if value != self.state.last_characteristic_value:
            self.state.last_characteristic_value = value
            self.state.last_characteristic_change_at = now
            if self.state.value_stuck:
                logger.info("Characteristic value moving again; stuck flag cleared")
            self.state.value_stuck = False

    def _check_degradation(self, fps: float) -> None:
        if fps < self.config.degraded_fps and not self.state.performance_degraded:
            logger.warning(f"Critical performance degradation: {fps:.1f} fps")
            self.state.performance_degraded = True
            fire_hook(self.actions.on_reduce_quality, name="on_reduce_quality")

        if fps >= self.config.recovered_fps and self.state.performance_degraded:
            logger.info(f"Performance recovered: {fps:.1f} fps")
            self.state.performance_degraded = False

        if self._current_memory_bytes is None:
            return
        memory_mb = self._current_memory_bytes / BYTES_PER_MB
        if memory_mb > self.config.memory_pressure_mb and fps < self.config.pressure_fps_ceiling:
            logger.warning(f"High memory pressure: {memory_mb:.1f}MB at {fps:.1f} fps")
            fire_hook(self.actions.on_memory_cleanup, name="on_memory_cleanup")

    def check_memory_leak(self) -> bool:
        """Compare current memory with the previous window's sample.

        Returns:
            True if a leak was detected on this check.
        """
        current = self._current_memory_bytes
        if current is None:
            return False

        detected = False
        baseline = self.state.last_memory_sample_bytes
        if baseline is not None:
            delta_mb = (current - baseline) / BYTES_PER_MB
            if delta_mb > self.config.leak_threshold_mb:
                logger.warning(
                    f"Memory leak detected: +{delta_mb:.1f}MB "
                    f"(current {current / BYTES_PER_MB:.1f}MB)"
                )
                self.state.memory_leak_detected = True
                fire_hook(self.actions.on_memory_cleanup, name="on_memory_cleanup")
                detected = True

        self.state.last_memory_sample_bytes = current
        return detected

    def check_stuck_value(self) -> bool:
        """Flag the characteristic value as stuck if it has not moved in time.

        Returns:
            True if regeneration was requested on this check.
        """
        changed_at = self.state.last_characteristic_change_at
        if changed_at is None or self._current_characteristic is None:
            return False

        stuck_for = self._clock() - changed_at
        if (
            stuck_for > self.config.stuck_after_seconds
            and self._current_characteristic == self.state.last_characteristic_value
        ):
            logger.warning(
                f"Characteristic value stuck at {self._current_characteristic:.2e} for {stuck_for:.0f}s"
            )
            self.state.value_stuck = True
            fire_hook(self.actions.on_regenerate_cycle, name="on_regenerate_cycle")
            return True
        return False
