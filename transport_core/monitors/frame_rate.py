"""Rolling frame-rate statistics with an adaptive target.

The tracker keeps the last ``history_size`` fps readings and classifies the
render loop. The adaptive target drops to 60 fps as soon as a reading is
degraded, climbs to 90 fps after a sustained run of 60+ fps readings, and
jumps to 120 fps when the rolling average exceeds 100.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)

CRITICAL_FPS = 30.0
DEGRADED_FPS = 50.0
STABLE_FPS = 60.0
EXCELLENT_AVERAGE_FPS = 100.0
# Consecutive 60+ fps readings needed before trying the 90 fps target
STABLE_READINGS_FOR_BOOST = 60


class FrameStability(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    DEGRADED = "degraded"
    CRITICAL = "critical"


@dataclass(frozen=True)
class FrameRateStats:
    """Snapshot of the tracker after a reading."""

    current: float
    average: float
    minimum: float
    maximum: float
    stability: FrameStability
    target_fps: int
    samples: int


class FrameRateTracker:
    """Bounded fps history with stability classification."""

    def __init__(self, history_size: int = 60, initial_target_fps: int = 120):
        if history_size < 1:
            raise ValueError("history_size must be at least 1")
        self.history: deque[float] = deque(maxlen=history_size)
        self.target_fps = initial_target_fps
        self.stability = FrameStability.GOOD
        self._stable_readings = 0
        self._stats: Optional[FrameRateStats] = None

    @property
    def stats(self) -> Optional[FrameRateStats]:
        return self._stats

    def record_frames(self, frame_count: int, elapsed_ms: float) -> Optional[FrameRateStats]:
        """Convert a frame count over an elapsed window into a reading."""
        if frame_count <= 0 or elapsed_ms <= 0:
            return None
        return self.record(round(frame_count * 1000.0 / elapsed_ms))

    def record(self, fps: float) -> FrameRateStats:
        self.history.append(fps)
        values = np.fromiter(self.history, dtype=float)
        average = float(values.mean())

        if fps < CRITICAL_FPS:
            self.stability = FrameStability.CRITICAL
            self.target_fps = 60
            self._stable_readings = 0
        elif fps < DEGRADED_FPS:
            self.stability = FrameStability.DEGRADED
            self.target_fps = 60
            self._stable_readings = 0
        else:
            self.stability = FrameStability.GOOD
            if fps >= STABLE_FPS:
                self._stable_readings += 1
                if self._stable_readings > STABLE_READINGS_FOR_BOOST and self.target_fps < 90:
                    self.target_fps = 90
            else:
                self._stable_readings = 0

        if average > EXCELLENT_AVERAGE_FPS:
            self.stability = FrameStability.EXCELLENT
            self.target_fps = 120

        self._stats = FrameRateStats(
            current=fps,
            average=round(average),
            minimum=float(values.min()),
            maximum=float(values.max()),
            stability=self.stability,
            target_fps=self.target_fps,
            samples=len(values),
        )
        return self._stats
