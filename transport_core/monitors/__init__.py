"""Continuous side-effect monitors.

Key components:
- SafetyMonitor: Threshold classification with rate-limited safety events
- StabilityMonitor: Leak, stuck-value and degradation detection
- FrameRateTracker: Rolling fps statistics with an adaptive target
- classify_memory_pressure: Heap usage against target/critical budgets
"""

from transport_core.monitors.frame_rate import FrameRateStats, FrameRateTracker, FrameStability
from transport_core.monitors.memory_pressure import (
    MemoryPressure,
    MemoryPressureLevel,
    classify_memory_pressure,
)
from transport_core.monitors.safety import (
    SafetyEvent,
    SafetyEventKind,
    SafetyMonitor,
    SafetyStatus,
    evaluate_safety,
    format_duration,
    safety_progress_pct,
    time_to_limit,
)
from transport_core.monitors.stability import CorrectiveActions, StabilityMonitor, StabilityState

__all__ = [
    "CorrectiveActions",
    "FrameRateStats",
    "FrameRateTracker",
    "FrameStability",
    "MemoryPressure",
    "MemoryPressureLevel",
    "SafetyEvent",
    "SafetyEventKind",
    "SafetyMonitor",
    "SafetyStatus",
    "StabilityMonitor",
    "StabilityState",
    "classify_memory_pressure",
    "evaluate_safety",
    "format_duration",
    "safety_progress_pct",
    "time_to_limit",
]
