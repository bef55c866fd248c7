"""Energy safety monitor.

Classifies the energy level against static thresholds derived from the
configured maximum, and emits rate-limited safety events with a corrective
override hook. At most one event is emitted per evaluation and never more
than one per cooldown window (5 s by default), however fast the producer ticks.

Usage:
    monitor = SafetyMonitor(on_override=controller.apply_override)
    for state in ticks:
        monitor.observe(state.e_t)
    monitor.status, list(monitor.events)
"""

from __future__ import annotations

import logging
import math
import time
import uuid
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

from transport_core.config import SafetyConfig
from transport_core.persistence import FallbackRecordSink, RecordKind
from transport_core.scheduling import fire_hook
from transport_core.state import GROWTH_RATE_SCALE, is_finite

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENERGY = 2.5


class SafetyStatus(str, Enum):
    """Classification of the current energy level."""

    SAFE = "safe"
    WARNING = "warning"
    EMERGENCY = "emergency"


class SafetyEventKind(str, Enum):
    """Kind of an emitted safety event, also passed to the override hook."""

    WARNING = "warning"
    CAP = "cap"
    EMERGENCY = "emergency"


def _event_id() -> str:
    return f"safety-{uuid.uuid4().hex[:12]}"


class SafetyEvent(BaseModel):
    """Immutable record of a threshold crossing."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_event_id)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    kind: SafetyEventKind
    message: str
    e_t_value: float


def evaluate_safety(
    e_t: float,
    max_e_t: float = DEFAULT_MAX_ENERGY,
    warning_ratio: float = 0.8,
    emergency_ratio: float = 0.95,
) -> SafetyStatus:
    """Classify ``e_t`` as safe, warning or emergency."""
    if e_t >= emergency_ratio * max_e_t:
        return SafetyStatus.EMERGENCY
    if e_t >= warning_ratio * max_e_t:
        return SafetyStatus.WARNING
    return SafetyStatus.SAFE


def time_to_limit(e_t: float, growth_rate_per_sample: float, max_e_t: float = DEFAULT_MAX_ENERGY) -> float:
    """Seconds until ``e_t`` reaches ``max_e_t`` at the current growth rate.

    Returns:
        ``math.inf`` when the growth rate is not positive, otherwise a
        non-negative number of seconds.
    """
    if growth_rate_per_sample <= 0:
        return math.inf
    return max(0.0, (max_e_t - e_t) / (GROWTH_RATE_SCALE * growth_rate_per_sample))


def safety_progress_pct(e_t: float, max_e_t: float = DEFAULT_MAX_ENERGY) -> float:
    """How far ``e_t`` has climbed towards the maximum, capped at 100."""
    return min(e_t / max_e_t * 100.0, 100.0)


def format_duration(seconds: float) -> str:
    """Render a duration as ``42s``, ``1.5m`` or ``2.0h``."""
    if math.isinf(seconds):
        return "∞"
    if seconds < 60:
        return f"{seconds:.0f}s"
    if seconds < 3600:
        return f"{seconds / 60:.1f}m"
    return f"{seconds / 3600:.1f}h"


class SafetyMonitor:
    """Stateful safety classifier with a bounded, newest-first event log.

    Attributes:
        config: Thresholds, cooldown and log size
        events: Emitted events, newest first, capped at ``config.event_log_size``
    """

    def __init__(
        self,
        config: Optional[SafetyConfig] = None,
        on_override: Optional[Callable[[SafetyEventKind], object]] = None,
        sink: Optional[FallbackRecordSink] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or SafetyConfig()
        self.on_override = on_override
        self.sink = sink
        self._clock = clock
        self.events: deque[SafetyEvent] = deque(maxlen=self.config.event_log_size)
        self._last_event_at: Optional[float] = None
        self._last_e_t: Optional[float] = None

    @property
    def max_energy(self) -> float:
        return self.config.max_energy

    def evaluate(self, e_t: float) -> SafetyStatus:
        return evaluate_safety(
            e_t,
            self.config.max_energy,
            self.config.warning_ratio,
            self.config.emergency_ratio,
        )

    @property
    def status(self) -> SafetyStatus:
        """Status of the last finite sample (safe before any sample)."""
        if self._last_e_t is None:
            return SafetyStatus.SAFE
        return self.evaluate(self._last_e_t)

    @property
    def last_e_t(self) -> Optional[float]:
        return self._last_e_t

    def observe(self, e_t: float) -> Optional[SafetyEvent]:
        """Record a sample and emit an event if one is due.

        Non-finite samples are ignored: the status does not change and no
        event is emitted.
        """
        if not is_finite(e_t):
            logger.debug(f"Ignoring non-finite energy sample: {e_t!r}")
            return None
        self._last_e_t = float(e_t)
        return self.maybe_emit_event(self._last_e_t)

    def maybe_emit_event(self, e_t: float) -> Optional[SafetyEvent]:
        """Emit at most one event for ``e_t`` unless inside the cooldown window.

        Returns:
            The emitted event, or None.
        """
        if not is_finite(e_t):
            return None

        now = self._clock()
        if (
            self._last_event_at is not None
            and now - self._last_event_at < self.config.event_cooldown_seconds
        ):
            return None

        max_e_t = self.config.max_energy
        if e_t >= self.config.emergency_threshold:
            kind = SafetyEventKind.EMERGENCY
            message = f"EMERGENCY: E_t level critically high ({e_t:.3f}). System safety cap engaged."
        elif e_t >= self.config.warning_threshold:
            kind = SafetyEventKind.WARNING
            message = (
                f"WARNING: E_t approaching safety limit ({e_t:.3f}/{max_e_t}). "
                "Consider reducing growth rate."
            )
        elif e_t >= max_e_t:
            # Unreachable while emergency_ratio < 1
            kind = SafetyEventKind.CAP
            message = f"SAFETY CAP: E_t capped at maximum safe level ({max_e_t}). Growth suspended."
        else:
            return None

        event = SafetyEvent(kind=kind, message=message, e_t_value=e_t)
        self.events.appendleft(event)
        self._last_event_at = now
        logger.warning(message)

        fire_hook(self.on_override, kind, name="on_safety_override")
        if self.sink is not None:
            self.sink.record(RecordKind.SAFETY_EVENT, event.model_dump(mode="json"))
        return event

    def time_to_limit(self, e_t: float, growth_rate_per_sample: float) -> float:
        return time_to_limit(e_t, growth_rate_per_sample, self.config.max_energy)

    def progress_pct(self, e_t: Optional[float] = None) -> float:
        value = self._last_e_t if e_t is None else e_t
        if value is None:
            return 0.0
        return safety_progress_pct(value, self.config.max_energy)

    def alert_message(self) -> Optional[str]:
        """Banner text for the current status, None while safe."""
        status = self.status
        if status == SafetyStatus.EMERGENCY:
            return (
                f"CRITICAL: E_t at {self._last_e_t:.3f} - Emergency protocols engaged. "
                "System automatically limiting energy growth."
            )
        if status == SafetyStatus.WARNING:
            return (
                f"CAUTION: E_t at {self._last_e_t:.3f} - Approaching safety threshold. "
                "Monitor system carefully."
            )
        return None

    def clear_events(self) -> None:
        self.events.clear()
        self._last_event_at = None
