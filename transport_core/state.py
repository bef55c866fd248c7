"""Upstream simulation state as seen by the analytics core.

The simulation producer refreshes the state every tick. The core never mutates
it: SimulationState is a frozen pydantic model, and a tick that is missing a
field or carries a non-finite / out-of-range value is rejected as a whole
("no update this tick") instead of being partially applied.

Producers may use either the snake_case field names or the camelCase keys the
dashboard emits (``targetE_t``, ``tPTT_value``, ``lastEnergyValues``, ...).
A tick that carries both spellings of a field with different values is rejected.
"""

from __future__ import annotations

import logging
import math
import threading
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)

# Newest samples kept in SimulationState.history
HISTORY_LIMIT = 100

# Unitless scale applied to the per-sample growth rate in every ETA
GROWTH_RATE_SCALE = 0.001


def is_finite(value: Any) -> bool:
    """True for real numbers that are neither NaN nor infinite."""
    if value is None or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value)
    except TypeError:
        return False


class EnergyTrend(str, Enum):
    """Direction of the energy level over recent ticks."""

    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class SimulationState(BaseModel):
    """One tick of the energy-transport simulation.

    Attributes:
        e_t: Current energy level
        target_e_t: Energy level the transport aims for
        energy_growth_rate: Growth rate setting (per-sample units)
        energy_momentum: Accumulated momentum term
        neural_boost: Additive multiplier from neural fusion
        spectrum_boost: Additive multiplier from the selected stellar spectrum
        fractal_bonus: Additive multiplier from fractal enhancement (0 when off)
        phase_coherence: Phase coherence percentage (0-100)
        neural_sync: Neural synchronization percentage (0-100)
        tptt_value: Current tPTT readiness value
        adaptive_threshold: tPTT value at which transport is fully ready
        energy_trend: Direction of recent energy movement
        history: Recent e_t samples, oldest first
        realtime_mode: Whether the producer is running in realtime mode
        fractal_mode: Fractal toggle; derived from fractal_bonus when omitted
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        allow_inf_nan=False,
        extra="ignore",
    )

    e_t: float
    target_e_t: float = Field(alias="targetE_t")
    energy_growth_rate: float = Field(alias="energyGrowthRate")
    energy_momentum: float = Field(alias="energyMomentum")
    neural_boost: float = Field(alias="neuralBoost")
    spectrum_boost: float = Field(alias="spectrumBoost")
    fractal_bonus: float = Field(alias="fractalBonus")
    phase_coherence: float = Field(alias="phaseCoherence", ge=0.0, le=100.0)
    neural_sync: float = Field(alias="neuralSync", ge=0.0, le=100.0)
    tptt_value: float = Field(alias="tPTT_value")
    adaptive_threshold: float = Field(alias="adaptiveThreshold")
    energy_trend: EnergyTrend = Field(alias="energyTrend")
    history: tuple[float, ...] = Field(default=(), alias="lastEnergyValues")
    realtime_mode: bool = Field(default=False, alias="isRealtime")
    fractal_mode: Optional[bool] = Field(default=None, alias="fractalToggle")

    @model_validator(mode="before")
    @classmethod
    def _reject_conflicting_keys(cls, data: Any) -> Any:
        if isinstance(data, dict):
            for name, field in cls.model_fields.items():
                alias = field.alias
                if alias and alias in data and name in data and data[alias] != data[name]:
                    raise ValueError(f"conflicting values for {alias} and {name}")
        return data

    @field_validator("history")
    @classmethod
    def _bound_history(cls, value: tuple[float, ...]) -> tuple[float, ...]:
        return tuple(value[-HISTORY_LIMIT:])

    @property
    def fractal_enabled(self) -> bool:
        if self.fractal_mode is not None:
            return self.fractal_mode
        return self.fractal_bonus > 0

    @classmethod
    def from_tick(cls, raw: Any) -> Optional["SimulationState"]:
        """Validate one upstream tick.

        Returns:
            The validated state, or None when the tick is incomplete or
            carries non-finite/out-of-range values.
        """
        if isinstance(raw, cls):
            return raw
        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
            logger.debug(f"Skipping tick with invalid fields: {', '.join(fields)}")
            return None


class StateStore:
    """Latest-state slot shared between the producer and recompute passes.

    Publishing swaps the reference under a lock; readers take the reference
    (and a version counter) under the same lock and compute over it without
    holding the lock. SimulationState is immutable, so the reference is the
    snapshot.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._state: Optional[SimulationState] = None
        self._version = 0

    def publish(self, state: SimulationState) -> int:
        with self._lock:
            self._state = state
            self._version += 1
            return self._version

    def snapshot(self) -> tuple[int, Optional[SimulationState]]:
        with self._lock:
            return self._version, self._state

    @property
    def version(self) -> int:
        with self._lock:
            return self._version
