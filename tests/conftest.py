"""Pytest configuration and fixtures."""

from typing import Any

import pytest

from transport_core.state import SimulationState


class FakeClock:
    """Manually advanced clock usable wherever a ``clock`` callable is accepted."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


BASE_TICK: dict[str, Any] = {
    "e_t": 0.5,
    "target_e_t": 1.0,
    "energy_growth_rate": 3.0,
    "energy_momentum": 0.0,
    "neural_boost": 0.2,
    "spectrum_boost": 0.5,
    "fractal_bonus": 0.2,
    "phase_coherence": 80.0,
    "neural_sync": 80.0,
    "tptt_value": 1e6,
    "adaptive_threshold": 1e6,
    "energy_trend": "increasing",
    "history": [0.1, 0.2, 0.3, 0.4, 0.5],
    "realtime_mode": True,
}


def make_tick(**overrides: Any) -> dict[str, Any]:
    tick = dict(BASE_TICK)
    tick.update(overrides)
    return tick


def make_state(**overrides: Any) -> SimulationState:
    return SimulationState.model_validate(make_tick(**overrides))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def state_factory():
    return make_state


@pytest.fixture
def tick_factory():
    return make_tick
