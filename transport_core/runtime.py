"""Analytics runtime: wires the monitors onto one asyncio loop.

Ticks from the simulation producer go through ingest(): the state is
validated, published into the StateStore and fed to the safety monitor on
the spot. The predictor and advisor recompute on a 1 s cadence from a single
store snapshot, and only when a newer state was published since the last
pass. Each recompute also pushes a derived-state snapshot through the sync
channel when one is configured. The stability monitor owns its own 60 s
checks.

Usage:
    async with AnalyticsRuntime(actions=actions, transport=hub, session_id="abc") as runtime:
        runtime.ingest(tick)
        runtime.ingest_telemetry(memory_bytes=..., characteristic_value=..., fps=...)
        report = runtime.report()
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Union

from transport_core.analytics.advisor import OptimizationAdvisor, Suggestion
from transport_core.analytics.predictor import (
    PredictionMetrics,
    TransportPredictor,
    recommend_transport,
    transport_advisory,
)
from transport_core.config import CoreConfig, configure_logging
from transport_core.monitors.safety import SafetyEventKind, SafetyMonitor
from transport_core.monitors.stability import CorrectiveActions, StabilityMonitor
from transport_core.persistence import FallbackRecordSink, RecordSink
from transport_core.scheduling import PeriodicTask
from transport_core.state import SimulationState, StateStore
from transport_core.sync.channel import RealtimeSyncChannel, SyncSnapshot
from transport_core.sync.hub import SyncTransport

logger = logging.getLogger(__name__)


def _finite_or_none(value: float) -> Optional[float]:
    return value if math.isfinite(value) else None


@dataclass
class AnalyticsReport:
    """Point-in-time view of every monitor's output."""

    safety_status: str
    safety_events: list[dict[str, Any]]
    safety_progress_pct: float
    time_to_limit_sec: Optional[float]
    stability: dict[str, Any]
    frame_rate: Optional[dict[str, Any]]
    memory_pressure: Optional[dict[str, Any]]
    prediction: Optional[dict[str, Any]]
    transport_recommended: bool
    advisory: Optional[str]
    suggestions: list[dict[str, Any]]
    suggestion_summary: dict[str, Any]
    sync: dict[str, Any] = field(default_factory=dict)
    fallback_records: int = 0
    skipped_ticks: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "safety_status": self.safety_status,
            "safety_events": self.safety_events,
            "safety_progress_pct": self.safety_progress_pct,
            "time_to_limit_sec": self.time_to_limit_sec,
            "stability": self.stability,
            "frame_rate": self.frame_rate,
            "memory_pressure": self.memory_pressure,
            "prediction": self.prediction,
            "transport_recommended": self.transport_recommended,
            "advisory": self.advisory,
            "suggestions": self.suggestions,
            "suggestion_summary": self.suggestion_summary,
            "sync": self.sync,
            "fallback_records": self.fallback_records,
            "skipped_ticks": self.skipped_ticks,
        }


class AnalyticsRuntime:
    """Owns the monitors, their scheduled tasks and the sync channel.

    Attributes:
        config: Aggregate configuration
        store: Latest validated simulation state
        sink: Best-effort persistence shared by all monitors
        safety: SafetyMonitor fed on every ingested tick
        stability: StabilityMonitor fed by ingest_telemetry()
        predictor: TransportPredictor recomputed on the recompute cadence
        advisor: OptimizationAdvisor regenerated with each prediction
        sync: RealtimeSyncChannel, or None without a transport and session
    """

    def __init__(
        self,
        config: Optional[CoreConfig] = None,
        actions: Optional[CorrectiveActions] = None,
        on_safety_override: Optional[Callable[[SafetyEventKind], Any]] = None,
        on_optimize: Optional[Callable[[Suggestion], Any]] = None,
        record_sink: Optional[RecordSink] = None,
        transport: Optional[SyncTransport] = None,
        session_id: Optional[str] = None,
        on_sync_update: Optional[Callable[[SyncSnapshot], Any]] = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ):
        self.config = config or CoreConfig()
        self.store = StateStore()
        self.sink = FallbackRecordSink(record_sink, self.config.persistence.fallback_capacity)

        self.safety = SafetyMonitor(self.config.safety, on_safety_override, self.sink, clock)
        self.stability = StabilityMonitor(self.config.stability, actions, clock)
        self.predictor = TransportPredictor(self.config.predictor)
        self.advisor = OptimizationAdvisor(on_optimize=on_optimize, sink=self.sink)

        self.sync: Optional[RealtimeSyncChannel] = None
        if transport is not None and session_id:
            self.sync = RealtimeSyncChannel(
                session_id,
                transport,
                self.config.sync,
                on_update=on_sync_update,
                sink=self.sink,
                clock=clock,
                wall_clock=wall_clock,
            )

        self._recompute_task = PeriodicTask(
            "analytics-recompute",
            self.config.predictor.recompute_interval_seconds,
            self.recompute,
        )
        self._computed_version = 0
        self._running = False
        self.skipped_ticks = 0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **kwargs: Any) -> "AnalyticsRuntime":
        """Build a runtime from ``TRANSPORT_CORE_*`` variables and set up logging."""
        config = CoreConfig.from_env(environ)
        configure_logging(config.log_level)
        return cls(config=config, **kwargs)

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            logger.warning("Analytics runtime already running")
            return

        self._running = True
        self.stability.start()
        self._recompute_task.start()
        if self.sync is not None and self.sync.connect():
            self.sync.track_presence({"role": "analytics"})

        logger.info("Analytics runtime started")

    async def stop(self) -> None:
        self._running = False
        await self._recompute_task.stop()
        await self.stability.stop()
        if self.sync is not None:
            self.sync.close()

        logger.info("Analytics runtime stopped")

    async def __aenter__(self) -> "AnalyticsRuntime":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def ingest(self, tick: Union[SimulationState, Mapping[str, Any]]) -> Optional[SimulationState]:
        """Accept one upstream tick.

        Returns:
            The validated state, or None if the tick was rejected.
        """
        state = SimulationState.from_tick(tick)
        if state is None:
            self.skipped_ticks += 1
            return None

        self.store.publish(state)
        self.safety.observe(state.e_t)
        return state

    def ingest_telemetry(
        self,
        memory_bytes: Optional[float] = None,
        characteristic_value: Optional[float] = None,
        fps: Optional[float] = None,
    ) -> None:
        self.stability.sample(memory_bytes, characteristic_value, fps)

    def recompute(self) -> Optional[PredictionMetrics]:
        """Run the predictor and advisor over the latest published state."""
        version, state = self.store.snapshot()
        if state is None or version == self._computed_version:
            return self.predictor.metrics
        self._computed_version = version

        metrics = self.predictor.update(state)
        if metrics is None:
            return None

        self.advisor.regenerate(state, metrics.readiness_pct)
        if self.sync is not None and self.sync.is_connected:
            self.sync.broadcast(self._sync_payload(state, metrics))
        return metrics

    def _sync_payload(self, state: SimulationState, metrics: PredictionMetrics) -> dict[str, Any]:
        return {
            "e_t": state.e_t,
            "target_e_t": state.target_e_t,
            "readiness_pct": metrics.readiness_pct,
            "success_probability_pct": metrics.success_probability_pct,
            "eta_to_ready_sec": _finite_or_none(metrics.eta_to_ready_sec),
            "confidence_pct": metrics.confidence_pct,
            "safety_status": self.safety.status.value,
        }

    def report(self) -> AnalyticsReport:
        _, state = self.store.snapshot()
        metrics = self.predictor.metrics

        time_to_limit = None
        if state is not None:
            time_to_limit = _finite_or_none(self.safety.time_to_limit(state.e_t, state.energy_growth_rate))

        prediction = None
        if metrics is not None:
            prediction = {
                key: (_finite_or_none(value) if isinstance(value, float) else value)
                for key, value in metrics.model_dump(mode="python").items()
            }
            prediction["risk_factors"] = list(metrics.risk_factors)

        frame_stats = self.stability.frame_rate.stats
        pressure = self.stability.memory_pressure
        sync_info: dict[str, Any] = {}
        if self.sync is not None:
            sync_info = {
                "channel": self.sync.channel_name,
                "connected": self.sync.is_connected,
                "peers": self.sync.peers_count,
                "sends": self.sync.sends,
            }

        return AnalyticsReport(
            safety_status=self.safety.status.value,
            safety_events=[event.model_dump(mode="json") for event in self.safety.events],
            safety_progress_pct=self.safety.progress_pct(),
            time_to_limit_sec=time_to_limit,
            stability=self.stability.state.to_dict(),
            frame_rate=None if frame_stats is None else {
                "current": frame_stats.current,
                "average": frame_stats.average,
                "min": frame_stats.minimum,
                "max": frame_stats.maximum,
                "stability": frame_stats.stability.value,
                "target_fps": frame_stats.target_fps,
            },
            memory_pressure=None if pressure is None else pressure.to_dict(),
            prediction=prediction,
            transport_recommended=metrics is not None and recommend_transport(metrics),
            advisory=None if metrics is None else transport_advisory(metrics),
            suggestions=[s.model_dump(mode="json") for s in self.advisor.suggestions],
            suggestion_summary=self.advisor.summary().to_dict(),
            sync=sync_info,
            fallback_records=len(self.sink.fallback_records),
            skipped_ticks=self.skipped_ticks,
        )
