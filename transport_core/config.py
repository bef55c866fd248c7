"""Configuration for the transport analytics core.

Each component owns a small dataclass that validates itself on construction,
so a bad threshold ordering fails before the first tick is processed rather
than producing silently wrong classifications at runtime.

CoreConfig aggregates the component configs and can be overlaid from
``TRANSPORT_CORE_*`` environment variables:

    TRANSPORT_CORE_MAX_ENERGY=3.0
    TRANSPORT_CORE_WARNING_RATIO=0.75
    TRANSPORT_CORE_BROADCAST_INTERVAL_MS=250
    TRANSPORT_CORE_LOG_LEVEL=DEBUG
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Mapping, Optional, TypeVar

logger = logging.getLogger(__name__)

ENV_PREFIX = "TRANSPORT_CORE_"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_T = TypeVar("_T")
_LOGGING_CONFIGURED = False


class ConfigurationError(ValueError):
    """Raised when a configuration value violates an ordering or range constraint."""


def _require_positive(name: str, value: float) -> None:
    if not value > 0:
        raise ConfigurationError(f"{name} must be positive, got {value!r}")


@dataclass
class SafetyConfig:
    """Energy safety thresholds and alert rate limiting.

    Thresholds are expressed as ratios of ``max_energy`` so that
    ``0 < warning < emergency < max`` holds by construction once the
    ratios are validated.
    """

    max_energy: float = 2.5
    warning_ratio: float = 0.8
    emergency_ratio: float = 0.95
    event_cooldown_seconds: float = 5.0
    event_log_size: int = 10

    def __post_init__(self):
        _require_positive("max_energy", self.max_energy)
        if not 0.0 < self.warning_ratio < self.emergency_ratio < 1.0:
            raise ConfigurationError(
                "Safety thresholds must satisfy 0 < warning < emergency < max "
                f"(warning_ratio={self.warning_ratio}, emergency_ratio={self.emergency_ratio})"
            )
        if self.event_cooldown_seconds < 0:
            raise ConfigurationError("event_cooldown_seconds cannot be negative")
        if self.event_log_size < 1:
            raise ConfigurationError("event_log_size must be at least 1")

    @property
    def warning_threshold(self) -> float:
        return self.max_energy * self.warning_ratio

    @property
    def emergency_threshold(self) -> float:
        return self.max_energy * self.emergency_ratio


@dataclass
class StabilityConfig:
    """Tunables for leak, stuck-value and degradation detection.

    The trip/recover frame rates form a hysteresis band; the gap between
    them keeps the degraded flag from flapping around a single threshold.
    """

    check_interval_seconds: float = 60.0
    leak_threshold_mb: float = 20.0
    stuck_after_seconds: float = 60.0
    degraded_fps: float = 30.0
    recovered_fps: float = 50.0
    memory_pressure_mb: float = 85.0
    pressure_fps_ceiling: float = 60.0
    frame_history_size: int = 60
    memory_target_mb: float = 360.0
    memory_critical_mb: float = 450.0

    def __post_init__(self):
        _require_positive("check_interval_seconds", self.check_interval_seconds)
        _require_positive("leak_threshold_mb", self.leak_threshold_mb)
        _require_positive("stuck_after_seconds", self.stuck_after_seconds)
        if not 0 < self.degraded_fps < self.recovered_fps:
            raise ConfigurationError(
                f"degraded_fps ({self.degraded_fps}) must be positive and below "
                f"recovered_fps ({self.recovered_fps})"
            )
        if self.frame_history_size < 1:
            raise ConfigurationError("frame_history_size must be at least 1")
        if not 0 < self.memory_target_mb < self.memory_critical_mb:
            raise ConfigurationError("memory_target_mb must be positive and below memory_critical_mb")


@dataclass
class PredictorConfig:
    """Transport predictor inputs that are not part of the simulation state."""

    update_interval_ms: float = 100.0  # Simulation tick length
    recompute_interval_seconds: float = 1.0

    def __post_init__(self):
        _require_positive("update_interval_ms", self.update_interval_ms)
        _require_positive("recompute_interval_seconds", self.recompute_interval_seconds)


@dataclass
class SyncConfig:
    """Realtime peer synchronization settings."""

    enabled: bool = True
    min_broadcast_interval_ms: float = 100.0  # <= 10 updates/s
    channel_prefix: str = "cti-cascade-"

    def __post_init__(self):
        _require_positive("min_broadcast_interval_ms", self.min_broadcast_interval_ms)
        if not self.channel_prefix:
            raise ConfigurationError("channel_prefix cannot be empty")


@dataclass
class PersistenceConfig:
    """Local fallback buffer used when the persistence collaborator fails."""

    fallback_capacity: int = 50

    def __post_init__(self):
        if self.fallback_capacity < 1:
            raise ConfigurationError("fallback_capacity must be at least 1")


@dataclass
class CoreConfig:
    """Aggregate configuration for the analytics runtime."""

    safety: SafetyConfig = field(default_factory=SafetyConfig)
    stability: StabilityConfig = field(default_factory=StabilityConfig)
    predictor: PredictorConfig = field(default_factory=PredictorConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    log_level: str = "INFO"

    def __post_init__(self):
        level = logging.getLevelName(self.log_level.upper())
        if not isinstance(level, int):
            raise ConfigurationError(f"Unknown log level: {self.log_level!r}")
        self.log_level = self.log_level.upper()

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "CoreConfig":
        """Build a config from defaults overlaid with environment variables.

        Args:
            environ: Mapping to read from. Defaults to ``os.environ``.

        Raises:
            ConfigurationError: If a variable cannot be parsed or the
                resulting values violate a constraint.
        """
        env = os.environ if environ is None else environ

        safety_defaults = SafetyConfig()
        stability_defaults = StabilityConfig()
        predictor_defaults = PredictorConfig()
        sync_defaults = SyncConfig()

        return cls(
            safety=SafetyConfig(
                max_energy=_env_value(env, "MAX_ENERGY", float, safety_defaults.max_energy),
                warning_ratio=_env_value(env, "WARNING_RATIO", float, safety_defaults.warning_ratio),
                emergency_ratio=_env_value(env, "EMERGENCY_RATIO", float, safety_defaults.emergency_ratio),
                event_cooldown_seconds=_env_value(
                    env, "EVENT_COOLDOWN_SECONDS", float, safety_defaults.event_cooldown_seconds
                ),
                event_log_size=_env_value(env, "EVENT_LOG_SIZE", int, safety_defaults.event_log_size),
            ),
            stability=StabilityConfig(
                check_interval_seconds=_env_value(
                    env, "STABILITY_CHECK_SECONDS", float, stability_defaults.check_interval_seconds
                ),
                leak_threshold_mb=_env_value(env, "LEAK_THRESHOLD_MB", float, stability_defaults.leak_threshold_mb),
                stuck_after_seconds=_env_value(
                    env, "STUCK_AFTER_SECONDS", float, stability_defaults.stuck_after_seconds
                ),
                degraded_fps=_env_value(env, "DEGRADED_FPS", float, stability_defaults.degraded_fps),
                recovered_fps=_env_value(env, "RECOVERED_FPS", float, stability_defaults.recovered_fps),
                memory_pressure_mb=_env_value(
                    env, "MEMORY_PRESSURE_MB", float, stability_defaults.memory_pressure_mb
                ),
                memory_target_mb=_env_value(env, "MEMORY_TARGET_MB", float, stability_defaults.memory_target_mb),
                memory_critical_mb=_env_value(
                    env, "MEMORY_CRITICAL_MB", float, stability_defaults.memory_critical_mb
                ),
            ),
            predictor=PredictorConfig(
                update_interval_ms=_env_value(
                    env, "UPDATE_INTERVAL_MS", float, predictor_defaults.update_interval_ms
                ),
                recompute_interval_seconds=_env_value(
                    env, "RECOMPUTE_SECONDS", float, predictor_defaults.recompute_interval_seconds
                ),
            ),
            sync=SyncConfig(
                enabled=_env_value(env, "SYNC_ENABLED", _parse_bool, sync_defaults.enabled),
                min_broadcast_interval_ms=_env_value(
                    env, "BROADCAST_INTERVAL_MS", float, sync_defaults.min_broadcast_interval_ms
                ),
            ),
            persistence=PersistenceConfig(
                fallback_capacity=_env_value(env, "FALLBACK_CAPACITY", int, PersistenceConfig().fallback_capacity),
            ),
            log_level=_env_value(env, "LOG_LEVEL", str, "INFO"),
        )


def _parse_bool(value: str) -> bool:
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    raise ValueError(f"expected a boolean, got {value!r}")


def _env_value(env: Mapping[str, str], name: str, parse: Callable[[str], _T], default: _T) -> _T:
    key = f"{ENV_PREFIX}{name}"
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return parse(raw.strip())
    except ValueError as exc:
        raise ConfigurationError(f"Invalid value for {key}: {raw!r} ({exc})") from exc


def configure_logging(level: str = "INFO") -> None:
    """Configure process-wide logging once."""
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    _LOGGING_CONFIGURED = True
