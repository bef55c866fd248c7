"""Memory pressure classification against a target and critical budget."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)

BYTES_PER_MB = 1_000_000
HIGH_PRESSURE_FACTOR = 1.2


class MemoryPressureLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class MemoryPressure:
    used_mb: float
    limit_mb: float
    percent_used: float
    level: MemoryPressureLevel
    should_reduce_quality: bool
    should_cleanup: bool

    def recommendations(self) -> list[str]:
        """Corrective steps for the current level, most general first."""
        recommendations = []
        if self.should_cleanup:
            recommendations.append("Run memory cleanup")
        if self.should_reduce_quality:
            recommendations.append("Reduce graphics quality")
        if self.level == MemoryPressureLevel.CRITICAL:
            recommendations.extend(
                ["Disable particle effects", "Reduce LOD complexity", "Clear unused geometries"]
            )
        elif self.level == MemoryPressureLevel.HIGH:
            recommendations.extend(["Reduce mesh density", "Enable aggressive LOD"])
        return recommendations

    def to_dict(self) -> dict[str, Any]:
        return {
            "used_mb": self.used_mb,
            "percent_used": self.percent_used,
            "level": self.level.value,
            "should_reduce_quality": self.should_reduce_quality,
            "should_cleanup": self.should_cleanup,
            "recommendations": self.recommendations(),
        }


def classify_memory_pressure(
    used_bytes: float,
    limit_bytes: Optional[float] = None,
    target_mb: float = 360.0,
    critical_mb: float = 450.0,
) -> MemoryPressure:
    """Classify heap usage.

    Args:
        used_bytes: Current heap usage
        limit_bytes: Heap ceiling, if known; only used for ``percent_used``
        target_mb: Usage at which quality should start dropping
        critical_mb: Usage treated as critical
    """
    used_mb = used_bytes / BYTES_PER_MB
    limit_mb = (limit_bytes or 0) / BYTES_PER_MB
    percent_used = used_mb / limit_mb * 100 if limit_mb > 0 else 0.0

    if used_mb >= critical_mb:
        level, reduce_quality, cleanup = MemoryPressureLevel.CRITICAL, True, True
    elif used_mb >= target_mb * HIGH_PRESSURE_FACTOR:
        level, reduce_quality, cleanup = MemoryPressureLevel.HIGH, True, True
    elif used_mb >= target_mb:
        level, reduce_quality, cleanup = MemoryPressureLevel.MEDIUM, True, False
    else:
        level, reduce_quality, cleanup = MemoryPressureLevel.LOW, False, False

    if level == MemoryPressureLevel.CRITICAL:
        logger.warning(f"Memory pressure critical: {used_mb:.0f}MB / {limit_mb:.0f}MB ({percent_used:.1f}%)")

    return MemoryPressure(
        used_mb=used_mb,
        limit_mb=limit_mb,
        percent_used=percent_used,
        level=level,
        should_reduce_quality=reduce_quality,
        should_cleanup=cleanup,
    )
