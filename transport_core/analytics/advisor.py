"""Optimization advisor: rule engine over the simulation state.

Each rule is stateless and yields at most one Suggestion with a fixed slug
id, so the same situation always produces the same id. The dismissed-set is
the advisor's only persistent state: a dismissed id is filtered out of every
regeneration until clear_dismissed() is called, even while its condition
still holds.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict

from transport_core.persistence import FallbackRecordSink, RecordKind
from transport_core.scheduling import fire_hook
from transport_core.state import SimulationState

logger = logging.getLogger(__name__)

# Suggestions shown before "show all"
VISIBLE_LIMIT = 3


class SuggestionType(str, Enum):
    ENERGY = "energy"
    SPECTRUM = "spectrum"
    CONFIGURATION = "configuration"
    TIMING = "timing"


class SuggestionPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Suggestion(BaseModel):
    """An actionable optimization hint produced by one rule."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: SuggestionType
    priority: SuggestionPriority
    title: str
    description: str
    impact: str
    action: str
    estimated_improvement_pct: float
    implementable: bool


Condition = Callable[[SimulationState, float], bool]


@dataclass(frozen=True)
class SuggestionRule:
    """One advisor rule.

    ``applies`` and ``implementable`` receive the state and the current
    readiness percentage.
    """

    id: str
    type: SuggestionType
    priority: SuggestionPriority
    title: str
    description: str
    impact: str
    action: str
    estimated_improvement_pct: float
    applies: Condition
    implementable: Condition

    def evaluate(self, state: SimulationState, readiness: float) -> Optional[Suggestion]:
        if not self.applies(state, readiness):
            return None
        return Suggestion(
            id=self.id,
            type=self.type,
            priority=self.priority,
            title=self.title,
            description=self.description,
            impact=self.impact,
            action=self.action,
            estimated_improvement_pct=self.estimated_improvement_pct,
            implementable=self.implementable(state, readiness),
        )


def _always(state: SimulationState, readiness: float) -> bool:
    return True


def _never(state: SimulationState, readiness: float) -> bool:
    return False


RULES: tuple[SuggestionRule, ...] = (
    SuggestionRule(
        id="low-energy",
        type=SuggestionType.ENERGY,
        priority=SuggestionPriority.HIGH,
        title="Increase Energy Growth Rate",
        description=(
            "Current energy level is below 50% of target. "
            "Increasing growth rate will accelerate energy accumulation."
        ),
        impact="Faster transport readiness",
        action="Increase growth rate multiplier",
        estimated_improvement_pct=25,
        applies=lambda s, r: s.e_t < s.target_e_t * 0.5,
        implementable=lambda s, r: s.energy_growth_rate < 8,
    ),
    SuggestionRule(
        id="enable-realtime",
        type=SuggestionType.CONFIGURATION,
        priority=SuggestionPriority.HIGH,
        title="Enable Realtime Mode",
        description="Realtime mode provides continuous energy updates and faster system response.",
        impact="Immediate boost to energy accumulation",
        action="Enable realtime mode",
        estimated_improvement_pct=30,
        applies=lambda s, r: not s.realtime_mode and r < 60,
        implementable=_always,
    ),
    SuggestionRule(
        id="enable-fractal",
        type=SuggestionType.CONFIGURATION,
        priority=SuggestionPriority.MEDIUM,
        title="Enable Fractal Enhancement",
        description="Fractal mode provides a 20% energy bonus and improves transport stability.",
        impact="+20% energy boost",
        action="Enable fractal toggle",
        estimated_improvement_pct=20,
        applies=lambda s, r: not s.fractal_enabled,
        implementable=_always,
    ),
    SuggestionRule(
        id="better-spectrum",
        type=SuggestionType.SPECTRUM,
        priority=SuggestionPriority.HIGH,
        title="Select High-Energy Spectrum",
        description=(
            "Current spectrum provides minimal energy boost. "
            "O-Type or B-Type stars offer significantly better performance."
        ),
        impact="Up to 5x energy multiplier",
        action="Select O-Type stellar spectrum",
        estimated_improvement_pct=40,
        applies=lambda s, r: s.spectrum_boost < 0.3,
        implementable=_always,
    ),
    SuggestionRule(
        id="improve-neural",
        type=SuggestionType.CONFIGURATION,
        priority=SuggestionPriority.MEDIUM,
        title="Optimize Neural Synchronization",
        description="Neural sync below optimal levels. Adjusting temporal phases can improve coherence.",
        impact="Better transport efficiency",
        action="Recalibrate neural systems",
        estimated_improvement_pct=15,
        applies=lambda s, r: s.neural_sync < 70,
        implementable=_never,  # Manual recalibration
    ),
    SuggestionRule(
        id="phase-coherence",
        type=SuggestionType.CONFIGURATION,
        priority=SuggestionPriority.MEDIUM,
        title="Improve Phase Coherence",
        description="Low phase coherence affects transport stability. Consider isotope adjustment.",
        impact="More stable transport",
        action="Adjust temporal phases",
        estimated_improvement_pct=18,
        applies=lambda s, r: s.phase_coherence < 60,
        implementable=_never,  # Needs an isotope change
    ),
    SuggestionRule(
        id="optimal-window",
        type=SuggestionType.TIMING,
        priority=SuggestionPriority.LOW,
        title="Optimal Transport Window",
        description="System is in optimal state for transport. Consider executing transport now.",
        impact="Maximum efficiency transport",
        action="Execute transport",
        estimated_improvement_pct=35,
        applies=lambda s, r: r > 95 and s.e_t > s.target_e_t * 0.9,
        implementable=_always,
    ),
    SuggestionRule(
        id="fine-tuning",
        type=SuggestionType.CONFIGURATION,
        priority=SuggestionPriority.LOW,
        title="Fine-tune Parameters",
        description="System performing well. Minor adjustments can provide marginal improvements.",
        impact="Marginal efficiency gains",
        action="Optimize system parameters",
        estimated_improvement_pct=8,
        applies=lambda s, r: r > 80 and s.energy_growth_rate > 5,
        implementable=_never,
    ),
)


@dataclass(frozen=True)
class AdvisorSummary:
    total: int
    implementable: int
    max_improvement_pct: float
    max_high_priority_improvement_pct: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "implementable": self.implementable,
            "max_improvement_pct": self.max_improvement_pct,
            "max_high_priority_improvement_pct": self.max_high_priority_improvement_pct,
        }


class OptimizationAdvisor:
    """Regenerates suggestions from state and tracks dismissals.

    Attributes:
        rules: Rules evaluated in order on every regeneration
        on_optimize: Hook invoked with the Suggestion on accept()
        on_dismiss: Hook invoked with the id on dismiss()
    """

    def __init__(
        self,
        rules: tuple[SuggestionRule, ...] = RULES,
        on_optimize: Optional[Callable[[Suggestion], Any]] = None,
        on_dismiss: Optional[Callable[[str], Any]] = None,
        sink: Optional[FallbackRecordSink] = None,
    ):
        ids = [rule.id for rule in rules]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Suggestion rule ids must be unique: {ids}")
        self.rules = rules
        self.on_optimize = on_optimize
        self.on_dismiss = on_dismiss
        self.sink = sink
        self._dismissed: set[str] = set()
        self._suggestions: list[Suggestion] = []

    @property
    def suggestions(self) -> list[Suggestion]:
        return list(self._suggestions)

    @property
    def dismissed(self) -> frozenset[str]:
        return frozenset(self._dismissed)

    def regenerate(self, state: SimulationState, readiness: float) -> list[Suggestion]:
        """Evaluate every rule against ``state`` and drop dismissed ids."""
        generated = []
        for rule in self.rules:
            suggestion = rule.evaluate(state, readiness)
            if suggestion is not None and suggestion.id not in self._dismissed:
                generated.append(suggestion)
        self._suggestions = generated
        return self.suggestions

    def high_priority(self) -> list[Suggestion]:
        return [s for s in self._suggestions if s.priority == SuggestionPriority.HIGH]

    def visible(self, show_all: bool = False) -> list[Suggestion]:
        if show_all:
            return self.suggestions
        return self._suggestions[:VISIBLE_LIMIT]

    def summary(self) -> AdvisorSummary:
        high = self.high_priority()
        return AdvisorSummary(
            total=len(self._suggestions),
            implementable=sum(1 for s in self._suggestions if s.implementable),
            max_improvement_pct=max((s.estimated_improvement_pct for s in self._suggestions), default=0),
            max_high_priority_improvement_pct=max((s.estimated_improvement_pct for s in high), default=0),
        )

    def dismiss(self, suggestion_id: str) -> None:
        """Suppress ``suggestion_id`` until clear_dismissed()."""
        self._dismissed.add(suggestion_id)
        self._suggestions = [s for s in self._suggestions if s.id != suggestion_id]
        logger.debug(f"Dismissed suggestion {suggestion_id}")
        fire_hook(self.on_dismiss, suggestion_id, name="on_dismiss")

    def accept(self, suggestion_id: str) -> Optional[Suggestion]:
        """Apply a current suggestion.

        Invokes ``on_optimize`` and records the acceptance. Implementable
        suggestions are dismissed as part of acceptance; the rest stay listed.

        Returns:
            The accepted suggestion, or None if ``suggestion_id`` is not
            currently listed.
        """
        suggestion = next((s for s in self._suggestions if s.id == suggestion_id), None)
        if suggestion is None:
            logger.debug(f"Ignoring accept for unlisted suggestion {suggestion_id}")
            return None

        logger.info(f"Accepted suggestion {suggestion.id}: {suggestion.action}")
        fire_hook(self.on_optimize, suggestion, name="on_optimize")
        if self.sink is not None:
            self.sink.record(RecordKind.SUGGESTION_ACCEPTED, suggestion.model_dump(mode="json"))
        if suggestion.implementable:
            self.dismiss(suggestion.id)
        return suggestion

    def clear_dismissed(self) -> None:
        """Forget all dismissals; takes effect on the next regeneration."""
        self._dismissed.clear()
