"""Data model of the orchestration core.

Compiled plans (``DebateUnit`` → ``Phase`` → ``DebateStructure``) are frozen:
they are produced once by the strategy selector and only read afterwards.
Results (``PhaseResult``, ``FinalConclusion``) are frozen too; the flow
executor builds new ones with ``dataclasses.replace`` as a run progresses.
"""

from __future__ import annotations

import operator
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from agents.base import Argument, Role, Stance, UnitResult, UnitStatus, VisibleContext
from orchestration.errors import OrchestrationError

__all__ = [
    "AbortReason",
    "Argument",
    "BranchCondition",
    "DebateStructure",
    "DebateUnit",
    "FinalConclusion",
    "PatternType",
    "Phase",
    "PhaseKind",
    "PhaseResult",
    "PhaseStatus",
    "Question",
    "QuestionConstraints",
    "Role",
    "Signal",
    "SignalType",
    "Stance",
    "UnitResult",
    "UnitStatus",
    "VisibleContext",
]


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class PatternType(str, Enum):
    """Closed catalog of execution topologies."""

    SIMPLE = "simple"
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    CONDITIONAL = "conditional"
    ITERATIVE = "iterative"
    TOURNAMENT = "tournament"
    ADVERSARIAL = "adversarial"
    ENSEMBLE = "ensemble"
    HIERARCHICAL = "hierarchical"


class SignalType(str, Enum):
    BINARY_CHOICE = "binary_choice"
    MULTIPLE_OPTIONS = "multiple_options"
    BROAD_TOPIC = "broad_topic"
    HIGH_RISK = "high_risk"
    URGENCY = "urgency"
    OPTIMIZATION = "optimization"
    MULTIPLE_FACTORS = "multiple_factors"
    COMPARISON = "comparison"
    EXPLORATION = "exploration"
    VALIDATION = "validation"


class PhaseKind(str, Enum):
    DEBATE = "debate"
    ROLLUP = "rollup"
    BRANCH = "branch"


class PhaseStatus(str, Enum):
    COMPLETED = "completed"
    DEGRADED = "degraded"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


class AbortReason(str, Enum):
    COST_CEILING = "cost_ceiling"
    PHASE_FAILED = "phase_failed"
    CANCELLED = "cancelled"
    TIME_LIMIT = "time_limit"


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class QuestionConstraints:
    max_cost: float | None = None
    max_time_minutes: float | None = None
    forced_pattern: str | None = None


@dataclass(frozen=True)
class Question:
    """A decision question as submitted by the caller."""

    text: str
    context: str | None = None
    constraints: QuestionConstraints = field(default_factory=QuestionConstraints)

    @classmethod
    def of(cls, question: Question | str) -> Question:
        return question if isinstance(question, Question) else cls(text=question)


@dataclass(frozen=True)
class Signal:
    type: SignalType
    detected: bool
    strength: float = 0.0
    evidence: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Compiled plan
# ---------------------------------------------------------------------------

_OPERATORS = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "==": operator.eq,
}


@dataclass(frozen=True)
class BranchCondition:
    """Run the owning phase only if ``source_phase.<field> <operator> value``."""

    source_phase: str
    field: str = "consensus_level"
    operator: str = "<"
    value: float = 0.7

    def __post_init__(self) -> None:
        if self.operator not in _OPERATORS:
            raise ValueError(f"Unknown operator {self.operator!r}")

    def evaluate(self, result: PhaseResult | None) -> bool:
        if result is None or result.status not in (PhaseStatus.COMPLETED, PhaseStatus.DEGRADED):
            return False
        actual = getattr(result, self.field)
        return _OPERATORS[self.operator](actual, self.value)

    def describe(self) -> str:
        return f"{self.source_phase}.{self.field} {self.operator} {self.value}"


@dataclass(frozen=True)
class DebateUnit:
    """One atomic point of deliberation."""

    id: str
    topic: str
    priority: int = 1
    depends_on: tuple[str, ...] = ()
    participant_roles: tuple[Role, ...] = ()
    inherit_context: bool = False
    # Bracket match: the winners of ``depends_on`` units join ``candidates`` at run time
    bracket: bool = False
    candidates: tuple[str, ...] = ()


@dataclass(frozen=True)
class Phase:
    id: str
    order: int
    units: tuple[DebateUnit, ...]
    parallel: bool = False
    kind: PhaseKind = PhaseKind.DEBATE
    condition: BranchCondition | None = None


@dataclass(frozen=True)
class DebateStructure:
    """Compiled, immutable execution plan for one question under one pattern."""

    pattern: PatternType
    phases: tuple[Phase, ...]
    question: str = ""
    estimated_cost: float = 0.0
    estimated_time_minutes: float = 0.0

    def units(self) -> Iterator[DebateUnit]:
        for phase in self.phases:
            yield from phase.units

    @property
    def unit_count(self) -> int:
        return sum(len(p.units) for p in self.phases)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PhaseResult:
    phase_id: str
    unit_results: tuple[UnitResult, ...] = ()
    status: PhaseStatus = PhaseStatus.COMPLETED
    phase_conclusion: str = ""
    consensus_level: float = 0.0
    confidence: float = 0.0
    majority_position: str = ""
    dissent: tuple[str, ...] = ()
    duration_seconds: float = 0.0

    @property
    def completed_units(self) -> tuple[UnitResult, ...]:
        return tuple(r for r in self.unit_results if r.ok)

    @property
    def failed_units(self) -> tuple[UnitResult, ...]:
        return tuple(r for r in self.unit_results if r.status == UnitStatus.FAILED)

    @property
    def cost(self) -> float:
        return sum(r.cost for r in self.unit_results)


@dataclass(frozen=True)
class FinalConclusion:
    """Terminal artifact of a run."""

    headline: str
    recommendation: str
    confidence: float
    dissent: tuple[str, ...] = ()
    cost_spent: float = 0.0
    time_spent_minutes: float = 0.0
    pattern: PatternType | None = None
    key_insights: tuple[str, ...] = ()
    phase_results: tuple[PhaseResult, ...] = ()
    incomplete: bool = False
    aborted: AbortReason | None = None
    error: OrchestrationError | None = field(default=None, compare=False, repr=False)
    # Row id in the run store, when the run was persisted
    run_id: int | None = field(default=None, compare=False)

    def raise_for_status(self) -> None:
        """Re-raise the execution error that cut this run short, if any."""
        if self.error is not None:
            raise self.error

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "headline": self.headline,
            "recommendation": self.recommendation,
            "confidence": round(self.confidence, 3),
            "dissent": list(self.dissent),
            "cost_spent": round(self.cost_spent, 4),
            "time_spent_minutes": round(self.time_spent_minutes, 2),
            "pattern": self.pattern.value if self.pattern else None,
            "key_insights": list(self.key_insights),
            "incomplete": self.incomplete,
            "aborted": self.aborted.value if self.aborted else None,
            "error": str(self.error) if self.error else None,
            "phases": [
                {
                    "phase_id": r.phase_id,
                    "status": r.status.value,
                    "consensus_level": round(r.consensus_level, 3),
                    "conclusion": r.phase_conclusion,
                }
                for r in self.phase_results
            ],
        }
