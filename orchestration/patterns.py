"""Pattern catalog – the closed set of execution topologies.

Each pattern knows two things: how well it fits a ``QueryProfile`` (its
scoring rule) and how to lay a question out as phases of debate units (its
compilation rule).  Cost/time estimates and validation are added by the
strategy selector.
"""

from __future__ import annotations

import logging
import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass

from agents.base import Role
from orchestration.config import OrchestrationConfig
from orchestration.errors import InvalidPattern
from orchestration.signals import PASSIVE_SIGNALS, QueryProfile
from orchestration.types import (
    BranchCondition,
    DebateUnit,
    PatternType,
    Phase,
    PhaseKind,
    Question,
    SignalType,
)

logger = logging.getLogger(__name__)

DEFAULT_PANEL: tuple[Role, ...] = (Role.OPTIMIST, Role.CRITIC, Role.ANALYST, Role.SYNTHESIZER)
MATCH_PANEL: tuple[Role, ...] = (Role.ANALYST, Role.CRITIC, Role.JUDGE)
ROLLUP_PANEL: tuple[Role, ...] = (Role.ANALYST, Role.SYNTHESIZER)

DEFAULT_CANDIDATES: tuple[str, ...] = ("Option A", "Option B", "Option C", "Option D")
DEFAULT_DIMENSIONS: tuple[str, ...] = ("market", "execution", "financial")
DEFAULT_ASPECTS: tuple[str, ...] = ("strategic fit", "execution feasibility", "risks")


@dataclass(frozen=True)
class PatternScore:
    pattern: PatternType
    score: float
    reasoning: str


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-") or "x"


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------

class DebatePattern(ABC):
    """One catalog entry."""

    pattern: PatternType
    name: str
    description: str
    best_for: str

    @abstractmethod
    def score(self, profile: QueryProfile) -> PatternScore | None:
        """Return a fit score, or ``None`` when the pattern does not apply."""
        ...

    @abstractmethod
    def build_phases(
        self,
        question: Question,
        profile: QueryProfile,
        config: OrchestrationConfig,
    ) -> list[Phase]:
        ...

    def _scored(self, score: float, reasoning: str) -> PatternScore:
        return PatternScore(self.pattern, score, reasoning)


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

class SimplePattern(DebatePattern):
    pattern = PatternType.SIMPLE
    name = "Simple"
    description = "A single debate with a small fixed panel."
    best_for = "Direct questions without structural complexity"

    def score(self, profile: QueryProfile) -> PatternScore:
        structural = [s for s in profile.active if s.type not in PASSIVE_SIGNALS]
        if not structural:
            return self._scored(0.8, "No structural signal detected; one debate is enough")
        return self._scored(0.3, "Fallback when no other pattern fits")

    def build_phases(
        self,
        question: Question,
        profile: QueryProfile,
        config: OrchestrationConfig,
    ) -> list[Phase]:
        unit = DebateUnit(id="unit-1", topic=question.text, participant_roles=DEFAULT_PANEL)
        return [Phase(id="phase-1", order=1, units=(unit,))]


class AdversarialPattern(DebatePattern):
    pattern = PatternType.ADVERSARIAL
    name = "Adversarial"
    description = "One side defends the proposal, the other attacks it; synthesis contrasts them."
    best_for = "Yes/no or either-or decisions, especially risky ones"

    def score(self, profile: QueryProfile) -> PatternScore | None:
        if not profile.has(SignalType.BINARY_CHOICE):
            return None
        if profile.has(SignalType.HIGH_RISK):
            return self._scored(0.95, "High-stakes binary decision benefits from stress-testing")
        return self._scored(0.7, "Binary choice: argue both sides")

    def build_phases(
        self,
        question: Question,
        profile: QueryProfile,
        config: OrchestrationConfig,
    ) -> list[Phase]:
        defender = DebateUnit(
            id="unit-defender",
            topic=f"DEFEND: argue in favour of \"{question.text}\"",
            participant_roles=(Role.DEFENDER, Role.OPTIMIST),
        )
        attacker = DebateUnit(
            id="unit-attacker",
            topic=f"ATTACK: argue against \"{question.text}\"",
            participant_roles=(Role.ATTACKER, Role.CRITIC),
        )
        return [
            Phase(id="phase-adversarial", order=1, units=(defender, attacker), parallel=True)
        ]


class TournamentPattern(DebatePattern):
    """Bracket elimination between the named options.

    Seeds follow order of mention.  With ``N`` candidates the bracket has
    ``P = 2**ceil(log2 N)`` slots; the top ``P - N`` seeds get a first-round
    bye and every round pairs the best remaining seed with the worst.
    """

    pattern = PatternType.TOURNAMENT
    name = "Tournament"
    description = "Options face off in pairs; winners advance until one remains."
    best_for = "Choosing among three or more named alternatives"

    def score(self, profile: QueryProfile) -> PatternScore | None:
        if len(profile.options) >= 3:
            return self._scored(0.9, f"{len(profile.options)} discrete options to eliminate")
        if profile.has(SignalType.MULTIPLE_OPTIONS):
            return self._scored(0.75, "Question mentions several alternatives")
        return None

    def build_phases(
        self,
        question: Question,
        profile: QueryProfile,
        config: OrchestrationConfig,
    ) -> list[Phase]:
        candidates = list(profile.options) if len(profile.options) >= 2 else list(DEFAULT_CANDIDATES)
        return self.bracket(question.text, candidates)

    @staticmethod
    def rounds_for(count: int) -> int:
        return max(1, math.ceil(math.log2(count)))

    def bracket(self, text: str, candidates: list[str]) -> list[Phase]:
        rounds = self.rounds_for(len(candidates))
        size = 2 ** rounds
        byes = size - len(candidates)

        # A slot is (seed, candidate name or None, feeding unit id or None)
        slots: list[tuple[int, str | None, str | None]] = [
            (seed, name, None) for seed, name in enumerate(candidates[:byes], start=1)
        ]
        contenders = list(enumerate(candidates, start=1))[byes:]

        phases: list[Phase] = []
        pairs = [
            (contenders[i], contenders[-1 - i]) for i in range(len(contenders) // 2)
        ]
        units = []
        for m, ((seed_a, a), (_, b)) in enumerate(pairs, start=1):
            unit_id = f"r1-m{m}"
            units.append(
                DebateUnit(
                    id=unit_id,
                    topic=f"Round 1, match {m}: {a} vs {b} for \"{text}\"",
                    participant_roles=MATCH_PANEL,
                    bracket=True,
                    candidates=(a, b),
                )
            )
            slots.append((seed_a, None, unit_id))
        phases.append(Phase(id="phase-round1", order=1, units=tuple(units), parallel=True))

        for rnd in range(2, rounds + 1):
            slots.sort(key=lambda s: s[0])
            pairs = [(slots[i], slots[-1 - i]) for i in range(len(slots) // 2)]
            slots = []
            units = []
            for m, pair in enumerate(pairs, start=1):
                unit_id = f"r{rnd}-m{m}"
                names = tuple(s[1] for s in pair if s[1] is not None)
                deps = tuple(s[2] for s in pair if s[2] is not None)
                labels = [s[1] if s[1] is not None else f"winner of {s[2]}" for s in pair]
                units.append(
                    DebateUnit(
                        id=unit_id,
                        topic=f"Round {rnd}, match {m}: {labels[0]} vs {labels[1]} for \"{text}\"",
                        depends_on=deps,
                        participant_roles=MATCH_PANEL,
                        bracket=True,
                        inherit_context=True,
                        candidates=names,
                    )
                )
                slots.append((pair[0][0], None, unit_id))
            phases.append(
                Phase(id=f"phase-round{rnd}", order=rnd, units=tuple(units), parallel=True)
            )
        return phases


class HierarchicalPattern(DebatePattern):
    pattern = PatternType.HIERARCHICAL
    name = "Hierarchical"
    description = "Sub-questions are debated in order, then rolled up into one answer."
    best_for = "Broad or compound strategic questions"

    def score(self, profile: QueryProfile) -> PatternScore | None:
        if profile.has(SignalType.BROAD_TOPIC):
            return self._scored(0.85, "Broad topic: decompose before concluding")
        if len(profile.sub_questions) >= 2:
            return self._scored(0.65, f"{len(profile.sub_questions)} sub-questions detected")
        return None

    def build_phases(
        self,
        question: Question,
        profile: QueryProfile,
        config: OrchestrationConfig,
    ) -> list[Phase]:
        subs = list(profile.sub_questions)
        if len(subs) < 2:
            aspects = profile.factors if len(profile.factors) >= 2 else DEFAULT_ASPECTS
            subs = [f"{aspect.capitalize()}: {question.text}" for aspect in aspects]

        phases: list[Phase] = []
        for i, sub in enumerate(subs, start=1):
            unit = DebateUnit(
                id=f"sub-{i}",
                topic=sub,
                depends_on=(f"sub-{i - 1}",) if i > 1 else (),
                participant_roles=DEFAULT_PANEL,
                inherit_context=i > 1,
            )
            phases.append(Phase(id=f"phase-sub-{i}", order=i, units=(unit,)))

        rollup = DebateUnit(
            id="rollup",
            topic=f"Roll up the sub-conclusions into one answer to \"{question.text}\"",
            depends_on=tuple(f"sub-{i}" for i in range(1, len(subs) + 1)),
            participant_roles=ROLLUP_PANEL,
            inherit_context=True,
        )
        phases.append(
            Phase(id="phase-rollup", order=len(subs) + 1, units=(rollup,), kind=PhaseKind.ROLLUP)
        )
        return phases


class ParallelPattern(DebatePattern):
    pattern = PatternType.PARALLEL
    name = "Parallel"
    description = "Independent debates per dimension, merged without elimination."
    best_for = "Decisions that hinge on several independent factors"

    def score(self, profile: QueryProfile) -> PatternScore | None:
        if len(profile.factors) >= 3:
            return self._scored(0.85, f"{len(profile.factors)} independent factors")
        if profile.has(SignalType.MULTIPLE_FACTORS):
            return self._scored(0.7, "Several factors mentioned")
        return None

    def build_phases(
        self,
        question: Question,
        profile: QueryProfile,
        config: OrchestrationConfig,
    ) -> list[Phase]:
        dims = profile.factors if len(profile.factors) >= 2 else DEFAULT_DIMENSIONS
        units = tuple(
            DebateUnit(
                id=f"dim-{_slug(dim)}",
                topic=f"{dim.capitalize()} analysis of \"{question.text}\"",
                participant_roles=DEFAULT_PANEL,
            )
            for dim in dims
        )
        return [Phase(id="phase-parallel", order=1, units=units, parallel=True)]


class SequentialPattern(DebatePattern):
    pattern = PatternType.SEQUENTIAL
    name = "Sequential"
    description = "One factor at a time, each step building on the previous."
    best_for = "Factors that depend on one another"

    def score(self, profile: QueryProfile) -> PatternScore | None:
        if len(profile.factors) >= 2:
            return self._scored(0.6, "Factors can be analysed step by step")
        return None

    def build_phases(
        self,
        question: Question,
        profile: QueryProfile,
        config: OrchestrationConfig,
    ) -> list[Phase]:
        steps = profile.factors if len(profile.factors) >= 2 else DEFAULT_DIMENSIONS
        phases = []
        for i, step in enumerate(steps, start=1):
            unit = DebateUnit(
                id=f"step-{i}",
                topic=f"{step.capitalize()} analysis of \"{question.text}\"",
                depends_on=(f"step-{i - 1}",) if i > 1 else (),
                participant_roles=DEFAULT_PANEL,
                inherit_context=i > 1,
            )
            phases.append(Phase(id=f"phase-step-{i}", order=i, units=(unit,)))
        return phases


class IterativePattern(DebatePattern):
    pattern = PatternType.ITERATIVE
    name = "Iterative"
    description = "An initial answer refined until the panel agrees well enough."
    best_for = "Optimisation questions"

    def score(self, profile: QueryProfile) -> PatternScore | None:
        if profile.has(SignalType.OPTIMIZATION):
            return self._scored(0.75, "Optimisation benefits from refinement rounds")
        return None

    def build_phases(
        self,
        question: Question,
        profile: QueryProfile,
        config: OrchestrationConfig,
    ) -> list[Phase]:
        phases = [
            Phase(
                id="phase-initial",
                order=1,
                units=(DebateUnit(id="initial", topic=question.text, participant_roles=DEFAULT_PANEL),),
            )
        ]
        previous_phase, previous_unit = "phase-initial", "initial"
        for i in range(1, config.max_iterations + 1):
            unit = DebateUnit(
                id=f"refine-{i}",
                topic=f"Refine and deepen the previous answer to \"{question.text}\"",
                depends_on=(previous_unit,),
                participant_roles=DEFAULT_PANEL,
                inherit_context=True,
            )
            phases.append(
                Phase(
                    id=f"phase-refine-{i}",
                    order=i + 1,
                    units=(unit,),
                    condition=BranchCondition(
                        source_phase=previous_phase,
                        operator="<",
                        value=config.min_quality_threshold,
                    ),
                )
            )
            previous_phase, previous_unit = f"phase-refine-{i}", unit.id
        return phases


class EnsemblePattern(DebatePattern):
    pattern = PatternType.ENSEMBLE
    name = "Ensemble"
    description = "Three independent perspectives on the same question, merged."
    best_for = "Risky decisions without a clear set of options"

    _PERSPECTIVES = ("optimistic", "conservative", "disruptive")

    def score(self, profile: QueryProfile) -> PatternScore | None:
        if (
            profile.has(SignalType.HIGH_RISK)
            and not profile.has(SignalType.BINARY_CHOICE)
            and not profile.options
        ):
            return self._scored(0.8, "Risky and open-ended: diversify perspectives")
        return None

    def build_phases(
        self,
        question: Question,
        profile: QueryProfile,
        config: OrchestrationConfig,
    ) -> list[Phase]:
        units = tuple(
            DebateUnit(
                id=f"perspective-{p}",
                topic=f"{question.text} ({p} perspective)",
                participant_roles=DEFAULT_PANEL,
            )
            for p in self._PERSPECTIVES
        )
        return [Phase(id="phase-ensemble", order=1, units=units, parallel=True)]


class ConditionalPattern(DebatePattern):
    pattern = PatternType.CONDITIONAL
    name = "Conditional"
    description = "Explore first; dig deeper only when the panel is split."
    best_for = "Exploratory questions"

    DEEPEN_BELOW = 0.7

    def score(self, profile: QueryProfile) -> PatternScore | None:
        if profile.has(SignalType.EXPLORATION):
            return self._scored(0.65, "Exploration: branch on how much the panel agrees")
        return None

    def build_phases(
        self,
        question: Question,
        profile: QueryProfile,
        config: OrchestrationConfig,
    ) -> list[Phase]:
        explore = DebateUnit(
            id="explore",
            topic=f"Explore the options for \"{question.text}\"",
            participant_roles=DEFAULT_PANEL,
        )
        deepen = DebateUnit(
            id="deepen",
            topic=f"Dig into the points of disagreement on \"{question.text}\"",
            depends_on=("explore",),
            participant_roles=DEFAULT_PANEL,
            inherit_context=True,
        )
        conclude = DebateUnit(
            id="conclude",
            topic=f"Conclude on \"{question.text}\"",
            depends_on=("explore",),
            participant_roles=ROLLUP_PANEL,
            inherit_context=True,
        )
        return [
            Phase(id="phase-explore", order=1, units=(explore,)),
            Phase(
                id="phase-deepen",
                order=2,
                units=(deepen,),
                kind=PhaseKind.BRANCH,
                condition=BranchCondition("phase-explore", "consensus_level", "<", self.DEEPEN_BELOW),
            ),
            Phase(id="phase-conclude", order=3, units=(conclude,), kind=PhaseKind.ROLLUP),
        ]


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

CATALOG_ORDER: tuple[PatternType, ...] = (
    PatternType.SIMPLE,
    PatternType.ADVERSARIAL,
    PatternType.TOURNAMENT,
    PatternType.HIERARCHICAL,
    PatternType.PARALLEL,
    PatternType.SEQUENTIAL,
    PatternType.ITERATIVE,
    PatternType.ENSEMBLE,
    PatternType.CONDITIONAL,
)

_CATALOG: dict[PatternType, DebatePattern] = {
    p.pattern: p
    for p in (
        SimplePattern(),
        AdversarialPattern(),
        TournamentPattern(),
        HierarchicalPattern(),
        ParallelPattern(),
        SequentialPattern(),
        IterativePattern(),
        EnsemblePattern(),
        ConditionalPattern(),
    )
}

_missing = set(PatternType) - set(_CATALOG) | set(PatternType) - set(CATALOG_ORDER)
if _missing:
    raise RuntimeError(f"Pattern catalog is missing {sorted(m.value for m in _missing)}")


def catalog() -> list[DebatePattern]:
    """All patterns, in tie-break order."""
    return [_CATALOG[p] for p in CATALOG_ORDER]


def get_pattern(name: str | PatternType) -> DebatePattern:
    """Look a pattern up by enum member or (case-insensitive) name."""
    try:
        key = name if isinstance(name, PatternType) else PatternType(str(name).strip().lower())
    except ValueError:
        raise InvalidPattern(name, [p.value for p in CATALOG_ORDER]) from None
    return _CATALOG[key]
