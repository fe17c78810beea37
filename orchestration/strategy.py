"""Strategy selector – picks a pattern and compiles it into a plan."""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass

from evaluation.validators import StructureValidator
from orchestration.config import CostModel, OrchestrationConfig
from orchestration.costs import DEFAULT_COST_MODEL, estimate_cost, estimate_time
from orchestration.errors import MalformedStructure
from orchestration.patterns import CATALOG_ORDER, PatternScore, catalog, get_pattern
from orchestration.signals import (
    QueryProfile,
    decompose_question,
    detect_factors,
    extract_options,
    profile_question,
)
from orchestration.types import DebateStructure, PatternType, Question, Signal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StrategyAnalysis:
    """Outcome of ``StrategySelector.analyze``."""

    pattern: PatternType
    structure: DebateStructure
    signals: tuple[Signal, ...]
    confidence: float
    reasoning: str
    alternatives: tuple[PatternScore, ...] = ()
    forced: bool = False


class StrategySelector:
    """Scores the catalog against a question and compiles the winner.

    Parameters
    ----------
    cost_model : CostModel
        Constants for the cost / time estimates attached to each structure.
    validator : StructureValidator
        Dependency-graph checks run before a structure is handed out.
    """

    def __init__(
        self,
        cost_model: CostModel = DEFAULT_COST_MODEL,
        validator: StructureValidator | None = None,
    ) -> None:
        self.cost_model = cost_model
        self.validator = validator or StructureValidator()

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def rank(self, profile: QueryProfile) -> list[PatternScore]:
        """Applicable patterns, best first; equal scores keep catalog order."""
        scores = [s for p in catalog() if (s := p.score(profile)) is not None]
        return sorted(scores, key=lambda s: (-s.score, CATALOG_ORDER.index(s.pattern)))

    def analyze(
        self,
        question: Question | str,
        config: OrchestrationConfig | None = None,
    ) -> StrategyAnalysis:
        q = Question.of(question)
        config = config or OrchestrationConfig()

        forced = q.constraints.forced_pattern
        if not forced and config.pattern_mode == "manual":
            forced = config.preferred_pattern
        if forced:
            pattern = get_pattern(forced).pattern
            structure = self.compile(pattern, q, config, profile=_extraction_profile(q))
            logger.info("Pattern forced by caller: %s", pattern.value)
            return StrategyAnalysis(
                pattern=pattern,
                structure=structure,
                signals=(),
                confidence=1.0,
                reasoning="Pattern chosen by the caller",
                forced=True,
            )

        profile = profile_question(q.text, q.context)
        ranked = self.rank(profile)
        best = ranked[0]
        logger.info(
            "Selected %s (score %.2f) from signals %s",
            best.pattern.value,
            best.score,
            [s.type.value for s in profile.active],
        )
        return StrategyAnalysis(
            pattern=best.pattern,
            structure=self.compile(best.pattern, q, config, profile=profile),
            signals=profile.signals,
            confidence=best.score,
            reasoning=best.reasoning,
            alternatives=tuple(ranked[1:]),
        )

    # ------------------------------------------------------------------
    # Compilation
    # ------------------------------------------------------------------

    def compile(
        self,
        pattern: PatternType | str,
        question: Question | str,
        config: OrchestrationConfig | None = None,
        profile: QueryProfile | None = None,
    ) -> DebateStructure:
        """Compile ``pattern`` for ``question`` and validate the result.

        Raises ``InvalidPattern`` for names outside the catalog and
        ``MalformedStructure`` when the dependency graph is broken.
        """
        entry = get_pattern(pattern)
        q = Question.of(question)
        config = config or OrchestrationConfig()
        profile = profile or profile_question(q.text, q.context)

        structure = DebateStructure(
            pattern=entry.pattern,
            phases=tuple(entry.build_phases(q, profile, config)),
            question=q.text,
        )
        self.check(structure)
        structure = dataclasses.replace(
            structure,
            estimated_cost=self.estimate_cost(structure),
            estimated_time_minutes=self.estimate_time(structure),
        )
        logger.debug(
            "Compiled %s: %d phases, %d units, ~$%.2f, ~%.1f min",
            entry.pattern.value,
            len(structure.phases),
            structure.unit_count,
            structure.estimated_cost,
            structure.estimated_time_minutes,
        )
        return structure

    def check(self, structure: DebateStructure) -> None:
        result = self.validator.validate(structure)
        if not result:
            raise MalformedStructure(result.issues)

    def estimate_cost(self, structure: DebateStructure) -> float:
        return estimate_cost(structure, self.cost_model)

    def estimate_time(self, structure: DebateStructure) -> float:
        return estimate_time(structure, self.cost_model)


def _extraction_profile(question: Question) -> QueryProfile:
    """Options / factors / sub-questions only, without signal detection."""
    background = f"{question.text}\n{question.context}" if question.context else question.text
    return QueryProfile(
        signals=(),
        options=tuple(extract_options(question.text)),
        factors=tuple(detect_factors(background)),
        sub_questions=tuple(decompose_question(question.text)),
    )
