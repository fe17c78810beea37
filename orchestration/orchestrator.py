"""DebateOrchestrator – the one-stop facade over selection and execution."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from agents.engine import DebateEngine
from data.database import RunDatabase
from evaluation.validators import validate_run_config
from orchestration.config import CostModel, OrchestrationConfig
from orchestration.costs import DEFAULT_COST_MODEL
from orchestration.events import ProgressCallbacks
from orchestration.export import (
    EXPORT_FORMATS,
    to_ascii_tree,
    to_mermaid,
    to_visualization_json,
)
from orchestration.flow_executor import FlowExecutor
from orchestration.patterns import CATALOG_ORDER, DebatePattern, catalog, get_pattern
from orchestration.signals import profile_question
from orchestration.strategy import StrategyAnalysis, StrategySelector
from orchestration.types import DebateStructure, FinalConclusion, PatternType, Question

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunPreview:
    """What a run would cost before anything is spent."""

    pattern: PatternType
    phases: int
    units: int
    estimated_cost: float
    estimated_time_minutes: float
    budget: float

    @property
    def within_budget(self) -> bool:
        return self.estimated_cost <= self.budget


@dataclass(frozen=True)
class PatternComparison:
    pattern: PatternType
    name: str
    score: float | None
    phases: int
    units: int
    estimated_cost: float
    estimated_time_minutes: float
    within_budget: bool


@dataclass(frozen=True)
class DryRun:
    analysis: StrategyAnalysis
    preview: RunPreview
    tree: str


class DebateOrchestrator:
    """Analyze, preview, run and visualize deliberations.

    Parameters
    ----------
    engine : DebateEngine
        Backend that resolves individual units.
    config : OrchestrationConfig | None
        Caller configuration; defaults apply when omitted.
    callbacks : ProgressCallbacks | None
        Default progress observers for ``run``.
    db : RunDatabase | None
        Optional run store.
    cost_model : CostModel
        Estimation constants.
    """

    def __init__(
        self,
        engine: DebateEngine,
        config: OrchestrationConfig | None = None,
        *,
        callbacks: ProgressCallbacks | None = None,
        db: RunDatabase | None = None,
        cost_model: CostModel = DEFAULT_COST_MODEL,
    ) -> None:
        self.engine = engine
        self.config = config or OrchestrationConfig()
        for issue in validate_run_config(self.config).issues:
            logger.warning("Config: %s", issue)
        self.callbacks = callbacks
        self.cost_model = cost_model
        self.selector = StrategySelector(cost_model)
        self.executor = FlowExecutor(engine, cost_model=cost_model, db=db)

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def patterns(self) -> list[DebatePattern]:
        return catalog()

    def analyze(self, question: Question | str) -> StrategyAnalysis:
        return self.selector.analyze(question, self.config)

    def preview(self, question: Question | str) -> RunPreview:
        q = Question.of(question)
        return self._preview(self.analyze(q).structure, q)

    def _preview(self, structure: DebateStructure, question: Question) -> RunPreview:
        budget = self.config.max_total_cost
        if question.constraints.max_cost is not None:
            budget = min(budget, question.constraints.max_cost)
        return RunPreview(
            pattern=structure.pattern,
            phases=len(structure.phases),
            units=structure.unit_count,
            estimated_cost=structure.estimated_cost,
            estimated_time_minutes=structure.estimated_time_minutes,
            budget=budget,
        )

    def compare_patterns(
        self,
        question: Question | str,
        patterns: list[PatternType | str] | None = None,
    ) -> list[PatternComparison]:
        """Compile several patterns for the same question side by side."""
        q = Question.of(question)
        profile = profile_question(q.text, q.context)
        scores = {s.pattern: s.score for s in self.selector.rank(profile)}
        wanted = [get_pattern(p).pattern for p in patterns] if patterns else list(CATALOG_ORDER)

        rows = []
        for pattern in wanted:
            structure = self.selector.compile(pattern, q, self.config, profile=profile)
            preview = self._preview(structure, q)
            rows.append(
                PatternComparison(
                    pattern=pattern,
                    name=get_pattern(pattern).name,
                    score=scores.get(pattern),
                    phases=preview.phases,
                    units=preview.units,
                    estimated_cost=preview.estimated_cost,
                    estimated_time_minutes=preview.estimated_time_minutes,
                    within_budget=preview.within_budget,
                )
            )
        return rows

    def dry_run(self, question: Question | str) -> DryRun:
        """Everything ``run`` would decide, without calling the engine."""
        q = Question.of(question)
        analysis = self.analyze(q)
        return DryRun(
            analysis=analysis,
            preview=self._preview(analysis.structure, q),
            tree=to_ascii_tree(analysis.structure, self.cost_model),
        )

    def visualize(
        self,
        question: Question | str | DebateStructure,
        fmt: str = "mermaid",
    ) -> str | dict[str, Any]:
        if fmt not in EXPORT_FORMATS:
            raise ValueError(f"Unknown format {fmt!r}. Choose from {list(EXPORT_FORMATS)}")
        structure = (
            question if isinstance(question, DebateStructure) else self.analyze(question).structure
        )
        if fmt == "mermaid":
            return to_mermaid(structure)
        if fmt == "ascii":
            return to_ascii_tree(structure, self.cost_model)
        return to_visualization_json(structure, self.cost_model)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def run(
        self,
        question: Question | str,
        *,
        pattern: PatternType | str | None = None,
        callbacks: ProgressCallbacks | None = None,
    ) -> FinalConclusion:
        q = Question.of(question)
        if pattern is not None:
            structure = self.selector.compile(pattern, q, self.config)
        else:
            structure = self.analyze(q).structure
        return await self.executor.execute(
            structure,
            self.config,
            callbacks or self.callbacks,
            question=q,
        )

    async def resume(
        self,
        previous: FinalConclusion,
        question: Question | str,
        *,
        max_total_cost: float | None = None,
        allow_overrun: bool = False,
        structure: DebateStructure | None = None,
        callbacks: ProgressCallbacks | None = None,
    ) -> FinalConclusion:
        """Continue a stopped run after explicit re-authorization.

        Raise the ceiling with ``max_total_cost`` or lift it for the
        remaining phases with ``allow_overrun``.  Phases already concluded
        are reused, not paid for again.
        """
        if previous.pattern is None:
            raise ValueError("Cannot resume a run without a pattern")
        q = Question.of(question)
        update: dict[str, Any] = {}
        if max_total_cost is not None:
            update["max_total_cost"] = max_total_cost
        if allow_overrun:
            update.update(require_approval=False, allow_overrun=True)
        config = self.config.model_copy(update=update)

        structure = structure or self.selector.compile(previous.pattern, q, config)
        logger.info(
            "Resuming %s run (aborted: %s) with budget $%.2f",
            previous.pattern.value,
            previous.aborted.value if previous.aborted else "no",
            config.max_total_cost,
        )
        return await self.executor.execute(
            structure,
            config,
            callbacks or self.callbacks,
            question=q,
            resume_from=previous,
        )
