"""FlowExecutor – walks a compiled DebateStructure phase by phase.

Checks cancellation, branch conditions, the time limit and the cost ceiling
before every phase, hands the phase to the PhaseExecutor, synthesizes its
result and persists it when a run store is attached.
"""

from __future__ import annotations

import dataclasses
import json
import logging

from agents.engine import DebateEngine
from data.database import RunDatabase
from data.models import EvaluationRecord, PhaseRecord, RunRecord, UnitRecord
from orchestration.config import CostModel, OrchestrationConfig
from orchestration.context import CancellationToken, ExecutionContext, ResultSink
from orchestration.costs import DEFAULT_COST_MODEL, phase_cost
from orchestration.errors import (
    CostCeilingExceeded,
    OrchestrationError,
    PhaseExecutionFailed,
    RunCancelled,
    TimeLimitExceeded,
)
from orchestration.events import ProgressCallbacks, ProgressChannel
from orchestration.phase_executor import PhaseExecutor
from orchestration.synthesis import ResultSynthesis
from orchestration.types import (
    AbortReason,
    DebateStructure,
    FinalConclusion,
    Phase,
    PhaseResult,
    PhaseStatus,
    Question,
)

logger = logging.getLogger(__name__)


class FlowExecutor:
    """Runs a structure to completion (or to a clean stop).

    Parameters
    ----------
    engine : DebateEngine
        Backend the phase executor delegates units to.
    synthesis : ResultSynthesis | None
        Phase / final synthesis; built from the config threshold when omitted.
    cost_model : CostModel
        Constants behind the per-phase projected cost.
    db : RunDatabase | None
        Optional run store; if *None* nothing is persisted.
    """

    def __init__(
        self,
        engine: DebateEngine,
        *,
        synthesis: ResultSynthesis | None = None,
        cost_model: CostModel = DEFAULT_COST_MODEL,
        db: RunDatabase | None = None,
    ) -> None:
        self.engine = engine
        self.synthesis = synthesis
        self.cost_model = cost_model
        self.db = db

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def execute(
        self,
        structure: DebateStructure,
        config: OrchestrationConfig | None = None,
        callbacks: ProgressCallbacks | None = None,
        *,
        question: Question | None = None,
        resume_from: FinalConclusion | None = None,
    ) -> FinalConclusion:
        """Execute ``structure`` and return its ``FinalConclusion``.

        Execution-time errors do not propagate: a run cut short returns a
        conclusion with ``incomplete=True`` and the error attached.  Pass the
        conclusion of a stopped run as ``resume_from`` to continue after its
        last concluded phase.
        """
        config = config or OrchestrationConfig()
        question = question or Question(text=structure.question)
        synthesis = self.synthesis or ResultSynthesis(config.consensus_threshold)
        token = config.cancellation_token or CancellationToken()
        ctx = ExecutionContext(question, token)

        channel = ProgressChannel(callbacks)
        channel.start()
        executor = PhaseExecutor(
            self.engine,
            max_retries=config.max_retries,
            backoff_seconds=config.retry_backoff_seconds,
            parallel_limit=config.parallel_limit,
            unit_timeout=config.unit_timeout_seconds,
            channel=channel,
        )

        done: set[str] = set()
        time_offset = 0.0
        if resume_from is not None:
            done = await self._restore(ctx, resume_from)
            time_offset = resume_from.time_spent_minutes

        cost_limit = _cost_limit(config, question)
        time_limit = _time_limit(config, question)
        run_id = await self._init_run(structure, question, resumed=resume_from is not None)
        aborted: AbortReason | None = None
        error: OrchestrationError | None = None
        warned = ctx.cost_spent >= config.warn_at_cost
        status = "running"

        logger.info(
            "Starting run #%d: %s, %d phases, %d units, budget $%.2f",
            run_id,
            structure.pattern.value,
            len(structure.phases),
            structure.unit_count,
            cost_limit,
        )

        try:
            for phase in structure.phases:
                if phase.id in done:
                    continue

                if token.cancelled:
                    aborted, error = AbortReason.CANCELLED, RunCancelled(token.reason)
                    break

                if phase.condition is not None:
                    source = ctx.result_for(phase.condition.source_phase)
                    if not phase.condition.evaluate(source):
                        skipped = PhaseResult(
                            phase_id=phase.id,
                            status=PhaseStatus.SKIPPED,
                            phase_conclusion=f"Skipped: {phase.condition.describe()} not met",
                        )
                        logger.info("Phase %s skipped (%s not met)", phase.id, phase.condition.describe())
                        ctx.record_phase(skipped)
                        await self._persist_phase(run_id, phase, skipped)
                        channel.emit("phase_end", phase, skipped)
                        continue

                elapsed = time_offset + ctx.elapsed_minutes
                if time_limit is not None and elapsed > time_limit:
                    aborted, error = AbortReason.TIME_LIMIT, TimeLimitExceeded(elapsed, time_limit)
                    logger.warning("Stopping before phase %s: %s", phase.id, error)
                    break

                projected = phase_cost(phase, self.cost_model)
                if ctx.cost_spent + projected > cost_limit:
                    ceiling = CostCeilingExceeded(phase.id, ctx.cost_spent, projected, cost_limit)
                    if not config.overrun_authorized:
                        aborted, error = AbortReason.COST_CEILING, ceiling
                        logger.warning("Stopping before phase %s: %s", phase.id, ceiling)
                        break
                    logger.warning("Overrun authorized: %s", ceiling)

                channel.emit("phase_start", phase)
                raw = await executor.run(phase, ctx.snapshot(), ResultSink(ctx), token)

                if token.cancelled:
                    discarded = dataclasses.replace(raw, status=PhaseStatus.CANCELLED)
                    ctx.record_phase(discarded)
                    await self._persist_phase(run_id, phase, discarded)
                    aborted, error = AbortReason.CANCELLED, RunCancelled(token.reason)
                    logger.warning("Run #%d cancelled during phase %s", run_id, phase.id)
                    break

                result = synthesis.synthesize_phase(raw)
                ctx.record_phase(result)
                await self._persist_phase(run_id, phase, result)
                channel.emit("phase_end", phase, result)

                if result.status == PhaseStatus.FAILED:
                    aborted = AbortReason.PHASE_FAILED
                    error = PhaseExecutionFailed(
                        phase.id, [u.error for u in result.unit_results if u.error]
                    )
                    logger.error("Aborting run #%d: %s", run_id, error)
                    break
                if result.status == PhaseStatus.DEGRADED:
                    logger.warning(
                        "Phase %s degraded: %d of %d units failed",
                        phase.id,
                        len(result.failed_units),
                        len(result.unit_results),
                    )

                if not warned and ctx.cost_spent >= config.warn_at_cost:
                    warned = True
                    logger.warning(
                        "Spend $%.2f reached the warning level ($%.2f of $%.2f)",
                        ctx.cost_spent,
                        config.warn_at_cost,
                        cost_limit,
                    )
                    channel.emit("cost_warning", ctx.cost_spent, cost_limit)

            final = synthesis.generate_final_conclusion(
                ctx.phase_results,
                structure.pattern,
                cost_spent=ctx.cost_spent,
                time_spent_minutes=time_offset + ctx.elapsed_minutes,
                aborted=aborted,
                error=error,
            )
            if self.db is not None:
                final = dataclasses.replace(final, run_id=run_id)
            status = "incomplete" if final.incomplete else "completed"
            channel.emit("complete", final)
        except Exception:
            status = "failed"
            logger.exception("Run #%d failed", run_id)
            raise
        finally:
            await channel.aclose()
            if self.db and status == "failed":
                await self.db.update_run_status(run_id, status)

        await self._persist_final(run_id, final, status)
        logger.info(
            "Run #%d %s: %r (confidence %.2f, $%.4f)",
            run_id,
            status,
            final.headline,
            final.confidence,
            final.cost_spent,
        )
        return final

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _restore(ctx: ExecutionContext, previous: FinalConclusion) -> set[str]:
        """Seed ``ctx`` with the reusable phases of a stopped run."""
        reusable = (PhaseStatus.COMPLETED, PhaseStatus.DEGRADED, PhaseStatus.SKIPPED)
        done: set[str] = set()
        for result in previous.phase_results:
            if result.status in reusable:
                ctx.record_phase(result)
                done.add(result.phase_id)
        await ctx.add_cost(previous.cost_spent)
        logger.info("Resuming after %d phases ($%.4f already spent)", len(done), previous.cost_spent)
        return done

    async def _init_run(self, structure: DebateStructure, question: Question, resumed: bool) -> int:
        """Create the run record in the DB (or return a dummy id)."""
        if self.db is None:
            return 0

        record = RunRecord(
            question=question.text,
            pattern=structure.pattern.value,
            status="running",
            estimated_cost=structure.estimated_cost,
            structure_json=json.dumps(dataclasses.asdict(structure), default=str),
        )
        record.metadata = {"context": question.context, "resumed": resumed}
        return await self.db.create_run(record)

    async def _persist_phase(self, run_id: int, phase: Phase, result: PhaseResult) -> None:
        if self.db is None:
            return
        await self.db.save_phase_result(
            PhaseRecord(
                run_id=run_id,
                phase_id=phase.id,
                phase_order=phase.order,
                status=result.status.value,
                conclusion=result.phase_conclusion,
                consensus_level=result.consensus_level,
                confidence=result.confidence,
                majority_position=result.majority_position,
                dissent_json=json.dumps(list(result.dissent)),
                cost=result.cost,
                duration_seconds=result.duration_seconds,
            )
        )
        if result.unit_results:
            await self.db.save_unit_results(
                [
                    UnitRecord(
                        run_id=run_id,
                        phase_id=phase.id,
                        unit_id=u.unit_id,
                        status=u.status.value,
                        position=u.position,
                        stance=u.stance.value,
                        confidence=u.confidence,
                        cost=u.cost,
                        tokens_used=u.tokens_used,
                        attempts=u.attempts,
                        error=u.error,
                        arguments_json=json.dumps(
                            [
                                {
                                    "role": a.role.value,
                                    "stance": a.stance.value,
                                    "position": a.position,
                                    "confidence": a.confidence,
                                    "content": a.content,
                                }
                                for a in u.arguments
                            ]
                        ),
                    )
                    for u in result.unit_results
                ]
            )

    async def _persist_final(self, run_id: int, final: FinalConclusion, status: str) -> None:
        if self.db is None:
            return
        await self.db.finish_run(
            run_id,
            status=status,
            cost_spent=final.cost_spent,
            confidence=final.confidence,
            headline=final.headline,
            aborted=final.aborted.value if final.aborted else None,
        )
        ran = [r for r in final.phase_results if r.status in (PhaseStatus.COMPLETED, PhaseStatus.DEGRADED)]
        for name, value in [
            ("cost_spent", final.cost_spent),
            ("confidence", final.confidence),
            ("phases_concluded", len(ran)),
            ("total_tokens", sum(u.tokens_used for r in final.phase_results for u in r.unit_results)),
            ("mean_consensus", sum(r.consensus_level for r in ran) / len(ran) if ran else 0.0),
        ]:
            await self.db.save_evaluation(
                EvaluationRecord(run_id=run_id, metric_name=name, metric_value=float(value))
            )


def _cost_limit(config: OrchestrationConfig, question: Question) -> float:
    limit = config.max_total_cost
    if question.constraints.max_cost is not None:
        limit = min(limit, question.constraints.max_cost)
    return limit


def _time_limit(config: OrchestrationConfig, question: Question) -> float | None:
    limits = [
        v for v in (config.max_total_time_minutes, question.constraints.max_time_minutes)
        if v is not None
    ]
    return min(limits) if limits else None
