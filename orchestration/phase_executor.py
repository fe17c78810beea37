"""Phase executor – runs the units of one phase against the debate engine.

Parallel phases dispatch every unit at once (bounded by ``parallel_limit``)
and return when all of them are terminal.  Sequential phases run units in
dependency order; a unit whose dependency failed is marked failed without
being attempted.  Transient engine failures and unit timeouts are retried
with exponential backoff.
"""

from __future__ import annotations

import asyncio
import dataclasses
import heapq
import logging
import time
from collections.abc import Sequence

from agents.base import UnitResult, UnitStatus, VisibleContext
from agents.engine import DebateEngine
from orchestration.context import CancellationToken, ContextView, ResultSink
from orchestration.errors import UnitPermanentFailure, UnitTransientFailure
from orchestration.events import ProgressChannel
from orchestration.types import DebateUnit, Phase, PhaseResult, PhaseStatus

logger = logging.getLogger(__name__)


class PhaseExecutor:
    """Executes one ``Phase`` and folds its unit results into a ``PhaseResult``.

    Parameters
    ----------
    engine : DebateEngine
        Backend every unit is delegated to.
    max_retries : int
        Extra attempts after a transient failure or timeout.
    backoff_seconds : float
        First retry delay; doubles on every further retry.
    parallel_limit : int
        Upper bound on concurrently running units of a parallel phase.
    unit_timeout : float | None
        Per-attempt timeout in seconds.
    channel : ProgressChannel | None
        Where ``unit_failed`` notifications go.
    """

    def __init__(
        self,
        engine: DebateEngine,
        *,
        max_retries: int = 2,
        backoff_seconds: float = 1.0,
        parallel_limit: int = 5,
        unit_timeout: float | None = None,
        channel: ProgressChannel | None = None,
    ) -> None:
        self.engine = engine
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.parallel_limit = parallel_limit
        self.unit_timeout = unit_timeout
        self.channel = channel

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(
        self,
        phase: Phase,
        view: ContextView,
        sink: ResultSink,
        token: CancellationToken,
    ) -> PhaseResult:
        started = time.monotonic()
        local: dict[str, UnitResult] = {}

        if phase.parallel:
            await self._run_parallel(phase, view, sink, token, local)
        else:
            await self._run_sequential(phase, view, sink, token, local)

        results = tuple(local[u.id] for u in phase.units)
        status = self._status(results)
        logger.info(
            "Phase %s %s: %d/%d units completed",
            phase.id,
            status.value,
            sum(1 for r in results if r.ok),
            len(results),
        )
        return PhaseResult(
            phase_id=phase.id,
            unit_results=results,
            status=status,
            duration_seconds=round(time.monotonic() - started, 3),
        )

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    async def _run_parallel(
        self,
        phase: Phase,
        view: ContextView,
        sink: ResultSink,
        token: CancellationToken,
        local: dict[str, UnitResult],
    ) -> None:
        semaphore = asyncio.Semaphore(self.parallel_limit)

        tasks = [
            asyncio.ensure_future(self._execute(phase, u, view, sink, token, local, semaphore))
            for u in phase.units
        ]
        watcher = None
        if self.engine.supports_cancellation:
            watcher = asyncio.ensure_future(self._cancel_on(token, tasks))
        try:
            await asyncio.gather(*tasks)
        finally:
            if watcher is not None:
                watcher.cancel()

    async def _run_sequential(
        self,
        phase: Phase,
        view: ContextView,
        sink: ResultSink,
        token: CancellationToken,
        local: dict[str, UnitResult],
    ) -> None:
        for unit in dependency_order(phase.units):
            await self._execute(phase, unit, view, sink, token, local)

    @staticmethod
    async def _cancel_on(token: CancellationToken, tasks: Sequence[asyncio.Future[None]]) -> None:
        await token.wait()
        for task in tasks:
            if not task.done():
                task.cancel()

    # ------------------------------------------------------------------
    # One unit
    # ------------------------------------------------------------------

    async def _execute(
        self,
        phase: Phase,
        unit: DebateUnit,
        view: ContextView,
        sink: ResultSink,
        token: CancellationToken,
        local: dict[str, UnitResult],
        semaphore: asyncio.Semaphore | None = None,
    ) -> None:
        try:
            if semaphore is None:
                result = await self._attempt(unit, view, token, local)
            else:
                async with semaphore:
                    result = await self._attempt(unit, view, token, local)
        except asyncio.CancelledError:
            if not token.cancelled:
                raise
            result = _cancelled(unit, token)

        local[unit.id] = result
        await sink.append(result)
        if result.status == UnitStatus.FAILED:
            logger.warning("Unit %s failed: %s", unit.id, result.error)
            if self.channel is not None:
                self.channel.emit("unit_failed", phase.id, result)

    async def _attempt(
        self,
        unit: DebateUnit,
        view: ContextView,
        token: CancellationToken,
        local: dict[str, UnitResult],
    ) -> UnitResult:
        if token.cancelled:
            return _cancelled(unit, token)

        for dep in unit.depends_on:
            dep_result = local.get(dep) or view.unit_result(dep)
            if dep_result is not None and not dep_result.ok:
                return _failed(unit, f"dependency {dep!r} did not complete", attempts=0)

        context = self._visible_context(unit, view, local)
        if unit.bracket and len(context.candidates) < 2:
            return _failed(unit, f"match needs two contenders, got {list(context.candidates)}", attempts=0)

        spent = 0.0
        last_error = ""
        try:
            for attempt in range(1, self.max_retries + 2):
                try:
                    call = self.engine.run_unit(unit.topic, unit.participant_roles, context)
                    if self.unit_timeout is not None:
                        result = await asyncio.wait_for(call, self.unit_timeout)
                    else:
                        result = await call
                except (UnitTransientFailure, asyncio.TimeoutError) as exc:
                    spent += self._billed(unit, exc)
                    last_error = str(exc) or f"timed out after {self.unit_timeout}s"
                    if attempt > self.max_retries:
                        break
                    delay = self.backoff_seconds * 2 ** (attempt - 1)
                    logger.warning(
                        "Unit %s attempt %d/%d failed (%s), retrying in %.1fs",
                        unit.id,
                        attempt,
                        self.max_retries + 1,
                        last_error,
                        delay,
                    )
                    await asyncio.sleep(delay)
                    if token.cancelled:
                        return _cancelled(unit, token, cost=spent)
                except UnitPermanentFailure as exc:
                    spent += self._billed(unit, exc)
                    return _failed(unit, str(exc), attempts=attempt, cost=spent)
                except Exception as exc:
                    logger.exception("Engine raised unexpectedly for unit %s", unit.id)
                    spent += self._billed(unit, exc)
                    return _failed(unit, f"{type(exc).__name__}: {exc}", attempts=attempt, cost=spent)
                else:
                    logger.debug("Unit %s done after %d attempt(s)", unit.id, attempt)
                    return dataclasses.replace(
                        result, unit_id=unit.id, attempts=attempt, cost=result.cost + spent
                    )
        except asyncio.CancelledError:
            if not token.cancelled:
                raise
            spent += self.engine.interrupted_cost(unit.id)
            return _cancelled(unit, token, cost=spent)

        if spent:
            logger.warning("Unit %s failed after spending $%.4f on %d attempts",
                           unit.id, spent, self.max_retries + 1)
        return _failed(unit, last_error, attempts=self.max_retries + 1, cost=spent)

    def _billed(self, unit: DebateUnit, exc: BaseException) -> float:
        """Spend a failed attempt already incurred."""
        return getattr(exc, "incurred_cost", 0.0) + self.engine.interrupted_cost(unit.id)

    @staticmethod
    def _visible_context(
        unit: DebateUnit,
        view: ContextView,
        local: dict[str, UnitResult],
    ) -> VisibleContext:
        prior: list[str] = list(view.conclusions()) if unit.inherit_context else []
        candidates = list(unit.candidates)
        for dep in unit.depends_on:
            dep_result = local.get(dep) or view.unit_result(dep)
            if dep_result is None:
                continue
            if unit.bracket:
                if dep_result.position and dep_result.position not in candidates:
                    candidates.append(dep_result.position)
            elif unit.inherit_context and dep in local:
                prior.append(f"[{dep}] {dep_result.position or dep_result.stance.value}")
        return VisibleContext(
            question=view.question.text,
            unit_id=unit.id,
            question_context=view.question.context,
            prior_conclusions=tuple(prior),
            candidates=tuple(candidates),
        )

    @staticmethod
    def _status(results: Sequence[UnitResult]) -> PhaseStatus:
        if any(r.status == UnitStatus.CANCELLED for r in results):
            return PhaseStatus.CANCELLED
        completed = sum(1 for r in results if r.ok)
        if completed == 0:
            return PhaseStatus.FAILED
        if completed < len(results):
            return PhaseStatus.DEGRADED
        return PhaseStatus.COMPLETED


def dependency_order(units: Sequence[DebateUnit]) -> list[DebateUnit]:
    """Topological order of ``units``; ready units run by (priority, position)."""
    index = {u.id: i for i, u in enumerate(units)}
    pending = {
        u.id: {d for d in u.depends_on if d in index} for u in units
    }
    dependants: dict[str, list[str]] = {u.id: [] for u in units}
    for uid, deps in pending.items():
        for dep in deps:
            dependants[dep].append(uid)

    ready = [(units[i].priority, i) for uid, i in index.items() if not pending[uid]]
    heapq.heapify(ready)
    ordered: list[DebateUnit] = []
    while ready:
        _, i = heapq.heappop(ready)
        unit = units[i]
        ordered.append(unit)
        for child in dependants[unit.id]:
            pending[child].discard(unit.id)
            if not pending[child]:
                heapq.heappush(ready, (units[index[child]].priority, index[child]))

    if len(ordered) != len(units):
        stuck = [u.id for u in units if u not in ordered]
        raise ValueError(f"Units {stuck} are part of a dependency cycle")
    return ordered


def _failed(unit: DebateUnit, error: str, *, attempts: int, cost: float = 0.0) -> UnitResult:
    return UnitResult(
        unit_id=unit.id, status=UnitStatus.FAILED, attempts=attempts, error=error, cost=cost
    )


def _cancelled(unit: DebateUnit, token: CancellationToken, *, cost: float = 0.0) -> UnitResult:
    return UnitResult(
        unit_id=unit.id,
        status=UnitStatus.CANCELLED,
        attempts=0,
        error=token.reason or "cancelled",
        cost=cost,
    )
