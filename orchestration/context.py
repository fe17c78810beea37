"""Run state threaded through the flow executor.

``ExecutionContext`` is owned by the flow executor alone.  Units never see it:
they get a ``ContextView`` (a versioned, frozen snapshot taken before the
phase starts) and report through a ``ResultSink``.  Spend is the only value
written concurrently, so it is the only one behind a lock.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

from agents.base import UnitResult
from orchestration.types import PhaseResult, PhaseStatus, Question

logger = logging.getLogger(__name__)


class CancellationToken:
    """Run-level cancellation flag.

    ``cancel`` must be called from the event loop thread (use
    ``loop.call_soon_threadsafe(token.cancel)`` from elsewhere).
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled by caller") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()
            logger.info("Cancellation requested: %s", reason)

    async def wait(self) -> None:
        await self._event.wait()


@dataclass(frozen=True)
class ContextView:
    """Read-only snapshot of completed phases, as visible to a phase's units."""

    question: Question
    version: int = 0
    phase_results: tuple[PhaseResult, ...] = ()
    cost_spent: float = 0.0

    def conclusions(self) -> tuple[str, ...]:
        return tuple(
            f"[{r.phase_id}] {r.phase_conclusion}"
            for r in self.phase_results
            if r.phase_conclusion
        )

    def unit_result(self, unit_id: str) -> UnitResult | None:
        for phase in self.phase_results:
            for result in phase.unit_results:
                if result.unit_id == unit_id:
                    return result
        return None


class ExecutionContext:
    """Mutable accumulator for one run."""

    def __init__(
        self,
        question: Question,
        token: CancellationToken | None = None,
    ) -> None:
        self.question = question
        self.token = token or CancellationToken()
        self.phase_results: list[PhaseResult] = []
        self.cost_spent = 0.0
        self.version = 0
        self._started = time.monotonic()
        self._cost_lock = asyncio.Lock()

    @property
    def elapsed_minutes(self) -> float:
        return (time.monotonic() - self._started) / 60

    async def add_cost(self, amount: float) -> float:
        async with self._cost_lock:
            self.cost_spent += amount
            return self.cost_spent

    def record_phase(self, result: PhaseResult) -> None:
        self.phase_results.append(result)
        self.version += 1

    def result_for(self, phase_id: str) -> PhaseResult | None:
        for result in self.phase_results:
            if result.phase_id == phase_id:
                return result
        return None

    @property
    def concluded(self) -> list[PhaseResult]:
        """Phase results that feed synthesis (ran and produced something)."""
        return [
            r for r in self.phase_results
            if r.status in (PhaseStatus.COMPLETED, PhaseStatus.DEGRADED)
        ]

    def snapshot(self) -> ContextView:
        return ContextView(
            question=self.question,
            version=self.version,
            phase_results=tuple(self.concluded),
            cost_spent=self.cost_spent,
        )


@dataclass
class ResultSink:
    """Where a phase executor reports finished units; charges their spend to the run."""

    context: ExecutionContext

    async def append(self, result: UnitResult) -> None:
        if result.cost:
            await self.context.add_cost(result.cost)
