"""Error taxonomy of the orchestration core.

Compile-time errors (``InvalidPattern``, ``MalformedStructure``) are raised
synchronously and never retried.  Execution-time errors are attached to the
``FinalConclusion`` of a cut-short run; see ``FinalConclusion.raise_for_status``.
"""

from __future__ import annotations

from agents.errors import EngineError, UnitPermanentFailure, UnitTransientFailure

__all__ = [
    "CostCeilingExceeded",
    "EngineError",
    "InvalidPattern",
    "MalformedStructure",
    "OrchestrationError",
    "PhaseExecutionFailed",
    "RunCancelled",
    "TimeLimitExceeded",
    "UnitPermanentFailure",
    "UnitTransientFailure",
]


class OrchestrationError(Exception):
    """Base class for every orchestration failure."""


class InvalidPattern(OrchestrationError, ValueError):
    """Pattern name is not in the catalog."""

    def __init__(self, name: object, known: list[str] | None = None) -> None:
        self.name = name
        hint = f". Choose from {known}" if known else ""
        super().__init__(f"Unknown pattern {name!r}{hint}")


class MalformedStructure(OrchestrationError):
    """Compiled structure has a cyclic or dangling dependency."""

    def __init__(self, issues: list[str]) -> None:
        self.issues = list(issues)
        super().__init__("Malformed debate structure: " + "; ".join(self.issues))


class PhaseExecutionFailed(OrchestrationError):
    """Every unit of a phase failed."""

    def __init__(self, phase_id: str, errors: list[str] | None = None) -> None:
        self.phase_id = phase_id
        self.errors = list(errors or [])
        detail = f": {'; '.join(self.errors)}" if self.errors else ""
        super().__init__(f"All units of phase {phase_id!r} failed{detail}")


class CostCeilingExceeded(OrchestrationError):
    """Projected spend of the next phase would break the caller's budget."""

    def __init__(self, phase_id: str, spent: float, projected: float, limit: float) -> None:
        self.phase_id = phase_id
        self.spent = spent
        self.projected = projected
        self.limit = limit
        super().__init__(
            f"Phase {phase_id!r} would raise spend from ${spent:.2f} to "
            f"${spent + projected:.2f}, above the ${limit:.2f} ceiling"
        )


class TimeLimitExceeded(OrchestrationError):
    def __init__(self, elapsed_minutes: float, limit_minutes: float) -> None:
        self.elapsed_minutes = elapsed_minutes
        self.limit_minutes = limit_minutes
        super().__init__(
            f"Run took {elapsed_minutes:.1f} min, over the {limit_minutes:.1f} min limit"
        )


class RunCancelled(OrchestrationError):
    def __init__(self, reason: str = "cancelled by caller") -> None:
        self.reason = reason
        super().__init__(reason)
