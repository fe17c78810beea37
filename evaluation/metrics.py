"""Run quality and process metrics.

Heuristic metrics computed locally from a finished run's ``FinalConclusion``:
process counts (phases, units, retries, tokens, spend) plus a few quality
signals over the arguments the panels produced.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from orchestration.types import Argument, FinalConclusion, PhaseStatus, UnitStatus


# ---------------------------------------------------------------------------
# Data container
# ---------------------------------------------------------------------------

@dataclass
class RunMetrics:
    """Collection of quality and process metrics for a run."""

    # Quality
    evidence_strength: float = 0.0
    argument_diversity: float = 0.0
    position_agreement: float = 0.0

    # Process
    phases_by_status: dict[str, int] = field(default_factory=dict)
    units_total: int = 0
    units_completed: int = 0
    units_failed: int = 0
    retries: int = 0
    total_tokens: int = 0
    role_participation: dict[str, int] = field(default_factory=dict)

    # Outcome
    mean_consensus: float = 0.0
    final_confidence: float = 0.0
    dissent_count: int = 0
    cost_spent: float = 0.0
    cost_per_unit: float = 0.0
    estimate_ratio: float | None = None
    incomplete: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "quality": {
                "evidence_strength": round(self.evidence_strength, 3),
                "argument_diversity": round(self.argument_diversity, 3),
                "position_agreement": round(self.position_agreement, 3),
            },
            "process": {
                "phases_by_status": self.phases_by_status,
                "units_total": self.units_total,
                "units_completed": self.units_completed,
                "units_failed": self.units_failed,
                "retries": self.retries,
                "total_tokens": self.total_tokens,
                "role_participation": self.role_participation,
            },
            "outcome": {
                "mean_consensus": round(self.mean_consensus, 3),
                "final_confidence": round(self.final_confidence, 3),
                "dissent_count": self.dissent_count,
                "cost_spent": round(self.cost_spent, 4),
                "cost_per_unit": round(self.cost_per_unit, 4),
                "estimate_ratio": round(self.estimate_ratio, 3) if self.estimate_ratio is not None else None,
                "incomplete": self.incomplete,
            },
        }

    def flat(self) -> dict[str, float]:
        """Numeric metrics only, keyed for the evaluations table."""
        values = {
            "evidence_strength": self.evidence_strength,
            "argument_diversity": self.argument_diversity,
            "position_agreement": self.position_agreement,
            "units_completed": float(self.units_completed),
            "units_failed": float(self.units_failed),
            "retries": float(self.retries),
            "mean_consensus": self.mean_consensus,
            "dissent_count": float(self.dissent_count),
            "cost_per_unit": self.cost_per_unit,
        }
        if self.estimate_ratio is not None:
            values["estimate_ratio"] = self.estimate_ratio
        return values


# ---------------------------------------------------------------------------
# Individual metric functions
# ---------------------------------------------------------------------------

_EVIDENCE_KEYWORDS = {
    "study", "research", "data", "evidence", "according",
    "percent", "%", "statistic", "report", "survey",
    "example", "for instance", "specifically", "demonstrates",
    "estudio", "datos", "ejemplo", "según", "informe",
}


def evidence_strength_score(arguments: list[Argument]) -> float:
    """Heuristic estimate of evidence use across all arguments.

    Looks for numeric references and keywords signalling evidence.
    """
    if not arguments:
        return 0.0

    total = 0.0
    for arg in arguments:
        text = arg.content.lower()
        keyword_hits = sum(1 for kw in _EVIDENCE_KEYWORDS if kw in text)
        num_hits = len(re.findall(r"\b\d+\.?\d*%?", arg.content))
        total += min(1.0, keyword_hits * 0.08 + min(num_hits, 5) * 0.04)
    return min(1.0, total / len(arguments))


def argument_diversity_score(arguments: list[Argument]) -> float:
    """Unique-vocabulary ratio over all arguments (scaled so TTR 0.5 → 1.0)."""
    words = [w for arg in arguments for w in arg.content.lower().split()]
    if not words:
        return 0.0
    return min(1.0, len(set(words)) / len(words) * 2)


def position_agreement_score(positions: list[str]) -> float:
    """Share of units that back the most common position."""
    keys = [p.strip().lower() for p in positions if p.strip()]
    if not keys:
        return 0.0
    top = max(keys.count(k) for k in set(keys))
    return top / len(keys)


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------

def compute_run_metrics(
    final: FinalConclusion,
    estimated_cost: float | None = None,
) -> RunMetrics:
    """Compute the full suite of run metrics."""
    phases_by_status: dict[str, int] = {}
    for r in final.phase_results:
        phases_by_status[r.status.value] = phases_by_status.get(r.status.value, 0) + 1

    units = [u for r in final.phase_results for u in r.unit_results]
    completed = [u for u in units if u.ok]
    arguments = [a for u in completed for a in u.arguments]

    participation: dict[str, int] = {}
    for arg in arguments:
        participation[arg.role.value] = participation.get(arg.role.value, 0) + 1

    concluded = [
        r for r in final.phase_results
        if r.status in (PhaseStatus.COMPLETED, PhaseStatus.DEGRADED)
    ]

    return RunMetrics(
        evidence_strength=evidence_strength_score(arguments),
        argument_diversity=argument_diversity_score(arguments),
        position_agreement=position_agreement_score([u.position_key() for u in completed]),
        phases_by_status=phases_by_status,
        units_total=len(units),
        units_completed=len(completed),
        units_failed=sum(1 for u in units if u.status == UnitStatus.FAILED),
        retries=sum(max(0, u.attempts - 1) for u in units),
        total_tokens=sum(u.tokens_used for u in units),
        role_participation=participation,
        mean_consensus=(
            sum(r.consensus_level for r in concluded) / len(concluded) if concluded else 0.0
        ),
        final_confidence=final.confidence,
        dissent_count=len(final.dissent),
        cost_spent=final.cost_spent,
        cost_per_unit=final.cost_spent / len(units) if units else 0.0,
        estimate_ratio=(
            final.cost_spent / estimated_cost if estimated_cost else None
        ),
        incomplete=final.incomplete,
    )
