"""Result synthesis – phase conclusions and the final conclusion.

Consensus of a phase is the share of *all* its units (failed ones included)
that completed above the confidence threshold and back the majority
position, so a degraded phase always reports lower consensus than the same
phase at full strength.  Dissent is carried forward, never dropped.
"""

from __future__ import annotations

import dataclasses
import logging
from collections import defaultdict
from collections.abc import Sequence

from agents.base import Role, UnitResult
from orchestration.errors import OrchestrationError
from orchestration.types import (
    AbortReason,
    FinalConclusion,
    PatternType,
    PhaseResult,
    PhaseStatus,
)

logger = logging.getLogger(__name__)

_RECENCY_WEIGHTED = {PatternType.SEQUENTIAL, PatternType.ITERATIVE, PatternType.CONDITIONAL}
_MERGED = {PatternType.PARALLEL, PatternType.ENSEMBLE}
# Phases that answer different sub-questions rather than competing on one
_NO_PHASE_DISSENT = _MERGED | {PatternType.HIERARCHICAL}


def _display(result: UnitResult) -> str:
    return result.position.strip() or result.stance.value


def _dedupe(items: Sequence[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(i for i in items if i))


class ResultSynthesis:
    """Folds unit results into phase conclusions and phases into a verdict.

    Parameters
    ----------
    consensus_threshold : float
        Minimum unit confidence for the unit to count towards consensus.
    """

    def __init__(self, consensus_threshold: float = 0.6) -> None:
        self.consensus_threshold = consensus_threshold

    # ------------------------------------------------------------------
    # Phase level
    # ------------------------------------------------------------------

    def synthesize_phase(self, result: PhaseResult) -> PhaseResult:
        """Fill conclusion, consensus, confidence and dissent of ``result``."""
        units = result.unit_results
        completed = [r for r in units if r.ok]
        if not completed:
            return dataclasses.replace(
                result,
                phase_conclusion="No unit completed",
                consensus_level=0.0,
                confidence=0.0,
                majority_position="",
            )

        groups: dict[str, list[UnitResult]] = defaultdict(list)
        for r in completed:
            groups[r.position_key()].append(r)
        # Ties between equally large camps go to the more confident one
        majority_key = max(
            groups,
            key=lambda k: (len(groups[k]), sum(r.confidence for r in groups[k])),
        )
        majority = groups[majority_key]
        majority_display = _display(majority[0])

        agreeing = [
            r for r in majority if r.confidence > self.consensus_threshold
        ]
        consensus = len(agreeing) / len(units)
        confidence = (
            sum(r.confidence for r in majority) / len(majority)
        ) * (len(majority) / len(completed))

        dissent = [
            f"{r.unit_id}: {_display(r)} (confidence {r.confidence:.2f})"
            for r in completed
            if r.position_key() != majority_key
        ]
        conclusion = self._summarise(units, majority_display, len(majority))

        logger.debug(
            "Phase %s: majority %r, consensus %.2f, %d dissenting",
            result.phase_id,
            majority_display,
            consensus,
            len(dissent),
        )
        return dataclasses.replace(
            result,
            phase_conclusion=conclusion,
            consensus_level=round(consensus, 4),
            confidence=round(confidence, 4),
            majority_position=majority_display,
            dissent=tuple(dissent),
        )

    @staticmethod
    def _summarise(units: Sequence[UnitResult], majority: str, backing: int) -> str:
        parts = [f"Majority: {majority} ({backing}/{len(units)} units)"]
        contrast = _adversarial_contrast(units)
        if contrast:
            parts.append(contrast)
        for r in units:
            if r.ok:
                parts.append(f"{r.unit_id} {r.stance.value} {_display(r)} ({r.confidence:.2f})")
            else:
                parts.append(f"{r.unit_id} {r.status.value}: {r.error or 'no result'}")
        return "; ".join(parts)

    # ------------------------------------------------------------------
    # Run level
    # ------------------------------------------------------------------

    def generate_final_conclusion(
        self,
        phase_results: Sequence[PhaseResult],
        pattern: PatternType,
        *,
        cost_spent: float = 0.0,
        time_spent_minutes: float = 0.0,
        aborted: AbortReason | None = None,
        error: OrchestrationError | None = None,
    ) -> FinalConclusion:
        concluded = [
            r for r in phase_results
            if r.status in (PhaseStatus.COMPLETED, PhaseStatus.DEGRADED) and r.majority_position
        ]
        common = dict(
            cost_spent=round(cost_spent, 6),
            time_spent_minutes=round(time_spent_minutes, 3),
            pattern=pattern,
            phase_results=tuple(phase_results),
            incomplete=aborted is not None,
            aborted=aborted,
            error=error,
        )
        if not concluded:
            return FinalConclusion(
                headline="No conclusion reached",
                recommendation=str(error) if error else "No phase produced a result.",
                confidence=0.0,
                dissent=_dedupe([d for r in phase_results for d in r.dissent]),
                **common,
            )

        if pattern == PatternType.TOURNAMENT:
            headline, recommendation, confidence, dissent = self._tournament(concluded)
        elif pattern in _MERGED:
            headline, recommendation, confidence, dissent = self._merged(concluded)
        else:
            headline, recommendation, confidence, dissent = self._weighted(concluded, pattern)

        if aborted is not None:
            recommendation = f"{recommendation} (partial: run stopped on {aborted.value})"

        insights = [f"[{r.phase_id}] {r.phase_conclusion}" for r in concluded][:5]
        return FinalConclusion(
            headline=headline,
            recommendation=recommendation,
            confidence=round(max(0.0, min(1.0, confidence)), 4),
            dissent=_dedupe(dissent),
            key_insights=tuple(insights),
            **common,
        )

    @staticmethod
    def weights(count: int, pattern: PatternType) -> list[float]:
        """Relative weight of each concluded phase, oldest first."""
        if count == 0:
            return []
        if pattern == PatternType.HIERARCHICAL:
            # The roll-up outweighs everything before it combined
            return [1.0] * (count - 1) + [float(count)]
        if pattern in _RECENCY_WEIGHTED:
            return [float(i) for i in range(1, count + 1)]
        return [1.0] * count

    def _weighted(
        self,
        concluded: Sequence[PhaseResult],
        pattern: PatternType,
    ) -> tuple[str, str, float, list[str]]:
        weights = self.weights(len(concluded), pattern)
        scores: dict[str, float] = defaultdict(float)
        display: dict[str, str] = {}
        for w, r in zip(weights, concluded):
            key = r.majority_position.lower()
            scores[key] += w * max(r.confidence, 1e-6)
            display.setdefault(key, r.majority_position)

        winner = max(scores, key=lambda k: scores[k])
        total = sum(weights)
        confidence = sum(
            w * r.confidence for w, r in zip(weights, concluded)
            if r.majority_position.lower() == winner
        ) / total

        dissent = [f"[{r.phase_id}] {d}" for r in concluded for d in r.dissent]
        if pattern not in _NO_PHASE_DISSENT:
            dissent.extend(
                f"[{r.phase_id}] favoured {r.majority_position}"
                for r in concluded
                if r.majority_position.lower() != winner
            )
        last = concluded[-1]
        recommendation = last.phase_conclusion if len(concluded) == 1 else (
            f"{display[winner]}, carried by {sum(1 for r in concluded if r.majority_position.lower() == winner)}"
            f"/{len(concluded)} phases; final phase: {last.phase_conclusion}"
        )
        return display[winner], recommendation, confidence, dissent

    def _merged(self, concluded: Sequence[PhaseResult]) -> tuple[str, str, float, list[str]]:
        units = [u for r in concluded for u in r.completed_units]
        counts: dict[str, int] = defaultdict(int)
        display: dict[str, str] = {}
        for u in units:
            counts[u.position_key()] += 1
            display.setdefault(u.position_key(), _display(u))
        lead = max(counts, key=lambda k: counts[k])
        recommendation = "; ".join(f"{u.unit_id}: {_display(u)}" for u in units)
        confidence = sum(r.confidence for r in concluded) / len(concluded)
        dissent = [f"[{r.phase_id}] {d}" for r in concluded for d in r.dissent]
        return display[lead], recommendation, confidence, dissent

    @staticmethod
    def _tournament(concluded: Sequence[PhaseResult]) -> tuple[str, str, float, list[str]]:
        final = concluded[-1]
        winner = final.majority_position
        dissent: list[str] = []
        # Winners of earlier matches lost somewhere later in the bracket
        for r in concluded:
            for u in r.completed_units:
                if u.position and u.position.lower() != winner.lower():
                    dissent.append(f"{u.position} (won {u.unit_id}, eliminated later)")
        for u in final.completed_units:
            for arg in u.arguments:
                if arg.position and arg.position.lower() != winner.lower():
                    dissent.append(f"{arg.role.value} in {u.unit_id} preferred {arg.position}")
        dissent.extend(f"[{r.phase_id}] {d}" for r in concluded for d in r.dissent)
        recommendation = f"{winner} survives the bracket ({len(concluded)} round(s))"
        return winner, recommendation, final.confidence, dissent


def _adversarial_contrast(units: Sequence[UnitResult]) -> str:
    sides = {}
    for r in units:
        roles = {a.role for a in r.arguments}
        if Role.DEFENDER in roles:
            sides["defender"] = r
        elif Role.ATTACKER in roles:
            sides["attacker"] = r
    if len(sides) < 2:
        return ""
    d, a = sides["defender"], sides["attacker"]
    stronger = "defender" if d.confidence >= a.confidence else "attacker"
    return (
        f"Defender {d.confidence:.2f} vs attacker {a.confidence:.2f}: "
        f"the {stronger}'s case is stronger"
    )
