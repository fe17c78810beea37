"""Tests for orchestration.synthesis."""

from __future__ import annotations

import pytest

from agents.base import Argument, Role, Stance, UnitResult, UnitStatus
from orchestration.errors import CostCeilingExceeded
from orchestration.synthesis import ResultSynthesis
from orchestration.types import AbortReason, PatternType, PhaseResult, PhaseStatus


def _done(uid: str, position: str, confidence: float, *roles: Role) -> UnitResult:
    arguments = tuple(
        Argument(role=r, content="...", stance=Stance.SUPPORT, position=position, confidence=confidence)
        for r in roles or (Role.ANALYST,)
    )
    return UnitResult(unit_id=uid, arguments=arguments, confidence=confidence, position=position)


def _failed(uid: str) -> UnitResult:
    return UnitResult(unit_id=uid, status=UnitStatus.FAILED, attempts=3, error="timed out")


def _phase(pid: str, position: str, confidence: float, dissent: tuple[str, ...] = ()) -> PhaseResult:
    return PhaseResult(
        phase_id=pid,
        phase_conclusion=f"Majority: {position}",
        majority_position=position,
        confidence=confidence,
        consensus_level=1.0,
        dissent=dissent,
    )


@pytest.fixture
def synthesis() -> ResultSynthesis:
    return ResultSynthesis(consensus_threshold=0.6)


class TestSynthesizePhase:
    def test_majority_consensus_and_dissent(self, synthesis: ResultSynthesis):
        raw = PhaseResult(
            phase_id="p1",
            unit_results=(
                _done("u1", "Launch now", 0.8),
                _done("u2", "launch now", 0.9),
                _done("u3", "Wait for Q3", 0.7),
            ),
        )
        result = synthesis.synthesize_phase(raw)
        assert result.majority_position == "Launch now"
        assert result.consensus_level == pytest.approx(0.6667)
        assert result.confidence == pytest.approx(0.85 * 2 / 3, abs=1e-4)
        assert result.dissent == ("u3: Wait for Q3 (confidence 0.70)",)
        assert result.phase_conclusion.startswith("Majority: Launch now (2/3 units)")

    def test_failed_units_lower_consensus(self, synthesis: ResultSynthesis):
        full = synthesis.synthesize_phase(
            PhaseResult(phase_id="p", unit_results=(_done("a", "x", 0.8), _done("b", "x", 0.8)))
        )
        degraded = synthesis.synthesize_phase(
            PhaseResult(
                phase_id="p",
                status=PhaseStatus.DEGRADED,
                unit_results=(_done("a", "x", 0.8), _done("b", "x", 0.8), _failed("c")),
            )
        )
        assert full.consensus_level == 1.0
        assert degraded.consensus_level < full.consensus_level
        assert degraded.status == PhaseStatus.DEGRADED
        assert "c failed: timed out" in degraded.phase_conclusion

    def test_low_confidence_does_not_count_towards_consensus(self, synthesis: ResultSynthesis):
        result = synthesis.synthesize_phase(
            PhaseResult(phase_id="p", unit_results=(_done("a", "x", 0.9), _done("b", "x", 0.5)))
        )
        assert result.consensus_level == 0.5
        assert result.dissent == ()

    def test_tie_goes_to_more_confident_camp(self, synthesis: ResultSynthesis):
        result = synthesis.synthesize_phase(
            PhaseResult(phase_id="p", unit_results=(_done("a", "x", 0.6), _done("b", "y", 0.9)))
        )
        assert result.majority_position == "y"

    def test_no_completed_units(self, synthesis: ResultSynthesis):
        result = synthesis.synthesize_phase(
            PhaseResult(phase_id="p", status=PhaseStatus.FAILED, unit_results=(_failed("a"),))
        )
        assert result.phase_conclusion == "No unit completed"
        assert result.consensus_level == 0.0
        assert result.majority_position == ""

    def test_adversarial_sides_are_contrasted(self, synthesis: ResultSynthesis):
        result = synthesis.synthesize_phase(
            PhaseResult(
                phase_id="p",
                unit_results=(
                    _done("unit-defender", "launch", 0.6, Role.DEFENDER, Role.OPTIMIST),
                    _done("unit-attacker", "wait", 0.8, Role.ATTACKER, Role.CRITIC),
                ),
            )
        )
        assert "Defender 0.60 vs attacker 0.80" in result.phase_conclusion
        assert "the attacker's case is stronger" in result.phase_conclusion


class TestWeights:
    @pytest.mark.parametrize(
        "pattern,expected",
        [
            (PatternType.HIERARCHICAL, [1.0, 1.0, 3.0]),
            (PatternType.SEQUENTIAL, [1.0, 2.0, 3.0]),
            (PatternType.ITERATIVE, [1.0, 2.0, 3.0]),
            (PatternType.SIMPLE, [1.0, 1.0, 1.0]),
        ],
    )
    def test_weights(self, pattern, expected):
        assert ResultSynthesis.weights(3, pattern) == expected

    def test_no_phases(self):
        assert ResultSynthesis.weights(0, PatternType.SEQUENTIAL) == []


class TestFinalConclusion:
    def test_nothing_concluded(self, synthesis: ResultSynthesis):
        skipped = PhaseResult(phase_id="p", status=PhaseStatus.SKIPPED)
        final = synthesis.generate_final_conclusion([skipped], PatternType.CONDITIONAL)
        assert final.headline == "No conclusion reached"
        assert final.confidence == 0.0
        assert not final.incomplete

    def test_error_becomes_recommendation(self, synthesis: ResultSynthesis):
        error = CostCeilingExceeded("p1", 0.0, 0.5, 0.1)
        final = synthesis.generate_final_conclusion(
            [], PatternType.SIMPLE, aborted=AbortReason.COST_CEILING, error=error
        )
        assert final.recommendation == str(error)
        assert final.incomplete
        assert final.error is error

    def test_single_phase_uses_its_conclusion(self, synthesis: ResultSynthesis):
        final = synthesis.generate_final_conclusion(
            [_phase("p1", "Hire", 0.8)], PatternType.SIMPLE, cost_spent=0.1234567
        )
        assert final.headline == "Hire"
        assert final.recommendation == "Majority: Hire"
        assert final.confidence == pytest.approx(0.8)
        assert final.cost_spent == pytest.approx(0.123457)
        assert final.pattern == PatternType.SIMPLE

    def test_later_phases_outweigh_earlier_ones(self, synthesis: ResultSynthesis):
        final = synthesis.generate_final_conclusion(
            [_phase("p1", "A", 0.9), _phase("p2", "B", 0.8)], PatternType.SEQUENTIAL
        )
        assert final.headline == "B"
        assert final.confidence == pytest.approx(2 * 0.8 / 3, abs=1e-4)
        assert "[p1] favoured A" in final.dissent
        assert final.recommendation.startswith("B, carried by 1/2 phases")

    def test_hierarchical_rollup_dominates(self, synthesis: ResultSynthesis):
        phases = [_phase("s1", "A", 0.9), _phase("s2", "A", 0.9), _phase("roll", "B", 0.7)]
        final = synthesis.generate_final_conclusion(phases, PatternType.HIERARCHICAL)
        assert final.headline == "B"
        # Sub-question phases answer different things; no "favoured" dissent
        assert not any("favoured" in d for d in final.dissent)

    def test_phase_dissent_is_carried_forward(self, synthesis: ResultSynthesis):
        phases = [_phase("p1", "A", 0.8, dissent=("u3: B (confidence 0.70)",))]
        final = synthesis.generate_final_conclusion(phases, PatternType.SIMPLE)
        assert final.dissent == ("[p1] u3: B (confidence 0.70)",)

    def test_merged_patterns_list_every_unit(self, synthesis: ResultSynthesis):
        phase = synthesis.synthesize_phase(
            PhaseResult(
                phase_id="phase-parallel",
                unit_results=(
                    _done("dim-pricing", "raise prices", 0.8),
                    _done("dim-market", "enter Brazil", 0.7),
                    _done("dim-team", "raise prices", 0.9),
                ),
            )
        )
        final = synthesis.generate_final_conclusion([phase], PatternType.PARALLEL)
        assert final.headline == "raise prices"
        assert "dim-market: enter Brazil" in final.recommendation
        assert final.confidence == pytest.approx(phase.confidence)

    def test_tournament_winner_and_eliminated(self, synthesis: ResultSynthesis):
        round1 = synthesis.synthesize_phase(
            PhaseResult(
                phase_id="phase-round1",
                unit_results=(_done("r1-m1", "$29", 0.8), _done("r1-m2", "$49", 0.7)),
            )
        )
        final_match = UnitResult(
            unit_id="r2-m1",
            position="$29",
            confidence=0.75,
            arguments=(
                Argument(role=Role.ANALYST, content="", position="$29", confidence=0.8),
                Argument(role=Role.CRITIC, content="", position="$49", confidence=0.6),
                Argument(role=Role.JUDGE, content="", position="$29", confidence=0.8),
            ),
        )
        round2 = synthesis.synthesize_phase(PhaseResult(phase_id="phase-round2", unit_results=(final_match,)))

        final = synthesis.generate_final_conclusion([round1, round2], PatternType.TOURNAMENT)
        assert final.headline == "$29"
        assert final.recommendation == "$29 survives the bracket (2 round(s))"
        assert final.confidence == pytest.approx(round2.confidence)
        assert "$49 (won r1-m2, eliminated later)" in final.dissent
        assert "critic in r2-m1 preferred $49" in final.dissent

    def test_partial_result_is_labelled(self, synthesis: ResultSynthesis):
        final = synthesis.generate_final_conclusion(
            [_phase("p1", "A", 0.8)], PatternType.SEQUENTIAL, aborted=AbortReason.TIME_LIMIT
        )
        assert final.incomplete
        assert final.recommendation.endswith("(partial: run stopped on time_limit)")
