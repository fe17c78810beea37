"""Tests for evaluation validators."""

from __future__ import annotations

import pytest

from agents.base import Role
from evaluation.validators import StructureValidator, validate_run_config
from orchestration.config import OrchestrationConfig
from orchestration.types import DebateStructure, DebateUnit, PatternType, Phase


@pytest.fixture
def validator():
    return StructureValidator()


def _unit(uid: str, *deps: str) -> DebateUnit:
    return DebateUnit(id=uid, topic=uid, depends_on=deps, participant_roles=(Role.ANALYST,))


def _structure(*phases: Phase) -> DebateStructure:
    return DebateStructure(pattern=PatternType.SEQUENTIAL, phases=phases)


class TestStructureValidator:
    def test_valid_chain(self, validator: StructureValidator):
        result = validator.validate(
            _structure(
                Phase(id="p1", order=1, units=(_unit("a"),)),
                Phase(id="p2", order=2, units=(_unit("b", "a"), _unit("c", "b"))),
            )
        )
        assert result.valid
        assert bool(result)
        assert len(result.issues) == 0

    def test_no_phases(self, validator: StructureValidator):
        result = validator.validate(_structure())
        assert not result.valid
        assert "no phases" in result.issues[0]

    def test_empty_phase(self, validator: StructureValidator):
        result = validator.validate(_structure(Phase(id="p1", order=1, units=())))
        assert not result.valid

    def test_unknown_dependency(self, validator: StructureValidator):
        result = validator.validate(_structure(Phase(id="p1", order=1, units=(_unit("a", "ghost"),))))
        assert not result.valid
        assert any("unknown unit 'ghost'" in issue for issue in result.issues)

    def test_dependency_on_later_phase(self, validator: StructureValidator):
        result = validator.validate(
            _structure(
                Phase(id="p1", order=1, units=(_unit("a", "b"),)),
                Phase(id="p2", order=2, units=(_unit("b"),)),
            )
        )
        assert not result.valid
        assert any("later phase" in issue for issue in result.issues)

    def test_self_dependency(self, validator: StructureValidator):
        result = validator.validate(_structure(Phase(id="p1", order=1, units=(_unit("a", "a"),))))
        assert any("depends on itself" in issue for issue in result.issues)

    def test_cycle_inside_sequential_phase(self, validator: StructureValidator):
        result = validator.validate(
            _structure(Phase(id="p1", order=1, units=(_unit("a", "b"), _unit("b", "a"))))
        )
        assert not result.valid
        assert result.issues == ["Dependency cycle: a -> b -> a"]

    def test_dependency_inside_parallel_phase(self, validator: StructureValidator):
        result = validator.validate(
            _structure(Phase(id="p1", order=1, parallel=True, units=(_unit("a"), _unit("b", "a"))))
        )
        assert any("inside parallel phase" in issue for issue in result.issues)

    def test_duplicate_unit_ids(self, validator: StructureValidator):
        result = validator.validate(
            _structure(
                Phase(id="p1", order=1, units=(_unit("a"),)),
                Phase(id="p2", order=2, units=(_unit("a"),)),
            )
        )
        assert any("Duplicate unit id 'a'" in issue for issue in result.issues)

    def test_phase_order_must_increase(self, validator: StructureValidator):
        result = validator.validate(
            _structure(
                Phase(id="p1", order=2, units=(_unit("a"),)),
                Phase(id="p2", order=1, units=(_unit("b"),)),
            )
        )
        assert not result.valid


class TestRunConfigValidation:
    def test_defaults_are_valid(self):
        assert validate_run_config(OrchestrationConfig()).valid

    def test_warning_above_ceiling(self):
        result = validate_run_config(OrchestrationConfig(max_total_cost=1.0, warn_at_cost=2.0))
        assert not result.valid
        assert "warn_at_cost" in result.issues[0]

    def test_manual_without_preference(self):
        result = validate_run_config(OrchestrationConfig(pattern_mode="manual"))
        assert any("preferred_pattern" in i for i in result.issues)

    def test_overrun_needs_approval_off(self):
        result = validate_run_config(OrchestrationConfig(allow_overrun=True))
        assert any("require_approval" in i for i in result.issues)
        assert validate_run_config(
            OrchestrationConfig(allow_overrun=True, require_approval=False)
        ).valid
