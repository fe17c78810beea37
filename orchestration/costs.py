"""Pure cost / time estimation over compiled structures.

Both estimates grow with the number of units and the number of roles per
unit.  Parallel phases take as long as their slowest unit; sequential
phases take the sum.
"""

from __future__ import annotations

from orchestration.config import CostModel
from orchestration.types import DebateStructure, DebateUnit, Phase

DEFAULT_COST_MODEL = CostModel()


def unit_cost(unit: DebateUnit, model: CostModel = DEFAULT_COST_MODEL) -> float:
    return model.unit_base_cost + model.role_cost * len(unit.participant_roles)


def unit_time(unit: DebateUnit, model: CostModel = DEFAULT_COST_MODEL) -> float:
    return model.unit_base_minutes + model.role_minutes * len(unit.participant_roles)


def phase_cost(phase: Phase, model: CostModel = DEFAULT_COST_MODEL) -> float:
    """Minimum projected spend of a phase: every unit attempted once."""
    return round(sum(unit_cost(u, model) for u in phase.units), 6)


def phase_time(phase: Phase, model: CostModel = DEFAULT_COST_MODEL) -> float:
    times = [unit_time(u, model) for u in phase.units]
    if not times:
        return 0.0
    return max(times) if phase.parallel else sum(times)


def estimate_cost(structure: DebateStructure, model: CostModel = DEFAULT_COST_MODEL) -> float:
    return round(sum(phase_cost(p, model) for p in structure.phases), 4)


def estimate_time(structure: DebateStructure, model: CostModel = DEFAULT_COST_MODEL) -> float:
    return round(sum(phase_time(p, model) for p in structure.phases), 2)
