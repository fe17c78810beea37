"""Validators for compiled debate structures and run configurations."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from orchestration.types import DebateStructure, Phase

if TYPE_CHECKING:
    from orchestration.config import OrchestrationConfig

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Outcome of a validation check."""

    valid: bool
    issues: list[str]

    def __bool__(self) -> bool:
        return self.valid


class StructureValidator:
    """Checks the dependency graph of a compiled ``DebateStructure``.

    A structure is well formed when:
    - unit ids are unique and no phase is empty
    - phase orders are strictly increasing
    - every ``depends_on`` id names a unit in the same or an earlier phase
    - no unit depends on itself and the graph has no cycle
    - units of a parallel phase do not depend on each other
    """

    def validate(self, structure: DebateStructure) -> ValidationResult:
        issues: list[str] = []
        if not structure.phases:
            issues.append("Structure has no phases")

        phase_index: dict[str, int] = {}
        last_order: int | None = None
        for idx, phase in enumerate(structure.phases):
            if not phase.units:
                issues.append(f"Phase {phase.id!r} has no units")
            if last_order is not None and phase.order <= last_order:
                issues.append(
                    f"Phase {phase.id!r} order {phase.order} does not follow {last_order}"
                )
            last_order = phase.order
            for unit in phase.units:
                if unit.id in phase_index:
                    issues.append(f"Duplicate unit id {unit.id!r}")
                phase_index[unit.id] = idx

        for idx, phase in enumerate(structure.phases):
            issues.extend(self._check_phase(phase, idx, phase_index))

        if not issues:
            cycle = self._find_cycle(structure)
            if cycle:
                issues.append("Dependency cycle: " + " -> ".join(cycle))

        if issues:
            logger.warning(
                "Structure validation failed for %s: %s",
                structure.pattern.value,
                "; ".join(issues),
            )
        return ValidationResult(valid=len(issues) == 0, issues=issues)

    @staticmethod
    def _check_phase(phase: Phase, idx: int, phase_index: dict[str, int]) -> list[str]:
        issues: list[str] = []
        local = {u.id for u in phase.units}
        for unit in phase.units:
            for dep in unit.depends_on:
                if dep == unit.id:
                    issues.append(f"Unit {unit.id!r} depends on itself")
                elif dep not in phase_index:
                    issues.append(f"Unit {unit.id!r} depends on unknown unit {dep!r}")
                elif phase_index[dep] > idx:
                    issues.append(f"Unit {unit.id!r} depends on {dep!r} from a later phase")
                elif phase.parallel and dep in local:
                    issues.append(
                        f"Unit {unit.id!r} depends on {dep!r} inside parallel phase {phase.id!r}"
                    )
        return issues

    @staticmethod
    def _find_cycle(structure: DebateStructure) -> list[str]:
        graph = {u.id: u.depends_on for u in structure.units()}
        WHITE, GREY, BLACK = 0, 1, 2
        colour = dict.fromkeys(graph, WHITE)
        stack: list[str] = []

        def visit(node: str) -> list[str]:
            colour[node] = GREY
            stack.append(node)
            for dep in graph.get(node, ()):
                if colour.get(dep) == GREY:
                    return stack[stack.index(dep):] + [dep]
                if colour.get(dep) == WHITE:
                    found = visit(dep)
                    if found:
                        return found
            stack.pop()
            colour[node] = BLACK
            return []

        for node in graph:
            if colour[node] == WHITE:
                found = visit(node)
                if found:
                    return found
        return []


def validate_run_config(config: OrchestrationConfig) -> ValidationResult:
    """Sanity-check a configuration before spending anything."""
    issues: list[str] = []
    if config.warn_at_cost > config.max_total_cost:
        issues.append(
            f"warn_at_cost (${config.warn_at_cost:.2f}) is above "
            f"max_total_cost (${config.max_total_cost:.2f})"
        )
    if config.pattern_mode == "manual" and not config.preferred_pattern:
        issues.append("pattern_mode is manual but no preferred_pattern is set; auto is used")
    if config.allow_overrun and config.require_approval:
        issues.append("allow_overrun has no effect while require_approval is true")
    return ValidationResult(valid=len(issues) == 0, issues=issues)
