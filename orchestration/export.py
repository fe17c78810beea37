"""Side-effect-free projections of a DebateStructure.

Mermaid flowchart, ASCII tree and a ``{metadata, nodes, edges}`` payload
for external graph tools.  None of these touch the execution path.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

from orchestration.config import CostModel
from orchestration.costs import DEFAULT_COST_MODEL, unit_cost, unit_time
from orchestration.types import DebateStructure, Phase

EXPORT_FORMATS = ("mermaid", "ascii", "json")


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: limit - 1] + "…"


def _node_id(raw: str) -> str:
    return re.sub(r"[^A-Za-z0-9_]", "_", raw)


def _mermaid_label(text: str) -> str:
    return text.replace('"', "'")


def _unit_edges(structure: DebateStructure) -> list[tuple[str, str]]:
    """(source, target) pairs: explicit unit dependencies."""
    return [(dep, unit.id) for unit in structure.units() for dep in unit.depends_on]


def _phase_label(phase: Phase) -> str:
    mode = "parallel" if phase.parallel else "sequential"
    label = f"{phase.id} ({mode}, {phase.kind.value})"
    if phase.condition is not None:
        label += f" if {phase.condition.describe()}"
    return label


# ---------------------------------------------------------------------------
# Mermaid
# ---------------------------------------------------------------------------

def to_mermaid(structure: DebateStructure) -> str:
    lines = ["flowchart TD"]
    lines.append("  START((Start)) --> ANALYZE[Question analysis]")
    lines.append(f'  ANALYZE --> PATTERN{{{{"Pattern: {structure.pattern.value}"}}}}')

    for phase in structure.phases:
        pid = _node_id(phase.id)
        lines.append(f'  subgraph {pid}["{_mermaid_label(_phase_label(phase))}"]')
        for unit in phase.units:
            lines.append(f'    {_node_id(unit.id)}["{_mermaid_label(_truncate(unit.topic, 40))}"]')
        lines.append("  end")

    roots = [u for u in structure.units() if not u.depends_on]
    for unit in roots:
        lines.append(f"  PATTERN --> {_node_id(unit.id)}")
    for source, target in _unit_edges(structure):
        lines.append(f"  {_node_id(source)} --> {_node_id(target)}")

    if structure.phases:
        for unit in structure.phases[-1].units:
            lines.append(f"  {_node_id(unit.id)} --> CONCLUSION[Final conclusion]")
    lines.append("  CONCLUSION --> END((End))")

    lines.append("")
    lines.append("  classDef startEnd fill:#c8e6c9,stroke:#2e7d32")
    lines.append("  class START,END startEnd")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# ASCII tree
# ---------------------------------------------------------------------------

def to_ascii_tree(structure: DebateStructure, cost_model: CostModel = DEFAULT_COST_MODEL) -> str:
    lines = [f"Pattern: {structure.pattern.value}", "═" * 50, ""]

    for i, phase in enumerate(structure.phases):
        last_phase = i == len(structure.phases) - 1
        prefix, child = ("└── ", "    ") if last_phase else ("├── ", "│   ")
        arrow = "⇉" if phase.parallel else "→"
        lines.append(f"{prefix}{_phase_label(phase)} [{arrow}]")

        for j, unit in enumerate(phase.units):
            last_unit = j == len(phase.units) - 1
            unit_prefix, unit_child = ("└── ", "    ") if last_unit else ("├── ", "│   ")
            lines.append(f"{child}{unit_prefix}{unit.id}: {_truncate(unit.topic, 48)}")
            detail = (
                f"${unit_cost(unit, cost_model):.2f} | {unit_time(unit, cost_model):.1f} min"
                f" | roles: {', '.join(r.value for r in unit.participant_roles)}"
            )
            if unit.depends_on:
                detail += f" | after: {', '.join(unit.depends_on)}"
            lines.append(f"{child}{unit_child}   {detail}")
        lines.append("")

    lines.append("═" * 50)
    lines.append(
        f"Total: ${structure.estimated_cost:.2f} | {structure.estimated_time_minutes:.1f} min"
        f" | {len(structure.phases)} phases, {structure.unit_count} units"
    )
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# JSON graph data
# ---------------------------------------------------------------------------

def to_visualization_json(
    structure: DebateStructure,
    cost_model: CostModel = DEFAULT_COST_MODEL,
) -> dict[str, Any]:
    nodes: list[dict[str, Any]] = [{"id": "start", "type": "start", "label": "Start"}]
    edges: list[dict[str, Any]] = []

    for phase in structure.phases:
        nodes.append(
            {
                "id": phase.id,
                "type": "phase",
                "label": phase.id,
                "data": {
                    "order": phase.order,
                    "parallel": phase.parallel,
                    "kind": phase.kind.value,
                    "condition": phase.condition.describe() if phase.condition else None,
                },
            }
        )
        for unit in phase.units:
            nodes.append(
                {
                    "id": unit.id,
                    "type": "unit",
                    "label": _truncate(unit.topic, 50),
                    "data": {
                        "phase": phase.id,
                        "roles": [r.value for r in unit.participant_roles],
                        "cost": round(unit_cost(unit, cost_model), 4),
                        "time": round(unit_time(unit, cost_model), 2),
                    },
                }
            )
            edges.append({"source": phase.id, "target": unit.id, "label": "contains"})
            if not unit.depends_on:
                edges.append({"source": "start", "target": unit.id})

    edges.extend(
        {"source": s, "target": t, "label": "depends"} for s, t in _unit_edges(structure)
    )
    nodes.append({"id": "end", "type": "end", "label": "End"})
    if structure.phases:
        edges.extend({"source": u.id, "target": "end"} for u in structure.phases[-1].units)

    return {
        "metadata": {
            "pattern": structure.pattern.value,
            "question": structure.question,
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "estimated_cost": structure.estimated_cost,
            "estimated_time_minutes": structure.estimated_time_minutes,
        },
        "nodes": nodes,
        "edges": edges,
    }
