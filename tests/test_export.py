"""Tests for the structure exports (Mermaid, ASCII, JSON graph)."""

from __future__ import annotations

import pytest

from orchestration.export import to_ascii_tree, to_mermaid, to_visualization_json
from orchestration.strategy import StrategySelector
from orchestration.types import DebateStructure

PRICING = "¿Qué precio deberíamos fijar: $29, $49, $79 o $99?"


@pytest.fixture
def tournament() -> DebateStructure:
    return StrategySelector().compile("tournament", PRICING)


@pytest.fixture
def conditional() -> DebateStructure:
    return StrategySelector().compile("conditional", "What options could we explore?")


class TestMermaid:
    def test_layout(self, tournament: DebateStructure):
        chart = to_mermaid(tournament)
        lines = chart.splitlines()
        assert lines[0] == "flowchart TD"
        assert 'Pattern: tournament' in chart
        assert '  subgraph phase_round1["phase-round1 (parallel, debate)"]' in lines
        assert "  PATTERN --> r1_m1" in lines
        assert "  r1_m1 --> r2_m1" in lines
        assert "  r2_m1 --> CONCLUSION[Final conclusion]" in lines

    def test_condition_in_phase_label(self, conditional: DebateStructure):
        chart = to_mermaid(conditional)
        assert "if phase-explore.consensus_level < 0.7" in chart

    def test_quotes_are_escaped(self):
        structure = StrategySelector().compile("simple", 'Should we say "yes"?')
        assert '"yes"' not in to_mermaid(structure)


class TestAsciiTree:
    def test_tree(self, tournament: DebateStructure):
        tree = to_ascii_tree(tournament)
        lines = tree.splitlines()
        assert lines[0] == "Pattern: tournament"
        assert "├── phase-round1 (parallel, debate) [⇉]" in lines
        assert "└── phase-round2 (parallel, debate) [⇉]" in lines
        assert "after: r1-m1, r1-m2" in tree
        assert lines[-1].startswith(f"Total: ${tournament.estimated_cost:.2f}")
        assert lines[-1].endswith("2 phases, 3 units")

    def test_long_topics_are_truncated(self):
        structure = StrategySelector().compile("simple", "word " * 40)
        unit_line = next(line for line in to_ascii_tree(structure).splitlines() if "unit-1:" in line)
        assert unit_line.endswith("…")


class TestVisualizationJson:
    def test_nodes_and_edges(self, tournament: DebateStructure):
        data = to_visualization_json(tournament)
        assert data["metadata"]["pattern"] == "tournament"
        assert data["metadata"]["question"] == PRICING
        types = [n["type"] for n in data["nodes"]]
        assert types[0] == "start" and types[-1] == "end"
        assert types.count("phase") == 2
        assert types.count("unit") == 3
        depends = {(e["source"], e["target"]) for e in data["edges"] if e.get("label") == "depends"}
        assert depends == {("r1-m1", "r2-m1"), ("r1-m2", "r2-m1")}
        assert {"source": "r2-m1", "target": "end"} in data["edges"]

    def test_unit_data(self, tournament: DebateStructure):
        unit = next(n for n in to_visualization_json(tournament)["nodes"] if n["id"] == "r1-m1")
        assert unit["data"]["roles"] == ["analyst", "critic", "judge"]
        assert unit["data"]["cost"] == pytest.approx(0.12)
