"""Run visualization – charts and formatted text reports.

Generates matplotlib charts for a compiled structure's estimates, per-phase
consensus, unit confidence and quality metrics, and exports a pretty-printed
text report of the final conclusion.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from pathlib import Path

import matplotlib

matplotlib.use("Agg")  # non-interactive backend
import matplotlib.pyplot as plt
import matplotlib.ticker as ticker

from evaluation.metrics import RunMetrics
from orchestration.config import CostModel
from orchestration.costs import DEFAULT_COST_MODEL, phase_cost, phase_time
from orchestration.types import DebateStructure, FinalConclusion, PhaseResult, PhaseStatus

logger = logging.getLogger(__name__)

# Colour palette per phase status
_STATUS_COLOURS: dict[str, str] = {
    PhaseStatus.COMPLETED.value: "#4CAF50",
    PhaseStatus.DEGRADED.value: "#FF9800",
    PhaseStatus.FAILED.value: "#F44336",
    PhaseStatus.SKIPPED.value: "#9E9E9E",
    PhaseStatus.CANCELLED.value: "#607D8B",
}

# Colour palette per role
_ROLE_COLOURS: dict[str, str] = {
    "optimist": "#4CAF50",
    "critic": "#F44336",
    "analyst": "#2196F3",
    "synthesizer": "#FF9800",
    "defender": "#009688",
    "attacker": "#E91E63",
    "judge": "#9C27B0",
}


class StructureVisualizer:
    """Generate charts and reports from compiled structures and run results."""

    def __init__(self, output_dir: str | Path = "viz/output") -> None:
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate_all(
        self,
        run_id: int | str,
        final: FinalConclusion,
        metrics: RunMetrics | None = None,
        structure: DebateStructure | None = None,
        question: str = "",
        cost_model: CostModel = DEFAULT_COST_MODEL,
    ) -> list[Path]:
        """Generate every chart the inputs allow plus the text report."""
        paths: list[Path] = []
        if structure is not None:
            paths.append(self.plot_phase_estimates(run_id, structure, cost_model))
        if final.phase_results:
            paths.append(self.plot_consensus(run_id, final.phase_results))
            paths.append(self.plot_unit_confidence(run_id, final.phase_results))
        if metrics is not None:
            if metrics.role_participation:
                paths.append(self.plot_participation(run_id, metrics))
            paths.append(self.plot_quality_radar(run_id, metrics))
        paths.append(self.export_report(run_id, final, metrics, question=question))
        return paths

    # ------------------------------------------------------------------
    # Charts
    # ------------------------------------------------------------------

    def plot_phase_estimates(
        self,
        run_id: int | str,
        structure: DebateStructure,
        cost_model: CostModel = DEFAULT_COST_MODEL,
    ) -> Path:
        """Bar chart of projected cost per phase with projected minutes overlaid."""
        names = [p.id for p in structure.phases]
        costs = [phase_cost(p, cost_model) for p in structure.phases]
        minutes = [phase_time(p, cost_model) for p in structure.phases]

        fig, ax = plt.subplots(figsize=(10, 4))
        ax.bar(names, costs, color="#1976D2", label="cost ($)")
        ax.set_ylabel("Projected cost ($)")
        ax.tick_params(axis="x", labelrotation=30)

        ax2 = ax.twinx()
        ax2.plot(names, minutes, "o-", color="#FF9800", label="time (min)")
        ax2.set_ylabel("Projected time (min)")

        ax.set_title(
            f"Run #{run_id} – {structure.pattern.value} "
            f"(${structure.estimated_cost:.2f}, {structure.estimated_time_minutes:.1f} min)"
        )
        plt.tight_layout()
        return self._save(fig, run_id, "estimates")

    def plot_consensus(
        self,
        run_id: int | str,
        phase_results: Sequence[PhaseResult],
        threshold: float = 0.6,
    ) -> Path:
        """Consensus level per phase, coloured by phase status."""
        names = [r.phase_id for r in phase_results]
        values = [r.consensus_level for r in phase_results]
        colours = [_STATUS_COLOURS.get(r.status.value, "#607D8B") for r in phase_results]

        fig, ax = plt.subplots(figsize=(10, 4))
        ax.bar(names, values, color=colours)
        ax.axhline(threshold, linestyle="--", color="#424242", linewidth=1, label="threshold")
        ax.set_ylim(0, 1)
        ax.set_ylabel("Consensus")
        ax.set_title(f"Run #{run_id} – Consensus per Phase")
        ax.tick_params(axis="x", labelrotation=30)
        ax.legend()
        plt.tight_layout()
        return self._save(fig, run_id, "consensus")

    def plot_unit_confidence(
        self, run_id: int | str, phase_results: Sequence[PhaseResult]
    ) -> Path:
        """Horizontal bars of per-unit confidence (failed units drawn at zero)."""
        labels: list[str] = []
        values: list[float] = []
        colours: list[str] = []
        for phase in phase_results:
            for unit in phase.unit_results:
                labels.append(f"{phase.phase_id}/{unit.unit_id}")
                values.append(unit.confidence if unit.ok else 0.0)
                colours.append("#4CAF50" if unit.ok else "#F44336")

        fig, ax = plt.subplots(figsize=(8, max(3, 0.35 * len(labels) + 1)))
        ax.barh(labels, values, color=colours)
        ax.set_xlim(0, 1)
        ax.set_xlabel("Confidence")
        ax.set_title(f"Run #{run_id} – Unit Confidence")
        ax.invert_yaxis()
        plt.tight_layout()
        return self._save(fig, run_id, "units")

    def plot_participation(self, run_id: int | str, metrics: RunMetrics) -> Path:
        """Bar chart of arguments per panel role."""
        roles = list(metrics.role_participation.keys())
        values = list(metrics.role_participation.values())
        colours = [_ROLE_COLOURS.get(r, "#607D8B") for r in roles]

        fig, ax = plt.subplots(figsize=(8, 4))
        ax.barh(roles, values, color=colours)
        ax.set_xlabel("Arguments")
        ax.set_title(f"Run #{run_id} – Role Participation")
        ax.xaxis.set_major_locator(ticker.MaxNLocator(integer=True))
        plt.tight_layout()
        return self._save(fig, run_id, "participation")

    def plot_quality_radar(self, run_id: int | str, metrics: RunMetrics) -> Path:
        """Radar (spider) chart of quality metrics."""
        categories = ["Evidence", "Diversity", "Agreement", "Consensus", "Confidence"]
        values = [
            metrics.evidence_strength,
            metrics.argument_diversity,
            metrics.position_agreement,
            metrics.mean_consensus,
            metrics.final_confidence,
        ]
        values += values[:1]  # close the polygon

        angles = [2 * math.pi * i / len(categories) for i in range(len(categories))]
        angles += angles[:1]

        fig, ax = plt.subplots(figsize=(6, 6), subplot_kw={"projection": "polar"})
        ax.plot(angles, values, "o-", linewidth=2, color="#1976D2")
        ax.fill(angles, values, alpha=0.25, color="#1976D2")
        ax.set_xticks(angles[:-1])
        ax.set_xticklabels(categories)
        ax.set_ylim(0, 1)
        ax.set_title(f"Run #{run_id} – Quality Metrics", y=1.08)
        plt.tight_layout()
        return self._save(fig, run_id, "quality")

    # ------------------------------------------------------------------
    # Text report
    # ------------------------------------------------------------------

    def export_report(
        self,
        run_id: int | str,
        final: FinalConclusion,
        metrics: RunMetrics | None = None,
        question: str = "",
    ) -> Path:
        """Export a pretty-printed text report of the final conclusion."""
        pattern = final.pattern.value if final.pattern else "-"
        lines = [
            f"{'=' * 72}",
            f"  RUN #{run_id} REPORT",
            f"  Question: {question}",
            f"  Pattern : {pattern}",
            f"{'=' * 72}",
            "",
            f"  {final.headline}",
            "",
            f"  Confidence: {final.confidence:.2f} | Cost: ${final.cost_spent:.4f}"
            f" | Time: {final.time_spent_minutes:.2f} min",
        ]
        if final.incomplete:
            reason = final.aborted.value if final.aborted else "unknown"
            lines.append(f"  INCOMPLETE – stopped on {reason}")
        lines.append("")

        lines.append("  Recommendation:")
        for paragraph in final.recommendation.split("\n"):
            lines.append(f"    {paragraph}")
        lines.append("")

        if final.key_insights:
            lines.append("  Key insights:")
            lines.extend(f"    - {i}" for i in final.key_insights)
            lines.append("")
        if final.dissent:
            lines.append("  Dissent:")
            lines.extend(f"    - {d}" for d in final.dissent)
            lines.append("")

        for r in final.phase_results:
            lines.append(f"--- {r.phase_id} [{r.status.value}] {'─' * 40}")
            lines.append(
                f"  Consensus: {r.consensus_level:.2f} | Confidence: {r.confidence:.2f}"
                f" | Cost: ${r.cost:.4f}"
            )
            if r.phase_conclusion:
                lines.append(f"  {r.phase_conclusion}")
            for unit in r.unit_results:
                detail = unit.position or unit.stance.value
                if not unit.ok:
                    detail = f"{unit.status.value}: {unit.error or ''}"
                lines.append(f"    • {unit.unit_id} ({unit.attempts}x) {detail}")
            lines.append("")

        if metrics is not None:
            lines.append("  Metrics:")
            for section, values in metrics.to_dict().items():
                lines.append(f"    [{section}]")
                for k, v in values.items():
                    lines.append(f"      {k:22s}: {v}")
            lines.append("")

        lines.append(f"{'=' * 72}")
        lines.append("  END OF REPORT")
        lines.append(f"{'=' * 72}")

        path = self.output_dir / f"run_{run_id}_report.txt"
        path.write_text("\n".join(lines), encoding="utf-8")
        logger.info("Saved %s", path)
        return path

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _save(self, fig: plt.Figure, run_id: int | str, name: str) -> Path:
        path = self.output_dir / f"run_{run_id}_{name}.png"
        fig.savefig(path, dpi=150)
        plt.close(fig)
        logger.info("Saved %s", path)
        return path
