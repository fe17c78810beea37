#!/usr/bin/env python3
"""Command-line interface for the deliberation orchestrator.

Usage examples:
    python cli.py patterns
    python cli.py analyze --question "¿Deberíamos lanzar ahora o esperar?"
    python cli.py compare --question "Pricing: $29, $49, $79 or $99?" --patterns tournament,simple
    python cli.py run --question "Should we enter the EU market?" --max-cost 1.5 --yes
    python cli.py visualize --question "Should we raise prices?" --format mermaid
    python cli.py visualize --run-id 3
    python cli.py list-runs
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any

import click

from agents import LLMDebateEngine, StaticPromptResolver, Tier, UnitResult, UnitStatus
from agents.engine import DebateEngine
from data.database import RunDatabase
from data.models import EvaluationRecord, PhaseRecord
from evaluation.metrics import compute_run_metrics
from orchestration import (
    CostModel,
    DebateOrchestrator,
    FinalConclusion,
    OrchestrationConfig,
    OrchestrationError,
    PatternType,
    PhaseResult,
    PhaseStatus,
    ProgressCallbacks,
    Question,
    QuestionConstraints,
    build_config,
    load_config,
)
from orchestration.export import EXPORT_FORMATS
from viz.visualize import StructureVisualizer


# ---------------------------------------------------------------------------
# Live progress display
# ---------------------------------------------------------------------------

_STATUS_STYLES: dict[str, str] = {
    "completed": "\033[1;32m",   # bold green
    "degraded": "\033[1;33m",    # bold yellow
    "failed": "\033[1;31m",      # bold red
    "skipped": "\033[2m",        # dim
    "cancelled": "\033[1;35m",   # bold magenta
}
_RESET = "\033[0m"
_DIM = "\033[2m"


def _on_phase_start(phase) -> None:
    mode = "parallel" if phase.parallel else "sequential"
    click.echo(f"\n\033[1;34m▶ {phase.id}{_RESET}  {_DIM}({len(phase.units)} units, {mode}){_RESET}")


def _on_phase_end(phase, result: PhaseResult) -> None:
    colour = _STATUS_STYLES.get(result.status.value, "")
    click.echo(
        f"  {colour}{result.status.value.upper()}{_RESET}"
        f"  consensus {result.consensus_level:.2f}  •  ${result.cost:.4f}"
    )
    if result.phase_conclusion:
        click.echo(f"  {result.phase_conclusion}")


def _on_unit_failed(phase_id: str, result: UnitResult) -> None:
    click.echo(f"  \033[31m✗ {phase_id}/{result.unit_id}: {result.error}{_RESET}")


def _on_cost_warning(spent: float, limit: float) -> None:
    click.echo(f"  \033[33m! spend ${spent:.2f} of ${limit:.2f} budget{_RESET}")


def _progress() -> ProgressCallbacks:
    return ProgressCallbacks(
        on_phase_start=_on_phase_start,
        on_phase_end=_on_phase_end,
        on_unit_failed=_on_unit_failed,
        on_cost_warning=_on_cost_warning,
    )


def _print_conclusion(final: FinalConclusion) -> None:
    click.echo(f"\n{'=' * 60}")
    click.echo(f"  {final.headline}")
    click.echo(f"{'=' * 60}")
    if final.incomplete:
        click.echo(f"  Status     : INCOMPLETE ({final.aborted.value if final.aborted else '?'})")
        if final.error is not None:
            click.echo(f"  Reason     : {final.error}")
    click.echo(f"  Pattern    : {final.pattern.value if final.pattern else '-'}")
    click.echo(f"  Confidence : {final.confidence:.2f}")
    click.echo(f"  Cost       : ${final.cost_spent:.4f}")
    click.echo(f"  Time       : {final.time_spent_minutes:.2f} min")
    click.echo("\n  Recommendation:\n")
    for line in final.recommendation.split("\n"):
        click.echo(f"    {line}")
    if final.dissent:
        click.echo("\n  Dissent:")
        for d in final.dissent:
            click.echo(f"    - {d}")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _build_engine(cfg: dict[str, Any], tier: str | None = None) -> DebateEngine:
    """Instantiate the LLM-backed engine from the ``api:`` / ``tiers:`` / ``roles:`` sections."""
    api_cfg = cfg.get("api", {}) or {}
    timeout = api_cfg.get("timeout", 30)

    provider_kwargs: dict[str, dict[str, Any]] = {}
    for name, section in api_cfg.items():
        if not isinstance(section, dict):
            continue
        kwargs: dict[str, Any] = {"timeout": timeout}
        if section.get("api_key_env"):
            kwargs["api_key_env"] = section["api_key_env"]
        if section.get("cost_per_1k_tokens") is not None:
            kwargs["cost_per_1k_tokens"] = float(section["cost_per_1k_tokens"])
        provider_kwargs[name] = kwargs

    tier_name = tier or (cfg.get("engine", {}) or {}).get("tier", Tier.BALANCED.value)
    return LLMDebateEngine(
        StaticPromptResolver.from_config(cfg),
        tier=Tier(tier_name),
        provider_kwargs=provider_kwargs,
    )


class _NoEngine(DebateEngine):
    """Placeholder for commands that only plan and never execute units."""

    name = "none"

    async def run_unit(self, topic, roles, context) -> UnitResult:
        raise RuntimeError("This command does not execute debate units")


def _db_path(cfg: dict[str, Any]) -> str:
    return (cfg.get("database", {}) or {}).get("path", "data/runs.db")


def _question(
    text: str,
    context: str | None = None,
    max_cost: float | None = None,
    max_time: float | None = None,
    pattern: str | None = None,
) -> Question:
    return Question(
        text=text,
        context=context,
        constraints=QuestionConstraints(
            max_cost=max_cost,
            max_time_minutes=max_time,
            forced_pattern=pattern,
        ),
    )


def _orchestrator(
    cfg: dict[str, Any],
    config: OrchestrationConfig | None = None,
    engine: DebateEngine | None = None,
    db: RunDatabase | None = None,
) -> DebateOrchestrator:
    return DebateOrchestrator(
        engine if engine is not None else _build_engine(cfg),
        config or build_config(cfg),
        db=db,
        cost_model=CostModel.from_dict(cfg.get("cost_model")),
    )


def _phase_result(record: PhaseRecord, units: list[UnitResult]) -> PhaseResult:
    """Rebuild a ``PhaseResult`` from its stored row (arguments are not restored)."""
    return PhaseResult(
        phase_id=record.phase_id,
        unit_results=tuple(units),
        status=PhaseStatus(record.status),
        phase_conclusion=record.conclusion,
        consensus_level=record.consensus_level,
        confidence=record.confidence,
        majority_position=record.majority_position,
        dissent=tuple(record.dissent),
        duration_seconds=record.duration_seconds,
    )


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

@click.group()
@click.option("--config", default="config/default.yaml", help="Path to YAML config")
@click.option("--log-level", default="WARNING", help="Logging level")
@click.pass_context
def cli(ctx: click.Context, config: str, log_level: str) -> None:
    """Deliberation Orchestrator – pick a debate pattern for a decision question and run it."""
    _setup_logging(log_level)
    ctx.ensure_object(dict)
    ctx.obj["config"] = load_config(config)
    ctx.obj["config_path"] = config


# ---- patterns -------------------------------------------------------------

@cli.command()
@click.pass_context
def patterns(ctx: click.Context) -> None:
    """List the pattern catalog."""
    orch = _orchestrator(ctx.obj["config"], engine=_NoEngine())
    click.echo(f"{'Pattern':<14} {'Best for'}")
    click.echo(f"{'─' * 14} {'─' * 50}")
    for p in orch.patterns():
        click.echo(f"{p.pattern.value:<14} {p.best_for}")
        click.echo(f"{'':<14} {_DIM}{p.description}{_RESET}")


# ---- analyze --------------------------------------------------------------

@cli.command()
@click.option("--question", required=True, help="Decision question")
@click.option("--context", default=None, help="Additional context for the question")
@click.option("--pattern", default=None, help="Force a pattern instead of auto-selecting")
@click.option("--max-cost", default=None, type=float, help="Budget for this question ($)")
@click.option(
    "--format",
    "fmt",
    type=click.Choice(list(EXPORT_FORMATS)),
    default="ascii",
    help="Structure rendering",
)
@click.pass_context
def analyze(
    ctx: click.Context,
    question: str,
    context: str | None,
    pattern: str | None,
    max_cost: float | None,
    fmt: str,
) -> None:
    """Select a pattern and preview its cost without running anything."""
    cfg = ctx.obj["config"]
    orch = _orchestrator(cfg, engine=_NoEngine())
    q = _question(question, context, max_cost, pattern=pattern)
    try:
        dry = orch.dry_run(q)
    except OrchestrationError as exc:
        raise click.ClickException(str(exc)) from exc

    analysis, preview = dry.analysis, dry.preview
    click.echo(f"Pattern    : {analysis.pattern.value}{' (forced)' if analysis.forced else ''}")
    click.echo(f"Confidence : {analysis.confidence:.2f}")
    click.echo(f"Reasoning  : {analysis.reasoning}")
    active = [s for s in analysis.signals if s.detected]
    if active:
        click.echo("Signals    : " + ", ".join(f"{s.type.value} ({s.strength:.2f})" for s in active))
    if analysis.alternatives:
        click.echo(
            "Runner-up  : "
            + ", ".join(f"{a.pattern.value} {a.score:.2f}" for a in analysis.alternatives[:3])
        )
    budget_note = "within budget" if preview.within_budget else "OVER BUDGET"
    click.echo(
        f"Estimate   : ${preview.estimated_cost:.2f} / ${preview.budget:.2f} ({budget_note}), "
        f"{preview.estimated_time_minutes:.1f} min, {preview.phases} phases, {preview.units} units"
    )
    click.echo()
    if fmt == "ascii":
        click.echo(dry.tree)
    else:
        rendered = orch.visualize(analysis.structure, fmt)
        click.echo(rendered if isinstance(rendered, str) else json.dumps(rendered, indent=2))


# ---- compare --------------------------------------------------------------

@cli.command()
@click.option("--question", required=True, help="Decision question")
@click.option("--patterns", "pattern_list", default=None, help="Comma-separated pattern names (default: all)")
@click.option("--max-cost", default=None, type=float, help="Budget for this question ($)")
@click.pass_context
def compare(ctx: click.Context, question: str, pattern_list: str | None, max_cost: float | None) -> None:
    """Compile several patterns for the same question side by side."""
    cfg = ctx.obj["config"]
    orch = _orchestrator(cfg, engine=_NoEngine())
    wanted = [p.strip() for p in pattern_list.split(",")] if pattern_list else None
    try:
        rows = orch.compare_patterns(_question(question, max_cost=max_cost), wanted)
    except OrchestrationError as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo(f"{'Pattern':<14} {'Score':>5}  {'Phases':>6} {'Units':>5} {'Cost':>8} {'Time':>8}  Budget")
    click.echo(f"{'─' * 14} {'─' * 5}  {'─' * 6} {'─' * 5} {'─' * 8} {'─' * 8}  {'─' * 6}")
    for r in rows:
        score = f"{r.score:.2f}" if r.score is not None else "-"
        click.echo(
            f"{r.pattern.value:<14} {score:>5}  {r.phases:>6} {r.units:>5} "
            f"${r.estimated_cost:>7.2f} {r.estimated_time_minutes:>5.1f}min  "
            f"{'ok' if r.within_budget else 'over'}"
        )


# ---- run ------------------------------------------------------------------

@cli.command()
@click.option("--question", required=True, help="Decision question")
@click.option("--context", default=None, help="Additional context for the question")
@click.option("--pattern", default=None, help="Force a pattern instead of auto-selecting")
@click.option("--max-cost", default=None, type=float, help="Budget for this question ($)")
@click.option("--max-time", default=None, type=float, help="Time limit for this question (minutes)")
@click.option(
    "--tier",
    type=click.Choice([t.value for t in Tier]),
    default=None,
    help="Model tier (default from config)",
)
@click.option("--allow-overrun", is_flag=True, help="Let phases start past the cost ceiling")
@click.option("--yes", "-y", is_flag=True, help="Skip the cost confirmation prompt")
@click.option("--no-db", is_flag=True, help="Skip database persistence")
@click.option("--no-viz", is_flag=True, help="Skip chart and report generation")
@click.pass_context
def run(
    ctx: click.Context,
    question: str,
    context: str | None,
    pattern: str | None,
    max_cost: float | None,
    max_time: float | None,
    tier: str | None,
    allow_overrun: bool,
    yes: bool,
    no_db: bool,
    no_viz: bool,
) -> None:
    """Run a deliberation on a decision question."""
    cfg = ctx.obj["config"]
    overrides: dict[str, Any] = {}
    if allow_overrun:
        overrides.update(require_approval=False, allow_overrun=True)
    try:
        config = build_config(cfg, **overrides)
    except ValueError as exc:
        raise click.ClickException(f"Invalid orchestration config: {exc}") from exc

    q = _question(question, context, max_cost, max_time, pattern)
    engine = _build_engine(cfg, tier)

    try:
        analysis = _orchestrator(cfg, config, engine).analyze(q)
    except OrchestrationError as exc:
        raise click.ClickException(str(exc)) from exc
    structure = analysis.structure

    click.echo(f"\n\033[1m{'=' * 60}")
    click.echo(f"  QUESTION: {question}")
    click.echo(f"{'=' * 60}{_RESET}")
    click.echo(f"  Pattern  : {structure.pattern.value} ({analysis.reasoning})")
    click.echo(f"  Phases   : {len(structure.phases)}  •  Units: {structure.unit_count}")
    click.echo(f"  Estimate : ${structure.estimated_cost:.2f}  •  {structure.estimated_time_minutes:.1f} min")

    if config.require_approval and not yes:
        click.confirm("Proceed with this run?", abort=True)

    async def _run() -> None:
        db: RunDatabase | None = None
        if not no_db:
            db = RunDatabase(_db_path(cfg))
            await db.connect()

        try:
            orch = _orchestrator(cfg, config, engine, db)
            final = await orch.run(q, callbacks=_progress())
            _print_conclusion(final)

            metrics = compute_run_metrics(final, estimated_cost=structure.estimated_cost)
            if db is not None and final.run_id is not None:
                for name, value in metrics.flat().items():
                    await db.save_evaluation(
                        EvaluationRecord(run_id=final.run_id, metric_name=name, metric_value=value)
                    )

            if not no_viz:
                viz = StructureVisualizer((cfg.get("viz", {}) or {}).get("output_dir", "viz/output"))
                paths = viz.generate_all(
                    final.run_id if final.run_id is not None else "latest",
                    final,
                    metrics,
                    structure=structure,
                    question=question,
                    cost_model=orch.cost_model,
                )
                click.echo(f"\n  Outputs saved to: {viz.output_dir}/")
                for p in paths:
                    click.echo(f"    - {p.name}")
        finally:
            if db:
                await db.close()

    asyncio.run(_run())


# ---- visualize ------------------------------------------------------------

@cli.command()
@click.option("--run-id", default=None, type=int, help="Stored run to chart")
@click.option("--question", default=None, help="Question whose selected structure to render")
@click.option("--pattern", default=None, help="Force a pattern for --question")
@click.option(
    "--format",
    "fmt",
    type=click.Choice(list(EXPORT_FORMATS)),
    default="mermaid",
    help="Structure rendering for --question",
)
@click.pass_context
def visualize(
    ctx: click.Context,
    run_id: int | None,
    question: str | None,
    pattern: str | None,
    fmt: str,
) -> None:
    """Render a structure, or generate charts for a stored run."""
    cfg = ctx.obj["config"]
    if (run_id is None) == (question is None):
        raise click.UsageError("Pass exactly one of --run-id or --question.")

    if question is not None:
        orch = _orchestrator(cfg, engine=_NoEngine())
        try:
            rendered = orch.visualize(_question(question, pattern=pattern), fmt)
        except OrchestrationError as exc:
            raise click.ClickException(str(exc)) from exc
        click.echo(rendered if isinstance(rendered, str) else json.dumps(rendered, indent=2))
        return

    async def _run() -> None:
        db = RunDatabase(_db_path(cfg))
        await db.connect()

        try:
            run_rec = await db.get_run(run_id)
            if run_rec is None:
                click.echo(f"Run #{run_id} not found.", err=True)
                return

            phase_recs = await db.get_phase_results(run_id)
            if not phase_recs:
                click.echo(f"No phase results found for run #{run_id}.", err=True)
                return

            # Convert stored rows back into results for the charts
            unit_recs = await db.get_unit_results(run_id)
            phases: list[PhaseResult] = []
            for rec in phase_recs:
                units = [
                    UnitResult(
                        unit_id=u.unit_id,
                        confidence=u.confidence,
                        status=UnitStatus(u.status),
                        position=u.position,
                        cost=u.cost,
                        tokens_used=u.tokens_used,
                        attempts=u.attempts,
                        error=u.error,
                    )
                    for u in unit_recs
                    if u.phase_id == rec.phase_id
                ]
                phases.append(_phase_result(rec, units))

            final = FinalConclusion(
                headline=run_rec.headline,
                recommendation=run_rec.headline,
                confidence=run_rec.confidence,
                cost_spent=run_rec.cost_spent,
                pattern=PatternType(run_rec.pattern),
                phase_results=tuple(phases),
                incomplete=run_rec.status != "completed",
                run_id=run_id,
            )
            viz = StructureVisualizer((cfg.get("viz", {}) or {}).get("output_dir", "viz/output"))
            paths = viz.generate_all(
                run_id,
                final,
                compute_run_metrics(final, estimated_cost=run_rec.estimated_cost),
                question=run_rec.question,
            )

            click.echo(f"Generated {len(paths)} files in {viz.output_dir}/:")
            for p in paths:
                click.echo(f"  - {p.name}")
        finally:
            await db.close()

    asyncio.run(_run())


# ---- list-runs ------------------------------------------------------------

@cli.command("list-runs")
@click.option("--limit", default=20, type=int, help="Number of runs to list")
@click.pass_context
def list_runs(ctx: click.Context, limit: int) -> None:
    """List recent runs stored in the database."""
    cfg = ctx.obj["config"]

    async def _run() -> None:
        db = RunDatabase(_db_path(cfg))
        await db.connect()

        try:
            runs = await db.list_runs(limit=limit)
            if not runs:
                click.echo("No runs found.")
                return

            click.echo(f"{'ID':>5}  {'Status':<11} {'Pattern':<13} {'Cost':>8}  {'Question'}")
            click.echo(f"{'─' * 5}  {'─' * 11} {'─' * 13} {'─' * 8}  {'─' * 40}")
            for r in runs:
                click.echo(
                    f"{r.id:>5}  {r.status:<11} {r.pattern:<13} ${r.cost_spent:>7.4f}  {r.question[:40]}"
                )
        finally:
            await db.close()

    asyncio.run(_run())


# ---------------------------------------------------------------------------

if __name__ == "__main__":
    cli()
