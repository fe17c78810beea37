"""Tests for the data layer (database + models)."""

from __future__ import annotations

import json

import pytest

from data.database import RunDatabase
from data.models import EvaluationRecord, PhaseRecord, RunRecord, UnitRecord


class TestRunRecord:
    def test_metadata_property(self):
        rec = RunRecord(question="q", pattern="simple", metadata_json='{"key": "val"}')
        assert rec.metadata == {"key": "val"}

    def test_metadata_setter(self):
        rec = RunRecord(question="q", pattern="simple")
        rec.metadata = {"context": None, "resumed": True}
        assert json.loads(rec.metadata_json) == {"context": None, "resumed": True}

    def test_default_status(self):
        rec = RunRecord(question="q", pattern="simple")
        assert rec.status == "pending"
        assert rec.structure == {}


class TestPhaseAndUnitRecords:
    def test_dissent_property(self):
        rec = PhaseRecord(run_id=1, phase_id="p", phase_order=1, status="completed",
                          dissent_json='["u2: wait"]')
        assert rec.dissent == ["u2: wait"]

    def test_arguments_property(self):
        rec = UnitRecord(run_id=1, phase_id="p", unit_id="u", status="completed",
                         arguments_json='[{"role": "judge"}]')
        assert rec.arguments == [{"role": "judge"}]


class TestDatabase:
    @pytest.mark.asyncio
    async def test_create_and_get_run(self, test_db: RunDatabase):
        run_id = await test_db.create_run(
            RunRecord(question="Launch now?", pattern="adversarial", status="running",
                      estimated_cost=0.18)
        )
        assert run_id > 0

        fetched = await test_db.get_run(run_id)
        assert fetched is not None
        assert fetched.question == "Launch now?"
        assert fetched.pattern == "adversarial"
        assert fetched.status == "running"
        assert fetched.estimated_cost == pytest.approx(0.18)

    @pytest.mark.asyncio
    async def test_finish_run(self, test_db: RunDatabase):
        run_id = await test_db.create_run(RunRecord(question="q", pattern="simple"))
        await test_db.finish_run(
            run_id, status="incomplete", cost_spent=0.42, confidence=0.7,
            headline="Wait", aborted="cost_ceiling",
        )
        fetched = await test_db.get_run(run_id)
        assert fetched.status == "incomplete"
        assert fetched.cost_spent == pytest.approx(0.42)
        assert fetched.headline == "Wait"
        assert fetched.aborted == "cost_ceiling"

    @pytest.mark.asyncio
    async def test_update_run_status(self, test_db: RunDatabase):
        run_id = await test_db.create_run(RunRecord(question="q", pattern="simple"))
        await test_db.update_run_status(run_id, "failed")
        assert (await test_db.get_run(run_id)).status == "failed"

    @pytest.mark.asyncio
    async def test_list_runs(self, test_db: RunDatabase):
        for i in range(5):
            await test_db.create_run(RunRecord(question=f"Question {i}", pattern="simple"))
        runs = await test_db.list_runs(limit=3)
        assert len(runs) == 3
        # Most recent first
        assert runs[0].question == "Question 4"

    @pytest.mark.asyncio
    async def test_get_nonexistent_run(self, test_db: RunDatabase):
        assert await test_db.get_run(999) is None

    @pytest.mark.asyncio
    async def test_phase_results_ordered(self, test_db: RunDatabase):
        run_id = await test_db.create_run(RunRecord(question="q", pattern="sequential"))
        for order in (2, 1):
            await test_db.save_phase_result(
                PhaseRecord(run_id=run_id, phase_id=f"p{order}", phase_order=order,
                            status="completed", consensus_level=0.5 * order)
            )
        phases = await test_db.get_phase_results(run_id)
        assert [p.phase_id for p in phases] == ["p1", "p2"]
        assert phases[1].consensus_level == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_unit_results(self, test_db: RunDatabase):
        run_id = await test_db.create_run(RunRecord(question="q", pattern="parallel"))
        await test_db.save_unit_results(
            [
                UnitRecord(run_id=run_id, phase_id="p1", unit_id="a", status="completed",
                           position="go", tokens_used=120, cost=0.01),
                UnitRecord(run_id=run_id, phase_id="p1", unit_id="b", status="failed",
                           attempts=3, error="timed out"),
                UnitRecord(run_id=run_id, phase_id="p2", unit_id="c", status="completed",
                           tokens_used=80, cost=0.02),
            ]
        )
        assert [u.unit_id for u in await test_db.get_unit_results(run_id)] == ["a", "b", "c"]
        p1 = await test_db.get_unit_results(run_id, "p1")
        assert [u.unit_id for u in p1] == ["a", "b"]
        assert p1[1].error == "timed out"

        stats = await test_db.get_run_stats(run_id)
        assert stats["total_units"] == 3
        assert stats["total_tokens"] == 200
        assert stats["total_cost"] == pytest.approx(0.03)
        assert stats["total_attempts"] == 5
        assert stats["by_status"] == {"completed": 2, "failed": 1}

    @pytest.mark.asyncio
    async def test_save_and_get_evaluations(self, test_db: RunDatabase):
        run_id = await test_db.create_run(RunRecord(question="q", pattern="simple"))
        await test_db.save_evaluation(
            EvaluationRecord(run_id=run_id, metric_name="mean_consensus", metric_value=0.75)
        )
        await test_db.save_evaluation(
            EvaluationRecord(run_id=run_id, metric_name="retries", metric_value=2.0,
                             details_json='{"units": ["a"]}')
        )
        evals = await test_db.get_evaluations(run_id)
        assert [e.metric_name for e in evals] == ["mean_consensus", "retries"]
        assert evals[1].details == {"units": ["a"]}

    @pytest.mark.asyncio
    async def test_stats_for_empty_run(self, test_db: RunDatabase):
        run_id = await test_db.create_run(RunRecord(question="q", pattern="simple"))
        stats = await test_db.get_run_stats(run_id)
        assert stats["total_units"] == 0
        assert stats["total_tokens"] == 0
        assert stats["by_status"] == {}

    @pytest.mark.asyncio
    async def test_not_connected(self, tmp_path):
        db = RunDatabase(tmp_path / "x.db")
        with pytest.raises(RuntimeError, match="not connected"):
            await db.list_runs()
