"""Async SQLite run store using aiosqlite.

Handles schema creation, CRUD for runs / phase results / unit results /
evaluations, and the helper queries used by the CLI.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import aiosqlite

from data.models import EvaluationRecord, PhaseRecord, RunRecord, UnitRecord

logger = logging.getLogger(__name__)

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS runs (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    question       TEXT    NOT NULL,
    pattern        TEXT    NOT NULL,
    created_at     TEXT    NOT NULL,
    status         TEXT    NOT NULL DEFAULT 'pending',
    estimated_cost REAL    NOT NULL DEFAULT 0.0,
    cost_spent     REAL    NOT NULL DEFAULT 0.0,
    confidence     REAL    NOT NULL DEFAULT 0.0,
    headline       TEXT    NOT NULL DEFAULT '',
    aborted        TEXT,
    structure      TEXT    NOT NULL DEFAULT '{}',
    metadata       TEXT    NOT NULL DEFAULT '{}'
);

CREATE TABLE IF NOT EXISTS phase_results (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id           INTEGER NOT NULL REFERENCES runs(id),
    phase_id         TEXT    NOT NULL,
    phase_order      INTEGER NOT NULL,
    status           TEXT    NOT NULL,
    conclusion       TEXT    NOT NULL DEFAULT '',
    consensus_level  REAL    NOT NULL DEFAULT 0.0,
    confidence       REAL    NOT NULL DEFAULT 0.0,
    majority_position TEXT   NOT NULL DEFAULT '',
    dissent          TEXT    NOT NULL DEFAULT '[]',
    cost             REAL    NOT NULL DEFAULT 0.0,
    duration_seconds REAL    NOT NULL DEFAULT 0.0,
    created_at       TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS unit_results (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id      INTEGER NOT NULL REFERENCES runs(id),
    phase_id    TEXT    NOT NULL,
    unit_id     TEXT    NOT NULL,
    status      TEXT    NOT NULL,
    position    TEXT    NOT NULL DEFAULT '',
    stance      TEXT    NOT NULL DEFAULT 'neutral',
    confidence  REAL    NOT NULL DEFAULT 0.0,
    cost        REAL    NOT NULL DEFAULT 0.0,
    tokens_used INTEGER NOT NULL DEFAULT 0,
    attempts    INTEGER NOT NULL DEFAULT 1,
    error       TEXT,
    arguments   TEXT    NOT NULL DEFAULT '[]'
);

CREATE TABLE IF NOT EXISTS evaluations (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id       INTEGER NOT NULL REFERENCES runs(id),
    metric_name  TEXT    NOT NULL,
    metric_value REAL    NOT NULL,
    details      TEXT    NOT NULL DEFAULT '{}'
);
"""


class RunDatabase:
    """Async wrapper around an SQLite database for run persistence."""

    def __init__(self, db_path: str | Path = "data/runs.db") -> None:
        self.db_path = Path(db_path)
        self._conn: aiosqlite.Connection | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open connection and ensure schema exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(str(self.db_path))
        self._conn.row_factory = aiosqlite.Row
        await self._conn.executescript(_SCHEMA)
        await self._conn.commit()
        logger.info("Database connected: %s", self.db_path)

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._conn

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def create_run(self, record: RunRecord) -> int:
        """Insert a new run and return its id."""
        cur = await self.conn.execute(
            "INSERT INTO runs (question, pattern, created_at, status, estimated_cost, "
            "structure, metadata) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                record.question,
                record.pattern,
                record.created_at.isoformat(),
                record.status,
                record.estimated_cost,
                record.structure_json,
                record.metadata_json,
            ),
        )
        await self.conn.commit()
        return cur.lastrowid  # type: ignore[return-value]

    async def update_run_status(self, run_id: int, status: str) -> None:
        await self.conn.execute("UPDATE runs SET status = ? WHERE id = ?", (status, run_id))
        await self.conn.commit()

    async def finish_run(
        self,
        run_id: int,
        *,
        status: str,
        cost_spent: float,
        confidence: float,
        headline: str,
        aborted: str | None = None,
    ) -> None:
        await self.conn.execute(
            "UPDATE runs SET status = ?, cost_spent = ?, confidence = ?, headline = ?, "
            "aborted = ? WHERE id = ?",
            (status, cost_spent, confidence, headline, aborted, run_id),
        )
        await self.conn.commit()

    async def get_run(self, run_id: int) -> RunRecord | None:
        cur = await self.conn.execute("SELECT * FROM runs WHERE id = ?", (run_id,))
        row = await cur.fetchone()
        return _run_from_row(row) if row is not None else None

    async def list_runs(self, limit: int = 20) -> list[RunRecord]:
        cur = await self.conn.execute("SELECT * FROM runs ORDER BY id DESC LIMIT ?", (limit,))
        rows = await cur.fetchall()
        return [_run_from_row(r) for r in rows]

    # ------------------------------------------------------------------
    # Phase / unit results
    # ------------------------------------------------------------------

    async def save_phase_result(self, record: PhaseRecord) -> int:
        cur = await self.conn.execute(
            "INSERT INTO phase_results "
            "(run_id, phase_id, phase_order, status, conclusion, consensus_level, "
            " confidence, majority_position, dissent, cost, duration_seconds, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                record.run_id,
                record.phase_id,
                record.phase_order,
                record.status,
                record.conclusion,
                record.consensus_level,
                record.confidence,
                record.majority_position,
                record.dissent_json,
                record.cost,
                record.duration_seconds,
                record.created_at.isoformat(),
            ),
        )
        await self.conn.commit()
        return cur.lastrowid  # type: ignore[return-value]

    async def get_phase_results(self, run_id: int) -> list[PhaseRecord]:
        cur = await self.conn.execute(
            "SELECT * FROM phase_results WHERE run_id = ? ORDER BY phase_order, id",
            (run_id,),
        )
        rows = await cur.fetchall()
        return [
            PhaseRecord(
                id=r["id"],
                run_id=r["run_id"],
                phase_id=r["phase_id"],
                phase_order=r["phase_order"],
                status=r["status"],
                conclusion=r["conclusion"],
                consensus_level=r["consensus_level"],
                confidence=r["confidence"],
                majority_position=r["majority_position"],
                dissent_json=r["dissent"],
                cost=r["cost"],
                duration_seconds=r["duration_seconds"],
                created_at=r["created_at"],
            )
            for r in rows
        ]

    async def save_unit_results(self, records: list[UnitRecord]) -> None:
        await self.conn.executemany(
            "INSERT INTO unit_results "
            "(run_id, phase_id, unit_id, status, position, stance, confidence, cost, "
            " tokens_used, attempts, error, arguments) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [
                (
                    r.run_id,
                    r.phase_id,
                    r.unit_id,
                    r.status,
                    r.position,
                    r.stance,
                    r.confidence,
                    r.cost,
                    r.tokens_used,
                    r.attempts,
                    r.error,
                    r.arguments_json,
                )
                for r in records
            ],
        )
        await self.conn.commit()

    async def get_unit_results(self, run_id: int, phase_id: str | None = None) -> list[UnitRecord]:
        query = "SELECT * FROM unit_results WHERE run_id = ?"
        params: tuple[Any, ...] = (run_id,)
        if phase_id is not None:
            query += " AND phase_id = ?"
            params += (phase_id,)
        cur = await self.conn.execute(query + " ORDER BY id", params)
        rows = await cur.fetchall()
        return [
            UnitRecord(
                id=r["id"],
                run_id=r["run_id"],
                phase_id=r["phase_id"],
                unit_id=r["unit_id"],
                status=r["status"],
                position=r["position"],
                stance=r["stance"],
                confidence=r["confidence"],
                cost=r["cost"],
                tokens_used=r["tokens_used"],
                attempts=r["attempts"],
                error=r["error"],
                arguments_json=r["arguments"],
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Evaluations
    # ------------------------------------------------------------------

    async def save_evaluation(self, record: EvaluationRecord) -> int:
        cur = await self.conn.execute(
            "INSERT INTO evaluations (run_id, metric_name, metric_value, details) "
            "VALUES (?, ?, ?, ?)",
            (record.run_id, record.metric_name, record.metric_value, record.details_json),
        )
        await self.conn.commit()
        return cur.lastrowid  # type: ignore[return-value]

    async def get_evaluations(self, run_id: int) -> list[EvaluationRecord]:
        cur = await self.conn.execute(
            "SELECT * FROM evaluations WHERE run_id = ? ORDER BY id", (run_id,)
        )
        rows = await cur.fetchall()
        return [
            EvaluationRecord(
                id=r["id"],
                run_id=r["run_id"],
                metric_name=r["metric_name"],
                metric_value=r["metric_value"],
                details_json=r["details"],
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Aggregate helpers
    # ------------------------------------------------------------------

    async def get_run_stats(self, run_id: int) -> dict[str, Any]:
        """Return aggregate statistics for a given run."""
        unit_cur = await self.conn.execute(
            "SELECT COUNT(*) as cnt, SUM(tokens_used) as total_tokens, "
            "SUM(cost) as total_cost, SUM(attempts) as total_attempts "
            "FROM unit_results WHERE run_id = ?",
            (run_id,),
        )
        unit_row = await unit_cur.fetchone()

        status_cur = await self.conn.execute(
            "SELECT status, COUNT(*) as cnt FROM unit_results "
            "WHERE run_id = ? GROUP BY status",
            (run_id,),
        )
        status_rows = await status_cur.fetchall()

        return {
            "total_units": unit_row["cnt"] if unit_row else 0,
            "total_tokens": (unit_row["total_tokens"] or 0) if unit_row else 0,
            "total_cost": round(unit_row["total_cost"] or 0.0, 6) if unit_row else 0.0,
            "total_attempts": (unit_row["total_attempts"] or 0) if unit_row else 0,
            "by_status": {r["status"]: r["cnt"] for r in status_rows},
        }


def _run_from_row(row: aiosqlite.Row) -> RunRecord:
    return RunRecord(
        id=row["id"],
        question=row["question"],
        pattern=row["pattern"],
        created_at=row["created_at"],
        status=row["status"],
        estimated_cost=row["estimated_cost"],
        cost_spent=row["cost_spent"],
        confidence=row["confidence"],
        headline=row["headline"],
        aborted=row["aborted"],
        structure_json=row["structure"],
        metadata_json=row["metadata"],
    )
