"""Pydantic models mirroring the SQLite schema."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunRecord(BaseModel):
    """Row in the ``runs`` table."""

    id: int | None = None
    question: str
    pattern: str
    created_at: datetime = Field(default_factory=_utcnow)
    status: str = "pending"  # pending | running | completed | incomplete | failed
    estimated_cost: float = 0.0
    cost_spent: float = 0.0
    confidence: float = 0.0
    headline: str = ""
    aborted: str | None = None
    structure_json: str = "{}"
    metadata_json: str = "{}"

    @property
    def structure(self) -> dict[str, Any]:
        return json.loads(self.structure_json)

    @property
    def metadata(self) -> dict[str, Any]:
        return json.loads(self.metadata_json)

    @metadata.setter
    def metadata(self, value: dict[str, Any]) -> None:
        self.metadata_json = json.dumps(value)


class PhaseRecord(BaseModel):
    """Row in the ``phase_results`` table."""

    id: int | None = None
    run_id: int
    phase_id: str
    phase_order: int
    status: str
    conclusion: str = ""
    consensus_level: float = 0.0
    confidence: float = 0.0
    majority_position: str = ""
    dissent_json: str = "[]"
    cost: float = 0.0
    duration_seconds: float = 0.0
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def dissent(self) -> list[str]:
        return json.loads(self.dissent_json)


class UnitRecord(BaseModel):
    """Row in the ``unit_results`` table."""

    id: int | None = None
    run_id: int
    phase_id: str
    unit_id: str
    status: str
    position: str = ""
    stance: str = "neutral"
    confidence: float = 0.0
    cost: float = 0.0
    tokens_used: int = 0
    attempts: int = 1
    error: str | None = None
    arguments_json: str = "[]"

    @property
    def arguments(self) -> list[dict[str, Any]]:
        return json.loads(self.arguments_json)


class EvaluationRecord(BaseModel):
    """Row in the ``evaluations`` table."""

    id: int | None = None
    run_id: int
    metric_name: str
    metric_value: float
    details_json: str = "{}"

    @property
    def details(self) -> dict[str, Any]:
        return json.loads(self.details_json)
