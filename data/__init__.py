"""Data layer – SQLite run store and Pydantic models."""

from data.models import (
    EvaluationRecord,
    PhaseRecord,
    RunRecord,
    UnitRecord,
)
from data.database import RunDatabase

__all__ = [
    "EvaluationRecord",
    "PhaseRecord",
    "RunDatabase",
    "RunRecord",
    "UnitRecord",
]
