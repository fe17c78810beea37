"""Caller configuration, cost model and YAML loading."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field

from orchestration.context import CancellationToken

logger = logging.getLogger(__name__)


class OrchestrationConfig(BaseModel):
    """Entry surface exposed to callers."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    # Pattern selection
    pattern_mode: Literal["auto", "manual"] = "auto"
    preferred_pattern: str | None = None

    # Cost / time controls
    max_total_cost: float = Field(default=5.0, gt=0)
    warn_at_cost: float = Field(default=2.0, ge=0)
    max_total_time_minutes: float | None = Field(default=None, gt=0)
    require_approval: bool = True
    allow_overrun: bool = False

    # Execution
    max_retries: int = Field(default=2, ge=0, le=10)
    retry_backoff_seconds: float = Field(default=1.0, ge=0)
    parallel_limit: int = Field(default=5, ge=1)
    unit_timeout_seconds: float | None = Field(default=None, gt=0)

    # Synthesis / quality
    consensus_threshold: float = Field(default=0.6, ge=0, le=1)
    min_quality_threshold: float = Field(default=0.7, ge=0, le=1)
    max_iterations: int = Field(default=3, ge=1, le=10)

    cancellation_token: CancellationToken | None = Field(default=None, exclude=True)

    @property
    def overrun_authorized(self) -> bool:
        """Whether a phase may start even though it breaks the cost ceiling."""
        return not self.require_approval and self.allow_overrun


@dataclass(frozen=True)
class CostModel:
    """Fixed per-unit / per-role estimation constants."""

    unit_base_cost: float = 0.03
    role_cost: float = 0.03
    unit_base_minutes: float = 0.4
    role_minutes: float = 0.4

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> CostModel:
        known = {f.name for f in fields(cls)}
        return cls(**{k: float(v) for k, v in (data or {}).items() if k in known})


def load_config(path: str | Path) -> dict[str, Any]:
    """Load and return the raw YAML config (empty dict when missing)."""
    p = Path(path)
    if not p.exists():
        logger.warning("Config not found: %s. Using defaults.", p)
        return {}
    with open(p, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def build_config(raw: dict[str, Any], **overrides: Any) -> OrchestrationConfig:
    """Build an ``OrchestrationConfig`` from the ``orchestration:`` section."""
    section = dict(raw.get("orchestration") or {})
    section.update({k: v for k, v in overrides.items() if v is not None})
    return OrchestrationConfig(**section)
