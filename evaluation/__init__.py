"""Evaluation framework – run metrics and structure validators."""

# metrics first: orchestration.strategy imports evaluation.validators while loading
from evaluation.metrics import (
    RunMetrics,
    argument_diversity_score,
    compute_run_metrics,
    evidence_strength_score,
    position_agreement_score,
)
from evaluation.validators import StructureValidator, ValidationResult, validate_run_config

__all__ = [
    "RunMetrics",
    "StructureValidator",
    "ValidationResult",
    "argument_diversity_score",
    "compute_run_metrics",
    "evidence_strength_score",
    "position_agreement_score",
    "validate_run_config",
]
