"""Orchestration layer – pattern selection, compilation and execution."""

# ``types`` must load before ``strategy`` (which pulls in evaluation.validators)
from orchestration.types import (
    AbortReason,
    BranchCondition,
    DebateStructure,
    DebateUnit,
    FinalConclusion,
    PatternType,
    Phase,
    PhaseKind,
    PhaseResult,
    PhaseStatus,
    Question,
    QuestionConstraints,
    Signal,
    SignalType,
)
from orchestration.errors import (
    CostCeilingExceeded,
    InvalidPattern,
    MalformedStructure,
    OrchestrationError,
    PhaseExecutionFailed,
    RunCancelled,
    TimeLimitExceeded,
    UnitPermanentFailure,
    UnitTransientFailure,
)
from orchestration.context import CancellationToken, ContextView, ExecutionContext
from orchestration.config import CostModel, OrchestrationConfig, build_config, load_config
from orchestration.costs import estimate_cost, estimate_time
from orchestration.signals import QueryProfile, detect_signals, profile_question
from orchestration.patterns import DebatePattern, PatternScore, catalog, get_pattern
from orchestration.strategy import StrategyAnalysis, StrategySelector
from orchestration.events import ProgressCallbacks
from orchestration.phase_executor import PhaseExecutor
from orchestration.synthesis import ResultSynthesis
from orchestration.flow_executor import FlowExecutor
from orchestration.export import to_ascii_tree, to_mermaid, to_visualization_json
from orchestration.orchestrator import DebateOrchestrator, PatternComparison, RunPreview

__all__ = [
    "AbortReason",
    "BranchCondition",
    "CancellationToken",
    "ContextView",
    "CostCeilingExceeded",
    "CostModel",
    "DebateOrchestrator",
    "DebatePattern",
    "DebateStructure",
    "DebateUnit",
    "ExecutionContext",
    "FinalConclusion",
    "FlowExecutor",
    "InvalidPattern",
    "MalformedStructure",
    "OrchestrationConfig",
    "OrchestrationError",
    "PatternComparison",
    "PatternScore",
    "PatternType",
    "Phase",
    "PhaseExecutionFailed",
    "PhaseExecutor",
    "PhaseKind",
    "PhaseResult",
    "PhaseStatus",
    "ProgressCallbacks",
    "QueryProfile",
    "Question",
    "QuestionConstraints",
    "ResultSynthesis",
    "RunCancelled",
    "RunPreview",
    "Signal",
    "SignalType",
    "StrategyAnalysis",
    "StrategySelector",
    "TimeLimitExceeded",
    "UnitPermanentFailure",
    "UnitTransientFailure",
    "build_config",
    "catalog",
    "detect_signals",
    "estimate_cost",
    "estimate_time",
    "get_pattern",
    "load_config",
    "profile_question",
    "to_ascii_tree",
    "to_mermaid",
    "to_visualization_json",
]
