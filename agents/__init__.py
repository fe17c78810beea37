"""Debate-engine boundary – roles, unit results, engines and LLM providers."""

from agents.base import (
    PERSONAS,
    Argument,
    Role,
    Stance,
    UnitResult,
    UnitStatus,
    VisibleContext,
)
from agents.engine import DebateEngine, LLMDebateEngine
from agents.errors import EngineError, UnitPermanentFailure, UnitTransientFailure
from agents.llm_provider import (
    LLMProvider,
    OpenAIProvider,
    AnthropicProvider,
    CohereProvider,
    OpenRouterProvider,
    create_provider,
)
from agents.prompts import PromptResolver, StaticPromptResolver, Tier

__all__ = [
    "PERSONAS",
    "Argument",
    "Role",
    "Stance",
    "UnitResult",
    "UnitStatus",
    "VisibleContext",
    "DebateEngine",
    "LLMDebateEngine",
    "EngineError",
    "UnitPermanentFailure",
    "UnitTransientFailure",
    "LLMProvider",
    "OpenAIProvider",
    "AnthropicProvider",
    "CohereProvider",
    "OpenRouterProvider",
    "create_provider",
    "PromptResolver",
    "StaticPromptResolver",
    "Tier",
]
