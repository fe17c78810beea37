"""Prompt and model resolution.

Given a role and a cost/quality tier, a resolver hands back the system
template and the backend (provider + model) to run it on.  The orchestration
core never inspects template content.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

from agents.base import PERSONAS, Role

logger = logging.getLogger(__name__)


class Tier(str, Enum):
    """Cost/quality tier a unit is resolved at."""

    ECONOMY = "economy"
    BALANCED = "balanced"
    PREMIUM = "premium"


@dataclass(frozen=True)
class ResolvedPrompt:
    template: str
    provider: str
    model: str
    temperature: float = 0.7
    max_tokens: int = 500


class PromptResolver(ABC):
    """Opaque ``(role, tier) -> (template, model)`` lookup."""

    @abstractmethod
    def resolve(self, role: Role, tier: Tier) -> ResolvedPrompt:
        ...


# Sampling defaults per role; critics run hotter, judges cooler.
_ROLE_SAMPLING: dict[Role, tuple[float, int]] = {
    Role.OPTIMIST: (0.7, 500),
    Role.CRITIC: (0.8, 500),
    Role.ANALYST: (0.5, 500),
    Role.SYNTHESIZER: (0.5, 400),
    Role.DEFENDER: (0.7, 500),
    Role.ATTACKER: (0.8, 500),
    Role.JUDGE: (0.4, 600),
}

_DEFAULT_TIERS: dict[Tier, tuple[str, str]] = {
    Tier.ECONOMY: ("openai", "gpt-4o-mini"),
    Tier.BALANCED: ("openai", "gpt-4o"),
    Tier.PREMIUM: ("anthropic", "claude-sonnet-4-5"),
}


class StaticPromptResolver(PromptResolver):
    """Resolver backed by the built-in personas and a tier → model table.

    Parameters
    ----------
    tiers : dict
        ``{tier: (provider, model)}``; unspecified tiers fall back to the defaults.
    templates : dict
        Optional per-role template overrides.
    """

    def __init__(
        self,
        tiers: dict[Tier, tuple[str, str]] | None = None,
        templates: dict[Role, str] | None = None,
    ) -> None:
        self.tiers = {**_DEFAULT_TIERS, **(tiers or {})}
        self.templates = {**PERSONAS, **(templates or {})}

    @classmethod
    def from_config(cls, cfg: dict[str, Any]) -> StaticPromptResolver:
        """Build from the ``tiers:`` / ``roles:`` sections of the YAML config."""
        tiers: dict[Tier, tuple[str, str]] = {}
        for name, entry in (cfg.get("tiers") or {}).items():
            tiers[Tier(name)] = (entry.get("provider", "openai"), entry["model"])
        templates: dict[Role, str] = {}
        for name, entry in (cfg.get("roles") or {}).items():
            if entry and entry.get("template"):
                templates[Role(name)] = entry["template"]
        return cls(tiers=tiers, templates=templates)

    def resolve(self, role: Role, tier: Tier) -> ResolvedPrompt:
        provider, model = self.tiers[tier]
        temperature, max_tokens = _ROLE_SAMPLING.get(role, (0.7, 500))
        return ResolvedPrompt(
            template=self.templates[role],
            provider=provider,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
        )
