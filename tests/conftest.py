"""Shared fixtures for the test suite.

Provides a ScriptedEngine that resolves debate units deterministically
(scripted positions, transient/permanent failures, latency) and a
MockProvider that simulates LLM responses without network calls, plus
database instances for integration tests.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

import pytest
import pytest_asyncio

from agents.base import Argument, Role, Stance, UnitResult, UnitStatus, VisibleContext
from agents.engine import DebateEngine, LLMDebateEngine
from agents.errors import UnitPermanentFailure, UnitTransientFailure
from agents.llm_provider import LLMProvider
from agents.prompts import StaticPromptResolver
from data.database import RunDatabase
from orchestration.config import OrchestrationConfig
from orchestration.synthesis import ResultSynthesis
from orchestration.types import FinalConclusion, PatternType, PhaseResult, PhaseStatus


# ---------------------------------------------------------------------------
# Scripted debate engine
# ---------------------------------------------------------------------------

@dataclass
class Script:
    """How the ScriptedEngine answers one unit."""

    position: str | Callable[[VisibleContext], str] = "proceed"
    confidence: float = 0.8
    stance: Stance = Stance.SUPPORT
    cost: float = 0.01
    tokens: int = 100
    transient_failures: int = 0  # failures before the first success
    permanent: bool = False
    crash: bool = False  # raise a non-engine exception
    delay: float = 0.0


class ScriptedEngine(DebateEngine):
    """Deterministic engine for testing – no network calls.

    Unit ids not present in ``scripts`` use ``default``.  A bracket unit
    whose scripted position is not among its candidates picks the first one.
    """

    name = "scripted"

    def __init__(
        self,
        scripts: dict[str, Script] | None = None,
        default: Script | None = None,
        *,
        supports_cancellation: bool = False,
    ) -> None:
        self.scripts = scripts or {}
        self.default = default or Script()
        self.supports_cancellation = supports_cancellation
        self.calls: list[dict[str, Any]] = []
        self.attempts: Counter[str] = Counter()
        self.in_flight = 0
        self.max_in_flight = 0

    async def run_unit(
        self,
        topic: str,
        roles: Sequence[Role],
        context: VisibleContext,
    ) -> UnitResult:
        uid = context.unit_id
        self.attempts[uid] += 1
        self.calls.append({"unit_id": uid, "topic": topic, "roles": tuple(roles), "context": context})
        script = self.scripts.get(uid, self.default)

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if script.delay:
                await asyncio.sleep(script.delay)
        finally:
            self.in_flight -= 1

        if script.crash:
            raise RuntimeError(f"engine bug in {uid}")
        if script.permanent:
            raise UnitPermanentFailure(f"{uid} rejected")
        if self.attempts[uid] <= script.transient_failures:
            raise UnitTransientFailure(f"{uid} timed out (attempt {self.attempts[uid]})")

        position = script.position(context) if callable(script.position) else script.position
        if context.candidates and position not in context.candidates:
            position = context.candidates[0]
        arguments = tuple(
            Argument(
                role=role,
                content=f"{role.value} on {topic}: studies show 40% growth",
                stance=script.stance,
                position=position,
                confidence=script.confidence,
            )
            for role in roles
        )
        return UnitResult(
            unit_id=uid,
            arguments=arguments,
            confidence=script.confidence,
            position=position,
            cost=script.cost,
            tokens_used=script.tokens,
        )

    def called(self) -> list[str]:
        return [c["unit_id"] for c in self.calls]


def fast_config(**overrides: Any) -> OrchestrationConfig:
    """Config with no retry backoff and approval switched off."""
    values: dict[str, Any] = {"retry_backoff_seconds": 0.0, "require_approval": False}
    values.update(overrides)
    return OrchestrationConfig(**values)


# ---------------------------------------------------------------------------
# Mock LLM provider
# ---------------------------------------------------------------------------

class MockProvider(LLMProvider):
    """Deterministic mock provider for testing – no network calls."""

    name = "mock"

    def __init__(
        self,
        model: str = "mock-v1",
        responses: list[str] | None = None,
        errors: list[BaseException] | None = None,
        **kwargs: Any,
    ) -> None:
        # Bypass API-key validation
        self.model = model
        self.timeout = kwargs.get("timeout", 30)
        self.cost_per_1k_tokens = kwargs.get("cost_per_1k_tokens", 0.01)
        self.api_key = "mock-key"

        self._responses = responses or [
            "Launching now captures the seasonal demand. "
            "Studies show 75% of early adopters convert.\n"
            "STANCE: support\n"
            "POSITION: launch now\n"
            "CONFIDENCE: 0.8"
        ]
        self._errors = list(errors or [])
        self._call_count = 0
        self.call_log: list[dict[str, Any]] = []

    async def _call_api(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float,
        max_tokens: int,
        **kwargs: Any,
    ) -> dict[str, Any]:
        self.call_log.append(
            {"messages": messages, "temperature": temperature, "max_tokens": max_tokens}
        )
        if self._errors:
            raise self._errors.pop(0)
        text = self._responses[self._call_count % len(self._responses)]
        self._call_count += 1
        return {"text": text, "tokens_used": len(text.split()) * 2, "raw": {}}


def role_prompt(role: Role) -> Callable[[list[dict[str, str]]], bool]:
    """Matches the messages sent for ``role`` under the default templates."""
    template = StaticPromptResolver().templates[role]
    return lambda messages: messages[0]["content"].startswith(template)


class MeteredProvider(MockProvider):
    """MockProvider that keeps a running total of what it billed.

    Calls matching ``fail_when`` raise a backend timeout before anything is
    billed; calls matching ``slow_when`` sleep for ``delay`` seconds first.
    """

    def __init__(
        self,
        fail_when: Callable[[list[dict[str, str]]], bool] | None = None,
        slow_when: Callable[[list[dict[str, str]]], bool] | None = None,
        delay: float = 1.0,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.fail_when = fail_when
        self.slow_when = slow_when
        self.delay = delay
        self.billed = 0.0

    async def _call_api(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float,
        max_tokens: int,
        **kwargs: Any,
    ) -> dict[str, Any]:
        if self.fail_when is not None and self.fail_when(messages):
            self.call_log.append({"messages": messages, "failed": True})
            raise asyncio.TimeoutError()
        if self.slow_when is not None and self.slow_when(messages):
            await asyncio.sleep(self.delay)
        payload = await super()._call_api(
            messages, temperature=temperature, max_tokens=max_tokens, **kwargs
        )
        self.billed += self.price(payload["tokens_used"])
        return payload


def llm_engine(provider: LLMProvider) -> LLMDebateEngine:
    """LLM engine whose every role is answered by ``provider``."""
    return LLMDebateEngine(StaticPromptResolver(), provider_factory=lambda name, **kw: provider)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def engine() -> ScriptedEngine:
    return ScriptedEngine()


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()


@pytest.fixture
def config() -> OrchestrationConfig:
    return fast_config()


@pytest_asyncio.fixture
async def test_db(tmp_path) -> RunDatabase:
    """SQLite database in a temporary directory."""
    db = RunDatabase(db_path=tmp_path / "test_runs.db")
    await db.connect()
    yield db
    await db.close()


@pytest.fixture
def sample_final() -> FinalConclusion:
    """A two-phase sequential run whose second phase is degraded."""
    synthesis = ResultSynthesis(0.6)

    def unit(uid: str, position: str, confidence: float, *roles: Role) -> UnitResult:
        return UnitResult(
            unit_id=uid,
            arguments=tuple(
                Argument(
                    role=r,
                    content=f"{r.value}: according to the survey, 62% of buyers agree",
                    stance=Stance.SUPPORT,
                    position=position,
                    confidence=confidence,
                )
                for r in roles
            ),
            confidence=confidence,
            position=position,
            cost=0.05,
            tokens_used=300,
        )

    first = synthesis.synthesize_phase(
        PhaseResult(
            phase_id="phase-step-1",
            unit_results=(unit("step-1", "Launch in Q3", 0.8, Role.ANALYST, Role.CRITIC),),
        )
    )
    second = synthesis.synthesize_phase(
        PhaseResult(
            phase_id="phase-step-2",
            status=PhaseStatus.DEGRADED,
            unit_results=(
                unit("step-2", "Launch in Q3", 0.7, Role.OPTIMIST, Role.SYNTHESIZER),
                UnitResult(unit_id="step-3", status=UnitStatus.FAILED, attempts=3, error="timed out"),
            ),
        )
    )
    return synthesis.generate_final_conclusion(
        [first, second],
        PatternType.SEQUENTIAL,
        cost_spent=0.1,
        time_spent_minutes=1.5,
    )
