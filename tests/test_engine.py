"""Tests for agents.engine and agents.prompts."""

from __future__ import annotations

import asyncio

import pytest

from agents.base import Argument, Role, Stance, VisibleContext
from agents.engine import (
    LLMDebateEngine,
    decide_position,
    infer_stance,
    match_candidate,
    parse_argument,
)
from agents.errors import UnitPermanentFailure, UnitTransientFailure
from agents.prompts import StaticPromptResolver, Tier
from tests.conftest import MeteredProvider, MockProvider, llm_engine, role_prompt


def _reply(stance: str, position: str, confidence: str, body: str = "Because reasons.") -> str:
    return f"{body}\nSTANCE: {stance}\nPOSITION: {position}\nCONFIDENCE: {confidence}"


class TestParseArgument:
    def test_footer(self):
        arg = parse_argument(Role.ANALYST, _reply("oppose", "Wait for Q3", "0.65"))
        assert arg.stance == Stance.OPPOSE
        assert arg.position == "Wait for Q3"
        assert arg.confidence == pytest.approx(0.65)
        assert arg.content == "Because reasons."

    def test_markdown_and_percent(self):
        text = "Body\n**STANCE:** Support\n**POSITION:** launch now\n**CONFIDENCE:** 80%"
        arg = parse_argument(Role.OPTIMIST, text)
        assert arg.stance == Stance.SUPPORT
        assert arg.position == "launch now"
        assert arg.confidence == pytest.approx(0.8)

    def test_missing_footer_falls_back(self):
        arg = parse_argument(Role.CRITIC, "This plan is flawed and too risky.")
        assert arg.stance == Stance.OPPOSE
        assert arg.confidence == 0.5
        assert arg.position == ""

    def test_confidence_is_clamped(self):
        arg = parse_argument(Role.JUDGE, _reply("neutral", "x", "250"))
        assert arg.confidence == 1.0

    def test_empty_reply_is_transient(self):
        with pytest.raises(UnitTransientFailure, match="empty reply"):
            parse_argument(Role.JUDGE, "   ")

    def test_candidate_is_matched(self):
        arg = parse_argument(Role.JUDGE, _reply("support", "the $49 plan", "0.7"), ("$29", "$49"))
        assert arg.position == "$49"

    def test_unknown_candidate_is_transient(self):
        with pytest.raises(UnitTransientFailure, match="did not pick one of"):
            parse_argument(Role.JUDGE, _reply("support", "$99", "0.7"), ("$29", "$49"))


class TestHelpers:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("I agree, we should proceed", Stance.SUPPORT),
            ("I disagree and reject this", Stance.OPPOSE),
            ("Hard to say", Stance.NEUTRAL),
        ],
    )
    def test_infer_stance(self, text, expected):
        assert infer_stance(text) == expected

    def test_match_candidate(self):
        assert match_candidate("Plan B", ["Plan A", "Plan B"]) == "Plan B"
        assert match_candidate("plan b", ["Plan A", "Plan B"]) == "Plan B"
        # Ambiguous substring matches are rejected
        assert match_candidate("Plan", ["Plan A", "Plan B"]) is None
        assert match_candidate("", ["Plan A"]) is None

    def test_decide_position_prefers_judge(self):
        args = [
            Argument(role=Role.ANALYST, content="", position="A"),
            Argument(role=Role.CRITIC, content="", position="A"),
            Argument(role=Role.JUDGE, content="", position="B"),
        ]
        assert decide_position(args) == "B"

    def test_decide_position_plurality(self):
        args = [
            Argument(role=Role.ANALYST, content="", position="A"),
            Argument(role=Role.CRITIC, content="", position="B"),
            Argument(role=Role.OPTIMIST, content="", position="A"),
        ]
        assert decide_position(args) == "A"
        assert decide_position([]) == ""


class TestStaticPromptResolver:
    def test_defaults(self):
        resolved = StaticPromptResolver().resolve(Role.CRITIC, Tier.ECONOMY)
        assert (resolved.provider, resolved.model) == ("openai", "gpt-4o-mini")
        assert resolved.temperature == 0.8
        assert "Critic" in resolved.template

    def test_from_config(self):
        resolver = StaticPromptResolver.from_config(
            {
                "tiers": {"premium": {"provider": "cohere", "model": "command-r-plus"}},
                "roles": {"judge": {"template": "You are a strict judge."}, "critic": {}},
            }
        )
        judge = resolver.resolve(Role.JUDGE, Tier.PREMIUM)
        assert judge.provider == "cohere"
        assert judge.template == "You are a strict judge."
        assert "Critic" in resolver.resolve(Role.CRITIC, Tier.BALANCED).template


class TestLLMDebateEngine:
    def _engine(self, *providers: MockProvider, **kwargs) -> tuple[LLMDebateEngine, list[dict]]:
        created: list[dict] = []
        pool = list(providers)

        def factory(name, **provider_kwargs):
            created.append({"name": name, **provider_kwargs})
            return pool.pop(0)

        return LLMDebateEngine(StaticPromptResolver(), provider_factory=factory, **kwargs), created

    @pytest.mark.asyncio
    async def test_panel_produces_unit_result(self):
        provider = MockProvider(
            responses=[
                _reply("support", "launch now", "0.9"),
                _reply("oppose", "wait", "0.6"),
                _reply("support", "launch now", "0.75"),
            ]
        )
        engine, _ = self._engine(provider)
        ctx = VisibleContext(question="Launch now?", unit_id="u1")
        result = await engine.run_unit("Launch now?", (Role.OPTIMIST, Role.CRITIC, Role.SYNTHESIZER), ctx)

        assert result.unit_id == "u1"
        assert [a.role for a in result.arguments] == [Role.OPTIMIST, Role.CRITIC, Role.SYNTHESIZER]
        assert result.position == "launch now"
        assert result.confidence == pytest.approx(0.75)
        assert result.tokens_used > 0
        assert result.cost == pytest.approx(provider.price(result.tokens_used), abs=1e-5)

    @pytest.mark.asyncio
    async def test_later_roles_see_earlier_arguments(self):
        provider = MockProvider(responses=[_reply("support", "x", "0.8", body="First take")])
        engine, _ = self._engine(provider)
        ctx = VisibleContext(question="q", unit_id="u", prior_conclusions=("[p1] earlier",))
        await engine.run_unit("topic", (Role.ANALYST, Role.CRITIC), ctx)

        first, second = provider.call_log
        assert first["messages"][0]["content"].startswith(StaticPromptResolver().templates[Role.ANALYST])
        assert "STANCE:" in first["messages"][0]["content"]
        assert "- [p1] earlier" in first["messages"][1]["content"]
        assert "[analyst] First take" in second["messages"][1]["content"]
        assert second["temperature"] == 0.8

    @pytest.mark.asyncio
    async def test_bracket_prompt_names_candidates(self):
        provider = MockProvider(responses=[_reply("support", "$29", "0.7")])
        engine, _ = self._engine(provider)
        ctx = VisibleContext(question="q", unit_id="m", candidates=("$29", "$99"))
        result = await engine.run_unit("match", (Role.JUDGE,), ctx)
        assert "$29 vs $99" in provider.call_log[0]["messages"][1]["content"]
        assert result.position == "$29"

    @pytest.mark.asyncio
    async def test_providers_are_cached_per_model(self):
        engine, created = self._engine(MockProvider(), tier=Tier.ECONOMY,
                                       provider_kwargs={"openai": {"timeout": 10}})
        ctx = VisibleContext(question="q", unit_id="u")
        await engine.run_unit("t", (Role.ANALYST, Role.CRITIC), ctx)
        await engine.run_unit("t", (Role.JUDGE,), ctx)
        assert created == [{"name": "openai", "model": "gpt-4o-mini", "timeout": 10}]

    @pytest.mark.asyncio
    async def test_provider_errors_propagate(self):
        engine, _ = self._engine(MockProvider(errors=[TimeoutError()]))
        with pytest.raises(UnitTransientFailure):
            await engine.run_unit("t", (Role.ANALYST,), VisibleContext(question="q", unit_id="u"))

    @pytest.mark.asyncio
    async def test_misconfigured_provider_is_permanent(self):
        def factory(name, **kwargs):
            raise ValueError(f"No API key for {name}.")

        engine = LLMDebateEngine(StaticPromptResolver(), provider_factory=factory)
        with pytest.raises(UnitPermanentFailure, match="No API key"):
            await engine.run_unit("t", (Role.ANALYST,), VisibleContext(question="q", unit_id="u"))


class TestSpendOnFailure:
    @pytest.mark.asyncio
    async def test_failed_role_carries_earlier_spend(self):
        provider = MeteredProvider(fail_when=role_prompt(Role.SYNTHESIZER))
        engine = llm_engine(provider)
        ctx = VisibleContext(question="q", unit_id="u")
        with pytest.raises(UnitTransientFailure) as info:
            await engine.run_unit("t", (Role.ANALYST, Role.CRITIC, Role.SYNTHESIZER), ctx)
        assert provider.billed > 0
        assert info.value.incurred_cost == pytest.approx(provider.billed)

    @pytest.mark.asyncio
    async def test_unmatched_candidate_carries_spend(self):
        provider = MeteredProvider(responses=[_reply("support", "$99", "0.7")])
        engine = llm_engine(provider)
        ctx = VisibleContext(question="q", unit_id="m", candidates=("$29", "$49"))
        with pytest.raises(UnitTransientFailure) as info:
            await engine.run_unit("match", (Role.JUDGE,), ctx)
        assert info.value.incurred_cost == pytest.approx(provider.billed)
        assert info.value.incurred_cost > 0

    @pytest.mark.asyncio
    async def test_cancelled_attempt_spend_is_kept(self):
        provider = MeteredProvider(slow_when=role_prompt(Role.CRITIC), delay=5.0)
        engine = llm_engine(provider)
        ctx = VisibleContext(question="q", unit_id="u")
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(engine.run_unit("t", (Role.ANALYST, Role.CRITIC), ctx), 0.1)
        assert provider.billed > 0
        assert engine.interrupted_cost("u") == pytest.approx(provider.billed)
        # Reading clears it
        assert engine.interrupted_cost("u") == 0.0
