"""Tests for agents.llm_provider module."""

from __future__ import annotations

import asyncio

import pytest

from agents.errors import UnitPermanentFailure, UnitTransientFailure
from agents.llm_provider import LLMResponse, create_provider, is_transient
from tests.conftest import MockProvider


class TestMockProvider:
    """Verify the mock provider works correctly for downstream tests."""

    @pytest.mark.asyncio
    async def test_generate_returns_llm_response(self, mock_provider: MockProvider):
        resp = await mock_provider.generate(
            [{"role": "user", "content": "Hello"}],
            temperature=0.5,
            max_tokens=100,
        )
        assert isinstance(resp, LLMResponse)
        assert resp.provider == "mock"
        assert resp.model == "mock-v1"
        assert len(resp.text) > 0
        assert resp.tokens_used > 0
        assert resp.latency_ms >= 0

    @pytest.mark.asyncio
    async def test_multiple_responses_cycle(self):
        provider = MockProvider(responses=["first", "second", "third"])
        r1 = await provider.generate([{"role": "user", "content": "a"}])
        r2 = await provider.generate([{"role": "user", "content": "b"}])
        r3 = await provider.generate([{"role": "user", "content": "c"}])
        r4 = await provider.generate([{"role": "user", "content": "d"}])
        assert r1.text == "first"
        assert r2.text == "second"
        assert r3.text == "third"
        assert r4.text == "first"  # cycles

    @pytest.mark.asyncio
    async def test_call_log_records_parameters(self, mock_provider: MockProvider):
        await mock_provider.generate(
            [{"role": "system", "content": "sys"}, {"role": "user", "content": "hi"}],
            temperature=0.9,
            max_tokens=200,
        )
        assert len(mock_provider.call_log) == 1
        log = mock_provider.call_log[0]
        assert log["temperature"] == 0.9
        assert log["max_tokens"] == 200
        assert len(log["messages"]) == 2

    @pytest.mark.asyncio
    async def test_response_is_priced(self):
        provider = MockProvider(responses=["one two three four five"], cost_per_1k_tokens=2.0)
        resp = await provider.generate([{"role": "user", "content": "a"}])
        assert resp.tokens_used == 10
        assert resp.cost_usd == pytest.approx(0.02)


class _StatusError(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


class RateLimitError(Exception):
    """Stand-in named like the SDK exception."""


class TestErrorTranslation:
    @pytest.mark.parametrize(
        "exc,expected",
        [
            (asyncio.TimeoutError(), True),
            (ConnectionError("reset"), True),
            (_StatusError(429), True),
            (_StatusError(503), True),
            (RateLimitError("slow down"), True),
            (_StatusError(401), False),
            (_StatusError(400), False),
            (KeyError("text"), False),
        ],
    )
    def test_is_transient(self, exc, expected):
        assert is_transient(exc) is expected

    @pytest.mark.asyncio
    async def test_transient_error_translated(self):
        provider = MockProvider(errors=[_StatusError(503)])
        with pytest.raises(UnitTransientFailure, match=r"\[mock\] _StatusError: HTTP 503"):
            await provider.generate([{"role": "user", "content": "a"}])

    @pytest.mark.asyncio
    async def test_permanent_error_translated(self):
        provider = MockProvider(errors=[_StatusError(401)])
        with pytest.raises(UnitPermanentFailure) as info:
            await provider.generate([{"role": "user", "content": "a"}])
        assert isinstance(info.value.__cause__, _StatusError)

    @pytest.mark.asyncio
    async def test_single_attempt_per_call(self):
        provider = MockProvider(errors=[_StatusError(503)])
        with pytest.raises(UnitTransientFailure):
            await provider.generate([{"role": "user", "content": "a"}])
        # The next call succeeds; nothing was retried behind the caller's back
        resp = await provider.generate([{"role": "user", "content": "b"}])
        assert len(provider.call_log) == 2
        assert "launch now" in resp.text


class TestCreateProvider:
    def test_unknown_provider_raises(self):
        with pytest.raises(ValueError, match="Unknown provider"):
            create_provider("nonexistent", api_key="k")

    def test_missing_api_key_raises(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(ValueError, match="No API key"):
            create_provider("openai")  # no key, no env var

    def test_key_from_custom_env_var(self, monkeypatch):
        monkeypatch.setenv("MY_ANTHROPIC_KEY", "secret")
        provider = create_provider("anthropic", api_key_env="MY_ANTHROPIC_KEY")
        assert provider.api_key == "secret"
        assert provider.cost_per_1k_tokens == 0.009

    def test_openrouter_provider_created(self):
        """Test that OpenRouter provider can be instantiated."""
        provider = create_provider("openrouter", api_key="test-key", model="openai/gpt-4")
        assert provider.name == "openrouter"
        assert provider.model == "openai/gpt-4"

    def test_cost_override(self):
        provider = create_provider("openai", api_key="k", cost_per_1k_tokens=1.5)
        assert provider.price(2000) == pytest.approx(3.0)


class TestLLMResponse:
    def test_frozen_dataclass(self):
        resp = LLMResponse(
            text="hi", tokens_used=5, model="m", provider="p", latency_ms=10.0
        )
        assert resp.text == "hi"
        with pytest.raises(AttributeError):
            resp.text = "modified"  # type: ignore[misc]
