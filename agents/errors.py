"""Failure signals raised across the debate-engine boundary."""

from __future__ import annotations


class EngineError(Exception):
    """Base class for errors raised by a debate engine or LLM provider."""

    # Spend already billed by the failed attempt before it raised
    incurred_cost: float = 0.0


class UnitTransientFailure(EngineError):
    """Timeout, rate limit or malformed output – worth retrying."""


class UnitPermanentFailure(EngineError):
    """Invalid configuration, auth failure, rejected request – never retried."""
