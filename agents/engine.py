"""Debate engine boundary and its LLM-backed implementation.

The orchestration core only ever calls ``DebateEngine.run_unit``.  The
``LLMDebateEngine`` resolves every role of the panel to a template and a
model, asks each in turn (later roles see the earlier arguments), and parses
the structured footer every persona is asked to end with::

    STANCE: support | oppose | neutral
    POSITION: <the option or course of action argued for>
    CONFIDENCE: <0.0 - 1.0>
"""

from __future__ import annotations

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from collections import Counter
from collections.abc import Callable, Sequence
from typing import Any

from agents.base import Argument, Role, Stance, UnitResult, VisibleContext
from agents.errors import EngineError, UnitPermanentFailure, UnitTransientFailure
from agents.llm_provider import LLMProvider, create_provider
from agents.prompts import PromptResolver, ResolvedPrompt, Tier

logger = logging.getLogger(__name__)


class DebateEngine(ABC):
    """Turns one unit plus its role panel into arguments.

    Implementations raise ``UnitTransientFailure`` for retryable problems and
    ``UnitPermanentFailure`` for everything that a retry cannot fix.
    """

    name: str = "engine"
    # Whether in-flight ``run_unit`` calls may be cancelled cooperatively.
    supports_cancellation: bool = False

    @abstractmethod
    async def run_unit(
        self,
        topic: str,
        roles: Sequence[Role],
        context: VisibleContext,
    ) -> UnitResult:
        ...

    def interrupted_cost(self, unit_id: str) -> float:
        """Spend billed by an attempt of ``unit_id`` that was cancelled mid-flight.

        Reading it clears it.  Engines that bill nothing return 0.
        """
        return 0.0


# ---------------------------------------------------------------------------
# Output parsing
# ---------------------------------------------------------------------------

_FORMAT_INSTRUCTIONS = """

End your answer with exactly these three lines:
STANCE: support | oppose | neutral
POSITION: <the option or course of action you argue for>
CONFIDENCE: <a number between 0 and 1>
"""

_STANCE_RE = re.compile(r"^\s*\**STANCE\**\s*:\s*\**\s*(support|oppose|neutral)", re.I | re.M)
_POSITION_RE = re.compile(r"^\s*\**POSITION\**\s*:\s*\**\s*(.+?)\s*$", re.I | re.M)
_CONFIDENCE_RE = re.compile(r"^\s*\**CONFIDENCE\**\s*:\s*\**\s*([0-9]*\.?[0-9]+)\s*(%?)", re.I | re.M)

_AGREEMENT = {"agree", "support", "recommend", "in favour", "in favor", "worth", "should proceed"}
_DISAGREEMENT = {"disagree", "oppose", "reject", "against", "flawed", "should not", "too risky"}


def infer_stance(text: str) -> Stance:
    """Fallback stance from agreement / disagreement vocabulary."""
    lowered = text.lower()
    agree = sum(1 for w in _AGREEMENT if w in lowered)
    disagree = sum(1 for w in _DISAGREEMENT if w in lowered)
    if agree > disagree:
        return Stance.SUPPORT
    if disagree > agree:
        return Stance.OPPOSE
    return Stance.NEUTRAL


def match_candidate(position: str, candidates: Sequence[str]) -> str | None:
    """Map a free-text position onto one of the known candidates."""
    needle = position.strip().lower()
    if not needle:
        return None
    for cand in candidates:
        if cand.lower() == needle:
            return cand
    hits = [c for c in candidates if c.lower() in needle or needle in c.lower()]
    return hits[0] if len(hits) == 1 else None


def parse_argument(role: Role, text: str, candidates: Sequence[str] = ()) -> Argument:
    """Parse one role's reply into an ``Argument``.

    Raises ``UnitTransientFailure`` when the reply is empty or, for a unit
    choosing between candidates, names none of them.
    """
    if not text.strip():
        raise UnitTransientFailure(f"{role.value} returned an empty reply")

    stance_m = _STANCE_RE.search(text)
    stance = Stance(stance_m.group(1).lower()) if stance_m else infer_stance(text)

    confidence = 0.5
    conf_m = _CONFIDENCE_RE.search(text)
    if conf_m:
        value = float(conf_m.group(1))
        if conf_m.group(2) == "%" or value > 1:
            value /= 100
        confidence = max(0.0, min(1.0, value))

    pos_m = _POSITION_RE.search(text)
    position = pos_m.group(1).strip() if pos_m else ""
    if candidates:
        matched = match_candidate(position, candidates)
        if matched is None:
            raise UnitTransientFailure(
                f"{role.value} did not pick one of {list(candidates)} (got {position!r})"
            )
        position = matched

    # Strip the footer from the argument body
    body = _CONFIDENCE_RE.sub("", _POSITION_RE.sub("", _STANCE_RE.sub("", text))).strip()
    return Argument(
        role=role,
        content=body or text.strip(),
        stance=stance,
        position=position,
        confidence=confidence,
    )


def decide_position(arguments: Sequence[Argument]) -> str:
    """Unit position: the last judge/synthesizer verdict, else the plurality."""
    for arg in reversed(arguments):
        if arg.role in (Role.JUDGE, Role.SYNTHESIZER) and arg.position:
            return arg.position
    counts = Counter(a.position for a in arguments if a.position)
    return counts.most_common(1)[0][0] if counts else ""


# ---------------------------------------------------------------------------
# LLM-backed engine
# ---------------------------------------------------------------------------

class LLMDebateEngine(DebateEngine):
    """Debate engine that runs each panel role against an LLM backend.

    Parameters
    ----------
    resolver : PromptResolver
        Maps ``(role, tier)`` to a template and a backend.
    tier : Tier
        Cost/quality tier used for every call.
    provider_kwargs : dict
        Extra constructor kwargs per provider name (timeout, api_key_env …).
    provider_factory : callable
        Builds providers; swapped out in tests.
    """

    name = "llm"
    supports_cancellation = True

    def __init__(
        self,
        resolver: PromptResolver,
        *,
        tier: Tier = Tier.BALANCED,
        provider_kwargs: dict[str, dict[str, Any]] | None = None,
        provider_factory: Callable[..., LLMProvider] = create_provider,
    ) -> None:
        self.resolver = resolver
        self.tier = tier
        self.provider_kwargs = provider_kwargs or {}
        self._provider_factory = provider_factory
        self._providers: dict[tuple[str, str], LLMProvider] = {}
        self._interrupted: dict[str, float] = {}

    async def run_unit(
        self,
        topic: str,
        roles: Sequence[Role],
        context: VisibleContext,
    ) -> UnitResult:
        arguments: list[Argument] = []
        cost = 0.0
        tokens = 0
        try:
            for role in roles:
                resolved = self.resolver.resolve(role, self.tier)
                provider = self._provider_for(resolved)
                messages = [
                    {"role": "system", "content": resolved.template + _FORMAT_INSTRUCTIONS},
                    {"role": "user", "content": self._build_prompt(topic, role, context, arguments)},
                ]
                response = await provider.generate(
                    messages,
                    temperature=resolved.temperature,
                    max_tokens=resolved.max_tokens,
                )
                cost += response.cost_usd
                tokens += response.tokens_used
                arguments.append(parse_argument(role, response.text, context.candidates))
        except EngineError as exc:
            exc.incurred_cost += cost
            raise
        except asyncio.CancelledError:
            if cost:
                uid = context.unit_id
                self._interrupted[uid] = self._interrupted.get(uid, 0.0) + cost
                logger.debug("Unit %s cancelled after spending $%.6f", uid, cost)
            raise

        confidence = sum(a.confidence for a in arguments) / len(arguments) if arguments else 0.0
        return UnitResult(
            unit_id=context.unit_id,
            arguments=tuple(arguments),
            confidence=round(confidence, 3),
            position=decide_position(arguments),
            cost=round(cost, 6),
            tokens_used=tokens,
        )

    def interrupted_cost(self, unit_id: str) -> float:
        return self._interrupted.pop(unit_id, 0.0)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _provider_for(self, resolved: ResolvedPrompt) -> LLMProvider:
        key = (resolved.provider, resolved.model)
        if key not in self._providers:
            try:
                self._providers[key] = self._provider_factory(
                    resolved.provider,
                    model=resolved.model,
                    **self.provider_kwargs.get(resolved.provider, {}),
                )
            except ValueError as exc:
                raise UnitPermanentFailure(str(exc)) from exc
        return self._providers[key]

    @staticmethod
    def _build_prompt(
        topic: str,
        role: Role,
        context: VisibleContext,
        earlier: Sequence[Argument],
    ) -> str:
        lines = [context.render(), "", f"Point under deliberation: {topic}"]
        if earlier:
            lines.append("")
            lines.append("Panel so far:")
            for arg in earlier:
                lines.append(f"[{arg.role.value}] {arg.content[:600]}")
        lines.append("")
        if context.candidates:
            lines.append(
                f"As {role.value}, argue which single option should win: "
                + " vs ".join(context.candidates)
                + ". Your POSITION must name exactly one of them."
            )
        else:
            lines.append(f"Give your contribution as {role.value}.")
        return "\n".join(lines)
