"""Roles and the unit-result contract shared with every debate engine.

A *debate unit* is resolved by a panel of roles.  The engine receives the
unit's topic, the role set and a ``VisibleContext`` and answers with a
``UnitResult``:
- ``Role`` enumerates the personas a panel can be built from
- ``Argument`` is one role's contribution (stance, position, confidence)
- ``UnitResult`` is the terminal record of one unit
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from enum import Enum


# ---------------------------------------------------------------------------
# Roles & personas
# ---------------------------------------------------------------------------

class Role(str, Enum):
    """Well-known personas a deliberation panel is assembled from."""

    OPTIMIST = "optimist"
    CRITIC = "critic"
    ANALYST = "analyst"
    SYNTHESIZER = "synthesizer"
    DEFENDER = "defender"
    ATTACKER = "attacker"
    JUDGE = "judge"


PERSONAS: dict[Role, str] = {
    Role.OPTIMIST: """\
You are the **Optimist** on a decision panel. Make the strongest honest case
for the most promising course of action, grounded in concrete upside,
evidence and examples. Acknowledge real risks, but do not invent them.
""",
    Role.CRITIC: """\
You are the **Critic** on a decision panel. Identify weak reasoning,
unsupported claims, hidden costs and failure modes. Be specific about what
is wrong and what evidence would change your mind.
""",
    Role.ANALYST: """\
You are the **Analyst** on a decision panel. Weigh the facts, numbers and
trade-offs neutrally. Rate how well each claim is supported and state the
assumptions the decision hinges on.
""",
    Role.SYNTHESIZER: """\
You are the **Synthesizer** on a decision panel. Reconcile the other views
into one recommendation, record where the panel still disagrees, and state
how confident the panel should be.
""",
    Role.DEFENDER: """\
You are the **Defender**. Argue FOR the proposal under discussion as
convincingly as the evidence allows. Anticipate and rebut objections.
""",
    Role.ATTACKER: """\
You are the **Attacker**. Argue AGAINST the proposal under discussion.
Stress-test it: surface risks, costs, and better alternatives.
""",
    Role.JUDGE: """\
You are the **Judge**. Evaluate the competing options on argument quality,
evidence strength and logical coherence, and pick exactly one winner with
clear justification.
""",
}


# ---------------------------------------------------------------------------
# Unit results
# ---------------------------------------------------------------------------

class Stance(str, Enum):
    SUPPORT = "support"
    OPPOSE = "oppose"
    NEUTRAL = "neutral"


class UnitStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Argument:
    """One role's contribution to a unit."""

    role: Role
    content: str
    stance: Stance = Stance.NEUTRAL
    position: str = ""
    confidence: float = 0.5


@dataclass(frozen=True)
class UnitResult:
    """Terminal outcome of one debate unit."""

    unit_id: str
    arguments: tuple[Argument, ...] = ()
    confidence: float = 0.0
    status: UnitStatus = UnitStatus.COMPLETED
    position: str = ""
    cost: float = 0.0
    tokens_used: int = 0
    attempts: int = 1
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == UnitStatus.COMPLETED

    @property
    def stance(self) -> Stance:
        """Majority stance across arguments (neutral when tied or empty)."""
        counts = Counter(a.stance for a in self.arguments)
        if not counts:
            return Stance.NEUTRAL
        ranked = counts.most_common()
        if len(ranked) > 1 and ranked[0][1] == ranked[1][1]:
            return Stance.NEUTRAL
        return ranked[0][0]

    def position_key(self) -> str:
        """Normalised position used to compare units against each other."""
        if self.position.strip():
            return self.position.strip().lower()
        return self.stance.value


@dataclass(frozen=True)
class VisibleContext:
    """The slice of run state a unit is allowed to see."""

    question: str
    unit_id: str = ""
    question_context: str | None = None
    prior_conclusions: tuple[str, ...] = ()
    candidates: tuple[str, ...] = ()

    def render(self) -> str:
        """Flatten into a prompt-ready block."""
        lines = [f"Decision question: {self.question}"]
        if self.question_context:
            lines.append(f"Additional context: {self.question_context}")
        if self.candidates:
            lines.append("Options under consideration: " + ", ".join(self.candidates))
        if self.prior_conclusions:
            lines.append("")
            lines.append("Conclusions from earlier phases:")
            lines.extend(f"- {c}" for c in self.prior_conclusions)
        return "\n".join(lines)
