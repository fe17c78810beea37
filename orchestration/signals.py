"""Signal detection – rule-based reading of a decision question.

Everything here is a pure function of the input text: no network calls, no
state.  Several signals may fire at once; choosing between them is the
strategy selector's job.  Patterns cover Spanish and English phrasing.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from orchestration.types import Signal, SignalType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignalRule:
    type: SignalType
    patterns: tuple[re.Pattern[str], ...]
    weight: float


def _rule(type_: SignalType, weight: float, *patterns: str) -> SignalRule:
    return SignalRule(type_, tuple(re.compile(p, re.I) for p in patterns), weight)


SIGNAL_RULES: tuple[SignalRule, ...] = (
    _rule(
        SignalType.BINARY_CHOICE, 0.8,
        r"\b(o|or)\b[^?]*\?\s*$",
        r"¿.*\b(sí|no)\b.*\?",
        r"\b(should|deber[íi]a(mos)?)\b.*\?",
        r"\b(aceptar|rechazar|accept|reject)\b",
        r"\b(seguir|abandonar)\b",
        r"\b(lanzar|esperar|launch|wait)\b",
        r"\b(contratar|no contratar|hire|not hire)\b",
        r"\bwhether\b",
    ),
    _rule(
        SignalType.MULTIPLE_OPTIONS, 0.9,
        r"(\d+\s*€|\$\s*\d+).*(\d+\s*€|\$\s*\d+).*(\d+\s*€|\$\s*\d+)",
        r"\bcu[áa]l\b.*\b(mejor|elegir|escoger)\b",
        r"\bwhich\b.*\b(best|choose|pick)\b",
        r",[^,]*,.*\b(o|or)\b",
        r"\b(opci[óo]n|alternativa|option|alternative)\s*\d+",
        r"\b(plan|propuesta)\s+[abc]\b",
        r"\b(ranking|clasificar|ordenar|rank)\b",
        r"\bentre\b.*\by\b.*\by\b",
    ),
    _rule(
        SignalType.BROAD_TOPIC, 0.85,
        r"\bc[óo]mo\b.*\b(expandir|crecer|escalar)\b",
        r"\bhow\b.*\b(expand|grow|scale)\b",
        r"\bestrategia\b.*\b(general|completa|integral)\b",
        r"\b(overall|complete|end-to-end)\s+strategy\b",
        r"\bplan\b.*\b(de negocio|negocio|empresa|business)\b",
        r"\bvisi[óo]n\b.*\b(largo plazo|futuro)\b",
        r"\bhoja de ruta\b",
        r"\broadmap\b",
        r"\b(transformaci[óo]n|reestructuraci[óo]n|transformation|restructuring)\b",
    ),
    _rule(
        SignalType.HIGH_RISK, 0.95,
        r"\b(cr[íi]tic[oa]|vital|crucial|critical)\b",
        r"\b(riesgo|arriesgar|peligro|risk|risky|danger)\b",
        r"\b(inversi[óo]n|invertir|investment|invest)\b.*\b(grande|significativa|large|major)\b",
        r"\b(irreversible|sin retorno|no way back)\b",
        r"\b(despedir|recortar personal|layoffs?|fire)\b",
        r"\b(cierre|liquidaci[óo]n|quiebra|bankrupt\w*|shut ?down)\b",
        r"\b(pivote|pivotar|pivot)\b",
    ),
    _rule(
        SignalType.URGENCY, 0.6,
        r"\b(urgente|urgent|asap|inmediat\w*|immediately|cuanto antes)\b",
        r"\b(ahora|now|ya)\b",
        r"\b(esta semana|this week|hoy|today|deadline|fecha l[íi]mite)\b",
    ),
    _rule(
        SignalType.OPTIMIZATION, 0.7,
        r"\b(optimizar|mejorar|incrementar|reducir)\b",
        r"\b(optimi[sz]e|improve|increase|reduce)\b",
        r"\b(eficiencia|rendimiento|performance|efficiency)\b",
        r"\b(maximizar|minimizar|maximi[sz]e|minimi[sz]e)\b",
        r"\b(ahorrar|economizar|acelerar|agilizar)\b",
    ),
    _rule(
        SignalType.MULTIPLE_FACTORS, 0.75,
        r"\bconsiderando\b.*\by\b",
        r"\bconsidering\b.*\band\b",
        r"\bfactores\b.*\b(m[úu]ltiples|varios)\b",
        r"\b(precio|mercado|competencia|timing|price|market|competition)\b.*"
        r"\b(precio|mercado|competencia|timing|price|market|competition)\b",
    ),
    _rule(
        SignalType.COMPARISON, 0.8,
        r"\b(mejor|peor|vs|versus|comparar|comparaci[óo]n)\b",
        r"\b(better|worse|compare|comparison)\b",
        r"\bcu[áa]l\b.*\b(m[áa]s|menos)\b",
    ),
    _rule(
        SignalType.EXPLORATION, 0.6,
        r"\bqu[ée]\b.*\b(opciones|alternativas|posibilidades)\b",
        r"\bwhat\b.*\b(options|alternatives|possibilities)\b",
        r"\bc[óo]mo\b.*\b(podr[íi]a|podr[íi]amos)\b",
        r"\bhow\b.*\b(could|might)\b",
        r"\b(explorar|investigar|explore|investigate)\b",
        r"\b(brainstorm|lluvia de ideas)\b",
        r"\b(qu[ée] pasar[íi]a si|what if)\b",
        r"\b(escenarios|scenarios)\b",
    ),
    _rule(
        SignalType.VALIDATION, 0.5,
        r"\bes\b.*\b(correcto|adecuado|buena idea)\b",
        r"\bis\b.*\b(correct|right|a good idea)\b",
        r"\b(validar|confirmar|verificar|validate|confirm|verify)\b",
        r"\b(tiene sentido|makes sense)\b",
        r"\b(pros y contras|ventajas y desventajas|pros and cons)\b",
    ),
)

# Signals that on their own do not call for a structured topology
PASSIVE_SIGNALS = frozenset({SignalType.VALIDATION, SignalType.URGENCY})


def detect_signals(text: str, context: str | None = None) -> list[Signal]:
    """Return one ``Signal`` per rule, in rule order.

    Only the question text is matched; ``context`` is background material
    and would otherwise drown the phrasing of the question itself.
    """
    signals: list[Signal] = []
    for rule in SIGNAL_RULES:
        evidence = [m.group(0).strip() for p in rule.patterns if (m := p.search(text))]
        hits = len(evidence)
        strength = min(1.0, rule.weight * (0.6 + 0.2 * (hits - 1))) if hits else 0.0
        signals.append(
            Signal(
                type=rule.type,
                detected=hits > 0,
                strength=round(strength, 3),
                evidence=tuple(e[:80] for e in evidence),
            )
        )
    return signals


# ---------------------------------------------------------------------------
# Options, factors and sub-questions
# ---------------------------------------------------------------------------

_AMOUNT_RE = re.compile(
    r"[$€£]\s?\d+(?:[.,]\d+)?[kKmM]?|\d+(?:[.,]\d+)?\s?(?:€|eur\b|usd\b)", re.I
)
_LABELLED_RE = re.compile(
    r"\b(?i:opci[óo]n|option|plan|propuesta|alternativa|alternative)\s+(?:[A-Z]|\d+)\b"
)
_LIST_SPLIT_RE = re.compile(r"\s*,\s*|\s+(?:o|or|u|y|and|vs\.?|versus)\s+", re.I)


def _dedupe(items: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for item in items:
        key = item.lower()
        if key not in seen:
            seen.add(key)
            out.append(item)
    return out


def extract_options(text: str) -> list[str]:
    """Pull the discrete, named alternatives out of a question.

    Tries amounts (``$29, $49``), then labelled options (``Plan A``), then a
    comma list (``Python, Go o Rust``).  Order of mention is preserved.
    """
    amounts = _dedupe([re.sub(r"\s+", "", m) for m in _AMOUNT_RE.findall(text)])
    if len(amounts) >= 2:
        return amounts

    labelled = _dedupe(_LABELLED_RE.findall(text))
    if len(labelled) >= 2:
        return labelled

    segment = text.rsplit(":", 1)[-1]
    segment = segment.strip().strip("¿?¡!.").strip()
    if "," not in segment:
        return []
    items = [i.strip(" ¿?¡!.") for i in _LIST_SPLIT_RE.split(segment)]
    items = [i for i in items if i]
    if len(items) < 3:
        return []
    # The first item usually carries the question's preamble
    width = max(len(i.split()) for i in items[1:])
    items[0] = " ".join(items[0].split()[-width:])
    if any(len(i.split()) > 4 for i in items):
        return []
    return _dedupe(items)[:8]


_FACTOR_KEYWORDS: tuple[tuple[str, str], ...] = (
    ("precio", "pricing"), ("price", "pricing"), ("pricing", "pricing"),
    ("coste", "pricing"), ("tarifa", "pricing"),
    ("mercado", "market"), ("market", "market"), ("sector", "market"),
    ("competencia", "competition"), ("competition", "competition"),
    ("competidor", "competition"), ("competitor", "competition"),
    ("timing", "timing"), ("momento", "timing"), ("plazo", "timing"),
    ("producto", "product"), ("product", "product"), ("servicio", "product"),
    ("equipo", "team"), ("team", "team"), ("talento", "team"), ("hiring", "team"),
    ("tecnolog", "technology"), ("technology", "technology"), ("tech", "technology"),
    ("go-to-market", "gtm"), ("gtm", "gtm"),
    ("ventas", "sales"), ("sales", "sales"),
    ("marketing", "marketing"),
    ("financiación", "funding"), ("funding", "funding"), ("inversores", "funding"),
    ("investors", "funding"),
    ("legal", "regulation"), ("regulaci", "regulation"), ("regulat", "regulation"),
)


def detect_factors(text: str) -> list[str]:
    """Dimensions of the decision mentioned in the text (deduplicated)."""
    lowered = text.lower()
    found: list[str] = []
    for keyword, factor in _FACTOR_KEYWORDS:
        if factor not in found and re.search(rf"\b{re.escape(keyword)}", lowered):
            found.append(factor)
    return found


_CONJUNCTION_RE = re.compile(
    r";|,\s*(?:y|and)\s+|\s+(?:y también|y además|and also|as well as)\s+", re.I
)


def decompose_question(text: str) -> list[str]:
    """Split a compound question into its top-level sub-questions."""
    parts = [p.strip(" ¿?¡!.") for p in text.split("?")]
    parts = [p for p in parts if len(p.split()) >= 3]
    if len(parts) >= 2:
        return [f"{p}?" for p in parts]

    parts = [p.strip(" ¿?¡!.") for p in _CONJUNCTION_RE.split(text)]
    parts = [p for p in parts if len(p.split()) >= 3]
    return parts if len(parts) >= 2 else []


@dataclass(frozen=True)
class QueryProfile:
    """Everything the pattern catalog needs to know about a question."""

    signals: tuple[Signal, ...]
    options: tuple[str, ...] = ()
    factors: tuple[str, ...] = ()
    sub_questions: tuple[str, ...] = ()

    def has(self, type_: SignalType) -> bool:
        return any(s.type == type_ and s.detected for s in self.signals)

    @property
    def active(self) -> list[Signal]:
        return [s for s in self.signals if s.detected]


def profile_question(text: str, context: str | None = None) -> QueryProfile:
    background = f"{text}\n{context}" if context else text
    profile = QueryProfile(
        signals=tuple(detect_signals(text, context)),
        options=tuple(extract_options(text)),
        factors=tuple(detect_factors(background)),
        sub_questions=tuple(decompose_question(text)),
    )
    logger.debug(
        "Profiled question: signals=%s options=%s factors=%s",
        [s.type.value for s in profile.active] or "none",
        list(profile.options) or "none",
        list(profile.factors) or "none",
    )
    return profile
