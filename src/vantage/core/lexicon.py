"""
Word-level heuristics shared by reconciliation and proposal seeding.

Everything here is a pure function of text so it can be exercised
without a provider round-trip.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vantage.config.schema import LexiconConfig

STOPWORDS = frozenset(
    "a,an,the,of,to,in,on,for,with,from,into,by,at,as,and,or,not,no,just,only,"
    "that,this,those,these,over,under,near,about,around,after,before,than,then,"
    "there,is,are,be,been,being,do,does,did,can,could,should,would,will,may,"
    "might,have,has,had,i,we,you,they,he,she,it,my,our,your,their,me,us".split(",")
)

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")

# Jaccard-style threshold: shared / min(len) at or above this counts as strong
STRONG_OVERLAP_RATIO = 0.4
STRONG_OVERLAP_SHARED = 2

HEURISTIC_CONFIDENCE = 0.6


def tokens(text: str) -> list[str]:
    """Lowercased non-stopword tokens."""
    cleaned = _NON_ALNUM.sub(" ", (text or "").lower())
    return [w for w in cleaned.split() if w and w not in STOPWORDS]


def shares_token(a: list[str], b: list[str]) -> bool:
    """True if the token lists have any word in common."""
    return not set(a).isdisjoint(b)


def strong_overlap(candidate: list[str], target: list[str]) -> bool:
    """At least two shared tokens, or shared/min-length of 0.4 or more."""
    shared = len(set(candidate) & set(target))
    min_len = max(1, min(len(candidate), len(target)))
    return shared >= STRONG_OVERLAP_SHARED or shared / min_len >= STRONG_OVERLAP_RATIO


def _phrase_pattern(phrases: list[str]) -> re.Pattern[str]:
    # Longest first so "please continue" wins over "continue"
    ordered = sorted({p.strip().lower() for p in phrases if p.strip()}, key=len, reverse=True)
    if not ordered:
        return re.compile(r"(?!x)x")
    alternation = "|".join(r"\s+".join(re.escape(w) for w in p.split()) for p in ordered)
    return re.compile(rf"\b(?:{alternation})\b", re.IGNORECASE)


class Lexicon:
    """Compiled confirmation and negation grammars."""

    def __init__(
        self,
        confirmation_phrases: list[str],
        negation_markers: list[str],
    ) -> None:
        self._confirm = _phrase_pattern(confirmation_phrases)
        self._negation = _phrase_pattern(negation_markers)

    @classmethod
    def from_config(cls, config: LexiconConfig) -> Lexicon:
        return cls(config.confirmation_phrases, config.negation_markers)

    @classmethod
    def default(cls) -> Lexicon:
        from vantage.config.schema import LexiconConfig

        return cls.from_config(LexiconConfig())

    def is_confirmation(self, text: str) -> bool:
        """Explicit go-ahead phrasing; bare affirmatives do not count."""
        return bool(self._confirm.search(text or ""))

    def has_negation(self, text: str) -> bool:
        """Utterance contains a negation or correction marker."""
        return bool(self._negation.search(text or ""))


@dataclass
class CriterionHit:
    """A decision criterion detected in an utterance."""

    criterion: str
    weight: int
    confidence: float
    rationale: str


def _cost_weight(low: str) -> int:
    return 20 if "cheap" in low or "lower" in low else -30


def _commute_weight(low: str) -> int:
    return 20 if "short" in low or "<" in low else -10


def _safety_weight(low: str) -> int:
    return 15 if "quiet" in low or "safe" in low else -15


_CRITERIA: list[tuple[str, re.Pattern[str], int | Callable[[str], int]]] = [
    ("cost", re.compile(r"\b(cost|price|budget|expensive|cheap)\b"), _cost_weight),
    ("commute", re.compile(r"\b(commute|minutes|min|train|subway|walk)\b"), _commute_weight),
    ("space", re.compile(r"\b(space|bedroom|br|sq ?ft|size)\b"), 20),
    ("quality", re.compile(r"\b(quality|nice|renovated|modern|new)\b"), 15),
    ("safety", re.compile(r"\b(safe|crime|noisy|quiet)\b"), _safety_weight),
    ("risk", re.compile(r"\b(risk|uncertain|unstable)\b"), -20),
    ("convenience", re.compile(r"\b(convenient|near|close)\b"), 15),
]


def infer_criteria(utterance: str) -> list[CriterionHit]:
    """
    Detect decision criteria and a signed weight from a raw utterance.

    Args:
        utterance: Raw user text

    Returns:
        One hit per matching criterion, in lexicon order
    """
    low = (utterance or "").lower()
    hits: list[CriterionHit] = []
    for criterion, pattern, weight in _CRITERIA:
        match = pattern.search(low)
        if not match:
            continue
        value = weight(low) if callable(weight) else weight
        hits.append(
            CriterionHit(
                criterion=criterion,
                weight=int(value),
                confidence=HEURISTIC_CONFIDENCE,
                rationale=f"Heard: {match.group(0)}",
            )
        )
    return hits


_VERB_BASE = {
    "stay": "Stay",
    "staying": "Stay",
    "move": "Move",
    "moving": "Move",
    "buy": "Buy",
    "buying": "Buy",
    "rent": "Rent",
    "renting": "Rent",
    "switch": "Switch",
    "switching": "Switch",
    "keep": "Keep",
    "keeping": "Keep",
}

# Verb is case-insensitive, the object must be a capitalized phrase
_OPTION_PHRASE = re.compile(
    r"\b(?i:(stay(?:ing)?|mov(?:e|ing)|buy(?:ing)?|rent(?:ing)?|switch(?:ing)?|keep(?:ing)?))"
    r"\s+(?:(?i:(in|to|at|with))\s+)?"
    r"((?:[A-Z][\w'.]*)(?:\s+[A-Z][\w'.]*)*)"
)


def detect_options(text: str) -> list[str]:
    """
    Find option phrases such as "staying in Brandon" or "move to St. Pete".

    Returns:
        Normalized options ("Stay in Brandon"), deduplicated, in order of appearance
    """
    found: list[str] = []
    seen: set[str] = set()
    for match in _OPTION_PHRASE.finditer(text or ""):
        verb = _VERB_BASE.get(match.group(1).lower())
        if not verb:
            continue
        prep = (match.group(2) or "").lower()
        obj = match.group(3).rstrip(",;:")
        option = f"{verb} {prep} {obj}" if prep else f"{verb} {obj}"
        key = option.lower()
        if key not in seen:
            seen.add(key)
            found.append(option)
    return found


_LOCAL_SPLIT = re.compile(r"[,;]|\s+\band\b\s+|\s+\bor\b\s+|\s+\bthen\b\s+", re.IGNORECASE)


def split_local_facts(text: str, limit: int = 12) -> list[str]:
    """Split a locally recognized utterance into short provisional facts."""
    if not text or len(text.strip()) < 3:
        return []
    parts = [p.strip() for p in _LOCAL_SPLIT.split(text)]
    return [p for p in parts if len(p) > 2][:limit]
