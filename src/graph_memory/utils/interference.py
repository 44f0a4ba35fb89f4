"""
Lexical contradiction detection between two memories.

The conflict sweep finds non-core memory pairs that mention the same entity
(so they are about the same thing) and asks a classifier whether they
disagree. This module is the default classifier.

Design rationale:
    We can't run an LLM inside a maintenance sweep, so we use layered
    lexical signals:
    1. Negation asymmetry: one text negates what the other asserts
    2. Antonym pairs: the texts use opposing terms ("enabled" vs "disabled")
    3. Temporal supersession: one text says something changed ("no longer")

    Shared entity + contradiction signal = likely conflict.
    Shared entity alone = related, not contradictory.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass

# (text_a, text_b) -> signal types; empty means "not contradictory"
ContradictionClassifier = Callable[[str, str], list[str]]


@dataclass(frozen=True, slots=True)
class ContradictionSignal:
    """A detected contradiction between two texts."""

    signal_type: str  # "negation", "antonym", "temporal"
    confidence: float  # 0.0 to 1.0
    detail: str  # Human-readable explanation


# ── Negation patterns ──────────────────────────────────────────────────

_NEGATION_WORDS: frozenset[str] = frozenset({
    "not", "no", "never", "none", "neither", "nor",
    "dont", "doesnt", "didnt", "isnt", "wasnt", "arent", "werent",
    "cant", "couldnt", "shouldnt", "wouldnt", "wont", "hasnt", "havent",
    "without", "lack", "lacks", "lacking", "absent", "missing",
    "false", "incorrect", "wrong", "invalid",
})

# ── Antonym pairs (bidirectional) ──────────────────────────────────────

_ANTONYM_PAIRS: list[tuple[frozenset[str], frozenset[str]]] = [
    (frozenset({"enable", "enabled", "activate", "activated", "on"}),
     frozenset({"disable", "disabled", "deactivate", "deactivated", "off"})),
    (frozenset({"true", "yes", "correct", "right"}),
     frozenset({"false", "no", "incorrect", "wrong"})),
    (frozenset({"like", "likes", "love", "loves", "enjoy", "enjoys", "prefer", "prefers"}),
     frozenset({"dislike", "dislikes", "hate", "hates", "avoid", "avoids"})),
    (frozenset({"dark"}),
     frozenset({"light"})),
    (frozenset({"add", "added", "include", "included", "install", "installed"}),
     frozenset({"remove", "removed", "exclude", "excluded", "uninstall", "uninstalled"})),
    (frozenset({"success", "succeeded", "pass", "passed", "works", "working"}),
     frozenset({"fail", "failed", "failure", "broken", "crash", "crashed"})),
    (frozenset({"increase", "increased", "raise", "raised", "up", "higher", "more"}),
     frozenset({"decrease", "decreased", "lower", "lowered", "down", "less", "fewer"})),
    (frozenset({"start", "started", "begin", "began", "open", "opened"}),
     frozenset({"stop", "stopped", "end", "ended", "close", "closed"})),
    (frozenset({"allow", "allowed", "permit", "permitted", "accept", "accepted"}),
     frozenset({"deny", "denied", "reject", "rejected", "block", "blocked", "forbid"})),
    (frozenset({"required", "mandatory", "necessary", "must"}),
     frozenset({"optional", "unnecessary", "redundant"})),
]

# ── Temporal supersession patterns ─────────────────────────────────────

_TEMPORAL_SUPERSESSION_RE = re.compile(
    r"\b(?:"
    r"(?:no longer|not anymore|stopped|switched from|switched to|migrated from|moved away from|"
    r"moved to|replaced by|superseded by|previously|used to|was .+ now|changed .+ to|"
    r"updated .+ to)"
    r")\b",
    re.IGNORECASE,
)

_TOKEN_RE = re.compile(r"[a-z0-9]+(?:-[a-z0-9]+)*")


def _tokenize(text: str) -> set[str]:
    """Lowercase word set; apostrophes dropped so "don't" matches "dont"."""
    return set(_TOKEN_RE.findall(text.lower().replace("'", "").replace("’", "")))


def detect_contradiction_signals(
    text_a: str,
    text_b: str,
    similarity: float = 1.0,
    min_confidence: float = 0.3,
) -> list[ContradictionSignal]:
    """
    Detect contradiction signals between two memory texts.

    Args:
        text_a: First memory text
        text_b: Second memory text
        similarity: Topical relatedness of the pair (1.0 when they share an entity)
        min_confidence: Minimum confidence to report a signal

    Returns:
        List of ContradictionSignal objects (may be empty)
    """
    tokens_a = _tokenize(text_a)
    tokens_b = _tokenize(text_b)
    if not tokens_a or not tokens_b:
        return []

    candidates = (
        _check_negation_asymmetry(tokens_a, tokens_b, similarity),
        _check_antonym_pairs(tokens_a, tokens_b, similarity),
        _check_temporal_supersession(text_a, text_b, similarity),
    )
    return [s for s in candidates if s is not None and s.confidence >= min_confidence]


def classify_contradiction(text_a: str, text_b: str) -> list[str]:
    """Default conflict classifier: signal types found, empty if none."""
    return [signal.signal_type for signal in detect_contradiction_signals(text_a, text_b)]


def _check_negation_asymmetry(
    tokens_a: set[str],
    tokens_b: set[str],
    similarity: float,
) -> ContradictionSignal | None:
    """
    Same topic, but only one side negates.

    Confidence = similarity * topic overlap * negation strength.
    """
    negations_a = tokens_a & _NEGATION_WORDS
    negations_b = tokens_b & _NEGATION_WORDS

    negation_diff = len(negations_a) - len(negations_b)
    if negation_diff == 0:
        return None

    content_a = tokens_a - _NEGATION_WORDS
    content_b = tokens_b - _NEGATION_WORDS
    shared = content_a & content_b
    if not shared:
        return None

    overlap_ratio = len(shared) / max(len(content_a), len(content_b), 1)
    confidence = similarity * overlap_ratio * min(abs(negation_diff) / 2.0, 1.0)
    if confidence < 0.1:
        return None

    return ContradictionSignal(
        signal_type="negation",
        confidence=min(confidence, 1.0),
        detail=f"Negation asymmetry ({', '.join(sorted(negations_a | negations_b))}), "
               f"topic overlap: {len(shared)} words",
    )


def _check_antonym_pairs(
    tokens_a: set[str],
    tokens_b: set[str],
    similarity: float,
) -> ContradictionSignal | None:
    """One text uses a term, the other uses its opposite (and neither uses both)."""
    found_pairs: list[tuple[str, str]] = []

    for side_x, side_y in _ANTONYM_PAIRS:
        a_x, a_y = tokens_a & side_x, tokens_a & side_y
        b_x, b_y = tokens_b & side_x, tokens_b & side_y

        if (a_x and b_y) or (a_y and b_x):
            # Texts discussing both states are not contradicting each other
            if not (a_x and a_y) and not (b_x and b_y):
                found_pairs.append((min(a_x | a_y), min(b_x | b_y)))

    if not found_pairs:
        return None

    pair_factor = min(len(found_pairs) / 2.0, 1.0)
    confidence = similarity * (0.5 + 0.5 * pair_factor)

    pair_strs = [f"{a} vs {b}" for a, b in found_pairs[:3]]
    return ContradictionSignal(
        signal_type="antonym",
        confidence=min(confidence, 1.0),
        detail=f"Antonym pairs detected: {', '.join(pair_strs)}",
    )


def _check_temporal_supersession(text_a: str, text_b: str, similarity: float) -> ContradictionSignal | None:
    """Either text states that something changed ("no longer", "switched from")."""
    match = _TEMPORAL_SUPERSESSION_RE.search(text_a) or _TEMPORAL_SUPERSESSION_RE.search(text_b)
    if not match:
        return None

    return ContradictionSignal(
        signal_type="temporal",
        confidence=min(similarity * 0.8, 1.0),
        detail=f"Temporal supersession detected: '{match.group(0).strip()}'",
    )
