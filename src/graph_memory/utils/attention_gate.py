"""
Attention gate: cheap heuristic filter applied before anything is stored.

Rejects obvious conversational noise without a model call. Everything that
passes is persisted; later sweeps (decay, dedup, conflicts) decide what is
worth keeping long term.

Design rationale:
    The rule table is data, not control flow. ``GatePolicy`` is a frozen
    dataclass holding the noise patterns, markers and per-role limits, so a
    caller can swap in a different table (or build limits from configuration)
    and test gate rules without touching the rest of the engine.

    Assistant turns get a stricter policy than user turns: a lower length
    ceiling, a higher word floor, and extra rejection of code dumps and
    tool-call markup.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import get_args

from ..config import GateSettings
from ..models.validators import MessageRole

# ── Noise corpus ───────────────────────────────────────────────────────

_NOISE_PATTERN_SOURCES: tuple[str, ...] = (
    # Greetings / acknowledgments
    r"^(hi|hey|hello|yo|sup|ok|okay|sure|thanks|thank you|thx|ty|yep|yup|nope|no|yes|yeah|cool|nice|great"
    r"|got it|sounds good|perfect|alright|fine|noted|ack|kk|k)\s*[.!?]*$",
    # Two-word affirmations: "ok great", "yes please"
    r"^(ok|okay|yes|yeah|yep|sure|no|nope|alright|right|fine|cool|nice|great)\s+"
    r"(great|good|sure|thanks|please|ok|fine|cool|yeah|perfect|noted|absolutely|definitely|exactly)\s*[.!?]*$",
    # Deictic: "let me check it", "ok I need those"
    r"^(ok[,.]?\s+)?(i('ll|'m|'d|'ve)?\s+)?(just\s+)?"
    r"(need|want|got|have|let|let's|let me|give me|send|do|did|try|check|see|look at|test|take|get|go|use)\s+"
    r"(it|that|this|those|these|them|some|one|the|a|an|me|him|her|us)\s*"
    r"(out|up|now|then|too|again|later|first|here|there|please)?\s*[.!?]*$",
    # Short ack with brief trailing context: "ok, will do that"
    r"^(ok|okay|yes|yeah|yep|sure|no|nope|right|alright|fine|cool|nice|great|perfect)[,.]?\s+.{0,20}$",
    # Exclamations / fillers
    r"^(hmm+|huh|haha|ha|lol|lmao|rofl|nah|meh|idk|brb|ttyl|omg|wow|whoa|welp|oops|ooh|aah|ugh|bleh|pfft|smh"
    r"|ikr|tbh|imo|fwiw|np|nvm|nm|wut|wat|wha|heh|tsk|sigh|yay|woo+|boo|dang|darn|geez|gosh|sheesh|oof)\s*[.!?]*$",
    # Near-empty
    r"^\S{0,3}$",
    # Pure emoji (symbols, pictographs, variation selector, ZWJ)
    "^[\\s\u2600-\u27bf\ufe0f\u200d\U0001f000-\U0001faff]+$",
    # Raw markup wrapper
    r"^<[a-z-]+>[\s\S]*</[a-z-]+>$",
    # Session reset banner
    r"^A new session was started via",
    # Heartbeat prompt
    r"Read HEARTBEAT\.md if it exists",
    # Compaction prompt
    r"^Pre-compaction memory flush",
    # System timestamp messages (cron output, reminders, exec reports)
    r"^System:\s*\[",
    # Cron job wrapper
    r"^\[cron:[0-9a-f-]+",
    # Gateway restart payload
    r"^GatewayRestart:\s*\{",
    # Background task completion report
    r"^\[\w{3}\s+\d{4}-\d{2}-\d{2}\s.*\]\s*A background task",
)

DEFAULT_NOISE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(source, re.IGNORECASE) for source in _NOISE_PATTERN_SOURCES
)

# Markers the memory system injects into prompts; never store our own output
INJECTED_CONTEXT_MARKERS: tuple[str, ...] = ("<relevant-memories>", "<core-memory-refresh>")

TOOL_MARKUP_MARKERS: tuple[str, ...] = ("<tool_result>", "<tool_use>", "<function_call>")

_EMOJI_RE = re.compile("[\U0001f300-\U0001f9ff]")
_CODE_FENCE_RE = re.compile(r"```[\s\S]*?```")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class RoleLimits:
    """Length and word-count bounds for one speaker role."""

    min_chars: int
    max_chars: int
    min_words: int


@dataclass(frozen=True)
class GatePolicy:
    """Immutable rule table for the attention gate."""

    user: RoleLimits = RoleLimits(min_chars=30, max_chars=2000, min_words=5)
    assistant: RoleLimits = RoleLimits(min_chars=30, max_chars=1000, min_words=10)
    noise_patterns: tuple[re.Pattern[str], ...] = DEFAULT_NOISE_PATTERNS
    injected_markers: tuple[str, ...] = INJECTED_CONTEXT_MARKERS
    tool_markers: tuple[str, ...] = TOOL_MARKUP_MARKERS
    max_emoji: int = 3
    # Assistant turns with more than this share of characters in ``` fences are code dumps
    max_code_ratio: float = 0.5

    @classmethod
    def from_settings(cls, gate: GateSettings) -> GatePolicy:
        """Build a policy whose limits come from configuration (default noise table)."""
        return cls(
            user=RoleLimits(gate.min_chars, gate.user_max_chars, gate.user_min_words),
            assistant=RoleLimits(gate.min_chars, gate.assistant_max_chars, gate.assistant_min_words),
            max_emoji=gate.max_emoji,
            max_code_ratio=gate.max_code_ratio,
        )

    def limits_for(self, role: MessageRole) -> RoleLimits:
        if role not in get_args(MessageRole):
            raise ValueError(f"Unknown role: {role!r}. Use 'user' or 'assistant'")
        return self.user if role == "user" else self.assistant


DEFAULT_GATE_POLICY = GatePolicy()


def count_words(text: str) -> int:
    stripped = text.strip()
    return len(_WHITESPACE_RE.split(stripped)) if stripped else 0


def count_emoji(text: str) -> int:
    return len(_EMOJI_RE.findall(text))


def code_fence_chars(text: str) -> int:
    """Characters inside ``` fenced blocks, fences included."""
    return sum(len(m.group(0)) for m in _CODE_FENCE_RE.finditer(text))


def is_noise(text: str, policy: GatePolicy = DEFAULT_GATE_POLICY) -> bool:
    """True if the (trimmed) text matches any pattern of the noise corpus."""
    return any(pattern.search(text) for pattern in policy.noise_patterns)


def passes_gate(text: str, role: MessageRole = "user", policy: GatePolicy = DEFAULT_GATE_POLICY) -> bool:
    """
    Decide whether a conversational turn is worth retaining.

    Args:
        text: Raw turn text
        role: "user" or "assistant" (assistant is stricter)
        policy: Rule table to evaluate against

    Returns:
        True to retain, False to drop.

    Raises:
        ValueError: If role is not "user" or "assistant".
    """
    limits = policy.limits_for(role)
    trimmed = text.strip()

    if len(trimmed) < limits.min_chars or len(trimmed) > limits.max_chars:
        return False

    if count_words(trimmed) < limits.min_words:
        return False

    if role == "assistant":
        if code_fence_chars(trimmed) > len(trimmed) * policy.max_code_ratio:
            return False
        if any(marker in trimmed for marker in policy.tool_markers):
            return False

    if any(marker in trimmed for marker in policy.injected_markers):
        return False

    if is_noise(trimmed, policy):
        return False

    if count_emoji(trimmed) > policy.max_emoji:
        return False

    return True
