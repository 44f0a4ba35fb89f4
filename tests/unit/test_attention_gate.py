"""
Unit tests for the attention gate.

Covers length/word bounds per role, the noise corpus, injected-context and
tool markers, code-dump rejection, emoji caps and swappable policies.
"""

import dataclasses
import re
from typing import get_args

import pytest

from graph_memory.models.validators import MessageRole
from graph_memory.utils.attention_gate import (
    DEFAULT_GATE_POLICY,
    GatePolicy,
    count_emoji,
    is_noise,
    passes_gate,
)

SUBSTANTIVE = "I switched our deployment pipeline from Jenkins to GitHub Actions last week."


class TestLengthAndWords:
    def test_substantive_user_text_passes(self):
        assert passes_gate(SUBSTANTIVE) is True

    @pytest.mark.parametrize("text", ["", "   ", "short text here", "a b c d e f g h i j k l m n"])
    def test_below_min_chars_rejected(self, text):
        assert len(text.strip()) < 30
        assert passes_gate(text) is False
        assert passes_gate(text, role="assistant") is False

    def test_above_user_max_rejected_regardless_of_content(self):
        text = "My manager Alice prefers weekly reports on Fridays. " * 50
        assert len(text.strip()) > 2000
        assert passes_gate(text) is False

    def test_assistant_ceiling_lower_than_user(self):
        text = "The staging cluster runs in eu-west-1 and uses spot instances. " * 20
        text = text[:1500].strip()
        assert passes_gate(text, role="user") is True
        assert passes_gate(text, role="assistant") is False

    def test_too_few_words_rejected(self):
        text = "Supercalifragilistic expialidocious-antidisestablishment"
        assert len(text) >= 30
        assert passes_gate(text) is False

    def test_assistant_needs_more_words(self):
        text = "Your flight to Lisbon departs Tuesday at nine."
        assert passes_gate(text, role="user") is True
        assert passes_gate(text, role="assistant") is False

    def test_trimming_applies(self):
        assert passes_gate("   " + SUBSTANTIVE + "\n\n") is True


class TestNoiseCorpus:
    @pytest.mark.parametrize(
        "text",
        [
            "ok",
            "thanks!",
            "ok great",
            "yes please",
            "I need those",
            "ok I need those",
            "lol",
            "hmmmm",
            "\U0001f44d\U0001f44d",
            "<context>whatever was injected here</context>",
        ],
    )
    def test_short_noise_matches_corpus(self, text):
        assert is_noise(text) is True

    @pytest.mark.parametrize(
        "text",
        [
            "A new session was started via /new command, please say hello to the user",
            "Read HEARTBEAT.md if it exists and follow any instructions inside it carefully",
            "Pre-compaction memory flush: store anything durable from the conversation now",
            "System: [2025-01-01 10:00] reminder fired for the weekly standup meeting",
            "[cron:1a2b3c4d-0000] nightly backup job finished with exit code zero today",
            'GatewayRestart: {"reason": "update", "version": "1.2.3", "ok": true}',
            "[Mon 2025-01-06 10:00 UTC] A background task finished: indexing 5000 files",
        ],
    )
    def test_system_boilerplate_rejected(self, text):
        assert len(text) >= 30
        assert passes_gate(text) is False

    def test_short_ack_with_brief_context_rejected(self):
        assert is_noise("ok, sounds like a plan") is True

    def test_markup_wrapper_rejected(self):
        text = "<system-note>The user asked about billing several times today</system-note>"
        assert passes_gate(text) is False

    def test_substantive_text_is_not_noise(self):
        assert is_noise(SUBSTANTIVE) is False


class TestMarkers:
    def test_injected_context_rejected_for_both_roles(self):
        text = "<relevant-memories>user likes tea</relevant-memories> and here is more text to pass"
        assert passes_gate(text) is False
        text = "Context refresh follows <core-memory-refresh> with several stored facts about the user"
        assert passes_gate(text) is False
        assert passes_gate(text, role="assistant") is False

    @pytest.mark.parametrize("marker", ["<tool_result>", "<tool_use>", "<function_call>"])
    def test_tool_markup_rejected_for_assistant_only(self, marker):
        text = f"I looked this up for you and found the answer in the docs {marker} done."
        assert passes_gate(text, role="assistant") is False
        assert passes_gate(text, role="user") is True


class TestCodeDumps:
    def test_mostly_code_rejected_for_assistant(self):
        code = "```python\n" + "print('hello world')\n" * 10 + "```"
        text = f"Here is the script you asked for today: {code}"
        assert passes_gate(text, role="assistant") is False

    def test_some_code_allowed(self):
        text = (
            "The retry helper lives in the graph package and wraps every store call, "
            "so transient failures are retried three times before surfacing. "
            "Call it like `retry_on_transient(op)` from any service. ```x = 1```"
        )
        assert passes_gate(text, role="assistant") is True


class TestEmoji:
    def test_count_emoji(self):
        assert count_emoji("nice \U0001f600\U0001f600 work") == 2

    def test_emoji_cap(self):
        base = "We celebrated the product launch with the whole team yesterday "
        assert passes_gate(base + "\U0001f389" * 3) is True
        assert passes_gate(base + "\U0001f389" * 4) is False


class TestPolicy:
    def test_unknown_role_raises(self):
        with pytest.raises(ValueError):
            passes_gate(SUBSTANTIVE, role="system")

    def test_every_message_role_has_limits(self):
        limits = [DEFAULT_GATE_POLICY.limits_for(role) for role in get_args(MessageRole)]
        assert limits == [DEFAULT_GATE_POLICY.user, DEFAULT_GATE_POLICY.assistant]

    def test_policy_is_immutable(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            DEFAULT_GATE_POLICY.max_emoji = 10

    def test_custom_noise_table(self):
        policy = dataclasses.replace(
            DEFAULT_GATE_POLICY,
            noise_patterns=(re.compile(r"deployment pipeline", re.IGNORECASE),),
        )
        assert passes_gate(SUBSTANTIVE, policy=policy) is False
        assert passes_gate("ok I need those things fixed by tomorrow morning please", policy=policy) is True

    def test_custom_limits(self):
        policy = dataclasses.replace(DEFAULT_GATE_POLICY, max_emoji=0)
        assert passes_gate(SUBSTANTIVE + " \U0001f680", policy=policy) is False
        assert isinstance(policy, GatePolicy)
