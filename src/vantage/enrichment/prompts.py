"""
Prompt builders for the enrichment calls.

Each builder renders a bounded transcript window into a single plain
text prompt for the Responses API.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Literal

from vantage.core.base import BUCKETS, ConversationTurn

Mode = Literal["live", "final"]

_WS = re.compile(r"\s+")


def _squash(text: str) -> str:
    return _WS.sub(" ", text or "").strip()


def render_transcript(window: Sequence[ConversationTurn]) -> str:
    """``ROLE: text`` lines, most recent last."""
    lines = [f"{turn.role.value.upper()}: {_squash(turn.text)}" for turn in window]
    return "\n".join(lines) or "(no prior turns)"


def _partial_line(partial: str | None) -> str:
    return f"\nPartial user utterance: {_squash(partial)}" if partial and partial.strip() else ""


def summary_prompt(
    window: Sequence[ConversationTurn],
    partial: str | None = None,
    mode: Mode = "final",
) -> str:
    if mode == "live":
        mode_line = (
            "A partial, in-progress user utterance may be included; "
            "integrate it cautiously without echoing."
        )
    else:
        mode_line = "This is a definitive post-turn refresh; reflect the latest assistant reply."
    return "\n".join(
        [
            "You are a real-time conversation summarizer.",
            "Return ONE updated summary (1-2 sentences) of the conversation so far.",
            "Capture intent, decisions, constraints, and next steps; "
            "avoid quoting or paraphrasing verbatim.",
            mode_line,
            "",
            "Transcript (most recent last):",
            render_transcript(window),
            _partial_line(partial),
            "",
            "Output: ONLY the updated summary as plain text.",
        ]
    )


def state_prompt(
    window: Sequence[ConversationTurn],
    partial: str | None = None,
    mode: Mode = "final",
) -> str:
    if mode == "live":
        mode_line = (
            "Partial user utterance may be present; include provisional items cautiously (no quotes)."
        )
    else:
        mode_line = "This is a definitive refresh; collapse repetition."
    return "\n".join(
        [
            'Extract a compact "Perspective State" JSON from the conversation.',
            "Focus on abstractions; deduplicate; keep each item short and specific.",
            mode_line,
            "",
            "Return ONLY a JSON object with exactly these top-level keys:",
            ", ".join(BUCKETS) + ".",
            "Each must be an array of strings.",
            "",
            "Transcript (most recent last):",
            render_transcript(window),
            _partial_line(partial),
        ]
    )


def proposals_prompt(
    window: Sequence[ConversationTurn],
    focus: str | None = None,
    mode: Mode = "live",
    min_count: int = 3,
    max_count: int = 8,
) -> str:
    return "\n".join(
        [
            "You help the user compare options for a decision.",
            f"Propose {min_count} to {max_count} small edits to a decision grid of options x criteria.",
            "Each edit is one of:",
            '  {"type":"add_option","option":"..."}',
            '  {"type":"add_criterion","criterion":"..."}',
            '  {"type":"set_cell","option":"...","criterion":"...","weight":-100..100,'
            '"confidence":0..1,"rationale":"..."}',
            "Only propose what the user actually said or clearly implied.",
            "Refresh after a finished turn." if mode == "final" else "The turn may still be in progress.",
            f"Decision focus: {focus}" if focus else "Decision focus: (not set)",
            "",
            "Transcript (most recent last):",
            render_transcript(window),
            "",
            'Return ONLY a JSON object: {"proposals":[...]}',
        ]
    )


def reply_instructions(
    summary: str,
    state_json: str,
    grid_json: str,
    text_only: bool = False,
) -> str:
    """Instructions attached to a staged candidate reply."""
    parts = [
        "You are the Perspective Coach. Speak English (US).",
        f"Conversation summary: {summary or '(none yet)'}",
        f"Current Perspective State: {state_json}",
        f"Decision grid: {grid_json}",
        "Reply briefly and ask one targeted follow-up question.",
        "When the user adds or corrects information, call update_state with a small add/remove patch.",
    ]
    if not text_only:
        parts.append("Speak calmly, at a relaxed pace, with short natural pauses.")
    return "\n".join(parts)


SESSION_INSTRUCTIONS = " ".join(
    [
        "You are the Perspective Coach. Speak English (US).",
        "Purpose: help the user clarify goals, facts, constraints, options, decisions, next steps, risks.",
        "When appropriate, call the tool update_state with a small patch (add/remove arrays) "
        "to update the live state.",
        "After updating state, continue speaking naturally and ask one targeted follow-up. "
        "Do not wait for tool results.",
    ]
)

GREETER_INSTRUCTIONS = " ".join(
    [
        "Let's set the decision definition together. Speak one short question at a time.",
        'Start by asking, in English: "What decision are you making?"',
        "As the user answers, call a tool named definition_greeter with partial fields you can infer "
        "(title, scope, time_window, participants[], axes[]).",
        "Do NOT mention JSON or field names to the user; keep the conversation natural.",
        "After each answer, ask the next brief question "
        "(scope, time window, participants, key axes, etc.).",
        'When you have enough to proceed, include status:"complete" in the tool output '
        "and give a short acknowledgement.",
    ]
)

NEXT_DEFINITION_QUESTION = (
    "Continue the decision definition. Ask the next brief question only, "
    "and call definition_greeter with any fields you can infer from the last answer."
)

DEFINITION_ACK = (
    "Briefly acknowledge that the decision definition is set, in one short sentence, "
    "and invite the user to start describing their situation."
)
