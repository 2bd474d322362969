"""
Core conversation types and error hierarchy.

The transcript is append-only and owned by the turn coordinator; every
enrichment call receives a bounded window of it.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Perspective State buckets, in display order
BUCKETS: tuple[str, ...] = (
    "goals",
    "facts",
    "questions",
    "options",
    "decisions",
    "next_steps",
    "risks",
)

BUCKET_LABELS: dict[str, str] = {
    "goals": "Goals",
    "facts": "Facts",
    "questions": "Questions",
    "options": "Options",
    "decisions": "Decisions",
    "next_steps": "Next steps",
    "risks": "Risks",
}


class VantageError(Exception):
    """Base class for Vantage errors."""


class EnrichmentError(VantageError):
    """An enrichment call failed (network, HTTP status or payload)."""


class ChannelError(VantageError):
    """The voice channel could not be established or used."""


class ChannelNotReadyError(ChannelError):
    """The voice channel is not open for sending."""


class SessionBootstrapError(ChannelError):
    """Ephemeral credential acquisition failed."""


class Role(str, Enum):
    """Conversation participant."""

    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class ConversationTurn:
    """A single utterance in the conversation."""

    role: Role
    text: str
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role.value, "text": self.text}


class Transcript:
    """Append-only ordered sequence of conversation turns."""

    def __init__(self) -> None:
        self._turns: list[ConversationTurn] = []

    def append(self, role: Role, text: str) -> ConversationTurn:
        """Append a turn and return it."""
        turn = ConversationTurn(role=role, text=text)
        self._turns.append(turn)
        return turn

    def window(self, size: int = 30) -> list[ConversationTurn]:
        """Most recent ``size`` turns, oldest first."""
        return self._turns[-size:] if size > 0 else []

    def user_only(self, size: int = 30) -> list[ConversationTurn]:
        """Most recent ``size`` user turns, oldest first."""
        users = [t for t in self._turns if t.role is Role.USER]
        return users[-size:] if size > 0 else []

    def last_user_text(self) -> str:
        """Text of the latest user turn, or empty string."""
        for turn in reversed(self._turns):
            if turn.role is Role.USER:
                return turn.text
        return ""

    def clear(self) -> None:
        self._turns.clear()

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[ConversationTurn]:
        return iter(self._turns)
