"""
Turn session state machine.

One TurnSession lives for the duration of a connection. Phase changes go
through ``transition()``, which rejects edges missing from the table.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto

from vantage.core.base import VantageError
from vantage.core.logging import get_logger

logger = get_logger("voice.session")


class InvalidTransitionError(VantageError):
    """A phase change not allowed by the transition table."""


class TurnPhase(Enum):
    """Per-turn phases."""

    IDLE = auto()
    HOLDING = auto()
    COMMITTING = auto()
    AWAITING_TRANSCRIPT = auto()
    RECONCILING = auto()
    AWAITING_SPEAK_APPROVAL = auto()
    SPEAKING = auto()


_ALLOWED: dict[TurnPhase, frozenset[TurnPhase]] = {
    TurnPhase.IDLE: frozenset(
        {TurnPhase.HOLDING, TurnPhase.RECONCILING, TurnPhase.SPEAKING}
    ),
    TurnPhase.HOLDING: frozenset({TurnPhase.COMMITTING, TurnPhase.IDLE}),
    TurnPhase.COMMITTING: frozenset(
        {
            TurnPhase.AWAITING_TRANSCRIPT,
            TurnPhase.RECONCILING,
            TurnPhase.IDLE,
            TurnPhase.SPEAKING,
        }
    ),
    TurnPhase.AWAITING_TRANSCRIPT: frozenset(
        {TurnPhase.RECONCILING, TurnPhase.IDLE, TurnPhase.HOLDING, TurnPhase.SPEAKING}
    ),
    TurnPhase.RECONCILING: frozenset(
        {
            TurnPhase.AWAITING_SPEAK_APPROVAL,
            TurnPhase.IDLE,
            TurnPhase.HOLDING,
            TurnPhase.SPEAKING,
        }
    ),
    TurnPhase.AWAITING_SPEAK_APPROVAL: frozenset(
        {TurnPhase.SPEAKING, TurnPhase.HOLDING, TurnPhase.IDLE, TurnPhase.RECONCILING}
    ),
    TurnPhase.SPEAKING: frozenset({TurnPhase.RECONCILING, TurnPhase.IDLE}),
}


@dataclass
class StagedReply:
    """A candidate reply waiting for the user's go-ahead."""

    instructions: str
    modalities: tuple[str, ...] = ("audio", "text")


@dataclass
class TurnSession:
    """Coordinator-owned turn state."""

    phase: TurnPhase = TurnPhase.IDLE
    response_id: str | None = None
    reply_requested: bool = False
    staged_reply: StagedReply | None = None
    last_reply_at: float | None = None
    mute_until_cleared: bool = False
    assistant_audio_started: bool = False
    manual_commit: bool = False
    commit_deadline: float = 0.0
    hold_started_at: float = 0.0
    turn: int = 0
    text_buffer: str = ""
    finalized_ids: set[str] = field(default_factory=set)

    @property
    def holding(self) -> bool:
        return self.phase is TurnPhase.HOLDING

    def transition(self, target: TurnPhase) -> None:
        """
        Move to ``target``.

        Raises:
            InvalidTransitionError: If the edge is not in the table
        """
        if target is self.phase:
            return
        if target not in _ALLOWED[self.phase]:
            raise InvalidTransitionError(f"{self.phase.name} -> {target.name}")
        logger.debug(f"Phase {self.phase.name} -> {target.name}")
        self.phase = target

    def can_transition(self, target: TurnPhase) -> bool:
        return target is self.phase or target in _ALLOWED[self.phase]

    def can_request_reply(self, now: float, cooldown: float) -> bool:
        """No tracked response, no pending request, and the cooldown has elapsed."""
        if self.response_id is not None or self.reply_requested:
            return False
        return self.last_reply_at is None or now - self.last_reply_at >= cooldown

    def open_commit_window(self, now: float, window: float) -> None:
        self.manual_commit = True
        self.commit_deadline = now + window

    def accept_transcript(self, now: float) -> bool:
        """
        Consume the commit window if a transcript may be accepted now.

        Only a manual commit that is still inside its window, with the user
        no longer holding, makes a transcript authoritative.
        """
        if self.holding or not self.manual_commit or now > self.commit_deadline:
            return False
        self.clear_commit()
        return True

    def clear_commit(self) -> None:
        self.manual_commit = False
        self.commit_deadline = 0.0

    def next_turn(self) -> int:
        self.turn += 1
        return self.turn

    def reset(self) -> None:
        """Back to a fresh session (used on disconnect)."""
        self.phase = TurnPhase.IDLE
        self.response_id = None
        self.reply_requested = False
        self.staged_reply = None
        self.last_reply_at = None
        self.mute_until_cleared = False
        self.assistant_audio_started = False
        self.clear_commit()
        self.hold_started_at = 0.0
        self.text_buffer = ""
        self.finalized_ids.clear()
