"""
Abstract presenter interface for UI decoupling.

Presenters render derived data only: they never mutate the
conversation context, and every user action goes back through the
coordinator.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from vantage.voice.coordinator import CoordinatorCallbacks

if TYPE_CHECKING:
    from vantage.core.base import Role
    from vantage.state.definition import DefinitionPack
    from vantage.state.perspective import PatchResult
    from vantage.state.proposals import Proposal
    from vantage.voice.coordinator import ConversationContext, TurnCoordinator
    from vantage.voice.session import StagedReply, TurnPhase


class Presenter(ABC):
    """Contract between the turn coordinator and a display."""

    def attach(self, coordinator: TurnCoordinator) -> None:
        """Route the coordinator's callbacks to this presenter."""
        self._context = coordinator.context
        coordinator.set_callbacks(
            CoordinatorCallbacks(
                on_status=self.show_status,
                on_phase_change=self.show_phase,
                on_transcript=self.show_turn,
                on_assistant_delta=self.show_assistant_delta,
                on_summary=self.show_summary,
                on_state_change=self._state_changed,
                on_proposals=self.show_proposals,
                on_reply_staged=self.show_reply_staged,
                on_definition=self.show_definition,
                on_error=self.show_error,
            )
        )

    @property
    def context(self) -> ConversationContext:
        return self._context

    def _state_changed(self, result: PatchResult) -> None:
        self.show_state_delta(result, self._context.state.snapshot())

    # === Status ===

    @abstractmethod
    def show_status(self, message: str) -> None:
        """Short human-readable status line."""
        ...

    def show_phase(self, phase: TurnPhase) -> None:
        """Turn phase changed.

        Optional - implementations may no-op.
        """
        _ = phase

    @abstractmethod
    def show_error(self, message: str) -> None: ...

    # === Conversation ===

    @abstractmethod
    def show_turn(self, role: Role, text: str) -> None:
        """A completed user or assistant turn."""
        ...

    def show_assistant_delta(self, delta: str) -> None:
        """Streaming assistant text.

        Optional - implementations may show only completed turns.
        """
        _ = delta

    @abstractmethod
    def show_summary(self, summary: str) -> None: ...

    # === State ===

    @abstractmethod
    def show_state_delta(self, result: PatchResult, snapshot: dict[str, list[str]]) -> None:
        """Entries added/removed, plus the full state after the change."""
        ...

    @abstractmethod
    def show_proposals(self, proposals: list[Proposal]) -> None: ...

    @abstractmethod
    def show_reply_staged(self, staged: StagedReply | None) -> None:
        """A reply is waiting for confirmation (None once it has been sent)."""
        ...

    @abstractmethod
    def show_definition(self, pack: DefinitionPack, is_open: bool) -> None: ...
