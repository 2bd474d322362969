"""Tests for the console presenter and command dispatch."""

from io import StringIO

import pytest
from conftest import FakeClock
from rich.console import Console
from vantage.core.base import Role
from vantage.state.definition import DefinitionPack
from vantage.state.grid import DecisionGrid
from vantage.state.perspective import PatchResult, StateEntry
from vantage.state.proposals import Proposal, ProposalKind
from vantage.ui.console import ConsolePresenter, ConsoleSession
from vantage.voice import events as ev
from vantage.voice.coordinator import TurnCoordinator
from vantage.voice.session import TurnPhase


def _presenter() -> tuple[ConsolePresenter, StringIO]:
    buffer = StringIO()
    return ConsolePresenter(Console(file=buffer, width=120, color_system=None)), buffer


async def _seed(coord: TurnCoordinator, clock: FakeClock) -> None:
    """Speak one turn that yields a criterion and a cell proposal."""
    coord.context.grid.add_option("Rent")
    await coord.press_talk()
    clock.advance(0.5)
    await coord.release_talk()
    await coord.handle_event(
        ev.TranscriptionCompleted("transcription", {}, "item_1", "cost matters a lot")
    )
    await coord.drain()


class TestConsolePresenter:
    """Tests for rendering."""

    def test_turns(self) -> None:
        """Test user lines and assistant panels."""
        presenter, buffer = _presenter()
        presenter.show_turn(Role.USER, "hello")
        presenter.show_turn(Role.ASSISTANT, "Hi, what are you deciding?")
        output = buffer.getvalue()
        assert "You: hello" in output
        assert "Coach" in output

    def test_state_delta(self) -> None:
        """Test added and removed entries are labelled by bucket."""
        presenter, buffer = _presenter()
        result = PatchResult(
            added=[StateEntry("facts", "f_1", "two kids")],
            removed=[StateEntry("next_steps", "n_1", "call realtor")],
        )
        presenter.show_state_delta(result, {})
        output = buffer.getvalue()
        assert "+ Facts: two kids" in output
        assert "- Next steps: call realtor" in output

    def test_proposals_table(self) -> None:
        """Test proposals are numbered from one."""
        presenter, buffer = _presenter()
        presenter.show_proposals(
            [Proposal(kind=ProposalKind.ADD_CRITERION, criterion="cost", id="gp_1")]
        )
        assert "Add criterion: cost" in buffer.getvalue()

    def test_grid(self) -> None:
        """Test the grid table shows signed weights and stats."""
        presenter, buffer = _presenter()
        grid = DecisionGrid()
        grid.set_cell("Rent", "cost", -30, 0.6, anchors=["Finances"])
        presenter.show_state({"facts": ["two kids"]}, grid)
        output = buffer.getvalue()
        assert "-30 (60%)" in output
        assert "1 options, 1 criteria, 1 cells (1 anchored)" in output

    def test_definition(self) -> None:
        """Test open drafts render as a panel and accepted packs as focus."""
        presenter, buffer = _presenter()
        presenter.show_definition(DefinitionPack(title="Relocate"), True)
        presenter.show_definition(DefinitionPack(title="Relocate"), False)
        output = buffer.getvalue()
        assert "Definition draft" in output
        assert "Focus: Relocate" in output


class TestConsoleSession:
    """Tests for command dispatch against a connected coordinator."""

    @pytest.fixture
    def console_session(self, ready) -> tuple[ConsoleSession, StringIO]:
        presenter, buffer = _presenter()
        presenter.attach(ready)
        return ConsoleSession(ready, presenter), buffer

    @pytest.mark.asyncio
    async def test_typed_line(self, console_session, ready) -> None:
        """Test plain lines become typed turns and are echoed."""
        session, buffer = console_session
        await session.dispatch("what about schools?")
        await ready.drain()
        assert ready.context.transcript.last_user_text() == "what about schools?"
        assert "You: what about schools?" in buffer.getvalue()

    @pytest.mark.asyncio
    async def test_hold_and_release(self, console_session, ready, clock) -> None:
        """Test /hold and /release drive push-to-talk."""
        session, _ = console_session
        await session.dispatch("/hold")
        assert ready.phase is TurnPhase.HOLDING
        clock.advance(0.5)
        await session.dispatch("/release two kids and a dog")
        assert ready.phase is TurnPhase.AWAITING_TRANSCRIPT
        assert ready.context.state.items("facts") == ["two kids", "a dog"]

    @pytest.mark.asyncio
    async def test_accept_by_number(self, console_session, ready, clock) -> None:
        """Test /accept uses one-based proposal numbers."""
        session, buffer = console_session
        await _seed(ready, clock)
        await session.dispatch("/accept 1")
        assert ready.context.grid.has_criterion("cost")
        assert "Accepted: Add criterion: cost" in buffer.getvalue()

    @pytest.mark.asyncio
    async def test_edit_and_anchor(self, console_session, ready, clock) -> None:
        """Test /edit clamps values and /anchor toggles life areas."""
        session, buffer = console_session
        await _seed(ready, clock)
        await session.dispatch("/edit 2 weight=250")
        await session.dispatch("/anchor 2 finances")
        cell = ready.context.proposals.pending[1]
        assert cell.weight == 100
        assert cell.anchors == ["Finances"]
        assert "Anchors: Finances" in buffer.getvalue()

    @pytest.mark.asyncio
    async def test_bad_proposal_number(self, console_session, ready, clock) -> None:
        """Test out-of-range numbers raise ValueError for the loop to report."""
        session, _ = console_session
        await _seed(ready, clock)
        with pytest.raises(ValueError, match="No proposal #9"):
            await session.dispatch("/accept 9")
        with pytest.raises(ValueError):
            await session.dispatch("/anchor 1 Work")

    @pytest.mark.asyncio
    async def test_discard(self, console_session, ready, clock) -> None:
        """Test /discard drops the proposal."""
        session, _ = console_session
        await _seed(ready, clock)
        before = len(ready.context.proposals)
        await session.dispatch("/discard 1")
        assert len(ready.context.proposals) == before - 1

    @pytest.mark.asyncio
    async def test_define_when_closed(self, console_session) -> None:
        """Test /define after the gate closed reports a status."""
        session, buffer = console_session
        await session.dispatch("/define something else")
        assert "Definition not accepted" in buffer.getvalue()

    @pytest.mark.asyncio
    async def test_confirm_without_staged(self, console_session) -> None:
        """Test /confirm with nothing staged."""
        session, buffer = console_session
        await session.dispatch("/confirm")
        assert "Nothing to confirm" in buffer.getvalue()

    @pytest.mark.asyncio
    async def test_state_and_unknown(self, console_session) -> None:
        """Test /state renders tables and unknown commands are reported."""
        session, buffer = console_session
        await session.dispatch("/state")
        await session.dispatch("/frobnicate")
        output = buffer.getvalue()
        assert "Perspective State" in output
        assert "Unknown command: /frobnicate" in output

    @pytest.mark.asyncio
    async def test_quit(self, console_session) -> None:
        """Test /quit stops the loop."""
        session, _ = console_session
        session._running = True
        await session.dispatch("/quit")
        assert not session._running


class TestDefineCommand:
    """Tests for /define while the gate is open."""

    @pytest.mark.asyncio
    async def test_define_text(self, coordinator, clock) -> None:
        """Test /define with text closes the gate."""
        presenter, buffer = _presenter()
        presenter.attach(coordinator)
        session = ConsoleSession(coordinator, presenter)
        await session.dispatch("/define Decide where to live next year")
        assert not coordinator.context.gate.is_open
        assert "Focus: Decide where to live next year" in buffer.getvalue()
