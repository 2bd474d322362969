"""
Console session using Rich and Prompt Toolkit.

Plain lines are typed turns; slash commands drive push-to-talk,
confirmation, the definition gate and the proposal queue.
"""

from __future__ import annotations

import json
from typing import Any

from prompt_toolkit import PromptSession
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from vantage.core.base import BUCKET_LABELS, BUCKETS, Role
from vantage.core.logging import get_logger
from vantage.state.definition import DefinitionPack
from vantage.state.grid import LIFE_AREAS, DecisionGrid
from vantage.state.perspective import PatchResult
from vantage.state.proposals import Proposal, ProposalKind, ProposalNotFoundError
from vantage.ui.presenter import Presenter
from vantage.voice.coordinator import TurnCoordinator
from vantage.voice.session import StagedReply

logger = get_logger("ui.console")

HELP_TEXT = """\
[bold]Commands[/]
  /hold                 start talking (hold)
  /release [text]       stop talking; optional local transcript
  /confirm              speak the staged reply
  /accept N             accept proposal N
  /edit N field=value   edit proposal N (weight, confidence, rationale, option, criterion)
  /discard N            discard proposal N
  /anchor N Area        toggle a life-area anchor on proposal N
  /define [text|json]   accept the definition (current draft if empty)
  /state                show state, grid and proposals
  /anchors              list life areas
  /quit                 disconnect and exit
Anything else is sent as a typed turn."""


class ConsolePresenter(Presenter):
    """Rich console rendering."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()
        self._streaming = False

    def show_status(self, message: str) -> None:
        style = "bold red" if message.startswith("Error") else "dim"
        self.console.print(f"[{style}]{message}[/]")

    def show_error(self, message: str) -> None:
        self.console.print(f"[bold red]Error:[/] {message}")

    def show_turn(self, role: Role, text: str) -> None:
        if self._streaming:
            self.console.print()
            self._streaming = False
        if role is Role.USER:
            self.console.print(f"[bold cyan]You:[/] {text}")
        else:
            self.console.print(
                Panel(text, title="[bold]Coach[/]", title_align="left", border_style="green")
            )

    def show_assistant_delta(self, delta: str) -> None:
        self._streaming = True
        self.console.print(delta, end="", style="dim green")

    def show_summary(self, summary: str) -> None:
        self.console.print(f"[magenta]Summary:[/] {summary}")

    def show_state_delta(self, result: PatchResult, snapshot: dict[str, list[str]]) -> None:
        for entry in result.added:
            self.console.print(f"[green]+ {BUCKET_LABELS[entry.bucket]}:[/] {entry.text}")
        for entry in result.removed:
            self.console.print(f"[red]- {BUCKET_LABELS[entry.bucket]}:[/] {entry.text}")

    def show_proposals(self, proposals: list[Proposal]) -> None:
        if not proposals:
            self.console.print("[dim]No pending proposals[/]")
            return
        table = Table(title="Proposals", show_lines=False)
        table.add_column("#", style="bold")
        table.add_column("Proposal")
        table.add_column("Source", style="dim")
        table.add_column("Anchors", style="yellow")
        for index, proposal in enumerate(proposals, start=1):
            anchors = ", ".join(proposal.anchors) if proposal.kind is ProposalKind.SET_CELL else ""
            table.add_row(str(index), proposal.describe(), proposal.source.value, anchors)
        self.console.print(table)

    def show_reply_staged(self, staged: StagedReply | None) -> None:
        if staged is not None:
            self.console.print("[bold yellow]Reply ready.[/] /confirm or say \"go ahead\" to hear it.")

    def show_definition(self, pack: DefinitionPack, is_open: bool) -> None:
        if is_open:
            if not pack.is_empty():
                self.console.print(
                    Panel(
                        json.dumps(pack.to_dict(), indent=2),
                        title="Definition draft",
                        subtitle="/define to accept",
                        border_style="yellow",
                    )
                )
        else:
            self.console.print(f"[bold green]Focus:[/] {pack.label()}")

    def show_state(self, snapshot: dict[str, list[str]], grid: DecisionGrid) -> None:
        """Full state, grid and stats."""
        table = Table(title="Perspective State")
        table.add_column("Bucket", style="cyan")
        table.add_column("Entries")
        for bucket in BUCKETS:
            entries = snapshot.get(bucket, [])
            table.add_row(BUCKET_LABELS[bucket], "\n".join(entries) or "[dim]-[/dim]")
        self.console.print(table)

        if grid.options or grid.criteria:
            grid_table = Table(title="Decision Grid")
            grid_table.add_column("Option", style="cyan")
            for criterion in grid.criteria:
                grid_table.add_column(criterion)
            for option in grid.options:
                row = [option]
                for criterion in grid.criteria:
                    cell = grid.get_cell(option, criterion)
                    row.append(f"{cell.weight:+d} ({round(cell.confidence * 100)}%)" if cell else "")
                grid_table.add_row(*row)
            self.console.print(grid_table)

        stats = grid.stats()
        self.console.print(
            f"[dim]{stats.options} options, {stats.criteria} criteria, "
            f"{stats.cells} cells ({stats.anchored} anchored)[/]"
        )


def _parse_fields(parts: list[str]) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    for part in parts:
        if "=" not in part:
            raise ValueError(f"Expected field=value, got {part!r}")
        key, value = part.split("=", 1)
        fields[key.strip()] = value.strip()
    return fields


class ConsoleSession:
    """Interactive loop around a connected coordinator."""

    def __init__(self, coordinator: TurnCoordinator, presenter: ConsolePresenter) -> None:
        self.coordinator = coordinator
        self.presenter = presenter
        self._prompt: PromptSession[str] | None = None
        self._running = False

    def _proposal_id(self, token: str) -> str:
        pending = self.coordinator.context.proposals.pending
        try:
            index = int(token)
        except ValueError as e:
            raise ValueError(f"Not a proposal number: {token}") from e
        if not 1 <= index <= len(pending):
            raise ValueError(f"No proposal #{index}")
        return pending[index - 1].id

    async def run(self) -> None:
        """Read and dispatch lines until /quit or EOF."""
        self.presenter.console.print(
            Panel(HELP_TEXT, title="Vantage", border_style="blue")
        )
        self._prompt = self._prompt or PromptSession()
        self._running = True
        while self._running:
            try:
                line = await self._prompt.prompt_async("> ")
            except (EOFError, KeyboardInterrupt):
                break
            try:
                await self.dispatch(line)
            except (ValueError, ProposalNotFoundError) as e:
                self.presenter.show_error(str(e))
        await self.coordinator.disconnect()

    async def dispatch(self, line: str) -> None:
        """Handle one input line."""
        line = line.strip()
        if not line:
            return
        if not line.startswith("/"):
            await self.coordinator.submit_text(line)
            return

        command, *args = line.split()
        coordinator = self.coordinator

        if command in ("/quit", "/exit"):
            self._running = False
        elif command == "/help":
            self.presenter.console.print(HELP_TEXT)
        elif command == "/hold":
            if not await coordinator.press_talk():
                self.presenter.show_status("Cannot talk right now")
        elif command == "/release":
            local_text = line[len(command) :].strip() or None
            await coordinator.release_talk(local_text)
        elif command == "/confirm":
            if not await coordinator.confirm_speak():
                self.presenter.show_status("Nothing to confirm")
        elif command == "/accept" and args:
            proposal = coordinator.accept_proposal(self._proposal_id(args[0]))
            self.presenter.show_status(f"Accepted: {proposal.describe()}")
        elif command == "/edit" and len(args) >= 2:
            proposal = coordinator.edit_proposal(self._proposal_id(args[0]), **_parse_fields(args[1:]))
            self.presenter.show_status(f"Edited: {proposal.describe()}")
        elif command == "/discard" and args:
            coordinator.discard_proposal(self._proposal_id(args[0]))
        elif command == "/anchor" and len(args) == 2:
            anchors = coordinator.toggle_anchor(self._proposal_id(args[0]), args[1])
            self.presenter.show_status(f"Anchors: {', '.join(anchors) or '(none)'}")
        elif command == "/define":
            text = line[len(command) :].strip()
            pack = DefinitionPack.from_text(text) if text else None
            if not await coordinator.accept_definition(pack):
                self.presenter.show_status("Definition not accepted (gate closed or empty)")
        elif command == "/state":
            context = coordinator.context
            self.presenter.show_state(context.state.snapshot(), context.grid)
            self.presenter.show_proposals(context.proposals.pending)
        elif command == "/anchors":
            self.presenter.console.print(", ".join(LIFE_AREAS))
        else:
            self.presenter.show_error(f"Unknown command: {line}. Type /help")
