"""
Turn coordinator.

Owns the conversation context and the realtime session. Routes inbound
channel events in arrival order, gates replies (single flight, cooldown,
speak-after-confirm, definition gate) and fans each user turn out to the
enrichment gateway in the background.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass, field
from typing import Any, Protocol

from vantage.config.schema import VantageConfig
from vantage.core.base import ChannelError, EnrichmentError, Role, Transcript
from vantage.core.lexicon import Lexicon, split_local_facts
from vantage.core.logging import get_logger
from vantage.core.parser import empty_state, parse_tool_arguments
from vantage.enrichment.prompts import (
    DEFINITION_ACK,
    GREETER_INSTRUCTIONS,
    NEXT_DEFINITION_QUESTION,
    SESSION_INSTRUCTIONS,
    Mode,
    reply_instructions,
)
from vantage.state.definition import DefinitionGate, DefinitionPack
from vantage.state.grid import DecisionGrid
from vantage.state.perspective import PatchResult, PerspectiveState, StatePatch, sanitize_patch
from vantage.state.proposals import Proposal, ProposalQueue, seed_proposals
from vantage.voice import events as ev
from vantage.voice.channel import AudioControls, ChannelSession, SoftwareAudioControls
from vantage.voice.outbox import Outbox
from vantage.voice.session import StagedReply, TurnPhase, TurnSession

logger = get_logger("voice.coordinator")

AUDIO_AND_TEXT: tuple[str, ...] = ("audio", "text")
TEXT_ONLY: tuple[str, ...] = ("text",)

# Caps on context embedded into reply instructions
_CONTEXT_CHARS = 2000


class Channel(Protocol):
    async def connect(self) -> ChannelSession: ...


class Gateway(Protocol):
    async def summarize(self, window: Any, partial: str | None = None, mode: Mode = "final") -> str: ...

    async def extract_state(
        self, window: Any, partial: str | None = None, mode: Mode = "final"
    ) -> dict[str, list[str]]: ...

    async def propose_actions(
        self, window: Any, focus: str | None = None, mode: Mode = "live"
    ) -> list[Proposal]: ...


@dataclass
class ConversationContext:
    """Everything one conversation owns, passed to every handler."""

    transcript: Transcript = field(default_factory=Transcript)
    summary: str = ""
    state: PerspectiveState = field(default_factory=PerspectiveState)
    grid: DecisionGrid = field(default_factory=DecisionGrid)
    gate: DefinitionGate = field(default_factory=DefinitionGate)
    session: TurnSession = field(default_factory=TurnSession)
    proposals: ProposalQueue = field(init=False)

    def __post_init__(self) -> None:
        self.proposals = ProposalQueue(self.grid, self.state)

    def reset(self) -> None:
        self.transcript.clear()
        self.summary = ""
        self.state.clear()
        self.state.gated = False
        self.grid.clear()
        self.proposals.clear()
        self.gate.reset()
        self.session.reset()


@dataclass
class CoordinatorCallbacks:
    """Callbacks for presentation."""

    on_status: Callable[[str], None] | None = None
    on_phase_change: Callable[[TurnPhase], None] | None = None
    on_transcript: Callable[[Role, str], None] | None = None
    on_assistant_delta: Callable[[str], None] | None = None
    on_summary: Callable[[str], None] | None = None
    on_state_change: Callable[[PatchResult], None] | None = None
    on_proposals: Callable[[list[Proposal]], None] | None = None
    on_reply_staged: Callable[[StagedReply | None], None] | None = None
    on_definition: Callable[[DefinitionPack, bool], None] | None = None
    on_error: Callable[[str], None] | None = None


class TurnCoordinator:
    """
    Push-to-talk turn lifecycle over a realtime voice channel.

    Features:
    - Hold-to-talk with a post-release commit window
    - At most one reply in flight, with a cooldown after each finalization
    - Unsolicited responses cancelled and muted until the buffer clears
    - Definition gate before ordinary state tracking
    - Background enrichment per user turn
    """

    def __init__(
        self,
        config: VantageConfig,
        channel: Channel,
        gateway: Gateway,
        audio: AudioControls | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._channel = channel
        self._gateway = gateway
        self.audio: AudioControls = audio or SoftwareAudioControls()
        self._clock = clock
        self._sleep = sleep

        self.context = ConversationContext(gate=DefinitionGate(config.definition.auto_accept))
        self.lexicon = Lexicon.from_config(config.lexicon)
        self.outbox = Outbox()

        self._callbacks = CoordinatorCallbacks()
        self._channel_session: ChannelSession | None = None
        self._router_task: asyncio.Task[None] | None = None
        self._flush_task: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

        self._tool_args: dict[str, list[str]] = {}
        self._tool_names: dict[str, str] = {}

        self._handlers: dict[type[ev.InboundEvent], Callable[[Any], Awaitable[None]]] = {
            ev.ResponseCreated: self._on_response_created,
            ev.ResponseTextDelta: self._on_text_delta,
            ev.ResponseTextDone: self._on_text_done,
            ev.ResponseDone: self._on_response_done,
            ev.TranscriptionCompleted: self._on_transcription_completed,
            ev.ToolArgumentsDelta: self._on_tool_delta,
            ev.ToolArgumentsDone: self._on_tool_done,
            ev.OutputBufferStarted: self._on_output_started,
            ev.OutputBufferStopped: self._on_output_stopped,
            ev.OutputBufferCleared: self._on_output_cleared,
            ev.ErrorEvent: self._on_error,
        }

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def session(self) -> TurnSession:
        return self.context.session

    @property
    def phase(self) -> TurnPhase:
        return self.context.session.phase

    @property
    def connected(self) -> bool:
        return self._channel_session is not None and self._channel_session.ready

    def set_callbacks(self, callbacks: CoordinatorCallbacks) -> None:
        self._callbacks = callbacks

    def _now(self) -> float:
        return self._clock()

    def _status(self, message: str) -> None:
        logger.info(message)
        if self._callbacks.on_status:
            self._callbacks.on_status(message)

    def _set_phase(self, target: TurnPhase) -> None:
        session = self.context.session
        if session.phase is target:
            return
        session.transition(target)
        if self._callbacks.on_phase_change:
            self._callbacks.on_phase_change(target)

    def _try_phase(self, target: TurnPhase) -> None:
        if self.context.session.can_transition(target):
            self._set_phase(target)

    # =========================================================================
    # Connection
    # =========================================================================

    async def connect(self) -> bool:
        """
        Open the realtime session, configure it and start the definition gate.

        Returns:
            False (with an "Error: ..." status) if the session could not be opened
        """
        self._status("Connecting...")
        try:
            self._channel_session = await self._channel.connect()
        except ChannelError as e:
            self._channel_session = None
            self._status(f"Error: {e}")
            if self._callbacks.on_error:
                self._callbacks.on_error(str(e))
            return False

        self.context.reset()
        self.outbox.clear()

        provider = self._config.provider
        self._send(
            ev.session_update(provider.voice, provider.transcription_model, SESSION_INSTRUCTIONS)
        )
        self._open_definition_gate()
        await self._flush()

        self._router_task = asyncio.create_task(self._route())
        self._flush_task = asyncio.create_task(self._flush_loop())
        self._status("Connected")
        return True

    async def disconnect(self) -> None:
        """Close the session and drop all conversation state."""
        for task in (self._router_task, self._flush_task, *self._tasks):
            if task is not None and not task.done():
                task.cancel()
        pending = [t for t in (self._router_task, self._flush_task, *self._tasks) if t is not None]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._router_task = None
        self._flush_task = None
        self._tasks.clear()

        if self._channel_session is not None:
            await self._channel_session.close()
            self._channel_session = None

        self.context.reset()
        self.outbox.clear()
        self._tool_args.clear()
        self._tool_names.clear()
        self.audio.detach_mic()
        self.audio.unmute_output()
        self._status("Disconnected")

    async def _route(self) -> None:
        """Consume inbound events strictly in arrival order."""
        if self._channel_session is None:
            return
        async for event in self._channel_session.events():
            await self.handle_event(event)
        self._status("Disconnected")

    async def _flush_loop(self) -> None:
        interval = self._config.turn.outbox_flush_ms / 1000
        while True:
            await asyncio.sleep(interval)
            await self._flush()

    def _send(self, message: dict[str, Any]) -> None:
        self.outbox.put(message)

    async def _flush(self) -> None:
        await self.outbox.flush(self._channel_session)

    # =========================================================================
    # Background work
    # =========================================================================

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background task failed: {exc!r}")

    async def drain(self) -> None:
        """Wait until no background work is pending."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # =========================================================================
    # Replies
    # =========================================================================

    def request_reply(
        self,
        instructions: str | None = None,
        modalities: tuple[str, ...] = AUDIO_AND_TEXT,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """
        Ask the provider for one response, subject to single flight.

        Dropped (not queued) while a response is tracked, a request is
        pending, or within the cooldown after the last finalization.

        Returns:
            True if the request was queued for sending
        """
        session = self.context.session
        cooldown = self._config.turn.reply_cooldown_ms / 1000
        if not session.can_request_reply(self._now(), cooldown):
            logger.debug("Reply request dropped (in flight or cooling down)")
            return False
        session.reply_requested = True
        self._send(ev.create_response(instructions, modalities, metadata))
        return True

    def _reply_context(self, text_only: bool = False) -> str:
        ctx = self.context
        return reply_instructions(
            ctx.summary,
            json.dumps(ctx.state.snapshot())[:_CONTEXT_CHARS],
            json.dumps(ctx.grid.snapshot())[:_CONTEXT_CHARS],
            text_only=text_only,
        )

    def _stage_reply(self) -> None:
        staged = StagedReply(self._reply_context(), AUDIO_AND_TEXT)
        self.context.session.staged_reply = staged
        self._try_phase(TurnPhase.AWAITING_SPEAK_APPROVAL)
        if self._callbacks.on_reply_staged:
            self._callbacks.on_reply_staged(staged)

    async def confirm_speak(self) -> bool:
        """
        Send the staged reply.

        The instructions are rebuilt so they carry the latest summary,
        state and grid.

        Returns:
            True if a reply was requested
        """
        session = self.context.session
        if self.context.gate.is_open or session.staged_reply is None:
            return False
        staged = session.staged_reply
        if not self.request_reply(self._reply_context(), staged.modalities):
            return False
        session.staged_reply = None
        if self._callbacks.on_reply_staged:
            self._callbacks.on_reply_staged(None)
        await self._flush()
        return True

    # =========================================================================
    # Definition gate
    # =========================================================================

    def _open_definition_gate(self) -> None:
        self.context.gate.open()
        self.context.state.gated = True
        if self._callbacks.on_definition:
            self._callbacks.on_definition(self.context.gate.draft, True)
        self.request_reply(
            GREETER_INSTRUCTIONS, AUDIO_AND_TEXT, {"kind": ev.DEFINITION_GREETER_TOOL}
        )

    def _gate_closed(self) -> None:
        gate = self.context.gate
        self.context.state.gated = False
        if self._callbacks.on_definition and gate.accepted is not None:
            self._callbacks.on_definition(gate.accepted, False)
        self._status(f"Focus: {gate.accepted.label() if gate.accepted else '(set)'}")
        session = self.context.session
        if not self._acknowledge_definition() and session.response_id is None:
            # Only the cooldown is in the way; a tracked response retries on finalize
            self._spawn(self._acknowledge_later())

    def _acknowledge_definition(self) -> bool:
        gate = self.context.gate
        if gate.pending_acknowledgement and self.request_reply(DEFINITION_ACK, AUDIO_AND_TEXT):
            gate.mark_acknowledged()
            return True
        return False

    async def _acknowledge_later(self) -> None:
        await self._sleep(self._config.turn.reply_cooldown_ms / 1000)
        self._acknowledge_definition()
        await self._flush()

    async def accept_definition(self, pack: DefinitionPack | str | None = None) -> bool:
        """
        Accept a definition and close the gate.

        Args:
            pack: Pack, user-edited text (plain or JSON), or None for the current draft

        Returns:
            True if the gate closed

        Raises:
            ValueError: If text looks like JSON but does not parse
        """
        if isinstance(pack, str):
            pack = DefinitionPack.from_text(pack)
        if not self.context.gate.accept(pack):
            return False
        self._gate_closed()
        await self._flush()
        return True

    # =========================================================================
    # Push to talk
    # =========================================================================

    async def press_talk(self) -> bool:
        """
        Start holding: mute the assistant, clear the input buffer, open the mic.

        Ignored while the user holds or while the assistant still has the
        floor, including audio that plays out after its response finalized.
        """
        session = self.context.session
        if session.phase in (TurnPhase.SPEAKING, TurnPhase.HOLDING, TurnPhase.COMMITTING):
            return False
        if session.response_id is not None or session.assistant_audio_started:
            logger.debug("Hold refused while the assistant is speaking")
            return False
        self._set_phase(TurnPhase.HOLDING)
        session.hold_started_at = self._now()
        self.audio.mute_output()
        self._send(ev.clear_input_buffer())
        self.audio.attach_mic()
        await self._flush()
        return True

    async def release_talk(self, local_text: str | None = None) -> bool:
        """
        Stop holding and commit the captured audio.

        Holds shorter than the minimum are discarded without a commit.

        Args:
            local_text: Optional local recognizer text, applied as provisional facts

        Returns:
            True if the audio was committed
        """
        session = self.context.session
        turn_config = self._config.turn
        if not session.holding:
            return False

        held = self._now() - session.hold_started_at
        if held < turn_config.min_hold_ms / 1000:
            logger.debug(f"Hold too short ({held * 1000:.0f} ms), discarded")
            self._set_phase(TurnPhase.IDLE)
            self.audio.detach_mic()
            if not session.mute_until_cleared:
                self.audio.unmute_output()
            return False

        if local_text:
            facts = split_local_facts(local_text, self._config.enrichment.max_bucket_items)
            if facts:
                self._apply(StatePatch(add={"facts": facts}))

        session.open_commit_window(self._now(), turn_config.commit_window_ms / 1000)
        self._set_phase(TurnPhase.COMMITTING)
        self._send(ev.commit_input_buffer())
        await self._flush()

        await self._sleep(turn_config.commit_tail_ms / 1000)
        self.audio.detach_mic()
        if not session.mute_until_cleared:
            self.audio.unmute_output()
        if session.phase is TurnPhase.COMMITTING:
            self._set_phase(TurnPhase.AWAITING_TRANSCRIPT)
        return True

    async def submit_text(self, text: str) -> bool:
        """Handle a typed user turn."""
        text = (text or "").strip()
        if not text:
            return False
        self._begin_user_turn(text, typed=True)
        await self._flush()
        return True

    # =========================================================================
    # Event routing
    # =========================================================================

    async def handle_event(self, event: ev.InboundEvent) -> None:
        """Dispatch one inbound event, then flush the outbox."""
        handler = self._handlers.get(type(event))
        if handler is None:
            logger.debug(f"<- {event.type or 'unknown'} (ignored)")
        else:
            await handler(event)
        await self._flush()

    async def _on_response_created(self, event: ev.ResponseCreated) -> None:
        rid = event.response_id
        session = self.context.session
        if not rid or rid == session.response_id:
            return

        unsolicited = (
            not session.reply_requested
            or session.holding
            or session.response_id is not None
        )
        if unsolicited:
            logger.info(f"Cancelling unsolicited response {rid}")
            self._send(ev.cancel_response(rid))
            if session.reply_requested and session.response_id is None:
                # Our own request arrived mid-hold; the cancel consumes it
                session.reply_requested = False
            if session.assistant_audio_started or session.holding:
                self.audio.mute_output()
                session.mute_until_cleared = True
            return

        session.response_id = rid
        session.reply_requested = False
        session.text_buffer = ""
        self._try_phase(TurnPhase.SPEAKING)

    async def _on_text_delta(self, event: ev.ResponseTextDelta) -> None:
        session = self.context.session
        if event.response_id is None or event.response_id != session.response_id:
            return
        session.text_buffer += event.delta
        if self._callbacks.on_assistant_delta:
            self._callbacks.on_assistant_delta(event.delta)

    async def _on_text_done(self, event: ev.ResponseTextDone) -> None:
        session = self.context.session
        if event.response_id is None or event.response_id != session.response_id:
            return
        if not session.text_buffer.strip() and event.text:
            session.text_buffer = event.text
        self._finalize(event.response_id)

    async def _on_response_done(self, event: ev.ResponseDone) -> None:
        session = self.context.session
        rid = event.response_id or session.response_id
        if rid is None or rid != session.response_id:
            return
        self._finalize(rid)

    def _finalize(self, rid: str) -> None:
        """
        Close out a response exactly once.

        Appends the assistant text, then (gate closed) reconciles state,
        refreshes the summary and stages the next reply.
        """
        ctx = self.context
        session = ctx.session
        if rid in session.finalized_ids:
            return
        session.finalized_ids.add(rid)

        text = session.text_buffer.strip()
        session.text_buffer = ""
        session.response_id = None
        session.last_reply_at = self._now()

        if text:
            ctx.transcript.append(Role.ASSISTANT, text)
            if self._callbacks.on_transcript:
                self._callbacks.on_transcript(Role.ASSISTANT, text)

        # A hold in progress keeps its phase; release drives it from here
        holding = session.holding
        if not holding:
            self._try_phase(TurnPhase.RECONCILING)

        if ctx.gate.is_open:
            if not holding:
                self._try_phase(TurnPhase.IDLE)
            return

        self._spawn(self._refresh_after_reply(session.turn))
        if self._config.turn.speak_policy == "confirm" and ctx.transcript.last_user_text():
            self._stage_reply()
        elif not holding:
            self._try_phase(TurnPhase.IDLE)

        if ctx.gate.pending_acknowledgement:
            self._spawn(self._acknowledge_later())

    async def _on_transcription_completed(self, event: ev.TranscriptionCompleted) -> None:
        text = event.transcript.strip()
        if not text:
            return
        if not self.context.session.accept_transcript(self._now()):
            logger.info("Ignoring transcript outside the manual commit window")
            return
        self._begin_user_turn(text, typed=False)

    async def _on_tool_delta(self, event: ev.ToolArgumentsDelta) -> None:
        if not event.call_id:
            return
        self._tool_args.setdefault(event.call_id, []).append(event.delta)
        if event.name:
            self._tool_names[event.call_id] = event.name

    async def _on_tool_done(self, event: ev.ToolArgumentsDone) -> None:
        call_id = event.call_id
        parts = self._tool_args.pop(call_id, [])
        name = event.name or self._tool_names.pop(call_id, "")
        self._tool_names.pop(call_id, None)
        raw = event.arguments if event.arguments is not None else "".join(parts)
        args = parse_tool_arguments(raw)

        output: dict[str, Any]
        if name == ev.UPDATE_STATE_TOOL:
            patch = sanitize_patch(args, self._config.enrichment.max_bucket_items)
            result = self._apply(patch)
            output = {"ok": True, "added": len(result.added), "removed": len(result.removed)}
        elif name == ev.DEFINITION_GREETER_TOOL:
            gate = self.context.gate
            closed = gate.update_draft(args)
            if self._callbacks.on_definition:
                self._callbacks.on_definition(gate.draft, gate.is_open)
            if closed:
                self._gate_closed()
            output = {"ok": True, "status": "complete" if closed else "draft"}
        else:
            logger.warning(f"Unknown tool call: {name!r}")
            output = {"ok": False, "error": f"unknown tool {name}"}

        if call_id:
            self._send(ev.function_call_output(call_id, output))

    async def _on_output_started(self, event: ev.OutputBufferStarted) -> None:
        session = self.context.session
        session.assistant_audio_started = True
        if not session.holding:
            self.audio.detach_mic()

    async def _on_output_stopped(self, event: ev.OutputBufferStopped) -> None:
        self.context.session.assistant_audio_started = False

    async def _on_output_cleared(self, event: ev.OutputBufferCleared) -> None:
        session = self.context.session
        session.assistant_audio_started = False
        if session.mute_until_cleared and not session.holding:
            self.audio.unmute_output()
            session.mute_until_cleared = False

    async def _on_error(self, event: ev.ErrorEvent) -> None:
        session = self.context.session
        if event.code == ev.EMPTY_BUFFER_ERROR:
            logger.info("Commit rejected: nothing was captured")
            session.clear_commit()
            if session.phase in (TurnPhase.COMMITTING, TurnPhase.AWAITING_TRANSCRIPT):
                self._set_phase(TurnPhase.IDLE)
            return

        logger.warning(f"Provider error {event.code}: {event.message}")
        session.reply_requested = False
        if event.call_id:
            self._tool_args.pop(event.call_id, None)
            self._tool_names.pop(event.call_id, None)
        if self._callbacks.on_error:
            self._callbacks.on_error(event.message or event.code)

    # =========================================================================
    # User turns and enrichment
    # =========================================================================

    def _apply(self, patch: StatePatch | None) -> PatchResult:
        result = self.context.state.apply_patch(patch)
        if result.changed and self._callbacks.on_state_change:
            self._callbacks.on_state_change(result)
        return result

    def _begin_user_turn(self, text: str, typed: bool) -> None:
        ctx = self.context
        turn = ctx.session.next_turn()
        ctx.transcript.append(Role.USER, text)
        if self._callbacks.on_transcript:
            self._callbacks.on_transcript(Role.USER, text)
        if typed:
            self._send(ev.user_text_item(text))
        if ctx.session.response_id is None:
            # A tracked response keeps SPEAKING until it finalizes
            self._try_phase(TurnPhase.RECONCILING)

        if ctx.gate.is_open:
            self.request_reply(
                NEXT_DEFINITION_QUESTION,
                AUDIO_AND_TEXT,
                {"kind": ev.DEFINITION_GREETER_TOOL},
            )
            if ctx.session.phase is TurnPhase.RECONCILING:
                self._set_phase(TurnPhase.IDLE)
            return

        self._spawn(self._process_user_turn(turn, text, typed))

    async def _process_user_turn(self, turn: int, text: str, typed: bool) -> None:
        await self._enrich_user_turn(text)

        session = self.context.session
        if session.turn != turn:
            logger.debug(f"Turn {turn} superseded, skipping reply gating")
            return

        policy = self._config.turn.speak_policy
        confirmed = self.lexicon.is_confirmation(text)

        if confirmed and session.staged_reply is not None:
            await self.confirm_speak()
            return

        if typed:
            modalities = AUDIO_AND_TEXT if policy == "auto" or confirmed else TEXT_ONLY
            self.request_reply(self._reply_context(modalities == TEXT_ONLY), modalities)
        elif policy == "auto" or confirmed:
            self.request_reply(self._reply_context(), AUDIO_AND_TEXT)
        elif policy == "text":
            self.request_reply(self._reply_context(text_only=True), TEXT_ONLY)
        else:
            self._stage_reply()

        if session.phase is TurnPhase.RECONCILING:
            self._set_phase(TurnPhase.IDLE)
        await self._flush()

    async def _enrich_user_turn(self, text: str) -> None:
        """Summary, extraction and proposal scouting, concurrently."""
        ctx = self.context
        size = self._config.enrichment.window_size
        window = ctx.transcript.window(size)

        summary, extracted, scouted = await asyncio.gather(
            self._gateway.summarize(window, mode="live"),
            self._gateway.extract_state(ctx.transcript.user_only(size), mode="live"),
            self._gateway.propose_actions(window, focus=ctx.gate.focus(), mode="live"),
            return_exceptions=True,
        )

        self._set_summary(summary)
        if isinstance(extracted, dict):
            self._reconcile(extracted, text)
        else:
            self._log_failure("State extraction", extracted)
            extracted = empty_state()

        if ctx.gate.is_open:
            return

        proposals = seed_proposals(extracted, text, ctx.grid, ctx.state)
        if isinstance(scouted, list):
            proposals.extend(scouted)
        else:
            self._log_failure("Proposal scout", scouted)

        if ctx.proposals.enqueue(proposals):
            self._proposals_changed()

    async def _refresh_after_reply(self, turn: int) -> None:
        """Final-mode reconciliation, then the authoritative summary."""
        ctx = self.context
        size = self._config.enrichment.window_size
        extracted, summary = await asyncio.gather(
            self._gateway.extract_state(ctx.transcript.user_only(size), mode="final"),
            self._gateway.summarize(ctx.transcript.window(size), mode="final"),
            return_exceptions=True,
        )
        if isinstance(extracted, dict):
            self._reconcile(extracted, ctx.transcript.last_user_text())
        else:
            self._log_failure("State extraction", extracted)
        self._set_summary(summary)
        if ctx.session.turn != turn:
            logger.debug(f"Refresh for turn {turn} completed after a newer turn started")

    def _reconcile(self, extracted: dict[str, list[str]], utterance: str) -> None:
        patch = self.context.state.reconcile(extracted, utterance, self.lexicon)
        if not patch.is_empty():
            self._apply(patch)

    def _set_summary(self, summary: Any) -> None:
        if isinstance(summary, str):
            if summary:
                self.context.summary = summary
                if self._callbacks.on_summary:
                    self._callbacks.on_summary(summary)
        else:
            self._log_failure("Summary", summary)

    @staticmethod
    def _log_failure(label: str, error: Any) -> None:
        if isinstance(error, EnrichmentError):
            logger.warning(f"{label} failed: {error}")
        elif isinstance(error, BaseException):
            logger.error(f"{label} failed: {error!r}")

    # =========================================================================
    # Proposal actions
    # =========================================================================

    def _proposals_changed(self) -> None:
        if self._callbacks.on_proposals:
            self._callbacks.on_proposals(self.context.proposals.pending)

    def accept_proposal(self, proposal_id: str) -> Proposal:
        proposal = self.context.proposals.accept(proposal_id)
        self._proposals_changed()
        return proposal

    def edit_proposal(self, proposal_id: str, **fields: Any) -> Proposal:
        return self.context.proposals.edit(proposal_id, **fields)

    def discard_proposal(self, proposal_id: str) -> Proposal:
        proposal = self.context.proposals.discard(proposal_id)
        self._proposals_changed()
        return proposal

    def toggle_anchor(self, proposal_id: str, area: str) -> list[str]:
        return self.context.proposals.toggle_anchor(proposal_id, area)
