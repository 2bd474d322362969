"""
Realtime channel event vocabulary.

Inbound provider events are parsed into a closed set of dataclass
variants; anything unrecognized becomes ``UnknownEvent``. Outbound
messages are plain dicts built by the helpers at the bottom.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from vantage.core.base import BUCKETS
from vantage.core.logging import get_logger

logger = get_logger("voice.events")

EMPTY_BUFFER_ERROR = "input_audio_buffer_commit_empty"

UPDATE_STATE_TOOL = "update_state"
DEFINITION_GREETER_TOOL = "definition_greeter"


# =============================================================================
# Inbound
# =============================================================================


@dataclass
class InboundEvent:
    """Base for parsed provider events."""

    type: str = ""
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class ResponseCreated(InboundEvent):
    response_id: str | None = None


@dataclass
class ResponseTextDelta(InboundEvent):
    """Assistant text or audio-transcript fragment."""

    response_id: str | None = None
    delta: str = ""
    audio: bool = False


@dataclass
class ResponseTextDone(InboundEvent):
    """Assistant text or audio transcript finished."""

    response_id: str | None = None
    text: str = ""
    audio: bool = False


@dataclass
class ResponseDone(InboundEvent):
    response_id: str | None = None
    status: str = ""


@dataclass
class TranscriptionDelta(InboundEvent):
    item_id: str | None = None
    delta: str = ""


@dataclass
class TranscriptionCompleted(InboundEvent):
    item_id: str | None = None
    transcript: str = ""


@dataclass
class SpeechStarted(InboundEvent):
    pass


@dataclass
class SpeechStopped(InboundEvent):
    pass


@dataclass
class InputCommitted(InboundEvent):
    item_id: str | None = None


@dataclass
class ToolArgumentsDelta(InboundEvent):
    call_id: str = ""
    name: str = ""
    delta: str = ""


@dataclass
class ToolArgumentsDone(InboundEvent):
    call_id: str = ""
    name: str = ""
    arguments: str | None = None


@dataclass
class OutputBufferStarted(InboundEvent):
    pass


@dataclass
class OutputBufferStopped(InboundEvent):
    pass


@dataclass
class OutputBufferCleared(InboundEvent):
    pass


@dataclass
class ErrorEvent(InboundEvent):
    code: str = ""
    message: str = ""
    call_id: str | None = None


@dataclass
class UnknownEvent(InboundEvent):
    pass


def _response_id(data: dict[str, Any]) -> str | None:
    response = data.get("response")
    if isinstance(response, dict) and response.get("id"):
        return str(response["id"])
    rid = data.get("response_id")
    return str(rid) if rid else None


def _str(data: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str):
            return value
        if isinstance(value, list):
            return " ".join(v for v in value if isinstance(v, str))
    return ""


def _created(t: str, d: dict[str, Any]) -> InboundEvent:
    return ResponseCreated(t, d, response_id=_response_id(d) or d.get("id"))


def _text_delta(t: str, d: dict[str, Any]) -> InboundEvent:
    return ResponseTextDelta(t, d, _response_id(d), _str(d, "delta"), "audio" in t)


def _text_done(t: str, d: dict[str, Any]) -> InboundEvent:
    return ResponseTextDone(t, d, _response_id(d), _str(d, "text", "transcript"), "audio" in t)


def _done(t: str, d: dict[str, Any]) -> InboundEvent:
    response = d.get("response") if isinstance(d.get("response"), dict) else {}
    return ResponseDone(t, d, _response_id(d) or d.get("id"), str(response.get("status") or ""))


def _transcription_delta(t: str, d: dict[str, Any]) -> InboundEvent:
    return TranscriptionDelta(t, d, d.get("item_id"), _str(d, "delta"))


def _transcription_done(t: str, d: dict[str, Any]) -> InboundEvent:
    text = _str(d, "transcript", "text")
    item = d.get("item")
    if not text and isinstance(item, dict):
        text = _str(item, "transcript")
    return TranscriptionCompleted(t, d, d.get("item_id"), text.strip())


def _tool_delta(t: str, d: dict[str, Any]) -> InboundEvent:
    return ToolArgumentsDelta(t, d, str(d.get("call_id") or ""), str(d.get("name") or ""), _str(d, "delta"))


def _tool_done(t: str, d: dict[str, Any]) -> InboundEvent:
    args = d.get("arguments")
    return ToolArgumentsDone(
        t,
        d,
        str(d.get("call_id") or ""),
        str(d.get("name") or ""),
        args if isinstance(args, str) else None,
    )


def _error(t: str, d: dict[str, Any]) -> InboundEvent:
    err = d.get("error") if isinstance(d.get("error"), dict) else {}
    call_id = err.get("call_id") or err.get("event_id")
    return ErrorEvent(t, d, str(err.get("code") or ""), str(err.get("message") or ""), call_id)


_PARSERS: dict[str, Callable[[str, dict[str, Any]], InboundEvent]] = {
    "response.created": _created,
    "response.text.delta": _text_delta,
    "response.output_text.delta": _text_delta,
    "response.audio_transcript.delta": _text_delta,
    "response.output_audio_transcript.delta": _text_delta,
    "response.text.done": _text_done,
    "response.output_text.done": _text_done,
    "response.audio_transcript.done": _text_done,
    "response.output_audio_transcript.done": _text_done,
    "response.done": _done,
    "response.completed": _done,
    "conversation.item.input_audio_transcription.delta": _transcription_delta,
    "conversation.item.input_audio_transcription.completed": _transcription_done,
    "input_audio_transcription.completed": _transcription_done,
    "input_audio_buffer.speech_started": lambda t, d: SpeechStarted(t, d),
    "input_audio_buffer.speech_stopped": lambda t, d: SpeechStopped(t, d),
    "input_audio_buffer.committed": lambda t, d: InputCommitted(t, d, d.get("item_id")),
    "response.function_call_arguments.delta": _tool_delta,
    "response.function_call_arguments.done": _tool_done,
    "output_audio_buffer.started": lambda t, d: OutputBufferStarted(t, d),
    "output_audio_buffer.stopped": lambda t, d: OutputBufferStopped(t, d),
    "output_audio_buffer.cleared": lambda t, d: OutputBufferCleared(t, d),
    "error": _error,
}


def parse_event(message: str | bytes | dict[str, Any]) -> InboundEvent:
    """
    Parse one provider message into an event variant.

    Malformed messages become ``UnknownEvent`` rather than raising.
    """
    data: Any = message
    if isinstance(message, (str, bytes)):
        try:
            data = json.loads(message)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.debug("Discarding non-JSON channel message")
            return UnknownEvent("", {})

    if not isinstance(data, dict):
        return UnknownEvent("", {})

    event_type = str(data.get("type") or "")
    parser = _PARSERS.get(event_type)
    if parser is None:
        return UnknownEvent(event_type, data)
    return parser(event_type, data)


# =============================================================================
# Outbound
# =============================================================================


def create_response(
    instructions: str | None = None,
    modalities: Sequence[str] = ("audio", "text"),
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    response: dict[str, Any] = {"modalities": list(modalities)}
    if instructions:
        response["instructions"] = instructions
    if metadata:
        response["metadata"] = metadata
    return {"type": "response.create", "response": response}


def cancel_response(response_id: str) -> dict[str, Any]:
    return {"type": "response.cancel", "response_id": response_id}


def clear_input_buffer() -> dict[str, Any]:
    return {"type": "input_audio_buffer.clear"}


def commit_input_buffer() -> dict[str, Any]:
    return {"type": "input_audio_buffer.commit"}


def user_text_item(text: str) -> dict[str, Any]:
    return {
        "type": "conversation.item.create",
        "item": {
            "type": "message",
            "role": "user",
            "content": [{"type": "input_text", "text": text}],
        },
    }


def function_call_output(call_id: str, output: dict[str, Any]) -> dict[str, Any]:
    """Tool acknowledgement; always sent so the provider's turn does not stall."""
    return {
        "type": "conversation.item.create",
        "item": {
            "type": "function_call_output",
            "call_id": call_id,
            "output": json.dumps(output),
        },
    }


def _bucket_arrays() -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {b: {"type": "array", "items": {"type": "string"}} for b in BUCKETS},
        "additionalProperties": False,
    }


def tool_definitions() -> list[dict[str, Any]]:
    """Function tools the voice model may call."""
    return [
        {
            "type": "function",
            "name": UPDATE_STATE_TOOL,
            "description": "Add or remove short items in the live Perspective State.",
            "parameters": {
                "type": "object",
                "properties": {"add": _bucket_arrays(), "remove": _bucket_arrays()},
                "additionalProperties": False,
            },
        },
        {
            "type": "function",
            "name": DEFINITION_GREETER_TOOL,
            "description": "Record partial fields of the decision definition.",
            "parameters": {
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "scope": {"type": "string"},
                    "time_window": {"type": "string"},
                    "participants": {"type": "array", "items": {"type": "string"}},
                    "axes": {"type": "array", "items": {"type": "string"}},
                    "status": {"type": "string", "enum": ["draft", "complete"]},
                },
            },
        },
    ]


def session_update(
    voice: str,
    transcription_model: str,
    instructions: str | None = None,
) -> dict[str, Any]:
    """Configure voice, transcription and manual (client-committed) turns."""
    session: dict[str, Any] = {
        "voice": voice,
        "input_audio_transcription": {"model": transcription_model},
        "turn_detection": None,
        "tools": tool_definitions(),
        "tool_choice": "auto",
    }
    if instructions:
        session["instructions"] = instructions
    return {"type": "session.update", "session": session}
