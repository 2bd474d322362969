"""Realtime voice channel and turn coordination."""

from vantage.voice.channel import (
    AudioControls,
    ChannelSession,
    RealtimeChannel,
    SessionBootstrap,
    SessionCredential,
    SoftwareAudioControls,
)
from vantage.voice.coordinator import ConversationContext, CoordinatorCallbacks, TurnCoordinator
from vantage.voice.outbox import Outbox
from vantage.voice.session import InvalidTransitionError, StagedReply, TurnPhase, TurnSession

__all__ = [
    "AudioControls",
    "ChannelSession",
    "ConversationContext",
    "CoordinatorCallbacks",
    "InvalidTransitionError",
    "Outbox",
    "RealtimeChannel",
    "SessionBootstrap",
    "SessionCredential",
    "SoftwareAudioControls",
    "StagedReply",
    "TurnCoordinator",
    "TurnPhase",
    "TurnSession",
]
