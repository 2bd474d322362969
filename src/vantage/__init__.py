"""
Vantage - push-to-talk voice coaching with a live Perspective State.

Public API for library consumers.
"""

from vantage.config.loader import ConfigLoader
from vantage.config.schema import VantageConfig
from vantage.core.base import ConversationTurn, Role, Transcript
from vantage.core.logging import setup_logging
from vantage.enrichment.gateway import EnrichmentGateway
from vantage.state.definition import DefinitionGate, DefinitionPack
from vantage.state.grid import DecisionGrid
from vantage.state.perspective import PerspectiveState, StatePatch
from vantage.state.proposals import Proposal, ProposalQueue
from vantage.voice.channel import RealtimeChannel
from vantage.voice.coordinator import ConversationContext, CoordinatorCallbacks, TurnCoordinator

__version__ = "0.1.0"

__all__ = [
    # Core types
    "ConversationTurn",
    "Role",
    "Transcript",
    # State
    "DecisionGrid",
    "DefinitionGate",
    "DefinitionPack",
    "PerspectiveState",
    "Proposal",
    "ProposalQueue",
    "StatePatch",
    # Coordination
    "ConversationContext",
    "CoordinatorCallbacks",
    "EnrichmentGateway",
    "RealtimeChannel",
    "TurnCoordinator",
    # Config
    "ConfigLoader",
    "VantageConfig",
    "setup_logging",
]
