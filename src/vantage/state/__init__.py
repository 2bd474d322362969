"""Conversation state: Perspective State, decision grid, proposals and definition gate."""

from vantage.state.definition import DefinitionGate, DefinitionPack
from vantage.state.grid import LIFE_AREAS, Cell, DecisionGrid, GridStats
from vantage.state.perspective import (
    PatchResult,
    PerspectiveState,
    StateEntry,
    StatePatch,
    sanitize_patch,
)
from vantage.state.proposals import (
    Proposal,
    ProposalKind,
    ProposalNotFoundError,
    ProposalQueue,
    ProposalSource,
    seed_proposals,
)

__all__ = [
    "Cell",
    "DecisionGrid",
    "DefinitionGate",
    "DefinitionPack",
    "GridStats",
    "LIFE_AREAS",
    "PatchResult",
    "PerspectiveState",
    "Proposal",
    "ProposalKind",
    "ProposalNotFoundError",
    "ProposalQueue",
    "ProposalSource",
    "StateEntry",
    "StatePatch",
    "sanitize_patch",
    "seed_proposals",
]
