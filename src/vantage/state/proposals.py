"""
Proposal queue for candidate grid edits.

Proposals come from the state extractor, the local keyword heuristics or
the proposal scout. Nothing reaches the decision grid until the user
accepts it; accepted, edited and discarded proposals leave the queue.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from vantage.core.base import VantageError
from vantage.core.lexicon import HEURISTIC_CONFIDENCE, infer_criteria
from vantage.core.logging import get_logger
from vantage.state.grid import (
    MAX_ANCHORS,
    DecisionGrid,
    canonical_anchor,
    clamp_confidence,
    clamp_weight,
)
from vantage.state.perspective import PerspectiveState, StatePatch

logger = get_logger("state.proposals")


class ProposalNotFoundError(VantageError):
    """No queued proposal has the given id."""


class ProposalKind(str, Enum):
    """Proposal variants."""

    ADD_OPTION = "add_option"
    ADD_CRITERION = "add_criterion"
    SET_CELL = "set_cell"


class ProposalSource(str, Enum):
    """Where a proposal came from."""

    EXTRACTOR = "extractor"
    HEURISTIC = "heuristic"
    SCOUT = "scout"


def _norm(text: str) -> str:
    return (text or "").strip().lower()


@dataclass
class Proposal:
    """A candidate edit to the decision grid."""

    kind: ProposalKind
    option: str = ""
    criterion: str = ""
    weight: int = 0
    confidence: float = HEURISTIC_CONFIDENCE
    rationale: str = ""
    anchors: list[str] = field(default_factory=list)
    source: ProposalSource = ProposalSource.HEURISTIC
    id: str = ""
    timestamp: float = 0.0

    def key(self) -> tuple[str, str, str]:
        """Dedup key: type plus the case-folded labels it touches."""
        option = _norm(self.option) if self.kind is not ProposalKind.ADD_CRITERION else ""
        criterion = _norm(self.criterion) if self.kind is not ProposalKind.ADD_OPTION else ""
        return (self.kind.value, option, criterion)

    def is_valid(self) -> bool:
        if self.kind is ProposalKind.ADD_OPTION:
            return bool(self.option.strip())
        if self.kind is ProposalKind.ADD_CRITERION:
            return bool(self.criterion.strip())
        return bool(self.option.strip() and self.criterion.strip())

    def describe(self) -> str:
        """Short human-readable description."""
        if self.kind is ProposalKind.ADD_OPTION:
            return f"Add option: {self.option}"
        if self.kind is ProposalKind.ADD_CRITERION:
            return f"Add criterion: {self.criterion}"
        return (
            f"Set {self.option} x {self.criterion} -> weight {self.weight} "
            f"(conf {round(self.confidence * 100)}%)"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.kind.value,
            "option": self.option,
            "criterion": self.criterion,
            "weight": self.weight,
            "confidence": self.confidence,
            "rationale": self.rationale,
            "anchors": list(self.anchors),
            "source": self.source.value,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(
        cls,
        data: Any,
        source: ProposalSource = ProposalSource.SCOUT,
    ) -> Proposal | None:
        """
        Build a proposal from loosely-typed model output.

        Returns:
            Proposal, or None when the type is unknown or required labels are missing
        """
        if not isinstance(data, dict):
            return None
        try:
            kind = ProposalKind(str(data.get("type", "")).strip().lower())
        except ValueError:
            return None

        option = data.get("option")
        criterion = data.get("criterion")
        proposal = cls(
            kind=kind,
            option=option.strip() if isinstance(option, str) else "",
            criterion=criterion.strip() if isinstance(criterion, str) else "",
            weight=clamp_weight(data.get("weight", 0)),
            confidence=clamp_confidence(
                data.get("confidence", data.get("conf", HEURISTIC_CONFIDENCE))
            ),
            rationale=str(data.get("rationale") or "").strip(),
            source=source,
        )
        return proposal if proposal.is_valid() else None


class ProposalQueue:
    """
    Ordered, deduplicated queue of pending proposals.

    Features:
    - FIFO display order
    - Dedup against pending entries and the accepted grid
    - Accept / edit / discard, plus anchor selection for cells
    """

    def __init__(self, grid: DecisionGrid, state: PerspectiveState) -> None:
        """
        Initialize proposal queue.

        Args:
            grid: Decision grid that accepted proposals write into
            state: Perspective State that accepted options are mirrored into
        """
        self._grid = grid
        self._state = state
        self._pending: list[Proposal] = []

    @property
    def pending(self) -> list[Proposal]:
        return list(self._pending)

    def __len__(self) -> int:
        return len(self._pending)

    def get(self, proposal_id: str) -> Proposal:
        for proposal in self._pending:
            if proposal.id == proposal_id:
                return proposal
        raise ProposalNotFoundError(f"No pending proposal {proposal_id}")

    def _in_grid(self, proposal: Proposal) -> bool:
        if proposal.kind is ProposalKind.ADD_OPTION:
            return self._grid.has_option(proposal.option)
        if proposal.kind is ProposalKind.ADD_CRITERION:
            return self._grid.has_criterion(proposal.criterion)
        return self._grid.has_cell(proposal.option, proposal.criterion)

    def enqueue(self, proposals: list[Proposal]) -> list[Proposal]:
        """
        Add proposals that are neither queued nor already accepted.

        Args:
            proposals: Candidates in priority order

        Returns:
            The proposals actually queued
        """
        seen = {p.key() for p in self._pending}
        queued: list[Proposal] = []

        for proposal in proposals:
            if not proposal.is_valid() or self._in_grid(proposal):
                continue
            key = proposal.key()
            if key in seen:
                continue
            seen.add(key)
            proposal.id = proposal.id or f"gp_{uuid.uuid4().hex[:10]}"
            proposal.timestamp = proposal.timestamp or time.time()
            proposal.anchors = proposal.anchors[:MAX_ANCHORS]
            self._pending.append(proposal)
            queued.append(proposal)

        if queued:
            logger.debug(f"Queued {len(queued)} proposal(s), depth={len(self._pending)}")
        return queued

    def accept(self, proposal_id: str) -> Proposal:
        """
        Commit a proposal into the grid and drop it from the queue.

        Accepted options are mirrored into the Perspective State options bucket.
        """
        proposal = self.get(proposal_id)

        if proposal.kind is ProposalKind.ADD_OPTION:
            option = self._grid.add_option(proposal.option)
            self._state.apply_patch(StatePatch(add={"options": [option]}))
        elif proposal.kind is ProposalKind.ADD_CRITERION:
            self._grid.add_criterion(proposal.criterion)
        else:
            self._grid.set_cell(
                proposal.option,
                proposal.criterion,
                weight=proposal.weight,
                confidence=proposal.confidence,
                rationale=proposal.rationale,
                anchors=proposal.anchors[:MAX_ANCHORS],
            )

        self._pending.remove(proposal)
        logger.info(f"Accepted proposal: {proposal.describe()}")
        return proposal

    def edit(self, proposal_id: str, **fields: Any) -> Proposal:
        """
        Mutate a pending proposal in place.

        Numeric fields are clamped rather than rejected.
        """
        proposal = self.get(proposal_id)

        if "option" in fields and proposal.kind is not ProposalKind.ADD_CRITERION:
            proposal.option = str(fields["option"] or "").strip()
        if "criterion" in fields and proposal.kind is not ProposalKind.ADD_OPTION:
            proposal.criterion = str(fields["criterion"] or "").strip()
        if proposal.kind is ProposalKind.SET_CELL:
            if "weight" in fields:
                proposal.weight = clamp_weight(fields["weight"])
            if "confidence" in fields:
                proposal.confidence = clamp_confidence(fields["confidence"])
            if "rationale" in fields:
                proposal.rationale = str(fields["rationale"] or "").strip()

        return proposal

    def discard(self, proposal_id: str) -> Proposal:
        proposal = self.get(proposal_id)
        self._pending.remove(proposal)
        return proposal

    def toggle_anchor(self, proposal_id: str, area: str) -> list[str]:
        """
        Select or deselect a life-area anchor on a set_cell proposal.

        At most two anchors are held; selecting a third evicts the
        earliest selection.

        Returns:
            Current anchors after the toggle
        """
        proposal = self.get(proposal_id)
        if proposal.kind is not ProposalKind.SET_CELL:
            raise ValueError("Anchors apply to set_cell proposals only")
        name = canonical_anchor(area)
        if name is None:
            raise ValueError(f"Unknown life area: {area}")

        if name in proposal.anchors:
            proposal.anchors.remove(name)
        else:
            if len(proposal.anchors) >= MAX_ANCHORS:
                proposal.anchors.pop(0)
            proposal.anchors.append(name)
        return list(proposal.anchors)

    def clear(self) -> None:
        self._pending.clear()


def seed_proposals(
    extracted: dict[str, list[str]],
    utterance: str,
    grid: DecisionGrid,
    state: PerspectiveState,
) -> list[Proposal]:
    """
    Candidate grid edits for one user turn, without a model round-trip.

    Extracted options become add_option proposals; each criterion heard in
    the utterance becomes an add_criterion plus a set_cell against the first
    grid option (or the first Perspective State option if the grid is empty).
    """
    proposals: list[Proposal] = []

    for option in extracted.get("options", []):
        if option and not grid.has_option(option):
            proposals.append(
                Proposal(kind=ProposalKind.ADD_OPTION, option=option, source=ProposalSource.EXTRACTOR)
            )

    hits = infer_criteria(utterance)
    if not hits:
        return proposals

    grid_options = grid.options
    state_options = state.items("options")
    anchor_option = grid_options[0] if grid_options else (state_options[0] if state_options else "")

    for hit in hits:
        if not grid.has_criterion(hit.criterion):
            proposals.append(
                Proposal(kind=ProposalKind.ADD_CRITERION, criterion=hit.criterion)
            )
        if anchor_option:
            proposals.append(
                Proposal(
                    kind=ProposalKind.SET_CELL,
                    option=anchor_option,
                    criterion=hit.criterion,
                    weight=hit.weight,
                    confidence=hit.confidence,
                    rationale=hit.rationale,
                )
            )
    return proposals
