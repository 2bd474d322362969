"""Tests for the decision grid and proposal queue."""

import pytest
from vantage.state.grid import DecisionGrid, canonical_anchor, clamp_confidence, clamp_weight
from vantage.state.perspective import PerspectiveState, StatePatch
from vantage.state.proposals import (
    Proposal,
    ProposalKind,
    ProposalNotFoundError,
    ProposalQueue,
    ProposalSource,
    seed_proposals,
)


class TestClamping:
    """Tests for numeric coercion."""

    def test_weight(self) -> None:
        """Test weights are rounded and clamped to [-100, 100]."""
        assert clamp_weight(250) == 100
        assert clamp_weight(-101.4) == -100
        assert clamp_weight("12.6") == 13
        assert clamp_weight("heavy") == 0
        assert clamp_weight(float("nan")) == 0

    def test_confidence(self) -> None:
        """Test confidence is clamped to [0, 1]."""
        assert clamp_confidence(1.7) == 1.0
        assert clamp_confidence(-0.2) == 0.0
        assert clamp_confidence(None) == 0.0

    def test_anchor_vocabulary(self) -> None:
        """Test anchors match the fixed life areas case-insensitively."""
        assert canonical_anchor("finances") == "Finances"
        assert canonical_anchor("Hobbies") is None


class TestDecisionGrid:
    """Tests for grid structure."""

    def setup_method(self) -> None:
        """Set up an empty grid."""
        self.grid = DecisionGrid()

    def test_labels_unique_case_insensitive(self) -> None:
        """Test duplicate labels keep first display casing."""
        self.grid.add_option("Stay in Brandon")
        self.grid.add_option("stay in brandon")
        assert self.grid.options == ["Stay in Brandon"]

    def test_empty_label_rejected(self) -> None:
        """Test empty labels raise."""
        with pytest.raises(ValueError):
            self.grid.add_criterion("  ")

    def test_cell_adds_row_and_column(self) -> None:
        """Test a cell never references an absent option or criterion."""
        self.grid.set_cell("Rent", "cost", weight=-30, confidence=0.6)
        assert self.grid.has_option("rent")
        assert self.grid.has_criterion("Cost")

    def test_cell_anchors_filtered_and_capped(self) -> None:
        """Test unknown anchors dropped and at most two kept."""
        cell = self.grid.set_cell(
            "Rent", "cost", 10, 0.5, anchors=["Hobbies", "work", "Health", "Finances"]
        )
        assert cell.anchors == ["Work", "Health"]

    def test_cell_overwrite(self) -> None:
        """Test set_cell replaces an existing cell."""
        self.grid.set_cell("Rent", "cost", 10, 0.5)
        self.grid.set_cell("rent", "COST", 500, 2)
        cell = self.grid.get_cell("Rent", "cost")
        assert cell is not None
        assert (cell.weight, cell.confidence) == (100, 1.0)
        assert self.grid.stats().cells == 1

    def test_stats(self) -> None:
        """Test counts include anchored cells."""
        self.grid.add_option("Buy")
        self.grid.set_cell("Rent", "cost", 10, 0.5, anchors=["Finances"])
        self.grid.set_cell("Rent", "space", 10, 0.5)
        stats = self.grid.stats()
        assert (stats.options, stats.criteria, stats.cells, stats.anchored) == (2, 2, 2, 1)

    def test_snapshot(self) -> None:
        """Test snapshot cell keys are option|criterion lowercased."""
        self.grid.set_cell("Rent", "Cost", 10, 0.5)
        assert self.grid.snapshot()["cells"][0]["key"] == "rent|cost"


class TestProposal:
    """Tests for proposal parsing."""

    def test_from_dict(self) -> None:
        """Test loosely-typed model output is clamped."""
        proposal = Proposal.from_dict(
            {"type": "set_cell", "option": "Rent", "criterion": "cost", "weight": 400, "conf": 2}
        )
        assert proposal is not None
        assert proposal.weight == 100
        assert proposal.confidence == 1.0
        assert proposal.source is ProposalSource.SCOUT

    def test_from_dict_invalid(self) -> None:
        """Test unknown type or missing labels yield None."""
        assert Proposal.from_dict({"type": "delete_everything"}) is None
        assert Proposal.from_dict({"type": "set_cell", "option": "Rent"}) is None
        assert Proposal.from_dict("add_option") is None

    def test_describe(self) -> None:
        """Test human-readable description."""
        proposal = Proposal(
            kind=ProposalKind.SET_CELL, option="Rent", criterion="cost", weight=-30, confidence=0.6
        )
        assert proposal.describe() == "Set Rent x cost -> weight -30 (conf 60%)"


class TestProposalQueue:
    """Tests for queue operations."""

    def setup_method(self) -> None:
        """Set up queue over an empty grid and state."""
        self.grid = DecisionGrid()
        self.state = PerspectiveState()
        self.queue = ProposalQueue(self.grid, self.state)

    def _cell(self, option: str = "Rent", criterion: str = "cost") -> Proposal:
        return Proposal(
            kind=ProposalKind.SET_CELL, option=option, criterion=criterion, weight=-30
        )

    def test_enqueue_assigns_ids(self) -> None:
        """Test queued proposals receive gp_ ids and timestamps."""
        queued = self.queue.enqueue([Proposal(kind=ProposalKind.ADD_OPTION, option="Rent")])
        assert queued[0].id.startswith("gp_")
        assert queued[0].timestamp > 0

    def test_dedup_against_queue(self) -> None:
        """Test same type and labels are queued once."""
        self.queue.enqueue([self._cell()])
        assert self.queue.enqueue([self._cell("rent", "COST")]) == []
        assert len(self.queue) == 1

    def test_dedup_against_grid(self) -> None:
        """Test proposals already reflected in the grid are skipped."""
        self.grid.add_option("Rent")
        assert self.queue.enqueue([Proposal(kind=ProposalKind.ADD_OPTION, option="rent")]) == []

    def test_fifo_order(self) -> None:
        """Test pending order is insertion order."""
        self.queue.enqueue([self._cell("A"), self._cell("B")])
        self.queue.enqueue([self._cell("C")])
        assert [p.option for p in self.queue.pending] == ["A", "B", "C"]

    def test_accept_option_mirrors_state(self) -> None:
        """Test accepted options land in the grid and the options bucket."""
        (proposal,) = self.queue.enqueue([Proposal(kind=ProposalKind.ADD_OPTION, option="Rent")])
        self.queue.accept(proposal.id)
        assert self.grid.options == ["Rent"]
        assert self.state.items("options") == ["Rent"]
        assert len(self.queue) == 0

    def test_accept_cell(self) -> None:
        """Test set_cell acceptance writes the cell with anchors."""
        (proposal,) = self.queue.enqueue([self._cell()])
        self.queue.toggle_anchor(proposal.id, "Finances")
        self.queue.accept(proposal.id)
        cell = self.grid.get_cell("Rent", "cost")
        assert cell is not None
        assert cell.anchors == ["Finances"]
        assert self.grid.stats().options == 1

    def test_accept_unknown(self) -> None:
        """Test unknown ids raise."""
        with pytest.raises(ProposalNotFoundError):
            self.queue.accept("gp_missing")

    def test_edit_clamps(self) -> None:
        """Test edits clamp numeric fields."""
        (proposal,) = self.queue.enqueue([self._cell()])
        edited = self.queue.edit(proposal.id, weight=-500, confidence="0.9", rationale=" rent ")
        assert (edited.weight, edited.confidence, edited.rationale) == (-100, 0.9, "rent")

    def test_discard(self) -> None:
        """Test discard removes without touching the grid."""
        (proposal,) = self.queue.enqueue([self._cell()])
        self.queue.discard(proposal.id)
        assert len(self.queue) == 0
        assert self.grid.stats().cells == 0

    def test_toggle_anchor_evicts_oldest(self) -> None:
        """Test a third anchor evicts the earliest selection."""
        (proposal,) = self.queue.enqueue([self._cell()])
        self.queue.toggle_anchor(proposal.id, "Work")
        self.queue.toggle_anchor(proposal.id, "Health")
        assert self.queue.toggle_anchor(proposal.id, "Finances") == ["Health", "Finances"]
        assert self.queue.toggle_anchor(proposal.id, "health") == ["Finances"]

    def test_toggle_anchor_rejects(self) -> None:
        """Test anchors only apply to cells with known areas."""
        cell, option = self.queue.enqueue(
            [self._cell(), Proposal(kind=ProposalKind.ADD_OPTION, option="Buy")]
        )
        with pytest.raises(ValueError):
            self.queue.toggle_anchor(cell.id, "Hobbies")
        with pytest.raises(ValueError):
            self.queue.toggle_anchor(option.id, "Work")


class TestSeedProposals:
    """Tests for heuristic proposal seeding."""

    def test_canonical_utterance(self) -> None:
        """Test options, criterion and a cell against the first state option."""
        grid = DecisionGrid()
        state = PerspectiveState()
        extracted = {"options": ["Stay in Brandon", "Move to St. Pete"]}
        state.apply_patch(StatePatch(add=extracted))

        proposals = seed_proposals(extracted, "cost matters a lot", grid, state)

        assert [(p.kind, p.source) for p in proposals[:2]] == [
            (ProposalKind.ADD_OPTION, ProposalSource.EXTRACTOR),
            (ProposalKind.ADD_OPTION, ProposalSource.EXTRACTOR),
        ]
        assert proposals[2].kind is ProposalKind.ADD_CRITERION
        assert proposals[2].criterion == "cost"
        cell = proposals[3]
        assert (cell.kind, cell.option, cell.criterion, cell.weight) == (
            ProposalKind.SET_CELL,
            "Stay in Brandon",
            "cost",
            -30,
        )

    def test_prefers_grid_option(self) -> None:
        """Test the first grid option anchors the cell when present."""
        grid = DecisionGrid()
        grid.add_option("Rent")
        grid.add_criterion("cost")
        state = PerspectiveState()
        state.apply_patch(StatePatch(add={"options": ["Buy"]}))

        proposals = seed_proposals({}, "the price is high", grid, state)

        assert [p.kind for p in proposals] == [ProposalKind.SET_CELL]
        assert proposals[0].option == "Rent"

    def test_no_option_no_cell(self) -> None:
        """Test criteria without any option yield no cell."""
        proposals = seed_proposals({}, "budget", DecisionGrid(), PerspectiveState())
        assert [p.kind for p in proposals] == [ProposalKind.ADD_CRITERION]
