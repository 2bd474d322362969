"""
Decision grid: options x criteria with weighted cells.

Only accepted proposals write here. A cell can only exist for an
option and criterion that are both present in the grid.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Fixed life-area vocabulary for cell anchors
LIFE_AREAS: tuple[str, ...] = (
    "Work",
    "Health",
    "Finances",
    "Relationships",
    "Identity",
    "Logistics",
)

MAX_ANCHORS = 2
WEIGHT_MIN = -100
WEIGHT_MAX = 100


def _norm(text: str) -> str:
    return (text or "").strip().lower()


def clamp_weight(value: Any) -> int:
    """Coerce to an int weight in [-100, 100]; unparseable input becomes 0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = 0.0
    if number != number:  # NaN
        number = 0.0
    return int(max(WEIGHT_MIN, min(WEIGHT_MAX, round(number))))


def clamp_confidence(value: Any) -> float:
    """Coerce to a confidence in [0, 1]; unparseable input becomes 0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = 0.0
    if number != number:
        number = 0.0
    return max(0.0, min(1.0, number))


def canonical_anchor(name: str) -> str | None:
    """Match a life area case-insensitively; None if not in the vocabulary."""
    key = _norm(name)
    for area in LIFE_AREAS:
        if area.lower() == key:
            return area
    return None


@dataclass
class Cell:
    """A weighted judgement of one option against one criterion."""

    weight: int
    confidence: float
    rationale: str = ""
    anchors: list[str] = field(default_factory=list)


@dataclass
class GridStats:
    """Counts for status display."""

    options: int
    criteria: int
    cells: int
    anchored: int


class _OrderedLabels:
    """Insertion-ordered, case-insensitive label set keeping display casing."""

    def __init__(self) -> None:
        self._labels: dict[str, str] = {}

    def add(self, label: str) -> str:
        key = _norm(label)
        if key not in self._labels:
            self._labels[key] = label.strip()
        return self._labels[key]

    def __contains__(self, label: object) -> bool:
        return isinstance(label, str) and _norm(label) in self._labels

    def __len__(self) -> int:
        return len(self._labels)

    def values(self) -> list[str]:
        return list(self._labels.values())

    def clear(self) -> None:
        self._labels.clear()


class DecisionGrid:
    """Options x criteria structure used for structured comparison."""

    def __init__(self) -> None:
        self._options = _OrderedLabels()
        self._criteria = _OrderedLabels()
        self._cells: dict[tuple[str, str], Cell] = {}

    @property
    def options(self) -> list[str]:
        return self._options.values()

    @property
    def criteria(self) -> list[str]:
        return self._criteria.values()

    def has_option(self, option: str) -> bool:
        return option in self._options

    def has_criterion(self, criterion: str) -> bool:
        return criterion in self._criteria

    def has_cell(self, option: str, criterion: str) -> bool:
        return (_norm(option), _norm(criterion)) in self._cells

    def get_cell(self, option: str, criterion: str) -> Cell | None:
        return self._cells.get((_norm(option), _norm(criterion)))

    def add_option(self, option: str) -> str:
        if not option or not option.strip():
            raise ValueError("Option name must not be empty")
        return self._options.add(option)

    def add_criterion(self, criterion: str) -> str:
        if not criterion or not criterion.strip():
            raise ValueError("Criterion name must not be empty")
        return self._criteria.add(criterion)

    def set_cell(
        self,
        option: str,
        criterion: str,
        weight: Any,
        confidence: Any,
        rationale: str = "",
        anchors: list[str] | None = None,
    ) -> Cell:
        """
        Write (or overwrite) a cell.

        The option and criterion are added first, so a cell never
        references an absent row or column.
        """
        if not option or not option.strip() or not criterion or not criterion.strip():
            raise ValueError("set_cell requires both option and criterion")
        self.add_option(option)
        self.add_criterion(criterion)

        kept: list[str] = []
        for name in anchors or []:
            area = canonical_anchor(name)
            if area and area not in kept:
                kept.append(area)

        cell = Cell(
            weight=clamp_weight(weight),
            confidence=clamp_confidence(confidence),
            rationale=(rationale or "").strip(),
            anchors=kept[:MAX_ANCHORS],
        )
        self._cells[(_norm(option), _norm(criterion))] = cell
        return cell

    def stats(self) -> GridStats:
        return GridStats(
            options=len(self._options),
            criteria=len(self._criteria),
            cells=len(self._cells),
            anchored=sum(1 for c in self._cells.values() if c.anchors),
        )

    def snapshot(self) -> dict[str, Any]:
        """JSON-ready view used in reply instructions."""
        cells = []
        for (opt_key, crit_key), cell in self._cells.items():
            cells.append(
                {
                    "key": f"{opt_key}|{crit_key}",
                    "weight": cell.weight,
                    "confidence": cell.confidence,
                    "anchors": list(cell.anchors),
                }
            )
        return {"options": self.options, "criteria": self.criteria, "cells": cells}

    def clear(self) -> None:
        self._options.clear()
        self._criteria.clear()
        self._cells.clear()
