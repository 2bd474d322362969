"""
Definition gate: problem framing captured before normal state tracking.

The gate opens on connect. While it is open the Perspective State
ignores patches and no proposals are generated; the greeter dialogue
fills a DefinitionPack through tool calls until the user accepts it.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from vantage.core.logging import get_logger
from vantage.core.parser import coerce_string_list, parse_json_object

logger = get_logger("state.definition")

_TEXT_FIELDS = ("title", "scope", "time_window", "status")
_LIST_FIELDS = ("participants", "axes")


@dataclass
class DefinitionPack:
    """Structured (or free-form) framing of the decision being discussed."""

    title: str = ""
    scope: str = ""
    time_window: str = ""
    participants: list[str] = field(default_factory=list)
    axes: list[str] = field(default_factory=list)
    status: str = ""
    text: str = ""

    def is_empty(self) -> bool:
        return not (
            self.title
            or self.scope
            or self.time_window
            or self.participants
            or self.axes
            or self.text
        )

    def is_complete(self) -> bool:
        return self.status.strip().lower() == "complete"

    def merge(self, fields: dict[str, Any]) -> bool:
        """
        Merge partial fields from a greeter tool call.

        Non-empty strings overwrite; list entries are appended without
        case-insensitive duplicates. Unknown keys are ignored.

        Returns:
            True if anything changed
        """
        changed = False
        for name in _TEXT_FIELDS:
            value = fields.get(name)
            if isinstance(value, str) and value.strip() and value.strip() != getattr(self, name):
                setattr(self, name, value.strip())
                changed = True
        for name in _LIST_FIELDS:
            current: list[str] = getattr(self, name)
            known = {v.lower() for v in current}
            for item in coerce_string_list(fields.get(name), limit=20):
                if item.lower() not in known:
                    current.append(item)
                    known.add(item.lower())
                    changed = True
        return changed

    @classmethod
    def from_text(cls, text: str) -> DefinitionPack:
        """
        Build a pack from user-edited text.

        Text starting with '{' must be a JSON object; anything else is
        kept verbatim as a free-form definition.

        Raises:
            ValueError: If the text looks like JSON but does not parse
        """
        stripped = (text or "").strip()
        if stripped.startswith("{"):
            data = parse_json_object(stripped)
            if data is None:
                raise ValueError("Invalid JSON. Paste plain text or a valid JSON object.")
            pack = cls()
            pack.merge(data)
            return pack
        return cls(text=stripped)

    def label(self) -> str:
        """Short label for status display."""
        return self.title or self.text[:60] or "(set)"

    def to_dict(self) -> dict[str, Any]:
        if self.text and not self.title:
            return {"text": self.text}
        return {
            "title": self.title,
            "scope": self.scope,
            "time_window": self.time_window,
            "participants": list(self.participants),
            "axes": list(self.axes),
        }

    def to_focus(self) -> str:
        """Focus string handed to the proposal scout."""
        if self.is_empty():
            return ""
        if self.text and not self.title:
            return self.text
        return json.dumps(self.to_dict())


class DefinitionGate:
    """Open/closed axis alongside the turn phases."""

    def __init__(self, auto_accept: bool = False) -> None:
        self.auto_accept = auto_accept
        self.is_open = False
        self.draft = DefinitionPack()
        self.accepted: DefinitionPack | None = None
        self._acknowledged = False

    def open(self) -> None:
        self.is_open = True
        self.draft = DefinitionPack()
        self.accepted = None
        self._acknowledged = False
        logger.info("Definition gate opened")

    def update_draft(self, fields: dict[str, Any]) -> bool:
        """
        Merge greeter tool fields into the draft.

        Returns:
            True if the gate closed as a result (auto-accept on completion)
        """
        if not self.is_open:
            return False
        self.draft.merge(fields)
        if self.auto_accept and self.draft.is_complete() and not self.draft.is_empty():
            self._close(self.draft)
            return True
        return False

    def accept(self, pack: DefinitionPack | None = None) -> bool:
        """
        Accept a pack (defaults to the current draft) and close the gate.

        Empty packs are refused.

        Returns:
            True if the gate closed
        """
        candidate = pack if pack is not None else self.draft
        if not self.is_open or candidate.is_empty():
            return False
        self._close(candidate)
        return True

    def _close(self, pack: DefinitionPack) -> None:
        self.accepted = pack
        self.is_open = False
        logger.info(f"Definition accepted: {pack.label()}")

    @property
    def pending_acknowledgement(self) -> bool:
        """Gate closed and the acknowledgement has not been spoken yet."""
        return not self.is_open and self.accepted is not None and not self._acknowledged

    def mark_acknowledged(self) -> None:
        self._acknowledged = True

    def focus(self) -> str:
        return self.accepted.to_focus() if self.accepted else ""

    def reset(self) -> None:
        self.is_open = False
        self.draft = DefinitionPack()
        self.accepted = None
        self._acknowledged = False
