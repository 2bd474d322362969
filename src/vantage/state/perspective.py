"""
Perspective State store.

Seven ordered buckets of short, case-insensitively unique strings.
The store only changes through patches, so every mutation is
reportable as an added/removed delta for the presentation layer.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any

from vantage.core.base import BUCKETS
from vantage.core.lexicon import Lexicon, shares_token, strong_overlap, tokens
from vantage.core.logging import get_logger
from vantage.core.parser import DEFAULT_BUCKET_LIMIT, coerce_string_list

logger = get_logger("state.perspective")


def _norm(text: str) -> str:
    return (text or "").strip().lower()


def entry_id(bucket: str, text: str) -> str:
    """
    Stable synthetic id for a bucket entry.

    Derived from ``bucket:lowercased-text`` so an entry that is removed and
    later re-added keeps its id.
    """
    key = f"{bucket}:{_norm(text)}"
    return f"{bucket[0]}_{hashlib.sha1(key.encode()).hexdigest()[:10]}"


@dataclass(frozen=True)
class StateEntry:
    """A single entry with its derived identity."""

    bucket: str
    id: str
    text: str


@dataclass
class StatePatch:
    """Add/remove instructions keyed by bucket."""

    add: dict[str, list[str]] = field(default_factory=dict)
    remove: dict[str, list[str]] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not any(self.add.values()) and not any(self.remove.values())

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.add:
            out["add"] = {k: list(v) for k, v in self.add.items()}
        if self.remove:
            out["remove"] = {k: list(v) for k, v in self.remove.items()}
        return out


@dataclass
class PatchResult:
    """Entries actually added and removed by a patch."""

    added: list[StateEntry] = field(default_factory=list)
    removed: list[StateEntry] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


def sanitize_patch(raw: Any, limit: int = DEFAULT_BUCKET_LIMIT) -> StatePatch | None:
    """
    Reduce an untrusted tool payload to a valid patch.

    Keeps known buckets only, string entries only, at most ``limit`` per
    bucket. Returns None when nothing usable remains.
    """
    if not isinstance(raw, dict):
        return None

    def _section(value: Any) -> dict[str, list[str]]:
        if not isinstance(value, dict):
            return {}
        section: dict[str, list[str]] = {}
        for bucket in BUCKETS:
            items = coerce_string_list(value.get(bucket), limit)
            if items:
                section[bucket] = items
        return section

    patch = StatePatch(add=_section(raw.get("add")), remove=_section(raw.get("remove")))
    return None if patch.is_empty() else patch


class PerspectiveState:
    """
    Deduplicated, categorized conversation state.

    While ``gated`` is set (definition gate open) every patch is a no-op.
    """

    def __init__(self) -> None:
        self._buckets: dict[str, list[str]] = {bucket: [] for bucket in BUCKETS}
        self.gated = False

    def items(self, bucket: str) -> list[str]:
        """Copy of a bucket's entries in insertion order."""
        return list(self._buckets.get(bucket, []))

    def entries(self, bucket: str) -> list[StateEntry]:
        return [StateEntry(bucket, entry_id(bucket, t), t) for t in self._buckets.get(bucket, [])]

    def contains(self, bucket: str, text: str) -> bool:
        key = _norm(text)
        return any(_norm(t) == key for t in self._buckets.get(bucket, []))

    def snapshot(self) -> dict[str, list[str]]:
        """Plain dict copy of all buckets."""
        return {bucket: list(values) for bucket, values in self._buckets.items()}

    def is_empty(self) -> bool:
        return not any(self._buckets.values())

    def clear(self) -> None:
        for values in self._buckets.values():
            values.clear()

    def apply_patch(self, patch: StatePatch | None) -> PatchResult:
        """
        Apply an add/remove patch.

        Adds skip entries already present (case-insensitive); removes match
        existing entries case-insensitively. Applying the same patch twice
        changes nothing the second time.

        Args:
            patch: Patch to apply

        Returns:
            Entries added and removed
        """
        result = PatchResult()
        if patch is None:
            return result
        if self.gated:
            logger.debug("Patch suppressed while definition gate is open")
            return result

        for bucket, values in patch.add.items():
            if bucket not in self._buckets:
                continue
            dst = self._buckets[bucket]
            for raw in values:
                text = (raw or "").strip() if isinstance(raw, str) else ""
                if not text or self.contains(bucket, text):
                    continue
                dst.append(text)
                result.added.append(StateEntry(bucket, entry_id(bucket, text), text))

        for bucket, values in patch.remove.items():
            if bucket not in self._buckets:
                continue
            for raw in values:
                key = _norm(raw) if isinstance(raw, str) else ""
                if not key:
                    continue
                kept: list[str] = []
                for text in self._buckets[bucket]:
                    if _norm(text) == key:
                        result.removed.append(StateEntry(bucket, entry_id(bucket, text), text))
                    else:
                        kept.append(text)
                self._buckets[bucket] = kept

        if result.changed:
            logger.debug(f"State patch: +{len(result.added)} -{len(result.removed)}")
        return result

    def reconcile(
        self,
        extracted: dict[str, list[str]],
        last_user_utterance: str,
        lexicon: Lexicon | None = None,
    ) -> StatePatch:
        """
        Compute the patch that moves local state toward a fresh extraction.

        Extraction is noisy, so an entry missing from it is only removed when
        the removal is topically justified: the entry shares vocabulary with
        the utterance or a target entry, and either the utterance carries a
        negation/correction marker or the entry strongly overlaps a target.

        Args:
            extracted: Target buckets from the extractor
            last_user_utterance: Most recent user text
            lexicon: Negation grammar (defaults to built-in markers)

        Returns:
            Add/remove patch (possibly empty)
        """
        lexicon = lexicon or Lexicon.default()
        negated = lexicon.has_negation(last_user_utterance)
        utterance_tokens = tokens(last_user_utterance)
        patch = StatePatch()

        for bucket in BUCKETS:
            target = [t for t in extracted.get(bucket, []) if isinstance(t, str) and t.strip()]
            target_keys = {_norm(t) for t in target}
            target_tokens = [tokens(t) for t in target]
            current = self._buckets[bucket]

            to_add: list[str] = []
            for text in target:
                if not self.contains(bucket, text) and _norm(text) not in {_norm(a) for a in to_add}:
                    to_add.append(text.strip())
            if to_add:
                patch.add[bucket] = to_add

            to_remove: list[str] = []
            for item in current:
                if _norm(item) in target_keys:
                    continue
                item_tokens = tokens(item)
                if not item_tokens:
                    continue
                topical = shares_token(item_tokens, utterance_tokens) or any(
                    shares_token(item_tokens, wt) for wt in target_tokens
                )
                if not topical:
                    continue
                conflicts = any(strong_overlap(item_tokens, wt) for wt in target_tokens)
                if negated or conflicts:
                    to_remove.append(item)
            if to_remove:
                patch.remove[bucket] = to_remove

        return patch
