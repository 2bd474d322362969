"""
Enrichment gateway.

Summary, state extraction and proposal scouting are separate, stateless
text-model calls over a transcript window. The gateway never retries;
callers treat every call as best-effort.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import httpx

from vantage.config.schema import EnrichmentConfig, ProviderConfig
from vantage.core.base import ConversationTurn, EnrichmentError, Role
from vantage.core.lexicon import detect_options, infer_criteria
from vantage.core.logging import get_logger
from vantage.core.parser import coerce_state, parse_json_object
from vantage.enrichment.prompts import Mode, proposals_prompt, state_prompt, summary_prompt
from vantage.state.proposals import Proposal, ProposalKind, ProposalSource

logger = get_logger("enrichment.gateway")


def extract_output_text(data: Any) -> str:
    """
    Pull the output text out of a Responses API payload.

    Accepts ``output_text`` as a string or list of strings, then
    ``output[*].content[*].text``, ``content[0].text`` and ``text``.
    """
    if not isinstance(data, dict):
        return ""

    output_text = data.get("output_text")
    if isinstance(output_text, list):
        return "".join(t for t in output_text if isinstance(t, str)).strip()
    if isinstance(output_text, str):
        return output_text.strip()

    output = data.get("output")
    if isinstance(output, list):
        pieces: list[str] = []
        for item in output:
            content = item.get("content") if isinstance(item, dict) else None
            if not isinstance(content, list):
                continue
            for part in content:
                if isinstance(part, dict) and isinstance(part.get("text"), str):
                    pieces.append(part["text"])
        if pieces:
            return "".join(pieces).strip()

    content = data.get("content")
    if isinstance(content, list) and content and isinstance(content[0], dict):
        text = content[0].get("text")
        if isinstance(text, str):
            return text.strip()

    text = data.get("text")
    return text.strip() if isinstance(text, str) else ""


def heuristic_proposals(window: Sequence[ConversationTurn], limit: int = 8) -> list[Proposal]:
    """
    Keyword-based proposals used when the scout returns nothing.

    Options come from phrases like "stay in X" / "move to Y" anywhere in
    the user's turns; criteria come from the latest user turn and are
    scored against the first option found.
    """
    user_turns = [t.text for t in window if t.role is Role.USER and t.text.strip()]
    if not user_turns:
        return []

    options: list[str] = []
    for text in user_turns:
        for option in detect_options(text):
            if option.lower() not in {o.lower() for o in options}:
                options.append(option)

    proposals = [
        Proposal(kind=ProposalKind.ADD_OPTION, option=o, source=ProposalSource.HEURISTIC)
        for o in options
    ]
    for hit in infer_criteria(user_turns[-1]):
        proposals.append(Proposal(kind=ProposalKind.ADD_CRITERION, criterion=hit.criterion))
        if options:
            proposals.append(
                Proposal(
                    kind=ProposalKind.SET_CELL,
                    option=options[0],
                    criterion=hit.criterion,
                    weight=hit.weight,
                    confidence=hit.confidence,
                    rationale=hit.rationale,
                )
            )
    return proposals[:limit]


class EnrichmentGateway:
    """
    Text-model client for summary, state and proposal enrichment.

    Uses the provider's Responses endpoint with a plain-text prompt.
    """

    def __init__(
        self,
        provider: ProviderConfig,
        enrichment: EnrichmentConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize gateway.

        Args:
            provider: Endpoint, model and credential
            enrichment: Window and proposal limits
            client: Optional pre-built HTTP client (owned by the caller)
        """
        self._provider = provider
        self._enrichment = enrichment or EnrichmentConfig()
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._provider.request_timeout_seconds)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _window(self, window: Sequence[ConversationTurn]) -> list[ConversationTurn]:
        size = self._enrichment.window_size
        return list(window)[-size:]

    async def _complete(self, prompt: str, label: str) -> str:
        """POST a prompt to the Responses endpoint and return the output text."""
        if not self._provider.api_key:
            raise EnrichmentError("No API key configured")

        url = f"{self._provider.base_url}/responses"
        try:
            response = await self._get_client().post(
                url,
                headers={
                    "Authorization": f"Bearer {self._provider.api_key}",
                    "Content-Type": "application/json",
                },
                json={"model": self._provider.enrichment_model, "input": prompt},
            )
        except httpx.HTTPError as e:
            raise EnrichmentError(f"{label} request failed: {e}") from e

        if response.status_code >= 400:
            raise EnrichmentError(
                f"{label} error: {response.status_code} {response.reason_phrase} - {response.text[:200]}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise EnrichmentError(f"{label} returned invalid JSON") from e

        text = extract_output_text(data)
        logger.debug(f"{label} output: {text[:200]}")
        return text

    async def summarize(
        self,
        window: Sequence[ConversationTurn],
        partial: str | None = None,
        mode: Mode = "final",
    ) -> str:
        """
        Refresh the one-to-two sentence summary.

        Raises:
            EnrichmentError: On transport or HTTP failure
        """
        prompt = summary_prompt(self._window(window), partial, mode)
        return await self._complete(prompt, "Summarizer")

    async def extract_state(
        self,
        window: Sequence[ConversationTurn],
        partial: str | None = None,
        mode: Mode = "final",
    ) -> dict[str, list[str]]:
        """
        Extract a full Perspective State from the window.

        Always returns all seven buckets.

        Raises:
            EnrichmentError: On transport or HTTP failure, or output with no JSON object
        """
        prompt = state_prompt(self._window(window), partial, mode)
        raw = await self._complete(prompt, "State extractor")
        data = parse_json_object(raw)
        if data is None:
            raise EnrichmentError(f"State extractor returned no JSON object: {raw[:100]!r}")
        return coerce_state(data, self._enrichment.max_bucket_items)

    async def propose_actions(
        self,
        window: Sequence[ConversationTurn],
        focus: str | None = None,
        mode: Mode = "live",
    ) -> list[Proposal]:
        """
        Ask the scout for candidate grid edits.

        Falls back to keyword heuristics when the call fails or yields
        nothing usable, as long as the window has user text.
        """
        turns = self._window(window)
        limit = self._enrichment.max_proposals
        prompt = proposals_prompt(
            turns, focus, mode, self._enrichment.min_proposals, limit
        )

        proposals: list[Proposal] = []
        try:
            raw = await self._complete(prompt, "Proposal scout")
            data = parse_json_object(raw) or {}
            items = data.get("proposals")
            if isinstance(items, list):
                for item in items:
                    proposal = Proposal.from_dict(item, ProposalSource.SCOUT)
                    if proposal is not None:
                        proposals.append(proposal)
        except EnrichmentError as e:
            logger.warning(f"Proposal scout failed, using heuristics: {e}")

        if proposals:
            return proposals[:limit]
        return heuristic_proposals(turns, limit)
