"""Tests for the enrichment gateway."""

import json

import httpx
import pytest
from vantage.config.schema import ProviderConfig
from vantage.core.base import BUCKETS, ConversationTurn, EnrichmentError, Role
from vantage.enrichment.gateway import (
    EnrichmentGateway,
    extract_output_text,
    heuristic_proposals,
)
from vantage.enrichment.prompts import proposals_prompt, render_transcript, state_prompt
from vantage.state.proposals import ProposalKind, ProposalSource

UTTERANCE = "I want to compare staying in Brandon versus moving to St. Pete, cost matters a lot"


def _window(*texts: str) -> list[ConversationTurn]:
    return [ConversationTurn(role=Role.USER, text=t) for t in texts]


def _gateway(handler, api_key: str | None = "sk-test") -> EnrichmentGateway:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return EnrichmentGateway(ProviderConfig(api_key=api_key), client=client)


def _reply(text: str) -> httpx.Response:
    return httpx.Response(200, json={"output_text": text})


class TestExtractOutputText:
    """Tests for Responses payload handling."""

    def test_output_text_string(self) -> None:
        """Test top-level output_text."""
        assert extract_output_text({"output_text": " hi "}) == "hi"

    def test_output_text_list(self) -> None:
        """Test output_text as a list of strings."""
        assert extract_output_text({"output_text": ["a", "b"]}) == "ab"

    def test_output_content(self) -> None:
        """Test nested output[].content[].text."""
        data = {"output": [{"content": [{"type": "output_text", "text": "nested"}]}]}
        assert extract_output_text(data) == "nested"

    def test_fallbacks(self) -> None:
        """Test content[0].text and text fields."""
        assert extract_output_text({"content": [{"text": "c"}]}) == "c"
        assert extract_output_text({"text": "t"}) == "t"
        assert extract_output_text("nope") == ""


class TestPrompts:
    """Tests for prompt rendering."""

    def test_render_transcript(self) -> None:
        """Test ROLE: text lines with whitespace collapsed."""
        window = [
            ConversationTurn(role=Role.USER, text="hello\n  there"),
            ConversationTurn(role=Role.ASSISTANT, text="hi"),
        ]
        assert render_transcript(window) == "USER: hello there\nASSISTANT: hi"

    def test_state_prompt_lists_buckets(self) -> None:
        """Test the extractor prompt names every bucket."""
        prompt = state_prompt(_window("move"))
        assert all(bucket in prompt for bucket in BUCKETS)

    def test_proposals_prompt_focus(self) -> None:
        """Test focus and counts are included."""
        prompt = proposals_prompt(_window("move"), "Relocate", "live", 3, 8)
        assert "Relocate" in prompt
        assert '"proposals"' in prompt


class TestHeuristicProposals:
    """Tests for keyword fallback proposals."""

    def test_canonical_utterance(self) -> None:
        """Test options then criterion and a cell against the first option."""
        proposals = heuristic_proposals(_window(UTTERANCE))
        assert [p.kind for p in proposals] == [
            ProposalKind.ADD_OPTION,
            ProposalKind.ADD_OPTION,
            ProposalKind.ADD_CRITERION,
            ProposalKind.SET_CELL,
        ]
        assert proposals[3].option == "Stay in Brandon"
        assert proposals[3].weight == -30

    def test_no_user_text(self) -> None:
        """Test empty window yields nothing."""
        assert heuristic_proposals([ConversationTurn(role=Role.ASSISTANT, text="hi")]) == []


class TestEnrichmentGateway:
    """Tests for EnrichmentGateway calls."""

    @pytest.mark.asyncio
    async def test_request_shape(self) -> None:
        """Test the Responses request carries model, input and bearer auth."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return _reply("User is weighing a move.")

        gateway = _gateway(handler)
        summary = await gateway.summarize(_window(UTTERANCE))

        assert summary == "User is weighing a move."
        request = seen[0]
        assert request.url.path == "/v1/responses"
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["model"] == "gpt-4o-mini"
        assert "Brandon" in body["input"]

    @pytest.mark.asyncio
    async def test_extract_state(self) -> None:
        """Test model JSON is coerced into the seven buckets."""

        def handler(request: httpx.Request) -> httpx.Response:
            return _reply(
                'Here you go: {"options": ["Stay in Brandon", "Move to St. Pete"], '
                '"facts": ["cost matters a lot", 7], "mood": ["calm"]}'
            )

        state = await _gateway(handler).extract_state(_window(UTTERANCE))
        assert tuple(state.keys()) == BUCKETS
        assert state["options"] == ["Stay in Brandon", "Move to St. Pete"]
        assert state["facts"] == ["cost matters a lot"]

    @pytest.mark.asyncio
    async def test_extract_state_unparseable(self) -> None:
        """Test prose output is reported as a failure, not an empty extraction."""
        gateway = _gateway(lambda r: _reply("Sorry, I cannot help with that."))
        with pytest.raises(EnrichmentError, match="no JSON object"):
            await gateway.extract_state(_window("x"))

    @pytest.mark.asyncio
    async def test_extract_state_empty_object(self) -> None:
        """Test a parsed object without buckets is a genuine empty extraction."""
        state = await _gateway(lambda r: _reply("{}")).extract_state(_window("x"))
        assert tuple(state.keys()) == BUCKETS
        assert all(values == [] for values in state.values())

    @pytest.mark.asyncio
    async def test_http_error_raises(self) -> None:
        """Test HTTP status failures raise EnrichmentError."""
        gateway = _gateway(lambda r: httpx.Response(500, text="boom"))
        with pytest.raises(EnrichmentError, match="500"):
            await gateway.summarize(_window("x"))

    @pytest.mark.asyncio
    async def test_transport_error_raises(self) -> None:
        """Test network failures raise EnrichmentError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(EnrichmentError):
            await _gateway(handler).extract_state(_window("x"))

    @pytest.mark.asyncio
    async def test_missing_key_raises(self) -> None:
        """Test no request is attempted without a key."""
        with pytest.raises(EnrichmentError):
            await _gateway(lambda r: _reply("x"), api_key=None).summarize(_window("x"))

    @pytest.mark.asyncio
    async def test_scout_proposals(self) -> None:
        """Test scout output becomes scout-sourced proposals."""
        payload = {
            "proposals": [
                {"type": "add_criterion", "criterion": "schools"},
                {"type": "set_cell", "option": "Move to St. Pete", "criterion": "schools",
                 "weight": 40, "confidence": 0.7},
                {"type": "bogus"},
            ]
        }
        proposals = await _gateway(lambda r: _reply(json.dumps(payload))).propose_actions(
            _window(UTTERANCE), focus="Relocate"
        )
        assert [p.kind for p in proposals] == [ProposalKind.ADD_CRITERION, ProposalKind.SET_CELL]
        assert all(p.source is ProposalSource.SCOUT for p in proposals)

    @pytest.mark.asyncio
    async def test_scout_failure_falls_back(self) -> None:
        """Test a failed scout call falls back to heuristics."""
        gateway = _gateway(lambda r: httpx.Response(503, text="busy"))
        proposals = await gateway.propose_actions(_window(UTTERANCE))
        assert proposals
        assert proposals[0].kind is ProposalKind.ADD_OPTION
        assert proposals[0].source is ProposalSource.HEURISTIC

    @pytest.mark.asyncio
    async def test_scout_empty_falls_back(self) -> None:
        """Test an empty proposal list falls back to heuristics."""
        gateway = _gateway(lambda r: _reply('{"proposals": []}'))
        assert len(await gateway.propose_actions(_window(UTTERANCE))) == 4
