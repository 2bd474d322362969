"""Pytest configuration and fixtures."""

import asyncio
import tempfile
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from vantage.config.schema import VantageConfig
from vantage.core.base import EnrichmentError
from vantage.core.parser import coerce_state
from vantage.state.proposals import Proposal
from vantage.voice import events as ev
from vantage.voice.channel import SoftwareAudioControls
from vantage.voice.coordinator import TurnCoordinator


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeChannelSession:
    """Records outbound messages; inbound events are pushed by the test."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.open = True
        self._inbound: asyncio.Queue[ev.InboundEvent | None] = asyncio.Queue()

    @property
    def ready(self) -> bool:
        return self.open

    async def send(self, event: dict[str, Any]) -> None:
        self.sent.append(event)

    async def events(self) -> AsyncIterator[ev.InboundEvent]:
        while True:
            item = await self._inbound.get()
            if item is None:
                return
            yield item

    def push(self, event: ev.InboundEvent) -> None:
        self._inbound.put_nowait(event)

    async def close(self) -> None:
        self.open = False
        self._inbound.put_nowait(None)

    def types(self) -> list[str]:
        return [m["type"] for m in self.sent]

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [m for m in self.sent if m["type"] == event_type]


class FakeChannel:
    """Channel whose connect() returns a FakeChannelSession or raises."""

    def __init__(self, error: Exception | None = None) -> None:
        self.session = FakeChannelSession()
        self.error = error

    async def connect(self) -> FakeChannelSession:
        if self.error is not None:
            raise self.error
        return self.session


class FakeGateway:
    """Scripted enrichment results."""

    def __init__(self) -> None:
        self.summary = "User is weighing a move."
        self.state: dict[str, list[str]] = coerce_state({})
        self.proposals: list[Proposal] = []
        self.fail = False
        self.calls: list[tuple[str, str]] = []

    def set_state(self, **buckets: list[str]) -> None:
        self.state = coerce_state(buckets)

    async def summarize(self, window: Any, partial: str | None = None, mode: str = "final") -> str:
        self.calls.append(("summarize", mode))
        if self.fail:
            raise EnrichmentError("summary down")
        return self.summary

    async def extract_state(
        self, window: Any, partial: str | None = None, mode: str = "final"
    ) -> dict[str, list[str]]:
        self.calls.append(("extract_state", mode))
        if self.fail:
            raise EnrichmentError("extractor down")
        return {k: list(v) for k, v in self.state.items()}

    async def propose_actions(
        self, window: Any, focus: str | None = None, mode: str = "live"
    ) -> list[Proposal]:
        self.calls.append(("propose_actions", mode))
        if self.fail:
            raise EnrichmentError("scout down")
        return list(self.proposals)


@pytest.fixture
def tmp_project_dir() -> Path:
    """Create a temporary project directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        project_dir = Path(tmpdir)
        (project_dir / ".vantage").mkdir()
        yield project_dir


@pytest.fixture
def tmp_config_dir() -> Path:
    """Create a temporary config directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def config() -> VantageConfig:
    return VantageConfig()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def audio() -> SoftwareAudioControls:
    return SoftwareAudioControls()


@pytest.fixture
def make_coordinator(config, channel, gateway, audio, clock):
    """Build a coordinator wired to fakes; sleeping advances the fake clock."""

    async def fake_sleep(seconds: float) -> None:
        clock.advance(seconds)

    def _make(cfg: VantageConfig | None = None) -> TurnCoordinator:
        return TurnCoordinator(
            cfg or config,
            channel,
            gateway,
            audio=audio,
            clock=clock,
            sleep=fake_sleep,
        )

    return _make


async def close_definition_gate(coordinator: TurnCoordinator, clock: FakeClock) -> None:
    """Play the greeter reply, accept a definition and play the acknowledgement."""
    await coordinator.handle_event(ev.ResponseCreated("response.created", {}, "resp_greet"))
    await coordinator.handle_event(ev.ResponseDone("response.done", {}, "resp_greet"))
    clock.advance(1.0)
    await coordinator.accept_definition("Decide where to live next year")
    await coordinator.drain()
    await coordinator.handle_event(ev.ResponseCreated("response.created", {}, "resp_ack"))
    await coordinator.handle_event(ev.ResponseDone("response.done", {}, "resp_ack"))
    await coordinator.drain()
    clock.advance(1.0)


@pytest_asyncio.fixture
async def coordinator(make_coordinator) -> AsyncIterator[TurnCoordinator]:
    """Connected coordinator, definition gate still open."""
    coord = make_coordinator()
    assert await coord.connect()
    yield coord
    await coord.disconnect()


@pytest_asyncio.fixture
async def ready(make_coordinator, clock) -> AsyncIterator[TurnCoordinator]:
    """Connected coordinator with the definition gate closed and no reply in flight."""
    coord = make_coordinator()
    assert await coord.connect()
    await close_definition_gate(coord, clock)
    yield coord
    await coord.disconnect()
