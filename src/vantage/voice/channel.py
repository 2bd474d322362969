"""
Voice channel adapter.

Acquires a short-lived realtime credential, opens the websocket session
and exposes it as send / events / close. The adapter parses inbound
messages into event variants and does nothing else with them; all turn
logic lives in the coordinator.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake

from vantage.config.schema import ProviderConfig
from vantage.core.base import ChannelError, ChannelNotReadyError, SessionBootstrapError
from vantage.core.logging import get_logger
from vantage.enrichment.prompts import SESSION_INSTRUCTIONS
from vantage.voice.events import InboundEvent, parse_event, tool_definitions

logger = get_logger("voice.channel")


class AudioControls(Protocol):
    """Local audio seam used by the coordinator."""

    def mute_output(self) -> None: ...

    def unmute_output(self) -> None: ...

    def attach_mic(self) -> None: ...

    def detach_mic(self) -> None: ...


class SoftwareAudioControls:
    """Flag-only audio controls for consoles and tests."""

    def __init__(self) -> None:
        self.output_muted = False
        self.mic_attached = False

    def mute_output(self) -> None:
        self.output_muted = True

    def unmute_output(self) -> None:
        self.output_muted = False

    def attach_mic(self) -> None:
        self.mic_attached = True

    def detach_mic(self) -> None:
        self.mic_attached = False


@dataclass
class SessionCredential:
    """Ephemeral realtime credential."""

    client_secret: str
    base_url: str
    model: str


def _secret_value(value: Any) -> str | None:
    if isinstance(value, dict):
        value = value.get("value")
    return value if isinstance(value, str) and value else None


class SessionBootstrap:
    """
    Mints a short-lived realtime credential.

    Either calls the provider's session endpoint directly with the API
    key, or fetches ``{client_secret, base_url, model}`` from a configured
    bootstrap URL.
    """

    def __init__(self, provider: ProviderConfig, client: httpx.AsyncClient | None = None) -> None:
        self._provider = provider
        self._client = client

    async def acquire(self) -> SessionCredential:
        """
        Get a credential.

        Raises:
            SessionBootstrapError: On missing key, HTTP error or bad payload
        """
        client = self._client or httpx.AsyncClient(timeout=self._provider.request_timeout_seconds)
        try:
            if self._provider.bootstrap_url:
                return await self._from_bootstrap_url(client)
            return await self._from_provider(client)
        except httpx.HTTPError as e:
            raise SessionBootstrapError(f"Session request failed: {e}") from e
        finally:
            if self._client is None:
                await client.aclose()

    async def _from_bootstrap_url(self, client: httpx.AsyncClient) -> SessionCredential:
        response = await client.get(self._provider.bootstrap_url or "")
        data = self._check(response)
        secret = _secret_value(data.get("client_secret"))
        if not secret:
            raise SessionBootstrapError("No client secret in session response")
        return SessionCredential(
            client_secret=secret,
            base_url=str(data.get("base_url") or f"{self._provider.base_url}/realtime"),
            model=str(data.get("model") or self._provider.realtime_model),
        )

    async def _from_provider(self, client: httpx.AsyncClient) -> SessionCredential:
        if not self._provider.api_key:
            raise SessionBootstrapError("OPENAI_API_KEY is not set")
        body = {
            "model": self._provider.realtime_model,
            "modalities": ["audio", "text"],
            "voice": self._provider.voice,
            "instructions": SESSION_INSTRUCTIONS,
            "tools": tool_definitions(),
        }
        response = await client.post(
            f"{self._provider.base_url}/realtime/sessions",
            headers={
                "Authorization": f"Bearer {self._provider.api_key}",
                "Content-Type": "application/json",
            },
            json=body,
        )
        data = self._check(response)
        secret = _secret_value(data.get("client_secret"))
        if not secret:
            raise SessionBootstrapError("No client secret in session response")
        return SessionCredential(
            client_secret=secret,
            base_url=f"{self._provider.base_url}/realtime",
            model=str(data.get("model") or self._provider.realtime_model),
        )

    @staticmethod
    def _check(response: httpx.Response) -> dict[str, Any]:
        if response.status_code >= 400:
            raise SessionBootstrapError(
                f"Failed to create session: {response.status_code} {response.reason_phrase}"
            )
        try:
            data = response.json()
        except ValueError as e:
            raise SessionBootstrapError("Session response is not JSON") from e
        if not isinstance(data, dict):
            raise SessionBootstrapError("Session response is not an object")
        return data


def websocket_url(credential: SessionCredential) -> str:
    """``https://host/v1/realtime`` -> ``wss://host/v1/realtime?model=...``"""
    base = credential.base_url
    if base.startswith("https://"):
        base = "wss://" + base[len("https://") :]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://") :]
    return f"{base}?model={credential.model}"


class ChannelSession:
    """An open realtime session."""

    def __init__(self, websocket: Any) -> None:
        self._websocket = websocket
        self._open = True

    @property
    def ready(self) -> bool:
        return self._open

    async def send(self, event: dict[str, Any]) -> None:
        """
        Send one outbound message.

        Raises:
            ChannelNotReadyError: If the session is closed
        """
        if not self._open:
            raise ChannelNotReadyError("Channel is closed")
        try:
            await self._websocket.send(json.dumps(event))
        except ConnectionClosed as e:
            self._open = False
            raise ChannelNotReadyError(f"Channel closed: {e}") from e

    async def events(self) -> AsyncIterator[InboundEvent]:
        """Inbound events in arrival order until the session closes."""
        try:
            async for message in self._websocket:
                yield parse_event(message)
        except ConnectionClosed as e:
            logger.info(f"Channel closed: {e}")
        finally:
            self._open = False

    async def close(self) -> None:
        if self._open:
            self._open = False
            await self._websocket.close()


class RealtimeChannel:
    """Creates realtime sessions: credential first, then the websocket."""

    def __init__(
        self,
        provider: ProviderConfig,
        bootstrap: SessionBootstrap | None = None,
        connector: Callable[..., Any] | None = None,
    ) -> None:
        """
        Initialize channel.

        Args:
            provider: Provider configuration
            bootstrap: Credential source (defaults to the provider endpoint)
            connector: Websocket connect function, replaceable in tests
        """
        self._provider = provider
        self._bootstrap = bootstrap or SessionBootstrap(provider)
        self._connector = connector or websockets.connect

    async def connect(self) -> ChannelSession:
        """
        Open a session.

        Raises:
            SessionBootstrapError: If the credential could not be obtained
            ChannelError: If the websocket handshake fails
        """
        credential = await self._bootstrap.acquire()
        url = websocket_url(credential)
        logger.info(f"Connecting realtime channel: {url}")
        try:
            websocket = await self._connector(
                url,
                additional_headers={
                    "Authorization": f"Bearer {credential.client_secret}",
                    "OpenAI-Beta": "realtime=v1",
                },
                max_size=None,
            )
        except (OSError, InvalidHandshake) as e:
            raise ChannelError(f"Realtime connection failed: {e}") from e
        return ChannelSession(websocket)
