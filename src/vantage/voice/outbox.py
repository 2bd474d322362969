"""
FIFO outbox for channel messages.

Messages are queued whenever they are produced and drained in order
once the channel is ready. Flushes run one at a time; a failed send
leaves the message at the head of the queue for the next flush.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Protocol

from vantage.core.base import ChannelError
from vantage.core.logging import get_logger

logger = get_logger("voice.outbox")


class Sendable(Protocol):
    """Anything that can accept outbound channel messages."""

    @property
    def ready(self) -> bool: ...

    async def send(self, event: dict[str, Any]) -> None: ...


class Outbox:
    """Ordered pending messages awaiting channel readiness."""

    def __init__(self) -> None:
        self._queue: deque[dict[str, Any]] = deque()
        self._lock = asyncio.Lock()

    def put(self, event: dict[str, Any]) -> None:
        self._queue.append(event)

    def __len__(self) -> int:
        return len(self._queue)

    def pending(self) -> list[dict[str, Any]]:
        return list(self._queue)

    def clear(self) -> None:
        self._queue.clear()

    async def flush(self, channel: Sendable | None) -> int:
        """
        Send queued messages in order while the channel is ready.

        Returns:
            Number of messages sent
        """
        sent = 0
        async with self._lock:
            while self._queue and channel is not None and channel.ready:
                event = self._queue[0]
                try:
                    await channel.send(event)
                except ChannelError as e:
                    logger.warning(f"Send failed, keeping {len(self._queue)} queued: {e}")
                    break
                # clear() may have emptied the queue while the send was pending
                if self._queue and self._queue[0] is event:
                    self._queue.popleft()
                sent += 1
                logger.debug(f"-> {event.get('type')}")
        return sent
