from __future__ import annotations

import asyncio
import logging
from typing import Any

logger = logging.getLogger(__name__)


class Subscription:
    """
    One WebSocket's view of a chat channel: a bounded inbox of frames.

    When the inbox is full the oldest frame is dropped, so a slow reader lags
    instead of blocking the publisher.
    """

    def __init__(self, hub: ChatHub, chat_id: str, username: str, maxsize: int):
        self._hub = hub
        self.chat_id = chat_id
        self.username = username
        self._inbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def deliver(self, frame: dict[str, Any]) -> None:
        if self._inbox.full():
            self._inbox.get_nowait()
            self.dropped += 1
            logger.debug("HUB: %s lagging on chat %s; dropped oldest frame", self.username, self.chat_id)
        self._inbox.put_nowait(frame)

    async def receive(self) -> dict[str, Any]:
        return await self._inbox.get()

    def pending(self) -> int:
        return self._inbox.qsize()

    def close(self) -> None:
        self._hub.unsubscribe(self)


class ChatHub:
    """Per-chat broadcast channels, created on first subscribe and removed with the last subscriber."""

    def __init__(self, buffer_size: int = 10):
        self._buffer_size = buffer_size
        self._channels: dict[str, set[Subscription]] = {}

    def subscribe(self, chat_id: str, username: str) -> Subscription:
        sub = Subscription(self, chat_id, username, self._buffer_size)
        self._channels.setdefault(chat_id, set()).add(sub)
        logger.debug("HUB: %s joined chat %s (%d listening)", username, chat_id, len(self._channels[chat_id]))
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        subs = self._channels.get(sub.chat_id)
        if not subs:
            return
        subs.discard(sub)
        if not subs:
            del self._channels[sub.chat_id]
        logger.debug("HUB: %s left chat %s", sub.username, sub.chat_id)

    def publish(self, chat_id: str, frame: dict[str, Any], *, sender: str) -> int:
        """Deliver `frame` to every subscriber of `chat_id` other than `sender`. Returns the fan-out count."""
        delivered = 0
        for sub in list(self._channels.get(chat_id, ())):
            if sub.username == sender:
                continue
            sub.deliver(frame)
            delivered += 1
        return delivered

    def subscriber_count(self, chat_id: str) -> int:
        return len(self._channels.get(chat_id, ()))
