"""Per-process mailboxes used for all message passing."""

from __future__ import annotations

import asyncio
import itertools
from typing import Any

from .exceptions import MailboxClosedError

_COUNTER = itertools.count(1)


class MailboxEmpty(Exception):
    """Raised by ``receive_nowait`` when no message is queued."""


class Mailbox:
    """Unbounded FIFO inbox owned by exactly one logical process.

    Anyone holding a reference may ``deliver``; only the owner ``receive``s.
    Mailboxes compare by identity, which makes them usable as subscriber
    identities in the router registry.
    """

    __slots__ = ("name", "_queue", "_closed")

    def __init__(self, name: str | None = None) -> None:
        self.name = name or f"mailbox-{next(_COUNTER)}"
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Number of messages waiting to be received."""
        return self._queue.qsize()

    def deliver(self, message: Any) -> None:
        """Enqueue ``message`` without blocking."""
        if self._closed:
            raise MailboxClosedError(f"mailbox {self.name} is closed")
        self._queue.put_nowait(message)

    async def receive(self) -> Any:
        """Suspend until the next message arrives and return it."""
        return await self._queue.get()

    def receive_nowait(self) -> Any:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            raise MailboxEmpty(self.name) from None

    def drain(self) -> list[Any]:
        """Return every queued message, oldest first."""
        messages: list[Any] = []
        while not self._queue.empty():
            messages.append(self._queue.get_nowait())
        return messages

    def close(self) -> None:
        """Refuse further deliveries. Already queued messages stay readable."""
        self._closed = True

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"Mailbox({self.name!r}, {state}, pending={self.pending})"
