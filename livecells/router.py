"""Topic registry and event fan-out.

Usage:
    router = EventRouter()
    router.start()

    inbox = Mailbox()
    router.subscribe("topic1", inbox, "clicks")
    router.dispatch("topic1", {"origin": "client1"})

    await inbox.receive()   # Envelope(tag="clicks", event={"origin": "client1"})

Every public operation is a command placed on the router's own inbox. The
router task is the only code that touches the registry, so commands are
applied strictly in arrival order without any locking.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
import logging
from typing import Any, NamedTuple

from .exceptions import InvalidArgument, MailboxClosedError
from .mailbox import Mailbox

LOGGER = logging.getLogger(__name__)


class Envelope(NamedTuple):
    """An event as delivered to a subscriber, labelled with its tag."""

    tag: Any
    event: Any


@dataclass(frozen=True)
class TopicCleared:
    """Notification sent to every subscriber of a topic that was cleared."""

    topic: str


@dataclass
class Subscription:
    subscriber: Mailbox
    tag: Any


@dataclass(frozen=True)
class _Subscribe:
    topic: str
    subscriber: Mailbox
    tag: Any


@dataclass(frozen=True)
class _Unsubscribe:
    topic: str
    subscriber: Mailbox


@dataclass(frozen=True)
class _ClearTopic:
    topic: str


@dataclass(frozen=True)
class _Dispatch:
    topic: str
    event: Any


@dataclass(frozen=True)
class _Query:
    reply: asyncio.Future[Any] = field(compare=False)
    topic: str | None = None


_STOP = object()


class EventRouter:
    """Process-wide mediator between event producers and subscribers."""

    def __init__(self, name: str = "livecells.router", prune_closed: bool = True) -> None:
        self.name = name
        self._prune_closed = prune_closed
        self._inbox = Mailbox(name)
        self._registry: dict[str, list[Subscription]] = {}
        self._task: asyncio.Task[None] | None = None
        self._dispatched = 0
        self._dropped = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the router task on the running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=self.name)
        LOGGER.debug("router.started", extra={"event": "router.started", "router": self.name})

    async def stop(self) -> None:
        """Process already queued commands, then stop the router task."""
        if self._task is None:
            return
        self._inbox.deliver(_STOP)
        await self._task
        self._task = None
        LOGGER.debug("router.stopped", extra={"event": "router.stopped", "router": self.name})

    def subscribe(self, topic: str, subscriber: Mailbox, tag: Any = None) -> None:
        """Register ``subscriber`` for ``topic``. Re-subscribing replaces the tag."""
        self._inbox.deliver(_Subscribe(topic, subscriber, tag))

    def unsubscribe(self, topic: str, subscriber: Mailbox) -> None:
        """Remove the (topic, subscriber) entry. No-op when absent."""
        self._inbox.deliver(_Unsubscribe(topic, subscriber))

    def clear_topic(self, topic: str) -> None:
        """Drop every subscriber of ``topic`` and notify them with ``TopicCleared``."""
        self._inbox.deliver(_ClearTopic(topic))

    def dispatch(self, topic: str, event: Any) -> None:
        """Fan ``event`` out to the current subscribers of ``topic``."""
        self._inbox.deliver(_Dispatch(topic, event))

    def post(self, message: Any) -> None:
        """Accept an inbound message from the front-end.

        Supported shapes are ``("event", topic_id, info)`` where ``info`` is a
        mapping carrying an ``origin`` client identifier, and
        ``("clear_topic", topic_id)``.
        """
        if isinstance(message, tuple) and len(message) == 3 and message[0] == "event":
            _, topic, info = message
            if not isinstance(info, Mapping) or "origin" not in info:
                raise InvalidArgument(
                    f"expected event info to be a mapping with an 'origin' key, got: {info!r}"
                )
            self.dispatch(topic, dict(info))
        elif isinstance(message, tuple) and len(message) == 2 and message[0] == "clear_topic":
            self.clear_topic(message[1])
        else:
            raise InvalidArgument(
                "expected ('event', topic_id, info) or ('clear_topic', topic_id), "
                f"got: {message!r}"
            )

    async def flush(self) -> None:
        """Wait until every command enqueued before this call has been applied."""
        await self._ask(None)

    async def subscribers(self, topic: str) -> list[tuple[Mailbox, Any]]:
        """Return a snapshot of the (subscriber, tag) pairs for ``topic``."""
        return await self._ask(topic)

    def stats(self) -> dict[str, Any]:
        """Registry statistics for monitoring."""
        return {
            "topics": len(self._registry),
            "subscriptions": sum(len(subs) for subs in self._registry.values()),
            "dispatched": self._dispatched,
            "dropped": self._dropped,
        }

    async def _ask(self, topic: str | None) -> Any:
        reply: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._inbox.deliver(_Query(reply, topic))
        return await reply

    async def _run(self) -> None:
        while True:
            command = await self._inbox.receive()
            if command is _STOP:
                break
            try:
                self._apply(command)
            except Exception:
                LOGGER.exception(
                    "router.command_failed",
                    extra={"event": "router.command_failed", "command": repr(command)},
                )

    def _apply(self, command: Any) -> None:
        if isinstance(command, _Dispatch):
            self._fan_out(command.topic, command.event)
        elif isinstance(command, _Subscribe):
            subs = self._registry.setdefault(command.topic, [])
            for sub in subs:
                if sub.subscriber is command.subscriber:
                    sub.tag = command.tag
                    break
            else:
                subs.append(Subscription(command.subscriber, command.tag))
        elif isinstance(command, _Unsubscribe):
            self._remove(command.topic, command.subscriber)
        elif isinstance(command, _ClearTopic):
            subs = self._registry.pop(command.topic, [])
            notice = TopicCleared(command.topic)
            for sub in subs:
                self._deliver(sub.subscriber, notice)
            LOGGER.debug(
                "router.topic_cleared",
                extra={
                    "event": "router.topic_cleared",
                    "topic": command.topic,
                    "subscribers": len(subs),
                },
            )
        elif isinstance(command, _Query):
            if command.reply.done():
                return
            if command.topic is None:
                command.reply.set_result(None)
            else:
                subs = self._registry.get(command.topic, [])
                command.reply.set_result([(sub.subscriber, sub.tag) for sub in subs])
        else:
            LOGGER.warning(
                "router.unknown_command",
                extra={"event": "router.unknown_command", "command": repr(command)},
            )

    def _fan_out(self, topic: str, event: Any) -> None:
        self._dispatched += 1
        dead: list[Mailbox] = []
        for sub in self._registry.get(topic, ()):
            if not self._deliver(sub.subscriber, Envelope(sub.tag, event)):
                dead.append(sub.subscriber)
        if dead and self._prune_closed:
            for subscriber in dead:
                self._remove(topic, subscriber)
            LOGGER.debug(
                "router.pruned",
                extra={"event": "router.pruned", "topic": topic, "count": len(dead)},
            )

    def _deliver(self, subscriber: Mailbox, message: Any) -> bool:
        try:
            subscriber.deliver(message)
        except MailboxClosedError:
            self._dropped += 1
            return False
        return True

    def _remove(self, topic: str, subscriber: Mailbox) -> None:
        subs = self._registry.get(topic)
        if not subs:
            return
        remaining = [sub for sub in subs if sub.subscriber is not subscriber]
        if remaining:
            self._registry[topic] = remaining
        else:
            del self._registry[topic]

    def __repr__(self) -> str:
        status = "running" if self.running else "stopped"
        return f"EventRouter({self.name!r}, {status})"
