"""Event streams over interactive sources and intervals.

    async with EventStream([button, Interval(100)]) as events:
        async for event in events:
            ...

A stream subscribes as soon as it is constructed, so no event dispatched
afterwards is missed even if iteration starts later. The stream ends when
any of its topics is cleared.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING, Any

from . import control
from .control import InteractiveSource
from .exceptions import InvalidArgument, MailboxClosedError
from .mailbox import Mailbox
from .router import Envelope, TopicCleared
from .widget import maybe_await

if TYPE_CHECKING:
    from .supervisor import Supervisor

LOGGER = logging.getLogger(__name__)

# Folds started without a supervisor are anchored here until they finish.
_BACKGROUND: set[asyncio.Task[Any]] = set()


@dataclass(frozen=True)
class Interval:
    """Emit ``{"type": "interval", "iteration": n}`` every ``ms`` milliseconds."""

    ms: int

    def __post_init__(self) -> None:
        if isinstance(self.ms, bool) or not isinstance(self.ms, int) or self.ms <= 0:
            raise InvalidArgument(f"expected interval to be a positive integer, got: {self.ms!r}")


Source = InteractiveSource | Interval


def _check_source(source: Any) -> Source:
    if not isinstance(source, (InteractiveSource, Interval)):
        raise InvalidArgument(
            "expected source to be either an InteractiveSource or an Interval, "
            f"got: {source!r}"
        )
    return source


def _as_list(sources: Source | Iterable[Source]) -> list[Any]:
    if isinstance(sources, (InteractiveSource, Interval)):
        return [sources]
    if isinstance(sources, (str, bytes)) or not isinstance(sources, Iterable):
        return [_check_source(sources)]
    return list(sources)


def _as_pairs(pairs: Mapping[Any, Source] | Iterable[tuple[Any, Source]]) -> list[tuple[Any, Source]]:
    items = list(pairs.items()) if isinstance(pairs, Mapping) else list(pairs)
    for item in items:
        if not isinstance(item, tuple) or len(item) != 2:
            raise InvalidArgument(f"expected a list of (tag, source) pairs, got: {item!r}")
    return items


class EventStream:
    """Async iterator over the events of one or more sources.

    Plain streams yield event payloads; streams built with ``tagged`` yield
    ``(tag, payload)`` tuples.
    """

    def __init__(self, sources: Source | Iterable[Source], *, _tags: list[Any] | None = None) -> None:
        sources = _as_list(sources)
        if not sources:
            raise InvalidArgument(f"expected at least one source, got: {sources!r}")
        self._sources: list[Source] = [_check_source(source) for source in sources]
        self._tags = _tags
        self._mailbox = Mailbox("event-stream")
        self._timers: dict[int, asyncio.TimerHandle] = {}
        self._started = False
        self._closed = False
        # The router tag is the source index; user tags are looked up on receipt.
        for index, source in enumerate(self._sources):
            if isinstance(source, InteractiveSource):
                control.subscribe(source, self._mailbox, index)

    @classmethod
    def tagged(cls, pairs: Mapping[Any, Source] | Iterable[tuple[Any, Source]]) -> EventStream:
        """Build a stream yielding ``(tag, event)`` for each ``(tag, source)`` pair."""
        items = _as_pairs(pairs)
        return cls([source for _, source in items], _tags=[tag for tag, _ in items])

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> EventStream:
        return self

    async def __anext__(self) -> Any:
        if self._closed:
            raise StopAsyncIteration
        if not self._started:
            self._start_intervals()
        message = await self._mailbox.receive()
        if isinstance(message, TopicCleared):
            LOGGER.debug(
                "stream.topic_cleared",
                extra={"event": "stream.topic_cleared", "topic": message.topic},
            )
            await self.aclose()
            raise StopAsyncIteration
        index, event = message
        source = self._sources[index]
        if isinstance(source, Interval):
            self._schedule_tick(index, source, event["iteration"] + 1)
        if self._tags is None:
            return event
        return (self._tags[index], event)

    async def aclose(self) -> None:
        """Unsubscribe from every source and stop pending interval ticks."""
        if self._closed:
            return
        self._closed = True
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        self._mailbox.close()
        for source in self._sources:
            if isinstance(source, InteractiveSource):
                control.unsubscribe(source, self._mailbox)

    async def __aenter__(self) -> EventStream:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    def _start_intervals(self) -> None:
        self._started = True
        for index, source in enumerate(self._sources):
            if isinstance(source, Interval):
                self._tick(index, 0)

    def _schedule_tick(self, index: int, interval: Interval, iteration: int) -> None:
        loop = asyncio.get_running_loop()
        self._timers[index] = loop.call_later(interval.ms / 1000, self._tick, index, iteration)

    def _tick(self, index: int, iteration: int) -> None:
        self._timers.pop(index, None)
        try:
            self._mailbox.deliver(Envelope(index, {"type": "interval", "iteration": iteration}))
        except MailboxClosedError:
            pass

    def __repr__(self) -> str:
        return f"EventStream(sources={len(self._sources)}, closed={self._closed})"


async def _fold(stream: EventStream, acc: Any, fun: Callable[..., Any], tagged: bool) -> Any:
    async with stream:
        async for item in stream:
            if tagged:
                tag, event = item
                acc = await maybe_await(fun(tag, event, acc))
            else:
                acc = await maybe_await(fun(item, acc))
    return acc


def _launch(coro: Awaitable[Any], supervisor: Supervisor | None) -> asyncio.Task[Any]:
    if supervisor is not None:
        return supervisor.spawn(coro, name="livecells.stream")
    task = asyncio.create_task(coro, name="livecells.stream")
    _BACKGROUND.add(task)
    task.add_done_callback(_BACKGROUND.discard)
    return task


def stream_reduce(
    sources: Source | Iterable[Source],
    acc: Any,
    fun: Callable[[Any, Any], Any],
    *,
    supervisor: Supervisor | None = None,
) -> asyncio.Task[Any]:
    """Fold ``fun(event, acc)`` over the stream in a background task.

    Subscriptions are in place when this returns. The task's result is the
    final accumulator once the stream ends.
    """
    stream = EventStream(sources)
    return _launch(_fold(stream, acc, fun, tagged=False), supervisor)


def stream_each(
    sources: Source | Iterable[Source],
    fun: Callable[[Any], Any],
    *,
    supervisor: Supervisor | None = None,
) -> asyncio.Task[Any]:
    """Run ``fun(event)`` for every event in a background task."""

    async def step(event: Any, acc: None) -> None:
        await maybe_await(fun(event))

    return stream_reduce(sources, None, step, supervisor=supervisor)


def tagged_stream_reduce(
    pairs: Mapping[Any, Source] | Iterable[tuple[Any, Source]],
    acc: Any,
    fun: Callable[[Any, Any, Any], Any],
    *,
    supervisor: Supervisor | None = None,
) -> asyncio.Task[Any]:
    """Like ``stream_reduce`` over a tagged stream; ``fun(tag, event, acc)``."""
    stream = EventStream.tagged(pairs)
    return _launch(_fold(stream, acc, fun, tagged=True), supervisor)


def tagged_stream_each(
    pairs: Mapping[Any, Source] | Iterable[tuple[Any, Source]],
    fun: Callable[[Any, Any], Any],
    *,
    supervisor: Supervisor | None = None,
) -> asyncio.Task[Any]:
    async def step(tag: Any, event: Any, acc: None) -> None:
        await maybe_await(fun(tag, event))

    return tagged_stream_reduce(pairs, None, step, supervisor=supervisor)
