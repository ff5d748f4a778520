"""A placeholder for outputs that can be updated at any time.

    frame = Frame.new(rt)
    for i in range(100):
        frame.render(i)
        await asyncio.sleep(0.05)

Or with a callback scheduled inside the frame process:

    def step(i):
        frame.render(i)
        return Continue(i + 1)

    frame.periodically(50, 0, step)
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING, Any, Literal

from .exceptions import InvalidArgument
from .output import FrameUpdateType, Output, frame_output
from .widget import StatefulWidget, maybe_await

if TYPE_CHECKING:
    from .runtime import Runtime

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Continue:
    """Returned by a periodic callback to run again with ``acc``."""

    acc: Any


HALT = "halt"

Destination = tuple[Literal["default", "clients"], None] | tuple[Literal["client"], str]


def update_destination(to: str | None = None, history: bool | None = None) -> Destination:
    """Resolve the ``to``/``history`` options of a frame update."""
    if to is not None:
        if history:
            raise InvalidArgument(
                "direct updates sent via to are never part of the frame history, "
                "passing history is not supported"
            )
        return ("client", to)
    if history is None or history:
        return ("default", None)
    return ("clients", None)


@dataclass(frozen=True)
class _Render:
    term: Any
    destination: Destination


@dataclass(frozen=True)
class _Append:
    term: Any
    destination: Destination


@dataclass(frozen=True)
class _Clear:
    destination: Destination


@dataclass(frozen=True)
class _Periodically:
    interval_ms: int
    acc: Any
    fun: Callable[[Any], Any]


class Frame(StatefulWidget):
    """Widget wrapping a list of outputs, replaced or appended to on demand."""

    def __init__(self, runtime: Runtime, *, owner: Any = None) -> None:
        super().__init__(runtime, owner=owner)
        # Newest first; get_outputs reverses.
        self._outputs: list[Output] = []

    @classmethod
    def new(cls, runtime: Runtime, *, owner: Any = None) -> Frame:
        """Start a new frame owned by ``owner`` (default: the current task)."""
        return cls._spawn(runtime, owner=owner)

    def render(self, term: Any, *, to: str | None = None, history: bool | None = None) -> None:
        """Render ``term`` in place of the current frame contents.

        ``to`` directs the update to one client only; such updates are never
        part of the frame history. ``history=False`` updates every connected
        client without recording the update.
        """
        self.cast(_Render(term, update_destination(to, history)))

    def append(self, term: Any, *, to: str | None = None, history: bool | None = None) -> None:
        """Render ``term`` and append it to the frame contents."""
        self.cast(_Append(term, update_destination(to, history)))

    def clear(self, *, to: str | None = None, history: bool | None = None) -> None:
        self.cast(_Clear(update_destination(to, history)))

    def periodically(self, interval_ms: int, acc: Any, fun: Callable[[Any], Any]) -> None:
        """Run ``fun(acc)`` now and every ``interval_ms`` inside the frame process.

        ``fun`` returns ``Continue(new_acc)`` to be scheduled again, or
        ``HALT`` to stop. It may be a coroutine function.
        """
        if isinstance(interval_ms, bool) or not isinstance(interval_ms, int) or interval_ms <= 0:
            raise InvalidArgument(f"expected interval_ms to be a positive integer, got: {interval_ms!r}")
        if not callable(fun):
            raise InvalidArgument(f"expected fun to be callable, got: {fun!r}")
        self.cast(_Periodically(interval_ms, acc, fun))

    async def get_outputs(self) -> list[Output]:
        """Current outputs in chronological order, oldest first.

        The list is kept newest first internally and reversed on read.
        """
        return await self.call("get_outputs")

    async def handle_cast(self, message: Any) -> None:
        if isinstance(message, _Render):
            output = self.runtime.renderer(message.term)
            await self._put_update(message.destination, [output], "replace")
            self._outputs = [output]
        elif isinstance(message, _Append):
            output = self.runtime.renderer(message.term)
            await self._put_update(message.destination, [output], "append")
            self._outputs.insert(0, output)
        elif isinstance(message, _Clear):
            await self._put_update(message.destination, [], "replace")
            self._outputs = []
        elif isinstance(message, _Periodically):
            await self._periodically_iter(message)
        else:
            LOGGER.warning(
                "frame.unknown_message",
                extra={"event": "frame.unknown_message", "ref": self.ref, "message": repr(message)},
            )

    def handle_call(self, request: Any) -> Any:
        if request == "get_outputs":
            return list(reversed(self._outputs))
        return super().handle_call(request)

    async def _periodically_iter(self, step: _Periodically) -> None:
        result = await maybe_await(step.fun(step.acc))
        if isinstance(result, Continue):
            self.send_after(step.interval_ms / 1000, _Periodically(step.interval_ms, result.acc, step.fun))
        elif result == HALT:
            LOGGER.debug("frame.periodically_halted", extra={"event": "frame.periodically_halted", "ref": self.ref})
        else:
            raise InvalidArgument(
                f"expected periodic callback to return Continue(acc) or HALT, got: {result!r}"
            )

    async def _put_update(
        self, destination: Destination, outputs: list[Output], update: FrameUpdateType
    ) -> None:
        output = frame_output(outputs, self.ref, update)
        bridge = self.runtime.bridge
        target, client_id = destination
        if target == "client":
            publish, args = bridge.put_output_to, (client_id, output)
        elif target == "clients":
            publish, args = bridge.put_output_to_clients, (output,)
        else:
            publish, args = bridge.put_output, (output,)
        if bridge.blocking:
            # Network bridges publish from a worker thread so the loop keeps serving.
            await asyncio.to_thread(publish, *args)
        else:
            publish(*args)
