"""Stateful widget processes with owner-bound lifetimes.

A widget owns its state exclusively. Other code only talks to it through its
mailbox: ``cast`` for fire-and-forget mutations and ``call`` for
request/reply queries. Widgets are started by the runtime supervisor, are
never restarted, and stop on their own once their owner terminates.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
import inspect
import logging
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from .exceptions import InvalidArgument, MailboxClosedError, WidgetStoppedError
from .mailbox import Mailbox

if TYPE_CHECKING:
    from .runtime import Runtime

LOGGER = logging.getLogger(__name__)


class WidgetState(str, Enum):
    """Widget lifecycle. ``STOPPED`` is terminal."""

    RUNNING = "running"
    STOPPED = "stopped"


class StopReason(str, Enum):
    NORMAL = "normal"
    OWNER_DOWN = "owner_down"
    CRASHED = "crashed"
    SHUTDOWN = "shutdown"


@dataclass(frozen=True)
class _Call:
    request: Any
    reply: asyncio.Future[Any] = field(compare=False)


_STOP = object()
_OWNER_DOWN = object()


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _resolve_owner(owner: Any) -> Any:
    if owner is None:
        try:
            owner = asyncio.current_task()
        except RuntimeError:
            owner = None
        if owner is None:
            raise InvalidArgument(
                "expected an owner task or widget, but no asyncio task is running"
            )
    if not all(
        callable(getattr(owner, attr, None))
        for attr in ("add_done_callback", "remove_done_callback")
    ):
        raise InvalidArgument(
            f"expected owner to be an asyncio task, future or widget, got: {owner!r}"
        )
    return owner


class StatefulWidget:
    """Base class for supervised widget processes.

    Subclasses implement ``handle_cast`` and ``handle_call`` (plain or async)
    and may override ``init`` and ``terminate``.
    """

    def __init__(self, runtime: Runtime, *, owner: Any = None) -> None:
        self.runtime = runtime
        self.ref = uuid4().hex
        self.failure: BaseException | None = None
        self._owner = _resolve_owner(owner)
        self._mailbox = Mailbox(f"{type(self).__name__}:{self.ref}")
        self._state = WidgetState.RUNNING
        self._stop_reason: StopReason | None = None
        self._stopped = asyncio.Event()
        self._task: asyncio.Task[Any] | None = None
        self._timers: set[asyncio.TimerHandle] = set()
        self._done_callbacks: list[Callable[[StatefulWidget], Any]] = []

    @classmethod
    def _spawn(cls, runtime: Runtime, *args: Any, owner: Any = None, **kwargs: Any) -> Any:
        widget = cls(runtime, *args, owner=owner, **kwargs)
        runtime.supervisor.start_child(widget)
        return widget

    @property
    def state(self) -> WidgetState:
        return self._state

    @property
    def stop_reason(self) -> StopReason | None:
        return self._stop_reason

    @property
    def running(self) -> bool:
        return self._state is WidgetState.RUNNING

    def attach(self, task: asyncio.Task[Any]) -> None:
        """Bind the process task and start monitoring the owner."""
        self._task = task
        self._owner.add_done_callback(self._on_owner_down)
        task.add_done_callback(self._on_task_done)

    def add_done_callback(self, callback: Callable[[StatefulWidget], Any]) -> None:
        """Invoke ``callback(widget)`` once the widget stops. Lets widgets own widgets."""
        if self._state is WidgetState.STOPPED:
            asyncio.get_running_loop().call_soon(callback, self)
        else:
            self._done_callbacks.append(callback)

    def remove_done_callback(self, callback: Callable[[StatefulWidget], Any]) -> None:
        if callback in self._done_callbacks:
            self._done_callbacks.remove(callback)

    def cast(self, message: Any) -> None:
        """Queue a mutation. Ignored once the widget has stopped."""
        try:
            self._mailbox.deliver(message)
        except MailboxClosedError:
            LOGGER.debug(
                "widget.cast_ignored",
                extra={"event": "widget.cast_ignored", "ref": self.ref},
            )

    async def call(self, request: Any) -> Any:
        """Send ``request`` and wait for the widget's reply."""
        reply: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        try:
            self._mailbox.deliver(_Call(request, reply))
        except MailboxClosedError:
            raise WidgetStoppedError(
                f"{type(self).__name__} {self.ref} is not running"
            ) from None
        return await reply

    def stop(self) -> None:
        """Ask the widget to stop after handling already queued messages."""
        self.cast(_STOP)

    async def wait_stopped(self) -> StopReason | None:
        await self._stopped.wait()
        return self._stop_reason

    def send_after(self, delay: float, message: Any) -> asyncio.TimerHandle:
        """Deliver ``message`` to this widget's own mailbox after ``delay`` seconds."""
        loop = asyncio.get_running_loop()
        handle: asyncio.TimerHandle

        def _fire() -> None:
            self._timers.discard(handle)
            self.cast(message)

        handle = loop.call_later(delay, _fire)
        self._timers.add(handle)
        return handle

    def init(self) -> Any:
        """Hook run inside the widget process before the first message."""

    def handle_cast(self, message: Any) -> Any:
        raise NotImplementedError(f"{type(self).__name__} does not handle {message!r}")

    def handle_call(self, request: Any) -> Any:
        raise NotImplementedError(f"{type(self).__name__} does not answer {request!r}")

    def terminate(self, reason: StopReason) -> None:
        """Hook run once the widget has stopped."""

    async def run(self) -> None:
        reason = StopReason.NORMAL
        try:
            await maybe_await(self.init())
            while True:
                message = await self._mailbox.receive()
                if message is _STOP:
                    break
                if message is _OWNER_DOWN:
                    reason = StopReason.OWNER_DOWN
                    break
                if isinstance(message, _Call):
                    await self._answer(message)
                else:
                    await maybe_await(self.handle_cast(message))
        except asyncio.CancelledError:
            reason = StopReason.SHUTDOWN
            raise
        except Exception as exc:
            reason = StopReason.CRASHED
            self.failure = exc
            raise
        finally:
            self._terminate(reason)

    async def _answer(self, call: _Call) -> None:
        if call.reply.done():
            return
        try:
            result = await maybe_await(self.handle_call(call.request))
        except Exception as exc:
            if not call.reply.done():
                call.reply.set_exception(exc)
            raise
        if not call.reply.done():
            call.reply.set_result(result)

    def _on_task_done(self, _task: asyncio.Task[Any]) -> None:
        # A task cancelled before its first step never enters run().
        if self._state is WidgetState.RUNNING:
            self._terminate(StopReason.SHUTDOWN)

    def _on_owner_down(self, _owner: Any) -> None:
        try:
            self._mailbox.deliver(_OWNER_DOWN)
        except MailboxClosedError:
            pass

    def _terminate(self, reason: StopReason) -> None:
        self._state = WidgetState.STOPPED
        self._stop_reason = reason
        self._owner.remove_done_callback(self._on_owner_down)
        self._mailbox.close()
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()
        for message in self._mailbox.drain():
            if isinstance(message, _Call) and not message.reply.done():
                message.reply.set_exception(
                    WidgetStoppedError(f"{type(self).__name__} {self.ref} is not running")
                )
        try:
            self.terminate(reason)
        except Exception:
            LOGGER.exception(
                "widget.terminate_failed",
                extra={"event": "widget.terminate_failed", "ref": self.ref},
            )
        self._stopped.set()
        callbacks, self._done_callbacks = self._done_callbacks, []
        for callback in callbacks:
            callback(self)
        LOGGER.debug(
            "widget.stopped",
            extra={
                "event": "widget.stopped",
                "widget": type(self).__name__,
                "ref": self.ref,
                "reason": reason.value,
            },
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(ref={self.ref!r}, state={self._state.value})"
