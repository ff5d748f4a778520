"""Non-restarting supervision for widget processes and background tasks."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .widget import StatefulWidget

LOGGER = logging.getLogger(__name__)


class Supervisor:
    """Track widget tasks and anonymous background tasks.

    Children are *temporary*: when one exits, normally or by crashing, it is
    forgotten and never restarted. Crashes are logged here so they are not
    silently lost.
    """

    def __init__(self, name: str = "livecells.supervisor") -> None:
        self.name = name
        self._widgets: dict[str, asyncio.Task[Any]] = {}
        self._anonymous: set[asyncio.Task[Any]] = set()

    def start_child(self, widget: StatefulWidget) -> asyncio.Task[Any]:
        """Start ``widget``'s process and register it under its ref."""
        task = asyncio.create_task(widget.run(), name=f"{type(widget).__name__}:{widget.ref}")
        widget.attach(task)
        self._widgets[widget.ref] = task
        task.add_done_callback(lambda t, ref=widget.ref: self._child_exited(ref, t))
        LOGGER.debug(
            "supervisor.child_started",
            extra={
                "event": "supervisor.child_started",
                "widget": type(widget).__name__,
                "ref": widget.ref,
            },
        )
        return task

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task[Any]:
        """Run ``coro`` as an anonymous background task that self-cleans on exit."""
        task = asyncio.create_task(coro, name=name)
        self._anonymous.add(task)
        task.add_done_callback(self._anonymous.discard)
        task.add_done_callback(self._log_anonymous_exception)
        return task

    def children(self) -> list[str]:
        """Refs of widgets that are still running."""
        return [ref for ref, task in self._widgets.items() if not task.done()]

    def get(self, ref: str) -> asyncio.Task[Any] | None:
        return self._widgets.get(ref)

    def _child_exited(self, ref: str, task: asyncio.Task[Any]) -> None:
        self._widgets.pop(ref, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error(
                "supervisor.child_crashed",
                extra={
                    "event": "supervisor.child_crashed",
                    "ref": ref,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )

    def _log_anonymous_exception(self, task: asyncio.Task[Any]) -> None:
        """Log unhandled exceptions from anonymous tasks so they are not silently lost."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.warning(
                "task.anonymous.exception",
                extra={
                    "event": "task.anonymous.exception",
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )

    async def shutdown(self, timeout: float | None = None) -> None:
        """Cancel every tracked task and wait for them to finish."""
        all_tasks: list[asyncio.Task[Any]] = [
            t for t in list(self._widgets.values()) + list(self._anonymous) if not t.done()
        ]
        for task in all_tasks:
            task.cancel()
        if all_tasks:
            done, pending = await asyncio.wait(all_tasks, timeout=timeout)
            if pending:
                LOGGER.warning(
                    "supervisor.shutdown_timeout",
                    extra={"event": "supervisor.shutdown_timeout", "pending": len(pending)},
                )
        self._widgets.clear()
        self._anonymous.clear()

