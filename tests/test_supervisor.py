"""Tests for the non-restarting supervisor."""

from __future__ import annotations

import asyncio
from typing import Any
import unittest

from livecells.runtime import Runtime
from livecells.supervisor import Supervisor
from livecells.widget import StatefulWidget


class Idle(StatefulWidget):
    def handle_call(self, request: Any) -> Any:
        return request


class SupervisorTests(unittest.IsolatedAsyncioTestCase):
    """Validate child registration and anonymous task lifecycle."""

    async def test_spawn_and_shutdown_cancels(self) -> None:
        supervisor = Supervisor()
        cancelled: list[bool] = []

        async def _worker() -> None:
            try:
                await asyncio.sleep(9999)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise

        task = supervisor.spawn(_worker())
        await asyncio.sleep(0)  # Let the task start.
        await supervisor.shutdown(timeout=1)
        self.assertTrue(task.done())
        self.assertTrue(cancelled)

    async def test_anonymous_tasks_self_clean(self) -> None:
        supervisor = Supervisor()

        async def _quick() -> str:
            return "done"

        task = supervisor.spawn(_quick())
        self.assertEqual(await task, "done")
        await asyncio.sleep(0)
        self.assertEqual(len(supervisor._anonymous), 0)

    async def test_anonymous_task_exception_is_logged(self) -> None:
        supervisor = Supervisor()

        async def _failing() -> None:
            raise ValueError("bad")

        with self.assertLogs("livecells.supervisor", level="WARNING") as logs:
            task = supervisor.spawn(_failing())
            with self.assertRaises(ValueError):
                await task
        self.assertTrue(any("task.anonymous.exception" in line for line in logs.output))

    async def test_start_child_registers_widget(self) -> None:
        async with Runtime() as rt:
            widget = Idle._spawn(rt)
            self.assertEqual(await widget.call("ping"), "ping")
            self.assertEqual(rt.supervisor.children(), [widget.ref])
            self.assertIsNotNone(rt.supervisor.get(widget.ref))

            widget.stop()
            await rt.supervisor.get(widget.ref)
            self.assertEqual(rt.supervisor.children(), [])

    async def test_shutdown_without_children_is_noop(self) -> None:
        supervisor = Supervisor()
        await supervisor.shutdown(timeout=1)
        self.assertEqual(supervisor.children(), [])


if __name__ == "__main__":
    unittest.main()
