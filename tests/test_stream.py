"""Tests for event streams and background folds."""

from __future__ import annotations

import asyncio
import unittest

from livecells import control
from livecells.exceptions import InvalidArgument
from livecells.runtime import Runtime
from livecells.stream import (
    EventStream,
    Interval,
    stream_each,
    stream_reduce,
    tagged_stream_each,
    tagged_stream_reduce,
)


class EventStreamTests(unittest.IsolatedAsyncioTestCase):
    """Validate iteration, tagging, termination and validation."""

    async def asyncSetUp(self) -> None:
        self.rt = await Runtime().start()

    async def asyncTearDown(self) -> None:
        await self.rt.stop()

    def _click(self, source: control.InteractiveSource, origin: str = "client1", **info: object) -> None:
        self.rt.router.post(("event", source.id, {"origin": origin, **info}))

    async def test_stream_subscribes_before_iteration_starts(self) -> None:
        button = control.button(self.rt, "Run")
        stream = EventStream(button)
        self._click(button, n=1)
        self._click(button, n=2)
        await self.rt.router.flush()

        async with stream:
            self.assertEqual(await anext(stream), {"origin": "client1", "n": 1})
            self.assertEqual(await anext(stream), {"origin": "client1", "n": 2})

    async def test_stream_merges_sources_in_arrival_order(self) -> None:
        first = control.button(self.rt, "A")
        second = control.button(self.rt, "B")
        async with EventStream([first, second]) as stream:
            self._click(second, origin="b")
            self._click(first, origin="a")
            self.assertEqual((await anext(stream))["origin"], "b")
            self.assertEqual((await anext(stream))["origin"], "a")

    async def test_tagged_stream_yields_tag_event_pairs(self) -> None:
        first = control.button(self.rt, "A")
        second = control.button(self.rt, "B")
        async with EventStream.tagged([("first", first), ("second", second)]) as stream:
            self._click(second)
            self._click(first)
            self.assertEqual(await anext(stream), ("second", {"origin": "client1"}))
            self.assertEqual(await anext(stream), ("first", {"origin": "client1"}))

    async def test_tagged_stream_accepts_a_mapping(self) -> None:
        button = control.button(self.rt, "A")
        async with EventStream.tagged({"go": button}) as stream:
            self._click(button)
            self.assertEqual(await anext(stream), ("go", {"origin": "client1"}))

    async def test_clear_topic_ends_the_stream(self) -> None:
        button = control.button(self.rt, "Run")
        other = control.button(self.rt, "Other")
        stream = EventStream([button, other])
        self._click(button, n=1)
        self.rt.router.post(("clear_topic", button.id))

        events = [event async for event in stream]
        self.assertEqual(events, [{"origin": "client1", "n": 1}])
        self.assertTrue(stream.closed)

        await self.rt.router.flush()
        self.assertEqual(await self.rt.router.subscribers(other.id), [])

    async def test_aclose_unsubscribes(self) -> None:
        button = control.button(self.rt, "Run")
        stream = EventStream(button)
        await stream.aclose()
        await self.rt.router.flush()

        self.assertEqual(await self.rt.router.subscribers(button.id), [])
        with self.assertRaises(StopAsyncIteration):
            await anext(stream)

    async def test_interval_emits_increasing_iterations(self) -> None:
        async with EventStream(Interval(10)) as stream:
            self.assertEqual(await anext(stream), {"type": "interval", "iteration": 0})
            self.assertEqual(await anext(stream), {"type": "interval", "iteration": 1})
            self.assertEqual(await anext(stream), {"type": "interval", "iteration": 2})

    async def test_interval_and_control_in_one_tagged_stream(self) -> None:
        button = control.button(self.rt, "Run")
        async with EventStream.tagged([("tick", Interval(5000)), ("click", button)]) as stream:
            self.assertEqual(await anext(stream), ("tick", {"type": "interval", "iteration": 0}))
            self._click(button)
            self.assertEqual(await anext(stream), ("click", {"origin": "client1"}))

    async def test_interval_requires_positive_integer(self) -> None:
        for value in (0, -5, 1.5, True):
            with self.subTest(value=value):
                with self.assertRaises(InvalidArgument):
                    Interval(value)  # type: ignore[arg-type]

    async def test_invalid_sources_are_rejected(self) -> None:
        with self.assertRaises(InvalidArgument) as ctx:
            EventStream(10)  # type: ignore[arg-type]
        self.assertEqual(
            str(ctx.exception),
            "expected source to be either an InteractiveSource or an Interval, got: 10",
        )
        with self.assertRaises(InvalidArgument):
            EventStream([])
        with self.assertRaisesRegex(InvalidArgument, r"expected a list of \(tag, source\) pairs"):
            EventStream.tagged([control.button(self.rt, "Run")])  # type: ignore[list-item]

    async def test_invalid_source_in_list_subscribes_nothing(self) -> None:
        button = control.button(self.rt, "Run")
        with self.assertRaises(InvalidArgument):
            EventStream([button, "nope"])  # type: ignore[list-item]
        await self.rt.router.flush()
        self.assertEqual(await self.rt.router.subscribers(button.id), [])


class BackgroundFoldTests(unittest.IsolatedAsyncioTestCase):
    """Validate stream_each/stream_reduce and their tagged variants."""

    async def asyncSetUp(self) -> None:
        self.rt = await Runtime().start()

    async def asyncTearDown(self) -> None:
        await self.rt.stop()

    async def test_stream_reduce_returns_final_accumulator(self) -> None:
        button = control.button(self.rt, "Run")
        task = stream_reduce(button, 0, lambda event, acc: acc + 1, supervisor=self.rt.supervisor)
        for _ in range(3):
            self.rt.router.post(("event", button.id, {"origin": "client1"}))
        self.rt.router.post(("clear_topic", button.id))

        self.assertEqual(await asyncio.wait_for(task, 1), 3)

    async def test_stream_each_accepts_coroutine_functions(self) -> None:
        button = control.button(self.rt, "Run")
        seen: list[str] = []

        async def record(event: dict[str, str]) -> None:
            seen.append(event["origin"])

        task = stream_each(button, record)
        self.rt.router.post(("event", button.id, {"origin": "a"}))
        self.rt.router.post(("event", button.id, {"origin": "b"}))
        self.rt.router.post(("clear_topic", button.id))
        await asyncio.wait_for(task, 1)

        self.assertEqual(seen, ["a", "b"])

    async def test_tagged_folds(self) -> None:
        first = control.button(self.rt, "A")
        second = control.button(self.rt, "B")
        seen: list[str] = []
        each = tagged_stream_each({"a": first}, lambda tag, event: seen.append(tag))
        reduce = tagged_stream_reduce(
            [("a", first), ("b", second)],
            [],
            lambda tag, event, acc: acc + [tag],
            supervisor=self.rt.supervisor,
        )
        self.rt.router.post(("event", second.id, {"origin": "client1"}))
        self.rt.router.post(("event", first.id, {"origin": "client1"}))
        self.rt.router.post(("clear_topic", first.id))

        self.assertEqual(await asyncio.wait_for(reduce, 1), ["b", "a"])
        await asyncio.wait_for(each, 1)
        self.assertEqual(seen, ["a"])

    async def test_runtime_stop_cancels_supervised_folds(self) -> None:
        button = control.button(self.rt, "Run")
        task = stream_each(button, lambda event: None, supervisor=self.rt.supervisor)
        await asyncio.sleep(0)
        await self.rt.stop()
        self.assertTrue(task.cancelled())


if __name__ == "__main__":
    unittest.main()
