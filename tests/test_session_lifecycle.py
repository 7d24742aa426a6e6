import asyncio
import unittest

from chat_hook_plugins.session_lifecycle import SessionLifecyclePlugin, SessionState
from chat_hook_plugins.status import RecordingStatusSink


class _FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


class SessionLifecycleTests(unittest.TestCase):
    def setUp(self) -> None:
        self._clock = _FakeClock()
        self._starts: list[dict] = []
        self._ends: list[tuple[float, int]] = []
        self._sink = RecordingStatusSink()
        self._plugin = SessionLifecyclePlugin(
            on_start=lambda ctx: self._starts.append(ctx),
            on_end=self._record_end,
            clock=self._clock,
            status=self._sink,
        )

    async def _record_end(self, context, duration_ms: float, message_count: int) -> None:
        self._ends.append((duration_ms, message_count))

    def test_repeated_session_created_starts_once(self) -> None:
        async def scenario() -> None:
            await self._plugin.on_session_created({"session_id": "s1"})
            await self._plugin.on_session_created({"session_id": "s1"})

        asyncio.run(scenario())
        self.assertEqual(1, len(self._starts))
        self.assertIs(SessionState.ACTIVE, self._plugin.state)
        self.assertEqual(1, sum("ACTUAL SESSION START" in line for line in self._sink.lines))

    def test_message_count_and_duration_reach_end_callback(self) -> None:
        async def scenario() -> None:
            await self._plugin.on_session_created({"session_id": "s1"})
            for _ in range(3):
                await self._plugin.on_before_send({}, {"message": "hi"})
            self._clock.now += 2.5
            await self._plugin.on_session_end({"session_id": "s1"})

        asyncio.run(scenario())
        self.assertEqual([(2500.0, 3)], self._ends)
        self.assertIs(SessionState.IDLE, self._plugin.state)
        self.assertEqual(0, self._plugin.message_count)
        self.assertIsNone(self._plugin.started_at)

    def test_session_end_while_idle_is_noop(self) -> None:
        asyncio.run(self._plugin.on_session_end({}))
        self.assertEqual([], self._ends)
        self.assertEqual([], self._sink.lines)

    def test_before_send_returns_options_unchanged(self) -> None:
        options = {"message": "hi"}
        self.assertIs(options, asyncio.run(self._plugin.on_before_send({}, options)))

    def test_before_send_while_idle_does_not_count(self) -> None:
        async def scenario() -> None:
            await self._plugin.on_before_send({}, {})
            await self._plugin.on_session_created({})
            await self._plugin.on_session_end({})

        asyncio.run(scenario())
        self.assertEqual(0, self._ends[0][1])

    def test_new_session_after_end_starts_again(self) -> None:
        async def scenario() -> None:
            await self._plugin.on_session_created({})
            await self._plugin.on_session_end({})
            await self._plugin.on_session_end({})
            await self._plugin.on_session_created({})

        asyncio.run(scenario())
        self.assertEqual(2, len(self._starts))
        self.assertEqual(1, len(self._ends))

    def test_session_data_is_scoped_to_one_session(self) -> None:
        async def scenario() -> None:
            self._plugin.set_session_data("before", 1)
            await self._plugin.on_session_created({})
            self.assertIsNone(self._plugin.get_session_data("before"))
            self._plugin.set_session_data("user", "ana")
            self.assertEqual("ana", self._plugin.get_session_data("user"))
            await self._plugin.on_session_end({})

        asyncio.run(scenario())
        self.assertIsNone(self._plugin.get_session_data("user"))
        self.assertEqual("fallback", self._plugin.get_session_data("user", "fallback"))

    def test_subclass_hooks_see_session_data_before_reset(self) -> None:
        seen: dict = {}

        class _Plugin(SessionLifecyclePlugin):
            async def on_actual_session_start(self, context) -> None:
                self.set_session_data("opened_by", context.get("session_id"))

            async def on_actual_session_end(self, context, duration_ms, message_count) -> None:
                seen["opened_by"] = self.get_session_data("opened_by")
                seen["count"] = message_count

        plugin = _Plugin(status=RecordingStatusSink())

        async def scenario() -> None:
            await plugin.on_session_created({"session_id": "abc"})
            await plugin.on_before_send({}, {})
            await plugin.on_session_end({})

        asyncio.run(scenario())
        self.assertEqual({"opened_by": "abc", "count": 1}, seen)

    def test_state_resets_even_if_end_callback_fails(self) -> None:
        def boom(context, duration_ms, count) -> None:
            raise RuntimeError("boom")

        plugin = SessionLifecyclePlugin(on_end=boom, status=RecordingStatusSink())

        async def scenario() -> None:
            await plugin.on_session_created({})
            with self.assertRaises(RuntimeError):
                await plugin.on_session_end({})

        asyncio.run(scenario())
        self.assertIs(SessionState.IDLE, plugin.state)

    def test_failed_start_callback_leaves_tracker_idle(self) -> None:
        calls: list[dict] = []

        def flaky_start(context) -> None:
            calls.append(context)
            if len(calls) == 1:
                raise RuntimeError("boom")

        plugin = SessionLifecyclePlugin(on_start=flaky_start, status=RecordingStatusSink())

        async def scenario() -> None:
            with self.assertRaises(RuntimeError):
                await plugin.on_session_created({"session_id": "s1"})
            self.assertIs(SessionState.IDLE, plugin.state)
            self.assertIsNone(plugin.started_at)

            await plugin.on_session_created({"session_id": "s1"})

        asyncio.run(scenario())
        self.assertEqual(2, len(calls))
        self.assertIs(SessionState.ACTIVE, plugin.state)


if __name__ == "__main__":
    unittest.main()
