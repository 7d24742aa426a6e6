import asyncio
import unittest

from chat_hook_plugins.app_config import parse_plugins_config
from chat_hook_plugins.pipeline import PluginPipeline, build_pipeline, create_plugin
from chat_hook_plugins.repair import INTERRUPTED_TOOL_RESULT, MessageRepairPlugin
from chat_hook_plugins.retry import RetryPlugin
from chat_hook_plugins.session_lifecycle import SessionLifecyclePlugin
from chat_hook_plugins.status import RecordingStatusSink


class _SyncPlugin:
    """Hooks may return plain values instead of awaitables."""

    name = "sync"

    def __init__(self) -> None:
        self.calls: list[str] = []

    def on_before_send(self, context, options):
        self.calls.append("before_send")
        return {**options, "tagged": True}

    def on_after_receive(self, context, response):
        self.calls.append("after_receive")
        return response


class _FailingPlugin:
    name = "failing"

    async def on_before_send(self, context, options):
        raise RuntimeError("broken plugin")


class PluginPipelineTests(unittest.TestCase):
    def setUp(self) -> None:
        self._sink = RecordingStatusSink()
        config = parse_plugins_config({"Plugins": ["session-lifecycle", "message-repair", "retry"]})
        self._pipeline = build_pipeline(config, self._sink)

    def test_build_pipeline_keeps_configured_order(self) -> None:
        names = [p.name for p in self._pipeline.plugins]
        self.assertEqual(["session-lifecycle", "message-repair", "retry"], names)
        self.assertIsInstance(self._pipeline.get("retry"), RetryPlugin)
        self.assertIsNone(self._pipeline.get("missing"))

    def test_full_turn_repairs_transcript_before_transport(self) -> None:
        sent: list = []

        async def transport(options):
            sent.append(options)
            return {"content": "done"}

        async def scenario():
            await self._pipeline.load()
            await self._pipeline.session_created({"session_id": "s1"})
            response = await self._pipeline.send(
                {"session_id": "s1"},
                {"message": "go", "messages": [{"role": "assistant", "tool_calls": [{"id": "a"}]}]},
                transport,
            )
            await self._pipeline.session_end({"session_id": "s1"})
            await self._pipeline.unload()
            return response

        response = asyncio.run(scenario())
        self.assertEqual({"content": "done"}, response)
        self.assertEqual(INTERRUPTED_TOOL_RESULT, sent[0]["messages"][-1]["content"])
        self.assertIn("🔴 ═══ ACTUAL SESSION END ═══", self._sink.lines)

    def test_retry_after_failure_replays_repaired_request(self) -> None:
        responses = [{"error": "overloaded"}, {"content": "ok"}]
        sent: list = []

        def transport(options):
            sent.append(options)
            return responses.pop(0)

        async def scenario():
            await self._pipeline.session_created({})
            await self._pipeline.send({}, {"message": "hi", "messages": [{"role": "tool", "tool_call_id": "x"}]}, transport)
            await self._pipeline.send({}, {"message": "/retry"}, transport)

        asyncio.run(scenario())
        self.assertEqual(sent[0], sent[1])
        self.assertEqual([], sent[1]["messages"])
        retry = self._pipeline.get("retry")
        self.assertFalse(retry.has_failure)
        lifecycle = self._pipeline.get("session-lifecycle")
        self.assertEqual(2, lifecycle.message_count)

    def test_sync_hooks_and_missing_hooks(self) -> None:
        sync = _SyncPlugin()
        pipeline = PluginPipeline([sync])

        async def scenario():
            await pipeline.load()
            await pipeline.compaction_start({}, {})
            return await pipeline.send({}, {"message": "hi"}, lambda o: {"echo": o})

        response = asyncio.run(scenario())
        self.assertEqual({"echo": {"message": "hi", "tagged": True}}, response)
        self.assertEqual(["before_send", "after_receive"], sync.calls)

    def test_plugin_failure_propagates_and_stops_stage(self) -> None:
        sync = _SyncPlugin()
        pipeline = PluginPipeline([_FailingPlugin(), sync])
        with self.assertRaises(RuntimeError):
            asyncio.run(pipeline.before_send({}, {"message": "hi"}))
        self.assertEqual([], sync.calls)


class CreatePluginTests(unittest.TestCase):
    def test_creates_each_known_plugin(self) -> None:
        config = parse_plugins_config({"RetryCommand": "!r", "DebugPreviewChars": 20})
        sink = RecordingStatusSink()
        self.assertIsInstance(create_plugin("message-repair", config, sink), MessageRepairPlugin)
        self.assertIsInstance(create_plugin(" Session-Lifecycle ", config, sink), SessionLifecyclePlugin)
        retry = create_plugin("retry", config, sink)
        self.assertEqual("!r", retry.retry_command)
        self.assertEqual("debug-logger", create_plugin("debug-logger", config, sink).name)

    def test_unknown_plugin_raises(self) -> None:
        config = parse_plugins_config({})
        with self.assertRaises(ValueError):
            create_plugin("telemetry", config, RecordingStatusSink())


if __name__ == "__main__":
    unittest.main()
