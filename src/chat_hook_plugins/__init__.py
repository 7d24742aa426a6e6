from chat_hook_plugins.debug_logger import DebugLoggerPlugin
from chat_hook_plugins.pipeline import PluginPipeline, build_pipeline, create_plugin
from chat_hook_plugins.plugin import BasePlugin, Plugin
from chat_hook_plugins.repair import INTERRUPTED_TOOL_RESULT, MessageRepairPlugin, reconcile
from chat_hook_plugins.retry import NOTHING_TO_RETRY, RetryPlugin
from chat_hook_plugins.session_lifecycle import SessionLifecyclePlugin, SessionState
from chat_hook_plugins.transcript import LinkageReport, TranscriptError, check_linkage

__all__ = [
    "BasePlugin",
    "DebugLoggerPlugin",
    "INTERRUPTED_TOOL_RESULT",
    "LinkageReport",
    "MessageRepairPlugin",
    "NOTHING_TO_RETRY",
    "Plugin",
    "PluginPipeline",
    "RetryPlugin",
    "SessionLifecyclePlugin",
    "SessionState",
    "TranscriptError",
    "build_pipeline",
    "check_linkage",
    "create_plugin",
    "reconcile",
]
