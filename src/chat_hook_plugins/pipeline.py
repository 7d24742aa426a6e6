from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import Any

from loguru import logger

from chat_hook_plugins.app_config import PluginsConfig
from chat_hook_plugins.plugin import HookContext, Plugin, maybe_await
from chat_hook_plugins.status import StatusSink, create_status_sink

# Returns the response, or an awaitable of it.
Transport = Callable[[Any], Any]


class PluginPipeline:
    """Runs plugin hooks in registration order, one stage at a time.

    Callers must not run two stages concurrently; the plugins keep
    per-session state without locks.
    """

    def __init__(self, plugins: Iterable[Plugin]):
        self._plugins: list[Plugin] = list(plugins)

    @property
    def plugins(self) -> list[Plugin]:
        return list(self._plugins)

    def get(self, name: str) -> Plugin | None:
        for plugin in self._plugins:
            if plugin.name == name:
                return plugin
        return None

    async def _call(self, plugin: Plugin, hook: str, *args: Any) -> Any:
        method = getattr(plugin, hook, None)
        if method is None:
            # Optional hooks (compaction) default to "no result"; payload hooks pass through.
            return args[-1] if hook in ("on_before_send", "on_after_receive") else None
        try:
            return await maybe_await(method(*args))
        except Exception as ex:
            logger.error(f"Plugin {plugin.name!r} failed in {hook}: {ex}")
            raise

    async def load(self) -> None:
        for plugin in self._plugins:
            await self._call(plugin, "on_load")
        logger.debug(f"Loaded plugins: {', '.join(p.name for p in self._plugins) or 'none'}")

    async def session_created(self, context: HookContext) -> None:
        for plugin in self._plugins:
            await self._call(plugin, "on_session_created", context)

    async def before_send(self, context: HookContext, options: Any) -> Any:
        for plugin in self._plugins:
            options = await self._call(plugin, "on_before_send", context, options)
        return options

    async def after_receive(self, context: HookContext, response: Any) -> Any:
        for plugin in self._plugins:
            response = await self._call(plugin, "on_after_receive", context, response)
        return response

    async def compaction_start(self, context: HookContext, data: Mapping[str, Any]) -> None:
        for plugin in self._plugins:
            await self._call(plugin, "on_compaction_start", context, data)

    async def compaction_complete(self, context: HookContext, data: Mapping[str, Any]) -> None:
        for plugin in self._plugins:
            await self._call(plugin, "on_compaction_complete", context, data)

    async def session_end(self, context: HookContext) -> None:
        for plugin in self._plugins:
            await self._call(plugin, "on_session_end", context)

    async def unload(self) -> None:
        for plugin in self._plugins:
            await self._call(plugin, "on_unload")

    async def send(self, context: HookContext, options: Any, transport: Transport) -> Any:
        """One outbound turn: before-send hooks, the transport call, after-receive hooks."""
        outbound = await self.before_send(context, options)
        response = await maybe_await(transport(outbound))
        return await self.after_receive(context, response)


def create_plugin(name: str, config: PluginsConfig, status: StatusSink) -> Plugin:
    """Factory: create a plugin by its registry name."""
    key = name.strip().lower()
    if key == "message-repair":
        from chat_hook_plugins.repair import MessageRepairPlugin
        return MessageRepairPlugin(status=status)
    if key == "retry":
        from chat_hook_plugins.retry import RetryPlugin
        return RetryPlugin(retry_command=config.retry_command, status=status)
    if key == "session-lifecycle":
        from chat_hook_plugins.session_lifecycle import SessionLifecyclePlugin
        return SessionLifecyclePlugin(status=status)
    if key == "debug-logger":
        from chat_hook_plugins.debug_logger import DebugLoggerPlugin
        return DebugLoggerPlugin(preview_chars=config.debug_preview_chars, status=status)
    raise ValueError(
        f"Unknown plugin: {name!r}. "
        "Supported: 'message-repair', 'retry', 'session-lifecycle', 'debug-logger'"
    )


def build_pipeline(config: PluginsConfig, status: StatusSink | None = None) -> PluginPipeline:
    sink = status if status is not None else create_status_sink(config.status_output, config.status_line_prefix)
    return PluginPipeline(create_plugin(name, config, sink) for name in config.plugins)
