from __future__ import annotations

import inspect
from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from chat_hook_plugins.status import ConsoleStatusSink, StatusSink

# Host context is read with .get() only, so a plain dict works.
HookContext = Mapping[str, Any]


@runtime_checkable
class Plugin(Protocol):
    @property
    def name(self) -> str: ...

    async def on_load(self) -> None: ...

    async def on_session_created(self, context: HookContext) -> None: ...

    async def on_before_send(self, context: HookContext, options: Any) -> Any:
        """Return the request payload subsequent stages (and the transport) will see."""
        ...

    async def on_after_receive(self, context: HookContext, response: Any) -> Any:
        """Return the response payload subsequent stages (and the host) will see."""
        ...

    async def on_session_end(self, context: HookContext) -> None: ...

    async def on_unload(self) -> None: ...


class BasePlugin:
    """No-op implementation of every hook; subclasses override what they need."""

    name = "base"

    def __init__(self, *, status: StatusSink | None = None):
        self._status: StatusSink = status if status is not None else ConsoleStatusSink()

    def _emit(self, *lines: str) -> None:
        for line in lines:
            self._status.emit(line)

    async def on_load(self) -> None:
        return None

    async def on_session_created(self, context: HookContext) -> None:
        return None

    async def on_before_send(self, context: HookContext, options: Any) -> Any:
        return options

    async def on_after_receive(self, context: HookContext, response: Any) -> Any:
        return response

    async def on_compaction_start(self, context: HookContext, data: Mapping[str, Any]) -> None:
        return None

    async def on_compaction_complete(self, context: HookContext, data: Mapping[str, Any]) -> None:
        return None

    async def on_session_end(self, context: HookContext) -> None:
        return None

    async def on_unload(self) -> None:
        return None


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def context_session_id(context: HookContext | None) -> str:
    if not context:
        return "unknown"
    return str(context.get("session_id") or context.get("sessionId") or "unknown")
