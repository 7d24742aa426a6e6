from __future__ import annotations

import json
import time
from collections.abc import Callable, Mapping
from typing import Any

from loguru import logger

from chat_hook_plugins.plugin import BasePlugin, HookContext, context_session_id
from chat_hook_plugins.status import StatusSink
from chat_hook_plugins.transcript import count_tool_activity, extract_messages, tool_call_name


def _preview(value: Any, limit: int) -> str:
    text = value if isinstance(value, str) else json.dumps(value, ensure_ascii=False, default=str)
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


class DebugLoggerPlugin(BasePlugin):
    """Logs a one-line summary of every hook invocation at DEBUG level."""

    name = "debug-logger"

    def __init__(
        self,
        *,
        preview_chars: int = 80,
        clock: Callable[[], float] = time.monotonic,
        status: StatusSink | None = None,
    ):
        super().__init__(status=status)
        self._preview_chars = max(1, preview_chars)
        self._clock = clock
        self._start_time: float | None = None

    def _elapsed(self) -> float:
        if self._start_time is None:
            return 0.0
        return self._clock() - self._start_time

    async def on_load(self) -> None:
        self._start_time = self._clock()
        logger.debug("Debug logger enabled: hook payloads will be logged")

    async def on_session_created(self, context: HookContext) -> None:
        has_data = bool(context.get("data")) if context else False
        logger.debug(
            f"SESSION CREATED session_id={context_session_id(context)} "
            f"context_data={'present' if has_data else 'none'}"
        )

    async def on_before_send(self, context: HookContext, options: Any) -> Any:
        parts = [f"BEFORE SEND [+{self._elapsed():.2f}s]"]

        if isinstance(options, Mapping):
            message = options.get("message") or options.get("prompt")
            if message is not None:
                text = message if isinstance(message, str) else json.dumps(message, default=str)
                parts.append(f'message="{_preview(text, self._preview_chars)}" length={len(text)}')
            if isinstance(options.get("tools"), list):
                parts.append(f"tools={len(options['tools'])}")
            if options.get("model"):
                parts.append(f"model={options['model']}")

        messages = extract_messages(options)
        if messages is not None:
            parts.append(f"history={len(messages)}")
            tool_calls, tool_results = count_tool_activity(
                [m for m in messages if isinstance(m, Mapping)]
            )
            if tool_calls or tool_results:
                parts.append(f"tool_calls={tool_calls} tool_results={tool_results}")

        logger.debug(" ".join(parts))
        return options

    async def on_after_receive(self, context: HookContext, response: Any) -> Any:
        parts = [f"AFTER RECEIVE [+{self._elapsed():.2f}s]"]

        if response is None:
            parts.append("response is empty")
        elif isinstance(response, Mapping):
            if response.get("error"):
                parts.append(f"error={response['error']}")
            elif isinstance(response.get("content"), str):
                content = response["content"]
                parts.append(f'content="{_preview(content, self._preview_chars)}" length={len(content)}')
            elif response.get("type"):
                parts.append(f"type={response['type']}")

            tool_calls = response.get("tool_calls")
            if isinstance(tool_calls, list):
                names = [tool_call_name(tc) if isinstance(tc, Mapping) else "unknown" for tc in tool_calls]
                parts.append(f"tool_calls={len(tool_calls)} [{', '.join(names)}]")
        else:
            parts.append(f"type={type(response).__name__}")

        logger.debug(" ".join(parts))
        return response

    async def on_compaction_start(self, context: HookContext, data: Mapping[str, Any]) -> None:
        logger.debug(
            f"COMPACTION START tokens={data.get('preCompactionTokens') or 'unknown'} "
            f"messages={data.get('preCompactionMessagesLength') or 'unknown'}"
        )

    async def on_compaction_complete(self, context: HookContext, data: Mapping[str, Any]) -> None:
        if data.get("success"):
            logger.debug(
                f"COMPACTION COMPLETE tokens_removed={data.get('tokensRemoved') or 'unknown'} "
                f"messages_removed={data.get('messagesRemoved') or 'unknown'}"
            )
        else:
            logger.debug(f"COMPACTION FAILED error={data.get('error')}")

    async def on_session_end(self, context: HookContext) -> None:
        logger.debug(f"SESSION END total_time={self._elapsed():.2f}s")

    async def on_unload(self) -> None:
        logger.debug("Debug logger unloaded")
