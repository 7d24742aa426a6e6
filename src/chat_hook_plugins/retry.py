from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any

from loguru import logger

from chat_hook_plugins.plugin import BasePlugin, HookContext
from chat_hook_plugins.status import StatusSink

DEFAULT_RETRY_COMMAND = "/retry"
NOTHING_TO_RETRY = "❌ No previous request to retry"


def is_error_response(response: Any) -> bool:
    return isinstance(response, Mapping) and bool(response.get("error") or response.get("type") == "error")


class RetryPlugin(BasePlugin):
    """Manual replay of the last outbound request.

    Every request that is not the retry command is deep-copied and kept; when
    the operator types the retry command the kept request is sent again
    instead. Failures are never retried automatically, only reported.
    """

    name = "retry"

    def __init__(self, *, retry_command: str = DEFAULT_RETRY_COMMAND, status: StatusSink | None = None):
        super().__init__(status=status)
        self._retry_command = retry_command
        self._last_request: Any = None
        self._has_last_request = False
        self._last_error: Any = None

    @property
    def retry_command(self) -> str:
        return self._retry_command

    @property
    def last_request(self) -> Any:
        return copy.deepcopy(self._last_request)

    @property
    def has_last_request(self) -> bool:
        return self._has_last_request

    @property
    def last_error(self) -> Any:
        return self._last_error

    @property
    def has_failure(self) -> bool:
        return self._last_error is not None

    def is_retry_command(self, request: Any) -> bool:
        if not isinstance(request, Mapping):
            return False
        return request.get("message") == self._retry_command or request.get("prompt") == self._retry_command

    async def on_load(self) -> None:
        self._emit("🔄 RetryPlugin loaded", f"   Type {self._retry_command} to retry the last request")

    async def on_before_send(self, context: HookContext, options: Any) -> Any:
        if self.is_retry_command(options):
            if self._has_last_request:
                logger.info("Replaying last request")
                self._emit("🔄 Retrying last request...")
                return copy.deepcopy(self._last_request)
            logger.info("Retry requested with no cached request")
            return {**options, "message": NOTHING_TO_RETRY, "prompt": NOTHING_TO_RETRY}

        try:
            snapshot = copy.deepcopy(options)
        except (TypeError, copy.Error) as ex:
            # An older snapshot must never be replayed in place of this request.
            logger.warning(f"Request cannot be kept for retry: {ex}")
            self._last_request = None
            self._has_last_request = False
            return options

        self._last_request = snapshot
        self._has_last_request = True
        return options

    async def on_after_receive(self, context: HookContext, response: Any) -> Any:
        if is_error_response(response):
            self._last_error = response
            logger.warning(f"Request failed: {response.get('error') or response.get('type')}")
            self._emit(
                "",
                "⚠️  Request failed!",
                f"💡 TIP: Type {self._retry_command} to retry the last request",
                "",
            )
        else:
            self._last_error = None
        return response

    async def on_session_end(self, context: HookContext) -> None:
        self._emit("🔄 RetryPlugin session ended")

    async def on_unload(self) -> None:
        self._emit("🔄 RetryPlugin unloaded")
