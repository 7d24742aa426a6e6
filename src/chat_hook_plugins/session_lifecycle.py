"""True session start/end on top of per-turn lifecycle notifications.

The host fires its session-created and session-end hooks once per prompt,
not once per session. ``SessionLifecyclePlugin`` is a two-state machine that
absorbs the repeats: the first session-created notification while IDLE opens
a session, and the first session-end notification while ACTIVE closes it.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from loguru import logger

from chat_hook_plugins.plugin import BasePlugin, HookContext, context_session_id, maybe_await
from chat_hook_plugins.status import StatusSink

SessionStartCallback = Callable[[HookContext], Awaitable[None] | None]
SessionEndCallback = Callable[[HookContext, float, int], Awaitable[None] | None]


def utc_now() -> str:
    return datetime.now(UTC).isoformat(timespec="seconds")


class SessionState(Enum):
    IDLE = "idle"
    ACTIVE = "active"


@dataclass
class SessionRecord:
    started_at: str | None = None
    started_monotonic: float | None = None
    message_count: int = 0
    data: dict[str, Any] = field(default_factory=dict)

    def reset(self) -> None:
        self.started_at = None
        self.started_monotonic = None
        self.message_count = 0
        self.data.clear()


class SessionLifecyclePlugin(BasePlugin):
    name = "session-lifecycle"

    def __init__(
        self,
        *,
        on_start: SessionStartCallback | None = None,
        on_end: SessionEndCallback | None = None,
        clock: Callable[[], float] = time.monotonic,
        status: StatusSink | None = None,
    ):
        super().__init__(status=status)
        self._on_start = on_start
        self._on_end = on_end
        self._clock = clock
        self._state = SessionState.IDLE
        self._record = SessionRecord()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is SessionState.ACTIVE

    @property
    def message_count(self) -> int:
        return self._record.message_count

    @property
    def started_at(self) -> str | None:
        return self._record.started_at

    def set_session_data(self, key: str, value: Any) -> None:
        self._record.data[key] = value

    def get_session_data(self, key: str, default: Any = None) -> Any:
        return self._record.data.get(key, default)

    async def on_load(self) -> None:
        self._emit("🔵 SessionLifecyclePlugin loaded")

    async def on_session_created(self, context: HookContext) -> None:
        if self._state is SessionState.ACTIVE:
            logger.debug(f"Ignoring repeated session-created notification ({context_session_id(context)})")
            return

        self._record.reset()
        self._record.started_at = utc_now()
        self._record.started_monotonic = self._clock()
        self._state = SessionState.ACTIVE

        logger.info(f"Actual session start: {context_session_id(context)} at {self._record.started_at}")
        self._emit(
            "",
            "🔵 ═══ ACTUAL SESSION START ═══",
            f"   Session ID: {context_session_id(context)}",
            f"   Started: {self._record.started_at}",
            "",
        )
        try:
            await self.on_actual_session_start(context)
        except BaseException:
            # Back to IDLE so the next notification opens the session again.
            self._record.reset()
            self._state = SessionState.IDLE
            raise

    async def on_before_send(self, context: HookContext, options: Any) -> Any:
        if self._state is SessionState.ACTIVE:
            self._record.message_count += 1
        return options

    async def on_session_end(self, context: HookContext) -> None:
        if self._state is SessionState.IDLE:
            return

        duration_ms = (self._clock() - (self._record.started_monotonic or 0.0)) * 1000.0
        message_count = self._record.message_count

        logger.info(
            f"Actual session end: {context_session_id(context)} "
            f"duration={duration_ms / 1000:.2f}s messages={message_count}"
        )
        self._emit(
            "",
            "🔴 ═══ ACTUAL SESSION END ═══",
            f"   Duration: {duration_ms / 1000:.2f}s",
            f"   Messages sent: {message_count}",
            f"   Ended: {utc_now()}",
            "",
        )
        try:
            await self.on_actual_session_end(context, duration_ms, message_count)
        finally:
            self._record.reset()
            self._state = SessionState.IDLE

    async def on_actual_session_start(self, context: HookContext) -> None:
        """Runs once per true session. Override, or pass ``on_start``."""
        if self._on_start is not None:
            await maybe_await(self._on_start(context))

    async def on_actual_session_end(self, context: HookContext, duration_ms: float, message_count: int) -> None:
        """Runs once per true session, before session state is reset."""
        if self._on_end is not None:
            await maybe_await(self._on_end(context, duration_ms, message_count))

    async def on_unload(self) -> None:
        self._emit("🔵 SessionLifecyclePlugin unloaded")
