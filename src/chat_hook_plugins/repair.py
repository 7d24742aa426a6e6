"""Restore the tool invocation/result linkage of a transcript before it is sent.

Chat APIs reject a request when an assistant tool invocation has no result, or
when a result references an invocation that is not in the transcript. Both
directions happen in practice: an interrupted turn leaves invocations
unanswered, and history trimming or a model switch can drop the assistant
message while its results survive.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from chat_hook_plugins.plugin import BasePlugin, HookContext
from chat_hook_plugins.status import StatusSink
from chat_hook_plugins.transcript import (
    ROLE_TOOL,
    ROLE_USER,
    content_blocks,
    declared_call_ids,
    extract_messages,
    is_call_id,
    is_tool_result_block,
    iter_result_ids,
    replace_messages,
    validate_transcript,
)

# Callers pattern-match on this text; it must not change.
INTERRUPTED_TOOL_RESULT = "The execution of this tool was interrupted."


@dataclass(frozen=True)
class RepairReport:
    removed_result_ids: tuple[str | None, ...] = ()
    synthesized_call_ids: tuple[str, ...] = ()
    duplicate_result_ids: tuple[str, ...] = ()

    @property
    def orphaned_results_removed(self) -> int:
        return len(self.removed_result_ids)

    @property
    def orphaned_calls_fixed(self) -> int:
        return len(self.synthesized_call_ids)

    @property
    def changed(self) -> bool:
        return bool(self.removed_result_ids or self.synthesized_call_ids)


@dataclass(frozen=True)
class RepairResult:
    messages: list[dict]
    report: RepairReport = field(default_factory=RepairReport)


def reconcile(messages: list[dict]) -> RepairResult:
    """Drop results for undeclared invocations, then answer unanswered invocations.

    Existing messages keep their relative order; synthesized results are
    appended at the end in the order their invocations were first declared.
    The input list and its messages are never mutated.
    """
    validate_transcript(messages)
    if not messages:
        return RepairResult(messages=[])

    declared = declared_call_ids(messages)
    cleaned, removed = _drop_orphaned_results(messages, declared)

    satisfied: set[str | None] = set()
    duplicates: list[str] = []
    for msg in cleaned:
        for result_id in iter_result_ids(msg):
            if result_id in satisfied and result_id not in duplicates:
                duplicates.append(result_id)
            satisfied.add(result_id)

    orphaned_calls = [call_id for call_id in declared if call_id not in satisfied]
    cleaned.extend(_synthesize_results(orphaned_calls, declared))

    if duplicates:
        # Left in place: whether to keep the first or the last result is not ours to decide.
        logger.warning(f"Transcript has multiple results for tool call(s): {', '.join(map(str, duplicates))}")
    if removed:
        logger.warning(f"Removed {len(removed)} orphaned tool result(s): {', '.join(map(str, removed))}")
    if orphaned_calls:
        logger.warning(
            f"Added {len(orphaned_calls)} placeholder result(s) for unanswered tool call(s): "
            f"{', '.join(map(str, orphaned_calls))}"
        )

    return RepairResult(
        messages=cleaned,
        report=RepairReport(
            removed_result_ids=tuple(removed),
            synthesized_call_ids=tuple(orphaned_calls),
            duplicate_result_ids=tuple(duplicates),
        ),
    )


def _is_declared(call_id: Any, declared: Mapping[str, bool]) -> bool:
    return is_call_id(call_id) and call_id in declared


def _drop_orphaned_results(
    messages: list[Mapping],
    declared: Mapping[str, bool],
) -> tuple[list[dict], list[str | None]]:
    cleaned: list[dict] = []
    removed: list[str | None] = []

    for msg in messages:
        role = msg.get("role")
        if role == ROLE_TOOL:
            call_id = msg.get("tool_call_id")
            if not _is_declared(call_id, declared):
                removed.append(call_id)
                continue
            cleaned.append(msg)
            continue

        blocks = content_blocks(msg)
        if role != ROLE_USER or not any(is_tool_result_block(b) for b in blocks):
            cleaned.append(msg)
            continue

        kept: list = []
        for block in blocks:
            if is_tool_result_block(block) and not _is_declared(block.get("tool_use_id"), declared):
                removed.append(block.get("tool_use_id"))
                continue
            kept.append(block)

        if len(kept) == len(blocks):
            cleaned.append(msg)
        elif kept:
            cleaned.append({**msg, "content": kept})
        # A user message that only carried orphaned results is dropped entirely.

    return cleaned, removed


def _synthesize_results(orphaned_calls: list[str], declared: Mapping[str, bool]) -> list[dict]:
    appended: list[dict] = []
    pending_blocks: list[dict] = []

    for call_id in orphaned_calls:
        if declared[call_id]:
            pending_blocks.append({
                "type": "tool_result",
                "tool_use_id": call_id,
                "content": INTERRUPTED_TOOL_RESULT,
                "is_error": True,
            })
            continue
        if pending_blocks:
            appended.append({"role": ROLE_USER, "content": pending_blocks})
            pending_blocks = []
        appended.append({
            "role": ROLE_TOOL,
            "tool_call_id": call_id,
            "content": INTERRUPTED_TOOL_RESULT,
        })

    if pending_blocks:
        appended.append({"role": ROLE_USER, "content": pending_blocks})
    return appended


@dataclass(frozen=True)
class RepairStats:
    repairs_performed: int = 0
    orphaned_results_removed: int = 0
    orphaned_calls_fixed: int = 0


class MessageRepairPlugin(BasePlugin):
    name = "message-repair"

    def __init__(self, *, status: StatusSink | None = None):
        super().__init__(status=status)
        self._repaired_count = 0
        self._orphaned_results_removed = 0
        self._orphaned_calls_fixed = 0

    @property
    def stats(self) -> RepairStats:
        return RepairStats(
            repairs_performed=self._repaired_count,
            orphaned_results_removed=self._orphaned_results_removed,
            orphaned_calls_fixed=self._orphaned_calls_fixed,
        )

    async def on_load(self) -> None:
        self._emit("🔧 MessageRepairPlugin loaded", "   Fixing orphaned tool_calls and tool_results")

    async def on_before_send(self, context: HookContext, options: Any) -> Any:
        messages = extract_messages(options)
        if not messages:
            return options

        result = reconcile(messages)
        self._record(result.report)
        if not result.report.changed:
            return options
        return replace_messages(options, result.messages)

    def _record(self, report: RepairReport) -> None:
        for result_id in report.removed_result_ids:
            self._emit(f"⚠️  MessageRepairPlugin: Removing orphaned tool_result: {result_id}")
        if report.synthesized_call_ids:
            self._emit(
                f"⚠️  MessageRepairPlugin: Adding {report.orphaned_calls_fixed} "
                "fake results for orphaned tool_calls"
            )
        if not report.changed:
            return
        self._repaired_count += 1
        self._orphaned_results_removed += report.orphaned_results_removed
        self._orphaned_calls_fixed += report.orphaned_calls_fixed

    async def on_session_end(self, context: HookContext) -> None:
        if self._repaired_count == 0:
            return
        logger.info(
            f"Message repair summary: repairs={self._repaired_count}, "
            f"orphaned_results_removed={self._orphaned_results_removed}, "
            f"orphaned_calls_fixed={self._orphaned_calls_fixed}"
        )
        self._emit(
            "",
            "🔧 MessageRepairPlugin Session Summary:",
            f"   Repairs performed: {self._repaired_count}",
            f"   Orphaned results removed: {self._orphaned_results_removed}",
            f"   Orphaned calls fixed: {self._orphaned_calls_fixed}",
            f"   ✅ Prevented {self._repaired_count} potential API errors",
            "",
        )
        # Each summary covers only the session it closes.
        self._repaired_count = 0
        self._orphaned_results_removed = 0
        self._orphaned_calls_fixed = 0

    async def on_unload(self) -> None:
        self._emit("🔧 MessageRepairPlugin unloaded")
