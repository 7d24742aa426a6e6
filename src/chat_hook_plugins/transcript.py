from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_TOOL = "tool"
ROLE_SYSTEM = "system"


class TranscriptError(ValueError):
    """Raised when a payload is not a transcript at all."""


@dataclass(frozen=True)
class LinkageReport:
    orphaned_result_ids: tuple[str | None, ...] = ()
    orphaned_call_ids: tuple[str, ...] = ()
    duplicate_result_ids: tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not (self.orphaned_result_ids or self.orphaned_call_ids or self.duplicate_result_ids)


def extract_messages(payload: Any) -> list[dict] | None:
    """Return the transcript carried by a request payload, or None.

    Two shapes are accepted: a mapping with a list-valued ``messages`` field,
    and a bare list of messages (the legacy shape).
    """
    if isinstance(payload, Mapping) and isinstance(payload.get("messages"), list):
        return payload["messages"]
    if isinstance(payload, list):
        return payload
    return None


def replace_messages(payload: Any, messages: list[dict]) -> Any:
    """Return a payload of the same shape as ``payload`` carrying ``messages``."""
    if isinstance(payload, Mapping) and isinstance(payload.get("messages"), list):
        return {**payload, "messages": messages}
    if isinstance(payload, list):
        return messages
    return payload


def validate_transcript(messages: Any) -> list[Mapping]:
    if not isinstance(messages, list):
        raise TranscriptError(f"Transcript must be a list of messages, got {type(messages).__name__}")
    for index, msg in enumerate(messages):
        if not isinstance(msg, Mapping):
            raise TranscriptError(
                f"Transcript entry {index} must be a message mapping, got {type(msg).__name__}"
            )
    return messages


def is_call_id(value: Any) -> bool:
    """True for a value usable as an invocation id: present and hashable."""
    if value is None:
        return False
    try:
        hash(value)
    except TypeError:
        return False
    return True


def content_blocks(msg: Mapping) -> list:
    content = msg.get("content")
    return content if isinstance(content, list) else []


def iter_tool_calls(msg: Mapping) -> Iterator[tuple[str, bool]]:
    """Yield ``(call_id, is_block)`` for every invocation an assistant message declares.

    ``is_block`` is True for ``tool_use`` content blocks and False for entries
    of the ``tool_calls`` list. Entries without a usable id are skipped.
    """
    if msg.get("role") != ROLE_ASSISTANT:
        return
    for call in msg.get("tool_calls") or []:
        if isinstance(call, Mapping) and is_call_id(call.get("id")):
            yield call["id"], False
    for block in content_blocks(msg):
        if isinstance(block, Mapping) and block.get("type") == "tool_use" and is_call_id(block.get("id")):
            yield block["id"], True


def tool_call_name(call: Mapping) -> str:
    function = call.get("function")
    if isinstance(function, Mapping) and function.get("name"):
        return str(function["name"])
    return str(call.get("name") or "unknown")


def is_tool_result_block(block: Any) -> bool:
    return isinstance(block, Mapping) and block.get("type") == "tool_result"


def iter_result_ids(msg: Mapping) -> Iterator[str | None]:
    """Yield the invocation id referenced by every result a message carries."""
    role = msg.get("role")
    if role == ROLE_TOOL:
        yield msg.get("tool_call_id")
    elif role == ROLE_USER:
        for block in content_blocks(msg):
            if is_tool_result_block(block):
                yield block.get("tool_use_id")


def declared_call_ids(messages: list[Mapping]) -> dict[str, bool]:
    """Declared invocation ids in first-appearance order, mapped to ``is_block``."""
    declared: dict[str, bool] = {}
    for msg in messages:
        for call_id, is_block in iter_tool_calls(msg):
            declared.setdefault(call_id, is_block)
    return declared


def check_linkage(messages: Any) -> LinkageReport:
    """Check the linkage invariant without changing anything."""
    validate_transcript(messages)
    declared = declared_call_ids(messages)

    orphaned_results: list[str | None] = []
    seen: set[str] = set()
    duplicates: list[str] = []
    for msg in messages:
        for result_id in iter_result_ids(msg):
            if not is_call_id(result_id) or result_id not in declared:
                orphaned_results.append(result_id)
            elif result_id in seen:
                if result_id not in duplicates:
                    duplicates.append(result_id)
            else:
                seen.add(result_id)

    return LinkageReport(
        orphaned_result_ids=tuple(orphaned_results),
        orphaned_call_ids=tuple(call_id for call_id in declared if call_id not in seen),
        duplicate_result_ids=tuple(duplicates),
    )


def count_tool_activity(messages: list[Mapping]) -> tuple[int, int]:
    """Return (assistant messages with invocations, results) for summaries."""
    calls = sum(1 for msg in messages if any(True for _ in iter_tool_calls(msg)))
    results = sum(1 for msg in messages for _ in iter_result_ids(msg))
    return calls, results
