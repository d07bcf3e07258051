"""Classification of decoded entries.

Every function here branches on ``entry.type`` before reading any structural
field (``uuid``, ``parentUuid``, ``isSidechain``, ``agentId``). Metadata entries
do not carry those fields in the tree sense, and new entry types are treated
as metadata until they are added to ``ENTRY_KINDS`` with ``structural=True``.
"""
from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from convtree import config
from convtree.models import (
    AssistantEntry,
    ParseFailure,
    ToolResultContent,
    ToolUseContent,
    UserEntry,
    entry_models,
    entry_type_tag,
)


@dataclass(frozen=True)
class EntryKind:
    structural: bool
    searchable: bool


ENTRY_KINDS: dict[str, EntryKind] = {
    "user": EntryKind(structural=True, searchable=True),
    "assistant": EntryKind(structural=True, searchable=True),
    "system": EntryKind(structural=True, searchable=False),
    "summary": EntryKind(structural=False, searchable=False),
    "file-history-snapshot": EntryKind(structural=False, searchable=False),
    "queue-operation": EntryKind(structural=False, searchable=False),
    "progress": EntryKind(structural=False, searchable=False),
    "custom-title": EntryKind(structural=False, searchable=True),
    # Internal agent identifier, never shown to or searched by users.
    "agent-name": EntryKind(structural=False, searchable=False),
    "x-error": EntryKind(structural=False, searchable=False),
}

_UNCLASSIFIED = EntryKind(structural=False, searchable=False)


def unclassified_kinds() -> list[str]:
    """Entry types the decoder accepts that have no row in ``ENTRY_KINDS``."""
    return [tag for tag in (entry_type_tag(model) for model in entry_models()) if tag not in ENTRY_KINDS]


def kind_of(entry: Any) -> EntryKind:
    return ENTRY_KINDS.get(getattr(entry, "type", None), _UNCLASSIFIED)


def is_structural(entry: Any) -> bool:
    return kind_of(entry).structural


def is_sidechain_eligible(entry: Any) -> bool:
    if not is_structural(entry):
        return False
    return entry.isSidechain is True


def _user_text(entry: UserEntry) -> str:
    content = entry.message.content
    if isinstance(content, str):
        return content
    parts: list[str] = []
    for item in content:
        if isinstance(item, str):
            parts.append(item)
            continue
        text = getattr(item, "text", None)
        if isinstance(text, str):
            parts.append(text)
    return " ".join(part for part in parts if part)


def _assistant_text(entry: AssistantEntry) -> str:
    return " ".join(block.text for block in entry.message.content if block.type == "text")


def extract_searchable_text(entry: Any) -> str | None:
    """Text a search index should hold for this entry, or ``None``."""
    if not kind_of(entry).searchable:
        return None
    if entry.type == "user":
        return _user_text(entry)
    if entry.type == "assistant":
        return _assistant_text(entry)
    if entry.type == "custom-title":
        return entry.customTitle
    return None


def iter_tool_uses(entry: Any) -> Iterator[ToolUseContent]:
    if getattr(entry, "type", None) != "assistant":
        return
    for block in entry.message.content:
        if isinstance(block, ToolUseContent):
            yield block


def iter_tool_results(entry: Any) -> Iterator[ToolResultContent]:
    if getattr(entry, "type", None) != "user":
        return
    content = entry.message.content
    if isinstance(content, str):
        return
    for item in content:
        if isinstance(item, ToolResultContent):
            yield item


def is_delegation_tool(name: str) -> bool:
    return name in config.DELEGATION_TOOL_NAMES


def delegation_agent_id(entry: Any) -> str | None:
    """Sub-session id reported by the tool result this ``user`` entry carries."""
    if getattr(entry, "type", None) != "user":
        return None
    result = entry.toolUseResult
    if not isinstance(result, dict):
        return None
    agent_id = result.get("agentId")
    if isinstance(agent_id, str) and agent_id:
        return agent_id
    return None


def is_parse_failure(entry: Any) -> bool:
    return isinstance(entry, ParseFailure)
