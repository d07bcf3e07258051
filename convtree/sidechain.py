"""Grouping of sidechain entries and the lookups that tie them to delegations.

A sidechain is the transcript of a delegated sub-task. Its entries carry
``isSidechain=True`` and hang off a root whose ``parentUuid`` is ``None`` (or
points outside the sidechain). ``SidechainIndex`` groups them by root and
offers two ways to find the group for a delegation tool call:

* by ``agentId``: the tool result of the call reports the sub-session's
  ``agentId`` and the sidechain root carries the same ``agentId``;
* by prompt: the root is a plain-text user message equal to the prompt the
  tool call was given. Older producers write no ``agentId`` at all.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from convtree.classify import (
    delegation_agent_id,
    is_delegation_tool,
    is_sidechain_eligible,
    is_structural,
    iter_tool_results,
    iter_tool_uses,
)
from convtree.date_utils import timestamp_sort_key
from convtree.models import StructuralEntry
from convtree.tree import ConversationTree

logger = logging.getLogger("convtree.sidechain")


@dataclass(frozen=True)
class SidechainIndex:
    groups_by_root_id: dict[str, tuple[StructuralEntry, ...]] = field(default_factory=dict)
    root_by_prompt: dict[str, StructuralEntry] = field(default_factory=dict)
    root_by_agent_id: dict[str, StructuralEntry] = field(default_factory=dict)
    tool_use_id_to_agent_id: dict[str, str] = field(default_factory=dict)
    delegation_prompts: frozenset[str] = frozenset()

    @classmethod
    def build(cls, entries: Iterable[Any]) -> SidechainIndex:
        entries = list(entries)
        sidechain = [entry for entry in entries if is_sidechain_eligible(entry)]
        tree = ConversationTree.build(sidechain)

        grouped: dict[str, list[StructuralEntry]] = {}
        for entry in sidechain:
            root = tree.root_of(entry)
            grouped.setdefault(root.uuid, []).append(entry)
        groups_by_root_id = {
            root_id: tuple(sorted(members, key=lambda item: timestamp_sort_key(item.timestamp)))
            for root_id, members in grouped.items()
        }

        root_by_prompt: dict[str, StructuralEntry] = {}
        root_by_agent_id: dict[str, StructuralEntry] = {}
        for entry in sidechain:
            if entry.parentUuid is not None:
                continue
            if entry.type == "user" and isinstance(entry.message.content, str):
                previous = root_by_prompt.get(entry.message.content)
                if previous is not None and previous.uuid != entry.uuid:
                    logger.debug(
                        "Sidechain roots %s and %s share a prompt; keeping the later one",
                        previous.uuid,
                        entry.uuid,
                    )
                root_by_prompt[entry.message.content] = entry
            if entry.agentId is not None:
                root_by_agent_id[entry.agentId] = entry

        tool_use_id_to_agent_id: dict[str, str] = {}
        delegation_prompts: set[str] = set()
        for entry in entries:
            if not is_structural(entry):
                continue
            agent_id = delegation_agent_id(entry)
            if agent_id is not None:
                for result in iter_tool_results(entry):
                    tool_use_id_to_agent_id[result.tool_use_id] = agent_id
            for tool_use in iter_tool_uses(entry):
                prompt = tool_use.input.get("prompt")
                if is_delegation_tool(tool_use.name) and isinstance(prompt, str):
                    delegation_prompts.add(prompt)

        logger.debug(
            "Indexed %s sidechain groups (%s by prompt, %s by agentId, %s tool results)",
            len(groups_by_root_id),
            len(root_by_prompt),
            len(root_by_agent_id),
            len(tool_use_id_to_agent_id),
        )
        return cls(
            groups_by_root_id=groups_by_root_id,
            root_by_prompt=root_by_prompt,
            root_by_agent_id=root_by_agent_id,
            tool_use_id_to_agent_id=tool_use_id_to_agent_id,
            delegation_prompts=frozenset(delegation_prompts),
        )

    def is_root_sidechain(self, entry: Any) -> bool:
        if not is_structural(entry):
            return False
        return entry.uuid in self.groups_by_root_id

    def get_group(self, root_id: str) -> list[StructuralEntry]:
        return list(self.groups_by_root_id.get(root_id, ()))

    def root_for_prompt(self, prompt: str) -> StructuralEntry | None:
        return self.root_by_prompt.get(prompt)

    def root_for_agent_id(self, agent_id: str) -> StructuralEntry | None:
        return self.root_by_agent_id.get(agent_id)

    def agent_id_for_tool_use(self, tool_use_id: str) -> str | None:
        return self.tool_use_id_to_agent_id.get(tool_use_id)

    def exists_related_task_call(self, prompt: str) -> bool:
        """Whether some delegation tool call in the log was given ``prompt``."""
        return prompt in self.delegation_prompts
