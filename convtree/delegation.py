"""Resolve delegation tool calls to the sidechain they spawned."""
from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

from convtree import observability
from convtree.classify import is_delegation_tool, iter_tool_uses
from convtree.models import StructuralEntry
from convtree.sidechain import SidechainIndex

logger = logging.getLogger("convtree.delegation")

STRATEGY_AGENT_ID = "agent_id"
STRATEGY_PROMPT = "prompt"
STRATEGY_NONE = "none"


@dataclass(frozen=True)
class DelegationInvocation:
    tool_use_id: str
    tool_name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    source_uuid: str | None = None

    @property
    def prompt(self) -> str | None:
        value = self.arguments.get("prompt")
        return value if isinstance(value, str) else None


@dataclass(frozen=True)
class DelegationMatch:
    strategy: str
    root_uuid: str | None = None
    entries: tuple[StructuralEntry, ...] = ()

    @property
    def found(self) -> bool:
        return bool(self.entries)


def iter_delegation_invocations(entry: Any) -> Iterator[DelegationInvocation]:
    """Delegation tool calls in an ``assistant`` entry, in content order."""
    for tool_use in iter_tool_uses(entry):
        if not is_delegation_tool(tool_use.name):
            continue
        yield DelegationInvocation(
            tool_use_id=tool_use.id,
            tool_name=tool_use.name,
            arguments=dict(tool_use.input),
            source_uuid=entry.uuid,
        )


def resolve_delegation_match(invocation: DelegationInvocation, index: SidechainIndex) -> DelegationMatch:
    """Find the sidechain for ``invocation``: by ``agentId`` first, then by prompt."""
    agent_id = index.agent_id_for_tool_use(invocation.tool_use_id)
    if agent_id is not None:
        root = index.root_for_agent_id(agent_id)
        if root is not None:
            group = index.groups_by_root_id.get(root.uuid, ())
            if group:
                return _matched(STRATEGY_AGENT_ID, invocation, root.uuid, group)
        logger.debug("agentId %s for tool call %s has no sidechain root", agent_id, invocation.tool_use_id)

    prompt = invocation.prompt
    if prompt is not None:
        root = index.root_for_prompt(prompt)
        if root is not None:
            group = index.groups_by_root_id.get(root.uuid, ())
            if group:
                return _matched(STRATEGY_PROMPT, invocation, root.uuid, group)

    observability.record_delegation_resolution(STRATEGY_NONE)
    return DelegationMatch(strategy=STRATEGY_NONE)


def _matched(
    strategy: str,
    invocation: DelegationInvocation,
    root_uuid: str,
    group: tuple[StructuralEntry, ...],
) -> DelegationMatch:
    logger.debug("Tool call %s resolved by %s to %s entries", invocation.tool_use_id, strategy, len(group))
    observability.record_delegation_resolution(strategy)
    return DelegationMatch(strategy=strategy, root_uuid=root_uuid, entries=group)


def resolve_delegation(invocation: DelegationInvocation, index: SidechainIndex) -> list[StructuralEntry]:
    """Entries of the sidechain spawned by ``invocation``, or ``[]``."""
    return list(resolve_delegation_match(invocation, index).entries)


@dataclass(frozen=True)
class DelegationNode:
    invocation: DelegationInvocation
    strategy: str
    root_uuid: str | None
    entries: tuple[StructuralEntry, ...]
    children: tuple[DelegationNode, ...] = ()


def expand_delegations(
    entries: Iterable[Any],
    index: SidechainIndex,
    _active_roots: frozenset[str] = frozenset(),
) -> list[DelegationNode]:
    """Resolve every delegation in ``entries`` and, recursively, inside each sidechain.

    A sidechain already being expanded further up the path is returned
    without children, so self-referencing logs cannot recurse forever.
    """
    nodes: list[DelegationNode] = []
    for entry in entries:
        for invocation in iter_delegation_invocations(entry):
            match = resolve_delegation_match(invocation, index)
            children: tuple[DelegationNode, ...] = ()
            if match.root_uuid is not None and match.root_uuid not in _active_roots:
                children = tuple(expand_delegations(match.entries, index, _active_roots | {match.root_uuid}))
            nodes.append(
                DelegationNode(
                    invocation=invocation,
                    strategy=match.strategy,
                    root_uuid=match.root_uuid,
                    entries=match.entries,
                    children=children,
                )
            )
    return nodes

