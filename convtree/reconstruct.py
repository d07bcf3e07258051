"""Build every derived view of a session from its decoded entries."""
from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from convtree import observability
from convtree.classify import is_parse_failure
from convtree.delegation import (
    DelegationInvocation,
    DelegationMatch,
    DelegationNode,
    expand_delegations,
    iter_delegation_invocations,
    resolve_delegation,
    resolve_delegation_match,
)
from convtree.models import DecodedEntry, ParseFailure, StructuralEntry
from convtree.parsers.jsonl import parse_jsonl
from convtree.sidechain import SidechainIndex
from convtree.subsessions import SubSessionFetcher, load_missing_sub_sessions
from convtree.tree import ConversationTree

logger = logging.getLogger("convtree.reconstruct")


@dataclass(frozen=True)
class ReconstructedSession:
    session_id: str
    entries: tuple[DecodedEntry, ...]
    tree: ConversationTree
    sidechains: SidechainIndex

    @property
    def failures(self) -> list[ParseFailure]:
        return [entry for entry in self.entries if is_parse_failure(entry)]

    def delegations(self) -> list[DelegationInvocation]:
        """Every delegation tool call, in file order."""
        return [invocation for entry in self.tree.entries for invocation in iter_delegation_invocations(entry)]

    def resolve(self, invocation: DelegationInvocation) -> list[StructuralEntry]:
        return resolve_delegation(invocation, self.sidechains)

    def resolve_match(self, invocation: DelegationInvocation) -> DelegationMatch:
        return resolve_delegation_match(invocation, self.sidechains)

    def expand(self) -> list[DelegationNode]:
        """Delegations made from the main line, each expanded with its nested ones."""
        main_line = [entry for entry in self.tree.entries if not entry.isSidechain]
        return expand_delegations(main_line, self.sidechains)


def reconstruct(entries: Iterable[Any], *, session_id: str = "") -> ReconstructedSession:
    """Index decoded entries. Raises ``ConversationIntegrityError`` on a parent cycle."""
    started = time.perf_counter()
    entries = tuple(entries)
    result = "error"
    with observability.start_span("convtree.reconstruct", {"session_id": session_id or None, "entries": len(entries)}):
        try:
            tree = ConversationTree.build(entries)
            sidechains = SidechainIndex.build(tree.entries)
            result = "success"
        finally:
            duration_ms = (time.perf_counter() - started) * 1000
            observability.record_reconstruction(result, duration_ms)

    logger.debug(
        "Reconstructed session %s: %s entries, %s roots, %s sidechains in %.1fms",
        session_id or "-",
        len(entries),
        len(tree.roots),
        len(sidechains.groups_by_root_id),
        duration_ms,
    )
    return ReconstructedSession(session_id=session_id, entries=entries, tree=tree, sidechains=sidechains)


def reconstruct_text(text: str, *, session_id: str = "") -> ReconstructedSession:
    return reconstruct(parse_jsonl(text, session_id=session_id), session_id=session_id)


async def reconstruct_with_sub_sessions(
    text: str,
    session_id: str,
    fetcher: SubSessionFetcher,
    *,
    concurrency: int | None = None,
) -> ReconstructedSession:
    """Decode ``text``, pull in sub-session logs it references, then reconstruct."""
    decoded = parse_jsonl(text, session_id=session_id)
    loaded = await load_missing_sub_sessions(decoded, fetcher, session_id, concurrency=concurrency)
    return reconstruct([*decoded, *loaded], session_id=session_id)
