"""Loading of sub-session logs that live outside the main session file.

Newer producers write each delegated sub-task to its own file and only leave
the ``agentId`` in the main log (on the tool result). Before correlation those
files have to be fetched and decoded alongside the main entries.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Protocol

from convtree import config, observability
from convtree.classify import delegation_agent_id, is_sidechain_eligible, is_structural
from convtree.errors import ConvtreeError
from convtree.models import StructuralEntry
from convtree.parsers.jsonl import parse_jsonl

logger = logging.getLogger("convtree.subsessions")


class SubSessionFetcher(Protocol):
    async def fetch(self, parent_session_id: str, agent_id: str) -> str | None:
        """Raw JSONL text of the sub-session, or ``None`` when it was never recorded."""
        ...


class FileSubSessionStore:
    """Sub-session logs on disk, under one Claude Code project directory.

    Looks in ``<session_id>/subagents/agent-<agent_id>.jsonl`` first and falls
    back to the older flat ``agent-<agent_id>.jsonl`` next to the session file.
    """

    def __init__(self, project_dir: Path | None = None) -> None:
        self.project_dir = Path(project_dir) if project_dir is not None else config.PROJECTS_DIR

    def candidate_paths(self, parent_session_id: str, agent_id: str) -> list[Path]:
        filename = f"agent-{agent_id}.jsonl"
        return [
            self.project_dir / parent_session_id / "subagents" / filename,
            self.project_dir / filename,
        ]

    def _read(self, parent_session_id: str, agent_id: str) -> str | None:
        for path in self.candidate_paths(parent_session_id, agent_id):
            if path.is_file():
                return path.read_text(encoding="utf-8")
        return None

    async def fetch(self, parent_session_id: str, agent_id: str) -> str | None:
        return await asyncio.to_thread(self._read, parent_session_id, agent_id)


def referenced_agent_ids(entries: Iterable[Any]) -> list[str]:
    """``agentId`` values reported by tool results, in first-seen order."""
    seen: dict[str, None] = {}
    for entry in entries:
        agent_id = delegation_agent_id(entry)
        if agent_id is not None:
            seen.setdefault(agent_id, None)
    return list(seen)


def present_agent_ids(entries: Iterable[Any]) -> set[str]:
    """``agentId`` values already carried by sidechain entries in ``entries``."""
    return {
        entry.agentId
        for entry in entries
        if is_sidechain_eligible(entry) and entry.agentId is not None
    }


def missing_agent_ids(entries: Iterable[Any]) -> list[str]:
    entries = list(entries)
    present = present_agent_ids(entries)
    return [agent_id for agent_id in referenced_agent_ids(entries) if agent_id not in present]


async def _fetch_one(
    fetcher: SubSessionFetcher,
    semaphore: asyncio.Semaphore,
    session_id: str,
    agent_id: str,
) -> list[StructuralEntry]:
    async with semaphore:
        try:
            text = await fetcher.fetch(session_id, agent_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Sub-session fetch failed (session=%s agent=%s): %s", session_id, agent_id, exc)
            observability.record_sub_session_fetch("error")
            return []

    if text is None:
        logger.info("Sub-session not recorded (session=%s agent=%s)", session_id, agent_id)
        observability.record_sub_session_fetch("not_found")
        return []

    try:
        decoded = parse_jsonl(text, session_id=agent_id)
    except ConvtreeError as exc:
        logger.warning("Sub-session log unreadable (session=%s agent=%s): %s", session_id, agent_id, exc)
        observability.record_sub_session_fetch("malformed")
        return []

    observability.record_sub_session_fetch("loaded")
    # The sub-session file does not always flag its own entries as sidechain.
    return [entry.model_copy(update={"isSidechain": True}) for entry in decoded if is_structural(entry)]


async def load_missing_sub_sessions(
    entries: Iterable[Any],
    fetcher: SubSessionFetcher,
    session_id: str,
    *,
    concurrency: int | None = None,
) -> list[StructuralEntry]:
    """Fetch and decode every referenced sub-session not already in ``entries``.

    At most ``concurrency`` fetches run at once. A failed or missing fetch
    contributes nothing and does not affect the others.
    """
    missing = missing_agent_ids(entries)
    if not missing:
        return []

    limit = max(1, concurrency if concurrency is not None else config.FETCH_CONCURRENCY)
    semaphore = asyncio.Semaphore(limit)
    logger.debug("Loading %s sub-sessions for %s (concurrency=%s)", len(missing), session_id, limit)
    batches = await asyncio.gather(
        *(_fetch_one(fetcher, semaphore, session_id, agent_id) for agent_id in missing)
    )

    loaded: list[StructuralEntry] = []
    for batch in batches:
        loaded.extend(batch)
    return loaded
