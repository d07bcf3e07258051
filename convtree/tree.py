"""Parent/child tree over structural entries."""
from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

from convtree.classify import is_structural
from convtree.errors import ConversationIntegrityError
from convtree.models import StructuralEntry


@dataclass(frozen=True)
class ConversationTree:
    """Read-only index of ``uuid -> entry`` and ``parentUuid -> children``.

    Build it with ``ConversationTree.build``, which raises
    ``ConversationIntegrityError`` when the ``parentUuid`` links loop.
    Non-structural entries in the input are ignored. A ``parentUuid`` that is not indexed (the parent lives
    in another file) makes the entry a root, exactly like ``parentUuid=None``.
    """

    entries: tuple[StructuralEntry, ...]
    by_id: dict[str, StructuralEntry] = field(repr=False)
    children: dict[str, tuple[StructuralEntry, ...]] = field(repr=False)
    roots: tuple[StructuralEntry, ...] = field(repr=False)

    @classmethod
    def build(cls, entries: Iterable[Any]) -> ConversationTree:
        structural = tuple(entry for entry in entries if is_structural(entry))

        by_id: dict[str, StructuralEntry] = {}
        for entry in structural:
            # Resumed sessions re-emit earlier entries; keep the first copy.
            by_id.setdefault(entry.uuid, entry)

        children: dict[str, list[StructuralEntry]] = {}
        roots: list[StructuralEntry] = []
        for entry in structural:
            if by_id[entry.uuid] is not entry:
                continue
            parent_id = entry.parentUuid
            if parent_id is None or parent_id not in by_id:
                roots.append(entry)
            else:
                children.setdefault(parent_id, []).append(entry)

        tree = cls(
            entries=structural,
            by_id=by_id,
            children={key: tuple(value) for key, value in children.items()},
            roots=tuple(roots),
        )
        tree._check_acyclic()
        return tree

    def _check_acyclic(self) -> None:
        # An indexed entry no root reaches sits on, or below, a parentUuid loop.
        reached = {entry.uuid for entry, _ in self.walk()}
        for entry in self.by_id.values():
            if entry.uuid not in reached:
                self.ancestors(entry)

    def get(self, uuid: str) -> StructuralEntry | None:
        return self.by_id.get(uuid)

    def parent_of(self, entry: StructuralEntry) -> StructuralEntry | None:
        if entry.parentUuid is None:
            return None
        return self.by_id.get(entry.parentUuid)

    def children_of(self, entry: StructuralEntry) -> tuple[StructuralEntry, ...]:
        return self.children.get(entry.uuid, ())

    def ancestors(self, entry: StructuralEntry) -> list[StructuralEntry]:
        """Indexed ancestors of ``entry``, nearest first.

        Raises ``ConversationIntegrityError`` if the chain loops.
        """
        chain: list[StructuralEntry] = []
        seen = {entry.uuid}
        current = entry
        while True:
            parent = self.parent_of(current)
            if parent is None:
                return chain
            if parent.uuid in seen:
                loop = [entry.uuid, *(item.uuid for item in chain), parent.uuid]
                raise ConversationIntegrityError(loop)
            seen.add(parent.uuid)
            chain.append(parent)
            current = parent

    def root_of(self, entry: StructuralEntry) -> StructuralEntry:
        """Topmost indexed ancestor of ``entry`` (``entry`` itself for a root)."""
        chain = self.ancestors(entry)
        return chain[-1] if chain else entry

    def walk(self) -> Iterator[tuple[StructuralEntry, int]]:
        """Depth-first pre-order over every indexed entry as ``(entry, depth)``.

        Siblings come out in file order. A built tree is acyclic, so every
        indexed entry is yielded exactly once.
        """
        visited: set[str] = set()
        stack: list[tuple[StructuralEntry, int]] = [(root, 0) for root in reversed(self.roots)]
        while stack:
            entry, depth = stack.pop()
            if entry.uuid in visited:
                continue
            visited.add(entry.uuid)
            yield entry, depth
            for child in reversed(self.children_of(entry)):
                stack.append((child, depth + 1))

    def leaf_entries(self) -> list[StructuralEntry]:
        return [entry for entry in self.by_id.values() if entry.uuid not in self.children]
