"""Merge plan: every output path with its ordered list of contributions."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Optional

from flowstate.registry.models import CustomMerge, MergeStrategy


@dataclass(frozen=True)
class Contribution:
    """One module's rendered body for one output path."""

    module: str
    path: str
    body: str
    strategy: MergeStrategy
    custom: Optional[CustomMerge] = None


@dataclass
class FileEntry:
    """All contributions to one path, in resolver order.

    An entry is only ever created together with its first contribution, so
    ``contributions`` is never empty.
    """

    path: str
    contributions: list[Contribution] = field(default_factory=list)

    @property
    def strategies(self) -> list[MergeStrategy]:
        """Distinct strategies requested for this path, in first-seen order."""
        return list(dict.fromkeys(c.strategy for c in self.contributions))

    @property
    def modules(self) -> list[str]:
        return [c.module for c in self.contributions]

    def by_strategy(self, strategy: MergeStrategy) -> list[Contribution]:
        return [c for c in self.contributions if c.strategy is strategy]


class MergePlan:
    """Ordered mapping ``path -> FileEntry`` built in resolver order."""

    def __init__(self) -> None:
        self._entries: dict[str, FileEntry] = {}

    def add(self, contribution: Contribution) -> None:
        entry = self._entries.get(contribution.path)
        if entry is None:
            entry = self._entries[contribution.path] = FileEntry(contribution.path)
        entry.contributions.append(contribution)

    def get(self, path: str) -> Optional[FileEntry]:
        return self._entries.get(path)

    @property
    def paths(self) -> list[str]:
        return list(self._entries)

    def __iter__(self) -> Iterator[FileEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: object) -> bool:
        return path in self._entries
