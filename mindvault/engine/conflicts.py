"""Detect imported links that already exist and resolve them one at a time."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable

import structlog

from .items import ItemType, VaultItem

logger = structlog.get_logger("mindvault.conflicts")


class ConflictAction(str, Enum):
    """User decisions available for the head of the queue."""

    KEEP = "keep"
    SKIP = "skip"
    SKIP_ALL = "skip-all"


@dataclass(slots=True)
class ConflictPair:
    candidate: VaultItem
    existing: VaultItem


@dataclass
class ImportPlan:
    """Candidates split into immediately-persistable ones and conflicts."""

    ready: list[VaultItem] = field(default_factory=list)
    conflicts: list[ConflictPair] = field(default_factory=list)


@dataclass
class DrainOutcome:
    kept: list[VaultItem] = field(default_factory=list)
    skipped: list[VaultItem] = field(default_factory=list)


def plan_import(candidates: Iterable[VaultItem], collection: Iterable[VaultItem]) -> ImportPlan:
    """Match every candidate link against stored links by exact content."""

    stored_links: dict[str, VaultItem] = {}
    for item in collection:
        if item.type is ItemType.LINK and item.content not in stored_links:
            stored_links[item.content] = item

    plan = ImportPlan()
    for candidate in candidates:
        existing = stored_links.get(candidate.content) if candidate.type is ItemType.LINK else None
        if existing is not None:
            plan.conflicts.append(ConflictPair(candidate, existing))
        else:
            plan.ready.append(candidate)
    return plan


class ConflictQueue:
    """Ordered pairs drained strictly head-first.

    ``persist`` is invoked for every ``keep`` decision before the queue
    advances; if it raises, the pair stays at the head.
    """

    def __init__(
        self,
        pairs: Iterable[ConflictPair] = (),
        persist: Callable[[VaultItem], None] | None = None,
    ) -> None:
        self._pairs: deque[ConflictPair] = deque(pairs)
        self._persist = persist

    def __len__(self) -> int:
        return len(self._pairs)

    def __bool__(self) -> bool:
        return bool(self._pairs)

    @property
    def head(self) -> ConflictPair | None:
        return self._pairs[0] if self._pairs else None

    @property
    def remaining(self) -> list[ConflictPair]:
        return list(self._pairs)

    def resolve(self, action: ConflictAction | str) -> ConflictPair | None:
        """Apply ``action`` to the head; returns the resolved pair."""

        action = ConflictAction(action)
        if not self._pairs:
            return None
        current = self._pairs[0]
        if action is ConflictAction.SKIP_ALL:
            dropped = len(self._pairs)
            self._pairs.clear()
            logger.info("conflicts_skipped_all", dropped=dropped)
            return current
        if action is ConflictAction.KEEP and self._persist is not None:
            self._persist(current.candidate)
        self._pairs.popleft()
        logger.debug("conflict_resolved", action=action.value, content=current.candidate.content)
        return current

    def drain(self, policy: Callable[[ConflictPair, int], ConflictAction | str]) -> DrainOutcome:
        """Ask ``policy`` for each head (with the count behind it) until empty."""

        outcome = DrainOutcome()
        while self._pairs:
            pair = self._pairs[0]
            action = ConflictAction(policy(pair, len(self._pairs) - 1))
            if action is ConflictAction.SKIP_ALL:
                outcome.skipped.extend(p.candidate for p in self._pairs)
                self.resolve(action)
                break
            self.resolve(action)
            if action is ConflictAction.KEEP:
                outcome.kept.append(pair.candidate)
            else:
                outcome.skipped.append(pair.candidate)
        return outcome


__all__ = [
    "ConflictAction",
    "ConflictPair",
    "ConflictQueue",
    "DrainOutcome",
    "ImportPlan",
    "plan_import",
]
