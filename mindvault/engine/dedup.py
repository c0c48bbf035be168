"""Deduplication layer grouping stored links by identical content."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Protocol, Sequence

import structlog

from .items import ItemType, VaultItem


class RetentionPolicy(str, Enum):
    """Which member of every duplicate group survives a bulk cleanup."""

    KEEP_NEWEST = "newest"
    KEEP_OLDEST = "oldest"


@dataclass
class DuplicateGroup:
    """Two or more links sharing ``content``, ordered newest first."""

    content: str
    items: list[VaultItem]

    @property
    def newest(self) -> VaultItem:
        return self.items[0]

    @property
    def oldest(self) -> VaultItem:
        return self.items[-1]

    def redundant(self, policy: RetentionPolicy) -> list[VaultItem]:
        if policy is RetentionPolicy.KEEP_NEWEST:
            return self.items[1:]
        return self.items[:-1]


class _Deleter(Protocol):
    def list_all(self) -> list[VaultItem]: ...

    def delete_batch(self, ids: Iterable[str]) -> None: ...

    def delete_one(self, item_id: str) -> None: ...


def find_duplicate_groups(items: Iterable[VaultItem]) -> list[DuplicateGroup]:
    """Pure projection: no side effects, safe to recompute on every view.

    Groups appear in first-seen order; members with equal ``created_at`` keep
    their collection order (stable sort).
    """

    buckets: dict[str, list[VaultItem]] = {}
    for item in items:
        if item.type is ItemType.LINK:
            buckets.setdefault(item.content, []).append(item)
    groups: list[DuplicateGroup] = []
    for content, members in buckets.items():
        if len(members) > 1:
            ordered = sorted(members, key=lambda item: item.created_at, reverse=True)
            groups.append(DuplicateGroup(content=content, items=ordered))
    return groups


def plan_deletions(groups: Sequence[DuplicateGroup], policy: RetentionPolicy) -> list[str]:
    return [item.id for group in groups for item in group.redundant(policy)]


class DeduplicationEngine:
    """Apply retention policies through the storage gateway."""

    def __init__(self, gateway: _Deleter) -> None:
        self.gateway = gateway
        self.logger = structlog.get_logger("mindvault.dedup")

    def scan(self, items: Iterable[VaultItem] | None = None) -> list[DuplicateGroup]:
        return find_duplicate_groups(self.gateway.list_all() if items is None else items)

    def apply(
        self, policy: RetentionPolicy | str, items: Iterable[VaultItem] | None = None
    ) -> list[str]:
        policy = RetentionPolicy(policy)
        groups = self.scan(items)
        ids = plan_deletions(groups, policy)
        if ids:
            self.gateway.delete_batch(ids)
        self.logger.info("dedup_applied", policy=policy.value, groups=len(groups), deleted=len(ids))
        return ids

    def remove(self, item_id: str) -> None:
        self.gateway.delete_one(item_id)
        self.logger.info("dedup_manual_remove", item_id=item_id)


__all__ = [
    "DeduplicationEngine",
    "DuplicateGroup",
    "RetentionPolicy",
    "find_duplicate_groups",
    "plan_deletions",
]
