"""Storage backend Service Provider Interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Sequence

from ..items import VaultItem


class StorageBackend(ABC):
    """Uniform CRUD contract implemented by the local and remote stores."""

    @abstractmethod
    def list_all(self) -> list[VaultItem]:
        """Return every stored item."""

    @abstractmethod
    def upsert_one(self, item: VaultItem) -> None:
        """Insert ``item`` or replace the stored item sharing its id."""

    @abstractmethod
    def upsert_batch(self, items: Sequence[VaultItem]) -> None:
        """Merge ``items`` into the collection keyed by id."""

    @abstractmethod
    def delete_batch(self, ids: Iterable[str]) -> None:
        """Remove every item whose id is listed; absent ids are ignored."""

    def delete_one(self, item_id: str) -> None:
        self.delete_batch([item_id])

    def close(self) -> None:
        """Release underlying resources."""


__all__ = ["StorageBackend"]
