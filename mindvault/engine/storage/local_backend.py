"""Device-local backend persisting the whole collection under one key."""

from __future__ import annotations

import json
from typing import Iterable, Sequence

import structlog
from pydantic import ValidationError

from ...infra.storage import DATA_KEY, KeyValueStore
from ..items import VaultItem
from .base import StorageBackend


class LocalBackend(StorageBackend):
    """Read-modify-write the serialized collection in the key-value store."""

    def __init__(self, store: KeyValueStore, key: str = DATA_KEY) -> None:
        self.store = store
        self.key = key
        self.logger = structlog.get_logger("mindvault.storage.local")

    def list_all(self) -> list[VaultItem]:
        raw = self.store.get(self.key)
        if not raw:
            return []
        try:
            payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            # 数据损坏时按空集合处理，不向上抛出解析错误
            self.logger.warning("local_store_corrupted", key=self.key, error=str(exc))
            return []
        if not isinstance(payload, list):
            self.logger.warning(
                "local_store_corrupted", key=self.key, error=f"expected a list, got {type(payload).__name__}"
            )
            return []

        items: list[VaultItem] = []
        for index, record in enumerate(payload):
            try:
                items.append(VaultItem.from_record(record))
            except ValidationError as exc:
                # 单条记录无效只丢弃该条，其余条目照常保留
                self.logger.warning(
                    "local_store_record_dropped", key=self.key, index=index, error=str(exc)
                )
        return items

    def upsert_one(self, item: VaultItem) -> None:
        items = self.list_all()
        for index, existing in enumerate(items):
            if existing.id == item.id:
                items[index] = item
                break
        else:
            items.insert(0, item)
        self._write(items)

    def upsert_batch(self, items: Sequence[VaultItem]) -> None:
        merged = {existing.id: existing for existing in self.list_all()}
        for item in items:
            merged[item.id] = item
        self._write(list(merged.values()))

    def delete_batch(self, ids: Iterable[str]) -> None:
        doomed = set(ids)
        raw = self.store.get(self.key)
        if not raw:
            return
        items = self.list_all()
        self._write([item for item in items if item.id not in doomed])

    def _write(self, items: list[VaultItem]) -> None:
        payload = json.dumps([item.to_record() for item in items], ensure_ascii=False)
        self.store.set(self.key, payload.encode("utf-8"))


__all__ = ["LocalBackend"]
