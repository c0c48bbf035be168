"""Vault item entity and helpers shared by every engine component."""

from __future__ import annotations

import re
import secrets
import string
import time
from enum import Enum
from typing import Any, Iterable, Iterator, Sequence
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

UNCATEGORIZED = "未分类"
UNTITLED = "未命名记录"
MANUAL_TAG = "手动添加"

_ID_ALPHABET = string.ascii_lowercase + string.digits
_URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)


class ItemType(str, Enum):
    """Kinds of saved items."""

    LINK = "link"
    NOTE = "note"
    SNIPPET = "snippet"


def generate_id(length: int = 13) -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def now_millis() -> int:
    return int(time.time() * 1000)


def is_url(content: str) -> bool:
    return bool(_URL_PATTERN.match(content.strip()))


def infer_type(content: str) -> ItemType:
    return ItemType.LINK if is_url(content) else ItemType.NOTE


def derive_title(content: str) -> str:
    """Build a short label: hostname for URLs, first line for text."""

    trimmed = content.strip()
    if not trimmed:
        return UNTITLED
    if is_url(trimmed):
        host = urlparse(trimmed).hostname
        return host or trimmed[:30]
    title = trimmed.split("\n")[0][:20]
    if len(title) < len(trimmed):
        title += "..."
    return title


def merge_tags(*groups: Iterable[str]) -> list[str]:
    """Ordered union of tag groups, case-sensitive."""

    merged: list[str] = []
    seen: set[str] = set()
    for group in groups:
        for tag in group:
            if tag not in seen:
                seen.add(tag)
                merged.append(tag)
    return merged


class VaultItem(BaseModel):
    """A single stored record (link, note or snippet)."""

    model_config = ConfigDict(populate_by_name=True, frozen=False)

    id: str = Field(default_factory=generate_id)
    type: ItemType = ItemType.NOTE
    content: str = ""
    title: str = ""
    summary: str | None = None
    ai_summary: str | None = Field(default=None, alias="aiSummary")
    category: str | None = None
    tags: list[str] = Field(default_factory=list)
    created_at: int = Field(default_factory=now_millis, alias="createdAt")

    @field_validator("tags", mode="before")
    @classmethod
    def _dedupe_tags(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        return merge_tags(str(tag) for tag in value)

    @field_validator("created_at", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> int:
        if value is None or value == "":
            return now_millis()
        return int(value)

    @model_validator(mode="after")
    def _fill_title(self) -> "VaultItem":
        if not self.title:
            self.title = derive_title(self.content)
        return self

    @property
    def effective_category(self) -> str:
        return self.category or UNCATEGORIZED

    def to_record(self) -> dict[str, Any]:
        """Wire/storage representation (camelCase, unset optionals omitted)."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "VaultItem":
        return cls.model_validate(record)


def sort_items(items: Iterable[VaultItem]) -> list[VaultItem]:
    """Default display order: newest first."""

    return sorted(items, key=lambda item: item.created_at, reverse=True)


def chunked(items: Sequence[VaultItem], size: int) -> Iterator[Sequence[VaultItem]]:
    if size <= 0:
        raise ValueError("chunk size must be > 0")
    for start in range(0, len(items), size):
        yield items[start : start + size]


__all__ = [
    "ItemType",
    "MANUAL_TAG",
    "UNCATEGORIZED",
    "UNTITLED",
    "VaultItem",
    "chunked",
    "derive_title",
    "generate_id",
    "infer_type",
    "is_url",
    "merge_tags",
    "now_millis",
    "sort_items",
]
