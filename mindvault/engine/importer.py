"""Parse external export files into candidate vault items."""

from __future__ import annotations

import json
import math
import re
from datetime import datetime, timezone
from pathlib import PurePath
from typing import Any

import structlog
from selectolax.parser import HTMLParser, Node

from ..errors import ParseError, UnsupportedFormatError
from .items import ItemType, VaultItem, generate_id, now_millis

IMPORT_CATEGORY_PREFIX = "来自 "
UNTITLED_IMPORT = "无标题"
UNKNOWN_GROUP_TAG = "Imported"
DEFAULT_FOLDER_TAG = "书签"
FALLBACK_FOLDER_NAME = "Folder"
PSEUDO_SCHEMES = ("place:", "javascript:", "data:", "about:")

JSON_TYPES = ("application/json",)
HTML_TYPES = ("text/html",)

logger = structlog.get_logger("mindvault.importer")


def derive_category(file_name: str) -> str:
    """``bookmarks.html`` -> ``来自 bookmarks``."""

    base = PurePath(file_name).name
    stem = re.sub(r"\.[^/.]+$", "", base)
    return f"{IMPORT_CATEGORY_PREFIX}{stem}"


def _parse_timestamp(value: Any) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # json 允许 NaN / Infinity，按无法解析处理
        return int(value) if math.isfinite(value) else None
    text = str(value).strip()
    if not text:
        return None
    normalized = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        moment = datetime.fromisoformat(normalized)
    except ValueError:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


def _is_element(node: Node | None) -> bool:
    return node is not None and bool(node.tag) and node.tag[0].isalpha()


def _previous_element(node: Node) -> Node | None:
    sibling = node.prev
    while sibling is not None and not _is_element(sibling):
        sibling = sibling.prev
    return sibling


class ImportParser:
    """Convert structured JSON exports and bookmark HTML into items."""

    def parse(self, data: bytes | str, file_name: str, content_type: str | None = None) -> list[VaultItem]:
        category = derive_category(file_name)
        text = data.decode("utf-8-sig", errors="replace") if isinstance(data, bytes) else data
        lowered = file_name.lower()
        kind = (content_type or "").split(";")[0].strip().lower()
        if kind in JSON_TYPES or lowered.endswith(".json"):
            items = self.parse_structured(text, category)
        elif kind in HTML_TYPES or lowered.endswith((".html", ".htm")):
            items = self.parse_bookmarks(text, category)
        else:
            raise UnsupportedFormatError()
        logger.info("import_parsed", source_file=file_name, category=category, count=len(items))
        return items

    # ------------------------------------------------------------------
    def parse_structured(self, text: str, category: str) -> list[VaultItem]:
        """Groups + sites document; every site becomes one link."""

        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ParseError("文件格式错误：无法解析自定义 JSON") from exc
        if (
            not isinstance(payload, dict)
            or not isinstance(payload.get("groups"), list)
            or not isinstance(payload.get("sites"), list)
        ):
            raise ParseError("文件格式错误：缺少 groups 或 sites 列表")

        group_names: dict[Any, str] = {}
        for group in payload["groups"]:
            if isinstance(group, dict) and "id" in group:
                group_names[group["id"]] = str(group.get("name") or "")

        items: list[VaultItem] = []
        for site in payload["sites"]:
            if not isinstance(site, dict):
                raise ParseError("文件格式错误：sites 中存在无效条目")
            group_name = group_names.get(site.get("group_id")) or UNKNOWN_GROUP_TAG
            summary = "\n".join(
                part
                for part in (site.get("description"), site.get("notes"))
                if isinstance(part, str) and part.strip()
            )
            created_at = _parse_timestamp(site.get("created_at"))
            items.append(
                VaultItem(
                    id=generate_id(),
                    type=ItemType.LINK,
                    content=str(site.get("url") or ""),
                    title=str(site.get("name") or UNTITLED_IMPORT),
                    summary=summary,
                    tags=[group_name],
                    category=category,
                    created_at=created_at if created_at is not None else now_millis(),
                )
            )
        return items

    # ------------------------------------------------------------------
    def parse_bookmarks(self, text: str, category: str) -> list[VaultItem]:
        """Netscape bookmark export; folder chain becomes the tag list."""

        tree = HTMLParser(text)
        items: list[VaultItem] = []
        for anchor in tree.css("a"):
            href = (anchor.attributes.get("href") or "").strip()
            if not href or href.lower().startswith(PSEUDO_SCHEMES):
                continue
            title = anchor.text(strip=True) or UNTITLED_IMPORT
            tags = self._folder_chain(anchor) or [DEFAULT_FOLDER_TAG]
            items.append(
                VaultItem(
                    id=generate_id(),
                    type=ItemType.LINK,
                    content=href,
                    title=title,
                    summary="",
                    tags=tags,
                    category=category,
                    created_at=self._add_date(anchor.attributes.get("add_date")),
                )
            )
        return items

    @staticmethod
    def _add_date(value: str | None) -> int:
        if not value:
            return now_millis()
        try:
            return int(value.strip()) * 1000
        except ValueError:
            return now_millis()

    @staticmethod
    def _folder_chain(anchor: Node) -> list[str]:
        """Walk ancestors; each enclosing DL is labelled by its folder H3."""

        folders: list[str] = []
        parent = anchor.parent
        while parent is not None:
            if parent.tag == "dl":
                holder = parent.parent
                if holder is not None and holder.tag == "dt":
                    heading = holder.css_first("h3")
                    if heading is not None:
                        folders.insert(0, heading.text(strip=True) or FALLBACK_FOLDER_NAME)
                else:
                    sibling = _previous_element(parent)
                    if sibling is not None and sibling.tag == "h3":
                        folders.insert(0, sibling.text(strip=True) or FALLBACK_FOLDER_NAME)
            parent = parent.parent
        return folders


__all__ = ["IMPORT_CATEGORY_PREFIX", "ImportParser", "derive_category"]
