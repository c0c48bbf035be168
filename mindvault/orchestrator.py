"""Application service wiring storage, import, dedup and enrichment together."""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Iterable

import structlog

from .config import ConfigRepository, VaultConfig
from .engine.analyzer import ContentAnalyzer
from .engine.conflicts import ConflictQueue, plan_import
from .engine.dedup import DeduplicationEngine, DuplicateGroup, RetentionPolicy
from .engine.enrichment import (
    EnrichmentPipeline,
    EnrichmentReport,
    ProgressCallback,
    apply_analysis,
    resolve_credentials,
)
from .engine.importer import ImportParser
from .engine.items import (
    MANUAL_TAG,
    UNCATEGORIZED,
    VaultItem,
    infer_type,
    merge_tags,
    sort_items,
)
from .engine.storage import StorageGateway
from .errors import VaultError

IMPORT_CHUNK_SIZE = 50


@dataclass
class ImportSession:
    """Result of the immediate phase of an import plus its pending conflicts."""

    source_file: str
    category: str
    parsed: int
    persisted: int
    queue: ConflictQueue

    @property
    def conflicts(self) -> int:
        return len(self.queue)


class Orchestrator:
    """Central coordinator for every user-facing vault operation."""

    def __init__(
        self,
        repository: ConfigRepository,
        gateway: StorageGateway,
        analyzer: ContentAnalyzer | None = None,
        parser: ImportParser | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.repository = repository
        self.gateway = gateway
        self.analyzer = analyzer
        self.parser = parser or ImportParser()
        self.sleep = sleep
        self.dedup = DeduplicationEngine(gateway)
        self.items: list[VaultItem] = []
        self.logger = structlog.get_logger("mindvault.orchestrator")

    @property
    def config(self) -> VaultConfig:
        return self.repository.load_config()

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------
    def login(self, token: str, endpoint: str | None = None) -> VaultConfig:
        """Verify ``endpoint`` (when given) before persisting the credentials.

        A failed verification raises and leaves the configuration untouched.
        """

        if endpoint:
            self.gateway.verify_connection(endpoint.strip().rstrip("/"), token.strip())
        config = self.repository.update_config(api_endpoint=endpoint or None, auth_token=token)
        self.logger.info("login", mode=self.gateway.mode)
        return config

    def logout(self) -> VaultConfig:
        config = self.repository.update_config(api_endpoint=None, auth_token=None)
        self.items = []
        self.logger.info("logout")
        return config

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------
    def load_items(self) -> list[VaultItem]:
        self.items = sort_items(self.gateway.list_all())
        return self.items

    def get_item(self, item_id: str) -> VaultItem:
        for item in self._current():
            if item.id == item_id:
                return item
        raise KeyError(item_id)

    def filter_items(
        self,
        tag: str | None = None,
        category: str | None = None,
        search: str | None = None,
        items: Iterable[VaultItem] | None = None,
    ) -> list[VaultItem]:
        source = list(self.items if items is None else items)
        if tag:
            source = [item for item in source if tag in item.tags]
        if category:
            source = [item for item in source if item.effective_category == category]
        if search:
            needle = search.lower()
            source = [item for item in source if _matches(item, needle)]
        return source

    def category_counts(self) -> Counter[str]:
        return Counter(item.effective_category for item in self.items)

    def tag_counts(self) -> Counter[str]:
        return Counter(tag for item in self.items for tag in item.tags)

    # ------------------------------------------------------------------
    # Optimistic mutations
    # ------------------------------------------------------------------
    def save_item(self, item: VaultItem) -> VaultItem:
        """Reflect ``item`` locally, persist it, then reconcile with storage."""

        snapshot = list(self.items)
        self.items = _replace_or_prepend(self.items, item)
        try:
            self.gateway.upsert_one(item)
        except VaultError:
            self.items = snapshot
            self._resync()
            raise
        self.load_items()
        return item

    def add_item(
        self,
        content: str,
        category: str | None = None,
        summary: str | None = None,
        analyze: bool = False,
    ) -> VaultItem:
        if analyze:
            result = self.analyzer_or_fail().analyze(content, self._first_credential())
            item = VaultItem(
                content=content,
                type=result.type,
                title=result.title,
                summary=summary,
                ai_summary=result.summary,
                tags=result.tags,
                category=category or UNCATEGORIZED,
            )
        else:
            item = VaultItem(
                content=content,
                type=infer_type(content),
                summary=summary,
                tags=[MANUAL_TAG],
                category=category or UNCATEGORIZED,
            )
        return self.save_item(item)

    def edit_item(self, item_id: str, **changes) -> VaultItem:
        current = self.get_item(item_id)
        updated = VaultItem.model_validate({**current.model_dump(), **changes})
        return self.save_item(updated)

    def delete_items(self, ids: Iterable[str]) -> list[str]:
        """Remove locally first; on failure reload from storage and re-raise."""

        targets = set(ids)
        if not targets:
            return []
        self.items = [item for item in self.items if item.id not in targets]
        try:
            self.gateway.delete_batch(sorted(targets))
        except VaultError:
            self._resync()
            raise
        self.load_items()
        return sorted(targets)

    def delete_group(self, kind: str, name: str) -> list[str]:
        """Delete every item carrying tag ``name`` or in category ``name``."""

        if kind == "tag":
            ids = [item.id for item in self._current() if name in item.tags]
        elif kind == "category":
            ids = [item.id for item in self._current() if item.effective_category == name]
        else:
            raise ValueError(f"Unknown group kind: {kind}")
        return self.delete_items(ids)

    def rename_tag(self, old: str, new: str) -> int:
        new = new.strip()
        if not new or new == old:
            return 0
        changed = [
            item.model_copy(
                update={"tags": merge_tags([new if tag == old else tag for tag in item.tags])}
            )
            for item in self._current()
            if old in item.tags
        ]
        if changed:
            self.gateway.upsert_batch(changed)
            self.load_items()
        self.logger.info("tag_renamed", old=old, new=new, items=len(changed))
        return len(changed)

    def add_tag(self, item_id: str, tag: str) -> VaultItem:
        item = self.get_item(item_id)
        if tag in item.tags:
            return item
        return self.save_item(item.model_copy(update={"tags": merge_tags(item.tags, [tag])}))

    def move_to_category(self, item_id: str, category: str) -> VaultItem:
        item = self.get_item(item_id)
        if item.effective_category == category:
            return item
        return self.save_item(item.model_copy(update={"category": category}))

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------
    def analyzer_or_fail(self) -> ContentAnalyzer:
        if self.analyzer is None:
            raise RuntimeError("No content analyzer configured")
        return self.analyzer

    def _credentials(self) -> list[str]:
        return resolve_credentials(
            self.config.enrichment_keys, self.repository.default_credential()
        )

    def _first_credential(self) -> str:
        return self._credentials()[0]

    def analyze_item(self, item_id: str) -> VaultItem:
        """Single analysis with the first credential; failures propagate."""

        item = self.get_item(item_id)
        result = self.analyzer_or_fail().analyze(item.content, self._first_credential())
        return self.save_item(apply_analysis(item, result))

    def enrich(
        self,
        items: Iterable[VaultItem] | None = None,
        progress: ProgressCallback | None = None,
    ) -> EnrichmentReport:
        targets = list(self.items if items is None else items)
        credentials = self._credentials()
        pipeline = EnrichmentPipeline(
            self.gateway, self.analyzer_or_fail(), credentials, sleep=self.sleep
        )
        report = pipeline.run(targets, progress)
        self.load_items()
        return report

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------
    def start_import(
        self, data: bytes | str, file_name: str, content_type: str | None = None
    ) -> ImportSession:
        """Persist non-conflicting candidates and queue the conflicting ones."""

        candidates = self.parser.parse(data, file_name, content_type)
        plan = plan_import(candidates, self.gateway.list_all())
        persisted = self.gateway.upsert_in_chunks(plan.ready, IMPORT_CHUNK_SIZE)
        session = ImportSession(
            source_file=file_name,
            category=candidates[0].effective_category if candidates else "",
            parsed=len(candidates),
            persisted=persisted,
            queue=ConflictQueue(plan.conflicts, persist=self.gateway.upsert_one),
        )
        self.logger.info(
            "import_started",
            source_file=file_name,
            parsed=session.parsed,
            persisted=persisted,
            conflicts=session.conflicts,
        )
        self.load_items()
        return session

    # ------------------------------------------------------------------
    # Deduplication
    # ------------------------------------------------------------------
    def duplicate_groups(self) -> list[DuplicateGroup]:
        return self.dedup.scan(self._current())

    def deduplicate(self, policy: RetentionPolicy | str) -> list[str]:
        deleted = self.dedup.apply(policy, self._current())
        self.load_items()
        return deleted

    def _current(self) -> list[VaultItem]:
        return self.items or self.load_items()

    def _resync(self) -> None:
        try:
            self.load_items()
        except VaultError as exc:
            self.logger.warning("resync_failed", error=str(exc))


def _matches(item: VaultItem, needle: str) -> bool:
    haystack = [item.title, item.summary or "", item.ai_summary or "", *item.tags]
    return any(needle in text.lower() for text in haystack)


def _replace_or_prepend(items: list[VaultItem], item: VaultItem) -> list[VaultItem]:
    updated = list(items)
    for index, existing in enumerate(updated):
        if existing.id == item.id:
            updated[index] = item
            return updated
    return [item, *updated]


__all__ = ["IMPORT_CHUNK_SIZE", "ImportSession", "Orchestrator"]
