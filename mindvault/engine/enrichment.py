"""Rate-limited batch enrichment with credential rotation and bounded retry."""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Iterable, Protocol, Sequence

import structlog

from ..errors import NoCredentialError
from ..infra.key_pool import CredentialPool, mask_credential
from .analyzer import AnalysisResult, ContentAnalyzer
from .items import VaultItem, merge_tags

MAX_RETRIES = 3
BASE_DELAY_SECONDS = 3.0
MIN_DELAY_SECONDS = 0.5
PERSIST_CHUNK_SIZE = 20
PROGRESS_LABEL = "正在进行 AI 批量整理..."

ProgressCallback = Callable[[int, int, str], None]


class _Writer(Protocol):
    def upsert_in_chunks(self, items: Sequence[VaultItem], chunk_size: int) -> int: ...


def resolve_credentials(keys: Iterable[str], default: str | None = None) -> list[str]:
    """Configured keys, else the process default; raise when neither exists."""

    credentials = [key.strip() for key in keys if key and key.strip()]
    if not credentials and default and default.strip():
        credentials = [default.strip()]
    if not credentials:
        raise NoCredentialError()
    return credentials


def request_delay(credential_count: int) -> float:
    """Aggregate rate stays roughly constant; never below the floor."""

    return max(MIN_DELAY_SECONDS, BASE_DELAY_SECONDS / max(credential_count, 1))


def apply_analysis(item: VaultItem, result: AnalysisResult) -> VaultItem:
    return item.model_copy(
        update={"ai_summary": result.summary, "tags": merge_tags(item.tags, result.tags)}
    )


@dataclass(slots=True)
class WorkEntry:
    """One logical item plus the retries already spent on it."""

    item: VaultItem
    retries: int = 0


class WorkQueue:
    """FIFO of work entries; a requeued entry keeps its own retry counter."""

    def __init__(self, items: Iterable[VaultItem] = (), max_retries: int = MAX_RETRIES) -> None:
        self.max_retries = max_retries
        self._entries: deque[WorkEntry] = deque(WorkEntry(item) for item in items)

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def pop(self) -> WorkEntry:
        return self._entries.popleft()

    def requeue(self, entry: WorkEntry) -> bool:
        """Send ``entry`` to the tail if retries remain; False when exhausted."""

        if entry.retries >= self.max_retries:
            return False
        entry.retries += 1
        self._entries.append(entry)
        return True


@dataclass
class EnrichmentReport:
    completed: list[VaultItem] = field(default_factory=list)
    enriched: int = 0
    failed: int = 0
    attempts: int = 0
    persisted: int = 0


class EnrichmentPipeline:
    """Drain a work queue one item at a time, never more than one call in flight."""

    def __init__(
        self,
        gateway: _Writer,
        analyzer: ContentAnalyzer,
        credentials: Sequence[str],
        *,
        sleep: Callable[[float], None] = time.sleep,
        max_retries: int = MAX_RETRIES,
        chunk_size: int = PERSIST_CHUNK_SIZE,
        label: str = PROGRESS_LABEL,
    ) -> None:
        if not credentials:
            raise NoCredentialError()
        self.gateway = gateway
        self.analyzer = analyzer
        self.pool = CredentialPool(credentials)
        if self.pool.empty:
            raise NoCredentialError()
        self.sleep = sleep
        self.max_retries = max_retries
        self.chunk_size = chunk_size
        self.label = label
        self.delay = request_delay(len(self.pool))
        self.logger = structlog.get_logger("mindvault.enrichment")

    def run(
        self, items: Sequence[VaultItem], progress: ProgressCallback | None = None
    ) -> EnrichmentReport:
        total = len(items)
        queue = WorkQueue(items, max_retries=self.max_retries)
        report = EnrichmentReport()
        processed = 0
        self.logger.info(
            "enrichment_started", total=total, credentials=len(self.pool), delay=self.delay
        )

        while queue:
            entry = queue.pop()
            self.sleep(self.delay)
            credential = self.pool.next()
            report.attempts += 1
            try:
                result = self.analyzer.analyze(entry.item.content, credential)
            except Exception as exc:
                # 任何单次分析失败都按同一重试规则处理
                self.logger.warning(
                    "analysis_failed",
                    item_id=entry.item.id,
                    key=mask_credential(credential),
                    retries=entry.retries,
                    error=str(exc),
                )
                if not queue.requeue(entry):
                    report.completed.append(entry.item)
                    report.failed += 1
            else:
                report.completed.append(apply_analysis(entry.item, result))
                report.enriched += 1

            processed += 1
            if progress is not None:
                progress(min(processed, total), total, self.label)

        if report.completed:
            report.persisted = self.gateway.upsert_in_chunks(report.completed, self.chunk_size)
        self.logger.info(
            "enrichment_finished",
            enriched=report.enriched,
            failed=report.failed,
            attempts=report.attempts,
        )
        return report


__all__ = [
    "EnrichmentPipeline",
    "EnrichmentReport",
    "MAX_RETRIES",
    "PERSIST_CHUNK_SIZE",
    "PROGRESS_LABEL",
    "ProgressCallback",
    "WorkEntry",
    "WorkQueue",
    "apply_analysis",
    "request_delay",
    "resolve_credentials",
]
