from __future__ import annotations

import json

import httpx
import pytest

from mindvault.engine.analyzer import AnalysisResult, GeminiAnalyzer
from mindvault.engine.enrichment import (
    PROGRESS_LABEL,
    EnrichmentPipeline,
    WorkQueue,
    request_delay,
    resolve_credentials,
)
from mindvault.engine.items import ItemType
from mindvault.errors import NoCredentialError


class ChunkRecorder:
    def __init__(self) -> None:
        self.chunks: list[list] = []

    def upsert_in_chunks(self, items, chunk_size):
        for start in range(0, len(items), chunk_size):
            self.chunks.append(list(items[start : start + chunk_size]))
        return len(items)


def test_resolve_credentials_falls_back_to_default() -> None:
    assert resolve_credentials(["a", " ", "b"]) == ["a", "b"]
    assert resolve_credentials([], "env-key") == ["env-key"]
    assert resolve_credentials(["a"], "env-key") == ["a"]
    with pytest.raises(NoCredentialError):
        resolve_credentials([], None)
    with pytest.raises(NoCredentialError):
        resolve_credentials([" "], "  ")


@pytest.mark.parametrize(("count", "expected"), [(1, 3.0), (2, 1.5), (6, 0.5), (10, 0.5)])
def test_request_delay_has_floor(count: int, expected: float) -> None:
    assert request_delay(count) == pytest.approx(expected)


def test_work_queue_keeps_retry_counter_per_entry(make_item) -> None:
    queue = WorkQueue([make_item()], max_retries=3)
    entry = queue.pop()
    for expected in (1, 2, 3):
        assert queue.requeue(entry)
        assert queue.pop() is entry
        assert entry.retries == expected
    assert not queue.requeue(entry)
    assert not queue


def test_pipeline_requires_credentials(fake_analyzer) -> None:
    with pytest.raises(NoCredentialError):
        EnrichmentPipeline(ChunkRecorder(), fake_analyzer, [])


def test_tags_accumulate_without_duplicates(make_item, fake_analyzer, sleep_recorder) -> None:
    item = make_item(content="https://a.io", tags=["a", "b"])
    fake_analyzer.results[item.content] = AnalysisResult(
        title="t", summary="AI 摘要", tags=["b", "c"], type=ItemType.LINK
    )
    writer = ChunkRecorder()
    report = EnrichmentPipeline(writer, fake_analyzer, ["k"], sleep=sleep_recorder).run([item])

    (enriched,) = report.completed
    assert enriched.tags == ["a", "b", "c"]
    assert enriched.ai_summary == "AI 摘要"
    assert enriched.id == item.id
    assert item.tags == ["a", "b"]
    assert writer.chunks == [[enriched]]


def test_failing_item_is_attempted_four_times_then_passed_through(
    make_item, fake_analyzer, sleep_recorder
) -> None:
    bad = make_item(content="https://bad.io", tags=["keep"])
    good = make_item(content="https://good.io")
    fake_analyzer.failing = {bad.content}
    report = EnrichmentPipeline(ChunkRecorder(), fake_analyzer, ["k1", "k2"], sleep=sleep_recorder).run(
        [bad, good]
    )

    attempts = [content for content, _ in fake_analyzer.calls]
    assert attempts.count(bad.content) == 4
    assert attempts.count(good.content) == 1
    assert report.failed == 1
    assert report.enriched == 1
    assert bad in report.completed
    assert len(report.completed) == 2


def test_round_robin_is_independent_of_outcome(make_item, fake_analyzer, sleep_recorder) -> None:
    items = [make_item(content=f"https://{name}.io") for name in ("x", "fail", "y")]
    fake_analyzer.failing = {"https://fail.io"}
    EnrichmentPipeline(
        ChunkRecorder(), fake_analyzer, ["k1", "k2", "k3"], sleep=sleep_recorder, max_retries=1
    ).run(items)

    keys = [key for _, key in fake_analyzer.calls]
    assert keys == ["k1", "k2", "k3", "k1"]
    assert [content for content, _ in fake_analyzer.calls][-1] == "https://fail.io"
    assert sleep_recorder.delays == [1.0] * 4


def test_progress_is_clamped_to_total(make_item, fake_analyzer, sleep_recorder) -> None:
    items = [make_item(content="https://bad.io"), make_item()]
    fake_analyzer.failing = {"https://bad.io"}
    events: list[tuple[int, int, str]] = []
    EnrichmentPipeline(ChunkRecorder(), fake_analyzer, ["k"], sleep=sleep_recorder).run(
        items, lambda current, total, label: events.append((current, total, label))
    )
    assert len(events) == 5
    assert [current for current, _, _ in events] == [1, 2, 2, 2, 2]
    assert all(total == 2 and label == PROGRESS_LABEL for _, total, label in events)


def test_results_persist_in_chunks_of_twenty(make_item, fake_analyzer, sleep_recorder) -> None:
    writer = ChunkRecorder()
    items = [make_item() for _ in range(45)]
    report = EnrichmentPipeline(writer, fake_analyzer, ["k"], sleep=sleep_recorder).run(items)
    assert [len(chunk) for chunk in writer.chunks] == [20, 20, 5]
    assert report.persisted == 45
    assert [item.id for item in report.completed] == [item.id for item in items]


class BrokenAnalyzer:
    """Raises something other than AnalysisError for selected contents."""

    def __init__(self, broken: set[str]) -> None:
        self.broken = broken
        self.calls: list[str] = []

    def analyze(self, content: str, api_key: str) -> AnalysisResult:
        self.calls.append(content)
        if content in self.broken:
            raise TypeError("unexpected payload")
        return AnalysisResult(title="t", summary="s", tags=["AI"], type=ItemType.NOTE)


def test_unexpected_analyzer_exception_counts_as_failed_attempt(make_item, sleep_recorder) -> None:
    good = make_item(content="https://good.io")
    bad = make_item(content="https://bad.io")
    analyzer = BrokenAnalyzer({bad.content})
    writer = ChunkRecorder()
    report = EnrichmentPipeline(writer, analyzer, ["k"], sleep=sleep_recorder).run([good, bad])

    assert analyzer.calls.count(bad.content) == 4
    assert report.enriched == 1
    assert report.failed == 1
    assert report.persisted == 2
    assert [item.id for item in writer.chunks[0]] == [good.id, bad.id]


def test_malformed_gemini_reply_keeps_earlier_results(make_item, sleep_recorder) -> None:
    replies = iter(
        [
            {"title": "t", "summary": "摘要", "tags": ["AI"], "type": "note"},
            123,
            123,
            123,
            123,
        ]
    )

    def handler(request: httpx.Request) -> httpx.Response:
        reply = next(replies)
        text = json.dumps(reply, ensure_ascii=False) if isinstance(reply, dict) else reply
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})

    analyzer = GeminiAnalyzer(client=httpx.Client(transport=httpx.MockTransport(handler)))
    first, second = make_item(), make_item()
    writer = ChunkRecorder()
    report = EnrichmentPipeline(writer, analyzer, ["k"], sleep=sleep_recorder).run([first, second])

    assert report.enriched == 1
    assert report.failed == 1
    assert report.persisted == 2
    assert writer.chunks[0][0].ai_summary == "摘要"
