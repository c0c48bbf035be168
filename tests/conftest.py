"""Shared fixtures: an isolated vault home, stores, gateway and fakes."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Iterable

import pytest

from mindvault.config import ConfigLocator, ConfigRepository
from mindvault.engine.analyzer import AnalysisResult
from mindvault.engine.items import ItemType, VaultItem
from mindvault.engine.storage import StorageGateway
from mindvault.errors import AnalysisError
from mindvault.infra import KeyValueStore


class FakeAnalyzer:
    """Deterministic analyzer; contents listed in ``failing`` always fail."""

    def __init__(
        self,
        results: dict[str, AnalysisResult] | None = None,
        failing: Iterable[str] = (),
        default_tags: list[str] | None = None,
    ) -> None:
        self.results = results or {}
        self.failing = set(failing)
        self.default_tags = default_tags or ["AI"]
        self.calls: list[tuple[str, str]] = []

    def analyze(self, content: str, api_key: str) -> AnalysisResult:
        self.calls.append((content, api_key))
        if content in self.failing:
            raise AnalysisError(f"analysis failed for {content}")
        if content in self.results:
            return self.results[content]
        return AnalysisResult(
            title=f"标题 {content[:10]}",
            summary=f"摘要 {content[:10]}",
            tags=self.default_tags,
            type=ItemType.NOTE,
        )


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def vault_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    home = tmp_path / "vault"
    monkeypatch.setenv("MINDVAULT_HOME", str(home))
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("API_KEY", raising=False)
    return home


@pytest.fixture
def kv_store(vault_home: Path) -> Iterable[KeyValueStore]:
    store = KeyValueStore(vault_home / "data" / "vault.db")
    yield store
    store.close()


@pytest.fixture
def config_repository(kv_store: KeyValueStore) -> ConfigRepository:
    return ConfigRepository(kv_store, ConfigLocator())


@pytest.fixture
def gateway(config_repository: ConfigRepository, kv_store: KeyValueStore) -> Iterable[StorageGateway]:
    gw = StorageGateway(config_repository, kv_store)
    yield gw
    gw.close()


@pytest.fixture
def make_item() -> Callable[..., VaultItem]:
    counter = {"value": 0}

    def _builder(**overrides: Any) -> VaultItem:
        counter["value"] += 1
        base: dict[str, Any] = {
            "id": f"item{counter['value']:03d}",
            "type": ItemType.LINK,
            "content": f"https://example.com/{counter['value']}",
            "tags": [],
            "created_at": 1_700_000_000_000 + counter["value"],
        }
        base.update(overrides)
        return VaultItem(**base)

    return _builder


@pytest.fixture
def fake_analyzer() -> FakeAnalyzer:
    return FakeAnalyzer()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()
