from __future__ import annotations

import httpx
import pytest

from mindvault.config.models import VaultConfig
from mindvault.engine.storage import LocalBackend, RemoteBackend, StorageGateway
from mindvault.errors import AuthError, RemoteError


class ChunkService:
    """Remote stub that accepts batches until ``fail_on`` is reached."""

    def __init__(self, fail_on: int | None = None) -> None:
        self.fail_on = fail_on
        self.batches: list[int] = []
        self.paths: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.paths.append(request.url.path)
        if request.method == "GET":
            if request.headers.get("Authorization") != "Bearer good":
                return httpx.Response(401)
            return httpx.Response(200, json=[])
        if request.url.path.endswith("/batch_items"):
            if self.fail_on is not None and len(self.batches) == self.fail_on:
                return httpx.Response(500, json={"error": "boom"})
            self.batches.append(len(request.read()))
        return httpx.Response(200, json={"success": True})


def _remote_gateway(config_repository, kv_store, service) -> StorageGateway:
    client = httpx.Client(transport=httpx.MockTransport(service))
    return StorageGateway(config_repository, kv_store, client=client)


def test_backend_follows_saved_configuration(config_repository, kv_store) -> None:
    gateway = _remote_gateway(config_repository, kv_store, ChunkService())
    assert isinstance(gateway.backend(), LocalBackend)
    assert gateway.mode == "local"

    config_repository.save_config(VaultConfig(api_endpoint="https://vault.example.com", auth_token="good"))
    assert isinstance(gateway.backend(), RemoteBackend)
    assert gateway.mode == "remote"

    config_repository.update_config(auth_token=None)
    assert isinstance(gateway.backend(), LocalBackend)


def test_local_crud_through_gateway(gateway: StorageGateway, make_item) -> None:
    a, b = make_item(), make_item()
    gateway.upsert_one(a)
    gateway.upsert_batch([b])
    assert {item.id for item in gateway.list_all()} == {a.id, b.id}
    gateway.delete_one(a.id)
    assert [item.id for item in gateway.list_all()] == [b.id]


def test_empty_batches_do_not_touch_backend(config_repository, kv_store) -> None:
    service = ChunkService()
    gateway = _remote_gateway(config_repository, kv_store, service)
    config_repository.save_config(VaultConfig(api_endpoint="https://vault.example.com", auth_token="good"))
    gateway.upsert_batch([])
    gateway.delete_batch([])
    assert service.paths == []


def test_upsert_in_chunks_writes_ordered_chunks(gateway: StorageGateway, make_item) -> None:
    items = [make_item() for _ in range(45)]
    assert gateway.upsert_in_chunks(items, 20) == 45
    assert {item.id for item in gateway.list_all()} == {item.id for item in items}


def test_failed_chunk_keeps_earlier_chunks_and_stops(config_repository, kv_store, make_item) -> None:
    service = ChunkService(fail_on=1)
    gateway = _remote_gateway(config_repository, kv_store, service)
    config_repository.save_config(VaultConfig(api_endpoint="https://vault.example.com", auth_token="good"))

    with pytest.raises(RemoteError):
        gateway.upsert_in_chunks([make_item() for _ in range(5)], 2)
    assert len(service.batches) == 1
    assert service.paths.count("/batch_items") == 2


def test_verify_connection_does_not_change_configuration(config_repository, kv_store) -> None:
    gateway = _remote_gateway(config_repository, kv_store, ChunkService())
    assert gateway.verify_connection("https://vault.example.com", "good") is True
    with pytest.raises(AuthError):
        gateway.verify_connection("https://vault.example.com", "bad")
    assert config_repository.load_config() == VaultConfig()
