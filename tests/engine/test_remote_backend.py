from __future__ import annotations

import json

import httpx
import pytest

from mindvault.engine.storage import RemoteBackend
from mindvault.errors import AuthError, ConnectivityError, RemoteError

ENDPOINT = "https://vault.example.com/api"


class RecordingService:
    """In-memory stand-in for the remote item service."""

    def __init__(self, token: str = "secret") -> None:
        self.token = token
        self.items: list[dict] = []
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.headers.get("Authorization") != f"Bearer {self.token}":
            return httpx.Response(401, json={"error": "Unauthorized"})
        path = request.url.path.removeprefix("/api")
        if request.method == "GET" and path == "/items":
            return httpx.Response(200, json=self.items)
        body = json.loads(request.content or b"null")
        if path == "/items":
            self._merge([body])
        elif path == "/batch_items":
            self._merge(body)
        elif path == "/batch_delete":
            self.items = [item for item in self.items if item["id"] not in set(body["ids"])]
        else:
            return httpx.Response(404, text="Not Found")
        return httpx.Response(200, json={"success": True})

    def _merge(self, incoming: list[dict]) -> None:
        by_id = {item["id"]: item for item in self.items}
        by_id.update({item["id"]: item for item in incoming})
        self.items = sorted(by_id.values(), key=lambda item: item["createdAt"], reverse=True)


def _backend(handler, token: str = "secret") -> RemoteBackend:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return RemoteBackend(ENDPOINT + "/", token, client=client)


def test_routes_and_bearer_header(make_item) -> None:
    service = RecordingService()
    backend = _backend(service)
    a, b = make_item(), make_item()

    backend.upsert_one(a)
    backend.upsert_batch([a, b])
    backend.delete_batch([a.id, "missing"])

    assert [(r.method, r.url.path) for r in service.requests] == [
        ("POST", "/api/items"),
        ("POST", "/api/batch_items"),
        ("POST", "/api/batch_delete"),
    ]
    assert all(r.headers["Authorization"] == "Bearer secret" for r in service.requests)
    assert json.loads(service.requests[-1].content) == {"ids": [a.id, "missing"]}
    assert [item.id for item in backend.list_all()] == [b.id]


def test_list_all_parses_records(make_item) -> None:
    service = RecordingService()
    item = make_item(tags=["远端"], ai_summary="摘要")
    service.items = [item.to_record()]
    assert _backend(service).list_all() == [item]


def test_unauthorized_maps_to_auth_error() -> None:
    backend = _backend(RecordingService(), token="wrong")
    with pytest.raises(AuthError) as excinfo:
        backend.list_all()
    assert "Token" in excinfo.value.message


def test_server_error_carries_server_message() -> None:
    backend = _backend(lambda request: httpx.Response(500, json={"error": "KV namespace missing"}))
    with pytest.raises(RemoteError) as excinfo:
        backend.list_all()
    assert excinfo.value.message == "KV namespace missing"
    assert excinfo.value.status_code == 500


def test_error_without_json_uses_status_message() -> None:
    backend = _backend(lambda request: httpx.Response(404, text="Not Found"))
    with pytest.raises(RemoteError) as excinfo:
        backend.upsert_batch([])
    assert excinfo.value.message.startswith("请求失败 (404)")


def test_transport_failure_maps_to_connectivity_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ConnectivityError):
        _backend(handler).list_all()


def test_non_list_payload_is_remote_error() -> None:
    backend = _backend(lambda request: httpx.Response(200, json={"items": []}))
    with pytest.raises(RemoteError):
        backend.list_all()


def test_verify_performs_read_only_request() -> None:
    service = RecordingService()
    assert _backend(service).verify() is True
    assert [r.method for r in service.requests] == ["GET"]
    assert service.items == []
