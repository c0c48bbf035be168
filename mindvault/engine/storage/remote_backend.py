"""Remote authenticated HTTP backend."""

from __future__ import annotations

from typing import Any, Iterable, Sequence

import httpx
import structlog
from pydantic import ValidationError

from ...errors import AuthError, ConnectivityError, RemoteError
from ..items import VaultItem
from .base import StorageBackend

DEFAULT_TIMEOUT = 15.0


class RemoteBackend(StorageBackend):
    """Talk to the remote item service using a bearer token.

    Routes: ``GET /items``, ``POST /items``, ``POST /batch_items`` and
    ``POST /batch_delete``. Every transport failure is reported as
    :class:`ConnectivityError`, a 401 as :class:`AuthError` and any other
    non-success status as :class:`RemoteError`.
    """

    def __init__(
        self,
        endpoint: str,
        token: str,
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.endpoint = endpoint.strip().rstrip("/")
        self.token = token
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)
        self.logger = structlog.get_logger("mindvault.storage.remote").bind(endpoint=self.endpoint)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    # ------------------------------------------------------------------
    def list_all(self) -> list[VaultItem]:
        response = self._request("GET", "/items")
        try:
            payload = response.json()
        except ValueError as exc:
            raise RemoteError("远端返回了无法解析的数据", response.status_code) from exc
        if not isinstance(payload, list):
            raise RemoteError("远端返回的数据不是列表", response.status_code)
        try:
            return [VaultItem.from_record(record) for record in payload]
        except ValidationError as exc:
            raise RemoteError(f"远端数据格式错误: {exc.error_count()} 处字段无效", response.status_code) from exc

    def upsert_one(self, item: VaultItem) -> None:
        self._request("POST", "/items", json=item.to_record())

    def upsert_batch(self, items: Sequence[VaultItem]) -> None:
        self._request("POST", "/batch_items", json=[item.to_record() for item in items])

    def delete_batch(self, ids: Iterable[str]) -> None:
        self._request("POST", "/batch_delete", json={"ids": list(ids)})

    def verify(self) -> bool:
        """Perform a read-only request to confirm credentials."""

        self._request("GET", "/items")
        return True

    # ------------------------------------------------------------------
    def _request(self, method: str, path: str, json: Any = None) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.token}"}
        kwargs: dict[str, Any] = {"headers": headers}
        if json is not None:
            kwargs["json"] = json
        try:
            response = self._client.request(method, f"{self.endpoint}{path}", **kwargs)
        except httpx.HTTPError as exc:
            self.logger.warning("remote_request_failed", method=method, path=path, error=str(exc))
            raise ConnectivityError(f"无法连接远端存储服务: {exc}") from exc
        self._raise_for_status(response)
        return response

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        status = response.status_code
        self.logger.warning("remote_request_rejected", status=status, path=response.request.url.path)
        if status == 401:
            raise AuthError()
        message = f"请求失败 ({status})"
        try:
            body = response.json()
        except ValueError:
            text = response.text.strip()
            if text:
                message = f"{message}: {text[:50]}"
        else:
            if isinstance(body, dict) and body.get("error"):
                message = str(body["error"])
        raise RemoteError(message, status)


__all__ = ["RemoteBackend"]
