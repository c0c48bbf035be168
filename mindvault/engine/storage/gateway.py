"""Storage gateway dispatching every call to the configured backend."""

from __future__ import annotations

from typing import Iterable, Sequence

import httpx
import structlog

from ...config import ConfigRepository, LocalBackendSpec, RemoteBackendSpec
from ...infra.storage import KeyValueStore
from ..items import VaultItem, chunked
from .base import StorageBackend
from .local_backend import LocalBackend
from .remote_backend import DEFAULT_TIMEOUT, RemoteBackend


class StorageGateway:
    """Uniform CRUD/batch operations over the local or remote backend.

    The backend is resolved on every call from the repository's current
    configuration, so a saved configuration change takes effect on the next
    operation.
    """

    def __init__(
        self,
        repository: ConfigRepository,
        store: KeyValueStore,
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.repository = repository
        self.store = store
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)
        self.logger = structlog.get_logger("mindvault.storage")

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    # ------------------------------------------------------------------
    def backend(self) -> StorageBackend:
        selection = self.repository.load_config().backend_selection()
        if isinstance(selection, RemoteBackendSpec):
            return RemoteBackend(selection.endpoint, selection.token, client=self._client)
        if isinstance(selection, LocalBackendSpec):
            return LocalBackend(self.store)
        raise TypeError(f"Unknown backend selection: {selection!r}")

    @property
    def mode(self) -> str:
        return self.repository.load_config().backend_selection().kind

    def list_all(self) -> list[VaultItem]:
        return self.backend().list_all()

    def upsert_one(self, item: VaultItem) -> None:
        self.backend().upsert_one(item)

    def upsert_batch(self, items: Sequence[VaultItem]) -> None:
        if not items:
            return
        self.backend().upsert_batch(items)

    def delete_batch(self, ids: Iterable[str]) -> None:
        ids = list(ids)
        if not ids:
            return
        self.backend().delete_batch(ids)

    def delete_one(self, item_id: str) -> None:
        self.delete_batch([item_id])

    def upsert_in_chunks(self, items: Sequence[VaultItem], chunk_size: int) -> int:
        """Write ``items`` in ordered chunks; a failing chunk stops the run.

        Returns the number of items committed.
        """

        committed = 0
        for chunk in chunked(items, chunk_size):
            self.upsert_batch(chunk)
            committed += len(chunk)
            self.logger.debug("chunk_committed", size=len(chunk), committed=committed, total=len(items))
        return committed

    def verify_connection(self, endpoint: str, token: str) -> bool:
        """Confirm credentials against ``endpoint`` without touching state."""

        return RemoteBackend(endpoint, token, client=self._client).verify()


__all__ = ["StorageGateway"]
