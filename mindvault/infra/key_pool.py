"""Round-robin rotation over enrichment credentials."""

from __future__ import annotations

from threading import Lock
from typing import Iterable, List


class CredentialPool:
    """Circular credential provider; the cursor advances on every draw."""

    def __init__(self, credentials: Iterable[str]) -> None:
        self._lock = Lock()
        self._index = 0
        self._credentials: List[str] = [c.strip() for c in credentials if c and c.strip()]

    def __len__(self) -> int:
        return len(self._credentials)

    @property
    def empty(self) -> bool:
        return not self._credentials

    @property
    def draws(self) -> int:
        return self._index

    def next(self) -> str:
        with self._lock:
            if not self._credentials:
                raise LookupError("credential pool is empty")
            credential = self._credentials[self._index % len(self._credentials)]
            self._index += 1
            return credential

    def first(self) -> str | None:
        return self._credentials[0] if self._credentials else None


def mask_credential(credential: str) -> str:
    """Return a log-safe representation keeping only the last 4 characters."""

    return f"...{credential[-4:]}" if credential else ""


__all__ = ["CredentialPool", "mask_credential"]
