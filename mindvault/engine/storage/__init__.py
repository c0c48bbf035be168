"""Storage SPI, backends and the gateway selecting between them."""

from .base import StorageBackend
from .gateway import StorageGateway
from .local_backend import LocalBackend
from .remote_backend import RemoteBackend

__all__ = ["LocalBackend", "RemoteBackend", "StorageBackend", "StorageGateway"]
