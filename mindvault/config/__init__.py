"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    AnalysisSettings,
    BackendSelection,
    LocalBackendSpec,
    RemoteBackendSpec,
    VaultConfig,
)

__all__ = [
    "AnalysisSettings",
    "BackendSelection",
    "ConfigLocator",
    "ConfigRepository",
    "LocalBackendSpec",
    "RemoteBackendSpec",
    "VaultConfig",
]
