"""Configuration loading helpers for MindVault."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import ValidationError

from ..infra.storage import CONFIG_KEY, KeyValueStore
from .models import VaultConfig

CONFIG_EXTENSIONS = (".yaml", ".yml", ".json")
STORE_FILENAME = "vault.db"
DEFAULT_CREDENTIAL_ENV = ("GEMINI_API_KEY", "API_KEY")

logger = structlog.get_logger("mindvault.config")


def _read_file(path: Path) -> dict:
    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file must contain a mapping: {path}")
    return data


def _write_file(path: Path, payload: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as stream:
        if path.suffix in (".yaml", ".yml"):
            yaml.safe_dump(payload, stream, allow_unicode=True, sort_keys=False)
        else:
            json.dump(payload, stream, indent=2, ensure_ascii=False)


@dataclass(slots=True)
class ConfigLocator:
    """Resolve important paths from the vault home directory."""

    project_root: Path | None = None
    data_dir: Path | None = None
    logs_dir: Path | None = None

    def __post_init__(self) -> None:
        env_root = os.environ.get("MINDVAULT_HOME")
        if env_root:
            root = Path(env_root).expanduser().resolve()
        else:
            root = (self.project_root or Path.home() / ".mindvault").expanduser().resolve()
        self.project_root = root
        self.data_dir = (root / "data").resolve()
        self.logs_dir = (root / "logs").resolve()
        self.ensure_directories()

    def ensure_directories(self) -> None:
        for directory in (self.data_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def store_path(self) -> Path:
        return self.data_dir / STORE_FILENAME


class ConfigRepository:
    """Repository encapsulating config IO and schema validation."""

    def __init__(self, store: KeyValueStore, locator: ConfigLocator | None = None) -> None:
        self.store = store
        self.locator = locator
        self._cache: VaultConfig | None = None

    # ------------------------------------------------------------------
    # Persisted configuration
    # ------------------------------------------------------------------
    def load_config(self) -> VaultConfig:
        if self._cache is not None:
            return self._cache
        raw = self.store.get(CONFIG_KEY)
        config = VaultConfig()
        if raw:
            try:
                config = VaultConfig.model_validate(json.loads(raw.decode("utf-8")))
            except (UnicodeDecodeError, json.JSONDecodeError, ValidationError) as exc:
                logger.warning("config_corrupted", error=str(exc))
        self._cache = config
        return config

    def save_config(self, config: VaultConfig) -> None:
        payload = json.dumps(config.to_payload(), ensure_ascii=False)
        self.store.set(CONFIG_KEY, payload.encode("utf-8"))
        self._cache = config
        logger.info("config_saved", remote=config.remote_enabled, keys=len(config.enrichment_keys))

    def update_config(self, **changes: Any) -> VaultConfig:
        """Merge ``changes`` into the current configuration and persist it."""

        config = self.load_config().merged(**changes)
        self.save_config(config)
        return config

    def reload(self) -> VaultConfig:
        self._cache = None
        return self.load_config()

    # ------------------------------------------------------------------
    # Environment and files
    # ------------------------------------------------------------------
    @staticmethod
    def default_credential() -> str | None:
        for name in DEFAULT_CREDENTIAL_ENV:
            value = os.environ.get(name, "").strip()
            if value:
                return value
        return None

    def export_config(self, path: Path) -> Path:
        if path.suffix not in CONFIG_EXTENSIONS:
            raise ValueError(f"Unsupported configuration file type: {path.suffix}")
        _write_file(path, self.load_config().to_payload())
        return path

    def import_config(self, path: Path) -> VaultConfig:
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")
        config = VaultConfig.model_validate(_read_file(path))
        self.save_config(config)
        return config


__all__ = ["CONFIG_EXTENSIONS", "ConfigLocator", "ConfigRepository"]
