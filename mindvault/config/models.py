"""Pydantic models used across MindVault configuration flow."""

from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_ANALYSIS_MODEL = "gemini-2.5-flash"
DEFAULT_ANALYSIS_API_BASE = "https://generativelanguage.googleapis.com/v1beta"


class AnalysisSettings(BaseModel):
    """Parameters for the content-analysis capability."""

    model_config = ConfigDict(populate_by_name=True)

    model: str = DEFAULT_ANALYSIS_MODEL
    api_base: str = Field(default=DEFAULT_ANALYSIS_API_BASE, alias="apiBase")
    timeout: float = 30.0
    max_content_chars: int = Field(default=5000, alias="maxContentChars")

    @field_validator("api_base", mode="before")
    @classmethod
    def _strip_base(cls, value: Any) -> str:
        if value in (None, ""):
            return DEFAULT_ANALYSIS_API_BASE
        return str(value).strip().rstrip("/")

    @field_validator("max_content_chars")
    @classmethod
    def _positive_chars(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("maxContentChars must be > 0")
        return value


class LocalBackendSpec(BaseModel):
    """Device-local storage selected."""

    kind: Literal["local"] = "local"


class RemoteBackendSpec(BaseModel):
    """Remote authenticated HTTP store selected."""

    kind: Literal["remote"] = "remote"
    endpoint: str
    token: str


BackendSelection = Union[LocalBackendSpec, RemoteBackendSpec]


class VaultConfig(BaseModel):
    """Process-wide settings persisted on explicit save."""

    model_config = ConfigDict(populate_by_name=True)

    api_endpoint: str | None = Field(default=None, alias="apiEndpoint")
    auth_token: str | None = Field(default=None, alias="authToken")
    enrichment_keys: list[str] = Field(default_factory=list, alias="geminiApiKeys")
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)

    @field_validator("api_endpoint", mode="before")
    @classmethod
    def _clean_endpoint(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip().rstrip("/")
        return text or None

    @field_validator("auth_token", mode="before")
    @classmethod
    def _clean_token(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("enrichment_keys", mode="before")
    @classmethod
    def _clean_keys(cls, value: Any) -> list[str]:
        if value in (None, ""):
            return []
        if isinstance(value, str):
            value = value.split(",")
        if not isinstance(value, (list, tuple)):
            raise ValueError("geminiApiKeys expects a list of strings")
        return [str(key).strip() for key in value if str(key).strip()]

    @property
    def remote_enabled(self) -> bool:
        return bool(self.api_endpoint and self.auth_token)

    def backend_selection(self) -> BackendSelection:
        if self.api_endpoint and self.auth_token:
            return RemoteBackendSpec(endpoint=self.api_endpoint, token=self.auth_token)
        return LocalBackendSpec()

    def merged(self, **changes: Any) -> "VaultConfig":
        """Return a validated copy with ``changes`` (field names) applied."""

        payload = self.model_dump()
        payload.update(changes)
        return VaultConfig.model_validate(payload)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


__all__ = [
    "AnalysisSettings",
    "BackendSelection",
    "DEFAULT_ANALYSIS_API_BASE",
    "DEFAULT_ANALYSIS_MODEL",
    "LocalBackendSpec",
    "RemoteBackendSpec",
    "VaultConfig",
]
