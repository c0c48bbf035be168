"""Content analysis via the Gemini REST API.

The REST endpoint is called directly with httpx rather than through the SDK;
any failure of a single call (transport, quota, credential, malformed output)
is reported uniformly as :class:`AnalysisError`.
"""

from __future__ import annotations

import json
from typing import Protocol

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError, field_validator

from ..config import AnalysisSettings
from ..errors import AnalysisError
from ..infra.key_pool import mask_credential
from .items import ItemType, merge_tags

PROMPT_TEMPLATE = """请分析下面的内容（可能是一个网址，也可能是一段文本或代码）。
所有输出必须使用简体中文。

返回 JSON，字段如下：
1. title：简短的中文标题。
2. summary：不超过两句话的中文摘要。
3. tags：3 到 5 个相关的中文标签。
4. type：只能是 "link"（网址）、"note"（普通文本）或 "snippet"（代码片段）。

内容："{content}"
"""

RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "title": {"type": "STRING"},
        "summary": {"type": "STRING"},
        "tags": {"type": "ARRAY", "items": {"type": "STRING"}},
        "type": {"type": "STRING", "enum": [t.value for t in ItemType]},
    },
    "required": ["title", "summary", "tags", "type"],
}


class AnalysisResult(BaseModel):
    """Structured output of one analysis call."""

    title: str
    summary: str
    tags: list[str] = Field(default_factory=list)
    type: ItemType = ItemType.NOTE

    @field_validator("tags", mode="before")
    @classmethod
    def _clean_tags(cls, value: object) -> list[str]:
        if not isinstance(value, list):
            return []
        return merge_tags(str(tag).strip() for tag in value if str(tag).strip())


class ContentAnalyzer(Protocol):
    def analyze(self, content: str, api_key: str) -> AnalysisResult: ...


class GeminiAnalyzer:
    """Call ``models/{model}:generateContent`` with a JSON response schema."""

    def __init__(
        self,
        settings: AnalysisSettings | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.settings = settings or AnalysisSettings()
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=self.settings.timeout)
        self.logger = structlog.get_logger("mindvault.analyzer").bind(model=self.settings.model)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def build_payload(self, content: str) -> dict:
        prompt = PROMPT_TEMPLATE.format(content=content[: self.settings.max_content_chars])
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": RESPONSE_SCHEMA,
            },
        }

    def analyze(self, content: str, api_key: str) -> AnalysisResult:
        if not api_key:
            raise AnalysisError("No API key provided")
        url = f"{self.settings.api_base}/models/{self.settings.model}:generateContent"
        try:
            response = self._client.post(
                url,
                json=self.build_payload(content),
                headers={"x-goog-api-key": api_key},
            )
        except (httpx.HTTPError, httpx.InvalidURL, UnicodeEncodeError) as exc:
            # 网络错误、非法 apiBase、无法编码进请求头的 Key
            self.logger.warning("gemini_http_error", key=mask_credential(api_key), error=str(exc))
            raise AnalysisError(f"Gemini request failed: {exc}") from exc

        if response.status_code >= 400:
            try:
                error_msg = response.json().get("error", {}).get("message", response.text)
            except (ValueError, AttributeError):
                error_msg = response.text
            self.logger.warning(
                "gemini_api_error", key=mask_credential(api_key), status=response.status_code
            )
            raise AnalysisError(f"Gemini API error ({response.status_code}): {error_msg}")

        return self._parse_response(response)

    def _parse_response(self, response: httpx.Response) -> AnalysisResult:
        try:
            data = response.json()
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise AnalysisError("No response from AI") from exc
        if not text:
            raise AnalysisError("Empty response from AI")
        try:
            return AnalysisResult.model_validate(json.loads(text))
        except (json.JSONDecodeError, TypeError, ValidationError) as exc:
            raise AnalysisError(f"Malformed analysis result: {exc}") from exc


__all__ = ["AnalysisResult", "ContentAnalyzer", "GeminiAnalyzer", "PROMPT_TEMPLATE"]
