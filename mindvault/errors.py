"""Error taxonomy shared by storage, import and enrichment layers."""

from __future__ import annotations


class VaultError(Exception):
    """Base exception for MindVault errors."""

    def __init__(self, message: str, code: str = "VAULT_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(message)


class ConnectivityError(VaultError):
    """Raised when the remote backend cannot be reached."""

    def __init__(self, message: str = "无法连接远端存储服务") -> None:
        super().__init__(message, "CONNECTIVITY")


class AuthError(VaultError):
    """Raised when the remote backend rejects the bearer credential."""

    def __init__(
        self,
        message: str = (
            "认证失败：访问密码错误。请检查设置中的 Token 是否与远端服务配置的 SECRET_TOKEN 一致。"
        ),
    ) -> None:
        super().__init__(message, "AUTH_FAILED")


class RemoteError(VaultError):
    """Raised when the remote backend reports a non-auth failure."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message, "REMOTE_ERROR")


class ParseError(VaultError):
    """Raised when an import payload is malformed."""

    def __init__(self, message: str = "文件格式错误：无法解析导入文件") -> None:
        super().__init__(message, "PARSE_ERROR")


class UnsupportedFormatError(VaultError):
    """Raised when an import file type is not recognised."""

    def __init__(
        self, message: str = "不支持的文件类型。仅支持 .json（自定义格式）或 .html（浏览器书签）"
    ) -> None:
        super().__init__(message, "UNSUPPORTED_FORMAT")


class NoCredentialError(VaultError):
    """Raised when enrichment is requested without any usable credential."""

    def __init__(
        self, message: str = "未检测到 API Key。请先使用 `mindvault config keys` 配置 Gemini API Key。"
    ) -> None:
        super().__init__(message, "NO_CREDENTIAL")


class AnalysisError(VaultError):
    """Raised when a single content-analysis attempt fails."""

    def __init__(self, message: str = "AI 分析失败") -> None:
        super().__init__(message, "ANALYSIS_FAILED")


__all__ = [
    "AnalysisError",
    "AuthError",
    "ConnectivityError",
    "NoCredentialError",
    "ParseError",
    "RemoteError",
    "UnsupportedFormatError",
    "VaultError",
]
