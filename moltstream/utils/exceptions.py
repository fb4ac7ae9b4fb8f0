"""
Exception hierarchy for moltstream.

Every error carries a stable string code and a category; the bridge maps them
to local error codes. Messages pass through `sanitize_error_message` before
they leave the process so tokens and key material never reach the editor.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any


class ErrorCategory(Enum):
    """Error categories for classification."""
    RECOVERABLE = "recoverable"
    RETRYABLE = "retryable"
    FATAL = "fatal"
    VALIDATION = "validation"
    PROTOCOL = "protocol"


class MoltstreamError(Exception):
    """Base exception for all moltstream errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        category: ErrorCategory = ErrorCategory.FATAL,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "category": self.category.value,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ConfigError(MoltstreamError):
    """Configuration could not be loaded or is incomplete."""

    def __init__(self, message: str, path: str | None = None):
        details = {"path": path} if path else {}
        super().__init__(message, code="CONFIG_ERROR", category=ErrorCategory.VALIDATION, details=details)


class IdentityError(MoltstreamError):
    """Device identity file missing or unusable."""

    def __init__(self, message: str, path: str | None = None):
        details = {"path": path} if path else {}
        super().__init__(message, code="IDENTITY_ERROR", category=ErrorCategory.FATAL, details=details)


class NotConnectedError(MoltstreamError):
    """Operation requires an authenticated gateway connection."""

    def __init__(self, message: str = "not connected to gateway"):
        super().__init__(message, code="NOT_CONNECTED", category=ErrorCategory.RECOVERABLE)


class TransportError(MoltstreamError):
    """Dial, handshake timeout, read or write failure on the gateway link."""

    def __init__(self, message: str, operation: str | None = None):
        details = {"operation": operation} if operation else {}
        super().__init__(message, code="TRANSPORT_ERROR", category=ErrorCategory.RETRYABLE, details=details)


class GatewayError(MoltstreamError):
    """Application-level rejection reported by the gateway."""

    def __init__(
        self,
        message: str,
        code: str = "GATEWAY_ERROR",
        remote_code: str | None = None,
        category: ErrorCategory = ErrorCategory.RECOVERABLE,
    ):
        details = {"remote_code": remote_code} if remote_code else {}
        super().__init__(message, code=code, category=category, details=details)


class GatewayAuthError(GatewayError):
    """Connect handshake rejected by the gateway."""

    def __init__(self, message: str, remote_code: str | None = None):
        super().__init__(message, code="GATEWAY_AUTH_FAILED", remote_code=remote_code, category=ErrorCategory.FATAL)


class GatewayBusyError(GatewayError):
    """A chat send is already awaiting its reply."""

    def __init__(self, message: str = "a response is already in progress"):
        super().__init__(message, code="GATEWAY_BUSY")


class ProtocolViolationError(MoltstreamError):
    """Gateway broke a stream invariant (e.g. content that does not extend the previous)."""

    def __init__(self, message: str, run_id: str | None = None):
        details = {"run_id": run_id} if run_id else {}
        super().__init__(message, code="PROTOCOL_VIOLATION", category=ErrorCategory.PROTOCOL, details=details)


class SessionLogError(MoltstreamError):
    """Session log file operation failed."""

    def __init__(self, message: str, path: str | None = None):
        details = {"path": path} if path else {}
        super().__init__(message, code="SESSION_LOG_ERROR", category=ErrorCategory.FATAL, details=details)


_SENSITIVE_PATTERNS = [
    re.compile(r"(api[_-]?key|token|secret|password|auth)[=:]\s*['\"]?([^\s'\"]+)['\"]?", re.IGNORECASE),
    re.compile(r"bearer\s+[a-zA-Z0-9\-._~+/]+=*", re.IGNORECASE),
    re.compile(r"-----BEGIN [A-Z ]*PRIVATE KEY-----[\s\S]*?-----END [A-Z ]*PRIVATE KEY-----"),
]


def sanitize_error_message(message: str, replacement: str = "[REDACTED]") -> str:
    """Remove sensitive information from error messages."""
    sanitized = message
    for pattern in _SENSITIVE_PATTERNS:
        sanitized = pattern.sub(replacement, sanitized)
    return sanitized


def error_text(exc: BaseException) -> str:
    """Human-facing text for an exception, without the code prefix."""
    if isinstance(exc, MoltstreamError):
        text = exc.message
    else:
        text = str(exc) or type(exc).__name__
    return sanitize_error_message(text)
