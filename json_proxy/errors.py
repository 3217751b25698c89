"""Failure taxonomy shared by the validator, limiter, prober and fetcher.

Every failure is classified where it happens and raised as a ProxyError
subclass. The orchestrators turn these into HTTP-like responses; nothing is
retried.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class FailureKind(str, Enum):
    INVALID_INPUT = "InvalidInput"
    RATE_LIMITED = "RateLimited"
    UNREACHABLE = "Unreachable"
    TIMEOUT = "Timeout"
    INVALID_CONTENT_TYPE = "InvalidContentType"
    TRANSFER_TOO_LARGE = "TransferTooLarge"
    UPSTREAM_HTTP_ERROR = "UpstreamHTTPError"
    INVALID_JSON = "InvalidJSON"
    INTERNAL = "Internal"


class ProxyError(Exception):
    """Base class for classified failures."""

    kind: FailureKind = FailureKind.INTERNAL
    error: str = "Server error"

    def __init__(self, message: str = "", *, error: str | None = None):
        super().__init__(message or self.error)
        self.message = message
        if error is not None:
            self.error = error

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"error": self.error}
        if self.message:
            out["message"] = self.message
        return out


class InvalidInput(ProxyError):
    kind = FailureKind.INVALID_INPUT
    error = "Invalid URL"


class RateLimited(ProxyError):
    kind = FailureKind.RATE_LIMITED
    error = "Too many requests from this IP, please try again later."

    def __init__(self, retry_after: float = 0.0, headers: dict[str, str] | None = None):
        super().__init__()
        self.retry_after = retry_after
        self.headers = dict(headers or {})


class Unreachable(ProxyError):
    kind = FailureKind.UNREACHABLE
    error = "URL not accessible"


class Timeout(ProxyError):
    kind = FailureKind.TIMEOUT
    error = "Request timeout"

    def __init__(self, message: str = "The URL took too long to respond"):
        super().__init__(message)


class InvalidContentType(ProxyError):
    kind = FailureKind.INVALID_CONTENT_TYPE
    error = "Invalid content type"

    def __init__(self, content_type: str | None):
        super().__init__("The URL does not serve JSON content")
        self.content_type = content_type or "unknown"

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        out["contentType"] = self.content_type
        return out


class TransferTooLarge(ProxyError):
    kind = FailureKind.TRANSFER_TOO_LARGE
    error = "Size exceeds limit"

    def __init__(self, limit: int):
        super().__init__(f"JSON file size exceeds {limit // (1024 * 1024)}MB limit")
        self.limit = limit


class UpstreamHTTPError(ProxyError):
    kind = FailureKind.UPSTREAM_HTTP_ERROR
    error = "HTTP error"

    def __init__(self, status: int):
        super().__init__(f"The URL returned status {status}")
        self.status = status

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        out["status"] = self.status
        return out


class InvalidJSON(ProxyError):
    kind = FailureKind.INVALID_JSON
    error = "Invalid JSON"

    def __init__(self, message: str = "The URL did not return a valid JSON document"):
        super().__init__(message)


class Internal(ProxyError):
    kind = FailureKind.INTERNAL
    error = "Server error"
