"""Models for json-proxy.

Plain dataclasses: every value here is built per request, consumed
immediately and never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .errors import FailureKind, ProxyError

JSONValue = Any


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a metadata-only (HEAD) request.

    Failed probes carry the classified error; `failure_kind` mirrors it.
    """

    reachable: bool
    status: int | None = None
    content_type: str | None = None

    # Declared Content-Length; None when absent or unparseable.
    content_length: int | None = None
    error: ProxyError | None = field(default=None, compare=False)

    @property
    def failure_kind(self) -> FailureKind | None:
        return self.error.kind if self.error is not None else None

    def raise_for_failure(self) -> None:
        if self.error is not None:
            raise self.error


@dataclass(frozen=True)
class FetchResult:
    body: JSONValue
    raw: bytes
    content_type: str
    status: int = 200


@dataclass(frozen=True)
class ProxyLink:
    original_url: str
    proxy_url: str

    def to_dict(self) -> dict[str, str]:
        return {"originalUrl": self.original_url, "proxyUrl": self.proxy_url}


@dataclass
class ServiceResponse:
    """Transport-agnostic response produced by the orchestrators.

    `body` is a JSON document (dict) or raw bytes that are relayed verbatim.
    """

    status_code: int
    body: dict[str, Any] | bytes | None
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def is_raw(self) -> bool:
        return isinstance(self.body, (bytes, bytearray))
