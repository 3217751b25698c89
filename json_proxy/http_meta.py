"""Helpers to read declared metadata off upstream responses.

httpx exposes headers as a case-insensitive multi-dict. We only need the
declared content type and length, plus a JSON-safe shape for log lines.
"""

from __future__ import annotations

from typing import Any


def headers_to_dict(headers: Any) -> dict[str, str]:
    out: dict[str, str] = {}
    if headers is None:
        return out

    try:
        items = headers.items()
    except AttributeError:
        return out

    for k, v in items:
        if k is None:
            continue
        out[str(k).lower()] = str(v)
    return out


def declared_content_type(headers: Any) -> str | None:
    value = headers_to_dict(headers).get("content-type")
    return value or None


def declared_content_length(headers: Any) -> int | None:
    raw = headers_to_dict(headers).get("content-length")
    if raw is None:
        return None
    try:
        # Avoid accepting floats; Content-Length is a plain integer.
        value = int(raw.strip())
    except ValueError:
        return None
    return value if value >= 0 else None


def response_meta(response: Any) -> dict[str, Any]:
    meta: dict[str, Any] = {}
    status = getattr(response, "status_code", None)
    if status is not None:
        meta["status"] = int(status)

    headers = getattr(response, "headers", None)
    content_type = declared_content_type(headers)
    if content_type:
        meta["content_type"] = content_type
    length = declared_content_length(headers)
    if length is not None:
        meta["content_length"] = length
    return meta
