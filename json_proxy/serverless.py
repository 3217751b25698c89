"""Serverless entry point (AWS Lambda / Netlify style events).

The event carries `httpMethod`, `path`, `headers`, `queryStringParameters`
and `body`; the return value is `{statusCode, headers, body}`. Routing is by
the last path segment so the same handler serves `/create-proxy`,
`/api/proxy` or `/.netlify/functions/proxy`.

Limiter state is module-level and lives as long as the warm container. The
HTTP client is per invocation because every invocation runs its own event
loop.
"""

from __future__ import annotations

import asyncio
import base64
import json
import os
from dataclasses import replace
from typing import Any

from .config import Settings, load_settings
from .links import client_identity, request_origin
from .models import ServiceResponse
from .rate_limit import FixedWindowRateLimiter
from .service import ProxyService
from .upstream import UpstreamClient

ROUTES = {
    "create-proxy": "POST",
    "proxy": "GET",
    "health": "GET",
}

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
}

# Function-runtime defaults, each applied unless its variable is set: a short
# HEAD deadline, and forwarded headers trusted because the platform edge sets them.
SERVERLESS_PROBE_TIMEOUT = 5.0
SERVERLESS_PROFILE = {
    "JSON_PROXY_PROBE_TIMEOUT": ("probe_timeout", SERVERLESS_PROBE_TIMEOUT),
    "JSON_PROXY_TRUST_FORWARDED": ("trust_forwarded_headers", True),
}

_settings: Settings | None = None
_limiter: FixedWindowRateLimiter | None = None


def _state() -> tuple[Settings, FixedWindowRateLimiter]:
    global _settings, _limiter
    if _settings is None:
        settings = load_settings()
        overrides = {
            field: value
            for var, (field, value) in SERVERLESS_PROFILE.items()
            if not os.environ.get(var, "").strip()
        }
        _settings = replace(settings, **overrides)
    if _limiter is None:
        _limiter = FixedWindowRateLimiter(
            _settings.rate_limit_window,
            _settings.rate_limit_max,
            max_entries=_settings.rate_limit_max_entries,
        )
    return _settings, _limiter


def reset_state() -> None:
    global _settings, _limiter
    _settings = None
    _limiter = None


def make_upstream(settings: Settings) -> UpstreamClient:
    return UpstreamClient(settings)


def response(status_code: int, body: Any = None, headers: dict[str, str] | None = None) -> dict[str, Any]:
    out_headers = {**CORS_HEADERS, "Content-Type": "application/json"}
    out_headers.update(headers or {})
    out: dict[str, Any] = {"statusCode": status_code, "headers": out_headers}

    if body is None:
        out["body"] = ""
    elif isinstance(body, (bytes, bytearray)):
        try:
            out["body"] = bytes(body).decode("utf-8")
        except UnicodeDecodeError:
            out["body"] = base64.b64encode(bytes(body)).decode("ascii")
            out["isBase64Encoded"] = True
    else:
        out["body"] = json.dumps(body)
    return out


def _from_service(result: ServiceResponse) -> dict[str, Any]:
    return response(result.status_code, result.body, result.headers)


def _method(event: dict[str, Any]) -> str:
    method = event.get("httpMethod")
    if not method:
        # API Gateway HTTP API (payload v2)
        method = ((event.get("requestContext") or {}).get("http") or {}).get("method")
    return str(method or "GET").upper()


def _route(event: dict[str, Any]) -> str:
    path = str(event.get("path") or event.get("rawPath") or "")
    return path.rstrip("/").rsplit("/", 1)[-1]


def _source_ip(event: dict[str, Any]) -> str | None:
    ctx = event.get("requestContext") or {}
    ip = (ctx.get("identity") or {}).get("sourceIp") or (ctx.get("http") or {}).get("sourceIp")
    return str(ip) if ip else None


def _json_body(event: dict[str, Any]) -> dict[str, Any]:
    raw = event.get("body") or "{}"
    if event.get("isBase64Encoded"):
        raw = base64.b64decode(raw).decode("utf-8")
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("body must be a JSON object")
    return data


async def _dispatch(
    route: str, event: dict[str, Any], settings: Settings, limiter: FixedWindowRateLimiter
) -> ServiceResponse:
    headers = event.get("headers") or {}
    client_id = client_identity(
        headers, _source_ip(event), trust_forwarded=settings.trust_forwarded_headers
    )

    async with make_upstream(settings) as upstream:
        service = ProxyService(settings, upstream=upstream, limiter=limiter)

        if route == "create-proxy":
            try:
                url = _json_body(event).get("url")
            except ValueError:
                return ServiceResponse(400, {"error": "Invalid URL format", "message": "Please provide a valid URL"})
            origin = request_origin(headers, scheme="https")
            return await service.create_proxy(url, client_id=client_id, origin=origin)

        params = event.get("queryStringParameters") or {}
        return await service.fetch_proxy(params.get("url"), client_id=client_id)


def handler(event: dict[str, Any], context: Any = None) -> dict[str, Any]:
    method = _method(event)
    if method == "OPTIONS":
        return response(200)

    route = _route(event)
    expected = ROUTES.get(route)
    if expected is None:
        return response(404, {"error": "Not found"})
    if method != expected:
        return response(405, {"error": "Method not allowed"})

    if route == "health":
        return _from_service(ProxyService.health())

    settings, limiter = _state()
    return _from_service(asyncio.run(_dispatch(route, event, settings, limiter)))


lambda_handler = handler
