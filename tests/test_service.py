"""
Tests for the create-proxy / fetch-proxy orchestration.
"""

import asyncio
import json
import unittest
from urllib.parse import quote

import httpx

from json_proxy.config import Settings
from json_proxy.rate_limit import FixedWindowRateLimiter
from json_proxy.service import (
    ProxyService,
    create_error_response,
    fetch_error_response,
    utc_timestamp,
)
from json_proxy.errors import Timeout, TransferTooLarge, Unreachable, UpstreamHTTPError
from json_proxy.upstream import UpstreamClient

ORIGIN = "https://proxy.example"
TARGET = "https://api.example.com/data.json?x=1"


def _service(handler, limiter=None, **overrides) -> ProxyService:
    settings = Settings(**overrides)
    upstream = UpstreamClient(settings, transport=httpx.MockTransport(handler))
    return ProxyService(settings, upstream=upstream, limiter=limiter)


def _json_upstream(request: httpx.Request) -> httpx.Response:
    if request.method == "HEAD":
        return httpx.Response(200, headers={"Content-Type": "application/json"})
    return httpx.Response(200, headers={"Content-Type": "application/json"}, content=b'{"ok": true}')


class TestCreateProxy(unittest.IsolatedAsyncioTestCase):
    async def test_success_returns_link(self):
        service = _service(_json_upstream)
        result = await service.create_proxy(TARGET, client_id="c1", origin=ORIGIN)
        await service.aclose()

        self.assertEqual(result.status_code, 200)
        self.assertEqual(result.body["success"], True)
        self.assertEqual(result.body["originalUrl"], TARGET)
        self.assertEqual(result.body["contentType"], "application/json")
        self.assertEqual(result.body["proxyUrl"], f"{ORIGIN}/proxy?url={quote(TARGET, safe='')}")
        self.assertIn(quote(TARGET, safe=""), result.body["proxyUrl"])
        self.assertEqual(result.headers["RateLimit-Limit"], "30")

    async def test_custom_proxy_path(self):
        service = _service(_json_upstream, proxy_path="/api/proxy")
        result = await service.create_proxy(TARGET, client_id="c1", origin=ORIGIN)
        self.assertTrue(result.body["proxyUrl"].startswith(f"{ORIGIN}/api/proxy?url="))

    async def test_invalid_url(self):
        service = _service(_json_upstream)
        for url in [None, "", "not a url", "/relative", 123]:
            with self.subTest(url=url):
                result = await service.create_proxy(url, client_id="c1", origin=ORIGIN)
                self.assertEqual(result.status_code, 400)
                self.assertEqual(result.body["error"], "Invalid URL format")

    async def test_html_content_type_echoed(self):
        service = _service(lambda r: httpx.Response(200, headers={"Content-Type": "text/html"}))
        result = await service.create_proxy("https://example.com/", client_id="c1", origin=ORIGIN)
        self.assertEqual(result.status_code, 400)
        self.assertEqual(result.body["error"], "Invalid content type")
        self.assertEqual(result.body["contentType"], "text/html")

    async def test_missing_content_type_is_unknown(self):
        service = _service(lambda r: httpx.Response(200))
        result = await service.create_proxy("https://example.com/", client_id="c1", origin=ORIGIN)
        self.assertEqual(result.status_code, 400)
        self.assertEqual(result.body["contentType"], "unknown")

    async def test_declared_size_over_limit(self):
        def handler(request):
            return httpx.Response(
                200, headers={"Content-Type": "application/json", "Content-Length": str(3 * 1024 * 1024)}
            )

        service = _service(handler)
        result = await service.create_proxy(TARGET, client_id="c1", origin=ORIGIN)
        self.assertEqual(result.status_code, 400)
        self.assertIn("2MB", result.body["message"])

    async def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("getaddrinfo failed", request=request)

        service = _service(handler)
        result = await service.create_proxy(TARGET, client_id="c1", origin=ORIGIN)
        self.assertEqual(result.status_code, 400)
        self.assertEqual(result.body["error"], "URL not accessible")

    async def test_timeout(self):
        async def handler(request):
            await asyncio.sleep(5)
            return httpx.Response(200)

        service = _service(handler, probe_timeout=0.05)
        result = await service.create_proxy(TARGET, client_id="c1", origin=ORIGIN)
        self.assertEqual(result.status_code, 408)
        self.assertEqual(result.body["error"], "Request timeout")

    async def test_strict_status(self):
        def handler(request):
            return httpx.Response(500, headers={"Content-Type": "application/json"})

        strict = await _service(handler, strict_status_check=True).create_proxy(
            TARGET, client_id="c1", origin=ORIGIN
        )
        self.assertEqual(strict.status_code, 400)
        self.assertEqual(strict.body["error"], "URL returned status code: 500")

        lenient = await _service(handler, strict_status_check=False).create_proxy(
            TARGET, client_id="c1", origin=ORIGIN
        )
        self.assertEqual(lenient.status_code, 200)

    async def test_rate_limited(self):
        limiter = FixedWindowRateLimiter(window_seconds=60, max_requests=2)
        service = _service(_json_upstream, limiter=limiter)

        for _ in range(2):
            ok = await service.create_proxy(TARGET, client_id="9.9.9.9", origin=ORIGIN)
            self.assertEqual(ok.status_code, 200)

        limited = await service.create_proxy(TARGET, client_id="9.9.9.9", origin=ORIGIN)
        self.assertEqual(limited.status_code, 429)
        self.assertIn("Too many requests", limited.body["error"])
        self.assertIn("Retry-After", limited.headers)
        self.assertEqual(limited.headers["RateLimit-Remaining"], "0")

        other = await service.create_proxy(TARGET, client_id="8.8.8.8", origin=ORIGIN)
        self.assertEqual(other.status_code, 200)

    async def test_private_network_blocked_when_enabled(self):
        service = _service(_json_upstream, block_private_networks=True)
        result = await service.create_proxy("http://127.0.0.1:8080/x", client_id="c", origin=ORIGIN)
        self.assertEqual(result.status_code, 400)
        self.assertIn("private network", result.body["message"])

        open_service = _service(_json_upstream)
        result = await open_service.create_proxy("http://127.0.0.1:8080/x", client_id="c", origin=ORIGIN)
        self.assertEqual(result.status_code, 200)


class TestFetchProxy(unittest.IsolatedAsyncioTestCase):
    async def test_relays_json_bytes_with_headers(self):
        service = _service(_json_upstream)
        result = await service.fetch_proxy(TARGET, client_id="c1")

        self.assertEqual(result.status_code, 200)
        self.assertTrue(result.is_raw)
        self.assertEqual(json.loads(result.body), {"ok": True})
        self.assertEqual(result.headers["Content-Type"], "application/json")
        self.assertEqual(result.headers["Cache-Control"], "public, max-age=300")
        self.assertEqual(result.headers["X-Proxy-Source"], TARGET)

    async def test_invalid_param(self):
        service = _service(_json_upstream)
        result = await service.fetch_proxy(None, client_id="c1")
        self.assertEqual(result.status_code, 400)
        self.assertEqual(result.body["error"], "Invalid URL")

    async def test_upstream_404_passthrough(self):
        service = _service(lambda r: httpx.Response(404, json={"message": "missing"}))
        result = await service.fetch_proxy(TARGET, client_id="c1")
        self.assertEqual(result.status_code, 404)
        self.assertEqual(result.body["status"], 404)
        self.assertEqual(result.body["error"], "HTTP error")

    async def test_not_modified_becomes_bad_gateway(self):
        service = _service(lambda r: httpx.Response(304))
        result = await service.fetch_proxy(TARGET, client_id="c1")
        self.assertEqual(result.status_code, 502)
        self.assertEqual(result.body["status"], 304)

    async def test_unreachable_is_404(self):
        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)

        result = await _service(handler).fetch_proxy(TARGET, client_id="c1")
        self.assertEqual(result.status_code, 404)
        self.assertEqual(result.body["error"], "URL not found")

    async def test_timeout(self):
        async def handler(request):
            await asyncio.sleep(5)
            return httpx.Response(200)

        result = await _service(handler, fetch_timeout=0.05).fetch_proxy(TARGET, client_id="c1")
        self.assertEqual(result.status_code, 408)

    async def test_wrong_content_type(self):
        def handler(request):
            return httpx.Response(200, headers={"Content-Type": "text/plain"}, content=b"hi")

        result = await _service(handler).fetch_proxy(TARGET, client_id="c1")
        self.assertEqual(result.status_code, 400)
        self.assertEqual(result.body["contentType"], "text/plain")

    async def test_invalid_json_body(self):
        def handler(request):
            return httpx.Response(200, headers={"Content-Type": "application/json"}, content=b"<html>")

        result = await _service(handler).fetch_proxy(TARGET, client_id="c1")
        self.assertEqual(result.status_code, 500)
        self.assertEqual(result.body["error"], "Invalid JSON")

    async def test_rate_limit_applies_when_enabled(self):
        limiter = FixedWindowRateLimiter(window_seconds=60, max_requests=1)
        service = _service(_json_upstream, limiter=limiter, rate_limit_fetch_flow=True)
        self.assertEqual((await service.fetch_proxy(TARGET, client_id="c")).status_code, 200)
        self.assertEqual((await service.fetch_proxy(TARGET, client_id="c")).status_code, 429)

    async def test_rate_limit_skipped_when_disabled(self):
        limiter = FixedWindowRateLimiter(window_seconds=60, max_requests=1)
        service = _service(_json_upstream, limiter=limiter, rate_limit_fetch_flow=False)
        for _ in range(3):
            result = await service.fetch_proxy(TARGET, client_id="c")
            self.assertEqual(result.status_code, 200)
            self.assertNotIn("RateLimit-Limit", result.headers)

    async def test_unexpected_exception_is_internal(self):
        service = _service(_json_upstream)

        async def boom(url):
            raise RuntimeError("secret detail")

        service.upstream.fetch = boom
        result = await service.fetch_proxy(TARGET, client_id="c")
        self.assertEqual(result.status_code, 500)
        self.assertNotIn("secret", json.dumps(result.body))


class TestErrorMapping(unittest.TestCase):
    def test_create_flow(self):
        self.assertEqual(create_error_response(Timeout())[0], 408)
        self.assertEqual(create_error_response(Unreachable())[0], 400)
        self.assertEqual(create_error_response(TransferTooLarge(2 * 1024 * 1024))[0], 400)
        self.assertEqual(create_error_response(UpstreamHTTPError(503))[0], 400)

    def test_fetch_flow(self):
        self.assertEqual(fetch_error_response(UpstreamHTTPError(503))[0], 503)
        self.assertEqual(fetch_error_response(Unreachable())[0], 404)
        self.assertEqual(fetch_error_response(Timeout())[0], 408)
        for status in (101, 204, 304):
            with self.subTest(status=status):
                self.assertEqual(fetch_error_response(UpstreamHTTPError(status))[0], 502)


class TestHealth(unittest.TestCase):
    def test_health(self):
        result = ProxyService(Settings()).health()
        self.assertEqual(result.status_code, 200)
        self.assertEqual(result.body["status"], "OK")
        self.assertTrue(result.body["timestamp"].endswith("Z"))

    def test_timestamp_format(self):
        ts = utc_timestamp()
        # 2026-01-01T00:00:00.000Z
        self.assertEqual(len(ts), 24)
        self.assertEqual(ts[10], "T")


if __name__ == "__main__":
    unittest.main()
