"""Upstream prober and fetcher.

Both calls go through one shared httpx.AsyncClient and are wrapped in
`asyncio.wait_for`, so each is bounded and cancellable by its own deadline
without holding up unrelated requests. Nothing is retried.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import httpx

from .config import Settings
from .errors import (
    Internal,
    InvalidContentType,
    InvalidJSON,
    ProxyError,
    Timeout,
    TransferTooLarge,
    Unreachable,
    UpstreamHTTPError,
)
from .http_meta import declared_content_length, declared_content_type, response_meta
from .models import FetchResult, ProbeResult
from .validate import is_json_content

logger = logging.getLogger(__name__)


def classify_exception(exc: BaseException) -> ProxyError:
    """Map a network-layer exception onto the failure taxonomy."""
    if isinstance(exc, ProxyError):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return Timeout()
    if isinstance(exc, httpx.ConnectError):
        return Unreachable("The provided URL could not be reached")
    if isinstance(exc, httpx.TooManyRedirects):
        return Unreachable("The URL redirected too many times")
    if isinstance(exc, (httpx.UnsupportedProtocol, httpx.InvalidURL)):
        return Unreachable("The URL scheme is not supported")
    return Internal("An error occurred while contacting the URL")


class UpstreamClient:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or Settings()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            follow_redirects=True,
            max_redirects=self.settings.max_redirects,
            transport=transport,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "UpstreamClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def probe(self, url: str) -> ProbeResult:
        """Metadata-only check of `url`: HEAD, no body transfer."""
        timeout = self.settings.probe_timeout
        try:
            response = await asyncio.wait_for(self._head(url, timeout), timeout=timeout)
        except Exception as e:
            err = classify_exception(e)
            logger.debug("probe %s failed: %s (%s)", url, err.kind.value, e)
            return ProbeResult(reachable=False, error=err)

        meta = response_meta(response)
        logger.debug("probe %s -> %s", url, meta)

        status = response.status_code
        if self.settings.strict_status_check and not 200 <= status < 300:
            return ProbeResult(reachable=False, status=status, error=UpstreamHTTPError(status))

        return ProbeResult(
            reachable=True,
            status=status,
            content_type=declared_content_type(response.headers),
            content_length=declared_content_length(response.headers),
        )

    async def _head(self, url: str, timeout: float) -> httpx.Response:
        return await self._client.head(url, timeout=timeout)

    async def fetch(self, url: str) -> FetchResult:
        """Full GET of `url`, bounded by the transfer-size ceiling.

        Raises a ProxyError subclass on any failure.
        """
        timeout = self.settings.fetch_timeout
        try:
            result = await asyncio.wait_for(self._get(url, timeout), timeout=timeout)
        except Exception as e:
            err = classify_exception(e)
            logger.debug("fetch %s failed: %s (%s)", url, err.kind.value, e)
            if err is e:
                raise
            raise err from e
        return result

    async def _get(self, url: str, timeout: float) -> FetchResult:
        headers = {"Accept": "application/json", "User-Agent": self.settings.user_agent}
        limit = self.settings.max_content_length

        async with self._client.stream("GET", url, headers=headers, timeout=timeout) as response:
            logger.debug("fetch %s -> %s", url, response_meta(response))
            status = response.status_code
            if not 200 <= status < 300:
                raise UpstreamHTTPError(status)

            content_type = declared_content_type(response.headers)
            if not is_json_content(content_type):
                raise InvalidContentType(content_type)

            declared = declared_content_length(response.headers)
            if declared is not None and declared > limit:
                raise TransferTooLarge(limit)

            raw = await _read_bounded(response, limit)

        try:
            body = json.loads(raw)
        except ValueError:
            raise InvalidJSON() from None

        return FetchResult(body=body, raw=raw, content_type=str(content_type), status=status)


async def _read_bounded(response: httpx.Response, limit: int) -> bytes:
    # Leaving the stream context on error closes the connection.
    chunks: list[bytes] = []
    total = 0
    async for chunk in response.aiter_bytes():
        total += len(chunk)
        if total > limit:
            raise TransferTooLarge(limit)
        chunks.append(chunk)
    return b"".join(chunks)
