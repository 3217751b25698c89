"""Request orchestration: the create-proxy and fetch-proxy flows.

Transport-agnostic. The FastAPI app, the serverless handler and the CLI all
call into ProxyService and serialize the returned ServiceResponse.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from .config import Settings
from .errors import (
    FailureKind,
    Internal,
    InvalidContentType,
    InvalidInput,
    ProxyError,
    RateLimited,
    TransferTooLarge,
    Unreachable,
    UpstreamHTTPError,
)
from .links import build_proxy_link, header_safe_url
from .models import ServiceResponse
from .rate_limit import FixedWindowRateLimiter, RateDecision
from .upstream import UpstreamClient
from .validate import is_json_content, is_public_target, is_valid_url

logger = logging.getLogger(__name__)

CACHE_CONTROL = "public, max-age=300"

# Fixed statuses; UpstreamHTTPError is handled per flow.
_STATUS = {
    FailureKind.INVALID_INPUT: 400,
    FailureKind.RATE_LIMITED: 429,
    FailureKind.UNREACHABLE: 400,
    FailureKind.TIMEOUT: 408,
    FailureKind.INVALID_CONTENT_TYPE: 400,
    FailureKind.TRANSFER_TOO_LARGE: 400,
    FailureKind.INVALID_JSON: 500,
    FailureKind.INTERNAL: 500,
}


def utc_timestamp() -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def create_error_response(err: ProxyError) -> tuple[int, dict[str, Any]]:
    if isinstance(err, UpstreamHTTPError):
        return 400, {"error": f"URL returned status code: {err.status}"}
    return _STATUS[err.kind], err.to_dict()


# Statuses that cannot carry a body; relayed as a bad gateway instead.
_BODYLESS_STATUSES = frozenset({204, 205, 304})


def fetch_error_response(err: ProxyError) -> tuple[int, dict[str, Any]]:
    if isinstance(err, UpstreamHTTPError):
        if err.status < 200 or err.status in _BODYLESS_STATUSES:
            return 502, err.to_dict()
        return err.status, err.to_dict()
    if isinstance(err, Unreachable):
        return 404, {"error": "URL not found", "message": err.message}
    return _STATUS[err.kind], err.to_dict()


class ProxyService:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        upstream: UpstreamClient | None = None,
        limiter: FixedWindowRateLimiter | None = None,
    ):
        self.settings = settings or Settings()
        self.upstream = upstream or UpstreamClient(self.settings)
        self.limiter = limiter or FixedWindowRateLimiter(
            self.settings.rate_limit_window,
            self.settings.rate_limit_max,
            max_entries=self.settings.rate_limit_max_entries,
        )

    async def aclose(self) -> None:
        await self.upstream.aclose()

    def _admit(self, client_id: str) -> RateDecision:
        decision = self.limiter.check(client_id)
        if not decision.allowed:
            raise RateLimited(retry_after=decision.reset_in, headers=decision.headers())
        return decision

    def _validate(self, url: Any, *, error: str, message: str) -> str:
        if not is_valid_url(url):
            raise InvalidInput(message, error=error)
        if self.settings.block_private_networks and not is_public_target(url):
            raise InvalidInput("The URL targets a private network address", error=error)
        return url

    async def create_proxy(self, url: Any, *, client_id: str, origin: str) -> ServiceResponse:
        """Validate `url` with a HEAD probe and mint a proxy link for it."""
        headers: dict[str, str] = {}
        try:
            headers.update(self._admit(client_id).headers())
            url = self._validate(url, error="Invalid URL format", message="Please provide a valid URL")

            probe = await self.upstream.probe(url)
            probe.raise_for_failure()

            if not is_json_content(probe.content_type):
                raise InvalidContentType(probe.content_type)
            limit = self.settings.max_content_length
            if probe.content_length is not None and probe.content_length > limit:
                raise TransferTooLarge(limit)
        except ProxyError as e:
            return self._failure(e, create_error_response, "create-proxy", url, headers)
        except Exception:
            logger.exception("create-proxy %s: unexpected error", url)
            status, body = create_error_response(Internal("An error occurred while validating the URL"))
            return ServiceResponse(status, body, headers)

        link = build_proxy_link(origin, url, self.settings.proxy_path)
        body = {"success": True, **link.to_dict(), "contentType": probe.content_type}
        logger.info("create-proxy %s -> %s", url, link.proxy_url)
        return ServiceResponse(200, body, headers)

    async def fetch_proxy(self, url: Any, *, client_id: str) -> ServiceResponse:
        """Fetch `url` and relay its JSON bytes."""
        headers: dict[str, str] = {}
        try:
            if self.settings.rate_limit_fetch_flow:
                headers.update(self._admit(client_id).headers())
            url = self._validate(
                url, error="Invalid URL", message="Please provide a valid URL parameter"
            )
            result = await self.upstream.fetch(url)
        except ProxyError as e:
            return self._failure(e, fetch_error_response, "proxy", url, headers)
        except Exception:
            logger.exception("proxy %s: unexpected error", url)
            status, body = fetch_error_response(Internal("An error occurred while fetching the content"))
            return ServiceResponse(status, body, headers)

        headers.update(
            {
                "Content-Type": "application/json",
                "Cache-Control": CACHE_CONTROL,
                "X-Proxy-Source": header_safe_url(url),
            }
        )
        return ServiceResponse(200, result.raw, headers)

    @staticmethod
    def health() -> ServiceResponse:
        return ServiceResponse(200, {"status": "OK", "timestamp": utc_timestamp()})

    def _failure(self, err, mapper, flow: str, url: Any, headers: dict[str, str]) -> ServiceResponse:
        status, body = mapper(err)
        if isinstance(err, RateLimited):
            headers.update(err.headers)
        elif err.kind in (FailureKind.INTERNAL, FailureKind.INVALID_JSON):
            logger.error("%s %s: %s", flow, url, err)
        elif err.kind is not FailureKind.INVALID_INPUT:
            logger.warning("%s %s: %s (%s)", flow, url, err.kind.value, err)
        return ServiceResponse(status, body, headers)
