"""Proxy link construction and request-derived identities.

A proxy link is not a stored alias: it is the candidate URL re-encoded into a
query string on this service's own origin, so the same inputs always give the
same link.
"""

from __future__ import annotations

from collections.abc import Mapping
from urllib.parse import parse_qs, quote, urlsplit

from .models import ProxyLink

# Characters JavaScript's encodeURIComponent leaves untouched (besides alnum).
_URI_COMPONENT_SAFE = "-_.!~*'()"


def encode_uri_component(value: str) -> str:
    return quote(value, safe=_URI_COMPONENT_SAFE)


def build_proxy_url(request_origin: str, candidate: str, proxy_path: str = "/proxy") -> str:
    origin = request_origin.rstrip("/")
    return f"{origin}{proxy_path}?url={encode_uri_component(candidate)}"


def build_proxy_link(request_origin: str, candidate: str, proxy_path: str = "/proxy") -> ProxyLink:
    return ProxyLink(
        original_url=candidate,
        proxy_url=build_proxy_url(request_origin, candidate, proxy_path),
    )


def original_url_from_proxy_url(proxy_url: str) -> str | None:
    """Recover the candidate URL from a proxy link (inverse of build_proxy_url)."""
    values = parse_qs(urlsplit(proxy_url).query, keep_blank_values=True).get("url")
    return values[0] if values else None


def _header(headers: Mapping[str, str], name: str) -> str | None:
    # Starlette headers are case-insensitive already; plain dicts (serverless
    # events) are not.
    value = headers.get(name)
    if value is None:
        lname = name.lower()
        for k, v in headers.items():
            if str(k).lower() == lname:
                value = v
                break
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def request_origin(headers: Mapping[str, str], scheme: str = "https", host: str | None = None) -> str:
    """Public origin of the inbound request.

    X-Forwarded-Proto wins over the connection scheme so links stay correct
    behind a reverse proxy.
    """
    forwarded_proto = _header(headers, "x-forwarded-proto")
    if forwarded_proto:
        scheme = forwarded_proto.split(",")[0].strip()
    host = _header(headers, "host") or host or "localhost"
    return f"{scheme}://{host}"


def client_identity(
    headers: Mapping[str, str], peer: str | None = None, *, trust_forwarded: bool = False
) -> str:
    """Key used by the rate limiter.

    Forwarded headers are caller-controlled unless a trusted proxy rewrites
    them, so they are read only with `trust_forwarded`.
    """
    if trust_forwarded:
        forwarded_for = _header(headers, "x-forwarded-for")
        if forwarded_for:
            first = forwarded_for.split(",")[0].strip()
            if first:
                return first
        real_ip = _header(headers, "x-real-ip")
        if real_ip:
            return real_ip
    return peer or "unknown"


def header_safe_url(url: str) -> str:
    """Percent-encode anything that cannot travel in a latin-1 header value."""
    return quote(url, safe="!#$%&'()*+,/:;=?@[]~")
