"""Candidate URL acceptance.

The syntax check is advisory: it does not imply reachability and does not
allow-list schemes. The private-network check is opt-in and only looks at
literal hosts (no DNS resolution).
"""

from __future__ import annotations

import ipaddress
import re
from typing import Any
from urllib.parse import urlparse

_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*$")
_BAD_CHARS_RE = re.compile(r"[\s\x00-\x1f\x7f]")

_LOCAL_NAMES = {"localhost", "localhost.localdomain", "ip6-localhost", "ip6-loopback"}


def is_valid_url(candidate: Any) -> bool:
    """Return True when `candidate` parses as an absolute URL with a host."""
    if not isinstance(candidate, str) or not candidate:
        return False
    if _BAD_CHARS_RE.search(candidate):
        return False

    try:
        parsed = urlparse(candidate)
        # Raises ValueError on a malformed port.
        parsed.port
    except ValueError:
        return False

    if not parsed.scheme or not _SCHEME_RE.match(parsed.scheme):
        return False
    if not parsed.netloc or not parsed.hostname:
        return False

    host = parsed.hostname
    if parsed.netloc.rsplit("@", 1)[-1].startswith("["):
        try:
            ipaddress.IPv6Address(host.split("%", 1)[0])
        except ValueError:
            return False
    elif any(c in host for c in "[]<>\\^`{|}"):
        return False

    return True


def is_json_content(content_type: str | None) -> bool:
    return bool(content_type) and "application/json" in str(content_type).lower()


def _literal_ip(host: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    try:
        return ipaddress.ip_address(host.split("%", 1)[0])
    except ValueError:
        return None


def is_public_target(candidate: str) -> bool:
    """False for literal private, loopback, link-local, reserved or multicast
    addresses and for localhost names. Hostnames are not resolved.
    """
    host = (urlparse(candidate).hostname or "").rstrip(".").lower()
    if not host:
        return False
    if host in _LOCAL_NAMES or host.endswith(".localhost"):
        return False

    ip = _literal_ip(host)
    if ip is None:
        return True
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return not (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_reserved
        or ip.is_multicast
        or ip.is_unspecified
    )
