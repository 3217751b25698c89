"""JSON Proxy Service - validate third-party JSON endpoints and relay them."""

__version__ = "1.0.0"

from .links import build_proxy_url
from .rate_limit import FixedWindowRateLimiter
from .service import ProxyService
from .upstream import UpstreamClient
from .validate import is_json_content, is_valid_url

__all__ = [
    "ProxyService",
    "UpstreamClient",
    "FixedWindowRateLimiter",
    "build_proxy_url",
    "is_valid_url",
    "is_json_content",
]
